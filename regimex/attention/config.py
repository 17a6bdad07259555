"""
Attention Configuration
"""

from dataclasses import dataclass, asdict
from typing import Dict

from regimex.errors import ConfigurationError


@dataclass
class AttentionConfig:
    """Per-sample attention factor parameters"""

    # Recency: decay ** ((1 - i/n) * scale)
    recency_decay: float = 0.9
    recency_scale: float = 10.0

    # Trailing window for abnormality and volume baselines
    lookback: int = 10

    # Abnormality (z-score bands)
    z_high: float = 2.0
    z_high_weight: float = 2.0
    z_moderate: float = 1.0
    z_moderate_weight: float = 1.5
    min_abnormality_samples: int = 3

    # Market-state change
    state_change_weight: float = 1.8

    # Volume ratio bands
    volume_surge_ratio: float = 2.0
    volume_surge_weight: float = 1.6
    volume_elevated_ratio: float = 1.5
    volume_elevated_weight: float = 1.3
    volume_thin_ratio: float = 0.5
    volume_thin_weight: float = 0.8
    min_volume_samples: int = 5

    def validate(self) -> bool:
        if not 0 < self.recency_decay <= 1:
            raise ConfigurationError("recency_decay must be in (0, 1]")
        if self.lookback < 2:
            raise ConfigurationError("lookback must be at least 2")
        if self.z_moderate > self.z_high:
            raise ConfigurationError("z_moderate must not exceed z_high")
        if not self.volume_thin_ratio < self.volume_elevated_ratio < self.volume_surge_ratio:
            raise ConfigurationError("volume ratio bands must be increasing")
        return True

    def to_dict(self) -> Dict:
        return asdict(self)
