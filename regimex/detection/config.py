"""
Detection Configuration

Thresholds for the rule-based detector and the mean-reversion detector.
Feature thresholds share the ×1000 fixed-point scale of MarketFeatures.
"""

from dataclasses import dataclass, asdict
from typing import Dict

from regimex.errors import ConfigurationError


@dataclass
class DetectorConfig:
    """Rule-based market state detector configuration"""

    # Windows
    min_points: int = 5
    short_window: int = 5
    medium_window: int = 20
    min_reversal_points: int = 10

    # Volatility bands (×1000)
    high_volatility_threshold: int = 300
    low_volatility_threshold: int = 50

    # Trend (×1000 slope)
    strong_trend_threshold: int = 200
    breakout_min_trend: int = 100

    # Breakout: distance beyond support/resistance, basis points of the level
    breakout_threshold_bps: int = 150
    volume_surge_threshold: int = 200

    # Reversal: momentum divergence and proximity band (basis points)
    reversal_momentum_threshold: int = 50
    reversal_band_bps: int = 50

    def validate(self) -> bool:
        if self.min_points < 2:
            raise ConfigurationError("min_points must be at least 2")
        if self.short_window < 2 or self.medium_window < self.short_window:
            raise ConfigurationError("windows must satisfy 2 <= short_window <= medium_window")
        if self.low_volatility_threshold >= self.high_volatility_threshold:
            raise ConfigurationError("low_volatility_threshold must be below high_volatility_threshold")
        if self.breakout_threshold_bps < 0 or self.reversal_band_bps < 0:
            raise ConfigurationError("basis point thresholds cannot be negative")
        return True

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class MeanReversionConfig:
    """Moving-average deviation detector configuration"""

    window: int = 20
    deviation_threshold: float = 2.0       # standard deviations
    neutral_band: float = 0.5

    # Confidence scaling
    base_confidence: float = 0.65
    confidence_per_sigma: float = 0.1
    max_confidence: float = 0.95
    neutral_confidence: float = 0.7
    uncertain_confidence: float = 0.5

    # Volume adjustment
    volume_lookback: int = 10
    high_volume_ratio: float = 1.5
    high_volume_boost_rate: float = 0.05
    low_volume_ratio: float = 0.7
    low_volume_penalty_rate: float = 0.1
    max_volume_adjustment: float = 0.1
    min_adjusted_confidence: float = 0.5

    # Position management helpers
    base_position_fraction: float = 0.1
    max_position_fraction: float = 0.3
    stop_loss_sigmas: float = 1.5

    def validate(self) -> bool:
        if self.window < 2:
            raise ConfigurationError("window must be at least 2")
        if self.deviation_threshold <= self.neutral_band:
            raise ConfigurationError("deviation_threshold must exceed neutral_band")
        if not 0 < self.max_confidence <= 1:
            raise ConfigurationError("max_confidence must be in (0, 1]")
        return True

    def to_dict(self) -> Dict:
        return asdict(self)
