"""
Aggregation Configuration

Source-quorum, outlier and fallback parameters for observation fusion.
"""

from dataclasses import dataclass, asdict
from typing import Dict

from regimex.errors import ConfigurationError


@dataclass
class AggregationConfig:
    """Observation aggregation configuration"""

    # Quorum
    min_sources: int = 2

    # Validity bounds
    min_value: int = -1_000_000
    max_value: int = 1_000_000
    max_age: float = 300.0              # clock units

    # Outlier rejection (median absolute deviation)
    mad_multiplier: int = 3

    # Diversity bonus
    diversity_bonus_per_source: int = 5
    max_diversity_bonus: int = 20

    # Degraded fallback
    fallback_value: int = 10000
    fallback_confidence: int = 50

    # Bookkeeping
    history_size: int = 100
    cache_ttl: float = 0.0              # 0 disables result caching

    def validate(self) -> bool:
        if self.min_sources < 1:
            raise ConfigurationError("min_sources must be at least 1")
        if self.min_value >= self.max_value:
            raise ConfigurationError("min_value must be below max_value")
        if self.max_age <= 0:
            raise ConfigurationError("max_age must be positive")
        if self.mad_multiplier <= 0:
            raise ConfigurationError("mad_multiplier must be positive")
        if not 0 <= self.fallback_confidence <= 100:
            raise ConfigurationError("fallback_confidence must be in [0, 100]")
        if self.history_size < 1:
            raise ConfigurationError("history_size must be at least 1")
        if self.cache_ttl < 0:
            raise ConfigurationError("cache_ttl cannot be negative")
        return True

    def to_dict(self) -> Dict:
        return asdict(self)
