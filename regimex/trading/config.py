"""
Trading Configuration
"""

from dataclasses import dataclass, field, asdict
from typing import Dict

from regimex.errors import ConfigurationError


@dataclass
class TradingConfig:
    """Executor configuration (limits live in RiskParameters)"""

    asset_pair: str = "MAS/USDC"

    # Fixed-point scale of prices: price_scale == 1.0 quote unit
    price_scale: int = 10000

    # Capital the leverage bound is measured against (quote units)
    base_capital: int = 5000

    # Do not trade deltas at or below this size
    min_trade_size: int = 100

    # Target-size multipliers by regime, percent
    regime_multipliers: Dict[str, int] = field(default_factory=lambda: {
        "HIGH_VOLATILITY": 70,
        "BREAKOUT": 120,
        "REVERSAL": 80,
    })

    # Daily P&L window, clock units
    day_length: float = 86400.0

    trade_history_size: int = 100
    key_prefix: str = "trading"

    def validate(self) -> bool:
        if self.price_scale <= 0:
            raise ConfigurationError("price_scale must be positive")
        if self.base_capital <= 0:
            raise ConfigurationError("base_capital must be positive")
        if self.min_trade_size < 0:
            raise ConfigurationError("min_trade_size cannot be negative")
        if any(m < 0 for m in self.regime_multipliers.values()):
            raise ConfigurationError("regime multipliers cannot be negative")
        if self.day_length <= 0:
            raise ConfigurationError("day_length must be positive")
        return True

    def to_dict(self) -> Dict:
        return asdict(self)
