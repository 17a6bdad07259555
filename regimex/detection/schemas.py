"""
Detection Schemas
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional

from regimex.state.schemas import MarketState


class MarketRegime(str, Enum):
    """Fine-grained, per-cycle classification"""
    HIGH_VOLATILITY = "HIGH_VOLATILITY"
    LOW_VOLATILITY = "LOW_VOLATILITY"
    TRENDING_UP = "TRENDING_UP"
    TRENDING_DOWN = "TRENDING_DOWN"
    SIDEWAYS = "SIDEWAYS"
    BREAKOUT = "BREAKOUT"
    REVERSAL = "REVERSAL"


class TradingSignal(str, Enum):
    STRONG_BUY = "STRONG_BUY"
    BUY = "BUY"
    HOLD = "HOLD"
    SELL = "SELL"
    STRONG_SELL = "STRONG_SELL"
    WAIT = "WAIT"

    @property
    def is_buy(self) -> bool:
        return self in (TradingSignal.STRONG_BUY, TradingSignal.BUY)

    @property
    def is_sell(self) -> bool:
        return self in (TradingSignal.STRONG_SELL, TradingSignal.SELL)

    @property
    def is_strong(self) -> bool:
        return self in (TradingSignal.STRONG_BUY, TradingSignal.STRONG_SELL)

    def weakened(self) -> 'TradingSignal':
        """STRONG_x → x; other signals unchanged"""
        if self == TradingSignal.STRONG_BUY:
            return TradingSignal.BUY
        if self == TradingSignal.STRONG_SELL:
            return TradingSignal.SELL
        return self


@dataclass(frozen=True)
class MarketFeatures:
    """
    Window features, all integers.

    volatility, trend, momentum and volume_change are ×1000 fixed-point;
    support and resistance are in price units.
    """
    volatility: int = 0
    trend: int = 0
    momentum: int = 0
    volume_change: int = 0
    support: int = 0
    resistance: int = 0

    def to_dict(self) -> Dict:
        return {
            'volatility': self.volatility,
            'trend': self.trend,
            'momentum': self.momentum,
            'volume_change': self.volume_change,
            'support': self.support,
            'resistance': self.resistance,
        }


@dataclass
class DetectionResult:
    """Output of MarketStateDetector.detect()"""
    regime: Optional[MarketRegime]
    confidence: int                 # 0-100
    signal: TradingSignal
    urgency: int                    # 0-100
    reasoning: str
    features: Optional[MarketFeatures] = None

    def to_dict(self) -> Dict:
        return {
            'regime': self.regime.value if self.regime else None,
            'confidence': self.confidence,
            'signal': self.signal.value,
            'urgency': self.urgency,
            'reasoning': self.reasoning,
            'features': self.features.to_dict() if self.features else None,
        }


@dataclass
class MeanReversionResult:
    """Output of MeanReversionDetector.detect()"""
    state: MarketState
    confidence: float               # 0-1
    signal: TradingSignal
    moving_average: float
    std_dev: float
    deviation: float                # in standard deviations
    action: str
    threshold: float
    metadata: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'state': self.state.value,
            'confidence': self.confidence,
            'signal': self.signal.value,
            'moving_average': self.moving_average,
            'std_dev': self.std_dev,
            'deviation': self.deviation,
            'action': self.action,
            'threshold': self.threshold,
            'metadata': dict(self.metadata),
        }
