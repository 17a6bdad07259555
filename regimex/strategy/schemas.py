"""
Strategy Schemas
"""

from dataclasses import dataclass, field
from typing import Any, Dict

from regimex.state.schemas import MarketState


ATTENTION_WEIGHTED = "attention_weighted"
MEAN_REVERSION = "mean_reversion"

# Numeric selector values written by older deployments
LEGACY_STRATEGY_IDS = {
    0: ATTENTION_WEIGHTED,
    1: MEAN_REVERSION,
}


@dataclass
class UnifiedResult:
    """Common result shape across strategies"""
    state: MarketState
    confidence: float               # 0-1
    signal: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'state': self.state.value,
            'confidence': self.confidence,
            'signal': self.signal,
            'metadata': dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'UnifiedResult':
        return cls(
            state=MarketState(data['state']),
            confidence=float(data['confidence']),
            signal=str(data['signal']),
            metadata=dict(data.get('metadata', {})),
        )

    @classmethod
    def safe_default(cls, error: str, strategy: str = "") -> 'UnifiedResult':
        """Returned when a strategy fails; the pipeline always gets a result"""
        return cls(
            state=MarketState.SIDEWAYS,
            confidence=0.5,
            signal="WAIT",
            metadata={'strategy': strategy, 'error': error},
        )
