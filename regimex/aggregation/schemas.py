"""
Aggregation Schemas
"""

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from regimex.errors import ErrorKind


@dataclass(frozen=True)
class Observation:
    """
    One source's reading at a point in time.

    value is a signed fixed-point integer; confidence is 0-100.
    Observations are superseded, never mutated.
    """
    source_id: str
    value: int
    timestamp: float
    confidence: int
    volume: int = 1

    def to_dict(self) -> Dict:
        return {
            'source_id': self.source_id,
            'value': self.value,
            'timestamp': self.timestamp,
            'confidence': self.confidence,
            'volume': self.volume,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Observation':
        return cls(
            source_id=str(data['source_id']),
            value=int(data['value']),
            timestamp=float(data['timestamp']),
            confidence=int(data['confidence']),
            volume=int(data.get('volume', 1)),
        )


# Data sources deliver raw readings in the same shape
RawReading = Observation


@dataclass(frozen=True)
class FusedEstimate:
    """Confidence-weighted consensus of one aggregation round"""
    value: int
    confidence: int
    contributing_sources: FrozenSet[str]
    timestamp: float
    volume: int = 0
    rejected_sources: FrozenSet[str] = frozenset()
    degraded: bool = False
    reason: str = ""

    def to_dict(self) -> Dict:
        return {
            'value': self.value,
            'confidence': self.confidence,
            'contributing_sources': sorted(self.contributing_sources),
            'rejected_sources': sorted(self.rejected_sources),
            'timestamp': self.timestamp,
            'volume': self.volume,
            'degraded': self.degraded,
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'FusedEstimate':
        return cls(
            value=int(data['value']),
            confidence=int(data['confidence']),
            contributing_sources=frozenset(data.get('contributing_sources', [])),
            rejected_sources=frozenset(data.get('rejected_sources', [])),
            timestamp=float(data['timestamp']),
            volume=int(data.get('volume', 0)),
            degraded=bool(data.get('degraded', False)),
            reason=str(data.get('reason', '')),
        )


@dataclass
class AggregationResult:
    """Outcome of ObservationAggregator.aggregate(); always carries an estimate"""
    estimate: FusedEstimate
    ok: bool = True
    error_kind: Optional[ErrorKind] = None
    outliers: List[str] = field(default_factory=list)
    invalid: List[str] = field(default_factory=list)
    cached: bool = False

    def to_dict(self) -> Dict:
        return {
            'estimate': self.estimate.to_dict(),
            'ok': self.ok,
            'error_kind': self.error_kind.value if self.error_kind else None,
            'outliers': list(self.outliers),
            'invalid': list(self.invalid),
            'cached': self.cached,
        }
