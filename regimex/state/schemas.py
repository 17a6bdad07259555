"""
State Machine Schemas
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from regimex.errors import ErrorKind


class MarketState(str, Enum):
    """Coarse market state; exactly one is current at any time"""
    BULL = "BULL"
    BEAR = "BEAR"
    SIDEWAYS = "SIDEWAYS"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_legacy_code(cls, code: int) -> 'MarketState':
        """Numeric codes used by older stored records (0-3)"""
        return _LEGACY_CODES.get(code, cls.UNKNOWN)


_LEGACY_CODES = {
    0: MarketState.BULL,
    1: MarketState.BEAR,
    2: MarketState.SIDEWAYS,
    3: MarketState.UNKNOWN,
}


@dataclass(frozen=True)
class TransitionRecord:
    """One accepted state transition"""
    timestamp: float
    from_state: MarketState
    to_state: MarketState
    reason: str = ""

    @property
    def changed(self) -> bool:
        return self.from_state != self.to_state

    def to_dict(self) -> Dict:
        return {
            'timestamp': self.timestamp,
            'from_state': self.from_state.value,
            'to_state': self.to_state.value,
            'reason': self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'TransitionRecord':
        return cls(
            timestamp=float(data['timestamp']),
            from_state=MarketState(data['from_state']),
            to_state=MarketState(data['to_state']),
            reason=str(data.get('reason', '')),
        )


@dataclass(frozen=True)
class LockRecord:
    """Held lock; absence of a record means unlocked"""
    held_since: float
    owner_id: str

    def age(self, now: float) -> float:
        return now - self.held_since

    def to_dict(self) -> Dict:
        return {'held_since': self.held_since, 'owner_id': self.owner_id}

    @classmethod
    def from_dict(cls, data: Dict) -> 'LockRecord':
        return cls(held_since=float(data['held_since']), owner_id=str(data['owner_id']))


@dataclass
class TransitionOutcome:
    """Result of StateTransitionManager.transition()"""
    accepted: bool
    from_state: MarketState
    to_state: MarketState
    strength: int
    reason: str = ""
    error_kind: Optional[ErrorKind] = None

    def to_dict(self) -> Dict:
        return {
            'accepted': self.accepted,
            'from_state': self.from_state.value,
            'to_state': self.to_state.value,
            'strength': self.strength,
            'reason': self.reason,
            'error_kind': self.error_kind.value if self.error_kind else None,
        }


@dataclass
class StateInfo:
    """Snapshot for monitoring"""
    current_state: MarketState
    locked: bool
    lock_status: str
    transition_count: int
    last_transition_time: Optional[float]
    recent_transitions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'current_state': self.current_state.value,
            'locked': self.locked,
            'lock_status': self.lock_status,
            'transition_count': self.transition_count,
            'last_transition_time': self.last_transition_time,
            'recent_transitions': list(self.recent_transitions),
        }
