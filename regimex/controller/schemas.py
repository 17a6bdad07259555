"""
Controller Schemas
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional


class SystemStatus(str, Enum):
    INITIALIZING = "INITIALIZING"
    RUNNING = "RUNNING"
    ERROR = "ERROR"
    MAINTENANCE = "MAINTENANCE"


class CycleOutcome(str, Enum):
    """What happened in the most recent attempted cycle"""
    COMPLETED = "COMPLETED"
    DEGRADED = "DEGRADED"
    TRANSITION_REJECTED = "TRANSITION_REJECTED"
    LOCK_CONTENTION = "LOCK_CONTENTION"
    RISK_BLOCKED = "RISK_BLOCKED"
    EXECUTION_FAILED = "EXECUTION_FAILED"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


@dataclass
class DecisionRecord:
    """
    Audit record of one cycle.

    Written for every attempted cycle, including skipped, blocked and
    failed ones, so "no signal" is distinguishable from "blocked".
    """
    cycle: int
    timestamp: float
    outcome: CycleOutcome
    strategy: str = ""
    regime: Optional[str] = None
    market_state: Optional[str] = None          # proposed by the strategy
    committed_state: Optional[str] = None       # current state after the cycle
    signal: str = "WAIT"
    confidence: int = 0                         # 0-100
    urgency: int = 0
    position_size_pct: int = 0
    reasoning: str = ""
    transition_accepted: Optional[bool] = None
    execution_result: Optional[str] = None
    execution_reason: str = ""
    fused_value: Optional[int] = None
    fused_confidence: Optional[int] = None
    degraded: bool = False
    attention_price: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['outcome'] = self.outcome.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DecisionRecord':
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        known['outcome'] = CycleOutcome(known['outcome'])
        return cls(**known)


@dataclass
class EngineStatistics:
    total_cycles: int = 0
    completed: int = 0
    degraded: int = 0
    skipped: int = 0
    lock_contentions: int = 0
    transitions_accepted: int = 0
    transitions_rejected: int = 0
    risk_blocked: int = 0
    execution_failures: int = 0
    errors: int = 0
    signal_counts: Dict[str, int] = field(default_factory=dict)
    last_outcome: Optional[str] = None
    last_cycle_time: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngineStatistics':
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        return cls(**known)


@dataclass
class ErrorEntry:
    timestamp: float
    cycle: int
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
