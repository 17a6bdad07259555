"""
Market state machine: validated transitions under a store-backed lock
"""

from regimex.state.config import StateConfig
from regimex.state.schemas import (
    MarketState,
    TransitionRecord,
    LockRecord,
    TransitionOutcome,
    StateInfo,
)
from regimex.state.lock import StateLock
from regimex.state.manager import StateTransitionManager

__all__ = [
    'StateConfig',
    'MarketState',
    'TransitionRecord',
    'LockRecord',
    'TransitionOutcome',
    'StateInfo',
    'StateLock',
    'StateTransitionManager',
]
