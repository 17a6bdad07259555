"""
Regimex - Autonomous Market-State Decision Engine

Turns noisy multi-source price observations into a validated market state
and a risk-bounded position adjustment, one atomic cycle at a time.

Philosophy:
    - Outliers are rejected, never averaged in
    - State changes must be justified; rapid oscillation is refused
    - Every position change is bounded by persistent risk parameters
    - Every cycle leaves an auditable DecisionRecord
    - When in doubt, do nothing

Flow:
    DataSource → ObservationAggregator → StrategyManager
        → StateTransitionManager → TradingExecutor → DecisionRecord

Components:
    aggregation   Outlier-robust fusion of source readings
    attention     Recency/abnormality/volume weighting of a series
    detection     Rule-based regime detector and mean-reversion detector
    strategy      Pluggable detection strategies and the active selector
    state         Market-state machine with anti-oscillation and a timed lock
    trading       Risk-bounded position sizing and execution
    controller    The decision cycle and system status
"""

from regimex.config import EngineConfig
from regimex.controller import DecisionEngine, DecisionRecord, SystemStatus, CycleOutcome
from regimex.state import MarketState

__version__ = "1.0.0"

__all__ = [
    'EngineConfig',
    'DecisionEngine',
    'DecisionRecord',
    'SystemStatus',
    'CycleOutcome',
    'MarketState',
]
