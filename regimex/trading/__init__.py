"""
Risk-bounded trade sizing and execution
"""

from regimex.trading.config import TradingConfig
from regimex.trading.schemas import (
    ExecutionResult,
    OrderType,
    RiskParameters,
    Position,
    TradeRequest,
    TradeResponse,
    TradeRecord,
    ExecutionOutcome,
    TradingStats,
)
from regimex.trading.adapters import ExecutionAdapter, SimulatedExecutionAdapter
from regimex.trading.admin import RiskParameterAdmin
from regimex.trading.executor import TradingExecutor

__all__ = [
    'TradingConfig',
    'ExecutionResult',
    'OrderType',
    'RiskParameters',
    'Position',
    'TradeRequest',
    'TradeResponse',
    'TradeRecord',
    'ExecutionOutcome',
    'TradingStats',
    'ExecutionAdapter',
    'SimulatedExecutionAdapter',
    'RiskParameterAdmin',
    'TradingExecutor',
]
