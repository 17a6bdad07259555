"""
Cycle orchestration
"""

from regimex.controller.schemas import SystemStatus, CycleOutcome, DecisionRecord, EngineStatistics
from regimex.controller.data_source import (
    MarketSnapshot,
    DataSource,
    StaticDataSource,
    VirtualMarketDataSource,
)
from regimex.controller.engine import DecisionEngine

__all__ = [
    'SystemStatus',
    'CycleOutcome',
    'DecisionRecord',
    'EngineStatistics',
    'MarketSnapshot',
    'DataSource',
    'StaticDataSource',
    'VirtualMarketDataSource',
    'DecisionEngine',
]
