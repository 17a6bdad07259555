"""
Pluggable detection strategies selected through a persisted registry id
"""

from regimex.strategy.schemas import UnifiedResult, ATTENTION_WEIGHTED, MEAN_REVERSION
from regimex.strategy.strategies import (
    DetectionStrategy,
    AttentionWeightedStrategy,
    MeanReversionStrategy,
)
from regimex.strategy.registry import StrategyRegistry, default_registry
from regimex.strategy.manager import StrategyManager

__all__ = [
    'UnifiedResult',
    'ATTENTION_WEIGHTED',
    'MEAN_REVERSION',
    'DetectionStrategy',
    'AttentionWeightedStrategy',
    'MeanReversionStrategy',
    'StrategyRegistry',
    'default_registry',
    'StrategyManager',
]
