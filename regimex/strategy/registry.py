"""
Strategy registry keyed by strategy id
"""

import threading
from typing import Dict, List, Optional

from regimex.errors import UnknownStrategyError
from regimex.strategy.strategies import (
    AttentionWeightedStrategy,
    DetectionStrategy,
    MeanReversionStrategy,
)


class StrategyRegistry:
    """Thread-safe id → DetectionStrategy mapping"""

    def __init__(self):
        self._strategies: Dict[str, DetectionStrategy] = {}
        self._lock = threading.RLock()

    def register(self, strategy: DetectionStrategy, replace: bool = False):
        if not strategy.strategy_id:
            raise ValueError("Strategy must define strategy_id")
        with self._lock:
            if strategy.strategy_id in self._strategies and not replace:
                raise ValueError(f"Strategy already registered: {strategy.strategy_id}")
            self._strategies[strategy.strategy_id] = strategy

    def get(self, strategy_id: str) -> DetectionStrategy:
        with self._lock:
            strategy = self._strategies.get(strategy_id)
        if strategy is None:
            raise UnknownStrategyError(f"Unknown strategy: {strategy_id}")
        return strategy

    def has(self, strategy_id: str) -> bool:
        with self._lock:
            return strategy_id in self._strategies

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._strategies.keys())

    def describe_all(self) -> List[Dict]:
        with self._lock:
            return [s.describe() for s in self._strategies.values()]


def default_registry(
    attention: Optional[AttentionWeightedStrategy] = None,
    mean_reversion: Optional[MeanReversionStrategy] = None,
) -> StrategyRegistry:
    """Registry with the two built-in strategies"""
    registry = StrategyRegistry()
    registry.register(attention or AttentionWeightedStrategy())
    registry.register(mean_reversion or MeanReversionStrategy())
    return registry
