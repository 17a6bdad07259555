"""
Strategy Manager

Keeps the persisted "active strategy" selector and dispatches each cycle
to exactly one registered DetectionStrategy. Strategies are alternatives,
never blended.

A failing strategy never breaks the cycle: the manager returns the safe
default (SIDEWAYS, 0.5, WAIT) annotated with the error.
"""

import logging
from typing import Dict, List, Optional, Sequence, Union

from regimex.errors import CorruptStateError, UnknownStrategyError
from regimex.event_bus import EventBus, EventType
from regimex.storage.records import dump_record, load_record
from regimex.storage.store import KeyValueStore
from regimex.strategy.registry import StrategyRegistry, default_registry
from regimex.strategy.schemas import ATTENTION_WEIGHTED, LEGACY_STRATEGY_IDS, UnifiedResult

LOG = logging.getLogger(__name__)


def _parse_legacy_selector(raw: str) -> Dict:
    return {'strategy_id': LEGACY_STRATEGY_IDS[int(raw)]}


class StrategyManager:
    """Dispatches to the active strategy and normalizes results"""

    def __init__(
        self,
        store: KeyValueStore,
        registry: Optional[StrategyRegistry] = None,
        event_bus: Optional[EventBus] = None,
        default_strategy: str = ATTENTION_WEIGHTED,
        key_prefix: str = "strategy",
    ):
        self.store = store
        self.registry = registry or default_registry()
        self.event_bus = event_bus
        if not self.registry.has(default_strategy):
            raise UnknownStrategyError(f"Default strategy not registered: {default_strategy}")
        self.default_strategy = default_strategy

        self._active_key = f"{key_prefix}:active"
        self._result_key = f"{key_prefix}:last_result"

        self.executions = 0
        self.failures = 0

    # ========================================
    # SELECTION
    # ========================================

    def get_active_strategy(self) -> str:
        raw = self.store.get(self._active_key)
        if raw is None:
            return self.default_strategy
        try:
            data = load_record("active_strategy", raw, legacy_parser=_parse_legacy_selector)
            strategy_id = data['strategy_id']
        except (CorruptStateError, KeyError) as e:
            LOG.error(f"Corrupt strategy selector, using default {self.default_strategy}: {e}")
            return self.default_strategy
        if not self.registry.has(strategy_id):
            LOG.error(f"Persisted strategy {strategy_id!r} not registered, using default")
            return self.default_strategy
        return strategy_id

    def switch_strategy(self, strategy_id: Union[str, int]) -> str:
        """
        Persist a new active strategy.

        Raises:
            UnknownStrategyError: strategy_id is not registered
        """
        if isinstance(strategy_id, int):
            if strategy_id not in LEGACY_STRATEGY_IDS:
                raise UnknownStrategyError(f"Unknown strategy: {strategy_id}")
            strategy_id = LEGACY_STRATEGY_IDS[strategy_id]
        self.registry.get(strategy_id)

        previous = self.get_active_strategy()
        self.store.set(self._active_key, dump_record("active_strategy", {'strategy_id': strategy_id}))
        if previous != strategy_id:
            LOG.info(f"Strategy switched: {previous} -> {strategy_id}")
            self._emit(EventType.STRATEGY_SWITCHED, previous=previous, strategy_id=strategy_id)
        return strategy_id

    def get_strategy_name(self, strategy_id: Optional[str] = None) -> str:
        return self.registry.get(strategy_id or self.get_active_strategy()).name

    def available_strategies(self) -> List[Dict]:
        return self.registry.describe_all()

    def strategy_config(self, strategy_id: str) -> Dict:
        return self.registry.get(strategy_id).describe()

    # ========================================
    # EXECUTION
    # ========================================

    def execute(self, prices: Sequence[int], volumes: Sequence[int] = ()) -> UnifiedResult:
        strategy_id = self.get_active_strategy()
        self.executions += 1
        try:
            result = self.registry.get(strategy_id).detect(prices, volumes)
        except Exception as e:
            self.failures += 1
            LOG.error(f"Strategy {strategy_id} failed, using safe default: {e}")
            self._emit(EventType.STRATEGY_FAILED, strategy_id=strategy_id, error=str(e))
            result = UnifiedResult.safe_default(str(e), strategy=strategy_id)

        self.save_result(result)
        return result

    def save_result(self, result: UnifiedResult):
        self.store.set(self._result_key, dump_record("strategy_result", result.to_dict()))

    def last_result(self) -> Optional[UnifiedResult]:
        try:
            data = load_record("strategy_result", self.store.get(self._result_key))
            return UnifiedResult.from_dict(data) if data else None
        except (CorruptStateError, KeyError, ValueError) as e:
            LOG.error(f"Corrupt last strategy result: {e}")
            return None

    def get_stats(self) -> Dict:
        return {
            'active_strategy': self.get_active_strategy(),
            'executions': self.executions,
            'failures': self.failures,
        }

    def _emit(self, event_type: EventType, **data):
        if self.event_bus is not None:
            self.event_bus.emit(event_type, **data)
