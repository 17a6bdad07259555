"""
Tests for strategy selection and dispatch
"""

import pytest

from regimex.errors import UnknownStrategyError
from regimex.event_bus import EventType
from regimex.state import MarketState
from regimex.storage import dump_record
from regimex.strategy import (
    ATTENTION_WEIGHTED,
    MEAN_REVERSION,
    AttentionWeightedStrategy,
    DetectionStrategy,
    MeanReversionStrategy,
    StrategyManager,
    StrategyRegistry,
    UnifiedResult,
    default_registry,
)


class ExplodingStrategy(DetectionStrategy):
    strategy_id = "exploding"
    name = "Exploding"

    def detect(self, prices, volumes=()):
        raise RuntimeError("model file missing")


@pytest.fixture
def manager(store, event_bus):
    return StrategyManager(store, default_registry(), event_bus)


class TestStrategies:

    def test_attention_strategy_maps_trend_to_bull(self):
        result = AttentionWeightedStrategy().detect([100 + 3 * i for i in range(10)])
        assert result.state == MarketState.BULL
        assert result.signal == "BUY"
        assert result.confidence == pytest.approx(0.75)
        assert result.metadata['regime'] == "TRENDING_UP"
        assert result.metadata['strategy'] == ATTENTION_WEIGHTED
        assert 'attention_price' in result.metadata

    def test_attention_strategy_non_trend_is_sideways(self):
        result = AttentionWeightedStrategy().detect([100, 50, 150, 50, 150])
        assert result.state == MarketState.SIDEWAYS
        assert result.metadata['regime'] == "HIGH_VOLATILITY"

    def test_mean_reversion_strategy(self):
        result = MeanReversionStrategy().detect([100] * 19 + [70])
        assert result.state == MarketState.BULL
        assert result.signal == "BUY"
        assert result.metadata['action'] == "BUY"
        assert result.metadata['ma'] == pytest.approx(98.5)
        assert 0 < result.metadata['position_size'] <= 0.3
        # Long from 70: stop 1.5 deviations below entry, target back at the average
        assert result.metadata['stop_loss'] == pytest.approx(70 - 1.5 * result.metadata['std_dev'])
        assert result.metadata['take_profit'] == pytest.approx(98.5)

    def test_mean_reversion_hold_exits_at_entry(self):
        result = MeanReversionStrategy().detect([100] * 20)
        assert result.metadata['stop_loss'] == result.metadata['take_profit'] == 100.0

    def test_abstract_strategy(self):
        with pytest.raises(NotImplementedError):
            DetectionStrategy().detect([1, 2, 3])


class TestRegistry:

    def test_default_contents(self):
        registry = default_registry()
        assert set(registry.ids()) == {ATTENTION_WEIGHTED, MEAN_REVERSION}
        names = {d['strategy_id']: d['name'] for d in registry.describe_all()}
        assert names[ATTENTION_WEIGHTED] == "Multi-thread Attention"

    def test_duplicate_registration(self):
        registry = default_registry()
        with pytest.raises(ValueError):
            registry.register(MeanReversionStrategy())
        registry.register(MeanReversionStrategy(), replace=True)

    def test_unknown_lookup(self):
        with pytest.raises(UnknownStrategyError):
            StrategyRegistry().get("nope")


class TestStrategyManager:

    def test_default_active(self, manager):
        assert manager.get_active_strategy() == ATTENTION_WEIGHTED
        assert manager.get_strategy_name() == "Multi-thread Attention"

    def test_switch_persists(self, manager, store, event_bus):
        assert manager.switch_strategy(MEAN_REVERSION) == MEAN_REVERSION
        assert StrategyManager(store, default_registry()).get_active_strategy() == MEAN_REVERSION
        events = event_bus.recent_events(EventType.STRATEGY_SWITCHED)
        assert events[-1].data['previous'] == ATTENTION_WEIGHTED

    def test_switch_by_legacy_number(self, manager):
        assert manager.switch_strategy(1) == MEAN_REVERSION
        assert manager.switch_strategy(0) == ATTENTION_WEIGHTED

    def test_switch_unknown_rejected(self, manager):
        with pytest.raises(UnknownStrategyError):
            manager.switch_strategy("neural_net")
        with pytest.raises(UnknownStrategyError):
            manager.switch_strategy(5)
        assert manager.get_active_strategy() == ATTENTION_WEIGHTED

    def test_legacy_numeric_selector(self, manager, store):
        store.set("strategy:active", "1")
        assert manager.get_active_strategy() == MEAN_REVERSION

    def test_corrupt_selector_falls_back(self, manager, store):
        store.set("strategy:active", "9")
        assert manager.get_active_strategy() == ATTENTION_WEIGHTED
        store.set("strategy:active", dump_record("active_strategy", {'strategy_id': 'retired'}))
        assert manager.get_active_strategy() == ATTENTION_WEIGHTED

    def test_execute_dispatches_to_active(self, manager):
        manager.switch_strategy(MEAN_REVERSION)
        result = manager.execute([100] * 19 + [130])
        assert result.metadata['strategy'] == MEAN_REVERSION
        assert result.state == MarketState.BEAR
        assert manager.last_result() == result

    def test_failure_returns_safe_default(self, store, event_bus):
        registry = default_registry()
        registry.register(ExplodingStrategy())
        manager = StrategyManager(store, registry, event_bus)
        manager.switch_strategy("exploding")

        result = manager.execute([100] * 30)
        assert result.state == MarketState.SIDEWAYS
        assert result.confidence == 0.5
        assert result.signal == "WAIT"
        assert "model file missing" in result.metadata['error']
        assert manager.get_stats()['failures'] == 1
        assert event_bus.recent_events(EventType.STRATEGY_FAILED)

    def test_insufficient_data_is_a_strategy_failure(self, manager):
        manager.switch_strategy(MEAN_REVERSION)
        result = manager.execute([100] * 5)
        assert result == UnifiedResult.safe_default(result.metadata['error'], MEAN_REVERSION)

    def test_unregistered_default_rejected(self, store):
        with pytest.raises(UnknownStrategyError):
            StrategyManager(store, StrategyRegistry())

    def test_unified_result_roundtrip(self):
        result = UnifiedResult(MarketState.BULL, 0.8, "BUY", {'strategy': 'x'})
        assert UnifiedResult.from_dict(result.to_dict()) == result
