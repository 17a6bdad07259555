"""
Tests for multi-source observation aggregation
"""

import pytest

from regimex.aggregation import AggregationConfig, ObservationAggregator, Observation
from regimex.errors import ConfigurationError, ErrorKind
from regimex.event_bus import EventType


def obs(source_id, value, timestamp, confidence=80, volume=100):
    return Observation(source_id=source_id, value=value, timestamp=timestamp, confidence=confidence, volume=volume)


@pytest.fixture
def aggregator(clock, event_bus):
    return ObservationAggregator(AggregationConfig(), clock, event_bus, asset="MAS/USDC")


class TestOutlierRejection:

    def test_rogue_source_removed(self, aggregator, clock, event_bus):
        now = clock.now()
        result = aggregator.aggregate([
            obs("a", 10000, now),
            obs("b", 10010, now),
            obs("c", 10020, now),
            obs("rogue", 50000, now),
        ])

        assert result.ok
        assert result.outliers == ["rogue"]
        assert result.estimate.value == 10010
        assert result.estimate.contributing_sources == frozenset({"a", "b", "c"})
        assert "rogue" in result.estimate.rejected_sources
        # mean 80 + diversity bonus 3 * 5
        assert result.estimate.confidence == 95

        events = event_bus.recent_events(EventType.OUTLIER_REJECTED)
        assert len(events) == 1
        assert events[0].data['source_id'] == "rogue"
        assert events[0].data['median'] == 10015

    def test_zero_mad_keeps_only_exact_consensus(self, aggregator, clock):
        now = clock.now()
        result = aggregator.aggregate([
            obs("a", 10000, now),
            obs("b", 10000, now),
            obs("c", 10000, now),
            obs("d", 10100, now),
        ])

        assert result.ok
        assert result.outliers == ["d"]
        assert result.estimate.value == 10000

    def test_fused_value_within_survivor_range(self, aggregator, clock):
        now = clock.now()
        readings = [obs(f"s{i}", 10000 + i * 7, now, confidence=50 + i * 5, volume=10 + i) for i in range(6)]
        result = aggregator.aggregate(readings)

        survivors = [r.value for r in readings if r.source_id in result.estimate.contributing_sources]
        assert min(survivors) <= result.estimate.value <= max(survivors)
        assert 0 <= result.estimate.confidence <= 100


class TestWeighting:

    def test_volume_weighted_value(self, aggregator, clock):
        now = clock.now()
        result = aggregator.aggregate([
            obs("a", 10000, now, volume=100),
            obs("b", 10010, now, volume=300),
        ])
        assert result.estimate.value == 10007

    def test_low_confidence_source_does_not_drag_confidence(self, aggregator, clock):
        now = clock.now()
        result = aggregator.aggregate([
            obs("a", 10000, now, confidence=90),
            obs("b", 10004, now, confidence=90),
            obs("c", 10008, now, confidence=90),
            obs("weak", 10006, now, confidence=10),
        ])

        assert result.ok
        assert "weak" in result.estimate.contributing_sources
        # mean 70 + diversity bonus 20
        assert result.estimate.confidence == 90
        assert result.estimate.value == 10004

    def test_confidence_is_plain_mean_plus_bonus(self, aggregator, clock):
        now = clock.now()
        result = aggregator.aggregate([
            obs("a", 10000, now, confidence=40),
            obs("b", 10000, now, confidence=80),
        ])
        assert result.estimate.confidence == 70

    def test_diversity_bonus_capped(self, clock):
        aggregator = ObservationAggregator(AggregationConfig(), clock)
        now = clock.now()
        readings = [obs(f"s{i}", 10000, now, confidence=60) for i in range(8)]
        result = aggregator.aggregate(readings)
        assert result.estimate.confidence == 80

    def test_zero_total_weight_uses_first_survivor(self, aggregator, clock):
        now = clock.now()
        result = aggregator.aggregate([
            obs("a", 10000, now, confidence=0),
            obs("b", 10002, now, confidence=0),
        ])
        assert result.estimate.value == 10000


class TestDegradedFallback:

    def test_quorum_failure_without_history(self, aggregator, clock, event_bus):
        result = aggregator.aggregate([obs("a", 10250, clock.now())])

        assert not result.ok
        assert result.error_kind == ErrorKind.DATA_ERROR
        assert result.estimate.degraded
        assert result.estimate.value == 10250
        assert result.estimate.confidence == 50
        assert event_bus.recent_events(EventType.AGGREGATION_DEGRADED)

    def test_no_readings_uses_default(self, aggregator):
        result = aggregator.aggregate([])
        assert not result.ok
        assert result.estimate.value == 10000
        assert result.estimate.confidence == 50

    def test_falls_back_to_last_good_estimate(self, aggregator, clock):
        now = clock.now()
        good = aggregator.aggregate([obs("a", 10100, now), obs("b", 10100, now)])
        assert good.ok

        clock.advance(10)
        degraded = aggregator.aggregate([obs("a", 20000, clock.now())])
        assert not degraded.ok
        assert degraded.estimate.value == 10100
        assert aggregator.last_good_estimate().value == 10100

    def test_stale_and_out_of_range_readings_dropped(self, aggregator, clock):
        now = clock.now()
        result = aggregator.aggregate([
            obs("fresh", 10000, now),
            obs("stale", 10000, now - 400),
            obs("huge", 5_000_000, now),
            obs("bad_conf", 10000, now, confidence=150),
        ])

        assert not result.ok
        assert sorted(result.invalid) == ["bad_conf", "huge", "stale"]

    def test_rejection_below_quorum_degrades(self, clock):
        aggregator = ObservationAggregator(AggregationConfig(min_sources=3), clock)
        now = clock.now()
        result = aggregator.aggregate([
            obs("a", 10000, now),
            obs("b", 10000, now),
            obs("c", 12000, now),
        ])
        assert not result.ok
        assert result.outliers == ["c"]
        assert aggregator.degraded_rounds == 1

    def test_non_positive_volume_treated_as_one(self, aggregator, clock):
        now = clock.now()
        result = aggregator.aggregate([
            obs("a", 10000, now, volume=0),
            obs("b", 10000, now, volume=-5),
        ])
        assert result.ok
        assert result.estimate.volume == 2


class TestCacheAndHistory:

    def test_cache_returns_same_estimate_within_ttl(self, clock):
        aggregator = ObservationAggregator(AggregationConfig(cache_ttl=5.0), clock)
        now = clock.now()
        readings = [obs("a", 10000, now), obs("b", 10002, now)]

        first = aggregator.aggregate(readings)
        clock.advance(1)
        second = aggregator.aggregate(readings)
        assert second.cached
        assert second.estimate == first.estimate
        assert aggregator.rounds == 1

        clock.advance(10)
        third = aggregator.aggregate(readings)
        assert not third.cached

    def test_history_is_bounded(self, clock):
        aggregator = ObservationAggregator(AggregationConfig(history_size=3), clock)
        for i in range(5):
            clock.advance(1)
            now = clock.now()
            aggregator.aggregate([obs("a", 10000 + i, now), obs("b", 10000 + i, now)])

        values = [e.value for e in aggregator.recent_estimates()]
        assert values == [10002, 10003, 10004]
        assert aggregator.get_stats()['history_depth'] == 3


class TestAggregationConfig:

    def test_defaults_valid(self):
        assert AggregationConfig().validate()

    @pytest.mark.parametrize("changes", [
        {'min_sources': 0},
        {'min_value': 10, 'max_value': 5},
        {'max_age': 0},
        {'fallback_confidence': 101},
        {'cache_ttl': -1},
    ])
    def test_invalid_values_rejected(self, changes):
        with pytest.raises(ConfigurationError):
            AggregationConfig(**changes).validate()
