"""
Tests for attention weighting
"""

import pytest

from regimex.attention import AttentionConfig, AttentionWeighter
from regimex.errors import ConfigurationError


@pytest.fixture
def weighter():
    return AttentionWeighter()


class TestRecency:

    def test_empty_series(self, weighter):
        assert weighter.compute_weights([]) == []

    def test_weights_normalized(self, weighter):
        weights = weighter.compute_weights([100] * 12)
        assert len(weights) == 12
        assert sum(weights) == pytest.approx(1.0)

    def test_recent_points_weigh_more(self, weighter):
        weights = weighter.compute_weights([100] * 10)
        assert all(a < b for a, b in zip(weights, weights[1:]))


class TestFactors:

    def test_abnormal_value_boosted(self, weighter):
        series = [100, 100, 100, 100, 200, 100, 100, 100, 100, 100]
        weights = weighter.compute_weights(series)
        # z = 3 at the spike; neighbours are within one stddev
        assert weights[4] > weights[5]

    def test_abnormality_needs_minimum_samples(self, weighter):
        # Two samples: only recency applies
        weights = weighter.compute_weights([100, 300])
        assert weights[0] == pytest.approx(0.9 ** 10 / (0.9 ** 10 + 0.9 ** 5))

    def test_state_change_boosted(self, weighter):
        states = ["BULL"] * 5 + ["BEAR"] * 5
        weights = weighter.compute_weights([100] * 10, states=states)
        assert weights[5] > weights[6]

    def test_volume_surge_boosted(self, weighter):
        series = [100] * 10
        base = weighter.compute_weights(series)
        surged = weighter.compute_weights(series, volumes=[100] * 9 + [500])
        assert surged[-1] > base[-1]

    def test_thin_volume_dampened(self, weighter):
        series = [100] * 10
        base = weighter.compute_weights(series)
        thin = weighter.compute_weights(series, volumes=[100] * 9 + [10])
        assert thin[-1] < base[-1]

    def test_too_few_volumes_ignored(self, weighter):
        series = [100] * 10
        assert weighter.compute_weights(series, volumes=[1, 1000, 1]) == weighter.compute_weights(series)


class TestWeightedValue:

    def test_flat_series(self, weighter):
        series = [10000] * 8
        assert weighter.weighted_value(series, weighter.compute_weights(series)) == pytest.approx(10000)

    def test_zero_weights_fall_back_to_mean(self, weighter):
        assert weighter.weighted_value([1, 3], [0, 0]) == pytest.approx(2.0)

    def test_empty_series(self, weighter):
        assert weighter.weighted_value([], []) == 0.0


class TestAttentionConfig:

    def test_invalid_decay(self):
        with pytest.raises(ConfigurationError):
            AttentionWeighter(AttentionConfig(recency_decay=0))

    def test_band_order(self):
        with pytest.raises(ConfigurationError):
            AttentionConfig(z_moderate=3.0, z_high=2.0).validate()
