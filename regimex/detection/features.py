"""
Feature extraction over a price/volume window.

Integer arithmetic only, so the same window always yields the same
features regardless of platform float behavior.
"""

from typing import Sequence

from regimex.detection.config import DetectorConfig
from regimex.detection.schemas import MarketFeatures
from regimex.fixedpoint import div_trunc, mean_int, ols_slope_scaled, pstdev_int


def volatility(prices: Sequence[int]) -> int:
    """Population stddev ×1000 / mean (a percentage, not an absolute spread)"""
    if len(prices) < 2:
        return 0
    return div_trunc(pstdev_int(prices) * 1000, mean_int(prices))


def momentum(prices: Sequence[int], lookback: int = 5) -> int:
    if len(prices) < lookback:
        return 0
    past = prices[-lookback]
    return div_trunc((prices[-1] - past) * 1000, past)


def volume_change(volumes: Sequence[int], recent: int = 3, prior: int = 7) -> int:
    """(avg(last recent) - avg(prior before that)) ×1000 / avg(prior)"""
    if len(volumes) < 5:
        return 0
    recent_avg = mean_int(volumes[-recent:])
    prior_avg = mean_int(volumes[-(recent + prior):-recent])
    return div_trunc((recent_avg - prior_avg) * 1000, prior_avg)


def support_resistance(prices: Sequence[int], window: int):
    """
    Min/max of the window preceding the latest price.

    The latest price is excluded so that it can sit beyond the range.
    """
    prior = prices[-(window + 1):-1]
    if not prior:
        return prices[-1], prices[-1]
    return min(prior), max(prior)


def short_direction(prices: Sequence[int], window: int) -> int:
    """Sign-bearing OLS slope over the short window"""
    return ols_slope_scaled(prices[-window:])


def compute_features(
    prices: Sequence[int],
    volumes: Sequence[int] = (),
    config: DetectorConfig = None,
) -> MarketFeatures:
    cfg = config or DetectorConfig()
    prices = [int(p) for p in prices]
    volumes = [int(v) for v in volumes]
    support, resistance = support_resistance(prices, cfg.medium_window)
    return MarketFeatures(
        volatility=volatility(prices[-cfg.short_window:]),
        trend=ols_slope_scaled(prices[-cfg.medium_window:]),
        momentum=momentum(prices, cfg.short_window),
        volume_change=volume_change(volumes),
        support=support,
        resistance=resistance,
    )
