"""
Market State Detector

Rule-based regime classification over a sliding price window.

Philosophy:
    - Deterministic integer features, no model state between cycles
    - Rules are ordered, first match wins
    - Rare, actionable patterns (breakout, reversal) are checked before the
      broad volatility / trend buckets that would otherwise mask them

Flow:
    prices, volumes → features → breakout → reversal → high volatility
                    → strong trend → low volatility → sideways
"""

import logging
from typing import Optional, Sequence

from regimex.detection.config import DetectorConfig
from regimex.detection.features import compute_features, short_direction
from regimex.detection.schemas import DetectionResult, MarketFeatures, MarketRegime, TradingSignal

LOG = logging.getLogger(__name__)


class MarketStateDetector:
    """Classifies a price window into a MarketRegime with a trading signal"""

    def __init__(self, config: Optional[DetectorConfig] = None):
        self.config = config or DetectorConfig()
        self.config.validate()

    def detect(self, prices: Sequence[int], volumes: Sequence[int] = ()) -> DetectionResult:
        if len(prices) < self.config.min_points:
            return DetectionResult(
                regime=MarketRegime.SIDEWAYS,
                confidence=50,
                signal=TradingSignal.WAIT,
                urgency=0,
                reasoning="Insufficient data for analysis",
            )

        prices = [int(p) for p in prices]
        features = compute_features(prices, volumes, self.config)
        LOG.debug(f"Features: {features.to_dict()}")
        result = self._apply_rules(features, prices)
        result.features = features
        return result

    def _apply_rules(self, features: MarketFeatures, prices: Sequence[int]) -> DetectionResult:
        cfg = self.config

        if self._is_breakout(features, prices[-1]):
            upward = features.trend > 0
            return DetectionResult(
                regime=MarketRegime.BREAKOUT,
                confidence=90,
                signal=TradingSignal.STRONG_BUY if upward else TradingSignal.STRONG_SELL,
                urgency=95,
                reasoning=f"{'Upward' if upward else 'Downward'} breakout detected with high volume",
            )

        if self._is_reversal(features, prices):
            return DetectionResult(
                regime=MarketRegime.REVERSAL,
                confidence=80,
                signal=TradingSignal.BUY if features.momentum > 0 else TradingSignal.SELL,
                urgency=85,
                reasoning="Market reversal pattern detected",
            )

        if features.volatility > cfg.high_volatility_threshold:
            return DetectionResult(
                regime=MarketRegime.HIGH_VOLATILITY,
                confidence=85,
                signal=TradingSignal.HOLD,
                urgency=70,
                reasoning=f"High volatility: {features.volatility / 10:.1f}%",
            )

        if abs(features.trend) > cfg.strong_trend_threshold:
            upward = features.trend > 0
            return DetectionResult(
                regime=MarketRegime.TRENDING_UP if upward else MarketRegime.TRENDING_DOWN,
                confidence=75,
                signal=TradingSignal.BUY if upward else TradingSignal.SELL,
                urgency=60,
                reasoning=f"Strong {'upward' if upward else 'downward'} trend",
            )

        if features.volatility < cfg.low_volatility_threshold:
            return DetectionResult(
                regime=MarketRegime.LOW_VOLATILITY,
                confidence=70,
                signal=TradingSignal.WAIT,
                urgency=20,
                reasoning="Low volatility consolidation phase",
            )

        return DetectionResult(
            regime=MarketRegime.SIDEWAYS,
            confidence=60,
            signal=TradingSignal.HOLD,
            urgency=30,
            reasoning="Normal market conditions",
        )

    def _is_breakout(self, features: MarketFeatures, price: int) -> bool:
        cfg = self.config
        bps = cfg.breakout_threshold_bps
        above = price * 10000 > features.resistance * (10000 + bps)
        below = price * 10000 < features.support * (10000 - bps)
        volume_confirmed = features.volume_change > cfg.volume_surge_threshold
        directional = abs(features.trend) > cfg.breakout_min_trend
        return (above or below) and volume_confirmed and directional

    def _is_reversal(self, features: MarketFeatures, prices: Sequence[int]) -> bool:
        cfg = self.config
        if len(prices) < cfg.min_reversal_points:
            return False

        direction = short_direction(prices, cfg.short_window)
        threshold = cfg.reversal_momentum_threshold
        divergence = (
            (direction > 0 and features.momentum < -threshold)
            or (direction < 0 and features.momentum > threshold)
        )

        price = prices[-1]
        band = cfg.reversal_band_bps
        near_support = abs(price - features.support) * 10000 < abs(features.support) * band
        near_resistance = abs(price - features.resistance) * 10000 < abs(features.resistance) * band
        return divergence and (near_support or near_resistance)
