"""
Mean Reversion Detector

Treats large deviations from a moving average as overbought / oversold.
An alternative policy to MarketStateDetector, selected through the
StrategyManager and never blended with it.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from regimex.detection.config import MeanReversionConfig
from regimex.detection.schemas import MeanReversionResult, TradingSignal
from regimex.errors import InsufficientDataError
from regimex.state.schemas import MarketState

LOG = logging.getLogger(__name__)


class MeanReversionDetector:
    """
    deviation > +threshold σ  → BEAR / SELL (overbought)
    deviation < -threshold σ  → BULL / BUY  (oversold)
    |deviation| < neutral band → SIDEWAYS / HOLD
    otherwise                  → SIDEWAYS / WAIT
    """

    def __init__(self, config: Optional[MeanReversionConfig] = None):
        self.config = config or MeanReversionConfig()
        self.config.validate()

    def detect(self, prices: Sequence[float], volumes: Sequence[float] = ()) -> MeanReversionResult:
        cfg = self.config
        if len(prices) < cfg.window:
            raise InsufficientDataError(
                f"Mean reversion needs {cfg.window} prices, got {len(prices)}"
            )

        window = np.asarray(prices[-cfg.window:], dtype=float)
        ma = float(window.mean())
        std = float(window.std())
        current = float(prices[-1])
        deviation = (current - ma) / std if std > 0 else 0.0

        if deviation > cfg.deviation_threshold:
            state, signal, action = MarketState.BEAR, TradingSignal.SELL, "SELL"
            confidence = self._scaled_confidence(deviation)
        elif deviation < -cfg.deviation_threshold:
            state, signal, action = MarketState.BULL, TradingSignal.BUY, "BUY"
            confidence = self._scaled_confidence(deviation)
        elif abs(deviation) < cfg.neutral_band:
            state, signal, action = MarketState.SIDEWAYS, TradingSignal.HOLD, "HOLD"
            confidence = cfg.neutral_confidence
        else:
            state, signal, action = MarketState.SIDEWAYS, TradingSignal.WAIT, "HOLD"
            confidence = cfg.uncertain_confidence

        if action != "HOLD" and len(volumes):
            confidence = self._volume_adjusted(confidence, volumes)

        LOG.debug(f"Mean reversion: ma={ma:.2f} std={std:.2f} deviation={deviation:.2f} -> {signal.value}")
        return MeanReversionResult(
            state=state,
            confidence=confidence,
            signal=signal,
            moving_average=ma,
            std_dev=std,
            deviation=deviation,
            action=action,
            threshold=cfg.deviation_threshold,
        )

    def _scaled_confidence(self, deviation: float) -> float:
        cfg = self.config
        excess = abs(deviation) - cfg.deviation_threshold
        return min(cfg.max_confidence, cfg.base_confidence + excess * cfg.confidence_per_sigma)

    def _volume_adjusted(self, confidence: float, volumes: Sequence[float]) -> float:
        cfg = self.config
        recent = np.asarray(volumes[-cfg.volume_lookback:], dtype=float)
        avg = float(recent.mean())
        if avg <= 0:
            return confidence
        ratio = float(volumes[-1]) / avg

        if ratio > cfg.high_volume_ratio:
            boost = min(cfg.max_volume_adjustment, (ratio - cfg.high_volume_ratio) * cfg.high_volume_boost_rate)
            return min(cfg.max_confidence, confidence + boost)
        if ratio < cfg.low_volume_ratio:
            penalty = min(cfg.max_volume_adjustment, (cfg.low_volume_ratio - ratio) * cfg.low_volume_penalty_rate)
            return max(cfg.min_adjusted_confidence, confidence - penalty)
        return confidence

    # ========================================
    # POSITION MANAGEMENT HELPERS
    # ========================================

    def position_size(self, deviation: float, confidence: float) -> float:
        """Fraction of capital: grows with |deviation| and confidence"""
        cfg = self.config
        strength = min(2.0, abs(deviation) / cfg.deviation_threshold)
        return min(cfg.max_position_fraction, cfg.base_position_fraction * strength * confidence)

    def stop_loss(self, entry_price: float, signal: TradingSignal, std_dev: float) -> float:
        distance = self.config.stop_loss_sigmas * std_dev
        if signal.is_buy:
            return entry_price - distance
        if signal.is_sell:
            return entry_price + distance
        return entry_price

    def take_profit(self, entry_price: float, signal: TradingSignal, moving_average: float) -> float:
        """Reversion target is the moving average itself"""
        if signal.is_buy or signal.is_sell:
            return moving_average
        return entry_price
