"""
Detection strategies.

Each strategy wraps one detector and normalizes its output (confidence
scale, signal vocabulary, state mapping) into a UnifiedResult.
"""

from typing import Dict, Optional, Sequence

from regimex.attention.weighter import AttentionWeighter
from regimex.detection.detector import MarketStateDetector
from regimex.detection.mean_reversion import MeanReversionDetector
from regimex.detection.schemas import MarketRegime
from regimex.state.schemas import MarketState
from regimex.strategy.schemas import ATTENTION_WEIGHTED, MEAN_REVERSION, UnifiedResult


class DetectionStrategy:
    """Abstract strategy: detect(prices, volumes) -> UnifiedResult"""

    strategy_id: str = ""
    name: str = ""
    description: str = ""

    def detect(self, prices: Sequence[int], volumes: Sequence[int] = ()) -> UnifiedResult:
        raise NotImplementedError

    def describe(self) -> Dict:
        return {
            'strategy_id': self.strategy_id,
            'name': self.name,
            'description': self.description,
        }


_REGIME_TO_STATE = {
    MarketRegime.TRENDING_UP: MarketState.BULL,
    MarketRegime.TRENDING_DOWN: MarketState.BEAR,
}


class AttentionWeightedStrategy(DetectionStrategy):
    """Rule-based detection with attention weights over the window"""

    strategy_id = ATTENTION_WEIGHTED
    name = "Multi-thread Attention"
    description = (
        "Rule-based regime detection (breakout, reversal, volatility, trend) "
        "with recency/abnormality/volume attention over the price window"
    )

    def __init__(
        self,
        detector: Optional[MarketStateDetector] = None,
        weighter: Optional[AttentionWeighter] = None,
    ):
        self.detector = detector or MarketStateDetector()
        self.weighter = weighter or AttentionWeighter()

    def detect(self, prices: Sequence[int], volumes: Sequence[int] = ()) -> UnifiedResult:
        result = self.detector.detect(prices, volumes)
        metadata = {
            'strategy': self.strategy_id,
            'regime': result.regime.value,
            'urgency': result.urgency,
            'reasoning': result.reasoning,
        }
        if result.features is not None:
            metadata['features'] = result.features.to_dict()
        if len(prices):
            weights = self.weighter.compute_weights(prices, volumes=volumes)
            metadata['attention_price'] = round(self.weighter.weighted_value(prices, weights), 4)

        return UnifiedResult(
            state=_REGIME_TO_STATE.get(result.regime, MarketState.SIDEWAYS),
            confidence=result.confidence / 100.0,
            signal=result.signal.value,
            metadata=metadata,
        )

    def describe(self) -> Dict:
        info = super().describe()
        info['config'] = self.detector.config.to_dict()
        return info


class MeanReversionStrategy(DetectionStrategy):
    """Moving-average deviation policy"""

    strategy_id = MEAN_REVERSION
    name = "Mean Reversion"
    description = "Buys oversold and sells overbought prices beyond 2 standard deviations of the moving average"

    def __init__(self, detector: Optional[MeanReversionDetector] = None):
        self.detector = detector or MeanReversionDetector()

    def detect(self, prices: Sequence[int], volumes: Sequence[int] = ()) -> UnifiedResult:
        result = self.detector.detect(prices, volumes)
        entry = float(prices[-1])
        return UnifiedResult(
            state=result.state,
            confidence=result.confidence,
            signal=result.signal.value,
            metadata={
                'strategy': self.strategy_id,
                'ma': result.moving_average,
                'std_dev': result.std_dev,
                'deviation': result.deviation,
                'action': result.action,
                'threshold': result.threshold,
                'position_size': self.detector.position_size(result.deviation, result.confidence),
                'stop_loss': self.detector.stop_loss(entry, result.signal, result.std_dev),
                'take_profit': self.detector.take_profit(entry, result.signal, result.moving_average),
            },
        )

    def describe(self) -> Dict:
        info = super().describe()
        info['config'] = self.detector.config.to_dict()
        return info
