"""
Attention Weighter

Scores each sample of the observation window by how much it should
influence the current decision.

Weight = recency × abnormality × state_change × volume_factor,
normalized to sum to 1.0.
"""

import logging
from typing import Hashable, List, Optional, Sequence

import numpy as np

from regimex.attention.config import AttentionConfig

LOG = logging.getLogger(__name__)


class AttentionWeighter:
    """
    Multiplicative attention over a price window.

    Abnormality and volume baselines come from the trailing `lookback`
    samples of the whole series, so every index is scored against the
    same recent regime.
    """

    def __init__(self, config: Optional[AttentionConfig] = None):
        self.config = config or AttentionConfig()
        self.config.validate()

    def compute_weights(
        self,
        series: Sequence[float],
        states: Optional[Sequence[Hashable]] = None,
        volumes: Optional[Sequence[float]] = None,
    ) -> List[float]:
        """
        Compute one weight per index of series.

        Args:
            series: Observation values, oldest first
            states: Market state per index (optional)
            volumes: Volume per index (optional)

        Returns:
            Weights summing to 1.0, or the raw weights if their sum is 0
        """
        n = len(series)
        if n == 0:
            return []

        values = np.asarray(series, dtype=float)
        states = list(states or [])
        vols = np.asarray(volumes if volumes is not None else [], dtype=float)

        baseline = values[-self.config.lookback:]
        mean = float(baseline.mean())
        std = float(baseline.std())

        volume_avg = float(vols[-self.config.lookback:].mean()) if len(vols) else 0.0

        weights = np.empty(n, dtype=float)
        for i in range(n):
            weights[i] = (
                self._recency(i, n)
                * self._abnormality(values[i], mean, std, n)
                * self._state_change(i, states)
                * self._volume_factor(i, vols, volume_avg)
            )

        total = float(weights.sum())
        if total == 0:
            return weights.tolist()
        return (weights / total).tolist()

    def weighted_value(self, series: Sequence[float], weights: Sequence[float]) -> float:
        """Attention-weighted mean of series"""
        if not len(series):
            return 0.0
        w = np.asarray(weights, dtype=float)
        total = float(w.sum())
        if total == 0:
            return float(np.mean(series))
        return float(np.dot(np.asarray(series, dtype=float), w) / total)

    # ========================================
    # FACTORS
    # ========================================

    def _recency(self, i: int, n: int) -> float:
        return self.config.recency_decay ** ((1 - i / n) * self.config.recency_scale)

    def _abnormality(self, value: float, mean: float, std: float, n: int) -> float:
        cfg = self.config
        if n < cfg.min_abnormality_samples or std == 0:
            return 1.0
        z = abs(value - mean) / std
        if z > cfg.z_high:
            return cfg.z_high_weight
        if z > cfg.z_moderate:
            return cfg.z_moderate_weight
        return 1.0

    def _state_change(self, i: int, states: List[Hashable]) -> float:
        if 0 < i < len(states) and states[i] != states[i - 1]:
            return self.config.state_change_weight
        return 1.0

    def _volume_factor(self, i: int, vols: np.ndarray, volume_avg: float) -> float:
        cfg = self.config
        if len(vols) < cfg.min_volume_samples or i >= len(vols) or volume_avg <= 0:
            return 1.0
        ratio = vols[i] / volume_avg
        if ratio > cfg.volume_surge_ratio:
            return cfg.volume_surge_weight
        if ratio > cfg.volume_elevated_ratio:
            return cfg.volume_elevated_weight
        if ratio < cfg.volume_thin_ratio:
            return cfg.volume_thin_weight
        return 1.0
