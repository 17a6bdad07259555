"""
Observation Aggregator

Fuses independent, possibly noisy source readings into one
confidence-weighted estimate per cycle.

Philosophy:
    - Robust statistics only (median / MAD), never mean / stddev rejection
    - A single extreme source cannot dominate the consensus
    - Fusion failure degrades, it never halts the pipeline

Flow:
    readings → validity/age filter → quorum check → MAD rejection
             → VWAP-style fusion → confidence + diversity bonus
"""

import logging
import threading
from collections import deque
from typing import Deque, List, Optional, Tuple

from regimex.aggregation.config import AggregationConfig
from regimex.aggregation.schemas import AggregationResult, FusedEstimate, Observation
from regimex.errors import ErrorKind
from regimex.event_bus import EventBus, EventType
from regimex.fixedpoint import div_trunc, median_int
from regimex.storage.clock import Clock, SystemClock

LOG = logging.getLogger(__name__)


class ObservationAggregator:
    """
    Median/MAD outlier rejection followed by a confidence × volume weighted mean.

    Keeps a bounded ring of recent non-degraded estimates; the latest one is
    the preferred fallback value when a round lacks quorum.
    """

    def __init__(
        self,
        config: Optional[AggregationConfig] = None,
        clock: Optional[Clock] = None,
        event_bus: Optional[EventBus] = None,
        asset: Optional[str] = None,
    ):
        self.config = config or AggregationConfig()
        self.config.validate()
        self.clock = clock or SystemClock()
        self.event_bus = event_bus
        self.asset = asset

        self._history: Deque[FusedEstimate] = deque(maxlen=self.config.history_size)
        self._lock = threading.RLock()
        self._cache_key: Optional[Tuple] = None
        self._cache_result: Optional[AggregationResult] = None
        self._cache_time: float = 0.0

        self.rounds = 0
        self.degraded_rounds = 0
        self.outliers_rejected = 0

    # ========================================
    # PUBLIC API
    # ========================================

    def aggregate(self, readings: List[Observation]) -> AggregationResult:
        """
        Fuse one round of readings.

        Returns:
            AggregationResult whose estimate is always populated; ok=False and
            error_kind=DATA_ERROR mark a degraded fallback.
        """
        now = self.clock.now()
        cached = self._cached(readings, now)
        if cached is not None:
            return cached

        with self._lock:
            self.rounds += 1
            candidates, invalid = self._filter_valid(readings, now)

            if len(candidates) < self.config.min_sources:
                return self._fallback(
                    candidates, invalid, [], now,
                    f"{len(candidates)} valid sources, {self.config.min_sources} required",
                )

            values = [obs.value for obs in candidates]
            median = median_int(values)
            mad = median_int([abs(v - median) for v in values])
            limit = self.config.mad_multiplier * mad

            survivors: List[Observation] = []
            outliers: List[str] = []
            for obs in candidates:
                if abs(obs.value - median) <= limit:
                    survivors.append(obs)
                else:
                    outliers.append(obs.source_id)
                    self._report_outlier(obs, median, mad)

            if len(survivors) < self.config.min_sources:
                return self._fallback(
                    candidates, invalid, outliers, now,
                    f"{len(survivors)} sources survived outlier rejection",
                )

            value = self._weighted_value(survivors)
            confidence = self._fused_confidence(survivors)
            estimate = FusedEstimate(
                value=value,
                confidence=confidence,
                contributing_sources=frozenset(o.source_id for o in survivors),
                rejected_sources=frozenset(outliers),
                timestamp=now,
                volume=sum(o.volume for o in survivors),
            )
            self._history.append(estimate)

            result = AggregationResult(estimate=estimate, outliers=outliers, invalid=invalid)
            self._store_cache(readings, result, now)

            LOG.debug(
                f"Fused {len(survivors)}/{len(readings)} sources: value={value} "
                f"confidence={confidence} median={median} mad={mad}"
            )
            self._emit(EventType.OBSERVATIONS_AGGREGATED, **estimate.to_dict())
            return result

    def recent_estimates(self, limit: Optional[int] = None) -> List[FusedEstimate]:
        with self._lock:
            estimates = list(self._history)
        return estimates[-limit:] if limit else estimates

    def last_good_estimate(self) -> Optional[FusedEstimate]:
        with self._lock:
            return self._history[-1] if self._history else None

    def get_stats(self):
        return {
            'rounds': self.rounds,
            'degraded_rounds': self.degraded_rounds,
            'outliers_rejected': self.outliers_rejected,
            'history_depth': len(self._history),
        }

    # ========================================
    # INTERNALS
    # ========================================

    def _filter_valid(self, readings: List[Observation], now: float) -> Tuple[List[Observation], List[str]]:
        cfg = self.config
        valid: List[Observation] = []
        invalid: List[str] = []
        for obs in readings:
            if not 0 <= obs.confidence <= 100:
                invalid.append(obs.source_id)
                continue
            if not cfg.min_value <= obs.value <= cfg.max_value:
                invalid.append(obs.source_id)
                continue
            if now - obs.timestamp > cfg.max_age:
                invalid.append(obs.source_id)
                continue
            if obs.volume <= 0:
                obs = Observation(obs.source_id, obs.value, obs.timestamp, obs.confidence, 1)
            valid.append(obs)
        if invalid:
            LOG.warning(f"Dropped {len(invalid)} invalid or stale readings: {invalid}")
        return valid, invalid

    def _weighted_value(self, survivors: List[Observation]) -> int:
        total_weight = sum(o.confidence * o.volume for o in survivors)
        if total_weight == 0:
            return survivors[0].value
        weighted = sum(o.value * o.confidence * o.volume for o in survivors)
        return div_trunc(weighted, total_weight)

    def _fused_confidence(self, survivors: List[Observation]) -> int:
        """Mean surviving confidence plus diversity bonus, capped at 100"""
        base = div_trunc(sum(o.confidence for o in survivors), len(survivors))
        bonus = min(self.config.diversity_bonus_per_source * len(survivors), self.config.max_diversity_bonus)
        return min(100, base + bonus)

    def _fallback(
        self,
        candidates: List[Observation],
        invalid: List[str],
        outliers: List[str],
        now: float,
        reason: str,
    ) -> AggregationResult:
        self.degraded_rounds += 1
        last = self._history[-1] if self._history else None
        if last is not None:
            value = last.value
        elif candidates:
            value = median_int([o.value for o in candidates])
        else:
            value = self.config.fallback_value

        estimate = FusedEstimate(
            value=value,
            confidence=self.config.fallback_confidence,
            contributing_sources=frozenset(),
            rejected_sources=frozenset(outliers),
            timestamp=now,
            volume=sum(o.volume for o in candidates),
            degraded=True,
            reason=reason,
        )
        LOG.warning(f"Aggregation degraded ({reason}); falling back to value={value}")
        self._emit(EventType.AGGREGATION_DEGRADED, value=value, reason=reason)
        return AggregationResult(
            estimate=estimate,
            ok=False,
            error_kind=ErrorKind.DATA_ERROR,
            outliers=outliers,
            invalid=invalid,
        )

    def _report_outlier(self, obs: Observation, median: int, mad: int):
        self.outliers_rejected += 1
        LOG.warning(
            f"Outlier detected and removed: {obs.source_id} value={obs.value} median={median} mad={mad}"
        )
        self._emit(
            EventType.OUTLIER_REJECTED,
            source_id=obs.source_id,
            value=obs.value,
            median=median,
        )

    def _emit(self, event_type: EventType, **data):
        if self.event_bus is not None:
            self.event_bus.emit(event_type, asset=self.asset, **data)

    # ========================================
    # CACHE
    # ========================================

    @staticmethod
    def _readings_key(readings: List[Observation]) -> Tuple:
        return tuple(
            (o.source_id, o.value, o.timestamp, o.confidence, o.volume) for o in readings
        )

    def _cached(self, readings: List[Observation], now: float) -> Optional[AggregationResult]:
        if self.config.cache_ttl <= 0:
            return None
        with self._lock:
            if self._cache_result is None or now - self._cache_time >= self.config.cache_ttl:
                return None
            if self._cache_key != self._readings_key(readings):
                return None
            result = self._cache_result
        return AggregationResult(
            estimate=result.estimate,
            ok=result.ok,
            error_kind=result.error_kind,
            outliers=list(result.outliers),
            invalid=list(result.invalid),
            cached=True,
        )

    def _store_cache(self, readings: List[Observation], result: AggregationResult, now: float):
        if self.config.cache_ttl <= 0:
            return
        self._cache_key = self._readings_key(readings)
        self._cache_result = result
        self._cache_time = now
