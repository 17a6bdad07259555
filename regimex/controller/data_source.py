"""
Observation data sources.

The engine pulls one MarketSnapshot per cycle from a DataSource. Tests
replay fixed frames; demos use a seeded random-walk market.
"""

import threading
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np

from regimex.aggregation.schemas import Observation
from regimex.storage.clock import Clock, SystemClock


@dataclass
class MarketSnapshot:
    """All source readings for one cycle"""
    readings: List[Observation] = field(default_factory=list)
    timestamp: float = 0.0


class DataSource:
    """Abstract per-cycle reading provider"""

    def read(self) -> MarketSnapshot:
        raise NotImplementedError


class StaticDataSource(DataSource):
    """
    Replays fixed frames, one per read; the last frame repeats once the
    frames run out. Readings are re-stamped with the clock's time.
    """

    def __init__(self, frames: Sequence[Sequence[Observation]], clock: Optional[Clock] = None):
        if not frames:
            raise ValueError("StaticDataSource needs at least one frame")
        self.frames = [list(frame) for frame in frames]
        self.clock = clock or SystemClock()
        self._index = 0
        self._lock = threading.Lock()

    @classmethod
    def from_prices(
        cls,
        prices: Sequence[int],
        clock: Optional[Clock] = None,
        source_ids: Sequence[str] = ("source_a", "source_b", "source_c"),
        confidence: int = 80,
        volumes: Optional[Sequence[int]] = None,
    ) -> 'StaticDataSource':
        """Every source reports the same price each frame"""
        frames = []
        for i, price in enumerate(prices):
            volume = volumes[i] if volumes is not None else 100
            frames.append([
                Observation(source_id=sid, value=int(price), timestamp=0.0, confidence=confidence, volume=int(volume))
                for sid in source_ids
            ])
        return cls(frames, clock)

    def read(self) -> MarketSnapshot:
        with self._lock:
            frame = self.frames[min(self._index, len(self.frames) - 1)]
            self._index += 1
        now = self.clock.now()
        return MarketSnapshot(
            readings=[
                Observation(o.source_id, o.value, now, o.confidence, o.volume) for o in frame
            ],
            timestamp=now,
        )


class VirtualMarketDataSource(DataSource):
    """
    Seeded geometric random walk observed by several noisy sources.

    Prices are fixed-point integers (base_price 10000 == 1.0).
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        seed: Optional[int] = None,
        base_price: int = 10000,
        volatility: float = 0.02,
        source_ids: Sequence[str] = ("dex_primary", "dex_secondary", "aggregator_feed"),
        source_noise: float = 0.001,
        min_volume: int = 50,
        max_volume: int = 500,
    ):
        self.clock = clock or SystemClock()
        self.price = float(base_price)
        self.volatility = volatility
        self.source_ids = list(source_ids)
        self.source_noise = source_noise
        self.min_volume = min_volume
        self.max_volume = max_volume
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()
        self._pending_shock = 0.0

    def simulate_market_shock(self, magnitude: float):
        """Apply a one-off relative move (e.g. -0.1) on the next read"""
        with self._lock:
            self._pending_shock += magnitude

    def read(self) -> MarketSnapshot:
        with self._lock:
            step = self._rng.normal(0.0, self.volatility) + self._pending_shock
            self._pending_shock = 0.0
            self.price = max(1.0, self.price * (1.0 + step))
            now = self.clock.now()
            readings = []
            for sid in self.source_ids:
                noisy = self.price * (1.0 + self._rng.normal(0.0, self.source_noise))
                readings.append(Observation(
                    source_id=sid,
                    value=int(round(noisy)),
                    timestamp=now,
                    confidence=int(self._rng.integers(70, 96)),
                    volume=int(self._rng.integers(self.min_volume, self.max_volume + 1)),
                ))
        return MarketSnapshot(readings=readings, timestamp=now)
