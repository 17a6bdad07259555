"""
Trade execution adapters.

The executor talks to venues only through ExecutionAdapter. The simulated
adapter models slippage failures and a quote balance; it is deterministic
for a given seed.
"""

import logging
import threading
from typing import Optional

import numpy as np

from regimex.trading.schemas import OrderType, TradeRequest, TradeResponse

LOG = logging.getLogger(__name__)


class ExecutionAdapter:
    """Abstract venue connector"""

    def execute(self, request: TradeRequest) -> TradeResponse:
        """Submit a market order. Must not raise for venue-side rejections."""
        raise NotImplementedError


class SimulatedExecutionAdapter(ExecutionAdapter):
    """
    In-process venue simulation.

    Each order fails with probability 1 - success_rate ("Slippage too high").
    Buys whose notional exceeds the remaining quote balance are rejected
    as insufficient funds.
    """

    def __init__(
        self,
        success_rate: float = 0.95,
        seed: Optional[int] = None,
        quote_balance: int = 1_000_000,
        price_scale: int = 10000,
    ):
        if not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be in [0, 1]")
        self.success_rate = success_rate
        self.quote_balance = quote_balance
        self.price_scale = price_scale
        self._rng = np.random.default_rng(seed)
        self._lock = threading.Lock()
        self.orders_submitted = 0
        self.orders_filled = 0
        self.orders_rejected = 0

    def execute(self, request: TradeRequest) -> TradeResponse:
        with self._lock:
            self.orders_submitted += 1
            notional = request.amount * request.reference_price // self.price_scale
            buying = request.order_type == OrderType.MARKET_BUY

            if buying and notional > self.quote_balance:
                self.orders_rejected += 1
                return TradeResponse(
                    success=False,
                    error=f"Insufficient funds: need {notional}, have {self.quote_balance}",
                    insufficient_funds=True,
                )

            if self._rng.random() >= self.success_rate:
                self.orders_rejected += 1
                LOG.debug(f"Simulated slippage failure for {request.order_type.value} {request.amount}")
                return TradeResponse(success=False, error="Slippage too high")

            self.quote_balance += -notional if buying else notional
            self.orders_filled += 1
            return TradeResponse(success=True, executed_amount=request.amount)
