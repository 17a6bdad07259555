"""
Trading Executor

Turns a detection into a risk-bounded target position and, when the
delta is worth trading, executes it through an ExecutionAdapter.

Philosophy:
    - Risk checks run before any sizing
    - Every outcome is a typed ExecutionResult, never an exception
    - A failed execution mutates nothing but the failure counters

Flow:
    daily loss check → leverage check → cooldown check → stop-loss check
    → target size (signal × confidence × regime multiplier)
    → clamp to max_position_size → clamp to leverage bound
    → minimum-delta check → adapter → position / trade log / stats
"""

import logging
import threading
import uuid
from typing import Dict, List, Optional

from regimex.detection.schemas import DetectionResult, MarketRegime, TradingSignal
from regimex.errors import CorruptStateError, ErrorKind
from regimex.event_bus import EventBus, EventType
from regimex.fixedpoint import div_trunc
from regimex.storage.clock import Clock, SystemClock
from regimex.storage.records import dump_record, load_record, parse_legacy_position
from regimex.storage.store import KeyValueStore
from regimex.trading.adapters import ExecutionAdapter, SimulatedExecutionAdapter
from regimex.trading.admin import load_risk_parameters, risk_key
from regimex.trading.config import TradingConfig
from regimex.trading.schemas import (
    ExecutionOutcome,
    ExecutionResult,
    OrderType,
    Position,
    RiskParameters,
    TradeRecord,
    TradeRequest,
    TradeResponse,
    TradingStats,
)

LOG = logging.getLogger(__name__)


class TradingExecutor:
    """Sole owner of the Position for its asset pair"""

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[TradingConfig] = None,
        clock: Optional[Clock] = None,
        adapter: Optional[ExecutionAdapter] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.config = config or TradingConfig()
        self.config.validate()
        self.store = store
        self.clock = clock or SystemClock()
        self.adapter = adapter or SimulatedExecutionAdapter(price_scale=self.config.price_scale)
        self.event_bus = event_bus

        prefix = self.config.key_prefix
        self._risk_key = risk_key(prefix)
        self._position_key = f"{prefix}:position"
        self._trades_key = f"{prefix}:trades"
        self._stats_key = f"{prefix}:stats"
        self._daily_key = f"{prefix}:daily_pnl"
        self._lock = threading.RLock()

    # ========================================
    # MAIN ENTRY
    # ========================================

    def execute_strategy(self, detection: DetectionResult, current_price: int) -> ExecutionOutcome:
        with self._lock:
            now = self.clock.now()
            risk = self.get_risk_parameters()
            position = self.get_position()
            stats = self.get_stats()

            if current_price <= 0:
                return self._finish(stats, ExecutionOutcome(
                    result=ExecutionResult.NO_ACTION,
                    reason=f"Invalid price {current_price}",
                ))

            daily_pnl = self.get_daily_pnl()
            if daily_pnl < -risk.max_daily_loss:
                return self._blocked(stats, f"Daily loss limit reached: {daily_pnl} < -{risk.max_daily_loss}")

            leverage = self.current_leverage(position, current_price)
            if leverage > risk.max_leverage:
                return self._blocked(stats, f"Leverage {leverage} exceeds max {risk.max_leverage}")

            if stats.last_trade_time is not None and now - stats.last_trade_time < risk.cooldown_period:
                remaining = risk.cooldown_period - (now - stats.last_trade_time)
                return self._finish(stats, ExecutionOutcome(
                    result=ExecutionResult.NO_ACTION,
                    reason=f"Cooldown active ({remaining:.0f} remaining)",
                    previous_size=position.size,
                ))

            if self.check_stop_loss(position, current_price, risk):
                target = 0
                order_type = OrderType.STOP_LOSS
                reason = f"Stop loss: price {current_price} vs entry {position.average_price}"
            else:
                target = self.calculate_target_size(
                    detection.signal, detection.confidence, detection.regime,
                    position.size, current_price, risk,
                )
                order_type = None
                reason = f"{detection.signal.value} at confidence {detection.confidence}"

            delta = target - position.size
            if abs(delta) <= self.config.min_trade_size:
                return self._finish(stats, ExecutionOutcome(
                    result=ExecutionResult.NO_ACTION,
                    reason=f"Delta {delta} within minimum trade size {self.config.min_trade_size}",
                    target_size=target,
                    previous_size=position.size,
                ))

            if order_type is None:
                order_type = OrderType.MARKET_BUY if delta > 0 else OrderType.MARKET_SELL

            request = TradeRequest(
                asset_pair=self.config.asset_pair,
                amount=abs(delta),
                order_type=order_type,
                reference_price=current_price,
            )
            response = self._submit(request)
            if response.success and response.executed_amount == 0:
                response = TradeResponse(success=False, error="Order accepted but nothing executed")
            trade = TradeRecord(
                trade_id=str(uuid.uuid4()),
                timestamp=now,
                asset_pair=request.asset_pair,
                order_type=order_type,
                requested=delta,
                executed=0,
                price=current_price,
                success=response.success,
                error=response.error,
            )

            if not response.success:
                self._append_trade(trade)
                if response.insufficient_funds:
                    stats.insufficient_funds += 1
                    self._save_stats(stats)
                    return ExecutionOutcome(
                        result=ExecutionResult.INSUFFICIENT_FUNDS,
                        reason=response.error or "Insufficient funds",
                        target_size=target,
                        previous_size=position.size,
                        trade=trade,
                        error_kind=ErrorKind.EXECUTION_FAILURE,
                    )
                stats.trades_failed += 1
                self._save_stats(stats)
                LOG.warning(f"Execution failed for {order_type.value} {abs(delta)}: {response.error}")
                self._emit(EventType.TRADE_FAILED, order_type=order_type.value, amount=abs(delta), reason=response.error)
                return ExecutionOutcome(
                    result=ExecutionResult.FAILED,
                    reason=response.error or "Execution failed",
                    target_size=target,
                    previous_size=position.size,
                    trade=trade,
                    error_kind=ErrorKind.EXECUTION_FAILURE,
                )

            executed = min(abs(response.executed_amount), abs(delta))
            signed = executed if delta > 0 else -executed
            trade.executed = signed
            previous_size = position.size
            realized = self._apply_fill(position, signed, current_price, now)
            self._save_position(position)
            self._append_trade(trade)
            if realized:
                self.record_pnl(realized)

            stats.trades_executed += 1
            stats.total_volume += executed
            stats.realized_pnl += realized
            stats.last_trade_time = now
            self._save_stats(stats)

            LOG.info(
                f"Executed {order_type.value} {executed} {self.config.asset_pair} @ {current_price} "
                f"(position {previous_size} -> {position.size})"
            )
            self._emit(
                EventType.TRADE_EXECUTED,
                order_type=order_type.value,
                amount=executed,
                price=current_price,
                position=position.size,
            )
            return ExecutionOutcome(
                result=ExecutionResult.SUCCESS,
                reason=reason,
                target_size=target,
                previous_size=previous_size,
                trade=trade,
            )

    # ========================================
    # SIZING
    # ========================================

    def calculate_target_size(
        self,
        signal: TradingSignal,
        confidence: int,
        regime: Optional[MarketRegime],
        current_size: int,
        price: int,
        risk: RiskParameters,
    ) -> int:
        """Target position, guaranteed within ±max_position_size and the leverage bound"""
        max_size = risk.max_position_size
        confidence = max(0, min(100, int(confidence)))

        if signal == TradingSignal.STRONG_BUY:
            target = max_size * confidence // 100
        elif signal == TradingSignal.BUY:
            target = max_size * confidence // 200
        elif signal == TradingSignal.SELL:
            target = -(max_size * confidence // 200)
        elif signal == TradingSignal.STRONG_SELL:
            target = -(max_size * confidence // 100)
        elif signal == TradingSignal.HOLD:
            target = current_size
        else:
            target = 0

        if regime is not None:
            multiplier = self.config.regime_multipliers.get(regime.value, 100)
            target = div_trunc(target * multiplier, 100)

        target = max(-max_size, min(max_size, target))

        leverage_cap = self.max_size_for_leverage(price, risk)
        return max(-leverage_cap, min(leverage_cap, target))

    def max_size_for_leverage(self, price: int, risk: RiskParameters) -> int:
        if price <= 0:
            return 0
        return risk.max_leverage * self.config.base_capital * self.config.price_scale // (price * 100)

    def current_leverage(self, position: Position, price: int) -> int:
        """×100 leverage of the position at price"""
        notional = abs(position.size) * price // self.config.price_scale
        return notional * 100 // self.config.base_capital

    # ========================================
    # P&L AND STOP LOSS
    # ========================================

    def _apply_fill(self, position: Position, signed_qty: int, price: int, now: float) -> int:
        """Update position in place; returns realized P&L"""
        old = position.size
        new = old + signed_qty
        realized = 0
        if old == 0 or (old > 0) == (signed_qty > 0):
            position.average_price = (abs(old) * position.average_price + abs(signed_qty) * price) // abs(new)
        else:
            closed = min(abs(signed_qty), abs(old))
            direction = 1 if old > 0 else -1
            realized = div_trunc(closed * (price - position.average_price) * direction, self.config.price_scale)
            if new == 0:
                position.average_price = 0
            elif (new > 0) != (old > 0):
                position.average_price = price
        position.size = new
        position.last_update = now
        position.unrealized_pnl = self._unrealized(position, price)
        return realized

    def _unrealized(self, position: Position, price: int) -> int:
        if position.size == 0:
            return 0
        return div_trunc(position.size * (price - position.average_price), self.config.price_scale)

    def mark_to_market(self, price: int) -> Position:
        with self._lock:
            position = self.get_position()
            position.unrealized_pnl = self._unrealized(position, price)
            position.last_update = self.clock.now()
            self._save_position(position)
            return position

    def check_stop_loss(self, position: Position, price: int, risk: Optional[RiskParameters] = None) -> bool:
        """True when the adverse move from entry reaches stop_loss_percent"""
        risk = risk or self.get_risk_parameters()
        if position.size == 0 or position.average_price <= 0:
            return False
        move_bps = (price - position.average_price) * 10000 // position.average_price
        adverse = -move_bps if position.size > 0 else move_bps
        return adverse >= risk.stop_loss_percent

    def _day(self, now: float) -> int:
        return int(now // self.config.day_length)

    def get_daily_pnl(self) -> int:
        data = self._load("daily_pnl", self._daily_key) or {}
        if data.get('day') != self._day(self.clock.now()):
            return 0
        return int(data.get('pnl', 0))

    def record_pnl(self, amount: int) -> int:
        """Add realized P&L to today's running total"""
        with self._lock:
            day = self._day(self.clock.now())
            pnl = self.get_daily_pnl() + int(amount)
            self.store.set(self._daily_key, dump_record("daily_pnl", {'day': day, 'pnl': pnl}))
            return pnl

    # ========================================
    # PERSISTENCE
    # ========================================

    def get_risk_parameters(self) -> RiskParameters:
        return load_risk_parameters(self.store, self._risk_key)

    def get_position(self) -> Position:
        try:
            data = load_record("position", self.store.get(self._position_key), legacy_parser=parse_legacy_position)
            if data is None:
                return Position(asset=self.config.asset_pair)
            return Position.from_dict(data)
        except (CorruptStateError, KeyError, ValueError) as e:
            LOG.error(f"Corrupt position record, assuming flat: {e}")
            return Position(asset=self.config.asset_pair)

    def _save_position(self, position: Position):
        self.store.set(self._position_key, dump_record("position", position.to_dict()))

    def get_trade_history(self, limit: Optional[int] = None) -> List[TradeRecord]:
        data = self._load("trade_history", self._trades_key) or {}
        trades = []
        for item in data.get('trades', []):
            try:
                trades.append(TradeRecord.from_dict(item))
            except (KeyError, ValueError) as e:
                LOG.error(f"Skipping corrupt trade record: {e}")
        return trades[-limit:] if limit else trades

    def _append_trade(self, trade: TradeRecord):
        trades = self.get_trade_history()
        trades.append(trade)
        trades = trades[-self.config.trade_history_size:]
        self.store.set(self._trades_key, dump_record("trade_history", {'trades': [t.to_dict() for t in trades]}))

    def get_stats(self) -> TradingStats:
        data = self._load("trading_stats", self._stats_key)
        return TradingStats.from_dict(data) if data else TradingStats()

    def _save_stats(self, stats: TradingStats):
        self.store.set(self._stats_key, dump_record("trading_stats", stats.to_dict()))

    def _load(self, kind: str, key: str) -> Optional[Dict]:
        try:
            return load_record(kind, self.store.get(key))
        except CorruptStateError as e:
            LOG.error(f"Corrupt {kind} record, ignoring: {e}")
            return None

    # ========================================
    # HELPERS
    # ========================================

    def _submit(self, request: TradeRequest) -> TradeResponse:
        try:
            return self.adapter.execute(request)
        except Exception as e:
            LOG.error(f"Execution adapter raised for {request.order_type.value}: {e}")
            return TradeResponse(success=False, error=f"Adapter error: {e}")

    def _blocked(self, stats: TradingStats, reason: str) -> ExecutionOutcome:
        stats.risk_blocked += 1
        self._save_stats(stats)
        LOG.warning(f"Trade blocked by risk rules: {reason}")
        self._emit(EventType.RISK_BLOCKED, reason=reason)
        return ExecutionOutcome(
            result=ExecutionResult.RISK_BLOCKED,
            reason=reason,
            error_kind=ErrorKind.RISK_VIOLATION,
        )

    def _finish(self, stats: TradingStats, outcome: ExecutionOutcome) -> ExecutionOutcome:
        stats.no_action += 1
        self._save_stats(stats)
        return outcome

    def _emit(self, event_type: EventType, **data):
        if self.event_bus is not None:
            self.event_bus.emit(event_type, asset=self.config.asset_pair, **data)
