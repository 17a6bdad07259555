"""
Decision Engine

Runs one atomic decision cycle per external trigger.

Philosophy:
    - Every cycle produces a DecisionRecord, including skipped, contended
      and failed ones
    - Degraded inputs degrade the decision; they never abort the cycle
    - At most one cycle mutates state at a time (store-backed lock)

Flow:
    status gate → lock → data source → ObservationAggregator
        → StrategyManager (active strategy) → signal refinement
        → StateTransitionManager.transition → AttentionWeighter
        → TradingExecutor → DecisionRecord / statistics → unlock
"""

import logging
import threading
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional, Tuple, Union

from regimex.aggregation.aggregator import ObservationAggregator
from regimex.aggregation.schemas import AggregationResult
from regimex.attention.weighter import AttentionWeighter
from regimex.config import EngineConfig
from regimex.controller.data_source import DataSource, VirtualMarketDataSource
from regimex.controller.schemas import (
    CycleOutcome,
    DecisionRecord,
    EngineStatistics,
    ErrorEntry,
    SystemStatus,
)
from regimex.detection.detector import MarketStateDetector
from regimex.detection.features import volatility
from regimex.detection.mean_reversion import MeanReversionDetector
from regimex.detection.schemas import DetectionResult, MarketRegime, TradingSignal
from regimex.errors import CorruptStateError
from regimex.event_bus import EventBus, EventType, WebhookConfig, WebhookEventSink
from regimex.state.manager import StateTransitionManager
from regimex.state.schemas import MarketState, StateInfo, TransitionOutcome, TransitionRecord
from regimex.storage.clock import Clock, SystemClock
from regimex.storage.records import dump_record, load_record
from regimex.storage.store import KeyValueStore, create_store
from regimex.strategy.manager import StrategyManager
from regimex.strategy.registry import StrategyRegistry, default_registry
from regimex.strategy.schemas import UnifiedResult
from regimex.strategy.strategies import AttentionWeightedStrategy, MeanReversionStrategy
from regimex.trading.adapters import ExecutionAdapter
from regimex.trading.admin import RiskParameterAdmin
from regimex.trading.executor import TradingExecutor
from regimex.trading.schemas import ExecutionOutcome, ExecutionResult, Position, RiskParameters

LOG = logging.getLogger(__name__)


class DecisionEngine:
    """
    Wires the pipeline components around shared, injected collaborators.

    Store, clock, data source, execution adapter and event bus are all
    injectable; nothing here reads ambient globals.
    """

    KEY_PREFIX = "engine"

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[KeyValueStore] = None,
        clock: Optional[Clock] = None,
        data_source: Optional[DataSource] = None,
        adapter: Optional[ExecutionAdapter] = None,
        event_bus: Optional[EventBus] = None,
        registry: Optional[StrategyRegistry] = None,
    ):
        self.config = config or EngineConfig()
        self.config.validate()
        self.config_hash = self.config.compute_hash()
        cfg = self.config

        self.clock = clock or SystemClock()
        self.store = store or create_store(cfg.store_backend, cfg.store_path, cfg.redis_url)
        self.event_bus = event_bus or EventBus()
        self.asset = cfg.trading.asset_pair
        self.data_source = data_source or VirtualMarketDataSource(clock=self.clock)

        self.aggregator = ObservationAggregator(cfg.aggregation, self.clock, self.event_bus, self.asset)
        self.weighter = AttentionWeighter(cfg.attention)
        registry = registry or default_registry(
            AttentionWeightedStrategy(MarketStateDetector(cfg.detector), self.weighter),
            MeanReversionStrategy(MeanReversionDetector(cfg.mean_reversion)),
        )
        self.strategies = StrategyManager(self.store, registry, self.event_bus, cfg.default_strategy)
        self.state_manager = StateTransitionManager(self.store, cfg.state, self.clock, self.event_bus)
        self.executor = TradingExecutor(self.store, cfg.trading, self.clock, adapter, self.event_bus)
        self.risk_admin = RiskParameterAdmin(self.store, cfg.trading.key_prefix, self.event_bus)

        self.webhook_sink: Optional[WebhookEventSink] = None
        if cfg.webhook_url:
            self.webhook_sink = WebhookEventSink(WebhookConfig(url=cfg.webhook_url))
            self.webhook_sink.attach(self.event_bus)

        self._lock = threading.RLock()
        self._prices: Deque[int] = deque(maxlen=cfg.price_window)
        self._volumes: Deque[int] = deque(maxlen=cfg.price_window)
        self._states: Deque[str] = deque(maxlen=cfg.price_window)
        self._load_window()

        LOG.info(f"DecisionEngine initialized for {self.asset} (config {self.config_hash})")

    # ========================================
    # CYCLE
    # ========================================

    def run_cycle(self) -> DecisionRecord:
        """Run one full decision cycle; always returns the cycle's record"""
        status = self.get_status()
        if status in (SystemStatus.ERROR, SystemStatus.MAINTENANCE):
            record = DecisionRecord(
                cycle=self.get_cycle_count(),
                timestamp=self.clock.now(),
                outcome=CycleOutcome.SKIPPED,
                committed_state=self.get_current_state().value,
                reasoning=f"System status {status.value}",
            )
            self._finalize(record)
            return record

        owner_id = f"cycle-{uuid.uuid4().hex[:12]}"
        return self.state_manager.lock.with_lock(
            self._run_locked,
            lambda: self._contended(owner_id),
            owner_id=owner_id,
        )

    def _run_locked(self) -> DecisionRecord:
        # Another engine on the same store may have advanced the window
        self._load_window()
        cycle = self._next_cycle()
        if cycle is None:
            self.set_status(SystemStatus.ERROR, f"Cycle counter exceeded {self.config.max_cycles}")
            record = DecisionRecord(
                cycle=self.get_cycle_count(),
                timestamp=self.clock.now(),
                outcome=CycleOutcome.ERROR,
                committed_state=self.get_current_state().value,
                error="Cycle counter overflow",
            )
            self._finalize(record)
            return record

        try:
            record = self._cycle(cycle)
        except Exception as e:
            LOG.error(f"Cycle {cycle} failed: {e}", exc_info=True)
            self._record_error(cycle, str(e))
            record = DecisionRecord(
                cycle=cycle,
                timestamp=self.clock.now(),
                outcome=CycleOutcome.ERROR,
                committed_state=self.get_current_state().value,
                error=str(e),
            )
        self._finalize(record)
        return record

    def _cycle(self, cycle: int) -> DecisionRecord:
        snapshot = self.data_source.read()
        aggregation = self.aggregator.aggregate(snapshot.readings)
        estimate = aggregation.estimate

        if aggregation.ok:
            self._prices.append(estimate.value)
            self._volumes.append(estimate.volume)
        prices = list(self._prices)
        volumes = list(self._volumes)

        result = self.strategies.execute(prices, volumes)
        detection = self._to_detection(result)
        detection.signal, notes = self._refine_signal(detection, prices)
        reasoning = "; ".join([detection.reasoning] + notes)

        transition = self.state_manager.transition(result.state, reason=reasoning)
        committed = self.state_manager.get_current_state()

        if aggregation.ok:
            self._states.append(committed.value)
        weights = self.weighter.compute_weights(prices, list(self._states), volumes)
        attention_price = self.weighter.weighted_value(prices, weights) if prices else None
        self._save_window(weights)

        if aggregation.ok or self.config.trade_on_degraded_data:
            execution = self.executor.execute_strategy(detection, estimate.value)
            if aggregation.ok:
                self.executor.mark_to_market(estimate.value)
        else:
            execution = ExecutionOutcome(
                result=ExecutionResult.NO_ACTION,
                reason=f"Degraded market data, trading skipped: {estimate.reason}",
            )

        return DecisionRecord(
            cycle=cycle,
            timestamp=self.clock.now(),
            outcome=self._classify(aggregation, transition, execution),
            strategy=str(result.metadata.get('strategy', self.strategies.get_active_strategy())),
            regime=detection.regime.value if detection.regime else None,
            market_state=result.state.value,
            committed_state=committed.value,
            signal=detection.signal.value,
            confidence=detection.confidence,
            urgency=detection.urgency,
            position_size_pct=self._allocation_pct(detection),
            reasoning=reasoning,
            transition_accepted=transition.accepted,
            execution_result=execution.result.value,
            execution_reason=execution.reason,
            fused_value=estimate.value,
            fused_confidence=estimate.confidence,
            degraded=not aggregation.ok,
            attention_price=round(attention_price, 4) if attention_price is not None else None,
            error=result.metadata.get('error'),
        )

    def _contended(self, owner_id: str) -> DecisionRecord:
        holder = self.state_manager.lock_holder()
        record = DecisionRecord(
            cycle=self.get_cycle_count(),
            timestamp=self.clock.now(),
            outcome=CycleOutcome.LOCK_CONTENTION,
            committed_state=self.get_current_state().value,
            reasoning=f"{owner_id} could not acquire state lock held by {holder.owner_id if holder else 'unknown'}",
        )
        self._finalize(record)
        return record

    # ========================================
    # DECISION SHAPING
    # ========================================

    def _to_detection(self, result: UnifiedResult) -> DetectionResult:
        meta = result.metadata
        regime = None
        if meta.get('regime'):
            try:
                regime = MarketRegime(meta['regime'])
            except ValueError:
                LOG.warning(f"Unknown regime in strategy metadata: {meta['regime']}")
        try:
            signal = TradingSignal(result.signal)
        except ValueError:
            LOG.warning(f"Unknown signal {result.signal!r}, treating as WAIT")
            signal = TradingSignal.WAIT

        reasoning = meta.get('reasoning') or meta.get('error') or f"{meta.get('strategy', 'strategy')}: {result.signal}"
        return DetectionResult(
            regime=regime,
            confidence=max(0, min(100, int(round(result.confidence * 100)))),
            signal=signal,
            urgency=int(meta.get('urgency', 0)),
            reasoning=str(reasoning),
        )

    def _refine_signal(self, detection: DetectionResult, prices: List[int]) -> Tuple[TradingSignal, List[str]]:
        """Risk overlay on the raw strategy signal"""
        signal = detection.signal
        notes: List[str] = []

        if detection.regime == MarketRegime.HIGH_VOLATILITY and signal.is_strong:
            signal = signal.weakened()
            notes.append("strong signal downgraded in high volatility")

        if detection.confidence < self.config.min_decision_confidence and (signal.is_buy or signal.is_sell):
            signal = TradingSignal.HOLD
            notes.append(f"confidence {detection.confidence} below {self.config.min_decision_confidence}, holding")

        recent_volatility = volatility(prices[-self.config.detector.short_window:])
        if recent_volatility > self.config.extreme_volatility_threshold and signal != TradingSignal.WAIT:
            signal = TradingSignal.WAIT
            notes.append(f"extreme volatility {recent_volatility}, waiting")

        return signal, notes

    def _allocation_pct(self, detection: DetectionResult) -> int:
        pct = self.config.signal_allocation_pct.get(detection.signal.value, 0)
        return pct * detection.confidence // 100

    @staticmethod
    def _classify(
        aggregation: AggregationResult,
        transition: TransitionOutcome,
        execution: ExecutionOutcome,
    ) -> CycleOutcome:
        if execution.result == ExecutionResult.RISK_BLOCKED:
            return CycleOutcome.RISK_BLOCKED
        if execution.result in (ExecutionResult.FAILED, ExecutionResult.INSUFFICIENT_FUNDS):
            return CycleOutcome.EXECUTION_FAILED
        if not transition.accepted:
            return CycleOutcome.TRANSITION_REJECTED
        if not aggregation.ok:
            return CycleOutcome.DEGRADED
        return CycleOutcome.COMPLETED

    # ========================================
    # BOOKKEEPING
    # ========================================

    def _key(self, name: str) -> str:
        return f"{self.KEY_PREFIX}:{name}"

    def _load(self, kind: str) -> Optional[Dict]:
        try:
            return load_record(kind, self.store.get(self._key(kind)))
        except CorruptStateError as e:
            LOG.error(f"Corrupt {kind} record, ignoring: {e}")
            return None

    def _save(self, kind: str, payload: Dict):
        self.store.set(self._key(kind), dump_record(kind, payload))

    def _next_cycle(self) -> Optional[int]:
        with self._lock:
            count = self.get_cycle_count() + 1
            if count > self.config.max_cycles:
                return None
            self._save("cycle_counter", {'count': count})
            return count

    def _finalize(self, record: DecisionRecord):
        with self._lock:
            self._save("last_decision", record.to_dict())

            stats = self.get_statistics()
            stats.total_cycles += 1
            stats.last_outcome = record.outcome.value
            stats.last_cycle_time = record.timestamp
            outcome_counters = {
                CycleOutcome.COMPLETED: 'completed',
                CycleOutcome.DEGRADED: 'degraded',
                CycleOutcome.SKIPPED: 'skipped',
                CycleOutcome.LOCK_CONTENTION: 'lock_contentions',
                CycleOutcome.RISK_BLOCKED: 'risk_blocked',
                CycleOutcome.EXECUTION_FAILED: 'execution_failures',
                CycleOutcome.ERROR: 'errors',
            }
            counter = outcome_counters.get(record.outcome)
            if counter:
                setattr(stats, counter, getattr(stats, counter) + 1)
            if record.transition_accepted is True:
                stats.transitions_accepted += 1
            elif record.transition_accepted is False:
                stats.transitions_rejected += 1
            if record.strategy:
                stats.signal_counts[record.signal] = stats.signal_counts.get(record.signal, 0) + 1
                self._append_signal(record)
            self._save("statistics", stats.to_dict())

            produced_decision = record.outcome not in (
                CycleOutcome.SKIPPED, CycleOutcome.LOCK_CONTENTION, CycleOutcome.ERROR,
            )
            if produced_decision and self.get_status() == SystemStatus.INITIALIZING:
                self.set_status(SystemStatus.RUNNING, "first decision cycle completed")

        level = logging.WARNING if record.outcome in (CycleOutcome.ERROR, CycleOutcome.LOCK_CONTENTION) else logging.INFO
        LOG.log(
            level,
            f"Cycle {record.cycle}: {record.outcome.value} state={record.committed_state} "
            f"signal={record.signal} confidence={record.confidence} execution={record.execution_result}",
        )
        event_type = EventType.CYCLE_SKIPPED if record.outcome == CycleOutcome.SKIPPED else EventType.CYCLE_COMPLETED
        self.event_bus.emit(event_type, asset=self.asset, **record.to_dict())

    def _append_signal(self, record: DecisionRecord):
        data = self._load("signal_history") or {}
        signals = data.get('signals', [])
        signals.append({
            'cycle': record.cycle,
            'timestamp': record.timestamp,
            'signal': record.signal,
            'confidence': record.confidence,
        })
        self._save("signal_history", {'signals': signals[-self.config.signal_history_size:]})

    def _record_error(self, cycle: int, message: str):
        with self._lock:
            data = self._load("error_history") or {}
            errors = data.get('errors', [])
            errors.append(ErrorEntry(timestamp=self.clock.now(), cycle=cycle, message=message).to_dict())
            self._save("error_history", {'errors': errors[-self.config.error_history_size:]})

    def _read_window(self) -> Tuple[List[int], List[int], List[str]]:
        data = self._load("price_window") or {}
        try:
            return (
                [int(p) for p in data.get('prices', [])],
                [int(v) for v in data.get('volumes', [])],
                [str(s) for s in data.get('states', [])],
            )
        except (TypeError, ValueError) as e:
            LOG.error(f"Corrupt price window, starting empty: {e}")
            return [], [], []

    def _load_window(self):
        """Replace the in-memory window with the stored one"""
        prices, volumes, states = self._read_window()
        for window, values in ((self._prices, prices), (self._volumes, volumes), (self._states, states)):
            window.clear()
            window.extend(values)

    def _save_window(self, weights: List[float]):
        self._save("price_window", {
            'prices': list(self._prices),
            'volumes': list(self._volumes),
            'states': list(self._states),
        })
        self._save("attention_weights", {'weights': weights})

    # ========================================
    # PUBLIC QUERIES AND CONTROLS
    # ========================================

    def get_current_state(self) -> MarketState:
        return self.state_manager.get_current_state()

    def get_last_decision(self) -> Optional[DecisionRecord]:
        data = self._load("last_decision")
        if data is None:
            return None
        try:
            return DecisionRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            LOG.error(f"Corrupt last decision record: {e}")
            return None

    def switch_strategy(self, strategy_id: Union[str, int]) -> str:
        return self.strategies.switch_strategy(strategy_id)

    def get_active_strategy(self) -> str:
        return self.strategies.get_active_strategy()

    def force_unlock(self) -> bool:
        return self.state_manager.force_unlock()

    def validate_transition(self, from_state: MarketState, to_state: MarketState) -> Tuple[bool, int]:
        return self.state_manager.validate_transition(from_state, to_state)

    def get_state_info(self) -> StateInfo:
        return self.state_manager.get_state_info()

    def get_transitions(self) -> List[TransitionRecord]:
        return self.state_manager.get_transitions()

    def get_cycle_count(self) -> int:
        data = self._load("cycle_counter") or {}
        return int(data.get('count', 0))

    def get_statistics(self) -> EngineStatistics:
        data = self._load("statistics")
        return EngineStatistics.from_dict(data) if data else EngineStatistics()

    def get_signal_history(self) -> List[Dict]:
        return (self._load("signal_history") or {}).get('signals', [])

    def get_error_history(self) -> List[Dict]:
        return (self._load("error_history") or {}).get('errors', [])

    def get_attention_weights(self) -> List[float]:
        return (self._load("attention_weights") or {}).get('weights', [])

    def get_price_window(self) -> List[int]:
        return self._read_window()[0]

    def get_position(self) -> Position:
        return self.executor.get_position()

    def get_risk_parameters(self) -> RiskParameters:
        return self.risk_admin.get()

    def update_risk_parameters(self, **changes) -> RiskParameters:
        return self.risk_admin.update(**changes)

    # ========================================
    # SYSTEM STATUS
    # ========================================

    def get_status(self) -> SystemStatus:
        data = self._load("system_status") or {}
        try:
            return SystemStatus(data.get('status', SystemStatus.INITIALIZING.value))
        except ValueError:
            LOG.error(f"Invalid stored system status {data.get('status')!r}")
            return SystemStatus.ERROR

    def set_status(self, status: SystemStatus, reason: str = "") -> SystemStatus:
        previous = self.get_status()
        self._save("system_status", {'status': status.value, 'reason': reason, 'since': self.clock.now()})
        if previous != status:
            LOG.warning(f"System status {previous.value} -> {status.value}: {reason}")
            self.event_bus.emit(
                EventType.SYSTEM_STATUS_CHANGED,
                asset=self.asset,
                previous=previous.value,
                status=status.value,
                reason=reason,
            )
        return status

    def emergency_stop(self, reason: str = "emergency stop") -> SystemStatus:
        return self.set_status(SystemStatus.MAINTENANCE, reason)

    def resume(self, reset_cycle_counter: bool = False) -> SystemStatus:
        if reset_cycle_counter:
            self._save("cycle_counter", {'count': 0})
        return self.set_status(SystemStatus.RUNNING, "resumed by operator")

    def get_health(self) -> Dict:
        return {
            'status': self.get_status().value,
            'current_state': self.get_current_state().value,
            'active_strategy': self.get_active_strategy(),
            'lock_status': self.state_manager.lock.status(),
            'cycles': self.get_cycle_count(),
            'window_size': len(self._prices),
            'config_hash': self.config_hash,
            'aggregator': self.aggregator.get_stats(),
            'events': self.event_bus.get_metrics(),
        }
