"""
State Transition Manager

Owns the current coarse MarketState and the transition log.

Validity rules, checked in order:
    1. Self-transition           → valid
    2. Any → UNKNOWN             → valid (error / recovery escape hatch)
    3. UNKNOWN → any             → valid (recovery)
    4. More than max_changes_in_window real changes among the last
       flap_window records       → rejected (anti-flapping)
    5. Direct BULL ↔ BEAR        → needs strength ≥ min_reversal_strength

Transition strength is a fixed table (100 self, 90 into SIDEWAYS, 85 out
of SIDEWAYS, 70 direct flip). It is not derived from signal quality.

Corrupt persisted state never raises: the manager reports UNKNOWN and
logs the failure.
"""

import logging
import threading
from typing import List, Optional, Tuple

from regimex.errors import CorruptStateError, ErrorKind
from regimex.event_bus import EventBus, EventType
from regimex.state.config import StateConfig
from regimex.state.lock import StateLock
from regimex.state.schemas import (
    LockRecord,
    MarketState,
    StateInfo,
    TransitionOutcome,
    TransitionRecord,
)
from regimex.storage.clock import Clock, SystemClock
from regimex.storage.records import dump_record, load_record, parse_legacy_transition_log
from regimex.storage.store import KeyValueStore

LOG = logging.getLogger(__name__)


def _parse_legacy_state(raw: str):
    return {'state_code': int(raw)}


def _legacy_state_name(value: str) -> str:
    if value.isdigit():
        return MarketState.from_legacy_code(int(value)).value
    return value


def _parse_legacy_transition_log(raw: str):
    """Older logs may name states by their numeric code"""
    data = parse_legacy_transition_log(raw)
    for entry in data['transitions']:
        entry['from_state'] = _legacy_state_name(entry['from_state'])
        entry['to_state'] = _legacy_state_name(entry['to_state'])
    return data


class StateTransitionManager:
    """
    Validated state machine over {BULL, BEAR, SIDEWAYS, UNKNOWN}.

    The lock is exposed for callers that need read-validate-commit
    atomicity across components (see DecisionEngine.run_cycle).
    """

    DEFAULT_STATE = MarketState.SIDEWAYS

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[StateConfig] = None,
        clock: Optional[Clock] = None,
        event_bus: Optional[EventBus] = None,
    ):
        self.config = config or StateConfig()
        self.config.validate()
        self.store = store
        self.clock = clock or SystemClock()
        self.event_bus = event_bus

        prefix = self.config.key_prefix
        self._state_key = f"{prefix}:current"
        self._log_key = f"{prefix}:transitions"
        self._counter_key = f"{prefix}:counter"

        self.lock = StateLock(
            store=store,
            clock=self.clock,
            timeout=self.config.lock_timeout,
            key=f"{prefix}:lock",
            event_bus=event_bus,
        )
        self._mutex = threading.RLock()
        self.rejected_count = 0

    # ========================================
    # CURRENT STATE
    # ========================================

    def get_current_state(self) -> MarketState:
        """Current state; SIDEWAYS when never set, UNKNOWN when unreadable"""
        raw = self.store.get(self._state_key)
        if raw is None:
            return self.DEFAULT_STATE
        try:
            data = load_record("market_state", raw, legacy_parser=_parse_legacy_state)
            if 'state_code' in data:
                code = data['state_code']
                state = MarketState.from_legacy_code(code)
                if state == MarketState.UNKNOWN and code != 3:
                    LOG.error(f"Stored state code out of range: {code}")
                return state
            return MarketState(data['state'])
        except (CorruptStateError, KeyError, ValueError) as e:
            LOG.error(f"Corrupt persisted market state, reporting UNKNOWN: {e}")
            return MarketState.UNKNOWN

    def _write_state(self, state: MarketState):
        self.store.set(self._state_key, dump_record("market_state", {'state': state.value}))

    # ========================================
    # VALIDATION
    # ========================================

    @staticmethod
    def transition_strength(from_state: MarketState, to_state: MarketState) -> int:
        if from_state == to_state:
            return 100
        if to_state == MarketState.SIDEWAYS:
            return 90
        if from_state == MarketState.SIDEWAYS:
            return 85
        return 70

    def check_transition(self, from_state: MarketState, to_state: MarketState) -> Tuple[bool, str]:
        """
        Apply validity rules in order.

        Returns:
            (valid, reason)
        """
        if from_state == to_state:
            return True, "self-transition"
        if to_state == MarketState.UNKNOWN:
            return True, "transition to UNKNOWN always allowed"
        if from_state == MarketState.UNKNOWN:
            return True, "recovery from UNKNOWN"

        history = self.get_transitions()
        if len(history) >= self.config.flap_window:
            window = history[-self.config.flap_window:]
            changes = sum(1 for record in window if record.changed)
            if changes > self.config.max_changes_in_window:
                return False, (
                    f"flapping: {changes} state changes in last {self.config.flap_window} transitions"
                )

        if {from_state, to_state} == {MarketState.BULL, MarketState.BEAR}:
            strength = self.transition_strength(from_state, to_state)
            if strength < self.config.min_reversal_strength:
                return False, (
                    f"direct {from_state.value}->{to_state.value} strength {strength} "
                    f"below {self.config.min_reversal_strength}"
                )

        return True, "valid"

    def is_valid_transition(self, from_state: MarketState, to_state: MarketState) -> bool:
        valid, _ = self.check_transition(from_state, to_state)
        return valid

    def validate_transition(self, from_state: MarketState, to_state: MarketState) -> Tuple[bool, int]:
        """Read-only diagnostic: (valid, strength)"""
        return self.is_valid_transition(from_state, to_state), self.transition_strength(from_state, to_state)

    # ========================================
    # COMMIT
    # ========================================

    def transition(self, new_state: MarketState, reason: str = "") -> TransitionOutcome:
        """
        Validate and commit a transition to new_state.

        Accepted transitions, self-transitions included, are appended to the
        log, persisted, counted and announced. Rejections leave the state
        untouched and come back with error_kind=VALIDATION_ERROR.
        """
        with self._mutex:
            current = self.get_current_state()
            strength = self.transition_strength(current, new_state)
            valid, why = self.check_transition(current, new_state)

            if not valid:
                self.rejected_count += 1
                LOG.warning(f"Transition {current.value}->{new_state.value} rejected: {why}")
                self._emit(
                    EventType.TRANSITION_REJECTED,
                    from_state=current.value,
                    to_state=new_state.value,
                    reason=why,
                )
                return TransitionOutcome(
                    accepted=False,
                    from_state=current,
                    to_state=new_state,
                    strength=strength,
                    reason=why,
                    error_kind=ErrorKind.VALIDATION_ERROR,
                )

            now = self.clock.now()
            record = TransitionRecord(timestamp=now, from_state=current, to_state=new_state, reason=reason)
            history = self.get_transitions()
            history.append(record)
            self._write_transitions(history[-self.config.transition_log_size:])
            self._write_state(new_state)
            self._write_counter(self.get_transition_count() + 1, now)

            if record.changed:
                LOG.info(f"State transition {current.value} -> {new_state.value}: {reason}")
            self._emit(
                EventType.STATE_TRANSITION,
                from_state=current.value,
                to_state=new_state.value,
                strength=strength,
                reason=reason,
            )
            return TransitionOutcome(
                accepted=True,
                from_state=current,
                to_state=new_state,
                strength=strength,
                reason=reason,
            )

    def reset(self, state: MarketState = DEFAULT_STATE):
        """Administrative reset: set state and clear the log"""
        with self._mutex:
            self._write_state(state)
            self.store.delete(self._log_key)
            self.store.delete(self._counter_key)
            LOG.warning(f"State machine reset to {state.value}")

    # ========================================
    # TRANSITION LOG
    # ========================================

    def get_transitions(self) -> List[TransitionRecord]:
        raw = self.store.get(self._log_key)
        try:
            data = load_record("transition_log", raw, legacy_parser=_parse_legacy_transition_log)
            if data is None:
                return []
            return [TransitionRecord.from_dict(item) for item in data.get('transitions', [])]
        except (CorruptStateError, KeyError, TypeError, ValueError) as e:
            LOG.error(f"Corrupt transition log, ignoring history: {e}")
            return []

    def _write_transitions(self, records: List[TransitionRecord]):
        payload = {'transitions': [r.to_dict() for r in records]}
        self.store.set(self._log_key, dump_record("transition_log", payload))

    def get_transition_count(self) -> int:
        return int(self._read_counter().get('count', 0))

    def get_last_transition_time(self) -> Optional[float]:
        return self._read_counter().get('last_transition_time')

    def _read_counter(self):
        try:
            return load_record("transition_counter", self.store.get(self._counter_key)) or {}
        except CorruptStateError as e:
            LOG.error(f"Corrupt transition counter, restarting count: {e}")
            return {}

    def _write_counter(self, count: int, timestamp: float):
        payload = {'count': count, 'last_transition_time': timestamp}
        self.store.set(self._counter_key, dump_record("transition_counter", payload))

    # ========================================
    # LOCKING (delegates to StateLock)
    # ========================================

    def acquire_lock(self, owner_id: str) -> bool:
        return self.lock.acquire(owner_id)

    def release_lock(self, owner_id: Optional[str] = None) -> bool:
        return self.lock.release(owner_id)

    def force_unlock(self) -> bool:
        return self.lock.force_unlock()

    def is_locked(self) -> bool:
        return self.lock.is_locked()

    def lock_holder(self) -> Optional[LockRecord]:
        return self.lock.holder()

    # ========================================
    # MONITORING
    # ========================================

    def get_state_info(self) -> StateInfo:
        recent = self.get_transitions()[-5:]
        return StateInfo(
            current_state=self.get_current_state(),
            locked=self.lock.is_locked(),
            lock_status=self.lock.status(),
            transition_count=self.get_transition_count(),
            last_transition_time=self.get_last_transition_time(),
            recent_transitions=[f"{r.from_state.value}->{r.to_state.value}" for r in recent],
        )

    def _emit(self, event_type: EventType, **data):
        if self.event_bus is not None:
            self.event_bus.emit(event_type, **data)
