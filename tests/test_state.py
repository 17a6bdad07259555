"""
Tests for the market state machine and the state lock
"""

import threading

import pytest

from regimex.errors import ConfigurationError, ErrorKind
from regimex.event_bus import EventType
from regimex.state import MarketState, StateConfig, StateLock, StateTransitionManager, TransitionRecord
from regimex.storage import InMemoryStore, dump_record


@pytest.fixture
def manager(store, clock, event_bus):
    return StateTransitionManager(store, StateConfig(), clock, event_bus)


def seed_log(store, records):
    payload = {'transitions': [r.to_dict() for r in records]}
    store.set("state:transitions", dump_record("transition_log", payload))


class InterleavingStore(InMemoryStore):
    """Runs after_get once, right after the next read returns"""

    def __init__(self):
        super().__init__()
        self.after_get = None

    def get(self, key):
        value = super().get(key)
        hook, self.after_get = self.after_get, None
        if hook is not None:
            hook()
        return value


class TestCurrentState:

    def test_defaults_to_sideways(self, manager):
        assert manager.get_current_state() == MarketState.SIDEWAYS

    def test_corrupt_state_reports_unknown(self, manager, store):
        store.set("state:current", "{not json")
        assert manager.get_current_state() == MarketState.UNKNOWN

    def test_foreign_schema_reports_unknown(self, manager, store):
        store.set("state:current", dump_record("position", {'state': 'BULL'}))
        assert manager.get_current_state() == MarketState.UNKNOWN

    def test_legacy_numeric_codes(self, manager, store):
        store.set("state:current", "1")
        assert manager.get_current_state() == MarketState.BEAR
        store.set("state:current", "7")
        assert manager.get_current_state() == MarketState.UNKNOWN

    def test_recovery_from_unknown(self, manager, store):
        store.set("state:current", "garbage")
        outcome = manager.transition(MarketState.BULL, "recovered")
        assert outcome.accepted
        assert manager.get_current_state() == MarketState.BULL


class TestValidation:

    def test_strength_table(self):
        strength = StateTransitionManager.transition_strength
        assert strength(MarketState.BULL, MarketState.BULL) == 100
        assert strength(MarketState.BULL, MarketState.SIDEWAYS) == 90
        assert strength(MarketState.SIDEWAYS, MarketState.BEAR) == 85
        assert strength(MarketState.BULL, MarketState.BEAR) == 70

    def test_direct_flip_rejected(self, manager):
        assert manager.validate_transition(MarketState.BULL, MarketState.BEAR) == (False, 70)
        assert manager.validate_transition(MarketState.BEAR, MarketState.BULL) == (False, 70)

    def test_flip_allowed_with_lower_threshold(self, store, clock):
        manager = StateTransitionManager(store, StateConfig(min_reversal_strength=70), clock)
        assert manager.is_valid_transition(MarketState.BULL, MarketState.BEAR)

    def test_unknown_always_reachable(self, manager):
        for state in MarketState:
            assert manager.is_valid_transition(state, MarketState.UNKNOWN)
            assert manager.is_valid_transition(MarketState.UNKNOWN, state)

    def test_validation_is_read_only(self, manager):
        manager.validate_transition(MarketState.SIDEWAYS, MarketState.BULL)
        assert manager.get_current_state() == MarketState.SIDEWAYS
        assert manager.get_transition_count() == 0


class TestTransition:

    def test_accepted_transition_recorded(self, manager, clock, event_bus):
        outcome = manager.transition(MarketState.BULL, "uptrend")

        assert outcome.accepted
        assert outcome.strength == 85
        assert manager.get_current_state() == MarketState.BULL
        assert manager.get_transition_count() == 1
        assert manager.get_last_transition_time() == clock.now()

        log = manager.get_transitions()
        assert log == [TransitionRecord(clock.now(), MarketState.SIDEWAYS, MarketState.BULL, "uptrend")]
        events = event_bus.recent_events(EventType.STATE_TRANSITION)
        assert events[-1].data['to_state'] == "BULL"

    def test_self_transition_recorded_without_change(self, manager):
        manager.transition(MarketState.SIDEWAYS, "steady")
        assert manager.get_current_state() == MarketState.SIDEWAYS
        assert manager.get_transition_count() == 1
        assert not manager.get_transitions()[0].changed

    def test_rejected_transition_leaves_state(self, manager, event_bus):
        manager.transition(MarketState.BULL)
        outcome = manager.transition(MarketState.BEAR, "crash")

        assert not outcome.accepted
        assert outcome.error_kind == ErrorKind.VALIDATION_ERROR
        assert manager.get_current_state() == MarketState.BULL
        assert manager.get_transition_count() == 1
        assert event_bus.recent_events(EventType.TRANSITION_REJECTED)

    def test_log_is_bounded(self, manager, clock):
        for _ in range(30):
            clock.advance(1)
            manager.transition(MarketState.SIDEWAYS)
        assert len(manager.get_transitions()) == 20
        assert manager.get_transition_count() == 30

    def test_history_consistent_with_current_state(self, manager, clock):
        sequence = [MarketState.BULL, MarketState.SIDEWAYS, MarketState.BEAR, MarketState.BEAR, MarketState.UNKNOWN]
        for state in sequence:
            clock.advance(1)
            manager.transition(state)
        log = manager.get_transitions()
        assert log[-1].to_state == manager.get_current_state()
        for previous, record in zip(log, log[1:]):
            assert record.from_state == previous.to_state
            assert record.timestamp >= previous.timestamp

    def test_reset(self, manager):
        manager.transition(MarketState.BULL)
        manager.reset()
        assert manager.get_current_state() == MarketState.SIDEWAYS
        assert manager.get_transitions() == []
        assert manager.get_transition_count() == 0


class TestAntiOscillation:

    CYCLE = [MarketState.BULL, MarketState.SIDEWAYS, MarketState.BEAR, MarketState.SIDEWAYS]

    def test_eleventh_rapid_change_rejected(self, manager, clock):
        outcomes = []
        for i in range(11):
            clock.advance(1)
            outcomes.append(manager.transition(self.CYCLE[i % 4]))

        assert all(o.accepted for o in outcomes[:10])
        assert not outcomes[10].accepted
        assert "flapping" in outcomes[10].reason

    def test_self_transitions_dilute_window(self, manager, clock):
        for i in range(10):
            clock.advance(1)
            manager.transition(self.CYCLE[i % 4])
        current = manager.get_current_state()

        # Seven steady cycles leave three changes in the window
        for _ in range(7):
            clock.advance(1)
            assert manager.transition(current).accepted

        clock.advance(1)
        assert manager.transition(MarketState.BULL if current != MarketState.BULL else MarketState.SIDEWAYS).accepted

    def test_seeded_flapping_history(self, manager, store):
        alternating = [
            TransitionRecord(float(i), MarketState.BULL if i % 2 else MarketState.BEAR,
                             MarketState.BEAR if i % 2 else MarketState.BULL)
            for i in range(10)
        ]
        seed_log(store, alternating)
        assert not manager.is_valid_transition(MarketState.SIDEWAYS, MarketState.BULL)
        # Escape hatches still apply
        assert manager.is_valid_transition(MarketState.SIDEWAYS, MarketState.SIDEWAYS)
        assert manager.is_valid_transition(MarketState.SIDEWAYS, MarketState.UNKNOWN)

    def test_legacy_transition_log(self, manager, store):
        store.set("state:transitions", "100.0:SIDEWAYS:BULL:trend;200.0:BULL:SIDEWAYS:cooling")
        log = manager.get_transitions()
        assert [r.to_state for r in log] == [MarketState.BULL, MarketState.SIDEWAYS]
        assert log[1].reason == "cooling"

    def test_legacy_transition_log_with_numeric_codes(self, manager, store):
        store.set("state:transitions", "1000:2:0:trend;2000:0:2:cooling")
        log = manager.get_transitions()
        assert [(r.from_state, r.to_state) for r in log] == [
            (MarketState.SIDEWAYS, MarketState.BULL),
            (MarketState.BULL, MarketState.SIDEWAYS),
        ]
        assert log[0].timestamp == 1000.0

    def test_corrupt_log_treated_as_empty(self, manager, store):
        store.set("state:transitions", "not:a:log")
        assert manager.get_transitions() == []


class TestStateLock:

    @pytest.fixture
    def lock(self, store, clock, event_bus):
        return StateLock(store, clock, timeout=300.0, event_bus=event_bus)

    def test_acquire_and_release(self, lock):
        assert lock.acquire("worker-1")
        assert lock.is_locked()
        assert lock.holder().owner_id == "worker-1"
        assert lock.release("worker-1")
        assert not lock.is_locked()
        assert lock.status() == "unlocked"

    def test_held_lock_not_reentrant(self, lock, event_bus):
        assert lock.acquire("worker-1")
        assert not lock.acquire("worker-1")
        assert not lock.acquire("worker-2")
        assert lock.contention_count == 2
        assert event_bus.recent_events(EventType.LOCK_CONTENTION)

    def test_expired_lock_taken_over(self, lock, clock, event_bus):
        assert lock.acquire("stuck")
        clock.advance(301)
        assert "expired" in lock.status()
        assert lock.acquire("fresh")
        assert lock.holder().owner_id == "fresh"
        assert lock.expired_count == 1
        assert event_bus.recent_events(EventType.LOCK_EXPIRED)

    def test_release_by_non_owner_ignored(self, lock):
        lock.acquire("worker-1")
        assert not lock.release("worker-2")
        assert lock.is_locked()

    def test_force_unlock(self, lock):
        lock.acquire("worker-1")
        assert lock.force_unlock()
        assert lock.acquire("worker-2")

    def test_corrupt_lock_record_is_expired(self, lock, store):
        store.set("state:lock", "###")
        assert not lock.is_locked()
        assert lock.acquire("worker-1")

    def test_with_lock_releases_on_error(self, lock):
        def boom():
            raise RuntimeError("fail")

        with pytest.raises(RuntimeError):
            lock.with_lock(boom, lambda: None, owner_id="w")
        assert not lock.is_locked()

    def test_with_lock_fallback_when_held(self, lock):
        lock.acquire("other")
        assert lock.with_lock(lambda: "ran", lambda: "skipped", owner_id="w") == "skipped"

    def test_only_one_concurrent_acquirer(self, lock):
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def worker(n):
            barrier.wait()
            acquired = lock.acquire(f"worker-{n}")
            with results_lock:
                results.append(acquired)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1

    def test_separate_instances_share_one_lock(self, store, clock):
        locks = [StateLock(store, clock), StateLock(store, clock)]
        barrier = threading.Barrier(8)
        results = []
        results_lock = threading.Lock()

        def worker(n):
            barrier.wait()
            acquired = locks[n % 2].acquire(f"worker-{n}")
            with results_lock:
                results.append(acquired)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1

    def test_racing_takeover_of_expired_lock(self, clock):
        store = InterleavingStore()
        first, second = StateLock(store, clock), StateLock(store, clock)
        assert first.acquire("stuck")
        clock.advance(301)

        # second takes over after first has read the expired record
        store.after_get = lambda: second.acquire("second")
        assert not first.acquire("first")
        assert first.holder().owner_id == "second"
        assert second.expired_count == 1
        assert first.expired_count == 0

    def test_release_after_takeover_keeps_new_holder(self, store, clock):
        stale, fresh = StateLock(store, clock), StateLock(store, clock)
        assert stale.acquire("slow-worker")
        clock.advance(301)
        assert fresh.acquire("fresh-worker")

        assert not stale.release("slow-worker")
        assert fresh.holder().owner_id == "fresh-worker"


class TestStateConfig:

    def test_log_must_cover_flap_window(self):
        with pytest.raises(ConfigurationError):
            StateConfig(transition_log_size=5, flap_window=10).validate()

    def test_positive_timeout(self):
        with pytest.raises(ConfigurationError):
            StateConfig(lock_timeout=0).validate()
