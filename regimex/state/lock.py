"""
State Lock

Guarantees at most one in-flight state-mutating operation. The lock lives
in the key-value store as a LockRecord with an absolute timeout, so a
holder that crashed mid-operation wedges the system for at most
lock_timeout.

Acquisition is try-once: no blocking waits, no retry loop.
"""

import logging
from typing import Callable, Optional, TypeVar

from regimex.errors import CorruptStateError
from regimex.event_bus import EventBus, EventType
from regimex.state.schemas import LockRecord
from regimex.storage.clock import Clock
from regimex.storage.records import dump_record, load_record
from regimex.storage.store import KeyValueStore

LOG = logging.getLogger(__name__)

T = TypeVar('T')


class StateLock:
    """Store-backed mutual exclusion with timeout-based expiry"""

    RECORD_KIND = "lock"

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock,
        timeout: float = 300.0,
        key: str = "state:lock",
        event_bus: Optional[EventBus] = None,
    ):
        self.store = store
        self.clock = clock
        self.timeout = timeout
        self.key = key
        self.event_bus = event_bus

        self.acquired_count = 0
        self.contention_count = 0
        self.expired_count = 0

    def _parse(self, raw: Optional[str]) -> Optional[LockRecord]:
        try:
            data = load_record(self.RECORD_KIND, raw)
        except CorruptStateError as e:
            LOG.error(f"Corrupt lock record, treating as expired: {e}")
            return LockRecord(held_since=float('-inf'), owner_id="<corrupt>")
        if data is None:
            return None
        try:
            return LockRecord.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            LOG.error(f"Invalid lock record, treating as expired: {e}")
            return LockRecord(held_since=float('-inf'), owner_id="<corrupt>")

    def _read(self) -> Optional[LockRecord]:
        return self._parse(self.store.get(self.key))

    def acquire(self, owner_id: str) -> bool:
        """
        Try to take the lock.

        Every write is a store-level conditional write, so lock instances
        in different processes sharing one store still exclude each other.
        An expired record is replaced only if it is unchanged since it was
        read; two callers racing for the same expired lock cannot both win.

        Returns:
            True if acquired. An unexpired lock held by anyone, including
            owner_id itself, makes this return False.
        """
        now = self.clock.now()
        raw = dump_record(self.RECORD_KIND, LockRecord(held_since=now, owner_id=owner_id).to_dict())
        if self.store.set_if_absent(self.key, raw):
            return self._acquired(owner_id)

        observed = self.store.get(self.key)
        current = self._parse(observed)
        if current is None:
            # Released between the two calls
            if self.store.set_if_absent(self.key, raw):
                return self._acquired(owner_id)
            return self._contended(owner_id, self._holder_name())

        if current.age(now) < self.timeout:
            return self._contended(owner_id, current.owner_id)

        if not self.store.compare_and_set(self.key, observed, raw):
            return self._contended(owner_id, self._holder_name())
        self.expired_count += 1
        LOG.warning(f"Took over expired lock held by {current.owner_id}")
        self._emit(EventType.LOCK_EXPIRED, holder=current.owner_id, held_since=current.held_since)
        return self._acquired(owner_id)

    def _acquired(self, owner_id: str) -> bool:
        self.acquired_count += 1
        self._emit(EventType.LOCK_ACQUIRED, owner_id=owner_id)
        return True

    def _contended(self, owner_id: str, holder: str) -> bool:
        self.contention_count += 1
        LOG.warning(f"Lock contention: {owner_id} blocked by {holder}")
        self._emit(EventType.LOCK_CONTENTION, owner_id=owner_id, holder=holder)
        return False

    def _holder_name(self) -> str:
        current = self._read()
        return current.owner_id if current is not None else "<unknown>"

    def release(self, owner_id: Optional[str] = None) -> bool:
        """
        Clear the lock.

        Args:
            owner_id: When given, only that owner's lock is released
        """
        observed = self.store.get(self.key)
        current = self._parse(observed)
        if current is None:
            return False
        if owner_id is not None and current.owner_id != owner_id:
            LOG.warning(f"{owner_id} tried to release lock held by {current.owner_id}")
            return False
        if not self.store.compare_and_delete(self.key, observed):
            LOG.warning(f"Lock changed hands before {current.owner_id} could release it")
            return False
        self._emit(EventType.LOCK_RELEASED, owner_id=current.owner_id)
        return True

    def force_unlock(self) -> bool:
        """Administrative escape hatch"""
        LOG.warning("Lock force-unlocked by administrator")
        return self.release()

    def is_locked(self) -> bool:
        current = self._read()
        return current is not None and current.age(self.clock.now()) < self.timeout

    def holder(self) -> Optional[LockRecord]:
        return self._read()

    def status(self) -> str:
        current = self._read()
        if current is None:
            return "unlocked"
        age = current.age(self.clock.now())
        if age >= self.timeout:
            return f"expired (held by {current.owner_id})"
        return f"locked by {current.owner_id} for {age:.0f}s"

    def with_lock(
        self,
        operation: Callable[[], T],
        fallback: Callable[[], T],
        owner_id: str = "engine",
    ) -> T:
        """Run operation under the lock, or return fallback() if it is held"""
        if not self.acquire(owner_id):
            return fallback()
        try:
            return operation()
        finally:
            self.release(owner_id)

    def _emit(self, event_type: EventType, **data):
        if self.event_bus is not None:
            self.event_bus.emit(event_type, **data)
