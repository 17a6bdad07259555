"""
Core event bus: one-way observability notifications.

Components publish and never read events back. Delivery to subscribers
happens on a dispatcher thread when the bus is started, or synchronously
through flush() when it is not.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Any, Callable
from collections import defaultdict, deque
import threading
import logging
import uuid

from .subscribers import EventSubscriber

LOG = logging.getLogger(__name__)


class EventType(Enum):
    """Event types in system"""
    # Aggregation events
    OBSERVATIONS_AGGREGATED = "observations_aggregated"
    OUTLIER_REJECTED = "outlier_rejected"
    AGGREGATION_DEGRADED = "aggregation_degraded"

    # Detection / strategy events
    REGIME_DETECTED = "regime_detected"
    STRATEGY_SWITCHED = "strategy_switched"
    STRATEGY_FAILED = "strategy_failed"

    # State machine events
    STATE_TRANSITION = "state_transition"
    TRANSITION_REJECTED = "transition_rejected"
    LOCK_ACQUIRED = "lock_acquired"
    LOCK_RELEASED = "lock_released"
    LOCK_EXPIRED = "lock_expired"
    LOCK_CONTENTION = "lock_contention"

    # Trading events
    TRADE_EXECUTED = "trade_executed"
    TRADE_FAILED = "trade_failed"
    RISK_BLOCKED = "risk_blocked"
    RISK_PARAMETERS_UPDATED = "risk_parameters_updated"

    # System events
    CYCLE_COMPLETED = "cycle_completed"
    CYCLE_SKIPPED = "cycle_skipped"
    SYSTEM_STATUS_CHANGED = "system_status_changed"


@dataclass
class Event:
    """Base event"""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType = EventType.CYCLE_COMPLETED
    timestamp: datetime = field(default_factory=datetime.utcnow)
    asset: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'event_id': self.event_id,
            'event_type': self.event_type.value,
            'timestamp': self.timestamp.isoformat(),
            'asset': self.asset,
            'data': self.data,
        }


class EventBus:
    """Thread-safe fire-and-forget event bus"""

    def __init__(self, buffer_size: int = 10000, history_size: int = 500):
        self.buffer_size = buffer_size
        self._buffer = deque()
        self._history = deque(maxlen=history_size)
        self._subscribers: Dict[EventType, List[EventSubscriber]] = defaultdict(list)
        self._running = False
        self._dispatcher_thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()
        self._wakeup = threading.Event()
        self._events_published = 0
        self._events_dispatched = 0
        self._events_dropped = 0

    def start(self):
        """Start dispatcher"""
        if self._running:
            return
        self._running = True
        self._dispatcher_thread = threading.Thread(
            target=self._dispatch_loop,
            name="EventBusDispatcher",
            daemon=True
        )
        self._dispatcher_thread.start()
        LOG.info("EventBus started")

    def stop(self):
        """Stop dispatcher and deliver anything still buffered"""
        if not self._running:
            return
        self._running = False
        self._wakeup.set()
        if self._dispatcher_thread:
            self._dispatcher_thread.join(timeout=5.0)
        self.flush()
        LOG.info("EventBus stopped")

    def publish(self, event: Event) -> bool:
        """Publish event (non-blocking). Returns False if the buffer is full."""
        with self._lock:
            self._events_published += 1
            self._history.append(event)
            if len(self._buffer) >= self.buffer_size:
                self._events_dropped += 1
                return False
            self._buffer.append(event)
        self._wakeup.set()
        return True

    def emit(self, event_type: EventType, asset: Optional[str] = None, **data) -> bool:
        """Shorthand for publish(Event(...))"""
        return self.publish(Event(event_type=event_type, asset=asset, data=data))

    def subscribe(self, event_type: EventType, callback: Callable[[Event], None], assets: Optional[List[str]] = None) -> int:
        """Subscribe to events"""
        with self._lock:
            self._subscribers[event_type].append(EventSubscriber(callback, assets))
            return len(self._subscribers[event_type]) - 1

    def flush(self) -> int:
        """Deliver all buffered events on the calling thread"""
        dispatched = 0
        while True:
            with self._lock:
                if not self._buffer:
                    return dispatched
                event = self._buffer.popleft()
            self._dispatch_event(event)
            dispatched += 1

    def _dispatch_loop(self):
        """Background dispatcher"""
        while self._running:
            if self.flush() == 0:
                self._wakeup.wait(0.05)
                self._wakeup.clear()

    def _dispatch_event(self, event: Event):
        """Dispatch to subscribers"""
        with self._lock:
            subscribers = list(self._subscribers.get(event.event_type, []))
        for sub in subscribers:
            try:
                if sub.notify(event):
                    self._events_dispatched += 1
            except Exception as e:
                LOG.error(f"Subscriber callback failed for {event.event_type.value}: {e}")

    def recent_events(self, event_type: Optional[EventType] = None, limit: int = 100) -> List[Event]:
        """Most recent published events, oldest first"""
        with self._lock:
            events = [e for e in self._history if event_type is None or e.event_type == event_type]
        return events[-limit:] if limit else events

    def get_metrics(self) -> Dict[str, Any]:
        """Get metrics"""
        with self._lock:
            return {
                'events_published': self._events_published,
                'events_dispatched': self._events_dispatched,
                'events_dropped': self._events_dropped,
                'buffer_depth': len(self._buffer),
                'subscribers': sum(len(s) for s in self._subscribers.values()),
                'running': self._running
            }
