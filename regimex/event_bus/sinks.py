"""
Webhook event sink

Forwards selected events to an HTTP endpoint (Slack-compatible payload).
Delivery failures are logged and never reach the publishing component.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Set
import logging
import threading
import time

import requests

from .core import Event, EventBus, EventType

LOG = logging.getLogger(__name__)


DEFAULT_FORWARDED_EVENTS = [
    EventType.STATE_TRANSITION,
    EventType.RISK_BLOCKED,
    EventType.TRADE_FAILED,
    EventType.LOCK_EXPIRED,
    EventType.SYSTEM_STATUS_CHANGED,
]


@dataclass
class WebhookConfig:
    """Webhook sink configuration"""
    url: Optional[str] = None
    event_types: List[EventType] = field(default_factory=lambda: list(DEFAULT_FORWARDED_EVENTS))
    timeout: float = 5.0
    dedup_ttl: float = 300.0


class WebhookEventSink:
    """Posts events to a webhook with duplicate suppression"""

    def __init__(self, config: Optional[WebhookConfig] = None):
        self.config = config or WebhookConfig()
        self._lock = threading.RLock()
        self._recent: Set[str] = set()
        self._last_cleanup = time.time()
        self.sent = 0
        self.failed = 0

    def attach(self, bus: EventBus):
        """Subscribe to every configured event type"""
        for event_type in self.config.event_types:
            bus.subscribe(event_type, self.handle)

    def handle(self, event: Event):
        if not self.config.url:
            return
        key = self._dedup_key(event)
        if not self._check_and_add(key):
            LOG.debug(f"Webhook suppressed (duplicate): {key}")
            return
        self._post(event)

    def _dedup_key(self, event: Event) -> str:
        data = event.data
        detail = data.get('to_state') or data.get('reason') or data.get('status') or ''
        return f"{event.event_type.value}:{event.asset}:{detail}"

    def _check_and_add(self, key: str) -> bool:
        with self._lock:
            current_time = time.time()
            if current_time - self._last_cleanup > self.config.dedup_ttl:
                self._recent.clear()
                self._last_cleanup = current_time
            if key in self._recent:
                return False
            self._recent.add(key)
            return True

    def _build_message(self, event: Event) -> str:
        message = f"[regimex] {event.event_type.value.upper()}\n"
        if event.asset:
            message += f"Asset: {event.asset}\n"
        message += f"Time: {event.timestamp.isoformat()}\n"
        for key, value in event.data.items():
            message += f"  {key}: {value}\n"
        return message

    def _post(self, event: Event):
        try:
            payload = {
                "text": self._build_message(event),
                "event": event.to_dict(),
            }
            response = requests.post(self.config.url, json=payload, timeout=self.config.timeout)
            response.raise_for_status()
            self.sent += 1
        except Exception as e:
            self.failed += 1
            LOG.error(f"Failed to deliver webhook for {event.event_type.value}: {e}")
