"""
Event bus for observability notifications
"""

from .core import EventBus, Event, EventType
from .subscribers import EventSubscriber
from .sinks import WebhookEventSink, WebhookConfig

__all__ = ['EventBus', 'Event', 'EventType', 'EventSubscriber', 'WebhookEventSink', 'WebhookConfig']
