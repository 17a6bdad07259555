"""
Event subscribers
"""

from typing import Callable, Optional, List


class EventSubscriber:
    """Event subscriber with asset filtering"""

    def __init__(self, callback: Callable, assets: Optional[List[str]] = None):
        self.callback = callback
        self.assets = set(assets) if assets else None
        self.events_received = 0

    def matches(self, event) -> bool:
        """Events without an asset reach every subscriber"""
        if self.assets and event.asset and event.asset not in self.assets:
            return False
        return True

    def notify(self, event) -> bool:
        """Notify subscriber. Returns True if the callback ran."""
        if not self.matches(event):
            return False
        self.callback(event)
        self.events_received += 1
        return True
