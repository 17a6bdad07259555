"""
Shared fixtures: deterministic clock, in-memory store and event bus.
"""

import pytest

from regimex.event_bus import EventBus
from regimex.storage import InMemoryStore, ManualClock


START_TIME = 1_700_000_000.0


@pytest.fixture
def clock():
    return ManualClock(start=START_TIME)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def event_bus():
    """Bus without a dispatcher thread; tests call flush() to deliver"""
    return EventBus()
