"""
Persistence and time sources
"""

from .clock import Clock, SystemClock, ManualClock
from .store import KeyValueStore, InMemoryStore, JsonFileStore, RedisStore, create_store
from .records import dump_record, load_record, SCHEMA_VERSION

__all__ = [
    'Clock', 'SystemClock', 'ManualClock',
    'KeyValueStore', 'InMemoryStore', 'JsonFileStore', 'RedisStore', 'create_store',
    'dump_record', 'load_record', 'SCHEMA_VERSION',
]
