"""
Key-Value Store Adapters

Handles persistence of engine entities (current state, lock, positions,
risk parameters, decision records) behind a minimal get/set/has/delete
contract. Values are strings; structure lives in storage.records.

Backends:
    - memory: process-local dict (tests, single-run demos)
    - file:   JSON file with atomic write (single host)
    - redis:  shared Redis keyspace (distributed deployments)
"""

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

LOG = logging.getLogger(__name__)


class KeyValueStore:
    """Abstract string key-value store"""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str):
        raise NotImplementedError

    def has(self, key: str) -> bool:
        raise NotImplementedError

    def delete(self, key: str) -> bool:
        """Delete key. Returns True if it existed."""
        raise NotImplementedError

    # ========================================================================
    # ATOMIC PRIMITIVES
    # ========================================================================
    # Each call is one atomic step against the backend

    def set_if_absent(self, key: str, value: str) -> bool:
        """Write value only if key is missing. Returns True if written."""
        raise NotImplementedError

    def compare_and_set(self, key: str, expected: str, value: str) -> bool:
        """Replace key with value only while it still holds expected"""
        raise NotImplementedError

    def compare_and_delete(self, key: str, expected: str) -> bool:
        """Delete key only while it still holds expected"""
        raise NotImplementedError


class InMemoryStore(KeyValueStore):
    """Thread-safe dict-backed store"""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str):
        with self._lock:
            self._data[key] = value

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def set_if_absent(self, key: str, value: str) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            return True

    def compare_and_set(self, key: str, expected: str, value: str) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            return True

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            del self._data[key]
            return True

    def keys(self):
        with self._lock:
            return list(self._data.keys())


class JsonFileStore(KeyValueStore):
    """
    Single JSON file holding every key.

    The whole mapping is rewritten on each mutation through a temp file
    and an atomic rename, so a crash never leaves a half-written file.
    """

    def __init__(self, path: str = "data/regimex_state.json"):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._data: Dict[str, str] = self._load()

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            LOG.error(f"Unreadable state file {self.path}, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            LOG.error(f"State file {self.path} is not a JSON object, starting empty")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self):
        temp_path = self.path.with_suffix('.tmp')
        with open(temp_path, 'w') as f:
            json.dump(self._data, f, indent=2, sort_keys=True)
        temp_path.replace(self.path)

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str):
        with self._lock:
            self._data[key] = value
            self._flush()

    def has(self, key: str) -> bool:
        with self._lock:
            return key in self._data

    def delete(self, key: str) -> bool:
        with self._lock:
            existed = self._data.pop(key, None) is not None
            if existed:
                self._flush()
            return existed

    def set_if_absent(self, key: str, value: str) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = value
            self._flush()
            return True

    def compare_and_set(self, key: str, expected: str, value: str) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            self._data[key] = value
            self._flush()
            return True

    def compare_and_delete(self, key: str, expected: str) -> bool:
        with self._lock:
            if self._data.get(key) != expected:
                return False
            del self._data[key]
            self._flush()
            return True


# Server-side Lua keeps the read and the write in one step
_COMPARE_AND_SET = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    redis.call('SET', KEYS[1], ARGV[2])
    return 1
end
return 0
"""

_COMPARE_AND_DELETE = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


class RedisStore(KeyValueStore):
    """Redis-backed store; all keys share a prefix"""

    def __init__(self, redis_url: Optional[str] = None, prefix: str = "regimex:"):
        try:
            import redis
        except ImportError:
            raise ImportError("redis package required for Redis storage. Install: pip install redis")
        self.prefix = prefix
        self._client = redis.from_url(redis_url or "redis://localhost:6379/0", decode_responses=True)
        self._compare_and_set = self._client.register_script(_COMPARE_AND_SET)
        self._compare_and_delete = self._client.register_script(_COMPARE_AND_DELETE)

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        return self._client.get(self._key(key))

    def set(self, key: str, value: str):
        self._client.set(self._key(key), value)

    def has(self, key: str) -> bool:
        return bool(self._client.exists(self._key(key)))

    def delete(self, key: str) -> bool:
        return bool(self._client.delete(self._key(key)))

    def set_if_absent(self, key: str, value: str) -> bool:
        return bool(self._client.set(self._key(key), value, nx=True))

    def compare_and_set(self, key: str, expected: str, value: str) -> bool:
        return bool(self._compare_and_set(keys=[self._key(key)], args=[expected, value]))

    def compare_and_delete(self, key: str, expected: str) -> bool:
        return bool(self._compare_and_delete(keys=[self._key(key)], args=[expected]))


def create_store(
    backend: str = "memory",
    path: Optional[str] = None,
    redis_url: Optional[str] = None,
) -> KeyValueStore:
    """
    Build a store for the configured backend.

    Args:
        backend: "memory", "file" or "redis"
        path: JSON file path (file backend)
        redis_url: Redis connection URL (redis backend)
    """
    if backend == "memory":
        return InMemoryStore()
    if backend == "file":
        return JsonFileStore(path or "data/regimex_state.json")
    if backend == "redis":
        return RedisStore(redis_url)
    raise ValueError(f"Invalid store backend: {backend}. Must be 'memory', 'file' or 'redis'")
