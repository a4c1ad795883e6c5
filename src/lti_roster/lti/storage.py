"""
Launch data storage for PyLTI1p3.

Stores nonces, state, and launch data with TTL expiry, either in Redis or in
process memory. Server-side storage avoids third-party cookie issues in
iframe contexts.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from typing import Any, Optional

from pylti1p3.launch_data_storage.base import LaunchDataStorage

logger = logging.getLogger(__name__)

_DEFAULT_TTL = 7200  # 2 hours


class RedisLaunchDataStorage(LaunchDataStorage):
    """Stores LTI launch data in Redis with automatic expiry."""

    _PREFIX = "lti1p3:"

    def __init__(self, redis_client):
        super().__init__()
        self._redis = redis_client

    @classmethod
    def from_url(cls, redis_url: str = "redis://localhost:6379/0") -> "RedisLaunchDataStorage":
        """Create storage from Redis URL using sync client (PyLTI1p3 is sync)."""
        import redis as sync_redis

        client = sync_redis.Redis.from_url(redis_url, decode_responses=True)
        return cls(client)

    def get_session_cookie_name(self) -> None:
        # Keys are not scoped by session; launch ids are random
        return None

    def can_set_keys_expiration(self) -> bool:
        return True

    def _prepare_key(self, key: str) -> str:
        return f"{self._PREFIX}{key}"

    def get_value(self, key: str) -> Optional[dict]:
        value = self._redis.get(self._prepare_key(key))
        if value:
            try:
                return json.loads(value)
            except (json.JSONDecodeError, TypeError):
                logger.warning("Discarding undecodable launch data under %s", key)
                return None
        return None

    def set_value(self, key: str, value: Any, exp: Optional[int] = None) -> None:
        self._redis.setex(self._prepare_key(key), exp or _DEFAULT_TTL, json.dumps(value))

    def check_value(self, key: str) -> bool:
        return bool(self._redis.exists(self._prepare_key(key)))


class MemoryLaunchDataStorage(LaunchDataStorage):
    """Keeps LTI launch data in a process-local dict with expiry.

    Only suitable for a single worker process.
    """

    def __init__(self, clock=time.monotonic):
        super().__init__()
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[float, str]] = {}

    def get_session_cookie_name(self) -> None:
        # Same keying as RedisLaunchDataStorage
        return None

    def can_set_keys_expiration(self) -> bool:
        return True

    def _live_entry(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, serialized = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return serialized

    def get_value(self, key: str) -> Optional[dict]:
        serialized = self._live_entry(key)
        return json.loads(serialized) if serialized is not None else None

    def set_value(self, key: str, value: Any, exp: Optional[int] = None) -> None:
        # Stored as JSON, same as Redis; readers always get a fresh copy
        serialized = json.dumps(value)
        with self._lock:
            self._entries[key] = (self._clock() + (exp or _DEFAULT_TTL), serialized)

    def check_value(self, key: str) -> bool:
        return self._live_entry(key) is not None


def build_launch_data_storage(redis_url: str = "") -> LaunchDataStorage:
    """Redis storage when *redis_url* is set, in-memory storage otherwise."""
    if redis_url:
        logger.info("LTI launch data storage initialized (Redis)")
        return RedisLaunchDataStorage.from_url(redis_url)
    logger.info("LTI launch data storage initialized (in-memory)")
    return MemoryLaunchDataStorage()
