"""
Expiring key-value store with attempt counting.

Used for short-lived secrets such as email verification codes. Injected
wherever it is needed so tests run against the in-memory backend and
production shares state across workers through Redis.
"""
import json
import logging
import threading
from datetime import datetime, timedelta
from functools import lru_cache
from typing import Any, Optional

import redis

from mesa.core.config import get_settings

logger = logging.getLogger(__name__)


class ExpiringStore:
    """Interface for a TTL store. Values must be JSON-serialisable."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def incr_attempts(self, key: str) -> int:
        """Increment and return the attempt counter stored alongside key."""
        raise NotImplementedError


class InMemoryExpiringStore(ExpiringStore):
    """In-memory store with TTL support and size limit."""

    MAX_ENTRIES = 10000  # Prevent unbounded memory growth

    def __init__(self, clock=datetime.now):
        self._clock = clock
        self._lock = threading.Lock()
        self._values: dict[str, Any] = {}
        self._expiry: dict[str, datetime] = {}
        self._attempts: dict[str, int] = {}

    def _evict_expired(self) -> None:
        now = self._clock()
        expired = [k for k, exp in self._expiry.items() if exp <= now]
        for k in expired:
            self._drop(k)

    def _drop(self, key: str) -> None:
        self._values.pop(key, None)
        self._expiry.pop(key, None)
        self._attempts.pop(key, None)

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key not in self._values:
                return None
            if self._clock() >= self._expiry[key]:
                self._drop(key)
                return None
            return self._values[key]

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        with self._lock:
            if len(self._values) >= self.MAX_ENTRIES:
                self._evict_expired()
            self._values[key] = value
            self._expiry[key] = self._clock() + timedelta(seconds=ttl_seconds)
            self._attempts[key] = 0

    def delete(self, key: str) -> None:
        with self._lock:
            self._drop(key)

    def incr_attempts(self, key: str) -> int:
        with self._lock:
            self._attempts[key] = self._attempts.get(key, 0) + 1
            return self._attempts[key]


class RedisExpiringStore(ExpiringStore):
    """Redis-backed store; the attempt counter lives in a sibling key with the same TTL."""

    def __init__(self, client: redis.Redis):
        self._redis = client

    @staticmethod
    def _attempts_key(key: str) -> str:
        return f"{key}:attempts"

    def get(self, key: str) -> Optional[Any]:
        raw = self._redis.get(key)
        return json.loads(raw) if raw else None

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        pipe = self._redis.pipeline()
        pipe.set(key, json.dumps(value, default=str), ex=ttl_seconds)
        pipe.set(self._attempts_key(key), 0, ex=ttl_seconds)
        pipe.execute()

    def delete(self, key: str) -> None:
        self._redis.delete(key, self._attempts_key(key))

    def incr_attempts(self, key: str) -> int:
        return int(self._redis.incr(self._attempts_key(key)))


@lru_cache
def get_expiring_store() -> ExpiringStore:
    """Expiring store selected by REDIS_URL (cached per process)."""
    settings = get_settings()
    if settings.REDIS_URL:
        client = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2, decode_responses=True)
        logger.info("Using Redis expiring store")
        return RedisExpiringStore(client)
    return InMemoryExpiringStore()
