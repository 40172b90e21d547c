"""
Named locks with bounded acquisition for table and waitlist writes.

Booking, cancellation, check-in, release and manual status changes hold the
lock of the table they touch; waitlist writes hold the restaurant's waitlist
lock. A lock that cannot be acquired within the timeout raises Busy so the
caller can retry with backoff instead of blocking indefinitely.

InMemoryLockManager serialises within one process (tests, single worker).
RedisLockManager serialises across workers.
"""
import logging
import threading
from contextlib import contextmanager
from functools import lru_cache
from typing import Iterator, Optional

import redis
from redis.exceptions import LockError

from mesa.core.config import get_settings
from mesa.core.errors import Busy

logger = logging.getLogger(__name__)


def table_lock_key(table_id) -> str:
    return f"mesa:lock:table:{table_id}"


def waitlist_lock_key(restaurant_id) -> str:
    return f"mesa:lock:waitlist:{restaurant_id}"


def reservation_lock_key(reservation_id) -> str:
    # Only for reservations whose table has since been deleted
    return f"mesa:lock:reservation:{reservation_id}"


class LockManager:
    """Interface: hold(key, timeout) is a context manager raising Busy."""

    def __init__(self, default_timeout: float):
        self.default_timeout = default_timeout

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        raise NotImplementedError


class InMemoryLockManager(LockManager):
    """Process-local locks, one threading.Lock per key."""

    def __init__(self, default_timeout: float = 5.0):
        super().__init__(default_timeout)
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        wait = self.default_timeout if timeout is None else timeout
        lock = self._lock_for(key)
        if not lock.acquire(timeout=wait):
            logger.warning(f"Lock {key} not acquired within {wait}s")
            raise Busy(f"Resource is busy, please retry ({key.rsplit(':', 1)[-1]})")
        try:
            yield
        finally:
            lock.release()


class RedisLockManager(LockManager):
    """Redis-backed locks shared by every API worker."""

    def __init__(self, client: redis.Redis, default_timeout: float = 5.0, lease_seconds: int = 30):
        super().__init__(default_timeout)
        self._redis = client
        self._lease_seconds = lease_seconds

    @contextmanager
    def hold(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        wait = self.default_timeout if timeout is None else timeout
        lock = self._redis.lock(key, timeout=self._lease_seconds, blocking_timeout=wait)
        if not lock.acquire():
            logger.warning(f"Redis lock {key} not acquired within {wait}s")
            raise Busy(f"Resource is busy, please retry ({key.rsplit(':', 1)[-1]})")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError as e:
                # Lease expired while held; the transaction already committed or rolled back.
                logger.warning(f"Redis lock {key} lost before release: {e}")


@lru_cache
def get_lock_manager() -> LockManager:
    """Lock manager selected by REDIS_URL (cached per process)."""
    settings = get_settings()
    if settings.REDIS_URL:
        client = redis.from_url(settings.REDIS_URL, socket_connect_timeout=2)
        return RedisLockManager(
            client,
            default_timeout=settings.LOCK_TIMEOUT_SECONDS,
            lease_seconds=settings.LOCK_LEASE_SECONDS,
        )
    return InMemoryLockManager(default_timeout=settings.LOCK_TIMEOUT_SECONDS)
