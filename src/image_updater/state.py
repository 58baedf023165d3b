"""Shared runtime state: check-result cache and per-image update locks.

One ``RuntimeState`` is created at startup and passed to every check and
update entry point.  Both tables live in memory only and are guarded by
their own ``threading.Lock`` because checks run on the event loop while
update pipelines run on worker threads.  Critical sections never do more
than a dictionary lookup or insert.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from image_updater.constants import CHECK_CACHE_TTL_SECONDS, UPDATE_LOCK_TIMEOUT_SECONDS
from image_updater.errors import UpdateConflictError
from image_updater.logging import get_logger
from image_updater.models import CheckResponse

log = get_logger("image_updater.state")


@dataclass(frozen=True)
class CacheEntry:
    response: CheckResponse
    cached_at: float

    def is_expired(self, now: float, ttl_seconds: float) -> bool:
        return now - self.cached_at > ttl_seconds


@dataclass(frozen=True)
class UpdateLock:
    operation_id: str
    image_key: str
    locked_at: float

    def is_stale(self, now: float, timeout_seconds: float) -> bool:
        return now - self.locked_at > timeout_seconds


class RuntimeState:
    """In-memory cache and lock table keyed by image key."""

    def __init__(
        self,
        lock_timeout_seconds: float = UPDATE_LOCK_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._lock_timeout = lock_timeout_seconds
        self._clock = clock
        self._cache: dict[str, CacheEntry] = {}
        self._cache_guard = threading.Lock()
        self._locks: dict[str, UpdateLock] = {}
        self._locks_guard = threading.Lock()

    # ------------------------------------------------------------------
    # Check cache
    # ------------------------------------------------------------------

    def get_cached(
        self, image_key: str, ttl_seconds: float = CHECK_CACHE_TTL_SECONDS
    ) -> CheckResponse | None:
        """Return the cached response if it is no older than ``ttl_seconds``.

        Expired entries are treated as absent but left in place; they are
        overwritten by the next ``put_cache`` or dropped by
        ``purge_expired_cache``.
        """
        now = self._clock()
        with self._cache_guard:
            entry = self._cache.get(image_key)
        if entry is None or entry.is_expired(now, ttl_seconds):
            return None
        return entry.response

    def put_cache(self, image_key: str, response: CheckResponse) -> None:
        entry = CacheEntry(response=response, cached_at=self._clock())
        with self._cache_guard:
            self._cache[image_key] = entry

    def purge_expired_cache(self, ttl_seconds: float = CHECK_CACHE_TTL_SECONDS) -> int:
        """Drop expired cache entries; returns how many were removed."""
        now = self._clock()
        with self._cache_guard:
            expired = [k for k, e in self._cache.items() if e.is_expired(now, ttl_seconds)]
            for key in expired:
                del self._cache[key]
        return len(expired)

    # ------------------------------------------------------------------
    # Update locks
    # ------------------------------------------------------------------

    def try_lock(self, image_key: str, operation_id: str) -> None:
        """Acquire the update lock for ``image_key``.

        Stale locks (older than the lock timeout) anywhere in the table are
        discarded first.  Raises ``UpdateConflictError`` naming the holder
        if a live lock remains for the key.
        """
        now = self._clock()
        with self._locks_guard:
            stale = [k for k, lk in self._locks.items() if lk.is_stale(now, self._lock_timeout)]
            for key in stale:
                del self._locks[key]

            existing = self._locks.get(image_key)
            if existing is not None:
                raise UpdateConflictError(image_key, existing.operation_id)

            self._locks[image_key] = UpdateLock(
                operation_id=operation_id,
                image_key=image_key,
                locked_at=now,
            )

        if stale:
            log.warning("update_locks_reclaimed", image_keys=stale)
        log.debug("update_lock_acquired", image_key=image_key, operation_id=operation_id)

    def unlock(self, image_key: str, operation_id: str | None = None) -> bool:
        """Release the update lock for ``image_key``.

        Without ``operation_id`` the lock is removed whoever holds it.  With
        one, the lock is only removed if that operation holds it.  Returns
        True if a lock was removed.
        """
        with self._locks_guard:
            existing = self._locks.get(image_key)
            if existing is None:
                return False
            if operation_id is not None and existing.operation_id != operation_id:
                log.warning(
                    "update_lock_owner_mismatch",
                    image_key=image_key,
                    holder=existing.operation_id,
                    requested_by=operation_id,
                )
                return False
            del self._locks[image_key]
        log.debug("update_lock_released", image_key=image_key)
        return True

    def lock_holder(self, image_key: str) -> str | None:
        """Operation id holding a live lock for ``image_key``, if any."""
        now = self._clock()
        with self._locks_guard:
            existing = self._locks.get(image_key)
        if existing is None or existing.is_stale(now, self._lock_timeout):
            return None
        return existing.operation_id

    def is_locked(self, image_key: str) -> bool:
        return self.lock_holder(image_key) is not None

    @contextmanager
    def update_lock(self, image_key: str, operation_id: str) -> Iterator[None]:
        """Hold the update lock for the duration of the block."""
        self.try_lock(image_key, operation_id)
        try:
            yield
        finally:
            self.unlock(image_key, operation_id)
