"""In-process session cache.

A process-wide, time-boxed copy of recently read session records. The cache
is never the source of truth: entries only ever come from records that were
written to, or read from, the durable store.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from marketplace.sessions.models import SessionRecord, now_ms

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedSession:
    record: SessionRecord
    cached_at: int


class SessionCache:
    """
    Session cache with a fixed freshness window.

    An entry older than ``ttl_ms`` is treated as absent by readers even if
    it has not been swept yet. Freshness says nothing about the session's
    own expiry; callers still check ``record.expires_at``.

    One instance is created per process at application startup and shared
    by the lifecycle manager and the fast-path reader.
    """

    def __init__(self, ttl_ms: int, clock: Callable[[], int] = now_ms):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: Dict[str, CachedSession] = {}
        self._lock = threading.Lock()

    def _is_fresh(self, entry: CachedSession, now: int) -> bool:
        return now - entry.cached_at < self.ttl_ms

    def get(self, session_id: str) -> Optional[CachedSession]:
        """Return the entry if present and still fresh."""
        with self._lock:
            entry = self._entries.get(session_id)
        if entry is None or not self._is_fresh(entry, self._clock()):
            return None
        return entry

    def set(self, session_id: str, record: SessionRecord) -> None:
        with self._lock:
            self._entries[session_id] = CachedSession(record=record, cached_at=self._clock())

    def delete(self, session_id: str) -> None:
        with self._lock:
            self._entries.pop(session_id, None)

    def delete_for_user(self, user_id: str) -> int:
        """Drop every cached entry that belongs to ``user_id``."""
        with self._lock:
            doomed = [sid for sid, entry in self._entries.items() if entry.record.user_id == user_id]
            for sid in doomed:
                del self._entries[sid]
        return len(doomed)

    def sweep(self) -> int:
        """
        Remove entries older than the freshness window.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        with self._lock:
            stale = [sid for sid, entry in self._entries.items() if not self._is_fresh(entry, now)]
            for sid in stale:
                del self._entries[sid]
        if stale:
            logger.debug("Session cache sweep removed %d entries", len(stale))
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class CacheSweeper:
    """Periodic background sweep of a SessionCache, owned by the application lifespan."""

    def __init__(self, cache: SessionCache, interval_seconds: float):
        self.cache = cache
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="session-cache-sweeper", daemon=True
        )
        self._thread.start()
        logger.info("Session cache sweeper started (interval=%ss)", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Session cache sweeper stopped")

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.cache.sweep()
            except Exception:
                # A failed sweep must not kill the thread; the next tick retries
                logger.exception("Session cache sweep failed")
