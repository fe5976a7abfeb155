"""Cache-only session lookup.

Used where only in-process state may be consulted, for example middleware
that runs before routing. It never touches the durable store, so it can
miss sessions that exist durably but are not cached in this process yet
(for instance right after they were created by another worker). A miss here
is a hint, not a verdict: authorization decisions go through
SessionManager.resolve().
"""

from typing import Callable, Optional

from fastapi import Request

from marketplace.sessions.cache import SessionCache
from marketplace.sessions.cookies import SessionCookie
from marketplace.sessions.models import SessionRecord, now_ms


class FastPathSessionReader:
    def __init__(
        self,
        cache: SessionCache,
        cookie: SessionCookie,
        clock: Callable[[], int] = now_ms,
    ):
        self.cache = cache
        self.cookie = cookie
        self._clock = clock

    def read(self, request: Request) -> Optional[SessionRecord]:
        """Look up the request's session in the cache only."""
        session_id = self.cookie.read(request)
        if session_id is None:
            return None
        return self.peek(session_id)

    def peek(self, session_id: str) -> Optional[SessionRecord]:
        entry = self.cache.get(session_id)
        if entry is None:
            return None
        if entry.record.is_expired(self._clock()):
            return None
        return entry.record
