"""Session lifecycle management.

Creates, resolves (with sliding renewal), updates and destroys sessions.
Reads go cache first, durable store on miss. Every write goes to the durable
store before the cache is touched, and the cache is invalidated rather than
repopulated after a write so the next read fetches authoritative data.

Read-path storage failures resolve to "no session" (fail-closed). Write-path
failures raise StorageUnavailable to the caller.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from fastapi import Request, Response
from pydantic import ValidationError

from marketplace.core.config import Settings
from marketplace.core.exceptions import InvalidSessionUpdate, StorageUnavailable
from marketplace.core.logging_config import log_security_event, session_fingerprint
from marketplace.core.security import generate_session_id, get_client_ip
from marketplace.sessions.cache import SessionCache
from marketplace.sessions.cookies import SessionCookie
from marketplace.sessions.models import Role, SessionRecord, now_ms
from marketplace.sessions.store import SessionStore

logger = logging.getLogger(__name__)

# Fields a caller may change through update(); everything else is stripped
MUTABLE_FIELDS = frozenset({"email", "user_agent", "ip_address"})


@dataclass
class SessionStats:
    total: int = 0
    active: int = 0
    by_role: Dict[str, int] = field(default_factory=lambda: {role.value: 0 for role in Role})


class SessionManager:
    """Owns the session lifecycle for one process."""

    def __init__(
        self,
        store: SessionStore,
        cache: SessionCache,
        cookie: SessionCookie,
        ttl_ms: int,
        activity_threshold_ms: int,
        cleanup_batch_size: int = 500,
        list_limit: int = 1000,
        active_window_ms: int = 30 * 60 * 1000,
        clock: Callable[[], int] = now_ms,
    ):
        if activity_threshold_ms >= ttl_ms:
            raise ValueError("activity threshold must be smaller than the session TTL")
        self.store = store
        self.cache = cache
        self.cookie = cookie
        self.ttl_ms = ttl_ms
        self.activity_threshold_ms = activity_threshold_ms
        self.cleanup_batch_size = cleanup_batch_size
        self.list_limit = list_limit
        self.active_window_ms = active_window_ms
        self._clock = clock

    @classmethod
    def from_settings(
        cls,
        store: SessionStore,
        cache: SessionCache,
        app_settings: Settings,
        clock: Callable[[], int] = now_ms,
    ) -> "SessionManager":
        cookie = SessionCookie(
            name=app_settings.SESSION_COOKIE_NAME,
            max_age=app_settings.SESSION_TTL_SECONDS,
            secure=app_settings.cookie_secure,
        )
        return cls(
            store=store,
            cache=cache,
            cookie=cookie,
            ttl_ms=app_settings.SESSION_TTL_SECONDS * 1000,
            activity_threshold_ms=app_settings.SESSION_ACTIVITY_UPDATE_THRESHOLD_SECONDS * 1000,
            cleanup_batch_size=app_settings.SESSION_CLEANUP_BATCH_SIZE,
            list_limit=app_settings.SESSION_LIST_LIMIT,
            active_window_ms=app_settings.SESSION_ACTIVE_WINDOW_MINUTES * 60 * 1000,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        response: Response,
        user_id: Any,
        email: str,
        role: Any,
        request: Optional[Request] = None,
    ) -> str:
        """
        Create a session for an authenticated principal and attach its cookie.

        Args:
            response: Response that receives the session cookie
            user_id: Identifier of the principal
            email: Contact address carried on the session
            role: One of user, seller, admin (normalized; anything else raises)
            request: Optional inbound request for user agent and IP capture

        Returns:
            The new session identifier

        Raises:
            InvalidRole: If ``role`` is not one of the known roles
            StorageUnavailable: If the durable write fails
        """
        parsed_role = Role.parse(role)
        now = self._clock()
        session_id = generate_session_id()

        record = SessionRecord(
            session_id=session_id,
            user_id=str(user_id),
            email=email,
            role=parsed_role,
            created_at=now,
            expires_at=now + self.ttl_ms,
            last_activity=now,
            user_agent=request.headers.get("user-agent") if request is not None else None,
            ip_address=get_client_ip(request) if request is not None else None,
        )

        self.store.put(record)
        self.cache.set(session_id, record)
        self.cookie.attach(response, session_id)

        log_security_event(
            "session_created",
            f"Session {session_fingerprint(session_id)} created",
            user_id=record.user_id,
            ip_address=record.ip_address,
            extra={"role": parsed_role.value},
        )
        return session_id

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def resolve(self, request: Request, response: Optional[Response] = None) -> Optional[SessionRecord]:
        """
        Resolve the session presented by the request's cookie.

        When a sliding renewal is written and ``response`` is given, the
        cookie is re-issued with a fresh Max-Age.
        """
        session_id = self.cookie.read(request)
        if session_id is None:
            return None
        return self.get(session_id, response=response)

    def get(self, session_id: str, response: Optional[Response] = None) -> Optional[SessionRecord]:
        """Full read path for a known identifier: cache, then durable store."""
        now = self._clock()

        entry = self.cache.get(session_id)
        if entry is not None:
            if entry.record.is_expired(now):
                self._expire(session_id)
                return None
            return self._maybe_renew(entry.record, now, response)

        try:
            record = self.store.get(session_id)
        except StorageUnavailable:
            logger.warning(
                "Treating session %s as absent after a storage read failure",
                session_fingerprint(session_id),
            )
            return None

        if record is None:
            self.cache.delete(session_id)
            return None

        if record.is_expired(now):
            self._expire(session_id)
            return None

        self.cache.set(session_id, record)
        return self._maybe_renew(record, now, response)

    def _maybe_renew(
        self, record: SessionRecord, now: int, response: Optional[Response]
    ) -> SessionRecord:
        if now - record.last_activity <= self.activity_threshold_ms:
            return record

        renewed = record.renewed(now, self.ttl_ms)
        try:
            self.store.put(renewed)
        except StorageUnavailable:
            # The stored record is still valid; the next request retries
            logger.warning(
                "Sliding renewal write failed for session %s",
                session_fingerprint(record.session_id),
            )
            return record

        self.cache.delete(record.session_id)
        if response is not None:
            self.cookie.attach(response, record.session_id)
        logger.debug("Session %s renewed", session_fingerprint(record.session_id))
        return renewed

    def _expire(self, session_id: str) -> None:
        self.cache.delete(session_id)
        try:
            self.store.delete(session_id)
        except StorageUnavailable:
            logger.warning(
                "Could not delete expired session %s; the cleanup job will retry",
                session_fingerprint(session_id),
            )
            return
        log_security_event(
            "session_expired",
            f"Expired session {session_fingerprint(session_id)} removed",
        )

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update(self, request: Request, fields: Mapping[str, Any]) -> bool:
        """
        Apply a partial update to the current request's session.

        Immutable fields (user_id, role, created_at, session_id and the
        computed timestamps) are stripped. The write bumps last_activity and restarts
        the sliding window, then invalidates the cache entry.

        Returns:
            False if the request carries no valid session

        Raises:
            InvalidSessionUpdate: If a mutable field has an invalid value
            StorageUnavailable: If the durable write fails
        """
        session_id = self.cookie.read(request)
        if session_id is None:
            return False

        current = self.get(session_id)
        if current is None:
            return False

        changes = {key: value for key, value in fields.items() if key in MUTABLE_FIELDS}
        ignored = sorted(set(fields) - MUTABLE_FIELDS)
        if ignored:
            logger.info("Ignoring immutable session fields on update: %s", ", ".join(ignored))

        now = self._clock()
        merged = current.model_dump()
        merged.update(changes)
        merged.update(last_activity=now, expires_at=now + self.ttl_ms)
        try:
            updated = SessionRecord.model_validate(merged)
        except ValidationError as e:
            raise InvalidSessionUpdate(
                details={"fields": sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})}
            ) from None

        self.store.put(updated)
        self.cache.delete(session_id)
        return True

    # ------------------------------------------------------------------
    # Destruction
    # ------------------------------------------------------------------

    def destroy(self, request: Request, response: Response) -> None:
        """Log out the current request. Idempotent; the cookie is always cleared."""
        session_id = self.cookie.read(request)
        try:
            if session_id is not None:
                self.cache.delete(session_id)
                self.store.delete(session_id)
                log_security_event(
                    "session_destroyed",
                    f"Session {session_fingerprint(session_id)} destroyed on logout",
                )
        finally:
            self.cookie.clear(response)

    def destroy_by_id(self, session_id: str) -> bool:
        """Administrative delete of one session. Returns True if it existed."""
        self.cache.delete(session_id)
        removed = self.store.delete(session_id)
        if removed:
            log_security_event(
                "session_revoked",
                f"Session {session_fingerprint(session_id)} revoked",
                level="medium",
            )
        return removed

    def destroy_all_for_user(self, user_id: Any) -> int:
        """
        Revoke every session that belongs to a user.

        Returns:
            Number of sessions destroyed (zero matches is not an error)
        """
        user_id = str(user_id)
        records = self.store.query_by_user_id(user_id)
        self.cache.delete_for_user(user_id)
        if not records:
            return 0

        for record in records:
            self.cache.delete(record.session_id)
        count = self.store.batch_delete(record.session_id for record in records)

        log_security_event(
            "sessions_revoked",
            f"Revoked {count} session(s) for user",
            level="medium",
            user_id=user_id,
        )
        return count

    # ------------------------------------------------------------------
    # Listing and housekeeping
    # ------------------------------------------------------------------

    def list_for_user(self, user_id: Any) -> List[SessionRecord]:
        """
        Non-expired sessions of one user, most recently active first.

        Expired sessions met along the way are deleted.
        """
        now = self._clock()
        records = self.store.query_by_user_id(str(user_id))

        active = [record for record in records if not record.is_expired(now)]
        expired_ids = [record.session_id for record in records if record.is_expired(now)]
        if expired_ids:
            for session_id in expired_ids:
                self.cache.delete(session_id)
            try:
                self.store.batch_delete(expired_ids)
            except StorageUnavailable:
                logger.warning("Could not prune %d expired session(s) while listing", len(expired_ids))

        return sorted(active, key=lambda record: record.last_activity, reverse=True)

    def list_all(self) -> List[SessionRecord]:
        """Non-expired sessions across all users, capped at ``list_limit``."""
        return self.store.query_active(self._clock(), self.list_limit)

    def stats(self, sessions: Optional[List[SessionRecord]] = None) -> SessionStats:
        """
        Aggregate counts over non-expired sessions.

        ``active`` counts sessions with activity inside the active window.
        """
        if sessions is None:
            sessions = self.list_all()
        now = self._clock()

        stats = SessionStats(total=len(sessions))
        for record in sessions:
            if now - record.last_activity <= self.active_window_ms:
                stats.active += 1
            stats.by_role[record.role.value] = stats.by_role.get(record.role.value, 0) + 1
        return stats

    def cleanup_expired(self) -> int:
        """
        Delete one bounded batch of expired sessions from the durable store.

        Safe to run concurrently with itself: a record deleted by another
        run is simply not counted again.

        Returns:
            Number of records deleted by this run
        """
        now = self._clock()
        expired = self.store.query_expired_ids_before(now, self.cleanup_batch_size)
        if not expired:
            return 0

        for session_id in expired:
            self.cache.delete(session_id)
        deleted = self.store.batch_delete(expired)

        log_security_event(
            "sessions_cleanup",
            f"Session cleanup removed {deleted} expired session(s)",
            extra={"batch_size": self.cleanup_batch_size, "candidates": len(expired)},
        )
        return deleted
