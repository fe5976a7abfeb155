"""Durable session storage on SQLAlchemy.

One row per session in the ``sessions`` table, keyed by the opaque session
identifier. Rows are parsed into SessionRecord at this boundary. Rows that
fail validation never leave the store; a point lookup deletes them.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from marketplace.core.exceptions import StorageUnavailable
from marketplace.core.logging_config import session_fingerprint
from marketplace.db.models.session_record import UserSession
from marketplace.db.session import get_db_sync
from marketplace.sessions.models import SessionRecord

logger = logging.getLogger(__name__)

# Keeps IN (...) clauses well below driver parameter limits
DELETE_CHUNK_SIZE = 100


class SessionStore:
    """Durable store for session records."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @staticmethod
    def _to_record(row: UserSession) -> Optional[SessionRecord]:
        try:
            return SessionRecord.model_validate(
                {
                    "session_id": row.session_id,
                    "user_id": row.user_id,
                    "email": row.email,
                    "role": row.role,
                    "created_at": row.created_at,
                    "expires_at": row.expires_at,
                    "last_activity": row.last_activity,
                    "user_agent": row.user_agent,
                    "ip_address": row.ip_address,
                }
            )
        except ValidationError as e:
            logger.warning(
                "Discarding malformed session row %s: %d validation error(s)",
                session_fingerprint(row.session_id or ""),
                e.error_count(),
            )
            return None

    def _parse_rows(self, rows: Iterable[UserSession]) -> List[SessionRecord]:
        records = []
        for row in rows:
            record = self._to_record(row)
            if record is not None:
                records.append(record)
        return records

    def put(self, record: SessionRecord) -> None:
        """
        Upsert a session record.

        Raises:
            StorageUnavailable: If the write fails
        """
        with get_db_sync(self._session_factory) as db:
            try:
                db.merge(
                    UserSession(
                        session_id=record.session_id,
                        user_id=record.user_id,
                        email=record.email,
                        role=record.role.value,
                        created_at=record.created_at,
                        expires_at=record.expires_at,
                        last_activity=record.last_activity,
                        user_agent=record.user_agent,
                        ip_address=record.ip_address,
                    )
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    "Session write failed for %s: %s",
                    session_fingerprint(record.session_id),
                    type(e).__name__,
                )
                raise StorageUnavailable("Failed to write session") from e

    def get(self, session_id: str) -> Optional[SessionRecord]:
        """
        Point lookup.

        Raises:
            StorageUnavailable: If the read fails. Callers on the read path
                treat this as "no session".
        """
        with get_db_sync(self._session_factory) as db:
            try:
                row = db.get(UserSession, session_id)
            except SQLAlchemyError as e:
                logger.error(
                    "Session read failed for %s: %s",
                    session_fingerprint(session_id),
                    type(e).__name__,
                )
                raise StorageUnavailable("Failed to read session") from e
            if row is None:
                return None
            record = self._to_record(row)
            if record is None:
                self._discard_malformed(db, session_id)
            return record

    @staticmethod
    def _discard_malformed(db, session_id: str) -> None:
        # Rows that cannot be served are deleted on lookup
        try:
            db.execute(delete(UserSession).where(UserSession.session_id == session_id))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning(
                "Could not remove malformed session row %s: %s",
                session_fingerprint(session_id),
                type(e).__name__,
            )

    def delete(self, session_id: str) -> bool:
        """
        Delete one session. Deleting an absent record is not an error.

        Returns:
            True if a row was removed
        """
        with get_db_sync(self._session_factory) as db:
            try:
                result = db.execute(
                    delete(UserSession).where(UserSession.session_id == session_id)
                )
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(
                    "Session delete failed for %s: %s",
                    session_fingerprint(session_id),
                    type(e).__name__,
                )
                raise StorageUnavailable("Failed to delete session") from e
            return bool(result.rowcount)

    def query_by_user_id(self, user_id: str) -> List[SessionRecord]:
        with get_db_sync(self._session_factory) as db:
            try:
                rows = db.scalars(
                    select(UserSession).where(UserSession.user_id == user_id)
                ).all()
            except SQLAlchemyError as e:
                logger.error("Session query by user failed: %s", type(e).__name__)
                raise StorageUnavailable("Failed to query sessions") from e
            return self._parse_rows(rows)

    def query_expired_before(self, timestamp: int, cap: int) -> List[SessionRecord]:
        """Return at most ``cap`` records whose expiry is strictly before ``timestamp``."""
        with get_db_sync(self._session_factory) as db:
            try:
                rows = db.scalars(
                    select(UserSession)
                    .where(UserSession.expires_at < timestamp)
                    .order_by(UserSession.expires_at)
                    .limit(cap)
                ).all()
            except SQLAlchemyError as e:
                logger.error("Expired session query failed: %s", type(e).__name__)
                raise StorageUnavailable("Failed to query expired sessions") from e
            return self._parse_rows(rows)

    def query_expired_ids_before(self, timestamp: int, cap: int) -> List[str]:
        """
        Identifiers of at most ``cap`` rows whose expiry is strictly before
        ``timestamp``.

        Rows are not parsed, so an expired row that no longer validates is
        still selected for deletion.
        """
        with get_db_sync(self._session_factory) as db:
            try:
                return list(db.scalars(
                    select(UserSession.session_id)
                    .where(UserSession.expires_at < timestamp)
                    .order_by(UserSession.expires_at)
                    .limit(cap)
                ).all())
            except SQLAlchemyError as e:
                logger.error("Expired session query failed: %s", type(e).__name__)
                raise StorageUnavailable("Failed to query expired sessions") from e

    def query_active(self, now: int, cap: int) -> List[SessionRecord]:
        """Return at most ``cap`` non-expired records, most recently active first."""
        with get_db_sync(self._session_factory) as db:
            try:
                rows = db.scalars(
                    select(UserSession)
                    .where(UserSession.expires_at > now)
                    .order_by(UserSession.last_activity.desc())
                    .limit(cap)
                ).all()
            except SQLAlchemyError as e:
                logger.error("Active session query failed: %s", type(e).__name__)
                raise StorageUnavailable("Failed to list sessions") from e
            return self._parse_rows(rows)

    def batch_delete(self, session_ids: Iterable[str]) -> int:
        """
        Best-effort bulk delete by identifier.

        Deletes in chunks, committing each one, so a failing chunk leaves
        the others applied. Only the listed identifiers are ever touched.
        Identifiers that are already gone are not counted.

        Returns:
            Number of rows actually removed

        Raises:
            StorageUnavailable: If any chunk failed; ``deleted`` carries the
                count removed by the chunks that succeeded
        """
        ids = list(dict.fromkeys(session_ids))
        deleted = 0
        failures = 0

        for start in range(0, len(ids), DELETE_CHUNK_SIZE):
            chunk = ids[start:start + DELETE_CHUNK_SIZE]
            with get_db_sync(self._session_factory) as db:
                try:
                    result = db.execute(
                        delete(UserSession).where(UserSession.session_id.in_(chunk))
                    )
                    db.commit()
                    deleted += result.rowcount or 0
                except SQLAlchemyError as e:
                    db.rollback()
                    failures += 1
                    logger.error(
                        "Batch session delete failed for a chunk of %d: %s",
                        len(chunk),
                        type(e).__name__,
                    )

        if failures:
            raise StorageUnavailable(
                f"Failed to delete {failures} batch(es) of sessions", deleted=deleted
            )
        return deleted
