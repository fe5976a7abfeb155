"""Unit tests for the durable session store"""

import pytest
from sqlalchemy import text

from marketplace.core.exceptions import StorageUnavailable
from marketplace.db.models.session_record import UserSession
from marketplace.sessions.models import Role
from marketplace.sessions.store import DELETE_CHUNK_SIZE

from tests.utils.factories import SessionRecordFactory
from tests.utils.helpers import MINUTE_MS

pytestmark = pytest.mark.unit

NOW = 1_767_225_600_000


def drop_sessions_table(db_session):
    db_session.execute(text("DROP TABLE sessions"))
    db_session.commit()


class TestPointOperations:
    def test_put_then_get(self, store):
        record = SessionRecordFactory.build(NOW, role="seller")
        store.put(record)

        loaded = store.get(record.session_id)
        assert loaded == record
        assert loaded.role is Role.SELLER

    def test_put_is_an_upsert(self, store):
        record = SessionRecordFactory.build(NOW)
        store.put(record)
        store.put(record.renewed(NOW + 10 * MINUTE_MS, 7 * 24 * 60 * MINUTE_MS))

        loaded = store.get(record.session_id)
        assert loaded.last_activity == NOW + 10 * MINUTE_MS

    def test_get_absent(self, store):
        assert store.get("f" * 64) is None

    def test_delete_reports_existence(self, store):
        record = SessionRecordFactory.build(NOW)
        store.put(record)

        assert store.delete(record.session_id) is True
        assert store.delete(record.session_id) is False
        assert store.get(record.session_id) is None

    def test_malformed_row_is_not_returned(self, store, db_session):
        db_session.add(UserSession(
            session_id="a" * 64,
            user_id="9",
            email="x@example.com",
            role="superuser",
            created_at=NOW,
            expires_at=NOW + MINUTE_MS,
            last_activity=NOW,
        ))
        db_session.commit()

        assert store.get("a" * 64) is None
        assert store.query_by_user_id("9") == []

    def test_malformed_row_is_deleted_on_lookup(self, store, db_session):
        db_session.add(UserSession(
            session_id="b" * 64,
            user_id="9",
            email="x@example.com",
            role="superuser",
            created_at=NOW,
            expires_at=NOW + MINUTE_MS,
            last_activity=NOW,
        ))
        db_session.commit()

        assert store.get("b" * 64) is None
        assert store.delete("b" * 64) is False


class TestQueries:
    def test_query_by_user_id(self, store):
        for _ in range(3):
            store.put(SessionRecordFactory.build(NOW, user_id="1"))
        store.put(SessionRecordFactory.build(NOW, user_id="2"))

        records = store.query_by_user_id("1")
        assert len(records) == 3
        assert {record.user_id for record in records} == {"1"}

    def test_query_expired_before_is_strict_and_capped(self, store):
        boundary = SessionRecordFactory.build(NOW, expires_at=NOW)
        store.put(boundary)
        expired = [SessionRecordFactory.build_expired(NOW, expired_for_ms=i + 1) for i in range(5)]
        for record in expired:
            store.put(record)

        results = store.query_expired_before(NOW, cap=3)
        assert len(results) == 3
        assert boundary.session_id not in {record.session_id for record in results}
        assert all(record.expires_at < NOW for record in results)

    def test_expired_ids_include_malformed_rows(self, store, db_session):
        store.put(SessionRecordFactory.build(NOW))
        expired = SessionRecordFactory.build_expired(NOW)
        store.put(expired)
        db_session.add(UserSession(
            session_id="c" * 64,
            user_id="9",
            email="x@example.com",
            role="superuser",
            created_at=NOW - 8 * 24 * 60 * MINUTE_MS,
            expires_at=NOW - 24 * 60 * MINUTE_MS,
            last_activity=NOW - 8 * 24 * 60 * MINUTE_MS,
        ))
        db_session.commit()

        ids = store.query_expired_ids_before(NOW, cap=10)
        assert ids == ["c" * 64, expired.session_id]

    def test_query_active_ordering_and_cap(self, store):
        for offset in range(5):
            store.put(SessionRecordFactory.build(NOW, last_activity=NOW - offset * MINUTE_MS))
        store.put(SessionRecordFactory.build_expired(NOW))

        results = store.query_active(NOW, cap=4)
        assert len(results) == 4
        activities = [record.last_activity for record in results]
        assert activities == sorted(activities, reverse=True)
        assert all(not record.is_expired(NOW) for record in results)


class TestBatchDelete:
    def test_counts_only_existing_rows(self, store):
        records = [SessionRecordFactory.build(NOW) for _ in range(3)]
        for record in records:
            store.put(record)

        ids = [record.session_id for record in records] + ["0" * 64, records[0].session_id]
        assert store.batch_delete(ids) == 3
        assert store.batch_delete(ids) == 0

    def test_spans_multiple_chunks(self, store):
        total = DELETE_CHUNK_SIZE + 7
        records = [SessionRecordFactory.build(NOW) for _ in range(total)]
        for record in records:
            store.put(record)

        assert store.batch_delete(record.session_id for record in records) == total

    def test_never_touches_unlisted_rows(self, store):
        keep = SessionRecordFactory.build(NOW)
        drop = SessionRecordFactory.build(NOW)
        store.put(keep)
        store.put(drop)

        store.batch_delete([drop.session_id])
        assert store.get(keep.session_id) is not None

    def test_empty_input(self, store):
        assert store.batch_delete([]) == 0


class TestStorageFailures:
    def test_write_failure_raises(self, store, db_session):
        drop_sessions_table(db_session)
        with pytest.raises(StorageUnavailable):
            store.put(SessionRecordFactory.build(NOW))

    def test_read_failure_raises(self, store, db_session):
        drop_sessions_table(db_session)
        with pytest.raises(StorageUnavailable):
            store.get("a" * 64)

    def test_batch_failure_reports_partial_count(self, store, db_session):
        drop_sessions_table(db_session)
        with pytest.raises(StorageUnavailable) as exc_info:
            store.batch_delete(["a" * 64])
        assert exc_info.value.deleted == 0
