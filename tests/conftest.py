"""
Global test configuration and fixtures for the marketplace session service

Shared fixtures for database setup, a controllable clock, the session
components wired together, and an application client built through the
app factory against a throwaway SQLite database.
"""

import os
import tempfile

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from marketplace.core.config import Settings
from marketplace.core.limiter import limiter
from marketplace.db import models as _models  # noqa: F401
from marketplace.db.base import Base
from marketplace.main import create_app
from marketplace.services import users as user_service
from marketplace.sessions import (
    AuthorizationGate,
    FastPathSessionReader,
    SessionCache,
    SessionManager,
    SessionStore,
)
from tests.utils.factories import DEFAULT_PASSWORD
from tests.utils.helpers import FakeClock

# A fixed, plausible wall-clock instant (2026-01-01T00:00:00Z)
START_MS = 1_767_225_600_000


# ============================================================================
# Test Environment Setup
# ============================================================================

@pytest.fixture(scope="function")
def test_settings():
    """Settings for testing, built directly rather than mutating the global"""
    return Settings(
        ENVIRONMENT="test",
        DEBUG=True,
        DATABASE_URL="sqlite://",
        CRON_SECRET=None,
        CORS_ORIGINS=["http://testserver"],
    )


@pytest.fixture(scope="function")
def clock():
    return FakeClock(START_MS)


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def session_factory():
    """Create a temporary SQLite database for each test function"""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    yield TestingSessionLocal

    # Cleanup
    engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Provide database session for tests"""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ============================================================================
# Session Component Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def store(session_factory):
    return SessionStore(session_factory)


@pytest.fixture(scope="function")
def cache(test_settings, clock):
    return SessionCache(ttl_ms=test_settings.SESSION_CACHE_TTL_SECONDS * 1000, clock=clock)


@pytest.fixture(scope="function")
def manager(store, cache, test_settings, clock):
    return SessionManager.from_settings(store, cache, test_settings, clock=clock)


@pytest.fixture(scope="function")
def fast_path(cache, manager, clock):
    return FastPathSessionReader(cache, manager.cookie, clock=clock)


@pytest.fixture(scope="function")
def gate(manager):
    return AuthorizationGate(manager)


# ============================================================================
# Application Client Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def app(test_settings, session_factory, clock):
    return create_app(test_settings, session_factory=session_factory, clock=clock)


@pytest.fixture(scope="function")
def client(app):
    """Create FastAPI test client; the lifespan runs for the duration of the test"""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_limiter():
    """Clear rate limit counters so tests never affect each other"""
    limiter.reset()
    yield
    limiter.reset()


# ============================================================================
# User Fixtures
# ============================================================================

@pytest.fixture(scope="function")
def make_user(db_session):
    """Factory fixture creating persisted accounts"""
    def _make_user(email: str = "buyer@example.com", role: str = "user", password: str = DEFAULT_PASSWORD):
        return user_service.create_user(db_session, email, password, role=role, name=email.split("@")[0])
    return _make_user


@pytest.fixture(scope="function")
def login(client, make_user):
    """Create an account and log the test client in as it"""
    def _login(email: str = "buyer@example.com", role: str = "user"):
        user = make_user(email=email, role=role)
        response = client.post("/api/auth/login", json={"email": email, "password": DEFAULT_PASSWORD})
        assert response.status_code == 200, response.text
        return user
    return _login


# ============================================================================
# Test Markers and Configuration
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers and settings"""
    config.addinivalue_line("markers", "critical: mark test as critical path functionality")
    config.addinivalue_line("markers", "security: mark test as security-related")
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers based on file location"""
    for item in items:
        path = str(item.fspath)
        if "security" in path:
            item.add_marker(pytest.mark.security)
        if "integration" in path:
            item.add_marker(pytest.mark.integration)
        if "unit" in path:
            item.add_marker(pytest.mark.unit)
