"""
Security tests for authentication and authorization

Cookie attributes, treatment of forged or malformed identifiers, fail-closed
behaviour when storage is unavailable, and keeping session identifiers out
of logs and responses.
"""

import logging
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from marketplace.core.config import Settings
from marketplace.core.exceptions import StorageUnavailable
from marketplace.main import create_app

from tests.utils.factories import DEFAULT_PASSWORD
from tests.utils.helpers import (
    assert_error_payload,
    assert_no_sensitive_data_in_logs,
    assert_security_headers_present,
    session_cookie_from,
)

# Mark all tests in this module as security tests
pytestmark = pytest.mark.security


class TestSessionCookieSecurity:
    """Test session cookie attributes"""

    def test_session_cookie_flags(self, client, make_user):
        make_user()
        response = client.post(
            "/api/auth/login", json={"email": "buyer@example.com", "password": DEFAULT_PASSWORD}
        )

        cookie = session_cookie_from(response)
        assert cookie is not None
        assert cookie["httponly"] is True
        assert cookie["samesite"].lower() == "lax"
        assert cookie["path"] == "/"
        assert int(cookie["max-age"]) == 7 * 24 * 60 * 60
        assert "secure" not in cookie
        assert len(cookie["value"]) == 64

    def test_secure_flag_in_production(self, session_factory, make_user):
        production = Settings(
            _env_file=None,
            ENVIRONMENT="production",
            CORS_ORIGINS=["https://marketplace.example"],
        )
        app = create_app(production, session_factory=session_factory)
        make_user()

        with TestClient(app, base_url="https://testserver") as client:
            response = client.post(
                "/api/auth/login", json={"email": "buyer@example.com", "password": DEFAULT_PASSWORD}
            )

        assert session_cookie_from(response)["secure"] is True

    def test_login_rotates_presented_session(self, client, login):
        login()
        first = client.cookies.get("session")

        response = client.post(
            "/api/auth/login", json={"email": "buyer@example.com", "password": DEFAULT_PASSWORD}
        )
        assert response.status_code == 200
        second = session_cookie_from(response)["value"]

        assert second != first
        # The old identifier no longer authenticates
        client.cookies.clear()
        client.cookies.set("session", first)
        assert client.get("/api/auth/me").status_code == 401

    def test_auth_responses_not_cacheable(self, client):
        response = client.post("/api/auth/logout")
        assert response.headers["cache-control"] == "no-store"
        assert_security_headers_present(response)


class TestForgedSessions:
    """Malformed and guessed identifiers never authenticate"""

    @pytest.mark.parametrize("value", [
        "admin",
        "0" * 63,
        "Z" * 64,
        "' OR 1=1 --",
        "<script>alert(1)</script>",
    ])
    def test_malformed_cookie_is_unauthenticated(self, client, value):
        client.cookies.set("session", value)
        response = client.get("/api/auth/me")
        assert_error_payload(response, 401, "authentication_required")

    def test_well_formed_unknown_identifier(self, client):
        client.cookies.set("session", "e" * 64)
        assert_error_payload(client.get("/api/admin/sessions"), 401, "authentication_required")

    def test_bad_credentials(self, client, make_user):
        make_user()
        response = client.post(
            "/api/auth/login", json={"email": "buyer@example.com", "password": "wrong-password"}
        )
        assert_error_payload(response, 401, "invalid_credentials")
        assert session_cookie_from(response) is None

    def test_unknown_account_same_error(self, client):
        response = client.post(
            "/api/auth/login", json={"email": "nobody@example.com", "password": "whatever"}
        )
        assert_error_payload(response, 401, "invalid_credentials")


class TestFailClosed:
    """Storage errors on the read path must never admit a request"""

    def test_storage_failure_denies_admin_route(self, app, client, login):
        login(email="admin@example.com", role="admin")
        app.state.session_cache.clear()

        with patch.object(app.state.session_store, "get", side_effect=StorageUnavailable()):
            response = client.get("/api/admin/sessions")

        assert_error_payload(response, 401, "authentication_required")

    def test_storage_failure_on_write_is_503(self, app, client, make_user):
        make_user()
        with patch.object(app.state.session_store, "put", side_effect=StorageUnavailable()):
            response = client.post(
                "/api/auth/login", json={"email": "buyer@example.com", "password": DEFAULT_PASSWORD}
            )
        assert_error_payload(response, 503, "storage_unavailable")


class TestDataProtection:
    """Session identifiers never reach logs or non-admin responses"""

    def test_session_id_not_logged(self, client, login, caplog):
        with caplog.at_level(logging.DEBUG):
            login()
            session_id = client.cookies.get("session")
            client.get("/api/auth/me")
            client.post("/api/auth/logout")

        assert session_id
        assert_no_sensitive_data_in_logs(caplog, [session_id, DEFAULT_PASSWORD])

    def test_session_id_not_in_own_listing(self, client, login):
        login()
        session_id = client.cookies.get("session")

        response = client.get("/api/auth/sessions")
        assert response.status_code == 200
        assert session_id not in response.text
        assert response.json()[0]["current"] is True
