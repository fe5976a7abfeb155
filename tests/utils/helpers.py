"""
Test helper functions for common testing operations

Controllable time, hand-built Starlette requests for unit tests, and
Set-Cookie parsing for asserting cookie attributes.
"""

import time
from typing import Callable, Dict, List, Optional

from starlette.requests import Request
from starlette.responses import Response

MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS


class FakeClock:
    """Epoch-millisecond clock that only moves when told to"""

    def __init__(self, start_ms: int):
        self.now = start_ms

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def wait_for_condition(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Wait for a condition to become true with timeout"""
    start_time = time.time()
    while time.time() - start_time < timeout:
        if condition():
            return True
        time.sleep(interval)
    return False


def make_request(
    cookies: Optional[Dict[str, str]] = None,
    headers: Optional[Dict[str, str]] = None,
    path: str = "/",
    client_host: str = "203.0.113.10",
) -> Request:
    """Build a bare Starlette request carrying the given cookies and headers"""
    raw_headers = []
    for name, value in (headers or {}).items():
        raw_headers.append((name.lower().encode("latin-1"), value.encode("latin-1")))
    if cookies:
        cookie_header = "; ".join(f"{name}={value}" for name, value in cookies.items())
        raw_headers.append((b"cookie", cookie_header.encode("latin-1")))

    scope = {
        "type": "http",
        "method": "GET",
        "path": path,
        "raw_path": path.encode("latin-1"),
        "query_string": b"",
        "headers": raw_headers,
        "client": (client_host, 50000),
        "server": ("testserver", 80),
        "scheme": "http",
        "root_path": "",
    }
    return Request(scope)


def set_cookie_headers(response) -> List[str]:
    """All Set-Cookie header values of a Starlette or httpx response"""
    headers = response.headers
    if hasattr(headers, "get_list"):
        return headers.get_list("set-cookie")
    return headers.getlist("set-cookie")


def parse_set_cookie(header: str) -> Dict[str, object]:
    """
    Parse one Set-Cookie header into name, value and lower-cased attributes.

    Flag attributes (HttpOnly, Secure) map to True.
    """
    parts = [part.strip() for part in header.split(";")]
    name, _, value = parts[0].partition("=")
    parsed: Dict[str, object] = {"name": name, "value": value.strip('"')}
    for attribute in parts[1:]:
        if not attribute:
            continue
        key, sep, attr_value = attribute.partition("=")
        parsed[key.strip().lower()] = attr_value.strip() if sep else True
    return parsed


def session_cookie_from(response, name: str = "session") -> Optional[Dict[str, object]]:
    """The last Set-Cookie for ``name`` on the response, parsed, or None"""
    found = None
    for header in set_cookie_headers(response):
        parsed = parse_set_cookie(header)
        if parsed["name"] == name:
            found = parsed
    return found


def blank_response() -> Response:
    return Response()


def assert_response_structure(response_data: Dict, expected_keys: List[str], optional_keys: Optional[List[str]] = None):
    """Assert that response has expected structure"""
    optional_keys = optional_keys or []
    for key in expected_keys:
        assert key in response_data, f"Required key '{key}' missing from response"

    unexpected_keys = set(response_data) - set(expected_keys + optional_keys)
    assert not unexpected_keys, f"Unexpected keys in response: {unexpected_keys}"


def get_log_messages(caplog, level: Optional[str] = None) -> List[str]:
    """Get log messages, optionally filtered by level"""
    if level:
        return [record.getMessage() for record in caplog.records if record.levelname == level]
    return [record.getMessage() for record in caplog.records]


def assert_no_sensitive_data_in_logs(caplog, sensitive_patterns: List[str]):
    """Assert that sensitive data patterns don't appear in logs"""
    all_logs = " ".join(get_log_messages(caplog))
    for pattern in sensitive_patterns:
        assert pattern not in all_logs, f"Sensitive pattern '{pattern}' found in logs"


def assert_security_headers_present(response, required_headers: Optional[List[str]] = None):
    """Assert that security headers are present in response"""
    required_headers = required_headers or ["x-content-type-options", "x-frame-options"]
    for header in required_headers:
        assert header in response.headers, f"Security header '{header}' missing from response"


def assert_error_payload(response, status_code: int, code: str):
    """Assert a JSON error response with the given status and machine code"""
    assert response.status_code == status_code, response.text
    body = response.json()
    assert body["code"] == code
    assert "error" in body
