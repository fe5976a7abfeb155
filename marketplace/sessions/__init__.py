"""
Session Module

Purpose: Session lifecycle, caching and role-based authorization
Interface: SessionManager, FastPathSessionReader, AuthorizationGate
Hidden: Identifier generation, cookie policy, cache freshness, durable storage
"""

from .cache import CacheSweeper, CachedSession, SessionCache
from .cookies import SessionCookie
from .fast_path import FastPathSessionReader
from .gate import AuthorizationGate, GateDecision, GateOutcome
from .manager import SessionManager, SessionStats
from .models import Role, SessionRecord, now_ms
from .store import SessionStore

__all__ = [
    "AuthorizationGate",
    "CacheSweeper",
    "CachedSession",
    "FastPathSessionReader",
    "GateDecision",
    "GateOutcome",
    "Role",
    "SessionCache",
    "SessionCookie",
    "SessionManager",
    "SessionRecord",
    "SessionStats",
    "SessionStore",
    "now_ms",
]
