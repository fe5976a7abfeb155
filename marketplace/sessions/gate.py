"""Role-based authorization gate.

Per request the gate moves through::

    NO_SESSION -> COOKIE_PRESENT -> VALID -> ADMITTED
                                          -> REJECTED(insufficient_privilege)

and any failure before VALID ends in REJECTED(authentication_required).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from fastapi import Request, Response

from marketplace.core.exceptions import AuthenticationRequired, InsufficientPrivilege
from marketplace.core.logging_config import log_security_event
from marketplace.core.security import get_client_ip
from marketplace.sessions.manager import SessionManager
from marketplace.sessions.models import Role, SessionRecord

logger = logging.getLogger(__name__)


class GateOutcome(str, Enum):
    ADMITTED = "admitted"
    AUTHENTICATION_REQUIRED = "authentication_required"
    INSUFFICIENT_PRIVILEGE = "insufficient_privilege"


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    record: Optional[SessionRecord] = None

    @property
    def admitted(self) -> bool:
        return self.outcome is GateOutcome.ADMITTED


def normalize_roles(roles: Optional[Iterable[object]]) -> Optional[frozenset]:
    """None means any authenticated principal."""
    if roles is None:
        return None
    return frozenset(Role.parse(role) for role in roles)


class AuthorizationGate:
    """Admits or rejects a request before any business logic runs."""

    def __init__(self, manager: SessionManager):
        self.manager = manager

    def evaluate(
        self,
        request: Request,
        allowed_roles: Optional[Iterable[object]] = None,
        response: Optional[Response] = None,
    ) -> GateDecision:
        record = self.manager.resolve(request, response=response)
        if record is None:
            return GateDecision(GateOutcome.AUTHENTICATION_REQUIRED)

        roles = normalize_roles(allowed_roles)
        if roles is not None and record.role not in roles:
            return GateDecision(GateOutcome.INSUFFICIENT_PRIVILEGE, record)

        return GateDecision(GateOutcome.ADMITTED, record)

    def admit(
        self,
        request: Request,
        allowed_roles: Optional[Iterable[object]] = None,
        response: Optional[Response] = None,
    ) -> SessionRecord:
        """
        Return the caller's session or raise.

        Raises:
            AuthenticationRequired: No valid session
            InsufficientPrivilege: Valid session, role not allowed
        """
        decision = self.evaluate(request, allowed_roles, response=response)

        if decision.outcome is GateOutcome.AUTHENTICATION_REQUIRED:
            raise AuthenticationRequired()

        if decision.outcome is GateOutcome.INSUFFICIENT_PRIVILEGE:
            log_security_event(
                "authorization_denied",
                f"Forbidden: role {decision.record.role.value} denied on {request.url.path}",
                level="high",
                user_id=decision.record.user_id,
                ip_address=get_client_ip(request),
            )
            raise InsufficientPrivilege()

        return decision.record
