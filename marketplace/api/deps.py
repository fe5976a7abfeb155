"""FastAPI dependencies for session access and role gates."""

from typing import Callable

from fastapi import Request, Response

from marketplace.sessions.gate import AuthorizationGate, normalize_roles
from marketplace.sessions.manager import SessionManager
from marketplace.sessions.models import Role, SessionRecord


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_gate(request: Request) -> AuthorizationGate:
    return request.app.state.authorization_gate


def require_auth(request: Request, response: Response) -> SessionRecord:
    """Any authenticated principal."""
    return get_gate(request).admit(request, response=response)


def require_roles(*roles) -> Callable[..., SessionRecord]:
    """
    Build a dependency that admits only the given roles.

    Roles are validated when the route is declared, so a typo fails at
    import time instead of silently rejecting everyone.
    """
    allowed = normalize_roles(roles)

    def dependency(request: Request, response: Response) -> SessionRecord:
        return get_gate(request).admit(request, allowed, response=response)

    return dependency


require_admin = require_roles(Role.ADMIN)
require_seller = require_roles(Role.SELLER, Role.ADMIN)
