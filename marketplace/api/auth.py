"""
Authentication API endpoints.

Login issues a session cookie, logout destroys it, and the remaining
endpoints let an authenticated caller inspect and manage their own sessions.
Login is rate limited to slow down credential stuffing.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from marketplace.api.deps import get_session_manager, require_auth
from marketplace.api.schemas import (
    ChangePasswordRequest,
    LoginRequest,
    RevokedResponse,
    SessionInfo,
    SessionStatusResponse,
    SessionUpdateRequest,
    StatusResponse,
    UserProfile,
)
from marketplace.core.config import settings
from marketplace.core.exceptions import (
    AuthenticationRequired,
    InvalidCredentials,
    StorageUnavailable,
    error_payload,
)
from marketplace.core.limiter import limiter
from marketplace.core.logging_config import log_authentication_attempt
from marketplace.core.security import get_client_ip
from marketplace.db.models.user import User
from marketplace.db.session import get_db
from marketplace.services import users as user_service
from marketplace.sessions.manager import SessionManager
from marketplace.sessions.models import SessionRecord

logger = logging.getLogger(__name__)

router = APIRouter()


def _profile(user: User, record_role: Optional[str] = None) -> UserProfile:
    return UserProfile(
        id=str(user.id),
        email=user.email,
        name=user.name,
        role=record_role or user.role,
    )


@router.post("/login", response_model=UserProfile)
@limiter.limit(settings.rate_limit_auth_endpoints)
def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    db: Session = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Verify credentials and start a session.

    Any session already presented by the caller is revoked first so a
    pre-set identifier can never be carried across a login.
    """
    ip_address = get_client_ip(request)
    user = user_service.authenticate(db, payload.email, payload.password)
    if user is None:
        log_authentication_attempt(False, ip_address=ip_address)
        raise InvalidCredentials()

    previous = manager.cookie.read(request)
    if previous is not None:
        manager.destroy_by_id(previous)

    manager.create(response, user.id, user.email, user.role, request=request)
    log_authentication_attempt(True, user_id=str(user.id), ip_address=ip_address)
    return _profile(user)


@router.post("/logout", response_model=StatusResponse)
def logout(
    request: Request,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
):
    """
    End the current session. Idempotent, and fine without a session.

    A storage failure is reported as 503, but the cookie is still cleared
    on that error response.
    """
    try:
        manager.destroy(request, response)
    except StorageUnavailable as e:
        logger.error("Logout could not delete the session: %s", e.message)
        failed = JSONResponse(status_code=e.status_code, content=error_payload(e))
        manager.cookie.clear(failed)
        return failed
    return StatusResponse(success=True, message="Logged out")


@router.get("/me", response_model=UserProfile)
def current_user(
    record: SessionRecord = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Return the account behind the current session."""
    user = user_service.get_user(db, record.user_id)
    if user is None or not user.is_active:
        raise AuthenticationRequired()
    return _profile(user, record.role.value)


@router.get("/status", response_model=SessionStatusResponse)
def session_status(request: Request):
    """
    Cheap, cache-only session hint for UI routing.

    May report ``authenticated: false`` for a session this worker has not
    cached yet.
    """
    hint = getattr(request.state, "session_hint", None)
    if hint is None:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(authenticated=True, role=hint.role.value)


@router.get("/sessions", response_model=List[SessionInfo])
def my_sessions(
    record: SessionRecord = Depends(require_auth),
    manager: SessionManager = Depends(get_session_manager),
):
    """List the caller's active sessions across devices."""
    return [
        SessionInfo.from_record(item, current_id=record.session_id)
        for item in manager.list_for_user(record.user_id)
    ]


@router.patch("/session", response_model=StatusResponse)
def update_session(
    request: Request,
    payload: SessionUpdateRequest,
    record: SessionRecord = Depends(require_auth),
    manager: SessionManager = Depends(get_session_manager),
):
    if not manager.update(request, payload.model_dump(exclude_unset=True)):
        raise AuthenticationRequired()
    return StatusResponse(success=True, message="Session updated")


@router.post("/change-password", response_model=RevokedResponse)
def change_password(
    request: Request,
    response: Response,
    payload: ChangePasswordRequest,
    record: SessionRecord = Depends(require_auth),
    db: Session = Depends(get_db),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Change the caller's password.

    Every session of the user is revoked, including the current one, and a
    fresh session is issued for this client.
    """
    user = user_service.get_user(db, record.user_id)
    if user is None or not user.is_active:
        raise AuthenticationRequired()
    if not user_service.authenticate(db, user.email, payload.current_password):
        log_authentication_attempt(False, ip_address=get_client_ip(request))
        raise InvalidCredentials("Current password is incorrect")

    user_service.set_password(db, user, payload.new_password)
    revoked = manager.destroy_all_for_user(user.id)
    manager.create(response, user.id, user.email, user.role, request=request)

    logger.info("Password changed for user %s; %d session(s) revoked", user.id, revoked)
    return RevokedResponse(revoked=revoked)
