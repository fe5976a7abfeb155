"""Administrative session endpoints. Read-only views plus revocation."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from marketplace.api.deps import get_session_manager, require_admin
from marketplace.api.schemas import (
    RevokedResponse,
    SessionInfo,
    SessionListResponse,
    SessionStatsResponse,
    StatusResponse,
)
from marketplace.core.config import settings
from marketplace.core.limiter import limiter
from marketplace.core.security import is_well_formed_session_id
from marketplace.sessions.manager import SessionManager
from marketplace.sessions.models import SessionRecord

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/sessions", response_model=SessionListResponse)
@limiter.limit(settings.rate_limit_read_endpoints)
def list_sessions(
    request: Request,
    response: Response,
    admin: SessionRecord = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
):
    """
    Up to the configured cap of non-expired sessions, with aggregate counts.

    Best-effort view for operators; it never feeds an authorization decision.
    """
    sessions = manager.list_all()
    stats = manager.stats(sessions)
    return SessionListResponse(
        sessions=[
            SessionInfo.from_record(record, include_id=True, current_id=admin.session_id)
            for record in sessions
        ],
        stats=SessionStatsResponse.from_stats(stats),
    )


@router.delete("/sessions/{session_id}", response_model=StatusResponse)
def revoke_session(
    session_id: str,
    admin: SessionRecord = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
):
    if not is_well_formed_session_id(session_id) or not manager.destroy_by_id(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    logger.info("Admin %s revoked a session", admin.user_id)
    return StatusResponse(success=True, message="Session revoked")


@router.delete("/users/{user_id}/sessions", response_model=RevokedResponse)
def revoke_user_sessions(
    user_id: str,
    admin: SessionRecord = Depends(require_admin),
    manager: SessionManager = Depends(get_session_manager),
):
    """Force a global logout for one user. Zero matches is a valid result."""
    revoked = manager.destroy_all_for_user(user_id)
    logger.info("Admin %s revoked %d session(s) of user %s", admin.user_id, revoked, user_id)
    return RevokedResponse(revoked=revoked)
