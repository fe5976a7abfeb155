"""
Externally triggered maintenance jobs.

The scheduler (cron, Cloud Scheduler, a Kubernetes CronJob) calls these
endpoints; nothing in the process schedules them itself. When CRON_SECRET is
configured the caller must present it as a bearer token.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from marketplace.api.deps import get_session_manager
from marketplace.api.schemas import CleanupResponse
from marketplace.core.exceptions import AuthenticationRequired
from marketplace.core.logging_config import log_security_event
from marketplace.core.security import get_client_ip, verify_bearer_token
from marketplace.sessions.manager import SessionManager

logger = logging.getLogger(__name__)

router = APIRouter()


def verify_cron_secret(request: Request, authorization: Optional[str] = Header(None)) -> None:
    secret = request.app.state.settings.CRON_SECRET
    if not secret:
        return
    if not verify_bearer_token(authorization, secret):
        log_security_event(
            "cron_unauthorized",
            "Unauthorized cleanup trigger rejected",
            level="high",
            ip_address=get_client_ip(request),
        )
        raise AuthenticationRequired()


@router.post(
    "/cleanup-sessions",
    response_model=CleanupResponse,
    dependencies=[Depends(verify_cron_secret)],
)
def cleanup_sessions(manager: SessionManager = Depends(get_session_manager)):
    """
    Delete one bounded batch of expired sessions.

    Safe to invoke repeatedly or concurrently; retried triggers never
    double-count a deletion.
    """
    deleted = manager.cleanup_expired()
    logger.info("Expired session cleanup deleted %d record(s)", deleted)
    return CleanupResponse(deleted=deleted)
