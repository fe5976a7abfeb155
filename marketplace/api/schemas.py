"""Request and response models for the session endpoints."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from marketplace.sessions.manager import SessionStats
from marketplace.sessions.models import SessionRecord


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    password: str = Field(..., min_length=1, max_length=1024)

    model_config = {
        "json_schema_extra": {
            "example": {"email": "seller@example.com", "password": "correct horse battery staple"}
        }
    }


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1, max_length=1024)
    new_password: str = Field(..., min_length=8, max_length=1024)


class SessionUpdateRequest(BaseModel):
    email: Optional[str] = Field(None, min_length=3, max_length=320)


class UserProfile(BaseModel):
    id: str
    email: str
    name: str
    role: str


class SessionInfo(BaseModel):
    """Public view of a session. The identifier is only shown to admins."""

    session_id: Optional[str] = None
    user_id: str
    email: str
    role: str
    created_at: int
    expires_at: int
    last_activity: int
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    current: bool = False

    @classmethod
    def from_record(
        cls, record: SessionRecord, include_id: bool = False, current_id: Optional[str] = None
    ) -> "SessionInfo":
        return cls(
            session_id=record.session_id if include_id else None,
            user_id=record.user_id,
            email=record.email,
            role=record.role.value,
            created_at=record.created_at,
            expires_at=record.expires_at,
            last_activity=record.last_activity,
            user_agent=record.user_agent,
            ip_address=record.ip_address,
            current=record.session_id == current_id,
        )


class SessionStatsResponse(BaseModel):
    total: int
    active: int
    by_role: Dict[str, int]

    @classmethod
    def from_stats(cls, stats: SessionStats) -> "SessionStatsResponse":
        return cls(total=stats.total, active=stats.active, by_role=dict(stats.by_role))


class SessionListResponse(BaseModel):
    sessions: List[SessionInfo]
    stats: SessionStatsResponse


class SessionStatusResponse(BaseModel):
    authenticated: bool
    role: Optional[str] = None


class RevokedResponse(BaseModel):
    revoked: int


class CleanupResponse(BaseModel):
    deleted: int


class StatusResponse(BaseModel):
    """Standard status response"""

    success: bool
    message: str
