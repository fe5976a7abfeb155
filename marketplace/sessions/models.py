"""Session record and role types.

All timestamps are integer epoch milliseconds.
"""

import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from marketplace.core.exceptions import InvalidRole


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Role(str, Enum):
    """Authorization levels exchanged at every boundary."""

    USER = "user"
    SELLER = "seller"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """
        Normalize a raw role value.

        Surrounding whitespace and letter case are ignored; anything outside
        the three known tokens raises InvalidRole.
        """
        if isinstance(value, Role):
            return value
        if not isinstance(value, str):
            raise InvalidRole(f"Role must be a string, got {type(value).__name__}")
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidRole(f"Unknown role: {value!r}") from None


class SessionRecord(BaseModel):
    """The persisted session entity.

    Instances are immutable; renewals and updates produce new records.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", use_enum_values=False)

    session_id: str
    user_id: str
    email: str
    role: Role
    created_at: int
    expires_at: int
    last_activity: int
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> Role:
        try:
            return Role.parse(value)
        except InvalidRole as exc:
            # Surface as a validation error so model_validate rejects the record
            raise ValueError(exc.message) from None

    @field_validator("session_id", "user_id")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def renewed(self, now: int, ttl_ms: int) -> "SessionRecord":
        """Return a copy with the sliding window restarted at ``now``."""
        return self.model_copy(update={"last_activity": now, "expires_at": now + ttl_ms})
