"""Database models"""

from marketplace.db.models.session_record import UserSession
from marketplace.db.models.user import User

__all__ = [
    "User",
    "UserSession",
]
