"""User account lookups and credential checks used by the session flow."""

import logging
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from marketplace.core.security import hash_password, verify_password
from marketplace.db.models.user import User
from marketplace.sessions.models import Role

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def get_user(db: Session, user_id) -> Optional[User]:
    try:
        return db.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


def get_user_by_email(db: Session, email: str) -> Optional[User]:
    return db.scalar(select(User).where(func.lower(User.email) == normalize_email(email)))


def create_user(db: Session, email: str, password: str, role: str = "user", name: str = "") -> User:
    """Create an account. The role is normalized and validated first."""
    user = User(
        email=normalize_email(email),
        name=name,
        role=Role.parse(role).value,
        password_hash=hash_password(password),
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s with role %s", user.id, user.role)
    return user


def authenticate(db: Session, email: str, password: str) -> Optional[User]:
    """Return the active user matching the credentials, or None."""
    user = get_user_by_email(db, email)
    if user is None or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


def set_password(db: Session, user: User, new_password: str) -> None:
    user.password_hash = hash_password(new_password)
    db.commit()
