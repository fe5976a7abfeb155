from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from marketplace.db.base import Base, TimestampedMixin


class User(TimestampedMixin, Base):
    """Marketplace account. Only the fields the session flow needs."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="user")
    password_hash: Mapped[str] = mapped_column(String, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role='{self.role}')>"
