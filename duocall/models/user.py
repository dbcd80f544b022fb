"""User model."""
from __future__ import annotations

from datetime import datetime
import enum

from sqlalchemy import Boolean, DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utc_now


class Role(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"


class Preference(str, enum.Enum):
    MALE = "male"
    FEMALE = "female"
    BOTH = "both"

    def accepts(self, role: Role) -> bool:
        return self is Preference.BOTH or self.value == role.value


class Subscription(str, enum.Enum):
    FREE = "free"
    PREMIUM = "premium"


class User(Base):
    """Identity record owned by the account service; matchmaking reads it and bumps usage."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    email: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    first_name: Mapped[str | None] = mapped_column(String)
    last_name: Mapped[str | None] = mapped_column(String)
    # Stored as text: the account service also issues non-matchable roles such as "admin".
    role: Mapped[str] = mapped_column(String, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    subscription_type: Mapped[str] = mapped_column(String, default=Subscription.FREE.value, nullable=False)
    total_video_seconds: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
