"""User repository helpers."""
from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User


async def get_by_id(session: AsyncSession, user_id: str) -> User | None:
    """Return a user by identifier."""

    return await session.get(User, user_id)


async def increment_usage(session: AsyncSession, user_id: str, seconds: int) -> None:
    """Add call seconds to the user's cumulative video usage."""

    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(total_video_seconds=User.total_video_seconds + seconds)
    )
    await session.execute(stmt)
