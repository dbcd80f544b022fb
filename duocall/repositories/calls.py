"""Call repository helpers for the session ledger."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import Select, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.call import Call, CallStatus


async def get_by_id(session: AsyncSession, call_id: str) -> Call | None:
    """Return a call record by identifier."""

    return await session.get(Call, call_id)


async def create_call(
    session: AsyncSession,
    *,
    caller_id: str,
    callee_id: str,
    started_at: datetime,
    status: CallStatus = CallStatus.ACTIVE,
    meta: dict[str, Any] | None = None,
) -> Call:
    """Insert a new call row and flush so the identifier is usable."""

    call = Call(
        id=str(uuid4()),
        caller_id=caller_id,
        callee_id=callee_id,
        started_at=started_at,
        status=status,
        duration_seconds=0,
        meta=dict(meta or {}),
    )
    session.add(call)
    await session.flush()
    return call


async def get_active_for_update(session: AsyncSession, call_id: str) -> Call | None:
    """Lock an active call row so it can be finalized exactly once."""

    stmt: Select[tuple[Call]] = (
        select(Call).where(Call.id == call_id, Call.status == CallStatus.ACTIVE).with_for_update()
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_for_participant(session: AsyncSession, user_id: str, *, limit: int = 100) -> list[Call]:
    """Return the most recent calls a user took part in, newest first."""

    stmt: Select[tuple[Call]] = (
        select(Call)
        .where(or_(Call.caller_id == user_id, Call.callee_id == user_id))
        .order_by(Call.started_at.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
