"""Session ledger: durable call records and per-user usage counters.

The matchmaking core never talks to SQLAlchemy directly. It goes through
:class:`CallLedger`, which ships with a SQL-backed implementation for
production and a dict-backed one for development and tests.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from copy import deepcopy
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.call import Call, CallStatus
from ..repositories import calls as calls_repo
from ..repositories import users as users_repo


@dataclass(slots=True)
class LedgerRecord:
    id: str
    caller_id: str
    callee_id: str
    started_at: datetime
    status: CallStatus = CallStatus.ACTIVE
    ended_at: datetime | None = None
    duration_seconds: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    def other_party(self, user_id: str) -> str:
        return self.callee_id if user_id == self.caller_id else self.caller_id


class CallLedger(ABC):
    """Durable record of call lifecycle and outcome."""

    @abstractmethod
    async def create_record(
        self,
        *,
        caller_id: str,
        callee_id: str,
        started_at: datetime,
        status: CallStatus = CallStatus.ACTIVE,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        """Persist a new record and return its identifier."""
        ...

    @abstractmethod
    async def finish_record(
        self,
        record_id: str,
        *,
        ended_at: datetime,
        duration_seconds: int | None,
        status: CallStatus = CallStatus.ENDED,
    ) -> LedgerRecord | None:
        """Move an active record to a terminal status.

        Returns ``None`` when the record is missing or already terminal. When
        ``duration_seconds`` is ``None`` it is derived from the stored start time.
        """
        ...

    @abstractmethod
    async def get_record(self, record_id: str) -> LedgerRecord | None:
        ...

    @abstractmethod
    async def increment_usage(self, user_id: str, seconds: int) -> None:
        """Add call seconds to a user's cumulative usage counter."""
        ...

    @abstractmethod
    async def list_for_participant(self, user_id: str, *, limit: int = 100) -> list[LedgerRecord]:
        """Return a user's most recent records, newest first."""
        ...


def duration_between(started_at: datetime, ended_at: datetime) -> int:
    """Whole seconds between two instants, never negative."""

    return max(0, int((_ensure_tz(ended_at) - _ensure_tz(started_at)).total_seconds()))


def _ensure_tz(value: datetime) -> datetime:
    """Ensure the provided datetime is timezone-aware in UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_record(call: Call) -> LedgerRecord:
    return LedgerRecord(
        id=call.id,
        caller_id=call.caller_id,
        callee_id=call.callee_id,
        started_at=call.started_at,
        status=CallStatus(call.status),
        ended_at=call.ended_at,
        duration_seconds=call.duration_seconds or 0,
        metadata=dict(call.meta or {}),
    )


class SqlCallLedger(CallLedger):
    """Ledger backed by the ``calls`` and ``users`` tables."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_record(
        self,
        *,
        caller_id: str,
        callee_id: str,
        started_at: datetime,
        status: CallStatus = CallStatus.ACTIVE,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        async with self._session_factory() as session:
            async with session.begin():
                call = await calls_repo.create_call(
                    session,
                    caller_id=caller_id,
                    callee_id=callee_id,
                    started_at=_ensure_tz(started_at),
                    status=status,
                    meta=metadata,
                )
            return call.id

    async def finish_record(
        self,
        record_id: str,
        *,
        ended_at: datetime,
        duration_seconds: int | None,
        status: CallStatus = CallStatus.ENDED,
    ) -> LedgerRecord | None:
        async with self._session_factory() as session:
            async with session.begin():
                call = await calls_repo.get_active_for_update(session, record_id)
                if call is None:
                    return None
                if duration_seconds is None:
                    duration_seconds = duration_between(call.started_at, ended_at)
                call.ended_at = _ensure_tz(ended_at)
                call.duration_seconds = duration_seconds
                call.status = status
                session.add(call)
            return _to_record(call)

    async def get_record(self, record_id: str) -> LedgerRecord | None:
        async with self._session_factory() as session:
            call = await calls_repo.get_by_id(session, record_id)
            return _to_record(call) if call is not None else None

    async def increment_usage(self, user_id: str, seconds: int) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await users_repo.increment_usage(session, user_id, seconds)

    async def list_for_participant(self, user_id: str, *, limit: int = 100) -> list[LedgerRecord]:
        async with self._session_factory() as session:
            calls = await calls_repo.list_for_participant(session, user_id, limit=limit)
            return [_to_record(call) for call in calls]


class InMemoryCallLedger(CallLedger):
    """Dict-based ledger for development and testing."""

    def __init__(self) -> None:
        self._records: dict[str, LedgerRecord] = {}
        self.usage: dict[str, int] = {}

    async def create_record(
        self,
        *,
        caller_id: str,
        callee_id: str,
        started_at: datetime,
        status: CallStatus = CallStatus.ACTIVE,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        record_id = str(uuid4())
        self._records[record_id] = LedgerRecord(
            id=record_id,
            caller_id=caller_id,
            callee_id=callee_id,
            started_at=_ensure_tz(started_at),
            status=status,
            metadata=deepcopy(metadata or {}),
        )
        return record_id

    async def finish_record(
        self,
        record_id: str,
        *,
        ended_at: datetime,
        duration_seconds: int | None,
        status: CallStatus = CallStatus.ENDED,
    ) -> LedgerRecord | None:
        record = self._records.get(record_id)
        if record is None or record.status is not CallStatus.ACTIVE:
            return None
        if duration_seconds is None:
            duration_seconds = duration_between(record.started_at, ended_at)
        record.ended_at = _ensure_tz(ended_at)
        record.duration_seconds = duration_seconds
        record.status = status
        return replace(record)

    async def get_record(self, record_id: str) -> LedgerRecord | None:
        record = self._records.get(record_id)
        return replace(record) if record is not None else None

    async def increment_usage(self, user_id: str, seconds: int) -> None:
        self.usage[user_id] = self.usage.get(user_id, 0) + seconds

    async def list_for_participant(self, user_id: str, *, limit: int = 100) -> list[LedgerRecord]:
        records = [
            replace(record)
            for record in self._records.values()
            if user_id in (record.caller_id, record.callee_id)
        ]
        records.sort(key=lambda record: record.started_at, reverse=True)
        return records[:limit]
