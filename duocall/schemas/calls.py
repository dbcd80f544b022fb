"""Schemas for call history."""
from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import Field

from ..models.call import CallStatus
from .base import CamelModel


class CallSummary(CamelModel):
    call_id: str
    room_id: str | None = None
    channel_name: str | None = None
    started_at: datetime
    ended_at: datetime | None = None
    status: CallStatus
    duration_seconds: int
    your_role: Literal["caller", "callee"]
    other_user_id: str


class CallHistoryResponse(CamelModel):
    calls: list[CallSummary] = Field(default_factory=list)
