"""Schemas for matchmaking and call lifecycle endpoints."""
from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict, Field

from ..models.user import Preference, Role
from .base import CamelModel


class JoinRequest(CamelModel):
    looking_for: Preference = Field(default=Preference.BOTH, description="Role the caller wants to be matched with")


class MatchPartner(CamelModel):
    id: str
    name: str
    first_name: str | None = None
    role: Role


class MatchResult(CamelModel):
    ok: bool = True
    matched: Literal[True] = True
    room_id: str
    call_id: str
    channel_name: str
    your_token: str
    your_account: str
    role: Literal["caller", "callee"]
    other: MatchPartner
    expires_in: int = Field(..., ge=1, description="Seconds until the join token expires")


class WaitingResult(CamelModel):
    # Keeps a match payload from also validating as a waiting reply.
    model_config = ConfigDict(extra="forbid")

    ok: bool = True
    waiting: Literal[True] = True
    message: str = "Waiting..."
    room_id: str | None = Field(default=None, description="Room still held by the caller, if any")
    call_id: str | None = None


class LeaveResponse(CamelModel):
    ok: bool = True
    message: str = "Left queue"


class EndCallRequest(CamelModel):
    room_id: str = Field(..., min_length=1)
    call_id: str | None = None
    force_end: bool = False


class EndCallResponse(CamelModel):
    ok: bool = True
    ended: Literal[True] = True
    force_end: bool = False
    message: str
    duration: int


class CallStatusRequest(CamelModel):
    call_id: str = Field(..., min_length=1)


class CallStatusResponse(CamelModel):
    ended: bool
