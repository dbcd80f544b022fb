"""Data contracts for RTC endpoints."""
from __future__ import annotations

from pydantic import Field

from .base import CamelModel


class RtcTokenRequest(CamelModel):
    room_id: str = Field(..., min_length=1, description="Matched room to rejoin")


class RtcTokenResponse(CamelModel):
    ok: bool = True
    token: str = Field(..., description="JWT token for the RTC backend")
    channel_name: str
    expires_in: int = Field(..., ge=1, description="Seconds until expiration")
