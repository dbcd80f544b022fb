"""RTC token refresh endpoint."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..dependencies import get_coordinator, get_current_participant
from ..schemas.rtc import RtcTokenRequest, RtcTokenResponse
from ..services.coordinator import SessionCoordinator
from ..services.participant import Participant

router = APIRouter()


@router.post("/token", response_model=RtcTokenResponse)
async def refresh_rtc_token(
    payload: RtcTokenRequest,
    participant: Participant = Depends(get_current_participant),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> RtcTokenResponse:
    """Return a fresh join token for a room the caller is part of."""

    return await coordinator.refresh_token(payload.room_id, participant.id)
