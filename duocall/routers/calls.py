"""Call lifecycle endpoints."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..dependencies import get_coordinator, get_current_participant
from ..schemas.calls import CallHistoryResponse
from ..schemas.match import CallStatusRequest, CallStatusResponse, EndCallRequest, EndCallResponse
from ..services.coordinator import SessionCoordinator
from ..services.participant import Participant

router = APIRouter()


@router.post("/call/end", response_model=EndCallResponse)
async def end_call(
    payload: EndCallRequest,
    participant: Participant = Depends(get_current_participant),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> EndCallResponse:
    """Finalize a call; ``forceEnd`` tells the caller both sides should hang up."""

    return await coordinator.on_call_end(
        payload.room_id,
        payload.call_id,
        payload.force_end,
        participant_id=participant.id,
    )


@router.post("/call/status", response_model=CallStatusResponse, dependencies=[Depends(get_current_participant)])
async def call_status(
    payload: CallStatusRequest,
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> CallStatusResponse:
    """Let the partner poll whether the other side ended the call."""

    ended = await coordinator.call_status(payload.call_id)
    return CallStatusResponse(ended=ended)


@router.get("/calls/history", response_model=CallHistoryResponse)
async def call_history(
    participant: Participant = Depends(get_current_participant),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> CallHistoryResponse:
    return await coordinator.call_history(participant.id)
