"""Matchmaking endpoints: join (and poll) the queue, or leave it."""
from __future__ import annotations

from fastapi import APIRouter, Depends

from ..dependencies import get_coordinator, get_current_participant
from ..models.user import Preference
from ..schemas.match import JoinRequest, LeaveResponse, MatchResult, WaitingResult
from ..services.coordinator import SessionCoordinator
from ..services.participant import Participant

router = APIRouter()


@router.post("/join", response_model=MatchResult | WaitingResult, response_model_exclude_none=True)
async def join(
    payload: JoinRequest | None = None,
    participant: Participant = Depends(get_current_participant),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> MatchResult | WaitingResult:
    """Join the queue, or pick up a match formed by someone else's join.

    Clients poll this endpoint while waiting.
    """

    preference = payload.looking_for if payload is not None else Preference.BOTH
    return await coordinator.on_join_request(participant, preference)


@router.post("/leave", response_model=LeaveResponse)
async def leave(
    participant: Participant = Depends(get_current_participant),
    coordinator: SessionCoordinator = Depends(get_coordinator),
) -> LeaveResponse:
    await coordinator.on_leave(participant.id)
    return LeaveResponse()
