"""FastAPI dependencies resolving the caller and the shared coordinator."""
from __future__ import annotations

from fastapi import Depends, Header, Request

from .services.coordinator import SessionCoordinator
from .services.identity import IdentityVerifier, extract_bearer
from .services.participant import Participant


def get_coordinator(request: Request) -> SessionCoordinator:
    return request.app.state.coordinator


def get_verifier(request: Request) -> IdentityVerifier:
    return request.app.state.verifier


async def get_current_participant(
    authorization: str | None = Header(default=None),
    verifier: IdentityVerifier = Depends(get_verifier),
) -> Participant:
    """Resolve the bearer token on the request to a participant."""

    token = extract_bearer(authorization)
    return await verifier.verify(token)
