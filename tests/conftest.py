"""Shared fixtures: a controllable clock, in-memory ledger, and recording issuer."""
from __future__ import annotations

import pytest

from duocall.models.user import Preference, Role, Subscription
from duocall.services.coordinator import SessionCoordinator
from duocall.services.ledger import InMemoryCallLedger
from duocall.services.match_state import MatchmakingState
from duocall.services.participant import Participant
from duocall.services.rtc import CredentialIssuer, RtcRole, RtcToken

START = 1_760_000_000.0


class FakeClock:
    def __init__(self, now: float = START) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingIssuer(CredentialIssuer):
    """Issues predictable tokens and can be told to fail for given identities."""

    def __init__(self) -> None:
        self.issued: list[tuple[str, str, RtcRole, int | None]] = []
        self.fail_for: set[str] = set()

    async def issue_token(self, room, identity_id, *, role=RtcRole.PUBLISHER, ttl_seconds=None):
        if identity_id in self.fail_for:
            raise RuntimeError("issuer unavailable")
        self.issued.append((room, identity_id, role, ttl_seconds))
        return RtcToken(token=f"tok:{room}:{identity_id}:{len(self.issued)}", expires_in=ttl_seconds or 3600)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state(clock: FakeClock) -> MatchmakingState:
    return MatchmakingState(clock=clock)


@pytest.fixture
def ledger() -> InMemoryCallLedger:
    return InMemoryCallLedger()


@pytest.fixture
def issuer() -> RecordingIssuer:
    return RecordingIssuer()


@pytest.fixture
def coordinator(state, ledger, issuer) -> SessionCoordinator:
    return SessionCoordinator(state, ledger, issuer, token_ttl_seconds=600)


@pytest.fixture
def make_participant():
    def _make(
        participant_id: str,
        role: Role | None = Role.MALE,
        preference: Preference = Preference.BOTH,
        *,
        verified: bool = True,
        subscription: Subscription = Subscription.PREMIUM,
    ) -> Participant:
        return Participant(
            id=participant_id,
            role=role,
            preference=preference,
            first_name=participant_id.title(),
            last_name="Tester",
            email=f"{participant_id}@example.com",
            verified=verified,
            subscription=subscription,
        )

    return _make
