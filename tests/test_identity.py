"""Tests for bearer-token verification."""
from __future__ import annotations

from types import SimpleNamespace

import pytest
from jose import jwt

from duocall.core.errors import AuthFailure
from duocall.models.user import Preference, Role, Subscription
from duocall.repositories import users as users_repo
from duocall.services.identity import IdentityVerifier, extract_bearer, participant_from_user

SECRET = "session-secret"


class DummySession:
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def _user(**overrides) -> SimpleNamespace:
    fields = dict(
        id="user-1",
        email="amir@example.com",
        first_name="Amir",
        last_name="Khan",
        role="male",
        is_verified=True,
        subscription_type="premium",
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


@pytest.fixture
def verifier() -> IdentityVerifier:
    return IdentityVerifier(DummySession, secret=SECRET)


@pytest.mark.parametrize("header", [None, "", "Token abc", "Bearer ", "Bearer    "])
def test_extract_bearer_rejects_missing_token(header) -> None:
    with pytest.raises(AuthFailure) as exc:
        extract_bearer(header)

    assert exc.value.message == "No token provided"
    assert exc.value.status_code == 401


def test_extract_bearer_returns_token() -> None:
    assert extract_bearer("Bearer abc.def") == "abc.def"


@pytest.mark.asyncio
async def test_verify_resolves_participant(monkeypatch, verifier) -> None:
    looked_up: list[str] = []

    async def get_by_id_stub(session, user_id):
        looked_up.append(user_id)
        return _user(id=user_id)

    monkeypatch.setattr(users_repo, "get_by_id", get_by_id_stub)
    token = jwt.encode({"sub": "user-1"}, SECRET, algorithm="HS256")

    participant = await verifier.verify(token)

    assert looked_up == ["user-1"]
    assert participant.id == "user-1"
    assert participant.role is Role.MALE
    assert participant.preference is Preference.BOTH
    assert participant.subscription is Subscription.PREMIUM
    assert participant.verified is True
    assert participant.display_name == "Amir Khan"


@pytest.mark.asyncio
async def test_verify_rejects_bad_signature(verifier) -> None:
    token = jwt.encode({"sub": "user-1"}, "other-secret", algorithm="HS256")

    with pytest.raises(AuthFailure) as exc:
        await verifier.verify(token)

    assert exc.value.message == "Unauthorized"


@pytest.mark.asyncio
async def test_verify_rejects_token_without_subject(verifier) -> None:
    token = jwt.encode({"scope": "calls"}, SECRET, algorithm="HS256")

    with pytest.raises(AuthFailure):
        await verifier.verify(token)


@pytest.mark.asyncio
async def test_verify_rejects_unknown_user(monkeypatch, verifier) -> None:
    async def get_by_id_stub(session, user_id):
        return None

    monkeypatch.setattr(users_repo, "get_by_id", get_by_id_stub)
    token = jwt.encode({"sub": "ghost"}, SECRET, algorithm="HS256")

    with pytest.raises(AuthFailure):
        await verifier.verify(token)


def test_non_matchable_role_and_unknown_plan_are_normalized() -> None:
    participant = participant_from_user(_user(role="admin", subscription_type="gold", is_verified=None))

    assert participant.role is None
    assert participant.subscription is Subscription.FREE
    assert participant.verified is False
