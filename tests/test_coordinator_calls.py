"""Tests for ending calls, status polling, token refresh, and history."""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from duocall.core.errors import DependencyFailure, NotFound, ValidationFailure
from duocall.models.call import CallStatus
from duocall.models.user import Preference, Role
from duocall.services.coordinator import SessionCoordinator
from duocall.services.ledger import InMemoryCallLedger
from duocall.services.match_state import MatchmakingState


async def _match(coordinator, make_participant):
    a = make_participant("a", Role.MALE, Preference.FEMALE)
    b = make_participant("b", Role.FEMALE, Preference.MALE)
    await coordinator.on_join_request(a)
    return await coordinator.on_join_request(b)


@pytest.mark.asyncio
async def test_end_call_records_duration_and_usage(coordinator, state, ledger, clock, make_participant):
    match = await _match(coordinator, make_participant)
    clock.advance(42.7)

    response = await coordinator.on_call_end(match.room_id)

    assert response.ended is True
    assert response.force_end is False
    assert response.message == "Call ended for caller"
    assert abs(response.duration - 42.7) <= 1

    record = await ledger.get_record(match.call_id)
    assert record.status is CallStatus.ENDED
    assert record.duration_seconds == response.duration
    assert record.ended_at == datetime.fromtimestamp(clock.now, tz=timezone.utc)
    assert ledger.usage == {"a": response.duration, "b": response.duration}

    assert match.room_id not in state.sessions
    assert state.rooms_by_participant == {}
    assert "a" not in state.mailbox


@pytest.mark.asyncio
async def test_second_end_returns_not_found(coordinator, ledger, clock, make_participant):
    match = await _match(coordinator, make_participant)
    clock.advance(10)
    await coordinator.on_call_end(match.room_id)

    with pytest.raises(NotFound):
        await coordinator.on_call_end(match.room_id)

    assert ledger.usage == {"a": 10, "b": 10}


@pytest.mark.asyncio
async def test_end_with_explicit_id_after_cleanup_does_not_double_count(coordinator, ledger, clock, make_participant):
    match = await _match(coordinator, make_participant)
    clock.advance(10)
    await coordinator.on_call_end(match.room_id)

    with pytest.raises(NotFound):
        await coordinator.on_call_end(match.room_id, match.call_id)

    assert ledger.usage == {"a": 10, "b": 10}


@pytest.mark.asyncio
async def test_end_unknown_room_is_not_found(coordinator):
    with pytest.raises(NotFound) as exc:
        await coordinator.on_call_end("call_nope")

    assert exc.value.status_code == 404


@pytest.mark.asyncio
async def test_end_falls_back_to_ledger_after_restart(state, ledger, issuer, clock, make_participant):
    coordinator = SessionCoordinator(state, ledger, issuer)
    match = await _match(coordinator, make_participant)
    clock.advance(30)

    # Simulate a process restart: in-memory state is gone, the ledger survives.
    restarted = SessionCoordinator(MatchmakingState(clock=clock), ledger, issuer)
    response = await restarted.on_call_end(match.room_id, match.call_id, force_end=True)

    assert response.force_end is True
    assert response.message == "Call ended for both users"
    assert response.duration == 30
    record = await ledger.get_record(match.call_id)
    assert record.status is CallStatus.ENDED


@pytest.mark.asyncio
async def test_force_end_performs_same_mutation(coordinator, ledger, clock, make_participant):
    match = await _match(coordinator, make_participant)
    clock.advance(5)

    response = await coordinator.on_call_end(match.room_id, force_end=True)

    record = await ledger.get_record(match.call_id)
    assert record.status is CallStatus.ENDED
    assert record.duration_seconds == response.duration == 5


@pytest.mark.asyncio
async def test_end_before_partner_polls_drops_stale_payload(coordinator, state, make_participant):
    match = await _match(coordinator, make_participant)
    assert "a" in state.mailbox

    await coordinator.on_call_end(match.room_id)

    assert "a" not in state.mailbox
    follow_up = await coordinator.on_join_request(make_participant("a", Role.MALE, Preference.FEMALE))
    assert follow_up.waiting is True


@pytest.mark.asyncio
async def test_usage_failure_does_not_fail_end_call(state, issuer, clock, make_participant):
    class FlakyUsageLedger(InMemoryCallLedger):
        async def increment_usage(self, user_id, seconds):
            if user_id == "a":
                raise ConnectionError("usage store down")
            await super().increment_usage(user_id, seconds)

    ledger = FlakyUsageLedger()
    coordinator = SessionCoordinator(state, ledger, issuer)
    match = await _match(coordinator, make_participant)
    clock.advance(7)

    response = await coordinator.on_call_end(match.room_id)

    assert response.duration == 7
    assert ledger.usage == {"b": 7}
    assert match.room_id not in state.sessions


@pytest.mark.asyncio
async def test_ledger_failure_on_end_keeps_session(state, issuer, make_participant):
    class ReadOnlyLedger(InMemoryCallLedger):
        async def finish_record(self, record_id, **kwargs):
            raise ConnectionError("db down")

    coordinator = SessionCoordinator(state, ReadOnlyLedger(), issuer)
    match = await _match(coordinator, make_participant)

    with pytest.raises(DependencyFailure):
        await coordinator.on_call_end(match.room_id)

    assert match.room_id in state.sessions


@pytest.mark.asyncio
async def test_call_status_tracks_lifecycle(coordinator, make_participant):
    match = await _match(coordinator, make_participant)

    assert await coordinator.call_status(match.call_id) is False
    await coordinator.on_call_end(match.room_id)
    assert await coordinator.call_status(match.call_id) is True
    assert await coordinator.call_status("missing") is True


@pytest.mark.asyncio
async def test_refresh_token_for_party(coordinator, issuer, make_participant):
    match = await _match(coordinator, make_participant)

    refreshed = await coordinator.refresh_token(match.room_id, "a")

    assert refreshed.channel_name == match.channel_name
    assert refreshed.expires_in == 600
    assert issuer.issued[-1][:2] == (match.channel_name, "a")


@pytest.mark.asyncio
async def test_refresh_token_rejects_outsiders_and_unknown_rooms(coordinator, make_participant):
    match = await _match(coordinator, make_participant)

    with pytest.raises(ValidationFailure) as exc:
        await coordinator.refresh_token(match.room_id, "mallory")
    assert exc.value.status_code == 403

    with pytest.raises(NotFound):
        await coordinator.refresh_token("call_unknown", "a")


@pytest.mark.asyncio
async def test_call_history_lists_newest_first(coordinator, clock, make_participant):
    first = await _match(coordinator, make_participant)
    clock.advance(20)
    await coordinator.on_call_end(first.room_id)
    clock.advance(5)
    second = await _match(coordinator, make_participant)

    history = await coordinator.call_history("a")

    assert [item.call_id for item in history.calls] == [second.call_id, first.call_id]
    latest, earlier = history.calls
    assert latest.status is CallStatus.ACTIVE
    assert latest.your_role == "callee"
    assert latest.other_user_id == "b"
    assert earlier.duration_seconds == 20
    assert earlier.room_id == first.room_id


@pytest.mark.asyncio
async def test_end_by_call_id_under_wrong_room_clears_live_session(coordinator, state, ledger, clock, make_participant):
    match = await _match(coordinator, make_participant)
    clock.advance(5)

    response = await coordinator.on_call_end("call_stale", match.call_id)

    assert response.duration == 5
    assert state.sessions == {}
    assert state.rooms_by_participant == {}
    assert "a" not in state.mailbox
    assert ledger.usage == {"a": 5, "b": 5}

    rejoin = await coordinator.on_join_request(make_participant("b", Role.FEMALE, Preference.MALE))
    assert rejoin.message == "Waiting..."
    assert "b" in state.queue


@pytest.mark.asyncio
async def test_lost_match_reply_can_be_recovered(coordinator, state, clock, make_participant):
    b = make_participant("b", Role.FEMALE, Preference.MALE)
    match = await _match(coordinator, make_participant)
    clock.advance(24 * 60 * 60)

    held = await coordinator.on_join_request(b)

    assert held.message == "Already in an active call"
    assert held.room_id == match.room_id
    assert held.call_id == match.call_id

    await coordinator.on_call_end(held.room_id, held.call_id, participant_id="b")
    rejoin = await coordinator.on_join_request(b)

    assert rejoin.message == "Waiting..."
    assert rejoin.room_id is None
    assert "b" in state.queue


@pytest.mark.asyncio
async def test_outsider_cannot_end_call(coordinator, state, ledger, issuer, clock, make_participant):
    match = await _match(coordinator, make_participant)

    with pytest.raises(ValidationFailure) as exc:
        await coordinator.on_call_end(match.room_id, participant_id="mallory")
    assert exc.value.status_code == 403
    assert match.room_id in state.sessions

    restarted = SessionCoordinator(MatchmakingState(clock=clock), ledger, issuer)
    with pytest.raises(ValidationFailure):
        await restarted.on_call_end(match.room_id, match.call_id, participant_id="mallory")

    record = await ledger.get_record(match.call_id)
    assert record.status is CallStatus.ACTIVE
    assert ledger.usage == {}
