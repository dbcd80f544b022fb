"""Session coordinator: turns queue pairings into call sessions and ends them.

A join runs in two phases. Under the state lock the coordinator checks the
mailbox, queues the caller, and picks a partner, reserving both participants
against a fresh room id. Outside the lock it mints both join tokens and writes
the ledger record. If either external step fails, the reservation is undone
and the partner goes back to the head of the queue.
"""
from __future__ import annotations

import asyncio
import logging
import secrets
import string
from datetime import datetime, timezone

from ..core.errors import DependencyFailure, NotFound, ValidationFailure
from ..models.call import CallStatus
from ..models.user import Preference, Subscription
from ..schemas.calls import CallHistoryResponse, CallSummary
from ..schemas.match import EndCallResponse, MatchPartner, MatchResult, WaitingResult
from ..schemas.rtc import RtcTokenResponse
from .ledger import CallLedger
from .match_state import ActiveSession, MatchmakingState
from .pairing import Pair, find_match
from .participant import Participant
from .rtc import CredentialIssuer, RtcRole, RtcToken

logger = logging.getLogger(__name__)

MATCH_SOURCE = "matchmaking"
CHANNEL_ALPHABET = string.ascii_lowercase + string.digits
HISTORY_LIMIT = 100


def _utc(timestamp: float) -> datetime:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


class SessionCoordinator:
    def __init__(
        self,
        state: MatchmakingState,
        ledger: CallLedger,
        issuer: CredentialIssuer,
        *,
        token_ttl_seconds: int = 3600,
        require_verified: bool = True,
    ) -> None:
        self.state = state
        self.ledger = ledger
        self.issuer = issuer
        self._token_ttl = token_ttl_seconds
        self._require_verified = require_verified
        self._last_room_ms = 0

    # Join / leave

    async def on_join_request(
        self,
        participant: Participant,
        preference: Preference | None = None,
    ) -> MatchResult | WaitingResult:
        """Deliver a parked match, or queue the participant and try to pair them."""

        if preference is not None:
            participant = participant.with_preference(preference)
        self._check_eligible(participant)

        state = self.state
        async with state.lock:
            pending = state.mailbox.take(participant.id)
            if pending is not None:
                logger.info("Pending match delivered to %s (room %s)", participant.id, pending.room_id)
                return pending

            # A participant holding a room is never queued again.
            held_room = state.room_of(participant.id)
            if held_room is not None:
                session = state.sessions.get(held_room)
                if session is None:
                    return WaitingResult(message="Match in progress")
                return WaitingResult(
                    message="Already in an active call",
                    room_id=session.room_id,
                    call_id=session.call_id,
                )

            state.queue.enqueue(participant)
            pair = find_match(participant, state.queue)
            if pair is None:
                logger.info("%s waiting for a match (%s)", participant.id, participant.preference.value)
                return WaitingResult()

            state.queue.remove(participant.id)
            room_id, channel_name = self._allocate_room(pair)
            state.reserve(room_id, pair.initiator.id, pair.receiver.id)

        return await self._form_match(pair, room_id, channel_name)

    async def on_leave(self, participant_id: str) -> bool:
        async with self.state.lock:
            removed = self.state.queue.remove(participant_id) is not None
        if removed:
            logger.info("%s left the queue", participant_id)
        return removed

    def _check_eligible(self, participant: Participant) -> None:
        if participant.role is None:
            raise ValidationFailure("Role is not eligible for matchmaking", status_code=403)
        if self._require_verified and not participant.verified:
            raise ValidationFailure("Identity must be verified before matchmaking", status_code=403)
        if participant.preference is not Preference.BOTH and participant.subscription is not Subscription.PREMIUM:
            raise ValidationFailure(
                "Premium subscription required to use gender filters",
                status_code=403,
                requires_premium=True,
            )

    def _allocate_room(self, pair: Pair) -> tuple[str, str]:
        """Room ids embed a per-process strictly increasing millisecond stamp."""

        now_ms = int(self.state.clock() * 1000)
        stamp = max(now_ms, self._last_room_ms + 1)
        self._last_room_ms = stamp
        room_id = f"call_{pair.initiator.id}_{pair.receiver.id}_{stamp}"
        suffix = "".join(secrets.choice(CHANNEL_ALPHABET) for _ in range(4))
        channel_name = f"ch_{stamp}_{suffix}"
        return room_id, channel_name

    # Match formation

    async def _form_match(self, pair: Pair, room_id: str, channel_name: str) -> MatchResult:
        state = self.state
        started_at = state.clock()
        call_id: str | None = None
        try:
            initiator_token = await self._issue(channel_name, pair.initiator.id)
            receiver_token = await self._issue(channel_name, pair.receiver.id)
            call_id = await self.ledger.create_record(
                caller_id=pair.initiator.id,
                callee_id=pair.receiver.id,
                started_at=_utc(started_at),
                status=CallStatus.ACTIVE,
                metadata={"room_id": room_id, "channel_name": channel_name, "source": MATCH_SOURCE},
            )
            initiator_result = self._build_result(
                room_id, call_id, channel_name, initiator_token, pair.initiator, pair.receiver, "caller"
            )
            receiver_result = self._build_result(
                room_id, call_id, channel_name, receiver_token, pair.receiver, pair.initiator, "callee"
            )
        except asyncio.CancelledError:
            await self._rollback(pair, room_id, call_id)
            raise
        except Exception as exc:  # noqa: BLE001 - any issuer/ledger fault aborts the match
            logger.exception("Match formation failed for room %s", room_id)
            await self._rollback(pair, room_id, call_id)
            raise DependencyFailure("Server error") from exc

        async with state.lock:
            state.register(
                ActiveSession(
                    room_id=room_id,
                    call_id=call_id,
                    initiator_id=pair.initiator.id,
                    receiver_id=pair.receiver.id,
                    channel_name=channel_name,
                    started_at=started_at,
                )
            )
            state.mailbox.put(pair.receiver.id, receiver_result)

        logger.info("Match created: %s <-> %s in room %s", pair.initiator.id, pair.receiver.id, room_id)
        return initiator_result

    async def _issue(self, channel_name: str, identity_id: str) -> RtcToken:
        return await self.issuer.issue_token(
            channel_name,
            identity_id,
            role=RtcRole.PUBLISHER,
            ttl_seconds=self._token_ttl,
        )

    async def _rollback(self, pair: Pair, room_id: str, call_id: str | None) -> None:
        async with self.state.lock:
            self.state.release(room_id)
            if pair.receiver.id not in self.state.queue:
                self.state.queue.restore(pair.receiver_entry)

        if call_id is None:
            return
        try:
            await self.ledger.finish_record(
                call_id,
                ended_at=_utc(self.state.clock()),
                duration_seconds=0,
                status=CallStatus.CANCELLED,
            )
        except Exception:  # noqa: BLE001 - already failing; leave the row for reconciliation
            logger.exception("Could not cancel ledger record %s after failed match", call_id)

    def _build_result(
        self,
        room_id: str,
        call_id: str,
        channel_name: str,
        token: RtcToken,
        me: Participant,
        other: Participant,
        role: str,
    ) -> MatchResult:
        return MatchResult(
            room_id=room_id,
            call_id=call_id,
            channel_name=channel_name,
            your_token=token.token,
            your_account=me.id,
            role=role,
            other=MatchPartner(
                id=other.id,
                name=other.display_name,
                first_name=other.first_name,
                role=other.role,
            ),
            expires_in=token.expires_in,
        )

    # Call lifecycle

    async def on_call_end(
        self,
        room_id: str,
        explicit_call_id: str | None = None,
        force_end: bool = False,
        *,
        participant_id: str | None = None,
    ) -> EndCallResponse:
        """Finalize the ledger record for a room and clear its in-memory state.

        The session is found by room id, or by ledger id when the room id does
        not resolve. When the in-memory session is gone (for example after a
        restart) the ledger id alone is enough; the duration is then rebuilt
        from the start time stored on the record. With ``participant_id`` set,
        only a party to the call may end it.
        """

        state = self.state
        async with state.lock:
            session = state.sessions.get(room_id)
            if session is None and explicit_call_id:
                session = state.session_for_call(explicit_call_id)

        call_id = session.call_id if session is not None else explicit_call_id
        if not call_id:
            raise NotFound("Active call not found")

        if participant_id is not None:
            await self._check_party(session, call_id, participant_id)

        now = state.clock()
        duration = int(now - session.started_at) if session is not None else None
        try:
            record = await self.ledger.finish_record(
                call_id,
                ended_at=_utc(now),
                duration_seconds=duration,
                status=CallStatus.ENDED,
            )
        except Exception as exc:  # noqa: BLE001 - surface as a dependency fault
            logger.exception("Ledger update failed for call %s", call_id)
            raise DependencyFailure("Server error") from exc

        if record is None:
            if session is not None:
                await self._clear_room(session.room_id, session.parties)
            raise NotFound("Active call not found")

        for user_id in (record.caller_id, record.callee_id):
            try:
                await self.ledger.increment_usage(user_id, record.duration_seconds)
            except Exception:  # noqa: BLE001 - usage counters are best effort
                logger.exception("Failed to add %ss of usage to %s", record.duration_seconds, user_id)

        ended_room = session.room_id if session is not None else record.metadata.get("room_id") or room_id
        await self._clear_room(ended_room, (record.caller_id, record.callee_id))
        logger.info("Call %s in room %s ended after %ss", call_id, ended_room, record.duration_seconds)

        message = "Call ended for both users" if force_end else "Call ended for caller"
        return EndCallResponse(force_end=force_end, message=message, duration=record.duration_seconds)

    async def _check_party(self, session: ActiveSession | None, call_id: str, participant_id: str) -> None:
        if session is not None:
            parties: tuple[str, ...] = session.parties
        else:
            try:
                record = await self.ledger.get_record(call_id)
            except Exception as exc:  # noqa: BLE001
                logger.exception("Ledger lookup failed for call %s", call_id)
                raise DependencyFailure("Server error") from exc
            if record is None:
                raise NotFound("Active call not found")
            parties = (record.caller_id, record.callee_id)
        if participant_id not in parties:
            raise ValidationFailure("Not a participant of this call", status_code=403)

    async def _clear_room(self, room_id: str, participant_ids: tuple[str, str]) -> None:
        async with self.state.lock:
            self.state.drop_session(room_id)
            self.state.mailbox.discard_room(room_id, participant_ids)

    async def call_status(self, call_id: str) -> bool:
        """Return True once the call is no longer active (or unknown)."""

        try:
            record = await self.ledger.get_record(call_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Ledger lookup failed for call %s", call_id)
            raise DependencyFailure("Server error") from exc
        return record is None or record.status is not CallStatus.ACTIVE

    async def refresh_token(self, room_id: str, participant_id: str) -> RtcTokenResponse:
        async with self.state.lock:
            session = self.state.sessions.get(room_id)
        if session is None:
            raise NotFound("Active call not found")
        if not session.involves(participant_id):
            raise ValidationFailure("Not a participant of this call", status_code=403)

        try:
            token = await self._issue(session.channel_name, participant_id)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Token refresh failed for room %s", room_id)
            raise DependencyFailure("Server error") from exc
        return RtcTokenResponse(token=token.token, channel_name=session.channel_name, expires_in=token.expires_in)

    async def call_history(self, participant_id: str, *, limit: int = HISTORY_LIMIT) -> CallHistoryResponse:
        try:
            records = await self.ledger.list_for_participant(participant_id, limit=limit)
        except Exception as exc:  # noqa: BLE001
            logger.exception("History lookup failed for %s", participant_id)
            raise DependencyFailure("Server error") from exc

        calls = [
            CallSummary(
                call_id=record.id,
                room_id=record.metadata.get("room_id"),
                channel_name=record.metadata.get("channel_name"),
                started_at=record.started_at,
                ended_at=record.ended_at,
                status=record.status,
                duration_seconds=record.duration_seconds,
                your_role="caller" if record.caller_id == participant_id else "callee",
                other_user_id=record.other_party(participant_id),
            )
            for record in records
        ]
        return CallHistoryResponse(calls=calls)
