"""Process-local matchmaking state owned by a single coordinator."""
from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass

from ..schemas.match import MatchResult
from .mailbox import MatchMailbox
from .match_queue import DEFAULT_TTL_SECONDS, MatchQueue


@dataclass(slots=True)
class ActiveSession:
    room_id: str
    call_id: str
    initiator_id: str
    receiver_id: str
    channel_name: str
    started_at: float

    @property
    def parties(self) -> tuple[str, str]:
        return (self.initiator_id, self.receiver_id)

    def involves(self, participant_id: str) -> bool:
        return participant_id in self.parties


class MatchmakingState:
    """Queue, sessions, and mailbox guarded by one asyncio lock.

    Every mutation happens with ``lock`` held. The lock is never held across
    calls to the credential issuer or the ledger.

    ``rooms_by_participant`` maps a participant to the room they hold, from
    the moment a pair is chosen (reservation) until the call ends or the
    match attempt rolls back.
    """

    def __init__(
        self,
        *,
        queue_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.clock = clock
        self.lock = asyncio.Lock()
        self.queue = MatchQueue(ttl_seconds=queue_ttl_seconds, clock=clock)
        self.sessions: dict[str, ActiveSession] = {}
        self.mailbox: MatchMailbox[MatchResult] = MatchMailbox()
        self.rooms_by_participant: dict[str, str] = {}

    def room_of(self, participant_id: str) -> str | None:
        return self.rooms_by_participant.get(participant_id)

    def session_for_call(self, call_id: str) -> ActiveSession | None:
        for session in self.sessions.values():
            if session.call_id == call_id:
                return session
        return None

    def reserve(self, room_id: str, *participant_ids: str) -> None:
        for participant_id in participant_ids:
            self.rooms_by_participant[participant_id] = room_id

    def release(self, room_id: str) -> None:
        holders = [pid for pid, held in self.rooms_by_participant.items() if held == room_id]
        for participant_id in holders:
            del self.rooms_by_participant[participant_id]

    def register(self, session: ActiveSession) -> None:
        self.sessions[session.room_id] = session
        self.reserve(session.room_id, *session.parties)

    def drop_session(self, room_id: str) -> ActiveSession | None:
        session = self.sessions.pop(room_id, None)
        self.release(room_id)
        return session
