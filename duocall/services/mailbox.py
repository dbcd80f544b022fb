"""One-shot delivery slots for the participant who did not trigger a match."""
from __future__ import annotations

from collections.abc import Iterable
from typing import Generic, TypeVar

PayloadT = TypeVar("PayloadT")


class MatchMailbox(Generic[PayloadT]):
    """Read-once mailbox keyed by participant id.

    The transport is request/response, so only the request that formed a
    match sees it immediately. The other side picks its payload up here on
    its next join.
    """

    def __init__(self) -> None:
        self._slots: dict[str, PayloadT] = {}

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, key: object) -> bool:
        return key in self._slots

    def put(self, participant_id: str, payload: PayloadT) -> None:
        self._slots[participant_id] = payload

    def take(self, participant_id: str) -> PayloadT | None:
        """Return and delete the payload, if any."""

        return self._slots.pop(participant_id, None)

    def discard(self, key: str) -> bool:
        return self._slots.pop(key, None) is not None

    def discard_room(self, room_id: str, participant_ids: Iterable[str]) -> int:
        """Drop the given participants' payloads that still point at ``room_id``."""

        removed = 0
        for participant_id in participant_ids:
            payload = self._slots.get(participant_id)
            if payload is not None and getattr(payload, "room_id", None) == room_id:
                del self._slots[participant_id]
                removed += 1
        return removed
