"""In-memory matchmaking queue with lazy, scan-driven expiry."""
from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Callable, Iterator
from dataclasses import dataclass

from .participant import Participant

DEFAULT_TTL_SECONDS = 60.0


@dataclass(slots=True)
class QueueEntry:
    participant: Participant
    joined_at: float


class MatchQueue:
    """Waiting participants keyed by id, scanned in arrival order.

    Entries older than ``ttl_seconds`` are treated as abandoned and dropped the
    next time a scan visits them. Nothing evicts proactively unless
    :meth:`evict_expired` is called (see ``services.sweeper``).
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, QueueEntry] = OrderedDict()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, participant_id: object) -> bool:
        return participant_id in self._entries

    def get(self, participant_id: str) -> QueueEntry | None:
        return self._entries.get(participant_id)

    def enqueue(self, participant: Participant, joined_at: float | None = None) -> QueueEntry:
        """Upsert the participant; re-joining resets ``joined_at`` and scan position."""

        self._entries.pop(participant.id, None)
        entry = QueueEntry(participant=participant, joined_at=self._clock() if joined_at is None else joined_at)
        self._entries[participant.id] = entry
        return entry

    def remove(self, participant_id: str) -> QueueEntry | None:
        return self._entries.pop(participant_id, None)

    def restore(self, entry: QueueEntry) -> None:
        """Put a previously popped entry back at the head of the scan order."""

        self._entries[entry.participant.id] = entry
        self._entries.move_to_end(entry.participant.id, last=False)

    def is_expired(self, entry: QueueEntry, now: float | None = None) -> bool:
        current = self._clock() if now is None else now
        return current - entry.joined_at > self._ttl

    def scan(self) -> Iterator[QueueEntry]:
        """Yield live entries oldest-first, evicting expired ones as they are visited.

        The queue may be mutated while the generator is suspended; entries
        removed in the meantime are skipped.
        """

        now = self._clock()
        for participant_id in list(self._entries):
            entry = self._entries.get(participant_id)
            if entry is None:
                continue
            if self.is_expired(entry, now):
                del self._entries[participant_id]
                continue
            yield entry

    def evict_expired(self) -> int:
        """Drop every expired entry and return how many were removed."""

        now = self._clock()
        expired = [key for key, entry in self._entries.items() if self.is_expired(entry, now)]
        for key in expired:
            self._entries.pop(key, None)
        return len(expired)
