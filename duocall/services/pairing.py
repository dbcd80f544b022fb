"""Greedy first-fit pairing over the matchmaking queue."""
from __future__ import annotations

from dataclasses import dataclass

from .match_queue import MatchQueue, QueueEntry
from .participant import Participant


@dataclass(frozen=True, slots=True)
class Pair:
    initiator: Participant
    receiver: Participant
    receiver_entry: QueueEntry


def is_compatible(first: Participant, second: Participant) -> bool:
    """Both sides' preferences must admit the other's role."""

    return first.accepts(second) and second.accepts(first)


def find_match(arriving: Participant, queue: MatchQueue) -> Pair | None:
    """Pop the oldest live, compatible candidate for ``arriving``.

    No lookahead and no optimal assignment: the first candidate in arrival
    order that satisfies both preferences wins.
    """

    for entry in queue.scan():
        candidate = entry.participant
        if candidate.id == arriving.id:
            continue
        if not is_compatible(arriving, candidate):
            continue
        queue.remove(candidate.id)
        return Pair(initiator=arriving, receiver=candidate, receiver_entry=entry)
    return None
