"""Participant view of an identity record, rebuilt on every request."""
from __future__ import annotations

from dataclasses import dataclass, replace

from ..models.user import Preference, Role, Subscription


@dataclass(frozen=True, slots=True)
class Participant:
    id: str
    role: Role | None
    preference: Preference = Preference.BOTH
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    verified: bool = False
    subscription: Subscription = Subscription.FREE

    @property
    def display_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()

    def accepts(self, other: "Participant") -> bool:
        """Return True if this participant's preference admits the other's role."""

        return other.role is not None and self.preference.accepts(other.role)

    def with_preference(self, preference: Preference) -> "Participant":
        return replace(self, preference=preference)
