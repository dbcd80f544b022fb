"""Expose ORM models."""
from .call import Call, CallStatus
from .user import Preference, Role, Subscription, User

__all__ = [
    "Call",
    "CallStatus",
    "Preference",
    "Role",
    "Subscription",
    "User",
]
