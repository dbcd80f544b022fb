"""RTC credential issuance.

Join tokens follow the LiveKit access-token layout: an HS256 JWT whose
``video`` grant scopes the bearer to one room under one identity.
"""
from __future__ import annotations

import enum
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from secrets import token_urlsafe

from jose import jwt

from ..core.config import Settings


class RtcRole(str, enum.Enum):
    PUBLISHER = "publisher"
    SUBSCRIBER = "subscriber"


@dataclass(slots=True)
class RtcToken:
    token: str
    expires_in: int


class CredentialIssuer(ABC):
    """Mints short-lived join credentials for a (room, identity) pair."""

    @abstractmethod
    async def issue_token(
        self,
        room: str,
        identity_id: str,
        *,
        role: RtcRole = RtcRole.PUBLISHER,
        ttl_seconds: int | None = None,
    ) -> RtcToken:
        ...


class JwtCredentialIssuer(CredentialIssuer):
    def __init__(
        self,
        api_key: str,
        api_secret: str,
        *,
        default_ttl_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not api_key or not api_secret:
            raise ValueError("RTC api key and secret are required")
        self._api_key = api_key
        self._api_secret = api_secret
        self._default_ttl = default_ttl_seconds
        self._clock = clock

    async def issue_token(
        self,
        room: str,
        identity_id: str,
        *,
        role: RtcRole = RtcRole.PUBLISHER,
        ttl_seconds: int | None = None,
    ) -> RtcToken:
        ttl = ttl_seconds or self._default_ttl
        now = int(self._clock())
        claims = {
            "iss": self._api_key,
            "sub": identity_id,
            "nbf": now,
            "exp": now + ttl,
            "jti": token_urlsafe(12),
            "video": {
                "room": room,
                "roomJoin": True,
                "canPublish": role is RtcRole.PUBLISHER,
                "canSubscribe": True,
            },
        }
        token = jwt.encode(claims, self._api_secret, algorithm="HS256")
        return RtcToken(token=token, expires_in=ttl)


def build_issuer(settings: Settings) -> JwtCredentialIssuer:
    return JwtCredentialIssuer(
        settings.rtc_api_key,
        settings.rtc_api_secret,
        default_ttl_seconds=settings.rtc_token_ttl_seconds,
    )
