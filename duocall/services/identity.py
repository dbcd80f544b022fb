"""Bearer-token verification producing matchmaking participants."""
from __future__ import annotations

import logging

from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.errors import AuthFailure
from ..models.user import Role, Subscription, User
from ..repositories import users as users_repo
from .participant import Participant

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


def extract_bearer(header: str | None) -> str:
    """Return the raw token from an Authorization header."""

    if not header or not header.startswith(BEARER_PREFIX):
        raise AuthFailure("No token provided")
    token = header[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthFailure("No token provided")
    return token


def participant_from_user(user: User) -> Participant:
    """Build a participant from a stored identity record.

    Roles outside the matchable set (such as ``admin``) map to ``None``.
    """

    try:
        subscription = Subscription(user.subscription_type)
    except ValueError:
        subscription = Subscription.FREE
    try:
        role: Role | None = Role(user.role)
    except ValueError:
        role = None
    return Participant(
        id=user.id,
        role=role,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
        verified=bool(user.is_verified),
        subscription=subscription,
    )


class IdentityVerifier:
    """Verify HS256 session tokens and resolve them to stored users."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        secret: str,
        algorithm: str = "HS256",
    ) -> None:
        self._session_factory = session_factory
        self._secret = secret
        self._algorithm = algorithm

    def decode_subject(self, token: str) -> str:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except JWTError as exc:
            logger.info("Token verification failed: %s", exc)
            raise AuthFailure("Unauthorized") from exc
        subject = payload.get("sub")
        if not subject:
            raise AuthFailure("Unauthorized")
        return str(subject)

    async def verify(self, token: str) -> Participant:
        user_id = self.decode_subject(token)
        async with self._session_factory() as session:
            user = await users_repo.get_by_id(session, user_id)
        if user is None:
            raise AuthFailure("Unauthorized")
        return participant_from_user(user)
