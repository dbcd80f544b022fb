"""Error taxonomy shared by the matchmaking core and the HTTP layer."""
from __future__ import annotations

from typing import Any


class DuocallError(Exception):
    """Base class for rejections surfaced to callers with a stable kind."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str, **extra: Any) -> None:
        super().__init__(message)
        self.message = message
        self.extra = extra

    def to_payload(self) -> dict[str, Any]:
        return {"ok": False, "kind": self.kind, "message": self.message, **self.extra}


class AuthFailure(DuocallError):
    """Missing or invalid identity."""

    kind = "auth"
    status_code = 401


class ValidationFailure(DuocallError):
    """Request is well formed but not acceptable for this identity or state."""

    kind = "validation"
    status_code = 400

    def __init__(self, message: str, *, status_code: int | None = None, **extra: Any) -> None:
        super().__init__(message, **extra)
        if status_code is not None:
            self.status_code = status_code


class NotFound(DuocallError):
    kind = "not_found"
    status_code = 404


class DependencyFailure(DuocallError):
    """Credential issuer or ledger store failed while forming a match."""

    kind = "dependency"
    status_code = 503
