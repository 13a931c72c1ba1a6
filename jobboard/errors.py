"""
Exception hierarchy shared by the services and the HTTP layer.

Each error carries the HTTP status it renders with; `jobboard.app` turns any
`JobBoardError` into a JSON body with an ``error`` key.
"""

from __future__ import annotations

from typing import Optional


class JobBoardError(Exception):
    """Base application exception."""

    status_code: int = 500

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_payload(self) -> dict:
        payload = {"error": self.message}
        if self.detail:
            payload["message"] = self.detail
        return payload


class Unauthenticated(JobBoardError):
    """Missing, malformed or rejected bearer token."""

    status_code = 401


class Unauthorized(JobBoardError):
    """Credentials were checked and did not match."""

    status_code = 401


class Forbidden(JobBoardError):
    """Role or ownership mismatch."""

    status_code = 403


class NotFound(JobBoardError):
    status_code = 404


class Conflict(JobBoardError):
    status_code = 409


class BadRequest(JobBoardError):
    status_code = 400


class ValidationFailed(JobBoardError):
    """Field-level input errors, keyed by field name."""

    status_code = 422

    def __init__(self, errors: dict[str, list[str]]):
        super().__init__("The given data was invalid.")
        self.errors = errors

    @classmethod
    def single(cls, field: str, message: str) -> "ValidationFailed":
        return cls({field: [message]})

    def to_payload(self) -> dict:
        return {"validation error": self.errors}


class AuthSyncFailed(JobBoardError):
    """The identity provider rejected an account change."""

    status_code = 400


class StorageFailed(JobBoardError):
    """Blob or tree store write failed."""

    status_code = 500


class PartialUpdateFailed(StorageFailed):
    """The first location of a multi-location write landed, a later one did not."""

    def __init__(self, message: str, *, written: list[str], failed: list[str], detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.written = written
        self.failed = failed

    def to_payload(self) -> dict:
        payload = super().to_payload()
        payload["partial"] = True
        return payload


class Unexpected(JobBoardError):
    status_code = 500


__all__ = [
    "AuthSyncFailed",
    "BadRequest",
    "Conflict",
    "Forbidden",
    "JobBoardError",
    "NotFound",
    "PartialUpdateFailed",
    "StorageFailed",
    "Unauthenticated",
    "Unauthorized",
    "Unexpected",
    "ValidationFailed",
]
