"""Error taxonomy shared by services and the HTTP layer.

Each error carries the HTTP status it maps to and a message that is
safe to show to the caller. ``src.main`` renders them in the standard
``{"success": false, "message": ...}`` envelope.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class FieldError:
    field: str
    message: str

    def as_dict(self) -> dict[str, str]:
        return {"field": self.field, "message": self.message}


class TravaultError(Exception):
    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.public_message
        super().__init__(self.message)


class ValidationFailed(TravaultError):
    status_code = 400
    public_message = "Validation failed"

    def __init__(self, errors: list[FieldError], message: str | None = None) -> None:
        super().__init__(message)
        self.errors = errors


class Unauthorized(TravaultError):
    status_code = 401
    public_message = "Access denied. No token provided."


class Forbidden(TravaultError):
    status_code = 403
    public_message = "Access denied"


class NotFound(TravaultError):
    status_code = 404
    public_message = "Not found"


class InvalidTransition(TravaultError):
    status_code = 409
    public_message = "Status change not allowed"


class DispatchError(TravaultError):
    """A notification channel failed to accept a message."""

    status_code = 502
    public_message = "Notification channel failed"

    def __init__(self, channel: str, cause: str) -> None:
        super().__init__(f"{channel} channel failed: {cause}")
        self.channel = channel
        self.cause = cause


class InternalError(TravaultError):
    status_code = 500
