"""
Error taxonomy for the availability engine.

Every error carries an HTTP-style status code so an outer layer can map it
directly to a response. All errors are local to one request.
"""

from typing import Any


class CircleCalError(Exception):
    """
    Base exception for all circlecal errors.

    Attributes:
        message: Error message
        detail: Additional error details
        status_code: HTTP status code for API responses
    """

    default_message = "An error occurred"
    default_status = 400

    def __init__(
        self,
        message: str | None = None,
        detail: dict[str, Any] | None = None,
        status_code: int | None = None,
    ):
        self.message = message or self.default_message
        self.detail = detail or {}
        self.status_code = status_code or self.default_status
        super().__init__(self.message)

    def __str__(self):
        return str(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Error payload in the {"success": False, ...} tool-result shape."""
        return {"success": False, "error": self.message, **self.detail}


class ValidationError(CircleCalError):
    """Malformed window, out-of-bounds duration, empty participants, bad invitees."""

    default_message = "Validation error"
    default_status = 400


class PermissionDenied(CircleCalError):
    """
    Viewer may not see one or more calendars.

    The message is identical whether the cause is a block, a missing
    friendship, disabled sharing or an unknown user.
    """

    default_message = "Not authorized to view this calendar"
    default_status = 403

    def __init__(
        self,
        message: str | None = None,
        participant_ids: list[str] | None = None,
        status_code: int | None = None,
    ):
        self.participant_ids = list(participant_ids or [])
        detail = {"not_viewable_participant_ids": self.participant_ids} if self.participant_ids else None
        super().__init__(message, detail, status_code)


class TransactionFailed(CircleCalError):
    """The confirm write path failed and nothing was committed."""

    default_message = "Could not create event"
    default_status = 500


__all__ = [
    "CircleCalError",
    "PermissionDenied",
    "TransactionFailed",
    "ValidationError",
]
