"""Error taxonomy shared by the gateway, the dispatcher and the tools.

Gateways raise these exceptions; the dispatcher is the only place that
catches them, and it turns every one of them into an ``Err`` result carrying
the stable ``ErrorCode`` string the calling agent branches on.
"""

from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    AUTH_TIMEOUT = "AUTH_TIMEOUT"
    INVALID_TIME = "INVALID_TIME"
    INVALID_DURATION = "INVALID_DURATION"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    SESSION_CONFLICT = "SESSION_CONFLICT"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    ACTION_FAILED = "ACTION_FAILED"


class FocusmateError(Exception):
    """Base class for every classified failure."""

    code: ErrorCode = ErrorCode.ACTION_FAILED
    default_message = "The Focusmate action failed."

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthRequiredError(FocusmateError):
    code = ErrorCode.AUTH_REQUIRED
    default_message = "Not authenticated. Please run focusmate_auth first."


class AuthExpiredError(FocusmateError):
    code = ErrorCode.AUTH_EXPIRED
    default_message = "Authentication expired. Please run focusmate_auth to log in again."


class AuthTimeoutError(FocusmateError):
    code = ErrorCode.AUTH_TIMEOUT
    default_message = "Authentication timed out. Please try again."


class InvalidTimeError(FocusmateError):
    code = ErrorCode.INVALID_TIME
    default_message = "Invalid session start time."


class InvalidDurationError(FocusmateError):
    code = ErrorCode.INVALID_DURATION
    default_message = "Session duration must be 25, 50 or 75 minutes."


class InvalidDateRangeError(FocusmateError):
    code = ErrorCode.INVALID_DATE_RANGE
    default_message = "Invalid date range."


class SlotUnavailableError(FocusmateError):
    code = ErrorCode.SLOT_UNAVAILABLE
    default_message = "The requested time slot is not available."


class SessionConflictError(FocusmateError):
    code = ErrorCode.SESSION_CONFLICT
    default_message = "You already have a session at this time."


class SessionNotFoundError(FocusmateError):
    code = ErrorCode.SESSION_NOT_FOUND

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found.")


class ActionFailedError(FocusmateError):
    """Catch-all for an unexpected condition on the remote surface."""

    code = ErrorCode.ACTION_FAILED


class FocusmateAPIError(ActionFailedError):
    """Raised when a Focusmate REST API call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)
