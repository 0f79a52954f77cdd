"""Typed failures and user-facing error classification."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ValidationError

from src.core.db_client import DatabaseError, DuplicateRecordError, RecordNotFoundError


class GrowthAllyError(Exception):
    """Base class for workflow failures surfaced to the initiating user."""


class StateConflictError(GrowthAllyError, ValueError):
    """A record was not in the state the operation requires (it changed underneath the caller)."""

    def __init__(self, message: str, *, current_state: str | None = None) -> None:
        super().__init__(message)
        self.current_state = current_state


class InsufficientPointsError(GrowthAllyError, ValueError):
    """A redemption costs more than the child's current balance."""

    def __init__(self, *, required: int, available: int) -> None:
        super().__init__(f"Insufficient points: reward costs {required}, balance is {available}")
        self.required = required
        self.available = available


class IdentityExistsError(GrowthAllyError):
    """The credential identifier (email) is already in use."""

    def __init__(self, email: str) -> None:
        super().__init__(f"Identity already exists: {email}")
        self.email = email


class AuthenticationError(GrowthAllyError):
    """Credentials or session were rejected."""


class AssigneeRecordMissingError(GrowthAllyError):
    """One or more assignees have no profile or roster record."""

    def __init__(self, missing_assignee_ids: list[str]) -> None:
        super().__init__(f"Missing profile or roster record for assignees: {', '.join(missing_assignee_ids)}")
        self.missing_assignee_ids = missing_assignee_ids


class IntegrityError(GrowthAllyError):
    """A multi-record write was abandoned; none of its writes were applied."""


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    # Input errors
    ERR_VALIDATION = "ERR_VALIDATION"

    # Workflow errors
    ERR_STATE_CONFLICT = "ERR_STATE_CONFLICT"
    ERR_INSUFFICIENT_POINTS = "ERR_INSUFFICIENT_POINTS"
    ERR_INTEGRITY = "ERR_INTEGRITY"

    # Identity errors
    ERR_IDENTITY_EXISTS = "ERR_IDENTITY_EXISTS"
    ERR_AUTHENTICATION_FAILED = "ERR_AUTHENTICATION_FAILED"
    ERR_PERMISSION_DENIED = "ERR_PERMISSION_DENIED"

    # Lookup errors
    ERR_NOT_FOUND = "ERR_NOT_FOUND"

    # Backend errors
    ERR_BACKEND_UNAVAILABLE = "ERR_BACKEND_UNAVAILABLE"

    # Generic errors
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response with user-friendly messaging."""

    code: str
    message: str
    suggestion: str
    severity: ErrorSeverity


_ERROR_PATTERNS: dict[Literal["network"], dict[str, list[str] | set[str]]] = {
    "network": {
        "phrases": [
            "connection",
            "timeout",
            "unable to open database",
            "database is locked",
            "disk i/o error",
            "unreachable",
        ],
        "exception_types": {"ConnectionError", "TimeoutError"},
    },
}


def _match_error_pattern(*, error_str: str, exception_type: str, pattern_type: Literal["network"]) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def classify_error_with_response(exception: Exception) -> ErrorResponse:  # noqa: PLR0911
    """Classify an error and return a structured response with recovery suggestions.

    Args:
        exception: The exception raised by a workflow operation

    Returns:
        ErrorResponse with code, message, suggestion, and severity
    """
    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if isinstance(exception, ValidationError):
        fields = ", ".join(str(err["loc"][-1]) for err in exception.errors() if err.get("loc"))
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION,
            message=f"Some fields are invalid: {fields}." if fields else "The request is invalid.",
            suggestion="Correct the highlighted fields and submit again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InsufficientPointsError):
        return ErrorResponse(
            code=ErrorCode.ERR_INSUFFICIENT_POINTS,
            message=f"Not enough points: this reward costs {exception.required}, you have {exception.available}.",
            suggestion="Complete more tasks to earn points, then try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, StateConflictError):
        return ErrorResponse(
            code=ErrorCode.ERR_STATE_CONFLICT,
            message="This item changed while you were looking at it.",
            suggestion="Refresh to see its current state and try again.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, IdentityExistsError):
        return ErrorResponse(
            code=ErrorCode.ERR_IDENTITY_EXISTS,
            message=f"The email {exception.email} is already in use.",
            suggestion="Choose a different email or email prefix.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, AuthenticationError):
        return ErrorResponse(
            code=ErrorCode.ERR_AUTHENTICATION_FAILED,
            message="Sign-in failed or your session has ended.",
            suggestion="Check your email and password, then sign in again.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, AssigneeRecordMissingError | IntegrityError):
        return ErrorResponse(
            code=ErrorCode.ERR_INTEGRITY,
            message="The change could not be applied to every record, so nothing was changed.",
            suggestion="Refresh and check the family roster before trying again.",
            severity=ErrorSeverity.HIGH,
        )

    if isinstance(exception, PermissionError) or "permission denied" in error_str:
        return ErrorResponse(
            code=ErrorCode.ERR_PERMISSION_DENIED,
            message="You don't have permission for this action.",
            suggestion="Sign in with the account that owns this item.",
            severity=ErrorSeverity.MEDIUM,
        )

    if isinstance(exception, RecordNotFoundError):
        return ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message="That item no longer exists.",
            suggestion="Refresh to see the current list.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, DuplicateRecordError):
        return ErrorResponse(
            code=ErrorCode.ERR_STATE_CONFLICT,
            message="That item already exists.",
            suggestion="Refresh to see the current list.",
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, DatabaseError) or _match_error_pattern(
        error_str=error_str, exception_type=exception_type, pattern_type="network"
    ):
        return ErrorResponse(
            code=ErrorCode.ERR_BACKEND_UNAVAILABLE,
            message="The service could not be reached.",
            suggestion="Please check your connection and try again.",
            severity=ErrorSeverity.HIGH,
        )

    if isinstance(exception, ValueError):
        return ErrorResponse(
            code=ErrorCode.ERR_VALIDATION,
            message=str(exception) or "The request is invalid.",
            suggestion="Correct the input and submit again.",
            severity=ErrorSeverity.LOW,
        )

    return ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        suggestion="Please try again later. If the problem persists, contact support.",
        severity=ErrorSeverity.MEDIUM,
    )
