"""Error types shared by the recalculation, backend and transition layers.

Errors that only affect freshness (new suggestions, live updates) are caught
at the boundary and reported as degradation. The types below are the ones
that do cross a boundary.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any

import httpx


class ErrorCode:
    """Constants for machine-readable error codes."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    AUTH_ERROR = "auth_error"
    PERMISSION_ERROR = "permission_error"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    HTTP_ERROR = "http_error"
    PARSE_ERROR = "parse_error"
    INVALID_INPUT = "invalid_input"

    RECALCULATION_CANCELLED = "recalculation_cancelled"
    TRANSITION_IN_PROGRESS = "transition_in_progress"
    TRANSITION_CANCELLED = "transition_cancelled"
    RETRY_LIMIT_EXCEEDED = "retry_limit_exceeded"
    RETRY_DISABLED = "retry_disabled"


_NETWORK_CODES = frozenset({ErrorCode.NETWORK_ERROR, ErrorCode.TIMEOUT})

_NETWORK_HINTS = ("network", "fetch", "timeout", "connection")
_RETRYABLE_HINTS = (*_NETWORK_HINTS, "service unavailable", "internal server error")

_USER_MESSAGES: dict[str, str] = {
    ErrorCode.NETWORK_ERROR: "Unable to connect to the server. Check your internet connection and try again.",
    ErrorCode.TIMEOUT: "The request timed out. Please try again.",
    ErrorCode.AUTH_ERROR: "Your session has expired. Please log in again.",
    ErrorCode.PERMISSION_ERROR: "You do not have permission to perform this action.",
    ErrorCode.NOT_FOUND: "The requested resource was not found.",
    ErrorCode.CONFLICT: "This action conflicts with the current state. Please refresh and try again.",
    ErrorCode.RATE_LIMITED: "Too many requests. Please wait a moment and try again.",
    ErrorCode.SERVER_ERROR: "The service is temporarily unavailable. Please try again later.",
    ErrorCode.TRANSITION_IN_PROGRESS: "A mode switch is already in progress.",
    ErrorCode.TRANSITION_CANCELLED: "The mode switch was cancelled.",
}
_DEFAULT_USER_MESSAGE = "An unexpected error occurred. Please try again."


@dataclass
class DraftSyncError(Exception):
    """Base exception with consistent serialization.

    Attributes:
        code: Machine-readable error identifier.
        message: Human-readable description.
        retryable: Whether repeating the operation may succeed.
        details: Additional structured information.
    """

    code: str
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


@dataclass
class BackendError(DraftSyncError):
    """Raised when a remote suggestion-service call fails."""

    status: int | None = None

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status is not None:
            result["status"] = self.status
        return result

    @classmethod
    def from_status(cls, status: int, message: str | None = None) -> BackendError:
        code, retryable = _classify_status(status)
        return cls(
            code=code,
            message=message or f"Request failed with status {status}",
            retryable=retryable,
            status=status,
        )


@dataclass
class RecalculationCancelledError(DraftSyncError):
    code: str = field(default=ErrorCode.RECALCULATION_CANCELLED)
    message: str = field(default="Suggestion recalculation was cancelled")


@dataclass
class TransitionInProgressError(DraftSyncError):
    code: str = field(default=ErrorCode.TRANSITION_IN_PROGRESS)
    message: str = field(default="Another transition is already in progress")


@dataclass
class TransitionCancelledError(DraftSyncError):
    code: str = field(default=ErrorCode.TRANSITION_CANCELLED)
    message: str = field(default="Transition was cancelled")


@dataclass
class RetryLimitExceededError(DraftSyncError):
    code: str = field(default=ErrorCode.RETRY_LIMIT_EXCEEDED)
    message: str = field(default="Maximum retry attempts exceeded")


def is_network_error(error: BaseException) -> bool:
    """Return ``True`` for transport failures and timeouts."""

    if isinstance(error, DraftSyncError):
        return error.code in _NETWORK_CODES
    if isinstance(error, (httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        return True
    text = str(error).lower()
    return any(hint in text for hint in _NETWORK_HINTS)


def is_retryable_error(error: BaseException) -> bool:
    """Return ``True`` when repeating the failed operation may succeed."""

    if isinstance(error, DraftSyncError):
        return error.retryable
    if is_network_error(error):
        return True
    text = str(error).lower()
    return any(hint in text for hint in _RETRYABLE_HINTS)


def user_message(error: BaseException | None) -> str:
    """Translate ``error`` into a message safe to show to the writer."""

    if isinstance(error, DraftSyncError):
        return _USER_MESSAGES.get(error.code, error.message or _DEFAULT_USER_MESSAGE)
    if error is not None and is_network_error(error):
        return _USER_MESSAGES[ErrorCode.NETWORK_ERROR]
    if error is not None and str(error):
        return str(error)
    return _DEFAULT_USER_MESSAGE


def _classify_status(status: int) -> tuple[str, bool]:
    if status == 401:
        return ErrorCode.AUTH_ERROR, False
    if status == 403:
        return ErrorCode.PERMISSION_ERROR, False
    if status == 404:
        return ErrorCode.NOT_FOUND, False
    if status == 408:
        return ErrorCode.TIMEOUT, True
    if status == 409:
        return ErrorCode.CONFLICT, False
    if status == 429:
        return ErrorCode.RATE_LIMITED, True
    if status >= 500:
        return ErrorCode.SERVER_ERROR, True
    return ErrorCode.HTTP_ERROR, False


__all__ = [
    "BackendError",
    "DraftSyncError",
    "ErrorCode",
    "RecalculationCancelledError",
    "RetryLimitExceededError",
    "TransitionCancelledError",
    "TransitionInProgressError",
    "is_network_error",
    "is_retryable_error",
    "user_message",
]
