"""Error taxonomy and classification for remote and local replica operations."""

from __future__ import annotations

from enum import StrEnum

from replica_sync.core.errors import (
    LocalStoreError,
    NotAuthenticatedError,
    RemoteStoreError,
    ReplicaSyncError,
)

__all__ = [
    "ErrorCategory",
    "LocalStoreError",
    "NotAuthenticatedError",
    "RemoteStoreError",
    "ReplicaSyncError",
    "classify_error",
    "get_user_friendly_error",
    "is_offline_error",
    "is_retryable",
]


class ErrorCategory(StrEnum):
    """Coarse error classes driving retry and presentation decisions."""

    AUTH = "authentication"
    NETWORK = "network"
    PERMISSION = "permission"
    DATA = "data"
    UNKNOWN = "unknown"


_NETWORK_CODES = frozenset({"unavailable", "deadline-exceeded", "cancelled"})
_PERMISSION_CODES = frozenset({"permission-denied", "unauthenticated"})
_DATA_CODES = frozenset({"invalid-argument", "not-found", "already-exists"})
_OFFLINE_CODES = frozenset({"unavailable", "offline", "failed-precondition"})
_OFFLINE_MARKERS = ("offline", "network", "unavailable")


def _error_code(error: BaseException | None) -> str:
    code = getattr(error, "code", None)
    return code if isinstance(code, str) else ""


def classify_error(error: BaseException | None) -> ErrorCategory:
    """Map an exception to an :class:`ErrorCategory`.

    Store errors are classified by their ``code``. Transport-level exceptions
    without a code (timeouts, refused connections) count as network errors.
    """
    if error is None:
        return ErrorCategory.UNKNOWN

    code = _error_code(error)
    if not code:
        if isinstance(error, (TimeoutError, ConnectionError, OSError)):
            return ErrorCategory.NETWORK
        return ErrorCategory.UNKNOWN

    if code.startswith("auth/"):
        return ErrorCategory.AUTH
    if code in _NETWORK_CODES or "network" in code:
        return ErrorCategory.NETWORK
    if code in _PERMISSION_CODES:
        return ErrorCategory.PERMISSION
    if code in _DATA_CODES:
        return ErrorCategory.DATA
    return ErrorCategory.UNKNOWN


def is_retryable(category: ErrorCategory) -> bool:
    """Whether an error of this category may be retried.

    Permission failures never fix themselves. Unknown errors are retried like
    transient ones.
    """
    return category != ErrorCategory.PERMISSION


def is_offline_error(error: BaseException | None) -> bool:
    """Whether *error* means the store server could not be reached."""
    if error is None:
        return False
    if _error_code(error) in _OFFLINE_CODES:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _OFFLINE_MARKERS)


_AUTH_MESSAGES = {
    "auth/network-request-failed": "Network error during sign-in. Please check your connection.",
    "auth/too-many-requests": "Too many sign-in attempts. Please try again later.",
    "auth/user-disabled": "This account has been disabled.",
    "auth/invalid-credential": "Invalid credentials. Please try again.",
}

_DATA_MESSAGES = {
    "not-found": "The requested data was not found.",
    "already-exists": "This data already exists.",
    "invalid-argument": "Invalid data provided.",
}


def get_user_friendly_error(error: BaseException | None) -> str:
    """Return a message suitable for showing to an end user."""
    if error is None:
        return "An unknown error occurred."

    code = _error_code(error)
    category = classify_error(error)

    if category == ErrorCategory.AUTH:
        return _AUTH_MESSAGES.get(code, "Authentication failed. Please try again.")
    if category == ErrorCategory.NETWORK:
        return "Network connection issue. Please check your internet and try again."
    if category == ErrorCategory.PERMISSION:
        return "You don't have permission to perform this action. Please sign in."
    if category == ErrorCategory.DATA:
        return _DATA_MESSAGES.get(code, "Data operation failed. Please try again.")

    return str(error) or "An error occurred. Please try again."
