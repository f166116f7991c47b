"""
Exception classes and operation results for playlist-sync.

This module defines all custom exceptions used throughout the application,
plus the small result types that public operations return instead of
raising. Each exception carries a human-readable message and an optional
``details`` dictionary for logging.

Exception Hierarchy:
    PlaylistSyncError (base)
        ConfigError - Configuration file issues
        LocalStoreError - Local SQLite store issues (hard failure)
        RemoteError - Remote document store issues
            RemoteUnavailable - Remote tier absent or unreachable
            RemoteRejected - Remote tier refused the request
        NotFound - Neither tier has the requested record
        OwnershipDenied - Acting identity does not own the record
        ValidationFailed - Malformed share code, rating, or playlist

Propagation Policy:
    Only LocalStoreError (and ConfigError at startup) is allowed to reach
    callers as an exception. Everything else is caught at the coordinator
    boundary and turned into an OperationResult with an ErrorKind, so UI
    code can branch on the result without a try/except.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar


T = TypeVar("T")


class PlaylistSyncError(Exception):
    """
    Base exception for all playlist-sync errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context
                 (e.g., playlist id, share code, HTTP status).

    Example:
        try:
            await store.put(record)
        except PlaylistSyncError as e:
            logger.error(f"Operation failed: {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(PlaylistSyncError):
    """
    Raised when there's an issue with the configuration file.

    This is a CRITICAL error that should stop program execution.

    Common causes:
        - config.yaml has invalid YAML syntax
        - A section is not a dictionary
        - Invalid field values (e.g., negative timeout)
    """
    pass


class LocalStoreError(PlaylistSyncError):
    """
    Raised when the local SQLite store cannot be read or written.

    The local tier is the durability guarantee of every save, so this is
    the one failure that is surfaced to callers as a hard error.

    Common causes:
        - Parent directory of the database does not exist
        - Permission denied / disk full
        - Schema version mismatch

    Note:
        Corrupt JSON *content* is not a LocalStoreError: it is logged and
        the affected key is reset to empty.
    """
    pass


class RemoteError(PlaylistSyncError):
    """
    Base class for remote document store failures.

    Attributes:
        status: HTTP status code when the failure came from a response.
    """

    def __init__(
        self,
        message: str,
        details: dict | None = None,
        status: int | None = None
    ) -> None:
        super().__init__(message, details)
        self.status = status


class RemoteUnavailable(RemoteError):
    """
    Raised when the remote tier is not configured or cannot be reached.

    Never retried: callers degrade silently to local-only behavior.

    Common causes:
        - No project id / api key configured
        - Network error or request timeout
        - 5xx response from the service
    """
    pass


class RemoteRejected(RemoteError):
    """
    Raised when the remote tier refused a request (4xx).

    Logged by the coordinator; any local write that preceded the remote
    attempt still stands.

    Example:
        raise RemoteRejected(
            "Remote rejected document create",
            details={"collection": "shared_playlists", "reason": "INVALID_ARGUMENT"},
            status=400
        )
    """
    pass


class NotFound(PlaylistSyncError):
    """Raised when neither the remote nor the local tier has the record."""
    pass


class OwnershipDenied(PlaylistSyncError):
    """
    Raised when the acting identity may not mutate the target record.

    Records without a creator id (pre-authentication legacy data) are
    owned by nobody and always raise this for creator-restricted changes.
    """
    pass


class ValidationFailed(PlaylistSyncError):
    """
    Raised on malformed input: bad share code, out-of-range rating,
    or an empty/invalid playlist structure.
    """
    pass


class ErrorKind(Enum):
    """Failure categories reported by OperationResult."""
    REMOTE_UNAVAILABLE = "remote_unavailable"
    REMOTE_REJECTED = "remote_rejected"
    NOT_FOUND = "not_found"
    OWNERSHIP_DENIED = "ownership_denied"
    VALIDATION_FAILED = "validation_failed"


_KIND_BY_EXCEPTION: dict[type, ErrorKind] = {
    RemoteUnavailable: ErrorKind.REMOTE_UNAVAILABLE,
    RemoteRejected: ErrorKind.REMOTE_REJECTED,
    NotFound: ErrorKind.NOT_FOUND,
    OwnershipDenied: ErrorKind.OWNERSHIP_DENIED,
    ValidationFailed: ErrorKind.VALIDATION_FAILED,
}


def error_kind_for(error: PlaylistSyncError) -> ErrorKind:
    """Map an exception instance to its ErrorKind (RemoteError -> unavailable)."""
    for exc_type, kind in _KIND_BY_EXCEPTION.items():
        if isinstance(error, exc_type):
            return kind
    return ErrorKind.REMOTE_UNAVAILABLE


@dataclass
class OperationResult(Generic[T]):
    """
    Outcome of a public operation.

    Attributes:
        ok: True when the operation took effect.
        value: Operation payload (record, rating, count...) when ok.
        error: Failure category when not ok.
        message: Human-readable summary suitable for display.
        details: Extra context for logging.

    Example:
        result = await coordinator.remove_from_community(record_id)
        if result.error is ErrorKind.OWNERSHIP_DENIED:
            show("You can only unpublish your own playlists")
    """
    ok: bool
    value: T | None = None
    error: ErrorKind | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: T | None = None, message: str = "") -> "OperationResult[T]":
        return cls(ok=True, value=value, message=message)

    @classmethod
    def failure(
        cls,
        error: ErrorKind,
        message: str,
        details: dict[str, Any] | None = None
    ) -> "OperationResult[T]":
        return cls(ok=False, error=error, message=message, details=details or {})

    @classmethod
    def from_exception(cls, exc: PlaylistSyncError) -> "OperationResult[T]":
        return cls.failure(error_kind_for(exc), exc.message, exc.details)

    def __bool__(self) -> bool:
        return self.ok
