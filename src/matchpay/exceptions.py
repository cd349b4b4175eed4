"""Exception hierarchy for matchpay.

All errors raised by the package inherit from MatchPayError. Domain
conditions (not found, duplicates, validation) are kept apart from storage
conditions so callers know which failures are worth retrying.
"""

from typing import Any
from uuid import UUID


class MatchPayError(Exception):
    """Base exception for all matchpay errors.

    Carries an error_code and a context dict naming the identities and the
    operation involved, enough for a caller to render a specific message.
    """

    error_code: str = "MATCHPAY_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a plain dictionary."""
        return {
            "error": self.error_code,
            "message": self.message,
            "retryable": self.retryable,
            "context": self.context,
        }


# =============================================================================
# Domain Errors
# =============================================================================


class MatchError(MatchPayError):
    """Base exception for match-related errors."""

    error_code = "MATCH_ERROR"


class MatchNotFoundError(MatchError):
    """Raised when a match identity does not resolve."""

    error_code = "MATCH_NOT_FOUND"

    def __init__(self, match_id: UUID | str, operation: str | None = None) -> None:
        context = {"match_id": str(match_id)}
        if operation:
            context["operation"] = operation
        super().__init__(f"Match not found: {match_id}", context=context)


class ParticipantNotFoundError(MatchError):
    """Raised when a participant identity does not resolve within its match."""

    error_code = "PARTICIPANT_NOT_FOUND"

    def __init__(
        self,
        match_id: UUID | str,
        participant_id: UUID | str,
        operation: str | None = None,
    ) -> None:
        context = {"match_id": str(match_id), "participant_id": str(participant_id)}
        if operation:
            context["operation"] = operation
        super().__init__(
            f"Participant {participant_id} not found in match {match_id}",
            context=context,
        )


class DuplicateMatchError(MatchError):
    """Raised when creating a match whose identity is already stored."""

    error_code = "DUPLICATE_MATCH"

    def __init__(self, match_id: UUID | str) -> None:
        super().__init__(
            f"Match already exists: {match_id}",
            context={"match_id": str(match_id), "operation": "create"},
        )


class InvalidMatchError(MatchError):
    """Raised when a match fails validation before being written."""

    error_code = "INVALID_MATCH"

    def __init__(self, match_id: UUID | str, reason: str) -> None:
        super().__init__(
            f"Invalid match {match_id}: {reason}",
            context={"match_id": str(match_id), "reason": reason},
        )


# =============================================================================
# Storage Errors
# =============================================================================


class StorageError(MatchPayError):
    """Base exception for failures originating in a storage backend."""

    error_code = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """Raised when the backend cannot be reached or an I/O call fails.

    Transient: callers may retry the operation.
    """

    error_code = "STORAGE_UNAVAILABLE"
    retryable = True

    def __init__(self, operation: str, reason: str, **context: Any) -> None:
        super().__init__(
            f"Storage unavailable during {operation}: {reason}",
            context={"operation": operation, "reason": reason, **context},
        )


class PartialWriteError(StorageError):
    """Raised when only part of a match aggregate could be written."""

    error_code = "PARTIAL_WRITE"

    def __init__(self, operation: str, match_id: UUID | str, reason: str) -> None:
        super().__init__(
            f"Partial write of match {match_id} during {operation}: {reason}",
            context={"operation": operation, "match_id": str(match_id), "reason": reason},
        )


class CorruptStoreError(StorageError):
    """Raised when the embedded store holds a document that cannot be decoded."""

    error_code = "CORRUPT_STORE"

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(
            f"Stored document under {key!r} cannot be decoded: {reason}",
            context={"key": key, "reason": reason},
        )
