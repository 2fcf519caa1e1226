"""Domain errors raised by the journal core and mapped to HTTP responses in ``main``."""

from __future__ import annotations

from typing import Sequence


class JournalError(Exception):
    """Base class for every error the journal core raises on purpose."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NoValidRowsError(JournalError):
    """Raised once per file when filtering leaves nothing to import."""

    status_code = 422


class DuplicateImportError(JournalError):
    """Uniqueness violation on a trade's import fingerprint."""

    status_code = 409

    def __init__(self, import_hash: str) -> None:
        super().__init__(f"Trade with import hash {import_hash} already imported")
        self.import_hash = import_hash


class BatchUpdateError(JournalError):
    """Raised after a batch of row updates finished with at least one failure."""

    status_code = 502

    def __init__(self, failed_ids: Sequence[str], attempted: int) -> None:
        self.failed_ids = list(failed_ids)
        self.attempted = attempted
        super().__init__(f"Failed to update {len(self.failed_ids)} of {attempted} positions.")


class MissingContextError(JournalError):
    """A user-facing precondition is not met (no user, no named strategy...)."""

    status_code = 404


class NotAuthenticatedError(MissingContextError):
    status_code = 401

    def __init__(self, message: str = "Not authenticated") -> None:
        super().__init__(message)


class NotFoundError(JournalError):
    status_code = 404


class JournalValidationError(JournalError):
    status_code = 400


class LedgerError(JournalError):
    """A store operation failed for a reason other than a duplicate."""

    status_code = 500


__all__ = [
    "BatchUpdateError",
    "DuplicateImportError",
    "JournalError",
    "JournalValidationError",
    "LedgerError",
    "MissingContextError",
    "NoValidRowsError",
    "NotAuthenticatedError",
    "NotFoundError",
]
