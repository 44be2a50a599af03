"""
Reading Tracker - Error Taxonomy
"""

from enum import Enum


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    STORAGE_FAILURE = "storage_failure"
    CONFLICT = "conflict"


class TrackerError(Exception):
    """Base class for every error raised by the tracker."""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(TrackerError):
    """Unknown chapter, novel or user reference."""
    kind = ErrorKind.NOT_FOUND


class InvalidArgumentError(TrackerError):
    """Out-of-range progress values or a malformed goal."""
    kind = ErrorKind.INVALID_ARGUMENT


class StorageFailureError(TrackerError):
    """The underlying store could not complete the operation."""
    kind = ErrorKind.STORAGE_FAILURE


class ConflictError(TrackerError):
    # Guarded pointer updates no-op instead of raising this.
    kind = ErrorKind.CONFLICT
