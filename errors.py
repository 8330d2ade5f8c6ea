class WorkoutLogError(Exception):
    """Base class for all workout log errors."""


class NotFoundError(WorkoutLogError, LookupError):
    """Raised when a record id does not exist."""


class ValidationError(WorkoutLogError, ValueError):
    """Raised for out-of-range values, empty set lists or malformed documents."""


class DuplicateCompletionError(ValidationError):
    """Raised when an exercise was already completed in the session."""


class NoSessionError(WorkoutLogError):
    """Raised when no workout session exists for today."""


class MigrationError(WorkoutLogError):
    """A schema migration could not be applied. Fatal at startup."""

    def __init__(self, version: int, message: str) -> None:
        super().__init__(f"migration to version {version} failed: {message}")
        self.version = version


class StorageError(WorkoutLogError):
    """Underlying SQLite failure."""
