"""Custom exception hierarchy for the step migration tool."""


class MigratorError(Exception):
    """Base exception for all migration-related errors."""


class ConfigError(MigratorError):
    """Raised when configuration is invalid or missing."""


class DatabaseConnectionError(MigratorError):
    """Raised when the database client cannot be acquired or is not connected."""


class CheckpointError(MigratorError):
    """Raised when a checkpoint update would violate its invariants."""


class InvalidTransitionError(CheckpointError):
    """Raised when a checkpoint status change is not an allowed transition."""

    def __init__(self, step: str, current: str, requested: str) -> None:
        super().__init__(
            f"Checkpoint for step '{step}' cannot move from '{current}' to '{requested}'"
        )
        self.step = step
        self.current = current
        self.requested = requested


class BatchAbortError(MigratorError):
    """Raised by a processor to abort the whole batch (e.g. a bulk write failure)."""


class StepFailedError(MigratorError):
    """Raised when a migration step fails and the run cannot continue."""

    def __init__(self, step: str, message: str) -> None:
        super().__init__(f"Step {step} failed: {message}")
        self.step = step


class MigrationAbortedError(MigratorError):
    """Raised when the migration is aborted because a step reported errors."""
