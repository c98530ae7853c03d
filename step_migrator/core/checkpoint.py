"""Checkpoint persistence for resumable migration steps.

One record per step lives in the checkpoint collection, keyed by step name.
The store keeps an in-memory copy loaded once at startup and writes the full
record back (upsert by key) on every mutation, so the persisted state is
always at least as current as the last committed batch.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pymongo.collection import Collection

from step_migrator.exceptions import CheckpointError, InvalidTransitionError
from step_migrator.types import CheckpointDocument, StepStatus
from step_migrator.utils.logging import log_with_context

ALLOWED_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.RUNNING}),
    # running -> running is the re-entry after a crash left the record running
    StepStatus.RUNNING: frozenset(
        {StepStatus.RUNNING, StepStatus.COMPLETED, StepStatus.FAILED}
    ),
    StepStatus.FAILED: frozenset({StepStatus.RUNNING}),
    StepStatus.COMPLETED: frozenset(),
}

# Persisted field name for each MigrationCheckpoint attribute.
_FIELD_NAMES = {
    "last_processed_id": "lastProcessedId",
    "processed_count": "processedCount",
    "total_count": "totalCount",
    "status": "status",
    "error": "error",
    "started_at": "startedAt",
    "completed_at": "completedAt",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MigrationCheckpoint:
    """Progress record for one step."""

    step: str
    last_processed_id: Any = None
    processed_count: int = 0
    total_count: int | None = None
    status: StepStatus = StepStatus.PENDING
    error: str | None = None
    started_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None

    def to_document(self) -> CheckpointDocument:
        doc: CheckpointDocument = {"_id": self.step}
        for attr, key in _FIELD_NAMES.items():
            value = getattr(self, attr)
            doc[key] = value.value if isinstance(value, StepStatus) else value  # type: ignore[literal-required]
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> MigrationCheckpoint:
        return cls(
            step=doc["_id"],
            last_processed_id=doc.get("lastProcessedId"),
            processed_count=doc.get("processedCount", 0),
            total_count=doc.get("totalCount"),
            status=StepStatus(doc.get("status", StepStatus.PENDING.value)),
            error=doc.get("error"),
            started_at=doc.get("startedAt") or _now(),
            completed_at=doc.get("completedAt"),
        )


class CheckpointStore:
    """In-memory map of step checkpoints mirrored to a collection.

    A store is owned by exactly one runner. There is no locking: two
    processes mutating the same step's checkpoint is unsupported.

    With ``persist=False`` the store only tracks records in memory; dry runs
    use such a scratch store so they never touch real progress.
    """

    def __init__(self, collection: Collection, persist: bool = True) -> None:
        self.collection = collection
        self.persist = persist
        self._checkpoints: dict[str, MigrationCheckpoint] = {}

    def scratch(self) -> CheckpointStore:
        """Return a non-persisting copy of this store's current records."""
        copy = CheckpointStore(self.collection, persist=False)
        copy._checkpoints = {
            name: dataclasses.replace(cp) for name, cp in self._checkpoints.items()
        }
        return copy

    def load(self) -> int:
        """Read every persisted checkpoint, replacing the in-memory map."""
        self._checkpoints.clear()
        for doc in self.collection.find({}):
            try:
                checkpoint = MigrationCheckpoint.from_document(doc)
            except (KeyError, ValueError) as e:
                log_with_context(
                    logging.WARNING,
                    f"Ignoring malformed checkpoint {doc.get('_id')!r}: {e}",
                )
                continue
            self._checkpoints[checkpoint.step] = checkpoint
        log_with_context(
            logging.DEBUG, f"Loaded {len(self._checkpoints)} checkpoint(s)"
        )
        return len(self._checkpoints)

    def get(self, step: str) -> MigrationCheckpoint | None:
        return self._checkpoints.get(step)

    def all(self) -> list[MigrationCheckpoint]:
        return [self._checkpoints[name] for name in sorted(self._checkpoints)]

    def save(self, step: str, **changes: Any) -> MigrationCheckpoint:
        """Merge ``changes`` into the step's record and write it back.

        A step with no record gets a fresh ``pending`` one first.

        Raises:
            InvalidTransitionError: If ``status`` would make a disallowed move.
            CheckpointError: If ``total_count`` is already set and would change.
        """
        unknown = set(changes) - set(_FIELD_NAMES)
        if unknown:
            raise CheckpointError(f"Unknown checkpoint field(s): {sorted(unknown)}")

        existing = self._checkpoints.get(step) or MigrationCheckpoint(step=step)

        if "status" in changes:
            requested = StepStatus(changes["status"])
            _check_transition(step, existing.status, requested)
            changes["status"] = requested

        if (
            "total_count" in changes
            and existing.total_count is not None
            and changes["total_count"] != existing.total_count
        ):
            raise CheckpointError(
                f"total_count for step '{step}' is already {existing.total_count} "
                f"and cannot change to {changes['total_count']}"
            )

        updated = dataclasses.replace(existing, **changes)
        self._write(updated)
        return updated

    def reset(self, step: str) -> MigrationCheckpoint:
        """Replace the step's record with a fresh ``pending`` one."""
        fresh = MigrationCheckpoint(step=step)
        self._write(fresh)
        return fresh

    def delete(self, step: str) -> bool:
        """Remove the step's record. Returns True if one existed."""
        if self.persist:
            self.collection.delete_one({"_id": step})
        return self._checkpoints.pop(step, None) is not None

    def _write(self, checkpoint: MigrationCheckpoint) -> None:
        if self.persist:
            self.collection.replace_one(
                {"_id": checkpoint.step}, checkpoint.to_document(), upsert=True
            )
        self._checkpoints[checkpoint.step] = checkpoint


def _check_transition(step: str, current: StepStatus, requested: StepStatus) -> None:
    if requested == current and current is not StepStatus.RUNNING:
        return
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(step, current.value, requested.value)
