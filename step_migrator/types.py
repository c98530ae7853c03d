"""Shared type definitions for the step migration tool.

Provides the enums and dataclasses that flow between the runner, the
checkpoint store and the caller-supplied processors.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Optional, TypedDict

# ---------------------------------------------------------------------------
# Status enums
# ---------------------------------------------------------------------------


class StepStatus(str, Enum):
    """Lifecycle status of a step checkpoint."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class ResultStatus(str, Enum):
    """Outcome of a single ``run_step`` invocation."""

    SUCCESS = "success"
    FAILED = "failed"


class Outcome(str, Enum):
    """Per-document outcome reported by a processor."""

    INSERTED = "inserted"
    DUPLICATE = "duplicate"
    ERROR = "error"
    SKIPPED = "skipped"


# A processor may return ``None`` for a document it silently skipped.
BatchResult = Optional[Outcome]

# ``processor(batch, dry_run) -> one BatchResult per document, same order``
Processor = Callable[[list[dict[str, Any]], bool], Sequence[BatchResult]]


# ---------------------------------------------------------------------------
# Raw document shapes
# ---------------------------------------------------------------------------


class CheckpointDocument(TypedDict, total=False):
    """A checkpoint record as stored in the checkpoint collection."""

    _id: str
    lastProcessedId: Any
    processedCount: int
    totalCount: int | None
    status: str
    error: str | None
    startedAt: Any
    completedAt: Any


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class MigrationResult:
    """Summary returned by ``run_step``; not persisted.

    ``status`` reflects ``errors > 0`` only. A step can be checkpoint
    ``completed`` and result ``failed`` at the same time.
    """

    step: str
    source_count: int
    inserted_count: int = 0
    skipped_duplicates: int = 0
    skipped: int = 0
    errors: int = 0
    duration: float = 0.0
    status: ResultStatus = ResultStatus.SUCCESS
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data
