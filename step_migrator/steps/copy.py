"""Config-driven copy steps.

A copy step moves documents from its legacy source collections into one
target collection, renaming fields per ``field_map`` and tagging every
target document with ``source`` and ``legacy_id`` so replays upsert the same
document and ``verify_step`` can count them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from step_migrator.core.config import DEFAULT_BATCH_SIZE, StepConfig
from step_migrator.core.verification import SOURCE_FIELD, default_source_tag
from step_migrator.steps.composite import SubStep, run_composite_step
from step_migrator.steps.processors import Mapper, make_document_processor, upsert_writer
from step_migrator.types import MigrationResult

if TYPE_CHECKING:
    from step_migrator.core.runner import MigrationRunner

LEGACY_ID_FIELD = "legacy_id"
LEGACY_COLLECTION_FIELD = "legacy_collection"


def source_tag_for(step: StepConfig) -> str:
    return step.source_tag or default_source_tag(step.name)


def make_copy_mapper(field_map: dict[str, str], source_tag: str, collection: str) -> Mapper:
    """Return a mapper that renames fields and adds the migration tags."""

    def map_document(doc: dict[str, Any]) -> dict[str, Any]:
        mapped = {}
        for key, value in doc.items():
            if key == "_id":
                continue
            mapped[field_map.get(key, key)] = value
        mapped[SOURCE_FIELD] = source_tag
        mapped[LEGACY_ID_FIELD] = doc["_id"]
        mapped[LEGACY_COLLECTION_FIELD] = collection
        return mapped

    return map_document


def build_sub_steps(runner: MigrationRunner, step: StepConfig) -> list[SubStep]:
    tag = source_tag_for(step)
    target = runner.db[step.target]
    writer = upsert_writer(target, (SOURCE_FIELD, LEGACY_COLLECTION_FIELD, LEGACY_ID_FIELD))
    return [
        SubStep(
            collection=source,
            processor=make_document_processor(
                make_copy_mapper(step.field_map, tag, source), writer, label=source
            ),
        )
        for source in step.sources
    ]


def run_copy_step(
    runner: MigrationRunner,
    step: StepConfig,
    batch_size: int = DEFAULT_BATCH_SIZE,
    dry_run: bool = False,
    resume: bool = False,
) -> MigrationResult:
    """Run a configured copy step through the runner."""
    return run_composite_step(
        runner,
        step.name,
        build_sub_steps(runner, step),
        batch_size=batch_size,
        dry_run=dry_run,
        resume=resume,
    )
