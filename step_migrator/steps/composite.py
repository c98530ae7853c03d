"""Steps that drain several source collections one after another."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from step_migrator.core.config import DEFAULT_BATCH_SIZE
from step_migrator.core.results import combine_results
from step_migrator.types import MigrationResult, Processor
from step_migrator.utils.logging import log_with_context

if TYPE_CHECKING:
    from step_migrator.core.runner import MigrationRunner


@dataclass(frozen=True)
class SubStep:
    """One source collection of a composite step."""

    collection: str
    processor: Processor

    def step_name(self, parent: str) -> str:
        return f"{parent}_{self.collection}"


def run_composite_step(
    runner: MigrationRunner,
    name: str,
    sub_steps: Sequence[SubStep],
    batch_size: int = DEFAULT_BATCH_SIZE,
    dry_run: bool = False,
    resume: bool = False,
) -> MigrationResult:
    """Run ``sub_steps`` sequentially and return their combined result.

    Each sub-step keeps its own checkpoint, named ``<name>_<collection>``,
    so a resumed run skips the sub-steps that already completed. An
    exception from a sub-step propagates and the remaining sub-steps are not
    started.
    """
    results = []
    for sub_step in sub_steps:
        results.append(
            runner.run_step(
                sub_step.step_name(name),
                sub_step.processor,
                source_collection=sub_step.collection,
                batch_size=batch_size,
                dry_run=dry_run,
                resume=resume,
            )
        )

    combined = combine_results(name, results)
    log_with_context(
        logging.DEBUG,
        f"Combined {len(results)} sub-step result(s) for {name}",
        step=name,
    )
    return combined
