"""Tallying of per-document outcomes into a MigrationResult."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from step_migrator.types import BatchResult, MigrationResult, Outcome, ResultStatus
from step_migrator.utils.logging import log_with_context


@dataclass
class ResultTally:
    """Running counts for one ``run_step`` invocation."""

    inserted: int = 0
    duplicates: int = 0
    skipped: int = 0
    errors: int = 0

    def add(self, results: Sequence[BatchResult], batch_len: int, step: str | None = None) -> None:
        """Tally one batch of processor results.

        ``None`` entries and results missing from a short list count as
        skipped; extra results beyond ``batch_len`` are ignored.
        """
        if len(results) != batch_len:
            log_with_context(
                logging.WARNING,
                f"Processor returned {len(results)} result(s) for a batch of {batch_len}",
                step=step,
            )

        for result in list(results)[:batch_len]:
            if isinstance(result, str) and not isinstance(result, Outcome):
                result = Outcome(result)
            if result is None or result is Outcome.SKIPPED:
                self.skipped += 1
            elif result is Outcome.INSERTED:
                self.inserted += 1
            elif result is Outcome.DUPLICATE:
                self.duplicates += 1
            elif result is Outcome.ERROR:
                self.errors += 1
            else:
                raise TypeError(f"Unexpected batch result {result!r}")

        missing = batch_len - len(results)
        if missing > 0:
            self.skipped += missing

    def merge(self, other: ResultTally) -> None:
        self.inserted += other.inserted
        self.duplicates += other.duplicates
        self.skipped += other.skipped
        self.errors += other.errors

    def add_failed_batch(self, batch_len: int) -> None:
        """Count every document of an aborted batch as an error."""
        self.errors += batch_len

    def to_result(
        self,
        step: str,
        source_count: int,
        duration: float,
        error: str | None = None,
    ) -> MigrationResult:
        return MigrationResult(
            step=step,
            source_count=source_count,
            inserted_count=self.inserted,
            skipped_duplicates=self.duplicates,
            skipped=self.skipped,
            errors=self.errors,
            duration=duration,
            status=ResultStatus.FAILED if self.errors > 0 else ResultStatus.SUCCESS,
            error=error,
        )


def combine_results(step: str, results: Iterable[MigrationResult]) -> MigrationResult:
    """Sum the results of sequential sub-steps into one result."""
    combined = MigrationResult(step=step, source_count=0)
    errors: list[str] = []
    any_failed = False
    for result in results:
        combined.source_count += result.source_count
        combined.inserted_count += result.inserted_count
        combined.skipped_duplicates += result.skipped_duplicates
        combined.skipped += result.skipped
        combined.errors += result.errors
        combined.duration += result.duration
        any_failed = any_failed or not result.succeeded
        if result.error:
            errors.append(result.error)

    if any_failed or combined.errors > 0:
        combined.status = ResultStatus.FAILED
    if errors:
        combined.error = "; ".join(errors)
    return combined
