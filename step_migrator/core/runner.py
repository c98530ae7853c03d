"""
Checkpointed, resumable step runner.

``MigrationRunner.run_step`` drains one source collection batch by batch,
hands every batch to a caller-supplied processor, and checkpoints the cursor
after each batch so that a crashed or failed step can be resumed from the
end of the last committed batch.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import datetime, timezone
from typing import Any

from pymongo.database import Database
from pymongo.errors import PyMongoError
from tqdm import tqdm

from step_migrator.core.batches import iter_batches
from step_migrator.core.checkpoint import CheckpointStore, MigrationCheckpoint
from step_migrator.core.config import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_CHECKPOINT_COLLECTION,
)
from step_migrator.core.connection import ConnectionManager
from step_migrator.core.results import ResultTally
from step_migrator.core.verification import VerificationResult, verify_step
from step_migrator.exceptions import DatabaseConnectionError
from step_migrator.types import MigrationResult, Processor, ResultStatus, StepStatus
from step_migrator.utils.logging import dry_run_prefix, log_with_context


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MigrationRunner:
    """Runs migration steps against one database.

    Each runner owns its own checkpoint store; create one runner per
    migration invocation.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        checkpoint_collection: str = DEFAULT_CHECKPOINT_COLLECTION,
        show_progress: bool = True,
    ) -> None:
        self.connection = connection
        self.checkpoint_collection = checkpoint_collection
        self.show_progress = show_progress
        self.results: dict[str, MigrationResult] = {}
        self._checkpoints: CheckpointStore | None = None

    @classmethod
    def from_uri(cls, mongo_uri: str, database: str | None = None, **kwargs: Any) -> MigrationRunner:
        return cls(ConnectionManager(mongo_uri, database), **kwargs)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    @property
    def db(self) -> Database:
        return self.connection.db

    def connect(self) -> None:
        db = self.connection.connect()
        self._checkpoints = CheckpointStore(db[self.checkpoint_collection])

    def disconnect(self) -> None:
        self.connection.disconnect()
        self._checkpoints = None

    def __enter__(self) -> MigrationRunner:
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    @property
    def checkpoints(self) -> CheckpointStore:
        if self._checkpoints is None:
            raise DatabaseConnectionError("Runner is not connected; call connect() first")
        return self._checkpoints

    def load_checkpoints(self) -> int:
        count = self.checkpoints.load()
        log_with_context(logging.INFO, f"Loaded {count} migration checkpoint(s)")
        return count

    def get_checkpoint(self, step: str) -> MigrationCheckpoint | None:
        return self.checkpoints.get(step)

    def save_checkpoint(self, step: str, **changes: Any) -> MigrationCheckpoint:
        return self.checkpoints.save(step, **changes)

    def _store_for(self, dry_run: bool) -> CheckpointStore:
        if not dry_run:
            return self.checkpoints
        # copied per call to mirror the latest real progress
        return self.checkpoints.scratch()

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------

    def run_step(
        self,
        step_name: str,
        processor: Processor,
        source_collection: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        dry_run: bool = False,
        resume: bool = False,
    ) -> MigrationResult:
        """Run one migration step to completion.

        Args:
            step_name: Unique checkpoint key of the step
            processor: ``processor(batch, dry_run)`` returning one result per
                document; it performs all transformation and target writes
            source_collection: Collection to drain, in ascending ``_id`` order
            batch_size: Documents per batch
            dry_run: Invoke the processor in dry-run mode and suppress tallies;
                checkpoints go to a scratch store that is never persisted
            resume: Continue from the stored checkpoint instead of starting over

        Returns:
            MigrationResult for this invocation

        Raises:
            Exception: Whatever the processor or the database raised; the
                checkpoint is marked ``failed`` first
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")

        prefix = dry_run_prefix(dry_run)
        store = self._store_for(dry_run)
        start_time = time.time()

        log_with_context(
            logging.INFO,
            f"{prefix}=== Starting step: {step_name} ===",
            step=step_name,
        )
        log_with_context(
            logging.INFO,
            f"{prefix}Source: {source_collection}, Batch size: {batch_size}, Resume: {resume}",
            step=step_name,
        )

        checkpoint = store.get(step_name)

        if resume and checkpoint is not None and checkpoint.status is StepStatus.COMPLETED:
            log_with_context(
                logging.INFO,
                f"{prefix}Step {step_name} already completed, skipping",
                step=step_name,
            )
            result = MigrationResult(
                step=step_name,
                source_count=checkpoint.total_count or 0,
                inserted_count=checkpoint.processed_count,
            )
            self.results[step_name] = result
            return result

        if not resume or checkpoint is None:
            if checkpoint is not None and checkpoint.processed_count:
                log_with_context(
                    logging.INFO,
                    f"{prefix}Discarding previous progress of {step_name} "
                    f"({checkpoint.processed_count} processed), starting from the beginning",
                    step=step_name,
                )
            store.reset(step_name)
            checkpoint = store.save(step_name, status=StepStatus.RUNNING, started_at=_now())
        else:
            log_with_context(
                logging.INFO,
                f"{prefix}Resuming {step_name} after {checkpoint.processed_count} "
                f"processed document(s), cursor {checkpoint.last_processed_id!r}",
                step=step_name,
            )
            checkpoint = store.save(
                step_name, status=StepStatus.RUNNING, error=None, completed_at=None
            )

        tally = ResultTally()
        total_count = checkpoint.total_count or 0
        in_flight = 0

        try:
            collection = self.db[source_collection]
            if checkpoint.total_count is None:
                total_count = collection.count_documents({})
            log_with_context(
                logging.INFO,
                f"{prefix}Total documents in {source_collection}: {total_count}",
                step=step_name,
            )

            processed_count = checkpoint.processed_count
            batches = iter_batches(
                collection, batch_size, after=checkpoint.last_processed_id
            )

            with tqdm(
                total=total_count,
                initial=processed_count,
                desc=step_name,
                unit="doc",
                disable=not self.show_progress,
            ) as pbar:
                for batch in batches:
                    in_flight = len(batch)
                    log_with_context(
                        logging.DEBUG,
                        f"{prefix}Processing batch of {in_flight} document(s)...",
                        step=step_name,
                    )

                    results = processor(batch, dry_run)
                    if not dry_run:
                        batch_tally = ResultTally()
                        batch_tally.add(results, in_flight, step=step_name)
                        tally.merge(batch_tally)

                    processed_count += in_flight
                    store.save(
                        step_name,
                        last_processed_id=batch[-1]["_id"],
                        processed_count=processed_count,
                        total_count=total_count,
                    )
                    in_flight = 0
                    pbar.update(len(batch))

            if processed_count > total_count:
                log_with_context(
                    logging.WARNING,
                    f"{step_name} processed {processed_count} document(s) but counted "
                    f"{total_count} at start; the source grew during the run",
                    step=step_name,
                )

            store.save(
                step_name,
                status=StepStatus.COMPLETED,
                completed_at=_now(),
                total_count=total_count,
            )

        except Exception as e:
            if in_flight and not dry_run:
                tally.add_failed_batch(in_flight)
            message = str(e) or e.__class__.__name__
            log_with_context(
                logging.ERROR,
                f"{prefix}Step {step_name} failed: {message}",
                step=step_name,
                exc_info=True,
            )
            try:
                store.save(
                    step_name,
                    status=StepStatus.FAILED,
                    error=message,
                    completed_at=_now(),
                )
            except PyMongoError as save_error:
                log_with_context(
                    logging.ERROR,
                    f"Could not record failure of {step_name} in its checkpoint: {save_error}",
                    step=step_name,
                )
            result = tally.to_result(
                step_name, total_count, time.time() - start_time, error=message
            )
            result.status = ResultStatus.FAILED
            self.results[step_name] = result
            raise

        duration = time.time() - start_time
        result = tally.to_result(step_name, total_count, duration)
        self.results[step_name] = result
        log_step_result(result, dry_run)
        return result

    # ------------------------------------------------------------------
    # Verification and cleanup
    # ------------------------------------------------------------------

    def verify_step(
        self,
        step_name: str,
        target_collection: str,
        expected_count: int | None = None,
        source_tag: str | None = None,
    ) -> VerificationResult:
        return verify_step(
            self.db,
            step_name,
            target_collection,
            expected_count=expected_count,
            source_tag=source_tag,
        )

    def drop_collections(self, collections: Iterable[str]) -> list[str]:
        """Drop legacy collections, continuing past individual failures.

        Returns:
            Names of the collections that were dropped
        """
        dropped = []
        for name in collections:
            try:
                self.db.drop_collection(name)
            except PyMongoError as e:
                log_with_context(logging.WARNING, f"Failed to drop {name}: {e}")
                continue
            dropped.append(name)
            log_with_context(logging.INFO, f"Dropped collection: {name}")
        return dropped


def log_step_result(result: MigrationResult, dry_run: bool = False) -> None:
    """Log the summary of one finished step."""
    prefix = dry_run_prefix(dry_run)
    level = logging.INFO if result.succeeded else logging.WARNING
    log_with_context(
        level,
        f"{prefix}Step {result.step} completed in {result.duration:.2f}s: "
        f"source={result.source_count} inserted={result.inserted_count} "
        f"duplicates={result.skipped_duplicates} skipped={result.skipped} "
        f"errors={result.errors} status={result.status.value}",
        step=result.step,
        outcome=result.status.value,
    )
