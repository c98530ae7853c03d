"""Building blocks for processors passed to ``MigrationRunner.run_step``.

A processor receives a batch of raw source documents and returns one
outcome per document. Two failure tiers stay distinct here:

- a problem with a single document is reported as ``Outcome.ERROR`` and the
  batch carries on;
- ``BatchAbortError`` or a lost connection propagates and fails the whole
  step.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Callable, Optional

from pymongo.collection import Collection
from pymongo.errors import ConnectionFailure, DuplicateKeyError

from step_migrator.exceptions import BatchAbortError
from step_migrator.types import BatchResult, Outcome, Processor
from step_migrator.utils.logging import log_with_context

Mapper = Callable[[dict[str, Any]], Optional[dict[str, Any]]]
Writer = Callable[[dict[str, Any]], Outcome]


def make_document_processor(mapper: Mapper, writer: Writer, label: str = "document") -> Processor:
    """Build a processor that maps and writes documents one at a time.

    Args:
        mapper: Converts a source document to its target shape, or returns
            None to skip it
        writer: Persists a mapped document and reports the outcome; must be
            idempotent since a batch can be replayed after a crash
        label: Name used in log messages (usually the source collection)

    Returns:
        A processor suitable for ``run_step``
    """

    def process(batch: list[dict[str, Any]], dry_run: bool) -> Sequence[BatchResult]:
        results: list[BatchResult] = []
        for doc in batch:
            try:
                mapped = mapper(doc)
                if mapped is None:
                    results.append(Outcome.SKIPPED)
                    continue
                if dry_run:
                    results.append(Outcome.INSERTED)
                    continue
                results.append(writer(mapped))
            except (BatchAbortError, ConnectionFailure):
                raise
            except DuplicateKeyError:
                results.append(Outcome.DUPLICATE)
            except Exception as e:
                log_with_context(
                    logging.ERROR,
                    f"Failed to process {label} {doc.get('_id')!r}: {e}",
                )
                results.append(Outcome.ERROR)
        return results

    return process


def upsert_writer(collection: Collection, key_fields: Sequence[str]) -> Writer:
    """Return a writer that upserts on ``key_fields``.

    Replaying a batch rewrites the same target documents instead of creating
    duplicates. An upsert that created a document reports ``INSERTED``; one
    that matched an existing document reports ``DUPLICATE``.
    """
    if not key_fields:
        raise ValueError("upsert_writer needs at least one key field")

    def write(mapped: dict[str, Any]) -> Outcome:
        try:
            key = {name: mapped[name] for name in key_fields}
        except KeyError as e:
            raise ValueError(f"Mapped document is missing key field {e}") from e
        result = collection.replace_one(key, mapped, upsert=True)
        if result.upserted_id is not None:
            return Outcome.INSERTED
        return Outcome.DUPLICATE

    return write
