"""Keyset pagination over a source collection."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from pymongo import ASCENDING
from pymongo.collection import Collection


def iter_batches(
    collection: Collection,
    batch_size: int,
    after: Any = None,
    key: str = "_id",
) -> Iterator[list[dict[str, Any]]]:
    """Yield pages of documents in ascending ``key`` order.

    Each page is a fresh query for keys strictly greater than the last key
    seen (or ``after`` for the first page), so iteration can resume from a
    stored cursor. The next page is only requested once the caller asks for
    it. Iteration stops at the first empty page.

    Args:
        collection: The source collection (read only)
        batch_size: Maximum number of documents per page
        after: Resume point; documents with ``key <= after`` are never returned
        key: Field to order and page on, unique per document

    Raises:
        ValueError: If ``batch_size`` is less than 1
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    cursor_key = after
    while True:
        query = {key: {"$gt": cursor_key}} if cursor_key is not None else {}
        batch = list(
            collection.find(query).sort(key, ASCENDING).limit(batch_size)
        )
        if not batch:
            return
        yield batch
        cursor_key = batch[-1][key]
