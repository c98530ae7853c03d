"""Post-hoc count check of a step's target collection.

Verification is advisory: it reports mismatches and never repairs or
rolls anything back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pymongo.database import Database

from step_migrator.utils.logging import log_with_context

SOURCE_FIELD = "source"


@dataclass
class VerificationResult:
    """Outcome of ``verify_step``."""

    step: str
    source_tag: str
    actual_count: int
    expected_count: int | None = None
    mismatches: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.mismatches


def default_source_tag(step_name: str) -> str:
    """Derive the legacy source tag from a step name.

    ``"usersStep"`` becomes ``"users"``. For a sub-step name such as
    ``"plantLogsStep_carelogs"`` the collection suffix is dropped first, so
    the result is ``"plantlogs"``. Pass an explicit tag instead whenever the
    target documents were tagged differently.
    """
    base = step_name.split("_", 1)[0]
    if base.endswith("Step"):
        base = base[: -len("Step")]
    return base.lower()


def verify_step(
    db: Database,
    step_name: str,
    target_collection: str,
    expected_count: int | None = None,
    source_tag: str | None = None,
) -> VerificationResult:
    """Count the target documents tagged for ``step_name``.

    Args:
        db: Database holding the target collection
        step_name: Name of the step being verified
        target_collection: Collection the step's processor wrote to
        expected_count: Count to compare against; no comparison when None
        source_tag: Value of the ``source`` field to count; derived from
            ``step_name`` when omitted

    Returns:
        VerificationResult with any mismatches found
    """
    tag = source_tag if source_tag is not None else default_source_tag(step_name)
    actual = db[target_collection].count_documents({SOURCE_FIELD: tag})

    result = VerificationResult(
        step=step_name,
        source_tag=tag,
        actual_count=actual,
        expected_count=expected_count,
    )

    if expected_count is not None and actual != expected_count:
        result.mismatches.append(
            f"Count mismatch: expected {expected_count}, got {actual}"
        )

    if result.is_valid:
        log_with_context(
            logging.INFO,
            f"Verified {target_collection}: {actual} document(s) tagged '{tag}'",
            step=step_name,
        )
    else:
        for mismatch in result.mismatches:
            log_with_context(
                logging.WARNING,
                f"Verification of {target_collection} failed: {mismatch}",
                step=step_name,
            )

    return result
