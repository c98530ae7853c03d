"""
Summary and report output for migration runs
"""

from __future__ import annotations

import datetime
import logging
import os
from collections.abc import Sequence
from typing import Any

import click
import yaml

from step_migrator.types import MigrationResult
from step_migrator.utils.logging import log_with_context

_COLUMNS = (
    ("step", "Step"),
    ("source_count", "Source"),
    ("inserted_count", "Inserted"),
    ("skipped_duplicates", "Duplicates"),
    ("skipped", "Skipped"),
    ("errors", "Errors"),
    ("duration", "Time (s)"),
    ("status", "Status"),
)


def summarize(results: Sequence[MigrationResult]) -> dict[str, Any]:
    """Return overall totals across step results."""
    return {
        "steps": len(results),
        "source_documents": sum(r.source_count for r in results),
        "inserted": sum(r.inserted_count for r in results),
        "skipped_duplicates": sum(r.skipped_duplicates for r in results),
        "skipped": sum(r.skipped for r in results),
        "errors": sum(r.errors for r in results),
        "duration_seconds": round(sum(r.duration for r in results), 2),
        "failed_steps": [r.step for r in results if not r.succeeded],
    }


def format_results_table(results: Sequence[MigrationResult]) -> str:
    """Render step results as a plain-text table."""
    rows = []
    for result in results:
        data = result.to_dict()
        data["duration"] = f"{result.duration:.2f}"
        rows.append([str(data[key]) for key, _ in _COLUMNS])

    headers = [title for _, title in _COLUMNS]
    widths = [
        max([len(headers[i])] + [len(row[i]) for row in rows])
        for i in range(len(headers))
    ]

    def fmt(cells: list[str]) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(cells))

    lines = [fmt(headers), fmt(["-" * w for w in widths])]
    lines.extend(fmt(row) for row in rows)
    return "\n".join(lines)


def print_migration_summary(results: Sequence[MigrationResult], dry_run: bool = False) -> None:
    """Print the per-step table and overall totals to the console."""
    totals = summarize(results)

    click.echo("\n" + "=" * 80)
    click.echo("DRY RUN SUMMARY" if dry_run else "MIGRATION SUMMARY")
    click.echo("=" * 80)
    if results:
        click.echo(format_results_table(results))
    else:
        click.echo("No steps were run.")

    click.echo("\nOVERALL RESULTS:")
    click.echo(f"Source documents: {totals['source_documents']:,}")
    if dry_run:
        click.echo("Dry run: no documents were written and no counts were tallied")
    else:
        click.echo(f"Inserted: {totals['inserted']:,}")
        click.echo(f"Skipped duplicates: {totals['skipped_duplicates']:,}")
        click.echo(f"Skipped: {totals['skipped']:,}")
        click.echo(f"Errors: {totals['errors']:,}")
    click.echo(f"Total time: {totals['duration_seconds']:.2f}s")
    click.echo("=" * 80)


def write_report(
    results: Sequence[MigrationResult],
    output_dir: str,
    dry_run: bool = False,
    output_file: str = "migration_report.yaml",
) -> str:
    """Write a YAML report of the run into ``output_dir``.

    Returns:
        Path of the written report
    """
    os.makedirs(output_dir, exist_ok=True)
    report_path = os.path.join(output_dir, output_file)

    report = {
        "generated_at": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "dry_run": dry_run,
        "summary": summarize(results),
        "steps": [r.to_dict() for r in results],
    }

    with open(report_path, "w") as f:
        yaml.safe_dump(report, f, default_flow_style=False, sort_keys=False)

    log_with_context(logging.INFO, f"Migration report written to {report_path}")
    return report_path
