"""CLI command handlers for inspecting checkpoints and verifying steps."""

from __future__ import annotations

import sys

import click

from step_migrator.cli.common import (
    cli,
    common_options,
    create_runner,
    handle_exception,
    resolve_config,
)
from step_migrator.core.checkpoint import MigrationCheckpoint
from step_migrator.steps.copy import source_tag_for
from step_migrator.utils.logging import setup_logger

# ---------------------------------------------------------------------------
# status subcommand
# ---------------------------------------------------------------------------


def format_checkpoint(cp: MigrationCheckpoint) -> str:
    total = "?" if cp.total_count is None else str(cp.total_count)
    line = f"  {cp.status.value:<10} {cp.step:<40} {cp.processed_count}/{total}"
    if cp.error:
        line += f"  error: {cp.error}"
    return line


@cli.command()
@common_options
def status(config: str, mongo_uri: str | None, verbose: bool) -> None:
    """Show the checkpoint of every step recorded so far."""
    setup_logger(verbose)

    try:
        cfg = resolve_config(config, mongo_uri)
        runner = create_runner(cfg)
        with runner:
            runner.load_checkpoints()
            checkpoints = runner.checkpoints.all()
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    if not checkpoints:
        click.echo("No checkpoints recorded.")
        return

    click.echo("Migration Status:\n")
    for cp in checkpoints:
        click.echo(format_checkpoint(cp))


# ---------------------------------------------------------------------------
# verify subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@click.option("--step", "-s", "step_name", required=True, help="Step to verify")
@click.option(
    "--target",
    default=None,
    help="Target collection (default: the step's configured target)",
)
@click.option(
    "--expected",
    type=click.IntRange(min=0),
    default=None,
    help="Expected number of migrated documents",
)
@click.option(
    "--source_tag",
    default=None,
    help="Value of the 'source' field to count (default: from config or step name)",
)
def verify(
    config: str,
    mongo_uri: str | None,
    verbose: bool,
    step_name: str,
    target: str | None,
    expected: int | None,
    source_tag: str | None,
) -> None:
    """Compare a step's migrated document count with an expected total."""
    setup_logger(verbose)

    try:
        cfg = resolve_config(config, mongo_uri)
        configured = {s.name: s for s in cfg.steps}.get(step_name)
        if configured is not None:
            target = target or configured.target
            if source_tag is None:
                source_tag = source_tag_for(configured)
        if not target:
            raise click.UsageError(
                f"Step '{step_name}' is not configured; pass --target explicitly"
            )

        runner = create_runner(cfg)
        with runner:
            result = runner.verify_step(
                step_name, target, expected_count=expected, source_tag=source_tag
            )
    except click.UsageError:
        raise
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    click.echo(
        f"{target}: {result.actual_count} document(s) tagged '{result.source_tag}'"
    )
    if result.is_valid:
        click.echo("✅ Verification passed")
        return

    for mismatch in result.mismatches:
        click.echo(f"❌ {mismatch}")
    sys.exit(1)
