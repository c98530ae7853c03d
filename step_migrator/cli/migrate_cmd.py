"""CLI command handler for the migrate workflow."""

from __future__ import annotations

import datetime
import logging
import os
import sys
from types import SimpleNamespace

import click

from step_migrator.cli.common import (
    cli,
    common_options,
    create_runner,
    handle_exception,
    resolve_config,
    show_backup_reminder,
)
from step_migrator.cli.report import print_migration_summary, write_report
from step_migrator.core.config import MigrationConfig, StepConfig, select_steps
from step_migrator.core.results import combine_results
from step_migrator.core.runner import MigrationRunner
from step_migrator.exceptions import ConfigError, MigrationAbortedError, StepFailedError
from step_migrator.steps.copy import run_copy_step
from step_migrator.types import MigrationResult, ResultStatus
from step_migrator.utils.logging import (
    log_with_context,
    remove_handler,
    setup_logger,
    setup_step_logger,
)

# Create logger instance
logger = logging.getLogger("step_migrator")


# ---------------------------------------------------------------------------
# migrate subcommand
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@click.option(
    "--dry_run",
    "-d",
    is_flag=True,
    default=False,
    help="Run migration in dry-run mode (no writes, no persisted checkpoints)",
)
@click.option(
    "--resume",
    "-r",
    is_flag=True,
    default=False,
    help="Resume from the last checkpoint instead of starting each step over",
)
@click.option(
    "--batch_size",
    "-b",
    type=click.IntRange(min=1),
    default=None,
    help="Batch size for processing (default: from config, 500)",
)
@click.option(
    "--step",
    "-s",
    default=None,
    help="Run only the named step",
)
@click.option(
    "--drop_old",
    is_flag=True,
    default=False,
    help="Drop legacy source collections after a fully successful migration",
)
def migrate(
    config: str,
    mongo_uri: str | None,
    verbose: bool,
    dry_run: bool,
    resume: bool,
    batch_size: int | None,
    step: str | None,
    drop_old: bool,
) -> None:
    """Run the configured migration steps.

    Args:
        config: Path to config YAML.
        mongo_uri: MongoDB URI overriding the config file.
        verbose: Enable verbose console logging.
        dry_run: Invoke processors without writing.
        resume: Continue from stored checkpoints.
        batch_size: Documents per batch.
        step: Only run this step.
        drop_old: Drop legacy collections after success.
    """
    args = SimpleNamespace(
        config=config,
        mongo_uri=mongo_uri,
        verbose=verbose,
        dry_run=dry_run,
        resume=resume,
        batch_size=batch_size,
        step=step,
        drop_old=drop_old,
    )

    # Create output directory early so all operations are logged to file
    output_dir = create_migration_output_directory()
    setup_logger(args.verbose, output_dir)

    try:
        cfg = resolve_config(args.config, args.mongo_uri)
        orchestrator = MigrationOrchestrator(cfg, args, output_dir)
        orchestrator.run()
    except Exception as e:
        handle_exception(e)
        sys.exit(1)
    except KeyboardInterrupt as e:
        handle_exception(e)
        sys.exit(130)


# ---------------------------------------------------------------------------
# MigrationOrchestrator
# ---------------------------------------------------------------------------


class MigrationOrchestrator:
    """Runs the selected steps in order and reports on them."""

    def __init__(self, cfg: MigrationConfig, args: SimpleNamespace, output_dir: str) -> None:
        self.cfg = cfg
        self.args = args
        self.output_dir = output_dir
        self.results: list[MigrationResult] = []
        self.has_errors = False
        self.step_error: StepFailedError | None = None

    @property
    def batch_size(self) -> int:
        return self.args.batch_size or self.cfg.batch_size

    @property
    def drop_old(self) -> bool:
        return self.args.drop_old or self.cfg.drop_old_collections

    def create_runner(self) -> MigrationRunner:
        return create_runner(self.cfg)

    def run(self) -> list[MigrationResult]:
        """Execute the migration.

        Raises:
            ConfigError: If no steps are selected.
            StepFailedError: If a step raised and the run stopped there.
            MigrationAbortedError: If any step reported item errors.
        """
        steps = select_steps(self.cfg, self.args.step)
        if not steps:
            raise ConfigError("No migration steps are configured")

        log_startup_info(self.args, self.cfg, steps, self.batch_size)
        if self.args.dry_run:
            log_with_context(
                logging.INFO, "🔍 Running in DRY-RUN mode - no data will be modified"
            )
        else:
            show_backup_reminder(self.cfg.mongo_uri)

        runner = self.create_runner()
        runner.connect()
        try:
            runner.load_checkpoints()
            self._run_steps(runner, steps)

            print_migration_summary(self.results, dry_run=self.args.dry_run)
            write_report(self.results, self.output_dir, dry_run=self.args.dry_run)

            if self.step_error is not None:
                raise self.step_error
            if self.has_errors:
                raise MigrationAbortedError(
                    "Migration completed with errors. Check the logs above."
                )

            if self.drop_old and not self.args.dry_run:
                log_with_context(logging.INFO, "🗑️  Dropping old collections...")
                runner.drop_collections(
                    source for s in steps for source in s.sources
                )

            log_with_context(logging.INFO, "✅ Migration completed successfully!")
        finally:
            runner.disconnect()

        return self.results

    def _run_steps(self, runner: MigrationRunner, steps: list[StepConfig]) -> None:
        for step in steps:
            handler = setup_step_logger(self.output_dir, step.name, self.args.verbose)
            try:
                result = run_copy_step(
                    runner,
                    step,
                    batch_size=self.batch_size,
                    dry_run=self.args.dry_run,
                    resume=self.args.resume,
                )
            except Exception as e:
                log_with_context(
                    logging.ERROR, f"❌ Step {step.name} failed: {e}", step=step.name
                )
                partial = self._partial_result(runner, step, e)
                self.results.append(partial)
                self.has_errors = True
                self.step_error = StepFailedError(step.name, partial.error or "")
                break
            finally:
                remove_handler(handler)

            self.results.append(result)
            if not result.succeeded:
                self.has_errors = True
                if self.cfg.stop_on_failure and not self.args.dry_run:
                    log_with_context(
                        logging.ERROR,
                        f"❌ Step {step.name} reported errors, stopping migration",
                        step=step.name,
                    )
                    break

    @staticmethod
    def _partial_result(
        runner: MigrationRunner, step: StepConfig, error: Exception
    ) -> MigrationResult:
        """Combine whatever sub-step results exist for a step that raised."""
        parts = [
            runner.results[name]
            for name in (f"{step.name}_{source}" for source in step.sources)
            if name in runner.results
        ]
        result = combine_results(step.name, parts)
        result.status = ResultStatus.FAILED
        result.error = str(error) or error.__class__.__name__
        return result


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def log_startup_info(
    args: SimpleNamespace, cfg: MigrationConfig, steps: list[StepConfig], batch_size: int
) -> None:
    """Log startup information."""
    log_with_context(logging.INFO, "Starting migration with the following parameters:")
    log_with_context(logging.INFO, f"- Config: {args.config}")
    log_with_context(logging.INFO, f"- Steps: {', '.join(s.name for s in steps)}")
    log_with_context(logging.INFO, f"- Batch size: {batch_size}")
    log_with_context(logging.INFO, f"- Dry run: {args.dry_run}")
    log_with_context(logging.INFO, f"- Resume: {args.resume}")
    log_with_context(logging.INFO, f"- Drop old collections: {args.drop_old}")
    log_with_context(logging.INFO, f"- Verbose logging: {args.verbose}")


def create_migration_output_directory() -> str:
    """Create output directory for migration with timestamp.

    Returns:
        The path to the newly created output directory.
    """
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    output_dir = f"migration_logs/run_{timestamp}"

    os.makedirs(output_dir, exist_ok=True)
    os.makedirs(os.path.join(output_dir, "step_logs"), exist_ok=True)

    return output_dir
