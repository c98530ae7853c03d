"""Shared CLI infrastructure: option decorators, error handlers, and the CLI group."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

import click
from pymongo.errors import PyMongoError

import step_migrator
from step_migrator.core.config import MigrationConfig, load_config
from step_migrator.core.connection import ConnectionManager, redact_uri
from step_migrator.core.runner import MigrationRunner
from step_migrator.exceptions import ConfigError, MigratorError
from step_migrator.utils.logging import log_with_context

# Create logger instance
logger = logging.getLogger("step_migrator")


# ---------------------------------------------------------------------------
# Shared option decorator
# ---------------------------------------------------------------------------


def common_options(f: Callable[..., None]) -> Callable[..., None]:
    """Decorator that adds options shared across multiple subcommands.

    Args:
        f: The Click command function to decorate.

    Returns:
        The decorated function with common options attached.
    """
    f = click.option(
        "--config",
        default="config.yaml",
        show_default=True,
        help="Path to config YAML",
    )(f)
    f = click.option(
        "--mongo_uri",
        default=None,
        help="MongoDB connection URI (overrides config and MONGODB_URI)",
    )(f)
    f = click.option(
        "--verbose",
        "-v",
        is_flag=True,
        default=False,
        help="Enable verbose console logging (shows DEBUG level messages)",
    )(f)
    return f


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=step_migrator.__version__, prog_name="step-migrator")
def cli() -> None:
    """Checkpointed, resumable MongoDB collection migrations."""


# ---------------------------------------------------------------------------
# Config and runner helpers
# ---------------------------------------------------------------------------


def resolve_config(config: str, mongo_uri: str | None) -> MigrationConfig:
    """Load the config file and apply the ``--mongo_uri`` override.

    Raises:
        ConfigError: If no MongoDB URI is available from any source
    """
    cfg = load_config(Path(config))
    if mongo_uri:
        cfg.mongo_uri = mongo_uri
    if not cfg.mongo_uri:
        raise ConfigError(
            "A MongoDB URI is required. Set mongo_uri in the config file, "
            "export MONGODB_URI=mongodb://localhost:27017/yourdb, or pass --mongo_uri."
        )
    return cfg


def create_runner(cfg: MigrationConfig) -> MigrationRunner:
    """Build an unconnected runner for the configured database."""
    return MigrationRunner(
        ConnectionManager(cfg.mongo_uri, cfg.database),
        checkpoint_collection=cfg.checkpoint_collection,
        show_progress=cfg.show_progress,
    )


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


def handle_exception(e: BaseException) -> None:
    """Handle different types of exceptions.

    Args:
        e: The exception to handle.
    """
    if isinstance(e, MigratorError):
        log_with_context(logging.ERROR, str(e))
    elif isinstance(e, PyMongoError):
        log_with_context(logging.ERROR, f"Database error during migration: {e}")
        log_with_context(
            logging.INFO,
            "Progress up to the last completed batch is checkpointed. "
            "Re-run with --resume once the database is reachable.",
        )
    elif isinstance(e, KeyboardInterrupt):
        log_with_context(logging.WARNING, "Migration interrupted by user.")
        log_with_context(
            logging.INFO, "🔄 You can resume the migration with --resume."
        )
    else:
        log_with_context(logging.ERROR, f"Migration failed: {e}", exc_info=True)


def show_backup_reminder(mongo_uri: str) -> None:
    """Remind the operator to back up the database before writing to it."""
    safe_uri = redact_uri(mongo_uri)
    db_name = mongo_uri.rsplit("/", 1)[-1].split("?", 1)[0] or "yourdb"
    log_with_context(logging.WARNING, "")
    log_with_context(logging.WARNING, "🛡️  IMPORTANT: BACKUP YOUR DATABASE BEFORE MIGRATION")
    log_with_context(logging.WARNING, "=" * 50)
    log_with_context(logging.WARNING, "Run this command to create a backup:")
    log_with_context(
        logging.WARNING, f"mongodump --db {db_name} --out backup_$(date +%Y%m%d_%H%M%S)"
    )
    log_with_context(logging.WARNING, "Or if using a custom URI:")
    log_with_context(
        logging.WARNING,
        f'mongodump --uri="{safe_uri}" --out backup_$(date +%Y%m%d_%H%M%S)',
    )
    log_with_context(logging.WARNING, "=" * 50)
