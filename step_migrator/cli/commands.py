#!/usr/bin/env python3
"""
Main execution module for the step migration tool.

Importing the subcommand modules registers them on the click group.
"""

from step_migrator.cli import init_cmd, migrate_cmd, status_cmd  # noqa: F401
from step_migrator.cli.common import cli, handle_exception
from step_migrator.cli.migrate_cmd import MigrationOrchestrator

__all__ = ["MigrationOrchestrator", "cli", "handle_exception", "main"]


def main() -> None:
    """Entry point for the ``step-migrator`` console script."""
    cli()


if __name__ == "__main__":
    main()
