"""CLI command handler for writing a starter configuration."""

from __future__ import annotations

import sys
from pathlib import Path

import click

from step_migrator.cli.common import cli
from step_migrator.core.config import create_default_config
from step_migrator.utils.logging import setup_logger


@cli.command("init-config")
@click.option(
    "--output",
    default="config.yaml",
    show_default=True,
    help="Where to write the example config",
)
def init_config(output: str) -> None:
    """Write an example config file (never overwrites)."""
    setup_logger()
    if not create_default_config(Path(output)):
        sys.exit(1)
    click.echo(f"Created {output}")
