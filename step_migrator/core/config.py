"""
Configuration module for the step migration tool.

This module provides functions for loading configuration settings from YAML
files, creating a default configuration, and selecting which configured
steps a run should execute.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from step_migrator.exceptions import ConfigError
from step_migrator.utils.logging import log_with_context

DEFAULT_BATCH_SIZE = 500
DEFAULT_CHECKPOINT_COLLECTION = "_migrations"
URI_ENV_VARS = ("MONGODB_URI", "MONGO_URI")


@dataclass
class StepConfig:
    """A configured copy step draining one or more legacy collections."""

    name: str
    target: str
    sources: list[str] = field(default_factory=list)
    source_tag: str | None = None
    field_map: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StepConfig:
        name = data.get("name")
        if not name:
            raise ConfigError("Every step needs a 'name'")
        target = data.get("target")
        if not target:
            raise ConfigError(f"Step '{name}' needs a 'target' collection")
        sources = data.get("sources") or []
        if isinstance(sources, str):
            sources = [sources]
        if not sources:
            raise ConfigError(f"Step '{name}' needs at least one source collection")
        return cls(
            name=name,
            target=target,
            sources=list(sources),
            source_tag=data.get("source_tag"),
            field_map=data.get("field_map") or {},
        )


@dataclass
class MigrationConfig:
    """Typed configuration for the migration tool.

    All fields have defaults so that an empty or missing file still yields
    a usable (if step-less) configuration.
    """

    # Connection
    mongo_uri: str = ""
    database: str | None = None
    checkpoint_collection: str = DEFAULT_CHECKPOINT_COLLECTION

    # Batching
    batch_size: int = DEFAULT_BATCH_SIZE

    # Run behaviour
    stop_on_failure: bool = True
    drop_old_collections: bool = False
    show_progress: bool = True

    steps: list[StepConfig] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ConfigError(f"batch_size must be at least 1, got {self.batch_size}")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigrationConfig:
        """Create a MigrationConfig from a raw config dictionary."""
        return cls(
            mongo_uri=data.get("mongo_uri", ""),
            database=data.get("database"),
            checkpoint_collection=data.get(
                "checkpoint_collection", DEFAULT_CHECKPOINT_COLLECTION
            ),
            batch_size=data.get("batch_size", DEFAULT_BATCH_SIZE),
            stop_on_failure=data.get("stop_on_failure", True),
            drop_old_collections=data.get("drop_old_collections", False),
            show_progress=data.get("show_progress", True),
            steps=[StepConfig.from_dict(s) for s in data.get("steps") or []],
        )

    def step_names(self) -> list[str]:
        return [s.name for s in self.steps]


def load_config(config_path: Path) -> MigrationConfig:
    """
    Load configuration from YAML file and apply default values.

    A missing or unreadable file logs a warning and yields the defaults.
    The ``MONGODB_URI`` / ``MONGO_URI`` environment variables take
    precedence over ``mongo_uri`` from the file.

    Args:
        config_path: Path to the config YAML file

    Returns:
        MigrationConfig with all necessary defaults applied

    Raises:
        ConfigError: If the file parses but describes an invalid configuration
    """
    raw: dict[str, Any] = {}

    if config_path.exists():
        try:
            with open(config_path) as f:
                loaded_config = yaml.safe_load(f)
                # Handle None result from empty file
                if loaded_config is not None:
                    if not isinstance(loaded_config, dict):
                        raise ConfigError(
                            f"Config file {config_path} must contain a mapping"
                        )
                    raw = loaded_config
            log_with_context(logging.INFO, f"Loaded configuration from {config_path}")
        except (yaml.YAMLError, OSError) as e:
            log_with_context(
                logging.WARNING, f"Failed to load config file {config_path}: {e}"
            )
    else:
        log_with_context(
            logging.WARNING,
            f"Config file {config_path} not found, using default settings",
        )

    config = MigrationConfig.from_dict(raw)

    for var in URI_ENV_VARS:
        env_uri = os.environ.get(var)
        if env_uri:
            config.mongo_uri = env_uri
            break

    return config


def create_default_config(output_path: Path) -> bool:
    """
    Create a default configuration file with example steps.

    The function will not overwrite an existing configuration file.

    Args:
        output_path: Path where the default config should be saved

    Returns:
        True if the config file was created successfully, False otherwise
    """
    if output_path.exists():
        log_with_context(
            logging.WARNING,
            f"Config file {output_path} already exists, not overwriting",
        )
        return False

    default_config = {
        "mongo_uri": "mongodb://localhost:27017/plants",
        "checkpoint_collection": DEFAULT_CHECKPOINT_COLLECTION,
        "batch_size": DEFAULT_BATCH_SIZE,
        "stop_on_failure": True,
        "drop_old_collections": False,
        "show_progress": True,
        "steps": [
            {
                "name": "usersStep",
                "target": "users_v2",
                "sources": ["communityusers", "users"],
                "source_tag": "users",
                "field_map": {"username": "displayName"},
            },
            {
                "name": "plantLogsStep",
                "target": "plant_logs",
                "sources": ["carelogs", "reminders"],
                "source_tag": "plantlogs",
            },
        ],
    }

    try:
        with open(output_path, "w") as f:
            yaml.safe_dump(default_config, f, default_flow_style=False, sort_keys=False)
        log_with_context(logging.INFO, f"Created default config file at {output_path}")
        return True
    except OSError as e:
        log_with_context(logging.ERROR, f"Failed to create default config file: {e}")
        return False


def select_steps(config: MigrationConfig, only: str | None = None) -> list[StepConfig]:
    """
    Return the configured steps a run should execute, in order.

    Args:
        config: The MigrationConfig instance
        only: Optional step name; when given only that step is returned

    Returns:
        The list of steps to run

    Raises:
        ConfigError: If ``only`` names a step that is not configured
    """
    if only is None:
        return list(config.steps)

    for step in config.steps:
        if step.name == only:
            return [step]

    raise ConfigError(
        f"Unknown step '{only}'. Configured steps: {', '.join(config.step_names()) or 'none'}"
    )
