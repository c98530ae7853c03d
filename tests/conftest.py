"""Shared test fixtures for the step_migrator test suite."""

import pytest
import yaml


@pytest.fixture()
def sample_config_dict():
    """Return a config dict with two copy steps."""
    return {
        "mongo_uri": "mongodb://localhost:27017/plants",
        "batch_size": 250,
        "stop_on_failure": True,
        "show_progress": False,
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
                "sources": ["carelogs"],
            },
        ],
    }


@pytest.fixture()
def sample_config_file(tmp_path, sample_config_dict):
    """Write ``sample_config_dict`` to ``config.yaml`` in a temp dir and return its path."""
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(sample_config_dict, sort_keys=False))
    return path
