"""Integration test configuration.

These tests require a running MongoDB server and are skipped by default.
Set the MONGODB_URI environment variable (including a database name) to
enable them; each test works in its own throwaway database.
"""

import os
import uuid

import pytest

skip_no_mongo = pytest.mark.skipif(
    not os.environ.get("MONGODB_URI"),
    reason="Integration tests require MONGODB_URI env var",
)


@pytest.fixture()
def mongo_db():
    """Yield a fresh database on the configured server and drop it afterwards."""
    from pymongo import MongoClient

    client = MongoClient(os.environ["MONGODB_URI"], serverSelectionTimeoutMS=5000)
    name = f"step_migrator_test_{uuid.uuid4().hex[:8]}"
    try:
        yield client[name]
    finally:
        client.drop_database(name)
        client.close()
