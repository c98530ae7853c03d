"""Database client lifecycle for a migration run."""

from __future__ import annotations

import logging
from typing import Any, Callable
from urllib.parse import urlsplit, urlunsplit

from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import ConfigurationError, PyMongoError

from step_migrator.exceptions import DatabaseConnectionError
from step_migrator.utils.logging import log_with_context


def redact_uri(uri: str) -> str:
    """Return ``uri`` with any password replaced by ``***``."""
    parts = urlsplit(uri)
    if parts.password is None:
        return uri
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    netloc = f"{parts.username}:***@{host}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


class ConnectionManager:
    """Owns connect/disconnect of the MongoDB client.

    There is no automatic reconnection: an I/O failure after ``connect()``
    propagates to whoever issued the operation.
    """

    def __init__(
        self,
        uri: str,
        database: str | None = None,
        client_factory: Callable[..., Any] = MongoClient,
    ) -> None:
        self.uri = uri
        self.database_name = database
        self._client_factory = client_factory
        self._client: Any = None
        self._db: Database | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def db(self) -> Database:
        if self._db is None:
            raise DatabaseConnectionError("Not connected; call connect() first")
        return self._db

    def redacted_uri(self) -> str:
        return redact_uri(self.uri)

    def connect(self) -> Database:
        """Create the client, verify the server answers, and select the database."""
        if self.is_connected:
            return self.db

        try:
            client = self._client_factory(self.uri)
        except (ConfigurationError, ValueError) as e:
            raise DatabaseConnectionError(
                f"Invalid MongoDB URI {self.redacted_uri()}: {e}"
            ) from e

        try:
            client.admin.command("ping")
            if self.database_name:
                db = client[self.database_name]
            else:
                db = client.get_default_database()
        except (ConfigurationError, PyMongoError) as e:
            client.close()
            raise DatabaseConnectionError(
                f"Failed to connect to {self.redacted_uri()}: {e}"
            ) from e

        self._client = client
        self._db = db
        log_with_context(
            logging.INFO,
            f"Connected to MongoDB at {self.redacted_uri()} (database: {db.name})",
        )
        return db

    def disconnect(self) -> None:
        """Close the client. Safe to call when not connected."""
        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._db = None
        log_with_context(logging.INFO, "Disconnected from MongoDB")

    def __enter__(self) -> ConnectionManager:
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()
