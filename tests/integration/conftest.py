"""
Integration test fixtures for pgkit.

Provides a live PostgreSQL client, executor fixtures, and database cleanup.
Tests are skipped unless PGHOST points at a reachable server.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Callable, Generator, List

import psycopg
import pytest

from pgkit import dialect
from pgkit.config import ConnectionConfig
from pgkit.connection import PostgresClient
from pgkit.executors import DatabaseExecutor
from pgkit.features import Feature

logger = logging.getLogger(__name__)


@dataclass
class ResourceTracker:
    """
    Tracks created resources for cleanup after tests.

    Custom cleanups run first (in reverse order), then databases are dropped.
    """

    databases: List[str] = field(default_factory=list)
    custom_cleanups: List[Callable[[], None]] = field(default_factory=list)

    def add_database(self, name: str) -> None:
        """Track a database for cleanup."""
        if name not in self.databases:
            self.databases.append(name)

    def add_custom_cleanup(self, cleanup_fn: Callable[[], None]) -> None:
        """Add a custom cleanup function."""
        self.custom_cleanups.append(cleanup_fn)


@pytest.fixture(scope="session")
def pg_client() -> Generator[PostgresClient, None, None]:
    """
    Session-scoped PostgresClient using the PG* environment variables.

    Skips the integration suite when no server is configured or reachable.
    """
    if not os.getenv("PGHOST"):
        pytest.skip("PGHOST not set; skipping PostgreSQL integration tests")
    try:
        client = PostgresClient.connect(ConnectionConfig.from_env())
    except psycopg.Error as e:
        pytest.skip(f"Could not connect to PostgreSQL: {e}")
    logger.info(f"Connected to PostgreSQL {client.features.version_string} as {client.current_user}")
    yield client
    client.close()


@pytest.fixture
def resource_tracker() -> ResourceTracker:
    """Fixture that provides a resource tracker for the test."""
    return ResourceTracker()


@pytest.fixture(autouse=True)
def cleanup_resources(
    pg_client: PostgresClient,
    resource_tracker: ResourceTracker,
) -> Generator[None, None, None]:
    """
    Autouse fixture that drops tracked databases after each test.

    Failed cleanups are logged but don't fail the test.
    """
    yield

    for cleanup_fn in reversed(resource_tracker.custom_cleanups):
        try:
            cleanup_fn()
        except Exception as e:
            logger.warning(f"Custom cleanup failed: {e}")

    for database_name in reversed(resource_tracker.databases):
        try:
            if pg_client.query_row(dialect.SELECT_DATABASE_EXISTS, (database_name,)) is None:
                continue  # Already gone
            if pg_client.features.supports(Feature.DB_IS_TEMPLATE):
                pg_client.execute(dialect.set_is_template(database_name, False))
            pg_client.execute(dialect.drop_database(database_name, pg_client.features))
            logger.info(f"Cleaned up database: {database_name}")
        except psycopg.Error as e:
            logger.warning(f"Failed to cleanup database {database_name}: {e}")


# =============================================================================
# EXECUTOR FIXTURES
# =============================================================================


@pytest.fixture
def database_executor(pg_client: PostgresClient) -> DatabaseExecutor:
    """Fixture that provides a DatabaseExecutor."""
    return DatabaseExecutor(pg_client)
