"""
Statement executors backed by psycopg.

Two implementations share the `SqlExecutor` protocol:

- `PostgresClient`: the long-lived autocommit connection. Statements that
  cannot run inside a transaction block (CREATE/DROP DATABASE) and the
  independent convergence steps go through it.
- `LockTransaction`: a dedicated connection holding one open transaction.
  Advisory locks taken here live until the transaction commits or rolls back.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Protocol, Sequence, Tuple, Union

import psycopg
from psycopg import sql

from pgkit.config import ConnectionConfig
from pgkit.errors import StatementExecutionError
from pgkit.features import FeatureSet

logger = logging.getLogger(__name__)

Query = Union[str, sql.Composable]
Row = Tuple[Any, ...]


class SqlExecutor(Protocol):
    """Anything that can run a statement and fetch a single row."""

    def execute(self, statement: Query, params: Optional[Sequence[Any]] = None) -> None: ...

    def query_row(self, query: Query, params: Optional[Sequence[Any]] = None) -> Optional[Row]: ...

    def render(self, statement: Query) -> str: ...


def execute_statement(
    executor: SqlExecutor,
    statement: Query,
    action: str,
    params: Optional[Sequence[Any]] = None
) -> None:
    """
    Run a statement, wrapping driver errors with the operation context.

    Args:
        executor: Connection or transaction to run on
        statement: SQL to execute
        action: What the statement does, e.g. "updating database OWNER"
        params: Query parameters

    Raises:
        StatementExecutionError: If the server rejects the statement
    """
    logger.debug(f"Executing: {executor.render(statement)}")
    try:
        executor.execute(statement, params)
    except psycopg.Error as e:
        raise StatementExecutionError(action, e) from e


def fetch_row(
    executor: SqlExecutor,
    query: Query,
    action: str,
    params: Optional[Sequence[Any]] = None
) -> Optional[Row]:
    """Run a query and return its first row, or None when it has no rows."""
    try:
        return executor.query_row(query, params)
    except psycopg.Error as e:
        raise StatementExecutionError(action, e) from e


class LockTransaction:
    """
    One open transaction on a dedicated connection.

    Created by `PostgresClient.transaction()`; the context manager rolls it
    back on exit unless `commit()` was called.
    """

    def __init__(self, connection: psycopg.Connection):
        self.connection = connection
        self.finished = False

    def execute(self, statement: Query, params: Optional[Sequence[Any]] = None) -> None:
        self.connection.execute(statement, params)

    def query_row(self, query: Query, params: Optional[Sequence[Any]] = None) -> Optional[Row]:
        return self.connection.execute(query, params).fetchone()

    def render(self, statement: Query) -> str:
        if isinstance(statement, sql.Composable):
            return statement.as_string(self.connection)
        return statement

    def commit(self) -> None:
        """Commit the transaction, releasing any transaction-scoped locks."""
        self.connection.commit()
        self.finished = True

    def rollback(self) -> None:
        self.connection.rollback()
        self.finished = True


class PostgresClient:
    """
    Autocommit connection to the cluster plus the probed feature set.

    Usage:
        with PostgresClient.connect(ConnectionConfig.from_env()) as client:
            executor = DatabaseExecutor(client)
            executor.create(Database(name="analytics"))
    """

    def __init__(
        self,
        connection: psycopg.Connection,
        config: ConnectionConfig,
        features: Optional[FeatureSet] = None
    ):
        """
        Wrap an existing connection.

        Args:
            connection: psycopg connection in autocommit mode
            config: Settings used to open dedicated transaction connections
            features: Feature set; probed from the connection when omitted
        """
        self.connection = connection
        self.config = config
        self.features = features or FeatureSet.from_server_version(connection.info.server_version)

    @classmethod
    def connect(cls, config: Optional[ConnectionConfig] = None) -> "PostgresClient":
        """Open the autocommit connection and probe the server version once."""
        config = config or ConnectionConfig.from_env()
        logger.info(f"Connecting to PostgreSQL as {config.describe()}")
        connection = psycopg.connect(config.conninfo(), autocommit=True)
        client = cls(connection, config)
        logger.info(f"Connected to PostgreSQL {client.features.version_string}")
        return client

    @property
    def current_user(self) -> str:
        """Role name of the connecting principal."""
        return self.config.user or self.connection.info.user

    def execute(self, statement: Query, params: Optional[Sequence[Any]] = None) -> None:
        self.connection.execute(statement, params)

    def query_row(self, query: Query, params: Optional[Sequence[Any]] = None) -> Optional[Row]:
        return self.connection.execute(query, params).fetchone()

    def render(self, statement: Query) -> str:
        if isinstance(statement, sql.Composable):
            return statement.as_string(self.connection)
        return statement

    @contextmanager
    def transaction(
        self,
        database: Optional[str] = None,
        read_only: bool = False
    ) -> Iterator[LockTransaction]:
        """
        Open a dedicated connection with a single transaction.

        The transaction is rolled back on exit unless committed, and the
        connection is always closed. Connection failures are raised to the
        caller before anything runs.

        Args:
            database: Database to connect to (defaults to the maintenance database)
            read_only: Start the transaction as READ ONLY
        """
        try:
            connection = psycopg.connect(self.config.conninfo(database), autocommit=False)
        except psycopg.Error as e:
            raise StatementExecutionError("opening transaction", e) from e

        txn = LockTransaction(connection)
        try:
            connection.read_only = read_only
            yield txn
        except BaseException:
            self._end_transaction(txn, primary_failed=True)
            raise
        self._end_transaction(txn, primary_failed=False)

    def _end_transaction(self, txn: LockTransaction, primary_failed: bool) -> None:
        """Roll back an unfinished transaction and close its connection."""
        try:
            if not txn.finished and not txn.connection.closed:
                txn.rollback()
        except psycopg.Error as e:
            # The body's own error is the one the caller needs to see
            if not primary_failed:
                raise StatementExecutionError("rolling back transaction", e) from e
            logger.error(f"Rollback failed after an earlier error: {e}")
        finally:
            txn.connection.close()

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "PostgresClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
