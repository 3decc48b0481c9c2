"""
Connection draining before a database is dropped.
"""

import logging

from pgkit import dialect
from pgkit.connection import SqlExecutor, execute_statement
from pgkit.features import Feature, FeatureSet

logger = logging.getLogger(__name__)


class ConnectionTerminator:
    """Blocks new sessions to a database and ends the existing ones."""

    def __init__(self, executor: SqlExecutor, features: FeatureSet):
        self.executor = executor
        self.features = features

    def terminate(self, database_name: str) -> None:
        """
        Drain a database.

        New connections are refused first (when the server supports
        ALLOW_CONNECTIONS), then every other backend on the database is
        terminated. Our own session is never terminated.
        """
        if self.features.supports(Feature.DB_ALLOW_CONNECTIONS):
            logger.info(f"Blocking new connections to database {database_name}")
            execute_statement(
                self.executor,
                dialect.set_allow_connections(database_name, False),
                "blocking connections to database",
            )

        logger.info(f"Terminating active connections to database {database_name}")
        execute_statement(
            self.executor,
            dialect.terminate_backends(self.features),
            "terminating database connections",
            (database_name,),
        )
