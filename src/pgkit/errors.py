"""
Exception types raised while reconciling PostgreSQL databases.

Each exception keeps the pieces of context a caller needs to report or act on
the failure (database name, role, feature, statement description).
"""

from typing import Optional


class PgkitError(Exception):
    """Base class for all pgkit errors."""


class DatabaseNotFoundError(PgkitError):
    """Raised when a database has no row in pg_database."""

    def __init__(self, database_name: str):
        self.database_name = database_name
        super().__init__(f"Database '{database_name}' does not exist")


class UnsupportedFeatureError(PgkitError):
    """Raised when an attribute needs a capability the server version lacks."""

    def __init__(self, feature: str, server_version: str, action: str):
        self.feature = feature
        self.server_version = server_version
        self.action = action
        super().__init__(
            f"Cannot {action}: PostgreSQL server {server_version!r} does not support {feature}"
        )


class ConstraintViolationError(PgkitError):
    """Raised when a requested change would violate a database invariant."""


class LockAcquisitionError(PgkitError):
    """Raised when the advisory lock for a role cannot be taken."""

    def __init__(self, role: str, cause: Optional[Exception] = None):
        self.role = role
        self.cause = cause
        message = f"Could not get advisory lock for role '{role}'"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class StatementExecutionError(PgkitError):
    """Raised when the server rejects a statement; wraps the driver error."""

    def __init__(self, action: str, cause: Exception):
        self.action = action
        self.cause = cause
        super().__init__(f"Error {action}: {cause}")
