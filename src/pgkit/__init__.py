"""
pgkit - Declarative management of PostgreSQL databases.

This library converges a PostgreSQL database to a declared state: it creates,
reads, updates and drops databases through an autocommit connection, and
serializes owner changes behind per-role advisory locks.

Key Features:
- Declarative Database model (pydantic) with create-only attribute checks
- Server capability probe gating version-dependent clauses
- Temporary role membership for non-superuser provisioning
- Connection draining and forced drops where the server supports them
- Dry-run and execution plans

Quick Start:
    from pgkit import ConnectionConfig, Database, DatabaseExecutor, PostgresClient

    with PostgresClient.connect(ConnectionConfig.from_env()) as client:
        executor = DatabaseExecutor(client)

        # Create, or converge an existing database
        executor.create_or_update(Database(name="analytics", owner="analytics_owner"))

        # Inspect what the catalog reports
        state = executor.read("analytics")

        # Rename, keeping every other attribute
        previous = state.to_database()
        executor.update(Database.model_validate({**previous.model_dump(), "name": "reporting"}), previous)
"""

__version__ = "0.1.0"

# =============================================================================
# Connection and capabilities
# =============================================================================

from pgkit.config import ConnectionConfig
from pgkit.connection import LockTransaction, PostgresClient
from pgkit.features import Feature, FeatureSet

# =============================================================================
# Errors
# =============================================================================

from pgkit.errors import (
    ConstraintViolationError,
    DatabaseNotFoundError,
    LockAcquisitionError,
    PgkitError,
    StatementExecutionError,
    UnsupportedFeatureError,
)

# =============================================================================
# Models
# =============================================================================

from pgkit.models import Database, DatabaseState

# =============================================================================
# Reconciliation
# =============================================================================

from pgkit.executors import DatabaseExecutor, ExecutionPlan, ExecutionResult, OperationType
from pgkit.locks import RoleLockManager
from pgkit.terminator import ConnectionTerminator

__all__ = [
    "__version__",
    # Connection
    "ConnectionConfig",
    "PostgresClient",
    "LockTransaction",
    "Feature",
    "FeatureSet",
    # Errors
    "PgkitError",
    "DatabaseNotFoundError",
    "UnsupportedFeatureError",
    "ConstraintViolationError",
    "LockAcquisitionError",
    "StatementExecutionError",
    # Models
    "Database",
    "DatabaseState",
    # Reconciliation
    "DatabaseExecutor",
    "ExecutionResult",
    "ExecutionPlan",
    "OperationType",
    "RoleLockManager",
    "ConnectionTerminator",
]
