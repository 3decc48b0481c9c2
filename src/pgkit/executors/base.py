"""
Base executor class for PostgreSQL object reconciliation.

Provides common functionality for all executors including error handling,
idempotency, dry-run support and execution planning.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pgkit.connection import PostgresClient
from pgkit.errors import (
    ConstraintViolationError,
    DatabaseNotFoundError,
    LockAcquisitionError,
    StatementExecutionError,
    UnsupportedFeatureError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')  # Generic type for models

# Message templates for known failures, checked in order
_ERROR_HINTS = (
    (UnsupportedFeatureError, "Unsupported feature: {error}. Upgrade the server or drop the attribute."),
    (DatabaseNotFoundError, "Database not found: {error}"),
    (LockAcquisitionError, "Lock not acquired: {error}. Another reconciler may hold it."),
    (ConstraintViolationError, "Invalid change: {error}"),
    (StatementExecutionError, "Statement failed: {error}. Check the connecting role's privileges."),
)


class OperationType(str, Enum):
    """Types of operations that can be performed."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    NO_OP = "NO_OP"


@dataclass
class ExecutionResult:
    """Result of an execution operation."""

    success: bool
    operation: OperationType
    resource_type: str
    resource_name: str
    message: str = ""
    error: Optional[Exception] = None
    duration_seconds: float = 0.0
    changes: Dict[str, Any] = field(default_factory=dict)
    state: Optional[Any] = None  # Observed state read back after the operation

    def __str__(self) -> str:
        """String representation of the result."""
        status = "✅" if self.success else "❌"
        return (
            f"{status} {self.operation.value} {self.resource_type} "
            f"{self.resource_name}: {self.message}"
        )


@dataclass
class ExecutionPlan:
    """Execution plan showing what will be done."""

    operations: List[ExecutionResult] = field(default_factory=list)

    def add_operation(
        self,
        operation: OperationType,
        resource_type: str,
        resource_name: str,
        changes: Optional[Dict[str, Any]] = None
    ):
        """Add an operation to the plan."""
        self.operations.append(ExecutionResult(
            success=True,  # Plan assumes success
            operation=operation,
            resource_type=resource_type,
            resource_name=resource_name,
            message="Planned",
            changes=changes or {}
        ))

    def __str__(self) -> str:
        """String representation of the plan."""
        if not self.operations:
            return "No operations planned"

        lines = ["Execution Plan:"]
        for i, op in enumerate(self.operations, 1):
            lines.append(f"  {i}. {op.operation.value} {op.resource_type} {op.resource_name}")
            if op.changes:
                for key, value in op.changes.items():
                    lines.append(f"      {key}: {value}")

        lines.append(f"\nTotal operations: {len(self.operations)}")

        return "\n".join(lines)


class BaseExecutor(ABC, Generic[T]):
    """
    Base class for all pgkit executors.

    Provides common functionality including:
    - Error handling with contextual messages
    - Idempotency checks
    - Dry-run mode support
    - Execution plans and summaries

    Failed operations are never retried here; the caller decides.
    """

    def __init__(
        self,
        client: PostgresClient,
        dry_run: bool = False,
        continue_on_error: bool = False,
    ):
        """
        Initialize the executor.

        Args:
            client: Connected PostgreSQL client (carries the feature set)
            dry_run: If True, only show what would be done
            continue_on_error: Return failed results instead of raising
        """
        self.client = client
        self.features = client.features
        self.dry_run = dry_run
        self.continue_on_error = continue_on_error
        self.results: List[ExecutionResult] = []

    @abstractmethod
    def create(self, resource: T) -> ExecutionResult:
        """Create the object on the server and read it back."""

    @abstractmethod
    def update(self, resource: T) -> ExecutionResult:
        """Converge an existing object to `resource`."""

    @abstractmethod
    def delete(self, resource: T) -> ExecutionResult:
        """Drop the object; NO_OP when it is already gone."""

    @abstractmethod
    def exists(self, resource: T) -> bool:
        """True if the object has a catalog row."""

    @abstractmethod
    def get_resource_type(self) -> str:
        """Object kind used in results and log lines, e.g. "DATABASE"."""

    def create_or_update(self, resource: T) -> ExecutionResult:
        """
        Create `resource` when it is missing, otherwise converge it.

        Failures inside create/update are already reported by those calls;
        only a failed existence check is handled here.
        """
        try:
            found = self.exists(resource)
        except Exception as e:
            return self._handle_error(OperationType.CREATE, self._get_resource_name(resource), e)
        return self.update(resource) if found else self.create(resource)

    def plan(self, resources: List[T]) -> ExecutionPlan:
        """
        Work out what create_or_update would do, without sending any DDL.

        Args:
            resources: Declarations to check against the server

        Returns:
            ExecutionPlan with one CREATE, UPDATE or NO_OP entry per resource
        """
        plan = ExecutionPlan()

        for resource in resources:
            changes: Dict[str, Any] = {}
            if not self.exists(resource):
                operation = OperationType.CREATE
            else:
                changes = self._get_changes(resource)
                operation = OperationType.UPDATE if changes else OperationType.NO_OP
            plan.add_operation(operation, self.get_resource_type(), self._get_resource_name(resource), changes)

        return plan

    def _handle_error(
        self,
        operation: OperationType,
        resource_name: str,
        error: Exception
    ) -> ExecutionResult:
        """
        Record a failed operation and re-raise it unless continue_on_error.

        Args:
            operation: The operation that failed
            resource_name: Name of the object
            error: The exception that occurred

        Returns:
            Failed ExecutionResult (only when continue_on_error is set)
        """
        message = str(error)
        for error_type, template in _ERROR_HINTS:
            if isinstance(error, error_type):
                message = template.format(error=error)
                break
        result = ExecutionResult(
            success=False,
            operation=operation,
            resource_type=self.get_resource_type(),
            resource_name=resource_name,
            message=message,
            error=error
        )

        self.results.append(result)
        logger.error(f"Operation failed: {result}")

        if not self.continue_on_error:
            raise error

        return result

    def _record(self, result: ExecutionResult) -> ExecutionResult:
        """Keep a successful result for the summary and return it."""
        self.results.append(result)
        return result

    def _get_resource_name(self, resource: T) -> str:
        """Name used in results; accepts a bare name string too."""
        if isinstance(resource, str):
            return resource
        return str(getattr(resource, 'name', resource))

    def _get_changes(self, resource: T) -> Dict[str, Any]:
        """Changes plan() reports for an existing object. Subclasses diff live state."""
        return {}

    def get_summary(self) -> str:
        """
        Get a summary of execution results.

        Returns:
            Summary string
        """
        if not self.results:
            return "No operations performed"

        successful = sum(1 for r in self.results if r.success)
        failed = sum(1 for r in self.results if not r.success)

        lines = [
            "Execution Summary:",
            f"  Total operations: {len(self.results)}",
            f"  Successful: {successful}",
            f"  Failed: {failed}"
        ]

        if failed > 0:
            lines.append("\nFailed operations:")
            for result in self.results:
                if not result.success:
                    lines.append(f"  - {result}")

        return "\n".join(lines)
