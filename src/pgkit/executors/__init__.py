"""
Executor modules for reconciling PostgreSQL objects.
"""

from .base import BaseExecutor, ExecutionPlan, ExecutionResult, OperationType
from .database_executor import DatabaseExecutor

__all__ = [
    # Base classes
    'BaseExecutor',
    'ExecutionResult',
    'ExecutionPlan',
    'OperationType',

    # Database executor
    'DatabaseExecutor',
]
