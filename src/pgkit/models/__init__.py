"""
pgkit resource models.

Module organization:
- base: BaseResourceModel and the DEFAULT sentinel helpers
- databases: Database (desired state), DatabaseState (observed state), diffing
"""

from .base import DEFAULT_SENTINEL, BaseResourceModel, is_default_sentinel
from .databases import (
    CREATE_ONLY_FIELDS,
    DEFAULT_ENCODING,
    DEFAULT_TEMPLATE,
    Database,
    DatabaseState,
    diff_databases,
)

__all__ = [
    "BaseResourceModel",
    "DEFAULT_SENTINEL",
    "is_default_sentinel",
    "Database",
    "DatabaseState",
    "diff_databases",
    "CREATE_ONLY_FIELDS",
    "DEFAULT_ENCODING",
    "DEFAULT_TEMPLATE",
]
