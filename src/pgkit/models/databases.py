"""
Database models.

`Database` is the declared desired state of one PostgreSQL database;
`DatabaseState` is what the catalog reports for it. Both are plain pydantic
models: nothing here talks to the server.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic import Field

from .base import BaseResourceModel

logger = logging.getLogger(__name__)

# Template reported for databases whose creation template is not known
DEFAULT_TEMPLATE = "template0"

# Encoding used at creation when none is requested
DEFAULT_ENCODING = "UTF8"

# Attributes the server only accepts at CREATE DATABASE time
CREATE_ONLY_FIELDS = ("template", "encoding", "lc_collate", "lc_ctype", "colocation")

# Optional string attributes where an empty value means "keep what the server has"
COMPUTED_STRING_FIELDS = ("owner", "template", "encoding", "lc_collate", "lc_ctype", "tablespace_name")

# Attributes compared when reconciling, in the order updates are applied
TRACKED_FIELDS = (
    "name",
    "owner",
    "tablespace_name",
    "connection_limit",
    "allow_connections",
    "is_template",
) + CREATE_ONLY_FIELDS


class Database(BaseResourceModel):
    """
    Desired state of a PostgreSQL database.

    String options accept three forms: empty (leave to the server), the
    `DEFAULT` sentinel (emit a bare DEFAULT), or a concrete value.
    """
    name: str = Field(..., min_length=1, description="Database name")
    owner: str = Field("", description="Owning role; empty defers to the connecting role")
    template: str = Field("", description="Template to clone from (create only)")
    encoding: str = Field("", description="Character set encoding (create only)")
    lc_collate: str = Field("", description="Collation order, LC_COLLATE (create only)")
    lc_ctype: str = Field("", description="Character classification, LC_CTYPE (create only)")
    tablespace_name: str = Field("", description="Default tablespace")
    connection_limit: int = Field(-1, ge=-1, description="Concurrent connection limit, -1 for none")
    allow_connections: bool = Field(True, description="If false then no one can connect")
    is_template: bool = Field(False, description="If true, any role with CREATEDB can clone it")
    alter_object_ownership: bool = Field(
        False,
        description="Reassign objects owned by the previous owner when the owner changes"
    )
    colocation: bool = Field(False, description="Create as a colocated database (create only)")


class DatabaseState(BaseResourceModel):
    """
    Observed state of a database, rebuilt from the catalog on every read.

    `allow_connections` and `is_template` are None when the server is too
    old to report them.
    """
    name: str = Field(..., min_length=1)
    owner: str = ""
    template: str = DEFAULT_TEMPLATE
    encoding: str = ""
    lc_collate: str = ""
    lc_ctype: str = ""
    tablespace_name: str = ""
    connection_limit: int = Field(-1, ge=-1)
    allow_connections: Optional[bool] = None
    is_template: Optional[bool] = None

    def to_database(self, **overrides: Any) -> Database:
        """
        Convert to a Database, e.g. as the previous state of an update.

        Unknown flags fall back to the Database defaults.
        """
        values: Dict[str, Any] = self.model_dump(exclude_none=True)
        values.update(overrides)
        return Database(**values)


def diff_databases(previous: Database, desired: Database) -> Dict[str, Dict[str, Any]]:
    """
    Compare two declarations of the same database.

    Empty optional strings in `desired` mean "keep the current value" and
    never produce a change.

    Args:
        previous: Current (or last applied) declaration
        desired: Declaration to converge to

    Returns:
        Dictionary of changes as {field: {'from': old, 'to': new}}
    """
    changes: Dict[str, Dict[str, Any]] = {}
    for field_name in TRACKED_FIELDS:
        old = getattr(previous, field_name)
        new = getattr(desired, field_name)
        if field_name in COMPUTED_STRING_FIELDS and new == "":
            continue
        if old != new:
            changes[field_name] = {'from': old, 'to': new}
    return changes
