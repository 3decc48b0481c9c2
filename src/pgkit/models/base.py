"""
Base classes shared by the pgkit resource models.
"""

from __future__ import annotations

import logging

from pydantic import (
    BaseModel,
    ConfigDict,
)

logger = logging.getLogger(__name__)

# Sentinel accepted by optional attributes to mean "use the server default"
DEFAULT_SENTINEL = "DEFAULT"


def is_default_sentinel(value: str) -> bool:
    """True if value is the DEFAULT sentinel (case-insensitive)."""
    return bool(value) and value.upper() == DEFAULT_SENTINEL


# =============================================================================
# BASE CONFIGURATION
# =============================================================================

class BaseResourceModel(BaseModel):
    """
    Base model for all managed PostgreSQL objects.

    Provides the standard Pydantic v2 configuration used by every resource.
    Assignment is validated so invariants hold after a model is mutated
    between reconciliations.
    """

    model_config = ConfigDict(
        validate_assignment=True,  # Invariants hold after mutation
        validate_default=True,  # Validate defaults once
        populate_by_name=True,  # Allow field population by name
        use_enum_values=False,  # Keep enums as enum objects
        str_strip_whitespace=False,  # Quoted identifiers keep significant spaces
        extra="forbid",  # Typos in declarations are errors
        json_schema_extra={
            "title": "pgkit Resource Model",
            "description": "Base model for managed PostgreSQL objects"
        }
    )
