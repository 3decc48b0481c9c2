"""
Connection settings for the PostgreSQL cluster being reconciled.

Settings are plain pydantic models. `ConnectionConfig.from_env()` reads the
standard libpq environment variables so the same variables that drive psql
drive pgkit.
"""

import logging
import os
from typing import Any, Dict, Optional

from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, ConfigDict, Field, SecretStr

logger = logging.getLogger(__name__)

# Database used for cluster-level statements when none is configured
DEFAULT_MAINTENANCE_DATABASE = os.getenv('PGKIT_MAINTENANCE_DATABASE', 'postgres')


class ConnectionConfig(BaseModel):
    """Where and how to connect to the cluster."""

    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    host: Optional[str] = Field(None, description="Server host name or socket directory")
    port: int = Field(5432, ge=1, le=65535, description="Server port")
    user: Optional[str] = Field(None, description="Role used to connect")
    password: Optional[SecretStr] = Field(None, description="Password for the connecting role")
    database: str = Field(
        DEFAULT_MAINTENANCE_DATABASE,
        min_length=1,
        description="Maintenance database for cluster-level statements"
    )
    sslmode: str = Field("prefer", description="libpq sslmode")
    connect_timeout: int = Field(10, ge=0, description="Connection timeout in seconds")
    application_name: str = Field("pgkit", description="Reported in pg_stat_activity")

    @classmethod
    def from_env(cls, **overrides: Any) -> "ConnectionConfig":
        """
        Build a config from PG* environment variables.

        Keyword arguments take priority over the environment.
        """
        values: Dict[str, Any] = {
            'host': os.getenv('PGHOST'),
            'port': os.getenv('PGPORT', '5432'),
            'user': os.getenv('PGUSER'),
            'password': os.getenv('PGPASSWORD'),
            'database': os.getenv('PGDATABASE', DEFAULT_MAINTENANCE_DATABASE),
            'sslmode': os.getenv('PGSSLMODE', 'prefer'),
            'connect_timeout': os.getenv('PGCONNECT_TIMEOUT', '10'),
        }
        values.update(overrides)
        return cls(**{key: value for key, value in values.items() if value is not None})

    def conninfo(self, database: Optional[str] = None) -> str:
        """
        Build a libpq connection string.

        Args:
            database: Database to connect to instead of the maintenance database
        """
        return make_conninfo(
            "",
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password.get_secret_value() if self.password else None,
            dbname=database or self.database,
            sslmode=self.sslmode,
            connect_timeout=self.connect_timeout,
            application_name=self.application_name,
        )

    def describe(self) -> str:
        """Connection target without credentials, for log lines."""
        return f"{self.user or '<default user>'}@{self.host or 'localhost'}:{self.port}/{self.database}"
