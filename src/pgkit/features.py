"""
Server capability probe.

A FeatureSet is computed once from the connected server's version and handed
to every component that builds or runs SQL. Nothing here touches the network.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict

from pgkit.errors import UnsupportedFeatureError

logger = logging.getLogger(__name__)


class Feature(str, Enum):
    """Optional clauses and behaviours that depend on the server version."""
    DB_ALLOW_CONNECTIONS = "DB_ALLOW_CONNECTIONS"  # ALLOW_CONNECTIONS clause, datallowconn
    DB_IS_TEMPLATE = "DB_IS_TEMPLATE"  # IS_TEMPLATE clause, datistemplate
    FORCE_DROP_DATABASE = "FORCE_DROP_DATABASE"  # DROP DATABASE ... WITH (FORCE)
    PID = "PID"  # pg_stat_activity.pid (procpid before 9.2)


# Minimum server_version_num for each feature
FEATURE_MIN_VERSIONS: Dict[Feature, int] = {
    Feature.DB_ALLOW_CONNECTIONS: 90500,
    Feature.DB_IS_TEMPLATE: 90500,
    Feature.FORCE_DROP_DATABASE: 130000,
    Feature.PID: 90200,
}


def format_server_version(version_num: int) -> str:
    """
    Render a server_version_num integer as a dotted version.

    PostgreSQL 10+ uses two components (130004 -> "13.4"), older releases
    use three (90605 -> "9.6.5").
    """
    major = version_num // 10000
    if major >= 10:
        return f"{major}.{version_num % 10000}"
    return f"{major}.{(version_num // 100) % 100}.{version_num % 100}"


@dataclass(frozen=True)
class FeatureSet:
    """Capabilities of one server, keyed by Feature."""

    server_version: int
    flags: Dict[Feature, bool]

    @classmethod
    def from_server_version(cls, version_num: int) -> "FeatureSet":
        """Build the feature set for a server_version_num value."""
        flags = {
            feature: version_num >= minimum
            for feature, minimum in FEATURE_MIN_VERSIONS.items()
        }
        logger.debug(f"Feature set for server {format_server_version(version_num)}: {flags}")
        return cls(server_version=version_num, flags=flags)

    @property
    def version_string(self) -> str:
        return format_server_version(self.server_version)

    @property
    def pid_column(self) -> str:
        """Name of the backend pid column in pg_stat_activity."""
        return "pid" if self.supports(Feature.PID) else "procpid"

    def supports(self, feature: Feature) -> bool:
        return self.flags.get(feature, False)

    def require(self, feature: Feature, action: str) -> None:
        """
        Raise UnsupportedFeatureError unless the feature is available.

        Args:
            feature: The capability the caller is about to use
            action: Short description used in the error message
        """
        if not self.supports(feature):
            raise UnsupportedFeatureError(feature.value, self.version_string, action)
