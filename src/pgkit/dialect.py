"""
SQL builders for PostgreSQL database reconciliation.

All builders return `psycopg.sql.Composable` objects (or plain query strings
for catalog lookups) and never touch the server.

Design guarantees
- Identifiers go through `sql.Identifier` (double-quote escaping), string
  options through `sql.Literal` (single-quote doubling).
- Integers and booleans are rendered from validated Python values.
- Feature-gated clauses are only emitted when the FeatureSet supports them.
- No business rules: the executor decides when each statement runs.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from psycopg import sql

from pgkit.features import Feature, FeatureSet
from pgkit.models import DEFAULT_ENCODING, DEFAULT_SENTINEL, DEFAULT_TEMPLATE, Database, is_default_sentinel

# =============================================================================
# CATALOG QUERIES
# =============================================================================

SELECT_DATABASE_OWNER = (
    "SELECT d.datname, pg_catalog.pg_get_userbyid(d.datdba) "
    "FROM pg_catalog.pg_database AS d WHERE d.datname = %s"
)

_DATABASE_WITH_TABLESPACE = (
    "FROM pg_catalog.pg_database AS d, pg_catalog.pg_tablespace AS ts "
    "WHERE d.datname = %s AND d.dattablespace = ts.oid"
)

SELECT_DATABASE_ATTRIBUTES = (
    "SELECT pg_catalog.pg_encoding_to_char(d.encoding), d.datcollate, d.datctype, "
    "ts.spcname, d.datconnlimit " + _DATABASE_WITH_TABLESPACE
)

SELECT_DATABASE_ALLOW_CONNECTIONS = "SELECT d.datallowconn " + _DATABASE_WITH_TABLESPACE

SELECT_DATABASE_IS_TEMPLATE = "SELECT d.datistemplate " + _DATABASE_WITH_TABLESPACE

SELECT_DATABASE_EXISTS = "SELECT 1 FROM pg_catalog.pg_database WHERE datname = %s"

# Params: (group, member)
SELECT_ROLE_MEMBERSHIP = (
    "SELECT 1 FROM pg_catalog.pg_auth_members "
    "WHERE pg_catalog.pg_get_userbyid(roleid) = %s AND pg_catalog.pg_get_userbyid(member) = %s"
)

LOCK_ROLE = (
    "SELECT pg_catalog.pg_advisory_xact_lock(oid::bigint) "
    "FROM pg_catalog.pg_roles WHERE rolname = %s"
)


# =============================================================================
# VALUE RENDERING
# =============================================================================

def render_bool(value: bool) -> sql.SQL:
    return sql.SQL("true" if value else "false")


def render_int(value: int) -> sql.SQL:
    return sql.SQL(str(int(value)))


def _option(
    attribute: str,
    quote: Callable[[str], sql.Composable],
    fallback: Optional[sql.Composable] = None,
    allow_default: bool = True,
) -> Callable[[Database, str], Optional[sql.Composable]]:
    """
    Value renderer for a three-state string option.

    Empty value -> fallback (or no clause), DEFAULT sentinel -> bare DEFAULT,
    anything else -> quoted value.
    """
    def render(resource: Database, current_user: str) -> Optional[sql.Composable]:
        value = getattr(resource, attribute)
        if not value:
            return fallback
        if allow_default and is_default_sentinel(value):
            return sql.SQL(DEFAULT_SENTINEL)
        return quote(value)
    return render


def _owner(resource: Database, current_user: str) -> Optional[sql.Composable]:
    # No owner requested: the connecting role owns the new database
    owner = resource.owner or current_user
    return sql.Identifier(owner) if owner else None


def _flag(attribute: str, only_when_set: bool = False) -> Callable[[Database, str], Optional[sql.Composable]]:
    def render(resource: Database, current_user: str) -> Optional[sql.Composable]:
        value = getattr(resource, attribute)
        if only_when_set and not value:
            return None
        return render_bool(value)
    return render


def _check_connection_limit(limit: int) -> int:
    if limit < -1:
        raise ValueError(f"Connection limit must be -1 or greater, got {limit}")
    return limit


def _connection_limit(resource: Database, current_user: str) -> Optional[sql.Composable]:
    # Declarations built with model_copy(update=...) bypass field validation
    return render_int(_check_connection_limit(resource.connection_limit))


# =============================================================================
# CREATE DATABASE CLAUSE TABLE
# =============================================================================

@dataclass(frozen=True)
class CreateClause:
    """One optional clause of CREATE DATABASE."""

    keyword: str
    value: Callable[[Database, str], Optional[sql.Composable]]
    feature: Optional[Feature] = None

    def render(self, resource: Database, features: FeatureSet, current_user: str) -> Optional[sql.Composable]:
        """Render `KEYWORD value`, or None when the clause is omitted."""
        if self.feature is not None and not features.supports(self.feature):
            return None
        value = self.value(resource, current_user)
        if value is None:
            return None
        return sql.SQL(" ").join([sql.SQL(self.keyword), value])


CREATE_CLAUSES: Tuple[CreateClause, ...] = (
    CreateClause("WITH COLOCATION =", _flag("colocation", only_when_set=True)),
    CreateClause("OWNER", _owner),
    CreateClause("TEMPLATE", _option("template", sql.Identifier, fallback=sql.SQL(DEFAULT_TEMPLATE))),
    CreateClause("ENCODING", _option("encoding", sql.Literal, fallback=sql.Literal(DEFAULT_ENCODING))),
    CreateClause("LC_COLLATE", _option("lc_collate", sql.Literal)),
    CreateClause("LC_CTYPE", _option("lc_ctype", sql.Literal)),
    CreateClause("TABLESPACE", _option("tablespace_name", sql.Identifier)),
    CreateClause("ALLOW_CONNECTIONS", _flag("allow_connections"), feature=Feature.DB_ALLOW_CONNECTIONS),
    CreateClause("CONNECTION LIMIT", _connection_limit),
    CreateClause("IS_TEMPLATE", _flag("is_template"), feature=Feature.DB_IS_TEMPLATE),
)


def create_database(resource: Database, features: FeatureSet, current_user: str) -> sql.Composed:
    """CREATE DATABASE name [clauses...] built from CREATE_CLAUSES."""
    rendered = (clause.render(resource, features, current_user) for clause in CREATE_CLAUSES)
    parts = [sql.SQL("CREATE DATABASE"), sql.Identifier(resource.name)]
    parts.extend(part for part in rendered if part is not None)
    return sql.SQL(" ").join(parts)


# =============================================================================
# ALTER / DROP
# =============================================================================

def rename_database(old_name: str, new_name: str) -> sql.Composed:
    """ALTER DATABASE old RENAME TO new."""
    return sql.SQL("ALTER DATABASE {} RENAME TO {}").format(
        sql.Identifier(old_name), sql.Identifier(new_name)
    )


def alter_owner(name: str, owner: str) -> sql.Composed:
    """ALTER DATABASE name OWNER TO owner."""
    return sql.SQL("ALTER DATABASE {} OWNER TO {}").format(sql.Identifier(name), sql.Identifier(owner))


def reassign_owned(old_owner: str, new_owner: str) -> sql.Composed:
    """REASSIGN OWNED BY old TO new (acts on the connected database)."""
    return sql.SQL("REASSIGN OWNED BY {} TO {}").format(sql.Identifier(old_owner), sql.Identifier(new_owner))


def set_tablespace(name: str, tablespace: str) -> sql.Composed:
    """ALTER DATABASE name SET TABLESPACE s, or RESET TABLESPACE for empty/DEFAULT."""
    if not tablespace or is_default_sentinel(tablespace):
        return sql.SQL("ALTER DATABASE {} RESET TABLESPACE").format(sql.Identifier(name))
    return sql.SQL("ALTER DATABASE {} SET TABLESPACE {}").format(sql.Identifier(name), sql.Identifier(tablespace))


def set_connection_limit(name: str, limit: int) -> sql.Composed:
    """ALTER DATABASE name CONNECTION LIMIT = n."""
    return sql.SQL("ALTER DATABASE {} CONNECTION LIMIT = {}").format(
        sql.Identifier(name), render_int(_check_connection_limit(limit))
    )


def set_allow_connections(name: str, allow: bool) -> sql.Composed:
    """ALTER DATABASE name ALLOW_CONNECTIONS true|false."""
    return sql.SQL("ALTER DATABASE {} ALLOW_CONNECTIONS {}").format(sql.Identifier(name), render_bool(allow))


def set_is_template(name: str, is_template: bool) -> sql.Composed:
    """ALTER DATABASE name IS_TEMPLATE true|false."""
    return sql.SQL("ALTER DATABASE {} IS_TEMPLATE {}").format(sql.Identifier(name), render_bool(is_template))


def drop_database(name: str, features: FeatureSet) -> sql.Composed:
    """DROP DATABASE name, with (FORCE) on servers that support it."""
    statement = sql.SQL("DROP DATABASE {}").format(sql.Identifier(name))
    if features.supports(Feature.FORCE_DROP_DATABASE):
        statement = sql.SQL("{} WITH (FORCE)").format(statement)
    return statement


# =============================================================================
# ROLES AND SESSIONS
# =============================================================================

def grant_role(group: str, member: str) -> sql.Composed:
    """GRANT group TO member."""
    return sql.SQL("GRANT {} TO {}").format(sql.Identifier(group), sql.Identifier(member))


def revoke_role(group: str, member: str) -> sql.Composed:
    """REVOKE group FROM member."""
    return sql.SQL("REVOKE {} FROM {}").format(sql.Identifier(group), sql.Identifier(member))


def terminate_backends(features: FeatureSet) -> sql.Composed:
    """
    Terminate every backend connected to a database except our own.

    Takes the database name as its single query parameter.
    """
    pid = sql.Identifier(features.pid_column)
    return sql.SQL(
        "SELECT pg_catalog.pg_terminate_backend({pid}) FROM pg_catalog.pg_stat_activity "
        "WHERE datname = %s AND {pid} <> pg_catalog.pg_backend_pid()"
    ).format(pid=pid)
