"""
Database executor for PostgreSQL.

Handles creation, reading, update and deletion of databases. Owner-sensitive
statements run under a role lock with temporary membership (see
pgkit.locks); destructive drops drain connections first (see
pgkit.terminator).
"""

import logging
import time
from contextlib import nullcontext
from typing import Any, ContextManager, Dict, Optional, Union

from pgkit import dialect
from pgkit.connection import PostgresClient, execute_statement, fetch_row
from pgkit.errors import ConstraintViolationError, DatabaseNotFoundError
from pgkit.features import Feature
from pgkit.locks import RoleLockManager
from pgkit.models import CREATE_ONLY_FIELDS, DEFAULT_TEMPLATE, Database, DatabaseState, diff_databases
from pgkit.terminator import ConnectionTerminator

from .base import BaseExecutor, ExecutionResult, OperationType

logger = logging.getLogger(__name__)

Changes = Dict[str, Dict[str, Any]]


class DatabaseExecutor(BaseExecutor[Database]):
    """Executor for database operations."""

    def __init__(
        self,
        client: PostgresClient,
        dry_run: bool = False,
        continue_on_error: bool = False,
    ):
        super().__init__(client, dry_run, continue_on_error)
        self.locks = RoleLockManager(client)
        self.terminator = ConnectionTerminator(client, self.features)

    def get_resource_type(self) -> str:
        """Get the resource type."""
        return "DATABASE"

    # ------------------------------------------------------------------
    # exists / read
    # ------------------------------------------------------------------

    def exists(self, resource: Union[Database, str]) -> bool:
        """
        Check if a database exists.

        Runs in its own read-only transaction, which is always released.

        Args:
            resource: The database, or its name

        Returns:
            True if database exists, False otherwise
        """
        name = self._get_resource_name(resource)
        with self.client.transaction(read_only=True) as txn:
            row = fetch_row(txn, dialect.SELECT_DATABASE_EXISTS, "checking database existence", (name,))
        return row is not None

    def read(self, name: str, resource: Optional[Database] = None) -> Optional[DatabaseState]:
        """
        Read the live state of a database.

        A database that does not exist is not an error: None is returned and
        the caller treats the identity as cleared.

        Args:
            name: Database name
            resource: Current declaration; supplies the template, which the
                server does not remember after creation

        Returns:
            DatabaseState, or None if the database does not exist
        """
        row = fetch_row(self.client, dialect.SELECT_DATABASE_OWNER, "reading database", (name,))
        if row is None:
            logger.warning(f"PostgreSQL database ({name!r}) not found")
            return None
        db_name, owner = row

        row = fetch_row(self.client, dialect.SELECT_DATABASE_ATTRIBUTES, "reading database", (name,))
        if row is None:
            # Dropped between the two queries
            logger.warning(f"PostgreSQL database ({name!r}) not found")
            return None
        encoding, lc_collate, lc_ctype, tablespace_name, connection_limit = row

        state = DatabaseState(
            name=db_name,
            owner=owner,
            template=(resource.template if resource else "") or DEFAULT_TEMPLATE,
            encoding=encoding,
            lc_collate=lc_collate,
            lc_ctype=lc_ctype,
            tablespace_name=tablespace_name,
            connection_limit=connection_limit,
        )

        if self.features.supports(Feature.DB_ALLOW_CONNECTIONS):
            state.allow_connections = self._read_flag(
                dialect.SELECT_DATABASE_ALLOW_CONNECTIONS, name, "reading ALLOW_CONNECTIONS property for DATABASE"
            )

        if self.features.supports(Feature.DB_IS_TEMPLATE):
            state.is_template = self._read_flag(
                dialect.SELECT_DATABASE_IS_TEMPLATE, name, "reading IS_TEMPLATE property for DATABASE"
            )

        return state

    def _read_flag(self, query: str, name: str, action: str) -> bool:
        row = fetch_row(self.client, query, action, (name,))
        if row is None:
            raise DatabaseNotFoundError(name)
        return bool(row[0])

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(self, resource: Database) -> ExecutionResult:
        """
        Create a new database.

        When an owner is requested, the CREATE runs while the connecting role
        temporarily holds membership in the owner role.

        Args:
            resource: The database to create

        Returns:
            ExecutionResult with the state read back after creation
        """
        start_time = time.time()
        resource_name = resource.name

        try:
            statement = dialect.create_database(resource, self.features, self.client.current_user)

            if self.dry_run:
                logger.info(f"[DRY RUN] Would create database {resource_name}")
                return ExecutionResult(
                    success=True,
                    operation=OperationType.CREATE,
                    resource_type=self.get_resource_type(),
                    resource_name=resource_name,
                    message=f"Would be created (dry run): {self.client.render(statement)}"
                )

            logger.info(f"Creating database {resource_name}")
            with self._owner_scope(resource.owner):
                execute_statement(self.client, statement, f"creating database {resource_name!r}")

            state = self.read(resource_name, resource)

            duration = time.time() - start_time
            return self._record(ExecutionResult(
                success=True,
                operation=OperationType.CREATE,
                resource_type=self.get_resource_type(),
                resource_name=resource_name,
                message="Created successfully",
                duration_seconds=duration,
                state=state
            ))

        except Exception as e:
            return self._handle_error(OperationType.CREATE, resource_name, e)

    # ------------------------------------------------------------------
    # update
    # ------------------------------------------------------------------

    def update(self, resource: Database, previous: Optional[Database] = None) -> ExecutionResult:
        """
        Converge an existing database to its declaration.

        Sub-steps run in a fixed order, each only when its own attribute
        changed: rename, object reassignment, owner, tablespace, connection
        limit, allow-connections, is-template.

        Args:
            resource: Desired declaration
            previous: Last applied declaration. Required to rename; when
                omitted the live state is read and used instead.

        Returns:
            ExecutionResult with the applied changes and the final state
        """
        start_time = time.time()
        resource_name = resource.name

        try:
            if previous is None:
                existing = self.read(resource_name, resource)
                if existing is None:
                    raise DatabaseNotFoundError(resource_name)
                previous = existing.to_database()

            changes = self._get_database_changes(previous, resource)

            if not changes:
                return self._record(ExecutionResult(
                    success=True,
                    operation=OperationType.NO_OP,
                    resource_type=self.get_resource_type(),
                    resource_name=resource_name,
                    message="No changes needed"
                ))

            if self.dry_run:
                logger.info(f"[DRY RUN] Would update database {resource_name}")
                return ExecutionResult(
                    success=True,
                    operation=OperationType.UPDATE,
                    resource_type=self.get_resource_type(),
                    resource_name=resource_name,
                    message=f"Would update: {changes} (dry run)",
                    changes=changes
                )

            logger.info(f"Updating database {resource_name}: {changes}")
            self._set_name(changes)
            self._reassign_owned_objects(resource, changes)
            self._set_owner(resource, changes)
            self._set_tablespace(resource, changes)
            self._set_connection_limit(resource, changes)
            self._set_allow_connections(resource, changes)
            self._set_is_template(resource, changes)

            state = self.read(resource_name, resource)

            duration = time.time() - start_time
            return self._record(ExecutionResult(
                success=True,
                operation=OperationType.UPDATE,
                resource_type=self.get_resource_type(),
                resource_name=resource_name,
                message=f"Updated: {changes}",
                duration_seconds=duration,
                changes=changes,
                state=state
            ))

        except Exception as e:
            return self._handle_error(OperationType.UPDATE, resource_name, e)

    def _set_name(self, changes: Changes) -> None:
        if 'name' not in changes:
            return

        old_name = changes['name']['from']
        new_name = changes['name']['to']
        if not new_name:
            raise ConstraintViolationError("Error setting database name to an empty string")

        logger.info(f"Renaming database {old_name} to {new_name}")
        execute_statement(
            self.client, dialect.rename_database(old_name, new_name), "updating database name"
        )

    def _reassign_owned_objects(self, resource: Database, changes: Changes) -> None:
        """
        REASSIGN OWNED BY <current owner> TO <new owner> inside the database.

        Only when the owner changes and alter_object_ownership is set. The
        connecting role needs membership in the role being divested, so that
        is the role granted here. The reassignment is committed before the
        temporary membership is revoked.
        """
        if 'owner' not in changes or not resource.alter_object_ownership:
            return

        new_owner = resource.owner
        if not new_owner:
            return

        current_user = self.client.current_user
        with self.locks.acquire_role_lock(current_user, database=resource.name) as txn:
            # The current owner is resolved under the lock
            row = fetch_row(txn, dialect.SELECT_DATABASE_OWNER, "getting current database OWNER", (resource.name,))
            if row is None:
                raise DatabaseNotFoundError(resource.name)
            current_owner = row[1]

            if current_owner == new_owner:
                return

            logger.info(f"Reassigning objects owned by {current_owner} to {new_owner} in {resource.name}")
            with self.locks.temporary_membership(current_user, current_owner):
                execute_statement(
                    txn,
                    dialect.reassign_owned(current_owner, new_owner),
                    f"reassigning objects owned by '{current_owner}'",
                )
                txn.commit()

    def _set_owner(self, resource: Database, changes: Changes) -> None:
        if 'owner' not in changes or not resource.owner:
            return

        logger.info(f"Changing owner of database {resource.name} to {resource.owner}")
        with self._owner_scope(resource.owner):
            execute_statement(
                self.client, dialect.alter_owner(resource.name, resource.owner), "updating database OWNER"
            )

    def _set_tablespace(self, resource: Database, changes: Changes) -> None:
        if 'tablespace_name' not in changes:
            return

        execute_statement(
            self.client,
            dialect.set_tablespace(resource.name, resource.tablespace_name),
            "updating database TABLESPACE",
        )

    def _set_connection_limit(self, resource: Database, changes: Changes) -> None:
        if 'connection_limit' not in changes:
            return

        execute_statement(
            self.client,
            dialect.set_connection_limit(resource.name, resource.connection_limit),
            "updating database CONNECTION LIMIT",
        )

    def _set_allow_connections(self, resource: Database, changes: Changes) -> None:
        if 'allow_connections' not in changes:
            return

        self.features.require(Feature.DB_ALLOW_CONNECTIONS, "set database ALLOW_CONNECTIONS")
        execute_statement(
            self.client,
            dialect.set_allow_connections(resource.name, resource.allow_connections),
            "updating database ALLOW_CONNECTIONS",
        )

    def _set_is_template(self, resource: Database, changes: Changes) -> None:
        if 'is_template' not in changes:
            return

        self._apply_is_template(resource.name, resource.is_template)

    def _apply_is_template(self, name: str, is_template: bool) -> None:
        self.features.require(Feature.DB_IS_TEMPLATE, "set database IS_TEMPLATE")
        execute_statement(
            self.client,
            dialect.set_is_template(name, is_template),
            "updating database IS_TEMPLATE",
        )

    # ------------------------------------------------------------------
    # delete
    # ------------------------------------------------------------------

    def delete(self, resource: Database) -> ExecutionResult:
        """
        Drop a database.

        Template databases have the flag cleared first, active sessions are
        drained, and DROP uses WITH (FORCE) where available.

        Args:
            resource: The database to delete

        Returns:
            ExecutionResult indicating success or failure
        """
        start_time = time.time()
        resource_name = resource.name

        try:
            if not self.exists(resource):
                return self._record(ExecutionResult(
                    success=True,
                    operation=OperationType.NO_OP,
                    resource_type=self.get_resource_type(),
                    resource_name=resource_name,
                    message="Does not exist"
                ))

            if self.dry_run:
                logger.info(f"[DRY RUN] Would delete database {resource_name}")
                return ExecutionResult(
                    success=True,
                    operation=OperationType.DELETE,
                    resource_type=self.get_resource_type(),
                    resource_name=resource_name,
                    message="Would be deleted (dry run)"
                )

            logger.info(f"Deleting database {resource_name}")
            with self._owner_scope(resource.owner):
                self._drop(resource)

            duration = time.time() - start_time
            return self._record(ExecutionResult(
                success=True,
                operation=OperationType.DELETE,
                resource_type=self.get_resource_type(),
                resource_name=resource_name,
                message="Deleted successfully",
                duration_seconds=duration
            ))

        except Exception as e:
            return self._handle_error(OperationType.DELETE, resource_name, e)

    def _drop(self, resource: Database) -> None:
        name = resource.name

        if self.features.supports(Feature.DB_IS_TEMPLATE):
            # Template databases must have the flag cleared before they can be dropped
            if resource.is_template:
                self._apply_is_template(name, False)

            row = fetch_row(
                self.client, dialect.SELECT_DATABASE_IS_TEMPLATE, "reading IS_TEMPLATE property for DATABASE", (name,)
            )
            if row is not None and row[0]:
                logger.warning(f"Database {name} is still flagged as a template, clearing it before DROP")
                self._apply_is_template(name, False)

        self.terminator.terminate(name)

        execute_statement(self.client, dialect.drop_database(name, self.features), "dropping database")

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _owner_scope(self, owner: str) -> ContextManager[Any]:
        """Temporary membership in `owner` for the connecting role, or nothing."""
        if not owner:
            return nullcontext()
        return self.locks.elevate(self.client.current_user, owner)

    def _get_database_changes(self, existing: Database, desired: Database) -> Changes:
        """
        Compare existing and desired database to find changes.

        Create-only attributes cannot be changed in place; differences are
        logged and left out.

        Args:
            existing: Current database declaration
            desired: Desired database declaration

        Returns:
            Dictionary of changes needed
        """
        changes = diff_databases(existing, desired)

        for field_name in CREATE_ONLY_FIELDS:
            change = changes.pop(field_name, None)
            if change is not None:
                logger.warning(
                    f"{field_name} cannot be changed after creation. "
                    f"Current: {change['from']}, Desired: {change['to']}"
                )

        return changes

    def _get_changes(self, resource: Database) -> Dict[str, Any]:
        """
        Get the changes that would be made to a database.

        Args:
            resource: The database

        Returns:
            Dictionary of changes
        """
        existing = self.read(resource.name, resource)
        if existing is None:
            return {'action': 'create'}
        return self._get_database_changes(existing.to_database(), resource)
