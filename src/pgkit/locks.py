"""
Role-scoped advisory locks and temporary role membership.

A non-superuser connection can only create or re-own a database for another
role if it is a member of that role. The lock manager makes the connecting
role a temporary member, strictly inside an advisory lock keyed by the
connecting role, so concurrent reconcilers sharing the same principal never
race on the same grant.

Protocol: lock -> grant -> privileged statements -> revoke -> release.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

import psycopg

from pgkit import dialect
from pgkit.connection import LockTransaction, PostgresClient, execute_statement, fetch_row
from pgkit.errors import LockAcquisitionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleGrant:
    """A temporary membership of `member` in `group`."""

    member: str
    group: str
    granted: bool  # False when the membership already existed


class RoleLockManager:
    """
    Serializes privileged operations per role.

    Requires a client exposing `execute`, `query_row`, `render` and a
    `transaction()` context manager (see PostgresClient).
    """

    def __init__(self, client: PostgresClient):
        self.client = client

    @contextmanager
    def acquire_role_lock(self, role: str, database: Optional[str] = None) -> Iterator[LockTransaction]:
        """
        Open a dedicated transaction and take the advisory lock for a role.

        The transaction rolls back on exit unless the caller commits it;
        either way the lock is released.

        Args:
            role: Role whose lock serializes the operation
            database: Database the transaction connects to

        Raises:
            LockAcquisitionError: If the lock statement fails
        """
        with self.client.transaction(database=database) as txn:
            try:
                txn.execute(dialect.LOCK_ROLE, (role,))
            except psycopg.Error as e:
                raise LockAcquisitionError(role, e) from e
            logger.debug(f"Acquired advisory lock for role {role}")
            yield txn
        logger.debug(f"Released advisory lock for role {role}")

    def is_member(self, member: str, group: str) -> bool:
        row = fetch_row(
            self.client,
            dialect.SELECT_ROLE_MEMBERSHIP,
            f"checking membership of {member} in {group}",
            (group, member),
        )
        return row is not None

    def grant_temporary_membership(self, member: str, group: str) -> bool:
        """
        Make `member` a member of `group` unless it already is.

        Returns:
            True if the grant was made now and a revoke is owed
        """
        if member == group or self.is_member(member, group):
            return False

        logger.info(f"Temporarily granting role {group} to {member}")
        execute_statement(self.client, dialect.grant_role(group, member), f"granting role {group} to {member}")
        return True

    def revoke_temporary_membership(self, member: str, group: str) -> None:
        """Remove `member` from `group`; a no-op when it is not a member."""
        if member == group or not self.is_member(member, group):
            return

        logger.info(f"Revoking role {group} from {member}")
        execute_statement(self.client, dialect.revoke_role(group, member), f"revoking role {group} from {member}")

    @contextmanager
    def elevate(self, member: str, group: str, database: Optional[str] = None) -> Iterator[LockTransaction]:
        """
        Run a block with `member` temporarily holding `group`'s privileges.

        The lock is keyed by `member`. The temporary grant is revoked on every
        exit path, before the lock is released. If the block fails, its error
        propagates and a revoke failure is only logged; if the block
        succeeds, a revoke failure is raised.

        Example:
            with locks.elevate(client.current_user, "app_owner") as txn:
                execute_statement(client, dialect.alter_owner("app", "app_owner"), "updating OWNER")
        """
        with self.acquire_role_lock(member, database=database) as txn:
            with self.temporary_membership(member, group):
                yield txn

    @contextmanager
    def temporary_membership(self, member: str, group: str) -> Iterator[RoleGrant]:
        """
        Grant `member` membership in `group` for the duration of the block.

        Callers must already hold `member`'s role lock. Used directly when
        `group` can only be resolved after the lock is taken.
        """
        grant = RoleGrant(
            member=member,
            group=group,
            granted=self.grant_temporary_membership(member, group),
        )
        try:
            yield grant
        except BaseException:
            self._release_grant(grant, primary_failed=True)
            raise
        self._release_grant(grant, primary_failed=False)

    def _release_grant(self, grant: RoleGrant, primary_failed: bool) -> None:
        if not grant.granted:
            return
        try:
            self.revoke_temporary_membership(grant.member, grant.group)
        except Exception as e:
            if not primary_failed:
                raise
            logger.error(
                f"Failed to revoke temporary membership of {grant.member} in {grant.group} "
                f"after an earlier error: {e}"
            )
