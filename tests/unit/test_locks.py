"""
Unit tests for RoleLockManager.

Checks the lock -> grant -> body -> revoke -> release protocol and which error
wins when cleanup fails.
"""


import psycopg
import pytest

from pgkit.errors import LockAcquisitionError, StatementExecutionError
from pgkit.locks import RoleLockManager
from tests.fixtures import FakeClient


class TestAcquireRoleLock:
    """Tests for acquire_role_lock()."""

    def test_lock_taken_inside_dedicated_transaction(self, fake_client: FakeClient) -> None:
        manager = RoleLockManager(fake_client)

        with manager.acquire_role_lock("provisioner"):
            pass

        assert fake_client.events == ["BEGIN postgres", "LOCK provisioner", "ROLLBACK"]

    def test_lock_transaction_targets_database(self, fake_client: FakeClient) -> None:
        with RoleLockManager(fake_client).acquire_role_lock("provisioner", database="mydb"):
            pass

        assert fake_client.events[0] == "BEGIN mydb"

    def test_lock_failure_raises(self, fake_client: FakeClient) -> None:
        fake_client.failures["pg_advisory_xact_lock"] = psycopg.Error("lock timeout")

        with pytest.raises(LockAcquisitionError) as exc_info:
            with RoleLockManager(fake_client).acquire_role_lock("provisioner"):
                pytest.fail("body must not run without the lock")

        assert exc_info.value.role == "provisioner"
        assert "ROLLBACK" in fake_client.events


class TestTemporaryMembership:
    """Tests for grant/revoke of temporary membership."""

    def test_grant_when_not_member(self, fake_client: FakeClient) -> None:
        manager = RoleLockManager(fake_client)

        assert manager.grant_temporary_membership("provisioner", "alice") is True
        assert ("provisioner", "alice") in fake_client.memberships
        assert fake_client.statements == ['GRANT "alice" TO "provisioner"']

    def test_no_grant_when_already_member(self) -> None:
        client = FakeClient(memberships={("provisioner", "alice")})

        assert RoleLockManager(client).grant_temporary_membership("provisioner", "alice") is False
        assert client.statements == []

    def test_no_grant_for_own_role(self, fake_client: FakeClient) -> None:
        assert RoleLockManager(fake_client).grant_temporary_membership("provisioner", "provisioner") is False
        assert fake_client.statements == []

    def test_revoke_is_idempotent(self, fake_client: FakeClient) -> None:
        manager = RoleLockManager(fake_client)

        manager.revoke_temporary_membership("provisioner", "alice")

        assert fake_client.statements == []


class TestElevate:
    """Tests for elevate()."""

    def test_grant_and_revoke_once(self, fake_client: FakeClient) -> None:
        """Membership exists only inside the block, strictly inside the lock."""
        manager = RoleLockManager(fake_client)

        with manager.elevate("provisioner", "alice"):
            assert ("provisioner", "alice") in fake_client.memberships

        assert ("provisioner", "alice") not in fake_client.memberships
        assert fake_client.events == [
            "BEGIN postgres",
            "LOCK provisioner",
            'GRANT "alice" TO "provisioner"',
            'REVOKE "alice" FROM "provisioner"',
            "ROLLBACK",
        ]

    def test_existing_membership_is_kept(self) -> None:
        """A membership held before elevation is not revoked afterwards."""
        client = FakeClient(memberships={("provisioner", "alice")})

        with RoleLockManager(client).elevate("provisioner", "alice"):
            pass

        assert ("provisioner", "alice") in client.memberships
        assert client.statements == []

    def test_revoke_runs_when_body_fails(self, fake_client: FakeClient) -> None:
        with pytest.raises(ValueError):
            with RoleLockManager(fake_client).elevate("provisioner", "alice"):
                raise ValueError("body failed")

        assert ("provisioner", "alice") not in fake_client.memberships
        assert fake_client.statements_matching("REVOKE") == ['REVOKE "alice" FROM "provisioner"']

    def test_body_error_wins_over_revoke_error(self, fake_client: FakeClient) -> None:
        """A cleanup failure never masks the error that caused it."""
        fake_client.failures["REVOKE"] = psycopg.Error("revoke failed")

        with pytest.raises(ValueError, match="body failed"):
            with RoleLockManager(fake_client).elevate("provisioner", "alice"):
                raise ValueError("body failed")

    def test_revoke_error_raised_when_body_succeeds(self, fake_client: FakeClient) -> None:
        fake_client.failures["REVOKE"] = psycopg.Error("revoke failed")

        with pytest.raises(StatementExecutionError, match="revoke failed"):
            with RoleLockManager(fake_client).elevate("provisioner", "alice"):
                pass

    def test_transaction_yielded_to_body(self, fake_client: FakeClient) -> None:
        with RoleLockManager(fake_client).elevate("provisioner", "alice", database="mydb") as txn:
            assert txn.database == "mydb"
            txn.commit()

        assert fake_client.index_of("COMMIT") < fake_client.index_of("REVOKE")
        assert "ROLLBACK" not in fake_client.events
