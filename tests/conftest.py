"""
Shared pytest fixtures for pgkit tests.

Provides test resource naming and the in-memory client used by unit tests.
"""

import uuid
from datetime import datetime

import pytest

from tests.fixtures import FakeClient


def generate_test_prefix() -> str:
    """
    Generate a unique prefix for test resources.

    Format: pgkit_test_{timestamp}_{short_uuid}
    Example: pgkit_test_20240127_143052_abc123
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid.uuid4().hex[:6]
    return f"pgkit_test_{timestamp}_{short_uuid}"


@pytest.fixture(scope="session")
def test_prefix() -> str:
    """
    Session-scoped unique prefix for test resources.

    Use this to create database names that won't collide with
    existing databases or parallel test runs.
    """
    return generate_test_prefix()


@pytest.fixture
def fake_client() -> FakeClient:
    """FakeClient for a PostgreSQL 15 server, connected as `provisioner`."""
    return FakeClient()


@pytest.fixture
def legacy_client() -> FakeClient:
    """FakeClient for PostgreSQL 9.4: no ALLOW_CONNECTIONS, IS_TEMPLATE or FORCE."""
    return FakeClient(server_version=90400)
