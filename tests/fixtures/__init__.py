"""Test fixtures for pgkit."""

from .fake_client import FakeClient, FakeDatabase
from .model_factories import (
    make_database,
    make_database_state,
    make_fake_database,
    make_feature_set,
)

__all__ = [
    "FakeClient",
    "FakeDatabase",
    "make_database",
    "make_database_state",
    "make_fake_database",
    "make_feature_set",
]
