"""
Shared test fixtures and helpers for the Pinion test suite.
"""

from types import SimpleNamespace

import pytest

from pinion import Container, ContainerConfig, StaticMetadataProvider


# ============================================================================
# Sample services
# ============================================================================


class Database:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


class UserRepository:
    def __init__(self, db):
        self.db = db


class UserService:
    def __init__(self, repo):
        self.repo = repo


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def services():
    """The sample service classes."""
    return SimpleNamespace(Database=Database, UserRepository=UserRepository, UserService=UserService)


@pytest.fixture
def metadata():
    """Metadata table with the sample services declared."""
    table = StaticMetadataProvider()
    table.declare(UserRepository, Database)
    table.declare(UserService, UserRepository)
    return table


@pytest.fixture
def container(metadata):
    """Fresh container using the sample metadata."""
    return Container(metadata)


@pytest.fixture
def make_container(metadata):
    """Factory for containers with custom config."""

    def _make(**options):
        return Container(metadata, config=ContainerConfig(**options))

    return _make
