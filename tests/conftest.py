"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine and a session that rolls back
after each test, so tests do not affect each other.

Sample organizations come from tests/sample_data.py.
"""
from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from bidportal.authz.hierarchy import OrganizationHierarchy
from bidportal.authz.models import Organization
from bidportal.authz.policy import ScopePolicy, load_scope_policy
from tests.sample_data import sample_organizations


TEST_DB_URL = "sqlite:///:memory:"


@pytest.fixture(scope="session")
def policy() -> ScopePolicy:
    """The scope policy shipped with the package."""
    return load_scope_policy()


@pytest.fixture
def organizations() -> list[Organization]:
    return sample_organizations()


@pytest.fixture
def hierarchy(organizations) -> OrganizationHierarchy:
    return OrganizationHierarchy(organizations)


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from bidportal.db.base import Base
    import bidportal.models.organization  # noqa: F401
    import bidportal.models.security  # noqa: F401

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.

    The transaction is rolled back so the next test gets a clean state.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()
