"""
Pytest fixtures for the test suite.

Data-layer tests use an in-memory SQLite engine and a session that rolls back
after each test, so tests do not affect each other. `StaticPool` keeps the
single in-memory connection usable from the TestClient's worker threads.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from access_layer.core.context import Identity, RequestMetadata, SecurityContext
from access_layer.core.policy import AccessPolicyEngine, load_policy_config


TEST_DB_URL = "sqlite:///:memory:"
POLICY_CONFIG_PATH = Path(__file__).resolve().parents[1] / "config" / "policy_config.yaml"


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    return create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    from access_layer.db.base import Base
    import access_layer.models.content  # noqa: F401  (register tables)
    import access_layer.models.security  # noqa: F401

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


@pytest.fixture
def seeded(db_session):
    """
    Demo data from init_db.

    Users: 1 alice (admin, acme), 2 mona (manager, team 1), 3 vic (viewer),
    4 gina (grants_only: documents 1 and 3), 5 ed (department 1, reports to mona),
    6 bob (admin, globex). Documents 1-4 belong to acme, 5 to globex.
    """
    from access_layer.db.init_db import seed_demo_data

    seed_demo_data(db_session)
    return db_session


@pytest.fixture
def policy_config():
    return load_policy_config(POLICY_CONFIG_PATH)


@pytest.fixture
def policy(policy_config):
    return AccessPolicyEngine(policy_config)


def make_context(
    user_id: str | None = "1",
    tenant_id: str | None = "ws-acme",
    roles: tuple[str, ...] = (),
    **kwargs,
) -> SecurityContext:
    return SecurityContext(
        identity=Identity(id=user_id) if user_id is not None else None,
        tenant_id=tenant_id,
        roles=frozenset(roles),
        metadata=RequestMetadata(request_id="req-test", timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc)),
        **kwargs,
    )
