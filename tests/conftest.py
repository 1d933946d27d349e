"""
Test configuration and fixtures for Aurora Hunts.

Implements the transaction rollback pattern:
- Session-scoped engine (PostgreSQL when configured, in-memory SQLite otherwise)
- Function-scoped transactional session with automatic rollback
- TestClient with database dependency override
- Authenticated client fixtures for a participant and an organizer
"""

import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from aurora_hunts.config import settings
from aurora_hunts.database import Base, get_db
from aurora_hunts.main import app
from aurora_hunts.models import Session as UserSession, User
from tests.factories import create_session, create_user


# =============================================================================
# pytest Configuration
# =============================================================================


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: HTTP API tests")


# =============================================================================
# Database Fixtures
# =============================================================================


def get_test_database_url() -> str:
    """
    Get the test database URL.

    Priority:
    1. TEST_DATABASE_URL environment variable
    2. DATABASE_URL if it points at PostgreSQL (rollback keeps it clean)
    3. In-memory SQLite
    """
    if os.environ.get("TEST_DATABASE_URL"):
        return os.environ["TEST_DATABASE_URL"]

    main_url = os.environ.get("DATABASE_URL", "")
    if main_url and "postgresql" in main_url:
        return main_url

    return "sqlite://"


def _enable_sqlite_savepoints(engine) -> None:
    # pysqlite defers BEGIN on its own; take over so SAVEPOINT works
    @event.listens_for(engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest.fixture(scope="session")
def test_engine():
    """
    Create test database engine once per session.

    Tables are created at the start and dropped at the end.
    """
    database_url = get_test_database_url()

    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_engine(database_url)

    Base.metadata.create_all(engine)

    yield engine

    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(test_engine) -> Generator[Session, None, None]:
    """
    Provide a transactional database session that rolls back after each test.

    Commits made by the code under test only release a SAVEPOINT, so routers
    and workers can commit and roll back freely while the outer transaction
    still discards everything when the test ends.
    """
    connection = test_engine.connect()
    transaction = connection.begin()

    TestingSessionLocal = sessionmaker(
        bind=connection,
        autoflush=False,
        join_transaction_mode="create_savepoint",
    )
    session = TestingSessionLocal()

    yield session

    session.close()
    transaction.rollback()
    connection.close()


# =============================================================================
# TestClient Fixtures
# =============================================================================


def _make_client(db: Session, token: str | None = None) -> TestClient:
    def override_get_db():
        try:
            yield db
        finally:
            pass  # Don't close - managed by db fixture

    app.dependency_overrides[get_db] = override_get_db

    test_client = TestClient(app)
    if token:
        test_client.cookies.set(settings.session_cookie_name, token)
    # Set default Referer so CSRF Origin middleware allows requests
    test_client.headers["referer"] = "http://testserver/"
    return test_client


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """Anonymous TestClient with the database dependency overridden."""
    with _make_client(db) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# =============================================================================
# Authentication Fixtures
# =============================================================================


@pytest.fixture
def test_user(db: Session) -> User:
    """A regular user who joins hunts."""
    return create_user(db, email="hunter@example.com", name="Hunter")


@pytest.fixture
def organizer(db: Session) -> User:
    """A user who organizes hunts."""
    return create_user(db, email="organizer@example.com", name="Organizer")


@pytest.fixture
def test_session(db: Session, test_user: User) -> UserSession:
    return create_session(db, test_user)


@pytest.fixture
def organizer_session(db: Session, organizer: User) -> UserSession:
    return create_session(db, organizer)


@pytest.fixture
def auth_client(db: Session, test_session: UserSession) -> Generator[TestClient, None, None]:
    """
    Authenticated TestClient for the regular user.

    Setup data is committed first so a rolled-back request cannot discard it.
    """
    db.commit()
    with _make_client(db, test_session.token) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def organizer_client(
    db: Session, organizer_session: UserSession
) -> Generator[TestClient, None, None]:
    """Authenticated TestClient for the organizer."""
    db.commit()
    with _make_client(db, organizer_session.token) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def expired_session(db: Session, test_user: User) -> UserSession:
    """A session whose expiry has passed."""
    return create_session(
        db,
        test_user,
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        token=secrets.token_urlsafe(32),
    )
