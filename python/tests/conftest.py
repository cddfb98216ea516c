"""Pytest configuration and fixtures for Agora tests.

Test isolation strategy:
- Every test gets its own in-memory SQLite database (StaticPool, one shared
  connection) with the schema created from the ORM models
- Factories commit their rows; assertions read through fresh sessions
- The app under test shares the test's session factory, so rows seeded by a
  test are visible to the request handlers and vice versa
- Auth tests use the MockJwtVerifier and tokens minted by tests.helpers
"""

import os

# Settings are validated on first use; provide a complete test environment
# before any agora module reads it.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AGORA_ENV", "test")
os.environ.setdefault(
    "SUPABASE_JWKS_URL", "http://localhost:54321/auth/v1/.well-known/jwks.json"
)
os.environ.setdefault("SUPABASE_ISSUER", "test-issuer")
os.environ.setdefault("SUPABASE_AUDIENCES", "test-audience")

from collections.abc import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import Engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402

from agora.app import create_app  # noqa: E402
from agora.auth.identity_admin import FakeIdentityAdmin  # noqa: E402
from agora.config import clear_settings_cache  # noqa: E402
from agora.db.engine import create_db_engine  # noqa: E402
from agora.db.handles import DataHandle, HandleRole, open_handle  # noqa: E402
from agora.db.models import Base  # noqa: E402
from agora.db.session import create_session_factory  # noqa: E402
from agora.services.feed import FallbackFeedSource  # noqa: E402
from agora.services.rate_limit import InMemoryRateCounter  # noqa: E402
from tests.support.test_verifier import MockJwtVerifier  # noqa: E402


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database with the full schema."""
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker[Session]:
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    """Session for seeding rows with the factories."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def handle_for(session_factory: sessionmaker[Session]):
    """Open service-level handles the way request dependencies do.

    Usage:
        handle = handle_for(alice.id)   # authenticated caller
        handle = handle_for(None)       # anonymous
    """
    opened: list[DataHandle] = []

    def _open(caller_id=None, role: HandleRole | None = None) -> DataHandle:
        if role is None:
            role = HandleRole.anon if caller_id is None else HandleRole.authenticated
        handle = open_handle(session_factory, role, caller_id)
        opened.append(handle)
        return handle

    yield _open

    for handle in opened:
        handle.db.close()


@pytest.fixture
def test_verifier() -> MockJwtVerifier:
    """Provide a test token verifier."""
    return MockJwtVerifier()


@pytest.fixture
def identity_admin() -> FakeIdentityAdmin:
    return FakeIdentityAdmin()


@pytest.fixture
def app(
    session_factory: sessionmaker[Session],
    test_verifier: MockJwtVerifier,
    identity_admin: FakeIdentityAdmin,
) -> FastAPI:
    """App wired to the test database, the mock verifier, and the ORM feed source."""
    return create_app(
        token_verifier=test_verifier,
        session_factory=session_factory,
        feed_source=FallbackFeedSource(),
        rate_counter=InMemoryRateCounter(),
        identity_admin=identity_admin,
    )


@pytest.fixture
def client(app: FastAPI) -> Generator[TestClient, None, None]:
    """Test client with auth, rate-limit, and request-id middleware.

    Use auth_headers() to authenticate requests.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
