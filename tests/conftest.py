import os
from typing import Generator

# Override settings for tests before importing app modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_ACCESS_SECRET"] = "test-access-secret-for-testing-only"
os.environ["JWT_REFRESH_SECRET"] = "test-refresh-secret-for-testing-only"
os.environ["LOGIN_NOTIFICATIONS_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "true"
os.environ["MAX_SESSIONS"] = "5"

import fakeredis
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.cache import get_redis
from app.main import app
from app.models.database import Base, get_db
from app.models.user import User
from app.services.auth_service import AuthService
from app.services.passwords import hash_password
from app.services.rate_limiter import RateLimiter
from app.services.session_registry import SessionRegistry

TEST_PASSWORD = "Passw0rd!"

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def fake_redis() -> fakeredis.FakeRedis:
    """A fresh in-memory Redis per test."""
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture(scope="function")
def client(db: Session, fake_redis) -> Generator[TestClient, None, None]:
    """Create a test client with database and Redis overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = lambda: fake_redis
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def registry(fake_redis) -> SessionRegistry:
    return SessionRegistry(
        fake_redis,
        session_ttl_seconds=7 * 24 * 3600,
        remember_me_ttl_seconds=30 * 24 * 3600,
    )


@pytest.fixture
def rate_limiter(fake_redis) -> RateLimiter:
    return RateLimiter(fake_redis)


@pytest.fixture
def service(db: Session, registry: SessionRegistry, rate_limiter: RateLimiter) -> AuthService:
    return AuthService(db, registry, rate_limiter)


def _make_user(db: Session, email: str, **overrides) -> User:
    fields = {
        "email": email,
        "password_hash": hash_password(TEST_PASSWORD),
        "first_name": "Test",
        "last_name": "User",
        "is_verified": True,
        "is_active": True,
        "two_factor_enabled": False,
        "failed_login_attempts": 0,
    }
    fields.update(overrides)
    user = User(**fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def test_user(db: Session) -> User:
    """Create a verified test user."""
    return _make_user(db, "test@example.com")


@pytest.fixture
def unverified_user(db: Session) -> User:
    return _make_user(db, "unverified@example.com", is_verified=False)


@pytest.fixture
def make_user(db: Session):
    def factory(email: str, **overrides) -> User:
        return _make_user(db, email, **overrides)

    return factory


@pytest.fixture
def login_tokens(client: TestClient, test_user: User) -> dict:
    """Log the test user in and return the token pair."""
    response = client.post(
        "/api/auth/login",
        json={"email": "test@example.com", "password": TEST_PASSWORD},
    )
    assert response.status_code == 200
    return response.json()["tokens"]


@pytest.fixture
def auth_headers(login_tokens: dict) -> dict[str, str]:
    """Get auth headers with the access token."""
    return {"Authorization": f"Bearer {login_tokens['access_token']}"}
