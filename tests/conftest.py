"""Pytest configuration and fixtures."""

import os
from datetime import datetime

# Set test environment variables BEFORE importing app modules
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-testing-only-32chars")
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("TOKEN_REVOCATION_BACKEND", "memory")

# Disable rate limiting for tests by monkey-patching BEFORE imports
from slowapi import Limiter
from slowapi.util import get_remote_address

# Create disabled limiters
_disabled_limiter = Limiter(key_func=get_remote_address, enabled=False)

# Patch the rate_limit module before it's imported elsewhere
import app.core.rate_limit as rate_limit_module
rate_limit_module.limiter = _disabled_limiter
rate_limit_module.public_limiter = _disabled_limiter

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.clock import FrozenClock, get_clock
from app.core.config import Settings, settings
from app.core.database import Base
from app.core.token_store import InMemoryTokenRevocationStore, set_token_store
from app.api.deps import get_db
from main import app

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

FROZEN_START = datetime(2026, 3, 2, 9, 0, 0)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database session for each test."""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def clock():
    """Frozen UTC clock; tests move it with ``clock.advance(...)``."""
    return FrozenClock(FROZEN_START)


@pytest.fixture
def test_settings():
    """Settings copy whose thresholds a test may change freely."""
    return Settings(**settings.model_dump())


@pytest.fixture
def token_store():
    """Fresh process-wide revocation store for each test."""
    store = InMemoryTokenRevocationStore()
    set_token_store(store)
    yield store
    set_token_store(None)


@pytest.fixture(scope="function")
def client(db_session, clock, token_store):
    """Create a test client with database and clock overrides."""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def test_user_data():
    """Sample registration payload."""
    return {
        "email": "admin@example.com",
        "password": "Passw0rd!",
        "confirm_password": "Passw0rd!",
        "full_name": "Test Admin",
        "employee_code": "EMP001",
        "role": "Administrator",
    }


@pytest.fixture
def registered_user(client, test_user_data):
    """Register the sample user and return the response body."""
    response = client.post("/api/auth/register", json=test_user_data)
    assert response.status_code == 201, response.text
    return response.json()


@pytest.fixture
def auth_headers(registered_user):
    return {"Authorization": f"Bearer {registered_user['token']}"}


@pytest.fixture
def register_user(client):
    """Factory: register another user and return the response body."""

    def _register(email, role="Employee", password="Passw0rd!", employee_code=None):
        response = client.post(
            "/api/auth/register",
            json={
                "email": email,
                "password": password,
                "confirm_password": password,
                "full_name": email.split("@")[0].title(),
                "employee_code": employee_code,
                "role": role,
            },
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _register
