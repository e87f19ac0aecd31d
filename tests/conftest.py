"""
Pytest configuration and shared fixtures.

Test env vars are set here, before any messenger import, and the settings
cache is cleared so they take effect.
"""

import os
import tempfile

import pytest

os.environ.setdefault("AUTH_SECRET", "test-auth-secret")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_messenger.db")
os.environ.setdefault("EXPORT_DIR", os.path.join(tempfile.gettempdir(), "messenger-test-exports"))
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("AI_STREAM_BACKOFF_SECONDS", "0")
os.environ.setdefault("AGENT_POLL_INTERVAL_SECONDS", "0")

# Clear settings cache before any app imports to ensure test env vars are used
from messenger.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

from messenger.main import app
from messenger.storage import Base, SessionLocal, engine


@pytest.fixture(scope="function")
def client():
    """Create test client with fresh database for each test."""
    Base.metadata.create_all(bind=engine)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    # Cleanup - drop all tables after test
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db():
    """Bare session on a fresh schema, for repository-level tests."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def sign_in(client, phone: str, name: str = None) -> dict:
    """Run the code flow for ``phone``; returns the /auth/verify JSON."""
    code = client.post("/auth/code", json={"phone": phone}).json()["code"]
    body = {"phone": phone, "code": code}
    if name is not None:
        body["name"] = name
    response = client.post("/auth/verify", json=body)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def login(client):
    """Factory: login(phone, name) -> (user dict, Authorization headers)."""
    def _login(phone: str, name: str = None):
        data = sign_in(client, phone, name)
        return data["user"], {"Authorization": f"Bearer {data['token']}"}
    return _login
