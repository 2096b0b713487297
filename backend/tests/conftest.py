"""Pytest configuration and shared fixtures."""

import os

# Settings are read at import time; configure the test environment first.
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["REDIS_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-jwt-secret-0123456789abcdef0123456789"
os.environ["TOKEN_PEPPER"] = "test-token-pepper"
os.environ["MFA_ENCRYPTION_KEY"] = "YnVpbGRkZXNrLXRlc3QtZmVybmV0LWtleS0zMmJ5dGU="
os.environ["EMAIL_BACKEND"] = "console"
os.environ["SITE_URL"] = "https://app.build-desk.test"

from collections.abc import AsyncGenerator, Generator  # noqa: E402
from unittest.mock import patch  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from app import models  # noqa: E402,F401
from app.db.base import Base  # noqa: E402
from app.db.engine import engine  # noqa: E402
from app.db.session import SessionLocal, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.tenant import Tenant  # noqa: E402
from tests.helpers.outbox import RecordingEmailProvider  # noqa: E402
from tests.helpers.seed import create_tenant  # noqa: E402


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Fresh in-memory schema per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database dependency override."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
async def async_client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """Async client over the ASGI app, sharing the test session."""

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def outbox() -> Generator[RecordingEmailProvider, None, None]:
    """Capture outgoing email instead of printing it."""
    provider = RecordingEmailProvider()
    with patch("app.services.email.service.get_email_service", return_value=provider):
        yield provider


@pytest.fixture
def tenant(db: Session) -> Tenant:
    return create_tenant(db, name="Acme Builders", domain="acme.example")
