"""
Root test configuration and fixtures.

Provides:
- db_engine / session_factory / db_session: in-memory SQLite per test
- app / client: the full application wired to the test database
- token helpers for admin and non-admin actors
- make_record: factory for audit records with explicit timestamps
"""

import os
from datetime import datetime, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment
os.environ.setdefault("ENV", "test")

from adminlog.app import create_app
from adminlog.auth.tokens import Actor, TokenService
from adminlog.config.settings import AppSettings
from adminlog.db_base import Base
from adminlog.models.audit_record import AuditRecord, Severity
import adminlog.models  # noqa: F401 - registers all tables

TEST_JWT_SECRET = "test-secret-do-not-use"

ADMIN = Actor(id="admin-1", name="Ada Admin", email="ada@example.com", role="admin")
OTHER_ADMIN = Actor(id="admin-2", name="Bob Boss", email="bob@example.com", role="admin")
CUSTOMER = Actor(id="user-1", name="Cara Customer", email="cara@example.com", role="user")
RETAILER = Actor(id="retailer-1", name="Rita Retail", email="rita@example.com", role="retailer")


@pytest.fixture
def db_engine():
    """SQLite in-memory engine shared by every session in one test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(env="test", jwt_secret=TEST_JWT_SECRET)


@pytest.fixture
def token_service(settings) -> TokenService:
    return TokenService.from_settings(settings)


@pytest.fixture
def auth_headers(token_service):
    """Factory: Authorization header for an actor."""
    def _headers(actor: Actor) -> dict:
        return {"Authorization": f"Bearer {token_service.issue(actor)}"}
    return _headers


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers(ADMIN)


@pytest.fixture
def user_headers(auth_headers):
    return auth_headers(CUSTOMER)


@pytest.fixture
def app(settings, session_factory):
    return create_app(settings=settings, session_factory=session_factory)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    # Context manager: one event loop for HTTP and WebSocket sessions
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def make_record(db_session):
    """
    Factory fixture that inserts an AuditRecord and returns it.

    Usage:
        record = make_record(timestamp=datetime(2024, 1, 5, tzinfo=timezone.utc), action="CREATE")
    """
    def _make(
        timestamp: datetime = None,
        action: str = "UPDATE",
        entity: str = "Products",
        entity_id: str = None,
        severity: Severity = Severity.INFO,
        actor: Actor = ADMIN,
        details: dict = None,
        ip_address: str = "10.0.0.1",
    ) -> AuditRecord:
        record = AuditRecord(
            actor_id=actor.id if actor else None,
            actor_name=actor.name if actor else None,
            actor_email=actor.email if actor else None,
            actor_role=actor.role if actor else None,
            action=action,
            entity=entity,
            entity_id=entity_id,
            severity=severity.value,
            details=details,
            ip_address=ip_address,
            timestamp=timestamp or datetime.now(timezone.utc),
        )
        db_session.add(record)
        db_session.commit()
        db_session.refresh(record)
        return record
    return _make


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "security: mark test as security-focused")
    config.addinivalue_line("markers", "slow: mark test as slow-running")
