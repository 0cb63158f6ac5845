"""Shared pytest fixtures for testing."""

import os
from typing import Any, Optional
from uuid import uuid4

# Set test environment before any app module reads it
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["VAPI_API_KEY"] = "test-vapi-key"
os.environ["SUPABASE_URL"] = "https://auth.example.test"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["SESSION_COOKIE_SECURE"] = "false"
os.environ["ANALYTICS_TIMEZONE"] = "UTC"
os.environ.pop("CRON_SECRET", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  (registers tables on Base)
from db import Base
from models import Assistant, User, utcnow_naive
from services.vapi_client import VapiError


class FakeVapiClient:
    """In-memory stand-in for VapiClient with the same async surface."""

    def __init__(
        self,
        *,
        assistants: Optional[dict[str, dict[str, Any]]] = None,
        calls: Optional[list[dict[str, Any]]] = None,
        analytics: Optional[dict[str, Any]] = None,
        transcripts: Optional[dict[str, str]] = None,
    ) -> None:
        self.configured = True
        self.assistants = dict(assistants or {})
        self.calls = list(calls or [])
        # groupBy field -> response body, or an exception to raise
        self.analytics = dict(analytics or {})
        self.transcripts = dict(transcripts or {})

        self.list_calls_error: Optional[Exception] = None
        self.list_calls_fail_for: set[str] = set()
        self.update_error: Optional[Exception] = None

        self.analytics_queries: list[dict[str, Any]] = []
        self.list_calls_requests: list[dict[str, Any]] = []
        self.transcript_requests: list[str] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []

    async def get_assistant(self, assistant_id: str) -> Optional[dict[str, Any]]:
        return self.assistants.get(assistant_id)

    async def list_assistants(self) -> list[dict[str, Any]]:
        return list(self.assistants.values())

    async def update_assistant(self, assistant_id: str, data: dict[str, Any]) -> Any:
        if self.update_error is not None:
            raise self.update_error
        self.updates.append((assistant_id, data))
        self.assistants[assistant_id] = {**self.assistants.get(assistant_id, {}), **data}
        return self.assistants[assistant_id]

    async def list_calls(
        self,
        *,
        assistant_id: Optional[str] = None,
        limit: int = 100,
        created_at_gt: Optional[str] = None,
        created_at_lt: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        self.list_calls_requests.append(
            {
                "assistant_id": assistant_id,
                "limit": limit,
                "created_at_gt": created_at_gt,
                "created_at_lt": created_at_lt,
            }
        )
        if self.list_calls_error is not None:
            raise self.list_calls_error
        if assistant_id in self.list_calls_fail_for:
            raise VapiError("listing failed", status_code=502)
        rows = [c for c in self.calls if assistant_id is None or c.get("assistantId") == assistant_id]
        return rows[:limit]

    async def get_call_transcript(self, call_id: str) -> Optional[str]:
        self.transcript_requests.append(call_id)
        return self.transcripts.get(call_id)

    async def query_analytics(self, query: dict[str, Any]) -> Any:
        self.analytics_queries.append(query)
        group = query["groupBy"][0]
        resp = self.analytics.get(group)
        if isinstance(resp, Exception):
            raise resp
        if resp is None:
            raise VapiError("analytics unavailable", status_code=500)
        return resp


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def user(db) -> User:
    u = User(id=uuid4(), email="owner@example.com")
    db.add(u)
    db.commit()
    return u


@pytest.fixture
def make_user(db):
    def _make(email: str) -> User:
        u = User(id=uuid4(), email=email)
        db.add(u)
        db.commit()
        return u

    return _make


@pytest.fixture
def make_assistant(db):
    def _make(owner: User, vapi_id: str, name: str, *, is_active: bool = True) -> Assistant:
        now = utcnow_naive()
        row = Assistant(
            user_id=owner.id,
            vapi_assistant_id=vapi_id,
            name=name,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        db.add(row)
        db.commit()
        return row

    return _make


@pytest.fixture
def fake_vapi() -> FakeVapiClient:
    return FakeVapiClient()


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def app(db, fake_vapi):
    """App with the database and Vapi client swapped for test doubles."""
    from api.deps.db import get_db
    from api.deps.services import get_vapi_client
    from main import create_app

    application = create_app()

    def _get_db():
        yield db

    application.dependency_overrides[get_db] = _get_db
    application.dependency_overrides[get_vapi_client] = lambda: fake_vapi
    return application


@pytest.fixture
def anon_client(app) -> TestClient:
    """No user override: requests go through the session cookie."""
    return TestClient(app)


@pytest.fixture
def client(app, user) -> TestClient:
    """Requests authenticated as `user`."""
    from api.deps.current_user import get_current_user

    app.dependency_overrides[get_current_user] = lambda: user
    return TestClient(app)
