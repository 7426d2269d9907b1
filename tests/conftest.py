"""
tests/conftest.py -- Shared test fixtures for bsa-bridge.

This module provides:
  - make_settings(): Settings with a fixed SECRET_KEY and SYNC_API_KEY
  - user_store / course_store / catalog: isolated in-memory stores for unit tests
  - make_legacy_hash: bcrypt hashes shaped like the app backend's exports
  - api: TestClient over the real app with a patched lifespan, an admin JWT
    and a mocked outbound HTTP session

Design: API tests use named shared-memory SQLite URIs (not plain :memory:)
because TestClient runs sync route handlers and background tasks in a thread
pool. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.
Unit tests run in one thread, so plain :memory: is enough there.

The DEBUG env var must be set before api.main is imported so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from unittest.mock import MagicMock, patch

# CRITICAL: Set DEBUG before any api/core import.
os.environ.setdefault("DEBUG", "true")

import bcrypt
import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import ROLE_ADMINISTRATOR, User
from auth.pipeline import build_login_pipeline
from auth.store import UserStore
from auth.tokens import create_access_token, hash_password
from core.config import Settings
from lms.store import CourseStore, LmsCatalog, build_catalog
from sync.outbound import OutboundSyncStage
from sync.registration import RegistrationPipeline

TEST_SECRET_KEY = "test-secret-key-0123456789abcdef0123456789"
TEST_SYNC_KEY = "test-sync-key-abc123"
TEST_APP_URL = "https://app.test"

# Rate limits are exercised in production only; tests hit routes repeatedly.
limiter.enabled = False


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "secret_key": TEST_SECRET_KEY,
        "sync_api_key": TEST_SYNC_KEY,
        "app_url": TEST_APP_URL,
        "sync_timeout_seconds": 5,
        "database_url": "sqlite:///:memory:",
    }
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Unit-test stores
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def settings_factory():
    return make_settings


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def course_store() -> Generator[CourseStore, None, None]:
    store = CourseStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def catalog(course_store: CourseStore, user_store: UserStore) -> LmsCatalog:
    return LmsCatalog(course_store, user_store)


@pytest.fixture
def make_legacy_hash():
    """Return a factory for app-style bcrypt hashes ($2b$ by default, $2y$ on request)."""

    def _make(password: str, prefix: str = "$2b$") -> str:
        hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")
        return prefix + hashed[4:]

    return _make


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    token: str
    admin_id: int
    settings: Settings
    user_store: UserStore
    course_store: CourseStore
    session: MagicMock

    @property
    def admin_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    @property
    def sync_headers(self) -> dict[str, str]:
        return {"X-API-Key": TEST_SYNC_KEY}


def _patch_lifespan(settings: Settings, user_store: UserStore, course_store: CourseStore):
    """Return a lifespan that wires test stores into app.state, bypassing real startup."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = user_store
        app.state.course_store = course_store
        app.state.catalog = build_catalog(settings, course_store, user_store)
        app.state.login_pipeline = build_login_pipeline(user_store)
        app.state.registration = RegistrationPipeline([OutboundSyncStage(user_store, settings)])
        yield

    return test_lifespan


@pytest.fixture
def api() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    Each test gets its own database, so tests never see each other's users.
    The outbound session is replaced with a MagicMock answering 200; tests
    that care about outbound behavior reconfigure session.post.
    """
    db_url = f"sqlite:///file:test_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    settings = make_settings(database_url=db_url)
    user_store = UserStore(db_url)
    course_store = CourseStore(db_url)

    admin_id = user_store.create_user(
        User(
            login="testadmin",
            email="admin@example.org",
            roles=[ROLE_ADMINISTRATOR],
            hashed_password=hash_password("adminpass123"),
        )
    )
    token = create_access_token(user_store.get_by_id(admin_id), TEST_SECRET_KEY, 3600)

    app.router.lifespan_context = _patch_lifespan(settings, user_store, course_store)

    with patch("sync.outbound._session") as session:
        session.post.return_value = MagicMock(status_code=200, text="ok")
        with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
            yield ApiContext(
                client=client,
                token=token,
                admin_id=admin_id,
                settings=settings,
                user_store=user_store,
                course_store=course_store,
                session=session,
            )

    course_store.close()
    user_store.close()
