"""
tests/conftest.py -- Shared test fixtures for CarValue tests.

This module provides:
  - _make_test_stores(): creates isolated in-memory DBs for users + reports
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - stores: (user_store, report_store) pair for unit tests
  - client: TestClient over the real app with fresh stores per test
  - signed_in_client / admin_client: the same, already signed in

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. A uuid in the name keeps every test's database separate.

DEBUG must be set before any core/auth/api import so get_settings()
auto-generates SECRET_KEY instead of raising ValueError. RATE_LIMIT_ENABLED
is switched off because the suite signs in far more than 10 times a minute.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any project import (get_settings() is lru_cached).
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.store import UserStore
from reports.store import ReportStore

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"
USER_EMAIL = "user@example.com"
USER_PASSWORD = "userpass123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores() -> tuple[UserStore, ReportStore]:
    """Create a fresh named shared-memory SQLite database for one test."""
    url = f"sqlite:///file:carvalue_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    user_store = UserStore(db_url=url)
    report_store = ReportStore(db_url=url, users=user_store)
    return user_store, report_store


def _patch_lifespan(user_store: UserStore, report_store: ReportStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.report_store = report_store
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stores() -> Generator[tuple[UserStore, ReportStore], None, None]:
    user_store, report_store = _make_test_stores()
    yield user_store, report_store
    report_store.close()
    user_store.close()


@pytest.fixture
def user_store(stores) -> UserStore:
    return stores[0]


@pytest.fixture
def client(stores) -> Generator[TestClient, None, None]:
    """TestClient over the real app; cookies persist across calls like a browser."""
    user_store, report_store = stores
    app.router.lifespan_context = _patch_lifespan(user_store, report_store)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def signed_in_client(client: TestClient) -> TestClient:
    """A client whose session belongs to a freshly signed-up regular user."""
    resp = client.post("/api/v1/auth/signup", json={"email": USER_EMAIL, "password": USER_PASSWORD})
    assert resp.status_code == 201, resp.text
    return client


@pytest.fixture
def admin_client(client: TestClient, user_store: UserStore) -> TestClient:
    """A client signed in as an admin.

    Signup never grants admin, so the flag is set directly in the store and
    the client then signs in normally.
    """
    resp = client.post("/api/v1/auth/signup", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    assert resp.status_code == 201, resp.text
    user_store.update(resp.json()["id"], admin=True)
    return client
