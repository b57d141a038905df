"""
tests/conftest.py -- Shared test fixtures for TokenGate tests.

This module provides:
  - _make_test_stores(): creates an isolated in-memory auth DB
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient over the real app with isolated stores
  - stores: fresh (UserStore, RefreshTokenStore) pair for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are used for
the TestClient fixture because TestClient runs sync route handlers in a
thread pool. Plain :memory: DBs are per-connection and would present a blank
schema to each worker thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import:
get_settings() then generates the signing secrets instead of raising, and
password hashing uses the cheapest bcrypt cost so the suite stays fast.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: Set before any auth/core import so get_settings() picks them up.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.store import RefreshTokenStore, UserStore, create_store_engine
from auth.sweeper import RefreshTokenSweeper

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str):
    """Create an isolated named shared-memory SQLite engine and its stores.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    engine = create_store_engine(f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true")
    return engine, UserStore(engine), RefreshTokenStore(engine)


def _patch_lifespan(user_store: UserStore, refresh_store: RefreshTokenStore):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-created test stores into app.state so TestClient routes see
    isolated test DBs. The sweeper is a real one with a long interval: it is
    started and stopped like in production but never fires during a test.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.refresh_store = refresh_store
        app.state.sweeper = RefreshTokenSweeper(refresh_store, interval_seconds=99999)
        app.state.sweeper.start()
        yield
        await app.state.sweeper.stop()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[TestClient, None, None]:
    """Yield a TestClient for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers but use an isolated in-memory store per module.
    """
    engine, user_store, refresh_store = _make_test_stores(request.module.__name__.rsplit(".", 1)[-1])

    app.router.lifespan_context = _patch_lifespan(user_store, refresh_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

    engine.dispose()


@pytest.fixture
def stores() -> Generator[tuple[UserStore, RefreshTokenStore], None, None]:
    """Fresh in-memory stores for one unit test."""
    engine = create_store_engine("sqlite:///:memory:")
    yield UserStore(engine), RefreshTokenStore(engine)
    engine.dispose()
