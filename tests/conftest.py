"""
tests/conftest.py -- Shared fixtures for LunaTransfer tests.

This module provides:
  - engine: an AuthEngine rooted in a fresh tmp_path (data + storage dirs)
  - people: alice/bob/carol (role user) and root (role admin) in that engine
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Design: every engine gets its own directory, so tests never share JSON
collections and can run in any order.

The DEBUG env var must be set before any auth/core import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path

# CRITICAL: Set DEBUG before any auth/core import.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from auth.engine import AuthEngine

TEST_SECRET = "test-secret-key-for-lunatransfer-0123456789"
PASSWORD = "Passw0rd123"


def make_engine(root: Path, **kwargs) -> AuthEngine:
    return AuthEngine(
        data_dir=root / "data",
        storage_dir=root / "storage",
        secret_key=TEST_SECRET,
        **kwargs,
    )


@pytest.fixture
def engine(tmp_path: Path) -> AuthEngine:
    return make_engine(tmp_path)


@pytest.fixture
def engine_factory():
    """Build further engines over a given root (e.g. to reload what another engine wrote)."""
    return make_engine


@pytest.fixture
def people(engine: AuthEngine) -> dict[str, str]:
    """Create alice, bob, carol (user) and root (admin). Returns username -> API key."""
    keys = {}
    for name, role in (("alice", "user"), ("bob", "user"), ("carol", "user"), ("root", "admin")):
        _, keys[name] = engine.users.create_user(name, PASSWORD, f"{name}@example.com", role)
    return keys


def _patch_lifespan(engine: AuthEngine):
    """Return a lifespan that installs a pre-built engine instead of the real one."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = engine
        yield

    return test_lifespan


@pytest.fixture
def api_client(tmp_path: Path) -> Generator[tuple[TestClient, AuthEngine], None, None]:
    """Yield (client, engine) for API integration tests.

    The TestClient drives the real app and route handlers; only the engine
    is swapped for one rooted in tmp_path. The login limiter is reset so
    per-IP counters from earlier tests do not leak in.
    """
    from api.limiter import limiter
    from api.main import app

    engine = make_engine(tmp_path)
    limiter.reset()
    app.router.lifespan_context = _patch_lifespan(engine)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, engine


def bearer(engine: AuthEngine, username: str) -> dict[str, str]:
    """Mint a token directly (no login call, no rate-limit budget spent)."""
    user = engine.users.get_user(username)
    return {"Authorization": f"Bearer {engine.tokens.issue(user.username, user.role)}"}


@pytest.fixture
def password() -> str:
    return PASSWORD


@pytest.fixture
def headers_for(api_client):
    """Return a callable username -> Authorization header for the api_client engine."""
    _, engine = api_client
    return lambda username: bearer(engine, username)
