"""
tests/conftest.py -- Shared test fixtures for the Login API.

This module provides:
  - unit fixtures: a frozen clock, a cheap PasswordHasher, an InMemoryUserStore,
    and the CredentialService / TokenIssuer / AuthFlows built on them
  - _make_test_store(): an isolated named shared-memory SQLite store
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api_client: TestClient over the real app for integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment must be set before any api/ or core/ import:
  DEBUG=true               -- get_settings() falls back to the dev SECRET_KEY
  RATE_LIMIT_ENABLED=false -- repeated logins from one client are not throttled
                              (rate-limit tests switch the limiter on themselves)
  BCRYPT_ROUNDS=4          -- keeps bcrypt cheap
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.flows import AuthFlows, build_auth_flows
from auth.passwords import PasswordHasher
from auth.service import CredentialService
from auth.store import InMemoryUserStore, SqlUserStore
from auth.tokens import TokenIssuer
from core.config import get_settings

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
TEST_ISSUER = "LoginApi"
TEST_AUDIENCE = "LoginApiUsers"

# Whole seconds, and close to the real clock so jose's exp check accepts
# tokens minted with it.
FROZEN_NOW = datetime.now(timezone.utc).replace(microsecond=0)


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def frozen_now() -> datetime:
    return FROZEN_NOW


@pytest.fixture
def clock(frozen_now):
    return lambda: frozen_now


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def memory_store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def service(memory_store, hasher, clock) -> CredentialService:
    return CredentialService(memory_store, hasher, clock=clock)


@pytest.fixture
def make_issuer(clock):
    """Factory for TokenIssuers that differ from the default in one setting."""

    def _make(**overrides) -> TokenIssuer:
        kwargs = {
            "secret_key": TEST_SECRET,
            "issuer": TEST_ISSUER,
            "audience": TEST_AUDIENCE,
            "expire_minutes": 60,
            "clock": clock,
        }
        kwargs.update(overrides)
        return TokenIssuer(**kwargs)

    return _make


@pytest.fixture
def issuer(make_issuer) -> TokenIssuer:
    return make_issuer()


@pytest.fixture
def flows(service, issuer) -> AuthFlows:
    return AuthFlows(service, issuer)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> SqlUserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    return SqlUserStore(f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: SqlUserStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the pre-created test store and an AuthFlows built from the test
    settings into app.state, so routes never touch the on-disk database.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.auth_flows = build_auth_flows(get_settings(), user_store)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Module-scoped integration fixture -- one TestClient per test module
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, SqlUserStore], None, None]:
    """Yield (client, store) for API integration tests.

    The store is shared by every test in the module, so each test should
    register its own usernames.
    """
    user_store = _make_test_store(request.module.__name__)
    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=False) as client:
        yield client, user_store

    user_store.close()
