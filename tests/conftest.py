"""
tests/conftest.py -- Shared test fixtures for the Homi auth tests.

This module provides:
  - test_settings: Settings with fixed secrets and cheap PBKDF2 parameters
  - settings_factory: the same defaults with keyword overrides
  - store: fresh in-memory UserStore per test
  - service: AuthService over that store
  - api_client: TestClient with a patched lifespan and isolated in-memory DB

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The named URI format shares one in-memory instance across all
connections in the same process.

PBKDF2 runs at 1000 iterations here. The production default (310k) would
make every register/login test take a noticeable fraction of a second.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# Set before any api/ import: the rate limiter reads get_settings() per request,
# and DEBUG lets Settings() start without real secrets.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.dependencies import BearerAuthenticator
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import Settings

ACCESS_SECRET = "a" * 48
REFRESH_SECRET = "r" * 48


def make_settings(**overrides) -> Settings:
    values = {
        "debug": True,
        "access_token_secret": ACCESS_SECRET,
        "refresh_token_secret": REFRESH_SECRET,
        "auth_pbkdf2_iterations": 1000,
    }
    values.update(overrides)
    return Settings(**values)


def _shared_memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def settings_factory():
    """Build Settings with the test defaults plus keyword overrides."""
    return make_settings


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def service(store: UserStore, test_settings: Settings) -> AuthService:
    return AuthService.from_settings(test_settings, store)


def _patch_lifespan(store: UserStore, settings: Settings):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and components into app.state so TestClient routes
    see an isolated DB and fixed secrets instead of get_settings().
    """

    @asynccontextmanager
    async def test_lifespan(app):
        codec = TokenCodec()
        app.state.user_store = store
        app.state.auth_service = AuthService.from_settings(settings, store, codec=codec)
        app.state.authenticator = BearerAuthenticator(codec, store, settings.access_token_secret)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, store) for API integration tests.

    One client per test module. Tests register their own users with unique
    emails, so they do not depend on each other's state.
    """
    store = UserStore(db_url=_shared_memory_url("test_auth_api"))
    app.router.lifespan_context = _patch_lifespan(store, make_settings())
    limiter.enabled = False

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, store

    limiter.enabled = True
    store.close()
