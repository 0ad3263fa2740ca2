"""
tests/conftest.py -- Shared test fixtures for MoveMaster.

This module provides:
  - make_test_stores(): isolated in-memory DBs for users and moves
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a regular user and an admin, with JWTs

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment variables must be set before any app module import: settings are
read once at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from typing import NamedTuple
from unittest.mock import MagicMock

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import Provider, Role, User
from auth.passwords import hash_password
from auth.store import UserStore
from auth.tokens import create_access_token
from moves.store import MoveStore

USER_EMAIL = "user@movemaster.test"
USER_PASSWORD = "userpass123"
ADMIN_EMAIL = "admin@movemaster.test"
ADMIN_PASSWORD = "adminpass123"


class ApiEnv(NamedTuple):
    client: TestClient
    user_store: UserStore
    moves: MoveStore
    user_token: str
    admin_token: str


def make_test_stores(db_suffix: str) -> tuple[UserStore, MoveStore]:
    """Create named shared-memory SQLite stores unique to db_suffix."""
    auth_url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    moves_url = f"sqlite:///file:test_moves_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=auth_url), MoveStore(db_url=moves_url)


def _patch_lifespan(user_store: UserStore, moves: MoveStore):
    """Return a lifespan that wires the test stores and a mocked OAuth registry."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.moves = moves
        app.state.oauth = MagicMock()
        yield

    return test_lifespan


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="module")
def api_client(request) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv for integration tests.

    One regular user (ROLE_USER) and one admin (ROLE_USER + ROLE_ADMIN) exist
    before the client starts. follow_redirects=False so tests can assert on
    login and OAuth redirect locations.
    """
    user_store, moves = make_test_stores(request.module.__name__.replace(".", "_"))

    user_id = user_store.create_user(
        User(email=USER_EMAIL, hashed_password=hash_password(USER_PASSWORD), provider=Provider.LOCAL)
    )
    admin_id = user_store.create_user(
        User(
            email=ADMIN_EMAIL,
            hashed_password=hash_password(ADMIN_PASSWORD),
            provider=Provider.LOCAL,
            roles=frozenset({Role.USER, Role.ADMIN}),
        )
    )
    user_token = create_access_token(user_store.get_by_id(user_id))
    admin_token = create_access_token(user_store.get_by_id(admin_id))

    app.router.lifespan_context = _patch_lifespan(user_store, moves)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        yield ApiEnv(client, user_store, moves, user_token, admin_token)

    user_store.close()
    moves.close()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()
