"""
tests/conftest.py -- Shared test fixtures for authcore.

This module provides:
  - settings: a Settings instance with a test secret, bcrypt cost 4 and a
    throttle threshold of 3, pointing at a per-test SQLite file
  - auth_ctx / service: the fully wired core built through build_service(),
    i.e. the same startup path production uses
  - pool: the ConnectionPool behind the service
  - registered: one registered user (email, username, password, PublicUser)

Design: per-test SQLite *files* under tmp_path rather than shared-memory URIs.
The concurrency tests run refreshes from several threads, and shared-cache
in-memory databases report table locks immediately (SQLITE_LOCKED) instead of
waiting on the busy timeout. A file with WAL + BEGIN IMMEDIATE behaves like
the production database: writers queue.

SECRET_KEY must be in the environment before anything calls get_settings()
(the CLI tests do), so it is set at import time here.
"""

from __future__ import annotations

import os
from collections.abc import Generator

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters-long"

# CRITICAL: set before any core.config import path calls get_settings().
os.environ.setdefault("SECRET_KEY", TEST_SECRET)

import pytest

from auth.bootstrap import AuthContext, build_service
from auth.models import PublicUser
from auth.service import AuthService
from core.config import Settings, get_settings
from db.pool import ConnectionPool

ALICE_EMAIL = "a@x.com"
ALICE_USERNAME = "alice"
ALICE_PASSWORD = "Secret123!"


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Generator[None, None, None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        secret_key=TEST_SECRET,
        database_url=f"sqlite:///{tmp_path / 'auth.db'}",
        bcrypt_rounds=4,
        login_max_failures=3,
        login_window_seconds=900,
        access_token_ttl_seconds=900,
        refresh_token_ttl_seconds=3600,
    )


@pytest.fixture
def auth_ctx(settings: Settings) -> Generator[AuthContext, None, None]:
    with build_service(settings) as ctx:
        yield ctx


@pytest.fixture
def service(auth_ctx: AuthContext) -> AuthService:
    return auth_ctx.service


@pytest.fixture
def pool(auth_ctx: AuthContext) -> ConnectionPool:
    return auth_ctx.pool


@pytest.fixture
def registered(service: AuthService) -> tuple[str, str, str, PublicUser]:
    """Register alice and return (email, username, password, public_user)."""
    user = service.register(ALICE_EMAIL, ALICE_USERNAME, ALICE_PASSWORD)
    return ALICE_EMAIL, ALICE_USERNAME, ALICE_PASSWORD, user
