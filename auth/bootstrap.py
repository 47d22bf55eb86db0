"""
auth/bootstrap.py -- Startup and teardown for the auth core.

build_service() is the single entry point an embedding process (HTTP server,
serverless handler, CLI) calls once at startup. Both long-running and
per-invocation adapters call it identically; the core has no branch on
execution environment.

Startup order matters, and every step fails fast:
  1. Signer and refresh hasher -- ConfigurationError on a missing/short secret.
  2. Connection pool -- PoolInitError if SELECT 1 fails. A misconfigured
     database aborts startup instead of surfacing as the first request's 500.
  3. Schema (optional) -- create_all is idempotent.
  4. Password hasher -- computes the decoy digest once, at the configured cost.
  5. Stores and service wiring.
If a step after the pool fails, the pool is disposed before re-raising.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from auth.attempts import LoginAttemptTracker
from auth.passwords import PasswordHasher
from auth.refresh_store import RefreshTokenStore
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import RefreshTokenHasher, TokenSigner
from core.config import Settings
from db.pool import ConnectionPool

logger = logging.getLogger("authcore.auth")


@dataclass
class AuthContext:
    """Process-scoped resources. close() is the obligatory teardown.

    Usage:
        with build_service(get_settings()) as ctx:
            ctx.service.login(...)
    """

    pool: ConnectionPool
    service: AuthService

    def close(self) -> None:
        self.pool.dispose()

    def __enter__(self) -> "AuthContext":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def build_service(settings: Settings, create_schema: bool = True) -> AuthContext:
    signer = TokenSigner(settings.secret_key, issuer=settings.token_issuer, audience=settings.token_audience)
    refresh_hasher = RefreshTokenHasher(settings.secret_key)

    pool = ConnectionPool.init(
        settings.database_url,
        pool_size=settings.pool_size,
        max_overflow=settings.pool_max_overflow,
        timeout=settings.pool_timeout_seconds,
    )
    try:
        if create_schema:
            pool.create_schema()
        service = AuthService(
            pool=pool,
            users=UserStore(pool),
            refresh_tokens=RefreshTokenStore(pool),
            attempts=LoginAttemptTracker(
                pool,
                max_failures=settings.login_max_failures,
                window=timedelta(seconds=settings.login_window_seconds),
            ),
            hasher=PasswordHasher(settings.bcrypt_rounds),
            signer=signer,
            refresh_hasher=refresh_hasher,
            access_ttl=timedelta(seconds=settings.access_token_ttl_seconds),
            refresh_ttl=timedelta(seconds=settings.refresh_token_ttl_seconds),
        )
    except Exception:
        pool.dispose()
        raise
    logger.info("Auth core initialized")
    return AuthContext(pool=pool, service=service)
