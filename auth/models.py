"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores map rows into
these; the service composes them into results. Nothing here touches the
database or a crypto library.

Layer rule: no imports from db/ or other auth/ modules.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class User:
    """An identity record.

    email and username are always stored lower-cased and stripped; the
    UNIQUE constraints on both columns therefore enforce case-insensitive
    uniqueness.

    password_hash is None for accounts reserved for external-identity linking.
    Such accounts can never authenticate by password.
    """

    email: str
    username: str
    id: str | None = None  # UUID4 string, assigned by UserStore.create_user
    password_hash: str | None = None
    is_active: bool = True
    email_verified: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_login_at: datetime | None = None

    def __repr__(self) -> str:
        # password_hash is left out so a stray log line cannot leak it.
        return f"User(id={self.id!r}, email={self.email!r}, username={self.username!r}, is_active={self.is_active})"


@dataclass
class RefreshToken:
    """A persisted refresh credential.

    token_hash is HMAC-SHA256(SECRET_KEY, raw_secret). The raw secret is
    returned to the caller once, at issuance, and never stored.

    revoked_at doubles as the "consumed" marker: rotation, logout, password
    change and reuse detection all set it. A row is active when revoked_at is
    None and expires_at is in the future.
    """

    user_id: str
    token_hash: str
    expires_at: datetime
    id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    revoked_at: datetime | None = None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and self.expires_at > now


@dataclass
class LoginAttempt:
    """One password login attempt. Append-only.

    user_id is None when the presented email did not resolve to a user.
    identifier is the normalised email as presented; throttling counts by it.
    """

    success: bool
    id: str | None = None
    user_id: str | None = None
    identifier: str | None = None
    attempted_at: datetime | None = None
    user_agent: str | None = None


@dataclass(frozen=True)
class AccessClaims:
    """Verified claims of an access token. Transient, never persisted."""

    sub: str
    iss: str
    aud: str
    iat: int
    exp: int


@dataclass(frozen=True)
class PublicUser:
    """The user view returned to callers. Never carries the password hash."""

    id: str
    email: str
    username: str
    email_verified: bool
    is_active: bool
    created_at: datetime | None = None
    last_login_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> "PublicUser":
        return cls(
            id=user.id,
            email=user.email,
            username=user.username,
            email_verified=user.email_verified,
            is_active=user.is_active,
            created_at=user.created_at,
            last_login_at=user.last_login_at,
        )


@dataclass(frozen=True)
class TokenPair:
    """Access token plus the raw refresh secret, returned exactly once.

    The transport layer puts refresh_token in an httpOnly cookie, never in a
    response body field. __repr__ masks both values so the pair can be logged
    or shown in a traceback without exposing either credential.
    """

    access_token: str
    refresh_token: str
    expires_in: int  # access token lifetime in seconds
    token_type: str = "bearer"

    def __repr__(self) -> str:
        return f"TokenPair(access_token='***', refresh_token='***', expires_in={self.expires_in})"


@dataclass(frozen=True)
class LoginResult:
    user: PublicUser
    tokens: TokenPair


@dataclass(frozen=True)
class RotationOutcome:
    """Result of RefreshTokenStore.rotate().

    status:
      "rotated"  -- presented token consumed, successor inserted
      "unknown"  -- no row with that digest; nothing changed
      "expired"  -- row existed but was past expires_at; nothing changed
      "reused"   -- row was already revoked; every active token of the user
                    has been revoked (revoked_count of them)
    """

    status: str
    user_id: str | None = None
    revoked_count: int = 0
