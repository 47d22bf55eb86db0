"""
db/schema.py -- SQLAlchemy Core table definitions for the auth core.

Three tables, all owned by authcore:
  users            identity records; email and username are unique and stored lower-cased
  refresh_tokens   one row per issued refresh secret (HMAC digest only, never the raw value)
  login_attempts   append-only audit of every password login attempt

refresh_tokens rows are never deleted by rotation. A consumed or logged-out
token keeps its row with revoked_at set so that presenting it again can be
recognised as reuse. Expired/revoked rows are removed only by the maintenance
purge (RefreshTokenStore.purge).

Timestamps are timezone-aware on PostgreSQL. SQLite stores them as naive UTC
strings; stores normalise on read via as_utc().
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, MetaData, String, Table, Text

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(36), primary_key=True),  # UUID4 string
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(100), nullable=False, unique=True),
    Column("password_hash", String(255)),  # NULL = cannot log in by password
    Column("email_verified", Boolean, nullable=False, default=False),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("last_login_at", DateTime(timezone=True)),
)

refresh_tokens = Table(
    "refresh_tokens",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # HMAC-SHA256 hex
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Column("revoked_at", DateTime(timezone=True)),  # NULL = not consumed / revoked
    Index("ix_refresh_tokens_user_id", "user_id"),
)

login_attempts = Table(
    "login_attempts",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.id", ondelete="SET NULL")),
    Column("identifier", String(255)),  # normalised email as presented
    Column("success", Boolean, nullable=False),
    Column("attempted_at", DateTime(timezone=True), nullable=False),
    Column("user_agent", Text),
    Index("ix_login_attempts_identifier_time", "identifier", "attempted_at"),
)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
