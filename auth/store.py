"""
auth/store.py -- SQLAlchemy Core persistence for User records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Service code never touches SQL directly.

The store performs data access only. It enforces no business policy: it does
not hash, does not decide who may log in, and does not translate a missing
row into an auth outcome. Lookups return None for "no such row"; writes raise
RepositoryConflict when a UNIQUE constraint rejects them (duplicate email or
username), which the service maps to Conflict.

Callers pass email/username already normalised (see auth.validation).

Security:
  All queries use bound parameters. No f-strings in SQL.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.engine import Connection

from auth.models import User
from db.pool import ConnectionPool
from db.schema import as_utc, users, utcnow


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore(pool)
        user = store.create_user(User(email="a@x.com", username="alice", password_hash=digest))
        store.get_by_email("a@x.com")
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool

    def create_user(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises RepositoryConflict if the email or username already exists.
        The UNIQUE constraints are the real guard; a pre-check in the service
        only gives the common case a cheaper path.
        """
        now = utcnow()
        user_id = str(uuid.uuid4())
        with self.pool.begin() as conn:
            conn.execute(
                users.insert().values(
                    id=user_id,
                    email=user.email,
                    username=user.username,
                    password_hash=user.password_hash,
                    email_verified=user.email_verified,
                    is_active=user.is_active,
                    created_at=now,
                    updated_at=now,
                )
            )
        return User(
            id=user_id,
            email=user.email,
            username=user.username,
            password_hash=user.password_hash,
            is_active=user.is_active,
            email_verified=user.email_verified,
            created_at=now,
            updated_at=now,
        )

    def get_by_email(self, email: str) -> User | None:
        with self.pool.connect() as conn:
            row = conn.execute(select(users).where(users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        with self.pool.connect() as conn:
            row = conn.execute(select(users).where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def exists(self, email: str, username: str) -> bool:
        """Return True if any user already has this email or this username."""
        with self.pool.connect() as conn:
            row = conn.execute(
                select(users.c.id).where(or_(users.c.email == email, users.c.username == username)).limit(1)
            ).fetchone()
        return row is not None

    def update_password(self, user_id: str, password_hash: str, conn: Connection | None = None) -> bool:
        """Replace the stored hash. Returns False if user_id was not found.

        Pass ``conn`` to run inside a caller's transaction (see
        AuthService.change_password).
        """
        with self.pool.scope(conn) as conn:
            result = conn.execute(
                users.update().where(users.c.id == user_id).values(password_hash=password_hash, updated_at=utcnow())
            )
        return result.rowcount > 0

    def update_last_login(self, user_id: str, when: datetime | None = None) -> None:
        """Stamp last_login_at. Called on every successful password login."""
        when = when or utcnow()
        with self.pool.begin() as conn:
            conn.execute(users.update().where(users.c.id == user_id).values(last_login_at=when, updated_at=when))

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user. Returns False if not found.

        refresh_tokens rows cascade with the user; login_attempts keep their
        rows with user_id set to NULL (ON DELETE SET NULL).
        """
        with self.pool.begin() as conn:
            result = conn.execute(users.delete().where(users.c.id == user_id))
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        username=row.username,
        password_hash=row.password_hash,
        is_active=bool(row.is_active),
        email_verified=bool(row.email_verified),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        last_login_at=as_utc(row.last_login_at),
    )
