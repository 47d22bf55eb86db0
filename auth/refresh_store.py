"""
auth/refresh_store.py -- Persistence and rotation bookkeeping for refresh tokens.

Pattern: Repository + Data Mapper, same as auth/store.py.

State per row (refresh_tokens):
  Issued    revoked_at IS NULL and expires_at > now
  Consumed  revoked_at set by a successful rotation
  Revoked   revoked_at set by logout, password change or reuse detection
Consumed and Revoked are the same thing on disk; the row is kept so a later
presentation of the same secret is recognised as reuse rather than "unknown".

rotate() is the only multi-statement operation and runs as ONE transaction:
every branch (rotated / reused / expired / unknown) either applies completely
or not at all. Concurrency:
  PostgreSQL  SELECT ... FOR UPDATE locks the row; a second refresh with the
              same digest blocks, then re-reads the row as revoked and takes
              the reuse branch.
  SQLite      the pool starts every transaction with BEGIN IMMEDIATE, which
              serialises writers (see db/pool.py).
  Both        the revoke is a conditional UPDATE (revoked_at IS NULL); if it
              touches no row another transaction consumed the token first and
              we fall through to the reuse branch. Exactly one caller wins.

The store enforces no policy of its own. It does not decide TTLs or what
reuse means for the caller; it reports a RotationOutcome and the service
decides.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import and_, or_, select
from sqlalchemy.engine import Connection

from auth.models import RefreshToken, RotationOutcome
from db.pool import ConnectionPool
from db.schema import as_utc, refresh_tokens, utcnow


class RefreshTokenStore:
    """Repository for RefreshToken rows.

    Usage:
        store = RefreshTokenStore(pool)
        store.issue(user_id, digest, expires_at)
        outcome = store.rotate(digest, new_digest, new_expires_at)
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self.pool = pool

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def issue(self, user_id: str, token_hash: str, expires_at: datetime) -> RefreshToken:
        """Insert a new Issued row. Raises RepositoryConflict on a duplicate digest."""
        with self.pool.begin() as conn:
            return _insert(conn, user_id, token_hash, expires_at, utcnow())

    def rotate(
        self,
        token_hash: str,
        new_token_hash: str,
        new_expires_at: datetime,
        now: datetime | None = None,
    ) -> RotationOutcome:
        """Consume ``token_hash`` and insert its successor atomically.

        Returns a RotationOutcome; never raises for business outcomes. Raises
        RepositoryError only for storage failures, in which case nothing was
        applied.
        """
        now = now or utcnow()
        with self.pool.begin() as conn:
            row = conn.execute(
                select(refresh_tokens).where(refresh_tokens.c.token_hash == token_hash).with_for_update()
            ).fetchone()
            if row is None:
                return RotationOutcome(status="unknown")

            current = _row_to_refresh_token(row)
            if current.is_revoked:
                revoked = _revoke_all(conn, current.user_id, now)
                return RotationOutcome(status="reused", user_id=current.user_id, revoked_count=revoked)

            if current.expires_at <= now:
                return RotationOutcome(status="expired", user_id=current.user_id)

            consumed = conn.execute(
                refresh_tokens.update()
                .where(and_(refresh_tokens.c.id == current.id, refresh_tokens.c.revoked_at.is_(None)))
                .values(revoked_at=now, updated_at=now)
            ).rowcount
            if consumed == 0:
                # Lost the race: a concurrent refresh consumed it between our
                # read and write. Same treatment as presenting a used token.
                revoked = _revoke_all(conn, current.user_id, now)
                return RotationOutcome(status="reused", user_id=current.user_id, revoked_count=revoked)

            _insert(conn, current.user_id, new_token_hash, new_expires_at, now)
            return RotationOutcome(status="rotated", user_id=current.user_id)

    def revoke(self, token_hash: str, now: datetime | None = None) -> bool:
        """Revoke one token by digest. Idempotent.

        Returns True if a not-yet-revoked row was revoked, False if the digest
        is unknown or the row was already revoked.
        """
        now = now or utcnow()
        with self.pool.begin() as conn:
            result = conn.execute(
                refresh_tokens.update()
                .where(and_(refresh_tokens.c.token_hash == token_hash, refresh_tokens.c.revoked_at.is_(None)))
                .values(revoked_at=now, updated_at=now)
            )
        return result.rowcount > 0

    def revoke_all_for_user(self, user_id: str, now: datetime | None = None, conn: Connection | None = None) -> int:
        """Revoke every not-yet-revoked token of a user. Returns the count."""
        now = now or utcnow()
        with self.pool.scope(conn) as conn:
            return _revoke_all(conn, user_id, now)

    def purge(self, before: datetime) -> int:
        """Hard-delete rows that expired or were revoked before ``before``.

        Maintenance only. Purging a revoked row forgets it for reuse
        detection, so ``before`` should be at least one refresh TTL ago.
        """
        with self.pool.begin() as conn:
            result = conn.execute(
                refresh_tokens.delete().where(
                    or_(refresh_tokens.c.expires_at < before, refresh_tokens.c.revoked_at < before)
                )
            )
        return result.rowcount

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_hash(self, token_hash: str) -> RefreshToken | None:
        """Return the row for a digest in any state, or None."""
        with self.pool.connect() as conn:
            row = conn.execute(select(refresh_tokens).where(refresh_tokens.c.token_hash == token_hash)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def list_active(self, user_id: str, now: datetime | None = None) -> list[RefreshToken]:
        """Active (not revoked, not expired) tokens of a user, newest first."""
        now = now or utcnow()
        with self.pool.connect() as conn:
            rows = conn.execute(
                select(refresh_tokens)
                .where(
                    and_(
                        refresh_tokens.c.user_id == user_id,
                        refresh_tokens.c.revoked_at.is_(None),
                        refresh_tokens.c.expires_at > now,
                    )
                )
                .order_by(refresh_tokens.c.created_at.desc())
            ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]


# ---------------------------------------------------------------------------
# Statement helpers (run on a caller-supplied connection/transaction)
# ---------------------------------------------------------------------------


def _insert(conn: Connection, user_id: str, token_hash: str, expires_at: datetime, now: datetime) -> RefreshToken:
    token_id = str(uuid.uuid4())
    conn.execute(
        refresh_tokens.insert().values(
            id=token_id,
            user_id=user_id,
            token_hash=token_hash,
            expires_at=expires_at,
            created_at=now,
            updated_at=now,
        )
    )
    return RefreshToken(
        id=token_id,
        user_id=user_id,
        token_hash=token_hash,
        expires_at=expires_at,
        created_at=now,
        updated_at=now,
    )


def _revoke_all(conn: Connection, user_id: str, now: datetime) -> int:
    result = conn.execute(
        refresh_tokens.update()
        .where(and_(refresh_tokens.c.user_id == user_id, refresh_tokens.c.revoked_at.is_(None)))
        .values(revoked_at=now, updated_at=now)
    )
    return result.rowcount


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        expires_at=as_utc(row.expires_at),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        revoked_at=as_utc(row.revoked_at),
    )
