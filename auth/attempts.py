"""
auth/attempts.py -- Login attempt tracker (append-only audit + throttling).

record() is a pure append that must never fail the caller's flow: by the time
it runs the auth result is already decided in memory, so a storage failure is
logged with the traceback and swallowed. This is the only place in the core
that swallows an exception.

is_throttled() counts failed attempts for an identifier (normalised email)
inside a trailing window. Counting by identifier rather than user_id means
unknown emails are throttled exactly like known ones, so the throttle itself
does not reveal which accounts exist. Failures age out of the window; a
successful login does not reset the count.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import and_, func, select

from auth.models import LoginAttempt
from core.errors import RepositoryError
from db.pool import ConnectionPool
from db.schema import as_utc, login_attempts, utcnow

logger = logging.getLogger("authcore.auth")


class LoginAttemptTracker:
    """Records login attempts and answers "is this identifier throttled?".

    Usage:
        tracker = LoginAttemptTracker(pool, max_failures=5, window=timedelta(minutes=15))
        if tracker.is_throttled("a@x.com"): ...
        tracker.record(user_id, success=False, user_agent=ua, identifier="a@x.com")
    """

    def __init__(self, pool: ConnectionPool, max_failures: int = 5, window: timedelta = timedelta(minutes=15)) -> None:
        if max_failures < 1:
            raise ValueError("max_failures must be >= 1")
        self.pool = pool
        self.max_failures = max_failures
        self.window = window

    def record(
        self,
        user_id: str | None,
        success: bool,
        user_agent: str | None,
        identifier: str | None = None,
    ) -> LoginAttempt | None:
        """Append one attempt. Returns the stored attempt, or None if the write failed."""
        attempt = LoginAttempt(
            id=str(uuid.uuid4()),
            user_id=user_id,
            identifier=identifier,
            success=success,
            attempted_at=utcnow(),
            user_agent=user_agent,
        )
        try:
            with self.pool.begin() as conn:
                conn.execute(
                    login_attempts.insert().values(
                        id=attempt.id,
                        user_id=attempt.user_id,
                        identifier=attempt.identifier,
                        success=attempt.success,
                        attempted_at=attempt.attempted_at,
                        user_agent=attempt.user_agent,
                    )
                )
        except RepositoryError:
            logger.exception("Failed to record login attempt (success=%s)", success)
            return None
        return attempt

    def failure_count(self, identifier: str, now: datetime | None = None) -> int:
        """Failed attempts for ``identifier`` since ``now - window``."""
        since = (now or utcnow()) - self.window
        with self.pool.connect() as conn:
            count = conn.execute(
                select(func.count())
                .select_from(login_attempts)
                .where(
                    and_(
                        login_attempts.c.identifier == identifier,
                        login_attempts.c.success.is_(False),
                        login_attempts.c.attempted_at > since,
                    )
                )
            ).scalar()
        return count or 0

    def is_throttled(self, identifier: str, now: datetime | None = None) -> bool:
        return self.failure_count(identifier, now) >= self.max_failures

    def recent_attempts(self, user_id: str, limit: int = 20) -> list[LoginAttempt]:
        """Login history for a user, newest first."""
        with self.pool.connect() as conn:
            rows = conn.execute(
                select(login_attempts)
                .where(login_attempts.c.user_id == user_id)
                .order_by(login_attempts.c.attempted_at.desc())
                .limit(limit)
            ).fetchall()
        return [_row_to_attempt(r) for r in rows]


def _row_to_attempt(row) -> LoginAttempt:
    return LoginAttempt(
        id=row.id,
        user_id=row.user_id,
        identifier=row.identifier,
        success=bool(row.success),
        attempted_at=as_utc(row.attempted_at),
        user_agent=row.user_agent,
    )
