"""
db/pool.py -- Process-wide connection pool and storage-error mapping.

Pattern: explicit process-scoped resource. ConnectionPool.init() is called
once at startup and performs a fail-fast health check (SELECT 1); a pool that
cannot hand out a working connection raises PoolInitError and the process
refuses to start. dispose() is the obligatory teardown. Every store receives
the pool instance through its constructor -- nothing reaches into a module
global, so tests can inject their own pool.

Scoped acquisition:
  pool.connect()  -- read-only unit; the connection is rolled back and
                     returned to the pool on every exit path.
  pool.begin()    -- one transaction; committed on normal exit, rolled back on
                     any exception, connection always returned.
Both translate SQLAlchemy errors through map_db_error() at the boundary.
Exceptions that are not SQLAlchemy errors (e.g. domain errors raised inside
the block) propagate untouched.

SQLite specifics (dev + tests):
  - WAL journal mode and foreign keys are set per connection because SQLite
    PRAGMAs are not inherited by new connections from the pool.
  - pysqlite's implicit BEGIN is disabled and every transaction starts with
    BEGIN IMMEDIATE. This takes the write lock up front, so two concurrent
    refresh rotations serialise instead of one failing with SQLITE_BUSY on
    lock upgrade.

Layer rule: imports only core/ and SQLAlchemy.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.pool import QueuePool

from core.errors import (
    NotFound,
    PoolExhausted,
    PoolInitError,
    RepositoryConflict,
    RepositoryError,
    Unavailable,
)
from core.logs import mask_url
from db.schema import metadata

logger = logging.getLogger("authcore.db")


# ---------------------------------------------------------------------------
# Error mapping (storage boundary)
# ---------------------------------------------------------------------------


def map_db_error(exc: Exception) -> RepositoryError:
    """Translate a SQLAlchemy/driver exception into a RepositoryError.

    The returned error carries only a generic message; callers raise it
    ``from exc`` so the driver detail stays on __cause__ for logs.
    Order matters: sqlalchemy.exc.TimeoutError (pool checkout timeout) must be
    matched before the generic SQLAlchemyError fallback.
    """
    if isinstance(exc, RepositoryError):
        return exc
    if isinstance(exc, sa_exc.TimeoutError):
        return PoolExhausted()
    if isinstance(exc, sa_exc.NoResultFound):
        return NotFound()
    if isinstance(exc, sa_exc.IntegrityError):
        return RepositoryConflict()
    if isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.DisconnectionError)):
        return Unavailable()
    return RepositoryError()


# ---------------------------------------------------------------------------
# SQLite connection hooks
# ---------------------------------------------------------------------------


def _sqlite_on_connect(dbapi_conn, connection_record) -> None:
    # Take over transaction control from pysqlite so the begin hook decides.
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _sqlite_on_begin(conn: Connection) -> None:
    conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class ConnectionPool:
    """Bounded pool of database connections shared by every store.

    Usage:
        pool = ConnectionPool.init("postgresql+psycopg://app:pw@db/auth", pool_size=5)
        with pool.begin() as conn:
            conn.execute(...)
        pool.dispose()
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @classmethod
    def init(
        cls,
        url: str,
        *,
        pool_size: int = 5,
        max_overflow: int = 10,
        timeout: float = 5.0,
    ) -> "ConnectionPool":
        """Build the engine and prove it works before returning.

        Raises PoolInitError if the URL is unusable or SELECT 1 fails. The
        engine is disposed before raising so no half-open pool leaks.
        """
        connect_args: dict = {}
        is_sqlite = url.startswith("sqlite")
        if is_sqlite:
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = timeout
        try:
            engine = create_engine(
                url,
                poolclass=QueuePool,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=timeout,
                pool_pre_ping=True,
                connect_args=connect_args,
            )
        except (sa_exc.ArgumentError, ImportError) as exc:
            raise PoolInitError(f"Invalid database URL: {mask_url(url)}") from exc
        if is_sqlite:
            event.listen(engine, "connect", _sqlite_on_connect)
            event.listen(engine, "begin", _sqlite_on_begin)

        pool = cls(engine)
        try:
            pool.health_check()
        except RepositoryError as exc:
            engine.dispose()
            logger.error("Database health check failed for %s", mask_url(url))
            raise PoolInitError() from exc
        logger.info(
            "Connection pool ready (%s, size=%d, overflow=%d, timeout=%.1fs)",
            mask_url(url),
            pool_size,
            max_overflow,
            timeout,
        )
        return pool

    def health_check(self) -> None:
        """Run SELECT 1 on a pooled connection. Raises RepositoryError on failure."""
        with self.connect() as conn:
            conn.execute(text("SELECT 1")).scalar()

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except sa_exc.SQLAlchemyError as exc:
            raise map_db_error(exc) from exc

    @contextmanager
    def begin(self) -> Iterator[Connection]:
        try:
            with self.engine.begin() as conn:
                yield conn
        except sa_exc.SQLAlchemyError as exc:
            raise map_db_error(exc) from exc

    @contextmanager
    def scope(self, conn: Connection | None = None) -> Iterator[Connection]:
        """Join the caller's transaction if one is given, else open a new one.

        Lets the service run writes from two stores as one unit of work
        without either store knowing about the other.
        """
        if conn is not None:
            try:
                yield conn
            except sa_exc.SQLAlchemyError as exc:
                raise map_db_error(exc) from exc
        else:
            with self.begin() as new_conn:
                yield new_conn

    def create_schema(self) -> None:
        """Create all authcore tables if they do not exist. Idempotent."""
        try:
            metadata.create_all(self.engine)
        except sa_exc.SQLAlchemyError as exc:
            raise map_db_error(exc) from exc

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("Connection pool disposed")
