"""
tests/test_pool.py -- ConnectionPool lifecycle and storage-error mapping.

Covers:
- init() health check succeeds on a reachable database and fails fast
  (PoolInitError) on an unreachable one
- bounded pool: checkout beyond the limit times out as PoolExhausted
- connections are returned on every exit path, including exceptions
- map_db_error() translation table
- bootstrap refuses to start with a weak secret or a bad database
"""

from __future__ import annotations

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy import text

from auth.bootstrap import build_service
from core.config import Settings
from core.errors import (
    ConfigurationError,
    NotFound,
    PoolExhausted,
    PoolInitError,
    RepositoryConflict,
    RepositoryError,
    Unavailable,
)
from db.pool import ConnectionPool, map_db_error


@pytest.fixture
def small_pool(tmp_path):
    pool = ConnectionPool.init(f"sqlite:///{tmp_path / 'pool.db'}", pool_size=1, max_overflow=0, timeout=0.2)
    yield pool
    pool.dispose()


class TestInit:
    def test_health_check_passes(self, small_pool) -> None:
        small_pool.health_check()

    def test_unreachable_database_fails_fast(self, tmp_path) -> None:
        url = f"sqlite:///{tmp_path / 'missing-dir' / 'nested' / 'auth.db'}"
        with pytest.raises(PoolInitError):
            ConnectionPool.init(url)

    def test_invalid_url_fails_fast(self) -> None:
        with pytest.raises(PoolInitError):
            ConnectionPool.init("nosuchdialect://user:pw@host/db")

    def test_create_schema_is_idempotent(self, small_pool) -> None:
        small_pool.create_schema()
        small_pool.create_schema()
        with small_pool.connect() as conn:
            names = {row[0] for row in conn.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))}
        assert {"users", "refresh_tokens", "login_attempts"} <= names


class TestScopedAcquisition:
    def test_exhausted_pool_times_out(self, small_pool) -> None:
        with small_pool.connect():
            with pytest.raises(PoolExhausted):
                with small_pool.connect():
                    pass

    def test_connection_released_after_exception(self, small_pool) -> None:
        with pytest.raises(RuntimeError):
            with small_pool.begin():
                raise RuntimeError("business error inside the unit of work")
        # The only connection must be back in the pool.
        with small_pool.connect() as conn:
            assert conn.execute(text("SELECT 1")).scalar() == 1

    def test_non_storage_exceptions_pass_through_unchanged(self, small_pool) -> None:
        with pytest.raises(KeyError):
            with small_pool.connect():
                raise KeyError("x")

    def test_sql_errors_are_mapped(self, small_pool) -> None:
        with pytest.raises(RepositoryError) as exc_info:
            with small_pool.connect() as conn:
                conn.execute(text("SELECT * FROM no_such_table"))
        assert isinstance(exc_info.value.__cause__, sa_exc.SQLAlchemyError)
        assert "no_such_table" not in exc_info.value.message

    def test_begin_rolls_back_on_error(self, small_pool) -> None:
        with small_pool.begin() as conn:
            conn.execute(text("CREATE TABLE t (x INTEGER)"))
        with pytest.raises(ValueError):
            with small_pool.begin() as conn:
                conn.execute(text("INSERT INTO t (x) VALUES (1)"))
                raise ValueError("abort")
        with small_pool.connect() as conn:
            assert conn.execute(text("SELECT COUNT(*) FROM t")).scalar() == 0

    def test_scope_joins_existing_transaction(self, small_pool) -> None:
        with small_pool.begin() as conn:
            with small_pool.scope(conn) as joined:
                assert joined is conn


class TestMapDbError:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (sa_exc.TimeoutError("pool timeout"), PoolExhausted),
            (sa_exc.IntegrityError("INSERT", {}, Exception("UNIQUE failed")), RepositoryConflict),
            (sa_exc.OperationalError("SELECT", {}, Exception("down")), Unavailable),
            (sa_exc.InterfaceError("SELECT", {}, Exception("closed")), Unavailable),
            (sa_exc.NoResultFound(), NotFound),
            (sa_exc.ProgrammingError("SELECT", {}, Exception("syntax")), RepositoryError),
        ],
    )
    def test_translation(self, error, expected) -> None:
        mapped = map_db_error(error)
        assert type(mapped) is expected

    def test_retryable_flags(self) -> None:
        assert PoolExhausted.retryable and Unavailable.retryable
        assert not RepositoryConflict.retryable and not NotFound.retryable

    def test_repository_errors_pass_through(self) -> None:
        err = Unavailable()
        assert map_db_error(err) is err


class TestBootstrap:
    def test_weak_secret_aborts_before_touching_database(self, tmp_path) -> None:
        settings = Settings.model_construct(
            secret_key="short",
            database_url=f"sqlite:///{tmp_path / 'never.db'}",
        )
        with pytest.raises(ConfigurationError):
            build_service(settings)
        assert not (tmp_path / "never.db").exists()

    def test_bad_database_aborts_startup(self, settings) -> None:
        bad = settings.model_copy(update={"database_url": "sqlite:////nonexistent-dir/x/y/auth.db"})
        with pytest.raises(PoolInitError):
            build_service(bad)
