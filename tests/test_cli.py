"""
tests/test_cli.py -- Operator CLI (main.py) exit codes and output.

Covers:
- init-db creates the schema and check succeeds against it
- missing / short SECRET_KEY exits 1 without a traceback
- unreachable database exits 1
- purge-tokens deletes old rows and rejects a negative --days
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import text

from auth.refresh_store import RefreshTokenStore
from auth.store import UserStore
from auth.models import User
from db.pool import ConnectionPool
from db.schema import utcnow
from main import main


@pytest.fixture
def db_url(tmp_path, monkeypatch) -> str:
    url = f"sqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    return url


class TestInitAndCheck:
    def test_init_db_creates_tables(self, db_url, capsys) -> None:
        assert main(["init-db"]) == 0
        assert "schema created" in capsys.readouterr().out

        pool = ConnectionPool.init(db_url)
        try:
            with pool.connect() as conn:
                names = {row[0] for row in conn.execute(text("SELECT name FROM sqlite_master WHERE type='table'"))}
        finally:
            pool.dispose()
        assert {"users", "refresh_tokens", "login_attempts"} <= names

    def test_check_reports_masked_url(self, db_url, capsys) -> None:
        assert main(["init-db"]) == 0
        assert main(["check"]) == 0
        assert "database reachable" in capsys.readouterr().out

    def test_missing_secret_exits_1(self, db_url, monkeypatch, capsys) -> None:
        monkeypatch.setenv("SECRET_KEY", "")
        assert main(["check"]) == 1
        assert "SECRET_KEY is required" in capsys.readouterr().out

    def test_short_secret_exits_1(self, db_url, monkeypatch, capsys) -> None:
        monkeypatch.setenv("SECRET_KEY", "too-short")
        assert main(["check"]) == 1
        assert "at least 32 characters" in capsys.readouterr().out

    def test_unreachable_database_exits_1(self, tmp_path, monkeypatch, capsys) -> None:
        monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'no' / 'such' / 'dir.db'}")
        assert main(["check"]) == 1
        assert "pool_init_error" in capsys.readouterr().out

    def test_unknown_command_is_usage_error(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            main(["frobnicate"])
        assert exc_info.value.code == 2


class TestPurgeTokens:
    def test_purges_old_rows(self, db_url, capsys) -> None:
        assert main(["init-db"]) == 0
        pool = ConnectionPool.init(db_url)
        try:
            user = UserStore(pool).create_user(User(email="cli@x.com", username="cli_user", password_hash="h"))
            store = RefreshTokenStore(pool)
            store.issue(user.id, "ancient", utcnow() - timedelta(days=60))
            store.issue(user.id, "fresh", utcnow() + timedelta(days=1))
        finally:
            pool.dispose()

        assert main(["purge-tokens", "--days", "30"]) == 0
        assert "purged 1 refresh token" in capsys.readouterr().out

    def test_negative_days_rejected(self, db_url, capsys) -> None:
        assert main(["purge-tokens", "--days", "-1"]) == 1
        assert "--days must be >= 0" in capsys.readouterr().out
