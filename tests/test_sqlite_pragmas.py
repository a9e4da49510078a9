from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from sharepool.runtime.sqlite_db import SqliteDB


def _pragma(con: sqlite3.Connection, name: str) -> int | str:
    row = con.execute(f"PRAGMA {name};").fetchone()
    if row is None:
        raise AssertionError(f"missing pragma: {name}")
    return row[0]


def test_sqlite_operational_pragmas_are_applied(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHAREPOOL_MODE", "prod")
    monkeypatch.delenv("SHAREPOOL_SQLITE_SYNCHRONOUS", raising=False)
    monkeypatch.setenv("SHAREPOOL_SQLITE_BUSY_TIMEOUT_MS", "1234")
    monkeypatch.setenv("SHAREPOOL_SQLITE_WAL_AUTOCHECKPOINT", "777")

    db = SqliteDB(path=str(tmp_path / "sharepool.db"))
    db.init_schema()

    with db.connection() as con:
        assert str(_pragma(con, "journal_mode")).lower() == "wal"

        # FULL is the prod default.
        assert int(_pragma(con, "synchronous")) == 2
        assert int(_pragma(con, "foreign_keys")) == 1
        # MEMORY corresponds to 2
        assert int(_pragma(con, "temp_store")) == 2
        assert int(_pragma(con, "busy_timeout")) == 1234
        assert int(_pragma(con, "wal_autocheckpoint")) == 777


def test_non_prod_defaults_to_normal_sync(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHAREPOOL_MODE", "dev")
    monkeypatch.delenv("SHAREPOOL_SQLITE_SYNCHRONOUS", raising=False)

    db = SqliteDB(path=str(tmp_path / "sharepool.db"))
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 1


def test_bogus_sync_override_falls_back(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SHAREPOOL_MODE", "prod")
    monkeypatch.setenv("SHAREPOOL_SQLITE_SYNCHRONOUS", "sometimes")

    db = SqliteDB(path=str(tmp_path / "sharepool.db"))
    with db.connection() as con:
        assert int(_pragma(con, "synchronous")) == 2


def test_schema_version_mismatch_refuses_to_start(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "sharepool.db"))
    db.init_schema()

    with db.write_tx() as con:
        con.execute("UPDATE meta SET value='99' WHERE key='schema_version';")

    with pytest.raises(RuntimeError):
        db.init_schema()


def test_write_tx_rolls_back_on_error(tmp_path: Path) -> None:
    db = SqliteDB(path=str(tmp_path / "sharepool.db"))
    db.init_schema()

    with pytest.raises(ValueError):
        with db.write_tx() as con:
            con.execute("INSERT INTO meta(key, value) VALUES('scratch', 'x');")
            raise ValueError("boom")

    with db.connection() as con:
        assert con.execute("SELECT 1 FROM meta WHERE key='scratch';").fetchone() is None
