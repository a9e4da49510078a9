# src/sharepool/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Tuple

Json = Dict[str, Any]

_SYNC_LEVELS = ("OFF", "NORMAL", "FULL", "EXTRA")

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS meta (
      key TEXT PRIMARY KEY,
      value TEXT NOT NULL
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS pool_state (
      id INTEGER PRIMARY KEY CHECK (id = 1),
      pool_id TEXT NOT NULL,
      op_count INTEGER NOT NULL,
      state_json TEXT NOT NULL,
      updated_ts_ms INTEGER NOT NULL
    );
    """,
)


def _now_ms() -> int:
    return int(time.time() * 1000)


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def _env_flag(name: str) -> bool:
    return (os.environ.get(name) or "").strip().lower() in {"1", "true", "yes", "on"}


def _canon_json(obj: Any) -> str:
    # No default=str: a non-JSON value in pool state is a bug and must raise here.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def sync_level() -> str:
    """PRAGMA synchronous for the current mode.

    FULL in prod, NORMAL elsewhere. SHAREPOOL_SQLITE_SYNCHRONOUS overrides it
    when set to one of OFF/NORMAL/FULL/EXTRA; anything else is ignored.
    """
    mode = (os.environ.get("SHAREPOOL_MODE") or "prod").strip().lower()
    fallback = "FULL" if mode == "prod" else "NORMAL"
    wanted = (os.environ.get("SHAREPOOL_SQLITE_SYNCHRONOUS") or "").strip().upper()
    return wanted if wanted in _SYNC_LEVELS else fallback


def _tuning_pragmas(busy_ms: int) -> List[str]:
    return [
        f"PRAGMA synchronous={sync_level()};",
        "PRAGMA foreign_keys=ON;",
        "PRAGMA temp_store=MEMORY;",
        f"PRAGMA wal_autocheckpoint={max(1, _env_int('SHAREPOOL_SQLITE_WAL_AUTOCHECKPOINT', 1000))};",
        f"PRAGMA busy_timeout={busy_ms};",
    ]


def _is_lock_contention(e: sqlite3.OperationalError) -> bool:
    msg = str(e).lower()
    return "locked" in msg or "busy" in msg


class SqliteDB:
    """One SQLite file holding the pool snapshot.

    Connections are opened per operation and never shared, so the object is
    safe to use from several threads. Cross-process safety comes from SQLite's
    own locking: writers go through write_tx(), which takes the write lock with
    BEGIN IMMEDIATE and retries with jittered backoff while another process
    holds it.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    def _open(self) -> sqlite3.Connection:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        timeout_ms = _env_int("SHAREPOOL_SQLITE_CONNECT_TIMEOUT_MS", 30_000)

        # isolation_level=None: transactions are issued explicitly by write_tx().
        con = sqlite3.connect(self.path, timeout=timeout_ms / 1000.0, isolation_level=None, check_same_thread=False)
        con.row_factory = sqlite3.Row

        try:
            self._require_wal(con)
            for stmt in _tuning_pragmas(max(0, _env_int("SHAREPOOL_SQLITE_BUSY_TIMEOUT_MS", timeout_ms))):
                con.execute(stmt)
        except Exception:
            con.close()
            raise
        return con

    @staticmethod
    def _require_wal(con: sqlite3.Connection) -> None:
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        journal = str(row[0]).strip().lower() if row is not None else ""
        if journal != "wal" and not _env_flag("SHAREPOOL_SQLITE_ALLOW_NON_WAL"):
            raise RuntimeError(f"sqlite journal_mode is {journal!r}; WAL is required (SHAREPOOL_SQLITE_ALLOW_NON_WAL=1 to waive)")

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._open()
        try:
            yield con
        finally:
            con.close()

    def init_schema(self) -> None:
        with self.write_tx() as con:
            for ddl in _SCHEMA:
                con.execute(ddl)

            row = con.execute("SELECT value FROM meta WHERE key='schema_version';").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
                return

            have = str(row["value"]).strip()
            if have != str(self.SCHEMA_VERSION):
                raise RuntimeError(
                    f"sqlite schema_version is {have!r}, this build expects {self.SCHEMA_VERSION}; refusing to open"
                )

    @staticmethod
    def _retrying(con: sqlite3.Connection, sql: str, deadline_ms: int) -> None:
        base_s = max(1, _env_int("SHAREPOOL_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0
        cap_s = max(base_s, _env_int("SHAREPOOL_SQLITE_WRITE_BACKOFF_MAX_MS", 250) / 1000.0)

        attempt = 0
        while True:
            try:
                con.execute(sql)
                return
            except sqlite3.OperationalError as e:
                if not _is_lock_contention(e) or _now_ms() >= deadline_ms:
                    raise
            delay = min(cap_s, base_s * (2 ** min(attempt, 8)))
            time.sleep(delay * random.uniform(0.5, 1.5))
            attempt += 1

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Exclusive write transaction.

        BEGIN and COMMIT are retried on lock contention until
        SHAREPOOL_SQLITE_WRITE_DEADLINE_MS (default 30s) elapses, then the
        lock error propagates. An exception from the body rolls back.
        """
        deadline_ms = _now_ms() + max(250, _env_int("SHAREPOOL_SQLITE_WRITE_DEADLINE_MS", 30_000))

        with self.connection() as con:
            self._retrying(con, "BEGIN IMMEDIATE;", deadline_ms)
            try:
                yield con
                self._retrying(con, "COMMIT;", deadline_ms)
            except BaseException:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass
                raise


class SqlitePoolStore:
    """The pool snapshot as a single JSON row.

    update() is the only way the executor writes after boot: it re-reads the
    row inside the write transaction, so concurrent processes never lose each
    other's commits.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    @staticmethod
    def _load(con: sqlite3.Connection) -> Json:
        row = con.execute("SELECT state_json FROM pool_state WHERE id=1;").fetchone()
        if row is None:
            raise FileNotFoundError("pool_state row is missing; create it with write() first")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("pool_state.state_json is not a JSON object")
        return st

    @staticmethod
    def _row(st: Json) -> Tuple[str, int, str, int]:
        pool = st.get("pool") if isinstance(st.get("pool"), dict) else {}
        stats = pool.get("stats") if isinstance(pool.get("stats"), dict) else {}
        op_count = stats.get("op_count")
        return (
            str(st.get("pool_id") or "").strip(),
            op_count if isinstance(op_count, int) and not isinstance(op_count, bool) else 0,
            _canon_json(st),
            _now_ms(),
        )

    def read(self) -> Json:
        with self._db.connection() as con:
            return self._load(con)

    def write(self, st: Json) -> None:
        if not isinstance(st, dict):
            raise ValueError("pool snapshot must be a dict")
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT OR REPLACE INTO pool_state(id, pool_id, op_count, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?, ?);
                """,
                self._row(st),
            )

    def create_if_missing(self, st: Json) -> Json:
        """Store `st` unless a snapshot already exists; return the stored one.

        Check and insert share one write transaction, so a process booting
        next to a live writer adopts its commits instead of replacing them.
        """
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT OR IGNORE INTO pool_state(id, pool_id, op_count, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?, ?);
                """,
                self._row(st),
            )
            return self._load(con)

    def update(self, mut: Callable[[Json], Any]) -> Json:
        """Run `mut` on the stored snapshot and persist the result atomically.

        Returns the committed snapshot. If `mut` raises, the row is untouched.
        """
        with self._db.write_tx() as con:
            st = self._load(con)
            mut(st)
            pool_id, op_count, payload, ts = self._row(st)
            con.execute(
                "UPDATE pool_state SET pool_id=?, op_count=?, state_json=?, updated_ts_ms=? WHERE id=1;",
                (pool_id, op_count, payload, ts),
            )
        return st
