from __future__ import annotations

import multiprocessing as mp
from pathlib import Path

from sharepool.runtime.executor import PoolExecutor
from sharepool.runtime.sqlite_db import SqliteDB, SqlitePoolStore


def _bump_worker(db_path: str, n: int) -> None:
    store = SqlitePoolStore(db=SqliteDB(path=db_path))

    def bump(st: dict) -> None:
        try:
            iv = int(st.get("value"))
        except Exception:
            iv = 0
        st["value"] = iv + 1

    for _ in range(int(n)):
        store.update(bump)


def _deposit_worker(db_path: str, who: str, n: int) -> None:
    ex = PoolExecutor(pool_id="concurrency", db_path=db_path)
    for _ in range(int(n)):
        ex.deposit(who, 1)


def _run_all(procs: list[mp.Process]) -> None:
    for pr in procs:
        pr.start()
    for pr in procs:
        pr.join(60)
        assert pr.exitcode == 0


def test_sqlite_pool_store_update_is_cross_process_safe(tmp_path: Path) -> None:
    """Several processes increment one counter inside the snapshot; none is lost."""
    db_path = str(tmp_path / "store.db")
    store = SqlitePoolStore(db=SqliteDB(path=db_path))
    store.write({"value": 0, "pool_id": "concurrency"})

    workers, per = 4, 100
    _run_all([mp.Process(target=_bump_worker, args=(db_path, per)) for _ in range(workers)])

    assert int(store.read().get("value", -1)) == workers * per


def test_executors_in_separate_processes_serialize_deposits(tmp_path: Path) -> None:
    db_path = str(tmp_path / "pool.db")
    PoolExecutor(pool_id="concurrency", db_path=db_path, owner="owner")

    people, per = ("alice", "bob", "carol"), 40
    _run_all([mp.Process(target=_deposit_worker, args=(db_path, who, per)) for who in people])

    ex = PoolExecutor(pool_id="concurrency", db_path=db_path)
    v = ex.view()
    assert v.total_shares == len(people) * per
    assert v.balance == len(people) * per
    assert all(v.position(who) == per for who in people)
    assert v.invariant_ok()
