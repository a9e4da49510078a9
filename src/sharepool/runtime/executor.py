from __future__ import annotations

import copy
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Optional

from sharepool.ledger.migrations import empty_state, migrate_state_dict
from sharepool.ledger.state import PoolView
from sharepool.runtime.domain_apply import apply_tx
from sharepool.runtime.errors import ApplyError, TransferFailed
from sharepool.runtime.metrics import inc_counter, set_gauge
from sharepool.runtime.sqlite_db import SqliteDB, SqlitePoolStore
from sharepool.runtime.transfer import TransferFn, log_only_transfer
from sharepool.runtime.tx_types import (
    OP_DEPOSIT,
    OP_INIT,
    OP_OWNER_TRANSFER,
    OP_REWARD,
    OP_ROLE_GRANT,
    OP_ROLE_REVOKE,
    OP_WITHDRAW,
    OpEnvelope,
)

Json = Dict[str, Any]

log = logging.getLogger("sharepool.executor")


def _ensure_parent(path: str) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)


class ExecutorError(RuntimeError):
    pass


class PoolExecutor:
    """Single serialization point for the pool.

    Every operation runs under one process-wide lock. With a SQLite store it
    also runs as a read-modify-write inside one write transaction, so several
    processes sharing a DB file stay serializable.

    Withdraw payouts are handed to `transfer` before the commit; if the
    transfer raises, the commit is abandoned and state is unchanged.
    """

    def __init__(
        self,
        *,
        pool_id: str,
        db_path: Optional[str] = None,
        owner: Optional[str] = None,
        transfer: Optional[TransferFn] = None,
    ) -> None:
        self.pool_id = str(pool_id)
        self.db_path = str(db_path) if db_path else ""
        self._transfer: TransferFn = transfer or log_only_transfer
        self._lock = threading.RLock()

        self._store: Optional[SqlitePoolStore] = None
        if self.db_path:
            _ensure_parent(self.db_path)
            self._store = SqlitePoolStore(db=SqliteDB(path=self.db_path))

        # Load or initialize state.
        if self._store is not None:
            self.state = migrate_state_dict(self._store.create_if_missing(empty_state(self.pool_id)))
        else:
            self.state = empty_state(self.pool_id)

        # Fail-closed on pool_id mismatch once state is present.
        st_pool_id = str(self.state.get("pool_id") or "").strip()
        if st_pool_id and st_pool_id != self.pool_id:
            raise ExecutorError(f"pool_id mismatch: db={st_pool_id!r} executor={self.pool_id!r}. Refuse to start.")

        owner_s = str(owner or "").strip()
        if owner_s:
            self._bootstrap_owner(owner_s)

        self._publish_gauges()

    def _bootstrap_owner(self, owner: str) -> None:
        """Install `owner` unless the pool already has one.

        The check reads the stored snapshot inside the write transaction: of
        several workers booting with an owner configured, the first one
        initializes and the others adopt its state.
        """
        env = OpEnvelope(OP_INIT, owner, {"pool_id": self.pool_id})
        applied: Json = {}

        def _mut(st: Json) -> None:
            if not PoolView.from_ledger(migrate_state_dict(st)).initialized:
                applied["meta"] = apply_tx(st, env)

        with self._lock:
            if self._store is None:
                working: Json = copy.deepcopy(self.state)
                _mut(working)
                self.state = working
            else:
                self.state = self._store.update(_mut)

        if applied:
            inc_counter("ops_total")
            inc_counter(f"ops_{OP_INIT.lower()}")
            log.info("pool initialized pool_id=%s owner=%s", self.pool_id, owner)

    # ------------------------------------------------------------------
    # Core commit path
    # ------------------------------------------------------------------

    @staticmethod
    def _count_failure(e: ApplyError) -> None:
        inc_counter("ops_failed")
        inc_counter(f"ops_failed_{e.code}")

    def _deliver(self, meta: Json) -> None:
        if meta.get("applied") != OP_WITHDRAW:
            return
        caller = str(meta.get("caller") or "")
        payout = int(meta.get("payout") or 0)
        if payout <= 0:
            return
        try:
            self._transfer(caller, payout)
        except Exception as e:
            raise TransferFailed("payout_not_delivered", {"caller": caller, "payout": payout, "error": str(e)}) from e

    def _step(self, st: Json, env: OpEnvelope) -> Json:
        meta = apply_tx(st, env)
        self._deliver(meta)
        return meta

    def _commit(self, env: OpEnvelope) -> Json:
        if self._store is None:
            working: Json = copy.deepcopy(self.state)
            meta = self._step(working, env)
            self.state = working
            return meta

        out: Json = {}

        def _mut(st: Json) -> None:
            out["meta"] = self._step(migrate_state_dict(st), env)

        self.state = self._store.update(_mut)
        return out["meta"]

    def submit(self, env: Any) -> Json:
        """Apply one op envelope atomically and return its meta."""
        try:
            env_norm = OpEnvelope.from_json(env)
        except ApplyError as e:
            self._count_failure(e)
            log.info("op rejected code=%s reason=%s", e.code, e.reason)
            raise

        with self._lock:
            try:
                meta = self._commit(env_norm)
            except ApplyError as e:
                self._count_failure(e)
                log.info("op rejected op=%s caller=%s code=%s reason=%s", env_norm.op, env_norm.caller, e.code, e.reason)
                raise

            inc_counter("ops_total")
            inc_counter(f"ops_{env_norm.op.lower()}")
            self._publish_gauges()

        event = meta.get("event")
        if isinstance(event, dict):
            log.info("event kind=%s caller=%s amount=%s", event.get("kind"), event.get("caller"), event.get("amount"))
        else:
            log.info("op applied op=%s caller=%s meta=%s", env_norm.op, env_norm.caller, meta)
        return meta

    def _publish_gauges(self) -> None:
        v = self.view()
        set_gauge("total_shares", v.total_shares)
        set_gauge("balance", v.balance)
        set_gauge("depositors", len(v.positions))

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def initialize(self, owner: str) -> Json:
        return self.submit(OpEnvelope(OP_INIT, owner, {"pool_id": self.pool_id}))

    def deposit(self, caller: str, amount: int) -> Json:
        return self.submit(OpEnvelope(OP_DEPOSIT, caller, {"amount": amount}))

    def inject_reward(self, caller: str, amount: int) -> Json:
        return self.submit(OpEnvelope(OP_REWARD, caller, {"amount": amount}))

    def withdraw(self, caller: str) -> Json:
        return self.submit(OpEnvelope(OP_WITHDRAW, caller, {}))

    def grant_role(self, caller: str, target: str) -> Json:
        return self.submit(OpEnvelope(OP_ROLE_GRANT, caller, {"target": target}))

    def revoke_role(self, caller: str, target: str) -> Json:
        return self.submit(OpEnvelope(OP_ROLE_REVOKE, caller, {"target": target}))

    def transfer_ownership(self, caller: str, new_owner: str) -> Json:
        return self.submit(OpEnvelope(OP_OWNER_TRANSFER, caller, {"new_owner": new_owner}))

    # ------------------------------------------------------------------
    # Queries (read-only, no authorization)
    # ------------------------------------------------------------------

    def read_state(self) -> Json:
        with self._lock:
            return copy.deepcopy(self.state)

    def refresh(self) -> None:
        """Reload the snapshot written by other processes sharing the DB."""
        if self._store is None:
            return
        with self._lock:
            self.state = migrate_state_dict(self._store.read())

    def view(self) -> PoolView:
        with self._lock:
            return PoolView.from_ledger(self.state)

    def query_position(self, identity: str) -> int:
        return self.view().position(identity)

    def query_pool_total(self) -> int:
        return self.view().total_shares

    def query_pool_balance(self) -> int:
        return self.view().balance

    def query_redeemable(self, identity: str) -> int:
        return self.view().redeemable(identity)

    def query_is_member(self, identity: str) -> bool:
        return self.view().is_member(identity)

    def query_owner(self) -> str:
        return self.view().owner
