# src/sharepool/ledger/migrations.py
from __future__ import annotations

"""Versioned upgrades for the persisted pool snapshot.

Each step in `_MIGRATIONS` takes a state at version N and returns it at N+1.
A snapshot written by a newer build is refused rather than guessed at.
"""

from typing import Any, Callable, Dict, List

from sharepool.ledger.constants import REWARD_DEPOSITOR_ROLE

Json = Dict[str, Any]

# Bump together with a new entry in _MIGRATIONS.
CURRENT_STATE_VERSION = 1

_STAT_KEYS = ("deposited_total", "rewarded_total", "paid_out_total", "op_count")


def _int_or(v: Any, default: int = 0) -> int:
    if isinstance(v, bool):
        return default
    try:
        return int(v)
    except (TypeError, ValueError):
        return default


def _sub(root: Json, key: str) -> Json:
    node = root.get(key)
    if not isinstance(node, dict):
        node = root[key] = {}
    return node


def _clean_str(v: Any) -> str:
    return "" if v is None else str(v).strip()


def _members(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    return sorted({m.strip() for m in raw if isinstance(m, str) and m.strip()})


def _positions(raw: Json) -> Dict[str, int]:
    out: Dict[str, int] = {}
    for ident, shares in raw.items():
        n = _int_or(shares)
        if isinstance(ident, str) and ident.strip() and n > 0:
            out[ident] = n
    return out


def _migrate_v0_to_v1(st: Json) -> Json:
    """Unversioned snapshots: fill missing roots and drop malformed entries.

    total_shares is recomputed from the positions; a persisted value that
    disagrees is discarded.
    """
    st["pool_id"] = _clean_str(st.get("pool_id"))

    roles = _sub(st, "roles")
    roles["owner"] = _clean_str(roles.get("owner"))
    roles[REWARD_DEPOSITOR_ROLE] = _members(roles.get(REWARD_DEPOSITOR_ROLE))

    pool = _sub(st, "pool")
    pool["positions"] = _positions(_sub(pool, "positions"))
    pool["total_shares"] = sum(pool["positions"].values())
    pool["balance"] = _int_or(pool.get("balance")) if pool["total_shares"] else 0

    stats = _sub(pool, "stats")
    for k in _STAT_KEYS:
        stats[k] = _int_or(stats.get(k))

    st["state_version"] = 1
    return st


_MIGRATIONS: Dict[int, Callable[[Json], Json]] = {
    0: _migrate_v0_to_v1,
}


def migrate_state_dict(raw: Any) -> Json:
    """Bring `raw` up to CURRENT_STATE_VERSION, mutating it in place.

    Non-dict input yields a fresh skeleton. Raises ValueError for a version
    newer than this build or one with no migration path.
    """
    st: Json = raw if isinstance(raw, dict) else {}

    version = _int_or(st.get("state_version"))
    if version > CURRENT_STATE_VERSION:
        raise ValueError(f"pool state_version {version} is newer than supported ({CURRENT_STATE_VERSION})")

    while version < CURRENT_STATE_VERSION:
        step = _MIGRATIONS.get(version)
        if step is None:
            raise ValueError(f"no migration from state_version {version}")
        st = step(st)
        version += 1

    st["state_version"] = CURRENT_STATE_VERSION
    return st


def empty_state(pool_id: str = "") -> Json:
    """A fresh, ownerless snapshot at the current version."""
    st = migrate_state_dict({})
    st["pool_id"] = _clean_str(pool_id)
    return st
