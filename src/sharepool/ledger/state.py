from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List

from sharepool.ledger.constants import REWARD_DEPOSITOR_ROLE

Json = Dict[str, Any]


def _as_int(v: Any, default: int = 0) -> int:
    try:
        if isinstance(v, bool):
            return default
        return int(v)
    except Exception:
        return default


@dataclass(frozen=True, slots=True)
class PoolView:
    """
    Immutable read-only pool view used by queries and the HTTP layer.
    """

    pool_id: str = ""
    owner: str = ""
    reward_depositors: List[str] = field(default_factory=list)
    positions: Dict[str, int] = field(default_factory=dict)
    total_shares: int = 0
    balance: int = 0
    stats: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_ledger(cls, state: Dict[str, Any]) -> "PoolView":
        roles = state.get("roles") if isinstance(state.get("roles"), dict) else {}
        pool = state.get("pool") if isinstance(state.get("pool"), dict) else {}
        members = roles.get(REWARD_DEPOSITOR_ROLE)
        positions = pool.get("positions")
        stats = pool.get("stats")
        return cls(
            pool_id=str(state.get("pool_id") or ""),
            owner=str(roles.get("owner") or ""),
            reward_depositors=list(members) if isinstance(members, list) else [],
            positions=copy.deepcopy(positions) if isinstance(positions, dict) else {},
            total_shares=_as_int(pool.get("total_shares"), 0),
            balance=_as_int(pool.get("balance"), 0),
            stats=copy.deepcopy(stats) if isinstance(stats, dict) else {},
        )

    @property
    def initialized(self) -> bool:
        return bool(self.owner)

    def position(self, identity: str) -> int:
        return _as_int(self.positions.get(str(identity or "").strip()), 0)

    def is_member(self, identity: str) -> bool:
        return str(identity or "").strip() in self.reward_depositors

    def redeemable(self, identity: str) -> int:
        """Amount a withdraw by `identity` would pay out right now."""
        shares = self.position(identity)
        if shares <= 0 or self.total_shares <= 0:
            return 0
        return shares * self.balance // self.total_shares

    def invariant_ok(self) -> bool:
        if self.total_shares != sum(_as_int(v) for v in self.positions.values()):
            return False
        if any(_as_int(v) <= 0 for v in self.positions.values()):
            return False
        if self.total_shares == 0 and self.balance != 0:
            return False
        return self.balance >= 0

    def summary(self) -> Json:
        return {
            "pool_id": self.pool_id,
            "owner": self.owner,
            "initialized": self.initialized,
            "total_shares": int(self.total_shares),
            "balance": int(self.balance),
            "depositors": len(self.positions),
            "reward_depositors": list(self.reward_depositors),
            "stats": dict(self.stats),
        }
