from __future__ import annotations

"""
Share ledger apply semantics.

Ops handled here:
- POOL_DEPOSIT         open to any identity; mints shares at the current price
- POOL_REWARD_DEPOSIT  reward depositors only; raises the pool balance only
- POOL_WITHDRAW        burns the caller's whole position for its slice of the balance

Shares vs balance:
  pool.total_shares == sum(pool.positions.values()) at all times.
  pool.balance is the redeemable value (deposits + rewards - payouts).

A reward therefore raises the value of every share outstanding at that moment,
and later deposits buy shares at the raised price, so they get no slice of it.
All divisions round down in favour of the pool; the last withdrawer holds every
outstanding share and receives the balance exactly.

Appliers validate everything before the first mutation; callers still apply on
a copy (see domain_apply.apply_tx_atomic).
"""

from typing import Any, Dict, Optional

from sharepool.ledger.constants import EVENT_DEPOSITED, EVENT_REWARD_DEPOSITED, EVENT_WITHDRAWN
from sharepool.runtime.apply.roles import is_member, owner_of, require_identity
from sharepool.runtime.errors import EmptyPool, InvalidAmount, NotInitialized, NothingToWithdraw, Unauthorized
from sharepool.runtime.tx_types import OP_DEPOSIT, OP_REWARD, OP_WITHDRAW, POOL_OPS, OpEnvelope, PoolEvent

Json = Dict[str, Any]


def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _as_int(x: Any, default: int = 0) -> int:
    try:
        if isinstance(x, bool):
            return default
        return int(x)
    except Exception:
        return default


def _require_amount(raw: Any) -> int:
    # Strict: floats and numeric strings are rejected rather than truncated.
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise InvalidAmount("amount_must_be_integer", {"amount": repr(raw)})
    if raw <= 0:
        raise InvalidAmount("amount_must_be_positive", {"amount": raw})
    return int(raw)


def _require_initialized(state: Json, op: str) -> None:
    if not owner_of(state):
        raise NotInitialized("pool_not_initialized", {"op": op})


def _ensure_pool(state: Json) -> Json:
    pool = state.get("pool")
    if not isinstance(pool, dict):
        pool = {}
        state["pool"] = pool
    if not isinstance(pool.get("positions"), dict):
        pool["positions"] = {}
    pool["total_shares"] = _as_int(pool.get("total_shares"), 0)
    pool["balance"] = _as_int(pool.get("balance"), 0)
    if not isinstance(pool.get("stats"), dict):
        pool["stats"] = {}
    stats = pool["stats"]
    for k in ("deposited_total", "rewarded_total", "paid_out_total", "op_count"):
        stats[k] = _as_int(stats.get(k), 0)
    return pool


def shares_for_deposit(amount: int, total_shares: int, balance: int) -> int:
    """Shares minted for `amount` at the current share price (rounded down)."""
    if total_shares <= 0 or balance <= 0:
        return int(amount)
    return int(amount) * int(total_shares) // int(balance)


def payout_for_shares(shares: int, total_shares: int, balance: int) -> int:
    """Value redeemed by burning `shares` (rounded down; exact when shares == total)."""
    if shares <= 0 or total_shares <= 0:
        return 0
    if shares >= total_shares:
        return int(balance)
    return int(shares) * int(balance) // int(total_shares)


# ---------------------------------------------------------------------------
# Ops
# ---------------------------------------------------------------------------

def _apply_deposit(state: Json, env: OpEnvelope) -> Json:
    caller = require_identity(env.caller, field_name="caller")
    amount = _require_amount(_as_dict(env.payload).get("amount"))
    _require_initialized(state, env.op)

    pool = _ensure_pool(state)
    minted = shares_for_deposit(amount, pool["total_shares"], pool["balance"])
    if minted <= 0:
        raise InvalidAmount(
            "deposit_below_share_price",
            {"amount": amount, "total_shares": pool["total_shares"], "balance": pool["balance"]},
        )

    positions = pool["positions"]
    positions[caller] = _as_int(positions.get(caller), 0) + minted
    pool["total_shares"] += minted
    pool["balance"] += amount
    pool["stats"]["deposited_total"] += amount
    pool["stats"]["op_count"] += 1

    return {
        "applied": OP_DEPOSIT,
        "caller": caller,
        "amount": amount,
        "shares_minted": minted,
        "position": positions[caller],
        "event": PoolEvent(EVENT_DEPOSITED, caller, amount).to_json(),
    }


def _apply_reward_deposit(state: Json, env: OpEnvelope) -> Json:
    caller = require_identity(env.caller, field_name="caller")
    _require_initialized(state, env.op)
    if not is_member(state, caller):
        raise Unauthorized("caller_is_not_reward_depositor", {"caller": caller})
    amount = _require_amount(_as_dict(env.payload).get("amount"))

    pool = _ensure_pool(state)
    if pool["total_shares"] <= 0:
        raise EmptyPool("no_outstanding_positions", {"amount": amount})

    pool["balance"] += amount
    pool["stats"]["rewarded_total"] += amount
    pool["stats"]["op_count"] += 1

    return {
        "applied": OP_REWARD,
        "caller": caller,
        "amount": amount,
        "event": PoolEvent(EVENT_REWARD_DEPOSITED, caller, amount).to_json(),
    }


def _apply_withdraw(state: Json, env: OpEnvelope) -> Json:
    caller = require_identity(env.caller, field_name="caller")
    _require_initialized(state, env.op)

    pool = _ensure_pool(state)
    positions = pool["positions"]
    shares = _as_int(positions.get(caller), 0)
    if shares <= 0:
        raise NothingToWithdraw("no_funded_position", {"caller": caller})

    payout = payout_for_shares(shares, pool["total_shares"], pool["balance"])

    del positions[caller]
    pool["total_shares"] -= shares
    pool["balance"] -= payout
    pool["stats"]["paid_out_total"] += payout
    pool["stats"]["op_count"] += 1

    return {
        "applied": OP_WITHDRAW,
        "caller": caller,
        "shares_burned": shares,
        "payout": payout,
        "event": PoolEvent(EVENT_WITHDRAWN, caller, payout).to_json(),
    }


def apply_pool(state: Json, env: OpEnvelope) -> Optional[Json]:
    """Apply share ledger ops. Returns meta dict if handled; otherwise None."""
    t = str(env.op or "").strip()
    if t not in POOL_OPS:
        return None

    if t == OP_DEPOSIT:
        return _apply_deposit(state, env)
    if t == OP_REWARD:
        return _apply_reward_deposit(state, env)
    if t == OP_WITHDRAW:
        return _apply_withdraw(state, env)

    return None
