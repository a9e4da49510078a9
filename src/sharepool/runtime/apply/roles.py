from __future__ import annotations

"""
Access registry apply semantics.

Ops handled here:
- POOL_INIT (owner bootstrap; owner becomes a reward depositor)
- ROLE_REWARD_DEPOSITOR_GRANT / ROLE_REWARD_DEPOSITOR_REVOKE (owner only, idempotent)
- ROLE_OWNER_TRANSFER (owner only)

Grant/revoke never fail on an already-correct membership; the meta reports
`deduped` instead. The owner may revoke its own capability.
"""

from typing import Any, Dict, List, Optional

from sharepool.ledger.constants import REWARD_DEPOSITOR_ROLE
from sharepool.runtime.errors import AlreadyInitialized, InvalidIdentity, NotInitialized, Unauthorized
from sharepool.runtime.tx_types import OP_INIT, OP_OWNER_TRANSFER, OP_ROLE_GRANT, OP_ROLE_REVOKE, ROLE_OPS, OpEnvelope

Json = Dict[str, Any]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _as_dict(x: Any) -> Json:
    return x if isinstance(x, dict) else {}


def _as_str(x: Any) -> str:
    return x if isinstance(x, str) else ""


def require_identity(raw: Any, *, field_name: str = "identity") -> str:
    s = _as_str(raw).strip()
    if not s:
        raise InvalidIdentity("missing_identity", {"field": field_name})
    return s


def _ensure_roles(state: Json) -> Json:
    roles = state.get("roles")
    if not isinstance(roles, dict):
        roles = {}
        state["roles"] = roles
    roles.setdefault("owner", "")
    if not isinstance(roles.get(REWARD_DEPOSITOR_ROLE), list):
        roles[REWARD_DEPOSITOR_ROLE] = []
    return roles


def _members(roles: Json) -> List[str]:
    return [m for m in roles.get(REWARD_DEPOSITOR_ROLE, []) if isinstance(m, str)]


def owner_of(state: Json) -> str:
    return _as_str(_as_dict(state.get("roles")).get("owner")).strip()


def is_member(state: Json, identity: str) -> bool:
    ident = _as_str(identity).strip()
    if not ident:
        return False
    return ident in _members(_as_dict(state.get("roles")))


def _require_owner(state: Json, caller: str, op: str) -> None:
    owner = owner_of(state)
    if not owner:
        raise NotInitialized("pool_has_no_owner", {"op": op})
    if caller != owner:
        raise Unauthorized("caller_is_not_owner", {"op": op, "caller": caller})


# ---------------------------------------------------------------------------
# Ops
# ---------------------------------------------------------------------------

def _apply_pool_init(state: Json, env: OpEnvelope) -> Json:
    owner = require_identity(env.caller, field_name="caller")
    if owner_of(state):
        raise AlreadyInitialized("pool_already_has_owner", {"owner": owner_of(state)})

    roles = _ensure_roles(state)
    roles["owner"] = owner
    roles[REWARD_DEPOSITOR_ROLE] = sorted({*_members(roles), owner})

    pool_id = _as_str(_as_dict(env.payload).get("pool_id")).strip()
    if pool_id:
        state["pool_id"] = pool_id
    return {"applied": OP_INIT, "owner": owner, "pool_id": str(state.get("pool_id") or "")}


def _apply_role_grant(state: Json, env: OpEnvelope) -> Json:
    caller = require_identity(env.caller, field_name="caller")
    target = require_identity(_as_dict(env.payload).get("target"), field_name="target")
    _require_owner(state, caller, env.op)

    roles = _ensure_roles(state)
    members = _members(roles)
    had = target in members
    if not had:
        roles[REWARD_DEPOSITOR_ROLE] = sorted({*members, target})
    return {"applied": OP_ROLE_GRANT, "target": target, "deduped": had}


def _apply_role_revoke(state: Json, env: OpEnvelope) -> Json:
    caller = require_identity(env.caller, field_name="caller")
    target = require_identity(_as_dict(env.payload).get("target"), field_name="target")
    _require_owner(state, caller, env.op)

    roles = _ensure_roles(state)
    members = _members(roles)
    already = target not in members
    if not already:
        roles[REWARD_DEPOSITOR_ROLE] = sorted(m for m in members if m != target)
    return {"applied": OP_ROLE_REVOKE, "target": target, "deduped": already}


def _apply_owner_transfer(state: Json, env: OpEnvelope) -> Json:
    caller = require_identity(env.caller, field_name="caller")
    new_owner = require_identity(_as_dict(env.payload).get("new_owner"), field_name="new_owner")
    _require_owner(state, caller, env.op)

    roles = _ensure_roles(state)
    roles["owner"] = new_owner
    return {"applied": OP_OWNER_TRANSFER, "previous_owner": caller, "owner": new_owner, "deduped": new_owner == caller}


def apply_roles(state: Json, env: OpEnvelope) -> Optional[Json]:
    """Apply access registry ops. Returns meta dict if handled; otherwise None."""
    t = str(env.op or "").strip()
    if t not in ROLE_OPS:
        return None

    if t == OP_INIT:
        return _apply_pool_init(state, env)
    if t == OP_ROLE_GRANT:
        return _apply_role_grant(state, env)
    if t == OP_ROLE_REVOKE:
        return _apply_role_revoke(state, env)
    if t == OP_OWNER_TRANSFER:
        return _apply_owner_transfer(state, env)

    return None
