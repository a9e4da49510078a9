# src/sharepool/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying op envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from collections.abc import MutableMapping
from typing import Any, Callable, Dict, Optional, Tuple

from sharepool.runtime.apply.pool import apply_pool
from sharepool.runtime.apply.roles import apply_roles
from sharepool.runtime.errors import ApplyError, UnknownOperation
from sharepool.runtime.tx_types import OpEnvelope

Json = Dict[str, Any]
ApplyFn = Callable[[Json, OpEnvelope], Optional[Json]]

# Order matters only for readability; op sets are disjoint.
_APPLIERS: Tuple[ApplyFn, ...] = (apply_roles, apply_pool)


def apply_tx(state: Json, env: Any) -> Json:
    """Route an envelope to its applier and mutate `state` in place.

    Raises ApplyError (or a subclass) on rejection. Appliers validate before
    mutating, but callers that need all-or-nothing semantics should use
    apply_tx_atomic().
    """
    if not isinstance(state, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(state)}")

    env_norm = OpEnvelope.from_json(env)
    for fn in _APPLIERS:
        meta = fn(state, env_norm)  # type: ignore[arg-type]
        if meta is not None:
            return meta

    raise UnknownOperation("op_not_supported", {"op": env_norm.op})


def apply_tx_atomic(state: Json, env: Any) -> Json:
    """Apply an op with fail-atomic semantics.

    On success:
      - state is updated as if apply_tx() ran directly.

    On ApplyError:
      - state remains unchanged.
    """
    # Apply on a deep copy to guarantee atomicity.
    snapshot = copy.deepcopy(state)
    meta = apply_tx(snapshot, env)

    # Commit by replacing contents in-place so callers holding references
    # to `state` see the updated view.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ApplyError", "apply_tx", "apply_tx_atomic", "Json"]
