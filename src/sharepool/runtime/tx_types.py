from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict

from sharepool.runtime.errors import UnknownOperation

# Operation names accepted by the dispatcher.
OP_INIT = "POOL_INIT"
OP_DEPOSIT = "POOL_DEPOSIT"
OP_REWARD = "POOL_REWARD_DEPOSIT"
OP_WITHDRAW = "POOL_WITHDRAW"
OP_ROLE_GRANT = "ROLE_REWARD_DEPOSITOR_GRANT"
OP_ROLE_REVOKE = "ROLE_REWARD_DEPOSITOR_REVOKE"
OP_OWNER_TRANSFER = "ROLE_OWNER_TRANSFER"

POOL_OPS = frozenset({OP_DEPOSIT, OP_REWARD, OP_WITHDRAW})
ROLE_OPS = frozenset({OP_INIT, OP_ROLE_GRANT, OP_ROLE_REVOKE, OP_OWNER_TRANSFER})


@dataclass(frozen=True)
class PoolEvent:
    """Observable event emitted by a successful operation."""

    kind: str  # "Deposited" | "RewardDeposited" | "Withdrawn"
    caller: str
    amount: int

    def to_json(self) -> Dict[str, Any]:
        return {"kind": self.kind, "caller": self.caller, "amount": int(self.amount)}


@dataclass(frozen=True)
class OpEnvelope:
    """A single state-transition request.

    `caller` is the already-authenticated identity; the core never verifies it.
    """

    op: str
    caller: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @staticmethod
    def from_json(j: Any) -> "OpEnvelope":
        """Accept an OpEnvelope or a JSON object.

        A non-object envelope or payload is rejected with `unknown_op`; a
        missing payload is an empty one.
        """
        if isinstance(j, OpEnvelope):
            return j
        if not isinstance(j, Mapping):
            raise UnknownOperation("envelope_not_an_object", {"type": type(j).__name__})

        payload = j.get("payload")
        if payload is None:
            payload = {}
        if not isinstance(payload, Mapping):
            raise UnknownOperation("payload_not_an_object", {"op": str(j.get("op", "")), "type": type(payload).__name__})

        return OpEnvelope(op=str(j.get("op", "")), caller=str(j.get("caller", "")), payload=dict(payload))

    def to_json(self) -> Dict[str, Any]:
        return {"op": self.op, "caller": self.caller, "payload": self.payload}
