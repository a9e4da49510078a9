from __future__ import annotations

import pytest

from sharepool.ledger.migrations import empty_state
from sharepool.ledger.state import PoolView
from sharepool.runtime.domain_apply import ApplyError, apply_tx
from sharepool.runtime.tx_types import (
    OP_INIT,
    OP_OWNER_TRANSFER,
    OP_REWARD,
    OP_ROLE_GRANT,
    OP_ROLE_REVOKE,
    OpEnvelope,
)


def _env(op: str, caller: str, **payload) -> OpEnvelope:
    return OpEnvelope(op=op, caller=caller, payload=payload)


def _booted(owner: str = "owner") -> dict:
    st = empty_state("registry-test")
    apply_tx(st, _env(OP_INIT, owner))
    return st


def test_init_makes_owner_a_reward_depositor() -> None:
    st = _booted("owner")
    v = PoolView.from_ledger(st)

    assert v.initialized
    assert v.owner == "owner"
    assert v.is_member("owner")
    assert not v.is_member("alice")


def test_init_twice_is_rejected() -> None:
    st = _booted("owner")
    with pytest.raises(ApplyError) as ei:
        apply_tx(st, _env(OP_INIT, "mallory"))
    assert ei.value.code == "already_initialized"
    assert PoolView.from_ledger(st).owner == "owner"


def test_owner_grants_and_revokes() -> None:
    st = _booted()

    meta = apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="carol"))
    assert meta["applied"] == OP_ROLE_GRANT
    assert meta["deduped"] is False
    assert PoolView.from_ledger(st).is_member("carol")

    meta = apply_tx(st, _env(OP_ROLE_REVOKE, "owner", target="carol"))
    assert meta["deduped"] is False
    assert not PoolView.from_ledger(st).is_member("carol")


def test_grant_and_revoke_are_idempotent() -> None:
    st = _booted()

    apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="carol"))
    meta = apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="carol"))
    assert meta["deduped"] is True
    assert st["roles"]["reward_depositors"].count("carol") == 1

    meta = apply_tx(st, _env(OP_ROLE_REVOKE, "owner", target="dave"))
    assert meta["deduped"] is True
    assert "dave" not in st["roles"]["reward_depositors"]


def test_membership_list_stays_sorted() -> None:
    st = _booted("owner")
    for who in ("zed", "bob", "mia"):
        apply_tx(st, _env(OP_ROLE_GRANT, "owner", target=who))
    assert st["roles"]["reward_depositors"] == ["bob", "mia", "owner", "zed"]


@pytest.mark.parametrize("op", [OP_ROLE_GRANT, OP_ROLE_REVOKE])
def test_non_owner_cannot_change_membership(op: str) -> None:
    st = _booted()
    apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="carol"))
    before = list(st["roles"]["reward_depositors"])

    # Even a reward depositor may not manage the role.
    with pytest.raises(ApplyError) as ei:
        apply_tx(st, _env(op, "carol", target="eve"))
    assert ei.value.code == "unauthorized"
    assert st["roles"]["reward_depositors"] == before


def test_grant_before_init_is_not_initialized() -> None:
    st = empty_state("registry-test")
    with pytest.raises(ApplyError) as ei:
        apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="carol"))
    assert ei.value.code == "not_initialized"


def test_blank_target_is_invalid_identity() -> None:
    st = _booted()
    with pytest.raises(ApplyError) as ei:
        apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="   "))
    assert ei.value.code == "invalid_identity"


def test_owner_may_revoke_itself_and_then_cannot_inject() -> None:
    st = _booted("owner")
    apply_tx(st, _env(OP_ROLE_REVOKE, "owner", target="owner"))

    v = PoolView.from_ledger(st)
    assert v.owner == "owner"
    assert not v.is_member("owner")

    # Ownership still allows re-granting.
    apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="owner"))
    assert PoolView.from_ledger(st).is_member("owner")


def test_revoked_member_loses_reward_capability() -> None:
    st = _booted("owner")
    apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="carol"))
    apply_tx(st, _env(OP_ROLE_REVOKE, "owner", target="carol"))

    with pytest.raises(ApplyError) as ei:
        apply_tx(st, _env(OP_REWARD, "carol", amount=10))
    assert ei.value.code == "unauthorized"


def test_ownership_transfer_moves_admin_rights_only() -> None:
    st = _booted("owner")

    meta = apply_tx(st, _env(OP_OWNER_TRANSFER, "owner", new_owner="heir"))
    assert meta["previous_owner"] == "owner"
    assert meta["owner"] == "heir"

    v = PoolView.from_ledger(st)
    assert v.owner == "heir"
    # Membership is not implied by ownership.
    assert v.is_member("owner")
    assert not v.is_member("heir")

    with pytest.raises(ApplyError) as ei:
        apply_tx(st, _env(OP_ROLE_GRANT, "owner", target="carol"))
    assert ei.value.code == "unauthorized"

    apply_tx(st, _env(OP_ROLE_GRANT, "heir", target="carol"))
    assert PoolView.from_ledger(st).is_member("carol")


def test_ownership_transfer_by_stranger_is_rejected() -> None:
    st = _booted("owner")
    with pytest.raises(ApplyError) as ei:
        apply_tx(st, _env(OP_OWNER_TRANSFER, "mallory", new_owner="mallory"))
    assert ei.value.code == "unauthorized"
    assert PoolView.from_ledger(st).owner == "owner"
