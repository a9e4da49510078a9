from __future__ import annotations

from typing import Iterator, Tuple

import pytest
from fastapi.testclient import TestClient

from sharepool.runtime.executor import PoolExecutor
from sharepool.runtime.transfer import RecordingTransfer

H = "X-Pool-Caller"


@pytest.fixture()
def api(monkeypatch: pytest.MonkeyPatch) -> Iterator[Tuple[TestClient, RecordingTransfer]]:
    from sharepool.api import app as api_app

    monkeypatch.setenv("SHAREPOOL_RL_DISABLE", "1")
    sink = RecordingTransfer()
    ex = PoolExecutor(pool_id="api-test", owner="owner", transfer=sink)
    monkeypatch.setattr(api_app, "build_executor", lambda: ex)

    app = api_app.create_app(boot_runtime=True)
    with TestClient(app) as c:
        yield c, sink


def _as(who: str) -> dict:
    return {H: who}


def test_full_round_trip_over_http(api) -> None:
    c, sink = api

    r = c.post("/v1/pool/deposit", json={"amount": 100}, headers=_as("alice"))
    assert r.status_code == 200, r.text
    assert r.json()["ok"] is True
    assert r.json()["shares_minted"] == 100

    c.post("/v1/pool/deposit", json={"amount": 300}, headers=_as("bob")).raise_for_status()
    c.post("/v1/pool/rewards", json={"amount": 200}, headers=_as("owner")).raise_for_status()

    pos = c.get("/v1/positions/alice").json()
    assert pos["position"] == 100
    assert pos["redeemable"] == 150

    a = c.post("/v1/pool/withdraw", headers=_as("alice")).json()
    b = c.post("/v1/pool/withdraw", headers=_as("bob")).json()
    assert (a["payout"], b["payout"]) == (150, 450)
    assert sink.delivered == [("alice", 150), ("bob", 450)]

    pool = c.get("/v1/pool").json()
    assert pool["ok"] is True
    assert pool["total_shares"] == 0
    assert pool["balance"] == 0
    assert pool["depositors"] == 0


def test_missing_caller_header_is_401(api) -> None:
    c, _ = api
    r = c.post("/v1/pool/deposit", json={"amount": 10})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "caller_missing"


def test_non_member_reward_is_403(api) -> None:
    c, _ = api
    c.post("/v1/pool/deposit", json={"amount": 10}, headers=_as("alice")).raise_for_status()

    r = c.post("/v1/pool/rewards", json={"amount": 10}, headers=_as("alice"))
    assert r.status_code == 403
    body = r.json()
    assert body["ok"] is False
    assert body["error"]["code"] == "unauthorized"
    assert c.get("/v1/pool").json()["balance"] == 10


def test_zero_amount_is_400(api) -> None:
    c, _ = api
    r = c.post("/v1/pool/deposit", json={"amount": 0}, headers=_as("alice"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "invalid_amount"


@pytest.mark.parametrize("body", [{"amount": "10"}, {"amount": 1.5}, {"amount": True}, {}, {"amount": 1, "x": 2}])
def test_malformed_bodies_are_422(api, body) -> None:
    c, _ = api
    r = c.post("/v1/pool/deposit", json=body, headers=_as("alice"))
    assert r.status_code == 422


def test_withdraw_without_position_is_400(api) -> None:
    c, _ = api
    r = c.post("/v1/pool/withdraw", headers=_as("nobody"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "nothing_to_withdraw"


def test_reward_into_empty_pool_is_400(api) -> None:
    c, _ = api
    r = c.post("/v1/pool/rewards", json={"amount": 5}, headers=_as("owner"))
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "empty_pool"


def test_refused_payout_is_502_and_keeps_position(api) -> None:
    c, sink = api
    c.post("/v1/pool/deposit", json={"amount": 10}, headers=_as("alice")).raise_for_status()
    sink.fail_for.add("alice")

    r = c.post("/v1/pool/withdraw", headers=_as("alice"))
    assert r.status_code == 502
    assert r.json()["error"]["code"] == "transfer_failed"
    assert c.get("/v1/positions/alice").json()["position"] == 10


def test_role_management_over_http(api) -> None:
    c, _ = api

    r = c.post("/v1/roles/grant", json={"target": "carol"}, headers=_as("owner"))
    assert r.status_code == 200, r.text
    assert c.get("/v1/roles/carol").json()["reward_depositor"] is True

    r = c.post("/v1/roles/grant", json={"target": "eve"}, headers=_as("carol"))
    assert r.status_code == 403

    r = c.post("/v1/roles/revoke", json={"target": "carol"}, headers=_as("owner"))
    assert r.status_code == 200
    assert c.get("/v1/roles/carol").json()["reward_depositor"] is False


def test_owner_transfer_over_http(api) -> None:
    c, _ = api

    r = c.post("/v1/roles/owner", json={"new_owner": "heir"}, headers=_as("owner"))
    assert r.status_code == 200, r.text
    assert c.get("/v1/roles/heir").json()["owner"] is True
    assert c.get("/v1/pool").json()["owner"] == "heir"

    r = c.post("/v1/roles/grant", json={"target": "carol"}, headers=_as("owner"))
    assert r.status_code == 403


def test_unknown_identity_reads_as_zero(api) -> None:
    c, _ = api
    j = c.get("/v1/positions/ghost").json()
    assert j["position"] == 0
    assert j["redeemable"] == 0
