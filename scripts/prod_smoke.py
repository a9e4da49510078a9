#!/usr/bin/env python3

"""Production-ish smoke test for sharepool.

It verifies:
  - executor boots on a fresh SQLite db with an owner
  - FastAPI app boots and serves /v1/health + /readyz
  - a deposit / reward / withdraw round trip drains the pool exactly

Usage:
  python3 scripts/prod_smoke.py
"""

from __future__ import annotations

import os
import tempfile

from fastapi.testclient import TestClient

from sharepool.api.app import create_app


def main() -> int:
    with tempfile.TemporaryDirectory(prefix="sharepool-smoke-") as td:
        os.environ["SHAREPOOL_DB_PATH"] = os.path.join(td, "sharepool.db")
        os.environ.setdefault("SHAREPOOL_POOL_ID", "smoke-pool")
        os.environ["SHAREPOOL_OWNER"] = "owner"
        os.environ.setdefault("SHAREPOOL_MODE", "dev")

        app = create_app(boot_runtime=True)
        header = app.state.cfg.caller_header

        with TestClient(app) as c:
            r = c.get("/v1/health")
            assert r.status_code == 200, r.text
            assert bool(r.json().get("ok")) is True

            r = c.get("/readyz")
            assert r.status_code == 200 and r.json().get("ok") is True, r.text

            c.post("/v1/pool/deposit", json={"amount": 100}, headers={header: "alice"}).raise_for_status()
            c.post("/v1/pool/deposit", json={"amount": 300}, headers={header: "bob"}).raise_for_status()
            c.post("/v1/pool/rewards", json={"amount": 200}, headers={header: "owner"}).raise_for_status()

            a = c.post("/v1/pool/withdraw", headers={header: "alice"}).json()
            b = c.post("/v1/pool/withdraw", headers={header: "bob"}).json()
            pool = c.get("/v1/pool").json()

        if (a.get("payout"), b.get("payout"), pool.get("balance")) != (150, 450, 0):
            raise RuntimeError(f"unexpected payouts: alice={a} bob={b} pool={pool}")

        print("OK: health/ready + exact drain", {"alice": a["payout"], "bob": b["payout"]})
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
