#!/usr/bin/env python3

"""Operator tooling for a sharepool database.

Subcommands:
  deploy   create the pool DB (if missing) and install the owner
  balance  print the pool's redeemable balance and share totals

Usage:
  python3 scripts/deploy_pool.py deploy --owner 0xOwner [--db ./data/sharepool.db] [--pool-id sharepool-dev]
  python3 scripts/deploy_pool.py balance [--db ./data/sharepool.db] [--pool-id sharepool-dev]

Defaults come from SHAREPOOL_CONFIG_PATH / SHAREPOOL_* (and .env, if present).
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal

from sharepool.env import load_dotenv_if_present
from sharepool.ledger.constants import UNIT, UNIT_DECIMALS
from sharepool.runtime.errors import ApplyError
from sharepool.runtime.executor import ExecutorError, PoolExecutor
from sharepool.runtime.pool_config import load_pool_config


def _format_units(amount: int) -> str:
    q = Decimal(int(amount)) / Decimal(UNIT)
    return f"{q:.{UNIT_DECIMALS}f}".rstrip("0").rstrip(".") or "0"


def _open(args: argparse.Namespace) -> PoolExecutor:
    return PoolExecutor(pool_id=args.pool_id, db_path=args.db)


def _cmd_deploy(args: argparse.Namespace) -> int:
    ex = _open(args)
    v = ex.view()
    if v.initialized:
        print(f"Already deployed: pool={v.pool_id} owner={v.owner}", file=sys.stderr)
        return 1
    ex.initialize(args.owner)
    print("Deploy With:", args.owner)
    print("Deployed At", args.db)
    return 0


def _cmd_balance(args: argparse.Namespace) -> int:
    v = _open(args).view()
    if args.json:
        print(json.dumps(v.summary(), sort_keys=True))
        return 0
    print("Pool Size in units", _format_units(v.balance))
    print("Total shares", v.total_shares)
    print("Depositors", len(v.positions))
    return 0


def main(argv: list[str] | None = None) -> int:
    load_dotenv_if_present()
    cfg = load_pool_config()

    ap = argparse.ArgumentParser(description="sharepool operator tooling")
    ap.add_argument("--db", default=cfg.db_path, help="SQLite DB path")
    ap.add_argument("--pool-id", default=cfg.pool_id, help="pool id (must match the DB)")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_deploy = sub.add_parser("deploy", help="create the pool and install its owner")
    p_deploy.add_argument("--owner", default=cfg.owner or None, required=not cfg.owner, help="owner identity")
    p_deploy.set_defaults(func=_cmd_deploy)

    p_balance = sub.add_parser("balance", help="print the pool balance")
    p_balance.add_argument("--json", action="store_true", help="emit the full pool summary as JSON")
    p_balance.set_defaults(func=_cmd_balance)

    args = ap.parse_args(argv)
    if not args.db:
        ap.error("--db is required (in-memory pools cannot be managed from the CLI)")

    try:
        return int(args.func(args))
    except (ApplyError, ExecutorError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
