from __future__ import annotations

import os
import time
from typing import Any, Optional

from fastapi import APIRouter, Request

from sharepool.ledger.state import PoolView

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _try_view(ex: Any) -> Optional[PoolView]:
    if ex is None:
        return None
    try:
        return ex.view()
    except Exception:
        return None


def _health_payload(request: Request) -> dict[str, object]:
    # health must never crash; best-effort telemetry only
    ex = getattr(request.app.state, "executor", None)
    v = _try_view(ex)

    return {
        "ok": True,
        "service": "sharepool",
        "version": "v1",
        "ts_ms": _now_ms(),
        "mode": (os.environ.get("SHAREPOOL_MODE") or "prod").strip().lower(),
        "pool_id": (v.pool_id if v is not None else "") or getattr(ex, "pool_id", None),
        "initialized": v.initialized if v is not None else None,
        "invariant_ok": v.invariant_ok() if v is not None else None,
        "persistent": bool(getattr(ex, "db_path", "")) if ex is not None else None,
    }


@router.get("/v1/health")
def v1_health(request: Request) -> dict[str, object]:
    return _health_payload(request)


@router.get("/healthz")
def healthz(request: Request) -> dict[str, object]:
    # Kubernetes-style alias
    return _health_payload(request)


@router.get("/readyz")
def readyz(request: Request) -> dict[str, object]:
    """Ready only when an executor is attached, the pool has an owner and the
    share invariant holds."""
    ex = getattr(request.app.state, "executor", None)
    v = _try_view(ex)
    ready = v is not None and v.initialized and v.invariant_ok()
    return {
        "ok": bool(ready),
        "service": "sharepool",
        "ts_ms": _now_ms(),
        "pool_id": v.pool_id if v is not None else None,
    }
