from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from sharepool.api.routes_public_parts.common import _executor, _run, _view
from sharepool.api.schemas import AmountRequest
from sharepool.api.security import require_caller

router = APIRouter()

Json = Dict[str, Any]


@router.get("/pool")
def pool_summary(request: Request) -> Json:
    return {"ok": True, **_view(request).summary()}


@router.get("/positions/{identity}")
def position_get(identity: str, request: Request) -> Json:
    v = _view(request)
    return {
        "ok": True,
        "identity": identity,
        "position": v.position(identity),
        "redeemable": v.redeemable(identity),
    }


@router.post("/pool/deposit")
def pool_deposit(body: AmountRequest, request: Request, caller: str = Depends(require_caller)) -> Json:
    return _run(_executor(request).deposit, caller, body.amount)


@router.post("/pool/rewards")
def pool_rewards(body: AmountRequest, request: Request, caller: str = Depends(require_caller)) -> Json:
    return _run(_executor(request).inject_reward, caller, body.amount)


@router.post("/pool/withdraw")
def pool_withdraw(request: Request, caller: str = Depends(require_caller)) -> Json:
    return _run(_executor(request).withdraw, caller)
