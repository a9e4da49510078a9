from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from sharepool.api.routes_public_parts.common import _executor, _run, _view
from sharepool.api.schemas import OwnerTransferRequest, RoleTargetRequest
from sharepool.api.security import require_caller

router = APIRouter()

Json = Dict[str, Any]


@router.get("/roles/{identity}")
def role_get(identity: str, request: Request) -> Json:
    v = _view(request)
    return {"ok": True, "identity": identity, "reward_depositor": v.is_member(identity), "owner": v.owner == identity}


@router.post("/roles/grant")
def role_grant(body: RoleTargetRequest, request: Request, caller: str = Depends(require_caller)) -> Json:
    return _run(_executor(request).grant_role, caller, body.target)


@router.post("/roles/revoke")
def role_revoke(body: RoleTargetRequest, request: Request, caller: str = Depends(require_caller)) -> Json:
    return _run(_executor(request).revoke_role, caller, body.target)


@router.post("/roles/owner")
def owner_transfer(body: OwnerTransferRequest, request: Request, caller: str = Depends(require_caller)) -> Json:
    return _run(_executor(request).transfer_ownership, caller, body.new_owner)
