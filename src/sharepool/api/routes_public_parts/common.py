from __future__ import annotations

from typing import Any, Callable, Dict

from fastapi import Request

from sharepool.api.errors import ApiError
from sharepool.ledger.state import PoolView
from sharepool.runtime.errors import ApplyError

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _view(request: Request) -> PoolView:
    return _executor(request).view()


def _run(fn: Callable[..., Json], *args: Any) -> Json:
    """Run an executor op and translate pool errors into ApiError."""
    try:
        meta = fn(*args)
    except ApplyError as e:
        raise ApiError.from_apply_error(e) from e
    return {"ok": True, **meta}
