from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sharepool.api.errors import ApiError
from sharepool.api.routes_public import public_router
from sharepool.api.security import RateLimitMiddleware, RequestSizeLimitMiddleware
from sharepool.api.structured_logging import RequestLogMiddleware, log_event
from sharepool.runtime.executor_boot import build_executor as _build_executor
from sharepool.runtime.pool_config import PoolConfig, load_pool_config

log = logging.getLogger("sharepool.api")


def build_executor():
    """Build the PoolExecutor served by the API.

    Tests monkeypatch `sharepool.api.app.build_executor` to inject their own.
    """
    return _build_executor()


def _cors_origins(mode: str) -> List[str]:
    """Origins from SHAREPOOL_CORS_ORIGINS (comma separated).

    Unset means no CORS middleware at all. "*" is refused in prod because the
    middleware allows credentials.
    """
    origins = [o.strip() for o in os.environ.get("SHAREPOOL_CORS_ORIGINS", "").split(",") if o.strip()]
    if "*" not in origins:
        return origins
    if mode == "prod":
        raise RuntimeError("SHAREPOOL_CORS_ORIGINS='*' is not allowed in prod; list explicit origins")
    return ["*"]


async def _api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        log.warning("api error path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_json())


@asynccontextmanager
async def _lifespan(app: FastAPI):
    ex = getattr(app.state, "executor", None)
    log_event(log, "api_start", pool_id=getattr(ex, "pool_id", None), persistent=bool(getattr(ex, "db_path", "")))
    yield
    log_event(log, "api_stop", pool_id=getattr(ex, "pool_id", None))


def _install_middleware(app: FastAPI, cfg: PoolConfig) -> None:
    # Starlette runs the last-added middleware first: request logging wraps
    # everything, then CORS, then rate limiting, then the body size check.
    app.add_middleware(RequestSizeLimitMiddleware)
    app.add_middleware(RateLimitMiddleware)

    origins = _cors_origins(cfg.mode)
    if origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", cfg.caller_header],
        )

    app.add_middleware(RequestLogMiddleware)


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Build the API.

    With boot_runtime=False no executor is attached; routes that need one
    answer 500 `not_ready`. Health endpoints still work.
    """
    cfg = load_pool_config()

    docs = {} if cfg.mode != "prod" else {"docs_url": None, "redoc_url": None, "openapi_url": None}
    app = FastAPI(title="sharepool API", lifespan=_lifespan, **docs)

    app.state.cfg = cfg
    app.state.executor = build_executor() if boot_runtime else None

    app.add_exception_handler(ApiError, _api_error_handler)  # type: ignore[arg-type]
    _install_middleware(app, cfg)
    app.include_router(public_router)
    return app
