# src/sharepool/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from sharepool.api.routes_public_parts.health import router as health_router
from sharepool.api.routes_public_parts.metrics import router as metrics_router
from sharepool.api.routes_public_parts.pool import router as pool_router
from sharepool.api.routes_public_parts.roles import router as roles_router

public_router = APIRouter()

# Versioned API surface
public_router.include_router(health_router, prefix="", tags=["health"])
public_router.include_router(pool_router, prefix="/v1", tags=["pool"])
public_router.include_router(roles_router, prefix="/v1", tags=["roles"])

# Ops
public_router.include_router(metrics_router, prefix="/v1", tags=["metrics"])
