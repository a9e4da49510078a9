from __future__ import annotations

from fastapi import APIRouter, Response
from fastapi.responses import JSONResponse

from sharepool.runtime.metrics import format_prometheus, metrics_enabled, snapshot


router = APIRouter()


@router.get("/metrics")
def metrics(format: str = "prometheus") -> Response:
    """Pool metrics as Prometheus text (default) or JSON (?format=json).

    Disabled by default. Enable with:
      SHAREPOOL_METRICS_ENABLED=1
    """
    if not metrics_enabled():
        return Response(status_code=404, content="not_found\n", media_type="text/plain")
    if format == "json":
        return JSONResponse(content=snapshot())
    return Response(content=format_prometheus(), media_type="text/plain")
