# src/sharepool/api/structured_logging.py
from __future__ import annotations

import json
import logging
import os
import sys
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

Json = Dict[str, Any]

_HANDLER: Optional[logging.Handler] = None


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record: ts_ms, level, logger, msg (+ `fields` extra)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Json = {
            "ts_ms": int(record.created * 1000),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        fields = getattr(record, "fields", None)
        if isinstance(fields, dict):
            payload.update(fields)
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Route the root logger to stdout as JSON lines.

    The level comes from `level_name`, else SHAREPOOL_LOG_LEVEL, else INFO.
    Calling it again only changes the level.
    """
    global _HANDLER
    level = logging.getLevelName((level_name or os.environ.get("SHAREPOOL_LOG_LEVEL") or "INFO").strip().upper())
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if _HANDLER is None:
        _HANDLER = logging.StreamHandler(sys.stdout)
        _HANDLER.setFormatter(JsonLineFormatter())
        root.handlers = [_HANDLER]
    _HANDLER.setLevel(level)


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    logger.info(event, extra={"fields": {"event": event, **fields}})


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request on the `sharepool.http` logger.

    The request id is taken from X-Request-Id when the client sends one and is
    echoed back on the response. SHAREPOOL_LOG_REQUESTS=0 turns logging off.
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        flag = (os.environ.get("SHAREPOOL_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = flag not in {"0", "false", "no", "n", "off"}
        self._logger = logging.getLogger("sharepool.http")

    def _emit(self, request: Request, request_id: str, started: float, status: int, error: Optional[str]) -> None:
        log_event(
            self._logger,
            "http_request",
            request_id=request_id,
            method=request.method,
            path=request.url.path or "",
            status=status,
            duration_ms=int((time.monotonic() - started) * 1000),
            client=request.client.host if request.client else "",
            error=error,
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        try:
            response = await call_next(request)
        except Exception as e:
            self._emit(request, request_id, started, 500, str(e))
            raise

        response.headers.setdefault("x-request-id", request_id)
        self._emit(request, request_id, started, response.status_code, None)
        return response
