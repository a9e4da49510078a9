from __future__ import annotations

import ipaddress
import os
import time
from dataclasses import dataclass
from typing import Dict, Tuple

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from sharepool.api.errors import ApiError

_EXEMPT_PREFIXES: Tuple[str, ...] = ("/docs", "/openapi.json", "/health")
_BODY_METHODS = {"POST", "PUT", "PATCH"}


def _truthy(v: str | None) -> bool:
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int((os.environ.get(name) or "").strip() or default)
    except ValueError:
        return int(default)


def _error_response(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"ok": False, "error": {"code": code, "message": message}})


def _exempt(request: Request, prefixes: Tuple[str, ...]) -> bool:
    path = request.url.path or ""
    return any(path.startswith(p) for p in prefixes)


def _client_ip(request: Request) -> str:
    """Rate-limit key for a request. Never used for authorization.

    The left-most X-Forwarded-For entry is used only with
    SHAREPOOL_TRUST_PROXY_HEADERS=1, i.e. behind a proxy that rewrites it.
    """
    if _truthy(os.environ.get("SHAREPOOL_TRUST_PROXY_HEADERS")):
        first = (request.headers.get("x-forwarded-for") or "").split(",")[0].strip()
        try:
            return str(ipaddress.ip_address(first))
        except ValueError:
            pass
    if request.client and request.client.host:
        return str(request.client.host)
    return "unknown"


def require_caller(request: Request) -> str:
    """FastAPI dependency returning the caller identity.

    The identity is read from the configured header (default X-Pool-Caller)
    and trusted as-is: the API must sit behind a front that authenticates
    callers and sets that header.
    """
    cfg = getattr(request.app.state, "cfg", None)
    header = str(getattr(cfg, "caller_header", "") or "X-Pool-Caller")
    caller = (request.headers.get(header) or "").strip()
    if not caller:
        raise ApiError.unauthorized("caller_missing", f"missing {header} header", {"header": header})
    return caller


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject bodies over SHAREPOOL_MAX_REQUEST_BYTES (default 16 KiB) with 413.

    Content-Length is checked first; bodies of write methods are also measured
    after buffering. SHAREPOOL_SIZE_LIMIT_DISABLE=1 turns the check off.
    """

    def __init__(self, app, *, max_bytes: int | None = None, exempt_prefixes: Tuple[str, ...] = _EXEMPT_PREFIXES):
        super().__init__(app)
        self._enabled = not _truthy(os.environ.get("SHAREPOOL_SIZE_LIMIT_DISABLE"))
        self._limit = int(max_bytes) if max_bytes is not None else _env_int("SHAREPOOL_MAX_REQUEST_BYTES", 16_384)
        self._exempt_prefixes = exempt_prefixes

    def _declared_too_large(self, request: Request) -> bool:
        try:
            return int(request.headers.get("content-length") or 0) > self._limit
        except ValueError:
            return False

    async def dispatch(self, request: Request, call_next):
        if self._enabled and not _exempt(request, self._exempt_prefixes):
            if self._declared_too_large(request):
                return _error_response(413, "request_too_large", "Request body too large")
            if (request.method or "").upper() in _BODY_METHODS and len(await request.body()) > self._limit:
                return _error_response(413, "request_too_large", "Request body too large")
        return await call_next(request)


@dataclass(frozen=True)
class TokenBucket:
    rate_per_sec: float
    burst: float


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client token buckets, one for writes and one for reads.

    State lives in this process only; multi-replica deployments should limit
    at the edge as well. Idle buckets are pruned after SHAREPOOL_RL_TTL_S and
    the table is capped at SHAREPOOL_RL_MAX_KEYS. SHAREPOOL_RL_DISABLE=1 turns
    limiting off.
    """

    def __init__(
        self,
        app,
        *,
        write_bucket: TokenBucket | None = None,
        read_bucket: TokenBucket | None = None,
        ttl_s: int | None = None,
        max_keys: int | None = None,
        exempt_prefixes: Tuple[str, ...] = _EXEMPT_PREFIXES,
    ):
        super().__init__(app)
        self._enabled = not _truthy(os.environ.get("SHAREPOOL_RL_DISABLE"))
        self._write = write_bucket or TokenBucket(rate_per_sec=4.0, burst=20.0)
        self._read = read_bucket or TokenBucket(rate_per_sec=12.0, burst=40.0)
        self._ttl_s = int(ttl_s) if ttl_s is not None else _env_int("SHAREPOOL_RL_TTL_S", 900)
        self._max_keys = int(max_keys) if max_keys is not None else _env_int("SHAREPOOL_RL_MAX_KEYS", 20_000)
        self._prune_every = max(1, _env_int("SHAREPOOL_RL_PRUNE_EVERY", 256))
        self._exempt_prefixes = exempt_prefixes
        self._seen = 0

        # "<ip>:<w|r>" -> (tokens, last_seen_ts)
        self._buckets: Dict[str, Tuple[float, float]] = {}

    def _prune(self, now: float) -> None:
        if self._ttl_s > 0:
            cutoff = now - self._ttl_s
            self._buckets = {k: v for k, v in self._buckets.items() if v[1] >= cutoff}
        overflow = len(self._buckets) - self._max_keys
        if self._max_keys > 0 and overflow > 0:
            oldest = sorted(self._buckets, key=lambda k: self._buckets[k][1])[:overflow]
            for k in oldest:
                del self._buckets[k]

    def _take(self, key: str, bucket: TokenBucket, now: float) -> bool:
        tokens, last = self._buckets.get(key, (bucket.burst, now))
        tokens = min(bucket.burst, tokens + (now - last) * bucket.rate_per_sec)
        allowed = tokens >= 1.0
        self._buckets[key] = (tokens - 1.0 if allowed else tokens, now)
        return allowed

    async def dispatch(self, request: Request, call_next):
        if not self._enabled or _exempt(request, self._exempt_prefixes):
            return await call_next(request)

        is_write = (request.method or "").upper() in _BODY_METHODS | {"DELETE"}
        bucket = self._write if is_write else self._read
        key = f"{_client_ip(request)}:{'w' if is_write else 'r'}"
        now = time.time()

        self._seen += 1
        if self._seen % self._prune_every == 0:
            self._prune(now)

        allowed = self._take(key, bucket, now)
        if self._max_keys > 0 and len(self._buckets) > self._max_keys:
            self._prune(now)
        if not allowed:
            return _error_response(429, "rate_limited", "Too many requests")
        return await call_next(request)
