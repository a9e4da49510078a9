# src/sharepool/runtime/pool_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from sharepool.ledger.constants import DEFAULT_POOL_ID

Json = Dict[str, Any]


def _as_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s if s.strip() else str(default)


@dataclass(frozen=True)
class PoolConfig:
    pool_id: str
    mode: str  # "dev" | "test" | "prod"

    # Empty db_path keeps the pool in memory (dev/test only).
    db_path: str

    # Identity that becomes owner the first time the pool is created.
    owner: str

    api_host: str
    api_port: int

    # Header carrying the caller identity, set by the authenticating front.
    caller_header: str

    log_level: str


_ALLOWED_MODES = {"dev", "test", "prod"}

# Levels both logging and uvicorn understand.
_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")
_LOG_LEVEL_ALIASES = {"WARN": "WARNING", "FATAL": "CRITICAL"}


def normalize_log_level(v: Any) -> str:
    """Upper-case `v` and map the logging aliases WARN and FATAL."""
    s = str(v or "").strip().upper()
    return _LOG_LEVEL_ALIASES.get(s, s)


def validate_pool_config(cfg: PoolConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.pool_id, str) or not cfg.pool_id.strip():
        raise ValueError("pool_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {_ALLOWED_MODES}; got: {cfg.mode!r}")

    if mode == "prod" and not str(cfg.db_path or "").strip():
        # An in-memory pool would lose every position on restart.
        raise ValueError("db_path is required in prod mode")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")

    if not isinstance(cfg.caller_header, str) or not cfg.caller_header.strip():
        raise ValueError("caller_header must be a non-empty string")

    if normalize_log_level(cfg.log_level) not in _LOG_LEVELS:
        raise ValueError(f"log_level must be one of {_LOG_LEVELS}; got: {cfg.log_level!r}")


def default_pool_config() -> PoolConfig:
    return PoolConfig(
        pool_id=os.environ.get("SHAREPOOL_POOL_ID", DEFAULT_POOL_ID),
        mode=os.environ.get("SHAREPOOL_MODE", "prod").strip().lower(),
        db_path=os.environ.get("SHAREPOOL_DB_PATH", "./data/sharepool.db"),
        owner=os.environ.get("SHAREPOOL_OWNER", ""),
        api_host=os.environ.get("SHAREPOOL_API_HOST", "127.0.0.1"),
        api_port=_as_int(os.environ.get("SHAREPOOL_API_PORT"), 8080),
        caller_header=os.environ.get("SHAREPOOL_CALLER_HEADER", "X-Pool-Caller"),
        log_level=normalize_log_level(os.environ.get("SHAREPOOL_LOG_LEVEL") or "INFO"),
    )


def read_pool_config_file(path: str) -> PoolConfig:
    p = Path(path)
    raw = json.loads(p.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("pool config must be a JSON object")

    d = default_pool_config()

    cfg = PoolConfig(
        pool_id=_as_str(raw.get("pool_id"), d.pool_id),
        mode=_as_str(raw.get("mode"), d.mode).strip().lower(),
        # db_path may be deliberately "" for an in-memory pool.
        db_path=str(raw["db_path"]) if "db_path" in raw and raw["db_path"] is not None else d.db_path,
        owner=_as_str(raw.get("owner"), d.owner),
        api_host=_as_str(raw.get("api_host"), d.api_host),
        api_port=_as_int(raw.get("api_port"), d.api_port),
        caller_header=_as_str(raw.get("caller_header"), d.caller_header),
        log_level=normalize_log_level(_as_str(raw.get("log_level"), d.log_level)),
    )

    validate_pool_config(cfg)
    return cfg


def load_pool_config(*, config_path: Optional[str] = None) -> PoolConfig:
    p = config_path or os.environ.get("SHAREPOOL_CONFIG_PATH")
    if p:
        return read_pool_config_file(p)

    cfg = default_pool_config()
    validate_pool_config(cfg)
    return cfg


def apply_pool_config_to_env(cfg: PoolConfig) -> None:
    validate_pool_config(cfg)
    os.environ["SHAREPOOL_POOL_ID"] = cfg.pool_id
    os.environ["SHAREPOOL_MODE"] = (cfg.mode or "prod").strip().lower()
    os.environ["SHAREPOOL_DB_PATH"] = cfg.db_path
    os.environ["SHAREPOOL_OWNER"] = cfg.owner
    os.environ["SHAREPOOL_API_HOST"] = cfg.api_host
    os.environ["SHAREPOOL_API_PORT"] = str(int(cfg.api_port))
    os.environ["SHAREPOOL_CALLER_HEADER"] = cfg.caller_header
    os.environ["SHAREPOOL_LOG_LEVEL"] = cfg.log_level
