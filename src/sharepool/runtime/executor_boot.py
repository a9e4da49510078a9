# src/sharepool/runtime/executor_boot.py

from __future__ import annotations

from typing import Optional

from sharepool.runtime.executor import PoolExecutor
from sharepool.runtime.pool_config import PoolConfig, load_pool_config
from sharepool.runtime.transfer import TransferFn


def build_executor(cfg: Optional[PoolConfig] = None, *, transfer: Optional[TransferFn] = None) -> PoolExecutor:
    """
    Build a PoolExecutor from an explicit config or, if omitted, from
    SHAREPOOL_CONFIG_PATH / SHAREPOOL_* environment variables.

    This keeps the API stable for `sharepool.api.app`, which calls
    build_executor() with no args in production.
    """
    c = cfg or load_pool_config()
    return PoolExecutor(
        pool_id=c.pool_id,
        db_path=c.db_path or None,
        owner=c.owner or None,
        transfer=transfer,
    )
