from __future__ import annotations

import sys
from pathlib import Path

# Ensure local "src/" takes precedence over any globally-installed "sharepool" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

import pytest  # noqa: E402

from sharepool.runtime import metrics  # noqa: E402


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    # Keep tests independent of the operator's shell and of each other.
    for k in ("SHAREPOOL_CONFIG_PATH", "SHAREPOOL_OWNER", "SHAREPOOL_POOL_ID", "SHAREPOOL_DB_PATH"):
        monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("SHAREPOOL_MODE", "test")
    metrics.reset()
    yield
