from __future__ import annotations

"""Process-local pool metrics.

The executor bumps counters per op (`ops_total`, `ops_failed`,
`ops_failed_<code>`, `ops_<op>`) and publishes pool gauges (`total_shares`,
`balance`, `depositors`) after each commit. Values are integers only.
"""

import os
import threading
import time
from typing import Dict, List


def _now_ms() -> int:
    return int(time.time() * 1000)


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = {}
        self._gauges: Dict[str, int] = {}
        self._started_ms = _now_ms()

    def inc(self, name: str, value: int = 1) -> None:
        key = str(name or "").strip()
        if key:
            with self._lock:
                self._counters[key] = self._counters.get(key, 0) + int(value)

    def set(self, name: str, value: int) -> None:
        key = str(name or "").strip()
        if key:
            with self._lock:
                self._gauges[key] = int(value)

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()

    def snapshot(self) -> dict:
        now = _now_ms()
        with self._lock:
            return {
                "ts_ms": now,
                "started_ms": self._started_ms,
                "uptime_ms": now - self._started_ms,
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
            }

    def render_prometheus(self, prefix: str) -> str:
        snap = self.snapshot()
        out: List[str] = []

        def emit(name: str, kind: str, value: int) -> None:
            out.append(f"# TYPE {prefix}{name} {kind}")
            out.append(f"{prefix}{name} {int(value)}")

        emit("uptime_ms", "gauge", snap["uptime_ms"])
        for name, value in sorted(snap["counters"].items()):
            emit(name, "counter", value)
        for name, value in sorted(snap["gauges"].items()):
            emit(name, "gauge", value)
        return "\n".join(out) + "\n"


_REGISTRY = MetricsRegistry()


def metrics_enabled() -> bool:
    """True when SHAREPOOL_METRICS_ENABLED is a truthy flag (off by default)."""
    return (os.environ.get("SHAREPOOL_METRICS_ENABLED") or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def inc_counter(name: str, value: int = 1) -> None:
    _REGISTRY.inc(name, value)


def set_gauge(name: str, value: int) -> None:
    _REGISTRY.set(name, value)


def reset() -> None:
    _REGISTRY.clear()


def snapshot() -> dict:
    return _REGISTRY.snapshot()


def format_prometheus(prefix: str = "sharepool_") -> str:
    return _REGISTRY.render_prometheus(str(prefix or "").strip() or "sharepool_")
