from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from sharepool.runtime import metrics
from sharepool.runtime.executor import PoolExecutor


def test_prometheus_text_lists_counters_and_gauges() -> None:
    metrics.inc_counter("ops_total", 3)
    metrics.set_gauge("balance", 42)

    text = metrics.format_prometheus()
    assert "sharepool_ops_total 3" in text
    assert "sharepool_balance 42" in text
    assert "# TYPE sharepool_ops_total counter" in text
    assert "# TYPE sharepool_balance gauge" in text
    assert text.startswith("# TYPE sharepool_uptime_ms gauge\n")


def test_executor_publishes_pool_gauges() -> None:
    ex = PoolExecutor(pool_id="metrics-test", owner="owner")
    ex.deposit("alice", 100)
    ex.inject_reward("owner", 25)

    snap = metrics.snapshot()
    assert snap["gauges"]["total_shares"] == 100
    assert snap["gauges"]["balance"] == 125
    assert snap["gauges"]["depositors"] == 1
    assert snap["counters"]["ops_pool_deposit"] == 1
    assert snap["counters"]["ops_pool_reward_deposit"] == 1


def test_metrics_route_is_off_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    from sharepool.api.app import create_app

    monkeypatch.delenv("SHAREPOOL_METRICS_ENABLED", raising=False)
    with TestClient(create_app(boot_runtime=False)) as c:
        assert c.get("/v1/metrics").status_code == 404


def test_metrics_route_serves_text_and_json(monkeypatch: pytest.MonkeyPatch) -> None:
    from sharepool.api.app import create_app

    monkeypatch.setenv("SHAREPOOL_METRICS_ENABLED", "1")
    metrics.inc_counter("ops_total")

    with TestClient(create_app(boot_runtime=False)) as c:
        r = c.get("/v1/metrics")
        assert r.status_code == 200
        assert "sharepool_ops_total 1" in r.text

        j = c.get("/v1/metrics", params={"format": "json"}).json()
        assert j["counters"]["ops_total"] == 1
