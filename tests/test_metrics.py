"""Tests for processor metrics."""

from tinyclaw.metrics import QueueMetrics


def test_counters_and_gauges():
    metrics = QueueMetrics()
    metrics.inc("tinyclaw_jobs_total")
    metrics.inc("tinyclaw_jobs_total", 2)
    metrics.inc("not_a_metric")
    metrics.set_queue_depths({"incoming": 4, "processing": 1, "outgoing": 0, "failed": 0})

    assert metrics.get("tinyclaw_jobs_total") == 3
    assert metrics.get("tinyclaw_queue_incoming") == 4
    assert metrics.get("not_a_metric") == 0


def test_prometheus_export():
    metrics = QueueMetrics()
    metrics.inc("tinyclaw_resets_total")

    text = metrics.to_prometheus()

    assert "# TYPE tinyclaw_resets_total counter" in text
    assert "tinyclaw_resets_total 1" in text
    assert "# TYPE tinyclaw_queue_incoming gauge" in text
    assert "tinyclaw_start_time_seconds" in text
    assert text.endswith("\n")


def test_log_summary():
    metrics = QueueMetrics()
    metrics.inc("tinyclaw_jobs_total", 5)
    metrics.inc("tinyclaw_jobs_failed_total")

    summary = metrics.log_summary()

    assert "jobs=5/1" in summary
    assert summary.startswith("uptime=")
