# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Processor counters and gauges, exported in Prometheus text format."""

import threading
import time


class QueueMetrics:
    """Thread-safe Prometheus-compatible metrics collector."""

    def __init__(self):
        self._lock = threading.Lock()
        self._start_time = time.time()

        self._counters = {
            "tinyclaw_polls_total": 0,
            "tinyclaw_jobs_total": 0,
            "tinyclaw_jobs_failed_total": 0,
            "tinyclaw_jobs_released_total": 0,
            "tinyclaw_jobs_dead_lettered_total": 0,
            "tinyclaw_agent_failures_total": 0,
            "tinyclaw_resets_total": 0,
            "tinyclaw_responses_truncated_total": 0,
        }

        self._gauges = {
            "tinyclaw_queue_incoming": 0,
            "tinyclaw_queue_processing": 0,
            "tinyclaw_queue_outgoing": 0,
            "tinyclaw_queue_failed": 0,
        }

        self._help = {
            "tinyclaw_polls_total": "Total incoming queue polls",
            "tinyclaw_jobs_total": "Total jobs completed with a response",
            "tinyclaw_jobs_failed_total": "Total job processing failures",
            "tinyclaw_jobs_released_total": "Total jobs returned to incoming for retry",
            "tinyclaw_jobs_dead_lettered_total": "Total jobs moved to the failed directory",
            "tinyclaw_agent_failures_total": "Total agent runs answered with the fallback reply",
            "tinyclaw_resets_total": "Total jobs that started a fresh conversation",
            "tinyclaw_responses_truncated_total": "Total responses cut to the length limit",
            "tinyclaw_queue_incoming": "Records waiting in incoming",
            "tinyclaw_queue_processing": "Records in processing",
            "tinyclaw_queue_outgoing": "Responses waiting in outgoing",
            "tinyclaw_queue_failed": "Records in the failed directory",
            "tinyclaw_start_time_seconds": "Unix timestamp when the processor started",
        }

    def inc(self, name: str, value: int = 1) -> None:
        with self._lock:
            if name in self._counters:
                self._counters[name] += value

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = value

    def set_queue_depths(self, counts: dict[str, int]) -> None:
        for partition, depth in counts.items():
            self.set_gauge(f"tinyclaw_queue_{partition}", depth)

    def get(self, name: str) -> float:
        with self._lock:
            if name in self._counters:
                return self._counters[name]
            return self._gauges.get(name, 0)

    def to_prometheus(self) -> str:
        lines = []
        with self._lock:
            lines.append(
                f"# HELP tinyclaw_start_time_seconds {self._help['tinyclaw_start_time_seconds']}"
            )
            lines.append("# TYPE tinyclaw_start_time_seconds gauge")
            lines.append(f"tinyclaw_start_time_seconds {self._start_time}")

            for kind, values in (("counter", self._counters), ("gauge", self._gauges)):
                for name, value in values.items():
                    if name in self._help:
                        lines.append(f"# HELP {name} {self._help[name]}")
                    lines.append(f"# TYPE {name} {kind}")
                    lines.append(f"{name} {value}")

        return "\n".join(lines) + "\n"

    def log_summary(self) -> str:
        """Return a one-line human-readable summary."""
        with self._lock:
            uptime = int(time.time() - self._start_time)
            hours, remainder = divmod(uptime, 3600)
            minutes, seconds = divmod(remainder, 60)
            uptime_str = (
                f"{hours}h{minutes}m{seconds}s"
                if hours
                else f"{minutes}m{seconds}s"
                if minutes
                else f"{seconds}s"
            )
            c = self._counters
            return (
                f"uptime={uptime_str} "
                f"jobs={c['tinyclaw_jobs_total']}/{c['tinyclaw_jobs_failed_total']} "
                f"agent_fail={c['tinyclaw_agent_failures_total']} "
                f"resets={c['tinyclaw_resets_total']} "
                f"incoming={self._gauges['tinyclaw_queue_incoming']}"
            )
