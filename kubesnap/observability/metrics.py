"""Prometheus metrics for collection runs.

Each run owns a ``QueryMetrics`` with its own registry, so the textfile
written next to a snapshot counts that run's queries only and carries no
process/platform collectors.
"""

from __future__ import annotations

from pathlib import Path

from prometheus_client import CollectorRegistry, Counter, Histogram, write_to_textfile

_DURATION_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)


class QueryMetrics:
    """Query counters and durations for one run."""

    def __init__(self) -> None:
        self.registry = CollectorRegistry(auto_describe=True)
        self.queries_total = Counter(
            "kubesnap_queries_total",
            "Attempted queries by outcome.",
            ["outcome"],
            registry=self.registry,
        )
        self.query_duration_seconds = Histogram(
            "kubesnap_query_duration_seconds",
            "Wall-clock duration of attempted queries.",
            ["outcome"],
            buckets=_DURATION_BUCKETS,
            registry=self.registry,
        )
        self.discovery_failures_total = Counter(
            "kubesnap_discovery_failures_total",
            "Scope passes aborted because the resource list could not be built.",
            registry=self.registry,
        )

    def observe_query(self, outcome: str, duration_seconds: float) -> None:
        self.queries_total.labels(outcome=outcome).inc()
        self.query_duration_seconds.labels(outcome=outcome).observe(duration_seconds)

    def sample(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Current value of one sample, 0.0 if it has not been recorded."""
        return self.registry.get_sample_value(name, labels or {}) or 0.0

    def write(self, path: Path) -> None:
        """Write the registry in Prometheus text exposition format."""
        path.parent.mkdir(parents=True, exist_ok=True)
        write_to_textfile(str(path), self.registry)
