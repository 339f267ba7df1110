# src/com/lingenhag/scm/platform/monitoring/metrics.py
from __future__ import annotations

from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, start_http_server


class Metrics:
    def __init__(self, port: int = 8000, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else REGISTRY

        # ---- Aggregation path metrics ----
        self.metric_fallback_total = Counter(
            "metric_fallback_total",
            "Fallbacks from precomputed to manual aggregation (per metric/reason).",
            ["metric", "reason"],
            registry=self.registry,
        )
        self.metric_compute_duration_seconds = Histogram(
            "metric_compute_duration_seconds",
            "Duration of a single dashboard metric computation in seconds",
            ["metric", "path"],
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, float("inf")),
            registry=self.registry,
        )
        self.metric_failures_total = Counter(
            "metric_failures_total",
            "Dashboard metrics that failed on both paths.",
            ["metric"],
            registry=self.registry,
        )

        self._port = port
        self._started = False

    # ---- Server lifecycle ----
    def start_server(self) -> None:
        if not self._started and self._port:
            start_http_server(self._port, registry=self.registry)
            self._started = True
            print(f"[monitoring] Prometheus metrics server started on port {self._port}")

    # ---- Helpers ----
    def track_fallback(self, *, metric: str, reason: str) -> None:
        self.metric_fallback_total.labels(metric=metric, reason=reason).inc()

    def track_compute_duration(self, *, metric: str, path: str, duration: float) -> None:
        self.metric_compute_duration_seconds.labels(metric=metric, path=path).observe(duration)

    def track_failure(self, *, metric: str) -> None:
        self.metric_failures_total.labels(metric=metric).inc()
