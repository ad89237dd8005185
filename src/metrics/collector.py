"""In-memory request metrics backed by a private Prometheus registry."""

from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)
from prometheus_client.utils import floatToGoString

from src.models import MetricsSnapshot

# Upper bounds in seconds; the +Inf overflow bucket is implicit.
DEFAULT_LATENCY_BUCKETS: tuple[float, ...] = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """Process-lifetime counters and a fixed-bucket latency histogram.

    Each collector owns its registry, so several instances (one per app,
    or one per test) never share state.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, latency_buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS) -> None:
        if list(latency_buckets) != sorted(latency_buckets) or not latency_buckets:
            raise ValueError("latency_buckets must be a non-empty ascending sequence")
        self._thresholds = tuple(float(b) for b in latency_buckets)
        self.registry = CollectorRegistry(auto_describe=True)
        self._requests = Counter(
            "webhook_requests",
            "Inbound webhook calls admitted to the pipeline",
            registry=self.registry,
        )
        self._remote_calls = Counter(
            "remote_script_calls",
            "Outbound remote script invocations",
            registry=self.registry,
        )
        self._remote_errors = Counter(
            "remote_script_errors",
            "Remote script invocations that failed",
            registry=self.registry,
        )
        self._responses = Counter(
            "webhook_responses",
            "Responses relayed to callers by HTTP status",
            labelnames=("status",),
            registry=self.registry,
        )
        self._latency = Histogram(
            "remote_script_duration_seconds",
            "Remote script round trip latency in seconds",
            buckets=self._thresholds,
            registry=self.registry,
        )
        self._seen_statuses: set[int] = set()

    @property
    def latency_thresholds(self) -> tuple[float, ...]:
        return self._thresholds

    def record_request(self) -> None:
        self._requests.inc()

    def record_remote_call(self) -> None:
        self._remote_calls.inc()

    def record_remote_error(self) -> None:
        self._remote_errors.inc()

    def observe(self, duration_seconds: float, status: int) -> None:
        """Record the outcome of one admitted call."""
        self._latency.observe(max(duration_seconds, 0.0))
        self._responses.labels(status=str(status)).inc()
        self._seen_statuses.add(status)

    def snapshot(self) -> MetricsSnapshot:
        value = self.registry.get_sample_value
        status_counts = {
            status: int(value("webhook_responses_total", {"status": str(status)}) or 0)
            for status in sorted(self._seen_statuses)
        }
        bounds = [*self._thresholds, float("inf")]
        buckets = tuple(
            int(value("remote_script_duration_seconds_bucket", {"le": floatToGoString(b)}) or 0)
            for b in bounds
        )
        return MetricsSnapshot(
            request_count=int(value("webhook_requests_total") or 0),
            remote_call_count=int(value("remote_script_calls_total") or 0),
            remote_error_count=int(value("remote_script_errors_total") or 0),
            status_counts=status_counts,
            latency_thresholds=self._thresholds,
            latency_buckets=buckets,
            latency_count=int(value("remote_script_duration_seconds_count") or 0),
        )

    def render(self) -> bytes:
        """Prometheus text exposition of every metric in this collector."""
        return generate_latest(self.registry)

