from __future__ import annotations

from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

from app.transit.core.config import settings

REQUEST_LATENCY_BUCKETS_MS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000)


@dataclass
class MetricsSnapshot:
    content: bytes
    content_type: str


class Metrics:
    def __init__(self, enabled: bool | None = None) -> None:
        self.enabled = settings.METRICS_ENABLED if enabled is None else enabled
        self._registry: CollectorRegistry | None = None
        if self.enabled:
            self._build()

    def _build(self) -> None:
        registry = CollectorRegistry()
        self._registry = registry
        request_labels = ["route", "method", "status"]
        self._requests = Counter(
            "http_requests_total", "HTTP requests by route/method/status.", request_labels, registry=registry
        )
        self._latency = Histogram(
            "http_request_duration_ms",
            "HTTP request latency in milliseconds.",
            request_labels,
            buckets=REQUEST_LATENCY_BUCKETS_MS,
            registry=registry,
        )
        self._replays = Counter("idempotency_replay_total", "Idempotent replay responses.", registry=registry)
        self._lock_timeouts = Counter("lock_wait_timeout_total", "Lock wait timeout occurrences.", registry=registry)
        self._transitions = Counter(
            "dispatch_transitions_total",
            "Dispatch lifecycle transitions by name and result.",
            ["transition", "result"],
            registry=registry,
        )
        self._scans = Counter("barcode_scans_total", "Barcode scan attempts by result.", ["result"], registry=registry)
        self._violations = Counter(
            "invariants_violation_total", "Integrity invariant violations.", ["check_id"], registry=registry
        )

    def reset(self) -> None:
        if self.enabled:
            self._build()

    def record_http_request(self, *, route: str, method: str, status_code: int, latency_ms: float) -> None:
        if not self.enabled:
            return
        labels = (route, method, str(status_code))
        self._requests.labels(*labels).inc()
        self._latency.labels(*labels).observe(latency_ms)

    def increment_idempotency_replay(self) -> None:
        if self.enabled:
            self._replays.inc()

    def increment_lock_wait_timeout(self) -> None:
        if self.enabled:
            self._lock_timeouts.inc()

    def record_transition(self, transition: str, result: str) -> None:
        if self.enabled:
            self._transitions.labels(transition=transition, result=result).inc()

    def record_scan(self, result: str) -> None:
        if self.enabled:
            self._scans.labels(result=result).inc()

    def increment_invariant_violation(self, check_id: str, count: int = 1) -> None:
        if self.enabled:
            self._violations.labels(check_id=check_id).inc(count)

    def sample_value(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        if not self.enabled:
            return None
        return self._registry.get_sample_value(name, labels or {})

    def render(self) -> MetricsSnapshot:
        if not self.enabled:
            return MetricsSnapshot(content=b"metrics_disabled\n", content_type="text/plain")
        return MetricsSnapshot(content=generate_latest(self._registry), content_type=CONTENT_TYPE_LATEST)


metrics = Metrics()
