"""Instruments registered on the service registry."""
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Summary

from rwpusher.series import ErrorKind, PushOutcome

VERSION = "v0.1.0"


class ServiceMetrics:
    """Metrics of the demo service whose registry the pusher snapshots."""

    def __init__(self, registry: CollectorRegistry = None):
        if registry is None:
            registry = CollectorRegistry()
        self.registry = registry

        self.version = Gauge(
            "version",
            "Version information about this binary",
            ["version"],
            registry=registry
        )
        self.version.labels(version=VERSION)

        self.alert = Gauge(
            "alert",
            "for alert purpose",
            ["reason"],
            registry=registry
        )
        self.alert.labels(reason="test")

        self.http_requests_total = Counter(
            "http_requests_total",
            "Count of all HTTP requests",
            ["code", "method"],
            registry=registry
        )

        self.hello_world = Summary(
            "hello_world",
            "Duration of hello world requests in seconds",
            ["reason"],
            registry=registry
        )
        self.hello_world.labels(reason="test")

    def record_request(self, code: int, method: str):
        """Count a served request."""
        self.http_requests_total.labels(code=str(code), method=method.lower()).inc()

    def set_alert(self, value: float):
        self.alert.labels(reason="test").set(value)


class PusherMetrics:
    """Self-monitoring metrics for the remote-write pusher."""

    def __init__(self, registry: CollectorRegistry = None, prefix: str = ""):
        if registry is None:
            registry = CollectorRegistry()

        self.pushes_total = Counter(
            f"{prefix}remote_write_pushes_total",
            "Total number of push cycles attempted",
            registry=registry
        )

        self.push_failures_total = Counter(
            f"{prefix}remote_write_push_failures_total",
            "Total number of failed push cycles",
            ["kind"],
            registry=registry
        )

        self.series_pushed_total = Counter(
            f"{prefix}remote_write_series_pushed_total",
            "Total number of time series delivered",
            registry=registry
        )

        self.push_duration_seconds = Histogram(
            f"{prefix}remote_write_push_duration_seconds",
            "Duration of each push cycle in seconds",
            buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
            registry=registry
        )

        # Pre-create one child per kind so failures show up as zero
        for kind in ErrorKind:
            self.push_failures_total.labels(kind=kind.value)

    def record_outcome(self, outcome: PushOutcome):
        """Record one finished push cycle."""
        self.pushes_total.inc()
        self.push_duration_seconds.observe(outcome.duration_s)
        if outcome.success:
            self.series_pushed_total.inc(outcome.series_count)
        elif outcome.error_kind is not None:
            self.push_failures_total.labels(kind=outcome.error_kind.value).inc()
