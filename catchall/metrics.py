"""
Capture metrics.

One ``CaptureMetrics`` per application (``app.state.metrics``), each with its
own ``CollectorRegistry`` so separate app instances never share counters.
"""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, generate_latest


def status_class(status: int) -> str:
    return f"{status // 100}xx"


class CaptureMetrics:
    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry or CollectorRegistry(auto_describe=True)
        self.captured = Counter(
            "captured_requests",
            "Total number of requests captured",
            registry=self.registry,
        )
        self.by_method = Counter(
            "captured_by_method",
            "Number of requests captured by HTTP method",
            ["method"],
            registry=self.registry,
        )
        self.by_status = Counter(
            "captured_by_status",
            "Number of capture responses by HTTP status class",
            ["status"],
            registry=self.registry,
        )
        self.bytes_in = Counter(
            "bytes_in",
            "Total body bytes stored from captured requests",
            registry=self.registry,
        )
        self.files_stored = Counter(
            "files_stored",
            "Total number of files stored from multipart uploads",
            registry=self.registry,
        )

    def record(self, method: str, status: int, bytes_in: int = 0, files: int = 0) -> None:
        self.by_status.labels(status=status_class(status)).inc()
        if status >= 400:
            return
        self.captured.inc()
        self.by_method.labels(method=method.upper()).inc()
        if bytes_in:
            self.bytes_in.inc(bytes_in)
        if files:
            self.files_stored.inc(files)

    def value(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Current sample value, 0.0 when the series has not been touched."""
        return self.registry.get_sample_value(name, labels or {}) or 0.0

    def render(self) -> bytes:
        return generate_latest(self.registry)


__all__ = ["CaptureMetrics", "status_class"]
