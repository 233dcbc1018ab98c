"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from jobqueue.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_CACHE_REQUESTS,
    METRIC_DISPATCH_REJECTED,
    METRIC_JOB_DURATION,
    METRIC_JOBS_COMPLETED,
    METRIC_JOBS_DISPATCHED,
    METRIC_JOBS_SUBMITTED,
    METRIC_QUEUE_DEPTH,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the job queue.

    Collects metrics for:
    - Queue depth
    - Job submissions, dispatches and completions
    - Time from submission to completion
    - Status cache hits, misses and failures
    - API requests
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        # Waiting jobs gauge
        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs waiting for a processor",
            registry=self._registry,
        )

        # Jobs submitted counter
        self.jobs_submitted = Counter(
            METRIC_JOBS_SUBMITTED,
            "Total number of jobs submitted",
            ["priority"],
            registry=self._registry,
        )

        # Jobs dispatched counter
        self.jobs_dispatched = Counter(
            METRIC_JOBS_DISPATCHED,
            "Total number of jobs handed to processors",
            ["priority"],
            registry=self._registry,
        )

        # Dispatch rejections counter
        self.dispatch_rejected = Counter(
            METRIC_DISPATCH_REJECTED,
            "Total number of dispatch requests that did not hand out a job",
            ["reason"],
            registry=self._registry,
        )

        # Jobs completed counter
        self.jobs_completed = Counter(
            METRIC_JOBS_COMPLETED,
            "Total number of jobs completed",
            ["priority"],
            registry=self._registry,
        )

        # Job duration histogram
        self.job_duration = Histogram(
            METRIC_JOB_DURATION,
            "Time from submission to completion in seconds",
            ["priority"],
            buckets=(0.1, 0.5, 1.0, 5.0, 30.0, 60.0, 300.0, 900.0, 3600.0),
            registry=self._registry,
        )

        # Status cache requests counter
        self.cache_requests = Counter(
            METRIC_CACHE_REQUESTS,
            "Total number of status cache operations by result",
            ["result"],
            registry=self._registry,
        )

        # API requests counter
        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        # API latency histogram
        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_job_submitted(self, priority: int) -> None:
        """Record a job submission."""
        self.jobs_submitted.labels(priority=str(priority)).inc()

    def record_job_dispatched(self, priority: int) -> None:
        """Record a job handed to a processor."""
        self.jobs_dispatched.labels(priority=str(priority)).inc()

    def record_dispatch_rejected(self, reason: str) -> None:
        """Record a dispatch request that returned no job."""
        self.dispatch_rejected.labels(reason=reason).inc()

    def record_job_completed(
        self,
        priority: int,
        duration_seconds: float | None,
    ) -> None:
        """Record a job completion."""
        self.jobs_completed.labels(priority=str(priority)).inc()
        if duration_seconds is not None:
            self.job_duration.labels(priority=str(priority)).observe(
                max(0.0, duration_seconds)
            )

    def record_cache_request(self, result: str) -> None:
        """Record a status cache hit, miss or error."""
        self.cache_requests.labels(result=result).inc()

    def update_queue_depth(self, depth: int) -> None:
        """Update the number of waiting jobs."""
        self.queue_depth.set(depth)

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """
    Get the metrics collector instance, creating it on first use.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    if _metrics is None:
        return setup_metrics()
    return _metrics
