"""Prometheus metrics for the query engine."""

from __future__ import annotations

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)


class MetricsRegistry:
    """Registry of all query engine metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        self.queries_total = Counter(
            "query_engine_queries_total",
            "Total number of queries executed",
            ["root", "status"],  # root plan kind; status: success, error
            registry=self._registry,
        )

        self.query_latency_seconds = Histogram(
            "query_engine_query_latency_seconds",
            "Query latency in seconds",
            ["root"],
            buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0),
            registry=self._registry,
        )

        self.rows_produced_total = Counter(
            "query_engine_rows_produced_total",
            "Rows emitted by operators",
            ["operator"],
            registry=self._registry,
        )

        self.errors_total = Counter(
            "query_engine_errors_total",
            "Query failures by error class",
            ["error"],
            registry=self._registry,
        )

        self.tables_registered = Gauge(
            "query_engine_tables_registered",
            "Number of base relations in the catalog",
            registry=self._registry,
        )

        self.info = Info(
            "query_engine",
            "Query engine information",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """The collector registry the metrics are attached to."""
        return self._registry


_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Create the global metrics registry and expose it over HTTP.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from query_engine import __version__
    _metrics.info.info({"version": __version__})

    start_http_server(port, registry=registry or REGISTRY)
    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
