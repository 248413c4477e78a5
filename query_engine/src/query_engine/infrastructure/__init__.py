"""Infrastructure layer - cross-cutting concerns."""

from query_engine.infrastructure.config import Config, get_config
from query_engine.infrastructure.logging import (
    clip_fields,
    get_logger,
    query_log_context,
    setup_logging,
)
from query_engine.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from query_engine.infrastructure.tracing import (
    get_tracer,
    plan_attributes,
    record_operator_events,
    record_query_error,
    setup_tracing,
    trace_span,
)

__all__ = [
    "Config",
    "get_config",
    "setup_logging",
    "get_logger",
    "query_log_context",
    "clip_fields",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
    "plan_attributes",
    "record_operator_events",
    "record_query_error",
]
