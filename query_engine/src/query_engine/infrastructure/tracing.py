"""OpenTelemetry tracing for query execution.

One span per query (``query.execute``). Its attributes describe the plan
before it runs; once the operator tree has been drained, one ``operator``
event per physical operator records what that operator produced:

    operator.name      Scan, Join, Aggregate, ...
    operator.depth     0 for the root
    operator.rows      rows produced
    operator.columns   output width
    join.strategy      hash / nested_loop (joins only)

Failures set ``error.type`` and ``error.operator`` and mark the span ERROR.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Generator, Iterator

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.trace import Status, StatusCode

from query_engine.domain.exceptions import QueryError

if TYPE_CHECKING:
    from query_engine.application.operators import Operator
    from query_engine.application.plan import LogicalPlan

_tracer: trace.Tracer | None = None


def setup_tracing(
    service_name: str = "query_engine",
    otlp_endpoint: str | None = None,
    console_export: bool = False,
) -> trace.Tracer:
    """
    Install a tracer provider for query spans.

    Args:
        service_name: ``service.name`` resource attribute
        otlp_endpoint: OTLP collector endpoint (e.g., "http://localhost:4317");
            spans are only exported when one is given
        console_export: Whether to also print finished spans to stdout

    Returns:
        The tracer later returned by ``get_tracer``
    """
    global _tracer

    from query_engine import __version__

    resource = Resource.create({"service.name": service_name, "service.version": __version__})
    provider = TracerProvider(resource=resource)

    if otlp_endpoint:
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=otlp_endpoint, insecure=True))
        )
    if console_export:
        provider.add_span_processor(BatchSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    _tracer = trace.get_tracer(service_name)
    return _tracer


def get_tracer() -> trace.Tracer:
    """Get the global tracer instance."""
    global _tracer
    if _tracer is None:
        _tracer = trace.get_tracer("query_engine")
    return _tracer


@contextmanager
def trace_span(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[trace.Span, None, None]:
    """
    Context manager for creating a trace span.

    Exceptions escaping the block are recorded on the span before
    propagating.

    Args:
        name: Name of the span
        attributes: Optional attributes to add to the span

    Yields:
        The created span
    """
    tracer = get_tracer()
    with tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)
        yield span


def plan_attributes(query_id: int, plan: LogicalPlan) -> dict[str, Any]:
    """Span attributes describing a logical plan before it is bound."""
    kinds = [node.kind.value for node in plan.walk()]
    tables = sorted(
        {node.table_name for node in plan.walk() if getattr(node, "table_name", None)}
    )
    return {
        "query.id": query_id,
        "query.root": kinds[0],
        "query.operators": ",".join(kinds),
        "query.tables": ",".join(tables),
    }


def _with_depth(operator: Operator, depth: int = 0) -> Iterator[tuple[int, Operator]]:
    yield depth, operator
    for child in operator.children:
        yield from _with_depth(child, depth + 1)


def record_operator_events(span: trace.Span, operator: Operator) -> None:
    """Add one ``operator`` event per node of a drained operator tree, root first."""
    for depth, node in _with_depth(operator):
        attributes: dict[str, Any] = {
            "operator.name": node.name,
            "operator.depth": depth,
            "operator.rows": node.rows_produced,
            "operator.columns": len(node.schema),
        }
        strategy = getattr(node, "strategy", None)
        if strategy is not None:
            attributes["join.strategy"] = strategy
        span.add_event("operator", attributes)


def record_query_error(span: trace.Span, error: QueryError) -> None:
    """Mark a query span failed, naming the error and the operator that raised it."""
    span.set_attribute("error.type", type(error).__name__)
    if error.operator:
        span.set_attribute("error.operator", error.operator)
    span.set_status(Status(StatusCode.ERROR, error.message))
