"""Query Executor using Volcano iterator model.

This module turns logical plans into operator trees and runs them against
base relations from a catalog.

Execution of one query:
    - Bind: build the operator tree bottom-up; every column reference is
      resolved and every output schema fixed before any row is read
    - Run: pull rows from the root until exhausted (or ``max_result_rows``)
    - Report: log, count and trace the outcome; the trace span gets one
      event per operator with the rows it produced

The first error aborts the query. It is logged with the operator and row
that raised it, counted, recorded on the trace span, then re-raised.

References:
    - Graefe, "Volcano" (1994)
"""

from __future__ import annotations

import time

from query_engine.application.operators import (
    AggregateOperator,
    DistinctOperator,
    FilterOperator,
    JoinOperator,
    LimitOperator,
    Operator,
    ProjectOperator,
    ScanOperator,
    SetOperationOperator,
    SortOperator,
    SubqueryScanOperator,
    WindowOperator,
)
from query_engine.application.plan import (
    Aggregate,
    Distinct,
    Filter,
    Join,
    Limit,
    LogicalPlan,
    Project,
    SetOperation,
    Sort,
    SubqueryScan,
    TableScan,
    Window,
)
from query_engine.domain.entities import Relation
from query_engine.domain.exceptions import QueryError
from query_engine.domain.value_objects import DEFAULT_CONTEXT, QueryContext
from query_engine.infrastructure.logging import get_logger, query_log_context
from query_engine.infrastructure.metrics import MetricsRegistry, get_metrics
from query_engine.infrastructure.tracing import (
    plan_attributes,
    record_operator_events,
    record_query_error,
    trace_span,
)
from query_engine.ports.inbound import ExecutionResult, ExecutorStats, QueryExecutorPort
from query_engine.ports.outbound import Catalog

logger = get_logger(__name__)


class QueryExecutor(QueryExecutorPort):
    """Executes logical plans against a catalog of base relations.

    The executor converts logical plans into physical operator trees
    and executes them using the Volcano iterator model. Nothing is kept
    between queries except lifetime counters.
    """

    def __init__(
        self,
        catalog: Catalog,
        context: QueryContext = DEFAULT_CONTEXT,
        metrics: MetricsRegistry | None = None,
        max_result_rows: int | None = None,
    ) -> None:
        self._catalog = catalog
        self._context = context
        self._metrics = metrics
        self._max_result_rows = max_result_rows
        self._stats = ExecutorStats()
        self._next_query_id = 1

    @property
    def context(self) -> QueryContext:
        return self._context

    def execute(self, plan: LogicalPlan) -> ExecutionResult:
        """Bind and run a plan.

        Args:
            plan: Root of the logical plan tree.

        Returns:
            ExecutionResult holding the materialized output relation.

        Raises:
            SchemaError: If the plan references unknown columns or tables.
            QueryTypeError: If operand kinds are incompatible.
            DivisionByZeroError: If a division by zero is evaluated.
        """
        query_id = self._next_query_id
        self._next_query_id += 1
        root = plan.kind.value
        metrics = self._metrics or get_metrics()
        attributes = plan_attributes(query_id, plan)

        with query_log_context(query_id=query_id), trace_span("query.execute", attributes) as span:
            logger.debug("query_started", root=root, plan=str(plan))
            started = time.perf_counter()
            try:
                operator = self.build(plan)
                relation, truncated = self._run(operator)
            except QueryError as e:
                self._stats.queries_failed += 1
                metrics.queries_total.labels(root=root, status="error").inc()
                metrics.errors_total.labels(error=type(e).__name__).inc()
                record_query_error(span, e)
                logger.warning(
                    "query_failed",
                    error=type(e).__name__,
                    message=e.message,
                    operator=e.operator,
                    row=repr(e.row) if e.row is not None else None,
                )
                raise
            elapsed = time.perf_counter() - started

            row_count = len(relation.to_tuples())
            self._stats.queries_executed += 1
            self._stats.rows_returned += row_count
            metrics.queries_total.labels(root=root, status="success").inc()
            metrics.query_latency_seconds.labels(root=root).observe(elapsed)
            for node in operator.walk():
                if node.rows_produced:
                    metrics.rows_produced_total.labels(operator=node.name).inc(
                        node.rows_produced
                    )
            span.set_attribute("query.rows", row_count)
            span.set_attribute("query.truncated", truncated)
            record_operator_events(span, operator)
            logger.info(
                "query_completed",
                root=root,
                rows=row_count,
                truncated=truncated,
                elapsed_ms=round(elapsed * 1000, 3),
            )
            return ExecutionResult(relation=relation, elapsed_seconds=elapsed, truncated=truncated)

    def _run(self, operator: Operator) -> tuple[Relation, bool]:
        rows = []
        truncated = False
        operator.open()
        try:
            while True:
                if self._max_result_rows is not None and len(rows) >= self._max_result_rows:
                    truncated = operator.next() is not None
                    break
                row = operator.next()
                if row is None:
                    break
                rows.append(row)
        finally:
            operator.close()
        return Relation(operator.schema, tuple(rows)), truncated

    def build(self, plan: LogicalPlan) -> Operator:
        """Build a physical operator tree from a logical plan.

        Raises:
            SchemaError: If a table or column cannot be resolved.
            QueryTypeError: If an expression is statically ill-typed.
        """
        context = self._context
        if isinstance(plan, TableScan):
            try:
                provider = self._catalog.get(plan.table_name)
            except QueryError as e:
                raise e.with_context(ScanOperator.name)
            return ScanOperator(provider, plan.alias)
        elif isinstance(plan, SubqueryScan):
            return SubqueryScanOperator(self.build(plan.input), plan.alias)
        elif isinstance(plan, Filter):
            return FilterOperator(self.build(plan.input), plan.predicate, context)
        elif isinstance(plan, Join):
            return JoinOperator(
                self.build(plan.left),
                self.build(plan.right),
                plan.join_kind,
                plan.condition,
                context,
            )
        elif isinstance(plan, Aggregate):
            return AggregateOperator(
                self.build(plan.input), plan.group_by, plan.aggregates, plan.having, context
            )
        elif isinstance(plan, Window):
            return WindowOperator(self.build(plan.input), plan.window, plan.alias, context)
        elif isinstance(plan, Project):
            return ProjectOperator(self.build(plan.input), plan.items, context)
        elif isinstance(plan, Sort):
            return SortOperator(self.build(plan.input), plan.order_by, context)
        elif isinstance(plan, Limit):
            return LimitOperator(self.build(plan.input), plan.count, plan.offset)
        elif isinstance(plan, Distinct):
            return DistinctOperator(self.build(plan.input))
        elif isinstance(plan, SetOperation):
            return SetOperationOperator(
                self.build(plan.left), self.build(plan.right), plan.op, plan.all
            )
        raise QueryError(f"Unsupported plan type: {type(plan).__name__}")

    def get_stats(self) -> ExecutorStats:
        """Return lifetime counters."""
        return ExecutorStats(
            queries_executed=self._stats.queries_executed,
            queries_failed=self._stats.queries_failed,
            rows_returned=self._stats.rows_returned,
        )
