"""Query Engine - Unified entry point for the query engine.

This module provides the QueryEngine class that wires a catalog, an
executor and the observability stack together from configuration.

Usage:
    from query_engine.application import QueryEngine

    engine = QueryEngine()
    engine.create_table("orders", schema, [(1, "West", 100), (2, "East", 200)])

    result = engine.execute(
        Aggregate(
            TableScan("orders", "o"),
            group_by=[col("o.region")],
            aggregates=[SelectItem(AggregateExpr(AggregateFunc.SUM, col("o.sales")), "total")],
        )
    )
    result.rows  # [('West', 100), ('East', 200)]

    # Plans can also arrive as JSON documents
    result = engine.execute({"op": "scan", "table": "orders"})
"""

from __future__ import annotations

from typing import Any, Iterable, Mapping, Sequence

from query_engine.adapters.outbound.memory_catalog import InMemoryCatalog
from query_engine.application.executor import QueryExecutor
from query_engine.application.plan import LogicalPlan
from query_engine.domain.entities import Relation, Schema
from query_engine.domain.value_objects import QueryContext
from query_engine.infrastructure.config import Config, get_config
from query_engine.infrastructure.logging import get_logger, setup_logging
from query_engine.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from query_engine.infrastructure.tracing import setup_tracing
from query_engine.ports.inbound import ExecutionResult, QueryExecutorPort
from query_engine.ports.outbound import RelationProvider

logger = get_logger(__name__)


class QueryEngine:
    """Main entry point: a catalog of base relations plus an executor.

    Features:
        - Tables registered from relations or created from raw rows
        - Plans executed as LogicalPlan trees or JSON plan documents
        - Per-query settings (LIKE case, NULL ordering, empty aggregates)
          taken from ``Config.query``

    Thread Safety:
        Queries share nothing but the catalog and lifetime counters.
        Registering tables concurrently with execution is not supported.
    """

    def __init__(
        self,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
        configure_observability: bool = False,
    ) -> None:
        """Initialize the query engine.

        Args:
            config: Engine configuration. Uses ``get_config()`` if None.
            metrics: Metrics registry. Uses the global registry if None.
            configure_observability: Set up logging, tracing and (when
                enabled) the metrics HTTP endpoint from ``config.observability``.
        """
        self._config = config or get_config()
        observability = self._config.observability

        if configure_observability:
            setup_logging(
                observability.log_level,
                observability.log_format,
                observability.log_max_field_chars,
            )
            setup_tracing(observability.otel_service_name, observability.otel_endpoint)
            if metrics is None and observability.metrics_enabled:
                metrics = setup_metrics(observability.metrics_port)

        self._metrics = metrics or get_metrics()
        self._context = QueryContext.from_config(self._config.query)
        self._catalog = InMemoryCatalog(metrics=self._metrics)
        self._executor: QueryExecutorPort = QueryExecutor(
            catalog=self._catalog,
            context=self._context,
            metrics=self._metrics,
            max_result_rows=self._config.query.max_result_rows,
        )

    @property
    def config(self) -> Config:
        return self._config

    @property
    def context(self) -> QueryContext:
        """Settings applied to every query."""
        return self._context

    @property
    def catalog(self) -> InMemoryCatalog:
        return self._catalog

    def register_table(
        self, name: str, relation: RelationProvider, replace: bool = False
    ) -> None:
        """Register an existing relation as a base table.

        Raises:
            SchemaError: If the name is taken and ``replace`` is False.
        """
        self._catalog.register(name, relation, replace=replace)

    def create_table(
        self,
        name: str,
        schema: Schema,
        rows: Iterable[Sequence[Any]] = (),
        replace: bool = False,
    ) -> Relation:
        """Create a base table from raw rows.

        Raises:
            SchemaError: If a row has the wrong arity or the name is taken.
            QueryTypeError: If a value does not match its column type.
        """
        return self._catalog.create_table(name, schema, rows, replace=replace)

    def drop_table(self, name: str) -> bool:
        """Remove a base table. Returns False if it did not exist."""
        return self._catalog.unregister(name)

    def table_names(self) -> list[str]:
        return self._catalog.table_names()

    def execute(self, plan: LogicalPlan | Mapping[str, Any] | str) -> ExecutionResult:
        """Execute a logical plan or a plan document.

        Args:
            plan: A LogicalPlan tree, or a plan document (dict or JSON text).

        Returns:
            ExecutionResult holding the output relation.

        Raises:
            PlanDecodeError: If a plan document is malformed.
            QueryError: If binding or evaluation fails.
        """
        if isinstance(plan, LogicalPlan):
            return self.execute_plan(plan)
        return self.execute_document(plan)

    def execute_plan(self, plan: LogicalPlan) -> ExecutionResult:
        return self._executor.execute(plan)

    def execute_document(self, document: Mapping[str, Any] | str) -> ExecutionResult:
        """Decode a plan document and execute it."""
        # plan_codec imports the plan nodes of this package
        from query_engine.adapters.inbound.plan_codec import PlanCodec

        return self._executor.execute(PlanCodec.decode(document))

    def execute_many(self, plans: list[LogicalPlan]) -> list[ExecutionResult]:
        """Execute several plans in order, stopping at the first failure."""
        return [self.execute(plan) for plan in plans]

    def get_stats(self) -> dict:
        """Get engine statistics.

        Returns:
            Dictionary with table and query counters.
        """
        executor_stats = self._executor.get_stats()
        return {
            "tables": len(self._catalog),
            "queries": {
                "executed": executor_stats.queries_executed,
                "failed": executor_stats.queries_failed,
                "rows_returned": executor_stats.rows_returned,
            },
            "settings": {
                "like_case_sensitive": self._context.like_case_sensitive,
                "nulls_first_on_desc": self._context.nulls_first_on_desc,
                "empty_ungrouped_emits_row": self._context.empty_ungrouped_emits_row,
                "max_result_rows": self._config.query.max_result_rows,
            },
        }

    def close(self) -> None:
        """Drop every registered table."""
        for name in self._catalog.table_names():
            self._catalog.unregister(name)
        logger.debug("engine_closed")

    def __enter__(self) -> "QueryEngine":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
