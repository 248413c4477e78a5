"""Query executor port.

This inbound port defines the contract offered to clients: hand over a
logical plan, receive a relation. Errors are raised, never returned
inside the result.

Errors:
    - SchemaError: unknown or ambiguous column or table (bind time)
    - QueryTypeError: operator applied to an incompatible data kind
    - DivisionByZeroError: division or modulo by zero
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from query_engine.domain.entities import Relation
from query_engine.domain.exceptions import (
    DivisionByZeroError,
    QueryError,
    QueryTypeError,
    SchemaError,
)

if TYPE_CHECKING:
    from query_engine.application.plan import LogicalPlan


@dataclass
class ExecutionResult:
    """Result of executing one query."""

    relation: Relation  # materialized
    elapsed_seconds: float = 0.0
    truncated: bool = False  # cut off by max_result_rows
    message: str = "OK"

    @property
    def columns(self) -> list[str]:
        return self.relation.schema().names

    @property
    def rows(self) -> list[tuple[Any, ...]]:
        return self.relation.to_tuples()

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_dicts(self) -> list[dict[str, Any]]:
        return self.relation.to_dicts()


@dataclass
class ExecutorStats:
    """Counters kept by an executor over its lifetime."""

    queries_executed: int = 0
    queries_failed: int = 0
    rows_returned: int = 0


class QueryExecutorPort(Protocol):
    """Protocol for executing logical plans.

    Each call is independent: nothing computed for one query is reused by
    the next.

    Example:
        result = executor.execute(plan)
        for row in result.rows:
            ...
    """

    @abstractmethod
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
        ...

    @abstractmethod
    def get_stats(self) -> ExecutorStats:
        """Return lifetime counters."""
        ...


__all__ = [
    "DivisionByZeroError",
    "ExecutionResult",
    "ExecutorStats",
    "QueryError",
    "QueryExecutorPort",
    "QueryTypeError",
    "SchemaError",
]
