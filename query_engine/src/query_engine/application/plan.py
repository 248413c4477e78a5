"""Logical plan nodes.

A query reaches the engine as a tree of these nodes, built by an external
parser, by hand, or decoded from a plan document (see
``adapters.inbound.plan_codec``). Every node carries a ``PlanKind`` tag.

Plans describe what to compute; the executor turns them into operator
trees. Nodes print as an indented tree:

    >>> predicate = ComparisonExpr(col("sales"), ComparisonOp.GT, lit(100))
    >>> print(Filter(TableScan("orders"), predicate))
    Filter(sales > 100)
      -> TableScan(orders)
"""

from __future__ import annotations

import textwrap
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Iterator

from query_engine.domain.value_objects.expressions import (
    AggregateExpr,
    Expression,
    OrderByItem,
    WindowExpr,
)


class PlanKind(Enum):
    """Kinds of logical plan nodes."""

    SCAN = "scan"
    SUBQUERY = "subquery"
    FILTER = "filter"
    JOIN = "join"
    AGGREGATE = "aggregate"
    WINDOW = "window"
    PROJECT = "project"
    SORT = "sort"
    LIMIT = "limit"
    DISTINCT = "distinct"
    SET_OPERATION = "set_operation"


class JoinKind(Enum):
    """Join kinds.

    SEMI keeps each left row that has at least one match (``EXISTS``),
    ANTI each left row that has none (``NOT EXISTS``). Both output the
    left columns only, every left row at most once.
    """

    INNER = "inner"
    LEFT = "left"
    RIGHT = "right"
    FULL = "full"
    CROSS = "cross"
    SEMI = "semi"
    ANTI = "anti"

    @property
    def emits_right_columns(self) -> bool:
        return self not in (JoinKind.SEMI, JoinKind.ANTI)

    @property
    def keeps_unmatched_left(self) -> bool:
        return self in (JoinKind.LEFT, JoinKind.FULL)

    @property
    def keeps_unmatched_right(self) -> bool:
        return self in (JoinKind.RIGHT, JoinKind.FULL)


@dataclass
class SelectItem:
    """An item in a SELECT list (or an aggregate with its output name)."""

    expr: Expression
    alias: str | None = None

    def __str__(self) -> str:
        if self.alias:
            return f"{self.expr} AS {self.alias}"
        return str(self.expr)


def _child(plan: LogicalPlan) -> str:
    return "\n  -> " + textwrap.indent(str(plan), "     ").lstrip()


@dataclass
class LogicalPlan(ABC):
    """Base class for logical plan nodes."""

    kind: ClassVar[PlanKind]

    @abstractmethod
    def __str__(self) -> str:
        pass

    def inputs(self) -> tuple[LogicalPlan, ...]:
        """Direct child plans."""
        return ()

    def walk(self) -> Iterator[LogicalPlan]:
        """Yield this node and all nodes below it, pre-order."""
        yield self
        for child in self.inputs():
            yield from child.walk()


@dataclass
class TableScan(LogicalPlan):
    """Scan a base relation from the catalog."""

    kind: ClassVar[PlanKind] = PlanKind.SCAN

    table_name: str
    alias: str | None = None

    def __str__(self) -> str:
        if self.alias:
            return f"TableScan({self.table_name} AS {self.alias})"
        return f"TableScan({self.table_name})"


@dataclass
class SubqueryScan(LogicalPlan):
    """Expose a child plan's output under a table alias (derived table)."""

    kind: ClassVar[PlanKind] = PlanKind.SUBQUERY

    input: LogicalPlan
    alias: str

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.input,)

    def __str__(self) -> str:
        return f"SubqueryScan(AS {self.alias}){_child(self.input)}"


@dataclass
class Filter(LogicalPlan):
    """Filter rows based on a predicate."""

    kind: ClassVar[PlanKind] = PlanKind.FILTER

    input: LogicalPlan
    predicate: Expression

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.input,)

    def __str__(self) -> str:
        return f"Filter({self.predicate}){_child(self.input)}"


@dataclass
class Join(LogicalPlan):
    """Join two inputs. ``condition`` is ignored for CROSS joins."""

    kind: ClassVar[PlanKind] = PlanKind.JOIN

    left: LogicalPlan
    right: LogicalPlan
    join_kind: JoinKind = JoinKind.INNER
    condition: Expression | None = None

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        on = f" ON {self.condition}" if self.condition is not None else ""
        return (
            f"Join({self.join_kind.value.upper()}{on})"
            f"{_child(self.left)}{_child(self.right)}"
        )


@dataclass
class Aggregate(LogicalPlan):
    """Aggregate rows with GROUP BY and an optional HAVING filter.

    Output columns are the group-by expressions followed by the aggregates.
    Aggregates that appear only in ``having`` are computed but not emitted.
    """

    kind: ClassVar[PlanKind] = PlanKind.AGGREGATE

    input: LogicalPlan
    group_by: list[Expression] = field(default_factory=list)
    aggregates: list[SelectItem] = field(default_factory=list)
    having: Expression | None = None

    def __post_init__(self) -> None:
        self.aggregates = [
            item if isinstance(item, SelectItem) else SelectItem(item)
            for item in self.aggregates
        ]
        for item in self.aggregates:
            if not isinstance(item.expr, AggregateExpr):
                raise ValueError(f"'{item.expr}' is not an aggregate call")

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.input,)

    def __str__(self) -> str:
        groups = ", ".join(str(g) for g in self.group_by)
        aggs = ", ".join(str(a) for a in self.aggregates)
        having = f", having={self.having}" if self.having is not None else ""
        return f"Aggregate(group=[{groups}], agg=[{aggs}]{having}){_child(self.input)}"


@dataclass
class Window(LogicalPlan):
    """Append one window function column to every input row."""

    kind: ClassVar[PlanKind] = PlanKind.WINDOW

    input: LogicalPlan
    window: WindowExpr
    alias: str | None = None

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.input,)

    def __str__(self) -> str:
        alias = f" AS {self.alias}" if self.alias else ""
        return f"Window({self.window}{alias}){_child(self.input)}"


@dataclass
class Project(LogicalPlan):
    """Project (select) expressions."""

    kind: ClassVar[PlanKind] = PlanKind.PROJECT

    input: LogicalPlan
    items: list[SelectItem]

    def __post_init__(self) -> None:
        self.items = [
            item if isinstance(item, SelectItem) else SelectItem(item) for item in self.items
        ]

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.input,)

    def __str__(self) -> str:
        cols = ", ".join(str(item) for item in self.items)
        return f"Project({cols}){_child(self.input)}"


@dataclass
class Sort(LogicalPlan):
    """Sort rows by specified keys."""

    kind: ClassVar[PlanKind] = PlanKind.SORT

    input: LogicalPlan
    order_by: list[OrderByItem]

    def __post_init__(self) -> None:
        self.order_by = [
            item if isinstance(item, OrderByItem) else OrderByItem(item)
            for item in self.order_by
        ]

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.input,)

    def __str__(self) -> str:
        cols = ", ".join(str(item) for item in self.order_by)
        return f"Sort({cols}){_child(self.input)}"


@dataclass
class Limit(LogicalPlan):
    """Limit the number of rows returned. ``count=None`` only skips ``offset``."""

    kind: ClassVar[PlanKind] = PlanKind.LIMIT

    input: LogicalPlan
    count: int | None
    offset: int = 0

    def __post_init__(self) -> None:
        if self.count is not None and self.count < 0:
            raise ValueError(f"LIMIT must be non-negative, got {self.count}")
        if self.offset < 0:
            raise ValueError(f"OFFSET must be non-negative, got {self.offset}")

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.input,)

    def __str__(self) -> str:
        return f"Limit({self.count}, offset={self.offset}){_child(self.input)}"


@dataclass
class Distinct(LogicalPlan):
    """Remove duplicate rows."""

    kind: ClassVar[PlanKind] = PlanKind.DISTINCT

    input: LogicalPlan

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.input,)

    def __str__(self) -> str:
        return f"Distinct{_child(self.input)}"


class SetOpKind(Enum):
    """Set operations. Rows compare with grouping equality: NULLs match."""

    UNION = "union"
    INTERSECT = "intersect"
    EXCEPT = "except"


@dataclass
class SetOperation(LogicalPlan):
    """Combine two inputs with the same column count.

    Without ``all`` the result is duplicate-free; with it, UNION keeps every
    row and INTERSECT/EXCEPT work on multiplicities.
    """

    kind: ClassVar[PlanKind] = PlanKind.SET_OPERATION

    left: LogicalPlan
    right: LogicalPlan
    op: SetOpKind = SetOpKind.UNION
    all: bool = False

    def inputs(self) -> tuple[LogicalPlan, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        suffix = " ALL" if self.all else ""
        return (
            f"SetOperation({self.op.value.upper()}{suffix})"
            f"{_child(self.left)}{_child(self.right)}"
        )
