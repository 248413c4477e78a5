"""Plan documents: JSON operator trees decoded with pydantic.

An external parser (or a test, or a client over some transport) can hand
the engine a plan as a JSON document instead of Python objects. Plan
nodes are tagged with ``op``, expressions with ``type``:

    {
      "op": "aggregate",
      "input": {"op": "scan", "table": "orders", "alias": "o"},
      "group_by": [{"type": "column", "name": "o.region"}],
      "aggregates": [
        {"expr": {"type": "aggregate", "func": "SUM",
                  "arg": {"type": "column", "name": "o.sales"}},
         "alias": "total"}
      ],
      "having": {"type": "compare", "op": ">",
                 "left": {"type": "column", "name": "total"},
                 "right": {"type": "literal", "value": 250}}
    }

Literals carry JSON values; ``kind`` converts them (``"date"`` parses ISO
text, ``"decimal"`` gives an exact Decimal). Set operations are tagged
``union``, ``intersect`` or ``except`` and take ``"all": true`` for the
multiset variants.

Example:
    >>> plan = PlanCodec.decode(document)
    >>> print(plan)
    Aggregate(group=[o.region], agg=[SUM(o.sales) AS total], having=total > 250)
      -> TableScan(orders AS o)
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from query_engine.application.plan import (
    Aggregate,
    Distinct,
    Filter,
    Join,
    JoinKind,
    Limit,
    LogicalPlan,
    Project,
    SelectItem,
    SetOperation,
    SetOpKind,
    Sort,
    SubqueryScan,
    TableScan,
    Window,
)
from query_engine.domain.exceptions import QueryError
from query_engine.domain.services import cast_value
from query_engine.domain.value_objects import (
    AggregateExpr,
    AggregateFunc,
    ArithmeticExpr,
    ArithmeticOp,
    BetweenExpr,
    BoundKind,
    CaseExpr,
    CastExpr,
    ComparisonExpr,
    ComparisonOp,
    Expression,
    ExtractExpr,
    FrameBound,
    FrameMode,
    FrameSpec,
    FunctionExpr,
    InExpr,
    IsNullExpr,
    JsonExtractExpr,
    LiteralExpr,
    LogicalExpr,
    LogicalOp,
    NegateExpr,
    OrderByItem,
    ScalarFunc,
    StarExpr,
    WindowExpr,
    WindowFunc,
    col,
    parse_kind,
)

_COMPARISON_ALIASES = {"!=": "<>", "==": "="}


class PlanDecodeError(Exception):
    """A plan document is malformed or describes an invalid plan."""

    pass


def _upper(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


def _lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


class _Node(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


# ----------------------------------------------------------------- expressions


class ColumnNode(_Node):
    type: Literal["column"]
    name: str = Field(..., min_length=1, description="Column name, optionally 'alias.name'")

    def build(self) -> Expression:
        return col(self.name)


class LiteralNode(_Node):
    type: Literal["literal"]
    value: Any = None
    kind: str | None = Field(default=None, description="Convert the JSON value to this kind")

    def build(self) -> Expression:
        if self.kind is None:
            return LiteralExpr(self.value)
        return LiteralExpr(cast_value(self.value, parse_kind(self.kind)))


class StarNode(_Node):
    type: Literal["star"]
    table: str | None = None

    def build(self) -> Expression:
        return StarExpr(self.table)


class CompareNode(_Node):
    type: Literal["compare"]
    op: ComparisonOp
    left: ExpressionNode
    right: ExpressionNode

    @field_validator("op", mode="before")
    @classmethod
    def normalize_op(cls, value: Any) -> Any:
        value = _upper(value)
        return _COMPARISON_ALIASES.get(value, value)

    def build(self) -> Expression:
        return ComparisonExpr(self.left.build(), self.op, self.right.build())


class BetweenNode(_Node):
    type: Literal["between"]
    operand: ExpressionNode
    low: ExpressionNode
    high: ExpressionNode
    negated: bool = False

    def build(self) -> Expression:
        return BetweenExpr(self.operand.build(), self.low.build(), self.high.build(), self.negated)


class InNode(_Node):
    type: Literal["in"]
    operand: ExpressionNode
    items: list[ExpressionNode] = Field(..., min_length=1)
    negated: bool = False

    def build(self) -> Expression:
        items = tuple(item.build() for item in self.items)
        return InExpr(self.operand.build(), items, self.negated)


class IsNullNode(_Node):
    type: Literal["is_null"]
    operand: ExpressionNode
    negated: bool = False

    def build(self) -> Expression:
        return IsNullExpr(self.operand.build(), self.negated)


class LogicalNode(_Node):
    type: Literal["and", "or", "not"]
    operands: list[ExpressionNode] = Field(..., min_length=1)

    def build(self) -> Expression:
        op = LogicalOp(self.type.upper())
        return LogicalExpr(op, tuple(operand.build() for operand in self.operands))


class ArithmeticNode(_Node):
    type: Literal["arithmetic"]
    op: ArithmeticOp
    left: ExpressionNode
    right: ExpressionNode

    def build(self) -> Expression:
        return ArithmeticExpr(self.left.build(), self.op, self.right.build())


class NegateNode(_Node):
    type: Literal["negate"]
    operand: ExpressionNode

    def build(self) -> Expression:
        return NegateExpr(self.operand.build())


class FunctionNode(_Node):
    type: Literal["function"]
    name: ScalarFunc
    args: list[ExpressionNode] = Field(default_factory=list)

    @field_validator("name", mode="before")
    @classmethod
    def normalize_name(cls, value: Any) -> Any:
        return _upper(value)

    def build(self) -> Expression:
        return FunctionExpr(self.name, tuple(arg.build() for arg in self.args))


class ExtractNode(_Node):
    type: Literal["extract"]
    field: str
    operand: ExpressionNode

    def build(self) -> Expression:
        return ExtractExpr(self.field.lower(), self.operand.build())


class WhenNode(_Node):
    when: ExpressionNode
    then: ExpressionNode


class CaseNode(_Node):
    type: Literal["case"]
    whens: list[WhenNode] = Field(..., min_length=1)
    else_: ExpressionNode | None = Field(default=None, alias="else")
    operand: ExpressionNode | None = None

    def build(self) -> Expression:
        return CaseExpr(
            whens=tuple((item.when.build(), item.then.build()) for item in self.whens),
            default=self.else_.build() if self.else_ is not None else None,
            operand=self.operand.build() if self.operand is not None else None,
        )


class CastNode(_Node):
    type: Literal["cast"]
    operand: ExpressionNode
    to: str

    def build(self) -> Expression:
        return CastExpr(self.operand.build(), parse_kind(self.to))


class JsonNode(_Node):
    type: Literal["json"]
    operand: ExpressionNode
    path: list[Union[int, str]] = Field(..., min_length=1)
    as_text: bool = False

    def build(self) -> Expression:
        return JsonExtractExpr(self.operand.build(), tuple(self.path), self.as_text)


class AggregateNode(_Node):
    type: Literal["aggregate"]
    func: AggregateFunc
    arg: ExpressionNode | None = None
    distinct: bool = False
    filter: ExpressionNode | None = None
    separator: str | None = None
    order_by: list[OrderNode] = Field(default_factory=list)

    @field_validator("func", mode="before")
    @classmethod
    def normalize_func(cls, value: Any) -> Any:
        return _upper(value)

    def build(self) -> Expression:
        return AggregateExpr(
            self.func,
            self.arg.build() if self.arg is not None else None,
            self.distinct,
            self.filter.build() if self.filter is not None else None,
            self.separator,
            tuple(item.build() for item in self.order_by),
        )


class OrderNode(_Node):
    expr: ExpressionNode
    direction: Literal["asc", "desc"] = "asc"
    nulls: Literal["first", "last"] | None = None

    @field_validator("direction", "nulls", mode="before")
    @classmethod
    def normalize_keywords(cls, value: Any) -> Any:
        return _lower(value)

    def build(self) -> OrderByItem:
        nulls_first = None if self.nulls is None else self.nulls == "first"
        return OrderByItem(self.expr.build(), self.direction == "asc", nulls_first)


class BoundNode(_Node):
    kind: Literal[
        "unbounded_preceding", "preceding", "current_row", "following", "unbounded_following"
    ]
    offset: int | None = Field(default=None, ge=0)

    def build(self) -> FrameBound:
        return FrameBound(BoundKind[self.kind.upper()], self.offset)


class FrameNode(_Node):
    mode: Literal["rows", "range"] = "rows"
    start: BoundNode
    end: BoundNode | None = None

    def build(self) -> FrameSpec:
        end = self.end.build() if self.end is not None else FrameBound.current_row()
        return FrameSpec(FrameMode(self.mode.upper()), self.start.build(), end)


class WindowNode(_Node):
    type: Literal["window"]
    func: WindowFunc
    args: list[ExpressionNode] = Field(default_factory=list)
    partition_by: list[ExpressionNode] = Field(default_factory=list)
    order_by: list[OrderNode] = Field(default_factory=list)
    frame: FrameNode | None = None

    @field_validator("func", mode="before")
    @classmethod
    def normalize_func(cls, value: Any) -> Any:
        return _upper(value)

    def build(self) -> WindowExpr:
        return WindowExpr(
            func=self.func,
            args=tuple(arg.build() for arg in self.args),
            partition_by=tuple(expr.build() for expr in self.partition_by),
            order_by=tuple(item.build() for item in self.order_by),
            frame=self.frame.build() if self.frame is not None else None,
        )


ExpressionNode = Annotated[
    Union[
        ColumnNode,
        LiteralNode,
        StarNode,
        CompareNode,
        BetweenNode,
        InNode,
        IsNullNode,
        LogicalNode,
        ArithmeticNode,
        NegateNode,
        FunctionNode,
        ExtractNode,
        CaseNode,
        CastNode,
        JsonNode,
        AggregateNode,
        WindowNode,
    ],
    Field(discriminator="type"),
]


# ----------------------------------------------------------------------- plans


class ItemNode(_Node):
    expr: ExpressionNode
    alias: str | None = None

    def build(self) -> SelectItem:
        return SelectItem(self.expr.build(), self.alias)


class ScanNode(_Node):
    op: Literal["scan"]
    table: str = Field(..., min_length=1)
    alias: str | None = None

    def build(self) -> LogicalPlan:
        return TableScan(self.table, self.alias)


class SubqueryNode(_Node):
    op: Literal["subquery"]
    input: PlanNode
    alias: str = Field(..., min_length=1)

    def build(self) -> LogicalPlan:
        return SubqueryScan(self.input.build(), self.alias)


class FilterNode(_Node):
    op: Literal["filter"]
    input: PlanNode
    predicate: ExpressionNode

    def build(self) -> LogicalPlan:
        return Filter(self.input.build(), self.predicate.build())


class JoinNode(_Node):
    op: Literal["join"]
    left: PlanNode
    right: PlanNode
    kind: JoinKind = JoinKind.INNER
    on: ExpressionNode | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def normalize_kind(cls, value: Any) -> Any:
        return _lower(value)

    def build(self) -> LogicalPlan:
        condition = self.on.build() if self.on is not None else None
        return Join(self.left.build(), self.right.build(), self.kind, condition)


class AggregatePlanNode(_Node):
    op: Literal["aggregate"]
    input: PlanNode
    group_by: list[ExpressionNode] = Field(default_factory=list)
    aggregates: list[ItemNode] = Field(default_factory=list)
    having: ExpressionNode | None = None

    def build(self) -> LogicalPlan:
        return Aggregate(
            self.input.build(),
            [expr.build() for expr in self.group_by],
            [item.build() for item in self.aggregates],
            self.having.build() if self.having is not None else None,
        )


class WindowPlanNode(_Node):
    op: Literal["window"]
    input: PlanNode
    function: WindowNode
    alias: str | None = None

    def build(self) -> LogicalPlan:
        return Window(self.input.build(), self.function.build(), self.alias)


class ProjectNode(_Node):
    op: Literal["project"]
    input: PlanNode
    items: list[ItemNode] = Field(..., min_length=1)

    def build(self) -> LogicalPlan:
        return Project(self.input.build(), [item.build() for item in self.items])


class SortNode(_Node):
    op: Literal["sort"]
    input: PlanNode
    order_by: list[OrderNode] = Field(..., min_length=1)

    def build(self) -> LogicalPlan:
        return Sort(self.input.build(), [item.build() for item in self.order_by])


class LimitNode(_Node):
    op: Literal["limit"]
    input: PlanNode
    count: int | None = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)

    def build(self) -> LogicalPlan:
        return Limit(self.input.build(), self.count, self.offset)


class DistinctNode(_Node):
    op: Literal["distinct"]
    input: PlanNode

    def build(self) -> LogicalPlan:
        return Distinct(self.input.build())


class SetOperationNode(_Node):
    op: Literal["union", "intersect", "except"]
    left: PlanNode
    right: PlanNode
    all: bool = False

    def build(self) -> LogicalPlan:
        return SetOperation(self.left.build(), self.right.build(), SetOpKind(self.op), self.all)


PlanNode = Annotated[
    Union[
        ScanNode,
        SubqueryNode,
        FilterNode,
        JoinNode,
        AggregatePlanNode,
        WindowPlanNode,
        ProjectNode,
        SortNode,
        LimitNode,
        DistinctNode,
        SetOperationNode,
    ],
    Field(discriminator="op"),
]

for _model in (
    CompareNode,
    BetweenNode,
    InNode,
    IsNullNode,
    LogicalNode,
    ArithmeticNode,
    NegateNode,
    FunctionNode,
    ExtractNode,
    WhenNode,
    CaseNode,
    CastNode,
    JsonNode,
    AggregateNode,
    OrderNode,
    WindowNode,
    ItemNode,
    SubqueryNode,
    FilterNode,
    JoinNode,
    AggregatePlanNode,
    WindowPlanNode,
    ProjectNode,
    SortNode,
    LimitNode,
    DistinctNode,
    SetOperationNode,
):
    _model.model_rebuild()

_PLAN_ADAPTER: TypeAdapter[Any] = TypeAdapter(PlanNode)
_EXPRESSION_ADAPTER: TypeAdapter[Any] = TypeAdapter(ExpressionNode)


def _validate(adapter: TypeAdapter[Any], document: Mapping[str, Any] | str | bytes) -> Any:
    try:
        if isinstance(document, (str, bytes)):
            return adapter.validate_json(document)
        return adapter.validate_python(document)
    except ValidationError as e:
        raise PlanDecodeError(f"Invalid plan document ({e.error_count()} errors):\n{e}") from e


def _build(node: Any) -> Any:
    try:
        return node.build()
    except (ValueError, QueryError) as e:
        raise PlanDecodeError(f"Invalid plan document: {e}") from e


class PlanCodec:
    """Decodes plan documents into logical plans.

    Example:
        >>> plan = PlanCodec.decode('{"op": "scan", "table": "orders"}')
        >>> print(plan)
        TableScan(orders)
    """

    @staticmethod
    def decode(document: Mapping[str, Any] | str | bytes) -> LogicalPlan:
        """Decode a plan document (dict or JSON text).

        Raises:
            PlanDecodeError: If the document does not describe a valid plan.
        """
        return _build(_validate(_PLAN_ADAPTER, document))

    @staticmethod
    def decode_expression(document: Mapping[str, Any] | str | bytes) -> Expression:
        """Decode a single expression document.

        Raises:
            PlanDecodeError: If the document does not describe a valid expression.
        """
        return _build(_validate(_EXPRESSION_ADAPTER, document))

    @staticmethod
    def load(path: str) -> LogicalPlan:
        """Decode a plan document stored in a JSON file."""
        with open(path, encoding="utf-8") as handle:
            try:
                document = json.load(handle)
            except ValueError as e:
                raise PlanDecodeError(f"Plan file '{path}' is not valid JSON: {e}") from e
        return PlanCodec.decode(document)
