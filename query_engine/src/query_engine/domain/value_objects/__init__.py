"""Value objects for the query engine domain.

Value objects are immutable types that represent domain concepts.
They have no identity - two value objects with the same attributes are equal.

Exports:
    Data kinds:
        - DataKind, ColumnType: column typing
        - kind_of, parse_kind, common_kind: kind inference and compatibility

    Truth:
        - Truth: three-valued predicate result (TRUE, FALSE, UNKNOWN)

    Grouping:
        - group_key, NULL_KEY: GROUP BY keys where NULLs group together

    Expressions:
        - Expression and its node types, OrderByItem, FrameSpec, FrameBound
        - col, lit: construction shorthands

    Context:
        - QueryContext: per-query execution settings
"""

from query_engine.domain.value_objects.context import DEFAULT_CONTEXT, QueryContext
from query_engine.domain.value_objects.data_kinds import (
    UNKNOWN_TYPE,
    ColumnType,
    DataKind,
    common_kind,
    kind_of,
    parse_kind,
)
from query_engine.domain.value_objects.expressions import (
    AggregateExpr,
    AggregateFunc,
    ArithmeticExpr,
    ArithmeticOp,
    BetweenExpr,
    BoundKind,
    CaseExpr,
    CastExpr,
    ColumnExpr,
    ColumnRef,
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
    lit,
)
from query_engine.domain.value_objects.group_key import NULL_KEY, group_key
from query_engine.domain.value_objects.truth import Truth

__all__ = [
    # Data kinds
    "DataKind",
    "ColumnType",
    "UNKNOWN_TYPE",
    "kind_of",
    "parse_kind",
    "common_kind",
    # Truth
    "Truth",
    # Grouping
    "group_key",
    "NULL_KEY",
    # Expressions
    "Expression",
    "ColumnRef",
    "ColumnExpr",
    "StarExpr",
    "LiteralExpr",
    "ComparisonExpr",
    "ComparisonOp",
    "BetweenExpr",
    "InExpr",
    "IsNullExpr",
    "LogicalExpr",
    "LogicalOp",
    "ArithmeticExpr",
    "ArithmeticOp",
    "NegateExpr",
    "FunctionExpr",
    "ScalarFunc",
    "ExtractExpr",
    "CaseExpr",
    "CastExpr",
    "JsonExtractExpr",
    "AggregateExpr",
    "AggregateFunc",
    "WindowExpr",
    "WindowFunc",
    "OrderByItem",
    "FrameSpec",
    "FrameBound",
    "FrameMode",
    "BoundKind",
    "col",
    "lit",
    # Context
    "QueryContext",
    "DEFAULT_CONTEXT",
]
