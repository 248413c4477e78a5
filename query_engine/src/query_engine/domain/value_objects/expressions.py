"""Expression trees.

Expressions are immutable trees handed to the engine by an external
parser (or built directly). They carry no schema information: column
references are resolved against an operand's schema when an operator is
bound, see ``ExpressionEvaluator``.

The string form of an expression is its canonical SQL rendering. Aggregate
and window calls are matched to the columns that hold their results by that
rendering, so ``str()`` must stay deterministic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from query_engine.domain.value_objects.data_kinds import DataKind


class ComparisonOp(Enum):
    """Binary comparison operators."""

    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="
    LIKE = "LIKE"
    ILIKE = "ILIKE"
    REGEX = "~"
    REGEX_I = "~*"
    NOT_REGEX = "!~"
    NOT_REGEX_I = "!~*"


class LogicalOp(Enum):
    """Logical connectives."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class ArithmeticOp(Enum):
    """Binary arithmetic and string operators."""

    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    CONCAT = "||"


class ScalarFunc(Enum):
    """Row-level functions."""

    UPPER = "UPPER"
    LOWER = "LOWER"
    LENGTH = "LENGTH"
    TRIM = "TRIM"
    CONCAT = "CONCAT"
    COALESCE = "COALESCE"
    NULLIF = "NULLIF"
    ABS = "ABS"
    ROUND = "ROUND"
    ARRAY_LENGTH = "ARRAY_LENGTH"
    SUBSTRING = "SUBSTRING"
    POSITION = "POSITION"
    REPLACE = "REPLACE"
    TRANSLATE = "TRANSLATE"
    REVERSE = "REVERSE"
    DATE_TRUNC = "DATE_TRUNC"


class AggregateFunc(Enum):
    """Aggregate functions."""

    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"
    STRING_AGG = "STRING_AGG"


class WindowFunc(Enum):
    """Window (analytic) functions."""

    ROW_NUMBER = "ROW_NUMBER"
    RANK = "RANK"
    DENSE_RANK = "DENSE_RANK"
    NTILE = "NTILE"
    PERCENT_RANK = "PERCENT_RANK"
    CUME_DIST = "CUME_DIST"
    LAG = "LAG"
    LEAD = "LEAD"
    FIRST_VALUE = "FIRST_VALUE"
    LAST_VALUE = "LAST_VALUE"
    NTH_VALUE = "NTH_VALUE"
    COUNT = "COUNT"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"

    @property
    def is_ranking(self) -> bool:
        return self in _RANKING_FUNCS

    @property
    def is_aggregate(self) -> bool:
        return self in _FRAME_AGGREGATES


_RANKING_FUNCS = frozenset(
    {
        WindowFunc.ROW_NUMBER,
        WindowFunc.RANK,
        WindowFunc.DENSE_RANK,
        WindowFunc.NTILE,
        WindowFunc.PERCENT_RANK,
        WindowFunc.CUME_DIST,
    }
)
_FRAME_AGGREGATES = frozenset(
    {WindowFunc.COUNT, WindowFunc.SUM, WindowFunc.AVG, WindowFunc.MIN, WindowFunc.MAX}
)


class Expression(ABC):
    """Base class for expressions."""

    @abstractmethod
    def __str__(self) -> str:
        pass

    def children(self) -> tuple[Expression, ...]:
        """Direct sub-expressions."""
        return ()

    def walk(self) -> Iterator[Expression]:
        """Yield this expression and all of its descendants, pre-order."""
        yield self
        for child in self.children():
            yield from child.walk()


@dataclass(frozen=True)
class ColumnRef:
    """Reference to a column, optionally qualified with a table alias."""

    name: str
    table: str | None = None

    @classmethod
    def parse(cls, dotted: str) -> ColumnRef:
        """Parse ``"alias.column"`` or ``"column"``."""
        table, _, name = dotted.rpartition(".")
        return cls(name=name, table=table or None)

    def __str__(self) -> str:
        if self.table:
            return f"{self.table}.{self.name}"
        return self.name


@dataclass(frozen=True)
class ColumnExpr(Expression):
    """Column reference expression."""

    column: ColumnRef

    def __str__(self) -> str:
        return str(self.column)


@dataclass(frozen=True)
class StarExpr(Expression):
    """``*`` or ``alias.*`` in a select list."""

    table: str | None = None

    def __str__(self) -> str:
        return f"{self.table}.*" if self.table else "*"


@dataclass(frozen=True)
class LiteralExpr(Expression):
    """Literal value expression."""

    value: Any

    def __str__(self) -> str:
        if self.value is None:
            return "NULL"
        if isinstance(self.value, bool):
            return "TRUE" if self.value else "FALSE"
        if isinstance(self.value, str):
            escaped = self.value.replace("'", "''")
            return f"'{escaped}'"
        return str(self.value)


@dataclass(frozen=True)
class ComparisonExpr(Expression):
    """Comparison expression (e.g., ``sales > 100``)."""

    left: Expression
    op: ComparisonOp
    right: Expression

    def children(self) -> tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"{self.left} {self.op.value} {self.right}"


@dataclass(frozen=True)
class BetweenExpr(Expression):
    """``operand [NOT] BETWEEN low AND high``."""

    operand: Expression
    low: Expression
    high: Expression
    negated: bool = False

    def children(self) -> tuple[Expression, ...]:
        return (self.operand, self.low, self.high)

    def __str__(self) -> str:
        keyword = "NOT BETWEEN" if self.negated else "BETWEEN"
        return f"{self.operand} {keyword} {self.low} AND {self.high}"


@dataclass(frozen=True)
class InExpr(Expression):
    """``operand [NOT] IN (items...)``."""

    operand: Expression
    items: tuple[Expression, ...]
    negated: bool = False

    def children(self) -> tuple[Expression, ...]:
        return (self.operand, *self.items)

    def __str__(self) -> str:
        keyword = "NOT IN" if self.negated else "IN"
        items = ", ".join(str(item) for item in self.items)
        return f"{self.operand} {keyword} ({items})"


@dataclass(frozen=True)
class IsNullExpr(Expression):
    """``operand IS [NOT] NULL``."""

    operand: Expression
    negated: bool = False

    def children(self) -> tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"{self.operand} IS NOT NULL" if self.negated else f"{self.operand} IS NULL"


@dataclass(frozen=True)
class LogicalExpr(Expression):
    """Logical expression combining other expressions."""

    op: LogicalOp
    operands: tuple[Expression, ...]

    def __post_init__(self) -> None:
        if self.op is LogicalOp.NOT and len(self.operands) != 1:
            raise ValueError("NOT takes exactly one operand")
        if self.op is not LogicalOp.NOT and len(self.operands) < 2:
            raise ValueError(f"{self.op.value} takes at least two operands")

    def children(self) -> tuple[Expression, ...]:
        return self.operands

    def __str__(self) -> str:
        if self.op is LogicalOp.NOT:
            return f"NOT ({self.operands[0]})"
        op_str = f" {self.op.value} "
        return f"({op_str.join(str(o) for o in self.operands)})"


@dataclass(frozen=True)
class ArithmeticExpr(Expression):
    """Binary arithmetic (or ``||`` concatenation)."""

    left: Expression
    op: ArithmeticOp
    right: Expression

    def children(self) -> tuple[Expression, ...]:
        return (self.left, self.right)

    def __str__(self) -> str:
        return f"({self.left} {self.op.value} {self.right})"


@dataclass(frozen=True)
class NegateExpr(Expression):
    """Unary minus."""

    operand: Expression

    def children(self) -> tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"-{self.operand}"


@dataclass(frozen=True)
class FunctionExpr(Expression):
    """Scalar function call."""

    func: ScalarFunc
    args: tuple[Expression, ...] = ()

    def children(self) -> tuple[Expression, ...]:
        return self.args

    def __str__(self) -> str:
        if self.func is ScalarFunc.POSITION and len(self.args) == 2:
            return f"POSITION({self.args[0]} IN {self.args[1]})"
        if self.func is ScalarFunc.SUBSTRING and len(self.args) in (2, 3):
            rendered = f"SUBSTRING({self.args[0]} FROM {self.args[1]}"
            if len(self.args) == 3:
                rendered += f" FOR {self.args[2]}"
            return rendered + ")"
        args = ", ".join(str(arg) for arg in self.args)
        return f"{self.func.value}({args})"


@dataclass(frozen=True)
class ExtractExpr(Expression):
    """``EXTRACT(field FROM operand)``."""

    field: str
    operand: Expression

    def children(self) -> tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"EXTRACT({self.field.upper()} FROM {self.operand})"


@dataclass(frozen=True)
class CaseExpr(Expression):
    """CASE expression.

    With ``operand`` set this is the simple form (``CASE x WHEN 1 THEN ..``),
    otherwise each ``when`` condition is a predicate.
    """

    whens: tuple[tuple[Expression, Expression], ...]
    default: Expression | None = None
    operand: Expression | None = None

    def children(self) -> tuple[Expression, ...]:
        nodes: list[Expression] = []
        if self.operand is not None:
            nodes.append(self.operand)
        for condition, result in self.whens:
            nodes.extend((condition, result))
        if self.default is not None:
            nodes.append(self.default)
        return tuple(nodes)

    def __str__(self) -> str:
        parts = ["CASE"]
        if self.operand is not None:
            parts.append(str(self.operand))
        for condition, result in self.whens:
            parts.append(f"WHEN {condition} THEN {result}")
        if self.default is not None:
            parts.append(f"ELSE {self.default}")
        parts.append("END")
        return " ".join(parts)


@dataclass(frozen=True)
class CastExpr(Expression):
    """``CAST(operand AS kind)``."""

    operand: Expression
    target: DataKind

    def children(self) -> tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        return f"CAST({self.operand} AS {self.target.value.upper()})"


@dataclass(frozen=True)
class JsonExtractExpr(Expression):
    """Document navigation: ``->`` (document result) or ``->>`` (text result)."""

    operand: Expression
    path: tuple[str | int, ...]
    as_text: bool = False

    def children(self) -> tuple[Expression, ...]:
        return (self.operand,)

    def __str__(self) -> str:
        rendered = str(self.operand)
        for index, step in enumerate(self.path):
            arrow = "->>" if self.as_text and index == len(self.path) - 1 else "->"
            key = str(step) if isinstance(step, int) else f"'{step}'"
            rendered = f"{rendered}{arrow}{key}"
        return rendered


@dataclass(frozen=True)
class AggregateExpr(Expression):
    """Aggregate function call.

    ``order_by`` fixes the order in which a group's values reach the
    aggregate; only STRING_AGG depends on it.
    """

    func: AggregateFunc
    arg: Expression | None = None  # None for COUNT(*)
    distinct: bool = False
    filter: Expression | None = None  # FILTER (WHERE ...)
    separator: str | None = None  # STRING_AGG only
    order_by: tuple[OrderByItem, ...] = ()

    def __post_init__(self) -> None:
        if self.arg is None and self.func is not AggregateFunc.COUNT:
            raise ValueError(f"{self.func.value} requires an argument")
        if self.arg is None and self.distinct:
            raise ValueError("COUNT(DISTINCT *) is not valid")
        if self.func is AggregateFunc.STRING_AGG and self.separator is None:
            raise ValueError("STRING_AGG requires a separator")
        if self.func is not AggregateFunc.STRING_AGG and self.separator is not None:
            raise ValueError(f"{self.func.value} takes no separator")

    def children(self) -> tuple[Expression, ...]:
        # Arguments are evaluated against the aggregate's input, never its output.
        return ()

    def inputs(self) -> tuple[Expression, ...]:
        """Expressions evaluated against each input row."""
        return (
            *(e for e in (self.arg, self.filter) if e is not None),
            *(item.expr for item in self.order_by),
        )

    def __str__(self) -> str:
        if self.arg is None:
            inner = "*"
        else:
            inner = f"{'DISTINCT ' if self.distinct else ''}{self.arg}"
        if self.separator is not None:
            inner += f", {LiteralExpr(self.separator)}"
        if self.order_by:
            inner += " ORDER BY " + ", ".join(str(item) for item in self.order_by)
        rendered = f"{self.func.value}({inner})"
        if self.filter is not None:
            rendered = f"{rendered} FILTER (WHERE {self.filter})"
        return rendered


@dataclass(frozen=True)
class OrderByItem:
    """An item in an ORDER BY clause."""

    expr: Expression
    ascending: bool = True
    nulls_first: bool | None = None  # None: engine default for the direction

    def __str__(self) -> str:
        rendered = f"{self.expr} {'ASC' if self.ascending else 'DESC'}"
        if self.nulls_first is not None:
            rendered += " NULLS FIRST" if self.nulls_first else " NULLS LAST"
        return rendered


class FrameMode(Enum):
    """How frame offsets are measured."""

    ROWS = "ROWS"
    RANGE = "RANGE"


class BoundKind(Enum):
    """Kinds of frame boundaries."""

    UNBOUNDED_PRECEDING = "UNBOUNDED PRECEDING"
    PRECEDING = "PRECEDING"
    CURRENT_ROW = "CURRENT ROW"
    FOLLOWING = "FOLLOWING"
    UNBOUNDED_FOLLOWING = "UNBOUNDED FOLLOWING"


@dataclass(frozen=True)
class FrameBound:
    """One end of a window frame."""

    kind: BoundKind
    offset: int | None = None

    def __post_init__(self) -> None:
        needs_offset = self.kind in (BoundKind.PRECEDING, BoundKind.FOLLOWING)
        if needs_offset and (self.offset is None or self.offset < 0):
            raise ValueError(f"{self.kind.value} bound requires a non-negative offset")
        if not needs_offset and self.offset is not None:
            raise ValueError(f"{self.kind.value} bound takes no offset")

    @classmethod
    def unbounded_preceding(cls) -> FrameBound:
        return cls(BoundKind.UNBOUNDED_PRECEDING)

    @classmethod
    def preceding(cls, offset: int) -> FrameBound:
        return cls(BoundKind.PRECEDING, offset)

    @classmethod
    def current_row(cls) -> FrameBound:
        return cls(BoundKind.CURRENT_ROW)

    @classmethod
    def following(cls, offset: int) -> FrameBound:
        return cls(BoundKind.FOLLOWING, offset)

    @classmethod
    def unbounded_following(cls) -> FrameBound:
        return cls(BoundKind.UNBOUNDED_FOLLOWING)

    def __str__(self) -> str:
        if self.offset is not None:
            return f"{self.offset} {self.kind.value}"
        return self.kind.value


@dataclass(frozen=True)
class FrameSpec:
    """``{ROWS|RANGE} BETWEEN start AND end``."""

    mode: FrameMode
    start: FrameBound
    end: FrameBound = field(default_factory=FrameBound.current_row)

    def __post_init__(self) -> None:
        if self.start.kind is BoundKind.UNBOUNDED_FOLLOWING:
            raise ValueError("Frame cannot start at UNBOUNDED FOLLOWING")
        if self.end.kind is BoundKind.UNBOUNDED_PRECEDING:
            raise ValueError("Frame cannot end at UNBOUNDED PRECEDING")
        if self.mode is FrameMode.RANGE and (
            self.start.offset is not None or self.end.offset is not None
        ):
            raise ValueError("RANGE frames support only UNBOUNDED and CURRENT ROW bounds")

    @classmethod
    def rows(cls, start: FrameBound, end: FrameBound | None = None) -> FrameSpec:
        return cls(FrameMode.ROWS, start, end or FrameBound.current_row())

    @classmethod
    def range(cls, start: FrameBound, end: FrameBound | None = None) -> FrameSpec:
        return cls(FrameMode.RANGE, start, end or FrameBound.current_row())

    def __str__(self) -> str:
        return f"{self.mode.value} BETWEEN {self.start} AND {self.end}"


@dataclass(frozen=True)
class WindowExpr(Expression):
    """Window function call with its OVER clause."""

    func: WindowFunc
    args: tuple[Expression, ...] = ()
    partition_by: tuple[Expression, ...] = ()
    order_by: tuple[OrderByItem, ...] = ()
    frame: FrameSpec | None = None

    def __post_init__(self) -> None:
        arity = {
            WindowFunc.NTILE: (1, 1),
            WindowFunc.LAG: (1, 3),
            WindowFunc.LEAD: (1, 3),
            WindowFunc.FIRST_VALUE: (1, 1),
            WindowFunc.LAST_VALUE: (1, 1),
            WindowFunc.NTH_VALUE: (2, 2),
            WindowFunc.COUNT: (0, 1),
            WindowFunc.SUM: (1, 1),
            WindowFunc.AVG: (1, 1),
            WindowFunc.MIN: (1, 1),
            WindowFunc.MAX: (1, 1),
        }.get(self.func, (0, 0))
        low, high = arity
        if not low <= len(self.args) <= high:
            raise ValueError(
                f"{self.func.value} takes {low}..{high} arguments, got {len(self.args)}"
            )

    def children(self) -> tuple[Expression, ...]:
        # Evaluated against the window's input rows, not against its output.
        return ()

    def inputs(self) -> tuple[Expression, ...]:
        """Expressions evaluated against each input row."""
        return (
            *self.args,
            *self.partition_by,
            *(item.expr for item in self.order_by),
        )

    def __str__(self) -> str:
        args = ", ".join(str(arg) for arg in self.args)
        if self.func is WindowFunc.COUNT and not self.args:
            args = "*"
        over: list[str] = []
        if self.partition_by:
            over.append("PARTITION BY " + ", ".join(str(p) for p in self.partition_by))
        if self.order_by:
            over.append("ORDER BY " + ", ".join(str(o) for o in self.order_by))
        if self.frame is not None:
            over.append(str(self.frame))
        return f"{self.func.value}({args}) OVER ({' '.join(over)})"


def col(dotted: str) -> ColumnExpr:
    """Shorthand for a column reference, ``col("o.order_id")``."""
    return ColumnExpr(ColumnRef.parse(dotted))


def lit(value: Any) -> LiteralExpr:
    """Shorthand for a literal."""
    return LiteralExpr(value)
