"""Expression binding and evaluation with SQL NULL semantics.

Binding resolves every column reference against the operand's schema and
infers result types, so unknown columns and statically visible kind
conflicts fail before the first row is read. Evaluation then walks the
expression tree per row.

Predicates produce ``Truth``; value expressions produce plain Python
values with ``None`` as NULL. A predicate used as a value yields
``True``/``False``/``None``.

Two equalities exist side by side:
    - ``sql_equals``: the ``=`` operator, NULL is never equal to anything
    - ``group_key`` (value_objects.group_key): GROUP BY, NULLs group together
"""

from __future__ import annotations

import calendar
import json
import math
import re
import string
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import lru_cache
from typing import Any

from query_engine.domain.entities.relation import Row, Schema
from query_engine.domain.exceptions import (
    DivisionByZeroError,
    QueryError,
    QueryTypeError,
    SchemaError,
)
from query_engine.domain.services.ordering import (
    compare_values,
    parse_temporal,
    values_equal,
)
from query_engine.domain.value_objects.context import DEFAULT_CONTEXT, QueryContext
from query_engine.domain.value_objects.data_kinds import (
    UNKNOWN_TYPE,
    ColumnType,
    DataKind,
    common_kind,
    kind_of,
)
from query_engine.domain.value_objects.expressions import (
    AggregateExpr,
    ArithmeticExpr,
    ArithmeticOp,
    BetweenExpr,
    CaseExpr,
    CastExpr,
    ColumnExpr,
    ComparisonExpr,
    ComparisonOp,
    Expression,
    ExtractExpr,
    FunctionExpr,
    InExpr,
    IsNullExpr,
    JsonExtractExpr,
    LiteralExpr,
    LogicalExpr,
    LogicalOp,
    NegateExpr,
    ScalarFunc,
    StarExpr,
    WindowExpr,
)
from query_engine.domain.value_objects.truth import Truth

_PREDICATES = (ComparisonExpr, BetweenExpr, InExpr, IsNullExpr, LogicalExpr)

_REGEX_OPS = {
    ComparisonOp.REGEX: (False, False),  # (case_insensitive, negated)
    ComparisonOp.REGEX_I: (True, False),
    ComparisonOp.NOT_REGEX: (False, True),
    ComparisonOp.NOT_REGEX_I: (True, True),
}

_FUNCTION_ARITY = {
    ScalarFunc.UPPER: (1, 1),
    ScalarFunc.LOWER: (1, 1),
    ScalarFunc.LENGTH: (1, 1),
    ScalarFunc.TRIM: (1, 1),
    ScalarFunc.CONCAT: (1, None),
    ScalarFunc.COALESCE: (1, None),
    ScalarFunc.NULLIF: (2, 2),
    ScalarFunc.ABS: (1, 1),
    ScalarFunc.ROUND: (1, 2),
    ScalarFunc.ARRAY_LENGTH: (1, 1),
    ScalarFunc.SUBSTRING: (2, 3),
    ScalarFunc.POSITION: (2, 2),
    ScalarFunc.REPLACE: (3, 3),
    ScalarFunc.TRANSLATE: (3, 3),
    ScalarFunc.REVERSE: (1, 1),
    ScalarFunc.DATE_TRUNC: (2, 2),
}

_TEXT_FUNCS = frozenset(
    {
        ScalarFunc.UPPER,
        ScalarFunc.LOWER,
        ScalarFunc.TRIM,
        ScalarFunc.LENGTH,
        ScalarFunc.POSITION,
        ScalarFunc.REPLACE,
        ScalarFunc.TRANSLATE,
        ScalarFunc.REVERSE,
    }
)

_EXTRACT_FIELDS = frozenset(
    {"year", "quarter", "month", "day", "hour", "minute", "second", "dow", "doy", "epoch"}
)

_POSIX_CLASSES = {
    "alpha": "a-zA-Z",
    "digit": "0-9",
    "alnum": "a-zA-Z0-9",
    "upper": "A-Z",
    "lower": "a-z",
    "xdigit": "0-9A-Fa-f",
    "space": " \\t\\n\\r\\f\\v",
    "blank": " \\t",
    "punct": re.escape(string.punctuation),
    "cntrl": "\\x00-\\x1f\\x7f",
    "print": "\\x20-\\x7e",
    "graph": "\\x21-\\x7e",
    "word": "\\w",
}

_TRUNC_FIELDS = frozenset(
    {"second", "minute", "hour", "day", "week", "month", "quarter", "year"}
)

_TRUE_STRINGS = frozenset({"true", "t", "yes", "y", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "f", "no", "n", "off", "0"})


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _describe(value: Any) -> str:
    kind = kind_of(value) if not isinstance(value, timedelta) else None
    return kind.value if kind is not None else type(value).__name__


# --------------------------------------------------------------------------
# Value-level operations
# --------------------------------------------------------------------------


def sql_equals(left: Any, right: Any) -> Truth:
    """The SQL ``=`` operator: UNKNOWN when either side is NULL."""
    if left is None or right is None:
        return Truth.UNKNOWN
    return Truth.of(values_equal(left, right))


def to_text(value: Any) -> str:
    """Render a non-NULL value as SQL text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, date):
        return value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
    return str(value)


@lru_cache(maxsize=256)
def like_pattern(pattern: str, case_sensitive: bool = True) -> re.Pattern[str]:
    """Compile a LIKE pattern: ``%`` any run, ``_`` one character, ``\\`` escapes."""
    parts: list[str] = []
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if char == "\\" and index + 1 < len(pattern):
            parts.append(re.escape(pattern[index + 1]))
            index += 2
            continue
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
        index += 1
    flags = re.DOTALL if case_sensitive else re.DOTALL | re.IGNORECASE
    return re.compile("".join(parts), flags)


def translate_posix_classes(pattern: str) -> str:
    """Rewrite POSIX bracket classes (``[[:digit:]]``) into ``re`` syntax.

    A ``[`` inside a bracket expression is a literal character, as in POSIX.

    Raises:
        QueryError: For an unknown class name.
    """
    parts: list[str] = []
    index = 0
    in_bracket = False
    while index < len(pattern):
        char = pattern[index]
        if char == "\\" and index + 1 < len(pattern):
            parts.append(pattern[index : index + 2])
            index += 2
            continue
        if not in_bracket:
            parts.append(char)
            index += 1
            if char == "[":
                in_bracket = True
                if pattern.startswith("^", index):
                    parts.append("^")
                    index += 1
                # a leading ] is a member, not the end of the expression
                if pattern.startswith("]", index):
                    parts.append("\\]")
                    index += 1
            continue
        if pattern.startswith("[:", index):
            end = pattern.find(":]", index + 2)
            if end != -1:
                name = pattern[index + 2 : end]
                members = _POSIX_CLASSES.get(name)
                if members is None:
                    raise QueryError(f"Invalid character class '[:{name}:]' in '{pattern}'")
                parts.append(members)
                index = end + 2
                continue
        if char == "]":
            in_bracket = False
            parts.append(char)
        elif char == "[":
            parts.append("\\[")
        else:
            parts.append(char)
        index += 1
    return "".join(parts)


@lru_cache(maxsize=256)
def regex_pattern(pattern: str, case_insensitive: bool = False) -> re.Pattern[str]:
    """Compile a ``~`` pattern. Matching is unanchored unless ``^``/``$`` say otherwise."""
    try:
        return re.compile(
            translate_posix_classes(pattern), re.IGNORECASE if case_insensitive else 0
        )
    except re.error as e:
        raise QueryError(f"Invalid regular expression '{pattern}': {e}") from e


def like_match(value: Any, pattern: Any, case_sensitive: bool = True) -> bool:
    if not isinstance(value, str) or not isinstance(pattern, str):
        raise QueryTypeError(
            f"LIKE requires text operands, got {_describe(value)} and {_describe(pattern)}"
        )
    return like_pattern(pattern, case_sensitive).fullmatch(value) is not None


def _numeric_pair(left: Any, right: Any) -> tuple[Any, Any]:
    if isinstance(left, float) and isinstance(right, Decimal):
        return left, float(right)
    if isinstance(left, Decimal) and isinstance(right, float):
        return float(left), right
    return left, right


def _divide(left: Any, right: Any) -> Any:
    if right == 0:
        raise DivisionByZeroError("division by zero")
    if isinstance(left, int) and isinstance(right, int):
        # integer division truncates toward zero
        quotient = abs(left) // abs(right)
        return quotient if (left >= 0) == (right >= 0) else -quotient
    return left / right


def _modulo(left: Any, right: Any) -> Any:
    if right == 0:
        raise DivisionByZeroError("division by zero")
    if isinstance(left, int) and isinstance(right, int):
        # result takes the sign of the dividend
        return left - right * _divide(left, right)
    if isinstance(left, Decimal):
        return left % right
    return math.fmod(left, right)


def _as_timestamp(value: date) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def _temporal_arithmetic(op: ArithmeticOp, left: Any, right: Any) -> Any:
    if op is ArithmeticOp.SUB and isinstance(left, date) and isinstance(right, date):
        if isinstance(left, datetime) or isinstance(right, datetime):
            return _as_timestamp(left) - _as_timestamp(right)
        return (left - right).days
    if op in (ArithmeticOp.ADD, ArithmeticOp.SUB):
        if isinstance(left, date) and isinstance(right, int) and not isinstance(right, bool):
            delta = timedelta(days=right)
            return left + delta if op is ArithmeticOp.ADD else left - delta
        if isinstance(left, (date, timedelta)) and isinstance(right, timedelta):
            return left + right if op is ArithmeticOp.ADD else left - right
        if op is ArithmeticOp.ADD and isinstance(left, int) and isinstance(right, date):
            return right + timedelta(days=left)
    raise QueryTypeError(
        f"Operator {op.value} is not defined for {_describe(left)} and {_describe(right)}"
    )


def arithmetic(op: ArithmeticOp, left: Any, right: Any) -> Any:
    """Apply a binary arithmetic operator with NULL propagation.

    Raises:
        QueryTypeError: For non-numeric operands (outside date arithmetic).
        DivisionByZeroError: For ``/`` or ``%`` by zero.
    """
    if left is None or right is None:
        return None
    if op is ArithmeticOp.CONCAT:
        return to_text(left) + to_text(right)
    if not (_is_number(left) and _is_number(right)):
        return _temporal_arithmetic(op, left, right)
    left, right = _numeric_pair(left, right)
    if op is ArithmeticOp.ADD:
        return left + right
    if op is ArithmeticOp.SUB:
        return left - right
    if op is ArithmeticOp.MUL:
        return left * right
    if op is ArithmeticOp.DIV:
        return _divide(left, right)
    return _modulo(left, right)


def _round(value: Any, places: int) -> Any:
    if isinstance(value, int) and places >= 0:
        return value
    quantum = Decimal(1).scaleb(-places)
    try:
        if isinstance(value, int):
            return int(Decimal(value).quantize(quantum, rounding=ROUND_HALF_UP))
        rounded = Decimal(repr(value) if isinstance(value, float) else value).quantize(
            quantum, rounding=ROUND_HALF_UP
        )
    except InvalidOperation:
        raise QueryTypeError(
            f"ROUND({value}, {places}) exceeds the supported decimal precision"
        ) from None
    return float(rounded) if isinstance(value, float) else rounded


def substring(value: str, start: Any, count: Any = None) -> str | None:
    """``SUBSTRING(value FROM start [FOR count])``, 1-based.

    With a text ``start`` the second argument is a regular expression: the
    result is its first capture group, or the whole match without groups.
    """
    if isinstance(start, str):
        match = regex_pattern(start).search(value)
        if match is None:
            return None
        return match.group(1) if match.re.groups else match.group(0)
    if count is not None and count < 0:
        raise QueryError("negative substring length not allowed")
    first = max(start, 1)
    if count is None:
        return value[first - 1 :]
    last = start + count
    if last <= first:
        return ""
    return value[first - 1 : last - 1]


def translate(value: str, source: str, target: str) -> str:
    """``TRANSLATE``: map each character of source to target's, drop the extras."""
    table: dict[int, str | None] = {}
    for index, char in enumerate(source):
        table.setdefault(ord(char), target[index] if index < len(target) else None)
    return value.translate(table)


def date_trunc(field: str, value: Any) -> datetime:
    """``DATE_TRUNC(field, value)``: the start of the enclosing unit, as a timestamp."""
    field = field.lower()
    if field not in _TRUNC_FIELDS:
        raise QueryTypeError(f"Unknown DATE_TRUNC unit '{field}'")
    if isinstance(value, str):
        value = parse_temporal(value)
    if not isinstance(value, date):
        raise QueryTypeError(f"DATE_TRUNC requires a date or timestamp, got {_describe(value)}")
    moment = _as_timestamp(value)
    if field == "second":
        return moment.replace(microsecond=0)
    if field == "minute":
        return moment.replace(second=0, microsecond=0)
    if field == "hour":
        return moment.replace(minute=0, second=0, microsecond=0)
    day = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    if field == "day":
        return day
    if field == "week":
        # weeks start on Monday
        return day - timedelta(days=day.weekday())
    if field == "month":
        return day.replace(day=1)
    if field == "quarter":
        return day.replace(month=(day.month - 1) // 3 * 3 + 1, day=1)
    return day.replace(month=1, day=1)


def extract_field(field: str, value: Any) -> Any:
    """``EXTRACT(field FROM value)`` for dates, timestamps and intervals."""
    if value is None:
        return None
    field = field.lower()
    if isinstance(value, str):
        value = parse_temporal(value)
    if isinstance(value, timedelta):
        if field == "epoch":
            return value.total_seconds()
        if field == "day":
            return value.days
        raise QueryTypeError(f"Field '{field}' cannot be extracted from an interval")
    if not isinstance(value, date):
        raise QueryTypeError(f"EXTRACT requires a date or timestamp, got {_describe(value)}")
    moment = value if isinstance(value, datetime) else datetime(value.year, value.month, value.day)
    if field == "year":
        return moment.year
    if field == "quarter":
        return (moment.month - 1) // 3 + 1
    if field == "month":
        return moment.month
    if field == "day":
        return moment.day
    if field == "hour":
        return moment.hour
    if field == "minute":
        return moment.minute
    if field == "second":
        if moment.microsecond:
            return moment.second + moment.microsecond / 1_000_000
        return moment.second
    if field == "dow":
        # Sunday = 0
        return (moment.weekday() + 1) % 7
    if field == "doy":
        return moment.timetuple().tm_yday
    if field == "epoch":
        return calendar.timegm(moment.utctimetuple()) + moment.microsecond / 1_000_000
    raise QueryTypeError(f"Unknown EXTRACT field '{field}'")


def cast_value(value: Any, target: DataKind) -> Any:
    """Convert a value to another kind, as ``CAST`` does.

    Raises:
        QueryTypeError: If the value cannot be represented in the target kind.
    """
    if value is None or target is DataKind.UNKNOWN:
        return value
    try:
        if target is DataKind.TEXT:
            return to_text(value)
        if target is DataKind.INTEGER:
            if isinstance(value, bool):
                return int(value)
            if isinstance(value, str):
                value = Decimal(value.strip())
            if _is_number(value):
                return int(Decimal(repr(value) if isinstance(value, float) else value).quantize(
                    Decimal(1), rounding=ROUND_HALF_UP
                ))
        if target is DataKind.DECIMAL:
            if isinstance(value, bool):
                raise QueryTypeError("Cannot cast boolean to decimal")
            if isinstance(value, (str, int, float, Decimal)):
                return Decimal(str(value).strip())
        if target is DataKind.BOOLEAN:
            if isinstance(value, bool):
                return value
            if isinstance(value, int):
                return value != 0
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in _TRUE_STRINGS:
                    return True
                if lowered in _FALSE_STRINGS:
                    return False
        if target is DataKind.DATE:
            if isinstance(value, datetime):
                return value.date()
            if isinstance(value, date):
                return value
            if isinstance(value, str):
                parsed = parse_temporal(value)
                return parsed.date() if isinstance(parsed, datetime) else parsed
        if target is DataKind.TIMESTAMP:
            if isinstance(value, datetime):
                return value
            if isinstance(value, date):
                return datetime(value.year, value.month, value.day)
            if isinstance(value, str):
                return datetime.fromisoformat(value.strip())
        if target is DataKind.DOCUMENT:
            if isinstance(value, (dict, list)):
                return value
            if isinstance(value, str):
                return json.loads(value)
        if target is DataKind.ARRAY:
            if isinstance(value, (list, tuple)):
                return list(value)
            if isinstance(value, str):
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return parsed
    except (ValueError, InvalidOperation) as e:
        raise QueryTypeError(f"Cannot cast {value!r} to {target.value}: {e}") from None
    raise QueryTypeError(f"Cannot cast {_describe(value)} {value!r} to {target.value}")


def json_navigate(value: Any, path: tuple[str | int, ...], as_text: bool) -> Any:
    """Follow ``->`` / ``->>`` steps through a document; missing steps give NULL."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            raise QueryTypeError(f"Invalid JSON document: {value[:40]!r}") from None
    for step in path:
        if isinstance(value, dict):
            value = value.get(str(step))
        elif isinstance(value, list) and isinstance(step, int):
            if not -len(value) <= step < len(value):
                return None
            value = value[step]
        else:
            return None
        if value is None:
            return None
    if as_text and not isinstance(value, str):
        return to_text(value)
    return value


# --------------------------------------------------------------------------
# Evaluator
# --------------------------------------------------------------------------


class ExpressionEvaluator:
    """Binds expressions against one schema and evaluates them over its rows.

    Aggregate and window calls, and any expression a grouping operator
    already computed (``GROUP BY EXTRACT(year FROM d)``), are read from the
    column produced for them instead of being recomputed.

    Example:
        >>> evaluator = ExpressionEvaluator(schema)
        >>> evaluator.bind_predicate(predicate)
        >>> evaluator.predicate(predicate, row)
        <Truth.TRUE: 'true'>
    """

    def __init__(self, schema: Schema, context: QueryContext = DEFAULT_CONTEXT) -> None:
        self._schema = schema
        self._context = context
        self._positions: dict[Any, int] = {}
        self._computed: dict[int, int] = {}
        # keeps bound nodes alive so their ids stay unique
        self._bound: list[Expression] = []

    @property
    def schema(self) -> Schema:
        return self._schema

    @property
    def context(self) -> QueryContext:
        return self._context

    # ---------------------------------------------------------------- binding

    def bind(self, expr: Expression) -> ColumnType:
        """Resolve an expression against the schema and infer its type.

        Raises:
            SchemaError: If a referenced column does not exist or is ambiguous.
            QueryTypeError: If operand kinds are statically incompatible.
        """
        self._bound.append(expr)
        return self._bind(expr)

    def bind_predicate(self, expr: Expression) -> None:
        """Bind an expression that must produce a boolean."""
        result = self.bind(expr)
        if result.kind not in (DataKind.BOOLEAN, DataKind.UNKNOWN):
            raise QueryTypeError(f"Predicate '{expr}' must be boolean, not {result.kind.value}")

    def _bind(self, expr: Expression) -> ColumnType:
        if not isinstance(expr, (ColumnExpr, LiteralExpr)):
            position = self._schema.find_expression(str(expr))
            if position is not None:
                self._computed[id(expr)] = position
                return self._schema[position].type
        if isinstance(expr, ColumnExpr):
            position = self._schema.index_of(expr.column)
            self._positions[expr.column] = position
            return self._schema[position].type
        if isinstance(expr, LiteralExpr):
            if isinstance(expr.value, timedelta):
                return UNKNOWN_TYPE
            kind = kind_of(expr.value)
            return ColumnType(kind) if kind is not None else UNKNOWN_TYPE
        if isinstance(expr, (AggregateExpr, WindowExpr)):
            raise SchemaError(f"'{expr}' is not available at this point of the query")
        if isinstance(expr, StarExpr):
            raise SchemaError(f"'{expr}' is only valid in a select list")

        child_types = [self._bind(child) for child in expr.children()]

        if isinstance(expr, ComparisonExpr):
            left, right = child_types
            if expr.op in (ComparisonOp.LIKE, ComparisonOp.ILIKE) or expr.op in _REGEX_OPS:
                for side in (left, right):
                    if side.kind not in (DataKind.TEXT, DataKind.UNKNOWN):
                        raise QueryTypeError(
                            f"{expr.op.value} requires text operands, got {side.kind.value}"
                        )
            elif common_kind(left.kind, right.kind) is None:
                raise QueryTypeError(
                    f"Cannot compare {left.kind.value} with {right.kind.value} in '{expr}'"
                )
            return ColumnType(DataKind.BOOLEAN)
        if isinstance(expr, (BetweenExpr, InExpr)):
            operand = child_types[0]
            for other in child_types[1:]:
                if common_kind(operand.kind, other.kind) is None:
                    raise QueryTypeError(
                        f"Cannot compare {operand.kind.value} with {other.kind.value} in '{expr}'"
                    )
            return ColumnType(DataKind.BOOLEAN)
        if isinstance(expr, LogicalExpr):
            for operand, operand_type in zip(expr.operands, child_types):
                if operand_type.kind not in (DataKind.BOOLEAN, DataKind.UNKNOWN):
                    raise QueryTypeError(
                        f"Argument of {expr.op.value} must be boolean: '{operand}'"
                    )
            return ColumnType(DataKind.BOOLEAN)
        if isinstance(expr, IsNullExpr):
            return ColumnType(DataKind.BOOLEAN, nullable=False)
        if isinstance(expr, ArithmeticExpr):
            return self._arithmetic_type(expr, *child_types)
        if isinstance(expr, NegateExpr):
            operand = child_types[0]
            if operand.kind not in (DataKind.INTEGER, DataKind.DECIMAL, DataKind.UNKNOWN):
                raise QueryTypeError(f"Cannot negate {operand.kind.value} in '{expr}'")
            return operand
        if isinstance(expr, FunctionExpr):
            return self._function_type(expr, child_types)
        if isinstance(expr, ExtractExpr):
            if expr.field.lower() not in _EXTRACT_FIELDS:
                raise QueryTypeError(f"Unknown EXTRACT field '{expr.field}'")
            operand = child_types[0]
            if operand.kind not in (
                DataKind.DATE, DataKind.TIMESTAMP, DataKind.TEXT, DataKind.UNKNOWN
            ):
                raise QueryTypeError(
                    f"EXTRACT requires a date or timestamp, got {operand.kind.value}"
                )
            if expr.field.lower() in ("epoch", "second"):
                return ColumnType(DataKind.DECIMAL)
            return ColumnType(DataKind.INTEGER)
        if isinstance(expr, CaseExpr):
            results = [self._bind(result) for _, result in expr.whens]
            if expr.default is not None:
                results.append(self._bind(expr.default))
            for result in results:
                if result.kind is not DataKind.UNKNOWN:
                    return result.with_nullable(True)
            return UNKNOWN_TYPE
        if isinstance(expr, CastExpr):
            return ColumnType(expr.target)
        if isinstance(expr, JsonExtractExpr):
            operand = child_types[0]
            if operand.kind not in (DataKind.DOCUMENT, DataKind.TEXT, DataKind.UNKNOWN):
                raise QueryTypeError(f"Cannot navigate into {operand.kind.value} in '{expr}'")
            return ColumnType(DataKind.TEXT) if expr.as_text else UNKNOWN_TYPE
        raise QueryTypeError(f"Unsupported expression type: {type(expr).__name__}")

    def _arithmetic_type(
        self, expr: ArithmeticExpr, left: ColumnType, right: ColumnType
    ) -> ColumnType:
        if expr.op is ArithmeticOp.CONCAT:
            return ColumnType(DataKind.TEXT)
        if DataKind.UNKNOWN in (left.kind, right.kind):
            return UNKNOWN_TYPE
        if left.kind.is_numeric and right.kind.is_numeric:
            if left.kind is DataKind.INTEGER and right.kind is DataKind.INTEGER:
                return ColumnType(DataKind.INTEGER)
            return ColumnType(DataKind.DECIMAL)
        if left.kind.is_temporal and expr.op in (ArithmeticOp.ADD, ArithmeticOp.SUB):
            if right.kind is DataKind.INTEGER:
                return left
            if right.kind.is_temporal and expr.op is ArithmeticOp.SUB:
                if left.kind is DataKind.DATE and right.kind is DataKind.DATE:
                    return ColumnType(DataKind.INTEGER)
                return UNKNOWN_TYPE
        raise QueryTypeError(
            f"Operator {expr.op.value} is not defined for "
            f"{left.kind.value} and {right.kind.value} in '{expr}'"
        )

    def _function_type(self, expr: FunctionExpr, args: list[ColumnType]) -> ColumnType:
        low, high = _FUNCTION_ARITY[expr.func]
        if len(args) < low or (high is not None and len(args) > high):
            raise QueryTypeError(f"Wrong number of arguments for {expr.func.value}: '{expr}'")
        func = expr.func
        if func in _TEXT_FUNCS:
            for arg in args:
                if arg.kind not in (DataKind.TEXT, DataKind.UNKNOWN):
                    raise QueryTypeError(f"{func.value} requires text, got {arg.kind.value}")
            if func in (ScalarFunc.LENGTH, ScalarFunc.POSITION):
                return ColumnType(DataKind.INTEGER)
            return ColumnType(DataKind.TEXT)
        if func is ScalarFunc.SUBSTRING:
            if args[0].kind not in (DataKind.TEXT, DataKind.UNKNOWN):
                raise QueryTypeError(f"SUBSTRING requires text, got {args[0].kind.value}")
            allowed = (DataKind.INTEGER, DataKind.UNKNOWN)
            if len(args) == 2:
                allowed += (DataKind.TEXT,)
            for arg in args[1:]:
                if arg.kind not in allowed:
                    raise QueryTypeError(f"Invalid SUBSTRING bound of type {arg.kind.value}")
            return ColumnType(DataKind.TEXT)
        if func is ScalarFunc.DATE_TRUNC:
            if args[0].kind not in (DataKind.TEXT, DataKind.UNKNOWN):
                raise QueryTypeError(f"DATE_TRUNC unit must be text, got {args[0].kind.value}")
            if args[1].kind not in (
                DataKind.DATE,
                DataKind.TIMESTAMP,
                DataKind.TEXT,
                DataKind.UNKNOWN,
            ):
                raise QueryTypeError(
                    f"DATE_TRUNC requires a date or timestamp, got {args[1].kind.value}"
                )
            return ColumnType(DataKind.TIMESTAMP)
        if func is ScalarFunc.CONCAT:
            return ColumnType(DataKind.TEXT)
        if func is ScalarFunc.ARRAY_LENGTH:
            if args[0].kind not in (DataKind.ARRAY, DataKind.UNKNOWN):
                raise QueryTypeError(f"ARRAY_LENGTH requires an array, got {args[0].kind.value}")
            return ColumnType(DataKind.INTEGER)
        if func in (ScalarFunc.ABS, ScalarFunc.ROUND):
            if args[0].kind not in (DataKind.INTEGER, DataKind.DECIMAL, DataKind.UNKNOWN):
                raise QueryTypeError(f"{func.value} requires a number, got {args[0].kind.value}")
            return args[0]
        # COALESCE / NULLIF
        for arg in args:
            if arg.kind is not DataKind.UNKNOWN:
                return arg.with_nullable(True)
        return UNKNOWN_TYPE

    # ------------------------------------------------------------- evaluation

    def predicate(self, expr: Expression, row: Row) -> Truth:
        """Evaluate an expression as a predicate."""
        computed = self._computed.get(id(expr))
        if computed is not None:
            return self._as_truth(row[computed], expr)
        if isinstance(expr, ComparisonExpr):
            return self._compare(expr, row)
        if isinstance(expr, LogicalExpr):
            if expr.op is LogicalOp.NOT:
                return ~self.predicate(expr.operands[0], row)
            if expr.op is LogicalOp.AND:
                result = Truth.TRUE
                for operand in expr.operands:
                    result = result & self.predicate(operand, row)
                    if result is Truth.FALSE:
                        break
                return result
            result = Truth.FALSE
            for operand in expr.operands:
                result = result | self.predicate(operand, row)
                if result is Truth.TRUE:
                    break
            return result
        if isinstance(expr, IsNullExpr):
            is_null = Truth.of(self.evaluate(expr.operand, row) is None)
            return ~is_null if expr.negated else is_null
        if isinstance(expr, BetweenExpr):
            value = self.evaluate(expr.operand, row)
            low = self.evaluate(expr.low, row)
            high = self.evaluate(expr.high, row)
            if value is None or low is None or high is None:
                return Truth.UNKNOWN
            inside = Truth.of(compare_values(low, value) <= 0 and compare_values(value, high) <= 0)
            return ~inside if expr.negated else inside
        if isinstance(expr, InExpr):
            return self._in(expr, row)
        return self._as_truth(self.evaluate(expr, row), expr)

    def evaluate(self, expr: Expression, row: Row) -> Any:
        """Evaluate an expression to a value (``None`` is NULL)."""
        computed = self._computed.get(id(expr))
        if computed is not None:
            return row[computed]
        if isinstance(expr, ColumnExpr):
            position = self._positions.get(expr.column)
            if position is None:
                position = self._schema.index_of(expr.column)
                self._positions[expr.column] = position
            return row[position]
        if isinstance(expr, LiteralExpr):
            return expr.value
        if isinstance(expr, _PREDICATES):
            return self.predicate(expr, row).to_value()
        if isinstance(expr, ArithmeticExpr):
            left = self.evaluate(expr.left, row)
            return arithmetic(expr.op, left, self.evaluate(expr.right, row))
        if isinstance(expr, NegateExpr):
            value = self.evaluate(expr.operand, row)
            if value is None:
                return None
            if not (_is_number(value) or isinstance(value, timedelta)):
                raise QueryTypeError(f"Cannot negate {_describe(value)}")
            return -value
        if isinstance(expr, FunctionExpr):
            return self._call(expr, row)
        if isinstance(expr, ExtractExpr):
            return extract_field(expr.field, self.evaluate(expr.operand, row))
        if isinstance(expr, CaseExpr):
            return self._case(expr, row)
        if isinstance(expr, CastExpr):
            return cast_value(self.evaluate(expr.operand, row), expr.target)
        if isinstance(expr, JsonExtractExpr):
            return json_navigate(self.evaluate(expr.operand, row), expr.path, expr.as_text)
        if isinstance(expr, (AggregateExpr, WindowExpr)):
            raise SchemaError(f"'{expr}' is not available at this point of the query")
        raise QueryTypeError(f"Unsupported expression type: {type(expr).__name__}")

    def _as_truth(self, value: Any, expr: Expression) -> Truth:
        if value is None or isinstance(value, bool):
            return Truth.of(value)
        raise QueryTypeError(f"Predicate '{expr}' produced {_describe(value)}, not boolean")

    def _compare(self, expr: ComparisonExpr, row: Row) -> Truth:
        left = self.evaluate(expr.left, row)
        right = self.evaluate(expr.right, row)
        if left is None or right is None:
            return Truth.UNKNOWN
        op = expr.op
        if op is ComparisonOp.EQ:
            return sql_equals(left, right)
        if op is ComparisonOp.NE:
            return ~sql_equals(left, right)
        if op is ComparisonOp.LIKE:
            return Truth.of(like_match(left, right, self._context.like_case_sensitive))
        if op is ComparisonOp.ILIKE:
            return Truth.of(like_match(left, right, case_sensitive=False))
        if op in _REGEX_OPS:
            if not isinstance(left, str) or not isinstance(right, str):
                raise QueryTypeError(
                    f"{op.value} requires text operands, "
                    f"got {_describe(left)} and {_describe(right)}"
                )
            case_insensitive, negated = _REGEX_OPS[op]
            found = Truth.of(regex_pattern(right, case_insensitive).search(left) is not None)
            return ~found if negated else found
        order = compare_values(left, right)
        if op is ComparisonOp.LT:
            return Truth.of(order < 0)
        if op is ComparisonOp.LE:
            return Truth.of(order <= 0)
        if op is ComparisonOp.GT:
            return Truth.of(order > 0)
        return Truth.of(order >= 0)

    def _in(self, expr: InExpr, row: Row) -> Truth:
        value = self.evaluate(expr.operand, row)
        if value is None:
            return Truth.UNKNOWN
        result = Truth.FALSE
        for item in expr.items:
            candidate = sql_equals(value, self.evaluate(item, row))
            result = result | candidate
            if result is Truth.TRUE:
                break
        return ~result if expr.negated else result

    def _case(self, expr: CaseExpr, row: Row) -> Any:
        if expr.operand is not None:
            subject = self.evaluate(expr.operand, row)
            for candidate, result in expr.whens:
                if sql_equals(subject, self.evaluate(candidate, row)).is_true():
                    return self.evaluate(result, row)
        else:
            for condition, result in expr.whens:
                if self.predicate(condition, row).is_true():
                    return self.evaluate(result, row)
        if expr.default is not None:
            return self.evaluate(expr.default, row)
        return None

    def _call(self, expr: FunctionExpr, row: Row) -> Any:
        func = expr.func
        if func is ScalarFunc.COALESCE:
            for arg in expr.args:
                value = self.evaluate(arg, row)
                if value is not None:
                    return value
            return None
        values = [self.evaluate(arg, row) for arg in expr.args]
        if func is ScalarFunc.CONCAT:
            return "".join(to_text(v) for v in values if v is not None)
        if func is ScalarFunc.NULLIF:
            first, second = values
            if first is not None and second is not None and values_equal(first, second):
                return None
            return first
        value = values[0]
        if value is None:
            return None
        if func in _TEXT_FUNCS:
            return self._text_call(func, values)
        if func is ScalarFunc.SUBSTRING:
            if any(v is None for v in values):
                return None
            if not isinstance(value, str):
                raise QueryTypeError(f"SUBSTRING requires text, got {_describe(value)}")
            for bound in values[1:]:
                if isinstance(bound, bool) or not isinstance(bound, (int, str)):
                    raise QueryTypeError(f"Invalid SUBSTRING bound {_describe(bound)}")
            if len(values) == 3 and not all(isinstance(v, int) for v in values[1:]):
                raise QueryTypeError("SUBSTRING ... FOR requires integer bounds")
            return substring(*values)
        if func is ScalarFunc.DATE_TRUNC:
            if values[1] is None:
                return None
            if not isinstance(value, str):
                raise QueryTypeError(f"DATE_TRUNC unit must be text, got {_describe(value)}")
            return date_trunc(value, values[1])
        if func is ScalarFunc.ARRAY_LENGTH:
            if not isinstance(value, (list, tuple)):
                raise QueryTypeError(f"ARRAY_LENGTH requires an array, got {_describe(value)}")
            # empty arrays have no dimensions
            return len(value) or None
        if not _is_number(value):
            raise QueryTypeError(f"{func.value} requires a number, got {_describe(value)}")
        if func is ScalarFunc.ABS:
            return abs(value)
        places = values[1] if len(values) > 1 else 0
        if places is None:
            return None
        if not isinstance(places, int) or isinstance(places, bool):
            raise QueryTypeError(f"ROUND precision must be an integer, got {_describe(places)}")
        return _round(value, places)

    def _text_call(self, func: ScalarFunc, values: list[Any]) -> Any:
        if any(v is None for v in values):
            return None
        for v in values:
            if not isinstance(v, str):
                raise QueryTypeError(f"{func.value} requires text, got {_describe(v)}")
        value = values[0]
        if func is ScalarFunc.UPPER:
            return value.upper()
        if func is ScalarFunc.LOWER:
            return value.lower()
        if func is ScalarFunc.TRIM:
            return value.strip()
        if func is ScalarFunc.LENGTH:
            return len(value)
        if func is ScalarFunc.REVERSE:
            return value[::-1]
        if func is ScalarFunc.POSITION:
            # POSITION(needle IN haystack); 0 when absent
            return values[1].find(value) + 1
        if func is ScalarFunc.REPLACE:
            old, new = values[1], values[2]
            return value.replace(old, new) if old else value
        return translate(value, values[1], values[2])
