"""Unit tests for the expression evaluator."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

import pytest

from query_engine.domain.entities import Row, Schema
from query_engine.domain.exceptions import (
    DivisionByZeroError,
    QueryError,
    QueryTypeError,
    SchemaError,
)
from query_engine.domain.services import (
    ExpressionEvaluator,
    arithmetic,
    cast_value,
    date_trunc,
    extract_field,
    sql_equals,
    translate_posix_classes,
)
from query_engine.domain.value_objects import (
    AggregateExpr,
    AggregateFunc,
    ArithmeticExpr,
    ArithmeticOp,
    BetweenExpr,
    CaseExpr,
    CastExpr,
    ComparisonExpr,
    ComparisonOp,
    DataKind,
    Expression,
    ExtractExpr,
    FunctionExpr,
    InExpr,
    IsNullExpr,
    JsonExtractExpr,
    LogicalExpr,
    LogicalOp,
    NegateExpr,
    QueryContext,
    ScalarFunc,
    Truth,
    col,
    lit,
)

SCHEMA = Schema.of(
    ("n", "integer"),
    ("s", "text"),
    ("d", "date"),
    ("doc", "document"),
    ("arr", "array"),
)


def make_row(n: Any = 1, s: Any = "West", d: Any = None, doc: Any = None, arr: Any = None) -> Row:
    return Row((n, s, d, doc, arr))


def cmp(left: Expression, op: ComparisonOp, right: Expression) -> ComparisonExpr:
    return ComparisonExpr(left, op, right)


class _Harness:
    """Binds then evaluates against SCHEMA."""

    def __init__(self, context: QueryContext | None = None) -> None:
        self.evaluator = ExpressionEvaluator(SCHEMA, context or QueryContext())

    def truth(self, expr: Expression, row: Row | None = None) -> Truth:
        self.evaluator.bind_predicate(expr)
        return self.evaluator.predicate(expr, row or make_row())

    def value(self, expr: Expression, row: Row | None = None) -> Any:
        self.evaluator.bind(expr)
        return self.evaluator.evaluate(expr, row or make_row())


@pytest.fixture
def harness() -> _Harness:
    """Evaluator over (n, s, d, doc, arr) with default settings."""
    return _Harness()


@pytest.mark.unit
class TestNullSemantics:
    """Tests for comparisons and logic with NULL operands."""

    @pytest.mark.parametrize(
        "op",
        [ComparisonOp.EQ, ComparisonOp.NE, ComparisonOp.LT, ComparisonOp.GE, ComparisonOp.LIKE],
    )
    def test_comparison_with_null_is_unknown(self, harness: _Harness, op: ComparisonOp) -> None:
        """Any comparison against NULL is UNKNOWN."""
        left = col("s") if op is ComparisonOp.LIKE else col("n")
        right = lit("W%") if op is ComparisonOp.LIKE else lit(1)

        assert harness.truth(cmp(left, op, right), make_row(n=None, s=None)) is Truth.UNKNOWN

    def test_null_equals_null_is_unknown(self, harness: _Harness) -> None:
        """NULL = NULL is not TRUE."""
        assert harness.truth(cmp(col("n"), ComparisonOp.EQ, lit(None))) is Truth.UNKNOWN
        assert sql_equals(None, None) is Truth.UNKNOWN

    def test_is_null(self, harness: _Harness) -> None:
        """IS NULL is the definite null check."""
        row = make_row(n=None)

        assert harness.truth(IsNullExpr(col("n")), row) is Truth.TRUE
        assert harness.truth(IsNullExpr(col("n"), negated=True), row) is Truth.FALSE

    def test_and_or_with_unknown(self, harness: _Harness) -> None:
        """UNKNOWN AND FALSE is FALSE, UNKNOWN OR TRUE is TRUE."""
        unknown = cmp(col("n"), ComparisonOp.GT, lit(1))
        row = make_row(n=None)

        assert harness.truth(
            LogicalExpr(LogicalOp.AND, (unknown, lit(False))), row
        ) is Truth.FALSE
        assert harness.truth(LogicalExpr(LogicalOp.OR, (unknown, lit(True))), row) is Truth.TRUE
        assert harness.truth(
            LogicalExpr(LogicalOp.AND, (unknown, lit(True))), row
        ) is Truth.UNKNOWN

    def test_not_unknown_is_unknown(self, harness: _Harness) -> None:
        """NOT UNKNOWN does not become TRUE."""
        predicate = LogicalExpr(LogicalOp.NOT, (cmp(col("n"), ComparisonOp.EQ, lit(1)),))

        assert harness.truth(predicate, make_row(n=None)) is Truth.UNKNOWN

    def test_in_list(self, harness: _Harness) -> None:
        """IN is TRUE on a match even with NULLs, UNKNOWN when a NULL could match."""
        with_null = (lit(1), lit(None))

        assert harness.truth(InExpr(col("n"), with_null), make_row(n=1)) is Truth.TRUE
        assert harness.truth(InExpr(col("n"), with_null), make_row(n=2)) is Truth.UNKNOWN
        assert harness.truth(
            InExpr(col("n"), with_null, negated=True), make_row(n=2)
        ) is Truth.UNKNOWN
        assert harness.truth(InExpr(col("n"), (lit(1), lit(3))), make_row(n=2)) is Truth.FALSE
        assert harness.truth(InExpr(col("n"), (lit(1),)), make_row(n=None)) is Truth.UNKNOWN

    def test_between(self, harness: _Harness) -> None:
        """BETWEEN is inclusive; any NULL bound gives UNKNOWN."""
        assert harness.truth(BetweenExpr(col("n"), lit(1), lit(3)), make_row(n=3)) is Truth.TRUE
        assert harness.truth(
            BetweenExpr(col("n"), lit(1), lit(3), negated=True), make_row(n=5)
        ) is Truth.TRUE
        assert harness.truth(
            BetweenExpr(col("n"), lit(None), lit(3)), make_row(n=2)
        ) is Truth.UNKNOWN


@pytest.mark.unit
class TestPatternMatching:
    """Tests for LIKE, ILIKE and regex operators."""

    @pytest.mark.parametrize(
        "value,pattern,expected",
        [
            ("West", "W%", Truth.TRUE),
            ("West", "%st", Truth.TRUE),
            ("West", "W_st", Truth.TRUE),
            ("West", "W_t", Truth.FALSE),
            ("west", "W%", Truth.FALSE),
            ("50%", "50\\%", Truth.TRUE),
            ("500", "50\\%", Truth.FALSE),
            ("a\nb", "a%b", Truth.TRUE),
        ],
    )
    def test_like(self, harness: _Harness, value: str, pattern: str, expected: Truth) -> None:
        """% matches any run, _ exactly one character, backslash escapes."""
        predicate = cmp(col("s"), ComparisonOp.LIKE, lit(pattern))

        assert harness.truth(predicate, make_row(s=value)) is expected

    def test_like_case_insensitive_context(self) -> None:
        """The per-query context can make LIKE case-insensitive."""
        harness = _Harness(QueryContext(like_case_sensitive=False))
        predicate = cmp(col("s"), ComparisonOp.LIKE, lit("w%"))

        assert harness.truth(predicate, make_row(s="West")) is Truth.TRUE

    def test_ilike(self, harness: _Harness) -> None:
        """ILIKE ignores case regardless of settings."""
        predicate = cmp(col("s"), ComparisonOp.ILIKE, lit("w%"))

        assert harness.truth(predicate, make_row(s="West")) is Truth.TRUE

    def test_regex_is_unanchored(self, harness: _Harness) -> None:
        """~ searches anywhere unless anchored explicitly."""
        row = make_row(s="East")

        assert harness.truth(cmp(col("s"), ComparisonOp.REGEX, lit("as")), row) is Truth.TRUE
        assert harness.truth(cmp(col("s"), ComparisonOp.REGEX, lit("^as")), row) is Truth.FALSE
        assert harness.truth(cmp(col("s"), ComparisonOp.REGEX, lit("^E.*t$")), row) is Truth.TRUE

    def test_regex_variants(self, harness: _Harness) -> None:
        """~* ignores case; !~ negates."""
        row = make_row(s="East")

        assert harness.truth(cmp(col("s"), ComparisonOp.REGEX_I, lit("^east")), row) is Truth.TRUE
        assert harness.truth(cmp(col("s"), ComparisonOp.NOT_REGEX, lit("^W")), row) is Truth.TRUE

    @pytest.mark.parametrize(
        "pattern,value,expected",
        [
            ("[[:digit:]]", "a1", Truth.TRUE),
            ("[[:digit:]]", "bb", Truth.FALSE),
            ("^[[:alpha:]]+$", "East", Truth.TRUE),
            ("^[[:alpha:]]+$", "East1", Truth.FALSE),
            ("^[[:upper:]][[:lower:]]*$", "West", Truth.TRUE),
            ("[^[:alnum:] ]", "a b", Truth.FALSE),
            ("[^[:alnum:] ]", "a-b", Truth.TRUE),
            ("[[:space:]]", "a\tb", Truth.TRUE),
            ("[[:punct:]]", "a.b", Truth.TRUE),
            ("[[:punct:]]", "ab", Truth.FALSE),
        ],
    )
    def test_regex_posix_classes(
        self, harness: _Harness, pattern: str, value: str, expected: Truth
    ) -> None:
        """POSIX bracket classes match the characters they name."""
        predicate = cmp(col("s"), ComparisonOp.REGEX, lit(pattern))

        assert harness.truth(predicate, make_row(s=value)) is expected

    def test_posix_class_translation(self) -> None:
        """Classes expand inside brackets; a leading ] and escapes are kept."""
        assert translate_posix_classes("[[:digit:]]+") == "[0-9]+"
        assert translate_posix_classes("[^[:upper:]_]") == "[^A-Z_]"
        assert translate_posix_classes("[]a]") == "[\\]a]"
        assert translate_posix_classes("\\[[:digit:]") == "\\[[:digit:]"

    def test_unknown_posix_class(self, harness: _Harness) -> None:
        """An unknown class name is an error, not a literal match."""
        with pytest.raises(QueryError, match="character class"):
            harness.truth(cmp(col("s"), ComparisonOp.REGEX, lit("[[:vowel:]]")))

    def test_like_on_integer_rejected_at_bind(self, harness: _Harness) -> None:
        """LIKE needs text operands."""
        with pytest.raises(QueryTypeError):
            harness.truth(cmp(col("n"), ComparisonOp.LIKE, lit("1%")))


@pytest.mark.unit
class TestBinding:
    """Tests for bind-time errors."""

    def test_unknown_column(self, harness: _Harness) -> None:
        """Unknown columns raise SchemaError before any row is read."""
        with pytest.raises(SchemaError, match="does not exist"):
            harness.evaluator.bind(cmp(col("missing"), ComparisonOp.EQ, lit(1)))

    def test_incompatible_comparison(self, harness: _Harness) -> None:
        """Integer compared with text is a type error."""
        with pytest.raises(QueryTypeError, match="Cannot compare"):
            harness.evaluator.bind(cmp(col("n"), ComparisonOp.EQ, lit("1")))

    def test_arithmetic_on_text(self, harness: _Harness) -> None:
        """Arithmetic on a TEXT column fails at bind time."""
        with pytest.raises(QueryTypeError):
            harness.evaluator.bind(ArithmeticExpr(col("s"), ArithmeticOp.ADD, lit(1)))

    def test_predicate_must_be_boolean(self, harness: _Harness) -> None:
        """A non-boolean filter expression is rejected."""
        with pytest.raises(QueryTypeError, match="must be boolean"):
            harness.evaluator.bind_predicate(col("n"))

    def test_aggregate_outside_aggregation(self, harness: _Harness) -> None:
        """Aggregate calls are not available to row-level expressions."""
        with pytest.raises(SchemaError):
            harness.evaluator.bind(AggregateExpr(AggregateFunc.SUM, col("n")))

    def test_function_arity(self, harness: _Harness) -> None:
        """Scalar functions check their argument count."""
        with pytest.raises(QueryTypeError, match="Wrong number of arguments"):
            harness.evaluator.bind(FunctionExpr(ScalarFunc.UPPER, (col("s"), col("s"))))

    def test_result_types(self, harness: _Harness) -> None:
        """Bind infers result types."""
        evaluator = harness.evaluator

        assert evaluator.bind(ArithmeticExpr(col("n"), ArithmeticOp.MUL, lit(2))).kind is (
            DataKind.INTEGER
        )
        assert evaluator.bind(ArithmeticExpr(col("n"), ArithmeticOp.DIV, lit(1.5))).kind is (
            DataKind.DECIMAL
        )
        assert evaluator.bind(FunctionExpr(ScalarFunc.LENGTH, (col("s"),))).kind is (
            DataKind.INTEGER
        )
        assert evaluator.bind(ExtractExpr("year", col("d"))).kind is DataKind.INTEGER
        assert evaluator.bind(
            FunctionExpr(ScalarFunc.POSITION, (lit(" "), col("s")))
        ).kind is DataKind.INTEGER
        assert evaluator.bind(
            FunctionExpr(ScalarFunc.DATE_TRUNC, (lit("month"), col("d")))
        ).kind is DataKind.TIMESTAMP

    def test_string_function_arguments(self, harness: _Harness) -> None:
        """Text functions reject non-text arguments; DATE_TRUNC needs a date."""
        evaluator = harness.evaluator

        with pytest.raises(QueryTypeError):
            evaluator.bind(FunctionExpr(ScalarFunc.REPLACE, (col("s"), col("n"), lit("x"))))
        with pytest.raises(QueryTypeError):
            evaluator.bind(FunctionExpr(ScalarFunc.SUBSTRING, (col("s"), lit("a"), lit(1))))
        with pytest.raises(QueryTypeError):
            evaluator.bind(FunctionExpr(ScalarFunc.DATE_TRUNC, (lit("day"), col("n"))))


@pytest.mark.unit
class TestValueExpressions:
    """Tests for arithmetic, functions and other value expressions."""

    def test_integer_division_truncates(self) -> None:
        """Integer division truncates toward zero."""
        assert arithmetic(ArithmeticOp.DIV, 7, 2) == 3
        assert arithmetic(ArithmeticOp.DIV, -7, 2) == -3
        assert arithmetic(ArithmeticOp.DIV, 7.0, 2) == 3.5

    def test_modulo_sign_follows_dividend(self) -> None:
        """Modulo keeps the dividend's sign."""
        assert arithmetic(ArithmeticOp.MOD, -7, 3) == -1
        assert arithmetic(ArithmeticOp.MOD, 7, -3) == 1

    def test_division_by_zero(self, harness: _Harness) -> None:
        """Division and modulo by zero abort evaluation."""
        expr = ArithmeticExpr(col("n"), ArithmeticOp.DIV, lit(0))

        with pytest.raises(DivisionByZeroError):
            harness.value(expr)
        with pytest.raises(ZeroDivisionError):
            arithmetic(ArithmeticOp.MOD, 1, 0)

    def test_null_propagation(self) -> None:
        """Arithmetic with NULL is NULL, even for a zero divisor."""
        assert arithmetic(ArithmeticOp.ADD, None, 1) is None
        assert arithmetic(ArithmeticOp.DIV, None, 0) is None

    def test_negate(self, harness: _Harness) -> None:
        """Unary minus on numbers."""
        assert harness.value(NegateExpr(col("n")), make_row(n=4)) == -4
        assert harness.value(NegateExpr(col("n")), make_row(n=None)) is None

    def test_concat(self, harness: _Harness) -> None:
        """|| renders both sides as text; CONCAT skips NULLs."""
        assert harness.value(ArithmeticExpr(col("s"), ArithmeticOp.CONCAT, col("n"))) == "West1"
        assert harness.value(
            FunctionExpr(ScalarFunc.CONCAT, (col("s"), lit(None), lit("!")))
        ) == "West!"

    def test_date_arithmetic(self) -> None:
        """DATE - DATE gives days; TIMESTAMP - TIMESTAMP gives an interval."""
        assert arithmetic(ArithmeticOp.SUB, date(2024, 1, 10), date(2024, 1, 1)) == 9
        assert arithmetic(
            ArithmeticOp.SUB, datetime(2024, 1, 1, 12), datetime(2024, 1, 1, 10)
        ) == timedelta(hours=2)
        assert arithmetic(ArithmeticOp.ADD, date(2024, 1, 31), 1) == date(2024, 2, 1)

    def test_date_compared_with_text(self, harness: _Harness) -> None:
        """Text compared with a DATE is parsed as ISO."""
        predicate = cmp(col("d"), ComparisonOp.GT, lit("2020-01-01"))

        assert harness.truth(predicate, make_row(d=date(2021, 5, 1))) is Truth.TRUE
        assert harness.truth(predicate, make_row(d=date(2019, 5, 1))) is Truth.FALSE

    def test_scalar_functions(self, harness: _Harness) -> None:
        """UPPER, LOWER, TRIM, LENGTH, ABS, ROUND."""
        assert harness.value(FunctionExpr(ScalarFunc.UPPER, (col("s"),))) == "WEST"
        assert harness.value(FunctionExpr(ScalarFunc.LOWER, (col("s"),))) == "west"
        assert harness.value(FunctionExpr(ScalarFunc.TRIM, (lit("  x "),))) == "x"
        assert harness.value(FunctionExpr(ScalarFunc.LENGTH, (col("s"),))) == 4
        assert harness.value(FunctionExpr(ScalarFunc.ABS, (lit(-3),))) == 3
        assert harness.value(FunctionExpr(ScalarFunc.ROUND, (lit(2.345), lit(2)))) == 2.35
        assert harness.value(
            FunctionExpr(ScalarFunc.ROUND, (lit(Decimal("2.5")),))
        ) == Decimal("3")

    def test_round_beyond_decimal_precision(self, harness: _Harness) -> None:
        """Rounding to more places than Decimal can hold is a type error."""
        with pytest.raises(QueryTypeError, match="precision"):
            harness.value(FunctionExpr(ScalarFunc.ROUND, (lit(Decimal("1.5")), lit(40))))

    def test_string_functions(self, harness: _Harness) -> None:
        """POSITION, REPLACE, TRANSLATE and REVERSE; NULL arguments give NULL."""
        assert harness.value(FunctionExpr(ScalarFunc.POSITION, (lit(" "), lit("Ann Lee")))) == 4
        assert harness.value(FunctionExpr(ScalarFunc.POSITION, (lit("z"), col("s")))) == 0
        assert harness.value(
            FunctionExpr(ScalarFunc.REPLACE, (col("s"), lit("st"), lit("ST")))
        ) == "WeST"
        assert harness.value(
            FunctionExpr(ScalarFunc.REPLACE, (col("s"), lit(""), lit("x")))
        ) == "West"
        assert harness.value(
            FunctionExpr(ScalarFunc.TRANSLATE, (lit("a-b_c"), lit("-_"), lit(" ")))
        ) == "a bc"
        assert harness.value(FunctionExpr(ScalarFunc.REVERSE, (col("s"),))) == "tseW"
        assert harness.value(
            FunctionExpr(ScalarFunc.REPLACE, (col("s"), lit(None), lit("x")))
        ) is None

    def test_substring(self, harness: _Harness) -> None:
        """SUBSTRING counts from 1 and clamps; a text bound is a regex."""

        def sub(*args: Any) -> Any:
            return harness.value(FunctionExpr(ScalarFunc.SUBSTRING, tuple(lit(a) for a in args)))

        assert sub("Alice Smith", 1, 5) == "Alice"
        assert sub("Alice Smith", 7) == "Smith"
        assert sub("abc", 0, 2) == "a"
        assert sub("abc", -5, 2) == ""
        assert sub("abc", 2, 10) == "bc"
        assert sub("Alice Smith", "^[A-Za-z]+") == "Alice"
        assert sub("order-42", "-([[:digit:]]+)") == "42"
        assert sub("abc", "[0-9]") is None
        assert sub("abc", None) is None
        with pytest.raises(QueryError, match="negative substring length"):
            sub("abc", 1, -1)

    def test_date_trunc(self, harness: _Harness) -> None:
        """DATE_TRUNC gives the start of the enclosing unit as a timestamp."""
        moment = datetime(2024, 5, 17, 13, 45, 12)
        expr = FunctionExpr(ScalarFunc.DATE_TRUNC, (lit("month"), col("d")))

        assert harness.value(expr, make_row(d=date(2024, 5, 17))) == datetime(2024, 5, 1)
        assert harness.value(expr, make_row(d=None)) is None
        assert date_trunc("year", moment) == datetime(2024, 1, 1)
        assert date_trunc("quarter", moment) == datetime(2024, 4, 1)
        assert date_trunc("week", moment) == datetime(2024, 5, 13)
        assert date_trunc("hour", moment) == datetime(2024, 5, 17, 13)
        assert date_trunc("MINUTE", moment) == datetime(2024, 5, 17, 13, 45)
        assert date_trunc("day", "2024-05-17") == datetime(2024, 5, 17)
        with pytest.raises(QueryTypeError, match="unit"):
            date_trunc("fortnight", moment)

    def test_coalesce_and_nullif(self, harness: _Harness) -> None:
        """COALESCE returns the first non-NULL; NULLIF blanks equal values."""
        assert harness.value(
            FunctionExpr(ScalarFunc.COALESCE, (col("n"), lit(0))), make_row(n=None)
        ) == 0
        assert harness.value(FunctionExpr(ScalarFunc.NULLIF, (col("n"), lit(1)))) is None
        assert harness.value(FunctionExpr(ScalarFunc.NULLIF, (col("n"), lit(2)))) == 1

    def test_array_length(self, harness: _Harness) -> None:
        """ARRAY_LENGTH of an empty array is NULL."""
        expr = FunctionExpr(ScalarFunc.ARRAY_LENGTH, (col("arr"),))

        assert harness.value(expr, make_row(arr=[1, 2, 3])) == 3
        assert harness.value(expr, make_row(arr=[])) is None

    def test_searched_case(self, harness: _Harness) -> None:
        """Searched CASE takes the first TRUE branch; UNKNOWN falls through."""
        expr = CaseExpr(
            whens=(
                (cmp(col("n"), ComparisonOp.GT, lit(10)), lit("big")),
                (cmp(col("n"), ComparisonOp.GT, lit(0)), lit("small")),
            ),
            default=lit("none"),
        )

        assert harness.value(expr, make_row(n=50)) == "big"
        assert harness.value(expr, make_row(n=5)) == "small"
        assert harness.value(expr, make_row(n=None)) == "none"

    def test_simple_case(self, harness: _Harness) -> None:
        """Simple CASE compares its operand with each WHEN value."""
        expr = CaseExpr(whens=((lit("West"), lit(1)),), operand=col("s"))

        assert harness.value(expr, make_row(s="West")) == 1
        assert harness.value(expr, make_row(s="East")) is None

    def test_cast(self, harness: _Harness) -> None:
        """CAST converts between kinds."""
        assert harness.value(CastExpr(lit("42"), DataKind.INTEGER)) == 42
        assert harness.value(CastExpr(col("n"), DataKind.TEXT)) == "1"
        assert cast_value("2024-02-29", DataKind.DATE) == date(2024, 2, 29)
        assert cast_value("yes", DataKind.BOOLEAN) is True
        with pytest.raises(QueryTypeError):
            cast_value("abc", DataKind.INTEGER)

    def test_extract(self, harness: _Harness) -> None:
        """EXTRACT fields from dates and timestamps."""
        sunday = date(2024, 1, 7)

        assert harness.value(ExtractExpr("year", col("d")), make_row(d=sunday)) == 2024
        assert extract_field("dow", sunday) == 0
        assert extract_field("quarter", sunday) == 1
        assert extract_field("hour", datetime(2024, 1, 7, 13, 30)) == 13
        assert extract_field("epoch", timedelta(minutes=2)) == 120.0

    def test_json_extraction(self, harness: _Harness) -> None:
        """-> keeps documents, ->> renders text, missing keys give NULL."""
        row = make_row(doc={"a": {"b": 5}, "tags": ["x", "y"]})

        assert harness.value(JsonExtractExpr(col("doc"), ("a",)), row) == {"b": 5}
        assert harness.value(JsonExtractExpr(col("doc"), ("a", "b"), as_text=True), row) == "5"
        assert harness.value(JsonExtractExpr(col("doc"), ("tags", 1)), row) == "y"
        assert harness.value(JsonExtractExpr(col("doc"), ("zzz", "b")), row) is None
