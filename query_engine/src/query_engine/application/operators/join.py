"""Join operator.

Output schema is the left schema followed by the right schema; columns are
not renamed, qualifiers keep them apart. Rows come out left-row-major,
matches for one left row in right input order. Unmatched right rows of
RIGHT and FULL joins follow at the end, in right input order.

SEMI and ANTI joins output the left schema alone: a left row is emitted
once when some right row makes the condition TRUE (SEMI), or when none
does (ANTI). UNKNOWN counts as no match, as in ``NOT EXISTS``.

Two strategies:
    - Hash join when the condition contains equality conjuncts between a
      left-side and a right-side expression. The right side is built into
      a hash table keyed by those values; NULL keys are never inserted or
      looked up, so they never match. Remaining conjuncts are checked per
      candidate pair.
    - Nested loop over the materialized right side otherwise.
"""

from __future__ import annotations

from typing import Any, Iterator

from query_engine.application.operators.base import GeneratorOperator, Operator
from query_engine.application.operators.scan import ScanOperator
from query_engine.application.plan import JoinKind
from query_engine.domain.entities import Relation, Row, Schema
from query_engine.domain.exceptions import QueryError
from query_engine.domain.services import ExpressionEvaluator
from query_engine.domain.value_objects import (
    DEFAULT_CONTEXT,
    ColumnExpr,
    ComparisonExpr,
    ComparisonOp,
    DataKind,
    Expression,
    LogicalExpr,
    LogicalOp,
    QueryContext,
    group_key,
)


def split_conjuncts(expr: Expression) -> list[Expression]:
    """Flatten nested ANDs into a list of conjuncts."""
    if isinstance(expr, LogicalExpr) and expr.op is LogicalOp.AND:
        conjuncts: list[Expression] = []
        for operand in expr.operands:
            conjuncts.extend(split_conjuncts(operand))
        return conjuncts
    return [expr]


def _hashable_kinds(left: DataKind, right: DataKind) -> bool:
    # text and temporal keys only compare equal after parsing
    if left is DataKind.UNKNOWN or right is DataKind.UNKNOWN:
        return False
    if left.is_numeric and right.is_numeric:
        return True
    return left is right and left is not DataKind.DOCUMENT


def _join_schema(left: Schema, right: Schema, kind: JoinKind) -> Schema:
    if not kind.emits_right_columns:
        return left
    if kind.keeps_unmatched_right:
        left = left.nullable()
    if kind.keeps_unmatched_left:
        right = right.nullable()
    return left.concat(right)


class JoinOperator(GeneratorOperator):
    """Inner, outer, cross, semi and anti joins."""

    name = "Join"

    def __init__(
        self,
        left: Operator,
        right: Operator,
        kind: JoinKind = JoinKind.INNER,
        condition: Expression | None = None,
        context: QueryContext = DEFAULT_CONTEXT,
    ) -> None:
        try:
            combined = left.schema.concat(right.schema)
            schema = _join_schema(left.schema, right.schema, kind)
        except QueryError as e:
            raise e.with_context(self.name)
        super().__init__(schema, (left, right))
        self._left = left
        self._right = right
        self._kind = kind
        self._condition = None if kind is JoinKind.CROSS else condition
        self._left_width = len(left.schema)
        self._right_width = len(right.schema)
        self._left_keys: list[Expression] = []
        self._right_keys: list[Expression] = []
        self._residual: list[Expression] = []
        self._combined = combined
        self._evaluator = ExpressionEvaluator(combined, context)
        self._left_evaluator = ExpressionEvaluator(left.schema, context)
        self._right_evaluator = ExpressionEvaluator(right.schema, context)
        try:
            self._bind()
        except QueryError as e:
            raise self._annotate(e)

    @property
    def strategy(self) -> str:
        """``hash`` or ``nested_loop``."""
        return "hash" if self._left_keys else "nested_loop"

    def _bind(self) -> None:
        if self._condition is None:
            return
        # resolves every reference against left ++ right; raises on unknown
        # or ambiguous columns before any row is read
        self._evaluator.bind_predicate(self._condition)
        for conjunct in split_conjuncts(self._condition):
            sides = self._equi_sides(conjunct)
            if sides is None:
                self._residual.append(conjunct)
                continue
            left_expr, right_expr = sides
            left_type = self._left_evaluator.bind(left_expr)
            right_type = self._right_evaluator.bind(right_expr)
            if not _hashable_kinds(left_type.kind, right_type.kind):
                self._residual.append(conjunct)
                continue
            self._left_keys.append(left_expr)
            self._right_keys.append(right_expr)

    def _side_of(self, expr: Expression) -> str | None:
        """``left``/``right`` if every column of expr comes from one input."""
        sides = set()
        for node in expr.walk():
            if isinstance(node, ColumnExpr):
                position = self._combined.index_of(node.column)
                sides.add("left" if position < self._left_width else "right")
        if len(sides) != 1:
            return None
        return sides.pop()

    def _equi_sides(self, conjunct: Expression) -> tuple[Expression, Expression] | None:
        if not isinstance(conjunct, ComparisonExpr) or conjunct.op is not ComparisonOp.EQ:
            return None
        first = self._side_of(conjunct.left)
        second = self._side_of(conjunct.right)
        if first == "left" and second == "right":
            return conjunct.left, conjunct.right
        if first == "right" and second == "left":
            return conjunct.right, conjunct.left
        return None

    def _key(self, evaluator: ExpressionEvaluator, exprs: list[Expression], row: Row) -> Any:
        values = [evaluator.evaluate(expr, row) for expr in exprs]
        if any(value is None for value in values):
            return None
        return group_key(values)

    def _accepts(self, conditions: list[Expression], row: Row) -> bool:
        for condition in conditions:
            if not self._evaluator.predicate(condition, row).is_true():
                return False
        return True

    def _generate(self) -> Iterator[Row]:
        right_rows = list(self._drain(self._right))
        matched_right = [False] * len(right_rows)
        buckets: dict[Any, list[int]] | None = None
        if self._left_keys:
            buckets = {}
            for index, right_row in enumerate(right_rows):
                try:
                    key = self._key(self._right_evaluator, self._right_keys, right_row)
                except QueryError as e:
                    raise self._annotate(e, right_row)
                if key is not None:
                    buckets.setdefault(key, []).append(index)
        conditions = self._residual if buckets is not None else (
            [self._condition] if self._condition is not None else []
        )

        for left_row in self._drain(self._left):
            if buckets is not None:
                try:
                    key = self._key(self._left_evaluator, self._left_keys, left_row)
                except QueryError as e:
                    raise self._annotate(e, left_row)
                candidates = buckets.get(key, []) if key is not None else []
            else:
                candidates = range(len(right_rows))
            found = False
            for index in candidates:
                combined = left_row.concat(right_rows[index])
                try:
                    accepted = self._accepts(conditions, combined)
                except QueryError as e:
                    raise self._annotate(e, combined)
                if not accepted:
                    continue
                found = True
                if not self._kind.emits_right_columns:
                    break
                matched_right[index] = True
                yield combined
            if self._kind is JoinKind.SEMI:
                if found:
                    yield left_row
            elif self._kind is JoinKind.ANTI:
                if not found:
                    yield left_row
            elif not found and self._kind.keeps_unmatched_left:
                yield left_row.concat(Row.nulls(self._right_width))

        if self._kind.keeps_unmatched_right:
            padding = Row.nulls(self._left_width)
            for index, right_row in enumerate(right_rows):
                if not matched_right[index]:
                    yield padding.concat(right_row)


def join(
    left: Relation,
    right: Relation,
    on_predicate: Expression | None = None,
    kind: JoinKind | str = JoinKind.INNER,
    context: QueryContext = DEFAULT_CONTEXT,
) -> Relation:
    """Lazily join two relations.

    Raises:
        SchemaError: At call time, if the predicate names an unknown column.
    """
    if isinstance(kind, str):
        kind = JoinKind(kind.lower())
    operator = JoinOperator(ScanOperator(left), ScanOperator(right), kind, on_predicate, context)
    return operator.to_relation()
