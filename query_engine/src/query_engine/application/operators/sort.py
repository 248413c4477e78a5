"""Sort, Limit and Distinct operators."""

from __future__ import annotations

from typing import Any, Iterator, Sequence

from query_engine.application.operators.base import GeneratorOperator, Operator
from query_engine.application.operators.scan import ScanOperator
from query_engine.domain.entities import Relation, Row
from query_engine.domain.exceptions import QueryError
from query_engine.domain.services import ExpressionEvaluator, SortKey, sort_by_keys
from query_engine.domain.value_objects import (
    DEFAULT_CONTEXT,
    Expression,
    OrderByItem,
    QueryContext,
    group_key,
)


class SortOperator(GeneratorOperator):
    """Stable ORDER BY with per-key NULL placement.

    Unless a key says NULLS FIRST/LAST, NULLs sort last ascending and
    first descending (``QueryContext.nulls_first_on_desc``).
    """

    name = "Sort"

    def __init__(
        self,
        child: Operator,
        order_by: Sequence[OrderByItem | Expression],
        context: QueryContext = DEFAULT_CONTEXT,
    ) -> None:
        self._child = child
        self._order_by = [
            item if isinstance(item, OrderByItem) else OrderByItem(item) for item in order_by
        ]
        self._keys = [
            SortKey(item.ascending, context.nulls_first(item.ascending, item.nulls_first))
            for item in self._order_by
        ]
        self._evaluator = ExpressionEvaluator(child.schema, context)
        try:
            for item in self._order_by:
                self._evaluator.bind(item.expr)
        except QueryError as e:
            raise self._annotate(e)
        super().__init__(child.schema, (child,))

    def _sort_values(self, row: Row) -> tuple[Any, ...]:
        try:
            return tuple(self._evaluator.evaluate(item.expr, row) for item in self._order_by)
        except QueryError as e:
            raise self._annotate(e, row)

    def _generate(self) -> Iterator[Row]:
        rows = list(self._drain(self._child))
        try:
            ordered = sort_by_keys(rows, self._sort_values, self._keys)
        except QueryError as e:
            raise self._annotate(e)
        yield from ordered


class LimitOperator(Operator):
    """Skips ``offset`` rows, then passes at most ``limit`` rows."""

    name = "Limit"

    def __init__(self, child: Operator, limit: int | None, offset: int = 0) -> None:
        super().__init__(child.schema, (child,))
        self._child = child
        self._limit = limit
        self._offset = offset
        self._returned = 0
        self._skipped = 0

    def open(self) -> None:
        self._child.open()
        self._returned = 0
        self._skipped = 0

    def _next(self) -> Row | None:
        while self._skipped < self._offset:
            if self._child.next() is None:
                self._skipped = self._offset
                return None
            self._skipped += 1

        if self._limit is not None and self._returned >= self._limit:
            return None
        row = self._child.next()
        if row is None:
            return None
        self._returned += 1
        return row

    def close(self) -> None:
        self._child.close()


class DistinctOperator(GeneratorOperator):
    """Drops rows equal (NULLs included) to an earlier row."""

    name = "Distinct"

    def __init__(self, child: Operator) -> None:
        super().__init__(child.schema, (child,))
        self._child = child

    def _generate(self) -> Iterator[Row]:
        seen: set[tuple[Any, ...]] = set()
        for row in self._drain(self._child):
            key = group_key(row.values)
            if key in seen:
                continue
            seen.add(key)
            yield row


def sort(
    relation: Relation,
    order_by: Sequence[OrderByItem | Expression],
    context: QueryContext = DEFAULT_CONTEXT,
) -> Relation:
    return SortOperator(ScanOperator(relation), order_by, context).to_relation()


def limit(relation: Relation, count: int | None, offset: int = 0) -> Relation:
    return LimitOperator(ScanOperator(relation), count, offset).to_relation()


def distinct(relation: Relation) -> Relation:
    return DistinctOperator(ScanOperator(relation)).to_relation()
