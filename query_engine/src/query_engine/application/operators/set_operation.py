"""Set operation operator: UNION, INTERSECT and EXCEPT.

Rows are compared with grouping equality (``group_key``), so NULLs match
NULLs and ``1`` matches ``1.0``. The output takes the left input's column
names and qualifiers; each column's kind is the one both inputs share, or
DECIMAL when both are numeric.

Row order:
    - UNION ALL: left rows, then right rows
    - UNION: first occurrence of each row, left input first
    - INTERSECT / EXCEPT: left rows in input order; without ALL each row
      at most once, with ALL as many times as the multiplicities allow
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Iterator

from query_engine.application.operators.base import GeneratorOperator, Operator
from query_engine.application.operators.scan import ScanOperator
from query_engine.application.plan import SetOpKind
from query_engine.domain.entities import Column, Relation, Row, Schema
from query_engine.domain.exceptions import QueryError, QueryTypeError, SchemaError
from query_engine.domain.value_objects import ColumnType, DataKind, group_key


def _merge_type(left: ColumnType, right: ColumnType) -> ColumnType | None:
    nullable = left.nullable or right.nullable
    if right.kind is DataKind.UNKNOWN:
        return left.with_nullable(nullable)
    if left.kind is DataKind.UNKNOWN:
        return right.with_nullable(nullable)
    if left.kind is right.kind:
        element = left.element if left.element == right.element else None
        return ColumnType(left.kind, nullable, element)
    if left.kind.is_numeric and right.kind.is_numeric:
        return ColumnType(DataKind.DECIMAL, nullable)
    return None


def _set_schema(left: Schema, right: Schema, op: SetOpKind) -> Schema:
    if len(left) != len(right):
        raise SchemaError(
            f"Each {op.value.upper()} input must have the same number of columns, "
            f"got {len(left)} and {len(right)}"
        )
    columns = []
    for left_column, right_column in zip(left, right):
        merged = _merge_type(left_column.type, right_column.type)
        if merged is None:
            raise QueryTypeError(
                f"{op.value.upper()} types {left_column.type.kind.value} and "
                f"{right_column.type.kind.value} cannot be matched "
                f"for column '{left_column.name}'"
            )
        columns.append(
            Column(left_column.name, merged, left_column.qualifier, left_column.expression)
        )
    return Schema(columns)


class SetOperationOperator(GeneratorOperator):
    """UNION / INTERSECT / EXCEPT, with or without ALL."""

    name = "SetOperation"

    def __init__(
        self,
        left: Operator,
        right: Operator,
        op: SetOpKind = SetOpKind.UNION,
        all: bool = False,
    ) -> None:
        self._left = left
        self._right = right
        self._op = op
        self._all = all
        try:
            schema = _set_schema(left.schema, right.schema, op)
        except QueryError as e:
            raise self._annotate(e)
        super().__init__(schema, (left, right))

    def _generate(self) -> Iterator[Row]:
        if self._op is SetOpKind.UNION:
            yield from self._union()
            return
        right_counts: Counter[tuple[Any, ...]] = Counter(
            group_key(row.values) for row in self._drain(self._right)
        )
        emitted: set[tuple[Any, ...]] = set()
        for row in self._drain(self._left):
            key = group_key(row.values)
            if self._all:
                if self._op is SetOpKind.INTERSECT:
                    if right_counts[key] > 0:
                        right_counts[key] -= 1
                        yield row
                elif right_counts[key] > 0:
                    right_counts[key] -= 1
                else:
                    yield row
                continue
            if key in emitted:
                continue
            present = right_counts[key] > 0
            if present == (self._op is SetOpKind.INTERSECT):
                emitted.add(key)
                yield row

    def _union(self) -> Iterator[Row]:
        if self._all:
            yield from self._drain(self._left)
            yield from self._drain(self._right)
            return
        seen: set[tuple[Any, ...]] = set()
        for child in (self._left, self._right):
            for row in self._drain(child):
                key = group_key(row.values)
                if key in seen:
                    continue
                seen.add(key)
                yield row


def set_operation(
    left: Relation,
    right: Relation,
    op: SetOpKind | str = SetOpKind.UNION,
    all: bool = False,
) -> Relation:
    """Lazily combine two relations with UNION, INTERSECT or EXCEPT.

    Raises:
        SchemaError: At call time, if the column counts differ.
        QueryTypeError: At call time, if a column pair has incompatible kinds.
    """
    if isinstance(op, str):
        op = SetOpKind(op.lower())
    return SetOperationOperator(ScanOperator(left), ScanOperator(right), op, all).to_relation()
