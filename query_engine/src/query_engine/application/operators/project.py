"""Project operator."""

from __future__ import annotations

from typing import Sequence

from query_engine.application.operators.base import Operator
from query_engine.application.operators.scan import ScanOperator
from query_engine.application.plan import SelectItem
from query_engine.domain.entities import Column, Relation, Row, Schema
from query_engine.domain.exceptions import QueryError
from query_engine.domain.services import ExpressionEvaluator
from query_engine.domain.value_objects import (
    DEFAULT_CONTEXT,
    ColumnExpr,
    Expression,
    QueryContext,
    StarExpr,
)


class ProjectOperator(Operator):
    """Evaluates select items against each input row.

    ``*`` expands to every input column and ``alias.*`` to the columns of
    one table. A bare column keeps its qualifier so later operators can
    still address it as ``o.region``; computed items are named by their
    alias or their rendered expression.
    """

    name = "Project"

    def __init__(
        self,
        child: Operator,
        items: Sequence[SelectItem | Expression],
        context: QueryContext = DEFAULT_CONTEXT,
    ) -> None:
        self._child = child
        self._evaluator = ExpressionEvaluator(child.schema, context)
        # (input position, None) for pass-through columns, (None, expr) otherwise
        self._outputs: list[tuple[int | None, Expression | None]] = []
        try:
            schema = self._bind(
                [item if isinstance(item, SelectItem) else SelectItem(item) for item in items]
            )
        except QueryError as e:
            raise self._annotate(e)
        super().__init__(schema, (child,))

    def _bind(self, items: list[SelectItem]) -> Schema:
        source = self._child.schema
        columns: list[Column] = []
        for item in items:
            expr = item.expr
            if isinstance(expr, StarExpr):
                for position in source.positions_for_qualifier(expr.table):
                    columns.append(source[position])
                    self._outputs.append((position, None))
                continue
            column_type = self._evaluator.bind(expr)
            if isinstance(expr, ColumnExpr):
                position = source.index_of(expr.column)
                column = source[position]
                if item.alias:
                    column = Column(item.alias, column.type, None, column.expression)
                columns.append(column)
                self._outputs.append((position, None))
                continue
            rendered = str(expr)
            columns.append(Column(item.alias or rendered, column_type, None, rendered))
            self._outputs.append((None, expr))
        return Schema(columns)

    def open(self) -> None:
        self._child.open()

    def _next(self) -> Row | None:
        row = self._child.next()
        if row is None:
            return None
        try:
            return Row(
                tuple(
                    row[position] if position is not None else self._evaluator.evaluate(expr, row)
                    for position, expr in self._outputs
                )
            )
        except QueryError as e:
            raise self._annotate(e, row)

    def close(self) -> None:
        self._child.close()


def project(
    relation: Relation,
    items: Sequence[SelectItem | Expression],
    context: QueryContext = DEFAULT_CONTEXT,
) -> Relation:
    """Lazily project a relation."""
    return ProjectOperator(ScanOperator(relation), items, context).to_relation()
