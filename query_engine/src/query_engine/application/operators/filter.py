"""Filter operator."""

from __future__ import annotations

from query_engine.application.operators.base import Operator
from query_engine.application.operators.scan import ScanOperator
from query_engine.domain.entities import Relation, Row
from query_engine.domain.exceptions import QueryError
from query_engine.domain.services import ExpressionEvaluator
from query_engine.domain.value_objects import DEFAULT_CONTEXT, Expression, QueryContext


class FilterOperator(Operator):
    """Keeps the rows for which the predicate is TRUE.

    FALSE and UNKNOWN both drop the row. Same schema as the input.
    """

    name = "Filter"

    def __init__(
        self,
        child: Operator,
        predicate: Expression,
        context: QueryContext = DEFAULT_CONTEXT,
    ) -> None:
        super().__init__(child.schema, (child,))
        self._child = child
        self._predicate = predicate
        self._evaluator = ExpressionEvaluator(child.schema, context)
        try:
            self._evaluator.bind_predicate(predicate)
        except QueryError as e:
            raise self._annotate(e)

    def open(self) -> None:
        self._child.open()

    def _next(self) -> Row | None:
        while True:
            row = self._child.next()
            if row is None:
                return None
            try:
                keep = self._evaluator.predicate(self._predicate, row).is_true()
            except QueryError as e:
                raise self._annotate(e, row)
            if keep:
                return row

    def close(self) -> None:
        self._child.close()


def filter_relation(
    relation: Relation,
    predicate: Expression,
    context: QueryContext = DEFAULT_CONTEXT,
) -> Relation:
    """Lazily filter a relation.

    Raises:
        SchemaError: At call time, if the predicate names an unknown column.
    """
    return FilterOperator(ScanOperator(relation), predicate, context).to_relation()
