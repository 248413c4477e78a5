"""Group/Aggregate operator.

Single pass over the input with a dict from group key to accumulators.
Groups are emitted in first-seen order. NULL group-by values form one
group, unlike ``=`` where NULL never matches.

Output schema: the group-by columns, then one column per aggregate (its
alias, or its rendered expression). HAVING is evaluated against each
output row; aggregates used only in HAVING are computed as hidden columns
and dropped before the row is emitted.

Empty input:
    - with GROUP BY: no groups, no rows
    - without GROUP BY: one row when every aggregate is a COUNT (value 0),
      otherwise no rows; ``empty_ungrouped_emits_row`` switches to the
      standard one row with COUNTs 0 and every other aggregate NULL
"""

from __future__ import annotations

from typing import Any, Iterator, Sequence

from query_engine.application.operators.base import GeneratorOperator, Operator
from query_engine.application.operators.scan import ScanOperator
from query_engine.application.plan import SelectItem
from query_engine.domain.entities import Column, Relation, Row, Schema
from query_engine.domain.exceptions import QueryError, QueryTypeError
from query_engine.domain.services import (
    Accumulator,
    ExpressionEvaluator,
    SortKey,
    aggregate_result_type,
    create_accumulator,
)
from query_engine.domain.value_objects import (
    DEFAULT_CONTEXT,
    AggregateExpr,
    AggregateFunc,
    ColumnExpr,
    ColumnType,
    Expression,
    QueryContext,
    group_key,
)


class AggregateOperator(GeneratorOperator):
    """GROUP BY with aggregates and HAVING."""

    name = "Aggregate"

    def __init__(
        self,
        child: Operator,
        group_by: Sequence[Expression] = (),
        aggregates: Sequence[SelectItem | AggregateExpr] = (),
        having: Expression | None = None,
        context: QueryContext = DEFAULT_CONTEXT,
    ) -> None:
        self._child = child
        self._group_by = list(group_by)
        self._items = [
            item if isinstance(item, SelectItem) else SelectItem(item) for item in aggregates
        ]
        self._having = having
        self._context = context
        self._input_evaluator = ExpressionEvaluator(child.schema, context)
        try:
            full_schema, visible = self._bind()
        except QueryError as e:
            raise self._annotate(e)
        super().__init__(Schema(full_schema.columns[:visible]), (child,))
        self._order_keys = [
            [
                SortKey(item.ascending, context.nulls_first(item.ascending, item.nulls_first))
                for item in agg.order_by
            ]
            for agg in self._aggregates
        ]
        self._full_schema = full_schema
        self._visible = visible
        self._having_evaluator: ExpressionEvaluator | None = None
        if having is not None:
            self._having_evaluator = ExpressionEvaluator(full_schema, context)
            try:
                self._having_evaluator.bind_predicate(having)
            except QueryError as e:
                raise self._annotate(e)

    def _bind(self) -> tuple[Schema, int]:
        columns: list[Column] = []
        for expr in self._group_by:
            column_type = self._input_evaluator.bind(expr)
            if isinstance(expr, ColumnExpr):
                source = self._input_evaluator.schema[
                    self._input_evaluator.schema.index_of(expr.column)
                ]
                columns.append(source)
            else:
                rendered = str(expr)
                columns.append(Column(rendered, column_type, None, rendered))

        self._aggregates: list[AggregateExpr] = []
        for item in self._items:
            if not isinstance(item.expr, AggregateExpr):
                raise QueryTypeError(f"'{item.expr}' is not an aggregate call")
            rendered = str(item.expr)
            columns.append(
                Column(item.alias or rendered, self._bind_aggregate(item.expr), None, rendered)
            )
            self._aggregates.append(item.expr)
        visible = len(columns)

        if self._having is not None:
            known = {str(agg) for agg in self._aggregates}
            for node in self._having.walk():
                if isinstance(node, AggregateExpr) and str(node) not in known:
                    known.add(str(node))
                    columns.append(
                        Column(
                            f"__having_{len(columns) - visible}",
                            self._bind_aggregate(node),
                            None,
                            str(node),
                        )
                    )
                    self._aggregates.append(node)
        return Schema(columns), visible

    def _bind_aggregate(self, agg: AggregateExpr) -> ColumnType:
        arg_type = self._input_evaluator.bind(agg.arg) if agg.arg is not None else None
        if agg.filter is not None:
            self._input_evaluator.bind_predicate(agg.filter)
        for item in agg.order_by:
            self._input_evaluator.bind(item.expr)
        return aggregate_result_type(agg.func, arg_type)

    def _feed(self, accumulators: list[Accumulator], row: Row) -> None:
        evaluator = self._input_evaluator
        for agg, accumulator in zip(self._aggregates, accumulators):
            if agg.filter is not None and not evaluator.predicate(agg.filter, row).is_true():
                continue
            if agg.arg is None:
                accumulator.add(1)
                continue
            value = evaluator.evaluate(agg.arg, row)
            if value is None:
                continue
            if agg.order_by:
                sort_values = tuple(evaluator.evaluate(item.expr, row) for item in agg.order_by)
                accumulator.add((sort_values, value))
            else:
                accumulator.add(value)

    def _new_accumulators(self) -> list[Accumulator]:
        return [
            create_accumulator(agg.func, agg.distinct, agg.separator, self._order_keys[index])
            for index, agg in enumerate(self._aggregates)
        ]

    def _emits_empty_row(self) -> bool:
        if self._group_by:
            return False
        if self._context.empty_ungrouped_emits_row:
            return True
        return all(agg.func is AggregateFunc.COUNT for agg in self._aggregates)

    def _generate(self) -> Iterator[Row]:
        groups: dict[tuple[Any, ...], tuple[list[Any], list[Accumulator]]] = {}
        for row in self._drain(self._child):
            try:
                values = [self._input_evaluator.evaluate(expr, row) for expr in self._group_by]
                key = group_key(values)
                group = groups.get(key)
                if group is None:
                    group = (values, self._new_accumulators())
                    groups[key] = group
                self._feed(group[1], row)
            except QueryError as e:
                raise self._annotate(e, row)

        if not groups and self._emits_empty_row():
            groups[()] = ([], self._new_accumulators())

        for values, accumulators in groups.values():
            try:
                results = tuple(acc.result() for acc in accumulators)
            except QueryError as e:
                raise self._annotate(e)
            full_row = Row(tuple(values) + results)
            if self._having_evaluator is not None:
                try:
                    keep = self._having_evaluator.predicate(self._having, full_row).is_true()
                except QueryError as e:
                    raise self._annotate(e, full_row)
                if not keep:
                    continue
            if len(full_row) == self._visible:
                yield full_row
            else:
                yield Row(full_row.values[: self._visible])


def aggregate(
    relation: Relation,
    group_by: Sequence[Expression] = (),
    agg_specs: Sequence[SelectItem | AggregateExpr] = (),
    having: Expression | None = None,
    context: QueryContext = DEFAULT_CONTEXT,
) -> Relation:
    """Lazily group and aggregate a relation.

    Raises:
        SchemaError: At call time, for unknown columns.
        QueryTypeError: At call time, for SUM/AVG over a non-numeric column
            or STRING_AGG over a non-text one.
    """
    return AggregateOperator(
        ScanOperator(relation), group_by, agg_specs, having, context
    ).to_relation()
