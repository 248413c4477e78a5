"""Unit tests for the Filter operator."""

from __future__ import annotations

import pytest

from query_engine.application.operators import FilterOperator, ScanOperator, filter_relation
from query_engine.domain.entities import Relation
from query_engine.domain.exceptions import DivisionByZeroError, SchemaError
from query_engine.domain.value_objects import (
    ArithmeticExpr,
    ArithmeticOp,
    ComparisonExpr,
    ComparisonOp,
    col,
    lit,
)


def sales_over(amount: int) -> ComparisonExpr:
    return ComparisonExpr(col("sales"), ComparisonOp.GT, lit(amount))


@pytest.mark.unit
class TestFilter:
    """Tests for filter_relation and FilterOperator."""

    def test_keeps_true_rows(self, orders: Relation) -> None:
        """Only rows where the predicate is TRUE pass."""
        result = filter_relation(orders, sales_over(150))

        assert result.to_tuples() == [(2, "East", 200), (3, "West", 300)]
        assert result.schema() == orders.schema()

    def test_output_is_subset_in_order(self, orders: Relation) -> None:
        """Output rows are a subsequence of the input."""
        source = orders.to_tuples()
        result = filter_relation(orders, sales_over(100)).to_tuples()

        positions = [source.index(row) for row in result]
        assert positions == sorted(positions)

    def test_idempotent(self, orders: Relation) -> None:
        """Filtering twice with the same predicate changes nothing."""
        once = filter_relation(orders, sales_over(150)).materialize()
        twice = filter_relation(once, sales_over(150))

        assert twice.to_tuples() == once.to_tuples()

    def test_unknown_drops_row(self) -> None:
        """A NULL comparison is UNKNOWN and drops the row."""
        relation = Relation.infer(["id", "sales"], [(1, None), (2, 500)])

        result = filter_relation(relation, sales_over(100))

        assert result.to_tuples() == [(2, 500)]

    def test_unknown_column_fails_before_reading(self, orders: Relation) -> None:
        """Binding happens when the filter is built, not when rows flow."""
        predicate = ComparisonExpr(col("price"), ComparisonOp.GT, lit(1))

        with pytest.raises(SchemaError) as excinfo:
            filter_relation(orders, predicate)
        assert excinfo.value.operator == "Filter"

    def test_is_lazy(self, orders: Relation) -> None:
        """The filtered relation streams."""
        result = filter_relation(orders, sales_over(0))

        assert not result.is_materialized
        assert len(result.to_tuples()) == 3

    def test_error_carries_row(self, orders: Relation) -> None:
        """Evaluation errors name the operator and the offending row."""
        predicate = ComparisonExpr(
            ArithmeticExpr(col("sales"), ArithmeticOp.DIV, lit(0)), ComparisonOp.GT, lit(1)
        )
        operator = FilterOperator(ScanOperator(orders), predicate)

        with pytest.raises(DivisionByZeroError) as excinfo:
            list(operator)
        assert excinfo.value.operator == "Filter"
        assert excinfo.value.row.values == (1, "West", 100)

    def test_counts_rows_produced(self, orders: Relation) -> None:
        """Operators count the rows they emit."""
        operator = FilterOperator(ScanOperator(orders), sales_over(150))

        list(operator)

        assert operator.rows_produced == 2
        assert operator.children[0].rows_produced == 3
