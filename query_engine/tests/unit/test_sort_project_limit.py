"""Unit tests for the Sort, Project, Limit and Distinct operators."""

from __future__ import annotations

import pytest

from query_engine.application.operators import distinct, limit, project, sort
from query_engine.application.plan import SelectItem
from query_engine.domain.entities import Relation
from query_engine.domain.exceptions import SchemaError
from query_engine.domain.value_objects import (
    ArithmeticExpr,
    ArithmeticOp,
    DataKind,
    OrderByItem,
    QueryContext,
    StarExpr,
    col,
    lit,
)


def names(relation: Relation) -> list[str]:
    return [row[1] for row in relation.to_tuples()]


@pytest.mark.unit
class TestSort:
    """Tests for ORDER BY."""

    def test_nulls_last_ascending(self, employees: Relation) -> None:
        """Ascending puts NULLs last; ties keep input order."""
        result = sort(employees, [OrderByItem(col("salary"))])

        assert names(result) == ["Barbara", "Ada", "Linus", "Grace", "Edsger", "Ken"]

    def test_nulls_first_descending(self, employees: Relation) -> None:
        """Descending puts NULLs first."""
        result = sort(employees, [OrderByItem(col("salary"), ascending=False)])

        assert names(result) == ["Ken", "Edsger", "Grace", "Ada", "Linus", "Barbara"]

    def test_explicit_null_placement(self, employees: Relation) -> None:
        """NULLS FIRST on an ascending key overrides the default."""
        result = sort(employees, [OrderByItem(col("salary"), nulls_first=True)])

        assert names(result)[0] == "Ken"

    def test_context_null_placement(self, employees: Relation) -> None:
        """The context can flip the default placement."""
        context = QueryContext(nulls_first_on_desc=False)

        result = sort(employees, [OrderByItem(col("salary"), ascending=False)], context)

        assert names(result)[-1] == "Ken"

    def test_multiple_keys(self, employees: Relation) -> None:
        """Later keys break ties of earlier ones."""
        result = sort(
            employees,
            [OrderByItem(col("dept")), OrderByItem(col("hired"), ascending=False)],
        )

        assert names(result) == ["Linus", "Grace", "Ada", "Ken", "Barbara", "Edsger"]

    def test_plain_expression_keys(self, orders: Relation) -> None:
        """Bare expressions sort ascending."""
        result = sort(orders, [ArithmeticExpr(lit(0), ArithmeticOp.SUB, col("sales"))])

        assert [row[0] for row in result.to_tuples()] == [3, 2, 1]

    def test_unknown_key(self, orders: Relation) -> None:
        """Unknown sort columns raise at bind time."""
        with pytest.raises(SchemaError) as excinfo:
            sort(orders, [col("price")])
        assert excinfo.value.operator == "Sort"


@pytest.mark.unit
class TestProject:
    """Tests for select lists."""

    def test_star(self, orders: Relation) -> None:
        """``*`` keeps every column."""
        result = project(orders, [StarExpr()])

        assert result.schema().names == ["order_id", "region", "sales"]
        assert result.to_tuples() == orders.to_tuples()

    def test_qualified_star(self, orders: Relation) -> None:
        """``o.*`` keeps only that table's columns."""
        relation = Relation(orders.schema().requalified("o"), tuple(orders.rows()))

        result = project(relation, [StarExpr("o"), SelectItem(col("o.sales"), "amount")])

        assert result.schema().names == ["order_id", "region", "sales", "amount"]
        assert result.to_tuples()[0] == (1, "West", 100, 100)

    def test_unknown_qualifier(self, orders: Relation) -> None:
        """``x.*`` with no such alias is a schema error."""
        with pytest.raises(SchemaError):
            project(orders, [StarExpr("x")])

    def test_alias_and_computed(self, orders: Relation) -> None:
        """Computed items take their alias or rendered expression."""
        doubled = ArithmeticExpr(col("sales"), ArithmeticOp.MUL, lit(2))

        result = project(orders, [SelectItem(col("region"), "r"), doubled])

        assert result.schema().names == ["r", "(sales * 2)"]
        assert result.schema()[1].type.kind is DataKind.INTEGER
        assert result.to_tuples() == [("West", 200), ("East", 400), ("West", 600)]

    def test_unknown_column(self, orders: Relation) -> None:
        """Unknown columns name the Project operator."""
        with pytest.raises(SchemaError) as excinfo:
            project(orders, [col("price")])
        assert excinfo.value.operator == "Project"


@pytest.mark.unit
class TestLimitAndDistinct:
    """Tests for LIMIT/OFFSET and DISTINCT."""

    @pytest.mark.parametrize(
        ("count", "offset", "expected"),
        [
            (2, 0, [1, 2]),
            (None, 1, [2, 3]),
            (1, 1, [2]),
            (0, 0, []),
            (5, 10, []),
        ],
    )
    def test_limit_offset(
        self, orders: Relation, count: int | None, offset: int, expected: list[int]
    ) -> None:
        """OFFSET skips, then LIMIT caps."""
        result = limit(orders, count, offset)

        assert [row[0] for row in result.to_tuples()] == expected

    def test_distinct_treats_nulls_as_equal(self) -> None:
        """Rows that differ only in NULL positions collapse."""
        relation = Relation.infer(
            ["a", "b"], [(1, None), (1, None), (2, "x"), (1, None), (2, "x"), (2, None)]
        )

        result = distinct(relation)

        assert result.to_tuples() == [(1, None), (2, "x"), (2, None)]
