"""Unit tests for the SetOperation operator."""

from __future__ import annotations

from decimal import Decimal

import pytest

from query_engine.adapters.outbound import InMemoryCatalog
from query_engine.application.executor import QueryExecutor
from query_engine.application.operators import set_operation
from query_engine.application.plan import SetOperation, SetOpKind, TableScan
from query_engine.domain.entities import Relation, Schema
from query_engine.domain.exceptions import QueryTypeError, SchemaError
from query_engine.domain.value_objects import DataKind
from query_engine.infrastructure.metrics import MetricsRegistry

ORDER_COLUMNS = (("id", "integer"), ("region", "text"), ("amount", "integer"))


@pytest.fixture
def west() -> Relation:
    """orders_west with a duplicated row."""
    return Relation.from_rows(
        Schema.of(*ORDER_COLUMNS),
        [(1, "west", 100), (2, "west", 200), (3, "east", 100), (1, "west", 100)],
    )


@pytest.fixture
def east() -> Relation:
    """orders_east, sharing one row with orders_west."""
    return Relation.from_rows(
        Schema.of(("order_id", "integer"), ("zone", "text"), ("total", "integer")),
        [(3, "east", 100), (4, "east", 300)],
    )


def single(*values: object) -> Relation:
    return Relation.from_rows(Schema.of(("v", "integer")), [(v,) for v in values])


@pytest.mark.unit
class TestSetOperation:
    """Tests for UNION, INTERSECT and EXCEPT."""

    def test_union_all_concatenates(self, west: Relation, east: Relation) -> None:
        """UNION ALL keeps every row, left input first."""
        result = set_operation(west, east, SetOpKind.UNION, all=True)

        assert result.to_tuples() == [
            (1, "west", 100),
            (2, "west", 200),
            (3, "east", 100),
            (1, "west", 100),
            (3, "east", 100),
            (4, "east", 300),
        ]

    def test_union_removes_duplicates(self, west: Relation, east: Relation) -> None:
        """UNION keeps the first occurrence of each row."""
        result = set_operation(west, east, "union")

        assert result.to_tuples() == [
            (1, "west", 100),
            (2, "west", 200),
            (3, "east", 100),
            (4, "east", 300),
        ]

    def test_output_names_come_from_left(self, west: Relation, east: Relation) -> None:
        """Column names are the left input's."""
        result = set_operation(west, east)

        assert result.schema().names == ["id", "region", "amount"]

    def test_intersect(self, west: Relation, east: Relation) -> None:
        """INTERSECT keeps rows present in both inputs."""
        assert set_operation(west, east, "intersect").to_tuples() == [(3, "east", 100)]

    def test_except(self, west: Relation, east: Relation) -> None:
        """EXCEPT keeps distinct left rows missing from the right input."""
        assert set_operation(west, east, "except").to_tuples() == [
            (1, "west", 100),
            (2, "west", 200),
        ]

    def test_except_all(self, west: Relation, east: Relation) -> None:
        """EXCEPT ALL removes one left row per matching right row."""
        assert set_operation(west, east, "except", all=True).to_tuples() == [
            (1, "west", 100),
            (2, "west", 200),
            (1, "west", 100),
        ]

    def test_multiset_counts(self) -> None:
        """ALL variants work on multiplicities."""
        left = single(1, 1, 1, 2)
        right = single(1, 1, 3)

        assert set_operation(left, right, "intersect", all=True).to_tuples() == [(1,), (1,)]
        assert set_operation(left, right, "except", all=True).to_tuples() == [(1,), (2,)]
        assert set_operation(left, right, "intersect").to_tuples() == [(1,)]

    def test_nulls_match(self) -> None:
        """Rows compare with grouping equality, so NULL matches NULL."""
        left = single(None, 1)
        right = single(None)

        assert set_operation(left, right, "intersect").to_tuples() == [(None,)]
        assert set_operation(left, right, "except").to_tuples() == [(1,)]
        assert set_operation(left, right, "union").to_tuples() == [(None,), (1,)]

    def test_numeric_kinds_merge(self) -> None:
        """INTEGER and DECIMAL columns combine; equal numbers match."""
        decimals = Relation.from_rows(Schema.of(("v", "decimal")), [(Decimal("1.0"),)])

        result = set_operation(single(1, 2), decimals, "intersect")

        assert result.to_tuples() == [(1,)]
        assert result.schema()[0].type.kind is DataKind.DECIMAL

    def test_column_count_mismatch(self, west: Relation) -> None:
        """Inputs must have the same number of columns."""
        with pytest.raises(SchemaError, match="same number of columns"):
            set_operation(west, single(1))

    def test_incompatible_kinds(self) -> None:
        """A TEXT column cannot line up with an INTEGER one."""
        words = Relation.from_rows(Schema.of(("w", "text")), [("a",)])

        with pytest.raises(QueryTypeError) as exc_info:
            set_operation(single(1), words, "union")
        assert exc_info.value.operator == "SetOperation"

    def test_executed_from_plan(
        self,
        catalog: InMemoryCatalog,
        metrics_registry: MetricsRegistry,
        west: Relation,
        east: Relation,
    ) -> None:
        """The executor builds SetOperation plans."""
        catalog.register("orders_west", west)
        catalog.register("orders_east", east)
        plan = SetOperation(
            TableScan("orders_west"), TableScan("orders_east"), SetOpKind.EXCEPT
        )

        result = QueryExecutor(catalog, metrics=metrics_registry).execute(plan)

        assert result.rows == [(1, "west", 100), (2, "west", 200)]
        assert str(plan).startswith("SetOperation(EXCEPT)")
