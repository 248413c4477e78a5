"""Aggregate accumulators.

One accumulator instance holds the running state of one aggregate for one
group. It is created the first time its group is seen, fed every non-NULL
argument value of the group, and finalized once the input is exhausted.
NULL arguments never reach ``add`` except for COUNT(*), which counts rows.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Sequence

from query_engine.domain.exceptions import QueryTypeError
from query_engine.domain.services.ordering import SortKey, compare_values, sort_by_keys
from query_engine.domain.value_objects.data_kinds import ColumnType, DataKind
from query_engine.domain.value_objects.expressions import AggregateFunc
from query_engine.domain.value_objects.group_key import normalize_key_value


def _require_number(func: AggregateFunc, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        raise QueryTypeError(f"{func.value} requires numeric input, got {type(value).__name__}")


class Accumulator(ABC):
    """Running state of one aggregate over one group."""

    @abstractmethod
    def add(self, value: Any) -> None:
        """Feed one input value."""

    @abstractmethod
    def result(self) -> Any:
        """Final value; NULL when nothing was added (COUNT gives 0)."""


class CountAccumulator(Accumulator):
    def __init__(self) -> None:
        self._count = 0

    def add(self, value: Any) -> None:
        self._count += 1

    def result(self) -> int:
        return self._count


class SumAccumulator(Accumulator):
    """SUM: integer inputs keep an integer total."""

    def __init__(self) -> None:
        self._total: Any = None

    def add(self, value: Any) -> None:
        _require_number(AggregateFunc.SUM, value)
        if self._total is None:
            self._total = value
        elif isinstance(self._total, float) and isinstance(value, Decimal):
            self._total += float(value)
        elif isinstance(self._total, Decimal) and isinstance(value, float):
            self._total = float(self._total) + value
        else:
            self._total += value

    def result(self) -> Any:
        return self._total


class AvgAccumulator(Accumulator):
    """AVG: exact (Decimal) for integer/Decimal input, float otherwise."""

    def __init__(self) -> None:
        self._sum = SumAccumulator()
        self._count = 0

    def add(self, value: Any) -> None:
        _require_number(AggregateFunc.AVG, value)
        self._sum.add(value)
        self._count += 1

    def result(self) -> Any:
        if self._count == 0:
            return None
        total = self._sum.result()
        if isinstance(total, float):
            return total / self._count
        return Decimal(total) / Decimal(self._count)


class MinMaxAccumulator(Accumulator):
    def __init__(self, keep_larger: bool) -> None:
        self._keep_larger = keep_larger
        self._best: Any = None

    def add(self, value: Any) -> None:
        if self._best is None:
            self._best = value
            return
        order = compare_values(value, self._best)
        if (order > 0) if self._keep_larger else (order < 0):
            self._best = value

    def result(self) -> Any:
        return self._best


class StringAggAccumulator(Accumulator):
    """STRING_AGG: text values joined by a separator."""

    def __init__(self, separator: str) -> None:
        self._separator = separator
        self._parts: list[str] = []

    def add(self, value: Any) -> None:
        if not isinstance(value, str):
            raise QueryTypeError(f"STRING_AGG requires text input, got {type(value).__name__}")
        self._parts.append(value)

    def result(self) -> str | None:
        if not self._parts:
            return None
        return self._separator.join(self._parts)


class DistinctAccumulator(Accumulator):
    """Feeds each distinct value (grouping equality) to the wrapped accumulator once."""

    def __init__(self, inner: Accumulator) -> None:
        self._inner = inner
        self._seen: set[Any] = set()

    def add(self, value: Any) -> None:
        key = normalize_key_value(value)
        if key in self._seen:
            return
        self._seen.add(key)
        self._inner.add(value)

    def result(self) -> Any:
        return self._inner.result()


class OrderedAccumulator(Accumulator):
    """Buffers a group's values and feeds them in ORDER BY order on result.

    ``add`` takes ``(sort_values, value)`` pairs; equal sort values keep
    their input order.
    """

    def __init__(self, inner: Accumulator, keys: Sequence[SortKey]) -> None:
        self._inner = inner
        self._keys = list(keys)
        self._pending: list[tuple[Sequence[Any], Any]] = []

    def add(self, value: Any) -> None:
        self._pending.append(value)

    def result(self) -> Any:
        for _, value in sort_by_keys(self._pending, lambda pair: pair[0], self._keys):
            self._inner.add(value)
        self._pending = []
        return self._inner.result()


def create_accumulator(
    func: AggregateFunc,
    distinct: bool = False,
    separator: str | None = None,
    order_keys: Sequence[SortKey] = (),
) -> Accumulator:
    """Create fresh state for one aggregate of one group."""
    if func is AggregateFunc.COUNT:
        accumulator: Accumulator = CountAccumulator()
    elif func is AggregateFunc.SUM:
        accumulator = SumAccumulator()
    elif func is AggregateFunc.AVG:
        accumulator = AvgAccumulator()
    elif func is AggregateFunc.MIN:
        accumulator = MinMaxAccumulator(keep_larger=False)
    elif func is AggregateFunc.MAX:
        accumulator = MinMaxAccumulator(keep_larger=True)
    else:
        accumulator = StringAggAccumulator(separator if separator is not None else ",")
    if distinct:
        accumulator = DistinctAccumulator(accumulator)
    if order_keys:
        return OrderedAccumulator(accumulator, order_keys)
    return accumulator


def aggregate_result_type(func: AggregateFunc, arg_type: ColumnType | None) -> ColumnType:
    """Output type of an aggregate given its argument type.

    Raises:
        QueryTypeError: If SUM/AVG is applied to a non-numeric column
            or STRING_AGG to a non-text one.
    """
    if func is AggregateFunc.COUNT:
        return ColumnType(DataKind.INTEGER, nullable=False)
    kind = arg_type.kind if arg_type is not None else DataKind.UNKNOWN
    if func in (AggregateFunc.SUM, AggregateFunc.AVG):
        if kind not in (DataKind.INTEGER, DataKind.DECIMAL, DataKind.UNKNOWN):
            raise QueryTypeError(f"{func.value} requires numeric input, got {kind.value}")
        if func is AggregateFunc.AVG and kind is DataKind.INTEGER:
            return ColumnType(DataKind.DECIMAL)
        return ColumnType(kind)
    if func is AggregateFunc.STRING_AGG:
        if kind not in (DataKind.TEXT, DataKind.UNKNOWN):
            raise QueryTypeError(f"STRING_AGG requires text input, got {kind.value}")
        return ColumnType(DataKind.TEXT)
    if kind is DataKind.DOCUMENT:
        raise QueryTypeError(f"{func.value} cannot order documents")
    return ColumnType(kind, element=arg_type.element if arg_type is not None else None)
