"""Window operator.

Row-preserving: every input row appears exactly once in the output with
one extra column holding the window function's value.

Partitions are formed in first-seen order and emitted one after another,
each in its ORDER BY order; rows with equal sort keys keep their input
order. Rows with equal sort keys are peers: RANK, DENSE_RANK, CUME_DIST
and RANGE frames treat them as one position.

Frames:
    - ROWS: offsets count physical rows
    - RANGE: UNBOUNDED and CURRENT ROW bounds only; CURRENT ROW extends to
      the whole peer group
    - default: with ORDER BY, RANGE BETWEEN UNBOUNDED PRECEDING AND CURRENT
      ROW; without ORDER BY, the whole partition
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, Sequence

from query_engine.application.operators.base import GeneratorOperator, Operator
from query_engine.application.operators.scan import ScanOperator
from query_engine.domain.entities import Column, Relation, Row
from query_engine.domain.exceptions import QueryError, QueryTypeError
from query_engine.domain.services import (
    ExpressionEvaluator,
    SortKey,
    aggregate_result_type,
    create_accumulator,
    sort_by_keys,
)
from query_engine.domain.value_objects import (
    DEFAULT_CONTEXT,
    AggregateFunc,
    BoundKind,
    ColumnType,
    DataKind,
    FrameBound,
    FrameMode,
    FrameSpec,
    OrderByItem,
    QueryContext,
    WindowExpr,
    WindowFunc,
    group_key,
)

_WHOLE_PARTITION = FrameSpec.rows(
    FrameBound.unbounded_preceding(), FrameBound.unbounded_following()
)
_RUNNING = FrameSpec.range(FrameBound.unbounded_preceding(), FrameBound.current_row())


@dataclass
class _Partition:
    """One partition's rows in sorted order, with peer group boundaries."""

    rows: list[Row]
    peer_start: list[int]  # index of the first peer of each row
    peer_end: list[int]  # index of the last peer of each row
    dense: list[int]  # 1-based peer group number of each row

    @property
    def size(self) -> int:
        return len(self.rows)


def _positive_int(func: WindowFunc, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise QueryError(f"{func.value} argument must be a positive integer, got {value!r}")
    return value


class WindowOperator(GeneratorOperator):
    """Computes one window function over partitions of the input."""

    name = "Window"

    def __init__(
        self,
        child: Operator,
        window: WindowExpr,
        alias: str | None = None,
        context: QueryContext = DEFAULT_CONTEXT,
    ) -> None:
        self._child = child
        self._window = window
        self._evaluator = ExpressionEvaluator(child.schema, context)
        self._sort_keys = [
            SortKey(item.ascending, context.nulls_first(item.ascending, item.nulls_first))
            for item in window.order_by
        ]
        self._frame = window.frame or (_RUNNING if window.order_by else _WHOLE_PARTITION)
        try:
            result_type = self._bind()
            rendered = str(window)
            schema = child.schema.append(Column(alias or rendered, result_type, None, rendered))
        except QueryError as e:
            raise self._annotate(e)
        super().__init__(schema, (child,))

    def _bind(self) -> ColumnType:
        for expr in self._window.inputs():
            self._evaluator.bind(expr)
        func = self._window.func
        args = self._window.args
        if func.is_ranking and func not in (WindowFunc.PERCENT_RANK, WindowFunc.CUME_DIST):
            return ColumnType(DataKind.INTEGER, nullable=False)
        if func in (WindowFunc.PERCENT_RANK, WindowFunc.CUME_DIST):
            return ColumnType(DataKind.DECIMAL, nullable=False)
        if func.is_aggregate:
            arg_type = self._evaluator.bind(args[0]) if args else None
            return aggregate_result_type(AggregateFunc[func.name], arg_type)
        if func in (WindowFunc.LAG, WindowFunc.LEAD) and len(args) == 3:
            value_type = self._evaluator.bind(args[0])
            default_type = self._evaluator.bind(args[2])
            if value_type.kind is DataKind.UNKNOWN:
                return default_type.with_nullable(True)
            return value_type.with_nullable(True)
        return self._evaluator.bind(args[0]).with_nullable(True)

    # ------------------------------------------------------------ partitions

    def _partitions(self) -> Iterator[_Partition]:
        window = self._window
        buckets: dict[tuple[Any, ...], list[tuple[tuple[Any, ...], Row]]] = {}
        for row in self._drain(self._child):
            try:
                partition = [self._evaluator.evaluate(e, row) for e in window.partition_by]
                order = tuple(self._evaluator.evaluate(item.expr, row) for item in window.order_by)
            except QueryError as e:
                raise self._annotate(e, row)
            buckets.setdefault(group_key(partition), []).append((order, row))

        for entries in buckets.values():
            if window.order_by:
                try:
                    entries = sort_by_keys(entries, lambda entry: entry[0], self._sort_keys)
                except QueryError as e:
                    raise self._annotate(e)
            yield self._with_peers(entries)

    def _with_peers(self, entries: Sequence[tuple[tuple[Any, ...], Row]]) -> _Partition:
        size = len(entries)
        peer_start = [0] * size
        peer_end = [0] * size
        dense = [0] * size
        group_start = 0
        group_number = 0
        previous: tuple[Any, ...] | None = None
        for index, (order, _) in enumerate(entries):
            key = group_key(order)
            if index == 0 or key != previous:
                for member in range(group_start, index):
                    peer_end[member] = index - 1
                group_start = index
                group_number += 1
            previous = key
            peer_start[index] = group_start
            dense[index] = group_number
        for member in range(group_start, size):
            peer_end[member] = size - 1
        return _Partition([row for _, row in entries], peer_start, peer_end, dense)

    # ----------------------------------------------------------------- frames

    def _frame_bounds(self, partition: _Partition, index: int) -> tuple[int, int]:
        start = self._bound_position(self._frame.start, partition, index, is_start=True)
        end = self._bound_position(self._frame.end, partition, index, is_start=False)
        return max(start, 0), min(end, partition.size - 1)

    def _bound_position(
        self, bound: FrameBound, partition: _Partition, index: int, is_start: bool
    ) -> int:
        if bound.kind is BoundKind.UNBOUNDED_PRECEDING:
            return 0
        if bound.kind is BoundKind.UNBOUNDED_FOLLOWING:
            return partition.size - 1
        if bound.kind is BoundKind.CURRENT_ROW:
            if self._frame.mode is FrameMode.RANGE:
                return partition.peer_start[index] if is_start else partition.peer_end[index]
            return index
        offset = bound.offset or 0
        return index - offset if bound.kind is BoundKind.PRECEDING else index + offset

    # -------------------------------------------------------------- functions

    def _values(self, partition: _Partition) -> list[Any]:
        func = self._window.func
        size = partition.size
        if func is WindowFunc.ROW_NUMBER:
            return list(range(1, size + 1))
        if func is WindowFunc.RANK:
            return [start + 1 for start in partition.peer_start]
        if func is WindowFunc.DENSE_RANK:
            return list(partition.dense)
        if func is WindowFunc.PERCENT_RANK:
            if size == 1:
                return [0.0]
            return [start / (size - 1) for start in partition.peer_start]
        if func is WindowFunc.CUME_DIST:
            return [(end + 1) / size for end in partition.peer_end]
        if func is WindowFunc.NTILE:
            return self._ntile(partition)
        if func in (WindowFunc.LAG, WindowFunc.LEAD):
            return [self._offset_value(partition, index) for index in range(size)]
        return [self._frame_value(partition, index) for index in range(size)]

    def _ntile(self, partition: _Partition) -> list[int]:
        values = []
        for index, row in enumerate(partition.rows):
            buckets = _positive_int(
                WindowFunc.NTILE, self._evaluator.evaluate(self._window.args[0], row)
            )
            base, extra = divmod(partition.size, buckets)
            # the first `extra` buckets hold one row more
            large = extra * (base + 1)
            if index < large:
                values.append(index // (base + 1) + 1)
            else:
                values.append(extra + (index - large) // base + 1)
        return values

    def _offset_value(self, partition: _Partition, index: int) -> Any:
        args = self._window.args
        row = partition.rows[index]
        offset = self._evaluator.evaluate(args[1], row) if len(args) > 1 else 1
        if offset is None:
            return None
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise QueryError(
                f"{self._window.func.value} offset must be a non-negative integer, got {offset!r}"
            )
        target = index - offset if self._window.func is WindowFunc.LAG else index + offset
        if 0 <= target < partition.size:
            return self._evaluator.evaluate(args[0], partition.rows[target])
        if len(args) > 2:
            return self._evaluator.evaluate(args[2], row)
        return None

    def _frame_value(self, partition: _Partition, index: int) -> Any:
        func = self._window.func
        args = self._window.args
        start, end = self._frame_bounds(partition, index)
        if func.is_aggregate:
            accumulator = create_accumulator(AggregateFunc[func.name])
            for position in range(start, end + 1):
                if not args:
                    accumulator.add(1)
                    continue
                value = self._evaluator.evaluate(args[0], partition.rows[position])
                if value is not None:
                    accumulator.add(value)
            return accumulator.result()
        if start > end:
            return None
        if func is WindowFunc.FIRST_VALUE:
            return self._evaluator.evaluate(args[0], partition.rows[start])
        if func is WindowFunc.LAST_VALUE:
            return self._evaluator.evaluate(args[0], partition.rows[end])
        if func is WindowFunc.NTH_VALUE:
            nth = _positive_int(func, self._evaluator.evaluate(args[1], partition.rows[index]))
            position = start + nth - 1
            if position > end:
                return None
            return self._evaluator.evaluate(args[0], partition.rows[position])
        raise QueryTypeError(f"Unsupported window function {func.value}")

    def _generate(self) -> Iterator[Row]:
        for partition in self._partitions():
            try:
                values = self._values(partition)
            except QueryError as e:
                raise self._annotate(e)
            for row, value in zip(partition.rows, values):
                yield row.append(value)


def window(
    relation: Relation,
    function: WindowExpr,
    alias: str | None = None,
    context: QueryContext = DEFAULT_CONTEXT,
) -> Relation:
    """Lazily append a window function column to a relation.

    Partitioning, ordering and frame come from the ``OVER`` clause carried
    by ``function``; see ``window_over`` to pass them separately.
    """
    return WindowOperator(ScanOperator(relation), function, alias, context).to_relation()


def window_over(
    relation: Relation,
    partition_by: Sequence[Any],
    order_by: Sequence[OrderByItem],
    frame: FrameSpec | None,
    function: WindowFunc,
    args: Sequence[Any] = (),
    alias: str | None = None,
    context: QueryContext = DEFAULT_CONTEXT,
) -> Relation:
    """``window(relation, partition_by, order_by, frame, function)`` spelled out."""
    expr = WindowExpr(
        func=function,
        args=tuple(args),
        partition_by=tuple(partition_by),
        order_by=tuple(order_by),
        frame=frame,
    )
    return window(relation, expr, alias, context)

