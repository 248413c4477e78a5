"""Unit tests for the Window operator."""

from __future__ import annotations

from collections import Counter

import pytest

from query_engine.application.operators import (
    aggregate,
    filter_relation,
    window,
    window_over,
)
from query_engine.application.plan import SelectItem
from query_engine.domain.entities import Relation
from query_engine.domain.exceptions import QueryError
from query_engine.domain.value_objects import (
    AggregateExpr,
    AggregateFunc,
    ComparisonExpr,
    ComparisonOp,
    FrameBound,
    FrameSpec,
    OrderByItem,
    WindowExpr,
    WindowFunc,
    col,
    lit,
)


@pytest.fixture
def scores() -> Relation:
    """Two teams; team x has a tie on 10."""
    return Relation.infer(
        ["name", "team", "score"],
        [("a", "x", 10), ("d", "y", 5), ("b", "x", 10), ("e", "y", 7), ("c", "x", 20)],
    )


BY_TEAM = (col("team"),)
BY_SCORE = (OrderByItem(col("score")),)
BY_SCORE_DESC = (OrderByItem(col("score"), ascending=False),)


def over(func: WindowFunc, *args: object, **kwargs: object) -> WindowExpr:
    return WindowExpr(func, tuple(args), **kwargs)


def last_column(relation: Relation) -> list[object]:
    return [row[-1] for row in relation.to_tuples()]


@pytest.mark.unit
class TestRanking:
    """Tests for ROW_NUMBER, RANK and friends."""

    def test_rank_ascending_with_tie(self, scores: Relation) -> None:
        """[10, 10, 20] ascending ranks [1, 1, 3]."""
        result = window(
            scores, over(WindowFunc.RANK, partition_by=BY_TEAM, order_by=BY_SCORE), "r"
        )

        assert result.to_tuples()[:3] == [("a", "x", 10, 1), ("b", "x", 10, 1), ("c", "x", 20, 3)]

    def test_rank_descending_with_tie(self, scores: Relation) -> None:
        """Descending over [10, 10, 20] visits 20 first: ranks [1, 2, 2]."""
        result = window(
            scores, over(WindowFunc.RANK, partition_by=BY_TEAM, order_by=BY_SCORE_DESC)
        )

        assert [(row[0], row[-1]) for row in result.to_tuples()[:3]] == [
            ("c", 1),
            ("a", 2),
            ("b", 2),
        ]

    def test_rank_descending_tie_at_top(self) -> None:
        """Descending over [20, 20, 10] ranks [1, 1, 3]."""
        relation = Relation.infer(["v"], [(20,), (10,), (20,)])

        result = window(relation, over(WindowFunc.RANK, order_by=(OrderByItem(col("v"), False),)))

        assert result.to_tuples() == [(20, 1), (20, 1), (10, 3)]

    def test_row_number_and_dense_rank(self, scores: Relation) -> None:
        """ROW_NUMBER ignores ties; DENSE_RANK leaves no gaps."""
        row_number = window(
            scores, over(WindowFunc.ROW_NUMBER, partition_by=BY_TEAM, order_by=BY_SCORE)
        )
        dense = window(
            scores, over(WindowFunc.DENSE_RANK, partition_by=BY_TEAM, order_by=BY_SCORE)
        )

        assert last_column(row_number) == [1, 2, 3, 1, 2]
        assert last_column(dense) == [1, 1, 2, 1, 2]

    def test_partitions_in_first_seen_order(self, employees: Relation) -> None:
        """Partitions follow first appearance; NULLs sort first when descending."""
        result = window(
            employees,
            over(
                WindowFunc.RANK,
                partition_by=(col("dept"),),
                order_by=(OrderByItem(col("salary"), ascending=False),),
            ),
            "salary_rank",
        )

        assert [(row[1], row[-1]) for row in result.to_tuples()] == [
            ("Grace", 1),
            ("Ada", 2),
            ("Linus", 2),
            ("Ken", 1),
            ("Barbara", 2),
            ("Edsger", 1),
        ]
        assert result.schema().names[-1] == "salary_rank"

    def test_ntile_spreads_extra_rows_first(self, scores: Relation) -> None:
        """Five rows in two buckets: the first bucket takes three."""
        result = window(scores, over(WindowFunc.NTILE, lit(2), order_by=BY_SCORE))

        assert [(row[0], row[-1]) for row in result.to_tuples()] == [
            ("d", 1),
            ("e", 1),
            ("a", 1),
            ("b", 2),
            ("c", 2),
        ]

    def test_ntile_rejects_zero(self, scores: Relation) -> None:
        """NTILE needs a positive bucket count."""
        result = window(scores, over(WindowFunc.NTILE, lit(0), order_by=BY_SCORE))

        with pytest.raises(QueryError) as excinfo:
            result.to_tuples()
        assert excinfo.value.operator == "Window"

    def test_percent_rank_and_cume_dist(self, scores: Relation) -> None:
        """Relative ranks treat peers as one position."""
        percent = window(
            scores, over(WindowFunc.PERCENT_RANK, partition_by=BY_TEAM, order_by=BY_SCORE)
        )
        cume = window(
            scores, over(WindowFunc.CUME_DIST, partition_by=BY_TEAM, order_by=BY_SCORE)
        )

        assert last_column(percent) == [0.0, 0.0, 1.0, 0.0, 1.0]
        assert last_column(cume) == pytest.approx([2 / 3, 2 / 3, 1.0, 0.5, 1.0])

    def test_percent_rank_single_row(self) -> None:
        """A one-row partition has PERCENT_RANK 0."""
        relation = Relation.infer(["v"], [(1,)])

        assert last_column(window(relation, over(WindowFunc.PERCENT_RANK))) == [0.0]


@pytest.mark.unit
class TestOffsetsAndFrames:
    """Tests for LAG/LEAD, value functions and frames."""

    def test_lag_lead(self, scores: Relation) -> None:
        """Offsets outside the partition give NULL or the default."""
        lag = window(
            scores, over(WindowFunc.LAG, col("score"), partition_by=BY_TEAM, order_by=BY_SCORE)
        )
        lead = window(
            scores,
            over(
                WindowFunc.LEAD,
                col("score"),
                lit(1),
                lit(0),
                partition_by=BY_TEAM,
                order_by=BY_SCORE,
            ),
        )

        assert last_column(lag) == [None, 10, 10, None, 5]
        assert last_column(lead) == [10, 20, 0, 7, 0]

    def test_default_frame_includes_peers(self, scores: Relation) -> None:
        """With ORDER BY, the running total covers the current row's peers."""
        result = window(
            scores, over(WindowFunc.SUM, col("score"), partition_by=BY_TEAM, order_by=BY_SCORE)
        )

        assert last_column(result) == [20, 20, 40, 5, 12]

    def test_rows_frame_running_sum(self, scores: Relation) -> None:
        """A ROWS frame counts physical rows, so peers are not merged."""
        frame = FrameSpec.rows(FrameBound.unbounded_preceding())
        result = window(
            scores,
            over(
                WindowFunc.SUM, col("score"), partition_by=BY_TEAM, order_by=BY_SCORE, frame=frame
            ),
        )

        assert last_column(result) == [10, 20, 40, 5, 12]

    def test_rows_preceding_offset(self, scores: Relation) -> None:
        """ROWS BETWEEN 1 PRECEDING AND CURRENT ROW is a sliding pair."""
        frame = FrameSpec.rows(FrameBound.preceding(1))
        result = window(
            scores,
            over(
                WindowFunc.SUM, col("score"), partition_by=BY_TEAM, order_by=BY_SCORE, frame=frame
            ),
        )

        assert last_column(result) == [10, 20, 30, 5, 12]

    def test_no_order_by_uses_whole_partition(self, scores: Relation) -> None:
        """Without ORDER BY every row sees the whole partition."""
        result = window(scores, over(WindowFunc.SUM, col("score"), partition_by=BY_TEAM))

        assert last_column(result) == [40, 40, 40, 12, 12]

    def test_value_functions(self, scores: Relation) -> None:
        """FIRST/LAST/NTH_VALUE read the frame."""
        whole = FrameSpec.rows(FrameBound.unbounded_preceding(), FrameBound.unbounded_following())
        first = window(
            scores,
            over(WindowFunc.FIRST_VALUE, col("name"), partition_by=BY_TEAM, order_by=BY_SCORE),
        )
        last = window(
            scores,
            over(WindowFunc.LAST_VALUE, col("name"), partition_by=BY_TEAM, order_by=BY_SCORE),
        )
        nth = window(
            scores,
            over(
                WindowFunc.NTH_VALUE,
                col("name"),
                lit(2),
                partition_by=BY_TEAM,
                order_by=BY_SCORE,
                frame=whole,
            ),
        )

        assert last_column(first) == ["a", "a", "a", "d", "d"]
        assert last_column(last) == ["b", "b", "c", "d", "e"]
        assert last_column(nth) == ["b", "b", "b", "e", "e"]

    def test_range_frame_rejects_offsets(self) -> None:
        """RANGE frames take only UNBOUNDED and CURRENT ROW bounds."""
        with pytest.raises(ValueError):
            FrameSpec.range(FrameBound.preceding(1))

    def test_window_over(self, scores: Relation) -> None:
        """window_over spells the OVER clause out."""
        result = window_over(
            scores, BY_TEAM, BY_SCORE, None, WindowFunc.COUNT, alias="running_count"
        )

        assert result.schema().names[-1] == "running_count"
        assert last_column(result) == [2, 2, 3, 1, 2]


@pytest.mark.unit
class TestWindowComposition:
    """Tests for row preservation and operator composition."""

    def test_rows_are_preserved(self, scores: Relation) -> None:
        """Each input row appears exactly once, with one extra column."""
        source = Counter(scores.to_tuples())
        result = window(
            scores, over(WindowFunc.ROW_NUMBER, partition_by=BY_TEAM, order_by=BY_SCORE)
        )

        output = result.to_tuples()
        assert Counter(row[:-1] for row in output) == source
        assert len(result.schema()) == len(scores.schema()) + 1

    def test_filter_aggregate_window(self, orders: Relation) -> None:
        """Rank regions by total sales after filtering."""
        filtered = filter_relation(orders, ComparisonExpr(col("sales"), ComparisonOp.GT, lit(50)))
        totals = aggregate(
            filtered,
            [col("region")],
            [SelectItem(AggregateExpr(AggregateFunc.SUM, col("sales")), "total")],
        )

        result = window(
            totals,
            over(WindowFunc.RANK, order_by=(OrderByItem(col("total"), ascending=False),)),
            "rank",
        )

        assert result.to_tuples() == [("West", 400, 1), ("East", 200, 2)]
        assert result.schema().names == ["region", "total", "rank"]
