"""Physical operators (Volcano iterator model).

Exports:
    Operators:
        - ScanOperator / SubqueryScanOperator
        - FilterOperator, JoinOperator, AggregateOperator, WindowOperator
        - ProjectOperator, SortOperator, LimitOperator, DistinctOperator
        - SetOperationOperator

    Relation-level functions (lazy; bind errors raise at call time):
        - filter_relation, join, aggregate, window, window_over
        - project, sort, limit, distinct, set_operation
"""

from query_engine.application.operators.aggregate import AggregateOperator, aggregate
from query_engine.application.operators.base import GeneratorOperator, Operator
from query_engine.application.operators.filter import FilterOperator, filter_relation
from query_engine.application.operators.join import JoinOperator, join, split_conjuncts
from query_engine.application.operators.project import ProjectOperator, project
from query_engine.application.operators.scan import ScanOperator, SubqueryScanOperator
from query_engine.application.operators.set_operation import (
    SetOperationOperator,
    set_operation,
)
from query_engine.application.operators.sort import (
    DistinctOperator,
    LimitOperator,
    SortOperator,
    distinct,
    limit,
    sort,
)
from query_engine.application.operators.window import WindowOperator, window, window_over

__all__ = [
    "Operator",
    "GeneratorOperator",
    "ScanOperator",
    "SubqueryScanOperator",
    "FilterOperator",
    "JoinOperator",
    "AggregateOperator",
    "WindowOperator",
    "ProjectOperator",
    "SortOperator",
    "LimitOperator",
    "DistinctOperator",
    "SetOperationOperator",
    "filter_relation",
    "join",
    "split_conjuncts",
    "aggregate",
    "window",
    "window_over",
    "project",
    "sort",
    "limit",
    "distinct",
    "set_operation",
]
