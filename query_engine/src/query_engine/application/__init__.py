"""Application layer for the query engine.

The application layer turns logical plans into operator trees and runs
them against the catalog.

Exports:
    QueryEngine:
        - QueryEngine: Main entry point for the engine
    Executor:
        - QueryExecutor: Executes plans using the Volcano iterator model
    Plans:
        - LogicalPlan and its node types (TableScan, Filter, Join, ...)
        - SelectItem, JoinKind, PlanKind, SetOpKind
"""

from query_engine.application.executor import QueryExecutor
from query_engine.application.plan import (
    Aggregate,
    Distinct,
    Filter,
    Join,
    JoinKind,
    Limit,
    LogicalPlan,
    PlanKind,
    Project,
    SelectItem,
    SetOperation,
    SetOpKind,
    Sort,
    SubqueryScan,
    TableScan,
    Window,
)
from query_engine.application.query_engine import QueryEngine

__all__ = [
    "QueryEngine",
    "QueryExecutor",
    # Plans
    "LogicalPlan",
    "PlanKind",
    "JoinKind",
    "SelectItem",
    "TableScan",
    "SubqueryScan",
    "Filter",
    "Join",
    "Aggregate",
    "Window",
    "Project",
    "Sort",
    "Limit",
    "Distinct",
    "SetOperation",
    "SetOpKind",
]
