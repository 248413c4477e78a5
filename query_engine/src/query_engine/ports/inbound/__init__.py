"""Inbound ports - API contracts for the query engine.

Inbound ports define the interfaces clients use to run queries.
"""

from query_engine.ports.inbound.query_executor import (
    DivisionByZeroError,
    ExecutionResult,
    ExecutorStats,
    QueryError,
    QueryExecutorPort,
    QueryTypeError,
    SchemaError,
)

__all__ = [
    "ExecutionResult",
    "ExecutorStats",
    "QueryExecutorPort",
    # Errors
    "QueryError",
    "SchemaError",
    "QueryTypeError",
    "DivisionByZeroError",
]
