"""Ports layer - interface definitions following Hexagonal Architecture.

Ports are abstract interfaces (protocols) that define contracts:
- Inbound ports: APIs offered to clients (e.g., QueryExecutorPort)
- Outbound ports: what the engine reads from (e.g., RelationProvider, Catalog)

Adapters implement these ports with concrete functionality.
"""

from query_engine.ports.inbound import (
    DivisionByZeroError,
    ExecutionResult,
    ExecutorStats,
    QueryError,
    QueryExecutorPort,
    QueryTypeError,
    SchemaError,
)
from query_engine.ports.outbound import Catalog, RelationProvider

__all__ = [
    # Inbound ports
    "ExecutionResult",
    "ExecutorStats",
    "QueryExecutorPort",
    "QueryError",
    "SchemaError",
    "QueryTypeError",
    "DivisionByZeroError",
    # Outbound ports
    "Catalog",
    "RelationProvider",
]
