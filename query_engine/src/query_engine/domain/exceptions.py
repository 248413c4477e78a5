"""Errors raised while binding or executing a query.

Every error aborts the query that raised it. Errors carry the name of the
operator and, when one was being processed, the row that triggered them so
the caller can report where evaluation stopped.
"""

from __future__ import annotations

from typing import Any


class QueryError(Exception):
    """Base class for query binding and execution errors."""

    def __init__(self, message: str, operator: str | None = None, row: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.operator = operator
        self.row = row

    def with_context(self, operator: str, row: Any = None) -> QueryError:
        """Attach operator/row context unless an inner operator already did."""
        if self.operator is None:
            self.operator = operator
            if row is not None:
                self.row = row
        return self

    def __str__(self) -> str:
        parts = [self.message]
        if self.operator is not None:
            parts.append(f"operator={self.operator}")
        if self.row is not None:
            parts.append(f"row={self.row!r}")
        return " | ".join(parts)


class SchemaError(QueryError):
    """A referenced column or table does not exist in the operand's schema.

    Always raised at bind time, before any row is processed.
    """


class QueryTypeError(QueryError, TypeError):
    """An operator or function was applied to an incompatible data kind."""


class DivisionByZeroError(QueryError, ZeroDivisionError):
    """Arithmetic division or modulo by zero."""
