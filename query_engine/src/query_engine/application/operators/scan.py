"""Scan operators: the leaves of an operator tree."""

from __future__ import annotations

from typing import Iterator

from query_engine.application.operators.base import Operator
from query_engine.domain.entities import Row
from query_engine.ports.outbound import RelationProvider


class ScanOperator(Operator):
    """Sequential scan of a base relation.

    With an alias every column is re-qualified, so ``o.order_id`` resolves
    after ``FROM orders o``.
    """

    name = "Scan"

    def __init__(self, provider: RelationProvider, alias: str | None = None) -> None:
        schema = provider.schema()
        if alias is not None:
            schema = schema.requalified(alias)
        super().__init__(schema)
        self._provider = provider
        self._rows: Iterator[Row] | None = None

    def open(self) -> None:
        self._rows = self._provider.rows()

    def _next(self) -> Row | None:
        if self._rows is None:
            return None
        return next(self._rows, None)

    def close(self) -> None:
        self._rows = None


class SubqueryScanOperator(Operator):
    """Re-qualifies a child's output columns under a new alias."""

    name = "SubqueryScan"

    def __init__(self, child: Operator, alias: str) -> None:
        super().__init__(child.schema.requalified(alias), (child,))
        self._child = child

    def open(self) -> None:
        self._child.open()

    def _next(self) -> Row | None:
        return self._child.next()

    def close(self) -> None:
        self._child.close()
