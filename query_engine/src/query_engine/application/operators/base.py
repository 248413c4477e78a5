"""Operator base class (Volcano iterator model).

The Volcano model:
    - Each operator is an iterator with open(), next(), close() methods
    - Operators pull rows from their children on demand
    - Filter, Project, Limit and the left side of Join stream; Aggregate,
      Window, Sort and Distinct consume their whole input in open()

Operators bind their expressions in ``__init__``: by the time an operator
tree exists, every column reference has been resolved and its output
schema is known.

References:
    - Graefe, "Volcano" (1994)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator

from query_engine.domain.entities import Relation, Row, Schema
from query_engine.domain.exceptions import QueryError


class Operator(ABC):
    """Base class for executor operators."""

    name: str = "Operator"

    def __init__(self, schema: Schema, children: tuple[Operator, ...] = ()) -> None:
        self._schema = schema
        self._children = children
        self.rows_produced = 0

    @property
    def schema(self) -> Schema:
        """Output schema, fixed at bind time."""
        return self._schema

    @property
    def children(self) -> tuple[Operator, ...]:
        return self._children

    @abstractmethod
    def open(self) -> None:
        """Initialize the operator."""
        pass

    def next(self) -> Row | None:
        """Return the next row or None if exhausted."""
        row = self._next()
        if row is not None:
            self.rows_produced += 1
        return row

    @abstractmethod
    def _next(self) -> Row | None:
        pass

    @abstractmethod
    def close(self) -> None:
        """Clean up resources."""
        pass

    def __iter__(self) -> Iterator[Row]:
        """Allow iteration over operator results."""
        self.open()
        try:
            while True:
                row = self.next()
                if row is None:
                    break
                yield row
        finally:
            self.close()

    def walk(self) -> Iterator[Operator]:
        """Yield this operator and all operators below it."""
        yield self
        for child in self._children:
            yield from child.walk()

    def to_relation(self) -> Relation:
        """Wrap this operator as a lazy relation."""
        return Relation(self._schema, iter(self))

    def _annotate(self, error: QueryError, row: Row | None = None) -> QueryError:
        return error.with_context(self.name, row)

    def __repr__(self) -> str:
        return f"{self.name}({self._schema.describe()})"


class GeneratorOperator(Operator):
    """Operator whose output is produced by a generator started in open()."""

    def __init__(self, schema: Schema, children: tuple[Operator, ...] = ()) -> None:
        super().__init__(schema, children)
        self._output: Iterator[Row] | None = None

    @abstractmethod
    def _generate(self) -> Iterator[Row]:
        pass

    def open(self) -> None:
        for child in self._children:
            child.open()
        self._output = self._generate()

    def _next(self) -> Row | None:
        if self._output is None:
            raise RuntimeError(f"{self.name} used before open()")
        return next(self._output, None)

    def close(self) -> None:
        self._output = None
        for child in self._children:
            child.close()

    @staticmethod
    def _drain(child: Operator) -> Iterator[Row]:
        while True:
            row = child.next()
            if row is None:
                return
            yield row
