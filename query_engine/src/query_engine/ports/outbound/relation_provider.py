"""Base relation provider port.

Base relations are the leaves of every query. The engine reads them
through two calls only, so any source able to describe its columns and
stream its rows can be queried: an in-memory table, a CSV reader, the
output of another query.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Iterator, Protocol, runtime_checkable

from query_engine.domain.entities import Row, Schema


@runtime_checkable
class RelationProvider(Protocol):
    """Protocol for anything a Scan can read.

    ``rows()`` is called once per scan; each call must start a fresh pass
    over the same rows in the same order.
    """

    @abstractmethod
    def schema(self) -> Schema:
        """Return the column schema of the relation."""
        ...

    @abstractmethod
    def rows(self) -> Iterator[Row]:
        """Return an iterator over the relation's rows."""
        ...


class Catalog(Protocol):
    """Protocol for resolving table names to base relation providers.

    Table names compare case-insensitively.
    """

    @abstractmethod
    def register(self, name: str, provider: RelationProvider, replace: bool = False) -> None:
        """Register a base relation under a name.

        Raises:
            SchemaError: If the name is taken and ``replace`` is False.
        """
        ...

    @abstractmethod
    def unregister(self, name: str) -> bool:
        """Remove a table. Returns False if it was not registered."""
        ...

    @abstractmethod
    def get(self, name: str) -> RelationProvider:
        """Look up a table.

        Raises:
            SchemaError: If no table has that name.
        """
        ...

    @abstractmethod
    def table_names(self) -> list[str]:
        """Names of all registered tables, in registration order."""
        ...

    def __contains__(self, name: object) -> bool: ...
