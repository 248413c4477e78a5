"""In-memory catalog of base relations.

Tables are held as providers (usually materialized ``Relation`` objects)
keyed by lower-cased name. Nothing is persisted.
"""

from __future__ import annotations

from typing import Any, Iterable, Sequence

from query_engine.domain.entities import Relation, Schema
from query_engine.domain.exceptions import SchemaError
from query_engine.infrastructure.logging import get_logger
from query_engine.infrastructure.metrics import MetricsRegistry, get_metrics
from query_engine.ports.outbound import RelationProvider

logger = get_logger(__name__)


class InMemoryCatalog:
    """Catalog implementation backed by a dict.

    Example:
        catalog = InMemoryCatalog()
        catalog.create_table("orders", schema, [(1, "West", 100)])
        provider = catalog.get("orders")
    """

    def __init__(self, metrics: MetricsRegistry | None = None) -> None:
        self._tables: dict[str, tuple[str, RelationProvider]] = {}
        self._metrics = metrics

    def _update_gauge(self) -> None:
        (self._metrics or get_metrics()).tables_registered.set(len(self._tables))

    def register(self, name: str, provider: RelationProvider, replace: bool = False) -> None:
        """Register a base relation under a name.

        Raises:
            SchemaError: If the name is taken and ``replace`` is False.
        """
        key = name.lower()
        if key in self._tables and not replace:
            raise SchemaError(f"Table '{name}' already exists")
        if isinstance(provider, Relation) and not provider.is_materialized:
            # scans call rows() once per query; streaming relations are single-pass
            provider = provider.materialize()
        self._tables[key] = (name, provider)
        self._update_gauge()
        logger.info("table_registered", table=name, columns=provider.schema().names)

    def create_table(
        self,
        name: str,
        schema: Schema,
        rows: Iterable[Sequence[Any]] = (),
        replace: bool = False,
    ) -> Relation:
        """Build a validated relation from raw rows and register it."""
        relation = Relation.from_rows(schema, rows)
        self.register(name, relation, replace=replace)
        return relation

    def unregister(self, name: str) -> bool:
        """Remove a table. Returns False if it was not registered."""
        if self._tables.pop(name.lower(), None) is None:
            return False
        self._update_gauge()
        logger.info("table_unregistered", table=name)
        return True

    def get(self, name: str) -> RelationProvider:
        """Look up a table.

        Raises:
            SchemaError: If no table has that name.
        """
        entry = self._tables.get(name.lower())
        if entry is None:
            available = ", ".join(self.table_names()) or "<none>"
            raise SchemaError(f"Table '{name}' does not exist; available: {available}")
        return entry[1]

    def table_names(self) -> list[str]:
        """Names of all registered tables, in registration order."""
        return [original for original, _ in self._tables.values()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._tables

    def __len__(self) -> int:
        return len(self._tables)
