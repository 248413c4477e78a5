"""Rows, schemas and relations.

A relation is a schema plus an ordered sequence of rows. Relations produced
by operators are lazy and single-pass: iterating them pulls rows through the
operator tree. ``materialize()`` snapshots a relation into memory so it can
be iterated repeatedly.

Rows are immutable; operators always build new rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Sequence

from query_engine.domain.exceptions import QueryTypeError, SchemaError
from query_engine.domain.value_objects.data_kinds import (
    UNKNOWN_TYPE,
    ColumnType,
    DataKind,
    kind_of,
)
from query_engine.domain.value_objects.expressions import ColumnRef


@dataclass(frozen=True, slots=True)
class Column:
    """A column in a schema.

    Attributes:
        name: Column name
        type: Column type
        qualifier: Table alias the column belongs to, if any
        expression: Rendered expression for computed columns (aggregates,
            window calls, group-by expressions); used to find their results
    """

    name: str
    type: ColumnType = UNKNOWN_TYPE
    qualifier: str | None = None
    expression: str | None = None

    @property
    def qualified_name(self) -> str:
        if self.qualifier:
            return f"{self.qualifier}.{self.name}"
        return self.name

    def matches(self, ref: ColumnRef) -> bool:
        """Check whether a column reference names this column.

        Identifiers compare case-insensitively, as unquoted SQL identifiers do.
        """
        if ref.name.lower() != self.name.lower():
            return False
        if ref.table is None:
            return True
        return self.qualifier is not None and ref.table.lower() == self.qualifier.lower()

    def requalified(self, qualifier: str | None) -> Column:
        return Column(self.name, self.type, qualifier, self.expression)

    def __str__(self) -> str:
        return f"{self.qualified_name} {self.type}"


class Schema:
    """Ordered, immutable sequence of columns."""

    __slots__ = ("_columns",)

    def __init__(self, columns: Iterable[Column]) -> None:
        self._columns: tuple[Column, ...] = tuple(columns)
        seen: set[tuple[str | None, str]] = set()
        for column in self._columns:
            key = (column.qualifier.lower() if column.qualifier else None, column.name.lower())
            if key in seen:
                raise SchemaError(
                    f"Duplicate column '{column.qualified_name}'; qualify or alias it"
                )
            seen.add(key)

    @classmethod
    def of(cls, *columns: tuple[str, ColumnType | DataKind | str] | str) -> Schema:
        """Build a schema from ``("alias.name", kind)`` pairs or bare names.

        Example:
            >>> Schema.of(("order_id", "integer"), ("region", "text"))
        """
        built = []
        for spec in columns:
            if isinstance(spec, str):
                dotted, column_type = spec, UNKNOWN_TYPE
            else:
                dotted, kind = spec
                column_type = kind if isinstance(kind, ColumnType) else ColumnType.of(kind)
            ref = ColumnRef.parse(dotted)
            built.append(Column(name=ref.name, type=column_type, qualifier=ref.table))
        return cls(built)

    @property
    def columns(self) -> tuple[Column, ...]:
        return self._columns

    @property
    def names(self) -> list[str]:
        return [column.name for column in self._columns]

    def __len__(self) -> int:
        return len(self._columns)

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns)

    def __getitem__(self, index: int) -> Column:
        return self._columns[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return self._columns == other._columns

    def __hash__(self) -> int:
        return hash(self._columns)

    def __repr__(self) -> str:
        return f"Schema({', '.join(str(c) for c in self._columns)})"

    def index_of(self, ref: ColumnRef | str) -> int:
        """Resolve a column reference to its position.

        Raises:
            SchemaError: If no column or more than one column matches.
        """
        if isinstance(ref, str):
            ref = ColumnRef.parse(ref)
        matches = [i for i, column in enumerate(self._columns) if column.matches(ref)]
        if not matches:
            raise SchemaError(f"Column '{ref}' does not exist; available: {self.describe()}")
        if len(matches) > 1:
            candidates = ", ".join(self._columns[i].qualified_name for i in matches)
            raise SchemaError(f"Column reference '{ref}' is ambiguous ({candidates})")
        return matches[0]

    def find_expression(self, rendered: str) -> int | None:
        """Position of the column computed from the given expression, if any."""
        for i, column in enumerate(self._columns):
            if column.expression == rendered:
                return i
        return None

    def positions_for_qualifier(self, qualifier: str | None) -> list[int]:
        """Positions selected by ``*`` (qualifier None) or ``alias.*``.

        Raises:
            SchemaError: If no column carries the qualifier.
        """
        if qualifier is None:
            return list(range(len(self._columns)))
        positions = [
            i
            for i, column in enumerate(self._columns)
            if column.qualifier is not None and column.qualifier.lower() == qualifier.lower()
        ]
        if not positions:
            raise SchemaError(f"Table alias '{qualifier}' does not exist")
        return positions

    def concat(self, other: Schema) -> Schema:
        """Schema of a join: this schema's columns followed by other's."""
        return Schema(self._columns + other._columns)

    def append(self, column: Column) -> Schema:
        return Schema(self._columns + (column,))

    def requalified(self, qualifier: str | None) -> Schema:
        """Every column moved under a new table alias."""
        return Schema(column.requalified(qualifier) for column in self._columns)

    def nullable(self) -> Schema:
        """Same columns, all nullable (the padded side of an outer join)."""
        return Schema(
            Column(c.name, c.type.with_nullable(True), c.qualifier, c.expression)
            for c in self._columns
        )

    def describe(self) -> str:
        return ", ".join(column.qualified_name for column in self._columns) or "<none>"


@dataclass(frozen=True, slots=True)
class Row:
    """A fixed-length tuple of values, one per schema column."""

    values: tuple[Any, ...]

    @classmethod
    def of(cls, *values: Any) -> Row:
        return cls(tuple(values))

    @classmethod
    def nulls(cls, width: int) -> Row:
        return cls((None,) * width)

    def __getitem__(self, index: int) -> Any:
        return self.values[index]

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def concat(self, other: Row) -> Row:
        return Row(self.values + other.values)

    def append(self, value: Any) -> Row:
        return Row(self.values + (value,))

    def project(self, positions: Sequence[int]) -> Row:
        return Row(tuple(self.values[i] for i in positions))

    def __repr__(self) -> str:
        return f"Row{self.values!r}"


class Relation:
    """A schema plus a sequence of rows.

    Relation also satisfies the base relation provider contract
    (``schema()`` / ``rows()``), so any relation can be scanned.
    """

    __slots__ = ("_schema", "_rows", "_materialized")

    def __init__(self, schema: Schema, rows: Iterable[Row]) -> None:
        self._schema = schema
        self._materialized = isinstance(rows, tuple)
        self._rows: Iterable[Row] = rows

    @classmethod
    def from_rows(
        cls,
        schema: Schema,
        rows: Iterable[Sequence[Any] | Row],
        validate: bool = True,
    ) -> Relation:
        """Build a materialized relation from value sequences.

        Raises:
            SchemaError: If a row's width differs from the schema's.
            QueryTypeError: If ``validate`` and a value does not fit its column.
        """
        built = []
        width = len(schema)
        for position, raw in enumerate(rows):
            row = raw if isinstance(raw, Row) else Row(tuple(raw))
            if len(row) != width:
                raise SchemaError(
                    f"Row {position} has {len(row)} values, schema has {width} columns"
                )
            if validate:
                for column, value in zip(schema, row):
                    if not column.type.accepts(value):
                        raise QueryTypeError(
                            f"Value {value!r} does not fit column "
                            f"'{column.qualified_name}' of type {column.type}",
                            row=row,
                        )
            built.append(row)
        return cls(schema, tuple(built))

    @classmethod
    def infer(
        cls,
        names: Sequence[str],
        rows: Iterable[Sequence[Any]],
        qualifier: str | None = None,
    ) -> Relation:
        """Build a relation, inferring each column's kind from its first non-null value."""
        materialized = [tuple(r) for r in rows]
        columns = []
        for index, dotted in enumerate(names):
            kinds = {kind_of(r[index]) for r in materialized if r[index] is not None}
            if kinds == {DataKind.INTEGER, DataKind.DECIMAL}:
                kinds = {DataKind.DECIMAL}
            if len(kinds) > 1:
                found = ", ".join(sorted(k.value for k in kinds if k is not None))
                raise QueryTypeError(f"Column '{dotted}' mixes kinds: {found}")
            kind = kinds.pop() if kinds else DataKind.UNKNOWN
            ref = ColumnRef.parse(dotted)
            columns.append(
                Column(name=ref.name, type=ColumnType(kind), qualifier=ref.table or qualifier)
            )
        return cls.from_rows(Schema(columns), materialized)

    @classmethod
    def from_records(cls, schema: Schema, records: Iterable[Mapping[str, Any]]) -> Relation:
        """Build a relation from dicts keyed by column name (missing keys are NULL)."""
        return cls.from_rows(
            schema,
            (tuple(record.get(column.name) for column in schema) for record in records),
        )

    def schema(self) -> Schema:
        return self._schema

    def rows(self) -> Iterator[Row]:
        """Iterate the rows. Non-materialized relations can be iterated once."""
        return iter(self._rows)

    def __iter__(self) -> Iterator[Row]:
        return self.rows()

    @property
    def is_materialized(self) -> bool:
        return self._materialized

    def materialize(self) -> Relation:
        """Snapshot the rows into memory."""
        if self._materialized:
            return self
        return Relation(self._schema, tuple(self._rows))

    def to_tuples(self) -> list[tuple[Any, ...]]:
        return [row.values for row in self.rows()]

    def to_dicts(self) -> list[dict[str, Any]]:
        """Rows as dicts keyed by (unqualified) column name."""
        names = self._schema.names
        return [dict(zip(names, row.values)) for row in self.rows()]

    def column(self, ref: ColumnRef | str) -> list[Any]:
        """All values of one column."""
        index = self._schema.index_of(ref)
        return [row[index] for row in self.rows()]

    def __repr__(self) -> str:
        state = "materialized" if self._materialized else "streaming"
        return f"Relation({self._schema!r}, {state})"
