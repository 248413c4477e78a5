"""Data kinds and column types.

A column's type is a data kind plus nullability; arrays additionally carry
the type of their elements. Values are plain Python objects:

    INTEGER    int
    DECIMAL    float | decimal.Decimal
    TEXT       str
    BOOLEAN    bool
    DATE       datetime.date
    TIMESTAMP  datetime.datetime
    ARRAY      list | tuple
    DOCUMENT   dict (JSON-like)

NULL is ``None`` for every kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from query_engine.domain.exceptions import QueryTypeError


class DataKind(Enum):
    """Kinds of values a column can hold."""

    INTEGER = "integer"
    DECIMAL = "decimal"
    TEXT = "text"
    BOOLEAN = "boolean"
    DATE = "date"
    TIMESTAMP = "timestamp"
    ARRAY = "array"
    DOCUMENT = "document"
    UNKNOWN = "unknown"  # kind not known until values are seen, e.g. NULL literals

    @property
    def is_numeric(self) -> bool:
        return self in (DataKind.INTEGER, DataKind.DECIMAL)

    @property
    def is_temporal(self) -> bool:
        return self in (DataKind.DATE, DataKind.TIMESTAMP)


_KIND_ALIASES = {
    "int": DataKind.INTEGER,
    "integer": DataKind.INTEGER,
    "bigint": DataKind.INTEGER,
    "smallint": DataKind.INTEGER,
    "decimal": DataKind.DECIMAL,
    "numeric": DataKind.DECIMAL,
    "float": DataKind.DECIMAL,
    "double": DataKind.DECIMAL,
    "real": DataKind.DECIMAL,
    "text": DataKind.TEXT,
    "varchar": DataKind.TEXT,
    "char": DataKind.TEXT,
    "string": DataKind.TEXT,
    "bool": DataKind.BOOLEAN,
    "boolean": DataKind.BOOLEAN,
    "date": DataKind.DATE,
    "timestamp": DataKind.TIMESTAMP,
    "datetime": DataKind.TIMESTAMP,
    "array": DataKind.ARRAY,
    "json": DataKind.DOCUMENT,
    "jsonb": DataKind.DOCUMENT,
    "document": DataKind.DOCUMENT,
}


def parse_kind(name: str) -> DataKind:
    """Look up a data kind by SQL type name (``varchar``, ``jsonb``, ...)."""
    try:
        return _KIND_ALIASES[name.strip().lower()]
    except KeyError:
        raise QueryTypeError(f"Unknown data kind '{name}'") from None


def kind_of(value: Any) -> DataKind | None:
    """Return the data kind of a Python value, or None for NULL.

    Raises:
        QueryTypeError: If the value has no corresponding kind.
    """
    if value is None:
        return None
    # bool before int: bool is a subclass of int
    if isinstance(value, bool):
        return DataKind.BOOLEAN
    if isinstance(value, int):
        return DataKind.INTEGER
    if isinstance(value, (float, Decimal)):
        return DataKind.DECIMAL
    if isinstance(value, str):
        return DataKind.TEXT
    # datetime before date: datetime is a subclass of date
    if isinstance(value, datetime):
        return DataKind.TIMESTAMP
    if isinstance(value, date):
        return DataKind.DATE
    if isinstance(value, (list, tuple)):
        return DataKind.ARRAY
    if isinstance(value, dict):
        return DataKind.DOCUMENT
    raise QueryTypeError(f"Unsupported value type {type(value).__name__}: {value!r}")


@dataclass(frozen=True, slots=True)
class ColumnType:
    """Type of a column: a kind, nullability and (for arrays) an element type."""

    kind: DataKind
    nullable: bool = True
    element: ColumnType | None = None

    def __post_init__(self) -> None:
        if self.element is not None and self.kind is not DataKind.ARRAY:
            raise ValueError(f"Only ARRAY columns have an element type, not {self.kind.value}")

    def __str__(self) -> str:
        name = self.kind.value
        if self.element is not None:
            name = f"{self.element}[]"
        return name if self.nullable else f"{name} not null"

    @classmethod
    def of(cls, kind: DataKind | str, nullable: bool = True) -> ColumnType:
        """Build a column type from a kind or a SQL type name."""
        if isinstance(kind, str):
            kind = parse_kind(kind)
        return cls(kind=kind, nullable=nullable)

    @classmethod
    def array_of(cls, element: ColumnType, nullable: bool = True) -> ColumnType:
        return cls(kind=DataKind.ARRAY, nullable=nullable, element=element)

    def accepts(self, value: Any) -> bool:
        """Check whether a value may be stored in a column of this type."""
        if value is None:
            return self.nullable
        if self.kind is DataKind.UNKNOWN:
            return True
        actual = kind_of(value)
        if actual is not self.kind:
            # integers are valid decimals
            return self.kind is DataKind.DECIMAL and actual is DataKind.INTEGER
        if self.element is not None:
            return all(self.element.accepts(item) for item in value)
        return True

    def with_nullable(self, nullable: bool) -> ColumnType:
        return ColumnType(kind=self.kind, nullable=nullable, element=self.element)


UNKNOWN_TYPE = ColumnType(DataKind.UNKNOWN)


def common_kind(left: DataKind, right: DataKind) -> DataKind | None:
    """Kind two values can be compared or combined as, or None if incompatible."""
    if left is DataKind.UNKNOWN:
        return right
    if right is DataKind.UNKNOWN or left is right:
        return left
    if left.is_numeric and right.is_numeric:
        return DataKind.DECIMAL
    if left.is_temporal and right is DataKind.TEXT:
        return left
    if right.is_temporal and left is DataKind.TEXT:
        return right
    if left.is_temporal and right.is_temporal:
        return DataKind.TIMESTAMP
    return None
