"""Grouping keys with GROUP BY null semantics.

GROUP BY, PARTITION BY, DISTINCT and window peer detection put all NULLs
into the same bucket, while the ``=`` operator never considers NULL equal
to anything. The two notions are kept apart: this module implements the
grouping one, ``sql_equals`` in the expression evaluator implements the
predicate one.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Sequence


class _NullKey:
    """Sentinel standing in for NULL inside a group key."""

    _instance: _NullKey | None = None

    def __new__(cls) -> _NullKey:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NULL"


NULL_KEY = _NullKey()


def normalize_key_value(value: Any) -> Any:
    """Map a value to a hashable representative of its grouping class.

    Numerically equal values share a class (``1``, ``1.0`` and
    ``Decimal("1")`` group together), arrays become tuples and documents
    become their canonical JSON text.

    A fractional Decimal is keyed by its float value, as ``=`` compares a
    Decimal with a float: ``0.1`` and ``Decimal("0.1")`` share a class.
    Decimals that differ only beyond float precision share one too.
    """
    if value is None:
        return NULL_KEY
    if isinstance(value, bool):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (list, tuple)):
        return tuple(normalize_key_value(item) for item in value)
    if isinstance(value, dict):
        return ("__document__", json.dumps(value, sort_keys=True, default=str))
    return value


def group_key(values: Sequence[Any]) -> tuple[Any, ...]:
    """Build the grouping key for a sequence of column values."""
    return tuple(normalize_key_value(value) for value in values)
