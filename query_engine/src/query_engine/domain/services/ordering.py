"""Value comparison and row ordering.

Comparisons here operate on non-NULL values only; NULL handling belongs to
the caller (predicates yield UNKNOWN, sorts place NULLs first or last).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from functools import cmp_to_key
from typing import Any, Callable, Sequence, TypeVar

from query_engine.domain.exceptions import QueryTypeError

T = TypeVar("T")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _type_name(value: Any) -> str:
    return type(value).__name__


def parse_temporal(text: str, like: date | None = None) -> date:
    """Parse ISO text as a datetime when it has a time part (or ``like`` is one), else a date."""
    try:
        if isinstance(like, datetime) or "T" in text or " " in text.strip():
            return datetime.fromisoformat(text.strip())
        return date.fromisoformat(text.strip())
    except ValueError:
        raise QueryTypeError(f"Cannot interpret '{text}' as a date/time") from None


def _widen_date(value: date) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def coerce_pair(left: Any, right: Any) -> tuple[Any, Any]:
    """Bring two non-NULL values to a common comparable representation.

    Raises:
        QueryTypeError: If the values' kinds cannot be compared.
    """
    if _is_number(left) and _is_number(right):
        if isinstance(left, float) and isinstance(right, Decimal):
            return left, float(right)
        if isinstance(left, Decimal) and isinstance(right, float):
            return float(left), right
        return left, right
    if isinstance(left, bool) and isinstance(right, bool):
        return left, right
    if isinstance(left, str) and isinstance(right, str):
        return left, right
    if isinstance(left, date) and isinstance(right, str):
        right = parse_temporal(right, left)
    elif isinstance(left, str) and isinstance(right, date):
        left = parse_temporal(left, right)
    if isinstance(left, date) and isinstance(right, date):
        if isinstance(left, datetime) != isinstance(right, datetime):
            return _widen_date(left), _widen_date(right)
        return left, right
    if isinstance(left, timedelta) and isinstance(right, timedelta):
        return left, right
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return tuple(left), tuple(right)
    if isinstance(left, dict) and isinstance(right, dict):
        return left, right
    raise QueryTypeError(f"Cannot compare {_type_name(left)} with {_type_name(right)}")


def values_equal(left: Any, right: Any) -> bool:
    """Equality of two non-NULL values after coercion."""
    left, right = coerce_pair(left, right)
    return left == right


def compare_values(left: Any, right: Any) -> int:
    """Three-way comparison of two non-NULL values: -1, 0 or 1.

    Raises:
        QueryTypeError: If the values cannot be ordered (e.g. documents).
    """
    left, right = coerce_pair(left, right)
    if isinstance(left, dict):
        if left == right:
            return 0
        raise QueryTypeError("Documents can only be compared for equality")
    if isinstance(left, tuple):
        for a, b in zip(left, right):
            if a is None or b is None:
                if a is b:
                    continue
                return 1 if a is None else -1
            result = compare_values(a, b)
            if result:
                return result
        return (len(left) > len(right)) - (len(left) < len(right))
    return (left > right) - (left < right)


@dataclass(frozen=True, slots=True)
class SortKey:
    """Direction and NULL placement of one ordering key."""

    ascending: bool = True
    nulls_first: bool = False


def compare_keys(left: Sequence[Any], right: Sequence[Any], keys: Sequence[SortKey]) -> int:
    """Compare two key tuples under the given directions."""
    for a, b, key in zip(left, right, keys):
        if a is None and b is None:
            continue
        if a is None:
            return -1 if key.nulls_first else 1
        if b is None:
            return 1 if key.nulls_first else -1
        result = compare_values(a, b)
        if result:
            return result if key.ascending else -result
    return 0


def sort_by_keys(
    items: Sequence[T],
    key_of: Callable[[T], Sequence[Any]],
    keys: Sequence[SortKey],
) -> list[T]:
    """Stable sort: items with equal keys keep their input order."""
    decorated = [(key_of(item), item) for item in items]
    decorated.sort(key=cmp_to_key(lambda a, b: compare_keys(a[0], b[0], keys)))
    return [item for _, item in decorated]
