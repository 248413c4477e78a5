"""Three-valued truth for SQL predicates.

SQL predicates evaluate to TRUE, FALSE or UNKNOWN. UNKNOWN arises from any
comparison against NULL and must never collapse into FALSE while a
predicate is still being combined: ``NOT UNKNOWN`` is UNKNOWN, not TRUE.
Only at the very end do Filter, Join and HAVING treat anything other than
TRUE as "drop the row".

Truth tables (Kleene logic):

    AND     | T  F  U        OR      | T  F  U
    --------+---------       --------+---------
    T       | T  F  U        T       | T  T  T
    F       | F  F  F        F       | T  F  U
    U       | U  F  U        U       | T  U  U
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class Truth(Enum):
    """Result of evaluating a predicate."""

    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"

    @classmethod
    def of(cls, value: Any) -> Truth:
        """Convert a Python value (bool or None) into a Truth."""
        if isinstance(value, Truth):
            return value
        if value is None:
            return cls.UNKNOWN
        return cls.TRUE if value else cls.FALSE

    def __and__(self, other: Truth) -> Truth:
        if self is Truth.FALSE or other is Truth.FALSE:
            return Truth.FALSE
        if self is Truth.TRUE and other is Truth.TRUE:
            return Truth.TRUE
        return Truth.UNKNOWN

    def __or__(self, other: Truth) -> Truth:
        if self is Truth.TRUE or other is Truth.TRUE:
            return Truth.TRUE
        if self is Truth.FALSE and other is Truth.FALSE:
            return Truth.FALSE
        return Truth.UNKNOWN

    def __invert__(self) -> Truth:
        if self is Truth.UNKNOWN:
            return Truth.UNKNOWN
        return Truth.FALSE if self is Truth.TRUE else Truth.TRUE

    def is_true(self) -> bool:
        """Return True only for TRUE. UNKNOWN and FALSE both exclude a row."""
        return self is Truth.TRUE

    def to_value(self) -> bool | None:
        """Convert to a SQL boolean value (UNKNOWN becomes NULL)."""
        if self is Truth.UNKNOWN:
            return None
        return self is Truth.TRUE
