"""Per-query execution settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from query_engine.infrastructure.config import QueryConfig


@dataclass(frozen=True, slots=True)
class QueryContext:
    """Settings passed explicitly to every operator of one query.

    Attributes:
        like_case_sensitive: LIKE compares case-sensitively (ILIKE never does)
        nulls_first_on_desc: default NULL placement for DESC sort keys;
            ASC keys get the opposite placement
        empty_ungrouped_emits_row: an ungrouped aggregate over empty input
            emits one row even when non-COUNT aggregates are requested
    """

    like_case_sensitive: bool = True
    nulls_first_on_desc: bool = True
    empty_ungrouped_emits_row: bool = False

    @classmethod
    def from_config(cls, config: QueryConfig) -> QueryContext:
        return cls(
            like_case_sensitive=config.like_case_sensitive,
            nulls_first_on_desc=config.nulls_first_on_desc,
            empty_ungrouped_emits_row=config.empty_ungrouped_emits_row,
        )

    def nulls_first(self, ascending: bool, explicit: bool | None = None) -> bool:
        """Resolve NULL placement for a sort key."""
        if explicit is not None:
            return explicit
        return not self.nulls_first_on_desc if ascending else self.nulls_first_on_desc


DEFAULT_CONTEXT = QueryContext()
