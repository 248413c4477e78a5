"""Domain entities for the query engine.

Exports:
    Relation model:
        - Column: a named, typed, optionally qualified column
        - Schema: ordered sequence of columns with name resolution
        - Row: immutable value tuple
        - Relation: schema plus (possibly lazy) row sequence
"""

from query_engine.domain.entities.relation import Column, Relation, Row, Schema

__all__ = [
    "Column",
    "Schema",
    "Row",
    "Relation",
]
