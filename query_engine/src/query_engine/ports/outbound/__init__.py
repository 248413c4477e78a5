"""Outbound ports - interfaces for the data the engine reads.

Outbound ports define what the engine needs from its surroundings:
base relations to scan and a catalog that names them.
"""

from query_engine.ports.outbound.relation_provider import Catalog, RelationProvider

__all__ = [
    "Catalog",
    "RelationProvider",
]
