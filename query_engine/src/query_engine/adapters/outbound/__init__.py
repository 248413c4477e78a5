"""Outbound adapters - implementations of outbound ports.

These adapters provide the base relations queries read from.
"""

from query_engine.adapters.outbound.memory_catalog import InMemoryCatalog

__all__ = [
    "InMemoryCatalog",
]
