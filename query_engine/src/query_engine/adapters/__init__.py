"""Adapters layer - concrete implementations of port interfaces.

Adapters provide the actual implementations:
- Inbound adapters: Decode plan documents handed to the engine
- Outbound adapters: Hold the base relations queries read from
"""

from query_engine.adapters.inbound import PlanCodec, PlanDecodeError
from query_engine.adapters.outbound import InMemoryCatalog

__all__ = [
    # Inbound adapters
    "PlanCodec",
    "PlanDecodeError",
    # Outbound adapters
    "InMemoryCatalog",
]
