"""Inbound adapters for the query engine.

Inbound adapters handle incoming requests and convert them to
internal domain operations.

Exports:
    Plan documents:
        - PlanCodec: Decodes JSON plan documents into logical plans
        - PlanDecodeError: Exception for malformed plan documents
"""

from query_engine.adapters.inbound.plan_codec import PlanCodec, PlanDecodeError

__all__ = [
    "PlanCodec",
    "PlanDecodeError",
]
