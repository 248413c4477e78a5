"""
Query Engine - In-memory SQL execution core

A teaching-oriented relational execution core: filtering, joins,
grouping/aggregation and window functions over in-memory relations,
with SQL three-valued logic throughout.
"""

__version__ = "0.1.0"
__author__ = "Systems Engineering Portfolio"
