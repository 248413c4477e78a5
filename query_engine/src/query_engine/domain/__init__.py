"""Domain layer: the relational model, expressions and their evaluation.

Nothing in the domain layer performs I/O or depends on infrastructure.
"""
