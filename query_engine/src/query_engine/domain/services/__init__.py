"""Domain services for the query engine.

Exports:
    Expression evaluation:
        - ExpressionEvaluator: binds expressions to a schema, evaluates them per row
        - sql_equals: the SQL ``=`` operator (NULL never equal)
        - substring / date_trunc: SUBSTRING and DATE_TRUNC semantics
        - translate_posix_classes: POSIX bracket classes to Python regex syntax

    Ordering:
        - compare_values / values_equal: comparison of non-NULL values
        - SortKey / sort_by_keys: stable multi-key ordering with NULL placement

    Aggregation:
        - Accumulator: per-group aggregate state
        - create_accumulator / aggregate_result_type
"""

from query_engine.domain.services.accumulators import (
    Accumulator,
    aggregate_result_type,
    create_accumulator,
)
from query_engine.domain.services.expression_evaluator import (
    ExpressionEvaluator,
    arithmetic,
    cast_value,
    date_trunc,
    extract_field,
    sql_equals,
    substring,
    translate_posix_classes,
)
from query_engine.domain.services.ordering import (
    SortKey,
    compare_keys,
    compare_values,
    sort_by_keys,
    values_equal,
)

__all__ = [
    "ExpressionEvaluator",
    "sql_equals",
    "arithmetic",
    "cast_value",
    "extract_field",
    "date_trunc",
    "substring",
    "translate_posix_classes",
    "SortKey",
    "compare_keys",
    "compare_values",
    "sort_by_keys",
    "values_equal",
    "Accumulator",
    "create_accumulator",
    "aggregate_result_type",
]
