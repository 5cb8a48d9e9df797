"""
Schema introspection and comparison.
"""

from .compare import SchemaComparison, SchemaDiscrepancy, compare_schemas
from .introspect import SchemaIntrospector, build_schema, select_comparison_key
from .normalize import normalize_default, normalize_type

__all__ = [
    "SchemaIntrospector",
    "SchemaComparison",
    "SchemaDiscrepancy",
    "build_schema",
    "compare_schemas",
    "normalize_default",
    "normalize_type",
    "select_comparison_key",
]
