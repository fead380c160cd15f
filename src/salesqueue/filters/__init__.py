"""Saved-filter support: condition canonicalization and field resolution."""

from salesqueue.filters.conditions import (
    ConditionGroup,
    ConditionLeaf,
    ConditionNode,
    ConditionNormalizer,
    parse_condition,
)
from salesqueue.filters.errors import (
    FilterError,
    FilterResolutionError,
    UnknownFieldError,
    UnknownObjectTypeError,
)
from salesqueue.filters.fields import (
    FieldResolver,
    build_field_map,
    filter_type_for,
    normalize_object_type,
)

__all__ = [
    "ConditionGroup",
    "ConditionLeaf",
    "ConditionNode",
    "ConditionNormalizer",
    "parse_condition",
    "FilterError",
    "FilterResolutionError",
    "UnknownFieldError",
    "UnknownObjectTypeError",
    "FieldResolver",
    "build_field_map",
    "filter_type_for",
    "normalize_object_type",
]
