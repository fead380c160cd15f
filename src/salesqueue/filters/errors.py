"""Errors raised while building or resolving saved filters."""

from typing import Optional, Sequence

from salesqueue.pipedrive.models import SavedFilter


class FilterError(ValueError):
    """Base error for filter construction and lookup."""

    pass


class UnknownObjectTypeError(FilterError):
    """An object type name that maps to no known Pipedrive object."""

    def __init__(self, object_type: str):
        self.object_type = object_type
        super().__init__(f"Unknown object type '{object_type}'")


class UnknownFieldError(FilterError):
    """A symbolic field name that matches no field of the object type."""

    def __init__(self, field_id: str, object_type: str):
        self.field_id = field_id
        self.object_type = object_type
        super().__init__(f"Unknown field '{field_id}' for object type '{object_type}'")


class FilterResolutionError(FilterError):
    """A filter name that matched zero or several saved filters."""

    def __init__(
        self,
        name: str,
        candidates: Sequence[SavedFilter] = (),
        expected_type: Optional[str] = None,
    ):
        self.name = name
        self.candidates = list(candidates)
        self.expected_type = expected_type

        if not self.candidates:
            scope = f" with type '{expected_type}'" if expected_type else ""
            message = f"No filter named '{name}' found{scope}"
        else:
            listed = ", ".join(c.describe() for c in self.candidates)
            message = f"Filter name '{name}' is ambiguous; candidates: {listed}"
        super().__init__(message)
