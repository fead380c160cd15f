"""Object-type normalization and symbolic field resolution.

Pipedrive filter conditions reference fields by numeric id. Users write
field keys (`stage_id`, `owner_id`) or display names (`Stage`, `Owner`).
`FieldResolver` lists an object type's fields once and maps every
spelling to the numeric id.
"""

import logging
from typing import Awaitable, Callable, Dict, List, Union

from salesqueue.filters.errors import UnknownFieldError, UnknownObjectTypeError
from salesqueue.pipedrive.models import FieldDefinition

logger = logging.getLogger(__name__)

OBJECT_TYPE_SYNONYMS: Dict[str, str] = {
    "deal": "deal",
    "deals": "deal",
    "lead": "lead",
    "leads": "lead",
    "person": "person",
    "persons": "person",
    "people": "person",
    "contact": "person",
    "contacts": "person",
    "organization": "organization",
    "organizations": "organization",
    "organisation": "organization",
    "organisations": "organization",
    "org": "organization",
    "orgs": "organization",
    "company": "organization",
    "companies": "organization",
    "product": "product",
    "products": "product",
    "activity": "activity",
    "activities": "activity",
}

# Leads share the deal field set.
FIELD_ENDPOINTS: Dict[str, str] = {
    "deal": "dealFields",
    "lead": "dealFields",
    "person": "personFields",
    "organization": "organizationFields",
    "product": "productFields",
    "activity": "activityFields",
}

# Canonical object type -> saved filter `type` value.
FILTER_TYPES: Dict[str, str] = {
    "deal": "deals",
    "lead": "leads",
    "person": "people",
    "organization": "org",
    "product": "products",
    "activity": "activity",
}

FieldLister = Callable[[str], Awaitable[List[FieldDefinition]]]


def normalize_object_type(object_type: str) -> str:
    """Map a spelling such as `Deals`, `people` or `org` to its canonical token."""
    token = str(object_type or "").strip().lower().replace("-", "_")
    canonical = OBJECT_TYPE_SYNONYMS.get(token)
    if canonical is None:
        raise UnknownObjectTypeError(str(object_type))
    return canonical


def filter_type_for(object_type: str) -> str:
    """Saved-filter type for an object type (any accepted spelling)."""
    return FILTER_TYPES[normalize_object_type(object_type)]


def is_numeric_field_id(field_id: Union[int, str]) -> bool:
    if isinstance(field_id, bool):
        return False
    if isinstance(field_id, int):
        return True
    return isinstance(field_id, str) and field_id.strip().isdigit()


def build_field_map(fields: List[FieldDefinition]) -> Dict[str, str]:
    """Map id, key, name and their lower-cased forms to the numeric id.

    When two fields share a spelling, an exact key beats an exact name,
    which beats the lower-cased forms: higher priority entries are written
    last.
    """
    field_map: Dict[str, str] = {}
    for fd in fields:
        if fd.name:
            field_map[fd.name.lower()] = str(fd.id)
    for fd in fields:
        if fd.key:
            field_map[fd.key.lower()] = str(fd.id)
    for fd in fields:
        if fd.name:
            field_map[fd.name] = str(fd.id)
    for fd in fields:
        if fd.key:
            field_map[fd.key] = str(fd.id)
    for fd in fields:
        field_map[str(fd.id)] = str(fd.id)
    return field_map


class FieldResolver:
    """Resolves field keys and names to numeric field ids.

    Field maps are fetched lazily, once per object type, and kept for the
    lifetime of the instance.
    """

    def __init__(self, list_fields: FieldLister):
        """Initialize the resolver.

        Args:
            list_fields: async `(canonical_object_type) -> [FieldDefinition]`
        """
        self._list_fields = list_fields
        self._field_maps: Dict[str, Dict[str, str]] = {}
        self._definitions: Dict[str, List[FieldDefinition]] = {}

    async def definitions(self, object_type: str) -> List[FieldDefinition]:
        """Field definitions of an object type (fetched once)."""
        canonical = normalize_object_type(object_type)
        if canonical not in self._definitions:
            fields = await self._list_fields(canonical)
            self._definitions[canonical] = list(fields)
            self._field_maps[canonical] = build_field_map(self._definitions[canonical])
            logger.debug(f"Loaded {len(fields)} field definitions for {canonical}")
        return self._definitions[canonical]

    async def field_map(self, object_type: str) -> Dict[str, str]:
        canonical = normalize_object_type(object_type)
        await self.definitions(canonical)
        return self._field_maps[canonical]

    async def resolve(self, object_type: str, field_id: Union[int, str]) -> str:
        """Numeric id (as a string) for a numeric, key or name field reference.

        Raises:
            UnknownFieldError: If nothing in the object type's fields matches.
        """
        if is_numeric_field_id(field_id):
            return str(field_id).strip()

        canonical = normalize_object_type(object_type)
        field_map = await self.field_map(canonical)
        text = str(field_id)

        resolved = field_map.get(text)
        if resolved is None:
            resolved = field_map.get(text.lower())
        if resolved is None:
            raise UnknownFieldError(text, canonical)
        return resolved
