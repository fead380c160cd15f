"""Normalization of relationship fields.

Pipedrive returns a relationship either as a bare id (`"person_id": 10`)
or as a structured value (`"person_id": {"value": 10, "name": "Maria"}`),
depending on endpoint version and entity. `normalize_ref` is the only place
that knows about both shapes; everything else works with `EntityRef`.
"""

from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

ID_KEYS = ("value", "id")
NAME_KEYS = ("name",)


class EntityRef(BaseModel):
    """Identifier of a related entity and its display name, if the source had one."""

    id: int
    name: Optional[str] = None

    model_config = ConfigDict(frozen=True)


def _as_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value or None
    if isinstance(value, float) and value.is_integer():
        return int(value) or None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value) or None
    return None


def normalize_ref(raw: Any) -> Optional[EntityRef]:
    """Reduce a raw relationship value to an EntityRef.

    - bare number: that is the id, no display name
    - mapping: id from `value`/`id`, display name from `name`
    - anything else (None, 0, empty, no usable id): no reference
    """
    if raw is None or isinstance(raw, EntityRef):
        return raw

    if isinstance(raw, Mapping):
        ref_id = None
        for key in ID_KEYS:
            ref_id = _as_id(raw.get(key))
            if ref_id is not None:
                break
        if ref_id is None:
            return None
        name = None
        for key in NAME_KEYS:
            candidate = raw.get(key)
            if isinstance(candidate, str) and candidate:
                name = candidate
                break
        return EntityRef(id=ref_id, name=name)

    ref_id = _as_id(raw)
    if ref_id is None:
        return None
    return EntityRef(id=ref_id)
