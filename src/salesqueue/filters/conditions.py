"""Filter condition trees and their canonical form.

A condition tree is built from two node shapes:

- ConditionLeaf: `{object, field_id, operator, value, extra_value}`
- ConditionGroup: `{glue, conditions: [node, ...]}`

Pipedrive only accepts one layout: a root `and` group holding exactly an
`and` group and an `or` group, with numeric field ids on every leaf and
`extra_value` always present. `ConditionNormalizer` turns any reasonable
user tree into that layout.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from salesqueue.filters.errors import FilterError
from salesqueue.filters.fields import FieldResolver, normalize_object_type

logger = logging.getLogger(__name__)

GLUES = ("and", "or")


class ConditionLeaf(BaseModel):
    """A single field predicate."""

    object: Optional[str] = None
    field_id: Union[int, str]
    operator: str
    value: Any = None
    extra_value: Any = None

    model_config = ConfigDict(extra="forbid")

    def to_api(self) -> Dict[str, Any]:
        return {
            "object": self.object,
            "field_id": self.field_id,
            "operator": self.operator,
            "value": self.value,
            "extra_value": self.extra_value,
        }


class ConditionGroup(BaseModel):
    """Predicates joined by `and` / `or`."""

    glue: str = "and"
    conditions: List[Union["ConditionGroup", ConditionLeaf]] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def to_api(self) -> Dict[str, Any]:
        return {
            "glue": self.glue,
            "conditions": [c.to_api() for c in self.conditions],
        }


ConditionGroup.model_rebuild()

ConditionNode = Union[ConditionGroup, ConditionLeaf]


def parse_condition(raw: Any) -> Optional[ConditionNode]:
    """Build a typed node from user input, or None if `raw` is malformed.

    Malformed children of a group are dropped; a list is read as an
    `and` group over its items.
    """
    if isinstance(raw, (ConditionGroup, ConditionLeaf)):
        return raw
    if isinstance(raw, list):
        raw = {"glue": "and", "conditions": raw}
    if not isinstance(raw, Mapping):
        return None

    if "conditions" in raw:
        children = raw.get("conditions")
        glue = raw.get("glue", "and")
        if not isinstance(children, list) or not isinstance(glue, str):
            return None
        if glue.lower() not in GLUES:
            return None
        parsed = [parse_condition(child) for child in children]
        return ConditionGroup(glue=glue, conditions=[c for c in parsed if c is not None])

    field_id = raw.get("field_id")
    operator = raw.get("operator")
    if field_id is None or field_id == "" or isinstance(field_id, bool):
        return None
    if not isinstance(field_id, (int, str)) or not isinstance(operator, str) or not operator:
        return None
    obj = raw.get("object")
    return ConditionLeaf(
        object=obj if isinstance(obj, str) and obj else None,
        field_id=field_id,
        operator=operator,
        value=raw.get("value"),
        extra_value=raw.get("extra_value"),
    )


def _first_group(children: Sequence[ConditionNode], glue: str) -> ConditionGroup:
    for child in children:
        if isinstance(child, ConditionGroup) and child.glue.lower() == glue:
            return child
    return ConditionGroup(glue=glue, conditions=[])


class ConditionNormalizer:
    """Canonicalizes condition trees, resolving field names on the way."""

    def __init__(self, resolver: FieldResolver):
        self.resolver = resolver

    def shape(self, root: Any) -> ConditionGroup:
        """Arrange `root` into the two-branch layout without resolving fields."""
        node = parse_condition(root)
        if not isinstance(node, ConditionGroup):
            raise FilterError("Filter conditions must be a group with a 'conditions' list")

        children = node.conditions
        if all(isinstance(child, ConditionLeaf) for child in children):
            and_group = ConditionGroup(glue="and", conditions=list(children))
            or_group = ConditionGroup(glue="or", conditions=[])
        else:
            and_group = _first_group(children, "and")
            or_group = _first_group(children, "or")

        return ConditionGroup(glue="and", conditions=[and_group, or_group])

    async def normalize(self, root: Any, default_object_type: str) -> ConditionGroup:
        """Return the canonical form of `root`.

        Leaves without an `object` get `default_object_type`. The first
        field that cannot be resolved aborts normalization.

        Raises:
            FilterError: If the root is not a group, or an object type or
                field cannot be resolved.
        """
        default_object = normalize_object_type(default_object_type)
        canonical = await self._normalize_node(self.shape(root), default_object)
        logger.debug(f"Normalized filter conditions: {canonical.to_api()}")
        return canonical

    async def _normalize_node(self, node: ConditionNode, default_object: str) -> ConditionNode:
        if isinstance(node, ConditionGroup):
            children = [await self._normalize_node(child, default_object) for child in node.conditions]
            return ConditionGroup(glue=node.glue.lower(), conditions=children)

        if isinstance(node, ConditionLeaf):
            obj = normalize_object_type(node.object or default_object)
            field_id = await self.resolver.resolve(obj, node.field_id)
            return ConditionLeaf(
                object=obj,
                field_id=field_id,
                operator=node.operator,
                value=node.value,
                extra_value=node.extra_value,
            )

        raise TypeError(f"Unexpected condition node: {type(node).__name__}")
