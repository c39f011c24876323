"""Shared helpers for raw JSON-Schema shape operations."""

from __future__ import annotations

from collections.abc import Callable
from copy import deepcopy
from typing import Optional

from .json_types import JSONObject, JSONValue, MutableJSONObject

type PartResolver = Callable[[JSONValue], JSONValue]


def is_object_schema(schema: JSONObject) -> bool:
    """Return whether a raw schema behaves as an object schema.

    Args:
        schema (JSONObject): Schema node to inspect.

    Returns:
        bool: Whether record modeling rules should apply.
    """
    schema_type = schema.get("type")
    if schema_type == "object":
        return True
    if isinstance(schema.get("properties"), dict):
        return True
    all_of = schema.get("allOf")
    if isinstance(all_of, list) and all_of:
        return all(isinstance(item, dict) and is_object_schema(item) for item in all_of)
    return False


def merge_all_of_schema(
    schema: JSONObject,
    *,
    resolve_part: Optional[PartResolver] = None,
) -> Optional[MutableJSONObject]:
    """Merge an ``allOf`` chain of object schemas into one object schema.

    Args:
        schema (JSONObject): Schema carrying an ``allOf`` list.
        resolve_part (Optional[PartResolver]): Callback that replaces ``$ref``
            parts with their targets before merging.

    Returns:
        Optional[MutableJSONObject]: The merged object schema, or ``None`` when
        one of the parts is not an object schema.
    """
    all_of = schema.get("allOf")
    if not isinstance(all_of, list) or not all_of:
        return deepcopy(dict(schema))

    merged: MutableJSONObject = {key: value for key, value in schema.items() if key != "allOf"}
    merged_properties: MutableJSONObject = {}
    merged_required: set[str] = set()
    additional_properties: Optional[JSONValue] = merged.get("additionalProperties")

    for raw_part in all_of:
        part = resolve_part(raw_part) if resolve_part is not None else raw_part
        if not isinstance(part, dict):
            return None
        flattened = merge_all_of_schema(part, resolve_part=resolve_part)
        if flattened is None or not is_object_schema(flattened):
            return None
        _merge_part(flattened, merged_properties=merged_properties, merged_required=merged_required)
        if flattened.get("additionalProperties") is False:
            additional_properties = False
        if "description" not in merged and isinstance(flattened.get("description"), str):
            merged["description"] = flattened["description"]

    merged["type"] = "object"
    merged["properties"] = merged_properties
    if merged_required:
        merged["required"] = sorted(merged_required)
    if additional_properties is not None:
        merged["additionalProperties"] = additional_properties
    return merged


def _merge_part(
    part: JSONObject,
    *,
    merged_properties: MutableJSONObject,
    merged_required: set[str],
) -> None:
    part_properties = part.get("properties")
    if isinstance(part_properties, dict):
        merged_properties.update(deepcopy(part_properties))
    part_required = part.get("required")
    if isinstance(part_required, list):
        merged_required.update(name for name in part_required if isinstance(name, str))
