"""Tagged schema variants parsed from raw AsyncAPI schema objects.

Every raw schema is parsed by :func:`parse_schema` into exactly one of the
variant dataclasses below. Consumers dispatch on the variant class instead of
probing raw dictionary keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional, Union

from .errors import SpecFormatError
from .json_types import JSONObject, JSONValue, MutableJSONObject

_DOC_FIELDS: tuple[str, ...] = (
    "example",
    "examples",
    "deprecated",
    "readOnly",
    "writeOnly",
    "externalDocs",
    "contentMediaType",
    "contentEncoding",
)


@dataclass(frozen=True)
class SchemaMeta:
    """Documentation and nullability shared by every variant."""

    path: str
    title: Optional[str] = None
    description: Optional[str] = None
    nullable: bool = False
    has_default: bool = False
    default: Optional[JSONValue] = None
    extras: MutableJSONObject = field(default_factory=dict)


@dataclass(frozen=True)
class PrimitiveSchema:
    kind: str
    format: Optional[str]
    meta: SchemaMeta


@dataclass(frozen=True)
class ArraySchema:
    items: Optional[Schema]
    meta: SchemaMeta


@dataclass(frozen=True)
class ObjectSchema:
    properties: tuple[tuple[str, Schema], ...]
    required: frozenset[str]
    additional: Union[bool, Schema, None]
    meta: SchemaMeta


@dataclass(frozen=True)
class RefSchema:
    target: str
    meta: SchemaMeta


@dataclass(frozen=True)
class UnionSchema:
    options: tuple[Schema, ...]
    keyword: str
    meta: SchemaMeta


@dataclass(frozen=True)
class AllOfSchema:
    parts: tuple[Schema, ...]
    source: JSONObject
    meta: SchemaMeta


@dataclass(frozen=True)
class EnumSchema:
    values: tuple[JSONValue, ...]
    meta: SchemaMeta


@dataclass(frozen=True)
class BooleanSchema:
    """A literal ``true``/``false`` schema, or the empty schema ``{}``."""

    value: bool
    meta: SchemaMeta


type Schema = Union[
    PrimitiveSchema,
    ArraySchema,
    ObjectSchema,
    RefSchema,
    UnionSchema,
    AllOfSchema,
    EnumSchema,
    BooleanSchema,
]


def parse_schema(node: JSONValue, *, path: str) -> Schema:
    """Parse a raw schema node into its tagged variant.

    Args:
        node (JSONValue): Raw schema (mapping or boolean).
        path (str): Location of the node, carried into error messages.

    Returns:
        Schema: The parsed variant.
    """
    if isinstance(node, bool):
        return BooleanSchema(value=node, meta=SchemaMeta(path=path))
    if not isinstance(node, dict):
        raise SpecFormatError(f"Schema at {path} must be a mapping or boolean, got {type(node)!r}")

    meta = _meta(node, path=path)

    ref = node.get("$ref")
    if isinstance(ref, str):
        return RefSchema(target=ref, meta=meta)

    if "const" in node:
        return EnumSchema(values=(node["const"],), meta=meta)
    enum = node.get("enum")
    if isinstance(enum, list) and enum:
        return EnumSchema(values=tuple(enum), meta=meta)

    for keyword in ("oneOf", "anyOf"):
        options = node.get(keyword)
        if isinstance(options, list) and options:
            return UnionSchema(
                options=tuple(
                    parse_schema(option, path=f"{path}.{keyword}[{index}]")
                    for index, option in enumerate(options)
                ),
                keyword=keyword,
                meta=meta,
            )

    all_of = node.get("allOf")
    if isinstance(all_of, list) and all_of:
        return AllOfSchema(
            parts=tuple(
                parse_schema(part, path=f"{path}.allOf[{index}]")
                for index, part in enumerate(all_of)
            ),
            source=node,
            meta=meta,
        )

    schema_type = node.get("type")
    if isinstance(schema_type, list):
        members = [member for member in schema_type if member != "null"]
        nullable_meta = replace(meta, nullable=meta.nullable or "null" in schema_type)
        if not members:
            return PrimitiveSchema(kind="null", format=None, meta=meta)
        if len(members) == 1:
            single = parse_schema({**node, "type": members[0]}, path=path)
            return replace(single, meta=replace(single.meta, nullable=nullable_meta.nullable))
        return UnionSchema(
            options=tuple(
                parse_schema({**node, "type": member}, path=f"{path}.type[{index}]")
                for index, member in enumerate(members)
            ),
            keyword="anyOf",
            meta=nullable_meta,
        )

    if schema_type == "array":
        items = node.get("items")
        return ArraySchema(
            items=parse_schema(items, path=f"{path}.items") if items is not None else None,
            meta=meta,
        )

    if schema_type == "object" or isinstance(node.get("properties"), dict) or (
        schema_type is None and "additionalProperties" in node
    ):
        return _parse_object(node, meta=meta, path=path)

    if isinstance(schema_type, str):
        raw_format = node.get("format")
        return PrimitiveSchema(
            kind=schema_type,
            format=raw_format if isinstance(raw_format, str) and raw_format else None,
            meta=meta,
        )

    # An empty schema accepts anything, like ``true``.
    return BooleanSchema(value=True, meta=meta)


def _parse_object(node: JSONObject, *, meta: SchemaMeta, path: str) -> ObjectSchema:
    raw_properties = node.get("properties")
    properties: list[tuple[str, Schema]] = []
    if isinstance(raw_properties, dict):
        for name, raw_property in raw_properties.items():
            if not isinstance(name, str):
                continue
            properties.append((name, parse_schema(raw_property, path=f"{path}.properties.{name}")))

    raw_required = node.get("required")
    required = (
        frozenset(item for item in raw_required if isinstance(item, str))
        if isinstance(raw_required, list)
        else frozenset()
    )

    raw_additional = node.get("additionalProperties")
    additional: Union[bool, Schema, None]
    if raw_additional is None or isinstance(raw_additional, bool):
        additional = raw_additional
    else:
        additional = parse_schema(raw_additional, path=f"{path}.additionalProperties")

    return ObjectSchema(
        properties=tuple(properties),
        required=required,
        additional=additional,
        meta=meta,
    )


def _meta(node: JSONObject, *, path: str) -> SchemaMeta:
    title = node.get("title")
    description = node.get("description")
    extras: MutableJSONObject = {key: node[key] for key in _DOC_FIELDS if key in node}
    return SchemaMeta(
        path=path,
        title=title.strip() if isinstance(title, str) and title.strip() else None,
        description=(
            description.strip() if isinstance(description, str) and description.strip() else None
        ),
        nullable=node.get("nullable") is True,
        has_default="default" in node,
        default=node.get("default"),
        extras=extras,
    )
