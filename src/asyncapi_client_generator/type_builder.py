"""Lower AsyncAPI schemas into a deduplicated graph of type definitions."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from pydantic import BaseModel, RootModel

from .errors import RefResolutionError, UnsupportedSchemaTypeError
from .json_types import JSONValue, MutableJSONObject
from .model_types import SCHEMA_REF_PREFIX, FieldDef, SpecDocument, TypeDefinition, TypeShape
from .naming import NameRegistry, snake_case
from .schema_model import (
    AllOfSchema,
    ArraySchema,
    BooleanSchema,
    EnumSchema,
    ObjectSchema,
    PrimitiveSchema,
    RefSchema,
    Schema,
    UnionSchema,
    parse_schema,
)
from .schema_utils import merge_all_of_schema

logger = logging.getLogger(__name__)

ANY_JSON_ANNOTATION = "JsonValue"
NEVER_ANNOTATION = "NoValue"
FILE_CONTENT_TYPE_NAME = "FileContent"

_PRIMITIVE_TYPES: dict[str, str] = {
    "string": "str",
    "integer": "int",
    "number": "float",
    "boolean": "bool",
    "null": "None",
}
_NUMERIC_FORMATS: dict[str, str] = {
    "int32": "int",
    "int64": "int",
    "integer": "int",
    "float": "float",
    "double": "float",
    "decimal": "Decimal",
}
_STRING_FORMATS: dict[str, str] = {
    "date": "date",
    "date-time": "datetime",
    "time": "time",
    "uuid": "UUID",
    "byte": "bytes",
}
_BINARY_FORMAT = "binary"

# Names the generated modules import or define; schema names must not shadow them.
RESERVED_TYPE_NAMES: frozenset[str] = frozenset(
    {
        "AfterValidator",
        "Annotated",
        "AsyncIterator",
        "BaseModel",
        "ChannelConnection",
        "ConfigDict",
        "ConnectionClosedError",
        "Decimal",
        "Field",
        "JsonValue",
        "Literal",
        "NoValue",
        "Optional",
        "RootModel",
        "TypeAdapter",
        "UUID",
        "Union",
    }
)

_BASEMODEL_RESERVED = set(dir(BaseModel))
_ROOTMODEL_RESERVED = set(dir(RootModel))
_BUILTIN_IDENTIFIER_RESERVED = {
    "bool",
    "bytes",
    "date",
    "datetime",
    "dict",
    "float",
    "int",
    "list",
    "str",
    "time",
    "type",
}


@dataclass
class TypeGraph:
    """Named type definitions in emission order."""

    definitions: dict[str, TypeDefinition] = field(default_factory=dict)
    names_by_ref: dict[str, str] = field(default_factory=dict)

    def ordered(self) -> tuple[TypeDefinition, ...]:
        return tuple(self.definitions.values())

    def name_for_ref(self, ref: str) -> Optional[str]:
        return self.names_by_ref.get(ref)

    def __contains__(self, name: object) -> bool:
        return name in self.definitions

    def __len__(self) -> int:
        return len(self.definitions)


class TypeModelBuilder:
    """Create type definitions from AsyncAPI schema nodes.

    A builder owns one run: names, memoized references and structural
    deduplication never leak between builders.
    """

    def __init__(
        self,
        document: SpecDocument,
        pre_existing: Iterable[TypeDefinition] = (),
    ) -> None:
        self._document = document
        self._graph = TypeGraph()
        self._names = NameRegistry(used=set(RESERVED_TYPE_NAMES))
        self._structural: dict[str, str] = {}
        for definition in pre_existing:
            self._names.used.add(definition.name)
            self._graph.definitions[definition.name] = definition

    @property
    def graph(self) -> TypeGraph:
        return self._graph

    @property
    def document(self) -> SpecDocument:
        return self._document

    @property
    def names(self) -> NameRegistry:
        """Type names claimed so far; client classes share it to avoid clashes."""
        return self._names

    def build_types(self) -> TypeGraph:
        """Lower every component schema of the document.

        Returns:
            TypeGraph: The graph holding one definition per component schema plus
            the definitions synthesized for anonymous nested structures.
        """
        raw_components = self._document.raw.get("components")
        schemas = raw_components.get("schemas") if isinstance(raw_components, dict) else None
        if isinstance(schemas, dict):
            for schema_name in list(schemas):
                self.lower_ref(f"{SCHEMA_REF_PREFIX}{schema_name}", origin="$.components.schemas")
        logger.debug("Built %d type definitions", len(self._graph))
        return self._graph

    def lower(self, raw: JSONValue, *, hint: str, path: str) -> str:
        """Return the annotation for an inline schema, defining nested types as needed."""
        return self._annotation(parse_schema(raw, path=path), hint=hint)

    def lower_ref(self, ref: str, *, origin: str) -> str:
        """Return the definition name for a ``$ref``, lowering it on first use.

        Args:
            ref (str): Local reference string.
            origin (str): Location of the referring node.

        Returns:
            str: Name of the memoized definition.
        """
        existing = self._graph.names_by_ref.get(ref)
        if existing is not None:
            return existing

        target = self._document.resolve_pointer(ref, origin=origin)
        raw_name = ref.rsplit("/", maxsplit=1)[-1]
        name = self._names.claim_class(raw_name)
        # Reserve before lowering so reference cycles resolve to the same name.
        self._graph.names_by_ref[ref] = name
        self._define_named(name=name, schema=parse_schema(target, path=_ref_path(ref)))
        return name

    def add_component_schema(self, schema_name: str, raw: JSONValue, *, origin: str) -> str:
        """Add an inline schema to ``components.schemas`` and lower it by reference.

        Returns:
            str: Name of the generated definition.
        """
        schemas = self._document.schemas
        key = schema_name
        suffix = 2
        while key in schemas and schemas[key] != raw:
            key = f"{schema_name}{suffix}"
            suffix += 1
        schemas[key] = raw
        return self.lower_ref(f"{SCHEMA_REF_PREFIX}{key}", origin=origin)

    def resolve_raw(self, raw: JSONValue, *, origin: str) -> JSONValue:
        """Follow ``$ref`` chains on a raw node and return the target node."""
        seen: set[str] = set()
        current = raw
        while isinstance(current, dict) and isinstance(current.get("$ref"), str):
            ref = current["$ref"]
            if ref in seen:
                raise RefResolutionError(f"Circular reference chain {ref} at {origin}")
            seen.add(ref)
            current = self._document.resolve_pointer(ref, origin=origin)
        return current

    def _define_named(self, *, name: str, schema: Schema) -> None:
        if isinstance(schema, ObjectSchema) and (schema.properties or schema.additional is False):
            self._build_record(name=name, schema=schema)
            return
        if isinstance(schema, AllOfSchema):
            merged = self._merge_all_of(schema)
            if merged is not None:
                self._build_record(name=name, schema=merged)
                return
        if isinstance(schema, PrimitiveSchema) and schema.format == _BINARY_FORMAT:
            self._append(self._file_content_definition(name))
            return

        annotation = self._annotation(schema, hint=f"{name}Value")
        if isinstance(schema, BooleanSchema):
            shape = TypeShape.MARKER
        elif isinstance(schema, UnionSchema):
            shape = TypeShape.UNION
        elif isinstance(schema, PrimitiveSchema):
            shape = TypeShape.PRIMITIVE
        else:
            shape = TypeShape.ALIAS
        self._append(
            TypeDefinition(
                name=name,
                shape=shape,
                root_annotation=annotation,
                docstring=schema.meta.description,
                title=schema.meta.title,
            )
        )

    def _build_record(self, *, name: str, schema: ObjectSchema) -> None:
        fields, nested = self._record_fields(owner=name, schema=schema)
        self._append(
            TypeDefinition(
                name=name,
                shape=TypeShape.RECORD,
                fields=fields,
                docstring=schema.meta.description,
                title=schema.meta.title,
                extra_behavior=_extra_behavior(schema.additional),
                sub_definitions=nested,
            )
        )

    def _record_fields(
        self,
        *,
        owner: str,
        schema: ObjectSchema,
    ) -> tuple[tuple[FieldDef, ...], tuple[str, ...]]:
        fields: list[FieldDef] = []
        nested: list[str] = []
        used_field_names: set[str] = set()
        for source_name, prop_schema in schema.properties:
            before = set(self._graph.definitions)
            annotation = self._annotation(prop_schema, hint=f"{owner}_{source_name}")
            nested.extend(name for name in self._graph.definitions if name not in before)

            field_name = _field_name(source_name, used_field_names)
            used_field_names.add(field_name)
            required = source_name in schema.required
            default: Optional[JSONValue] = None
            if not required:
                annotation = optional_annotation(annotation)
                if prop_schema.meta.has_default:
                    default = prop_schema.meta.default
            fields.append(
                FieldDef(
                    name=field_name,
                    source_name=source_name,
                    annotation=annotation,
                    required=required,
                    default=default,
                    metadata=_field_metadata(prop_schema),
                )
            )
        return tuple(fields), tuple(nested)

    def _annotation(self, schema: Schema, *, hint: str) -> str:
        annotation = self._base_annotation(schema, hint=hint)
        if schema.meta.nullable:
            return optional_annotation(annotation)
        return annotation

    def _base_annotation(self, schema: Schema, *, hint: str) -> str:
        if isinstance(schema, BooleanSchema):
            return ANY_JSON_ANNOTATION if schema.value else NEVER_ANNOTATION
        if isinstance(schema, RefSchema):
            return self._ref_annotation(schema)
        if isinstance(schema, PrimitiveSchema):
            return self._primitive_annotation(schema)
        if isinstance(schema, EnumSchema):
            return _enum_annotation(schema)
        if isinstance(schema, ArraySchema):
            if schema.items is None:
                return f"list[{ANY_JSON_ANNOTATION}]"
            return f"list[{self._annotation(schema.items, hint=f'{hint}Item')}]"
        if isinstance(schema, UnionSchema):
            options = [
                self._annotation(option, hint=f"{hint}Option{index + 1}")
                for index, option in enumerate(schema.options)
            ]
            return make_union(options)
        if isinstance(schema, AllOfSchema):
            return self._all_of_annotation(schema, hint=hint)
        return self._object_annotation(schema, hint=hint)

    def _ref_annotation(self, schema: RefSchema) -> str:
        if schema.target.startswith(SCHEMA_REF_PREFIX) or schema.target.startswith("#/"):
            return self.lower_ref(schema.target, origin=schema.meta.path)
        raise RefResolutionError(
            f"Unresolved external reference {schema.target} at {schema.meta.path}"
        )

    def _primitive_annotation(self, schema: PrimitiveSchema) -> str:
        base = _PRIMITIVE_TYPES.get(schema.kind)
        if base is None:
            raise UnsupportedSchemaTypeError(
                f"Unsupported AsyncAPI data type '{schema.kind}' at {schema.meta.path}"
            )
        if schema.format is None:
            return base
        if schema.kind == "string":
            if schema.format == _BINARY_FORMAT:
                return self._file_content_record()
            return _STRING_FORMATS.get(schema.format, base)
        if schema.kind in ("integer", "number"):
            mapped = _NUMERIC_FORMATS.get(schema.format)
            if mapped is None:
                raise UnsupportedSchemaTypeError(
                    f"Unsupported AsyncAPI data type '{schema.kind}' with format "
                    f"'{schema.format}' at {schema.meta.path}"
                )
            return mapped
        return base

    def _object_annotation(self, schema: ObjectSchema, *, hint: str) -> str:
        if schema.properties or schema.additional is False:
            return self._inline_record(schema, hint=hint)
        if isinstance(schema.additional, bool) or schema.additional is None:
            return f"dict[str, {ANY_JSON_ANNOTATION}]"
        value_annotation = self._annotation(schema.additional, hint=f"{hint}Value")
        return f"dict[str, {value_annotation}]"

    def _all_of_annotation(self, schema: AllOfSchema, *, hint: str) -> str:
        if len(schema.parts) == 1:
            return self._annotation(schema.parts[0], hint=hint)
        merged = self._merge_all_of(schema)
        if merged is None:
            raise UnsupportedSchemaTypeError(
                f"allOf at {schema.meta.path} combines schemas that are not objects"
            )
        return self._inline_record(merged, hint=hint)

    def _merge_all_of(self, schema: AllOfSchema) -> Optional[ObjectSchema]:
        merged = merge_all_of_schema(
            schema.source,
            resolve_part=lambda part: self.resolve_raw(part, origin=schema.meta.path),
        )
        if merged is None:
            return None
        parsed = parse_schema(merged, path=schema.meta.path)
        return parsed if isinstance(parsed, ObjectSchema) else None

    def _inline_record(self, schema: ObjectSchema, *, hint: str) -> str:
        fields, nested = self._record_fields(owner=hint, schema=schema)
        key = _structural_key(fields, schema)
        existing = self._structural.get(key)
        if existing is not None:
            return existing
        name = self._names.claim_class(hint)
        self._structural[key] = name
        self._append(
            TypeDefinition(
                name=name,
                shape=TypeShape.RECORD,
                fields=fields,
                docstring=schema.meta.description,
                title=schema.meta.title,
                extra_behavior=_extra_behavior(schema.additional),
                sub_definitions=nested,
            )
        )
        return name

    def _file_content_record(self) -> str:
        definition = self._file_content_definition(FILE_CONTENT_TYPE_NAME)
        key = _structural_key(definition.fields, None)
        existing = self._structural.get(key)
        if existing is not None:
            return existing
        name = self._names.claim_class(FILE_CONTENT_TYPE_NAME)
        self._structural[key] = name
        self._append(
            TypeDefinition(
                name=name,
                shape=TypeShape.RECORD,
                fields=definition.fields,
                docstring=definition.docstring,
            )
        )
        return name

    @staticmethod
    def _file_content_definition(name: str) -> TypeDefinition:
        return TypeDefinition(
            name=name,
            shape=TypeShape.RECORD,
            fields=(
                FieldDef(
                    name="file_content",
                    source_name="fileContent",
                    annotation="bytes",
                    required=True,
                    default=None,
                ),
                FieldDef(
                    name="file_name",
                    source_name="fileName",
                    annotation="str",
                    required=True,
                    default=None,
                ),
            ),
            docstring="Binary upload content.",
        )

    def _append(self, definition: TypeDefinition) -> None:
        self._names.used.add(definition.name)
        self._graph.definitions[definition.name] = definition


def make_union(annotations: list[str]) -> str:
    """Combine member annotations into a single union annotation.

    ``JsonValue`` members (from ``true`` schemas) absorb the whole union and
    ``NoValue`` members (from ``false`` schemas) are dropped.
    """
    if ANY_JSON_ANNOTATION in annotations:
        return ANY_JSON_ANNOTATION
    deduped: list[str] = []
    for annotation in annotations:
        if annotation != NEVER_ANNOTATION and annotation not in deduped:
            deduped.append(annotation)
    if not deduped:
        return NEVER_ANNOTATION
    if len(deduped) == 1:
        return deduped[0]
    nullable = "None" in deduped
    members = [annotation for annotation in deduped if annotation != "None"]
    if nullable and len(members) == 1:
        return f"Optional[{members[0]}]"
    if nullable:
        return f"Optional[Union[{', '.join(members)}]]"
    return f"Union[{', '.join(members)}]"


def optional_annotation(annotation: str) -> str:
    if annotation.startswith("Optional[") or annotation in ("None", ANY_JSON_ANNOTATION):
        return annotation
    return f"Optional[{annotation}]"


def _enum_annotation(schema: EnumSchema) -> str:
    values = list(schema.values)
    if any(isinstance(value, (dict, list)) for value in values):
        return ANY_JSON_ANNOTATION
    literals = [value for value in values if value is not None]
    if not literals:
        return "None"
    annotation = f"Literal[{', '.join(repr(value) for value in literals)}]"
    if len(literals) != len(values):
        return f"Optional[{annotation}]"
    return annotation


def _extra_behavior(additional: object) -> str:
    if additional is False:
        return "forbid"
    return "allow"


def _field_name(source_name: str, used_names: set[str]) -> str:
    candidate = snake_case(source_name)
    if (
        candidate in _BASEMODEL_RESERVED
        or candidate in _ROOTMODEL_RESERVED
        or candidate in _BUILTIN_IDENTIFIER_RESERVED
    ):
        candidate = f"{candidate}_field"
    if candidate not in used_names:
        return candidate
    suffix = 2
    while f"{candidate}_{suffix}" in used_names:
        suffix += 1
    return f"{candidate}_{suffix}"


def _field_metadata(schema: Schema) -> MutableJSONObject:
    metadata: MutableJSONObject = {}
    if schema.meta.description:
        metadata["description"] = schema.meta.description
    if schema.meta.title:
        metadata["title"] = schema.meta.title
    extras = dict(schema.meta.extras)
    if "deprecated" in extras:
        metadata["deprecated"] = bool(extras.pop("deprecated"))
    if "examples" in extras and isinstance(extras["examples"], list):
        metadata["examples"] = extras.pop("examples")
    if extras:
        metadata["json_schema_extra"] = extras
    return metadata


def _structural_key(fields: tuple[FieldDef, ...], schema: Optional[ObjectSchema]) -> str:
    payload = {
        "fields": [
            [
                item.name,
                item.source_name,
                item.annotation,
                item.required,
                item.default,
                item.metadata,
            ]
            for item in fields
        ],
        "extra": _extra_behavior(schema.additional) if schema is not None else None,
        "doc": schema.meta.description if schema is not None else None,
    }
    return json.dumps(payload, sort_keys=True, default=str)


def _ref_path(ref: str) -> str:
    return "$." + ".".join(token for token in ref[2:].split("/") if token)
