"""Map classes of a service module to AsyncAPI component schemas."""

from __future__ import annotations

import ast
import logging
from typing import Optional

from .errors import UnsupportedSchemaTypeError
from .json_types import JSONValue, MutableJSONObject
from .model_types import SCHEMA_REF_PREFIX
from .service_parser import annotation_name

logger = logging.getLogger(__name__)

_SCALAR_SCHEMAS: dict[str, MutableJSONObject] = {
    "str": {"type": "string"},
    "int": {"type": "integer"},
    "float": {"type": "number", "format": "float"},
    "bool": {"type": "boolean"},
    "bytes": {"type": "string", "format": "byte"},
    "Decimal": {"type": "number", "format": "decimal"},
    "datetime": {"type": "string", "format": "date-time"},
    "date": {"type": "string", "format": "date"},
    "time": {"type": "string", "format": "time"},
    "UUID": {"type": "string", "format": "uuid"},
}
_ARRAY_CONTAINERS: frozenset[str] = frozenset(
    {"list", "List", "Sequence", "tuple", "Tuple", "set", "Set", "frozenset", "FrozenSet"}
)
_MAP_CONTAINERS: frozenset[str] = frozenset({"dict", "Dict", "Mapping", "MutableMapping"})
_ENUM_BASES: frozenset[str] = frozenset({"Enum", "StrEnum", "IntEnum"})
_TRANSPARENT_WRAPPERS: frozenset[str] = frozenset({"Annotated", "Required", "NotRequired", "Final"})


class ComponentMapper:
    """Collect schemas for the module classes reachable from service methods.

    The mapper owns ``schemas`` for one run; every class is converted at most
    once and referenced by ``$ref`` afterwards.
    """

    def __init__(self, classes: dict[str, ast.ClassDef]) -> None:
        self._classes = classes
        self.schemas: MutableJSONObject = {}

    def is_module_class(self, name: Optional[str]) -> bool:
        return name is not None and name in self._classes

    def ref_for(self, class_name: str) -> MutableJSONObject:
        """Return a ``$ref`` to ``class_name``, converting the class on first use."""
        if class_name not in self.schemas:
            # Reserve first so self-referencing classes terminate.
            self.schemas[class_name] = {}
            self.schemas[class_name] = self._class_schema(self._classes[class_name])
        return {"$ref": f"{SCHEMA_REF_PREFIX}{class_name}"}

    def schema_for(self, node: Optional[ast.expr], *, origin: str) -> tuple[JSONValue, bool]:
        """Convert an annotation to a schema.

        Args:
            node (Optional[ast.expr]): Annotation expression.
            origin (str): Location used in error messages.

        Returns:
            tuple[JSONValue, bool]: The schema and whether the annotation admits ``None``.
        """
        if node is None:
            return True, False
        if isinstance(node, ast.Constant):
            if node.value is None:
                return {"type": "null"}, True
            if isinstance(node.value, str):
                try:
                    parsed = ast.parse(node.value, mode="eval").body
                except SyntaxError as exc:
                    raise UnsupportedSchemaTypeError(
                        f"Unsupported annotation {node.value!r} at {origin}"
                    ) from exc
                return self.schema_for(parsed, origin=origin)

        name = annotation_name(node)
        if name is not None:
            return self._named_schema(name, origin=origin), False

        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return self._union([*_flatten_bit_or(node.left), *_flatten_bit_or(node.right)], origin=origin)

        if isinstance(node, ast.Subscript):
            return self._subscript_schema(node, origin=origin)

        raise UnsupportedSchemaTypeError(
            f"Unsupported annotation {ast.unparse(node)!r} at {origin}"
        )

    def _named_schema(self, name: str, *, origin: str) -> JSONValue:
        scalar = _SCALAR_SCHEMAS.get(name)
        if scalar is not None:
            return dict(scalar)
        if name in ("Any", "object", "JsonValue"):
            return True
        if name in _ARRAY_CONTAINERS:
            return {"type": "array"}
        if name in _MAP_CONTAINERS:
            return {"type": "object"}
        if name in self._classes:
            return self.ref_for(name)
        raise UnsupportedSchemaTypeError(f"Unsupported annotation type '{name}' at {origin}")

    def _subscript_schema(self, node: ast.Subscript, *, origin: str) -> tuple[JSONValue, bool]:
        container = annotation_name(node.value)
        arguments = list(node.slice.elts) if isinstance(node.slice, ast.Tuple) else [node.slice]

        if container == "Optional":
            schema, _ = self.schema_for(arguments[0], origin=origin)
            return schema, True
        if container == "Union":
            return self._union(arguments, origin=origin)
        if container in _TRANSPARENT_WRAPPERS:
            return self.schema_for(arguments[0], origin=origin)
        if container == "Literal":
            values = [item.value for item in arguments if isinstance(item, ast.Constant)]
            nullable = None in values
            return {"enum": [value for value in values if value is not None]}, nullable
        if container in _ARRAY_CONTAINERS:
            items, _ = self.schema_for(arguments[0], origin=f"{origin}[]")
            return {"type": "array", "items": items}, False
        if container in _MAP_CONTAINERS:
            value_node = arguments[1] if len(arguments) > 1 else None
            values, _ = self.schema_for(value_node, origin=f"{origin}{{}}")
            return {"type": "object", "additionalProperties": values}, False
        raise UnsupportedSchemaTypeError(
            f"Unsupported annotation {ast.unparse(node)!r} at {origin}"
        )

    def _union(self, members: list[ast.expr], *, origin: str) -> tuple[JSONValue, bool]:
        nullable = False
        options: list[JSONValue] = []
        for member in members:
            if isinstance(member, ast.Constant) and member.value is None:
                nullable = True
                continue
            schema, member_nullable = self.schema_for(member, origin=origin)
            nullable = nullable or member_nullable
            options.append(schema)
        if len(options) == 1:
            return options[0], nullable
        return {"oneOf": options}, nullable

    def _class_schema(self, node: ast.ClassDef) -> MutableJSONObject:
        bases = {annotation_name(base) for base in node.bases}
        if bases & _ENUM_BASES:
            return self._enum_schema(node)

        properties: MutableJSONObject = {}
        required: list[str] = []
        for item in node.body:
            if not isinstance(item, ast.AnnAssign) or not isinstance(item.target, ast.Name):
                continue
            if _is_class_var(item.annotation):
                continue
            field_name = item.target.id
            field_schema, nullable = self.schema_for(
                item.annotation, origin=f"{node.name}.{field_name}"
            )
            default = item.value
            if isinstance(default, ast.Constant) and default.value is not None and isinstance(
                field_schema, dict
            ):
                field_schema = {**field_schema, "default": default.value}
            properties[field_name] = field_schema
            if not nullable and item.value is None:
                required.append(field_name)

        schema: MutableJSONObject = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        description = ast.get_docstring(node)
        if description:
            schema["description"] = description
        logger.debug("Mapped class %s to a schema with %d properties", node.name, len(properties))
        return schema

    @staticmethod
    def _enum_schema(node: ast.ClassDef) -> MutableJSONObject:
        values: list[JSONValue] = []
        for item in node.body:
            if (
                isinstance(item, ast.Assign)
                and isinstance(item.value, ast.Constant)
                and isinstance(item.value.value, (str, int))
            ):
                values.append(item.value.value)
        schema: MutableJSONObject = {"enum": values}
        if values and all(isinstance(value, str) for value in values):
            schema = {"type": "string", "enum": values}
        description = ast.get_docstring(node)
        if description:
            schema["description"] = description
        return schema


def _is_class_var(node: ast.expr) -> bool:
    target = node.value if isinstance(node, ast.Subscript) else node
    return annotation_name(target) == "ClassVar"


def _flatten_bit_or(node: ast.expr) -> list[ast.expr]:
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return [*_flatten_bit_or(node.left), *_flatten_bit_or(node.right)]
    return [node]
