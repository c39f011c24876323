"""Tests for lowering AsyncAPI schemas into type definitions."""

from __future__ import annotations

import pytest

from asyncapi_client_generator.errors import UnsupportedSchemaTypeError
from asyncapi_client_generator.model_types import SpecDocument, TypeShape
from asyncapi_client_generator.type_builder import (
    FILE_CONTENT_TYPE_NAME,
    NEVER_ANNOTATION,
    TypeModelBuilder,
    make_union,
)
from .fixture_helpers import inline_document, load_fixture


def _document(schemas: str) -> SpecDocument:
    return inline_document(
        f"""
asyncapi: 2.5.0
info: {{title: Types, version: 1.0.0}}
channels: {{}}
components:
  schemas:
{schemas}
"""
    )


def _fields(builder: TypeModelBuilder, name: str) -> dict[str, tuple[str, bool]]:
    definition = builder.graph.definitions[name]
    return {field.name: (field.annotation, field.required) for field in definition.fields}


def test_primitive_and_format_mapping() -> None:
    """Scalar types and formats should map to Python annotations."""
    document = _document(
        """
    Sample:
      type: object
      required: [count, ratio, flag, label, stamp, day, code, amount, raw]
      properties:
        count: {type: integer, format: int64}
        ratio: {type: number, format: double}
        flag: {type: boolean}
        label: {type: string}
        stamp: {type: string, format: date-time}
        day: {type: string, format: date}
        code: {type: string, format: uuid}
        amount: {type: number, format: decimal}
        raw: {type: string, format: byte}
        unknownFormat: {type: string, format: hostname}
"""
    )
    builder = TypeModelBuilder(document)
    builder.build_types()

    assert _fields(builder, "Sample") == {
        "count": ("int", True),
        "ratio": ("float", True),
        "flag": ("bool", True),
        "label": ("str", True),
        "stamp": ("datetime", True),
        "day": ("date", True),
        "code": ("UUID", True),
        "amount": ("Decimal", True),
        "raw": ("bytes", True),
        "unknown_format": ("Optional[str]", False),
    }


def test_unsupported_type_names_the_type() -> None:
    """An unknown schema type should fail with the offending type name."""
    document = _document(
        """
    Odd:
      type: object
      properties:
        when: {type: integer, format: timestamp}
"""
    )
    with pytest.raises(UnsupportedSchemaTypeError, match="'integer' with format 'timestamp'"):
        TypeModelBuilder(document).build_types()


def test_building_twice_is_deterministic() -> None:
    """Two builders over the same document should produce identical graphs."""
    first = TypeModelBuilder(load_fixture("inventory.yaml"))
    second = TypeModelBuilder(load_fixture("inventory.yaml"))

    assert first.build_types().ordered() == second.build_types().ordered()


def test_reference_cycles_produce_one_definition_each() -> None:
    """Mutually recursive schemas should each be defined exactly once."""
    document = _document(
        """
    Node:
      type: object
      properties:
        children:
          type: array
          items: {$ref: '#/components/schemas/Node'}
        owner: {$ref: '#/components/schemas/Owner'}
    Owner:
      type: object
      properties:
        nodes:
          type: array
          items: {$ref: '#/components/schemas/Node'}
"""
    )
    builder = TypeModelBuilder(document)
    graph = builder.build_types()

    assert sorted(graph.definitions) == ["Node", "Owner"]
    assert _fields(builder, "Node")["children"] == ("Optional[list[Node]]", False)
    assert _fields(builder, "Owner")["nodes"] == ("Optional[list[Node]]", False)


def test_binary_fields_share_one_file_content_type() -> None:
    """Every binary string should reuse a single file content record."""
    builder = TypeModelBuilder(load_fixture("inventory.yaml"))
    graph = builder.build_types()

    file_types = [name for name in graph.definitions if name.startswith(FILE_CONTENT_TYPE_NAME)]
    assert file_types == [FILE_CONTENT_TYPE_NAME]
    assert _fields(builder, "Upload") == {
        "manifest": (FILE_CONTENT_TYPE_NAME, True),
        "attachment": (f"Optional[{FILE_CONTENT_TYPE_NAME}]", False),
    }
    assert _fields(builder, FILE_CONTENT_TYPE_NAME) == {
        "file_content": ("bytes", True),
        "file_name": ("str", True),
    }


def test_structurally_identical_inline_objects_are_merged() -> None:
    """Identical anonymous objects should be emitted once."""
    document = _document(
        """
    Order:
      type: object
      properties:
        billing:
          type: object
          properties:
            street: {type: string}
        shipping:
          type: object
          properties:
            street: {type: string}
"""
    )
    builder = TypeModelBuilder(document)
    graph = builder.build_types()

    fields = _fields(builder, "Order")
    assert fields["billing"] == fields["shipping"]
    assert len(graph) == 2


def test_inline_objects_differing_in_field_docs_stay_apart() -> None:
    """Field descriptions are emitted, so objects that differ only there are not merged."""
    document = _document(
        """
    Order:
      type: object
      properties:
        billing:
          type: object
          properties:
            street: {type: string, description: Where the invoice goes.}
        shipping:
          type: object
          properties:
            street: {type: string, description: Where the parcel goes.}
"""
    )
    builder = TypeModelBuilder(document)
    graph = builder.build_types()

    fields = _fields(builder, "Order")
    assert fields["billing"] != fields["shipping"]
    assert len(graph) == 3


def test_boolean_schemas_inside_unions() -> None:
    """``true`` should absorb a union and ``false`` should be dropped."""
    assert make_union(["str", "JsonValue"]) == "JsonValue"
    assert make_union(["str", NEVER_ANNOTATION]) == "str"
    assert make_union([NEVER_ANNOTATION, NEVER_ANNOTATION]) == NEVER_ANNOTATION
    assert make_union(["str", "None"]) == "Optional[str]"
    assert make_union(["str", "int", "None"]) == "Optional[Union[str, int]]"


def test_false_schema_becomes_marker() -> None:
    """A ``false`` component should become a marker accepting no value."""
    document = _document(
        """
    Nothing: false
    Anything: true
"""
    )
    graph = TypeModelBuilder(document).build_types()

    assert graph.definitions["Nothing"].shape is TypeShape.MARKER
    assert graph.definitions["Nothing"].root_annotation == NEVER_ANNOTATION
    assert graph.definitions["Anything"].root_annotation == "JsonValue"


def test_enums_and_nullable_types() -> None:
    """Enums should become literals and nullable types optional."""
    builder = TypeModelBuilder(load_fixture("inventory.yaml"))
    builder.build_types()

    reserve = _fields(builder, "Reserve")
    assert reserve["kind"] == ("Literal['reserve-item']", True)
    assert reserve["quantity"] == ("int", True)
    assert reserve["note"] == ("Optional[str]", False)
    assert reserve["item"] == ("Item", True)
    assert _fields(builder, "Reserved")["price"] == ("Optional[Decimal]", False)


def test_all_of_parts_are_merged_into_one_record() -> None:
    """``allOf`` object parts should be flattened into a single record."""
    document = _document(
        """
    Base:
      type: object
      required: [id]
      properties:
        id: {type: string}
    Extended:
      allOf:
        - $ref: '#/components/schemas/Base'
        - type: object
          properties:
            extra: {type: integer}
"""
    )
    builder = TypeModelBuilder(document)
    builder.build_types()

    assert _fields(builder, "Extended") == {
        "id": ("str", True),
        "extra": ("Optional[int]", False),
    }


def test_reserved_field_names_are_renamed() -> None:
    """Properties clashing with pydantic or builtin names should be suffixed."""
    document = _document(
        """
    Clash:
      type: object
      properties:
        schema: {type: string}
        date: {type: string}
        model_dump: {type: string}
"""
    )
    builder = TypeModelBuilder(document)
    builder.build_types()

    definition = builder.graph.definitions["Clash"]
    names = {field.source_name: field.name for field in definition.fields}
    assert names == {"schema": "schema_field", "date": "date_field", "model_dump": "model_dump_field"}


def test_schema_names_do_not_shadow_imported_names() -> None:
    """A component named like an imported helper should get a new name."""
    document = _document(
        """
    Field:
      type: object
      properties:
        name: {type: string}
"""
    )
    graph = TypeModelBuilder(document).build_types()

    assert "Field" not in graph.definitions
    assert graph.name_for_ref("#/components/schemas/Field") == "Field2"
