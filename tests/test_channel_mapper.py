"""Tests for deriving client surfaces from AsyncAPI channels."""

from __future__ import annotations

import pytest

from asyncapi_client_generator.channel_mapper import derive_client
from asyncapi_client_generator.errors import (
    ArrayPathParameterError,
    MissingExtensionError,
    UnsupportedSchemaTypeError,
)
from asyncapi_client_generator.model_types import (
    ClientDefinition,
    MethodKind,
    ResponseType,
    SpecDocument,
)
from asyncapi_client_generator.naming import NameRegistry
from asyncapi_client_generator.type_builder import TypeModelBuilder
from .fixture_helpers import inline_document, load_fixture


def _derive(document: SpecDocument, path: str) -> ClientDefinition:
    builder = TypeModelBuilder(document)
    builder.build_types()
    return derive_client(path, document.channels[path], builder, names=builder.names)


def _single_channel(channel: str) -> SpecDocument:
    return inline_document(
        f"""
asyncapi: 2.5.0
info: {{title: Channels, version: 1.0.0}}
channels:
{channel}
"""
    )


def test_chat_channel_methods() -> None:
    """Publish variants become ``do_`` methods and unpaired subscribe variants ``listen_``."""
    client = _derive(load_fixture("chat.yaml"), "/rooms/{roomId}")

    assert client.class_name == "RoomsClient"
    assert client.description == "A chat room."
    assert client.dispatcher is not None and client.dispatcher.key == "event"
    assert client.stream_id_key == "id"
    assert [method.name for method in client.methods] == [
        "do_send_message",
        "do_subscribe",
        "listen_notice",
    ]

    send, subscribe, notice = client.methods
    assert send.kind is MethodKind.PUBLISH
    assert send.payload is not None and send.payload.name == "send_message"
    assert send.payload.annotation == "SendMessage"
    assert send.response_annotation == "Ack"
    assert send.response_type is ResponseType.SIMPLE_RPC
    assert send.return_annotation == "Ack"
    assert (send.event_name, send.response_event_name) == ("send_message", "ack")
    assert send.description == "Post a message to the room."

    assert subscribe.response_type is ResponseType.STREAMING
    assert subscribe.return_annotation == "AsyncIterator[ChatEvent]"
    assert subscribe.response_event_name == "chat_event"

    assert notice.kind is MethodKind.LISTEN
    assert notice.payload is None
    assert notice.return_annotation == "AsyncIterator[Notice]"


def test_path_and_query_parameters() -> None:
    """Path parameters are positional and query bindings become optional keywords."""
    client = _derive(load_fixture("chat.yaml"), "/rooms/{roomId}")

    assert [(p.name, p.source_name, p.annotation) for p in client.path_parameters] == [
        ("room_id", "roomId", "str"),
    ]
    assert client.path_parameters[0].description == "Room identifier."
    assert [(p.name, p.annotation, p.required) for p in client.query_parameters] == [
        ("locale", "Optional[str]", False),
    ]


def test_event_identifier_routing_and_const_event_values() -> None:
    """A body event identifier routes by its path and const values name the events."""
    client = _derive(load_fixture("inventory.yaml"), "/stock/{warehouse}/{warehouseId}")

    assert client.class_name == "StockClient"
    assert client.dispatcher is not None and client.dispatcher.key == "kind"
    assert client.event_identifier is not None and client.event_identifier.type == "body"
    reserve = client.methods[0]
    assert reserve.event_name == "reserve-item"
    assert reserve.response_event_name == "reserved"
    assert [(p.name, p.annotation) for p in client.path_parameters] == [
        ("warehouse", "Literal['north', 'south']"),
        ("warehouse_id", "int"),
    ]
    assert [method.name for method in client.methods] == [
        "do_reserve",
        "do_upload",
        "listen_restocked",
    ]
    upload = client.methods[1]
    assert upload.response_annotation is None
    assert upload.return_annotation == "None"


def test_duplicate_path_parameter_names_get_distinct_identifiers() -> None:
    """Parameters that sanitize to the same identifier keep declaration order."""
    document = _single_channel(
        """
  /a/{itemId}/b/{item_id}:
    publish:
      message:
        name: Touch
        payload: {type: string}
"""
    )
    client = _derive(document, "/a/{itemId}/b/{item_id}")

    assert [(p.name, p.source_name) for p in client.path_parameters] == [
        ("item_id", "itemId"),
        ("item_id_1", "item_id"),
    ]


def test_array_path_parameter_is_rejected() -> None:
    """Array path parameters have no URL form and should fail generation."""
    document = _single_channel(
        """
  /tags/{tags}:
    parameters:
      tags:
        schema:
          type: array
          items: {type: string}
    publish:
      message:
        name: Touch
        payload: {type: string}
"""
    )
    with pytest.raises(ArrayPathParameterError) as excinfo:
        _derive(document, "/tags/{tags}")
    assert str(excinfo.value) == (
        "Generated clients don't support array type path parameters "
        "(parameter 'tags' in channel '/tags/{tags}')"
    )


def test_object_path_parameter_is_rejected() -> None:
    """Object path parameters should name the unsupported type."""
    document = _single_channel(
        """
  /things/{thing}:
    parameters:
      thing:
        schema:
          type: object
          properties:
            id: {type: string}
    publish:
      message:
        name: Touch
        payload: {type: string}
"""
    )
    with pytest.raises(UnsupportedSchemaTypeError, match="'object' for path parameter 'thing'"):
        _derive(document, "/things/{thing}")


def test_null_path_parameter_is_rejected() -> None:
    document = _single_channel(
        """
  /slots/{slot}:
    parameters:
      slot:
        schema: {type: "null"}
    publish:
      message:
        name: Touch
        payload: {type: string}
"""
    )
    with pytest.raises(UnsupportedSchemaTypeError, match="'null' for path parameter 'slot'"):
        _derive(document, "/slots/{slot}")


def test_multiple_tags_without_identifier_fail() -> None:
    """Several message kinds with no way to tell them apart should fail."""
    document = _single_channel(
        """
  /events:
    publish:
      message:
        oneOf:
          - name: Start
            payload: {type: string}
          - name: Stop
            payload: {type: string}
"""
    )
    with pytest.raises(MissingExtensionError, match="x-event-identifier"):
        _derive(document, "/events")


def test_single_tag_needs_no_dispatcher() -> None:
    """A channel with one message kind should not require routing metadata."""
    client = _derive(load_fixture("echo.yaml"), "/")

    assert client.class_name == "Client"
    assert client.dispatcher is None and client.event_identifier is None
    assert client.path_parameters == ()
    (ping,) = client.methods
    assert ping.name == "do_ping"
    assert ping.payload is not None and ping.payload.annotation == "Ping"


def test_colliding_method_names_get_suffixes() -> None:
    """Tags that map to the same method name should stay distinct."""
    document = _single_channel(
        """
  /ops:
    x-dispatcherKey: op
    publish:
      message:
        oneOf:
          - name: SendMessage
            payload: {type: string}
          - name: send_message
            payload: {type: integer}
    subscribe:
      message:
        name: SendMessage
        payload: {type: boolean}
"""
    )
    client = _derive(document, "/ops")

    assert [method.name for method in client.methods] == [
        "do_send_message",
        "do_send_message_1",
        "listen_send_message",
    ]


def test_client_class_names_share_the_type_registry() -> None:
    """A client class should not reuse a model class name."""
    document = inline_document(
        """
asyncapi: 2.5.0
info: {title: Clash, version: 1.0.0}
channels:
  /rooms:
    publish:
      message:
        payload: {$ref: '#/components/schemas/RoomsClient'}
components:
  schemas:
    RoomsClient:
      type: object
      properties:
        id: {type: string}
"""
    )
    client = _derive(document, "/rooms")

    assert client.class_name == "RoomsClient2"


def test_registry_defaults_when_not_shared() -> None:
    """Clients derived without a registry should still get names."""
    document = load_fixture("echo.yaml")
    builder = TypeModelBuilder(document)
    registry = NameRegistry()

    first = derive_client("/", document.channels["/"], builder, names=registry)
    second = derive_client("/", document.channels["/"], builder, names=registry)

    assert (first.class_name, second.class_name) == ("Client", "Client2")


def test_header_event_identifier_routes_outside_the_body() -> None:
    """A header identifier should not claim a body dispatcher key."""
    document = _single_channel(
        """
  /jobs:
    x-event-identifier:
      type: header
    publish:
      message:
        oneOf:
          - name: StartJob
            payload: {type: string}
          - name: StopJob
            payload: {type: string}
"""
    )
    client = _derive(document, "/jobs")

    assert client.dispatcher is None
    assert client.event_identifier is not None
    assert (client.event_identifier.type, client.event_identifier.path) == ("header", "event")
    assert [(method.name, method.event_name) for method in client.methods] == [
        ("do_start_job", "start_job"),
        ("do_stop_job", "stop_job"),
    ]
