"""Derive client method surfaces from AsyncAPI channels."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .errors import ArrayPathParameterError, SpecFormatError, UnsupportedSchemaTypeError
from .json_types import JSONObject, JSONValue
from .model_types import (
    MESSAGE_REF_PREFIX,
    SCHEMA_REF_PREFIX,
    ClientDefinition,
    ClientMethod,
    DispatcherConfig,
    EventIdentifier,
    MethodKind,
    ParameterDef,
    ResponseType,
)
from .naming import NameRegistry, channel_class_name, path_parameter_names, resolve_name, snake_case
from .normalizer import EVENT_IDENTIFIER_EXTENSION, extract_event_identifier
from .schema_model import ArraySchema, EnumSchema, PrimitiveSchema, parse_schema
from .type_builder import TypeModelBuilder, optional_annotation

logger = logging.getLogger(__name__)

DISPATCHER_KEY_EXTENSION = "x-dispatcherKey"
DISPATCHER_STREAM_ID_EXTENSION = "x-dispatcherStreamId"
RESPONSE_EXTENSION = "x-response"
RESPONSE_TYPE_EXTENSION = "x-response-type"

PUBLISH_METHOD_PREFIX = "do_"
LISTEN_METHOD_PREFIX = "listen_"

# Members every generated client defines; derived methods must not shadow them.
CLIENT_RESERVED_MEMBERS: frozenset[str] = frozenset(
    {"connect", "close", "send", "receive", "request", "stream", "self"}
)

_PATH_PARAMETER_TYPES: frozenset[str] = frozenset({"string", "integer", "number", "boolean"})


@dataclass(frozen=True)
class _MessageVariant:
    tag: str
    payload_annotation: Optional[str]
    response_tag: Optional[str]
    response_annotation: Optional[str]
    response_type: Optional[ResponseType]
    description: Optional[str]
    event_name: str
    response_event_name: Optional[str]


def derive_client(
    channel_path: str,
    channel: JSONObject,
    builder: TypeModelBuilder,
    *,
    names: Optional[NameRegistry] = None,
) -> ClientDefinition:
    """Build the client surface for one channel.

    Args:
        channel_path (str): Channel path, possibly with ``{name}`` parameters.
        channel (JSONObject): Channel item mapping.
        builder (TypeModelBuilder): Builder that owns the run's type graph.
        names (Optional[NameRegistry]): Registry of client class names already
            taken in this run.

    Returns:
        ClientDefinition: Class name, connect parameters, routing keys and methods.
    """
    registry = names if names is not None else NameRegistry()
    methods = derive_client_methods(channel_path, channel, builder)
    path_parameters = _path_parameters(channel_path, channel, builder)
    dispatcher, event_identifier = _dispatcher(channel_path, channel)
    stream_id = channel.get(DISPATCHER_STREAM_ID_EXTENSION)
    description = channel.get("description")
    return ClientDefinition(
        class_name=registry.claim_class(channel_class_name(channel_path)),
        channel_path=channel_path,
        description=description.strip() if isinstance(description, str) else None,
        path_parameters=path_parameters,
        query_parameters=_query_parameters(channel_path, channel, builder, path_parameters),
        dispatcher=dispatcher,
        event_identifier=event_identifier,
        stream_id_key=stream_id if isinstance(stream_id, str) and stream_id.strip() else None,
        methods=methods,
    )


def derive_client_methods(
    channel_path: str,
    channel: JSONObject,
    builder: TypeModelBuilder,
) -> tuple[ClientMethod, ...]:
    """Return one client method per message tag of a channel.

    Publish variants become ``do_<tag>`` methods. Subscribe variants that are
    not the response of a publish variant become ``listen_<tag>`` methods.
    """
    dispatcher, identifier = _dispatcher(channel_path, channel)
    key = dispatcher.key if dispatcher is not None else (identifier.path if identifier else None)
    path_parameters = _path_parameters(channel_path, channel, builder)
    parameter_names = ["self", *(parameter.name for parameter in path_parameters)]
    member_names: set[str] = set(CLIENT_RESERVED_MEMBERS)

    methods: list[ClientMethod] = []
    response_tags: set[str] = set()
    for variant in _operation_variants(channel_path, channel, "publish", builder, key):
        method_name = resolve_name(f"{PUBLISH_METHOD_PREFIX}{snake_case(variant.tag)}", member_names)
        member_names.add(method_name)
        payload = None
        if variant.payload_annotation is not None:
            payload = ParameterDef(
                name=resolve_name(variant.tag, parameter_names),
                source_name=variant.tag,
                annotation=variant.payload_annotation,
            )
        if variant.response_tag is not None:
            response_tags.add(variant.response_tag)
        methods.append(
            ClientMethod(
                name=method_name,
                tag=variant.tag,
                kind=MethodKind.PUBLISH,
                path_parameters=path_parameters,
                payload=payload,
                payload_type=variant.payload_annotation,
                response_type=variant.response_type,
                response_tag=variant.response_tag,
                response_annotation=variant.response_annotation,
                description=variant.description,
                event_name=variant.event_name,
                response_event_name=variant.response_event_name,
            )
        )

    for variant in _operation_variants(channel_path, channel, "subscribe", builder, key):
        if variant.tag in response_tags or variant.payload_annotation is None:
            continue
        method_name = resolve_name(f"{LISTEN_METHOD_PREFIX}{snake_case(variant.tag)}", member_names)
        member_names.add(method_name)
        methods.append(
            ClientMethod(
                name=method_name,
                tag=variant.tag,
                kind=MethodKind.LISTEN,
                path_parameters=path_parameters,
                payload=None,
                payload_type=None,
                response_type=ResponseType.STREAMING,
                response_tag=variant.tag,
                response_annotation=variant.payload_annotation,
                description=variant.description,
                event_name=variant.event_name,
                response_event_name=variant.event_name,
            )
        )
    logger.debug("Derived %d methods for channel %s", len(methods), channel_path)
    return tuple(methods)


def message_tags(channel: JSONObject, operation: str) -> list[str]:
    """Return the tags of the message variants of an operation in declaration order."""
    operation_node = channel.get(operation)
    if not isinstance(operation_node, dict):
        return []
    return [
        _tag_of(message, fallback=f"{operation}Message") or f"{operation}Message"
        for message in _raw_variants(operation_node)
    ]


def _path_parameters(
    channel_path: str,
    channel: JSONObject,
    builder: TypeModelBuilder,
) -> tuple[ParameterDef, ...]:
    declared = channel.get("parameters")
    declared = declared if isinstance(declared, dict) else {}
    taken: list[str] = ["self"]
    parameters: list[ParameterDef] = []
    for raw_name in path_parameter_names(channel_path):
        node = builder.resolve_raw(declared.get(raw_name, {}), origin=f"$.channels.{channel_path}")
        node = node if isinstance(node, dict) else {}
        name = resolve_name(raw_name, taken)
        taken.append(name)
        description = node.get("description")
        parameters.append(
            ParameterDef(
                name=name,
                source_name=raw_name,
                annotation=_path_parameter_annotation(channel_path, raw_name, node, builder),
                description=description if isinstance(description, str) else None,
            )
        )
    return tuple(parameters)


def _path_parameter_annotation(
    channel_path: str,
    raw_name: str,
    parameter: JSONObject,
    builder: TypeModelBuilder,
) -> str:
    origin = f"$.channels.{channel_path}.parameters.{raw_name}.schema"
    raw_schema = parameter.get("schema")
    if raw_schema is None:
        return "str"
    resolved = builder.resolve_raw(raw_schema, origin=origin)
    schema = parse_schema(resolved, path=origin)
    if isinstance(schema, ArraySchema):
        raise ArrayPathParameterError(
            "Generated clients don't support array type path parameters "
            f"(parameter '{raw_name}' in channel '{channel_path}')"
        )
    if isinstance(schema, PrimitiveSchema) and schema.kind in _PATH_PARAMETER_TYPES:
        return builder.lower(resolved, hint=raw_name, path=origin)
    if isinstance(schema, EnumSchema):
        return builder.lower(resolved, hint=raw_name, path=origin)
    kind = schema.kind if isinstance(schema, PrimitiveSchema) else _raw_type(resolved)
    raise UnsupportedSchemaTypeError(
        f"Unsupported AsyncAPI data type '{kind}' for path parameter '{raw_name}' "
        f"in channel '{channel_path}'"
    )


def _query_parameters(
    channel_path: str,
    channel: JSONObject,
    builder: TypeModelBuilder,
    path_parameters: tuple[ParameterDef, ...],
) -> tuple[ParameterDef, ...]:
    bindings = channel.get("bindings")
    websocket = bindings.get("ws") if isinstance(bindings, dict) else None
    query = websocket.get("query") if isinstance(websocket, dict) else None
    if not isinstance(query, dict):
        return ()
    origin = f"$.channels.{channel_path}.bindings.ws.query"
    query = builder.resolve_raw(query, origin=origin)
    properties = query.get("properties") if isinstance(query, dict) else None
    if not isinstance(properties, dict):
        return ()
    required = query.get("required")
    required_names = set(required) if isinstance(required, list) else set()
    taken = [parameter.name for parameter in path_parameters]
    parameters: list[ParameterDef] = []
    for raw_name, raw_schema in properties.items():
        name = resolve_name(raw_name, taken)
        taken.append(name)
        annotation = builder.lower(raw_schema, hint=raw_name, path=f"{origin}.properties.{raw_name}")
        is_required = raw_name in required_names
        description = raw_schema.get("description") if isinstance(raw_schema, dict) else None
        parameters.append(
            ParameterDef(
                name=name,
                source_name=raw_name,
                annotation=annotation if is_required else optional_annotation(annotation),
                required=is_required,
                description=description if isinstance(description, str) else None,
            )
        )
    return tuple(parameters)


def _dispatcher(
    channel_path: str,
    channel: JSONObject,
) -> tuple[Optional[DispatcherConfig], Optional[EventIdentifier]]:
    key = channel.get(DISPATCHER_KEY_EXTENSION)
    if isinstance(key, str) and key.strip():
        return DispatcherConfig(key=key.strip()), None

    distinct_tags = set(message_tags(channel, "publish")) | set(message_tags(channel, "subscribe"))
    if len(distinct_tags) <= 1 and EVENT_IDENTIFIER_EXTENSION not in channel:
        return None, None

    identifier = extract_event_identifier(channel_path, channel)
    if identifier.type == "body":
        return DispatcherConfig(key=identifier.path), identifier
    return None, identifier


def _operation_variants(
    channel_path: str,
    channel: JSONObject,
    operation: str,
    builder: TypeModelBuilder,
    dispatcher_key: Optional[str],
) -> list[_MessageVariant]:
    operation_node = channel.get(operation)
    if not isinstance(operation_node, dict):
        return []
    origin = f"$.channels.{channel_path}.{operation}.message"
    variants: list[_MessageVariant] = []
    for index, raw_message in enumerate(_raw_variants(operation_node)):
        tag = _tag_of(raw_message, fallback=None)
        message = builder.resolve_raw(raw_message, origin=f"{origin}[{index}]")
        if not isinstance(message, dict):
            raise SpecFormatError(f"Message at {origin}[{index}] must be a mapping")
        if tag is None:
            tag = _tag_of(message, fallback=None) or _payload_tag(message) or f"{operation}Message"
        variants.append(
            _variant(tag, message, builder, dispatcher_key, origin=f"{origin}[{index}]")
        )
    return variants


def _variant(
    tag: str,
    message: JSONObject,
    builder: TypeModelBuilder,
    dispatcher_key: Optional[str],
    *,
    origin: str,
) -> _MessageVariant:
    payload_annotation = _payload_annotation(tag, message, builder, origin=origin)

    raw_response = message.get(RESPONSE_EXTENSION)
    response_tag: Optional[str] = None
    response_annotation: Optional[str] = None
    response_type: Optional[ResponseType] = None
    response_event_name: Optional[str] = None
    if raw_response is not None:
        response_origin = f"{origin}.{RESPONSE_EXTENSION}"
        response = builder.resolve_raw(raw_response, origin=response_origin)
        if not isinstance(response, dict):
            raise SpecFormatError(f"{RESPONSE_EXTENSION} at {response_origin} must be a mapping")
        response_tag = (
            _tag_of(raw_response, fallback=None)
            or _tag_of(response, fallback=None)
            or _payload_tag(response)
            or f"{tag}Response"
        )
        response_annotation = _payload_annotation(
            response_tag, response, builder, origin=response_origin
        )
        response_type = _response_type(message, origin=origin)
        response_event_name = _event_name(
            response_tag, response, builder, dispatcher_key, origin=response_origin
        )

    description = message.get("description") or message.get("summary")
    return _MessageVariant(
        tag=tag,
        payload_annotation=payload_annotation,
        response_tag=response_tag,
        response_annotation=response_annotation,
        response_type=response_type,
        description=description.strip() if isinstance(description, str) else None,
        event_name=_event_name(tag, message, builder, dispatcher_key, origin=origin),
        response_event_name=response_event_name,
    )


def _event_name(
    tag: str,
    message: JSONObject,
    builder: TypeModelBuilder,
    dispatcher_key: Optional[str],
    *,
    origin: str,
) -> str:
    """Return the dispatcher value that identifies a message on the wire.

    A payload property named like the dispatcher key with a single ``const`` or
    ``enum`` value wins; otherwise the snake_case tag is used.
    """
    if dispatcher_key is not None:
        payload = builder.resolve_raw(message.get("payload"), origin=f"{origin}.payload")
        properties = payload.get("properties") if isinstance(payload, dict) else None
        if isinstance(properties, dict) and dispatcher_key in properties:
            routing = builder.resolve_raw(properties[dispatcher_key], origin=f"{origin}.payload")
            if isinstance(routing, dict):
                if isinstance(routing.get("const"), str):
                    return routing["const"]
                enum = routing.get("enum")
                if isinstance(enum, list) and len(enum) == 1 and isinstance(enum[0], str):
                    return enum[0]
    return snake_case(tag)


def _response_type(message: JSONObject, *, origin: str) -> ResponseType:
    raw = message.get(RESPONSE_TYPE_EXTENSION, ResponseType.SIMPLE_RPC.value)
    try:
        return ResponseType(raw)
    except ValueError as exc:
        valid = ", ".join(member.value for member in ResponseType)
        raise SpecFormatError(
            f"{RESPONSE_TYPE_EXTENSION} at {origin} must be one of {valid}, got {raw!r}"
        ) from exc


def _payload_annotation(
    tag: str,
    message: JSONObject,
    builder: TypeModelBuilder,
    *,
    origin: str,
) -> Optional[str]:
    payload = message.get("payload")
    if payload is None:
        return None
    payload_origin = f"{origin}.payload"
    if isinstance(payload, dict) and isinstance(payload.get("$ref"), str):
        return builder.lower_ref(payload["$ref"], origin=payload_origin)
    if isinstance(payload, dict) and (
        payload.get("type") == "object" or isinstance(payload.get("properties"), dict)
    ):
        # Inline object payloads become named component schemas keyed by tag.
        return builder.add_component_schema(tag, payload, origin=payload_origin)
    return builder.lower(payload, hint=tag, path=payload_origin)


def _raw_variants(operation_node: JSONObject) -> list[JSONValue]:
    message = operation_node.get("message")
    if message is None:
        return []
    if isinstance(message, dict) and isinstance(message.get("oneOf"), list):
        return list(message["oneOf"])
    return [message]


def _tag_of(message: JSONValue, *, fallback: Optional[str]) -> Optional[str]:
    if isinstance(message, dict):
        ref = message.get("$ref")
        if isinstance(ref, str) and ref.startswith(MESSAGE_REF_PREFIX):
            return ref[len(MESSAGE_REF_PREFIX) :]
        for key in ("name", "title"):
            value = message.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return fallback


def _payload_tag(message: JSONObject) -> Optional[str]:
    payload = message.get("payload")
    if isinstance(payload, dict):
        ref = payload.get("$ref")
        if isinstance(ref, str) and ref.startswith(SCHEMA_REF_PREFIX):
            return ref[len(SCHEMA_REF_PREFIX) :]
    return None


def _raw_type(node: JSONValue) -> str:
    if isinstance(node, dict):
        schema_type = node.get("type")
        if isinstance(schema_type, str):
            return schema_type
        for keyword in ("oneOf", "anyOf", "allOf"):
            if keyword in node:
                return keyword
    return "object"
