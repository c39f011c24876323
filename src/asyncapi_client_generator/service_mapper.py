"""Generate AsyncAPI documents from Python WebSocket service modules."""

from __future__ import annotations

import ast
import logging
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from .component_mapper import ComponentMapper
from .errors import DispatcherConfigError, DispatcherFailure, SpecFormatError
from .json_types import JSONValue, MutableJSONObject
from .model_types import MESSAGE_REF_PREFIX, DispatcherConfig, ResponseType
from .naming import class_name, path_parameter_names, snake_case
from .service_parser import (
    REMOTE_METHOD_PREFIX,
    ROOT_SEGMENT,
    SERVICE_CONFIG_KIND,
    AnnotationShape,
    ServiceDeclaration,
    ServiceMethod,
    ServiceParameter,
    ServiceResource,
    annotation_name,
    classify_annotation,
    decorator_call,
    parse_service_module,
)
from .spec_models import AsyncAPIDocument

logger = logging.getLogger(__name__)

ASYNCAPI_VERSION = "2.5.0"
DEFAULT_API_VERSION = "0.1.0"
DISPATCHER_KEY_FIELD = "dispatcher_key"
DISPATCHER_STREAM_ID_FIELD = "dispatcher_stream_id"
DISPATCHER_KEY_EXTENSION = "x-dispatcherKey"
DISPATCHER_STREAM_ID_EXTENSION = "x-dispatcherStreamId"
RESPONSE_EXTENSION = "x-response"
RESPONSE_TYPE_EXTENSION = "x-response-type"

_NO_ANNOTATION = "No annotation is present on the service declaration"
_NO_SERVICE_CONFIG = (
    f"No websocket:{SERVICE_CONFIG_KIND} annotation is present on the service declaration"
)
_NO_DISPATCHER_KEY = (
    f"{DISPATCHER_KEY_FIELD} field is not present in the websocket:{SERVICE_CONFIG_KIND} annotation"
)
_EMPTY_DISPATCHER_KEY = f"{DISPATCHER_KEY_FIELD} value cannot be empty"


@dataclass
class ChannelSet:
    """Channels and the components they reference."""

    channels: MutableJSONObject = field(default_factory=dict)
    messages: MutableJSONObject = field(default_factory=dict)
    schemas: MutableJSONObject = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class GeneratedSpec:
    """An AsyncAPI document generated from a service module."""

    document: MutableJSONObject
    service_name: str
    warnings: tuple[str, ...]


def extract_dispatcher_config(service: ast.ClassDef) -> DispatcherConfig:
    """Read the dispatcher key from ``@websocket.ServiceConfig(dispatcher_key=...)``.

    Raises:
        DispatcherConfigError: With a distinct ``reason`` for a missing decorator
            list, a missing ``ServiceConfig`` decorator, a missing key field or an
            empty key.
    """
    call = _service_config_call(service)
    value = _keyword_text(call, DISPATCHER_KEY_FIELD)
    if value is None:
        raise DispatcherConfigError(DispatcherFailure.MISSING_DISPATCHER_KEY, _NO_DISPATCHER_KEY)
    key = _strip_quotes(value)
    if not key:
        raise DispatcherConfigError(DispatcherFailure.EMPTY_DISPATCHER_KEY, _EMPTY_DISPATCHER_KEY)
    return DispatcherConfig(key=key)


def extract_stream_id_key(service: ast.ClassDef) -> Optional[str]:
    """Return the optional ``dispatcher_stream_id`` of the service config."""
    call = _service_config_call(service)
    value = _keyword_text(call, DISPATCHER_STREAM_ID_FIELD)
    if value is None:
        return None
    return _strip_quotes(value) or None


def derive_channels(
    declaration: ServiceDeclaration,
    dispatcher: DispatcherConfig,
    *,
    stream_id_key: Optional[str] = None,
) -> ChannelSet:
    """Derive channels, messages and schemas for every resource of a service.

    Args:
        declaration (ServiceDeclaration): Parsed service module.
        dispatcher (DispatcherConfig): Routing key of the service.
        stream_id_key (Optional[str]): Optional response correlation key.

    Returns:
        ChannelSet: Channels keyed by path with their components and any warnings.
    """
    result = ChannelSet()
    mapper = ComponentMapper(declaration.classes)
    for resource in declaration.resources:
        path = channel_path(resource.segments)
        channel: MutableJSONObject = {}
        if resource.docstring:
            channel["description"] = resource.docstring
        channel.update(_resource_parameters(path, resource, mapper, result.warnings))

        publish_variants: list[JSONValue] = []
        subscribe_variants: list[JSONValue] = []
        if resource.service_class is None or not mapper.is_module_class(resource.service_class):
            result.warnings.append(
                f"Resource {resource.name} does not return a service class declared in the module"
            )
            methods: tuple[ServiceMethod, ...] = ()
        else:
            methods = declaration.remote_methods(resource.service_class)

        for method in methods:
            _map_remote_method(
                method,
                mapper=mapper,
                result=result,
                publish_variants=publish_variants,
                subscribe_variants=subscribe_variants,
            )

        if subscribe_variants:
            channel["subscribe"] = {"message": {"oneOf": subscribe_variants}}
        if publish_variants:
            channel["publish"] = {"message": {"oneOf": publish_variants}}
        channel[DISPATCHER_KEY_EXTENSION] = dispatcher.key
        if stream_id_key is not None:
            channel[DISPATCHER_STREAM_ID_EXTENSION] = stream_id_key
        result.channels[path] = channel
        logger.debug(
            "Mapped resource %s to channel %s with %d publish variants",
            resource.name,
            path,
            len(publish_variants),
        )
    result.schemas.update(mapper.schemas)
    return result


def generate_spec(module_path: Path) -> GeneratedSpec:
    """Generate an AsyncAPI document for the service declared in ``module_path``."""
    declaration = parse_service_module(module_path)
    return generate_spec_from_declaration(declaration)


def generate_spec_from_declaration(declaration: ServiceDeclaration) -> GeneratedSpec:
    """Generate an AsyncAPI document for an already parsed service module."""
    dispatcher = extract_dispatcher_config(declaration.service)
    channel_set = derive_channels(
        declaration,
        dispatcher,
        stream_id_key=extract_stream_id_key(declaration.service),
    )
    info: MutableJSONObject = {"title": declaration.title, "version": DEFAULT_API_VERSION}
    if declaration.description:
        info["description"] = declaration.description
    document: MutableJSONObject = {
        "asyncapi": ASYNCAPI_VERSION,
        "info": info,
        "channels": channel_set.channels,
    }
    components: MutableJSONObject = {}
    if channel_set.schemas:
        components["schemas"] = channel_set.schemas
    if channel_set.messages:
        components["messages"] = channel_set.messages
    if components:
        document["components"] = components

    try:
        AsyncAPIDocument.model_validate(document)
    except ValidationError as exc:
        raise SpecFormatError(f"Generated AsyncAPI document is invalid: {exc}") from exc
    for warning in channel_set.warnings:
        logger.warning(warning)
    return GeneratedSpec(
        document=document,
        service_name=declaration.title,
        warnings=tuple(channel_set.warnings),
    )


def channel_path(segments: tuple[str, ...]) -> str:
    """Join resource path segments into a channel path."""
    parts = [segment.strip("/") for segment in segments if segment.strip("/")]
    if not parts or parts == [ROOT_SEGMENT]:
        return "/"
    return "/" + "/".join(parts)


def _map_remote_method(
    method: ServiceMethod,
    *,
    mapper: ComponentMapper,
    result: ChannelSet,
    publish_variants: list[JSONValue],
    subscribe_variants: list[JSONValue],
) -> None:
    tag = class_name(method.name[len(REMOTE_METHOD_PREFIX) :])
    payload_parameter = _payload_parameter(tag, method, mapper)
    if payload_parameter is None:
        warning = (
            f"Remote method {method.name} (line {method.lineno}) has no parameter typed with a "
            "class declared in the module and was skipped"
        )
        result.warnings.append(warning)
        return

    payload_class = classify_annotation(payload_parameter.annotation).name
    message: MutableJSONObject = {"payload": mapper.ref_for(payload_class)}
    if method.docstring:
        message["description"] = method.docstring
    publish_variants.append({"$ref": f"{MESSAGE_REF_PREFIX}{tag}"})

    returned = classify_annotation(method.returns)
    if returned.shape is AnnotationShape.NAMED or (
        returned.shape is AnnotationShape.STREAM and mapper.is_module_class(returned.name)
    ):
        response_type = (
            ResponseType.STREAMING
            if returned.shape is AnnotationShape.STREAM
            else ResponseType.SIMPLE_RPC
        )
        reference = {"$ref": f"{MESSAGE_REF_PREFIX}{returned.name}"}
        response_schema, _ = mapper.schema_for(
            ast.Name(id=returned.name), origin=f"{method.name} return type"
        )
        result.messages.setdefault(returned.name, {"payload": response_schema})
        message[RESPONSE_EXTENSION] = dict(reference)
        message[RESPONSE_TYPE_EXTENSION] = response_type.value
        if reference not in subscribe_variants:
            subscribe_variants.append(reference)
    elif returned.shape in (AnnotationShape.STREAM, AnnotationShape.SCALAR):
        response_type = (
            ResponseType.STREAMING
            if returned.shape is AnnotationShape.STREAM
            else ResponseType.SIMPLE_RPC
        )
        schema, _ = mapper.schema_for(
            ast.Name(id=returned.name), origin=f"{method.name} return type"
        )
        response: MutableJSONObject = {"name": f"{tag}Response", "payload": schema}
        message[RESPONSE_EXTENSION] = response
        message[RESPONSE_TYPE_EXTENSION] = response_type.value
        subscribe_variants.append(deepcopy(response))
    result.messages[tag] = message


def _payload_parameter(
    tag: str,
    method: ServiceMethod,
    mapper: ComponentMapper,
) -> Optional[ServiceParameter]:
    candidates = [
        parameter
        for parameter in method.parameters
        if classify_annotation(parameter.annotation).shape is AnnotationShape.NAMED
        and mapper.is_module_class(classify_annotation(parameter.annotation).name)
    ]
    for parameter in candidates:
        if classify_annotation(parameter.annotation).name == tag:
            return parameter
    for parameter in candidates:
        if snake_case(parameter.name) == snake_case(tag):
            return parameter
    return candidates[0] if candidates else None


def _resource_parameters(
    path: str,
    resource: ServiceResource,
    mapper: ComponentMapper,
    warnings: list[str],
) -> MutableJSONObject:
    path_names = set(path_parameter_names(path))
    parameters: MutableJSONObject = {}
    query_properties: MutableJSONObject = {}
    query_required: list[str] = []
    for parameter in resource.parameters:
        classified = classify_annotation(_without_none(parameter.annotation))
        origin = f"{resource.name}.{parameter.name}"
        if parameter.name in path_names:
            schema, _ = mapper.schema_for(parameter.annotation or ast.Name(id="str"), origin=origin)
            parameters[parameter.name] = {"schema": schema}
            continue
        if classified.shape is not AnnotationShape.SCALAR:
            warnings.append(
                f"Resource parameter {origin} is not a scalar query parameter and was ignored"
            )
            continue
        schema, nullable = mapper.schema_for(parameter.annotation, origin=origin)
        query_properties[parameter.name] = schema
        if not nullable and not parameter.has_default:
            query_required.append(parameter.name)

    mapped: MutableJSONObject = {}
    missing = sorted(path_names - set(parameters))
    for name in missing:
        parameters[name] = {"schema": {"type": "string"}}
    if parameters:
        mapped["parameters"] = parameters
    if query_properties:
        query: MutableJSONObject = {"type": "object", "properties": query_properties}
        if query_required:
            query["required"] = query_required
        mapped["bindings"] = {"ws": {"query": query}}
    return mapped


def _service_config_call(service: ast.ClassDef) -> ast.Call:
    if not service.decorator_list:
        raise DispatcherConfigError(DispatcherFailure.MISSING_ANNOTATION, _NO_ANNOTATION)
    for decorator in service.decorator_list:
        call = decorator_call(decorator, SERVICE_CONFIG_KIND)
        if call is not None:
            return call
    raise DispatcherConfigError(DispatcherFailure.MISSING_SERVICE_CONFIG, _NO_SERVICE_CONFIG)


def _keyword_text(call: ast.Call, name: str) -> Optional[str]:
    for keyword in call.keywords:
        if keyword.arg != name:
            continue
        if isinstance(keyword.value, ast.Constant) and isinstance(keyword.value.value, str):
            return keyword.value.value
        return ast.unparse(keyword.value)
    return None


def _strip_quotes(value: str) -> str:
    return value.strip().strip("\"'").strip()


def _without_none(node: Optional[ast.expr]) -> Optional[ast.expr]:
    """Strip ``Optional[...]`` and ``X | None`` so optional scalars classify as scalars."""
    if isinstance(node, ast.Subscript) and annotation_name(node.value) == "Optional":
        return node.slice
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        if isinstance(node.right, ast.Constant) and node.right.value is None:
            return node.left
        if isinstance(node.left, ast.Constant) and node.left.value is None:
            return node.right
    return node
