"""AST-based Python code generation for pydantic models and WebSocket clients."""

from __future__ import annotations

import ast
from collections.abc import Iterable, Sequence
from typing import Optional

from .auth import AuthConfig, AuthKind
from .json_types import JSONValue
from .model_types import ClientDefinition, ClientMethod, FieldDef, MethodKind, ResponseType, TypeDefinition
from .type_builder import NEVER_ANNOTATION

_IMPORT_SOURCES: dict[str, str] = {
    "AsyncIterator": "collections.abc",
    "date": "datetime",
    "datetime": "datetime",
    "time": "datetime",
    "Decimal": "decimal",
    "Annotated": "typing",
    "Any": "typing",
    "Literal": "typing",
    "Optional": "typing",
    "Union": "typing",
    "UUID": "uuid",
    "AfterValidator": "pydantic",
    "BaseModel": "pydantic",
    "ConfigDict": "pydantic",
    "Field": "pydantic",
    "JsonValue": "pydantic",
    "RootModel": "pydantic",
}
_IMPORT_MODULE_ORDER: tuple[str, ...] = (
    "collections.abc",
    "datetime",
    "decimal",
    "typing",
    "uuid",
    "pydantic",
)
_IMPORT_NAME_ORDER: tuple[str, ...] = tuple(_IMPORT_SOURCES)

_NO_VALUE_SOURCE = f'''
def _reject_value(value: JsonValue) -> JsonValue:
    raise ValueError("no value is accepted by a false schema")


{NEVER_ANNOTATION} = Annotated[JsonValue, AfterValidator(_reject_value)]
'''

_UTILS_SOURCE = '''
"""Connection helpers shared by the generated clients."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from functools import lru_cache
from typing import Any, Optional, Self
from urllib.parse import quote, urlencode
from uuid import uuid4

from pydantic import BaseModel, TypeAdapter
from pydantic_core import to_jsonable_python
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)

_CLOSED = object()
_BUFFER_LIMIT = 100
_PAYLOAD_KEY = "payload"
_HEADERS_KEY = "headers"


class ConnectionClosedError(RuntimeError):
    """Raised when the connection is unavailable or ends before a reply arrives."""


def render_path(template: str, parameters: Sequence[tuple[str, object]]) -> str:
    """Substitute path parameters into a channel path in declaration order."""
    path = template
    for name, value in parameters:
        path = path.replace("{" + name + "}", quote(str(value), safe=""), 1)
    return path


def basic_auth_header(username: str, password: str) -> str:
    """Return an ``Authorization`` header value for HTTP basic authentication."""
    credentials = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
    return "Basic " + credentials


@lru_cache(maxsize=None)
def _adapter(annotation: Any) -> TypeAdapter[Any]:
    return TypeAdapter(annotation)


class ChannelConnection:
    """A WebSocket connection that routes incoming messages by dispatcher key."""

    dispatcher_key: Optional[str] = None
    dispatcher_location: str = "body"
    stream_id_key: Optional[str] = None
    expected_events: frozenset[str] = frozenset()

    def __init__(
        self,
        service_url: str,
        *,
        headers: Optional[Mapping[str, str]] = None,
        query: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.service_url = service_url.rstrip("/")
        self.timeout = timeout
        self._headers = dict(headers or {})
        self._query = dict(query or {})
        self._connection: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task[None]] = None
        self._queues: dict[tuple[Optional[str], Optional[str]], asyncio.Queue[Any]] = {}

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    @property
    def connected(self) -> bool:
        return self._connection is not None

    async def open(self, path: str, query: Optional[Mapping[str, object]] = None) -> None:
        """Open the connection to ``path`` below the service URL."""
        await self.close()
        parameters = dict(self._query)
        for name, value in (query or {}).items():
            if value is not None:
                parameters[name] = str(value)
        url = self.service_url + path
        if parameters:
            url = f"{url}?{urlencode(parameters)}"
        self._connection = await connect(url, additional_headers=self._headers)
        self._reader = asyncio.create_task(self._read_loop(self._connection))

    async def close(self) -> None:
        """Close the connection and release every waiting reader."""
        connection, self._connection = self._connection, None
        if connection is not None:
            await connection.close()
        reader, self._reader = self._reader, None
        if reader is not None:
            await asyncio.gather(reader, return_exceptions=True)
        self._queues.clear()

    async def send(self, event: str, message: Any, stream_id: Optional[str] = None) -> None:
        """Send one message tagged with its dispatcher value."""
        if self._connection is None:
            raise ConnectionClosedError("connect() must be awaited before sending messages")
        payload = to_jsonable_python(message, by_alias=True, exclude_none=True)
        if not isinstance(payload, dict):
            payload = {} if payload is None else {_PAYLOAD_KEY: payload}
        if self.dispatcher_key is not None:
            if self.dispatcher_location == "header":
                payload.setdefault(_HEADERS_KEY, {})[self.dispatcher_key] = event
            else:
                payload.setdefault(self.dispatcher_key, event)
        if self.stream_id_key is not None and stream_id is not None:
            payload.setdefault(self.stream_id_key, stream_id)
        await self._connection.send(json.dumps(payload))

    async def request(self, event: str, message: Any, response_event: str) -> Any:
        """Send a message and wait for its single reply."""
        stream_id = self._new_stream_id()
        queue = self._queue(response_event, stream_id)
        await self.send(event, message, stream_id)
        try:
            item = await asyncio.wait_for(queue.get(), self.timeout)
        finally:
            self._release(response_event, stream_id)
        if item is _CLOSED:
            raise ConnectionClosedError("The connection closed before a reply was received")
        return item

    def decode(self, annotation: Any, value: Any) -> Any:
        """Validate a received message against the expected type.

        Routing keys are dropped first unless the expected model declares them.
        """
        if isinstance(value, dict) and isinstance(annotation, type) and issubclass(annotation, BaseModel):
            declared = set(annotation.model_fields)
            declared.update(field.alias for field in annotation.model_fields.values() if field.alias)
            envelope = {self.dispatcher_key, self.stream_id_key}
            if self.dispatcher_location == "header":
                envelope.add(_HEADERS_KEY)
            value = {key: item for key, item in value.items() if key not in envelope - declared}
        return _adapter(annotation).validate_python(value)

    async def stream(self, event: str, message: Any, response_event: str) -> AsyncIterator[Any]:
        """Send a message and yield its replies until the connection closes."""
        stream_id = self._new_stream_id()
        queue = self._queue(response_event, stream_id)
        await self.send(event, message, stream_id)
        try:
            while (item := await queue.get()) is not _CLOSED:
                yield item
        finally:
            self._release(response_event, stream_id)

    async def listen(self, event: str) -> AsyncIterator[Any]:
        """Yield server initiated messages of one kind until the connection closes."""
        queue = self._queue(event, None)
        while (item := await queue.get()) is not _CLOSED:
            yield item

    def _new_stream_id(self) -> Optional[str]:
        return uuid4().hex if self.stream_id_key is not None else None

    def _key(self, event: Optional[str], stream_id: Optional[str]) -> tuple[Optional[str], Optional[str]]:
        return (event if self.dispatcher_key is not None else None, stream_id)

    def _queue(self, event: Optional[str], stream_id: Optional[str]) -> asyncio.Queue[Any]:
        return self._queues.setdefault(self._key(event, stream_id), asyncio.Queue(maxsize=_BUFFER_LIMIT))

    def _release(self, event: str, stream_id: Optional[str]) -> None:
        if stream_id is not None:
            self._queues.pop(self._key(event, stream_id), None)

    @staticmethod
    def _put(queue: asyncio.Queue[Any], item: Any) -> None:
        """Enqueue ``item``, discarding the oldest buffered message when full."""
        if queue.full():
            queue.get_nowait()
            logger.debug("Buffer full, discarding the oldest unread message")
        queue.put_nowait(item)

    async def _read_loop(self, connection: ClientConnection) -> None:
        try:
            async for raw in connection:
                try:
                    message = json.loads(raw)
                except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                    logger.warning("Ignoring a frame from %s that is not JSON: %s", self.service_url, exc)
                    continue
                self._route(message)
        except ConnectionClosed as exc:
            logger.debug("Connection to %s closed: %s", self.service_url, exc)
        finally:
            for queue in self._queues.values():
                self._put(queue, _CLOSED)

    def _route(self, message: Any) -> None:
        event: Optional[str] = None
        stream_id: Optional[str] = None
        if isinstance(message, dict):
            if self.dispatcher_key is not None:
                source = message.get(_HEADERS_KEY) if self.dispatcher_location == "header" else message
                value = source.get(self.dispatcher_key) if isinstance(source, dict) else None
                event = value if isinstance(value, str) else None
            if self.stream_id_key is not None:
                value = message.get(self.stream_id_key)
                stream_id = value if isinstance(value, str) else None
            envelope = {self.dispatcher_key, self.stream_id_key, _HEADERS_KEY}
            if _PAYLOAD_KEY in message and set(message) - envelope == {_PAYLOAD_KEY}:
                message = message[_PAYLOAD_KEY]
        key = self._key(event, stream_id)
        if key in self._queues:
            self._put(self._queues[key], message)
            return
        if self.dispatcher_key is not None and event not in self.expected_events:
            logger.debug("Dropping unexpected %r message from %s", event, self.service_url)
            return
        self._put(self._queue(event, None), message)
'''

def render_models_module(
    definitions: Sequence[TypeDefinition],
    *,
    client_annotations: Iterable[str] = (),
) -> str:
    """Render type definitions as a pydantic models module.

    Args:
        definitions (Sequence[TypeDefinition]): Definitions in emission order.
        client_annotations (Iterable[str]): Client annotations that may need
            helper aliases declared by the models module.

    Returns:
        str: Generated Python source code, or an empty string when there is
        nothing to declare.
    """
    uses_no_value = defines_no_value(definitions, client_annotations)
    if not definitions and not uses_no_value:
        return ""
    body: list[ast.stmt] = [
        ast.ImportFrom(module="__future__", names=[ast.alias(name="annotations")], level=0),
    ]
    used_names = _collect_names(_definition_annotations(definitions))
    if uses_no_value:
        used_names.update({"Annotated", "AfterValidator", "JsonValue"})
    used_names.update(_pydantic_names(definitions))
    body.extend(_build_imports(used_names))
    if uses_no_value:
        body.extend(ast.parse(_NO_VALUE_SOURCE).body)
    for definition in definitions:
        body.append(_definition_to_ast(definition))
    return _unparse(body)


def defines_no_value(
    definitions: Sequence[TypeDefinition],
    client_annotations: Iterable[str] = (),
) -> bool:
    """Whether the models module declares the ``NoValue`` alias."""
    annotations = [*_definition_annotations(definitions), *client_annotations]
    return NEVER_ANNOTATION in _collect_names(annotations)


def client_annotations(clients: Sequence[ClientDefinition], auth: AuthConfig) -> list[str]:
    """Every annotation the client module spells out."""
    annotations: list[str] = [parameter.annotation for parameter in auth.parameters]
    for client in clients:
        annotations.extend(parameter.annotation for parameter in client.path_parameters)
        annotations.extend(parameter.annotation for parameter in client.query_parameters)
        for method in client.methods:
            annotations.extend(parameter.annotation for parameter in method.parameters)
            annotations.append(method.return_annotation)
    return annotations


def render_utils_module(clients: Sequence[ClientDefinition], auth: AuthConfig) -> str:
    """Render the helpers the generated clients use, or ``""`` when none are needed."""
    if not clients:
        return ""
    excluded: set[str] = set()
    if not any(client.path_parameters for client in clients):
        excluded.add("render_path")
    if auth.kind is not AuthKind.BASIC:
        excluded.add("basic_auth_header")

    module = ast.parse(_UTILS_SOURCE)
    body = [
        statement
        for statement in module.body
        if not (isinstance(statement, ast.FunctionDef) and statement.name in excluded)
    ]
    return _unparse(_prune_imports(body))


def render_client_module(
    clients: Sequence[ClientDefinition],
    *,
    auth: AuthConfig,
    service_url: Optional[str],
    model_names: Iterable[str],
) -> str:
    """Render one client class per channel.

    Args:
        clients (Sequence[ClientDefinition]): Client surfaces in channel order.
        auth (AuthConfig): Selected authentication settings.
        service_url (Optional[str]): Default service URL; required at runtime when absent.
        model_names (Iterable[str]): Names the models module defines.

    Returns:
        str: Generated Python source code.
    """
    known_models = set(model_names)
    classes = [_client_class(client, auth=auth, service_url=service_url) for client in clients]

    used_names = _collect_names(client_annotations(clients, auth))
    if clients:
        # timeout: Optional[float] on every client
        used_names.add("Optional")

    body: list[ast.stmt] = [
        ast.ImportFrom(module="__future__", names=[ast.alias(name="annotations")], level=0),
    ]
    body.extend(_build_imports(used_names - known_models))
    model_imports = sorted(name for name in used_names if name in known_models)
    if model_imports:
        body.append(
            ast.ImportFrom(
                module="models",
                names=[ast.alias(name=name) for name in model_imports],
                level=1,
            )
        )
    if clients:
        utils_imports = ["ChannelConnection"]
        if any(client.path_parameters for client in clients):
            utils_imports.append("render_path")
        if auth.kind is AuthKind.BASIC:
            utils_imports.append("basic_auth_header")
        body.append(
            ast.ImportFrom(
                module="utils",
                names=[ast.alias(name=name) for name in sorted(utils_imports)],
                level=1,
            )
        )
    body.extend(classes)
    return _unparse(body)


def render_init_module(
    clients: Sequence[ClientDefinition],
    *,
    title: str,
    description: Optional[str],
) -> str:
    """Render the package ``__init__.py`` exporting the client classes."""
    lines = [f"Generated WebSocket client for {title}."]
    if description:
        lines.extend(["", description])
    body: list[ast.stmt] = [ast.Expr(value=ast.Constant(value="\n".join(lines)))]
    names = [client.class_name for client in clients]
    if names:
        body.append(
            ast.ImportFrom(
                module="client",
                names=[ast.alias(name=name) for name in names],
                level=1,
            )
        )
    body.append(
        ast.Assign(
            targets=[ast.Name(id="__all__", ctx=ast.Store())],
            value=ast.List(elts=[ast.Constant(value=name) for name in names], ctx=ast.Load()),
        )
    )
    return _unparse(body)


def _client_class(
    client: ClientDefinition,
    *,
    auth: AuthConfig,
    service_url: Optional[str],
) -> ast.ClassDef:
    class_body: list[ast.stmt] = []
    docstring = client.description or f"Client for the ``{client.channel_path}`` channel."
    class_body.append(ast.Expr(value=ast.Constant(value=docstring)))

    dispatcher_key: Optional[str] = None
    location = "body"
    if client.dispatcher is not None:
        dispatcher_key = client.dispatcher.key
    elif client.event_identifier is not None:
        dispatcher_key = client.event_identifier.path
        location = client.event_identifier.type
    if dispatcher_key is not None:
        class_body.append(_class_attribute("dispatcher_key", dispatcher_key))
        if location != "body":
            class_body.append(_class_attribute("dispatcher_location", location))
        events = _received_events(client)
        if events:
            class_body.append(
                ast.Assign(
                    targets=[ast.Name(id="expected_events", ctx=ast.Store())],
                    value=ast.Call(
                        func=ast.Name(id="frozenset", ctx=ast.Load()),
                        args=[ast.Set(elts=[ast.Constant(value=event) for event in events])],
                        keywords=[],
                    ),
                )
            )
    if client.stream_id_key is not None:
        class_body.append(_class_attribute("stream_id_key", client.stream_id_key))

    class_body.append(_init_method(auth=auth, service_url=service_url))
    class_body.append(_connect_method(client))
    for method in client.methods:
        class_body.append(_client_method(method))

    return ast.ClassDef(
        name=client.class_name,
        bases=[ast.Name(id="ChannelConnection", ctx=ast.Load())],
        keywords=[],
        body=class_body,
        decorator_list=[],
        type_params=[],
    )


def _init_method(*, auth: AuthConfig, service_url: Optional[str]) -> ast.FunctionDef:
    defaults: list[ast.expr] = []
    if service_url is not None:
        defaults.append(ast.Constant(value=service_url))
    kwonly = [_arg(parameter.name, parameter.annotation) for parameter in auth.parameters]
    kw_defaults: list[Optional[ast.expr]] = [None for _ in auth.parameters]
    kwonly.append(_arg("timeout", "Optional[float]"))
    kw_defaults.append(ast.Constant(value=None))

    keywords: list[str] = []
    headers: list[str] = []
    query: list[str] = []
    if auth.kind is AuthKind.BASIC:
        headers.append("'Authorization': basic_auth_header(username, password)")
    elif auth.kind is AuthKind.BEARER:
        headers.append("'Authorization': 'Bearer ' + token")
    elif auth.kind is AuthKind.API_KEY:
        headers.extend(f"{key.key_name!r}: api_keys.{key.field_name}" for key in auth.header_keys)
        query.extend(f"{key.key_name!r}: api_keys.{key.field_name}" for key in auth.query_keys)
    if headers:
        keywords.append("headers={" + ", ".join(headers) + "}")
    if query:
        keywords.append("query={" + ", ".join(query) + "}")
    keywords.append("timeout=timeout")

    return ast.FunctionDef(
        name="__init__",
        args=ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg="self"), _arg("service_url", "str")],
            vararg=None,
            kwonlyargs=kwonly,
            kw_defaults=kw_defaults,
            kwarg=None,
            defaults=defaults,
        ),
        body=_stmts(f"super().__init__(service_url, {', '.join(keywords)})"),
        decorator_list=[],
        returns=_expr("None"),
        type_params=[],
    )


def _connect_method(client: ClientDefinition) -> ast.AsyncFunctionDef:
    if client.path_parameters:
        pairs = ", ".join(
            f"({parameter.source_name!r}, {parameter.name})" for parameter in client.path_parameters
        )
        path_code = f"render_path({client.channel_path!r}, [{pairs}])"
    else:
        path_code = repr(client.channel_path)
    call_arguments = [path_code]
    if client.query_parameters:
        entries = ", ".join(
            f"{parameter.source_name!r}: {parameter.name}" for parameter in client.query_parameters
        )
        call_arguments.append("{" + entries + "}")

    docstring = f"Open the connection to ``{client.channel_path}``."
    body = [ast.Expr(value=ast.Constant(value=docstring))]
    body.extend(_stmts(f"await self.open({', '.join(call_arguments)})"))
    return ast.AsyncFunctionDef(
        name="connect",
        args=ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg="self")]
            + [_arg(parameter.name, parameter.annotation) for parameter in client.path_parameters],
            vararg=None,
            kwonlyargs=[
                _arg(parameter.name, parameter.annotation) for parameter in client.query_parameters
            ],
            kw_defaults=[
                None if parameter.required else ast.Constant(value=None)
                for parameter in client.query_parameters
            ],
            kwarg=None,
            defaults=[],
        ),
        body=body,
        decorator_list=[],
        returns=_expr("None"),
        type_params=[],
    )


def _received_events(client: ClientDefinition) -> list[str]:
    """Event names the server may send that some method of ``client`` reads."""
    events: set[str] = set()
    for method in client.methods:
        if method.kind is MethodKind.LISTEN:
            events.add(method.event_name or method.tag)
        elif method.response_annotation is not None:
            events.add(method.response_event_name or method.response_tag or "")
    events.discard("")
    return sorted(events)


def _client_method(method: ClientMethod) -> ast.AsyncFunctionDef:
    event = repr(method.event_name or method.tag)
    response_event = repr(method.response_event_name or method.response_tag)
    payload = method.payload.name if method.payload is not None else "None"

    body: list[ast.stmt] = []
    if method.description:
        body.append(ast.Expr(value=ast.Constant(value=method.description)))
    if method.kind is MethodKind.LISTEN:
        body.extend(
            _stmts(
                f"async for item in self.listen({event}):\n"
                f"    yield self.decode({method.response_annotation}, item)"
            )
        )
    elif method.response_annotation is None:
        body.extend(_stmts(f"await self.send({event}, {payload})"))
    elif method.response_type is ResponseType.STREAMING:
        body.extend(
            _stmts(
                f"async for item in self.stream({event}, {payload}, {response_event}):\n"
                f"    yield self.decode({method.response_annotation}, item)"
            )
        )
    else:
        body.extend(
            _stmts(
                f"return self.decode({method.response_annotation}, "
                f"await self.request({event}, {payload}, {response_event}))"
            )
        )

    args = [ast.arg(arg="self")]
    if method.payload is not None:
        args.append(_arg(method.payload.name, method.payload.annotation))
    return ast.AsyncFunctionDef(
        name=method.name,
        args=ast.arguments(
            posonlyargs=[],
            args=args,
            vararg=None,
            kwonlyargs=[],
            kw_defaults=[],
            kwarg=None,
            defaults=[],
        ),
        body=body,
        decorator_list=[],
        returns=_expr(method.return_annotation),
        type_params=[],
    )


def _definition_to_ast(definition: TypeDefinition) -> ast.ClassDef:
    bases: list[ast.expr]
    if definition.is_record:
        bases = [ast.Name(id="BaseModel", ctx=ast.Load())]
    else:
        if definition.root_annotation is None:
            raise ValueError(f"Root model {definition.name} missing annotation")
        bases = [
            ast.Subscript(
                value=ast.Name(id="RootModel", ctx=ast.Load()),
                slice=_expr(definition.root_annotation),
                ctx=ast.Load(),
            )
        ]

    class_body: list[ast.stmt] = []
    if definition.docstring:
        class_body.append(ast.Expr(value=ast.Constant(value=definition.docstring)))

    config_keywords = _config_keywords(definition)
    if config_keywords:
        class_body.append(
            ast.Assign(
                targets=[ast.Name(id="model_config", ctx=ast.Store())],
                value=ast.Call(
                    func=ast.Name(id="ConfigDict", ctx=ast.Load()),
                    args=[],
                    keywords=config_keywords,
                ),
            )
        )
    for field in definition.fields:
        class_body.append(_field_to_ast(field))

    if not class_body:
        class_body.append(ast.Pass())

    return ast.ClassDef(
        name=definition.name,
        bases=bases,
        keywords=[],
        body=class_body,
        decorator_list=[],
        type_params=[],
    )


def _config_keywords(definition: TypeDefinition) -> list[ast.keyword]:
    keywords: list[ast.keyword] = []
    if definition.title:
        keywords.append(ast.keyword(arg="title", value=ast.Constant(value=definition.title)))
    if definition.is_record:
        if any(field.source_name != field.name for field in definition.fields):
            keywords.append(ast.keyword(arg="populate_by_name", value=ast.Constant(value=True)))
        if definition.extra_behavior:
            keywords.append(
                ast.keyword(arg="extra", value=ast.Constant(value=definition.extra_behavior))
            )
    return keywords


def _field_to_ast(field: FieldDef) -> ast.AnnAssign:
    keywords: list[ast.keyword] = []
    if field.source_name != field.name:
        keywords.append(ast.keyword(arg="alias", value=ast.Constant(value=field.source_name)))
    for key, value in field.metadata.items():
        keywords.append(ast.keyword(arg=key, value=_value_expr(value)))

    if field.required and field.default is None:
        default_value: ast.expr = ast.Constant(value=Ellipsis)
    else:
        default_value = _value_expr(field.default)

    return ast.AnnAssign(
        target=ast.Name(id=field.name, ctx=ast.Store()),
        annotation=_expr(field.annotation),
        value=ast.Call(
            func=ast.Name(id="Field", ctx=ast.Load()),
            args=[default_value],
            keywords=keywords,
        ),
        simple=1,
    )


def _pydantic_names(definitions: Sequence[TypeDefinition]) -> set[str]:
    names: set[str] = set()
    for definition in definitions:
        names.add("BaseModel" if definition.is_record else "RootModel")
        if definition.fields:
            names.add("Field")
        if _config_keywords(definition):
            names.add("ConfigDict")
    return names


def _definition_annotations(definitions: Sequence[TypeDefinition]) -> Iterable[str]:
    for definition in definitions:
        if definition.root_annotation is not None:
            yield definition.root_annotation
        for field in definition.fields:
            yield field.annotation


def _build_imports(used_names: set[str]) -> list[ast.stmt]:
    grouped: dict[str, list[str]] = {}
    for name in _IMPORT_NAME_ORDER:
        if name in used_names:
            grouped.setdefault(_IMPORT_SOURCES[name], []).append(name)
    imports: list[ast.stmt] = []
    for module in _IMPORT_MODULE_ORDER:
        names = grouped.get(module)
        if names:
            imports.append(
                ast.ImportFrom(
                    module=module,
                    names=[ast.alias(name=name) for name in sorted(names)],
                    level=0,
                )
            )
    return imports


def _collect_names(annotations: Iterable[str]) -> set[str]:
    names: set[str] = set()
    for annotation in annotations:
        names.update(_extract_loaded_names(annotation))
    return names


def _extract_loaded_names(expr_code: str) -> set[str]:
    parsed = ast.parse(expr_code, mode="eval")
    loaded_names: set[str] = set()
    for node in ast.walk(parsed):
        if isinstance(node, ast.Name) and isinstance(node.ctx, ast.Load):
            loaded_names.add(node.id)
    return loaded_names


def _prune_imports(body: list[ast.stmt]) -> list[ast.stmt]:
    used: set[str] = set()
    for statement in body:
        if isinstance(statement, (ast.Import, ast.ImportFrom)):
            continue
        for node in ast.walk(statement):
            if isinstance(node, ast.Name):
                used.add(node.id)
    pruned: list[ast.stmt] = []
    for statement in body:
        if isinstance(statement, ast.ImportFrom) and statement.module != "__future__":
            names = [alias for alias in statement.names if (alias.asname or alias.name) in used]
            if names:
                statement.names = names
                pruned.append(statement)
        elif isinstance(statement, ast.Import):
            names = [alias for alias in statement.names if (alias.asname or alias.name) in used]
            if names:
                statement.names = names
                pruned.append(statement)
        else:
            pruned.append(statement)
    return pruned


def _class_attribute(name: str, value: str) -> ast.Assign:
    return ast.Assign(
        targets=[ast.Name(id=name, ctx=ast.Store())],
        value=ast.Constant(value=value),
    )


def _arg(name: str, annotation: str) -> ast.arg:
    return ast.arg(arg=name, annotation=_expr(annotation))


def _stmts(code: str) -> list[ast.stmt]:
    return ast.parse(code).body


def _expr(code: str) -> ast.expr:
    parsed = ast.parse(code, mode="eval")
    return parsed.body


def _value_expr(value: Optional[JSONValue]) -> ast.expr:
    parsed = ast.parse(repr(value), mode="eval")
    return parsed.body


def _unparse(body: list[ast.stmt]) -> str:
    module = ast.Module(body=body, type_ignores=[])
    ast.fix_missing_locations(module)
    return ast.unparse(module) + "\n"
