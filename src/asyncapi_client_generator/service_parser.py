"""Read WebSocket service declarations from Python source without importing it.

A service module looks like::

    @websocket.ServiceConfig(dispatcher_key="event")
    class ChatService:
        @websocket.resource("rooms", "{room_id}")
        def room(self, room_id: str, token: str) -> "RoomService":
            \"\"\"Chat room channel.\"\"\"
            return RoomService()

    class RoomService:
        async def on_message(self, message: Message) -> Ack: ...
        async def on_subscribe(self, subscribe: Subscribe) -> AsyncIterator[Event]: ...
"""

from __future__ import annotations

import ast
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import SpecFormatError

logger = logging.getLogger(__name__)

WEBSOCKET_NAMESPACE = "websocket"
SERVICE_CONFIG_KIND = "ServiceConfig"
RESOURCE_KIND = "resource"
REMOTE_METHOD_PREFIX = "on_"
ROOT_SEGMENT = "."

SCALAR_TYPES: dict[str, str] = {
    "str": "string",
    "int": "integer",
    "float": "number",
    "bool": "boolean",
    "bytes": "string",
    "Decimal": "number",
}
STREAM_TYPES: frozenset[str] = frozenset(
    {"Stream", "AsyncIterator", "AsyncIterable", "AsyncGenerator", "Iterator", "Iterable", "Generator"}
)


class AnnotationShape(Enum):
    """Closed set of annotation shapes recognized on service methods."""

    SCALAR = "scalar"
    NAMED = "named"
    STREAM = "stream"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class ClassifiedAnnotation:
    """Result of :func:`classify_annotation`.

    ``name`` is the scalar or class name; for streams it is the element name.
    """

    shape: AnnotationShape
    name: Optional[str] = None


@dataclass(frozen=True)
class ServiceParameter:
    name: str
    annotation: Optional[ast.expr]
    has_default: bool = False


@dataclass(frozen=True)
class ServiceMethod:
    """One ``on_<tag>`` remote method of a service class."""

    name: str
    parameters: tuple[ServiceParameter, ...]
    returns: Optional[ast.expr]
    docstring: Optional[str]
    lineno: int


@dataclass(frozen=True)
class ServiceResource:
    """A ``@websocket.resource`` method that opens a channel."""

    name: str
    segments: tuple[str, ...]
    parameters: tuple[ServiceParameter, ...]
    service_class: Optional[str]
    docstring: Optional[str]


@dataclass(frozen=True)
class ServiceDeclaration:
    """The parsed service module."""

    module_path: Optional[Path]
    service: ast.ClassDef
    resources: tuple[ServiceResource, ...]
    classes: dict[str, ast.ClassDef]

    @property
    def title(self) -> str:
        return self.service.name

    @property
    def description(self) -> Optional[str]:
        return ast.get_docstring(self.service)

    def remote_methods(self, class_name: str) -> tuple[ServiceMethod, ...]:
        """Return the ``on_<tag>`` methods of a module class in declaration order."""
        node = self.classes.get(class_name)
        if node is None:
            return ()
        methods: list[ServiceMethod] = []
        for item in node.body:
            if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) and item.name.startswith(
                REMOTE_METHOD_PREFIX
            ):
                methods.append(
                    ServiceMethod(
                        name=item.name,
                        parameters=_parameters(item),
                        returns=item.returns,
                        docstring=ast.get_docstring(item),
                        lineno=item.lineno,
                    )
                )
        return tuple(methods)


def parse_service_module(path: Path) -> ServiceDeclaration:
    """Parse a service module from disk.

    Raises:
        SpecFormatError: When the file cannot be read or parsed.
    """
    try:
        source = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SpecFormatError(f"Unable to read service module {path}: {exc}") from exc
    return parse_service_source(source, module_path=path)


def parse_service_source(source: str, *, module_path: Optional[Path] = None) -> ServiceDeclaration:
    """Parse service source text and locate the service class."""
    try:
        tree = ast.parse(source, filename=str(module_path or "<service>"))
    except SyntaxError as exc:
        raise SpecFormatError(f"Invalid Python in service module: {exc}") from exc

    classes = {node.name: node for node in tree.body if isinstance(node, ast.ClassDef)}
    if not classes:
        raise SpecFormatError("No service class is declared in the service module")
    service = _find_service_class(list(classes.values()))
    resources = tuple(
        _resource(item)
        for item in service.body
        if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) and _resource_decorator(item)
    )
    logger.debug("Parsed service %s with %d resources", service.name, len(resources))
    return ServiceDeclaration(
        module_path=module_path,
        service=service,
        resources=resources,
        classes=classes,
    )


def classify_annotation(node: Optional[ast.expr]) -> ClassifiedAnnotation:
    """Classify a parameter or return annotation into one recognized shape."""
    if node is None:
        return ClassifiedAnnotation(AnnotationShape.UNRECOGNIZED)
    if isinstance(node, ast.Constant) and isinstance(node.value, str):
        try:
            parsed = ast.parse(node.value, mode="eval").body
        except SyntaxError:
            return ClassifiedAnnotation(AnnotationShape.UNRECOGNIZED)
        return classify_annotation(parsed)
    if isinstance(node, ast.Constant) and node.value is None:
        return ClassifiedAnnotation(AnnotationShape.UNRECOGNIZED)

    name = annotation_name(node)
    if name is not None:
        if name in SCALAR_TYPES:
            return ClassifiedAnnotation(AnnotationShape.SCALAR, name)
        return ClassifiedAnnotation(AnnotationShape.NAMED, name)

    if isinstance(node, ast.Subscript):
        container = annotation_name(node.value)
        if container in STREAM_TYPES:
            element = node.slice.elts[0] if isinstance(node.slice, ast.Tuple) else node.slice
            element_shape = classify_annotation(element)
            if element_shape.shape in (AnnotationShape.SCALAR, AnnotationShape.NAMED):
                return ClassifiedAnnotation(AnnotationShape.STREAM, element_shape.name)
    return ClassifiedAnnotation(AnnotationShape.UNRECOGNIZED)


def annotation_name(node: ast.expr) -> Optional[str]:
    """Return ``Name`` or the final attribute of ``module.Name`` annotations."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        return node.attr
    return None


def decorator_call(decorator: ast.expr, kind: str) -> Optional[ast.Call]:
    """Return the decorator call when it is ``websocket.<kind>(...)``."""
    if not isinstance(decorator, ast.Call):
        return None
    func = decorator.func
    if (
        isinstance(func, ast.Attribute)
        and isinstance(func.value, ast.Name)
        and func.value.id == WEBSOCKET_NAMESPACE
        and func.attr == kind
    ):
        return decorator
    return None


def _find_service_class(classes: list[ast.ClassDef]) -> ast.ClassDef:
    for node in classes:
        if any(decorator_call(item, SERVICE_CONFIG_KIND) for item in node.decorator_list):
            return node
    for node in classes:
        if any(
            isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) and _resource_decorator(item)
            for item in node.body
        ):
            return node
    # Fall back to the first class so the dispatcher check reports what is missing.
    return classes[0]


def _resource_decorator(node: ast.FunctionDef | ast.AsyncFunctionDef) -> Optional[ast.Call]:
    for decorator in node.decorator_list:
        call = decorator_call(decorator, RESOURCE_KIND)
        if call is not None:
            return call
    return None


def _resource(node: ast.FunctionDef | ast.AsyncFunctionDef) -> ServiceResource:
    call = _resource_decorator(node)
    segments: list[str] = []
    for arg in call.args if call is not None else ():
        if not isinstance(arg, ast.Constant) or not isinstance(arg.value, str):
            raise SpecFormatError(
                f"Resource {node.name} path segments must be string literals (line {node.lineno})"
            )
        segments.append(arg.value)
    return ServiceResource(
        name=node.name,
        segments=tuple(segments),
        parameters=_parameters(node),
        service_class=_returned_class(node),
        docstring=ast.get_docstring(node),
    )


def _returned_class(node: ast.FunctionDef | ast.AsyncFunctionDef) -> Optional[str]:
    classified = classify_annotation(node.returns)
    if classified.shape is AnnotationShape.NAMED:
        return classified.name
    for child in ast.walk(node):
        if isinstance(child, ast.Return) and isinstance(child.value, ast.Call):
            name = annotation_name(child.value.func)
            if name is not None:
                return name
    return None


def _parameters(node: ast.FunctionDef | ast.AsyncFunctionDef) -> tuple[ServiceParameter, ...]:
    positional = [*node.args.posonlyargs, *node.args.args]
    defaults_start = len(positional) - len(node.args.defaults)
    parameters = [
        ServiceParameter(name=arg.arg, annotation=arg.annotation, has_default=index >= defaults_start)
        for index, arg in enumerate(positional)
    ]
    parameters.extend(
        ServiceParameter(name=arg.arg, annotation=arg.annotation, has_default=default is not None)
        for arg, default in zip(node.args.kwonlyargs, node.args.kw_defaults)
    )
    return tuple(parameter for parameter in parameters if parameter.name not in ("self", "cls"))
