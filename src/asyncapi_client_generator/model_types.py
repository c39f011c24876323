"""Internal datatypes shared by the generation stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from .errors import RefResolutionError
from .json_types import JSONValue, MutableJSONObject

SCHEMA_REF_PREFIX = "#/components/schemas/"
MESSAGE_REF_PREFIX = "#/components/messages/"


@dataclass
class SpecDocument:
    """A normalized AsyncAPI document.

    Only the Type Model Builder adds entries to ``components.schemas`` after
    normalization; everything else treats the document as read-only.
    """

    raw: MutableJSONObject
    source_path: Optional[Path] = None

    @property
    def title(self) -> str:
        info = self.raw.get("info")
        if isinstance(info, dict) and isinstance(info.get("title"), str):
            return info["title"]
        return "AsyncAPI"

    @property
    def description(self) -> Optional[str]:
        info = self.raw.get("info")
        if isinstance(info, dict) and isinstance(info.get("description"), str):
            return info["description"].strip() or None
        return None

    @property
    def channels(self) -> dict[str, MutableJSONObject]:
        raw_channels = self.raw.get("channels")
        if not isinstance(raw_channels, dict):
            return {}
        return {
            path: item
            for path, item in raw_channels.items()
            if isinstance(path, str) and isinstance(item, dict)
        }

    @property
    def servers(self) -> dict[str, MutableJSONObject]:
        raw_servers = self.raw.get("servers")
        if not isinstance(raw_servers, dict):
            return {}
        return {name: item for name, item in raw_servers.items() if isinstance(item, dict)}

    def component_section(self, section: str) -> MutableJSONObject:
        """Return a components section, creating it when absent."""
        components = self.raw.setdefault("components", {})
        if not isinstance(components, dict):
            raise RefResolutionError("'components' must be a mapping")
        value = components.setdefault(section, {})
        if not isinstance(value, dict):
            raise RefResolutionError(f"'components.{section}' must be a mapping")
        return value

    @property
    def schemas(self) -> MutableJSONObject:
        return self.component_section("schemas")

    @property
    def messages(self) -> MutableJSONObject:
        return self.component_section("messages")

    @property
    def security_schemes(self) -> MutableJSONObject:
        return self.component_section("securitySchemes")

    def resolve_pointer(self, ref: str, *, origin: str = "$") -> JSONValue:
        """Resolve a local ``#/...`` JSON pointer.

        Args:
            ref (str): Local reference string.
            origin (str): Location of the referring node, used in error messages.

        Returns:
            JSONValue: The referenced node.
        """
        if not ref.startswith("#/"):
            raise RefResolutionError(f"Only local references can be resolved here: {ref} at {origin}")
        current: JSONValue = self.raw
        for token in ref[2:].split("/"):
            token = token.replace("~1", "/").replace("~0", "~")
            if not isinstance(current, dict) or token not in current:
                raise RefResolutionError(f"Unresolvable reference {ref} at {origin}")
            current = current[token]
        return current


class TypeShape(Enum):
    """Shape of a generated type definition."""

    RECORD = "record"
    UNION = "union"
    ALIAS = "alias"
    PRIMITIVE = "primitive"
    MARKER = "marker"


@dataclass(frozen=True)
class FieldDef:
    """Represents a single record field."""

    name: str
    source_name: str
    annotation: str
    required: bool
    default: Optional[JSONValue]
    metadata: MutableJSONObject = field(default_factory=dict)


@dataclass(frozen=True)
class TypeDefinition:
    """A named type produced by lowering a schema."""

    name: str
    shape: TypeShape
    fields: tuple[FieldDef, ...] = ()
    root_annotation: Optional[str] = None
    docstring: Optional[str] = None
    title: Optional[str] = None
    extra_behavior: Optional[str] = None
    sub_definitions: tuple[str, ...] = ()

    @property
    def is_record(self) -> bool:
        return self.shape is TypeShape.RECORD


class ResponseType(Enum):
    """How a server answers a published message."""

    SIMPLE_RPC = "simple-rpc"
    STREAMING = "streaming"


class MethodKind(Enum):
    """Direction of a generated client method."""

    PUBLISH = "publish"
    LISTEN = "listen"


@dataclass(frozen=True)
class ParameterDef:
    """A generated method or connect parameter."""

    name: str
    source_name: str
    annotation: str
    required: bool = True
    description: Optional[str] = None


@dataclass(frozen=True)
class ClientMethod:
    """A client method derived from one message tag."""

    name: str
    tag: str
    kind: MethodKind
    path_parameters: tuple[ParameterDef, ...]
    payload: Optional[ParameterDef]
    payload_type: Optional[str]
    response_type: Optional[ResponseType]
    response_tag: Optional[str]
    response_annotation: Optional[str]
    description: Optional[str] = None
    event_name: Optional[str] = None
    response_event_name: Optional[str] = None

    @property
    def parameters(self) -> tuple[ParameterDef, ...]:
        if self.payload is None:
            return self.path_parameters
        return (*self.path_parameters, self.payload)

    @property
    def return_annotation(self) -> str:
        if self.response_annotation is None:
            return "None"
        if self.response_type is ResponseType.STREAMING:
            return f"AsyncIterator[{self.response_annotation}]"
        return self.response_annotation


@dataclass(frozen=True)
class DispatcherConfig:
    """Key used to route multiplexed messages over one channel."""

    key: str


@dataclass(frozen=True)
class EventIdentifier:
    """Location of the event tag inside an incoming message."""

    type: str
    path: str


@dataclass(frozen=True)
class ClientDefinition:
    """The generated client surface for one channel."""

    class_name: str
    channel_path: str
    description: Optional[str]
    path_parameters: tuple[ParameterDef, ...]
    query_parameters: tuple[ParameterDef, ...]
    dispatcher: Optional[DispatcherConfig]
    event_identifier: Optional[EventIdentifier]
    stream_id_key: Optional[str]
    methods: tuple[ClientMethod, ...]


class ArtifactDirectory(Enum):
    """Where an artifact is placed relative to the output directory."""

    ROOT = "root"
    TESTS = "tests"


class OverwritePolicy(Enum):
    """Whether regeneration may replace an existing artifact."""

    ALWAYS = "always"
    WRITE_ONCE = "write-once"


@dataclass(frozen=True)
class GeneratedArtifact:
    """A named text artifact ready for the writer."""

    name: str
    directory: ArtifactDirectory
    content: str
    overwrite: OverwritePolicy

    @property
    def relative_path(self) -> Path:
        if self.directory is ArtifactDirectory.TESTS:
            return Path("tests") / self.name
        return Path(self.name)


@dataclass(frozen=True)
class GenerationResult:
    """Generation output metadata."""

    output_dir: str
    written_files: tuple[str, ...]
    skipped_files: tuple[str, ...]
    warnings: tuple[str, ...]
