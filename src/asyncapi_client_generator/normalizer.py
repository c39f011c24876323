"""Normalize AsyncAPI documents before type and client generation."""

from __future__ import annotations

import logging
from copy import deepcopy
from pathlib import Path
from typing import Optional

from jsonschema.exceptions import SchemaError
from jsonschema.validators import Draft7Validator, validator_for

from .errors import (
    MissingExtensionError,
    RefResolutionError,
    SpecFormatError,
    UnsupportedSchemaTypeError,
)
from .json_types import JSONObject, JSONValue, MutableJSONObject
from .loader import load_document, read_mapping
from .model_types import MESSAGE_REF_PREFIX, SCHEMA_REF_PREFIX, EventIdentifier, SpecDocument

logger = logging.getLogger(__name__)

EVENT_IDENTIFIER_EXTENSION = "x-event-identifier"
EVENT_IDENTIFIER_TYPES: tuple[str, ...] = ("header", "body")
DEFAULT_EVENT_IDENTIFIER_PATH = "event"

_MISSING_EVENT_IDENTIFIER = (
    f"{EVENT_IDENTIFIER_EXTENSION} attribute is not found in the AsyncAPI specification"
)
_MISSING_EVENT_IDENTIFIER_TYPE = (
    "type attribute is not found within the attribute "
    f"{EVENT_IDENTIFIER_EXTENSION} in the AsyncAPI specification"
)
_INVALID_EVENT_IDENTIFIER_TYPE = (
    "header or body is not provided as the value of type attribute within the attribute "
    f"{EVENT_IDENTIFIER_EXTENSION} in the AsyncAPI specification"
)


def normalize(path: Path, *, require_event_identifier: bool = False) -> SpecDocument:
    """Load a document from disk and normalize it.

    Args:
        path (Path): AsyncAPI JSON or YAML file.
        require_event_identifier (bool): Validate the event identifier on every channel.

    Returns:
        SpecDocument: Normalized document with external references inlined.
    """
    raw = load_document(path)
    return normalize_document(
        raw,
        source_path=path,
        require_event_identifier=require_event_identifier,
    )


def normalize_document(
    raw: JSONObject,
    *,
    source_path: Optional[Path] = None,
    require_event_identifier: bool = False,
) -> SpecDocument:
    """Normalize an already parsed document mapping."""
    document = SpecDocument(raw=deepcopy(dict(raw)), source_path=source_path)
    base_dir = source_path.parent if source_path is not None else Path.cwd()

    inliner = _ExternalRefInliner(document)
    document.raw = inliner.rewrite_root(base_dir)
    if inliner.inlined_count:
        logger.debug("Inlined %d external references", inliner.inlined_count)

    _check_local_refs(document, document.raw, origin="$")
    _check_component_schemas(document)

    if require_event_identifier:
        for channel_path, channel in document.channels.items():
            extract_event_identifier(channel_path, channel)
    return document


def extract_event_identifier(channel_path: str, channel: JSONObject) -> EventIdentifier:
    """Read the event identifier extension from a channel.

    Args:
        channel_path (str): Channel path, used for logging.
        channel (JSONObject): Channel item mapping.

    Returns:
        EventIdentifier: The identifier type (``header`` or ``body``) and path.
    """
    attribute = channel.get(EVENT_IDENTIFIER_EXTENSION)
    if not isinstance(attribute, dict):
        logger.debug("Channel %s has no %s", channel_path, EVENT_IDENTIFIER_EXTENSION)
        raise MissingExtensionError(_MISSING_EVENT_IDENTIFIER)
    identifier_type = attribute.get("type")
    if identifier_type is None:
        raise MissingExtensionError(_MISSING_EVENT_IDENTIFIER_TYPE)
    if identifier_type not in EVENT_IDENTIFIER_TYPES:
        raise SpecFormatError(_INVALID_EVENT_IDENTIFIER_TYPE)
    identifier_path = attribute.get("path")
    if not isinstance(identifier_path, str) or not identifier_path.strip():
        identifier_path = DEFAULT_EVENT_IDENTIFIER_PATH
    return EventIdentifier(type=str(identifier_type), path=identifier_path.strip())


def _check_local_refs(document: SpecDocument, node: JSONValue, *, origin: str) -> None:
    if isinstance(node, list):
        for index, item in enumerate(node):
            _check_local_refs(document, item, origin=f"{origin}[{index}]")
        return
    if not isinstance(node, dict):
        return
    ref = node.get("$ref")
    if isinstance(ref, str):
        document.resolve_pointer(ref, origin=origin)
    for key, value in node.items():
        if key != "$ref":
            _check_local_refs(document, value, origin=f"{origin}.{key}")


def _check_component_schemas(document: SpecDocument) -> None:
    raw_components = document.raw.get("components")
    if not isinstance(raw_components, dict) or not isinstance(raw_components.get("schemas"), dict):
        return
    for name, schema in raw_components["schemas"].items():
        if not isinstance(schema, (dict, bool)):
            raise SpecFormatError(f"Schema components.schemas.{name} must be a mapping or boolean")
        validator = validator_for(schema, default=Draft7Validator)
        try:
            validator.check_schema(schema)
        except SchemaError as exc:
            location = ".".join(str(token) for token in exc.absolute_path)
            if exc.absolute_path and exc.absolute_path[-1] == "type" and isinstance(exc.instance, str):
                raise UnsupportedSchemaTypeError(
                    f"Unsupported AsyncAPI data type '{exc.instance}' at "
                    f"components.schemas.{name}.{location}"
                ) from exc
            raise SpecFormatError(
                f"Invalid JSON schema at components.schemas.{name}: {exc.message}"
            ) from exc


class _ExternalRefInliner:
    """Copy externally referenced nodes into the document components."""

    def __init__(self, document: SpecDocument) -> None:
        self._document = document
        self._cache: dict[tuple[Path, str], str] = {}
        self._files: dict[Path, MutableJSONObject] = {}
        self._added: dict[str, MutableJSONObject] = {"schemas": {}, "messages": {}}

    @property
    def inlined_count(self) -> int:
        return sum(len(entries) for entries in self._added.values())

    def rewrite_root(self, base_dir: Path) -> MutableJSONObject:
        rewritten = self._rewrite(self._document.raw, base_dir, None, in_message=False)
        if not isinstance(rewritten, dict):
            raise SpecFormatError("AsyncAPI document must be a mapping")
        if self.inlined_count:
            components = rewritten.setdefault("components", {})
            if not isinstance(components, dict):
                raise SpecFormatError("'components' must be a mapping")
            for section_name, entries in self._added.items():
                if not entries:
                    continue
                section = components.setdefault(section_name, {})
                if not isinstance(section, dict):
                    raise SpecFormatError(f"'components.{section_name}' must be a mapping")
                section.update(entries)
        return rewritten

    def _rewrite(
        self,
        node: JSONValue,
        base_dir: Path,
        current_file: Optional[Path],
        *,
        in_message: bool,
        key_path: tuple[str, ...] = (),
    ) -> JSONValue:
        if isinstance(node, list):
            return [
                self._rewrite(item, base_dir, current_file, in_message=in_message, key_path=key_path)
                for item in node
            ]
        if not isinstance(node, dict):
            return node

        ref = node.get("$ref")
        if isinstance(ref, str):
            if not ref.startswith("#"):
                return {**node, "$ref": self._inline(ref, base_dir, in_message=in_message)}
            if current_file is not None:
                # Local pointers inside an included file point into that file.
                return {
                    **node,
                    "$ref": self._inline(
                        f"{current_file.name}{ref}",
                        current_file.parent,
                        in_message=in_message,
                    ),
                }
            return dict(node)

        rewritten: MutableJSONObject = {}
        for key, value in node.items():
            rewritten[key] = self._rewrite(
                value,
                base_dir,
                current_file,
                in_message=_child_in_message(key, in_message=in_message, key_path=key_path),
                key_path=(*key_path, key),
            )
        return rewritten

    def _inline(self, ref: str, base_dir: Path, *, in_message: bool) -> str:
        file_part, _, fragment = ref.partition("#")
        file_path = (base_dir / file_part).resolve()
        cache_key = (file_path, fragment)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        if not file_path.is_file():
            raise RefResolutionError(f"External reference target not found: {ref}")
        external = self._files.get(file_path)
        if external is None:
            try:
                external = read_mapping(file_path)
            except SpecFormatError as exc:
                raise RefResolutionError(f"Unable to load external reference {ref}: {exc}") from exc
            self._files[file_path] = external

        target = _resolve_fragment(external, fragment, ref=ref)
        section_name = "messages" if in_message else "schemas"
        tokens = [token for token in fragment.split("/") if token]
        base_name = tokens[-1] if tokens else file_path.stem.split(".", maxsplit=1)[0]
        name = self._unique_name(base_name, section_name)
        prefix = MESSAGE_REF_PREFIX if in_message else SCHEMA_REF_PREFIX
        local_ref = f"{prefix}{name}"
        self._cache[cache_key] = local_ref
        # Reserve the name before recursing so self-referencing files terminate.
        self._added[section_name][name] = {}
        self._added[section_name][name] = self._rewrite(
            deepcopy(target),
            file_path.parent,
            file_path,
            in_message=in_message,
        )
        return local_ref

    def _unique_name(self, base_name: str, section_name: str) -> str:
        existing: set[str] = set(self._added[section_name])
        components = self._document.raw.get("components")
        if isinstance(components, dict) and isinstance(components.get(section_name), dict):
            existing.update(components[section_name])
        if base_name not in existing:
            return base_name
        suffix = 2
        while f"{base_name}{suffix}" in existing:
            suffix += 1
        return f"{base_name}{suffix}"


def _child_in_message(key: str, *, in_message: bool, key_path: tuple[str, ...]) -> bool:
    if key in ("message", "x-response"):
        return True
    if key_path == ("components", "messages"):
        return True
    if key in ("payload", "headers", "schema", "parameters", "bindings"):
        return False
    return in_message


def _resolve_fragment(document: JSONValue, fragment: str, *, ref: str) -> JSONValue:
    current = document
    for token in fragment.split("/"):
        if not token:
            continue
        token = token.replace("~1", "/").replace("~0", "~")
        if not isinstance(current, dict) or token not in current:
            raise RefResolutionError(f"Unresolvable external reference: {ref}")
        current = current[token]
    return current
