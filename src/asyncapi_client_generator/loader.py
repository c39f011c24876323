"""AsyncAPI document loading, serialization and structural validation."""

from __future__ import annotations

import json
from pathlib import Path

import yaml
from pydantic import ValidationError

from .errors import SpecFormatError
from .json_types import JSONObject, JSONValue, MutableJSONObject
from .spec_models import AsyncAPIDocument

_SUPPORTED_MAJOR_VERSION = 2


def load_document(path: Path) -> MutableJSONObject:
    """Load and validate an AsyncAPI document from JSON or YAML.

    Args:
        path (Path): Path to a ``.json``, ``.yaml`` or ``.yml`` file.

    Returns:
        MutableJSONObject: The parsed document mapping.
    """
    payload = read_mapping(path)
    ensure_supported_version(get_asyncapi_version(payload))
    try:
        AsyncAPIDocument.model_validate(payload)
    except ValidationError as exc:
        raise SpecFormatError(f"AsyncAPI structure validation failed for {path}: {exc}") from exc
    return payload


def read_mapping(path: Path) -> MutableJSONObject:
    """Read a JSON or YAML file that must contain a mapping."""
    try:
        with path.open("r", encoding="utf-8") as handle:
            text = handle.read()
    except OSError as exc:
        raise SpecFormatError(f"Failed to read AsyncAPI file {path}: {exc}") from exc

    payload: JSONValue
    if path.suffix.lower() == ".json":
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SpecFormatError(f"Failed to parse JSON in {path}: {exc}") from exc
    else:
        try:
            payload = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise SpecFormatError(f"Failed to parse YAML in {path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise SpecFormatError(
            f"AsyncAPI document {path} must deserialize to a mapping, got {type(payload)!r}"
        )
    return payload


def get_asyncapi_version(document: JSONObject) -> str:
    """Return the declared AsyncAPI version string."""
    version = document.get("asyncapi")
    if not isinstance(version, str) or not version.strip():
        raise SpecFormatError("Missing or invalid 'asyncapi' version field")
    return version.strip()


def ensure_supported_version(version: str) -> None:
    """Validate that the input version is AsyncAPI 2.x."""
    major_text = version.split(".", maxsplit=1)[0]
    try:
        major = int(major_text)
    except ValueError as exc:
        raise SpecFormatError(f"Unable to parse AsyncAPI version: {version}") from exc
    if major != _SUPPORTED_MAJOR_VERSION:
        raise SpecFormatError(f"Unsupported AsyncAPI version {version}; only 2.x is supported")


def dump_document(document: JSONObject, *, as_json: bool) -> str:
    """Serialize a document as JSON or YAML text.

    Args:
        document (JSONObject): Document to serialize.
        as_json (bool): Emit JSON instead of YAML.

    Returns:
        str: Serialized text ending in a newline.
    """
    if as_json:
        return json.dumps(document, indent=2) + "\n"
    return yaml.safe_dump(dict(document), sort_keys=False, allow_unicode=True)
