"""Naming helpers for Python identifiers and generated file names."""

from __future__ import annotations

import keyword
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

JSON_EXTENSION = ".json"
YAML_EXTENSION = ".yaml"

_IDENTIFIER_SANITIZE_RE = re.compile(r"[^0-9a-zA-Z_]+")
_MULTIPLE_UNDERSCORES_RE = re.compile(r"_+")
_CAMEL_BOUNDARY_RE = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")
_PATH_PARAM_RE = re.compile(r"^\{(?P<name>[^{}]+)\}$")


def sanitize_identifier(raw: str, *, lowercase: bool = True) -> str:
    """Convert arbitrary text into a valid Python identifier."""
    text = raw.lower() if lowercase else raw
    text = _IDENTIFIER_SANITIZE_RE.sub("_", text)
    text = _MULTIPLE_UNDERSCORES_RE.sub("_", text).strip("_")
    if not text:
        text = "value"
    if text[0].isdigit():
        text = f"x_{text}"
    if keyword.iskeyword(text) or keyword.issoftkeyword(text):
        text = f"{text}_"
    return text


def snake_case(raw: str) -> str:
    """Convert camelCase, PascalCase or free text into a snake_case identifier."""
    split = _CAMEL_BOUNDARY_RE.sub("_", raw)
    return sanitize_identifier(split)


def class_name(raw: str) -> str:
    """Convert a name to a PascalCase class name."""
    clean = sanitize_identifier(_CAMEL_BOUNDARY_RE.sub("_", raw))
    name = "".join(part[:1].upper() + part[1:] for part in clean.split("_") if part)
    if not name:
        return "Model"
    if name[0].isdigit():
        return f"X{name}"
    return name


def path_parameter_names(path: str) -> list[str]:
    """Return the raw ``{name}`` parameter names of a channel path in order."""
    names: list[str] = []
    for segment in path.split("/"):
        match = _PATH_PARAM_RE.match(segment)
        if match:
            names.append(match.group("name"))
    return names


def channel_class_name(path: str) -> str:
    """Create a client class name from a channel path."""
    segments = [
        segment for segment in path.split("/") if segment and not _PATH_PARAM_RE.match(segment)
    ]
    base = class_name("_".join(segments)) if segments else ""
    return f"{base}Client" if base and base != "Model" else "Client"


def resolve_name(candidate: str, existing_names: Iterable[str]) -> str:
    """Return a snake_case identifier that does not collide with ``existing_names``.

    Collisions append ``_1``, ``_2``, ... in increasing order, so identical input
    always produces identical output.

    Args:
        candidate (str): Raw name taken from the specification.
        existing_names (Iterable[str]): Names already taken in the same scope.

    Returns:
        str: Unique identifier.
    """
    taken = set(existing_names)
    base = snake_case(candidate)
    if base not in taken:
        return base
    suffix = 1
    while f"{base}_{suffix}" in taken:
        suffix += 1
    return f"{base}_{suffix}"


def resolve_file_name(file_name: str, existing_files: Iterable[str], *, is_json: bool) -> str:
    """Return an output file name that does not clash with an existing file.

    Clashing names become ``stem.N.json`` or ``stem.N.yaml`` where ``N`` counts
    the existing files that share the same stem.

    Args:
        file_name (str): Preferred file name.
        existing_files (Iterable[str]): File names present in the target directory.
        is_json (bool): Whether the JSON extension should be used.

    Returns:
        str: The preferred name, or a numbered variant of it.
    """
    ordered = sorted(set(existing_files))
    if file_name not in ordered:
        return file_name
    stem = file_name.split(".", maxsplit=1)[0]
    duplicate_count = sum(
        1 for existing in ordered if "." in existing and existing.split(".", maxsplit=1)[0] == stem
    )
    extension = JSON_EXTENSION if is_json else YAML_EXTENSION
    return f"{stem}.{duplicate_count}{extension}"


def numbered_file_name(file_name: str, existing_files: Iterable[str]) -> str:
    """Return ``stem.N.ext`` for a generated source file, keeping its extension."""
    taken = set(existing_files)
    stem, _, extension = file_name.partition(".")
    suffix = 1
    while f"{stem}.{suffix}.{extension}" in taken:
        suffix += 1
    return f"{stem}.{suffix}.{extension}"


@dataclass
class NameRegistry:
    """Names handed out during one generation run."""

    used: set[str] = field(default_factory=set)

    def claim_class(self, raw: str) -> str:
        """Reserve a unique PascalCase type name derived from ``raw``."""
        base = class_name(raw)
        name = base
        suffix = 2
        while name in self.used:
            name = f"{base}{suffix}"
            suffix += 1
        self.used.add(name)
        return name

    def claim_member(self, raw: str) -> str:
        """Reserve a unique snake_case member name derived from ``raw``."""
        name = resolve_name(raw, self.used)
        self.used.add(name)
        return name
