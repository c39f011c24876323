"""Client generation settings collected before a run starts."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import GeneratorError
from .json_types import JSONObject
from .model_types import SpecDocument
from .naming import sanitize_identifier

_SERVER_VARIABLE_RE = re.compile(r"\{(?P<name>[^{}]+)\}")
_DEFAULT_PACKAGE_NAME = "generated_client"


@dataclass(frozen=True)
class ClientConfig:
    """Immutable snapshot of the client generation settings."""

    document: SpecDocument
    license_header: Optional[str] = None
    include_tests: bool = False
    server_url: Optional[str] = None
    auth_selection: Optional[str] = None
    package_name: str = _DEFAULT_PACKAGE_NAME

    @property
    def resolved_server_url(self) -> Optional[str]:
        """Return the override URL, or the first server of the document."""
        if self.server_url:
            return self.server_url
        for server in self.document.servers.values():
            url = server.get("url")
            if isinstance(url, str) and url.strip():
                return _server_url(url.strip(), server)
        return None


class ClientConfigBuilder:
    """Collect client settings one option at a time."""

    def __init__(self) -> None:
        self._document: Optional[SpecDocument] = None
        self._license_header: Optional[str] = None
        self._include_tests = False
        self._server_url: Optional[str] = None
        self._auth_selection: Optional[str] = None
        self._package_name: Optional[str] = None

    def with_document(self, document: SpecDocument) -> ClientConfigBuilder:
        self._document = document
        return self

    def with_license(self, header: Optional[str]) -> ClientConfigBuilder:
        self._license_header = header.rstrip("\n") if header else None
        return self

    def with_license_file(self, path: Optional[Path]) -> ClientConfigBuilder:
        """Read the license header from ``path``."""
        if path is None:
            return self
        try:
            return self.with_license(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise GeneratorError(f"Unable to read license file {path}: {exc}") from exc

    def with_tests(self, include_tests: bool = True) -> ClientConfigBuilder:
        self._include_tests = include_tests
        return self

    def with_server_url(self, url: Optional[str]) -> ClientConfigBuilder:
        self._server_url = url.strip() if url and url.strip() else None
        return self

    def with_auth(self, selection: Optional[str]) -> ClientConfigBuilder:
        self._auth_selection = selection
        return self

    def with_package_name(self, name: Optional[str]) -> ClientConfigBuilder:
        self._package_name = sanitize_identifier(name) if name else None
        return self

    def build(self) -> ClientConfig:
        """Freeze the collected options.

        Raises:
            GeneratorError: When no document was supplied.
        """
        if self._document is None:
            raise GeneratorError("An AsyncAPI document is required to generate a client")
        return ClientConfig(
            document=self._document,
            license_header=self._license_header,
            include_tests=self._include_tests,
            server_url=self._server_url,
            auth_selection=self._auth_selection,
            package_name=self._package_name or _DEFAULT_PACKAGE_NAME,
        )


def _server_url(url: str, server: JSONObject) -> str:
    variables = server.get("variables")
    defaults: dict[str, str] = {}
    if isinstance(variables, dict):
        for name, variable in variables.items():
            if isinstance(variable, dict) and variable.get("default") is not None:
                defaults[name] = str(variable["default"])
    resolved = _SERVER_VARIABLE_RE.sub(
        lambda match: defaults.get(match.group("name"), match.group(0)), url
    )
    if "://" not in resolved:
        protocol = server.get("protocol")
        scheme = protocol if isinstance(protocol, str) and protocol else "ws"
        resolved = f"{scheme}://{resolved}"
    return resolved.rstrip("/")
