"""Authentication settings derived from ``components.securitySchemes``."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .json_types import JSONObject
from .model_types import FieldDef, ParameterDef, SpecDocument, TypeDefinition, TypeShape
from .naming import resolve_name

logger = logging.getLogger(__name__)

API_KEYS_TYPE_NAME = "ApiKeysConfig"


class AuthKind(Enum):
    """Authentication styles a generated client supports."""

    BASIC = "basic"
    BEARER = "bearer"
    API_KEY = "api-key"


@dataclass(frozen=True)
class ApiKeyDef:
    """One API key and where the client sends it."""

    field_name: str
    key_name: str
    location: str
    description: Optional[str] = None


@dataclass(frozen=True)
class AuthConfig:
    """Authentication selected for the generated client."""

    kind: Optional[AuthKind] = None
    scheme_name: Optional[str] = None
    api_keys: tuple[ApiKeyDef, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def parameters(self) -> tuple[ParameterDef, ...]:
        """Client ``__init__`` parameters carrying credentials."""
        if self.kind is AuthKind.BASIC:
            return (
                ParameterDef(name="username", source_name="username", annotation="str"),
                ParameterDef(name="password", source_name="password", annotation="str"),
            )
        if self.kind is AuthKind.BEARER:
            return (ParameterDef(name="token", source_name="token", annotation="str"),)
        if self.kind is AuthKind.API_KEY:
            return (
                ParameterDef(name="api_keys", source_name="apiKeys", annotation=API_KEYS_TYPE_NAME),
            )
        return ()

    @property
    def definitions(self) -> tuple[TypeDefinition, ...]:
        """Type definitions the auth settings contribute to the models module."""
        if self.kind is not AuthKind.API_KEY:
            return ()
        return (
            TypeDefinition(
                name=API_KEYS_TYPE_NAME,
                shape=TypeShape.RECORD,
                fields=tuple(
                    FieldDef(
                        name=key.field_name,
                        source_name=key.key_name,
                        annotation="str",
                        required=True,
                        default=None,
                        metadata={"description": key.description} if key.description else {},
                    )
                    for key in self.api_keys
                ),
                docstring="API keys sent with every connection.",
                extra_behavior="forbid",
            ),
        )

    @property
    def header_keys(self) -> tuple[ApiKeyDef, ...]:
        return tuple(key for key in self.api_keys if key.location != "query")

    @property
    def query_keys(self) -> tuple[ApiKeyDef, ...]:
        return tuple(key for key in self.api_keys if key.location == "query")


def build_auth_config(document: SpecDocument, selection: Optional[str] = None) -> AuthConfig:
    """Select the authentication style for the generated client.

    Args:
        document (SpecDocument): Normalized document.
        selection (Optional[str]): Security scheme name to use. When omitted the
            first supported scheme is used.

    Returns:
        AuthConfig: The selected style, or an empty config when the document has
        no usable security scheme.
    """
    raw_components = document.raw.get("components")
    schemes = raw_components.get("securitySchemes") if isinstance(raw_components, dict) else None
    if not isinstance(schemes, dict) or not schemes:
        return AuthConfig()

    warnings: list[str] = []
    if selection is not None and selection not in schemes:
        warnings.append(f"Security scheme '{selection}' is not defined and was ignored")
        selection = None

    kind: Optional[AuthKind] = None
    scheme_name: Optional[str] = None
    api_keys: list[ApiKeyDef] = []
    taken: list[str] = []
    for name, raw_scheme in schemes.items():
        if not isinstance(raw_scheme, dict):
            continue
        if selection is not None and name != selection:
            continue
        scheme = raw_scheme
        if isinstance(raw_scheme.get("$ref"), str):
            scheme = document.resolve_pointer(
                raw_scheme["$ref"], origin=f"$.components.securitySchemes.{name}"
            )
        if not isinstance(scheme, dict):
            continue
        scheme_kind = _scheme_kind(scheme)
        if scheme_kind is None:
            warnings.append(
                f"Unsupported security scheme '{name}' of type '{scheme.get('type')}' was ignored"
            )
            continue
        if kind is None:
            kind, scheme_name = scheme_kind, name
        if scheme_kind is AuthKind.API_KEY and kind is AuthKind.API_KEY:
            key_name = str(scheme.get("name") or name)
            field_name = resolve_name(key_name, taken)
            taken.append(field_name)
            description = scheme.get("description")
            api_keys.append(
                ApiKeyDef(
                    field_name=field_name,
                    key_name=key_name,
                    location=str(scheme.get("in") or "header"),
                    description=description if isinstance(description, str) else None,
                )
            )

    for warning in warnings:
        logger.warning(warning)
    return AuthConfig(
        kind=kind,
        scheme_name=scheme_name,
        api_keys=tuple(api_keys),
        warnings=tuple(warnings),
    )


def _scheme_kind(scheme: JSONObject) -> Optional[AuthKind]:
    scheme_type = scheme.get("type")
    if scheme_type == "http":
        http_scheme = str(scheme.get("scheme", "")).lower()
        if http_scheme == "basic":
            return AuthKind.BASIC
        if http_scheme == "bearer":
            return AuthKind.BEARER
        return None
    if scheme_type == "userPassword":
        return AuthKind.BASIC
    if scheme_type == "oauth2":
        return AuthKind.BEARER
    if scheme_type in ("apiKey", "httpApiKey"):
        return AuthKind.API_KEY
    return None
