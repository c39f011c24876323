"""Shared helpers for fixture-driven tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Optional, ParamSpec, TypeVar

import pytest
import yaml

from asyncapi_client_generator.config import ClientConfig, ClientConfigBuilder
from asyncapi_client_generator.json_types import JSONObject
from asyncapi_client_generator.model_types import SpecDocument
from asyncapi_client_generator.normalizer import normalize, normalize_document

_FIXTURE_ROOT = Path(__file__).resolve().parent / "fixtures"
_FIXTURE_DIR = _FIXTURE_ROOT / "asyncapi_specs"
_SERVICE_DIR = _FIXTURE_ROOT / "services"
_P = ParamSpec("_P")
_R = TypeVar("_R")


def fixture_dir() -> Path:
    """Return the AsyncAPI fixtures directory."""
    return _FIXTURE_DIR


def service_fixture(name: str) -> Path:
    """Return the path of a service module fixture."""
    return _SERVICE_DIR / name


def iter_fixture_paths() -> list[Path]:
    """Return all YAML fixture paths sorted by name."""
    paths = sorted(_FIXTURE_DIR.glob("*.yaml")) + sorted(_FIXTURE_DIR.glob("*.yml"))
    return [path for path in paths if path.is_file()]


def parametrize_fixtures() -> Callable[[Callable[_P, _R]], Callable[_P, _R]]:
    """Parametrize a test over all fixture paths."""

    def _decorator(func: Callable[_P, _R]) -> Callable[_P, _R]:
        decorator: Callable[[Callable[_P, _R]], Callable[_P, _R]]
        decorator = pytest.mark.parametrize(
            "fixture_path",
            iter_fixture_paths(),
            ids=lambda path: path.name,
        )
        return decorator(func)

    return _decorator


def load_fixture(name: str) -> SpecDocument:
    """Normalize a named AsyncAPI fixture."""
    return normalize(_FIXTURE_DIR / name)


def inline_document(text: str) -> SpecDocument:
    """Normalize an AsyncAPI document given as YAML text."""
    raw: JSONObject = yaml.safe_load(text)
    return normalize_document(raw)


def client_config(
    document: SpecDocument,
    *,
    server_url: Optional[str] = None,
    auth: Optional[str] = None,
    package: Optional[str] = None,
    license_header: Optional[str] = None,
    tests: bool = False,
) -> ClientConfig:
    """Build a client config the way the CLI does."""
    return (
        ClientConfigBuilder()
        .with_document(document)
        .with_server_url(server_url)
        .with_auth(auth)
        .with_package_name(package)
        .with_license(license_header)
        .with_tests(tests)
        .build()
    )
