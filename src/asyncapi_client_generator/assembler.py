"""Combine type definitions and client surfaces into named artifacts."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Optional

from .auth import AuthConfig
from .codegen_ast import (
    client_annotations,
    defines_no_value,
    render_client_module,
    render_init_module,
    render_models_module,
    render_utils_module,
)
from .config import ClientConfig
from .model_types import ArtifactDirectory, ClientDefinition, GeneratedArtifact, OverwritePolicy
from .test_skeleton import CONFIG_FILE_NAME, generate_skeleton
from .type_builder import NEVER_ANNOTATION, TypeGraph

CLIENT_FILE_NAME = "client.py"
MODELS_FILE_NAME = "models.py"
UTILS_FILE_NAME = "utils.py"
INIT_FILE_NAME = "__init__.py"
TEST_FILE_NAME = "test_client.py"


def assemble(
    config: ClientConfig,
    types: TypeGraph,
    clients: Sequence[ClientDefinition],
    auth: AuthConfig,
    include_tests: Optional[bool] = None,
) -> list[GeneratedArtifact]:
    """Build the ordered artifacts of a client package.

    The client and package init are always produced; the models and utils
    modules only when they have content. Test artifacts are write-once.

    Args:
        config (ClientConfig): Generation settings.
        types (TypeGraph): Lowered type definitions.
        clients (Sequence[ClientDefinition]): One client surface per channel.
        auth (AuthConfig): Selected authentication.
        include_tests (Optional[bool]): Overrides ``config.include_tests``.

    Returns:
        list[GeneratedArtifact]: Artifacts in writing order.
    """
    if include_tests is None:
        include_tests = config.include_tests
    definitions = types.ordered()
    annotations = client_annotations(clients, auth)
    model_names = [definition.name for definition in definitions]
    models_source = render_models_module(definitions, client_annotations=annotations)
    if defines_no_value(definitions, annotations):
        model_names.append(NEVER_ANNOTATION)

    client_source = render_client_module(
        clients,
        auth=auth,
        service_url=config.resolved_server_url,
        model_names=model_names,
    )
    utils_source = render_utils_module(clients, auth)
    init_source = render_init_module(
        clients,
        title=config.document.title,
        description=config.document.description,
    )

    artifacts = [_python_artifact(CLIENT_FILE_NAME, client_source, config)]
    if models_source:
        artifacts.append(_python_artifact(MODELS_FILE_NAME, models_source, config))
    if utils_source:
        artifacts.append(_python_artifact(UTILS_FILE_NAME, utils_source, config))
    artifacts.append(_python_artifact(INIT_FILE_NAME, init_source, config))

    if include_tests:
        test_source, config_text = generate_skeleton(clients, config, auth)
        artifacts.append(
            _python_artifact(
                TEST_FILE_NAME,
                test_source,
                config,
                directory=ArtifactDirectory.TESTS,
                overwrite=OverwritePolicy.WRITE_ONCE,
            )
        )
        artifacts.append(
            GeneratedArtifact(
                name=CONFIG_FILE_NAME,
                directory=ArtifactDirectory.TESTS,
                content=config_text,
                overwrite=OverwritePolicy.WRITE_ONCE,
            )
        )
    return artifacts


def license_comment(header: str) -> str:
    """Turn license text into a Python comment block."""
    lines = []
    for line in header.splitlines():
        if line.startswith("#"):
            lines.append(line)
        else:
            lines.append(f"# {line}".rstrip())
    return "\n".join(lines) + "\n\n"


def _python_artifact(
    name: str,
    source: str,
    config: ClientConfig,
    *,
    directory: ArtifactDirectory = ArtifactDirectory.ROOT,
    overwrite: OverwritePolicy = OverwritePolicy.ALWAYS,
) -> GeneratedArtifact:
    if config.license_header:
        source = license_comment(config.license_header) + source
    return GeneratedArtifact(name=name, directory=directory, content=source, overwrite=overwrite)
