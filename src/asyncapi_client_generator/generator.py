"""High-level generator orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .assembler import MODELS_FILE_NAME, assemble
from .auth import AuthConfig, build_auth_config
from .channel_mapper import derive_client
from .config import ClientConfig
from .errors import GeneratorError
from .loader import dump_document
from .model_types import ClientDefinition, GenerationResult
from .naming import JSON_EXTENSION, YAML_EXTENSION, snake_case
from .service_mapper import generate_spec
from .type_builder import TypeGraph, TypeModelBuilder
from .verify import VerificationReport, verification_items, verify_models
from .writer import (
    OverwriteChoice,
    OverwritePrompt,
    WriteError,
    format_generated_files,
    write_artifacts,
    write_document,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationRun:
    """Generation result with optional verification report."""

    result: GenerationResult
    verification_report: Optional[VerificationReport]


def build_client_surface(
    config: ClientConfig,
    auth: AuthConfig,
) -> tuple[TypeGraph, list[ClientDefinition]]:
    """Lower every schema and derive one client per channel.

    Returns:
        tuple[TypeGraph, list[ClientDefinition]]: The final type graph, including
        payload types added while mapping channels, and the clients in channel order.
    """
    builder = TypeModelBuilder(config.document, pre_existing=auth.definitions)
    builder.build_types()
    clients = [
        derive_client(path, channel, builder, names=builder.names)
        for path, channel in config.document.channels.items()
    ]
    return builder.graph, clients


def run_client_generation(
    *,
    config: ClientConfig,
    output_dir: Path,
    overwrite: OverwriteChoice = OverwriteChoice.ALWAYS,
    prompt: Optional[OverwritePrompt] = None,
    format_output: bool = True,
    verify: bool = False,
) -> GenerationRun:
    """Generate a client package from a normalized AsyncAPI document.

    Everything is derived in memory before the first file is written, so an
    invalid document leaves ``output_dir`` untouched.

    Args:
        config (ClientConfig): Generation settings, including the document.
        output_dir (Path): Directory where the package files are written.
        overwrite (OverwriteChoice): Strategy for existing overwritable files.
        prompt (Optional[OverwritePrompt]): Callback for ``OverwriteChoice.ASK``.
        format_output (bool): Whether to run Ruff on the written sources.
        verify (bool): Whether to check the generated models after writing.

    Returns:
        GenerationRun: Generation metadata and optional verification report.
    """
    auth = build_auth_config(config.document, config.auth_selection)
    types, clients = build_client_surface(config, auth)
    logger.info(
        "Derived %d client(s) and %d type definition(s) from %s",
        len(clients),
        len(types),
        config.document.title,
    )
    artifacts = assemble(config, types, clients, auth, config.include_tests)

    outcome = write_artifacts(output_dir, artifacts, choice=overwrite, prompt=prompt)
    if format_output:
        format_generated_files(outcome.written)

    result = GenerationResult(
        output_dir=str(output_dir),
        written_files=tuple(str(path) for path in outcome.written),
        skipped_files=tuple(str(path) for path in outcome.skipped),
        warnings=auth.warnings,
    )
    if not verify:
        return GenerationRun(result=result, verification_report=None)

    models_path = _written_models_path(output_dir, outcome.written)
    if models_path is None:
        raise GeneratorError(f"No {MODELS_FILE_NAME} was written to {output_dir}; nothing to verify")
    report = verify_models(
        items=verification_items(config.document, types),
        models_path=models_path,
    )
    return GenerationRun(result=result, verification_report=report)


def run_spec_generation(
    *,
    service_path: Path,
    output_dir: Path,
    as_json: bool = False,
) -> GenerationResult:
    """Generate an AsyncAPI document from a Python service module.

    Args:
        service_path (Path): Module declaring the WebSocket service.
        output_dir (Path): Directory that receives the document.
        as_json (bool): Write JSON instead of YAML.

    Returns:
        GenerationResult: The written document path and any warnings.
    """
    spec = generate_spec(service_path)
    content = dump_document(spec.document, as_json=as_json)
    extension = JSON_EXTENSION if as_json else YAML_EXTENSION
    file_name = f"{snake_case(spec.service_name)}{extension}"
    target = write_document(output_dir, file_name, content, is_json=as_json)
    logger.info("Wrote AsyncAPI document %s", target)
    return GenerationResult(
        output_dir=str(output_dir),
        written_files=(str(target),),
        skipped_files=(),
        warnings=spec.warnings,
    )


def _written_models_path(output_dir: Path, paths: tuple[Path, ...]) -> Optional[Path]:
    stem = Path(MODELS_FILE_NAME).stem
    for path in paths:
        if path.parent == output_dir and path.name.split(".", maxsplit=1)[0] == stem:
            return path
    return None


__all__ = [
    "GenerationRun",
    "GeneratorError",
    "WriteError",
    "build_client_surface",
    "run_client_generation",
    "run_spec_generation",
]
