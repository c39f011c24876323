"""Filesystem writers for generated client packages and AsyncAPI documents."""

from __future__ import annotations

import logging
import subprocess
import sys
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from .model_types import GeneratedArtifact, OverwritePolicy
from .naming import numbered_file_name, resolve_file_name

logger = logging.getLogger(__name__)

_GENERATED_RUFF_IGNORE_CODES: tuple[str, ...] = (
    "D100",
    "D101",
    "D102",
    "D103",
    "D104",
    "D205",
    "D301",
    "D415",
    "E501",
)

OverwritePrompt = Callable[[Path], bool]


class WriteError(RuntimeError):
    """Raised when output files cannot be written.

    ``committed`` lists the files written before the failure.
    """

    def __init__(self, message: str, committed: Iterable[Path] = ()) -> None:
        self.committed = tuple(committed)
        if self.committed:
            written = ", ".join(str(path) for path in self.committed)
            message = f"{message} (already written: {written})"
        super().__init__(message)


class OverwriteChoice(Enum):
    """What to do when an overwritable artifact already exists."""

    ALWAYS = "always"
    NEVER = "never"
    ASK = "ask"


@dataclass(frozen=True)
class WriteOutcome:
    """Files written and skipped by one writer call."""

    written: tuple[Path, ...]
    skipped: tuple[Path, ...]


def write_artifacts(
    output_dir: Path,
    artifacts: Sequence[GeneratedArtifact],
    *,
    choice: OverwriteChoice = OverwriteChoice.ALWAYS,
    prompt: Optional[OverwritePrompt] = None,
) -> WriteOutcome:
    """Write artifacts one at a time below ``output_dir``.

    Write-once artifacts are skipped when their file exists. For other existing
    files ``choice`` decides: replace it, write a numbered sibling instead, or
    ask ``prompt`` (``True`` replaces).

    Args:
        output_dir (Path): Root output directory; created when missing.
        artifacts (Sequence[GeneratedArtifact]): Artifacts in writing order.
        choice (OverwriteChoice): Strategy for existing overwritable files.
        prompt (Optional[OverwritePrompt]): Callback used by ``OverwriteChoice.ASK``.

    Returns:
        WriteOutcome: Paths written and skipped.

    Raises:
        WriteError: When a file cannot be written; lists the files already written.
    """
    if choice is OverwriteChoice.ASK and prompt is None:
        raise ValueError("An overwrite prompt is required for OverwriteChoice.ASK")

    written: list[Path] = []
    skipped: list[Path] = []
    for artifact in artifacts:
        target = output_dir / artifact.relative_path
        if target.exists():
            if artifact.overwrite is OverwritePolicy.WRITE_ONCE:
                logger.info("Keeping existing %s", target)
                skipped.append(target)
                continue
            if not _may_replace(target, choice, prompt):
                sibling_names = [path.name for path in target.parent.iterdir()]
                target = target.with_name(numbered_file_name(target.name, sibling_names))
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            _write_file(target, artifact.content)
        except WriteError as exc:
            raise WriteError(str(exc), committed=written) from exc
        except OSError as exc:
            raise WriteError(f"Failed to create directory {target.parent}: {exc}", written) from exc
        logger.debug("Wrote %s", target)
        written.append(target)
    return WriteOutcome(written=tuple(written), skipped=tuple(skipped))


def write_document(output_dir: Path, file_name: str, content: str, *, is_json: bool) -> Path:
    """Write a generated AsyncAPI document without replacing an existing one.

    Args:
        output_dir (Path): Directory that receives the document.
        file_name (str): Preferred file name.
        content (str): Serialized document.
        is_json (bool): Whether the document is JSON.

    Returns:
        Path: Path of the written document.
    """
    try:
        output_dir.mkdir(parents=True, exist_ok=True)
        existing = [path.name for path in output_dir.iterdir()]
    except OSError as exc:
        raise WriteError(f"Failed to prepare output directory {output_dir}: {exc}") from exc
    target = output_dir / resolve_file_name(file_name, existing, is_json=is_json)
    _write_file(target, content)
    return target


def format_generated_files(paths: Iterable[Path]) -> None:
    """Run Ruff auto-fixes and formatter against generated Python files.

    Args:
        paths (Iterable[Path]): Written files; non-Python files are ignored.
    """
    targets = tuple(str(path) for path in paths if path.suffix == ".py")
    if not targets:
        return
    _run_ruff(args=("format", *targets))
    _run_ruff(
        args=(
            "check",
            "--fix",
            "--ignore",
            ",".join(_GENERATED_RUFF_IGNORE_CODES),
            *targets,
        ),
    )
    _run_ruff(args=("format", *targets))


def _may_replace(target: Path, choice: OverwriteChoice, prompt: Optional[OverwritePrompt]) -> bool:
    if choice is OverwriteChoice.ALWAYS:
        return True
    if choice is OverwriteChoice.NEVER or prompt is None:
        return False
    return prompt(target)


def _run_ruff(*, args: tuple[str, ...]) -> None:
    command = [sys.executable, "-m", "ruff", *args]
    command_desc = " ".join(args[:2])
    try:
        subprocess.run(
            command,
            check=True,
            capture_output=True,
            text=True,
        )
    except OSError as exc:
        raise WriteError(f"Failed to execute ruff {command_desc}: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        error_text = exc.stderr.strip() or exc.stdout.strip() or str(exc)
        raise WriteError(f"ruff {command_desc} failed: {error_text}") from exc


def _write_file(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise WriteError(f"Failed to write file {path}: {exc}") from exc
