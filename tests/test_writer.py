"""Tests for writing generated artifacts and documents."""

from __future__ import annotations

from pathlib import Path

import pytest

from asyncapi_client_generator.model_types import (
    ArtifactDirectory,
    GeneratedArtifact,
    OverwritePolicy,
)
from asyncapi_client_generator.writer import (
    OverwriteChoice,
    WriteError,
    format_generated_files,
    write_artifacts,
    write_document,
)


def _artifact(
    name: str,
    content: str,
    *,
    directory: ArtifactDirectory = ArtifactDirectory.ROOT,
    overwrite: OverwritePolicy = OverwritePolicy.ALWAYS,
) -> GeneratedArtifact:
    return GeneratedArtifact(name=name, directory=directory, content=content, overwrite=overwrite)


def test_artifacts_are_written_in_order(tmp_path: Path) -> None:
    """Files are created below the output directory, tests in their own folder."""
    outcome = write_artifacts(
        tmp_path / "pkg",
        [
            _artifact("client.py", "CLIENT = 1\n"),
            _artifact("test_client.py", "TEST = 1\n", directory=ArtifactDirectory.TESTS),
        ],
    )

    assert outcome.written == (tmp_path / "pkg" / "client.py", tmp_path / "pkg" / "tests" / "test_client.py")
    assert outcome.skipped == ()
    assert (tmp_path / "pkg" / "tests" / "test_client.py").read_text(encoding="utf-8") == "TEST = 1\n"


def test_write_once_artifacts_are_kept(tmp_path: Path) -> None:
    """An existing write-once file must never be replaced."""
    target = tmp_path / "config.toml"
    target.write_text("token = 'mine'\n", encoding="utf-8")

    outcome = write_artifacts(
        tmp_path,
        [_artifact("config.toml", "token = ''\n", overwrite=OverwritePolicy.WRITE_ONCE)],
    )

    assert outcome.written == ()
    assert outcome.skipped == (target,)
    assert target.read_text(encoding="utf-8") == "token = 'mine'\n"


def test_always_replaces_existing_files(tmp_path: Path) -> None:
    (tmp_path / "client.py").write_text("OLD = 1\n", encoding="utf-8")

    write_artifacts(tmp_path, [_artifact("client.py", "NEW = 1\n")])

    assert (tmp_path / "client.py").read_text(encoding="utf-8") == "NEW = 1\n"


def test_never_writes_numbered_siblings(tmp_path: Path) -> None:
    """Declining to overwrite keeps the original and writes ``stem.N.ext``."""
    (tmp_path / "client.py").write_text("OLD = 1\n", encoding="utf-8")
    (tmp_path / "client.1.py").write_text("OLDER = 1\n", encoding="utf-8")

    outcome = write_artifacts(
        tmp_path,
        [_artifact("client.py", "NEW = 1\n")],
        choice=OverwriteChoice.NEVER,
    )

    assert outcome.written == (tmp_path / "client.2.py",)
    assert (tmp_path / "client.py").read_text(encoding="utf-8") == "OLD = 1\n"
    assert (tmp_path / "client.2.py").read_text(encoding="utf-8") == "NEW = 1\n"


def test_ask_uses_the_prompt_per_file(tmp_path: Path) -> None:
    """The prompt decides for each existing file."""
    (tmp_path / "client.py").write_text("OLD = 1\n", encoding="utf-8")
    (tmp_path / "models.py").write_text("OLD = 1\n", encoding="utf-8")
    asked: list[Path] = []

    def prompt(path: Path) -> bool:
        asked.append(path)
        return path.name == "client.py"

    outcome = write_artifacts(
        tmp_path,
        [_artifact("client.py", "NEW = 1\n"), _artifact("models.py", "NEW = 1\n")],
        choice=OverwriteChoice.ASK,
        prompt=prompt,
    )

    assert asked == [tmp_path / "client.py", tmp_path / "models.py"]
    assert outcome.written == (tmp_path / "client.py", tmp_path / "models.1.py")
    assert (tmp_path / "models.py").read_text(encoding="utf-8") == "OLD = 1\n"


def test_ask_requires_a_prompt(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="overwrite prompt"):
        write_artifacts(tmp_path, [_artifact("client.py", "")], choice=OverwriteChoice.ASK)


def test_failed_write_reports_committed_files(tmp_path: Path) -> None:
    """A failure part way through should name the files already on disk."""
    # A plain file where the tests directory should go.
    (tmp_path / "tests").write_text("", encoding="utf-8")

    with pytest.raises(WriteError) as excinfo:
        write_artifacts(
            tmp_path,
            [
                _artifact("client.py", "CLIENT = 1\n"),
                _artifact("test_client.py", "", directory=ArtifactDirectory.TESTS),
            ],
        )

    assert excinfo.value.committed == (tmp_path / "client.py",)
    assert "already written" in str(excinfo.value)


def test_documents_are_numbered_instead_of_replaced(tmp_path: Path) -> None:
    """A regenerated document lands beside the existing one."""
    first = write_document(tmp_path, "chat_service.yaml", "a: 1\n", is_json=False)
    second = write_document(tmp_path, "chat_service.yaml", "a: 2\n", is_json=False)
    third = write_document(tmp_path, "chat_service.yaml", "a: 3\n", is_json=False)

    assert [first.name, second.name, third.name] == [
        "chat_service.yaml",
        "chat_service.1.yaml",
        "chat_service.2.yaml",
    ]
    assert first.read_text(encoding="utf-8") == "a: 1\n"


def test_format_skips_non_python_files(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Only Python files are handed to Ruff."""
    calls: list[tuple[str, ...]] = []
    monkeypatch.setattr(
        "asyncapi_client_generator.writer._run_ruff",
        lambda *, args: calls.append(args),
    )

    format_generated_files([tmp_path / "config.toml"])
    assert calls == []

    format_generated_files([tmp_path / "config.toml", tmp_path / "client.py"])
    assert [call[0] for call in calls] == ["format", "check", "format"]
    assert all(call[-1] == str(tmp_path / "client.py") for call in calls)
