"""Integration tests for generator behavior."""

from __future__ import annotations

import ast
import subprocess
import sys
from pathlib import Path

import pytest

from asyncapi_client_generator.generator import (
    GeneratorError,
    run_client_generation,
    run_spec_generation,
)
from asyncapi_client_generator.loader import load_document
from asyncapi_client_generator.writer import OverwriteChoice
from .fixture_helpers import (
    client_config,
    inline_document,
    load_fixture,
    parametrize_fixtures,
    service_fixture,
)

_INVALID_CHANNEL_SPEC = """
asyncapi: 2.5.0
info: {title: Broken, version: 1.0.0}
channels:
  /events:
    publish:
      message:
        oneOf:
          - name: Start
            payload: {type: string}
          - name: Stop
            payload: {type: string}
"""


@parametrize_fixtures()
def test_generation_smoke(fixture_path: Path, tmp_path: Path) -> None:
    """Each fixture should generate an importable-looking package."""
    from asyncapi_client_generator.normalizer import normalize

    output_dir = tmp_path / fixture_path.stem
    run = run_client_generation(
        config=client_config(normalize(fixture_path), tests=True),
        output_dir=output_dir,
        format_output=False,
    )

    assert Path(run.result.output_dir) == output_dir
    assert run.verification_report is None
    assert (output_dir / "client.py").is_file()
    assert (output_dir / "__init__.py").is_file()
    assert (output_dir / "tests" / "config.toml").is_file()
    for written in run.result.written_files:
        if written.endswith(".py"):
            ast.parse(Path(written).read_text(encoding="utf-8"))


def test_generation_with_verification(tmp_path: Path) -> None:
    """Verification should find every component record and no mismatches."""
    run = run_client_generation(
        config=client_config(load_fixture("chat.yaml")),
        output_dir=tmp_path / "chat",
        format_output=False,
        verify=True,
    )
    report = run.verification_report
    assert report is not None
    assert report.verified_count == 5
    if report.mismatch_count > 0:
        preview = "\n".join(
            f"{m.path} :: {m.class_name} | expected={m.expected!r} actual={m.actual!r}"
            for m in report.mismatches[:8]
        )
        pytest.fail(f"Verification mismatches: {report.mismatch_count}\n{preview}")


def test_verification_needs_a_models_module(tmp_path: Path) -> None:
    """A document without types has nothing to verify."""
    document = inline_document(
        """
asyncapi: 2.5.0
info: {title: Empty, version: 1.0.0}
channels: {}
"""
    )
    with pytest.raises(GeneratorError, match="nothing to verify"):
        run_client_generation(
            config=client_config(document),
            output_dir=tmp_path / "empty",
            format_output=False,
            verify=True,
        )


def test_invalid_channels_leave_output_untouched(tmp_path: Path) -> None:
    """Derivation errors should surface before any file is written."""
    output_dir = tmp_path / "broken"

    with pytest.raises(GeneratorError):
        run_client_generation(
            config=client_config(inline_document(_INVALID_CHANNEL_SPEC)),
            output_dir=output_dir,
            format_output=False,
        )
    assert not output_dir.exists()


def test_regeneration_keeps_test_artifacts(tmp_path: Path) -> None:
    """Running twice replaces the package modules and keeps edited test files."""
    output_dir = tmp_path / "chat"
    config = client_config(load_fixture("chat.yaml"), tests=True)
    run_client_generation(config=config, output_dir=output_dir, format_output=False)
    stub = output_dir / "tests" / "config.toml"
    stub.write_text('service_url = "ws://localhost:1"\ntoken = "abc"\n', encoding="utf-8")

    run = run_client_generation(config=config, output_dir=output_dir, format_output=False)

    assert sorted(Path(path).name for path in run.result.skipped_files) == [
        "config.toml",
        "test_client.py",
    ]
    assert 'token = "abc"' in stub.read_text(encoding="utf-8")


def test_regeneration_with_never_writes_numbered_files(tmp_path: Path) -> None:
    output_dir = tmp_path / "chat"
    config = client_config(load_fixture("chat.yaml"))
    run_client_generation(config=config, output_dir=output_dir, format_output=False)

    run = run_client_generation(
        config=config,
        output_dir=output_dir,
        overwrite=OverwriteChoice.NEVER,
        format_output=False,
    )

    assert sorted(Path(path).name for path in run.result.written_files) == [
        "__init__.1.py",
        "client.1.py",
        "models.1.py",
        "utils.1.py",
    ]


def test_generation_invokes_ruff_formatting(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Generation should run ruff formatting on the written files."""
    output_dir = tmp_path / "formatted"
    captured: list[Path] = []

    def _fake_format(paths: tuple[Path, ...]) -> None:
        captured.extend(paths)

    monkeypatch.setattr(
        "asyncapi_client_generator.generator.format_generated_files",
        _fake_format,
    )

    run_client_generation(config=client_config(load_fixture("echo.yaml")), output_dir=output_dir)
    assert captured, "ruff formatting hook was not called"
    assert {path.parent for path in captured} == {output_dir}


def test_generated_modules_pass_ruff_check(tmp_path: Path) -> None:
    """Generated modules should pass all ruff checks."""
    output_dir = tmp_path / "chat"
    run_client_generation(
        config=client_config(load_fixture("chat.yaml")),
        output_dir=output_dir,
    )

    lint = subprocess.run(
        [
            sys.executable,
            "-m",
            "ruff",
            "check",
            "--ignore",
            "D100,D101,D102,D103,D104,D205,D301,D415,E501",
            str(output_dir),
        ],
        check=False,
        capture_output=True,
        text=True,
    )
    details = f"{lint.stdout}\n{lint.stderr}".strip()
    assert lint.returncode == 0, details


def test_spec_generation_numbers_repeated_output(tmp_path: Path) -> None:
    """A second document for the same service should not replace the first."""
    first = run_spec_generation(service_path=service_fixture("chat_service.py"), output_dir=tmp_path)
    second = run_spec_generation(service_path=service_fixture("chat_service.py"), output_dir=tmp_path)

    assert [Path(path).name for path in first.written_files] == ["chat_service.yaml"]
    assert [Path(path).name for path in second.written_files] == ["chat_service.1.yaml"]
    assert len(first.warnings) == 1

    document = load_document(tmp_path / "chat_service.yaml")
    assert document["info"]["title"] == "ChatService"
    assert "/rooms/{room_id}" in document["channels"]


def test_spec_generation_as_json(tmp_path: Path) -> None:
    result = run_spec_generation(
        service_path=service_fixture("chat_service.py"),
        output_dir=tmp_path,
        as_json=True,
    )

    (written,) = result.written_files
    assert written.endswith("chat_service.json")
    assert load_document(Path(written))["asyncapi"] == "2.5.0"

