"""Tests for the command line interface."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path

import pytest

from asyncapi_client_generator.cli import build_parser, ignored_option_warnings, main
from .fixture_helpers import fixture_dir, service_fixture


def test_cli_help_screen() -> None:
    """Running the CLI help should succeed and print usage information."""
    result = subprocess.run(
        [sys.executable, "-m", "asyncapi_client_generator", "--help"],
        check=False,
        capture_output=True,
        text=True,
    )
    assert result.returncode == 0
    assert "usage:" in result.stdout.lower()
    assert "client" in result.stdout and "spec" in result.stdout


@pytest.mark.parametrize(
    ("argv", "expected"),
    [
        (
            ["client", "--input", "a.yaml", "--output", "out", "--json"],
            ["WARNING the `--json` option is invalid for generating client files and will be ignored."],
        ),
        (
            ["spec", "--input", "svc.py", "--output", "out", "--license", "LICENSE", "--with-tests"],
            [
                "WARNING the `--license` option is invalid for generating spec files and will be ignored.",
                "WARNING the `--with-tests` option is invalid for generating spec files and will be ignored.",
            ],
        ),
        (["spec", "--input", "svc.py", "--output", "out", "--json"], []),
        (["client", "--input", "a.yaml", "--output", "out", "--with-tests"], []),
    ],
)
def test_ignored_option_warnings(argv: list[str], expected: list[str]) -> None:
    """Options the command does not honour should be reported, not rejected."""
    assert ignored_option_warnings(build_parser().parse_args(argv)) == expected


def test_client_command_writes_package(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    output_dir = tmp_path / "chat"
    license_path = tmp_path / "LICENSE"
    license_path.write_text("Copyright Example\n", encoding="utf-8")

    exit_code = main(
        [
            "client",
            "--input",
            str(fixture_dir() / "chat.yaml"),
            "--output",
            str(output_dir),
            "--license",
            str(license_path),
            "--no-format",
            "--json",
        ]
    )

    assert exit_code == 0
    output = capsys.readouterr().out
    assert output.startswith("WARNING the `--json` option is invalid")
    assert f"Generated {output_dir / 'client.py'}" in output
    assert (output_dir / "client.py").read_text(encoding="utf-8").startswith("# Copyright Example\n")


def test_client_command_reports_verification(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    exit_code = main(
        [
            "client",
            "--input",
            str(fixture_dir() / "chat.yaml"),
            "--output",
            str(tmp_path / "chat"),
            "--no-format",
            "--verify",
        ]
    )

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "Verified models: 5" in output
    assert "Mismatches: 0" in output


def test_spec_command_writes_document(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = main(
        [
            "spec",
            "--input",
            str(service_fixture("chat_service.py")),
            "--output",
            str(tmp_path),
        ]
    )

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "Warning: Remote method on_ping" in output
    assert (tmp_path / "chat_service.yaml").is_file()


def test_invalid_input_exits_with_usage_error(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Generation errors should be reported through the parser."""
    broken = tmp_path / "broken.yaml"
    broken.write_text("asyncapi: 3.0.0\ninfo: {title: X, version: '1'}\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["client", "--input", str(broken), "--output", str(tmp_path / "out")])

    assert excinfo.value.code == 2
    assert "only 2.x" in capsys.readouterr().err
    assert not (tmp_path / "out").exists()


def test_missing_command_is_rejected() -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["--input", "a.yaml"])
    assert excinfo.value.code == 2
