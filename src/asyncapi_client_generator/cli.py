"""Command line interface for AsyncAPI client and spec generation."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .config import ClientConfigBuilder
from .errors import GeneratorError
from .generator import WriteError, run_client_generation, run_spec_generation
from .model_types import GenerationResult
from .normalizer import normalize
from .verify import format_report
from .writer import OverwriteChoice

CLIENT_COMMAND = "client"
SPEC_COMMAND = "spec"

INVALID_OPTION_WARNING = "WARNING the `{option}` option is invalid for generating {kind} files and will be ignored."

# Options accepted by both commands that only one of them honours.
_IGNORED_OPTIONS: dict[str, tuple[tuple[str, str], ...]] = {
    CLIENT_COMMAND: (("json", "--json"),),
    SPEC_COMMAND: (("license", "--license"), ("with_tests", "--with-tests")),
}


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--input", required=True, help="Input AsyncAPI document or service module")
    common.add_argument("--output", required=True, help="Output directory for generated files")
    common.add_argument("--license", help="File whose text prefixes every generated source file")
    common.add_argument(
        "--with-tests",
        action="store_true",
        help="Also generate a placeholder test module and config stub",
    )
    common.add_argument("--json", action="store_true", help="Write the AsyncAPI document as JSON")
    common.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    parser = argparse.ArgumentParser(
        prog="asyncapi-client-generator",
        description="Generate WebSocket clients from AsyncAPI documents and AsyncAPI documents from services",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    client = commands.add_parser(
        CLIENT_COMMAND,
        parents=[common],
        help="Generate a Python client package from an AsyncAPI document",
    )
    client.add_argument("--server-url", help="Override the service URL taken from the document")
    client.add_argument("--auth", help="Security scheme to generate credentials for")
    client.add_argument("--package", help="Import name of the generated package, used by tests")
    client.add_argument(
        "--overwrite",
        choices=[choice.value for choice in OverwriteChoice],
        default=OverwriteChoice.ALWAYS.value,
        help="What to do with existing generated files",
    )
    client.add_argument("--no-format", action="store_true", help="Skip Ruff formatting")
    client.add_argument(
        "--verify",
        action="store_true",
        help="Check the generated models against the document schemas",
    )

    commands.add_parser(
        SPEC_COMMAND,
        parents=[common],
        help="Generate an AsyncAPI document from a Python service module",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run CLI and return process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    for warning in ignored_option_warnings(args):
        print(warning)

    try:
        if args.command == SPEC_COMMAND:
            result = run_spec_generation(
                service_path=Path(args.input),
                output_dir=Path(args.output),
                as_json=bool(args.json),
            )
            _print_result(result)
            return 0
        return _run_client(args)
    except (GeneratorError, WriteError) as exc:
        parser.error(str(exc))
        return 2


def ignored_option_warnings(args: argparse.Namespace) -> list[str]:
    """Return a warning for every supplied option the command does not use."""
    return [
        INVALID_OPTION_WARNING.format(option=option, kind=args.command)
        for attribute, option in _IGNORED_OPTIONS.get(args.command, ())
        if getattr(args, attribute, None)
    ]


def _run_client(args: argparse.Namespace) -> int:
    document = normalize(Path(args.input))
    config = (
        ClientConfigBuilder()
        .with_document(document)
        .with_license_file(Path(args.license) if args.license else None)
        .with_tests(bool(args.with_tests))
        .with_server_url(args.server_url)
        .with_auth(args.auth)
        .with_package_name(args.package)
        .build()
    )

    choice = OverwriteChoice(args.overwrite)
    if choice is OverwriteChoice.ASK and not sys.stdin.isatty():
        print("Warning: --overwrite ask needs an interactive terminal; existing files are kept")
        choice = OverwriteChoice.NEVER

    run = run_client_generation(
        config=config,
        output_dir=Path(args.output),
        overwrite=choice,
        prompt=_ask_overwrite,
        format_output=not args.no_format,
        verify=bool(args.verify),
    )
    _print_result(run.result)

    if run.verification_report is not None:
        print(format_report(run.verification_report))
        if run.verification_report.mismatch_count > 0:
            return 1
    return 0


def _ask_overwrite(path: Path) -> bool:
    answer = input(f"{path} already exists. Overwrite it? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


def _print_result(result: GenerationResult) -> None:
    for warning in result.warnings:
        print(f"Warning: {warning}")
    for path in result.written_files:
        print(f"Generated {path}")
    for path in result.skipped_files:
        print(f"Kept existing {path}")


if __name__ == "__main__":
    raise SystemExit(main())
