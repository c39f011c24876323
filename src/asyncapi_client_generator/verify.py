"""Verification of generated pydantic models against their source schemas."""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for
from pydantic import BaseModel

from .json_types import JSONObject
from .model_types import SpecDocument
from .module_loading import load_module_from_path, unload_module
from .type_builder import TypeGraph


@dataclass(frozen=True)
class VerificationItem:
    """A generated record and the component schema it came from."""

    class_name: str
    source_schema: JSONObject


@dataclass(frozen=True)
class VerificationMismatch:
    """One verification mismatch."""

    class_name: str
    path: str
    expected: Any
    actual: Any


@dataclass(frozen=True)
class VerificationReport:
    """Result of the verification phase."""

    verified_count: int
    mismatch_count: int
    mismatches: tuple[VerificationMismatch, ...]


def verification_items(document: SpecDocument, types: TypeGraph) -> list[VerificationItem]:
    """Pair every record lowered from a component schema with that schema."""
    items: list[VerificationItem] = []
    for ref, name in types.names_by_ref.items():
        definition = types.definitions.get(name)
        if definition is None or not definition.is_record:
            continue
        source = document.resolve_pointer(ref)
        if isinstance(source, dict) and isinstance(source.get("properties"), dict):
            items.append(VerificationItem(class_name=name, source_schema=source))
    return items


def verify_models(*, items: list[VerificationItem], models_path: Path) -> VerificationReport:
    """Check generated models expose the properties their source schemas declare.

    Every generated model must produce a well-formed JSON Schema, accept each
    source property under its wire name and require exactly the source's
    required properties.
    """
    module_name = f"generated_models_{next(_COUNTER)}"
    module = load_module_from_path(module_name=module_name, module_path=models_path)
    mismatches: list[VerificationMismatch] = []
    try:
        _rebuild_module_models(module=module)
        for item in items:
            generated_class = getattr(module, item.class_name, None)
            if not isinstance(generated_class, type) or not issubclass(generated_class, BaseModel):
                mismatches.append(
                    VerificationMismatch(
                        class_name=item.class_name,
                        path="$",
                        expected="pydantic model",
                        actual=generated_class,
                    )
                )
                continue
            mismatches.extend(_compare(item, generated_class.model_json_schema(by_alias=True)))
    finally:
        unload_module(module_name)

    return VerificationReport(
        verified_count=len(items),
        mismatch_count=len(mismatches),
        mismatches=tuple(mismatches),
    )


def format_report(report: VerificationReport) -> str:
    """Render report as CLI output text."""
    lines = [
        f"Verified models: {report.verified_count}",
        f"Mismatches: {report.mismatch_count}",
    ]
    for mismatch in report.mismatches:
        lines.extend(
            [
                f"- {mismatch.class_name}",
                f"  path: {mismatch.path}",
                f"  expected: {short_repr(mismatch.expected)}",
                f"  actual: {short_repr(mismatch.actual)}",
            ]
        )
    return "\n".join(lines)


def short_repr(value: Any, *, limit: int = 160) -> str:
    """A short representation for mismatch diagnostics."""
    text = repr(value)
    return text if len(text) <= limit else f"{text[: limit - 3]}..."


def _compare(item: VerificationItem, generated: dict[str, Any]) -> list[VerificationMismatch]:
    mismatches: list[VerificationMismatch] = []
    try:
        validator_for(generated).check_schema(generated)
    except SchemaError as exc:
        mismatches.append(
            VerificationMismatch(
                class_name=item.class_name,
                path="$",
                expected="valid JSON Schema",
                actual=exc.message,
            )
        )

    source_properties = item.source_schema.get("properties")
    expected_names = sorted(source_properties) if isinstance(source_properties, dict) else []
    generated_properties = generated.get("properties", {})
    missing = [name for name in expected_names if name not in generated_properties]
    if missing:
        mismatches.append(
            VerificationMismatch(
                class_name=item.class_name,
                path="$.properties",
                expected=expected_names,
                actual=sorted(generated_properties),
            )
        )

    source_required = item.source_schema.get("required")
    expected_required = sorted(source_required) if isinstance(source_required, list) else []
    actual_required = sorted(generated.get("required", []))
    if expected_required != actual_required:
        mismatches.append(
            VerificationMismatch(
                class_name=item.class_name,
                path="$.required",
                expected=expected_required,
                actual=actual_required,
            )
        )
    return mismatches


def _rebuild_module_models(*, module: Any) -> None:
    model_types: list[type[BaseModel]] = []
    for value in module.__dict__.values():
        if not isinstance(value, type):
            continue
        if not issubclass(value, BaseModel):
            continue
        if value is BaseModel:
            continue
        if value.__module__ != module.__name__:
            continue
        model_types.append(value)

    for model_type in model_types:
        model_type.model_rebuild(_types_namespace=module.__dict__)


_COUNTER = itertools.count(1)
