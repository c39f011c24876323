"""Helpers for dynamically loading generated Python modules."""

from __future__ import annotations

import importlib.util
import sys
from pathlib import Path
from types import ModuleType

from .errors import GeneratorError


def load_module_from_path(*, module_name: str, module_path: Path) -> ModuleType:
    """Load a module from file path and register it in ``sys.modules``.

    Registration lets pydantic resolve postponed annotations of the module.

    Args:
        module_name (str): Temporary import name for the module.
        module_path (Path): File system path to the Python module.

    Returns:
        ModuleType: Imported Python module object.
    """
    if not module_path.exists():
        raise GeneratorError(f"Generated module not found: {module_path}")
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if spec is None or spec.loader is None:
        raise GeneratorError(f"Unable to import module from: {module_path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception:
        sys.modules.pop(module_name, None)
        raise
    return module


def unload_module(module_name: str) -> None:
    """Forget a module loaded by :func:`load_module_from_path`."""
    sys.modules.pop(module_name, None)
