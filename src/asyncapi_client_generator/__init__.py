"""AsyncAPI to Python WebSocket client generator, and Python services back to AsyncAPI."""

from __future__ import annotations

from .cli import main
from .generator import GenerationRun, run_client_generation, run_spec_generation

__all__ = ["GenerationRun", "main", "run_client_generation", "run_spec_generation"]
