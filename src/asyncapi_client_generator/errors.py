"""Error taxonomy raised by the generator pipeline."""

from __future__ import annotations

from enum import Enum


class GeneratorError(RuntimeError):
    """Base class for fatal generation errors."""


class SpecFormatError(GeneratorError):
    """Raised when the input document is malformed."""


class RefResolutionError(GeneratorError):
    """Raised when an internal or external reference cannot be located."""


class MissingExtensionError(GeneratorError):
    """Raised when a required custom extension attribute is absent."""


class UnsupportedSchemaTypeError(GeneratorError):
    """Raised when a schema type or format has no Python type mapping."""


class ArrayPathParameterError(GeneratorError):
    """Raised when an array schema is used as a channel path parameter."""


class DispatcherFailure(Enum):
    """Distinct ways the dispatcher configuration can be invalid."""

    MISSING_ANNOTATION = "missing-annotation"
    MISSING_SERVICE_CONFIG = "missing-service-config"
    MISSING_DISPATCHER_KEY = "missing-dispatcher-key"
    EMPTY_DISPATCHER_KEY = "empty-dispatcher-key"


class DispatcherConfigError(GeneratorError):
    """Raised when the service dispatcher configuration is missing or invalid."""

    def __init__(self, reason: DispatcherFailure, message: str) -> None:
        super().__init__(message)
        self.reason = reason
