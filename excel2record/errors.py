from __future__ import annotations

"""Error taxonomy for the conversion & reconciliation engine.

Scope of each error class (caught at the smallest enclosing unit):

- ConfigurationError: unresolved/ambiguous type, empty key path, missing output
  path. Aborts one sheet (or one row); the batch continues.
- DataFormatError: malformed raw shape or coercion failure. Aborts one row or
  one sheet; the batch continues.
- ArtifactIOError: directory creation / artifact load / delete failures. The
  operation for that item is abandoned; the batch continues.

The only fatal error is a missing/invalid root configuration, which is raised
as ``excel2record.config.loader.ConfigError``.
"""

__all__ = [
    "ConversionError",
    "ConfigurationError",
    "DataFormatError",
    "ArtifactIOError",
    "ERROR_TYPES",
]


class ConversionError(Exception):
    """Base class for recoverable conversion errors."""

    error_type = "CONVERSION_ERROR"


class ConfigurationError(ConversionError):
    error_type = "CONFIGURATION_ERROR"


class DataFormatError(ConversionError):
    error_type = "DATA_FORMAT_ERROR"


class ArtifactIOError(ConversionError):
    error_type = "IO_ERROR"


# error_type (UPPER_SNAKE) -> class, used by error log consumers
ERROR_TYPES: dict[str, type[ConversionError]] = {
    cls.error_type: cls
    for cls in (ConversionError, ConfigurationError, DataFormatError, ArtifactIOError)
}
