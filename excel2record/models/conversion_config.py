from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from ..errors import ConfigurationError
from ..records.base import LineRecord
from ..records.container import DataContainer
from ..records.registry import SchemaRegistry, default_registry
from .config_models import GenerateConfig
from .sheet_data import RawSheetData

"""Per-sheet conversion settings.

A ConversionConfig is rebuilt for every sheet on every run and never
persisted. The builder fails closed: anything it cannot resolve is logged and
leaves the config invalid, and generators refuse invalid configs.
"""

__all__ = [
    "ConversionConfig",
    "build_conversion_config",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConversionConfig:
    sheet_name: str | None
    target_type_name: str | None
    resolved_type: type | None  # None when resolution failed
    key_field_path: str | None  # dot-separated in multi-file mode
    multi_file_mode: bool
    child_folder_per_sheet: bool
    output_directory: Path | None
    prune_stale: bool = False
    source: str = ""  # workbook label, for logs / error records
    problem: str | None = None  # first reason the config is invalid

    def is_valid(self) -> bool:
        return (
            self.resolved_type is not None
            and self.sheet_name is not None
            and self.output_directory is not None
        )

    def require_valid(self) -> None:
        """Raise ConfigurationError naming what is missing, if anything."""
        if self.is_valid():
            return
        missing = [
            name
            for name, value in (
                ("resolved_type", self.resolved_type),
                ("sheet_name", self.sheet_name),
                ("output_directory", self.output_directory),
            )
            if value is None
        ]
        detail = f" ({self.problem})" if self.problem else ""
        raise ConfigurationError(f"invalid conversion config, missing {missing}{detail}")


def _output_directory(generate_config: GenerateConfig, sheet_name: str) -> Path | None:
    if not generate_config.output_path:
        return None
    directory = Path(generate_config.output_path)
    if generate_config.multi_file and generate_config.child_folder:
        directory = directory / sheet_name
    return directory


def build_conversion_config(
    generate_config: GenerateConfig,
    sheet: RawSheetData,
    *,
    prune_stale: bool = False,
    registry: SchemaRegistry | None = None,
) -> ConversionConfig:
    """Build the ConversionConfig for one sheet.

    Type name: config class_name, falling back to the sheet's #className.
    Key path: config key_name, falling back to the sheet's #keyName.

    Never raises for configuration problems; check ``is_valid()`` (or call
    ``require_valid()``) before generating.
    """
    registry = registry or default_registry
    sheet_name = sheet.sheet_name
    type_name = (generate_config.class_name or "").strip() or sheet.class_name
    key_path = (generate_config.key_name or "").strip() or sheet.key_name
    multi_file = generate_config.multi_file

    problem: str | None = None
    resolved: type | None = None
    if not type_name:
        problem = "no record type configured (class_name or #className)"
    else:
        try:
            resolved = registry.resolve(type_name)
        except ConfigurationError as e:
            problem = str(e)

    # capability check happens once here, not per row
    if resolved is not None:
        if multi_file:
            if not issubclass(resolved, LineRecord):
                problem = f"record type '{resolved.__name__}' does not implement LineRecord (required for multi-file mode)"
                resolved = None
            elif not key_path:
                problem = "multi-file mode requires a key field path"
                resolved = None
        elif not issubclass(resolved, DataContainer):
            problem = f"record type '{resolved.__name__}' is not a DataContainer (required for single-file mode)"
            resolved = None

    output_directory = _output_directory(generate_config, sheet_name)
    if output_directory is None and problem is None:
        problem = "output path is empty"

    if problem is not None:
        logger.error("sheet=%s source=%s: %s", sheet_name, generate_config.label, problem)

    return ConversionConfig(
        sheet_name=sheet_name,
        target_type_name=type_name,
        resolved_type=resolved,
        key_field_path=key_path,
        multi_file_mode=multi_file,
        child_folder_per_sheet=generate_config.child_folder,
        output_directory=output_directory,
        prune_stale=prune_stale,
        source=generate_config.label,
        problem=problem,
    )
