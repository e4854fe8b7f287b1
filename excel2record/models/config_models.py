from __future__ import annotations

from dataclasses import dataclass, field

"""Config dataclasses for the Excel -> record converter.

GenerateConfig is one user-level entry (one workbook -> one output location);
ConvertConfig is the root object loaded from config/convert.yml by
excel2record.config.loader.
"""

__all__ = [
    "GenerateConfig",
    "ConvertConfig",
]


@dataclass(frozen=True)
class GenerateConfig:
    """Conversion settings for one workbook.

    Every sheet of the workbook is converted with these settings; the sheet
    name decides the artifact name (single-file) or the optional child folder
    (multi-file).
    """
    excel_path: str  # source workbook
    output_path: str  # base output directory
    class_name: str | None = None  # record schema name; sheet #className used when empty
    key_name: str | None = None  # key field (dot path in multi-file mode)
    multi_file: bool = False  # one artifact per row instead of one per sheet
    child_folder: bool = False  # multi-file only: <output_path>/<sheet_name>/

    @property
    def label(self) -> str:
        """Short identifier used in logs and error records."""
        return self.excel_path


@dataclass(frozen=True)
class ConvertConfig:
    """Root configuration object.

    A missing or invalid root config is the only fatal condition of a run.
    """
    generate_configs: list[GenerateConfig]
    schema_modules: list[str] = field(default_factory=list)  # imported to register schemas
    only_keep_new_generated_file: bool = False  # prune stale multi-file artifacts
