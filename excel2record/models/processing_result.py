from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

"""Processing result models for the Excel -> record converter.

SheetResult is produced by the generators for every sheet, ConfigResult
aggregates the sheets of one workbook entry, ProcessingResult is the whole run
and feeds the SUMMARY line.
"""

__all__ = [
    "SheetStatus",
    "SheetResult",
    "ConfigResult",
    "ProcessingResult",
]


class SheetStatus(Enum):
    """Outcome of one sheet.

    - SUCCESS: artifacts written (rows may still have been skipped)
    - EMPTY: no rows, nothing written (not an error)
    - SKIPPED: sheet not converted because of a configuration problem
    - FAILED: data or I/O error aborted the sheet
    """
    SUCCESS = "success"
    EMPTY = "empty"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class SheetResult:
    sheet_name: str
    multi_file: bool = False
    status: SheetStatus = SheetStatus.SUCCESS
    processed_rows: int = 0  # rows written into artifacts
    skipped_rows: int = 0  # rows dropped (no identity / coercion failure / write failure)
    created: int = 0  # artifacts created
    updated: int = 0  # existing artifacts reused and overwritten
    deleted: int = 0  # stale artifacts pruned
    replaced: int = 0  # existing artifacts deleted and recreated (type mismatch, unreadable)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (SheetStatus.SUCCESS, SheetStatus.EMPTY)

    @property
    def total_rows(self) -> int:
        return self.processed_rows + self.skipped_rows


@dataclass
class ConfigResult:
    """Results of one GenerateConfig (one workbook)."""
    source: str
    sheets: list[SheetResult] = field(default_factory=list)
    error: str | None = None  # workbook-level failure (unreadable file, ...)

    @property
    def ok(self) -> bool:
        return self.error is None and all(s.ok for s in self.sheets)


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results of a run (SUMMARY line source)."""
    success_configs: int
    failed_configs: int
    success_sheets: int
    failed_sheets: int  # SKIPPED + FAILED
    processed_rows: int
    skipped_rows: int
    deleted_artifacts: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    config_results: list[ConfigResult] | None = None

    @property
    def total_configs(self) -> int:
        return self.success_configs + self.failed_configs

    @property
    def total_sheets(self) -> int:
        return self.success_sheets + self.failed_sheets
