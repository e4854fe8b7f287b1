from __future__ import annotations

import logging
from typing import Any

from ..artifacts.store import ArtifactStore
from ..errors import ConversionError
from ..logging.error_log import ErrorLogBuffer
from ..models.conversion_config import ConversionConfig
from ..models.error_record import ErrorRecord

"""Shared plumbing for the sheet generators.

Generators work in two phases:
    plan()  - pure: validates rows and coerces them into an in-memory plan
    apply() - effectful: applies the plan to the artifact store
A sheet is fully planned before any artifact on disk is touched.
"""

__all__ = [
    "SheetGenerator",
    "FILE_LEVEL_SHEET",
]

logger = logging.getLogger(__name__)

FILE_LEVEL_SHEET = "<FILE_LEVEL>"


class SheetGenerator:
    def __init__(self, store: ArtifactStore | None = None, error_log: ErrorLogBuffer | None = None) -> None:
        self.store = store or ArtifactStore()
        self.error_log = error_log

    def record_error(
        self,
        config: ConversionConfig,
        error: ConversionError,
        *,
        row: int = -1,
        level: int = logging.ERROR,
    ) -> None:
        """Log ``error`` and append it to the error log (if any)."""
        sheet = config.sheet_name or FILE_LEVEL_SHEET
        where = f"sheet={sheet}" if row < 0 else f"sheet={sheet} row={row}"
        logger.log(level, "%s %s: %s", where, error.error_type, error)
        if self.error_log is not None:
            self.error_log.append(
                ErrorRecord.create(
                    file=config.source,
                    sheet=sheet,
                    row=row,
                    error_type=error.error_type,
                    message=str(error),
                )
            )

    def generate(self, config: ConversionConfig, sheet: Any) -> Any:  # pragma: no cover (abstract)
        raise NotImplementedError
