from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for error logging.

Every error logged during a run is also captured as an ErrorRecord and written
to the JSON Lines error log. row=-1 marks sheet/workbook level errors where no
single row applies.
"""

__all__ = [
    "ErrorRecord",
]


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: source workbook (GenerateConfig label)
        sheet: sheet name, or "<FILE_LEVEL>"
        row: 0-based row position in the sheet's row list, -1 when not row scoped
        error_type: UPPER_SNAKE classification (CONFIGURATION_ERROR, ...)
        message: error description
    """
    timestamp: str  # ISO8601 UTC
    file: str
    sheet: str
    row: int  # 行位置。不明な場合 -1
    error_type: str  # UPPER_SNAKE
    message: str

    @staticmethod
    def create(file: str, sheet: str, row: int, error_type: str, message: str) -> ErrorRecord:
        """Create a new ErrorRecord stamped with the current UTC time."""
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            sheet=sheet,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # 追加キー阻止: dataclass -> dict して json.dumps
        return json.dumps(asdict(self), ensure_ascii=False)
