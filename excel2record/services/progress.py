from __future__ import annotations

import sys
from typing import Any

from tqdm import tqdm
from tqdm.std import tqdm as TqdmType

"""Progress display service with tqdm (TTY only).

- one tqdm bar over the generate configs (workbooks) of a run
- a one-line indicator per sheet inside a workbook
- both disabled when stdout is not a TTY (CI, pipes) to avoid ANSI spam

The SUMMARY line and the log are the machine-readable output; nothing here
is printed when the run is piped.
"""

__all__ = [
    "ProgressTracker",
    "is_tty_enabled",
    "SheetProgressIndicator",
]


def is_tty_enabled() -> bool:
    """Whether progress output should be drawn.

    Returns:
        True if stdout is an interactive terminal
    """
    return sys.stdout.isatty()


class ProgressTracker:
    """Progress bar over the workbooks of a run.

    One tick per generate config, whether the workbook converted or not.
    Usable as a context manager so the bar is closed on errors too.
    """

    def __init__(self, total: int, *, description: str = "Converting workbooks") -> None:
        """Create the bar (only on a TTY).

        Args:
            total: Number of generate configs in the run
            description: Bar label shown when no workbook is active
        """
        self.total = total
        self.description = description
        self.current = 0

        self.enabled = is_tty_enabled()
        self.pbar: TqdmType[Any] | None
        if self.enabled:
            self.pbar = tqdm(
                total=total,
                desc=description,
                unit="book",
                disable=False,
                leave=True,
                position=0,
                ncols=80,
                ascii=True,
            )
        else:
            self.pbar = None

    def start(self, label: str) -> None:
        """Mark a workbook as active.

        Args:
            label: Workbook label (excel_path of the generate config)
        """
        self.current += 1
        if self.enabled and self.pbar is not None:
            self.pbar.set_description(f"{self.description} ({label})")

    def finish(self, success: bool = True) -> None:
        """Advance the bar by one workbook.

        Args:
            success: Whether every sheet of the workbook converted; failures
                are counted through set_postfix, the bar advances either way
        """
        if self.enabled and self.pbar is not None:
            self.pbar.update(1)
            self.pbar.set_description(self.description)

    def set_postfix(self, **kwargs: Any) -> None:
        """Show running counters (e.g. ok=3, failed=1) after the bar."""
        if self.enabled and self.pbar is not None:
            self.pbar.set_postfix(**kwargs)

    def close(self) -> None:
        if self.enabled and self.pbar is not None:
            self.pbar.close()
            self.pbar = None

    def __enter__(self) -> ProgressTracker:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class SheetProgressIndicator:
    """Per-sheet status line inside one workbook.

    Sheets convert quickly, so a plain line per sheet is enough; no nested
    tqdm bar is opened.
    """

    def __init__(self, label: str, total_sheets: int) -> None:
        """
        Args:
            label: Workbook label the sheets belong to
            total_sheets: Number of sheet entries read from the workbook
        """
        self.label = label
        self.total_sheets = total_sheets
        self.current_sheet = 0
        self.enabled = is_tty_enabled()

    def start_sheet(self, sheet_name: str) -> None:
        """Print the sheet header (no newline until finish_sheet).

        Args:
            sheet_name: Name of the sheet being converted
        """
        self.current_sheet += 1
        if self.enabled:
            print(f"  Sheet {self.current_sheet}/{self.total_sheets}: {sheet_name}", end="", flush=True)

    def finish_sheet(self, success: bool = True, rows_processed: int = 0) -> None:
        """Complete the sheet line.

        Args:
            success: Whether the sheet ended SUCCESS / EMPTY
            rows_processed: Rows written into artifacts (omitted when 0)
        """
        if self.enabled:
            status = "✓" if success else "✗"
            if rows_processed > 0:
                print(f" - {rows_processed} rows {status}")
            else:
                print(f" {status}")
