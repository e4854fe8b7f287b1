from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering.

Format:
    SUMMARY configs=<ok>/<total> sheets=<ok>/<total> rows=<processed>
    skipped_rows=<skipped> deleted=<deleted> elapsed_sec=<seconds>
(one line, single spaces)
"""

__all__ = [
    "render_summary_line",
    "format_seconds",
]


def format_seconds(seconds: float) -> str:
    """Render seconds without scientific notation or trailing zeros."""
    if seconds == 0:
        return "0"
    if seconds == int(seconds):
        return str(int(seconds))
    if seconds < 0.01:
        return f"{seconds:.6f}".rstrip("0").rstrip(".")
    return f"{seconds:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ProcessingResult) -> str:
    """Render the SUMMARY line for a run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> t = datetime(2024, 1, 1, tzinfo=timezone.utc)
        >>> render_summary_line(ProcessingResult(
        ...     success_configs=1, failed_configs=0, success_sheets=2, failed_sheets=0,
        ...     processed_rows=10, skipped_rows=1, deleted_artifacts=3,
        ...     start_time=t, end_time=t, elapsed_seconds=2.0))
        'SUMMARY configs=1/1 sheets=2/2 rows=10 skipped_rows=1 deleted=3 elapsed_sec=2'
    """
    return (
        f"SUMMARY configs={result.success_configs}/{result.total_configs} "
        f"sheets={result.success_sheets}/{result.total_sheets} "
        f"rows={result.processed_rows} "
        f"skipped_rows={result.skipped_rows} "
        f"deleted={result.deleted_artifacts} "
        f"elapsed_sec={format_seconds(result.elapsed_seconds)}"
    )
