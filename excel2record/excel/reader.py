from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.sheet_data import RawDataKey

"""Excel reader: workbook -> sheet entries (the core's input contract).

Sheet layout:
    row 1: directive row. Cells of the form ``#keyName=<field>`` or
           ``#className=<Type>`` become sheet-level sentinels; anything else
           is treated as a title and ignored.
    row 2: header row. ``a.b`` headers build nested mappings; headers that are
           empty or start with ``#`` are comment columns and ignored.
    row 3+: data rows. Entirely empty rows are skipped.
"""

__all__ = [
    "SheetHeaderError",
    "read_excel_file",
    "normalize_sheet",
    "read_sheet_entries",
]

_DIRECTIVE = re.compile(r"^#\s*(keyName|className)\s*[=:]\s*(.+?)\s*$")


class SheetHeaderError(Exception):
    """Raised when the header row (2nd line) is missing or invalid."""


def read_excel_file(path: Path, target_sheets: Iterable[str] | None = None) -> dict[str, pd.DataFrame]:
    """Read an Excel file returning raw DataFrames keyed by sheet name.

    Parameters
    ----------
    path: Excel ファイルパス
    target_sheets: 対象シート制限 (None なら全シート)
    """
    wanted = set(target_sheets) if target_sheets is not None else None
    dfs: dict[str, pd.DataFrame] = {}
    with pd.ExcelFile(path) as xls:
        for name in xls.sheet_names:
            if wanted is not None and str(name) not in wanted:
                continue
            # ヘッダなしで生読み (1行目=ディレクティブ, 2行目=ヘッダ)
            dfs[str(name)] = xls.parse(name, header=None)
    return dfs


def _plain(value: Any) -> Any:
    """Convert pandas / numpy cell values to plain Python values."""
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if hasattr(value, "item") and not isinstance(value, (str, bytes)):
        value = value.item()  # numpy scalar
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return value.strip()
    return value


def _parse_directives(cells: list[Any]) -> dict[str, str]:
    directives: dict[str, str] = {}
    for cell in cells:
        if not isinstance(cell, str):
            continue
        m = _DIRECTIVE.match(cell.strip())
        if m:
            directives[m.group(1)] = m.group(2)
    return directives


def _parse_header(cells: list[Any], sheet_name: str) -> list[list[str] | None]:
    """Header cells -> key path per column (None for ignored columns)."""
    paths: list[list[str] | None] = []
    seen: dict[str, int] = {}
    for position, cell in enumerate(cells):
        name = _plain(cell)
        if name is None or not str(name).strip() or str(name).strip().startswith("#"):
            paths.append(None)
            continue
        name = str(name).strip()
        segments = [s.strip() for s in name.split(".")]
        if any(not s for s in segments):
            raise SheetHeaderError(f"sheet '{sheet_name}': invalid header '{name}' in column {position + 1}")
        if name in seen:
            raise SheetHeaderError(f"sheet '{sheet_name}': duplicate header '{name}'")
        seen[name] = position
        paths.append(segments)

    # 'a' と 'a.b' の同時指定は値とマッピングが衝突する
    names = set(seen)
    for name in names:
        parts = name.split(".")
        for i in range(1, len(parts)):
            prefix = ".".join(parts[:i])
            if prefix in names:
                raise SheetHeaderError(f"sheet '{sheet_name}': header '{prefix}' conflicts with '{name}'")
    return paths


def _set_nested(row: dict[str, Any], path: list[str], value: Any) -> None:
    current = row
    for segment in path[:-1]:
        current = current.setdefault(segment, {})
    current[path[-1]] = value


def normalize_sheet(df: pd.DataFrame, sheet_name: str) -> dict[str, Any]:
    """Turn a raw sheet DataFrame into a sheet entry.

    Returns:
        ``{"sheetName", "dataList", ["keyName"], ["className"]}``

    Raises:
        SheetHeaderError: fewer than 2 rows, or an invalid header row
    """
    if df.shape[0] < 2:
        raise SheetHeaderError(f"sheet '{sheet_name}' lacks second row header")
    directives = _parse_directives(df.iloc[0].tolist())
    paths = _parse_header(df.iloc[1].tolist(), sheet_name)

    rows: list[dict[str, Any]] = []
    for _, raw in df.iloc[2:].iterrows():
        if raw.isna().all():
            continue
        row: dict[str, Any] = {}
        for path, cell in zip(paths, raw.tolist(), strict=False):
            if path is None:
                continue
            _set_nested(row, path, _plain(cell))
        rows.append(row)

    entry: dict[str, Any] = {RawDataKey.sheet_name: sheet_name, RawDataKey.data_list: rows}
    if "keyName" in directives:
        entry[RawDataKey.key_name] = directives["keyName"]
    if "className" in directives:
        entry[RawDataKey.class_name] = directives["className"]
    return entry


def read_sheet_entries(path: Path, target_sheets: Iterable[str] | None = None) -> list[dict[str, Any]]:
    """Read a workbook into sheet entries (sheet order preserved)."""
    return [normalize_sheet(df, name) for name, df in read_excel_file(path, target_sheets).items()]
