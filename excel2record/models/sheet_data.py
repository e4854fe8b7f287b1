from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from ..errors import DataFormatError

"""RawSheetData model and the sheet-entry input contract.

The tabular collaborator (excel.reader or any caller) hands the core a
sequence of sheet entries, each a mapping with:

    sheetName  (str, required)
    dataList   (list of row mappings)
    keyName    (str, optional sentinel)
    className  (str, optional sentinel)

Entries without a usable sheetName are skipped; a dataList that is not a list
is a DataFormatError for that sheet only.
"""

__all__ = [
    "RawSheetData",
    "RawDataKey",
    "parse_sheet_entry",
    "parse_sheet_entries",
]

logger = logging.getLogger(__name__)


class RawDataKey:
    """Field names of a sheet entry."""
    sheet_name = "sheetName"
    data_list = "dataList"
    key_name = "keyName"
    class_name = "className"


@dataclass(frozen=True)
class RawSheetData:
    """One sheet of raw rows, immutable once handed to the core.

    Rows map field name -> scalar, string or nested row mapping.
    """
    sheet_name: str
    rows: tuple[Mapping[str, Any], ...] = field(default_factory=tuple)
    key_name: str | None = None  # #keyName sentinel embedded in the sheet
    class_name: str | None = None  # #className sentinel embedded in the sheet


def _optional_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def parse_sheet_entry(entry: Mapping[str, Any]) -> RawSheetData | None:
    """Convert one sheet entry into RawSheetData.

    Returns:
        RawSheetData, or None when the entry has no usable sheet name

    Raises:
        DataFormatError: dataList present but not a list of mappings
    """
    if not isinstance(entry, Mapping):
        logger.warning("skipping sheet entry of type %s", type(entry).__name__)
        return None
    sheet_name = entry.get(RawDataKey.sheet_name)
    if not isinstance(sheet_name, str) or not sheet_name:
        logger.warning("skipping sheet entry without a sheet name")
        return None

    raw_rows = entry.get(RawDataKey.data_list)
    if raw_rows is None:
        rows: tuple[Mapping[str, Any], ...] = ()
    elif isinstance(raw_rows, (list, tuple)):
        rows = tuple(raw_rows)
    else:
        raise DataFormatError(
            f"sheet '{sheet_name}': {RawDataKey.data_list} is not a list ({type(raw_rows).__name__})"
        )

    return RawSheetData(
        sheet_name=sheet_name,
        rows=rows,
        key_name=_optional_str(entry.get(RawDataKey.key_name)),
        class_name=_optional_str(entry.get(RawDataKey.class_name)),
    )


def parse_sheet_entries(entries: Iterable[Mapping[str, Any]]) -> list[RawSheetData]:
    """Parse entries, dropping the ones without a sheet name.

    DataFormatError from a single entry propagates; use parse_sheet_entry in a
    loop to handle sheets one by one.
    """
    sheets = []
    for entry in entries:
        sheet = parse_sheet_entry(entry)
        if sheet is not None:
            sheets.append(sheet)
    return sheets
