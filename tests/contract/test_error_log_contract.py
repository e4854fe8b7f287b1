from __future__ import annotations

import json
from pathlib import Path

import jsonschema
import pytest

from excel2record.cli.__main__ import main as cli_main
from excel2record.errors import ERROR_TYPES

"""Error log JSON Lines contract."""

ERROR_RECORD_SCHEMA = {
    "type": "object",
    "required": ["timestamp", "file", "sheet", "row", "error_type", "message"],
    "additionalProperties": False,
    "properties": {
        "timestamp": {"type": "string", "pattern": r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$"},
        "file": {"type": "string"},
        "sheet": {"type": "string", "minLength": 1},
        "row": {"type": "integer", "minimum": -1},
        "error_type": {"type": "string", "pattern": "^[A-Z_]+$"},
        "message": {"type": "string"},
    },
}

CONFIG = """schema_modules: [registered_records, no_such_schema_module]
generate_configs:
  - excel_path: data/enemies.xlsx
    output_path: out
    class_name: Enemy
    multi_file: true
  - excel_path: data/missing.xlsx
    output_path: out
    class_name: Enemy
    multi_file: true
"""


@pytest.fixture()
def error_lines(temp_workdir: Path, excel_factory, capsys) -> list[dict]:
    excel_factory(
        temp_workdir / "data" / "enemies.xlsx",
        {"Slimes": [["#keyName=id"], ["id", "stats.hp"], ["s1", 1], [None, 2], ["s3", "lots"]]},
    )
    (temp_workdir / "config" / "convert.yml").write_text(CONFIG, encoding="utf-8")
    assert cli_main([]) == 2
    logs = list((temp_workdir / "logs").glob("errors-*.log"))
    assert len(logs) == 1
    return [json.loads(line) for line in logs[0].read_text(encoding="utf-8").splitlines()]


def test_every_line_matches_the_record_schema(error_lines: list[dict]):
    assert error_lines
    for record in error_lines:
        jsonschema.validate(record, ERROR_RECORD_SCHEMA)
        assert record["error_type"] in ERROR_TYPES


def test_row_level_and_file_level_records(error_lines: list[dict]):
    by_sheet = {}
    for record in error_lines:
        by_sheet.setdefault(record["sheet"], []).append(record)

    assert sorted(r["row"] for r in by_sheet["Slimes"]) == [1, 2]
    assert {r["error_type"] for r in by_sheet["Slimes"]} == {"DATA_FORMAT_ERROR"}

    file_level = by_sheet["<FILE_LEVEL>"]
    assert {r["row"] for r in file_level} == {-1}
    assert {r["error_type"] for r in file_level} == {"CONFIGURATION_ERROR", "IO_ERROR"}
    assert any(r["file"] == "no_such_schema_module" for r in file_level)
    assert any(r["file"] == "data/missing.xlsx" for r in file_level)


def test_schema_rejects_extra_key():
    record = {
        "timestamp": "2025-09-26T10:12:33Z",
        "file": "items.xlsx",
        "sheet": "Items",
        "row": 2,
        "error_type": "DATA_FORMAT_ERROR",
        "message": "bad",
        "extra": "not allowed",
    }
    with pytest.raises(jsonschema.ValidationError):
        jsonschema.validate(record, ERROR_RECORD_SCHEMA)
