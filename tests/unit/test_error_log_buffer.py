from __future__ import annotations

import json
import re
from pathlib import Path

from excel2record.logging.error_log import ErrorLogBuffer, ErrorRecord

FIELDS = {"timestamp", "file", "sheet", "row", "error_type", "message"}


def test_error_record_creation_and_json_line():
    rec = ErrorRecord.create(
        file="items.xlsx",
        sheet="Items",
        row=10,
        error_type="DATA_FORMAT_ERROR",
        message="Item.price: 'abc' is not a number",
    )
    data = json.loads(rec.to_json_line())
    assert data["file"] == "items.xlsx"
    assert data["sheet"] == "Items"
    assert data["row"] == 10
    assert data["error_type"] == "DATA_FORMAT_ERROR"
    assert data["timestamp"].endswith("Z")
    assert set(data) == FIELDS


def test_json_line_keeps_non_ascii():
    rec = ErrorRecord.create("アイテム.xlsx", "武器", -1, "IO_ERROR", "書き込み失敗")
    assert "武器" in rec.to_json_line()


def test_error_log_buffer_flush(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    buf.append(ErrorRecord.create("f1.xlsx", "S", 1, "DATA_FORMAT_ERROR", "bad"))
    buf.append(ErrorRecord.create("f1.xlsx", "S", -1, "CONFIGURATION_ERROR", "unknown type"))
    path = buf.flush()
    assert path is not None and path.exists()
    assert re.fullmatch(r"errors-\d{8}-\d{6}\.log", path.name)

    lines = path.read_text(encoding="utf-8").strip().splitlines()
    assert len(lines) == 2
    for raw in lines:
        assert set(json.loads(raw)) == FIELDS
    # flush 後バッファクリア
    assert len(buf) == 0


def test_error_log_buffer_multiple_flushes_append(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    buf.append(ErrorRecord.create("f.xlsx", "S", 1, "IO_ERROR", "first"))
    path = buf.flush()
    buf.append(ErrorRecord.create("f.xlsx", "S", 2, "IO_ERROR", "second"))
    assert buf.flush() == path
    assert len(path.read_text(encoding="utf-8").splitlines()) == 2


def test_empty_buffer_writes_nothing(tmp_path: Path):
    buf = ErrorLogBuffer(tmp_path / "logs")
    assert buf.flush() is None
    assert not (tmp_path / "logs").exists()


def test_default_logs_dir_is_relative(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("f.xlsx", "S", 1, "IO_ERROR", "x"))
    path = buf.flush()
    assert path.resolve().parent == (temp_workdir / "logs").resolve()
