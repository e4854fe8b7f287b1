# Shared pytest fixtures
from __future__ import annotations

import logging
import sys
from pathlib import Path

import pandas as pd
import pytest

from excel2record.artifacts.store import ArtifactStore
from excel2record.logging.error_log import ErrorLogBuffer
from excel2record.logging.init import APP_LOGGER_NAME, reset_logging
from excel2record.records.registry import SchemaRegistry
from sample_records import make_registry


@pytest.fixture(autouse=True)
def _propagating_app_logger():
    """Let caplog see excel2record.* records (setup_logging turns propagation off)."""
    reset_logging()
    app = logging.getLogger(APP_LOGGER_NAME)
    for handler in app.handlers[:]:
        app.removeHandler(handler)
    app.setLevel(logging.NOTSET)
    app.propagate = True
    yield
    for handler in app.handlers[:]:
        app.removeHandler(handler)
    app.setLevel(logging.NOTSET)
    app.propagate = True
    reset_logging()


@pytest.fixture(autouse=True)
def _restore_sys_path(monkeypatch):
    # process_all は schema_modules の検索パスを sys.path に追加する
    monkeypatch.setattr(sys, "path", list(sys.path))


@pytest.fixture()
def temp_workdir(tmp_path: Path, monkeypatch) -> Path:
    (tmp_path / "config").mkdir()
    (tmp_path / "data").mkdir()
    (tmp_path / "logs").mkdir()
    monkeypatch.chdir(tmp_path)
    # 空文字で登録しておくと .env で上書きされても teardown で消える
    monkeypatch.setenv("EXCEL2RECORD_CONFIG", "")
    return tmp_path


@pytest.fixture()
def registry() -> SchemaRegistry:
    return make_registry()


@pytest.fixture()
def store(registry: SchemaRegistry) -> ArtifactStore:
    return ArtifactStore(registry)


@pytest.fixture()
def error_log(tmp_path: Path) -> ErrorLogBuffer:
    return ErrorLogBuffer(tmp_path / "logs")


def make_excel_file(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    """Write a real workbook; each sheet is a list of rows (row 1 = directives, row 2 = header)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            pd.DataFrame(rows).to_excel(writer, sheet_name=sheet_name, header=False, index=False)
    return path


@pytest.fixture()
def excel_factory():
    return make_excel_file
