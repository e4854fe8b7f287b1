from __future__ import annotations

from pathlib import Path

import pytest

from excel2record.logging.error_log import ErrorLogBuffer
from excel2record.models import ConvertConfig, GenerateConfig, ProcessingResult, SheetStatus
from excel2record.services.orchestrator import (
    ProcessingError,
    convert_sheet_entries,
    process_all,
    process_generate_config,
)


def _items_sheet(name: str = "Weapons", *rows) -> dict:
    return {"sheetName": name, "dataList": list(rows) or [{"id": 1, "name": "Sword"}]}


def test_process_all_requires_root_config():
    with pytest.raises(ProcessingError):
        process_all(None)


def test_convert_sheet_entries_single_file(registry, store, tmp_path: Path, error_log: ErrorLogBuffer):
    gc = GenerateConfig("items.xlsx", str(tmp_path), class_name="ItemTable", key_name="id")
    result = convert_sheet_entries(
        gc,
        [_items_sheet("Weapons"), _items_sheet("Armor", {"id": 5, "name": "Helm"})],
        registry=registry,
        store=store,
        error_log=error_log,
    )
    assert result.ok
    assert [s.sheet_name for s in result.sheets] == ["Weapons", "Armor"]
    assert (tmp_path / "Weapons.asset").exists()
    assert store.load(tmp_path / "Armor.asset").get_by_key(5).name == "Helm"


def test_invalid_sheet_does_not_stop_the_others(registry, store, tmp_path: Path, error_log: ErrorLogBuffer):
    gc = GenerateConfig("items.xlsx", str(tmp_path), key_name="id")
    entries = [
        {**_items_sheet("Known"), "className": "ItemTable"},
        {**_items_sheet("Unknown"), "className": "Dragon"},
        {"sheetName": "Broken", "dataList": "not a list"},
        {"dataList": []},
    ]
    result = convert_sheet_entries(gc, entries, registry=registry, store=store, error_log=error_log)
    statuses = {s.sheet_name: s.status for s in result.sheets}
    assert statuses == {"Known": SheetStatus.SUCCESS, "Unknown": SheetStatus.SKIPPED, "Broken": SheetStatus.FAILED}
    assert not result.ok
    assert (tmp_path / "Known.asset").exists()
    assert {r.error_type for r in error_log.records} == {"CONFIGURATION_ERROR", "DATA_FORMAT_ERROR"}


def test_every_sheet_is_planned_before_any_write(registry, store, tmp_path: Path):
    gc = GenerateConfig("items.xlsx", str(tmp_path), class_name="ItemTable", key_name="id")
    calls: list[str] = []
    original_write = store.write

    def tracking_write(path, artifact):
        calls.append(path.name)
        original_write(path, artifact)

    store.write = tracking_write  # type: ignore[method-assign]
    entries = iter([_items_sheet("A"), _items_sheet("B")])
    # 2 枚目のシートを読む時点では 1 枚目もまだ書かれていない
    seen_before_second: list[list[str]] = []

    def entry_stream():
        yield next(entries)
        seen_before_second.append(list(calls))
        yield next(entries)

    convert_sheet_entries(gc, entry_stream(), registry=registry, store=store)
    assert seen_before_second == [[]]
    assert calls == ["A.asset", "B.asset"]


def test_shared_directory_is_pruned_once_with_all_identities(registry, store, tmp_path: Path):
    gc = GenerateConfig("m.xlsx", str(tmp_path), class_name="Monster", key_name="id", multi_file=True)
    for stale in ("old1", "old2"):
        store.write(store.artifact_path(tmp_path, stale), store.create(registry.resolve("Monster"), {"id": stale}))

    result = convert_sheet_entries(
        gc,
        [
            {"sheetName": "Slimes", "dataList": [{"id": "s1"}, {"id": "s2"}]},
            {"sheetName": "Goblins", "dataList": [{"id": "g1"}]},
        ],
        prune_stale=True,
        registry=registry,
        store=store,
    )
    assert {p.stem for p in tmp_path.glob("*.asset")} == {"s1", "s2", "g1"}
    assert sum(s.deleted for s in result.sheets) == 2


def test_shared_directory_not_pruned_when_a_sheet_fails(registry, store, tmp_path: Path):
    gc = GenerateConfig("m.xlsx", str(tmp_path), key_name="id", multi_file=True)
    store.write(store.artifact_path(tmp_path, "old"), store.create(registry.resolve("Monster"), {"id": "old"}))
    result = convert_sheet_entries(
        gc,
        [
            {"sheetName": "Slimes", "className": "Monster", "dataList": [{"id": "s1"}]},
            {"sheetName": "Mystery", "className": "Dragon", "dataList": [{"id": "d1"}]},
        ],
        prune_stale=True,
        registry=registry,
        store=store,
    )
    assert not result.ok
    assert (tmp_path / "old.asset").exists()
    assert (tmp_path / "s1.asset").exists()


def test_child_folders_are_pruned_per_sheet(registry, store, tmp_path: Path):
    gc = GenerateConfig("m.xlsx", str(tmp_path), class_name="Monster", key_name="id", multi_file=True, child_folder=True)
    sheets = [
        {"sheetName": "Slimes", "dataList": [{"id": "s1"}, {"id": "s2"}]},
        {"sheetName": "Goblins", "dataList": [{"id": "g1"}]},
    ]
    convert_sheet_entries(gc, sheets, registry=registry, store=store)
    sheets[0] = {"sheetName": "Slimes", "dataList": [{"id": "s2"}]}
    convert_sheet_entries(gc, sheets, prune_stale=True, registry=registry, store=store)
    assert {p.stem for p in (tmp_path / "Slimes").glob("*.asset")} == {"s2"}
    assert {p.stem for p in (tmp_path / "Goblins").glob("*.asset")} == {"g1"}


def test_process_generate_config_missing_workbook(registry, tmp_path: Path, error_log: ErrorLogBuffer):
    gc = GenerateConfig(str(tmp_path / "missing.xlsx"), str(tmp_path / "out"), class_name="ItemTable")
    result = process_generate_config(gc, registry=registry, error_log=error_log)
    assert not result.ok
    assert "not found" in result.error
    assert error_log.records[0].sheet == "<FILE_LEVEL>"
    assert error_log.records[0].error_type == "IO_ERROR"


def test_process_generate_config_corrupt_workbook(registry, tmp_path: Path, error_log: ErrorLogBuffer):
    bad = tmp_path / "bad.xlsx"
    bad.write_bytes(b"definitely not a zip file")
    gc = GenerateConfig(str(bad), str(tmp_path / "out"), class_name="ItemTable")
    result = process_generate_config(gc, registry=registry, error_log=error_log)
    assert not result.ok
    assert result.error.startswith("cannot read")


def test_process_generate_config_bad_header(registry, tmp_path: Path, excel_factory, error_log: ErrorLogBuffer):
    path = excel_factory(
        tmp_path / "items.xlsx",
        {
            "Good": [["#keyName=id"], ["id", "name"], [1, "Sword"]],
            "Dup": [["title"], ["id", "id"], [1, 2]],
        },
    )
    gc = GenerateConfig(str(path), str(tmp_path / "out"), class_name="ItemTable")
    result = process_generate_config(gc, registry=registry, error_log=error_log)
    statuses = {s.sheet_name: s.status for s in result.sheets}
    assert statuses == {"Good": SheetStatus.SUCCESS, "Dup": SheetStatus.FAILED}
    assert (tmp_path / "out" / "Good.asset").exists()


def test_process_all_aggregates_results(registry, tmp_path: Path, excel_factory):
    items = excel_factory(
        tmp_path / "data" / "items.xlsx",
        {"Weapons": [["#keyName=id"], ["id", "name", "price"], [1, "Sword", 100], [2, "Bow", "cheap"]]},
    )
    monsters = excel_factory(
        tmp_path / "data" / "monsters.xlsx",
        {"Slimes": [["#keyName=id"], ["id", "name", "stats.hp"], ["s1", "Slime", 5], ["s2", "King", 50]]},
    )
    config = ConvertConfig(
        generate_configs=[
            GenerateConfig(str(items), str(tmp_path / "out" / "items"), class_name="ItemTable"),
            GenerateConfig(str(monsters), str(tmp_path / "out" / "monsters"), class_name="Monster", multi_file=True),
            GenerateConfig(str(tmp_path / "data" / "missing.xlsx"), str(tmp_path / "out" / "x"), class_name="ItemTable"),
        ],
    )
    error_log = ErrorLogBuffer(tmp_path / "logs")
    result = process_all(config, registry=registry, error_log=error_log)

    assert isinstance(result, ProcessingResult)
    assert result.success_configs == 2
    assert result.failed_configs == 1
    assert result.success_sheets == 2
    assert result.failed_sheets == 0
    assert result.processed_rows == 3
    assert result.skipped_rows == 1
    assert result.elapsed_seconds >= 0
    assert len(result.config_results) == 3
    # error log は実行終了時に flush 済み
    assert len(error_log) == 0
    assert len(list((tmp_path / "logs").glob("errors-*.log"))) == 1


def test_process_all_prune_override(registry, tmp_path: Path, excel_factory):
    book = excel_factory(
        tmp_path / "monsters.xlsx",
        {"Slimes": [["#keyName=id"], ["id"], ["s1"]]},
    )
    out = tmp_path / "out"
    out.mkdir()
    (out / "stale.asset").write_text("id: stale\n", encoding="utf-8")
    config = ConvertConfig(
        generate_configs=[GenerateConfig(str(book), str(out), class_name="Monster", multi_file=True)],
        only_keep_new_generated_file=False,
    )
    process_all(config, registry=registry, error_log=ErrorLogBuffer(tmp_path / "logs"))
    assert (out / "stale.asset").exists()

    result = process_all(config, registry=registry, error_log=ErrorLogBuffer(tmp_path / "logs"), prune_stale=True)
    assert not (out / "stale.asset").exists()
    assert result.deleted_artifacts == 1
