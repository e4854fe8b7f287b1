from __future__ import annotations

import re
from pathlib import Path

import pytest
import yaml

from excel2record.cli.__main__ import main as cli_main

"""End-to-end CLI runs against real workbooks (pandas + openpyxl)."""

SUMMARY_RE = re.compile(
    r"^SUMMARY configs=(\d+)/(\d+) sheets=(\d+)/(\d+) rows=(\d+) skipped_rows=(\d+) deleted=(\d+) elapsed_sec=[0-9.]+$",
    re.MULTILINE,
)

CONFIG = """schema_modules: [registered_records]
only_keep_new_generated_file: false
generate_configs:
  - excel_path: data/weapons.xlsx
    output_path: out/weapons
    class_name: WeaponTable
  - excel_path: data/enemies.xlsx
    output_path: out/enemies
    class_name: Enemy
    multi_file: true
    child_folder: true
"""


@pytest.fixture()
def project(temp_workdir: Path, excel_factory) -> Path:
    excel_factory(
        temp_workdir / "data" / "weapons.xlsx",
        {
            "Swords": [
                ["#keyName=id", "Sword master"],
                ["id", "name", "attack", "#memo"],
                [1, "Short Sword", 5, "starter"],
                [2, "Long Sword", 9, None],
            ],
            "Bows": [
                ["#keyName=name"],
                ["id", "name", "attack"],
                [10, "Short Bow", 4],
            ],
        },
    )
    excel_factory(
        temp_workdir / "data" / "enemies.xlsx",
        {
            "Slimes": [
                ["#keyName=id"],
                ["id", "name", "stats.hp"],
                ["slime_01", "Slime", 10],
                ["slime_02", "Metal Slime", 4],
            ],
            "Bosses": [
                ["#keyName=id"],
                ["id", "name", "stats.hp"],
                ["boss/01", "  Dragon  ", 900],
            ],
        },
    )
    (temp_workdir / "config" / "convert.yml").write_text(CONFIG, encoding="utf-8")
    return temp_workdir


def test_full_run_creates_artifacts(project: Path, capsys):
    assert cli_main([]) == 0
    out = capsys.readouterr().out
    m = SUMMARY_RE.search(out)
    assert m is not None, out
    assert m.group(1, 2) == ("2", "2")
    assert m.group(3, 4) == ("4", "4")
    assert m.group(5) == "6"

    swords = yaml.safe_load((project / "out" / "weapons" / "Swords.asset").read_text(encoding="utf-8"))
    assert swords["key_name"] == "id"
    assert swords["items"] == [
        {"id": 1, "name": "Short Sword", "attack": 5},
        {"id": 2, "name": "Long Sword", "attack": 9},
    ]
    bows = yaml.safe_load((project / "out" / "weapons" / "Bows.asset").read_text(encoding="utf-8"))
    assert bows["key_name"] == "name"

    slimes = project / "out" / "enemies" / "Slimes"
    assert sorted(p.name for p in slimes.iterdir()) == [
        "slime_01.asset",
        "slime_01.asset.meta",
        "slime_02.asset",
        "slime_02.asset.meta",
    ]
    boss = yaml.safe_load((project / "out" / "enemies" / "Bosses" / "boss_01.asset").read_text(encoding="utf-8"))
    assert boss == {"id": "boss/01", "name": "Dragon", "stats": {"hp": 900}}
    meta = yaml.safe_load((slimes / "slime_01.asset.meta").read_text(encoding="utf-8"))
    assert meta["type"] == "registered_records.Enemy"


def test_second_run_is_idempotent(project: Path, capsys):
    assert cli_main([]) == 0
    snapshot = {p: p.read_bytes() for p in (project / "out").rglob("*") if p.is_file()}
    assert cli_main([]) == 0
    after = {p: p.read_bytes() for p in (project / "out").rglob("*") if p.is_file()}
    assert after == snapshot


def test_removed_rows_are_pruned_with_flag(project: Path, excel_factory, capsys):
    assert cli_main([]) == 0
    excel_factory(
        project / "data" / "enemies.xlsx",
        {
            "Slimes": [["#keyName=id"], ["id", "name", "stats.hp"], ["slime_02", "Metal Slime", 4]],
            "Bosses": [["#keyName=id"], ["id", "name", "stats.hp"], ["boss/01", "Dragon", 900]],
        },
    )
    capsys.readouterr()

    assert cli_main([]) == 0
    assert (project / "out" / "enemies" / "Slimes" / "slime_01.asset").exists()

    assert cli_main(["--only-keep-new"]) == 0
    out = capsys.readouterr().out
    slimes = project / "out" / "enemies" / "Slimes"
    assert sorted(p.name for p in slimes.iterdir()) == ["slime_02.asset", "slime_02.asset.meta"]
    assert "deleted=1" in out


def test_config_path_from_argument_and_env(project: Path, monkeypatch, capsys):
    moved = project / "elsewhere.yml"
    (project / "config" / "convert.yml").rename(moved)
    assert cli_main([]) == 1

    assert cli_main(["--config", str(moved)]) == 0
    monkeypatch.setenv("EXCEL2RECORD_CONFIG", str(moved))
    assert cli_main([]) == 0


def test_env_file_provides_config_path(project: Path, capsys):
    # EXCEL2RECORD_CONFIG は temp_workdir が monkeypatch 済み
    moved = project / "from_env.yml"
    (project / "config" / "convert.yml").rename(moved)
    (project / ".env").write_text(f"EXCEL2RECORD_CONFIG={moved}\n", encoding="utf-8")
    assert cli_main([]) == 0
