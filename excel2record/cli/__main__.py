from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from excel2record.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from excel2record.logging.init import log_summary, set_debug, setup_logging
from excel2record.models.config_models import ConvertConfig
from excel2record.services.orchestrator import ProcessingError, process_all
from excel2record.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env, then the root config (``--config`` > EXCEL2RECORD_CONFIG > config/convert.yml)
- Convert every generate config (process_all)
- Print the SUMMARY line and map the result to an exit code
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

CONFIG_ENV_VAR = "EXCEL2RECORD_CONFIG"


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env using python-dotenv (missing file is not an error)."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="excel2record", description="Excel -> record artifact converter")
    p.add_argument("--config", type=Path, default=None, help="Root config file (default: config/convert.yml)")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet directives & first rows then exit")
    p.add_argument(
        "--only-keep-new",
        action="store_true",
        help="Delete stale multi-file artifacts (overrides only_keep_new_generated_file)",
    )
    return p.parse_args(argv)


def _resolve_config_path(arg: Path | None) -> Path:
    if arg is not None:
        return arg
    env = os.getenv(CONFIG_ENV_VAR)
    if env:
        return Path(env)
    return DEFAULT_CONFIG_PATH


def _inspect_data(cfg: ConvertConfig) -> int:
    from excel2record.excel.reader import SheetHeaderError, normalize_sheet, read_excel_file

    for gc in cfg.generate_configs:
        path = Path(gc.excel_path)
        print(f"FILE: {gc.excel_path}")
        if not path.is_file():
            print("  not found")
            continue
        try:
            raw = read_excel_file(path)
        except Exception as e:
            print(f"  read_error: {e}")
            continue
        for sname, df in raw.items():
            try:
                entry = normalize_sheet(df, sname)
            except SheetHeaderError as e:
                print(f"  SHEET: {sname} error={e}")
                continue
            print(f"  SHEET: {sname} keyName={entry.get('keyName')} className={entry.get('className')} rows={len(entry['dataList'])}")
            # datetime 等は default=str で文字列化
            for row in entry["dataList"][:3]:
                print(f"    {json.dumps(row, ensure_ascii=False, default=str)}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # 空リスト [] のときに sys.argv[1:] を読まないよう None のみ判定
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        set_debug(True)
        logger.debug("debug mode enabled")

    config_path = _resolve_config_path(args.config)
    try:
        cfg = load_config(config_path)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    logger.info(f"config: {config_path} ({len(cfg.generate_configs)} generate configs)")

    if args.inspect_data:
        return _inspect_data(cfg)

    try:
        result = process_all(
            cfg,
            prune_stale=True if args.only_keep_new else None,
            schema_paths=[config_path.resolve().parent],
        )
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    summary_line = render_summary_line(result)
    # log_summary が "SUMMARY " ラベルを付けるので除去
    log_summary(summary_line[len("SUMMARY "):])

    if result.failed_configs > 0 or result.failed_sheets > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
