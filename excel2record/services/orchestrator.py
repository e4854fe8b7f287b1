from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from ..artifacts.store import ArtifactStore
from ..errors import ArtifactIOError, ConfigurationError, ConversionError, DataFormatError
from ..excel.reader import SheetHeaderError, normalize_sheet, read_excel_file
from ..generators.base import FILE_LEVEL_SHEET
from ..generators.multi_file import MultiFileGenerator, MultiFilePlan
from ..generators.single_file import SingleFileGenerator, SingleFilePlan
from ..logging.error_log import ErrorLogBuffer
from ..models.config_models import ConvertConfig, GenerateConfig
from ..models.conversion_config import ConversionConfig, build_conversion_config
from ..models.error_record import ErrorRecord
from ..models.processing_result import ConfigResult, ProcessingResult, SheetResult, SheetStatus
from ..models.sheet_data import RawSheetData, parse_sheet_entry
from ..records.registry import SchemaRegistry, default_registry
from .progress import ProgressTracker, SheetProgressIndicator

"""Service orchestration for the Excel -> record converter.

process_all() walks every generate config (workbook) of the root config:

1. read the workbook into sheet entries
2. phase 1 for every sheet: build its ConversionConfig and plan it (pure)
3. phase 2 for every planned sheet: apply the plan to the artifact store
4. prune stale multi-file artifacts once per output directory

Errors are caught at the smallest unit (row, sheet, workbook) and logged; only
a missing root configuration is fatal (ProcessingError).
"""

__all__ = [
    "ProcessingError",
    "process_all",
    "process_generate_config",
    "convert_sheet_entries",
]

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Fatal error: the run cannot start."""


@dataclass
class _PlannedSheet:
    config: ConversionConfig
    sheet: RawSheetData
    result: SheetResult
    plan: SingleFilePlan | MultiFilePlan | None = None


def _file_error(error_log: ErrorLogBuffer, source: str, error_type: str, message: str) -> None:
    logger.error("source=%s %s: %s", source, error_type, message)
    error_log.append(
        ErrorRecord.create(file=source, sheet=FILE_LEVEL_SHEET, row=-1, error_type=error_type, message=message)
    )


def convert_sheet_entries(
    generate_config: GenerateConfig,
    entries: Iterable[Any],
    *,
    prune_stale: bool = False,
    registry: SchemaRegistry | None = None,
    store: ArtifactStore | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> ConfigResult:
    """Convert already-read sheet entries with one generate config.

    ``entries`` follow the input contract (sheetName / dataList / keyName /
    className mappings), or are RawSheetData instances. Entries may also be
    exceptions raised while reading a sheet; they are recorded as failed
    sheets.
    """
    registry = registry or default_registry
    store = store or ArtifactStore(registry)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    single = SingleFileGenerator(store, error_log)
    multi = MultiFileGenerator(store, error_log)
    config_result = ConfigResult(source=generate_config.label)

    # --- phase 1: parse, configure and plan every sheet -------------------
    planned: list[_PlannedSheet] = []
    for entry in entries:
        if isinstance(entry, BaseException):
            _file_error(error_log, generate_config.label, DataFormatError.error_type, str(entry))
            sheet_name = getattr(entry, "sheet_name", FILE_LEVEL_SHEET)
            config_result.sheets.append(
                SheetResult(sheet_name=sheet_name, multi_file=generate_config.multi_file, status=SheetStatus.FAILED, error=str(entry))
            )
            continue
        try:
            sheet = entry if isinstance(entry, RawSheetData) else parse_sheet_entry(entry)
        except DataFormatError as e:
            _file_error(error_log, generate_config.label, e.error_type, str(e))
            name = entry.get("sheetName", FILE_LEVEL_SHEET) if isinstance(entry, Mapping) else FILE_LEVEL_SHEET
            config_result.sheets.append(
                SheetResult(sheet_name=str(name), multi_file=generate_config.multi_file, status=SheetStatus.FAILED, error=str(e))
            )
            continue
        if sheet is None:
            continue

        config = build_conversion_config(
            generate_config,
            sheet,
            prune_stale=prune_stale,
            registry=registry,
        )
        item = _PlannedSheet(config=config, sheet=sheet, result=SheetResult(sheet_name=sheet.sheet_name, multi_file=config.multi_file_mode))
        planned.append(item)
        generator = multi if config.multi_file_mode else single
        try:
            item.plan = generator.plan(config, sheet)
        except ConversionError as e:
            generator.record_error(config, e)
            item.result.status = SheetStatus.SKIPPED if isinstance(e, ConfigurationError) else SheetStatus.FAILED
            item.result.error = str(e)
            item.result.skipped_rows = len(sheet.rows)
            continue
        if item.plan is None:
            item.result.status = SheetStatus.EMPTY

    # --- phase 2: apply plans -------------------------------------------------
    indicator = SheetProgressIndicator(generate_config.label, len(planned))
    for item in planned:
        indicator.start_sheet(item.sheet.sheet_name)
        if item.plan is not None:
            try:
                if isinstance(item.plan, MultiFilePlan):
                    # 同一ディレクトリを共有するシートがあるため prune は最後にまとめて実行
                    item.result = multi.apply(item.plan, prune=False)
                else:
                    item.result = single.apply(item.plan)
            except ConversionError as e:
                single.record_error(item.config, e)
                item.result.status = SheetStatus.FAILED
                item.result.error = str(e)
                item.result.skipped_rows = item.plan.total_rows
            except Exception as e:
                logger.exception("sheet=%s unexpected error", item.sheet.sheet_name)
                single.record_error(item.config, ConversionError(f"unexpected error: {e}"))
                item.result.status = SheetStatus.FAILED
                item.result.error = str(e)
                item.result.skipped_rows = item.plan.total_rows
        indicator.finish_sheet(success=item.result.ok, rows_processed=item.result.processed_rows)
        config_result.sheets.append(item.result)

    if prune_stale:
        _prune_directories(multi, planned)
    return config_result


def _prune_directories(multi: MultiFileGenerator, planned: list[_PlannedSheet]) -> None:
    """Prune each multi-file output directory once, with the union of its sheets' identities."""
    groups: dict[Path, list[_PlannedSheet]] = {}
    for item in planned:
        if item.config.multi_file_mode and item.config.output_directory is not None:
            groups.setdefault(item.config.output_directory, []).append(item)

    for directory, items in groups.items():
        failed = [i.sheet.sheet_name for i in items if i.result.status in (SheetStatus.FAILED, SheetStatus.SKIPPED)]
        if failed:
            logger.warning("not pruning %s: sheet(s) %s did not complete", directory, failed)
            continue
        plans = [i.plan for i in items if isinstance(i.plan, MultiFilePlan)]
        if not plans:
            continue
        keep: set[str] = set()
        for p in plans:
            keep |= p.identities
        # 削除件数は最後にそのディレクトリへ書いたシートに計上
        owner = next(i for i in reversed(items) if isinstance(i.plan, MultiFilePlan))
        owner.result.deleted += multi.prune(owner.config, directory, keep)


def process_generate_config(
    generate_config: GenerateConfig,
    *,
    prune_stale: bool = False,
    registry: SchemaRegistry | None = None,
    store: ArtifactStore | None = None,
    error_log: ErrorLogBuffer | None = None,
) -> ConfigResult:
    """Read one workbook and convert all of its sheets."""
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    excel_path = Path(generate_config.excel_path)
    if not excel_path.is_file():
        message = f"Excel file not found: {excel_path}"
        _file_error(error_log, generate_config.label, ArtifactIOError.error_type, message)
        return ConfigResult(source=generate_config.label, error=message)

    try:
        raw_sheets = read_excel_file(excel_path)
    except Exception as e:
        # 壊れた xlsx など: このワークブックのみ失敗扱い
        message = f"cannot read {excel_path}: {e}"
        _file_error(error_log, generate_config.label, ArtifactIOError.error_type, message)
        return ConfigResult(source=generate_config.label, error=message)

    if not raw_sheets:
        logger.warning("source=%s has no sheets", generate_config.label)

    entries: list[Any] = []
    for sheet_name, df in raw_sheets.items():
        try:
            entries.append(normalize_sheet(df, sheet_name))
        except SheetHeaderError as e:
            error = DataFormatError(str(e))
            error.sheet_name = sheet_name  # type: ignore[attr-defined]
            entries.append(error)

    return convert_sheet_entries(
        generate_config,
        entries,
        prune_stale=prune_stale,
        registry=registry,
        store=store,
        error_log=error_log,
    )


def process_all(
    config: ConvertConfig | None,
    *,
    registry: SchemaRegistry | None = None,
    error_log: ErrorLogBuffer | None = None,
    prune_stale: bool | None = None,
    schema_paths: Iterable[Path] | None = None,
) -> ProcessingResult:
    """Convert every generate config of the root config.

    Args:
        config: root configuration (None is fatal)
        registry: schema registry (default: the process-wide registry)
        error_log: error log buffer, flushed once at the end of the run
        prune_stale: override ``only_keep_new_generated_file``
        schema_paths: extra directories searched for ``schema_modules``
            (the working directory is always searched)

    Raises:
        ProcessingError: no root configuration
    """
    if config is None:
        raise ProcessingError("no root configuration")

    start_time = datetime.now(UTC)
    registry = registry or default_registry
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    store = ArtifactStore(registry)
    prune = config.only_keep_new_generated_file if prune_stale is None else prune_stale
    search_paths = [Path.cwd(), *(schema_paths or [])]
    for module_name in registry.import_modules(config.schema_modules, search_paths):
        _file_error(error_log, module_name, ConfigurationError.error_type, f"cannot import schema module '{module_name}'")

    if not config.generate_configs:
        logger.warning("no generate configs, nothing to do")

    config_results: list[ConfigResult] = []
    with ProgressTracker(len(config.generate_configs)) as progress:
        for generate_config in config.generate_configs:
            progress.start(generate_config.label)
            config_result = process_generate_config(
                generate_config,
                prune_stale=prune,
                registry=registry,
                store=store,
                error_log=error_log,
            )
            config_results.append(config_result)
            ok_sheets = sum(1 for s in config_result.sheets if s.ok)
            logger.info(
                "source=%s: %d/%d sheets converted",
                generate_config.label,
                ok_sheets,
                len(config_result.sheets),
            )
            progress.set_postfix(ok=sum(1 for r in config_results if r.ok), failed=sum(1 for r in config_results if not r.ok))
            progress.finish(success=config_result.ok)

    try:
        error_log.flush()
    except OSError as e:
        logger.warning("cannot write error log: %s", e)

    end_time = datetime.now(UTC)
    sheets = [s for r in config_results for s in r.sheets]
    return ProcessingResult(
        success_configs=sum(1 for r in config_results if r.ok),
        failed_configs=sum(1 for r in config_results if not r.ok),
        success_sheets=sum(1 for s in sheets if s.ok),
        failed_sheets=sum(1 for s in sheets if not s.ok),
        processed_rows=sum(s.processed_rows for s in sheets),
        skipped_rows=sum(s.skipped_rows for s in sheets),
        deleted_artifacts=sum(s.deleted for s in sheets),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=(end_time - start_time).total_seconds(),
        config_results=config_results,
    )
