from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..artifacts.identity import extract_key_value, sanitize_identity
from ..errors import ArtifactIOError, ConfigurationError, ConversionError, DataFormatError
from ..models.conversion_config import ConversionConfig
from ..models.processing_result import SheetResult, SheetStatus
from ..models.sheet_data import RawSheetData
from ..records.base import LineRecord
from ..records.coercion import coerce_fields, overwrite_fields
from .base import SheetGenerator

"""Multi-file generator: one sheet -> one LineRecord artifact per row.

Each row's identity comes from the key path; the artifact at
``<output_dir>/<identity>.asset`` is created or overwritten field by field
(fields missing from the row keep their stored values). With pruning enabled,
artifacts whose identity no longer appears in the source are deleted with
their sidecar.

Rows are independent: a row that fails is logged and skipped, the rest of the
sheet continues. Two rows with the same identity write the same artifact and
the later row wins.
"""

__all__ = [
    "PlannedRow",
    "MultiFilePlan",
    "MultiFileGenerator",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedRow:
    position: int  # index in the sheet's row list
    identity: str
    path: Path
    values: dict[str, Any]  # coerced fields present in the row


@dataclass
class MultiFilePlan:
    config: ConversionConfig
    rows: list[PlannedRow] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0
    # rows whose identity was derived but whose fields failed to coerce
    failed_identities: set[str] = field(default_factory=set)

    @property
    def identities(self) -> set[str]:
        """Every identity derived from the source, written or not."""
        return {row.identity for row in self.rows} | self.failed_identities


class MultiFileGenerator(SheetGenerator):

    def plan(self, config: ConversionConfig, sheet: RawSheetData) -> MultiFilePlan | None:
        """Derive identities and coerce the fields of every row.

        Returns:
            The plan, or None when the sheet has no rows

        Raises:
            ConfigurationError: invalid config, non-LineRecord type or empty key path
        """
        config.require_valid()
        record_type = config.resolved_type
        assert record_type is not None and config.output_directory is not None
        if not issubclass(record_type, LineRecord):
            raise ConfigurationError(f"record type '{record_type.__name__}' does not implement LineRecord")
        if not config.key_field_path:
            raise ConfigurationError("key field path is empty, cannot name artifacts")

        if not sheet.rows:
            logger.warning("sheet=%s has no data rows, nothing to generate", config.sheet_name)
            return None

        plan = MultiFilePlan(config=config, total_rows=len(sheet.rows))
        seen: dict[str, int] = {}
        for position, row in enumerate(sheet.rows):
            try:
                identity = self._identity(config, row)
            except DataFormatError as e:
                self.record_error(config, e, row=position, level=logging.WARNING)
                plan.skipped_rows += 1
                continue
            try:
                values = coerce_fields(record_type, row)
            except DataFormatError as e:
                self.record_error(config, e, row=position, level=logging.WARNING)
                plan.skipped_rows += 1
                plan.failed_identities.add(identity)
                continue
            planned = PlannedRow(
                position=position,
                identity=identity,
                path=self.store.artifact_path(config.output_directory, identity),
                values=values,
            )
            if planned.identity in seen:
                logger.debug(
                    "sheet=%s row=%d reuses identity '%s' of row %d, later row overwrites",
                    config.sheet_name,
                    position,
                    planned.identity,
                    seen[planned.identity],
                )
            seen[planned.identity] = position
            plan.rows.append(planned)
        return plan

    @staticmethod
    def _identity(config: ConversionConfig, row: Any) -> str:
        if not isinstance(row, Mapping):
            raise DataFormatError(f"row is not a mapping ({type(row).__name__})")
        key_value = extract_key_value(row, config.key_field_path)
        if key_value is None:
            raise DataFormatError(f"no value at key path '{config.key_field_path}'")
        return sanitize_identity(key_value)

    def apply(self, plan: MultiFilePlan, *, prune: bool | None = None) -> SheetResult:
        """Write every planned row, then prune stale artifacts.

        Args:
            plan: output of plan()
            prune: override config.prune_stale (False when the caller prunes
                a shared directory itself after all sheets)

        Raises:
            ArtifactIOError: the output directory could not be created
        """
        config = plan.config
        record_type = config.resolved_type
        assert record_type is not None and config.output_directory is not None
        result = SheetResult(
            sheet_name=config.sheet_name or "",
            multi_file=True,
            skipped_rows=plan.skipped_rows,
        )

        self.store.ensure_directory(config.output_directory)

        kept: set[str] = set()
        for planned in plan.rows:
            try:
                self._apply_row(record_type, planned, result)
            except ConversionError as e:
                self.record_error(config, e, row=planned.position)
                result.skipped_rows += 1
                continue
            kept.add(planned.identity)
            result.processed_rows += 1

        logger.info(
            "sheet=%s multi-file: %d/%d rows written (%d skipped, %d replaced)",
            config.sheet_name,
            result.processed_rows,
            plan.total_rows,
            result.skipped_rows,
            result.replaced,
        )

        do_prune = config.prune_stale if prune is None else prune
        if do_prune:
            # 書き込みに失敗した行も元データに存在する -> 削除対象にしない
            result.deleted += self.prune(config, config.output_directory, kept | plan.identities)
        return result

    def _apply_row(self, record_type: type, planned: PlannedRow, result: SheetResult) -> None:
        target = None
        if self.store.exists(planned.path):
            target = self._reuse_existing(planned.path, record_type, result)

        if target is None:
            target = self.store.create(record_type, planned.values)
            result.created += 1
        else:
            overwrite_fields(target, planned.values)
            result.updated += 1

        try:
            target.process_data()
        except Exception as e:
            raise DataFormatError(f"{record_type.__name__}.process_data failed: {e}") from e
        self.store.write(planned.path, target)

    def _reuse_existing(self, path: Path, record_type: type, result: SheetResult) -> Any | None:
        """Existing artifact if it is a ``record_type``; otherwise delete it.

        An artifact without a sidecar is reused when its payload loads as
        ``record_type`` (the sidecar is rewritten on save).
        """
        stored: type | None = record_type
        if self.store.meta_path(path).exists():
            try:
                stored = self.store.stored_type(path)
            except ArtifactIOError as e:
                logger.warning("%s", e)
                stored = None
        if stored is record_type:
            try:
                return self.store.load(path, expected=record_type)
            except ArtifactIOError as e:
                logger.warning("cannot load existing artifact, recreating: %s", e)
        else:
            logger.info(
                "artifact %s has type %s, expected %s: replacing",
                path.name,
                stored.__name__ if stored is not None else "<unknown>",
                record_type.__name__,
            )
        self.store.delete(path)
        result.replaced += 1
        return None

    def prune(self, config: ConversionConfig, directory: Path, keep: Iterable[str]) -> int:
        """Delete artifacts in ``directory`` whose identity is not in ``keep``.

        Returns:
            Number of artifacts deleted
        """
        keep = set(keep)
        try:
            existing = self.store.list_identities(directory)
        except ArtifactIOError as e:
            self.record_error(config, e)
            return 0
        deleted = 0
        for identity, path in existing.items():
            if identity in keep:
                continue
            try:
                self.store.delete(path)
            except ArtifactIOError as e:
                self.record_error(config, e)
                continue
            deleted += 1
        if deleted:
            logger.info("pruned %d stale artifact(s) from %s", deleted, directory)
        return deleted

    def generate(self, config: ConversionConfig, sheet: RawSheetData) -> SheetResult:
        """plan() + apply() for one sheet, errors scoped to the sheet."""
        result = SheetResult(sheet_name=sheet.sheet_name, multi_file=True)
        try:
            plan = self.plan(config, sheet)
            if plan is None:
                result.status = SheetStatus.EMPTY
                return result
            return self.apply(plan)
        except ConversionError as e:
            self.record_error(config, e)
            result.status = SheetStatus.SKIPPED if isinstance(e, ConfigurationError) else SheetStatus.FAILED
            result.error = str(e)
            result.skipped_rows = len(sheet.rows)
            return result
