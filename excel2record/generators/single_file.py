from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..errors import ArtifactIOError, ConfigurationError, ConversionError, DataFormatError
from ..models.conversion_config import ConversionConfig
from ..models.processing_result import SheetResult, SheetStatus
from ..models.sheet_data import RawDataKey, RawSheetData
from ..records.coercion import coerce_value, strip_blank
from ..records.container import DataContainer
from .base import SheetGenerator

"""Single-file generator: one sheet -> one DataContainer artifact.

The artifact ``<output_dir>/<sheet_name>.asset`` is reused when it exists and
loads as the resolved container type, otherwise created. Its item list is
replaced wholesale on every run, so rows removed from the source disappear
from the artifact.
"""

__all__ = [
    "SingleFilePlan",
    "SingleFileGenerator",
]

logger = logging.getLogger(__name__)


@dataclass
class SingleFilePlan:
    config: ConversionConfig
    artifact_path: Path
    key_name: str | None
    items: list[Any] = field(default_factory=list)
    total_rows: int = 0
    skipped_rows: int = 0


class SingleFileGenerator(SheetGenerator):

    def plan(self, config: ConversionConfig, sheet: RawSheetData) -> SingleFilePlan | None:
        """Coerce every row of ``sheet`` into the container's item type.

        Returns:
            The plan, or None when the sheet has no rows (nothing to do)

        Raises:
            ConfigurationError: invalid config
            DataFormatError: rows present but none of them could be coerced
        """
        config.require_valid()
        container_type = config.resolved_type
        assert container_type is not None
        if not issubclass(container_type, DataContainer):
            raise DataFormatError(f"{container_type.__name__} is not a DataContainer")

        if not sheet.rows:
            logger.warning("sheet=%s has no data rows, nothing to generate", config.sheet_name)
            return None

        assert config.output_directory is not None and config.sheet_name is not None
        plan = SingleFilePlan(
            config=config,
            artifact_path=self.store.artifact_path(config.output_directory, config.sheet_name),
            key_name=config.key_field_path,
            total_rows=len(sheet.rows),
        )
        # process_data は読み込み時と同じくコンテナのフックで実行
        scratch = container_type(key_name=plan.key_name)
        for position, row in enumerate(sheet.rows):
            if row is None:
                logger.warning("sheet=%s row=%d is empty, skipped", config.sheet_name, position)
                plan.skipped_rows += 1
                continue
            try:
                item = coerce_value(container_type.item_type, strip_blank(row) if isinstance(row, Mapping) else row)
                scratch.process_data(item)
            except ConfigurationError:
                # スキーマ自体の問題はシート単位で扱う
                raise
            except ConversionError as e:
                self.record_error(config, e, row=position)
                plan.skipped_rows += 1
                continue
            plan.items.append(item)

        if not plan.items:
            raise DataFormatError(f"none of the {plan.total_rows} rows could be converted")
        return plan

    def apply(self, plan: SingleFilePlan) -> SheetResult:
        """Write the planned item list into the sheet's artifact.

        Raises:
            ArtifactIOError: output directory or artifact could not be written
        """
        config = plan.config
        container_type = config.resolved_type
        assert container_type is not None and config.output_directory is not None
        result = SheetResult(sheet_name=config.sheet_name or "", multi_file=False)

        self.store.ensure_directory(config.output_directory)

        container = self._load_existing(plan.artifact_path, container_type)
        if container is None:
            container = self.store.create(container_type)
            result.created += 1
            logger.info("creating %s", plan.artifact_path)
        else:
            result.updated += 1

        container.load_raw_data({RawDataKey.key_name: plan.key_name})
        container.load_items(plan.items)
        self.store.write(plan.artifact_path, container)

        result.processed_rows = len(plan.items)
        result.skipped_rows = plan.skipped_rows
        logger.info(
            "sheet=%s wrote %d/%d items to %s",
            config.sheet_name,
            len(plan.items),
            plan.total_rows,
            plan.artifact_path,
        )
        return result

    def generate(self, config: ConversionConfig, sheet: RawSheetData) -> SheetResult:
        """plan() + apply() for one sheet, errors scoped to the sheet."""
        result = SheetResult(sheet_name=sheet.sheet_name, multi_file=False)
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

    def _load_existing(self, path: Path, container_type: type) -> DataContainer[Any] | None:
        if not self.store.exists(path):
            return None
        try:
            loaded = self.store.load(path, expected=container_type)
        except ArtifactIOError as e:
            logger.warning("cannot load existing artifact, recreating: %s", e)
            return None
        if type(loaded) is not container_type:
            logger.warning(
                "existing artifact %s is a %s, replacing with %s",
                path,
                type(loaded).__name__,
                container_type.__name__,
            )
            return None
        return loaded
