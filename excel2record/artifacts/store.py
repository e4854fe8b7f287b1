from __future__ import annotations

import logging
import os
import tempfile
import uuid
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml

from ..errors import ArtifactIOError, ConfigurationError, DataFormatError
from ..records.base import is_record_type, qualified_name
from ..records.coercion import build_record, to_plain
from ..records.container import DataContainer
from ..records.registry import SchemaRegistry, default_registry

"""Filesystem artifact store (YAML documents + .meta sidecar).

Layout:
    <dir>/<name>.asset        artifact payload (YAML)
    <dir>/<name>.asset.meta   sidecar: {type, guid, created_at}

The sidecar records the concrete schema of the artifact so a later run can
detect a type change without parsing the payload. Deleting an artifact always
deletes its sidecar too.
"""

__all__ = [
    "ArtifactStore",
    "ARTIFACT_EXTENSION",
    "META_SUFFIX",
]

logger = logging.getLogger(__name__)

ARTIFACT_EXTENSION = ".asset"
META_SUFFIX = ".meta"


class ArtifactStore:
    """create / load / write / delete for persisted artifacts.

    All failures surface as ArtifactIOError (or DataFormatError for payloads
    that do not fit their schema); the store never swallows errors.
    """

    def __init__(self, registry: SchemaRegistry | None = None) -> None:
        self.registry = registry or default_registry

    # --- paths ---------------------------------------------------------------

    @staticmethod
    def artifact_path(directory: Path, name: str) -> Path:
        return directory / f"{name}{ARTIFACT_EXTENSION}"

    @staticmethod
    def meta_path(path: Path) -> Path:
        return path.with_name(path.name + META_SUFFIX)

    @staticmethod
    def exists(path: Path) -> bool:
        return path.is_file()

    def ensure_directory(self, directory: Path) -> None:
        try:
            if not directory.exists():
                directory.mkdir(parents=True, exist_ok=True)
                logger.info("created directory %s", directory)
        except OSError as e:
            raise ArtifactIOError(f"cannot create directory {directory}: {e}") from e
        if not directory.is_dir():
            raise ArtifactIOError(f"output path is not a directory: {directory}")

    def list_identities(self, directory: Path) -> dict[str, Path]:
        """Artifact stems in ``directory`` -> path (sidecars excluded)."""
        if not directory.is_dir():
            return {}
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            raise ArtifactIOError(f"cannot list {directory}: {e}") from e
        return {
            p.name[: -len(ARTIFACT_EXTENSION)]: p
            for p in entries
            if p.is_file() and p.name.endswith(ARTIFACT_EXTENSION)
        }

    # --- create / load -------------------------------------------------------

    @staticmethod
    def create(cls: type, values: dict[str, Any] | None = None) -> Any:
        """New in-memory artifact of schema ``cls`` (not yet persisted).

        Raises:
            DataFormatError: required record fields missing from ``values``
        """
        try:
            if issubclass(cls, DataContainer):
                return cls()
            return cls(**(values or {}))
        except TypeError as e:
            raise DataFormatError(f"cannot create {cls.__name__}: {e}") from e

    def stored_type(self, path: Path) -> type:
        """Schema recorded in the sidecar of ``path``.

        Raises:
            ArtifactIOError: sidecar missing/unreadable or its type unknown
        """
        meta = self._read_meta(path)
        type_name = meta.get("type") if isinstance(meta, dict) else None
        if not isinstance(type_name, str) or not type_name:
            raise ArtifactIOError(f"{path}: sidecar has no type")
        try:
            return self.registry.resolve(type_name)
        except ConfigurationError as e:
            raise ArtifactIOError(f"{path}: {e}") from e

    def load(self, path: Path, expected: type | None = None) -> Any:
        """Load the artifact at ``path`` as its stored schema.

        ``expected`` is used when the sidecar is missing.

        Raises:
            ArtifactIOError: file missing, unreadable or malformed
        """
        if not self.exists(path):
            raise ArtifactIOError(f"artifact not found: {path}")
        if self.meta_path(path).exists() or expected is None:
            cls = self.stored_type(path)
        else:
            cls = expected
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ArtifactIOError(f"cannot read {path}: {e}") from e
        try:
            if issubclass(cls, DataContainer):
                return cls.from_dict(data or {})
            return build_record(cls, data or {})
        except DataFormatError as e:
            raise ArtifactIOError(f"{path}: payload does not match {cls.__name__}: {e}") from e

    # --- read-back -----------------------------------------------------------

    def get(self, directory: Path | str | None, name: str | None, cls: type) -> Any | None:
        """Artifact ``name`` in ``directory`` when it exists and is a ``cls``.

        Returns None for an empty directory or name, a missing file, or an
        artifact stored with another schema.

        Raises:
            ArtifactIOError: the artifact exists but cannot be loaded
        """
        if not directory or not name:
            return None
        path = self.artifact_path(Path(directory), name)
        if not self.exists(path):
            return None
        artifact = self.load(path, expected=cls)
        if not isinstance(artifact, cls):
            logger.debug("%s is a %s, not a %s", path, type(artifact).__name__, cls.__name__)
            return None
        return artifact

    def iter_artifacts(self, directory: Path, cls: type, *, recursive: bool = False) -> Iterator[Any]:
        """Yield every artifact under ``directory`` stored as ``cls`` (or a subclass).

        Artifacts without a sidecar are tried as ``cls``. Unreadable ones are
        logged and skipped.

        Args:
            directory: folder to scan
            cls: schema to look for
            recursive: also scan sub folders (child_folder layouts)
        """
        for path in self._artifact_paths(Path(directory), recursive):
            if self.meta_path(path).exists():
                try:
                    stored = self.stored_type(path)
                except ArtifactIOError as e:
                    logger.warning("skipping artifact: %s", e)
                    continue
                if not issubclass(stored, cls):
                    continue
            try:
                artifact = self.load(path, expected=cls)
            except ArtifactIOError as e:
                logger.warning("skipping artifact: %s", e)
                continue
            if isinstance(artifact, cls):
                yield artifact

    def load_all(self, directory: Path, cls: type, *, recursive: bool = False) -> list[Any]:
        """All artifacts of schema ``cls`` under ``directory`` (path order)."""
        return list(self.iter_artifacts(directory, cls, recursive=recursive))

    def load_first(self, directory: Path, cls: type, *, recursive: bool = False) -> Any | None:
        """First artifact of schema ``cls`` under ``directory``, or None."""
        return next(self.iter_artifacts(directory, cls, recursive=recursive), None)

    # --- write / delete ------------------------------------------------------

    def write(self, path: Path, artifact: Any) -> None:
        """Persist ``artifact`` and its sidecar (payload written atomically)."""
        try:
            if isinstance(artifact, DataContainer):
                plain = artifact.to_dict()
            elif is_record_type(type(artifact)):
                # Enum / datetime 等を YAML safe 形式へ
                plain = to_plain(artifact, type(artifact))
            else:
                raise ArtifactIOError(f"cannot persist object of type {type(artifact).__name__}")
        except ValueError as e:
            raise ArtifactIOError(f"cannot serialize {type(artifact).__name__} for {path}: {e}") from e
        text = yaml.safe_dump(plain, sort_keys=False, allow_unicode=True)
        self._atomic_write(path, text)
        self._write_meta(path, type(artifact))

    def delete(self, path: Path) -> None:
        """Delete an artifact and its sidecar.

        Raises:
            ArtifactIOError: the artifact (or its sidecar) could not be removed
        """
        meta = self.meta_path(path)
        try:
            path.unlink(missing_ok=True)
            meta.unlink(missing_ok=True)
        except OSError as e:
            raise ArtifactIOError(f"cannot delete {path}: {e}") from e
        logger.info("deleted %s", path)

    # --- internals -----------------------------------------------------------

    def _artifact_paths(self, directory: Path, recursive: bool) -> list[Path]:
        if not recursive:
            return list(self.list_identities(directory).values())
        if not directory.is_dir():
            return []
        try:
            return sorted(p for p in directory.rglob(f"*{ARTIFACT_EXTENSION}") if p.is_file())
        except OSError as e:
            raise ArtifactIOError(f"cannot list {directory}: {e}") from e

    def _read_meta(self, path: Path) -> Any:
        meta = self.meta_path(path)
        try:
            return yaml.safe_load(meta.read_text(encoding="utf-8"))
        except FileNotFoundError as e:
            raise ArtifactIOError(f"{path}: sidecar {meta.name} not found") from e
        except (OSError, yaml.YAMLError) as e:
            raise ArtifactIOError(f"cannot read {meta}: {e}") from e

    def _write_meta(self, path: Path, cls: type) -> None:
        existing: Any = None
        if self.meta_path(path).exists():
            try:
                existing = self._read_meta(path)
            except ArtifactIOError as e:
                logger.warning("replacing unreadable sidecar: %s", e)
        if not isinstance(existing, dict):
            existing = {}
        meta = {
            "type": qualified_name(cls),
            "guid": existing.get("guid") or uuid.uuid4().hex,
            "created_at": existing.get("created_at") or datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        }
        self._atomic_write(self.meta_path(path), yaml.safe_dump(meta, sort_keys=False))

    @staticmethod
    def _atomic_write(path: Path, text: str) -> None:
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=path.parent, prefix=f".{path.name}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(text)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise ArtifactIOError(f"cannot write {path}: {e}") from e
