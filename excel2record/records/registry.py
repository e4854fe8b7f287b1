from __future__ import annotations

import importlib
import logging
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import TypeVar

from ..errors import ConfigurationError
from .base import is_record_type, qualified_name
from .container import DataContainer

"""Schema registry: resolves configured type names to record schemas.

Schemas are registered explicitly (``@register_schema``) when their defining
module is imported; the config's ``schema_modules`` list is imported at start
so that every known schema is present before the first sheet is converted.

Resolution is by exact simple name (last dotted segment). A fully qualified
``module.ClassName`` is matched exactly. Two schemas sharing a simple name are
reported as ambiguous rather than first-matched.
"""

__all__ = [
    "SchemaRegistry",
    "default_registry",
    "register_schema",
]

logger = logging.getLogger(__name__)

S = TypeVar("S", bound=type)


class SchemaRegistry:
    def __init__(self) -> None:
        self._schemas: dict[str, type] = {}  # qualified name -> class

    def __contains__(self, cls: object) -> bool:
        return isinstance(cls, type) and self._schemas.get(qualified_name(cls)) is cls

    def __len__(self) -> int:
        return len(self._schemas)

    def register(self, cls: S) -> S:
        if not (is_record_type(cls) or (isinstance(cls, type) and issubclass(cls, DataContainer))):
            raise TypeError(f"{cls!r} is neither a dataclass record nor a DataContainer subclass")
        name = qualified_name(cls)
        existing = self._schemas.get(name)
        if existing is not None and existing is not cls:
            # モジュール再読込時は新しいクラスで置換
            logger.debug("schema %s re-registered", name)
        self._schemas[name] = cls
        simple = cls.__name__
        clashes = [n for n, c in self._schemas.items() if c.__name__ == simple and n != name]
        if clashes:
            logger.warning("schema name '%s' is ambiguous: %s", simple, sorted([name, *clashes]))
        return cls

    def unregister(self, cls: type) -> None:
        self._schemas.pop(qualified_name(cls), None)

    def clear(self) -> None:
        self._schemas.clear()

    def names(self) -> list[str]:
        return sorted(self._schemas)

    def resolve(self, type_name: str | None) -> type:
        """Resolve ``type_name`` to exactly one registered schema.

        Raises:
            ConfigurationError: empty, unknown or ambiguous name
        """
        if not type_name or not type_name.strip():
            raise ConfigurationError("record type name is empty")
        type_name = type_name.strip()
        exact = self._schemas.get(type_name)
        if exact is not None:
            return exact
        simple = type_name.rsplit(".", 1)[-1]
        matches = [cls for name, cls in self._schemas.items() if name.rsplit(".", 1)[-1] == simple]
        if not matches:
            raise ConfigurationError(f"unknown record type '{type_name}'")
        if len(matches) > 1:
            candidates = sorted(qualified_name(c) for c in matches)
            raise ConfigurationError(f"record type '{type_name}' is ambiguous: {candidates}")
        return matches[0]

    def import_modules(self, module_names: Iterable[str], search_paths: Iterable[Path] = ()) -> list[str]:
        """Import schema modules so their registrations run.

        Args:
            module_names: dotted module names (``schema_modules`` of the config)
            search_paths: directories put at the front of ``sys.path`` first,
                earlier entries take precedence

        Returns:
            Names of modules that failed to import (each logged as an error)
        """
        module_names = list(module_names)
        if module_names:
            self._add_search_paths(search_paths)
        failed: list[str] = []
        for module_name in module_names:
            try:
                importlib.import_module(module_name)
            except ImportError as e:
                logger.error("cannot import schema module '%s': %s", module_name, e)
                failed.append(module_name)
        return failed

    @staticmethod
    def _add_search_paths(search_paths: Iterable[Path]) -> None:
        added = False
        for directory in reversed([Path(p).resolve() for p in search_paths]):
            entry = str(directory)
            if entry in sys.path:
                continue
            sys.path.insert(0, entry)
            logger.debug("schema search path: %s", entry)
            added = True
        if added:
            importlib.invalidate_caches()


default_registry = SchemaRegistry()


def register_schema(cls: S) -> S:
    """Class decorator registering ``cls`` in the default registry."""
    return default_registry.register(cls)
