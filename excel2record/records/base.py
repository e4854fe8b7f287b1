from __future__ import annotations

import dataclasses
import typing
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

from pydantic import ConfigDict

from ..errors import ConfigurationError

"""Record base classes and the field accessor used for key extraction.

Record schemas are plain dataclasses. Field access goes through a cached
descriptor table (name -> dataclasses.Field / resolved type hint) instead of
ad-hoc getattr on arbitrary objects, so an unknown field name is reported the
same way everywhere.
"""

__all__ = [
    "Record",
    "LineRecord",
    "RECORD_CONFIG",
    "record_fields",
    "field_types",
    "has_field",
    "get_field",
    "is_record_type",
    "qualified_name",
]

# 数値セルを str フィールドへ入れる (Excel の "001" が 1 で届くため)
RECORD_CONFIG = ConfigDict(coerce_numbers_to_str=True)


def is_record_type(cls: Any) -> bool:
    return isinstance(cls, type) and dataclasses.is_dataclass(cls)


def qualified_name(cls: type) -> str:
    return f"{cls.__module__}.{cls.__qualname__}"


@lru_cache(maxsize=None)
def record_fields(cls: type) -> dict[str, dataclasses.Field]:
    """Descriptor table of a record schema (init fields only, declaration order)."""
    if not is_record_type(cls):
        raise TypeError(f"{cls!r} is not a dataclass record schema")
    return {f.name: f for f in dataclasses.fields(cls) if f.init}


@lru_cache(maxsize=None)
def field_types(cls: type) -> dict[str, Any]:
    """Resolved type hints for the fields of ``cls``.

    Annotations are strings under ``from __future__ import annotations``;
    get_type_hints resolves them against the defining module.

    Raises:
        ConfigurationError: an annotation names a type that cannot be resolved
    """
    names = record_fields(cls)
    try:
        hints = typing.get_type_hints(cls)
    except (NameError, TypeError) as e:
        raise ConfigurationError(f"{qualified_name(cls)}: cannot resolve field annotations: {e}") from e
    return {name: hints.get(name, Any) for name in names}


def has_field(cls: type, name: str) -> bool:
    return is_record_type(cls) and name in record_fields(cls)


def get_field(obj: Any, name: str) -> Any:
    """Read field ``name`` of a record instance.

    Raises:
        KeyError: ``name`` is not a declared field of the record's schema
    """
    if not has_field(type(obj), name):
        raise KeyError(f"{type(obj).__name__} has no field '{name}'")
    return getattr(obj, name)


class Record:
    """Mixin for dataclass record schemas.

    Subclasses must be decorated with ``@dataclass``. ``__pydantic_config__``
    is picked up by the validators in ``records.coercion``; a subclass may
    override it with its own ConfigDict.
    """

    __pydantic_config__ = RECORD_CONFIG


class LineRecord(Record, ABC):
    """Record that can be generated one-artifact-per-row (multi-file mode).

    ``process_data`` runs after the row's fields have been written into the
    record and before it is persisted.
    """

    @abstractmethod
    def process_data(self) -> None:
        ...
