from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from typing import Any, ClassVar, Generic, TypeVar

from ..errors import DataFormatError
from .base import get_field, has_field, is_record_type
from .coercion import coerce_value, strip_blank, to_plain

"""Generic typed container: the payload of a single-file artifact.

A container holds an ordered list of typed records plus the name of the key
field. Key lookups go through an index built lazily from the items; the index
is treated as stale whenever its size differs from the item count.
"""

__all__ = [
    "DataContainer",
    "KEY_NAME_SENTINEL",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")

# sheet-level raw data key carrying the key field name (#keyName directive)
KEY_NAME_SENTINEL = "keyName"


class DataContainer(Generic[T]):
    """Ordered collection of ``item_type`` records with a key index.

    Subclasses set ``item_type`` to a dataclass record schema::

        @register_schema
        class ItemTable(DataContainer[Item]):
            item_type = Item
    """

    item_type: ClassVar[type] = dict

    def __init__(self, key_name: str | None = None, items: list[T] | None = None) -> None:
        self.key_name = key_name
        self.items: list[T] = list(items) if items else []
        self._index: dict[str, T] | None = None

    # --- collection protocol -------------------------------------------------

    def __iter__(self) -> Iterator[T]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    @property
    def count(self) -> int:
        return len(self.items)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self.key_name == other.key_name and self.items == other.items  # type: ignore[attr-defined]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(key_name={self.key_name!r}, items={len(self.items)})"

    # --- lookup --------------------------------------------------------------

    def get_by_index(self, index: int) -> T | None:
        """Item at ``index``, or None when out of range (no negative indexing)."""
        if 0 <= index < len(self.items):
            return self.items[index]
        return None

    def get_by_key(self, key: str | int) -> T | None:
        """Item whose key field stringifies to ``key``; int keys are stringified."""
        if self.key_name is None:
            logger.error(
                "%s: no key field configured, set key_name (or #%s in the sheet)",
                type(self).__name__,
                KEY_NAME_SENTINEL,
            )
            return None
        index = self._ensure_index()
        if index is None:
            return None
        return index.get(str(key))

    def invalidate_index(self) -> None:
        self._index = None

    def _ensure_index(self) -> dict[str, T] | None:
        if self.key_name is None:
            self._index = None
            return None
        if self._index is not None and len(self._index) == len(self.items):
            return self._index
        self._index = self._build_index(self.key_name)
        return self._index

    def _build_index(self, key_name: str) -> dict[str, T] | None:
        item_type = self.item_type
        if is_record_type(item_type) and not has_field(item_type, key_name):
            logger.warning("field '%s' not found on %s", key_name, item_type.__name__)
            return None

        index: dict[str, T] = {}
        duplicates = 0
        for item in self.items:
            if item is None:
                continue
            try:
                value = item[key_name] if isinstance(item, Mapping) else get_field(item, key_name)
            except KeyError as e:
                logger.error("cannot read key field '%s': %s", key_name, e)
                continue
            if value is None:
                continue
            key = str(value)
            if not key:
                continue
            if key in index:
                # 先勝ち: 後続の重複は index に入れない (items には残る)
                duplicates += 1
                logger.warning("duplicate key '%s' in %s", key, type(self).__name__)
                continue
            index[key] = item
        if duplicates:
            logger.warning("key index built with %d duplicate key(s) ignored", duplicates)
        return index

    # --- loading -------------------------------------------------------------

    def load_raw_data(self, raw_data: Mapping[str, Any]) -> None:
        """Load sheet-level metadata (the key field name) from raw sheet data."""
        self.key_name = None
        name = raw_data.get(KEY_NAME_SENTINEL)
        if isinstance(name, str) and name:
            self.key_name = name
        self.invalidate_index()

    def load_items(self, items: list[T]) -> None:
        """Replace the whole item list (full replace, never merge)."""
        self.items = list(items)
        self.invalidate_index()

    def process_data(self, item: T) -> None:
        """Per-item hook run by load_json; override to validate or derive fields."""
        return None

    def load_json(self, text: str) -> int:
        """Replace items from a JSON array of row objects.

        Rows that fail coercion or processing are logged and skipped.

        Returns:
            Number of items loaded

        Raises:
            DataFormatError: the document is not a JSON array (items are cleared)
        """
        if not text:
            logger.warning("empty JSON document, clearing %s", type(self).__name__)
            self.load_items([])
            return 0
        try:
            rows = json.loads(text)
        except json.JSONDecodeError as e:
            self.load_items([])
            raise DataFormatError(f"invalid JSON document: {e}") from e
        if rows is None:
            self.load_items([])
            return 0
        if not isinstance(rows, list):
            self.load_items([])
            raise DataFormatError(f"expected a JSON array, got {type(rows).__name__}")

        loaded: list[T] = []
        for position, row in enumerate(rows):
            if row is None:
                logger.warning("skipping empty row %d", position)
                continue
            try:
                item = coerce_value(self.item_type, strip_blank(row) if isinstance(row, Mapping) else row)
                self.process_data(item)
            except DataFormatError as e:
                logger.error("row %d: %s", position, e)
                continue
            loaded.append(item)
        self.load_items(loaded)
        logger.info("loaded %d/%d items into %s", len(loaded), len(rows), type(self).__name__)
        return len(loaded)

    # --- persistence ---------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "key_name": self.key_name,
            "items": to_plain(self.items),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DataContainer[Any]:
        """Rebuild a container from its persisted form.

        Raises:
            DataFormatError: malformed payload or an item that does not coerce
        """
        if not isinstance(data, Mapping):
            raise DataFormatError(f"{cls.__name__}: expected an object, got {type(data).__name__}")
        raw_items = data.get("items") or []
        if not isinstance(raw_items, list):
            raise DataFormatError(f"{cls.__name__}: 'items' is not a list")
        key_name = data.get("key_name")
        items = [coerce_value(cls.item_type, raw) for raw in raw_items]
        return cls(key_name=key_name if isinstance(key_name, str) and key_name else None, items=items)
