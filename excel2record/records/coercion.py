from __future__ import annotations

import json
from collections.abc import Mapping
from functools import lru_cache
from typing import Any

from pydantic import TypeAdapter, ValidationError, with_config
from pydantic.errors import PydanticUndefinedAnnotation, PydanticUserError
from typing_extensions import TypedDict

from ..errors import ConfigurationError, DataFormatError
from .base import field_types, is_record_type, qualified_name

"""Record coercion: raw row values -> typed record instances.

coerce_value() applies, in order:
    (a) value already an instance of the target -> used directly
    (b) target is ``str`` -> ``str(value)``
    (c) JSON round-trip: the raw value is serialized to canonical JSON text,
        parsed back, and validated against the target with a pydantic
        TypeAdapter (lax mode). Fields match by name (case-sensitive),
        unmatched raw fields are ignored and missing fields keep their
        defaults.

Validation settings come from the schema's ``__pydantic_config__``
(see ``Record``). Failures raise DataFormatError scoped to the value being
converted; callers decide whether that aborts a row or a sheet. A schema
pydantic cannot build a validator for raises ConfigurationError.
"""

__all__ = [
    "coerce_value",
    "build_record",
    "coerce_fields",
    "overwrite_fields",
    "to_json_text",
    "to_plain",
    "strip_blank",
]

_ANY = TypeAdapter(Any)


def _jsonable(obj: Any) -> Any:
    # json.dumps の default フック (Enum / date / dataclass など)
    return _ANY.dump_python(obj, mode="json")


def to_json_text(raw: Any) -> str:
    """Serialize a raw value to canonical JSON text (sorted keys, no NaN)."""
    try:
        return json.dumps(raw, default=_jsonable, ensure_ascii=False, sort_keys=True, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise DataFormatError(f"value is not serializable: {e}") from e


def to_plain(value: Any, target: Any = Any) -> Any:
    """JSON-compatible python form of ``value`` (enums by value, dates as ISO text).

    Args:
        value: record instance, list of records or any raw value
        target: declared type of ``value``; fields are emitted in declaration order

    Returns:
        dicts / lists / scalars only
    """
    return _adapter(target).dump_python(value, mode="json")


def _round_trip(raw: Any) -> Any:
    return json.loads(to_json_text(raw))


def _type_label(target: Any) -> str:
    return getattr(target, "__name__", None) or str(target)


@lru_cache(maxsize=None)
def _adapter(target: Any) -> TypeAdapter[Any]:
    if is_record_type(target):
        field_types(target)
    try:
        return TypeAdapter(target)
    except (PydanticUserError, PydanticUndefinedAnnotation) as e:
        raise ConfigurationError(f"cannot build a validator for {_type_label(target)}: {e}") from e


@lru_cache(maxsize=None)
def _fields_adapter(cls: type) -> TypeAdapter[Any]:
    # 行に存在するフィールドだけを検証する部分スキーマ
    fields = TypedDict(f"{cls.__name__}Fields", field_types(cls), total=False)
    config = getattr(cls, "__pydantic_config__", None)
    if config is not None:
        fields = with_config(config)(fields)
    try:
        return TypeAdapter(fields)
    except (PydanticUserError, PydanticUndefinedAnnotation) as e:
        raise ConfigurationError(f"cannot build a validator for {qualified_name(cls)}: {e}") from e


def _describe(label: str, error: ValidationError) -> str:
    parts = []
    for detail in error.errors(include_url=False):
        loc = "".join(f"[{p}]" if isinstance(p, int) else f".{p}" for p in detail["loc"])
        parts.append(f"{label}{loc}: {detail['msg']}")
    return "; ".join(parts)


def _validate(adapter: TypeAdapter[Any], data: Any, label: str) -> Any:
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        raise DataFormatError(_describe(label, e)) from e
    except (PydanticUserError, PydanticUndefinedAnnotation) as e:
        # 未定義の型を参照するスキーマ (rebuild が必要な状態)
        raise ConfigurationError(f"{label}: {e}") from e


def strip_blank(row: Mapping[str, Any]) -> dict[str, Any]:
    """Copy of a raw row without blank (None) cells, nested mappings included.

    A blank cell means "no value": the field keeps its default on a new
    record and its current value on an overwritten one.
    """
    stripped: dict[str, Any] = {}
    for key, value in row.items():
        if value is None:
            continue
        stripped[key] = strip_blank(value) if isinstance(value, Mapping) else value
    return stripped


def coerce_value(target: Any, raw: Any) -> Any:
    """Coerce ``raw`` into an instance of ``target``.

    Args:
        target: record schema class, primitive type or typing annotation
        raw: scalar, string or (nested) mapping from a raw row

    Returns:
        The coerced value

    Raises:
        DataFormatError: the value cannot be represented as ``target``
        ConfigurationError: ``target`` has annotations that cannot be resolved
    """
    if isinstance(target, type) and isinstance(raw, target) and not _is_bool_as_int(target, raw):
        return raw
    if target is str:
        return "" if raw is None else str(raw)
    label = _type_label(target)
    if is_record_type(target):
        return build_record(target, _round_trip(raw), path=label)
    return _validate(_adapter(target), _round_trip(raw), label)


def build_record(cls: type, data: Any, *, path: str | None = None) -> Any:
    """Build a record of schema ``cls`` from JSON-compatible ``data``."""
    label = path or cls.__name__
    if not isinstance(data, Mapping):
        raise DataFormatError(f"{label}: expected an object, got {type(data).__name__}")
    return _validate(_adapter(cls), data, label)


def coerce_fields(cls: type, raw_row: Mapping[str, Any]) -> dict[str, Any]:
    """Coerce only the fields of ``cls`` present in ``raw_row``.

    Used for in-place overwrite: fields absent from the row (or blank) are
    not returned, so the target keeps whatever value it already had.
    """
    if not isinstance(raw_row, Mapping):
        raise DataFormatError(f"{cls.__name__}: row is not a mapping ({type(raw_row).__name__})")
    adapter = _fields_adapter(cls)
    return dict(_validate(adapter, _round_trip(strip_blank(raw_row)), cls.__name__))


def overwrite_fields(record: Any, values: Mapping[str, Any]) -> None:
    for name, value in values.items():
        setattr(record, name, value)


def _is_bool_as_int(target: type, raw: Any) -> bool:
    # bool は int のサブクラスなので isinstance だけでは素通りしてしまう
    return isinstance(raw, bool) and target in (int, float)
