"""Record schemas, the typed container, coercion and the schema registry."""

from .base import LineRecord, Record, get_field
from .container import DataContainer
from .registry import SchemaRegistry, default_registry, register_schema

__all__ = [
    "Record",
    "LineRecord",
    "DataContainer",
    "SchemaRegistry",
    "default_registry",
    "register_schema",
    "get_field",
]
