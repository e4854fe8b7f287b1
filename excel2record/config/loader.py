from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import ConvertConfig, GenerateConfig

"""Config loader.

Responsibilities:
- Load YAML config (default config/convert.yml)
- Validate against the packaged JSON schema (config_schema.json)
- Apply defaults and build the frozen ConvertConfig / GenerateConfig models

Any problem here is fatal for the run (ConfigError).
"""

__all__ = [
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "SCHEMA_PATH",
    "load_config",
    "parse_config",
]

DEFAULT_CONFIG_PATH = Path("config/convert.yml")
SCHEMA_PATH = Path(__file__).with_name("config_schema.json")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: Any) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing / not JSON, or the data violates it
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path)
        suffix = f" (at {location})" if location else ""
        raise ConfigError(f"config validation failed: {e.message}{suffix}") from e


def parse_config(data: Any) -> ConvertConfig:
    """Validate an already-parsed config mapping and build ConvertConfig."""
    if data is None:
        raise ConfigError("config is empty")
    _validate_config_schema(data)

    generate_configs = [
        GenerateConfig(
            excel_path=raw["excel_path"],
            output_path=raw["output_path"],
            class_name=raw.get("class_name") or None,
            key_name=raw.get("key_name") or None,
            multi_file=raw.get("multi_file", False),
            child_folder=raw.get("child_folder", False),
        )
        for raw in data["generate_configs"]
    ]
    return ConvertConfig(
        generate_configs=generate_configs,
        schema_modules=list(data.get("schema_modules", [])),
        only_keep_new_generated_file=data.get("only_keep_new_generated_file", False),
    )


def load_config(path: Path) -> ConvertConfig:
    """Load and validate the root config file.

    Relative paths inside the config are resolved against the current
    working directory (the directory the tool is run from). Schema modules
    are also searched next to the config file, see process_all.
    """
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    return parse_config(data)
