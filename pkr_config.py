#!/usr/bin/env python3
"""Pack options and config-file loading.

Options come from three layers, later ones winning: built-in defaults, an
optional YAML config file, explicit command-line flags. The config file is
checked against ``pkr_schemas/pack-config.schema.json`` before use.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, fields, replace
from importlib import resources
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jsonschema import Draft202012Validator

from pkr_digest import DEFAULT_LEVEL, validate_level
from pkr_validate import ValidationError

CONFIG_SCHEMA = "pack-config.schema.json"

DEFAULT_FOLDER = "./rustdesk"
DEFAULT_OUTPUT = "./"

# Config-file key -> PackOptions field
_CONFIG_KEYS: Dict[str, str] = {
    "folder": "folder",
    "output": "output_folder",
    "executable": "executable",
    "target": "target",
    "level": "level",
    "jobs": "jobs",
    "build": "build",
}


class ConfigError(ValidationError):
    """Raised for unreadable or invalid pack configuration."""


@dataclass(frozen=True)
class PackOptions:
    """Everything one pack run needs.

    executable None means the platform default name inside folder.
    target None means the host default target.
    """

    folder: str = DEFAULT_FOLDER
    output_folder: str = DEFAULT_OUTPUT
    executable: Optional[str] = None
    target: Optional[str] = None
    level: int = DEFAULT_LEVEL
    jobs: int = 1
    build: bool = True

    def __post_init__(self) -> None:
        try:
            validate_level(self.level)
        except ValueError as e:
            raise ConfigError(str(e)) from e
        if self.jobs < 1:
            raise ConfigError(f"jobs must be at least 1, got {self.jobs}")

    def merged(self, overrides: Dict[str, Any]) -> "PackOptions":
        """Copy with every non-None override applied."""
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in overrides.items() if v is not None and k in known}
        return replace(self, **changes)


def _format_schema_errors(errors: List[Any]) -> str:
    lines = []
    for err in errors[:5]:
        path = err.json_path or "$"
        lines.append(f"{path}: {err.message}")
    if len(errors) > 5:
        lines.append(f"... {len(errors) - 5} more")
    return "\n".join(lines)


def load_schema(schema_name: str = CONFIG_SCHEMA) -> Dict[str, Any]:
    data = resources.files("pkr_schemas").joinpath(schema_name).read_text(encoding="utf-8")
    return json.loads(data)


def validate_config(data: Any) -> Dict[str, Any]:
    """Check a parsed config mapping against the schema and return it."""
    schema = load_schema()
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(data), key=lambda e: e.json_path)
    if errors:
        raise ConfigError("Invalid pack configuration:\n" + _format_schema_errors(errors))
    return data


def load_config(path: Path) -> Dict[str, Any]:
    """Read a YAML config file and return PackOptions field overrides."""
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file {path} is not valid YAML: {e}") from e

    if data is None:
        data = {}
    validate_config(data)
    return {_CONFIG_KEYS[key]: value for key, value in data.items()}


def resolve_options(
    cli_overrides: Dict[str, Any], config_path: Optional[Path] = None
) -> PackOptions:
    """Defaults, then config file, then command-line flags."""
    options = PackOptions()
    if config_path is not None:
        options = options.merged(load_config(config_path))
    return options.merged(cli_overrides)
