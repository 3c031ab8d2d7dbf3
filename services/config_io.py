"""Config file I/O for JSON, YAML and TOML.

The format follows the file extension:
  .json        → JSON
  .yaml / .yml → YAML  (pyyaml)
  .toml        → TOML  (read: stdlib tomllib; write: tomli-w)
"""
from __future__ import annotations

import json
import tomllib
from pathlib import Path
from typing import Any

import tomli_w
import yaml

from services.config_schema import AppConfig

_YAML_EXTS = {".yaml", ".yml"}
_TOML_EXTS = {".toml"}

CONFIG_NAMES = ["config.json", "config.yaml", "config.yml", "config.toml"]


def find_config(directory: Path) -> Path | None:
    """First config file present in *directory*, in ``CONFIG_NAMES`` order."""
    for name in CONFIG_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_config(path: Path) -> dict[str, Any]:
    """Read a config file into a plain dict."""
    ext = path.suffix.lower()
    if ext in _YAML_EXTS:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or {}
    if ext in _TOML_EXTS:
        with open(path, "rb") as f:
            return tomllib.load(f)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_app_config(path: Path) -> AppConfig:
    """Read and validate a config file. Raises ``pydantic.ValidationError``."""
    return AppConfig.model_validate(load_config(path))


def save_config(data: dict[str, Any], path: Path) -> None:
    """Write *data* to *path* in the format its extension names."""
    path.parent.mkdir(parents=True, exist_ok=True)
    ext = path.suffix.lower()
    if ext in _YAML_EXTS:
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(data, f, allow_unicode=True, sort_keys=False, default_flow_style=False)
    elif ext in _TOML_EXTS:
        with open(path, "wb") as f:
            tomli_w.dump(data, f)
    else:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
