from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

DEFAULT_USER_CONFIG_PATH = "mdagent.yaml"
DEFAULT_DEV_CONFIG_PATH = "mdagent.dev.yaml"


def to_config_path(path: str | Path, base_dir: str | Path | None = None) -> Path:
    value = Path(path)
    if value.is_absolute():
        return value
    return Path(base_dir or Path.cwd()) / value


def deep_merge_dict(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep-merge dictionaries (override wins), without mutating inputs."""
    merged: dict[str, Any] = dict(base or {})
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge_dict(merged.get(key, {}), value)
        else:
            merged[key] = value
    return merged


def read_yaml_file(path: Path) -> dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"config file must be a YAML mapping/object: {path}")

    return data


def resolve_config_paths(
    user_config_path: str | Path = DEFAULT_USER_CONFIG_PATH,
    dev_config_path: str | Path | None = DEFAULT_DEV_CONFIG_PATH,
    *,
    base_dir: str | Path | None = None,
) -> tuple[Path, Path | None]:
    """Return (user_path, dev_path_or_none)."""
    user_path = to_config_path(user_config_path, base_dir)

    dev_path: Path | None = None
    if dev_config_path:
        candidate = to_config_path(dev_config_path, base_dir)
        if candidate.exists():
            dev_path = candidate

    return user_path, dev_path
