"""Configuration loading for capidocs (capidocs.json)."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

CONFIG_FILENAMES = ("capidocs.json", "capidocs.yml", "capidocs.yaml")

TALLY_ORDERS = ("version", "completion")


class ConfigError(RuntimeError):
    """Raised when the configuration file is missing or cannot be used."""


@dataclass
class ProjectConfig:
    """Represents the settings defined in capidocs.json."""

    root: Path
    branch: str
    name: Optional[str] = None
    github: Optional[str] = None
    prefix: Optional[str] = None
    input: Optional[str] = None
    examples: Optional[str] = None
    legacy: Dict[str, Dict[str, List[str]]] = field(default_factory=dict)
    tally_order: str = "version"
    workers: Optional[int] = None

    def option_version(self, version: str, option: str, default: Any = None) -> Any:
        """Resolve ``option`` for ``version``, honouring the legacy override table."""
        overrides = self.legacy.get(option) or {}
        for value, versions in overrides.items():
            if version in versions:
                return value
        current = getattr(self, option, None)
        return current if current else default

    @property
    def worker_count(self) -> int:
        return self.workers or os.cpu_count() or 1


def load_config(config_path: Path) -> ProjectConfig:
    """Load configuration from disk."""
    config_file = _resolve_config_path(Path(config_path))
    if not config_file.is_file():
        raise ConfigError(f"Config file not found: {config_file}")
    root = config_file.parent.resolve()

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file.name} must contain a mapping at the root")

    branch = _as_str(data.get("branch"))
    if not branch:
        raise ConfigError(f"{config_file.name} must define a `branch` to write documentation to")

    tally_order = _as_str(data.get("tally_order")) or "version"
    if tally_order not in TALLY_ORDERS:
        raise ConfigError(
            f"Unsupported tally_order {tally_order!r}; expected one of {', '.join(TALLY_ORDERS)}"
        )

    return ProjectConfig(
        root=root,
        branch=branch,
        name=_as_str(data.get("name")),
        github=_as_str(data.get("github")) or _as_str(data.get("origin")),
        prefix=_as_str(data.get("prefix")),
        input=_as_str(data.get("input")),
        examples=_as_str(data.get("examples")),
        legacy=_as_legacy(data.get("legacy")),
        tally_order=tally_order,
        workers=_as_int(data.get("workers")),
    )


def default_config_template(name: str = "project") -> Dict[str, Any]:
    """Return the starter configuration written by ``capidocs gen``."""
    return {
        "name": name,
        "github": f"owner/{name}",
        "prefix": f"{name}_",
        "branch": "gh-pages",
        "input": "include",
        "examples": "examples",
        "legacy": {"input": {"src/": []}},
    }


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        for candidate in CONFIG_FILENAMES:
            resolved = config_path / candidate
            if resolved.exists():
                return resolved.resolve()
        return (config_path / CONFIG_FILENAMES[0]).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Unable to read {path}: {exc}") from exc
    if not text.strip():
        return {}

    if path.suffix.lower() in {".yml", ".yaml"}:
        try:
            return yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc


def _as_legacy(value: Any) -> Dict[str, Dict[str, List[str]]]:
    if not isinstance(value, Mapping):
        return {}
    legacy: Dict[str, Dict[str, List[str]]] = {}
    for option, overrides in value.items():
        if not isinstance(overrides, Mapping):
            continue
        legacy[str(option)] = {
            str(option_value): _as_str_list(versions)
            for option_value, versions in overrides.items()
        }
    return legacy


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float)) and not isinstance(value, bool) else None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float))]
    return []


__all__ = [
    "CONFIG_FILENAMES",
    "ConfigError",
    "ProjectConfig",
    "TALLY_ORDERS",
    "default_config_template",
    "load_config",
]
