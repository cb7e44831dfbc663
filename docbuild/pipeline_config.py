"""Loading, validating and hashing pipeline configuration files."""

import copy
import hashlib
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from docbuild.deep_merge import deep_merge
from docbuild.errors import FatalBuildError
from docbuild.link_resolver import (
    DEFAULT_EXTERNAL_PREFIXES,
    DEFAULT_EXTERNAL_URL_FORMAT,
    DEFAULT_FALLBACKS,
)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

DEFAULT_CONFIG: dict[str, Any] = {
    "max_workers": 1,
    "log_level": "INFO",
    "report_path": "build_report.json",
    "resolver": {
        "fallbacks": list(DEFAULT_FALLBACKS),
        "external_url_format": DEFAULT_EXTERNAL_URL_FORMAT,
        "external_prefixes": list(DEFAULT_EXTERNAL_PREFIXES),
    },
    "components": [],
}


@dataclass(frozen=True)
class ComponentDeclaration:
    """One entry of the ordered component list."""

    type: str
    name: str
    config: dict[str, Any] = field(default_factory=dict)


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration from a YAML file and merge it over the defaults."""
    config = copy.deepcopy(DEFAULT_CONFIG)
    if path is None:
        return config
    p = Path(path)
    if not p.exists():
        msg = f"Configuration file not found: {p}"
        raise FatalBuildError(msg)
    try:
        user_config = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        msg = f"Configuration file {p} is not valid YAML: {e}"
        raise FatalBuildError(msg) from e
    if not isinstance(user_config, dict):
        msg = f"Configuration file {p} must contain a mapping"
        raise FatalBuildError(msg)
    return validate_settings(deep_merge(config, user_config))


def validate_settings(config: dict[str, Any]) -> dict[str, Any]:
    """Normalise the top-level settings in place, rejecting unusable values."""
    workers = config.get("max_workers", 1)
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        msg = f"'max_workers' must be a positive integer (got {workers!r})"
        raise FatalBuildError(msg)

    level = str(config.get("log_level") or "INFO").upper()
    if level not in LOG_LEVELS:
        msg = (
            f"'log_level' must be one of {', '.join(LOG_LEVELS)} "
            f"(got {config.get('log_level')!r})"
        )
        raise FatalBuildError(msg)
    config["log_level"] = level
    return config


def parse_declarations(config: dict[str, Any]) -> list[ComponentDeclaration]:
    """Validate the ``components`` list; declaration order is execution order."""
    entries = config.get("components")
    if not isinstance(entries, list):
        msg = "'components' must be a list"
        raise FatalBuildError(msg)

    declarations: list[ComponentDeclaration] = []
    seen: set[str] = set()
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict) or not entry.get("type"):
            msg = f"Component #{i + 1} must be a mapping with a 'type'"
            raise FatalBuildError(msg)
        name = str(entry.get("name") or entry["type"])
        if name in seen:
            msg = f"Duplicate component name '{name}'"
            raise FatalBuildError(msg)
        seen.add(name)
        block = entry.get("config") or {}
        if not isinstance(block, dict):
            msg = f"Component '{name}': 'config' must be a mapping"
            raise FatalBuildError(msg)
        declarations.append(ComponentDeclaration(str(entry["type"]), name, block))
    return declarations


def compute_config_hash(config: dict[str, Any]) -> str:
    """Compute a stable hash of the configuration.

    Uses canonical JSON serialization (sorted keys).
    """
    config_json = json.dumps(config, sort_keys=True, ensure_ascii=True, default=str)
    return hashlib.sha256(config_json.encode("utf-8")).hexdigest()
