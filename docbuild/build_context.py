"""Shared state owned by one pipeline engine for the length of a run."""

import logging
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any

from docbuild.build_report import BuildReport
from docbuild.indexed_cache import IndexedFileCache
from docbuild.target_dictionary import TargetDictionary

logger = logging.getLogger(__name__)


class ComponentLogger(logging.LoggerAdapter):
    """Prefixes every line with the component name and, when given, the topic key.

    Pass ``topic=key`` to any logging call to tag it with a topic.
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        topic = kwargs.pop("topic", None) or "-"
        component = (self.extra or {}).get("component", "-")
        kwargs["extra"] = {"component": component, "topic": topic}
        return f"[{component}] [{topic}] {msg}", kwargs


class BuildContext:
    """Target dictionaries and indexed caches shared between components.

    Passed to every component's ``initialize`` instead of process-wide
    globals, so independent pipelines never see each other's state.
    """

    def __init__(
        self,
        report: BuildReport | None = None,
        base_dir: Path | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        """Create an empty context."""
        self.report = report or BuildReport()
        self.base_dir = base_dir or Path.cwd()
        self.settings: dict[str, Any] = settings or {}
        self.target_dictionaries: dict[str, TargetDictionary] = {}
        self.indexed_caches: dict[str, IndexedFileCache] = {}

    def logger_for(self, component_name: str) -> ComponentLogger:
        """Logger adapter tagging lines with a component name."""
        return ComponentLogger(
            logging.getLogger(f"docbuild.component.{component_name}"),
            {"component": component_name},
        )

    def resolve_path(self, path: str | Path) -> Path:
        """Resolve a configured path relative to the configuration's directory."""
        p = Path(path)
        return p if p.is_absolute() else self.base_dir / p

    def dispose(self) -> None:
        """Close every cache's file handles and release target dictionaries."""
        for name, cache in self.indexed_caches.items():
            logger.debug("Closing indexed cache '%s'", name)
            cache.close()
        for dictionary in self.target_dictionaries.values():
            dictionary.clear()
        self.indexed_caches.clear()
        self.target_dictionaries.clear()
