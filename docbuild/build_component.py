"""Base classes for pipeline components."""

import logging
from collections.abc import Mapping
from typing import Any

from lxml import etree

from docbuild.build_context import BuildContext, ComponentLogger


class BuildComponent:
    """A named transformation applied to every topic in declared order."""

    type_name = "component"

    def __init__(self, name: str | None = None) -> None:
        """Name defaults to the component's type name."""
        self.name = name or self.type_name
        self.config: dict[str, Any] = {}
        self._context: BuildContext | None = None
        self._log: ComponentLogger | None = None

    @property
    def context(self) -> BuildContext:
        """The context passed to ``initialize``."""
        if self._context is None:
            msg = f"Component '{self.name}' has not been initialized"
            raise RuntimeError(msg)
        return self._context

    @property
    def log(self) -> ComponentLogger:
        """Logger tagged with this component's name."""
        if self._log is None:
            self._log = ComponentLogger(
                logging.getLogger(f"docbuild.component.{self.name}"),
                {"component": self.name},
            )
        return self._log

    def initialize(self, config: Mapping[str, Any], context: BuildContext) -> None:
        """Store configuration and the shared context. Subclasses validate here."""
        self.config = dict(config)
        self._context = context
        self._log = context.logger_for(self.name)

    def apply(self, document: etree._Element, key: str) -> etree._Element | None:
        """Transform a topic document.

        Mutate ``document`` in place and return None, or return a replacement
        root element.
        """
        raise NotImplementedError


class IndexingComponent(BuildComponent):
    """A component that owns shared lookup state built once before any topic."""

    def build_index(self) -> None:
        """Populate target dictionaries or indexed caches in the context."""
        raise NotImplementedError
