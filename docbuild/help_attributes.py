"""Add help-system attributes to a metadata island in each topic."""

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from lxml import etree

from docbuild.build_component import BuildComponent
from docbuild.build_context import BuildContext
from docbuild.errors import FatalBuildError


@dataclass(frozen=True, order=True)
class HelpAttribute:
    """A name/value pair; sorts by name, then value."""

    name: str
    value: str

    @classmethod
    def create(cls, name: Any, value: Any) -> "HelpAttribute":
        """Blank names become ``NoName``; other names are kept as given."""
        text = "" if name is None else str(name)
        return cls(text if text.strip() else "NoName", "" if value is None else str(value))


class HelpAttributesComponent(BuildComponent):
    """Appends ``<attr name=... value=.../>`` to the ``island`` element of every topic."""

    type_name = "help_attributes"

    def initialize(self, config: Mapping[str, Any], context: BuildContext) -> None:
        """Parse and sort the configured attributes."""
        super().initialize(config, context)
        self.island = str(self.config.get("island", "metadata"))
        entries = self.config.get("attributes") or []
        if not isinstance(entries, list):
            msg = f"{self.name}: 'attributes' must be a list"
            raise FatalBuildError(msg)
        self.attributes = sorted(
            {HelpAttribute.create(e.get("name"), e.get("value")) for e in entries}
        )

    def apply(self, document: etree._Element, key: str) -> etree._Element | None:
        """Add the attributes, creating the island element when absent."""
        island = document.find(self.island)
        if island is None:
            island = etree.SubElement(document, self.island)
        for attr in self.attributes:
            etree.SubElement(island, "attr", name=attr.name, value=attr.value)
        return None
