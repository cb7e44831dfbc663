"""Hand finished topics to disk."""

import threading
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from lxml import etree

from docbuild.build_component import BuildComponent
from docbuild.build_context import BuildContext
from docbuild.errors import FatalBuildError
from docbuild.page_paths import file_name_for_id


def output_file_for_topic(out_root: Path, key: str, extension: str = ".xml") -> Path:
    """Output file for a topic key: T:Acme.Widget -> out_root/T_Acme_Widget.xml."""
    return out_root / f"{file_name_for_id(key)}{extension}"


class SaveComponent(BuildComponent):
    """Serialises each topic document to ``output_dir``."""

    type_name = "save"

    def initialize(self, config: Mapping[str, Any], context: BuildContext) -> None:
        """Create the output directory up front."""
        super().initialize(config, context)
        out = self.config.get("output_dir")
        if not out:
            msg = f"{self.name}: 'output_dir' is required"
            raise FatalBuildError(msg)
        self.output_dir = context.resolve_path(str(out))
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.extension = str(self.config.get("extension", ".xml"))
        self.pretty = bool(self.config.get("pretty", True))
        # Output file -> key of the topic that wrote it.
        self._written: dict[Path, str] = {}
        self._written_lock = threading.Lock()

    def apply(self, document: etree._Element, key: str) -> etree._Element | None:
        """Write the topic; the document is left untouched."""
        out_file = output_file_for_topic(self.output_dir, key, self.extension)
        with self._written_lock:
            previous = self._written.get(out_file)
            self._written[out_file] = key
        if previous is not None and previous != key:
            self.log.warning(
                "Overwriting %s, already written for topic '%s'",
                out_file,
                previous,
                topic=key,
            )
        out_file.write_bytes(
            etree.tostring(
                document,
                encoding="utf-8",
                xml_declaration=True,
                pretty_print=self.pretty,
            )
        )
        self.log.debug("Wrote %s", out_file, topic=key)
        return None
