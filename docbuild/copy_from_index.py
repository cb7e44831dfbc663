"""Copy content from indexed source documents into topics."""

import copy
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from lxml import etree

from docbuild.build_component import IndexingComponent
from docbuild.build_context import BuildContext
from docbuild.errors import DocumentNotFoundError, FatalBuildError
from docbuild.indexed_cache import IndexedFileCache, IndexRule

MISSING_POLICIES = {"ignore", "warn", "error"}


@dataclass(frozen=True)
class CopyCommand:
    """Append ``source`` matches from the indexed document under ``target`` in the topic.

    ``key`` is an XPath evaluated on the topic giving the document id to copy
    from; when empty the topic key itself is used.
    """

    source: str
    target: str
    key: str = ""
    missing_entry: str = "warn"
    missing_target: str = "warn"


class CopyFromIndexComponent(IndexingComponent):
    """Builds an indexed file cache once and copies fragments out of it per topic.

    Config keys: ``index_name``, ``files`` (paths or glob patterns relative to
    the configuration directory), ``rule`` (``element``/``key_attribute``),
    ``cache_size``, ``cache_bytes``, ``max_workers``, ``fail_on_index_errors``
    and ``copy`` (list of copy commands).
    """

    type_name = "copy_from_index"

    def initialize(self, config: Mapping[str, Any], context: BuildContext) -> None:
        """Validate the index and copy command configuration."""
        super().initialize(config, context)
        self.index_name = str(self.config.get("index_name") or self.name)

        rule = self.config.get("rule") or {}
        if not rule.get("element"):
            msg = f"{self.name}: 'rule.element' is required"
            raise FatalBuildError(msg)
        self.rule = IndexRule(
            element=str(rule["element"]),
            key_attribute=str(rule.get("key_attribute", "id")),
        )

        self.commands = [self._parse_command(c) for c in self.config.get("copy") or []]
        if not self.commands:
            msg = f"{self.name}: at least one 'copy' command is required"
            raise FatalBuildError(msg)
        self.cache: IndexedFileCache | None = None

    def _parse_command(self, block: Mapping[str, Any]) -> CopyCommand:
        if not block.get("source") or not block.get("target"):
            msg = f"{self.name}: copy commands need 'source' and 'target'"
            raise FatalBuildError(msg)
        command = CopyCommand(
            source=str(block["source"]),
            target=str(block["target"]),
            key=str(block.get("key") or ""),
            missing_entry=str(block.get("missing_entry", "warn")),
            missing_target=str(block.get("missing_target", "warn")),
        )
        for policy in (command.missing_entry, command.missing_target):
            if policy not in MISSING_POLICIES:
                msg = f"{self.name}: unknown missing policy '{policy}'"
                raise FatalBuildError(msg)
        try:
            for expr in filter(None, (command.source, command.target, command.key)):
                etree.XPath(expr)
        except etree.XPathSyntaxError as e:
            msg = f"{self.name}: invalid XPath in copy command: {e}"
            raise FatalBuildError(msg) from e
        return command

    def _source_files(self) -> list[Path]:
        files: list[Path] = []
        for pattern in self.config.get("files") or []:
            pattern = str(pattern)
            if any(ch in pattern for ch in "*?["):
                matches = sorted(self.context.base_dir.glob(pattern))
                if not matches:
                    self.log.warning("No files match '%s'", pattern)
                files.extend(matches)
            else:
                files.append(self.context.resolve_path(pattern))
        return files

    def build_index(self) -> None:
        """Build the shared cache, or reuse one another component already built."""
        shared = self.context.indexed_caches.get(self.index_name)
        if shared is not None:
            self.log.info("Reusing indexed cache '%s'", self.index_name)
            self.cache = shared
            return

        cache = IndexedFileCache(
            max_resident=int(self.config.get("cache_size", 100)),
            max_resident_bytes=self.config.get("cache_bytes"),
        )
        status = cache.build_index(
            self._source_files(),
            self.rule,
            max_workers=int(self.config.get("max_workers", 1)),
        )
        if not status.ok:
            for path, reason in status.failed_files.items():
                self.log.warning("Index source %s failed: %s", path, reason)
            if self.config.get("fail_on_index_errors", False):
                cache.close()
                msg = (
                    f"{self.name}: {len(status.failed_files)} index source file(s) "
                    "could not be indexed"
                )
                raise FatalBuildError(msg)
        self.cache = cache
        self.context.indexed_caches[self.index_name] = cache
        self.log.info(
            "Indexed cache '%s' holds %d documents", self.index_name, len(cache)
        )

    def apply(self, document: etree._Element, key: str) -> etree._Element | None:
        """Run each copy command against the topic."""
        if self.cache is None:
            msg = f"Component '{self.name}' used before build_index"
            raise RuntimeError(msg)
        for command in self.commands:
            self._copy(command, document, key)
        return None

    def _copy(self, command: CopyCommand, document: etree._Element, key: str) -> None:
        cache = self.cache
        doc_id = str(document.xpath(f"string({command.key})")) if command.key else key
        if cache is None or doc_id not in cache:
            self._missing(command.missing_entry, f"no indexed entry for '{doc_id}'", key)
            return

        targets = document.xpath(command.target)
        if not targets or not isinstance(targets[0], etree._Element):
            self._missing(
                command.missing_target, f"target '{command.target}' not found", key
            )
            return
        target = targets[0]

        source_doc = cache.get(doc_id)
        result = source_doc.xpath(command.source)
        for node in result if isinstance(result, list) else [result]:
            if isinstance(node, etree._Element):
                target.append(copy.deepcopy(node))
            else:
                _append_text(target, str(node))

    def _missing(self, policy: str, message: str, key: str) -> None:
        if policy == "error":
            raise DocumentNotFoundError(message)
        if policy == "warn":
            self.log.warning("%s", message, topic=key)


def _append_text(el: etree._Element, text: str) -> None:
    if len(el):
        el[-1].tail = (el[-1].tail or "") + text
    else:
        el.text = (el.text or "") + text
