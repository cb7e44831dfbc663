"""Reading DocFX ManagedReference YAML into plain item records."""

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from docbuild.link_kind import LinkKind

MIME_HEADER_RE = re.compile(r"\A###\s*YamlMime:[^\n]*\n+")
# "  name.vb: =" (VB operator names) is not valid YAML until the '=' is quoted.
VB_EQUALS_RE = re.compile(r"^(\s*[\w.]+\.vb:\s+)=$", re.MULTILINE)

_DOCFX_LINK_KINDS: dict[str, LinkKind] = {
    "namespace": LinkKind.NAMESPACE,
    **dict.fromkeys(
        ("class", "struct", "interface", "enum", "delegate"), LinkKind.TYPE
    ),
    **dict.fromkeys(
        ("method", "property", "field", "event", "operator", "constructor"),
        LinkKind.MEMBER,
    ),
}


def link_kind_for_docfx(kind: str) -> LinkKind:
    """Map a DocFX ``type`` value (Class, Method, ...) onto a link kind."""
    return _DOCFX_LINK_KINDS.get(kind.strip().lower(), LinkKind.OTHER)


@dataclass(frozen=True)
class DocfxItem:
    """One documented item (namespace, type or member) from a YAML file."""

    uid: str
    kind: str
    name: str
    full_name: str
    parent: str | None
    file: Path

    @classmethod
    def from_yaml(cls, raw: dict[str, Any], file: Path) -> "DocfxItem":
        """Build an item from one ``items`` entry, filling in missing names."""
        uid = str(raw["uid"])
        parent = raw.get("parent")
        return cls(
            uid=uid,
            kind=str(raw.get("type") or "").strip() or "Unknown",
            name=str(raw.get("name") or raw.get("fullName") or uid),
            full_name=str(raw.get("fullName") or raw.get("name") or uid),
            parent=str(parent) if parent else None,
            file=file,
        )

    @property
    def link_kind(self) -> LinkKind:
        return link_kind_for_docfx(self.kind)

    @property
    def has_page(self) -> bool:
        """Namespaces and types get a page of their own."""
        return self.link_kind in (LinkKind.NAMESPACE, LinkKind.TYPE)


def without_mime_header(text: str) -> str:
    """Drop a leading ``### YamlMime:...`` line."""
    return MIME_HEADER_RE.sub("", text, count=1)


def read_managed_reference(path: Path) -> dict[str, Any]:
    """Parse one ManagedReference file; an empty file yields an empty mapping."""
    text = without_mime_header(path.read_text(encoding="utf-8"))
    doc = yaml.safe_load(VB_EQUALS_RE.sub(r"\1'='", text))
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        msg = f"{path}: expected a mapping at the top level"
        raise ValueError(msg)
    return doc


@dataclass
class DocfxMetadata:
    """Items and ``references`` entries gathered from a set of YAML files.

    Both maps are keyed by uid; a later file wins for a repeated uid.
    """

    items: dict[str, DocfxItem] = field(default_factory=dict)
    references: dict[str, dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def load(cls, yml_files: Iterable[Path]) -> "DocfxMetadata":
        """Read every file in order."""
        metadata = cls()
        for path in yml_files:
            doc = read_managed_reference(path)
            for raw in doc.get("items") or []:
                if isinstance(raw, dict) and raw.get("uid"):
                    metadata.items[str(raw["uid"])] = DocfxItem.from_yaml(raw, path)
            for ref in doc.get("references") or []:
                if isinstance(ref, dict) and ref.get("uid"):
                    metadata.references[str(ref["uid"])] = ref
        return metadata
