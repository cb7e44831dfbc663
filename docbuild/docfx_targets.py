"""Target provider for DocFX ManagedReference YAML metadata."""

from collections.abc import Iterable
from pathlib import Path
from typing import Any

from docbuild.docfx_metadata import DocfxMetadata
from docbuild.link_kind import LinkKind
from docbuild.page_paths import header_slug, page_path_for_fullname
from docbuild.target import Target


class DocfxTargetProvider:
    """Namespaces and types become pages, members become anchors on their parent."""

    def __init__(
        self,
        yml_files: list[Path],
        api_root: str = "/api",
        name: str = "docfx",
    ) -> None:
        """Remember the YAML files; nothing is read until ``load``."""
        self.yml_files = yml_files
        self.api_root = api_root
        self.name = name

    def load(self) -> Iterable[Target]:
        """Parse every YAML file and yield the resulting targets."""
        metadata = DocfxMetadata.load(self.yml_files)
        targets: dict[str, Target] = {}

        for item in metadata.items.values():
            if item.has_page:
                targets[item.uid] = Target(
                    id=item.uid,
                    display_text=item.name,
                    url=page_path_for_fullname(self.api_root, item.full_name),
                    link_kind=item.link_kind,
                )

        # Members only link somewhere when their parent has a page.
        for item in metadata.items.values():
            if item.link_kind != LinkKind.MEMBER or not item.parent:
                continue
            page = targets.get(item.parent)
            if page is not None:
                targets[item.uid] = Target(
                    id=item.uid,
                    display_text=item.name,
                    url=page.url,
                    anchor=header_slug(item.name),
                    link_kind=LinkKind.MEMBER,
                )

        _add_reference_targets(targets, metadata.references)
        return targets.values()


def _add_reference_targets(
    targets: dict[str, Target],
    references: dict[str, dict[str, Any]],
) -> None:
    """Add targets for ``references`` entries not defined by an item.

    Entries with an href link there directly; entries with only a
    ``definition`` borrow the definition's location. Anything else is left
    out so that it surfaces as a resolution miss.
    """
    by_definition: list[tuple[str, dict[str, Any]]] = []
    for uid, ref in references.items():
        if uid in targets:
            continue
        href = ref.get("href")
        if not href:
            by_definition.append((uid, ref))
            continue
        url, _, anchor = str(href).partition("#")
        targets[uid] = Target(
            id=uid,
            display_text=str(ref.get("name") or ref.get("fullName") or uid),
            url=url,
            anchor=anchor,
        )

    for uid, ref in by_definition:
        definition = targets.get(str(ref.get("definition") or ""))
        if definition is None:
            continue
        targets[uid] = Target(
            id=uid,
            display_text=str(
                ref.get("name") or ref.get("fullName") or definition.display_text
            ),
            url=definition.url,
            anchor=definition.anchor,
            link_kind=definition.link_kind,
        )
