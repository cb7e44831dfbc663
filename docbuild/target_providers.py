"""Target providers for reflection metadata, conceptual topics and plain mappings."""

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from lxml import etree

from docbuild.docfx_targets import DocfxTargetProvider
from docbuild.errors import FatalBuildError
from docbuild.link_kind import LinkKind, link_kind_for_id, strip_id_prefix
from docbuild.page_paths import file_name_for_id
from docbuild.target import Target
from docbuild.target_dictionary import TargetProvider

DEFAULT_REFERENCE_URL_FORMAT = "html/{file}.htm"
DEFAULT_CONCEPTUAL_URL_FORMAT = "html/{id}.htm"


class MappingTargetProvider:
    """Targets taken from an in-memory mapping of id -> url (or Target)."""

    def __init__(self, name: str, targets: Mapping[str, "str | Target"]) -> None:
        """Keep a reference to the mapping."""
        self.name = name
        self.targets = targets

    def load(self) -> Iterable[Target]:
        """Yield a Target for each mapping entry."""
        for target_id, value in self.targets.items():
            if isinstance(value, Target):
                yield value
                continue
            url, _, anchor = str(value).partition("#")
            yield Target(
                id=target_id,
                display_text=strip_id_prefix(target_id),
                url=url,
                anchor=anchor,
                link_kind=link_kind_for_id(target_id),
            )


class ReflectionTargetProvider:
    """Targets from reflection XML: one ``<api id="...">`` element per API.

    The file is streamed with ``iterparse`` so large reflection files are never
    held in memory as a whole tree.
    """

    def __init__(
        self,
        path: Path,
        url_format: str = DEFAULT_REFERENCE_URL_FORMAT,
        name: str | None = None,
    ) -> None:
        self.path = Path(path)
        self.url_format = url_format
        self.name = name or self.path.name

    def load(self) -> Iterable[Target]:
        """Stream the reflection file and yield one target per api element."""
        for _, api in etree.iterparse(str(self.path), events=("end",), tag="api"):
            target_id = api.get("id")
            if target_id:
                yield self._target_for(api, target_id)
            api.clear()
            # Drop already-processed siblings to keep memory flat.
            while api.getprevious() is not None:
                del api.getparent()[0]

    def _target_for(self, api: etree._Element, target_id: str) -> Target:
        apidata = api.find("apidata")
        name = apidata.get("name", "") if apidata is not None else ""
        file_el = api.find("file")
        file_name = file_el.get("name") if file_el is not None else None
        kind = link_kind_for_id(target_id)
        display = name or strip_id_prefix(target_id)
        if kind == LinkKind.MEMBER:
            # Qualify members with their declaring type: Widget.Spin
            container = api.find("containers/type")
            type_id = container.get("api") if container is not None else None
            if type_id:
                display = f"{strip_id_prefix(type_id).split('.')[-1]}.{display}"
        return Target(
            id=target_id,
            display_text=display,
            url=self.url_format.format(
                file=file_name or file_name_for_id(target_id), id=target_id
            ),
            link_kind=kind,
        )


class ConceptualTargetProvider:
    """Targets from conceptual topic metadata: ``<topic id="guid" title="...">``."""

    def __init__(
        self,
        path: Path,
        url_format: str = DEFAULT_CONCEPTUAL_URL_FORMAT,
        name: str | None = None,
    ) -> None:
        self.path = Path(path)
        self.url_format = url_format
        self.name = name or self.path.name

    def load(self) -> Iterable[Target]:
        """Yield one conceptual target per topic element."""
        for _, topic in etree.iterparse(str(self.path), events=("end",), tag="topic"):
            topic_id = topic.get("id")
            if topic_id:
                title = topic.get("title") or topic.findtext("title") or topic_id
                yield Target(
                    id=topic_id,
                    display_text=title.strip(),
                    url=topic.get("url") or self.url_format.format(id=topic_id),
                    link_kind=LinkKind.CONCEPTUAL_TOPIC,
                )
            topic.clear()


def provider_from_config(
    block: Mapping[str, Any], base_dir: Path | None = None
) -> TargetProvider:
    """Create a provider from a configuration block.

    ``format`` selects the provider; ``path``/``paths`` are resolved against
    ``base_dir`` when relative.
    """
    fmt = str(block.get("format") or "").lower()
    name = block.get("name")

    def resolve(p: Any) -> Path:
        path = Path(str(p))
        if base_dir is not None and not path.is_absolute():
            path = base_dir / path
        return path

    if fmt == "reflection":
        return ReflectionTargetProvider(
            resolve(_required(block, "path")),
            url_format=block.get("url_format", DEFAULT_REFERENCE_URL_FORMAT),
            name=name,
        )
    if fmt == "conceptual":
        return ConceptualTargetProvider(
            resolve(_required(block, "path")),
            url_format=block.get("url_format", DEFAULT_CONCEPTUAL_URL_FORMAT),
            name=name,
        )
    if fmt == "docfx":
        paths = block.get("paths") or [_required(block, "path")]
        yml_files: list[Path] = []
        for p in paths:
            path = resolve(p)
            yml_files.extend(sorted(path.rglob("*.yml")) if path.is_dir() else [path])
        return DocfxTargetProvider(
            yml_files, api_root=block.get("api_root", "/api"), name=name or "docfx"
        )
    if fmt == "mapping":
        targets = block.get("targets")
        if not isinstance(targets, Mapping):
            msg = "mapping provider requires a 'targets' mapping"
            raise FatalBuildError(msg)
        return MappingTargetProvider(name or "mapping", targets)

    msg = f"Unknown target provider format: {fmt or '<missing>'}"
    raise FatalBuildError(msg)


def _required(block: Mapping[str, Any], key: str) -> Any:
    value = block.get(key)
    if not value:
        msg = f"target provider '{block.get('format')}' requires '{key}'"
        raise FatalBuildError(msg)
    return value
