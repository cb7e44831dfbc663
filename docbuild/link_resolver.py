"""Turns target ids into renderable links, falling back when a target is missing."""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from docbuild.build_report import BuildReport, ResolutionMiss
from docbuild.link_kind import (
    LinkKind,
    id_prefixes_for,
    link_kind_for_id,
    strip_id_prefix,
)
from docbuild.target_dictionary import TargetDictionary

logger = logging.getLogger(__name__)

DEFAULT_KIND_ORDER = (LinkKind.TYPE, LinkKind.NAMESPACE, LinkKind.MEMBER)
DEFAULT_FALLBACKS = ("external", "plain")
DEFAULT_EXTERNAL_URL_FORMAT = "https://learn.microsoft.com/dotnet/api/{name}"
DEFAULT_EXTERNAL_PREFIXES = ("System.", "Microsoft.")


@dataclass(frozen=True)
class RenderableLink:
    """Display text plus url; an empty url means render as plain text."""

    target_id: str
    display_text: str
    url: str
    resolved: bool
    strategy: str  # "target" when found in the dictionary, else the fallback used

    @property
    def is_link(self) -> bool:
        """True when the link has somewhere to point."""
        return bool(self.url)


class ReferenceLinkResolver:
    """Resolve ids against a target dictionary with an ordered fallback chain.

    ``resolve`` never raises: the last resort is always the raw id rendered
    as unlinked text.
    """

    def __init__(
        self,
        dictionary: TargetDictionary,
        fallbacks: Sequence[str] = DEFAULT_FALLBACKS,
        external_url_format: str = DEFAULT_EXTERNAL_URL_FORMAT,
        external_prefixes: Sequence[str] = DEFAULT_EXTERNAL_PREFIXES,
        report: BuildReport | None = None,
        component: str = "",
    ) -> None:
        """Configure the fallback chain. Unknown strategy names raise ValueError."""
        self.dictionary = dictionary
        self.external_url_format = external_url_format
        self.external_prefixes = tuple(external_prefixes)
        self.report = report
        self.component = component

        strategies: dict[str, Callable[[str], RenderableLink | None]] = {
            "external": self._external,
            "plain": self._plain,
        }
        unknown = [f for f in fallbacks if f not in strategies]
        if unknown:
            msg = f"Unknown fallback strategies: {', '.join(unknown)}"
            raise ValueError(msg)
        self._fallbacks = [(f, strategies[f]) for f in fallbacks]

    def resolve(
        self,
        target_id: str,
        preferred_kinds: Sequence[LinkKind] | None = None,
        display_text: str | None = None,
        topic_key: str = "",
    ) -> RenderableLink:
        """Resolve an id to a link.

        Bare names (no ``T:``/``M:`` style prefix) are tried with the prefixes
        of each preferred kind in order before falling back.
        """
        try:
            link = (
                self._lookup(target_id, preferred_kinds or DEFAULT_KIND_ORDER)
                if target_id
                else None
            )
            if link is None:
                link = self._fallback(target_id, topic_key)
        except Exception:
            logger.exception("Resolving '%s' failed; rendering as text", target_id)
            link = self._plain(target_id)
        if display_text:
            link = RenderableLink(
                link.target_id, display_text, link.url, link.resolved, link.strategy
            )
        return link

    def _candidate_ids(
        self, target_id: str, preferred_kinds: Sequence[LinkKind]
    ) -> list[str]:
        candidates = [target_id]
        if link_kind_for_id(target_id) == LinkKind.OTHER:
            for kind in preferred_kinds:
                candidates.extend(f"{p}{target_id}" for p in id_prefixes_for(kind))
        return candidates

    def _lookup(
        self, target_id: str, preferred_kinds: Sequence[LinkKind]
    ) -> RenderableLink | None:
        for candidate in self._candidate_ids(target_id, preferred_kinds):
            target = self.dictionary.lookup(candidate)
            if target is not None:
                return RenderableLink(
                    target_id=target.id,
                    display_text=target.display_text,
                    url=target.href,
                    resolved=True,
                    strategy="target",
                )
        return None

    def _fallback(self, target_id: str, topic_key: str) -> RenderableLink:
        link: RenderableLink | None = None
        for name, strategy in self._fallbacks:
            try:
                link = strategy(target_id)
            except Exception:
                logger.exception("Fallback '%s' failed for '%s'", name, target_id)
                continue
            if link is not None:
                break
        if link is None:
            link = self._plain(target_id)

        logger.warning(
            "[%s] [%s] Unresolved link '%s' rendered via %s",
            self.component or "-",
            topic_key or "-",
            target_id,
            link.strategy,
        )
        if self.report is not None:
            self.report.add_resolution_miss(
                ResolutionMiss(
                    topic_key=topic_key,
                    component=self.component,
                    target_id=target_id,
                    strategy=link.strategy,
                )
            )
        return link

    def _external(self, target_id: str) -> RenderableLink | None:
        name = strip_id_prefix(target_id).split("(", 1)[0]
        if not name.startswith(self.external_prefixes):
            return None
        url_name = name.replace("`", "-").replace("#", ".").lower()
        return RenderableLink(
            target_id=target_id,
            display_text=target_id,
            url=self.external_url_format.format(name=url_name),
            resolved=False,
            strategy="external",
        )

    def _plain(self, target_id: str) -> RenderableLink:
        return RenderableLink(
            target_id=target_id,
            display_text=target_id,
            url="",
            resolved=False,
            strategy="plain",
        )
