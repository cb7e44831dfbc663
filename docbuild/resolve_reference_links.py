"""Replace ``<referenceLink>`` elements with resolved anchors."""

from collections.abc import Mapping
from typing import Any

from lxml import etree

from docbuild.build_component import IndexingComponent
from docbuild.build_context import BuildContext
from docbuild.link_kind import LinkKind, parse_link_kind
from docbuild.link_resolver import (
    DEFAULT_EXTERNAL_PREFIXES,
    DEFAULT_EXTERNAL_URL_FORMAT,
    DEFAULT_KIND_ORDER,
    RenderableLink,
    ReferenceLinkResolver,
)
from docbuild.target_dictionary import TargetDictionary
from docbuild.target_providers import provider_from_config


class ResolveReferenceLinksComponent(IndexingComponent):
    """Resolve API reference links against a shared target dictionary.

    Config keys: ``dictionary`` (shared name), ``providers`` (list of provider
    blocks), ``link_element``, ``target_attribute``, ``kinds`` (preferred
    link kind order for bare names) and ``fallbacks``. Resolver defaults come
    from the pipeline-level ``resolver`` settings.
    """

    type_name = "resolve_reference_links"
    default_dictionary = "reference"
    default_link_element = "referenceLink"
    default_fallbacks: tuple[str, ...] = ("external", "plain")
    default_kinds: tuple[LinkKind, ...] = DEFAULT_KIND_ORDER
    # Pipeline-level resolver settings this component inherits.
    inherited_settings: tuple[str, ...] = (
        "fallbacks",
        "external_url_format",
        "external_prefixes",
    )

    def initialize(self, config: Mapping[str, Any], context: BuildContext) -> None:
        """Validate configuration; the dictionary itself is built in ``build_index``."""
        shared = context.settings.get("resolver") or {}
        settings = {k: v for k, v in shared.items() if k in self.inherited_settings}
        settings.update(config)
        super().initialize(settings, context)

        self.dictionary_name = str(self.config.get("dictionary", self.default_dictionary))
        self.link_element = str(self.config.get("link_element", self.default_link_element))
        self.target_attribute = str(self.config.get("target_attribute", "target"))
        self.kinds = tuple(
            parse_link_kind(k) for k in self.config.get("kinds", self.default_kinds)
        )
        self.providers = [
            provider_from_config(block, context.base_dir)
            for block in self.config.get("providers") or []
        ]
        self.resolver: ReferenceLinkResolver | None = None

    def build_index(self) -> None:
        """Build (or reuse) the shared target dictionary and the resolver."""
        shared = self.context.target_dictionaries.get(self.dictionary_name)
        if shared is not None and not self.providers:
            self.log.info("Reusing target dictionary '%s'", self.dictionary_name)
            dictionary = shared
        else:
            if shared is not None:
                self.log.warning(
                    "Rebuilding target dictionary '%s' with this component's providers",
                    self.dictionary_name,
                )
            dictionary = TargetDictionary.build(self.providers)
            self.context.target_dictionaries[self.dictionary_name] = dictionary
            self.log.info(
                "Target dictionary '%s' holds %d targets",
                self.dictionary_name,
                len(dictionary),
            )

        self.resolver = ReferenceLinkResolver(
            dictionary,
            fallbacks=self.config.get("fallbacks", self.default_fallbacks),
            external_url_format=self.config.get(
                "external_url_format", DEFAULT_EXTERNAL_URL_FORMAT
            ),
            external_prefixes=self.config.get(
                "external_prefixes", DEFAULT_EXTERNAL_PREFIXES
            ),
            report=self.context.report,
            component=self.name,
        )

    def apply(self, document: etree._Element, key: str) -> etree._Element | None:
        """Replace every link element in the topic with an anchor or plain span."""
        if self.resolver is None:
            msg = f"Component '{self.name}' used before build_index"
            raise RuntimeError(msg)

        for el in list(document.iter(self.link_element)):
            raw_target = (el.get(self.target_attribute) or "").strip()
            text = "".join(el.itertext()).strip()
            if not raw_target:
                self.log.warning("Link element without a target", topic=key)

            target_id, anchor = self.split_target(raw_target)
            link = self.resolver.resolve(
                target_id, self.kinds, display_text=text or None, topic_key=key
            )
            if anchor and link.url:
                link = RenderableLink(
                    link.target_id,
                    link.display_text,
                    f"{link.url.split('#', 1)[0]}#{anchor}",
                    link.resolved,
                    link.strategy,
                )
            _replace(el, _render(link))
        return None

    def split_target(self, raw_target: str) -> tuple[str, str]:
        """Reference ids may contain '#' (C# explicit implementations), so no anchor."""
        return raw_target, ""


class ResolveConceptualLinksComponent(ResolveReferenceLinksComponent):
    """Resolve ``<conceptualLink target="guid#anchor">`` to conceptual topic urls."""

    type_name = "resolve_conceptual_links"
    default_dictionary = "conceptual"
    default_link_element = "conceptualLink"
    default_fallbacks = ("plain",)
    default_kinds = (LinkKind.CONCEPTUAL_TOPIC,)
    inherited_settings = ()

    def split_target(self, raw_target: str) -> tuple[str, str]:
        """Split ``guid#section`` into the topic id and an anchor."""
        target_id, _, anchor = raw_target.partition("#")
        return target_id, anchor


def _render(link: RenderableLink) -> etree._Element:
    if link.is_link:
        el = etree.Element("a", href=link.url)
    else:
        el = etree.Element("span", {"class": "nolink"})
    el.text = link.display_text
    return el


def _replace(old: etree._Element, new: etree._Element) -> None:
    parent = old.getparent()
    if parent is None:
        msg = f"Cannot replace the document root <{old.tag}>"
        raise ValueError(msg)
    new.tail = old.tail
    parent.replace(old, new)
