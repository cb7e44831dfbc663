"""Tests for the built-in build components."""

from pathlib import Path

import pytest
from lxml import etree

from docbuild.build_context import BuildContext
from docbuild.copy_from_index import CopyFromIndexComponent
from docbuild.errors import DocumentNotFoundError, FatalBuildError
from docbuild.help_attributes import HelpAttribute, HelpAttributesComponent
from docbuild.resolve_reference_links import (
    ResolveConceptualLinksComponent,
    ResolveReferenceLinksComponent,
)
from docbuild.save_component import SaveComponent, output_file_for_topic

GUID = "3b1c2a4e-0000-4a5b-9c8d-112233445566"

COMMENTS_XML = """<doc>
  <members>
    <member name="T:Acme.Widget"><summary>A widget.</summary></member>
    <member name="M:Acme.Widget.Spin"><summary>Spins it.</summary></member>
  </members>
</doc>
"""


@pytest.fixture
def context(tmp_path: Path) -> BuildContext:
    """A context rooted in a temporary configuration directory."""
    return BuildContext(base_dir=tmp_path)


def _xml(el: etree._Element) -> str:
    return etree.tostring(el, encoding="unicode")


# -----------------------------
# Reference and conceptual links
# -----------------------------


def _reference_links(
    context: BuildContext, **config: object
) -> ResolveReferenceLinksComponent:
    component = ResolveReferenceLinksComponent("links")
    component.initialize(
        {
            "providers": [
                {
                    "format": "mapping",
                    "name": "api",
                    "targets": {"T:Acme.Widget": "T_Acme_Widget.htm"},
                }
            ],
            **config,
        },
        context,
    )
    component.build_index()
    return component


def test_reference_links_replaced(context: BuildContext) -> None:
    """Resolved links become anchors and misses become plain spans."""
    component = _reference_links(context)
    doc = etree.fromstring(
        '<document><p>See <referenceLink target="T:Acme.Widget"/> and '
        '<referenceLink target="T:Acme.Gone">gone</referenceLink>.</p></document>'
    )

    assert component.apply(doc, "topic-1") is None
    assert _xml(doc) == (
        '<document><p>See <a href="T_Acme_Widget.htm">Acme.Widget</a> and '
        '<span class="nolink">gone</span>.</p></document>'
    )
    assert context.report.resolution_misses[0].target_id == "T:Acme.Gone"
    assert context.report.resolution_misses[0].component == "links"
    assert context.report.resolution_misses[0].topic_key == "topic-1"


def test_reference_links_external_fallback(context: BuildContext) -> None:
    """Framework ids use the pipeline-level resolver settings."""
    context.settings["resolver"] = {
        "external_url_format": "https://docs.example.com/{name}",
    }
    component = _reference_links(context)
    doc = etree.fromstring('<document><referenceLink target="T:System.String"/></document>')
    component.apply(doc, "topic-1")

    link = doc.find("a")
    assert link is not None
    assert link.get("href") == "https://docs.example.com/system.string"
    assert link.text == "T:System.String"


def test_reference_links_bare_name(context: BuildContext) -> None:
    """Bare names are expanded using the configured kind order."""
    component = _reference_links(context, kinds=["namespace", "type"])
    doc = etree.fromstring('<document><referenceLink target="Acme.Widget"/></document>')
    component.apply(doc, "topic-1")
    assert doc.find("a").get("href") == "T_Acme_Widget.htm"


def test_empty_link_target(context: BuildContext) -> None:
    """A link without a target keeps its text and counts as a miss."""
    component = _reference_links(context)
    doc = etree.fromstring(
        "<document><referenceLink>orphan</referenceLink>"
        '<referenceLink target="">empty</referenceLink>'
        '<referenceLink target="T:Nope"/></document>'
    )
    component.apply(doc, "topic-1")
    assert _xml(doc) == (
        '<document><span class="nolink">orphan</span>'
        '<span class="nolink">empty</span>'
        '<span class="nolink">T:Nope</span></document>'
    )
    assert context.report.unresolved_links == 3  # noqa: PLR2004
    assert [m.target_id for m in context.report.resolution_misses] == ["", "", "T:Nope"]


def test_link_as_document_root_fails(context: BuildContext) -> None:
    """The root element cannot be replaced in place."""
    component = _reference_links(context)
    doc = etree.fromstring('<referenceLink target="T:Acme.Widget"/>')
    with pytest.raises(ValueError, match="document root"):
        component.apply(doc, "topic-1")


def test_dictionary_shared_by_name(context: BuildContext) -> None:
    """A second component with no providers reuses the named dictionary."""
    first = _reference_links(context)
    second = ResolveReferenceLinksComponent("links-2")
    second.initialize({"dictionary": "reference"}, context)
    second.build_index()

    assert second.resolver is not None
    assert second.resolver.dictionary is context.target_dictionaries["reference"]
    assert first.resolver is not None
    assert second.resolver.dictionary is first.resolver.dictionary


def test_apply_before_build_index(context: BuildContext) -> None:
    """Components must be indexed before they transform topics."""
    component = ResolveReferenceLinksComponent("links")
    component.initialize({}, context)
    with pytest.raises(RuntimeError, match="build_index"):
        component.apply(etree.fromstring("<document/>"), "topic-1")


def test_unknown_link_kind_rejected(context: BuildContext) -> None:
    """Kind names are validated when the component is initialized."""
    with pytest.raises(ValueError, match="Unknown link kind"):
        ResolveReferenceLinksComponent("links").initialize({"kinds": ["widget"]}, context)


def test_conceptual_links(context: BuildContext) -> None:
    """Conceptual links carry their section anchor into the url."""
    component = ResolveConceptualLinksComponent("concepts")
    component.initialize(
        {
            "providers": [
                {"format": "mapping", "targets": {GUID: f"html/{GUID}.htm"}}
            ]
        },
        context,
    )
    component.build_index()
    doc = etree.fromstring(
        "<document>"
        f'<conceptualLink target="{GUID}#intro">Intro</conceptualLink>'
        '<conceptualLink target="00000000-0000-0000-0000-000000000000"/>'
        "</document>"
    )
    component.apply(doc, "topic-1")

    anchor = doc.find("a")
    assert anchor.get("href") == f"html/{GUID}.htm#intro"
    assert anchor.text == "Intro"
    span = doc.find("span")
    assert span.text == "00000000-0000-0000-0000-000000000000"
    assert "conceptual" in context.target_dictionaries
    assert context.report.resolution_misses[0].strategy == "plain"


# -----------------------------
# Copy from index
# -----------------------------


def _copy_component(
    context: BuildContext, name: str = "comments", **command: str
) -> CopyFromIndexComponent:
    (context.base_dir / "comments.xml").write_text(COMMENTS_XML, encoding="utf-8")
    component = CopyFromIndexComponent(name)
    component.initialize(
        {
            "index_name": "comments",
            "files": ["comments.xml"],
            "rule": {"element": "member", "key_attribute": "name"},
            "copy": [
                {
                    "key": "/document/reference/@api",
                    "source": "summary",
                    "target": "/document/comments",
                    **command,
                }
            ],
        },
        context,
    )
    component.build_index()
    return component


def _topic(api: str) -> etree._Element:
    return etree.fromstring(
        f'<document><reference api="{api}"/><comments/></document>'
    )


def test_copy_from_index(context: BuildContext) -> None:
    """The matching indexed fragment is appended to the target element."""
    component = _copy_component(context)
    doc = _topic("T:Acme.Widget")
    component.apply(doc, "T:Acme.Widget")

    summary = doc.find("comments/summary")
    assert summary is not None
    assert summary.text == "A widget."
    # The cached source document is not moved into the topic.
    cached = context.indexed_caches["comments"].get("T:Acme.Widget")
    assert cached.find("summary") is not None


def test_copy_uses_topic_key_without_key_xpath(context: BuildContext) -> None:
    """Without a key expression the topic key is the document id."""
    component = _copy_component(context, key="")
    doc = _topic("ignored")
    component.apply(doc, "M:Acme.Widget.Spin")
    assert doc.findtext("comments/summary") == "Spins it."


def test_copy_string_result(context: BuildContext) -> None:
    """String-valued source expressions are appended as text."""
    component = _copy_component(context, source="string(summary)")
    doc = _topic("T:Acme.Widget")
    component.apply(doc, "topic-1")
    assert doc.find("comments").text == "A widget."


def test_copy_missing_entry_warns(
    context: BuildContext, caplog: pytest.LogCaptureFixture
) -> None:
    """Under the warn policy a missing entry leaves the topic unchanged."""
    component = _copy_component(context)
    doc = _topic("T:Acme.Gone")
    with caplog.at_level("WARNING"):
        component.apply(doc, "topic-1")
    assert len(doc.find("comments")) == 0
    assert "no indexed entry for 'T:Acme.Gone'" in caplog.text
    assert "[comments] [topic-1]" in caplog.text


def test_copy_missing_entry_error(context: BuildContext) -> None:
    """Under the error policy a missing entry fails the topic."""
    component = _copy_component(context, missing_entry="error")
    with pytest.raises(DocumentNotFoundError):
        component.apply(_topic("T:Acme.Gone"), "topic-1")


def test_copy_missing_target_error(context: BuildContext) -> None:
    """A target expression matching nothing honours its policy."""
    component = _copy_component(context, target="/document/remarks", missing_target="error")
    with pytest.raises(DocumentNotFoundError, match="remarks"):
        component.apply(_topic("T:Acme.Widget"), "topic-1")


def test_copy_cache_shared_by_index_name(context: BuildContext) -> None:
    """A second component naming the same index reuses the built cache."""
    first = _copy_component(context, name="first")
    second = _copy_component(context, name="second")
    assert second.cache is first.cache
    assert context.indexed_caches["comments"] is first.cache


@pytest.mark.parametrize(
    "config",
    [
        {"copy": [{"source": "summary", "target": "/document"}]},
        {"rule": {"element": "member"}, "copy": []},
        {"rule": {"element": "member"}, "copy": [{"source": "summary["}]},
        {"rule": {"element": "member"}, "copy": [{"source": "summary[", "target": "/a"}]},
        {
            "rule": {"element": "member"},
            "copy": [{"source": "a", "target": "/a", "missing_entry": "shrug"}],
        },
    ],
)
def test_copy_invalid_config(context: BuildContext, config: dict) -> None:
    """Configuration problems are fatal at initialization."""
    with pytest.raises(FatalBuildError):
        CopyFromIndexComponent("comments").initialize(config, context)


def test_copy_fail_on_index_errors(context: BuildContext) -> None:
    """Index failures are fatal only when configured to be."""
    component = CopyFromIndexComponent("comments")
    component.initialize(
        {
            "files": ["missing.xml"],
            "rule": {"element": "member", "key_attribute": "name"},
            "copy": [{"source": "summary", "target": "/document"}],
            "fail_on_index_errors": True,
        },
        context,
    )
    with pytest.raises(FatalBuildError, match="could not be indexed"):
        component.build_index()


def test_copy_files_glob(context: BuildContext) -> None:
    """File patterns are expanded relative to the configuration directory."""
    parts = context.base_dir / "parts"
    parts.mkdir()
    for i in range(3):
        (parts / f"part{i}.xml").write_text(
            f'<doc><member name="T:P{i}"><summary>{i}</summary></member></doc>',
            encoding="utf-8",
        )
    component = CopyFromIndexComponent("comments")
    component.initialize(
        {
            "files": ["parts/*.xml"],
            "rule": {"element": "member", "key_attribute": "name"},
            "copy": [{"source": "summary", "target": "/document"}],
            "max_workers": 2,
        },
        context,
    )
    component.build_index()
    assert component.cache is not None
    assert len(component.cache) == 3  # noqa: PLR2004


# -----------------------------
# Help attributes
# -----------------------------


def test_help_attribute_blank_name() -> None:
    """Blank names are replaced so every attribute is addressable."""
    assert HelpAttribute.create("  ", "x") == HelpAttribute("NoName", "x")
    assert HelpAttribute.create("Locale", None) == HelpAttribute("Locale", "")
    assert HelpAttribute.create(" Locale ", "en") == HelpAttribute(" Locale ", "en")
    assert HelpAttribute.create(None, "x").name == "NoName"


def test_help_attributes_sorted(context: BuildContext) -> None:
    """Attributes are written sorted by name, then value, without duplicates."""
    component = HelpAttributesComponent("attrs")
    component.initialize(
        {
            "attributes": [
                {"name": "Locale", "value": "en-us"},
                {"name": "", "value": "x"},
                {"name": "DocSet", "value": "acme"},
                {"name": "Locale", "value": "en-us"},
                {"name": "DocSet", "value": "NetFramework"},
            ]
        },
        context,
    )
    doc = etree.fromstring("<document><body/></document>")
    component.apply(doc, "topic-1")

    attrs = [(a.get("name"), a.get("value")) for a in doc.findall("metadata/attr")]
    assert attrs == [
        ("DocSet", "NetFramework"),
        ("DocSet", "acme"),
        ("Locale", "en-us"),
        ("NoName", "x"),
    ]


def test_help_attributes_existing_island(context: BuildContext) -> None:
    """An existing island element is reused."""
    component = HelpAttributesComponent("attrs")
    component.initialize(
        {"island": "xmlIsland", "attributes": [{"name": "Locale", "value": "en-us"}]},
        context,
    )
    doc = etree.fromstring("<document><xmlIsland><keep/></xmlIsland></document>")
    component.apply(doc, "topic-1")
    assert len(doc.findall("xmlIsland")) == 1
    assert [c.tag for c in doc.find("xmlIsland")] == ["keep", "attr"]


def test_help_attributes_must_be_list(context: BuildContext) -> None:
    """A mapping in place of the attribute list is rejected."""
    with pytest.raises(FatalBuildError):
        HelpAttributesComponent("attrs").initialize(
            {"attributes": {"Locale": "en-us"}}, context
        )


# -----------------------------
# Save
# -----------------------------


def test_output_file_for_topic(tmp_path: Path) -> None:
    """Topic keys become safe file names."""
    expected = tmp_path / "T_Acme_Widget.xml"
    assert output_file_for_topic(tmp_path, "T:Acme.Widget") == expected
    assert output_file_for_topic(tmp_path, "intro", ".htm") == tmp_path / "intro.htm"


def test_save_writes_topic(context: BuildContext) -> None:
    """Documents are written under the configured directory."""
    component = SaveComponent("save")
    component.initialize({"output_dir": "out", "pretty": False}, context)
    assert (context.base_dir / "out").is_dir()

    doc = etree.fromstring("<document><p>hi</p></document>")
    assert component.apply(doc, "T:Acme.Widget") is None

    out_file = context.base_dir / "out" / "T_Acme_Widget.xml"
    data = out_file.read_bytes()
    assert data.startswith(b"<?xml")
    assert etree.fromstring(data).findtext("p") == "hi"


def test_save_requires_output_dir(context: BuildContext) -> None:
    """Save without a destination is a configuration error."""
    with pytest.raises(FatalBuildError, match="output_dir"):
        SaveComponent("save").initialize({}, context)


def test_conceptual_links_ignore_pipeline_fallbacks(context: BuildContext) -> None:
    """Conceptual links never borrow the API resolver's external fallback."""
    context.settings["resolver"] = {"fallbacks": ["external", "plain"]}
    component = ResolveConceptualLinksComponent("concepts")
    component.initialize({"providers": [{"format": "mapping", "targets": {}}]}, context)
    component.build_index()
    doc = etree.fromstring('<document><conceptualLink target="System.Text"/></document>')
    component.apply(doc, "topic-1")
    assert _xml(doc) == '<document><span class="nolink">System.Text</span></document>'


def test_save_warns_on_colliding_file_names(
    context: BuildContext, caplog: pytest.LogCaptureFixture
) -> None:
    """Two keys that map to one file name are reported, the last one is kept."""
    component = SaveComponent("save")
    component.initialize({"output_dir": "out"}, context)
    with caplog.at_level("WARNING"):
        component.apply(etree.fromstring("<document>dot</document>"), "a.b")
        assert "Overwriting" not in caplog.text
        component.apply(etree.fromstring("<document>under</document>"), "a_b")

    assert "already written for topic 'a.b'" in caplog.text
    assert "[save] [a_b]" in caplog.text
    saved = etree.parse(str(context.base_dir / "out" / "a_b.xml")).getroot()
    assert saved.text == "under"
