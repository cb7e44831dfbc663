"""Topics: a document plus the key it is processed under."""

import logging
from dataclasses import dataclass
from pathlib import Path

from lxml import etree

from docbuild.build_report import BuildReport, TopicErrorRecord
from docbuild.errors import TopicError

logger = logging.getLogger(__name__)


@dataclass
class Topic:
    """One document flowing through the pipeline."""

    key: str
    document: etree._Element
    failed: bool = False
    error: TopicError | None = None


def topic_key_for_path(root: Path, path: Path) -> str:
    """Key for a topic file: its relative path, suffix dropped, with '/' separators."""
    return path.relative_to(root).with_suffix("").as_posix()


def load_topics(directory: Path, report: BuildReport | None = None) -> list[Topic]:
    """Load every ``*.xml`` file under a directory as a topic.

    The key is the file's path relative to ``directory`` without its suffix
    (``intro``, ``guide/setup``), so files in different folders never share a
    key.

    Files that do not parse are logged, recorded in the report under the
    ``loader`` component and skipped.
    """
    topics: list[Topic] = []
    parser = etree.XMLParser(remove_blank_text=False, resolve_entities=False)
    root = Path(directory)
    for path in sorted(root.rglob("*.xml")):
        key = topic_key_for_path(root, path)
        try:
            document = etree.parse(str(path), parser).getroot()
        except (OSError, etree.XMLSyntaxError) as e:
            logger.error("[loader] [%s] Cannot load %s: %s", key, path, e)
            if report is not None:
                report.add_topic_error(TopicErrorRecord(key, "loader", str(e)))
            continue
        topics.append(Topic(key=key, document=document))
    topics.sort(key=lambda t: t.key)
    return topics
