"""Bounded cache of XML documents backed by a byte-offset index into source files.

Large metadata corpora are often shipped as a few big files each holding
thousands of small documents (``<api>`` elements, ``<topic>`` elements, ...).
``IndexedFileCache.build_index`` scans every file once, recording where each
document starts and how long it is, without parsing document bodies. ``get``
then seeks straight to the recorded slice and parses only that, keeping the
most recently used documents resident.

Limitations of the scanner: documents are located by tag matching, so a
document element name appearing inside a comment or CDATA section will
confuse it, and fragments that rely on namespace prefixes declared on an
ancestor element will not parse on their own.
"""

import logging
import mmap
import re
import threading
from collections import OrderedDict
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import BinaryIO

from lxml import etree

from docbuild.errors import DocumentNotFoundError, FatalBuildError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexRule:
    """How to find documents in a source file.

    ``element`` is the document element name exactly as written in the file
    (``api``, ``ddue:topic``); the document id is the value of
    ``key_attribute`` on its start tag.
    """

    element: str
    key_attribute: str = "id"


@dataclass(frozen=True)
class IndexEntry:
    """Byte range of one document inside a source file."""

    document_id: str
    source_file_id: int
    byte_offset: int
    byte_length: int


@dataclass
class IndexStatus:
    """Outcome of an index build. Failed files are listed, not raised."""

    indexed_files: list[str] = field(default_factory=list)
    failed_files: dict[str, str] = field(default_factory=dict)
    document_count: int = 0
    duplicate_ids: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when every source file was indexed."""
        return not self.failed_files


class IndexedFileCache:
    """Document id -> parsed element, with LRU eviction of parsed documents."""

    def __init__(
        self,
        max_resident: int = 100,
        max_resident_bytes: int | None = None,
    ) -> None:
        """Create an empty cache; call ``build_index`` before ``get``."""
        if max_resident < 1:
            msg = f"max_resident must be at least 1 (got {max_resident})"
            raise ValueError(msg)
        self.max_resident = max_resident
        self.max_resident_bytes = max_resident_bytes

        self._sources: list[Path] = []
        self._index: MappingProxyType[str, IndexEntry] = MappingProxyType({})
        self._built = False

        self._lock = threading.Lock()
        self._resident: OrderedDict[str, etree._Element] = OrderedDict()
        self._resident_bytes = 0
        self._handles: dict[int, BinaryIO] = {}
        self._handle_locks: dict[int, threading.Lock] = {}

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    # -----------------------------
    # Index build
    # -----------------------------

    def build_index(
        self,
        source_files: Sequence[Path],
        rule: IndexRule,
        max_workers: int = 1,
    ) -> IndexStatus:
        """Scan every source file once and freeze the resulting index.

        Files are scanned in parallel when ``max_workers > 1``; each scan
        produces its own entry list and the lists are merged afterwards in
        declared file order, so a later file wins for a duplicate id.
        Unreadable or malformed files are logged and reported in the status.
        """
        if self._built:
            msg = "Index has already been built for this cache"
            raise FatalBuildError(msg)

        self._sources = [Path(p) for p in source_files]
        jobs = list(enumerate(self._sources))

        if max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                results = list(pool.map(lambda job: _scan_job(job, rule), jobs))
        else:
            results = [_scan_job(job, rule) for job in jobs]

        status = IndexStatus()
        index: dict[str, IndexEntry] = {}
        for (_, path), (entries, error) in zip(jobs, results, strict=True):
            if error is not None:
                logger.warning("Failed to index %s: %s", path, error)
                status.failed_files[str(path)] = error
                continue
            status.indexed_files.append(str(path))
            for entry in entries:
                if entry.document_id in index:
                    logger.warning(
                        "Duplicate document id '%s' in %s replaces earlier entry",
                        entry.document_id,
                        path,
                    )
                    status.duplicate_ids.append(entry.document_id)
                index[entry.document_id] = entry

        self._index = MappingProxyType(index)
        self._handle_locks = {i: threading.Lock() for i in range(len(self._sources))}
        self._built = True
        status.document_count = len(index)
        logger.info(
            "Indexed %d documents from %d files (%d failed)",
            status.document_count,
            len(status.indexed_files),
            len(status.failed_files),
        )
        return status

    # -----------------------------
    # Lookup
    # -----------------------------

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._index

    def __len__(self) -> int:
        return len(self._index)

    @property
    def resident_count(self) -> int:
        """Number of parsed documents currently held in memory."""
        with self._lock:
            return len(self._resident)

    def entry(self, document_id: str) -> IndexEntry:
        """Return the index entry for a document id."""
        try:
            return self._index[document_id]
        except KeyError:
            raise DocumentNotFoundError(document_id) from None

    def source_path(self, entry: IndexEntry) -> Path:
        """Path of the file an entry points into."""
        return self._sources[entry.source_file_id]

    def get_bytes(self, document_id: str) -> bytes:
        """Read the raw bytes of a document straight from its source file."""
        entry = self.entry(document_id)
        with self._handle_locks[entry.source_file_id]:
            handle = self._handles.get(entry.source_file_id)
            if handle is None:
                handle = self.source_path(entry).open("rb")
                self._handles[entry.source_file_id] = handle
            handle.seek(entry.byte_offset)
            data = handle.read(entry.byte_length)
        if len(data) != entry.byte_length:
            msg = (
                f"Short read for '{document_id}' in {self.source_path(entry)}: "
                f"expected {entry.byte_length} bytes, got {len(data)}"
            )
            raise OSError(msg)
        return data

    def get(self, document_id: str) -> etree._Element:
        """Return the parsed document, loading it from disk on a cache miss.

        The returned element is shared with other callers; copy it before
        mutating.
        """
        entry = self.entry(document_id)
        with self._lock:
            doc = self._resident.get(document_id)
            if doc is not None:
                self._resident.move_to_end(document_id)
                self.hits += 1
                return doc
            self.misses += 1

        doc = etree.fromstring(self.get_bytes(document_id))

        with self._lock:
            if document_id not in self._resident:
                self._resident_bytes += entry.byte_length
            self._resident[document_id] = doc
            self._resident.move_to_end(document_id)
            self._evict()
        return doc

    def _evict(self) -> None:
        # Caller holds self._lock. The newest document is always kept.
        while len(self._resident) > 1 and (
            len(self._resident) > self.max_resident
            or (
                self.max_resident_bytes is not None
                and self._resident_bytes > self.max_resident_bytes
            )
        ):
            evicted_id, _ = self._resident.popitem(last=False)
            self._resident_bytes -= self._index[evicted_id].byte_length
            self.evictions += 1

    def close(self) -> None:
        """Close open file handles and drop resident documents."""
        with self._lock:
            self._resident.clear()
            self._resident_bytes = 0
        for handle in self._handles.values():
            handle.close()
        self._handles.clear()


# -----------------------------
# Scanning
# -----------------------------


def _scan_job(
    job: tuple[int, Path], rule: IndexRule
) -> tuple[list[IndexEntry], str | None]:
    source_file_id, path = job
    try:
        return scan_source_file(path, source_file_id, rule), None
    except (OSError, ValueError) as e:
        return [], str(e)


def _tag_pattern(element: str) -> re.Pattern[bytes]:
    name = re.escape(element.encode("utf-8"))
    # Quoted attribute values may legally contain '>'.
    return re.compile(
        rb"<(/?)" + name + rb"(?=[\s/>])((?:[^>\"']|\"[^\"]*\"|'[^']*')*)>"
    )


def _attr_pattern(attribute: str) -> re.Pattern[bytes]:
    name = re.escape(attribute.encode("utf-8"))
    return re.compile(rb"(?:^|\s)" + name + rb"\s*=\s*(?:\"([^\"]*)\"|'([^']*)')")


def scan_source_file(
    path: Path, source_file_id: int, rule: IndexRule
) -> list[IndexEntry]:
    """Locate every top-level ``rule.element`` in a file by byte offset.

    Raises ValueError when the file's tags for the element are unbalanced.
    """
    tag_re = _tag_pattern(rule.element)
    attr_re = _attr_pattern(rule.key_attribute)
    entries: list[IndexEntry] = []

    with Path(path).open("rb") as f:
        if Path(path).stat().st_size == 0:
            return entries
        with mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ) as data:
            depth = 0
            start = 0
            key: str | None = None
            for m in tag_re.finditer(data):
                closing = m.group(1) == b"/"
                attrs = m.group(2)
                self_closing = not closing and attrs.rstrip().endswith(b"/")

                if closing:
                    depth -= 1
                    if depth < 0:
                        msg = f"unexpected </{rule.element}> at byte {m.start()}"
                        raise ValueError(msg)
                    if depth == 0:
                        _add_entry(entries, key, source_file_id, start, m.end(), path)
                elif self_closing:
                    if depth == 0:
                        doc_key = _read_key(attr_re, attrs)
                        _add_entry(
                            entries, doc_key, source_file_id, m.start(), m.end(), path
                        )
                else:
                    if depth == 0:
                        start = m.start()
                        key = _read_key(attr_re, attrs)
                    depth += 1

            if depth != 0:
                msg = f"unclosed <{rule.element}> starting at byte {start}"
                raise ValueError(msg)
    return entries


def _read_key(attr_re: re.Pattern[bytes], attrs: bytes) -> str | None:
    m = attr_re.search(attrs)
    if not m:
        return None
    if m.group(1) is not None:
        quote, raw = b'"', m.group(1)
    else:
        quote, raw = b"'", m.group(2)
    # lxml decodes entity and character references exactly as it does when
    # the document itself is parsed.
    try:
        return etree.fromstring(b"<k v=" + quote + raw + quote + b"/>").get("v")
    except etree.XMLSyntaxError as e:
        msg = f"invalid key attribute value {raw!r}: {e}"
        raise ValueError(msg) from e


def _add_entry(
    entries: list[IndexEntry],
    key: str | None,
    source_file_id: int,
    start: int,
    end: int,
    path: Path,
) -> None:
    if not key:
        logger.warning("Skipping document without a key at byte %d in %s", start, path)
        return
    entries.append(
        IndexEntry(
            document_id=key,
            source_file_id=source_file_id,
            byte_offset=start,
            byte_length=end - start,
        )
    )
