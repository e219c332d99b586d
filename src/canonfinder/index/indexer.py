"""Corpus indexing pipeline."""

from __future__ import annotations

import logging
import os
import unicodedata
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from canonfinder.corpora import CorpusNotFoundError, CorpusProfile
from canonfinder.index.aliases import infer_aliases
from canonfinder.ingestion.markup import EMPTY, END, START, TEXT, Event, iter_events
from canonfinder.models import IndexEntry
from canonfinder.utils.files import document_stem, iter_markup_paths, read_document
from canonfinder.utils.text import collapse_whitespace, fold_ascii

LOGGER = logging.getLogger(__name__)

MAX_HEADS = 12
HEADS_PREVIEW = 10
MAX_TITLE_CHARS = 120
TRANSLATOR_MARKERS = ("譯", "译", "transl", "trl", "tr.")
COLLECTION_KEYWORDS = ("tripitaka", "taisho", "canon")

# Rendition scanner (Tipitaka)
REND_P_FIELDS = ("nikaya", "title", "subhead", "subsubhead")
REND_HEAD_FIELDS = ("book", "chapter")
# ``gathalast`` closes the order but is not collected by default: its
# paragraphs hold whole verses.
REND_TITLE_ORDER = ("nikaya", "book", "title", "subhead", "subsubhead", "chapter", "gathalast")
MAX_REND_VALUES = 8
MAX_REND_HEADS = 15
MAX_DIVS = 64


@dataclass(slots=True)
class IndexStats:
    indexed: int = 0
    failed: int = 0
    processed_files: list[Path] = field(default_factory=list)

    def increment(self, status: str, path: Path) -> None:
        if status == "indexed":
            self.indexed += 1
        else:
            self.failed += 1
        self.processed_files.append(path)


def _cjk_ratio(text: str) -> float:
    chars = [ch for ch in text if not ch.isspace()]
    if not chars:
        return 0.0
    cjk = sum(1 for ch in chars if "CJK" in unicodedata.name(ch, ""))
    return cjk / len(chars)


def score_cbeta_title(text: str, lang: str | None) -> float:
    """Prefer Chinese/Japanese work titles over collection-level titles."""
    score = 0.0
    if lang:
        lang = lang.lower()
        if lang.startswith("zh"):
            score += 3.0
        elif lang.startswith("ja"):
            score += 2.0
        else:
            score += 0.5
    score += _cjk_ratio(text) * 2.0
    folded = fold_ascii(text)
    if any(keyword in folded for keyword in COLLECTION_KEYWORDS):
        score -= 2.0
    score += min(len(text), 30) / 100.0
    return score


@dataclass(slots=True)
class _Capture:
    kind: str
    depth: int
    attrs: Dict[str, str]
    parts: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return collapse_whitespace("".join(self.parts))


class TeiHeaderScanner:
    """Structural scan of a TEI header plus a light pass over the body."""

    def __init__(self, profile: CorpusProfile) -> None:
        self.profile = profile
        self.xml_id: str | None = None
        self.titles: List[Tuple[str, str | None, str | None]] = []
        self.first: Dict[str, str] = {}
        self.resp_entries: List[str] = []
        self.keywords: List[str] = []
        self.heads: List[str] = []
        self.jhead_titles: List[str] = []
        self.juan_count = 0
        self._stack: List[str] = []
        self._captures: List[_Capture] = []
        self._resp_role: List[str] = []
        self._resp_names: List[str] = []
        self._header_done = False

    def _inside(self, name: str) -> bool:
        return name in self._stack

    def _capture_kind(self, event: Event) -> str | None:
        name = event.name
        in_header = self._inside("teiHeader")
        if name == "title":
            if in_header and self._inside("titleStmt"):
                return "title"
            if self._inside("jhead"):
                return "jhead"
            return None
        if in_header:
            if self._inside("respStmt"):
                if name == "resp":
                    return "resp"
                if name in ("name", "persName", "orgName"):
                    return "resp_name"
                return None
            if name in ("author", "editor") and self._inside("titleStmt"):
                return name
            if name in ("author", "editor", "publisher", "date", "idno"):
                return name
            if name in ("term", "classCode"):
                return "keyword"
            return None
        if name == "head":
            return "head"
        return None

    def feed(self, event: Event) -> bool:
        """Consume one event; return False once nothing more is needed."""
        if event.kind in (START, EMPTY):
            if self.xml_id is None:
                self.xml_id = event.attr("xml:id")
            if event.name == "juan":
                fun = (event.attr("fun") or "").lower()
                if fun in ("", "open"):
                    self.juan_count += 1
            elif event.name == "catRef" and event.attr("target") and self._inside("teiHeader"):
                self.keywords.append(event.attr("target") or "")
            if event.kind == START:
                self._stack.append(event.name)
                if event.name == "respStmt":
                    self._resp_role = []
                    self._resp_names = []
                kind = self._capture_kind(event)
                if kind:
                    self._captures.append(_Capture(kind, len(self._stack), dict(event.attrs)))
        elif event.kind == END:
            if self._captures and self._captures[-1].depth == len(self._stack):
                self._finish(self._captures.pop())
            if self._stack:
                name = self._stack.pop()
                if name == "respStmt":
                    self._finish_resp()
                elif name == "teiHeader":
                    self._header_done = True
        elif event.kind == TEXT:
            for capture in self._captures:
                capture.parts.append(event.text)
        # Without body statistics to gather, stop once a title is known.
        if not self.profile.scan_body and self._header_done and (self.titles or self.heads):
            return False
        return True

    def _finish(self, capture: _Capture) -> None:
        text = capture.text
        if not text:
            return
        if capture.kind == "title":
            self.titles.append((text, capture.attrs.get("xml:lang"), capture.attrs.get("type")))
        elif capture.kind == "jhead":
            self.jhead_titles.append(text)
        elif capture.kind == "resp":
            self._resp_role.append(text)
        elif capture.kind == "resp_name":
            self._resp_names.append(text)
        elif capture.kind == "keyword":
            self.keywords.append(text)
        elif capture.kind == "head":
            if len(self.heads) < MAX_HEADS:
                self.heads.append(text)
        else:
            self.first.setdefault(capture.kind, text)

    def _finish_resp(self) -> None:
        role = " ".join(self._resp_role).strip()
        names = "・".join(self._resp_names)
        entry = f"{role}: {names}" if role else names
        if entry.strip():
            self.resp_entries.append(entry)

    def best_title(self) -> str | None:
        if not self.titles:
            return None
        if self.profile.title_strategy == "cbeta":
            best = max(enumerate(self.titles), key=lambda item: (score_cbeta_title(item[1][0], item[1][1]), -item[0]))
            title = best[1][0]
        else:
            main = [text for text, _, kind in self.titles if kind and "main" in kind.lower()]
            title = main[0] if main else self.titles[0][0]
        return title[:MAX_TITLE_CHARS]

    def translators(self) -> List[str]:
        found: List[str] = []
        for entry in self.resp_entries:
            lower = entry.lower()
            if any(marker in lower for marker in TRANSLATOR_MARKERS):
                found.append(entry.split(":", 1)[1].strip() if ":" in entry else entry)
        return found


def scan_tei_document(source: str, path: Path, root: Path, profile: CorpusProfile) -> IndexEntry:
    """Build the index entry for a header-described document."""
    scanner = TeiHeaderScanner(profile)
    for event in iter_events(source, max_events=profile.max_events):
        if not scanner.feed(event):
            break

    stem = document_stem(path)
    entry_id = stem if profile.id_from_stem or not scanner.xml_id else scanner.xml_id
    fallback = scanner.heads[:1] or scanner.jhead_titles[:1]
    title = scanner.best_title() or (fallback[0] if fallback else stem)

    meta: Dict[str, str] = {"indexVersion": profile.index_version}
    for key in ("author", "editor", "publisher", "date", "idno"):
        if key in scanner.first:
            meta[key] = scanner.first[key]
    translators = scanner.translators()
    if translators:
        meta["translator"] = "・".join(translators)
    if scanner.resp_entries:
        meta["respAll"] = " | ".join(scanner.resp_entries)
    if scanner.keywords:
        meta["keywords"] = " | ".join(dict.fromkeys(k for k in scanner.keywords if k))
    if scanner.xml_id and profile.id_from_stem:
        meta["xmlId"] = scanner.xml_id
    if scanner.heads:
        meta["headsPreview"] = " | ".join(scanner.heads[:HEADS_PREVIEW])
    if scanner.juan_count:
        meta["juanCount"] = str(scanner.juan_count)
    if profile.canon_code_lookup:
        meta.update(_canon_meta(path, root))

    return IndexEntry(id=entry_id, title=title, path=str(path), meta=meta)


def _canon_meta(path: Path, root: Path) -> Dict[str, str]:
    meta: Dict[str, str] = {}
    try:
        relative = path.relative_to(root)
    except ValueError:
        relative = None
    if relative is not None and len(relative.parts) > 1:
        meta["canon"] = relative.parts[0]
    name = path.name
    pos = name.lower().find("n")
    if pos != -1:
        digits = ""
        for ch in name[pos + 1 :]:
            if not ch.isdigit():
                break
            digits += ch
        if digits:
            meta["nnum"] = digits
    return meta


def scan_rend_document(source: str, path: Path, profile: CorpusProfile) -> IndexEntry:
    """Build the index entry for a document described by ``rend`` paragraphs."""
    fields: Dict[str, List[str]] = {}
    heads: List[str] = []
    divs: List[Tuple[str, str]] = []
    para: List[str] | None = None
    para_rend: str | None = None
    head: List[str] | None = None
    head_rend: str | None = None

    def _keep(key: str | None, value: str, wanted: Sequence[str]) -> None:
        if not key or key not in wanted or not value:
            return
        values = fields.setdefault(key, [])
        if len(values) < MAX_REND_VALUES and value not in values:
            values.append(value)

    for event in iter_events(source, max_events=profile.max_events):
        if event.kind in (START, EMPTY):
            if event.name == "div":
                n, kind = event.attr("n"), event.attr("type")
                if n and kind and len(divs) < MAX_DIVS:
                    divs.append((n, kind))
            if event.kind != START:
                continue
            if event.name == "p":
                para, para_rend = [], (event.attr("rend") or "").strip().lower() or None
            elif event.name == "head":
                head, head_rend = [], (event.attr("rend") or "").strip().lower() or None
        elif event.kind == END:
            if event.name == "p" and para is not None:
                _keep(para_rend, collapse_whitespace("".join(para)), REND_P_FIELDS)
                para = None
            elif event.name == "head" and head is not None:
                text = collapse_whitespace("".join(head))
                _keep(head_rend, text, REND_HEAD_FIELDS)
                if text and len(heads) < MAX_REND_HEADS and text not in heads:
                    heads.append(text)
                head = None
        else:
            if para is not None:
                para.append(event.text)
            if head is not None:
                head.append(event.text)

    stem = document_stem(path)
    parts = [fields[key][0] for key in REND_TITLE_ORDER if fields.get(key)]
    title = " · ".join(parts) if parts else stem

    meta: Dict[str, str] = {key: " | ".join(values) for key, values in fields.items() if values}
    meta["indexVersion"] = profile.index_version
    # always present, even when empty: snapshot validation samples this key
    meta["headsPreview"] = " | ".join(heads[:HEADS_PREVIEW])
    if divs:
        meta["sections"] = " | ".join(f"{n}({kind})" for n, kind in divs)
        meta["section_types"] = " | ".join(kind for _, kind in divs)
    if profile.aliases:
        meta.update(infer_aliases(meta, heads, title))

    return IndexEntry(id=stem, title=title, path=str(path), meta=meta)


class IndexBuilder:
    """Walks a corpus root and produces one ``IndexEntry`` per document."""

    def __init__(self, profile: CorpusProfile, *, workers: int = 4) -> None:
        self.profile = profile
        self.workers = max(1, workers)
        self.stats = IndexStats()

    def find_documents(self, root: Path) -> list[Path]:
        return list(iter_markup_paths([root], self.profile))

    def index_file(self, path: Path, root: Path) -> IndexEntry:
        """Scan one file; raises ``OSError`` when it cannot be read."""
        resolved = Path(os.path.realpath(path))
        source = read_document(resolved)
        if self.profile.scanner == "rend":
            return scan_rend_document(source, resolved, self.profile)
        return scan_tei_document(source, resolved, Path(os.path.realpath(root)), self.profile)

    def _index_single(self, path: Path, root: Path) -> Tuple[str, IndexEntry | None]:
        try:
            return "indexed", self.index_file(path, root)
        except OSError as exc:
            LOGGER.warning("Failed to read %s: %s", path, exc)
            return "failed", None

    def build(self, root: Path) -> List[IndexEntry]:
        """Index every document under ``root``; raises if the root is missing."""
        root = Path(root)
        if not root.is_dir():
            raise CorpusNotFoundError(self.profile.name, root)

        paths = self.find_documents(root)
        self.stats = IndexStats()
        if not paths:
            LOGGER.warning("No %s documents found under %s", self.profile.name, root)
            return []

        LOGGER.info("Indexing %d %s documents with %d workers", len(paths), self.profile.name, self.workers)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            results = list(pool.map(lambda p: self._index_single(p, root), paths))

        entries: List[IndexEntry] = []
        for path, (status, entry) in zip(paths, results):
            self.stats.increment(status, path)
            if entry is not None:
                entries.append(entry)
        entries.sort(key=lambda e: e.path)
        return entries
