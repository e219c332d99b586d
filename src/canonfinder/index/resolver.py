"""Map a document id (or a title query) to a file on disk."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Iterator, Sequence

from canonfinder.corpora import TOC_NAME_PARTS, CorpusProfile, is_toc_name
from canonfinder.index.search import TitleSearcher
from canonfinder.models import IndexEntry
from canonfinder.utils.files import document_stem, trailing_number

LOGGER = logging.getLogger(__name__)

_CANON_CODE_RE = re.compile(r"^([A-Za-z]+)(\d+)$")
_UNSAFE_CHARS = ("/", "\\", "\x00")


def _walk_files(root: Path) -> Iterator[Path]:
    """Sorted recursive file walk that never raises."""
    try:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            for name in sorted(filenames):
                yield Path(dirpath) / name
    except OSError as exc:
        LOGGER.debug("Walk of %s aborted: %s", root, exc)


def _is_navigation(name: str) -> bool:
    lower = name.lower()
    return any(part in lower for part in TOC_NAME_PARTS)


class PathResolver:
    """Ordered fallback chain from id to path; ``None`` means not found.

    Lookups never raise: unsafe ids, missing directories and unreadable
    trees all resolve to ``None``.
    """

    def __init__(self, profile: CorpusProfile, root: Path, entries: Sequence[IndexEntry] = ()) -> None:
        self.profile = profile
        self.root = Path(root)
        self.entries = list(entries)

    def resolve(self, id: str | None = None, query: str | None = None) -> Path | None:
        if id is not None:
            path = self.resolve_id(id)
            return self.content_for(path) if path is not None else None
        if query:
            return self.resolve_query(query)
        return None

    def resolve_id(self, doc_id: str) -> Path | None:
        doc_id = doc_id.strip()
        if not doc_id or any(ch in doc_id for ch in _UNSAFE_CHARS) or doc_id in (".", ".."):
            return None
        steps = (
            self._direct,
            self._exact_stem,
            self._canon_code,
            self._sequential,
            self._same_base,
            self._stem_contains,
            self._exact_filename,
        )
        for step in steps:
            try:
                path = step(doc_id)
            except OSError as exc:
                LOGGER.debug("Resolver step %s failed for %r: %s", step.__name__, doc_id, exc)
                continue
            if path is not None:
                LOGGER.debug("Resolved %r via %s: %s", doc_id, step.__name__, path)
                return path
        return None

    def resolve_query(self, query: str) -> Path | None:
        hits = TitleSearcher(self.entries, fold_kind=self.profile.fold, meta_keys=self.profile.search_meta_keys).search(
            query, limit=1
        )
        if not hits:
            return None
        return self.content_for(Path(hits[0].entry.path))

    def _direct(self, doc_id: str) -> Path | None:
        bases = [self.root] + [self.root / sub for sub in self.profile.direct_subdirs]
        prefixes = ("",) + self.profile.direct_prefixes
        for base in bases:
            for prefix in prefixes:
                for suffix in self.profile.direct_suffixes:
                    candidate = base / f"{prefix}{doc_id}{suffix}"
                    if candidate.is_file():
                        return candidate
        return None

    def _exact_stem(self, doc_id: str) -> Path | None:
        for entry in self.entries:
            if entry.id == doc_id or document_stem(entry.path) == doc_id:
                return Path(entry.path)
        return None

    def _canon_code(self, doc_id: str) -> Path | None:
        if not self.profile.canon_code_lookup:
            return None
        match = _CANON_CODE_RE.match(doc_id)
        if not match:
            return None
        code, number = match.groups()
        needle = f"n{number}".lower()
        for folder in dict.fromkeys((code.upper(), code)):
            for path in _walk_files(self.root / folder):
                name = path.name.lower()
                if name.endswith(".xml") and needle in name:
                    return path
        return None

    def _sequential(self, doc_id: str) -> Path | None:
        best: tuple[int, str] | None = None
        for entry in self.entries:
            stem = document_stem(entry.path)
            if not stem.startswith(doc_id):
                continue
            rest = stem[len(doc_id) :]
            if rest.isdigit() and (best is None or int(rest) < best[0]):
                best = (int(rest), entry.path)
        return Path(best[1]) if best else None

    def _same_base(self, doc_id: str) -> Path | None:
        return self.content_for_base(doc_id)

    def content_for_base(self, base: str) -> Path | None:
        """Lowest-numbered content file whose name contains ``base``."""
        base = base.lower()
        if not base:
            return None
        best: tuple[float, Path] | None = None
        for path in _walk_files(self.root):
            name = path.name.lower()
            if not name.endswith(".xml") or base not in name or _is_navigation(name):
                continue
            number = trailing_number(name[: -len(".xml")])
            rank = float("inf") if number is None else number
            if best is None or rank < best[0]:
                best = (rank, path)
        return best[1] if best else None

    def _stem_contains(self, doc_id: str) -> Path | None:
        hint = doc_id.lower()
        for path in _walk_files(self.root):
            if path.suffix.lower() in self.profile.suffixes and hint in document_stem(path).lower():
                return path
        return None

    def _exact_filename(self, doc_id: str) -> Path | None:
        target = f"{doc_id}.xml".lower()
        for path in _walk_files(self.root):
            if path.name.lower() == target:
                return path
        return None

    def content_for(self, path: Path) -> Path:
        """Swap a table-of-contents file for the first content sibling."""
        if not is_toc_name(path.name):
            return path
        base = path.name[: -len(".toc.xml")]
        zero = path.with_name(f"{base}0.xml")
        if zero.is_file():
            return zero
        try:
            siblings = sorted(p for p in path.parent.iterdir() if p.is_file())
        except OSError as exc:
            LOGGER.debug("Unable to list %s: %s", path.parent, exc)
            return path
        for sibling in siblings:
            name = sibling.name
            if name.startswith(base) and name.lower().endswith(".xml") and not is_toc_name(name):
                return sibling
        return path
