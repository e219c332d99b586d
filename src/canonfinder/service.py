"""Caller-facing query surface shared by the CLI and the web app."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple

from canonfinder.config import AppConfig
from canonfinder.corpora import CorpusNotFoundError, get_profile
from canonfinder.index.grep import CorpusGrep, prepare_pattern
from canonfinder.index.indexer import IndexBuilder, IndexStats
from canonfinder.index.resolver import PathResolver
from canonfinder.index.search import TitleSearcher
from canonfinder.index.storage import IndexStore
from canonfinder.ingestion.extractor import (
    extract_around_line,
    extract_fascicle,
    extract_section_by_head,
    extract_text,
    fascicle_markers,
    list_heads,
    naive_strip_tags,
)
from canonfinder.models import ExtractionPolicy, FetchResult, GrepResult, IndexEntry, TitleHit
from canonfinder.utils.files import document_stem, read_document, trailing_number
from canonfinder.utils.text import find_highlight_positions, looks_like_regex, slice_text

LOGGER = logging.getLogger(__name__)

# Minimum title score for a file to be promoted in content search results.
TITLE_RERANK_MIN_SCORE = 0.85


class CanonLibrary:
    """One corpus: its index snapshot, resolver, grep and extractor."""

    def __init__(self, config: AppConfig, corpus: str) -> None:
        self.config = config
        self.profile = get_profile(corpus)
        self.root = config.resolve_corpus_root(self.profile.name)
        self.store = IndexStore(config.resolve_index_path(self.profile.name), self.profile)
        self.stats = IndexStats()
        self._entries: List[IndexEntry] | None = None

    def _require_root(self) -> None:
        if not self.root.is_dir():
            raise CorpusNotFoundError(self.profile.name, self.root)

    def _build(self) -> List[IndexEntry]:
        builder = IndexBuilder(self.profile, workers=self.config.workers)
        entries = builder.build(self.root)
        self.stats = builder.stats
        return entries

    def entries(self) -> List[IndexEntry]:
        """The index, loaded from the snapshot or rebuilt when stale."""
        if self._entries is None:
            self._require_root()
            self._entries = self.store.load_or_build(self._build)
        return self._entries

    def rebuild_index(self) -> List[IndexEntry]:
        self._require_root()
        entries = self._build()
        self.store.save(entries)
        self._entries = entries
        return entries

    def resolver(self) -> PathResolver:
        return PathResolver(self.profile, self.root, self.entries())

    def search_title(self, query: str, limit: int = 10) -> List[TitleHit]:
        searcher = TitleSearcher(self.entries(), fold_kind=self.profile.fold, meta_keys=self.profile.search_meta_keys)
        return searcher.search(query, limit=limit)

    def search_content(self, pattern: str, max_results: int = 20, max_matches_per_file: int = 5) -> List[GrepResult]:
        """Grep the corpus; literal queries also promote files whose title matches."""
        self._require_root()
        if not pattern.strip():
            return []
        title_scores: Dict[str, float] = {}
        if not looks_like_regex(pattern):
            for hit in self.search_title(pattern, limit=max_results):
                if hit.score >= TITLE_RERANK_MIN_SCORE:
                    title_scores.setdefault(document_stem(hit.entry.path), hit.score)
        grep = CorpusGrep(self.profile, workers=self.config.workers, context_bytes=self.config.context_bytes)
        return grep.search(
            self.root,
            prepare_pattern(pattern, self.profile),
            max_results=max_results,
            max_matches_per_file=max_matches_per_file,
            title_scores=title_scores,
        )

    def _extract(self, source: str, policy: ExtractionPolicy) -> Tuple[str, str]:
        plain = self.profile.plain_lines
        if policy.line_number is not None:
            text = extract_around_line(
                source, policy.line_number, policy.context_before, policy.context_after, policy, plain=plain
            )
            return text, "line-context"
        if policy.part:
            text = extract_fascicle(source, policy.part, policy, plain=plain)
            if text is not None:
                return text, "juan"
        elif policy.head_index is not None or policy.head_query:
            text = extract_section_by_head(
                source, head_index=policy.head_index, head_query=policy.head_query, policy=policy, plain=plain
            )
            if text is not None:
                return text, "head-query" if policy.head_query else "head-index"
        return extract_text(source, policy, plain=plain), "full"

    def fetch_by_id(
        self,
        doc_id: str,
        policy: ExtractionPolicy | None = None,
        *,
        start_char: int | None = None,
        end_char: int | None = None,
        max_chars: int | None = None,
        page: int | None = None,
        page_size: int | None = None,
        headings_limit: int | None = None,
        highlight: str | None = None,
        highlight_regex: bool = False,
    ) -> FetchResult:
        """Resolve ``doc_id`` and return a slice of its plain text.

        An unresolvable id returns an empty ``FetchResult`` (``found`` is
        false); only a missing corpus root raises.
        """
        self._require_root()
        resolver = self.resolver()
        path = resolver.resolve(id=doc_id)
        if path is None:
            LOGGER.debug("No %s document for id %r", self.profile.name, doc_id)
            return FetchResult()
        return self._fetch_path(
            path,
            resolver,
            policy,
            start_char=start_char,
            end_char=end_char,
            max_chars=max_chars,
            page=page,
            page_size=page_size,
            headings_limit=headings_limit,
            highlight=highlight,
            highlight_regex=highlight_regex,
        )

    def fetch_by_query(self, query: str, policy: ExtractionPolicy | None = None, **slice_args: Any) -> FetchResult:
        """Fetch the best title match for ``query``."""
        self._require_root()
        hits = self.search_title(query, limit=1)
        if not hits:
            return FetchResult()
        hit = hits[0]
        resolver = self.resolver()
        result = self._fetch_path(resolver.content_for(Path(hit.entry.path)), resolver, policy, **slice_args)
        if result.found:
            result.meta.update(matchedId=hit.entry.id, matchedTitle=hit.entry.title, matchedScore=round(hit.score, 4))
        return result

    def _fetch_path(
        self,
        path: Path,
        resolver: PathResolver,
        policy: ExtractionPolicy | None,
        *,
        start_char: int | None = None,
        end_char: int | None = None,
        max_chars: int | None = None,
        page: int | None = None,
        page_size: int | None = None,
        headings_limit: int | None = None,
        highlight: str | None = None,
        highlight_regex: bool = False,
    ) -> FetchResult:
        policy = policy or ExtractionPolicy()
        policy = dataclasses.replace(policy, skip_header=policy.skip_header or self.profile.skip_header)
        try:
            source = read_document(path)
        except OSError as exc:
            LOGGER.warning("Unable to read %s: %s", path, exc)
            return FetchResult()

        text, method = self._extract(source, policy)
        if not text.strip() and trailing_number(document_stem(path)) is None:
            sibling = resolver.content_for_base(document_stem(path))
            if sibling is not None and sibling != path:
                try:
                    sibling_source = read_document(sibling)
                except OSError as exc:
                    LOGGER.debug("Unable to read fallback %s: %s", sibling, exc)
                else:
                    sibling_text, sibling_method = self._extract(sibling_source, policy)
                    if sibling_text.strip():
                        path, source = sibling, sibling_source
                        text, method = sibling_text, f"{sibling_method}+base-fallback"
        if not text.strip():
            text, method = naive_strip_tags(source), "plain-strip-tags"

        total = len(text)
        if page is not None and page_size:
            start = max(0, page) * page_size
            end = start + page_size
        else:
            start = max(0, start_char or 0)
            end = end_char if end_char is not None else start + (max_chars or self.config.default_max_chars)
        chunk = slice_text(text, start, end)
        returned_start = min(start, total)
        returned_end = returned_start + len(chunk)

        meta: Dict[str, Any] = {
            "corpus": self.profile.name,
            "id": document_stem(path),
            "sourcePath": str(path),
            "extractionMethod": method,
            "totalLength": total,
            "returnedStart": returned_start,
            "returnedEnd": returned_end,
            "truncated": returned_end < total,
        }
        limit = headings_limit if headings_limit is not None else self.config.headings_limit
        heads = list_heads(source)
        meta["headingsTotal"] = len(heads)
        meta["headingsPreview"] = heads[: max(limit, 0)]
        if self.profile.juan_hints:
            meta["fascicles"] = fascicle_markers(source)
        if policy.part:
            meta["partMatched"] = method.startswith("juan")
        if highlight:
            positions = find_highlight_positions(chunk, highlight, is_regex=highlight_regex)
            meta["highlightCount"] = len(positions)
            meta["highlightPositions"] = [dataclasses.asdict(pos) for pos in positions]
        return FetchResult(text=chunk, meta=meta)
