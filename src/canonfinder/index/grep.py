"""Regex search across a corpus tree."""

from __future__ import annotations

import bisect
import dataclasses
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from canonfinder.corpora import CorpusNotFoundError, CorpusProfile
from canonfinder.index.indexer import scan_rend_document, scan_tei_document
from canonfinder.ingestion.markup import parse_attrs
from canonfinder.models import FetchHints, GrepMatch, GrepResult, HighlightPos
from canonfinder.utils.files import decode_bytes, document_stem, iter_markup_paths
from canonfinder.utils.text import looks_like_regex, ws_cjk_variant_fuzzy_regex, ws_fuzzy_regex

LOGGER = logging.getLogger(__name__)

PRESCAN_EVENTS = 5000
STRUCTURE_SCAN_CHARS = 200_000
STRUCTURE_INFO_LIMIT = 5

_STRUCTURE_RE = re.compile(r"<(?:[\w.-]+:)?(div|juan|milestone)\b([^>]*)>")


def prepare_pattern(query: str, profile: CorpusProfile) -> str:
    """Turn a literal query into a whitespace (and CJK variant) tolerant regex."""
    if looks_like_regex(query):
        return query
    if profile.cjk_variant_regex:
        return ws_cjk_variant_fuzzy_regex(query)
    if any(ch.isspace() for ch in query):
        return ws_fuzzy_regex(query)
    return query


def compile_pattern(pattern: str) -> re.Pattern[str] | None:
    if not pattern:
        return None
    try:
        return re.compile(pattern, re.IGNORECASE | re.MULTILINE)
    except re.error as exc:
        LOGGER.debug("Invalid pattern %r: %s", pattern, exc)
        return None


def snap_window(data: bytes, start: int, end: int) -> Tuple[int, int]:
    """Widen ``[start, end)`` so neither edge falls inside a UTF-8 sequence."""
    start = max(0, start)
    end = min(len(data), end)
    while start > 0 and data[start] & 0xC0 == 0x80:
        start -= 1
    while end < len(data) and data[end] & 0xC0 == 0x80:
        end += 1
    return start, end


def _structure(text: str) -> Tuple[List[str], List[Tuple[int, int]]]:
    """Div labels from the head of the file and every opening juan marker."""
    labels: List[str] = []
    juans: List[Tuple[int, int]] = []
    for match in _STRUCTURE_RE.finditer(text):
        attrs = parse_attrs(match.group(2))
        if match.group(1) == "milestone" and attrs.get("unit", "").lower() != "juan":
            continue
        if match.group(1) != "div":
            n = attrs.get("n", "")
            if n.isdigit() and attrs.get("fun", "open").lower() == "open":
                juans.append((match.start(), int(n)))
        elif match.start() < STRUCTURE_SCAN_CHARS and attrs.get("n") and attrs.get("type"):
            labels.append(f"{attrs['n']}({attrs['type']})")
    return labels, juans


class CorpusGrep:
    """Parallel regex scan of a corpus with structure-aware match context."""

    def __init__(self, profile: CorpusProfile, *, workers: int = 4, context_bytes: int = 100) -> None:
        self.profile = profile
        self.workers = max(1, workers)
        self.context_bytes = context_bytes
        self._prescan_profile = dataclasses.replace(profile, max_events=PRESCAN_EVENTS, aliases=False)

    def _title(self, text: str, path: Path, root: Path) -> str:
        if self.profile.scanner == "rend":
            entry = scan_rend_document(text, path, self._prescan_profile)
            parts = [entry.meta_value(key).split(" | ")[0] for key in ("nikaya", "book")]
            parts = [part for part in parts if part]
            return " · ".join(parts) if parts else entry.title
        return scan_tei_document(text, path, root, self._prescan_profile).title

    def scan_file(self, path: Path, root: Path, regex: re.Pattern[str], max_matches: int) -> GrepResult | None:
        """Return the matches of one file, or ``None`` when there are none."""
        try:
            data = path.read_bytes()
        except OSError as exc:
            LOGGER.debug("Skipping unreadable %s: %s", path, exc)
            return None
        text = decode_bytes(data)

        hits = [m for m in regex.finditer(text) if m.end() > m.start()]
        if not hits:
            return None

        labels, juans = _structure(text)
        juan_positions = [pos for pos, _ in juans]
        section = labels[0] if labels else (f"juan {juans[0][1]}" if juans else None)
        encoded = text.encode("utf-8")

        matches: List[GrepMatch] = []
        byte_pos = 0
        char_pos = 0
        line = 1
        for hit in hits[:max_matches]:
            segment = text[char_pos : hit.start()]
            byte_pos += len(segment.encode("utf-8"))
            line += segment.count("\n")
            char_pos = hit.start()
            match_bytes = len(hit.group().encode("utf-8"))

            start, end = snap_window(encoded, byte_pos - self.context_bytes, byte_pos + match_bytes + self.context_bytes)
            context = encoded[start:end].decode("utf-8", errors="replace")
            offset = len(encoded[start:byte_pos].decode("utf-8", errors="replace"))

            idx = bisect.bisect_right(juan_positions, hit.start()) - 1
            matches.append(
                GrepMatch(
                    context=context,
                    highlight=hit.group(),
                    line_number=line,
                    juan_number=juans[idx][1] if idx >= 0 else None,
                    section=section,
                    highlight_positions=[HighlightPos(offset, offset + len(hit.group()))],
                )
            )

        if self.profile.juan_hints:
            parts = list(dict.fromkeys(f"{m.juan_number:03d}" for m in matches if m.juan_number is not None))
        else:
            parts = []
        hints = FetchHints(
            recommended_parts=parts or ["full"],
            total_content_size=f"{len(data) // 1024}KB",
            structure_info=labels[:STRUCTURE_INFO_LIMIT],
        )
        return GrepResult(
            file_path=str(path),
            file_id=document_stem(path),
            title=self._title(text, path, root),
            matches=matches,
            total_matches=len(hits),
            fetch_hints=hints,
        )

    def _scan_pass(
        self, paths: Sequence[Path], root: Path, regex: re.Pattern[str], max_matches: int, limit: int
    ) -> List[GrepResult]:
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            found = [r for r in pool.map(lambda p: self.scan_file(p, root, regex, max_matches), paths) if r]
        found.sort(key=lambda r: (-r.total_matches, r.file_id))
        return found[:limit]

    def search(
        self,
        root: Path,
        pattern: str,
        *,
        max_results: int = 20,
        max_matches_per_file: int = 5,
        title_scores: Dict[str, float] | None = None,
    ) -> List[GrepResult]:
        """Grep ``root`` for ``pattern``; an invalid pattern yields ``[]``.

        Files under the privileged subdirectory are scanned first, the rest
        of the tree only if the result cap is not met. ``title_scores`` maps
        file ids from a title search to their score; those results move to
        the front.
        """
        root = Path(root)
        if not root.is_dir():
            raise CorpusNotFoundError(self.profile.name, root)
        regex = compile_pattern(pattern)
        if regex is None or max_results <= 0:
            return []
        max_matches = max(1, max_matches_per_file)

        paths = list(iter_markup_paths([root], self.profile))
        privileged_dir = root / self.profile.privileged_subdir if self.profile.privileged_subdir else None
        if privileged_dir is not None and privileged_dir.is_dir():
            first = [p for p in paths if privileged_dir in p.parents]
            passes = [first, [p for p in paths if privileged_dir not in p.parents]]
        else:
            passes = [paths]

        results: List[GrepResult] = []
        for batch in passes:
            remaining = max_results - len(results)
            if remaining <= 0:
                break
            results.extend(self._scan_pass(batch, root, regex, max_matches, remaining))

        title_scores = title_scores or {}

        def _rank(result: GrepResult) -> tuple:
            privileged = privileged_dir is not None and privileged_dir in Path(result.file_path).parents
            return (
                result.file_id not in title_scores,
                -title_scores.get(result.file_id, 0.0),
                not privileged,
                result.file_id,
            )

        results.sort(key=_rank)
        return results[:max_results]
