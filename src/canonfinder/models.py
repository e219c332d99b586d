"""Core CanonFinder data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass(slots=True)
class IndexEntry:
    """One indexed document of a corpus."""

    id: str
    title: str
    path: str
    meta: Dict[str, str] | None = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "title": self.title, "path": self.path}
        if self.meta:
            data["meta"] = dict(sorted(self.meta.items()))
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexEntry":
        meta = data.get("meta")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title", "")),
            path=str(data["path"]),
            meta={str(k): str(v) for k, v in meta.items()} if meta else None,
        )

    def meta_value(self, key: str) -> str:
        if not self.meta:
            return ""
        return self.meta.get(key, "")


@dataclass(slots=True)
class HighlightPos:
    """Half-open character interval into a text buffer."""

    start_char: int
    end_char: int


@dataclass(slots=True)
class GrepMatch:
    context: str
    highlight: str
    line_number: int
    juan_number: int | None = None
    section: str | None = None
    highlight_positions: List[HighlightPos] = field(default_factory=list)


@dataclass(slots=True)
class FetchHints:
    recommended_parts: List[str] = field(default_factory=list)
    total_content_size: str | None = None
    structure_info: List[str] = field(default_factory=list)


@dataclass(slots=True)
class GrepResult:
    """All matches found in one file; ``matches`` is capped, ``total_matches`` is not."""

    file_path: str
    file_id: str
    title: str
    matches: List[GrepMatch]
    total_matches: int
    fetch_hints: FetchHints


@dataclass(slots=True)
class TitleHit:
    entry: IndexEntry
    score: float
    index: int


@dataclass(slots=True)
class ExtractionPolicy:
    """Selectors controlling how a document is turned into plain text."""

    include_notes: bool = False
    skip_header: bool = False
    part: str | None = None
    line_number: int | None = None
    context_before: int = 10
    context_after: int = 100
    head_index: int | None = None
    head_query: str | None = None


@dataclass(slots=True)
class FetchResult:
    text: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def found(self) -> bool:
        return bool(self.meta)
