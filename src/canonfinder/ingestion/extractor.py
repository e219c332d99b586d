"""Markup-to-plain-text extraction."""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List

from canonfinder.ingestion.markup import EMPTY, END, START, TEXT, Event, iter_events, strip_tags
from canonfinder.models import ExtractionPolicy
from canonfinder.utils.text import collapse_whitespace, normalize_plain_lines

LOGGER = logging.getLogger(__name__)

NOTE_MARKER = "[note]"

_MAPPING_PRIORITY = {
    "unicode": 0,
    "normal_unicode": 1,
    "normal": 1,
    "normalized": 1,
}
_CHAR_NAME_PRIORITY = 2

_HEAD_RE = re.compile(r"<head\b[^>]*>(.*?)</head>", re.IGNORECASE | re.DOTALL)
_SOURCE_LINE_BREAK_RE = re.compile(r"[ \t\r\f\v]*\n\s*")
_TAG_RE = re.compile(r"<[^>]*>")
_CODEPOINT_RE = re.compile(r"^U\+([0-9A-Fa-f]{4,6})$")


def _mapping_value(value: str) -> str:
    """``U+2A5D0`` style mappings become the character itself."""
    match = _CODEPOINT_RE.match(value)
    if match:
        code = int(match.group(1), 16)
        if code <= 0x10FFFF:
            return chr(code)
    return value


def parse_glyph_map(source: str) -> Dict[str, str]:
    """Build the glyph substitution table from the document's ``charDecl``."""
    glyphs: Dict[str, str] = {}
    in_decl = False
    char_id: str | None = None
    candidates: Dict[int, str] = {}
    mapping_priority: int | None = None
    in_char_name = False

    for event in iter_events(source):
        if event.opens:
            if event.name == "charDecl":
                in_decl = event.kind == START
            elif event.name == "text" and not in_decl:
                break
            elif in_decl and event.name == "char" and event.kind == START:
                char_id = event.attr("xml:id")
                candidates = {}
            elif char_id and event.name == "mapping" and event.kind == START:
                mapping_priority = _MAPPING_PRIORITY.get((event.attr("type") or "").lower())
            elif char_id and event.name == "charName" and event.kind == START:
                in_char_name = True
        elif event.kind == END:
            if event.name == "charDecl":
                break
            if event.name == "mapping":
                mapping_priority = None
            elif event.name == "charName":
                in_char_name = False
            elif event.name == "char":
                if char_id and candidates:
                    glyphs[char_id] = candidates[min(candidates)]
                char_id = None
        elif char_id:
            value = event.text.strip()
            if not value:
                continue
            if mapping_priority is not None:
                candidates.setdefault(mapping_priority, _mapping_value(value))
            elif in_char_name:
                candidates.setdefault(_CHAR_NAME_PRIORITY, value)
    return glyphs


def _glyph_for(event: Event, glyphs: Dict[str, str]) -> str | None:
    ref = event.attr("ref")
    if not ref:
        return None
    return glyphs.get(ref.lstrip("#"))


class TextCollector:
    """Accumulates plain text from markup events under an extraction policy."""

    def __init__(self, glyphs: Dict[str, str], policy: ExtractionPolicy, *, plain: bool = False) -> None:
        self.glyphs = glyphs
        self.include_notes = policy.include_notes
        self.skip_header = policy.skip_header
        self.plain = plain
        self.parts: List[str] = []
        self._note: List[str] | None = None
        self._note_depth = 0
        self._skip_depth = 0
        self._header_depth = 0
        self._glyph_depth = 0

    def _sink(self) -> List[str]:
        return self._note if self._note is not None else self.parts

    def _break(self, value: str) -> None:
        if self._note is None:
            self.parts.append(value)

    def feed(self, event: Event) -> None:
        if event.kind == START:
            self._start(event)
        elif event.kind == EMPTY:
            self._empty(event)
        elif event.kind == END:
            self._end()
        else:
            self._text(event.text)

    def feed_all(self, events: Iterable[Event]) -> "TextCollector":
        for event in events:
            self.feed(event)
        return self

    def _start(self, event: Event) -> None:
        if self._header_depth:
            self._header_depth += 1
            return
        if self.skip_header and event.name == "teiHeader":
            self._header_depth = 1
            return
        if self._skip_depth:
            self._skip_depth += 1
            return
        if self._glyph_depth:
            self._glyph_depth += 1
            return
        if event.name == "g":
            value = _glyph_for(event, self.glyphs)
            if value is not None:
                self._sink().append(value)
                # inline fallback content of a resolved glyph is not emitted
                self._glyph_depth = 1
                return
        if self._note is not None:
            self._note_depth += 1
        elif event.name == "note":
            if self.include_notes:
                self._note = []
                self._note_depth = 1
            else:
                self._skip_depth = 1
            return

        if event.name == "lb":
            self._break("\n")
        elif event.name == "pb":
            self._break("\n\n")

    def _empty(self, event: Event) -> None:
        if self._header_depth or self._skip_depth or self._glyph_depth:
            return
        if event.name == "g":
            value = _glyph_for(event, self.glyphs)
            if value is not None:
                self._sink().append(value)
        elif event.name == "lb":
            self._break("\n")
        elif event.name == "pb":
            self._break("\n\n")

    def _end(self) -> None:
        if self._header_depth:
            self._header_depth -= 1
        elif self._skip_depth:
            self._skip_depth -= 1
        elif self._glyph_depth:
            self._glyph_depth -= 1
        elif self._note is not None:
            self._note_depth -= 1
            if self._note_depth <= 0:
                note_text = collapse_whitespace("".join(self._note))
                self._note = None
                if note_text:
                    self.parts.append(f" {NOTE_MARKER} {note_text} ")

    def _text(self, text: str) -> None:
        if self._header_depth or self._skip_depth or self._glyph_depth:
            return
        if self.plain:
            # source newlines are layout only; line structure comes from lb/pb
            if not text.strip():
                return
            text = _SOURCE_LINE_BREAK_RE.sub("", text)
        self._sink().append(text)

    @property
    def captured(self) -> bool:
        return any(part.strip() for part in self.parts)

    def result(self) -> str:
        joined = "".join(self.parts)
        if self.plain:
            return normalize_plain_lines(joined)
        return collapse_whitespace(joined)


def extract_text(
    source: str,
    policy: ExtractionPolicy | None = None,
    *,
    glyphs: Dict[str, str] | None = None,
    plain: bool = False,
) -> str:
    """Convert a whole document (or fragment) to plain text.

    With ``plain`` line breaks are kept (``lb`` -> newline, ``pb`` -> blank
    line); otherwise every whitespace run collapses to a single space.
    """
    policy = policy or ExtractionPolicy()
    if glyphs is None:
        glyphs = parse_glyph_map(source)
    collector = TextCollector(glyphs, policy, plain=plain)
    return collector.feed_all(iter_events(source)).result()


def _is_fascicle_marker(event: Event) -> bool:
    if event.name == "juan":
        return True
    return event.name == "milestone" and (event.attr("unit") or "").lower() == "juan"


def _same_fascicle(value: str | None, part: str) -> bool:
    if value is None:
        return False
    value = value.strip()
    if value == part or value == part.zfill(3):
        return True
    return value.isdigit() and part.isdigit() and int(value) == int(part)


def extract_fascicle(
    source: str,
    part: str,
    policy: ExtractionPolicy | None = None,
    *,
    plain: bool = False,
) -> str | None:
    """Return only the text of fascicle ``part``, or ``None`` when it is absent.

    Capture starts at the ``juan`` (or ``milestone unit="juan"``) marker whose
    ``n`` matches ``part`` (as given or zero-padded to three digits) and whose
    ``fun`` is ``open`` or missing. It stops at the next ``fun="close"`` marker
    or at the opening marker of another fascicle.
    """
    policy = policy or ExtractionPolicy()
    part = part.strip()
    if not part:
        return None
    collector = TextCollector(parse_glyph_map(source), policy, plain=plain)
    capturing = False
    for event in iter_events(source):
        if event.opens and _is_fascicle_marker(event):
            fun = (event.attr("fun") or "").lower() or None
            same = _same_fascicle(event.attr("n"), part)
            if not capturing:
                if same and fun in ("open", None):
                    capturing = True
            elif fun == "close" or (fun in ("open", None) and not same):
                break
        if capturing:
            collector.feed(event)

    if not capturing or not collector.captured:
        return None
    text = collector.result()
    return text or None


def fascicle_markers(source: str) -> List[str]:
    """List the ``n`` values of opening fascicle markers in document order."""
    numbers: List[str] = []
    for event in iter_events(source):
        if event.opens and _is_fascicle_marker(event):
            fun = (event.attr("fun") or "").lower()
            n = event.attr("n")
            if n and fun in ("open", "") and n not in numbers:
                numbers.append(n)
    return numbers


def source_lines(source: str) -> List[str]:
    lines = source.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def extract_around_line(
    source: str,
    line_number: int,
    context_before: int = 10,
    context_after: int = 100,
    policy: ExtractionPolicy | None = None,
    *,
    plain: bool = False,
) -> str:
    """Extract raw source lines around a 1-based line and strip their markup."""
    lines = source_lines(source)
    if line_number < 1 or line_number > len(lines):
        return ""
    first = max(1, line_number - max(context_before, 0))
    last = min(len(lines), line_number + max(context_after, 0))
    snippet = "\n".join(lines[first - 1 : last])
    return extract_text(snippet, policy, glyphs=parse_glyph_map(source), plain=plain)


def _heading_spans(source: str) -> List[tuple[int, int, str]]:
    return [
        (match.start(), match.end(), collapse_whitespace(_TAG_RE.sub("", match.group(1))))
        for match in _HEAD_RE.finditer(source)
    ]


def extract_section_by_head(
    source: str,
    *,
    head_index: int | None = None,
    head_query: str | None = None,
    policy: ExtractionPolicy | None = None,
    plain: bool = False,
) -> str | None:
    """Extract the section that follows a heading chosen by index or substring."""
    heads = _heading_spans(source)
    if not heads:
        return None
    if head_query:
        needle = head_query.lower()
        selected = next((i for i, (_, _, text) in enumerate(heads) if needle in text.lower()), None)
    else:
        selected = head_index
    if selected is None or not 0 <= selected < len(heads):
        return None
    start = heads[selected][1]
    end = heads[selected + 1][0] if selected + 1 < len(heads) else len(source)
    return extract_text(source[start:end], policy, glyphs=parse_glyph_map(source), plain=plain)


def list_heads(source: str, *, limit: int | None = None) -> List[str]:
    """Heading texts in document order (``head``, plus ``title`` inside ``jhead``)."""
    heads: List[str] = []
    buffer: List[str] | None = None
    depth = 0
    jhead_depth = 0
    for event in iter_events(source):
        if event.kind == START:
            if event.name == "jhead":
                jhead_depth += 1
            if buffer is not None:
                depth += 1
            elif event.name == "head" or (event.name == "title" and jhead_depth):
                buffer = []
                depth = 1
        elif event.kind == END:
            if buffer is not None:
                depth -= 1
                if depth == 0:
                    text = collapse_whitespace("".join(buffer))
                    if text:
                        heads.append(text)
                        if limit is not None and len(heads) >= limit:
                            break
                    buffer = None
            if event.name == "jhead" and jhead_depth:
                jhead_depth -= 1
        elif event.kind == TEXT and buffer is not None:
            buffer.append(event.text)
    return heads


def naive_strip_tags(source: str) -> str:
    """Last-resort tag removal used when structured extraction yields nothing."""
    return collapse_whitespace(strip_tags(source) or _TAG_RE.sub(" ", source))
