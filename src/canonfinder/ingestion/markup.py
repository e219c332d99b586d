"""Streaming markup events for TEI-style sources.

Sources go through lxml's recovering parser, which copes with the irregular
nesting and truncated files found in the corpora. A few repairs run first:
a stray ``<`` or ``&`` becomes text, HTML entity names the documents never
declare are decoded, and the body is nested inside synthetic wrapper
elements so that fragments cut out of a document (line windows, heading
sections) may close elements they never opened.
"""

from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from lxml import etree

LOGGER = logging.getLogger(__name__)

START = "start"
END = "end"
EMPTY = "empty"
TEXT = "text"

FEED_CHUNK_BYTES = 1 << 16
MAX_WRAPPER_DEPTH = 64

_WRAPPER = "canonfinder-fragment"
_XML_NS = "{http://www.w3.org/XML/1998/namespace}"
_XML_ENTITIES = frozenset({"amp", "lt", "gt", "quot", "apos"})

_PROLOG_RE = re.compile(r"\A(?:\s|<\?.*?\?>|<!--.*?-->)*(?:<!DOCTYPE(?:[^\[>]|\[.*?\])*>)?", re.DOTALL)
_XML_DECL_RE = re.compile(r"<\?xml\s.*?\?>", re.DOTALL)
_TRUNCATED_TAG_RE = re.compile(r"<[/!?A-Za-z_][^<>]*\Z")
_STRAY_LT_RE = re.compile(r"<(?![A-Za-z_:/!?])")
_STRAY_AMP_RE = re.compile(r"&(?!#[0-9]+;|#[xX][0-9A-Fa-f]+;|[A-Za-z_][\w.-]*;)")
_NAMED_ENTITY_RE = re.compile(r"&([A-Za-z][A-Za-z0-9]*);")
_INVALID_CHAR_RE = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")
_ATTR_RE = re.compile(r"""([^\s=/>"']+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")


@dataclass(slots=True)
class Event:
    kind: str
    name: str = ""
    attrs: Dict[str, str] = field(default_factory=dict)
    text: str = ""

    def attr(self, key: str) -> str | None:
        """Look up an attribute by qualified name, falling back to its local part."""
        if key in self.attrs:
            return self.attrs[key]
        local = key.rsplit(":", 1)[-1]
        for qname, value in self.attrs.items():
            if qname.rsplit(":", 1)[-1] == local:
                return value
        return None

    @property
    def opens(self) -> bool:
        return self.kind in (START, EMPTY)


def local_name(qname: str) -> str:
    return qname.rsplit("}", 1)[-1].rsplit(":", 1)[-1]


def _attr_name(qname: str) -> str:
    if qname.startswith(_XML_NS):
        return "xml:" + qname[len(_XML_NS) :]
    return local_name(qname)


def parse_attrs(raw: str) -> Dict[str, str]:
    """Attributes of a raw tag string, for callers that work on source offsets."""
    attrs: Dict[str, str] = {}
    for match in _ATTR_RE.finditer(raw):
        value = match.group(2) if match.group(2) is not None else match.group(3)
        attrs[match.group(1)] = html.unescape(value)
    return attrs


class _EventTarget:
    """lxml parser target queueing events; childless elements become EMPTY."""

    def __init__(self) -> None:
        self.events: List[Event] = []
        self._pending: Event | None = None
        self._text: List[str] = []

    def _flush(self) -> None:
        if self._pending is not None:
            self.events.append(self._pending)
            self._pending = None
        if self._text:
            self.events.append(Event(TEXT, text="".join(self._text)))
            self._text = []

    def start(self, tag: str, attrib: Dict[str, str]) -> None:
        self._flush()
        if tag == _WRAPPER:
            return
        attrs = {_attr_name(key): value for key, value in attrib.items()}
        self._pending = Event(START, name=local_name(tag), attrs=attrs)

    def end(self, tag: str) -> None:
        if tag == _WRAPPER:
            self._flush()
            return
        if self._pending is not None:
            self._pending.kind = EMPTY
            self.events.append(self._pending)
            self._pending = None
            return
        self._flush()
        self.events.append(Event(END, name=local_name(tag)))

    def data(self, data: str) -> None:
        if self._pending is not None:
            self.events.append(self._pending)
            self._pending = None
        self._text.append(data)

    def close(self) -> None:
        self._flush()

    def drain(self) -> List[Event]:
        events, self.events = self.events, []
        return events


def _named_entity(match: re.Match[str]) -> str:
    if match.group(1) in _XML_ENTITIES:
        return match.group(0)
    value = html.unescape(match.group(0))
    if value == match.group(0) or value in ("<", "&"):
        return match.group(0)
    return value


def _prepare(source: str) -> bytes:
    source = source.lstrip("\ufeff")
    prolog_match = _PROLOG_RE.match(source)
    prolog = _XML_DECL_RE.sub("", prolog_match.group(0))
    body = source[prolog_match.end() :]
    body = _TRUNCATED_TAG_RE.sub("", body)
    body = _INVALID_CHAR_RE.sub("", body)
    body = _STRAY_LT_RE.sub("&lt;", body)
    body = _STRAY_AMP_RE.sub("&amp;", body)
    body = _NAMED_ENTITY_RE.sub(_named_entity, body)
    # every unmatched end tag pops one wrapper instead of ending the parse
    depth = min(body.count("</"), MAX_WRAPPER_DEPTH) + 1
    document = prolog + f"<{_WRAPPER}>" * depth + body + f"</{_WRAPPER}>" * depth
    return document.encode("utf-8", errors="replace")


def _parse_batches(source: str) -> Iterator[List[Event]]:
    target = _EventTarget()
    parser = etree.XMLParser(target=target, recover=True, huge_tree=True, encoding="utf-8")
    data = _prepare(source)
    try:
        for offset in range(0, len(data), FEED_CHUNK_BYTES):
            parser.feed(data[offset : offset + FEED_CHUNK_BYTES])
            yield target.drain()
        parser.close()
    except etree.XMLSyntaxError as exc:
        LOGGER.debug("Markup parse stopped early: %s", exc)
        target.close()
    yield target.drain()


def iter_events(source: str, *, max_events: int | None = None) -> Iterator[Event]:
    """Yield markup events in document order, stopping after ``max_events``."""
    emitted = 0
    for batch in _parse_batches(source):
        for event in batch:
            if max_events is not None and emitted >= max_events:
                return
            emitted += 1
            yield event


def strip_tags(fragment: str) -> str:
    """Concatenate the text events of ``fragment``."""
    return "".join(event.text for event in iter_events(fragment) if event.kind == TEXT)
