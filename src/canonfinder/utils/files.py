"""Utility helpers for walking corpora and decoding markup files."""

from __future__ import annotations

import codecs
import logging
import re
from pathlib import Path
from typing import Iterable, Iterator

from canonfinder.corpora import CorpusProfile

LOGGER = logging.getLogger(__name__)

_ENCODING_DECL_RE = re.compile(rb"""encoding\s*=\s*["']([A-Za-z0-9._:-]+)["']""", re.IGNORECASE)
_SNIFF_BYTES = 512


def iter_markup_paths(inputs: Iterable[Path], profile: CorpusProfile) -> Iterator[Path]:
    """Yield corpus files accepted by ``profile``, descending into directories."""
    for item in inputs:
        if item.is_dir():
            yield from iter_markup_paths(sorted(child for child in item.rglob("*") if child.is_file()), profile)
        elif item.is_file() and profile.accepts(item.name):
            yield item


def sniff_encoding(head: bytes) -> str | None:
    """Declared text encoding of ``head``; unknown and bytes-to-bytes codecs give ``None``."""
    match = _ENCODING_DECL_RE.search(head[:_SNIFF_BYTES])
    if not match:
        return None
    label = match.group(1).decode("ascii", errors="ignore").strip()
    try:
        info = codecs.lookup(label)
    except LookupError:
        return None
    # hex, base64, rot13, zlib and friends are registered codecs but not text encodings
    if not info._is_text_encoding:
        LOGGER.debug("Ignoring non-text encoding declaration %r", label)
        return None
    return info.name


def decode_bytes(data: bytes) -> str:
    """Decode markup bytes: BOM, then declared encoding, then UTF-8, then cp1252."""
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8) :].decode("utf-8", errors="replace")
    if data.startswith(codecs.BOM_UTF16_BE):
        return data[2:].decode("utf-16-be", errors="replace")
    if data.startswith(codecs.BOM_UTF16_LE):
        return data[2:].decode("utf-16-le", errors="replace")

    declared = sniff_encoding(data)
    # A UTF-16 declaration on BOM-less bytes that decode as ASCII is a mislabel.
    if declared and not declared.startswith("utf-16"):
        return data.decode(declared, errors="replace")

    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("cp1252", errors="replace")


def read_document(path: Path) -> str:
    """Read and decode one corpus file; raises ``OSError`` when unreadable."""
    return decode_bytes(Path(path).read_bytes())


def trailing_number(stem: str) -> int | None:
    match = re.search(r"(\d+)$", stem)
    return int(match.group(1)) if match else None


def document_stem(path: Path | str) -> str:
    """File name without its final extension (``s0101m.mul.xml`` -> ``s0101m.mul``)."""
    return Path(path).stem
