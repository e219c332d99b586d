"""String normalisation, similarity signals and text slicing helpers."""

from __future__ import annotations

import re
import unicodedata
from typing import Iterable, List, Set

from canonfinder.models import HighlightPos

# Simplified and Japanese shinjitai forms folded onto the traditional form
# used throughout the canon corpora.
CJK_VARIANTS = {
    "経": "經",
    "经": "經",
    "観": "觀",
    "观": "觀",
    "仏": "佛",
    "圣": "聖",
    "会": "會",
    "后": "後",
    "国": "國",
    "灵": "靈",
    "广": "廣",
    "龙": "龍",
    "台": "臺",
    "体": "體",
    "訳": "譯",
    "译": "譯",
    "蔵": "藏",
    "禅": "禪",
    "浄": "淨",
    "净": "淨",
    "証": "證",
    "证": "證",
    "覚": "覺",
    "觉": "覺",
    "弥": "彌",
    "倶": "俱",
    "舎": "舍",
}

_CJK_GROUPS: dict[str, str] = {}
for _variant, _canonical in CJK_VARIANTS.items():
    _CJK_GROUPS.setdefault(_canonical, _canonical)
    _CJK_GROUPS[_canonical] += _variant
for _variant, _canonical in CJK_VARIANTS.items():
    _CJK_GROUPS[_variant] = _CJK_GROUPS[_canonical]

PALI_FOLD = str.maketrans(
    {
        "ā": "a",
        "ī": "i",
        "ū": "u",
        "ṅ": "n",
        "ñ": "n",
        "ṇ": "n",
        "ṃ": "m",
        "ṁ": "m",
        "ṭ": "t",
        "ḍ": "d",
        "ḷ": "l",
        "ṛ": "r",
        "ḥ": "h",
    }
)

SANSKRIT_FOLD = str.maketrans(
    {
        "ā": "a",
        "ī": "i",
        "ū": "u",
        "ȳ": "y",
        "ṭ": "t",
        "ḍ": "d",
        "ṇ": "n",
        "ḷ": "l",
        "ḹ": "l",
        "ḻ": "l",
        "ś": "s",
        "ṣ": "s",
        "ç": "c",
        "ṅ": "n",
        "ñ": "n",
        "ṃ": "m",
        "ṁ": "m",
        "ḥ": "h",
        "ṛ": "r",
        "ṝ": "r",
    }
)

REGEX_META_CHARS = set(".+*?[](){}|\\")

_WS_RE = re.compile(r"\s+")
_HSPACE_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_DIGIT_RE = re.compile(r"\d+")

_ROMAN = (
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
)


def _decompose(value: str) -> str:
    return unicodedata.normalize("NFKD", value).lower()


def normalized(value: str) -> str:
    """NFKD, lowercase, harmonise CJK variants and keep alphanumerics only."""
    mapped = (CJK_VARIANTS.get(ch, ch) for ch in _decompose(value))
    return "".join(ch for ch in mapped if ch.isalnum())


def normalized_with_spaces(value: str) -> str:
    """Like :func:`normalized` but every non-alphanumeric run becomes one space."""
    out: List[str] = []
    in_gap = True
    for ch in _decompose(value):
        if ch.isalnum():
            out.append(ch)
            in_gap = False
        elif not in_gap:
            out.append(" ")
            in_gap = True
    return "".join(out).rstrip(" ")


def normalized_pali(value: str) -> str:
    return "".join(ch for ch in _decompose(value).translate(PALI_FOLD) if ch.isalnum())


def normalized_sanskrit(value: str) -> str:
    return "".join(ch for ch in _decompose(value).translate(SANSKRIT_FOLD) if ch.isalnum())


def fold_ascii(value: str) -> str:
    """Decompose, lowercase and keep only alphanumerics and whitespace."""
    return "".join(ch for ch in _decompose(value) if ch.isalnum() or ch.isspace())


def fold(value: str, kind: str | None) -> str:
    """Apply the diacritic fold named by a corpus profile (``pali``/``sanskrit``)."""
    if kind == "pali":
        return normalized_pali(value)
    if kind == "sanskrit":
        return normalized_sanskrit(value)
    return normalized(value)


def char_bigrams(value: str) -> Set[str]:
    return {value[i : i + 2] for i in range(len(value) - 1)}


def jaccard(a: str, b: str) -> float:
    """Character-bigram Jaccard similarity."""
    sa = char_bigrams(a)
    sb = char_bigrams(b)
    union = len(sa | sb)
    if union == 0:
        return 0.0
    return len(sa & sb) / union


def tokenset(value: str) -> Set[str]:
    return set(normalized_with_spaces(value).split())


def token_jaccard(a: str, b: str) -> float:
    sa = tokenset(a)
    sb = tokenset(b)
    if not sa or not sb:
        return 0.0
    return len(sa & sb) / len(sa | sb)


def is_subsequence(text: str, pattern: str) -> bool:
    """Return True when ``pattern`` occurs in ``text`` in order, gaps allowed."""
    if not pattern:
        return True
    it = iter(text)
    return all(ch in it for ch in pattern)


def looks_like_regex(query: str) -> bool:
    return any(ch in REGEX_META_CHARS for ch in query)


def ws_fuzzy_regex(query: str) -> str:
    """Escape ``query`` and let every whitespace run match ``\\s*``."""
    return r"\s*".join(re.escape(part) for part in _WS_RE.split(query))


def ws_cjk_variant_fuzzy_regex(query: str) -> str:
    """Whitespace-tolerant literal pattern that also matches CJK variant forms."""
    pieces: List[str] = []
    in_ws = False
    for ch in query:
        if ch.isspace():
            if not in_ws:
                pieces.append(r"\s*")
                in_ws = True
            continue
        in_ws = False
        group = _CJK_GROUPS.get(ch)
        if group:
            pieces.append("[" + group + "]")
        else:
            pieces.append(re.escape(ch))
    return "".join(pieces)


def collapse_whitespace(value: str) -> str:
    return _WS_RE.sub(" ", value).strip()


def normalize_plain_lines(value: str) -> str:
    """Trim each line, squeeze inner spaces and keep at most one blank line."""
    lines = [_HSPACE_RE.sub(" ", line).strip() for line in value.split("\n")]
    joined = "\n".join(lines)
    return _BLANK_LINES_RE.sub("\n\n", joined).strip("\n")


def first_number(values: Iterable[str]) -> int | None:
    for value in values:
        match = _DIGIT_RE.search(value)
        if match:
            return int(match.group())
    return None


def all_numbers(value: str) -> List[int]:
    return [int(m) for m in _DIGIT_RE.findall(value)]


def int_to_roman(number: int) -> str | None:
    if not 1 <= number <= 3999:
        return None
    out: List[str] = []
    for value, symbol in _ROMAN:
        while number >= value:
            out.append(symbol)
            number -= value
    return "".join(out)


def slice_text(text: str, start: int, end: int) -> str:
    """Character slice with both ends clamped to the text."""
    total = len(text)
    start = max(0, min(start, total))
    end = max(start, min(end, total))
    return text[start:end]


def find_highlight_positions(text: str, pattern: str, *, is_regex: bool = False) -> List[HighlightPos]:
    """Return character intervals of every occurrence of ``pattern`` in ``text``."""
    if not pattern:
        return []
    if is_regex:
        try:
            compiled = re.compile(pattern)
        except re.error:
            return []
        return [HighlightPos(m.start(), m.end()) for m in compiled.finditer(text) if m.end() > m.start()]
    positions: List[HighlightPos] = []
    index = text.find(pattern)
    while index != -1:
        positions.append(HighlightPos(index, index + len(pattern)))
        index = text.find(pattern, index + len(pattern))
    return positions


def highlight_text(text: str, positions: List[HighlightPos], prefix: str, suffix: str) -> str:
    """Wrap every interval in ``positions`` with ``prefix``/``suffix``."""
    if not positions:
        return text
    out: List[str] = []
    cursor = 0
    for pos in positions:
        out.append(text[cursor : pos.start_char])
        out.append(prefix + text[pos.start_char : pos.end_char] + suffix)
        cursor = pos.end_char
    out.append(text[cursor:])
    return "".join(out)
