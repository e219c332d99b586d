"""Canonical reference aliases (``DN 1``, ``SN 12.2``, ``MN ii`` ...) for Pali texts.

The collection vocabulary below is empirical: it encodes how the Chattha
Sangayana edition names its nikayas and is not expected to carry over to
other collections.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from canonfinder.utils.text import all_numbers, first_number, fold_ascii, int_to_roman


@dataclass(slots=True, frozen=True)
class AliasCollection:
    code: str
    keywords: Tuple[str, ...]
    composite: bool = False


ALIAS_COLLECTIONS: Tuple[AliasCollection, ...] = (
    AliasCollection("DN", ("digha",)),
    AliasCollection("MN", ("majjhima",)),
    AliasCollection("SN", ("samyutta",), composite=True),
    AliasCollection("AN", ("anguttara", "agguttara"), composite=True),
    AliasCollection("KN", ("khuddaka",)),
)

# Fields searched, in order, for the sutta/book number.
NUMBER_FIELDS = ("book", "title", "subhead", "subsubhead", "chapter")

KEYWORD_CUTOFF = 0.8
HEAD_VARIANT_LIMIT = 6

_DOUBLE_VOWEL = str.maketrans(
    {
        "ā": "aa",
        "Ā": "aa",
        "ī": "ii",
        "Ī": "ii",
        "ū": "uu",
        "Ū": "uu",
        "ṅ": "ng",
        "Ṅ": "ng",
        "ñ": "ny",
        "Ñ": "ny",
        "ṭ": "t",
        "Ṭ": "t",
        "ḍ": "d",
        "Ḍ": "d",
        "ṇ": "n",
        "Ṇ": "n",
        "ḷ": "l",
        "Ḷ": "l",
        "ṃ": "m",
        "Ṃ": "m",
        "ṁ": "m",
        "Ṁ": "m",
    }
)


def detect_collection(nikaya: str) -> AliasCollection | None:
    """Map a nikaya heading to its collection, tolerating transliteration drift."""
    folded = fold_ascii(nikaya)
    if not folded.strip():
        return None
    for collection in ALIAS_COLLECTIONS:
        if any(keyword in folded for keyword in collection.keywords):
            return collection

    words = folded.split()
    for collection in ALIAS_COLLECTIONS:
        for keyword in collection.keywords:
            candidates = [word[: len(keyword) + 1] for word in words]
            if difflib.get_close_matches(keyword, candidates, n=1, cutoff=KEYWORD_CUTOFF):
                return collection
    return None


def _with_lower(forms: Iterable[str]) -> List[str]:
    out: List[str] = []
    for form in forms:
        out.append(form)
        out.append(form.lower())
    return out


def numeric_aliases(code: str, number: int) -> List[str]:
    forms = [
        f"{code}{number}",
        f"{code}{number:02d}",
        f"{code}{number:03d}",
        f"{code} {number}",
        f"{code} {number:02d}",
        f"{code} {number:03d}",
    ]
    roman = int_to_roman(number)
    if roman:
        forms.extend([f"{code} {roman}", f"{code}{roman}"])
    return _with_lower(forms)


def composite_aliases(code: str, first: int, second: int) -> List[str]:
    forms = [
        f"{code} {first}.{second}",
        f"{code}{first}.{second}",
        f"{code} {first:02d}.{second:02d}",
        f"{code}{first:02d}.{second:02d}",
    ]
    roman = int_to_roman(first)
    if roman:
        forms.extend([f"{code} {roman}.{second}", f"{code}{roman}.{second}"])
    return _with_lower(forms)


def title_variants(value: str) -> List[str]:
    """Plain, folded, double-vowel and ``suttanta`` spellings of a title."""
    base = value.strip()
    if not base:
        return []
    expanded = base.replace("sutta", "suttanta")
    return [
        base,
        fold_ascii(base),
        base.translate(_DOUBLE_VOWEL).lower(),
        expanded,
        fold_ascii(expanded),
    ]


def _first_two_numbers(fields: Dict[str, str]) -> Tuple[int, int] | None:
    numbers: List[int] = []
    for key in NUMBER_FIELDS:
        value = fields.get(key)
        if not value:
            continue
        numbers.extend(all_numbers(value))
        if len(numbers) >= 2:
            return numbers[0], numbers[1]
    return None


def infer_aliases(fields: Dict[str, str], heads: Sequence[str], title: str) -> Dict[str, str]:
    """Return ``alias``/``alias_prefix`` meta entries for one document.

    ``fields`` maps rendition keys (nikaya, book, chapter ...) to their
    joined values.
    """
    aliases: List[str] = []
    meta: Dict[str, str] = {}

    collection = detect_collection(fields.get("nikaya", ""))
    if collection is not None:
        aliases.extend([collection.code, collection.code.lower()])
        number = first_number(fields[key] for key in NUMBER_FIELDS if fields.get(key))
        if number is not None:
            aliases.extend(numeric_aliases(collection.code, number))
        if collection.composite:
            pair = _first_two_numbers(fields)
            if pair is not None:
                aliases.extend(composite_aliases(collection.code, *pair))
        meta["alias_prefix"] = collection.code

    if heads:
        for head in list(heads)[:HEAD_VARIANT_LIMIT]:
            aliases.extend(title_variants(head))
        aliases.extend(title_variants(title))

    aliases = [alias for alias in dict.fromkeys(aliases) if alias]
    if aliases:
        meta["alias"] = " ".join(aliases)
    return meta
