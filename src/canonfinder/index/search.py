"""Fuzzy title/metadata matching over an index."""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

from canonfinder.models import IndexEntry, TitleHit
from canonfinder.utils.text import (
    fold,
    is_subsequence,
    jaccard,
    normalized,
    normalized_with_spaces,
    token_jaccard,
)

EXACT_ID_SCORE = 1.1
CONTAINS_SCORE = 1.0
ALIAS_FLOOR = 0.95
SUBSEQUENCE_FLOOR = 0.85
PERSON_FLOOR = 0.93
DIGIT_BONUS = 0.05
PERSON_KEYS = ("author", "editor", "translator", "publisher")


def haystack(entry: IndexEntry, meta_keys: Sequence[str] | None = None) -> str:
    """``title id meta-values`` as one string, optionally limited to ``meta_keys``."""
    values: List[str] = []
    if entry.meta:
        if meta_keys is None:
            values = [entry.meta[key] for key in sorted(entry.meta)]
        else:
            values = [entry.meta[key] for key in meta_keys if key in entry.meta]
    return f"{entry.title} {entry.id} {' '.join(values)}"


def score(
    entry: IndexEntry,
    query: str,
    fold_kind: str | None = None,
    meta_keys: Sequence[str] | None = None,
) -> float:
    """Score ``entry`` against ``query`` in ``[0, 1.1]``.

    Containment of the normalised query scores 1.0; otherwise the best of
    bigram and token Jaccard, lifted by subsequence, alias and numeric
    signals. An exact (case-insensitive) id match scores 1.1 so it always
    ranks first.
    """
    query = query.strip()
    if not query:
        return 0.0
    if entry.id.lower() == query.lower():
        return EXACT_ID_SCORE

    hay_all = haystack(entry, meta_keys)
    hay = normalized(hay_all)
    nq = normalized(query)
    folding = fold_kind in ("pali", "sanskrit")
    hay_fold = fold(hay_all, fold_kind) if folding else ""
    nq_fold = fold(query, fold_kind) if folding else ""

    if nq and nq in hay:
        value = CONTAINS_SCORE
    else:
        value = max(jaccard(hay, nq), token_jaccard(hay_all, query))
        if folding:
            value = max(value, jaccard(hay_fold, nq_fold))

    if value < ALIAS_FLOOR and nq:
        if (
            is_subsequence(hay, nq)
            or is_subsequence(nq, hay)
            or (folding and nq_fold and is_subsequence(hay_fold, nq_fold))
        ):
            value = max(value, SUBSEQUENCE_FLOOR)

    alias = entry.meta_value("alias")
    if alias:
        nalias = normalized_with_spaces(alias).replace(" ", "")
        nq_nospace = normalized_with_spaces(query).replace(" ", "")
        if (nq_nospace and nq_nospace in nalias) or (folding and nq_fold and nq_fold in fold(alias, fold_kind)):
            value = max(value, ALIAS_FLOOR)

    if any(ch.isdigit() for ch in query):
        nq_ws = normalized_with_spaces(query)
        if nq_ws and nq_ws in normalized_with_spaces(hay_all):
            value = min(value + DIGIT_BONUS, CONTAINS_SCORE)

    return max(0.0, min(value, EXACT_ID_SCORE))


def person_match(entry: IndexEntry, query: str) -> bool:
    nq = normalized(query)
    if not nq:
        return False
    for key in PERSON_KEYS:
        value = normalized(entry.meta_value(key))
        if value and (nq in value or value in nq):
            return True
    return False


class TitleSearcher:
    """Ranks index entries against a free-form title/id query."""

    def __init__(
        self,
        entries: Sequence[IndexEntry],
        *,
        fold_kind: str | None = None,
        meta_keys: Sequence[str] | None = None,
    ) -> None:
        self.entries = list(entries)
        self.fold_kind = fold_kind
        self.meta_keys = meta_keys

    def scores(self, query: str) -> np.ndarray:
        values = np.zeros(len(self.entries), dtype=np.float64)
        for idx, entry in enumerate(self.entries):
            value = score(entry, query, self.fold_kind, self.meta_keys)
            if value < PERSON_FLOOR and person_match(entry, query):
                value = PERSON_FLOOR
            values[idx] = value
        return values

    def search(self, query: str, *, limit: int = 10) -> List[TitleHit]:
        """Top ``limit`` entries by score; ties keep index order."""
        if not query.strip() or not self.entries or limit <= 0:
            return []
        values = self.scores(query)
        order = np.lexsort((np.arange(len(values)), -values))
        hits: List[TitleHit] = []
        for idx in order[:limit]:
            if values[idx] <= 0.0:
                break
            hits.append(TitleHit(entry=self.entries[int(idx)], score=float(values[idx]), index=int(idx)))
        return hits
