"""Tests for fuzzy title matching."""

from __future__ import annotations

import pytest

from canonfinder.index.search import TitleSearcher, haystack, person_match, score
from canonfinder.models import IndexEntry


def _entry(entry_id: str, title: str, **meta: str) -> IndexEntry:
    return IndexEntry(id=entry_id, title=title, path=f"/corpus/{entry_id}.xml", meta=meta or None)


ENTRIES = [
    _entry("s0101m.mul", "Dīghanikāyo · Sīlakkhandhavaggapāḷi", alias="DN dn DN1 dn1 DN 1", alias_prefix="DN"),
    _entry("s0201m.mul", "Majjhimanikāyo · Mūlapaṇṇāsapāḷi", alias="MN mn MN1 mn1", alias_prefix="MN"),
    _entry("T01n0001", "長阿含經", translator="竺佛念"),
    _entry("T09n0262", "妙法蓮華經", translator="鳩摩羅什"),
]


class TestScore:
    """Test the scoring function."""

    def test_containment_scores_one(self) -> None:
        assert score(ENTRIES[2], "阿含") == 1.0

    def test_exact_id_scores_highest(self) -> None:
        """Exact (case-insensitive) id matches score 1.1."""
        assert score(ENTRIES[3], "t09n0262") == pytest.approx(1.1)

    def test_alias_query(self) -> None:
        """A canonical short reference finds its alias."""
        assert score(ENTRIES[0], "DN 1") >= 0.95

    def test_diacritic_free_query(self) -> None:
        assert score(ENTRIES[0], "Silakkhandhavagga", "pali") == 1.0

    def test_variant_characters(self) -> None:
        assert score(ENTRIES[3], "妙法蓮華経") == 1.0

    def test_subsequence_floor(self) -> None:
        """Order-preserving gaps lift the score to at least 0.85."""
        assert score(ENTRIES[2], "長含") >= 0.85

    def test_empty_query(self) -> None:
        assert score(ENTRIES[0], "   ") == 0.0

    @pytest.mark.parametrize("query", ["", "x", "DN 1", "zzz 99", "長阿含經", "s0101m.mul", "!!!", "Saṃyutta 12.2"])
    def test_bounds(self, query: str) -> None:
        """Scores always fall within [0, 1.1]."""
        for entry in ENTRIES:
            assert 0.0 <= score(entry, query, "pali") <= 1.1

    def test_meta_keys_limit_haystack(self) -> None:
        entry = _entry("x", "Title", author="Someone", alias="AA")
        assert "Someone" not in haystack(entry, ("alias",))
        assert "Someone" in haystack(entry)


class TestPersonMatch:
    """Test translator/author matching."""

    def test_person_match(self) -> None:
        assert person_match(ENTRIES[3], "鳩摩羅什")
        assert not person_match(ENTRIES[3], "玄奘")
        assert not person_match(ENTRIES[3], "")


class TestTitleSearcher:
    """Test ranking over an index."""

    def test_exact_id_outranks_everything(self) -> None:
        entries = [_entry("abcd", "abc"), _entry("abc", "unrelated")]
        hits = TitleSearcher(entries).search("abc")
        assert hits[0].entry.id == "abc"
        assert hits[0].score == pytest.approx(1.1)

    def test_alias_ranking(self) -> None:
        hits = TitleSearcher(ENTRIES, fold_kind="pali").search("DN 1", limit=2)
        assert hits[0].entry.id == "s0101m.mul"

    def test_ties_keep_index_order(self) -> None:
        entries = [_entry("a1", "same title"), _entry("a2", "same title")]
        hits = TitleSearcher(entries).search("same title")
        assert [h.index for h in hits] == [0, 1]

    def test_limit_and_empty(self) -> None:
        searcher = TitleSearcher(ENTRIES)
        assert len(searcher.search("經", limit=1)) == 1
        assert searcher.search("") == []
        assert searcher.search("經", limit=0) == []
        assert TitleSearcher([]).search("x") == []
