"""Tests for corpus-wide regex search."""

from __future__ import annotations

import codecs
from pathlib import Path

import pytest

from canonfinder.corpora import CorpusNotFoundError, get_profile
from canonfinder.index.grep import CorpusGrep, compile_pattern, prepare_pattern, snap_window


@pytest.fixture
def cbeta_root(cbeta_home: Path) -> Path:
    return cbeta_home / "xml-p5"


class TestHelpers:
    """Test pattern and window helpers."""

    def test_invalid_pattern(self) -> None:
        assert compile_pattern("([") is None
        assert compile_pattern("") is None

    def test_patterns_are_case_insensitive(self) -> None:
        assert compile_pattern("evam").search("EVAM me sutam")

    def test_prepare_pattern_keeps_regexes(self) -> None:
        assert prepare_pattern("a.c", get_profile("gretil")) == "a.c"

    def test_prepare_pattern_whitespace(self) -> None:
        """Literal queries tolerate line breaks between words."""
        regex = compile_pattern(prepare_pattern("evam me", get_profile("tipitaka")))
        assert regex.search("evam\nme")

    def test_prepare_pattern_cjk_variants(self) -> None:
        regex = compile_pattern(prepare_pattern("長阿含経", get_profile("cbeta")))
        assert regex.search("長阿含經")

    def test_snap_window_never_splits_characters(self) -> None:
        """Window edges move outward to character boundaries."""
        data = "如是我聞".encode("utf-8")
        for start in range(len(data)):
            for end in range(start, len(data) + 1):
                lo, hi = snap_window(data, start, end)
                data[lo:hi].decode("utf-8")
                assert lo <= start and hi >= end


class TestCorpusGrep:
    """Test CorpusGrep.search."""

    def test_zero_match_files_are_excluded(self, cbeta_root: Path) -> None:
        results = CorpusGrep(get_profile("cbeta"), workers=2).search(cbeta_root, "如是我聞")
        ids = [r.file_id for r in results]
        assert "T01n0003" not in ids
        assert all(r.total_matches > 0 for r in results)

    def test_privileged_canon_first(self, cbeta_root: Path) -> None:
        """Taisho files rank before other canons even with fewer matches."""
        results = CorpusGrep(get_profile("cbeta"), workers=2).search(cbeta_root, "如是我聞")
        assert [r.file_id for r in results] == ["T01n0001", "X01n0002"]
        assert results[1].total_matches == 2

    def test_second_pass_skipped_when_full(self, cbeta_root: Path) -> None:
        results = CorpusGrep(get_profile("cbeta")).search(cbeta_root, "如是我聞", max_results=1)
        assert [r.file_id for r in results] == ["T01n0001"]

    def test_title_hits_move_to_front(self, cbeta_root: Path) -> None:
        results = CorpusGrep(get_profile("cbeta")).search(cbeta_root, "如是我聞", title_scores={"X01n0002": 0.9})
        assert [r.file_id for r in results] == ["X01n0002", "T01n0001"]

    def test_match_details(self, cbeta_root: Path) -> None:
        """Matches carry line numbers, fascicles, sections and fetch hints."""
        path = cbeta_root / "T" / "T01" / "T01n0001.xml"
        source = path.read_text(encoding="utf-8")
        result = CorpusGrep(get_profile("cbeta")).search(cbeta_root, "如是我聞")[0]

        assert result.title == "長阿含經"
        match = result.matches[0]
        assert match.highlight == "如是我聞"
        assert match.line_number == source[: source.index("如是我聞")].count("\n") + 1
        assert match.juan_number == 1
        assert match.section == "1(jing)"
        assert result.fetch_hints.recommended_parts == ["001"]
        assert result.fetch_hints.structure_info == ["1(jing)"]
        assert result.fetch_hints.total_content_size.endswith("KB")

    def test_context_is_character_safe(self, cbeta_root: Path) -> None:
        """Contexts are exact substrings and highlight offsets are characters."""
        grep = CorpusGrep(get_profile("cbeta"), context_bytes=7)
        for result in grep.search(cbeta_root, "如是我聞"):
            source = Path(result.file_path).read_text(encoding="utf-8")
            for match in result.matches:
                assert match.context in source
                pos = match.highlight_positions[0]
                assert match.context[pos.start_char : pos.end_char] == match.highlight

    def test_match_cap(self, cbeta_root: Path) -> None:
        """matches is capped, total_matches is not."""
        results = CorpusGrep(get_profile("cbeta")).search(cbeta_root, "如是", max_matches_per_file=1)
        x_result = next(r for r in results if r.file_id == "X01n0002")
        assert len(x_result.matches) == 1
        assert x_result.total_matches == 2

    def test_invalid_regex_returns_empty(self, cbeta_root: Path) -> None:
        assert CorpusGrep(get_profile("cbeta")).search(cbeta_root, "([") == []

    def test_missing_root_raises(self, tmp_path: Path) -> None:
        with pytest.raises(CorpusNotFoundError):
            CorpusGrep(get_profile("cbeta")).search(tmp_path / "missing", "x")

    def test_utf16_files(self, tmp_path: Path) -> None:
        """UTF-16 documents are searched by their decoded text."""
        doc = "<TEI.2><body><p rend=\"nikaya\">Dīghanikāyo</p>\n<p>Evaṃ me sutaṃ</p></body></TEI.2>"
        (tmp_path / "s0101m.mul.xml").write_bytes(codecs.BOM_UTF16_LE + doc.encode("utf-16-le"))
        results = CorpusGrep(get_profile("tipitaka")).search(tmp_path, "evaṃ me")
        assert len(results) == 1
        assert results[0].title == "Dīghanikāyo"
        assert results[0].matches[0].line_number == 2
        assert results[0].fetch_hints.recommended_parts == ["full"]

    def test_bogus_encoding_declaration_is_searched(self, tmp_path: Path) -> None:
        """A non-text codec declaration does not abort the search."""
        (tmp_path / "good.xml").write_text("<TEI><p>buddha</p></TEI>", encoding="utf-8")
        (tmp_path / "bad.xml").write_bytes(b'<?xml version="1.0" encoding="hex"?><TEI><p>buddha</p></TEI>')
        results = CorpusGrep(get_profile("gretil")).search(tmp_path, "buddha")
        assert [r.file_id for r in results] == ["bad", "good"]

    def test_milestone_juan_attribution(self, tmp_path: Path) -> None:
        doc = '<TEI><body><milestone unit="juan" n="3"/><p>如是我聞</p></body></TEI>'
        (tmp_path / "T01n0009.xml").write_text(doc, encoding="utf-8")
        results = CorpusGrep(get_profile("cbeta")).search(tmp_path, "如是我聞")
        assert results[0].matches[0].juan_number == 3
        assert results[0].fetch_hints.recommended_parts == ["003"]
