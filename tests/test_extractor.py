"""Tests for markup-to-text extraction."""

from __future__ import annotations

from canonfinder.ingestion.extractor import (
    NOTE_MARKER,
    extract_around_line,
    extract_fascicle,
    extract_section_by_head,
    extract_text,
    fascicle_markers,
    list_heads,
    naive_strip_tags,
    parse_glyph_map,
    source_lines,
)
from canonfinder.models import ExtractionPolicy

GLYPH_DOC = """<TEI><teiHeader><encodingDesc><charDecl>
<char xml:id="CB001"><charName>name only</charName></char>
<char xml:id="CB002"><charName>ignored</charName><mapping type="normal">乘</mapping><mapping type="unicode">U+4E58</mapping></char>
<char xml:id="CB003"><charName>ignored</charName><mapping type="normal_unicode">法</mapping></char>
</charDecl></encodingDesc></teiHeader>
<text><body><p>a<g ref="#CB001">x</g>b<g ref="#CB002"/>c<g ref="#CB003">y</g>d<g ref="#MISSING"/>e</p></body></text></TEI>"""

FASCICLE_DOC = """<TEI><text><body>
<juan fun="open" n="001"/><p>first fascicle</p><juan fun="close" n="001"/>
<juan fun="open" n="002"/><p>second fascicle</p><juan fun="close" n="002"/>
</body></text></TEI>"""

SECTION_DOC = """<body>
<head>First</head><p>one</p>
<head>Second <hi>part</hi></head><p>two</p>
<head>Third</head><p>three</p>
</body>"""


class TestGlyphMap:
    """Test charDecl parsing and substitution."""

    def test_mapping_priorities(self) -> None:
        """Unicode beats normalized forms, which beat character names."""
        glyphs = parse_glyph_map(GLYPH_DOC)
        assert glyphs == {"CB001": "name only", "CB002": "乘", "CB003": "法"}

    def test_glyphs_are_substituted(self) -> None:
        """Resolved glyphs replace their fallback content, unknown refs vanish."""
        assert extract_text(GLYPH_DOC, ExtractionPolicy(skip_header=True)) == "aname onlyb乘c法de"

    def test_no_char_decl(self) -> None:
        assert parse_glyph_map("<TEI><text><p>x</p></text></TEI>") == {}


class TestNotesAndHeader:
    """Test note and header policies."""

    SOURCE = "<TEI><teiHeader><title>Header title</title></teiHeader><text><p>body<note>a <note>nested</note> b</note> text</p></text></TEI>"

    def test_notes_skipped_by_default(self) -> None:
        assert extract_text(self.SOURCE, ExtractionPolicy(skip_header=True)) == "body text"

    def test_notes_included_with_marker(self) -> None:
        text = extract_text(self.SOURCE, ExtractionPolicy(include_notes=True, skip_header=True))
        assert text == f"body {NOTE_MARKER} a nested b text"

    def test_header_kept_unless_skipped(self) -> None:
        assert extract_text(self.SOURCE).startswith("Header title")

    def test_line_breaks_in_plain_mode(self) -> None:
        """lb becomes a newline and pb a blank line; source newlines are layout."""
        source = "<p>one<lb/>two\n  three<pb/>four</p>"
        assert extract_text(source, plain=True) == "one\ntwothree\n\nfour"

    def test_whitespace_collapsed_by_default(self) -> None:
        assert extract_text("<p>one<lb/>two\n  three</p>") == "one two three"


class TestFascicles:
    """Test juan-bounded extraction."""

    def test_padded_marker_matches_unpadded_part(self) -> None:
        assert extract_fascicle(FASCICLE_DOC, "1") == "first fascicle"
        assert extract_fascicle(FASCICLE_DOC, "002") == "second fascicle"

    def test_missing_fascicle_returns_none(self) -> None:
        """Callers fall back to full text when the fascicle is absent."""
        assert extract_fascicle(FASCICLE_DOC, "9") is None
        assert extract_fascicle(FASCICLE_DOC, "") is None

    def test_reextracting_reported_markers(self) -> None:
        """Every reported marker re-extracts to the same text."""
        markers = fascicle_markers(FASCICLE_DOC)
        assert markers == ["001", "002"]
        for marker in markers:
            assert extract_fascicle(FASCICLE_DOC, marker) == extract_fascicle(FASCICLE_DOC, marker.lstrip("0"))

    def test_milestone_markers(self) -> None:
        """``milestone unit="juan"`` opens a fascicle like ``juan`` does."""
        source = '<body><milestone unit="juan" n="1"/>AAA<juan fun="close"/>BBB</body>'
        assert extract_fascicle(source, "1") == "AAA"
        assert fascicle_markers(source) == ["1"]

    def test_milestone_fascicle_ends_at_next_milestone(self) -> None:
        source = '<body><milestone unit="juan" n="1"/>AAA<milestone unit="juan" n="2"/>BBB</body>'
        assert extract_fascicle(source, "1") == "AAA"
        assert extract_fascicle(source, "2") == "BBB"
        assert fascicle_markers(source) == ["1", "2"]

    def test_other_milestones_are_ignored(self) -> None:
        source = '<body><milestone unit="page" n="1"/>AAA</body>'
        assert extract_fascicle(source, "1") is None
        assert fascicle_markers(source) == []


class TestLineWindow:
    """Test source-line windows."""

    SOURCE = "<body>\n<p>l2</p>\n<p>l3</p>\n<p>l4</p>\n</body>\n"

    def test_source_lines(self) -> None:
        assert source_lines("a\r\nb\n") == ["a", "b"]

    def test_window(self) -> None:
        assert extract_around_line(self.SOURCE, 3, context_before=1, context_after=0) == "l2 l3"

    def test_out_of_range_is_empty(self) -> None:
        """Out-of-range lines are not an error."""
        assert extract_around_line(self.SOURCE, 0) == ""
        assert extract_around_line(self.SOURCE, 99) == ""


class TestSections:
    """Test heading-based sections."""

    def test_by_index(self) -> None:
        assert extract_section_by_head(SECTION_DOC, head_index=1) == "two"

    def test_by_query(self) -> None:
        """Heading text is matched case-insensitively with markup removed."""
        assert extract_section_by_head(SECTION_DOC, head_query="second PART") == "two"

    def test_last_section_runs_to_end(self) -> None:
        assert extract_section_by_head(SECTION_DOC, head_index=2) == "three"

    def test_no_match(self) -> None:
        assert extract_section_by_head(SECTION_DOC, head_index=5) is None
        assert extract_section_by_head(SECTION_DOC, head_query="missing") is None
        assert extract_section_by_head("<p>no heads</p>", head_index=0) is None

    def test_list_heads(self) -> None:
        assert list_heads(SECTION_DOC) == ["First", "Second part", "Third"]
        assert list_heads(SECTION_DOC, limit=1) == ["First"]

    def test_list_heads_includes_jhead_titles(self) -> None:
        assert list_heads("<jhead><title>長阿含經</title>卷第一</jhead>") == ["長阿含經"]


class TestNaiveStrip:
    """Test the last-resort stripper."""

    def test_naive_strip_tags(self) -> None:
        assert naive_strip_tags("<a>x</a>\n<b>y</b>") == "x y"
