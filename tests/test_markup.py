"""Tests for the markup event stream."""

from __future__ import annotations

from canonfinder.ingestion.markup import EMPTY, END, START, TEXT, iter_events, parse_attrs, strip_tags


class TestIterEvents:
    """Test event generation."""

    def test_basic_events(self) -> None:
        events = list(iter_events('<p rend="x">a<lb/>b</p>'))
        assert [(e.kind, e.name) for e in events] == [
            (START, "p"),
            (TEXT, ""),
            (EMPTY, "lb"),
            (TEXT, ""),
            (END, "p"),
        ]
        assert events[0].attr("rend") == "x"
        assert [e.text for e in events if e.kind == TEXT] == ["a", "b"]

    def test_namespaced_names_use_local_part(self) -> None:
        """Namespaces are dropped from element names; xml:id keeps its prefix."""
        source = '<TEI xmlns="http://www.tei-c.org/ns/1.0"><div xml:id="d1" n="2"/></TEI>'
        events = list(iter_events(source))
        assert [e.name for e in events] == ["TEI", "div", "TEI"]
        assert events[1].kind == EMPTY
        assert events[1].attr("xml:id") == "d1"
        assert events[1].attr("id") == "d1"

    def test_entities_are_unescaped(self) -> None:
        assert strip_tags("<p>a &amp; b &#x4F5B;</p>") == "a & b 佛"

    def test_undeclared_html_entities_are_decoded(self) -> None:
        assert strip_tags("<p>a&nbsp;b&eacute;</p>") == "a\xa0bé"

    def test_comments_and_processing_instructions_are_skipped(self) -> None:
        source = '<?xml version="1.0" encoding="UTF-8"?><!-- hidden --><p>shown<?pi x?></p>'
        assert strip_tags(source) == "shown"

    def test_doctype_is_accepted(self) -> None:
        source = '<!DOCTYPE TEI.2 SYSTEM "tei2.dtd"><TEI.2><p>x</p></TEI.2>'
        assert strip_tags(source) == "x"

    def test_cdata_is_text(self) -> None:
        assert strip_tags("<p><![CDATA[<raw>]]></p>") == "<raw>"

    def test_truncated_tag_at_end_is_dropped(self) -> None:
        """A file cut off mid-tag still yields everything before the cut."""
        events = list(iter_events("<p>abc<b"))
        assert [(e.kind, e.name) for e in events[:2]] == [(START, "p"), (TEXT, "")]
        assert events[1].text == "abc"

    def test_stray_angle_bracket_is_text(self) -> None:
        assert strip_tags("<p>1 < 2</p>") == "1 < 2"

    def test_bare_ampersand_is_text(self) -> None:
        assert strip_tags("<p>A & B</p>") == "A & B"

    def test_fragment_closing_unopened_elements(self) -> None:
        """Slices cut out of a document keep the text after stray end tags."""
        assert strip_tags("a</p></div>\n<p>b</p></body>c") == "a\nbc"

    def test_plain_text_without_markup(self) -> None:
        assert strip_tags("just text\nsecond line") == "just text\nsecond line"

    def test_control_characters_are_dropped(self) -> None:
        assert strip_tags("<p>a\x0cb</p>") == "ab"

    def test_max_events(self) -> None:
        events = list(iter_events("<a><b><c/></b></a>", max_events=2))
        assert [e.name for e in events] == ["a", "b"]

    def test_quoted_gt_in_attribute(self) -> None:
        events = list(iter_events('<p n="a>b">x</p>'))
        assert events[0].attr("n") == "a>b"

    def test_large_document_is_streamed(self) -> None:
        """Events cross feed-chunk boundaries without loss."""
        source = "<body>" + "<p>如是我聞</p>" * 20000 + "</body>"
        texts = [e.text for e in iter_events(source) if e.kind == TEXT]
        assert len(texts) == 20000
        assert set(texts) == {"如是我聞"}


class TestParseAttrs:
    """Test raw attribute parsing."""

    def test_single_and_double_quotes(self) -> None:
        assert parse_attrs(""" a="1" b='2' """) == {"a": "1", "b": "2"}
