# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the static lxml document host and URL helpers."""

from __future__ import annotations

import pytest
from _helpers import html_page, static_doc

from spendguard.catalog import AttrSelector
from spendguard.document import DocumentSnapshot, PageDocument, StaticDocument, hostname_of, port_of
from spendguard.errors import ExtractionError


class TestUrlHelpers:
    def test_hostname(self):
        assert hostname_of("https://www.Amazon.com/dp/1") == "www.amazon.com"

    def test_hostname_missing(self):
        assert hostname_of("not a url") == ""
        assert hostname_of("") == ""

    def test_port(self):
        assert port_of("http://localhost:5173/app") == "5173"
        assert port_of("https://example.org/") == ""

    def test_invalid_port(self):
        assert port_of("http://localhost:99999999/") == ""


class TestStaticDocument:
    def test_satisfies_protocol(self):
        assert isinstance(static_doc("<p>x</p>"), PageDocument)

    def test_title(self):
        doc = static_doc("<p>x</p>", title="  Big   Sale  ")
        assert doc.title == "Big Sale"

    def test_missing_title(self):
        doc = StaticDocument("<html><body><p>x</p></body></html>", "https://example.org/")
        assert doc.title == ""

    def test_visible_text_skips_scripts_and_styles(self):
        doc = static_doc("<p>Visible</p><script>var hidden = 1;</script><style>.x{}</style>")
        text = doc.visible_text()
        assert "Visible" in text
        assert "hidden" not in text
        assert ".x" not in text

    def test_block_elements_break_lines(self):
        doc = static_doc("<div>Only 3</div><div>left today</div>")
        lines = doc.visible_text().split("\n")
        assert "Only 3" in lines
        assert "left today" in lines

    def test_inline_whitespace_collapses(self):
        doc = static_doc("<p>Add   to\tcart<span> now</span></p>")
        assert doc.visible_text() == "Add to cart now"

    def test_title_not_in_visible_text(self):
        doc = static_doc("<p>body</p>", title="Head Title")
        assert "Head Title" not in doc.visible_text()

    def test_count_matching_substring(self):
        doc = static_doc(
            '<div class="cart-item big"></div><div class="mini-cart-item"></div>'
            '<div class="cart"></div><li id="cart-item-3"></li>'
        )
        assert doc.count_matching(AttrSelector("class", "cart-item")) == 2
        assert doc.count_matching(AttrSelector("id", "cart-item")) == 1

    def test_count_matching_is_case_sensitive(self):
        doc = static_doc('<div class="Cart-Item"></div>')
        assert doc.count_matching(AttrSelector("class", "cart-item")) == 0

    def test_count_ignores_comments(self):
        doc = static_doc('<!-- class="cart-item" --><div class="cart-item"></div>')
        assert doc.count_matching(AttrSelector("class", "cart-item")) == 1

    def test_empty_document_raises(self):
        doc = StaticDocument("   ", "https://example.org/")
        with pytest.raises(ExtractionError):
            doc.visible_text()

    def test_url_never_raises(self):
        assert StaticDocument("", "https://example.org/x").url == "https://example.org/x"

    def test_text_is_cached(self):
        doc = StaticDocument(html_page("<p>once</p>"), "https://example.org/")
        assert doc.visible_text() is doc.visible_text()


class TestDocumentSnapshot:
    def test_reads(self):
        snap = DocumentSnapshot(
            url="https://example.org/",
            title="T",
            text="hello",
            selector_counts={'[class*="cart-item"]': 2},
        )
        assert isinstance(snap, PageDocument)
        assert snap.visible_text() == "hello"
        assert snap.count_matching(AttrSelector("class", "cart-item")) == 2
        assert snap.count_matching(AttrSelector("id", "cart-item")) == 0
