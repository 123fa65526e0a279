# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Document hosts: the read-only view of a page that the extractor consumes.

The extractor only needs four things from a page: its URL, its title, its
visible text, and how many elements match an attribute-substring selector.
``PageDocument`` is that contract.  Two implementations live here:

  - ``StaticDocument``: lxml parse of a saved HTML snapshot
  - ``DocumentSnapshot``: plain values captured from a live page in one
    round-trip (see ``browser_host``)
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable
from urllib.parse import urlparse

import lxml.html
from lxml import etree

from .catalog import AttrSelector
from .errors import ExtractionError


@runtime_checkable
class PageDocument(Protocol):
    """Read-only page contract. Every method may raise; callers absorb failures."""

    @property
    def url(self) -> str: ...

    @property
    def title(self) -> str: ...

    def visible_text(self) -> str: ...

    def count_matching(self, selector: AttrSelector) -> int: ...


def hostname_of(url: str) -> str:
    """Lower-cased hostname of *url*, or "" when it has none."""
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def port_of(url: str) -> str:
    """Explicit port of *url* as a string, or "" when absent or invalid."""
    try:
        port = urlparse(url).port
    except ValueError:
        return ""
    return str(port) if port is not None else ""


# ---------------------------------------------------------------------------
# Snapshot of a live page (values only)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DocumentSnapshot:
    """Values read from a live page in one evaluate call."""

    url: str
    title: str
    text: str
    selector_counts: Mapping[str, int] = field(default_factory=dict)  # keyed by AttrSelector.css

    def visible_text(self) -> str:
        return self.text

    def count_matching(self, selector: AttrSelector) -> int:
        return int(self.selector_counts.get(selector.css, 0))


# ---------------------------------------------------------------------------
# Static HTML snapshot (lxml)
# ---------------------------------------------------------------------------

# Subtrees that never contribute to rendered text
_INVISIBLE_TAGS = ("script", "style", "noscript", "template", "head")

# Tags that start a new line in rendered text (approximation of innerText)
_BLOCK_TAGS = frozenset(
    {
        "address",
        "article",
        "aside",
        "blockquote",
        "br",
        "dd",
        "details",
        "div",
        "dl",
        "dt",
        "fieldset",
        "figcaption",
        "figure",
        "footer",
        "form",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "header",
        "hr",
        "li",
        "main",
        "nav",
        "ol",
        "p",
        "pre",
        "section",
        "summary",
        "table",
        "tr",
        "ul",
    }
)

_INLINE_WS_RE = re.compile(r"[ \t\r\f\v\xa0]+")


class StaticDocument:
    """A saved HTML page plus the URL it was served from.

    Parsing is lazy and cached; an unparseable document raises
    ``ExtractionError`` from every read.
    """

    def __init__(self, html: str, url: str) -> None:
        self._html = html
        self._url = url
        self._root: lxml.html.HtmlElement | None = None
        self._text: str | None = None

    @property
    def url(self) -> str:
        return self._url

    @property
    def title(self) -> str:
        root = self._parse()
        el = root.find(".//title")
        if el is None:
            return ""
        return " ".join((el.text_content() or "").split())

    def visible_text(self) -> str:
        if self._text is None:
            root = self._parse()
            body = root.find(".//body")
            self._text = _render_text(body if body is not None else root)
        return self._text

    def count_matching(self, selector: AttrSelector) -> int:
        root = self._parse()
        count = 0
        for el in root.iter():
            if not isinstance(el.tag, str):
                continue  # comments, processing instructions
            value = el.get(selector.attr)
            if value is not None and selector.needle in value:
                count += 1
        return count

    def _parse(self) -> lxml.html.HtmlElement:
        if self._root is None:
            if not self._html or not self._html.strip():
                raise ExtractionError("empty document")
            try:
                self._root = lxml.html.document_fromstring(self._html)
            except (etree.ParserError, ValueError) as e:
                raise ExtractionError(f"unparseable document: {e}") from e
        return self._root


def _iter_text(el: lxml.html.HtmlElement) -> Iterator[str]:
    tag = el.tag if isinstance(el.tag, str) else ""
    if tag in _INVISIBLE_TAGS:
        if el.tail:
            yield el.tail
        return
    block = tag in _BLOCK_TAGS
    if block:
        yield "\n"
    if isinstance(el.tag, str) and el.text:
        yield el.text
    for child in el:
        yield from _iter_text(child)
    if block:
        yield "\n"
    if el.tail:
        yield el.tail


def _render_text(el: lxml.html.HtmlElement) -> str:
    """Approximate ``innerText``: block boundaries become newlines, inline whitespace collapses."""
    raw = "".join(_iter_text(el))
    lines = (_INLINE_WS_RE.sub(" ", line).strip() for line in raw.split("\n"))
    return "\n".join(line for line in lines if line)
