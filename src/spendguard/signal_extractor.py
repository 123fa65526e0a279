# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page signal extractor: one document snapshot in, one PageAnalysis out.

Each detector below is a pure function of strings (or of one selector
count) driven by the pattern catalog.  ``analyze_page`` reads the document
once per signal and isolates every read: a host failure turns that signal
into its negative default instead of aborting the analysis.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TypeVar

from . import PageAnalysis, UrgencyTactic
from .catalog import (
    CART_ITEM_SELECTORS,
    CHECKOUT_TEXT_PHRASES,
    CHECKOUT_URL_KEYWORDS,
    MAX_PRICES,
    MAX_VALID_PRICE,
    PRICE_RE,
    PRODUCT_INDICATOR_MIN,
    PRODUCT_INDICATORS,
    SHOPPING_DOMAINS,
    SHOPPING_INDICATOR_MIN,
    SHOPPING_INDICATORS,
    URGENCY_TACTICS,
)
from .document import PageDocument, hostname_of

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Detectors (pure)
# ---------------------------------------------------------------------------


def _count_present(text_lower: str, phrases: tuple[str, ...]) -> int:
    return sum(1 for p in phrases if p in text_lower)


def detect_shopping_site(domain: str, text: str) -> bool:
    """Known domain is authoritative; unknown domains need 2 of 5 text indicators."""
    domain = domain.lower()
    if any(d in domain for d in SHOPPING_DOMAINS):
        return True
    return _count_present(text.lower(), SHOPPING_INDICATORS) >= SHOPPING_INDICATOR_MIN


def detect_checkout_page(url: str, text: str) -> bool:
    """URL keyword or checkout phrase in the text; either alone suffices."""
    url_lower = url.lower()
    if any(kw in url_lower for kw in CHECKOUT_URL_KEYWORDS):
        return True
    text_lower = text.lower()
    return any(p in text_lower for p in CHECKOUT_TEXT_PHRASES)


def detect_product_page(text: str) -> bool:
    return _count_present(text.lower(), PRODUCT_INDICATORS) >= PRODUCT_INDICATOR_MIN


def extract_prices(text: str) -> tuple[float, ...]:
    """Dollar amounts in document order, kept if 0 < value < MAX_VALID_PRICE, first 20."""
    prices: list[float] = []
    for m in PRICE_RE.finditer(text):
        raw = m.group().replace("$", "").replace(",", "")
        try:
            value = float(raw)
        except ValueError:
            continue  # "$," and friends
        if 0 < value < MAX_VALID_PRICE:
            prices.append(value)
            if len(prices) >= MAX_PRICES:
                break
    return tuple(prices)


def detect_urgency_tactics(text: str) -> tuple[UrgencyTactic, ...]:
    """One entry per matching catalog phrase, in catalog order."""
    return tuple(
        UrgencyTactic(phrase=tactic.phrase, type=tactic.type.value)
        for tactic in URGENCY_TACTICS
        if tactic.pattern.search(text)
    )


def count_cart_items(document: PageDocument) -> int:
    """Sum of per-selector matches; an element hit by two selectors counts twice."""
    total = 0
    for selector in CART_ITEM_SELECTORS:
        total += _read(lambda s=selector: document.count_matching(s), 0, f"cart selector {selector.css}")
    return max(total, 0)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


def _read(fn: Callable[[], T], default: T, what: str) -> T:
    """Run one document read; any failure yields *default*."""
    try:
        return fn()
    except Exception:
        logger.debug("Document read failed (%s), using default", what, exc_info=True)
        return default


def analyze_page(document: PageDocument, *, now_ms: int | None = None) -> PageAnalysis:
    """Extract every signal from *document* into a PageAnalysis.

    Never raises.  ``now_ms`` pins the timestamp (and therefore the time
    signals of the risk score); defaults to the current wall clock.
    """
    url = _read(lambda: document.url, "", "url") or ""
    title = _read(lambda: document.title, "", "title") or ""
    text = _read(document.visible_text, "", "visible text") or ""
    domain = hostname_of(url)
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)

    analysis = PageAnalysis(
        url=url,
        domain=domain,
        title=title,
        timestamp=timestamp,
        is_shopping_site=detect_shopping_site(domain, text),
        is_checkout_page=detect_checkout_page(url, text),
        is_product_page=detect_product_page(text),
        prices=extract_prices(text),
        cart_items=count_cart_items(document),
        urgency_tactics=detect_urgency_tactics(text),
    )
    logger.debug(
        "Analyzed %s: shopping=%s checkout=%s product=%s prices=%d cart=%d tactics=%d",
        domain or "<no domain>",
        analysis.is_shopping_site,
        analysis.is_checkout_page,
        analysis.is_product_page,
        len(analysis.prices),
        analysis.cart_items,
        len(analysis.urgency_tactics),
    )
    return analysis
