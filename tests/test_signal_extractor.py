# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the page signal extractor: detectors, prices, tactics, orchestration."""

from __future__ import annotations

import dataclasses

from _helpers import WEEKDAY_LATE, WEEKDAY_NOON, BrokenDocument, local_ms, static_doc
from hypothesis import given, settings
from hypothesis import strategies as st

from spendguard import RiskLevel
from spendguard.document import DocumentSnapshot
from spendguard.signal_extractor import (
    analyze_page,
    count_cart_items,
    detect_checkout_page,
    detect_product_page,
    detect_shopping_site,
    detect_urgency_tactics,
    extract_prices,
)

# =========================================================================
# Detectors
# =========================================================================


class TestShoppingSite:
    def test_known_domain(self):
        assert detect_shopping_site("www.nike.com", "")

    def test_known_domain_substring(self):
        assert detect_shopping_site("smile.amazon.com", "nothing here")

    def test_two_indicators_suffice(self):
        assert detect_shopping_site("indie.shop", "Add to Cart for the best PRICE")

    def test_one_indicator_is_not_enough(self):
        assert not detect_shopping_site("indie.shop", "Add to cart")

    def test_empty(self):
        assert not detect_shopping_site("", "")


class TestCheckoutPage:
    def test_url_keyword(self):
        assert detect_checkout_page("https://shop.example/Checkout/step-1", "")

    def test_text_phrase(self):
        assert detect_checkout_page("https://shop.example/s/1", "Enter your Billing Address")

    def test_neither(self):
        assert not detect_checkout_page("https://example.org/blog", "An article about gardens")

    def test_url_keyword_inside_other_word(self):
        # Substring match: "border" contains "order"
        assert detect_checkout_page("https://example.org/border-collies", "")


class TestProductPage:
    def test_two_of_six(self):
        assert detect_product_page("In stock. Quantity: 1")

    def test_one_of_six(self):
        assert not detect_product_page("Out of stock")


class TestPrices:
    def test_order_and_parsing(self):
        assert extract_prices("Was $1,299.99 now $999 shipping $5.") == (1299.99, 999.0, 5.0)

    def test_bounds_exclusive(self):
        assert extract_prices("$0 $0.00 $100000 $99999.99 $100,000") == (99999.99,)

    def test_unparseable_token_skipped(self):
        assert extract_prices("$, then $12") == (12.0,)

    def test_truncated_to_twenty(self):
        text = " ".join(f"${i}" for i in range(1, 31))
        assert extract_prices(text) == tuple(float(i) for i in range(1, 21))

    def test_out_of_range_not_counted_toward_limit(self):
        text = " ".join(["$0"] * 25 + [f"${i}" for i in range(1, 21)])
        assert len(extract_prices(text)) == 20

    @settings(max_examples=200)
    @given(st.lists(st.integers(min_value=0, max_value=15_000_000), max_size=40))
    def test_extracted_iff_in_range(self, cents_list):
        tokens = [f"${c // 100}.{c % 100:02d}" for c in cents_list]
        values = [float(t[1:]) for t in tokens]
        expected = tuple(v for v in values if 0 < v < 100_000)[:20]
        assert extract_prices(" and ".join(tokens)) == expected


class TestUrgencyTactics:
    def test_catalog_order_and_types(self):
        found = detect_urgency_tactics("HURRY! Only 3 left. Limited time offer.")
        assert [(t.phrase, t.type) for t in found] == [
            ("only .* left", "scarcity"),
            ("limited time", "urgency"),
            ("hurry", "urgency"),
        ]

    def test_each_phrase_at_most_once(self):
        found = detect_urgency_tactics("hurry hurry hurry")
        assert len(found) == 1

    def test_regex_does_not_cross_lines(self):
        assert detect_urgency_tactics("only\nleft") == ()

    def test_none(self):
        assert detect_urgency_tactics("A calm page about tea.") == ()


class TestCartItems:
    def test_sum_with_double_counting(self):
        # class hit by "cart-item" and id hit by "cart-item": counted twice
        doc = static_doc('<li class="cart-item" id="cart-item-1"></li><div data-testid="cart-row"></div>')
        assert count_cart_items(doc) == 3

    def test_failed_query_counts_zero(self):
        assert count_cart_items(BrokenDocument()) == 0


# =========================================================================
# analyze_page
# =========================================================================


class TestAnalyzePage:
    def test_scenario_a_known_domain_low_risk(self):
        """Known domain only, Tuesday afternoon: score 20, low, no intervention."""
        from spendguard.intervention_policy import should_intervene

        tuesday_2pm = local_ms(2025, 6, 3, 14)
        doc = static_doc("<p>Our story and the athletes we work with.</p>", url="https://www.nike.com/about")
        a = analyze_page(doc, now_ms=tuesday_2pm)
        assert a.is_shopping_site
        assert not a.is_checkout_page
        assert not a.is_product_page
        assert a.prices == ()
        assert a.urgency_tactics == ()
        assert a.risk_score == 20
        assert a.risk_level is RiskLevel.LOW
        assert not should_intervene(a)

    def test_scenario_b_checkout_late_night_critical(self):
        from spendguard.intervention_policy import should_intervene

        body = (
            "<h1>Checkout</h1><p>Price: $150</p><p>Payment method</p>"
            "<p>Hurry! Only 2 left</p>"
            '<div class="cart-item">A</div><div class="cart-item">B</div>'
        )
        doc = static_doc(body, url="https://randomsite.io/checkout")
        a = analyze_page(doc, now_ms=WEEKDAY_LATE)
        assert a.domain == "randomsite.io"
        assert a.is_shopping_site  # "checkout" + "price"
        assert a.is_checkout_page
        assert a.cart_items == 2
        assert a.prices == (150.0,)
        assert len(a.urgency_tactics) == 2
        assert a.risk_score == 130
        assert a.risk_level is RiskLevel.CRITICAL
        assert should_intervene(a)

    def test_round_trip_identical_except_timestamp(self):
        doc = static_doc("<p>Add to cart</p><p>Buy now $59.99</p><p>Selling fast</p>", url="https://indie.shop/p/1")
        first = analyze_page(doc, now_ms=WEEKDAY_NOON)
        second = analyze_page(doc, now_ms=WEEKDAY_NOON + 5000)
        assert first.timestamp != second.timestamp
        assert dataclasses.replace(first, timestamp=0) == dataclasses.replace(second, timestamp=0)

    def test_failing_document_yields_negative_defaults(self):
        a = analyze_page(BrokenDocument(), now_ms=WEEKDAY_NOON)
        assert a.url == ""
        assert a.domain == ""
        assert not a.is_shopping_site
        assert not a.is_checkout_page
        assert not a.is_product_page
        assert a.prices == ()
        assert a.cart_items == 0
        assert a.urgency_tactics == ()

    def test_unparseable_static_document(self):
        from spendguard.document import StaticDocument

        a = analyze_page(StaticDocument("", "https://www.etsy.com/"), now_ms=WEEKDAY_NOON)
        # URL still readable, so the domain rule still fires
        assert a.is_shopping_site
        assert a.prices == ()

    def test_snapshot_document(self):
        snap = DocumentSnapshot(
            url="https://shop.example/item",
            title="Item",
            text="Add to bag\nIn stock\n$25.00",
            selector_counts={'[data-testid*="cart"]': 1},
        )
        a = analyze_page(snap, now_ms=WEEKDAY_NOON)
        assert a.is_product_page
        assert a.cart_items == 1
        assert a.prices == (25.0,)
        assert a.title == "Item"

    def test_defaults_timestamp_to_now(self):
        import time

        before = int(time.time() * 1000)
        a = analyze_page(static_doc("<p>x</p>"))
        assert a.timestamp >= before

    def test_to_dict_wire_form(self):
        doc = static_doc("<p>Hurry</p>", url="https://example.org/")
        d = analyze_page(doc, now_ms=WEEKDAY_NOON).to_dict()
        assert d["isShoppingSite"] is False
        assert d["urgencyTactics"] == [{"phrase": "hurry", "type": "urgency"}]
        assert d["riskLevel"] == "low"
        assert d["prices"] == []
