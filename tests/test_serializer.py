# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for analysis report serialization (JSON and text formats)."""

from __future__ import annotations

import json

from _helpers import WEEKDAY_LATE, make_analysis, tactic

from spendguard.serializer import to_json, to_report, to_text


def _checkout(**overrides):
    fields = {
        "url": "https://randomsite.io/checkout",
        "domain": "randomsite.io",
        "is_shopping_site": True,
        "is_checkout_page": True,
        "prices": (150.0,),
        "cart_items": 2,
        "urgency_tactics": (tactic(), tactic("hurry", "urgency")),
        "timestamp": WEEKDAY_LATE,
    }
    fields.update(overrides)
    return make_analysis(**fields)


class TestToReport:
    def test_adds_score_and_factors(self):
        report = to_report(_checkout())
        assert report["riskScore"] == 130
        assert report["riskLevel"] == "critical"
        assert report["riskFactors"][0] == {"factor": "shopping_site", "points": 20}
        assert {"factor": "late_night", "points": 15} in report["riskFactors"]
        assert "shouldIntervene" not in report

    def test_verdict_included_when_given(self):
        assert to_report(make_analysis(), intervene=False)["shouldIntervene"] is False

    def test_keeps_wire_keys(self):
        report = to_report(_checkout())
        for key in ("url", "domain", "isCheckoutPage", "cartItems", "urgencyTactics", "timestamp"):
            assert key in report


class TestToJson:
    def test_parses(self):
        data = json.loads(to_json(_checkout(), intervene=True))
        assert data["shouldIntervene"] is True
        assert data["prices"] == [150.0]

    def test_non_ascii_kept(self):
        out = to_json(make_analysis(title="Café"))
        assert "Café" in out


class TestToText:
    def test_lines(self):
        text = to_text(_checkout(), intervene=True)
        assert "Domain: randomsite.io" in text
        assert "Checkout page: yes" in text
        assert "Prices: $150.00" in text
        assert "  - urgency: hurry" in text
        assert "Risk: critical (score 130)" in text
        assert text.endswith("Intervene: yes")

    def test_empty_analysis(self):
        text = to_text(make_analysis(domain="", title=""))
        assert "Domain: -" in text
        assert "Prices: none" in text
        assert "Urgency tactics: none" in text
        assert "Intervene" not in text

    def test_long_price_list_truncated(self):
        text = to_text(make_analysis(prices=tuple(float(i) for i in range(1, 9))))
        assert "(+3 more)" in text
        assert "$6.00" not in text
