# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the intervention policy and its threshold presets."""

from __future__ import annotations

from _helpers import WEEKDAY_LATE, make_analysis, tactics
from hypothesis import given
from hypothesis import strategies as st

from spendguard import RiskLevel
from spendguard.intervention_policy import (
    DEFAULT_THRESHOLD,
    THRESHOLD_PRESETS,
    InterventionThreshold,
    should_intervene,
    threshold_for_preset,
)


class TestDefaultPolicy:
    def test_low_page_does_not_intervene(self):
        assert not should_intervene(make_analysis(is_shopping_site=True))

    def test_critical_always(self):
        a = make_analysis(is_shopping_site=True, is_product_page=True, cart_items=1, prices=(300.0,))
        assert a.risk_level is RiskLevel.CRITICAL
        assert not a.is_checkout_page
        assert should_intervene(a)

    def test_high_not_checkout_one_tactic(self):
        """High risk, no checkout, one tactic: no intervention."""
        a = make_analysis(
            is_shopping_site=True,
            is_product_page=True,
            prices=(120.0,),
            urgency_tactics=tactics(1),
        )
        assert a.risk_score == 60
        assert a.risk_level is RiskLevel.HIGH
        assert not should_intervene(a)

    def test_high_on_checkout(self):
        a = make_analysis(is_checkout_page=True, urgency_tactics=tactics(1))
        assert a.risk_level is RiskLevel.HIGH
        assert should_intervene(a)

    def test_medium_on_checkout_does_not(self):
        a = make_analysis(is_checkout_page=True)
        assert a.risk_level is RiskLevel.MEDIUM
        assert not should_intervene(a)

    def test_three_tactics_at_low_risk(self):
        """Three tactics fire on their own even when the level is low."""
        a = make_analysis(urgency_tactics=tactics(3))
        assert a.risk_score == 30
        # score 30 is medium; the tactic clause is what fires
        assert should_intervene(a)
        assert not should_intervene(make_analysis(urgency_tactics=tactics(2)))

    def test_tactic_clause_ignores_level(self):
        custom = InterventionThreshold(tactic_count=1)
        a = make_analysis(urgency_tactics=tactics(1))
        assert a.risk_level is RiskLevel.LOW
        assert should_intervene(a, custom)

    @given(
        shopping=st.booleans(),
        product=st.booleans(),
        cart=st.integers(min_value=0, max_value=3),
        n_tactics=st.integers(min_value=0, max_value=2),
        late=st.booleans(),
    )
    def test_non_critical_needs_checkout_or_tactics(self, shopping, product, cart, n_tactics, late):
        kwargs = {
            "is_shopping_site": shopping,
            "is_product_page": product,
            "cart_items": cart,
            "urgency_tactics": tactics(n_tactics),
        }
        if late:
            kwargs["timestamp"] = WEEKDAY_LATE
        a = make_analysis(**kwargs)
        if a.risk_level is not RiskLevel.CRITICAL:
            assert not should_intervene(a)


class TestPresets:
    def test_medium_is_default(self):
        assert threshold_for_preset("medium") is DEFAULT_THRESHOLD

    def test_unknown_falls_back(self):
        assert threshold_for_preset("extreme") is DEFAULT_THRESHOLD

    def test_case_insensitive(self):
        assert threshold_for_preset("LOW") is THRESHOLD_PRESETS["low"]

    def test_low_preset_is_more_sensitive(self):
        a = make_analysis(is_checkout_page=True)  # medium on checkout
        assert not should_intervene(a, threshold_for_preset("medium"))
        assert should_intervene(a, threshold_for_preset("low"))

    def test_high_preset_is_relaxed(self):
        a = make_analysis(is_checkout_page=True, urgency_tactics=tactics(1))  # high on checkout
        assert should_intervene(a, threshold_for_preset("medium"))
        assert not should_intervene(a, threshold_for_preset("high"))

    def test_high_preset_still_fires_on_critical(self):
        a = make_analysis(is_checkout_page=True, is_shopping_site=True, cart_items=1)
        assert a.risk_level is RiskLevel.CRITICAL
        assert should_intervene(a, threshold_for_preset("high"))
