# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the additive risk scorer and level buckets."""

from __future__ import annotations

import pytest
from _helpers import (
    SATURDAY_NOON,
    SUNDAY_NOON,
    WEEKDAY_EARLY,
    WEEKDAY_LATE,
    WEEKDAY_NOON,
    WEEKDAY_SIX,
    local_ms,
    make_analysis,
    tactics,
)
from hypothesis import given
from hypothesis import strategies as st

from spendguard import RiskLevel
from spendguard.catalog import RiskWeights
from spendguard.risk_scorer import compute_risk_score, explain_risk, is_late_night, risk_level_for_score


class TestWeights:
    def test_no_signals_scores_zero(self):
        assert compute_risk_score(make_analysis()) == 0

    def test_each_flag(self):
        assert compute_risk_score(make_analysis(is_shopping_site=True)) == 20
        assert compute_risk_score(make_analysis(is_checkout_page=True)) == 40
        assert compute_risk_score(make_analysis(is_product_page=True)) == 15
        assert compute_risk_score(make_analysis(cart_items=7)) == 20

    def test_high_price_is_strictly_over_100(self):
        assert compute_risk_score(make_analysis(prices=(100.0,))) == 0
        assert compute_risk_score(make_analysis(prices=(20.0, 100.01))) == 15

    def test_high_price_counts_once(self):
        assert compute_risk_score(make_analysis(prices=(500.0, 900.0))) == 15

    def test_ten_per_tactic(self):
        assert compute_risk_score(make_analysis(urgency_tactics=tactics(4))) == 40

    def test_everything_unclamped(self):
        a = make_analysis(
            is_shopping_site=True,
            is_checkout_page=True,
            is_product_page=True,
            prices=(250.0,),
            cart_items=1,
            urgency_tactics=tactics(13),
            timestamp=local_ms(2025, 6, 7, 23),  # Saturday late
        )
        assert compute_risk_score(a) == 20 + 40 + 15 + 15 + 130 + 20 + 15 + 5

    def test_custom_weights(self):
        weights = RiskWeights(shopping_site=1, checkout_page=2)
        a = make_analysis(is_shopping_site=True, is_checkout_page=True)
        assert compute_risk_score(a, weights) == 3


class TestTimeSignals:
    @pytest.mark.parametrize(
        ("hour", "late"),
        [(0, True), (5, True), (6, False), (12, False), (21, False), (22, True), (23, True)],
    )
    def test_late_night_hours(self, hour, late):
        assert is_late_night(hour) is late

    def test_late_evening(self):
        assert compute_risk_score(make_analysis(timestamp=WEEKDAY_LATE)) == 15

    def test_early_morning_edge(self):
        assert compute_risk_score(make_analysis(timestamp=WEEKDAY_EARLY)) == 15
        assert compute_risk_score(make_analysis(timestamp=WEEKDAY_SIX)) == 0

    def test_weekend(self):
        assert compute_risk_score(make_analysis(timestamp=SATURDAY_NOON)) == 5
        assert compute_risk_score(make_analysis(timestamp=SUNDAY_NOON)) == 5
        assert compute_risk_score(make_analysis(timestamp=WEEKDAY_NOON)) == 0


class TestLevels:
    @pytest.mark.parametrize(
        ("score", "level"),
        [
            (0, RiskLevel.LOW),
            (29, RiskLevel.LOW),
            (30, RiskLevel.MEDIUM),
            (49, RiskLevel.MEDIUM),
            (50, RiskLevel.HIGH),
            (69, RiskLevel.HIGH),
            (70, RiskLevel.CRITICAL),
            (500, RiskLevel.CRITICAL),
        ],
    )
    def test_boundaries(self, score, level):
        assert risk_level_for_score(score) is level

    def test_analysis_level_matches_score(self):
        a = make_analysis(is_checkout_page=True, urgency_tactics=tactics(1))
        assert a.risk_score == 50
        assert a.risk_level is RiskLevel.HIGH

    @given(st.integers(min_value=0, max_value=12))
    def test_monotone_in_tactics(self, n):
        base = make_analysis(is_shopping_site=True, urgency_tactics=tactics(n))
        more = make_analysis(is_shopping_site=True, urgency_tactics=tactics(n + 1))
        assert more.risk_score == base.risk_score + 10
        assert more.risk_level.rank >= base.risk_level.rank


class TestExplainRisk:
    def test_factors_in_scoring_order(self):
        a = make_analysis(
            is_shopping_site=True,
            is_checkout_page=True,
            urgency_tactics=tactics(2),
            timestamp=WEEKDAY_LATE,
        )
        result = explain_risk(a)
        assert result.factors == (
            ("shopping_site", 20),
            ("checkout_page", 40),
            ("urgency_tactics", 20),
            ("late_night", 15),
        )
        assert result.score == 95 == a.risk_score
        assert result.level is RiskLevel.CRITICAL

    def test_empty(self):
        result = explain_risk(make_analysis())
        assert result.factors == ()
        assert result.level is RiskLevel.LOW
