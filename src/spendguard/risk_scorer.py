# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Additive risk scorer.

Each fired signal adds its catalog weight; the total is not clamped.  The
two time signals read the local hour and weekday of the analysis
timestamp, which keeps the score a pure function of the analysis.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from . import RiskLevel
from .catalog import (
    HIGH_PRICE,
    LATE_NIGHT_END_HOUR,
    LATE_NIGHT_START_HOUR,
    RISK_THRESHOLDS,
    RISK_WEIGHTS,
    WEEKEND_DAYS,
    RiskWeights,
)

if TYPE_CHECKING:
    from . import PageAnalysis


@dataclass(frozen=True, slots=True)
class RiskAssessment:
    """Score, level, and the factors that produced them."""

    score: int
    level: RiskLevel
    factors: tuple[tuple[str, int], ...]  # (factor name, points) in scoring order


def _local_time(timestamp_ms: int) -> datetime:
    return datetime.fromtimestamp(timestamp_ms / 1000)


def is_late_night(hour: int) -> bool:
    return hour >= LATE_NIGHT_START_HOUR or hour <= LATE_NIGHT_END_HOUR


def _factors(analysis: PageAnalysis, weights: RiskWeights) -> list[tuple[str, int]]:
    fired: list[tuple[str, int]] = []
    if analysis.is_shopping_site:
        fired.append(("shopping_site", weights.shopping_site))
    if analysis.is_checkout_page:
        fired.append(("checkout_page", weights.checkout_page))
    if analysis.is_product_page:
        fired.append(("product_page", weights.product_page))
    if any(p > HIGH_PRICE for p in analysis.prices):
        fired.append(("high_price_item", weights.high_price_item))
    if analysis.urgency_tactics:
        fired.append(("urgency_tactics", len(analysis.urgency_tactics) * weights.urgency_tactic))
    if analysis.cart_items > 0:
        fired.append(("cart_items", weights.cart_items))

    local = _local_time(analysis.timestamp)
    if is_late_night(local.hour):
        fired.append(("late_night", weights.late_night))
    if local.weekday() in WEEKEND_DAYS:
        fired.append(("weekend", weights.weekend))
    return fired


def compute_risk_score(analysis: PageAnalysis, weights: RiskWeights = RISK_WEIGHTS) -> int:
    return sum(points for _, points in _factors(analysis, weights))


def risk_level_for_score(score: int) -> RiskLevel:
    for level, minimum in RISK_THRESHOLDS:
        if score >= minimum:
            return RiskLevel(level)
    return RiskLevel.LOW


def explain_risk(analysis: PageAnalysis, weights: RiskWeights = RISK_WEIGHTS) -> RiskAssessment:
    """Score plus the named factors behind it (for reports and the CLI)."""
    factors = tuple(_factors(analysis, weights))
    score = sum(points for _, points in factors)
    return RiskAssessment(score=score, level=risk_level_for_score(score), factors=factors)
