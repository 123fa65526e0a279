# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Intervention policy: should this analysis interrupt the user right now?

Three independent clauses, any one of which fires:

  1. risk level at or above ``always_at``
  2. risk level at or above ``checkout_at`` on a checkout page
  3. at least ``tactic_count`` dark patterns, whatever the score

The default threshold reproduces the stock rule: critical, or high on a
checkout page, or three or more tactics.  Settings presets shift the
levels; callers may also inject their own threshold.
"""

from __future__ import annotations

from dataclasses import dataclass

from . import PageAnalysis, RiskLevel


@dataclass(frozen=True, slots=True)
class InterventionThreshold:
    always_at: RiskLevel = RiskLevel.CRITICAL
    checkout_at: RiskLevel = RiskLevel.HIGH
    tactic_count: int = 3


DEFAULT_THRESHOLD = InterventionThreshold()

THRESHOLD_PRESETS: dict[str, InterventionThreshold] = {
    # Sensitive: medium risk interrupts at checkout, high interrupts anywhere
    "low": InterventionThreshold(always_at=RiskLevel.HIGH, checkout_at=RiskLevel.MEDIUM, tactic_count=2),
    "medium": DEFAULT_THRESHOLD,
    # Relaxed: only critical pages interrupt, tactics need to pile up
    "high": InterventionThreshold(always_at=RiskLevel.CRITICAL, checkout_at=RiskLevel.CRITICAL, tactic_count=5),
}


def threshold_for_preset(preset: str) -> InterventionThreshold:
    """Map a settings preset to a threshold. Unknown presets use the default."""
    return THRESHOLD_PRESETS.get(preset.lower(), DEFAULT_THRESHOLD)


def should_intervene(analysis: PageAnalysis, threshold: InterventionThreshold = DEFAULT_THRESHOLD) -> bool:
    level = analysis.risk_level
    if level.rank >= threshold.always_at.rank:
        return True
    if analysis.is_checkout_page and level.rank >= threshold.checkout_at.rank:
        return True
    return len(analysis.urgency_tactics) >= threshold.tactic_count
