# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SpendGuard: heuristic impulse-purchase risk scoring for web pages.

Inspects a loaded page, classifies it (shopping site, checkout, product page,
dark-pattern language, cart state), folds the signals into one additive risk
score, and decides whether to interrupt the user with a blocking overlay.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class RiskLevel(StrEnum):
    """Categorical risk bucket derived from the additive score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]


_RISK_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.CRITICAL: 3}


@dataclass(frozen=True, slots=True)
class UrgencyTactic:
    """A dark-pattern phrase found on the page."""

    phrase: str  # catalog regex source, not the matched text
    type: str  # scarcity, urgency, social_proof, exclusivity

    def to_dict(self) -> dict:
        return {"phrase": self.phrase, "type": self.type}


@dataclass(frozen=True, slots=True)
class PageAnalysis:
    """Signals extracted from one document snapshot.

    ``risk_score`` and ``risk_level`` are derived on read from the other
    fields, so they can never disagree with the signals they summarise.
    """

    url: str
    domain: str
    title: str
    timestamp: int  # ms since epoch; its local hour/weekday feed the time signals
    is_shopping_site: bool = False
    is_checkout_page: bool = False
    is_product_page: bool = False
    prices: tuple[float, ...] = ()
    cart_items: int = 0
    urgency_tactics: tuple[UrgencyTactic, ...] = ()

    @property
    def risk_score(self) -> int:
        from .risk_scorer import compute_risk_score

        return compute_risk_score(self)

    @property
    def risk_level(self) -> RiskLevel:
        from .risk_scorer import risk_level_for_score

        return risk_level_for_score(self.risk_score)

    @property
    def max_price(self) -> float:
        return max(self.prices) if self.prices else 0.0

    def to_dict(self) -> dict:
        """Wire form sent to the aggregator (camelCase keys)."""
        return {
            "url": self.url,
            "domain": self.domain,
            "title": self.title,
            "timestamp": self.timestamp,
            "isShoppingSite": self.is_shopping_site,
            "isCheckoutPage": self.is_checkout_page,
            "isProductPage": self.is_product_page,
            "prices": list(self.prices),
            "cartItems": self.cart_items,
            "urgencyTactics": [t.to_dict() for t in self.urgency_tactics],
            "riskLevel": self.risk_level.value,
        }
