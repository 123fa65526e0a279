# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Pattern catalog: static tables driving page classification and risk scoring.

Pure data.  Everything here is immutable at runtime; regexes are compiled
once at import so a malformed entry fails loudly at startup rather than
inside a page callback.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

# ---------------------------------------------------------------------------
# Shopping site detection
# ---------------------------------------------------------------------------

SHOPPING_DOMAINS: tuple[str, ...] = (
    "amazon.com",
    "amazon.co.uk",
    "amazon.ca",
    "amazon.de",
    "ebay.com",
    "ebay.co.uk",
    "walmart.com",
    "target.com",
    "bestbuy.com",
    "etsy.com",
    "shopify.com",
    "aliexpress.com",
    "wish.com",
    "wayfair.com",
    "nordstrom.com",
    "macys.com",
    "zappos.com",
    "nike.com",
    "adidas.com",
    "costco.com",
    "sephora.com",
    "ulta.com",
    "homedepot.com",
    "lowes.com",
    "newegg.com",
    "overstock.com",
)

# Unknown domains need at least SHOPPING_INDICATOR_MIN of these in the text
SHOPPING_INDICATORS: tuple[str, ...] = ("add to cart", "buy now", "shopping cart", "checkout", "price")
SHOPPING_INDICATOR_MIN = 2

# ---------------------------------------------------------------------------
# Checkout / product page detection
# ---------------------------------------------------------------------------

CHECKOUT_URL_KEYWORDS: tuple[str, ...] = (
    "checkout",
    "cart",
    "basket",
    "bag",
    "payment",
    "billing",
    "shipping",
    "order",
    "purchase",
    "buy now",
    "add to cart",
)

CHECKOUT_TEXT_PHRASES: tuple[str, ...] = ("complete your order", "payment method", "billing address")

PRODUCT_INDICATORS: tuple[str, ...] = (
    "add to cart",
    "add to bag",
    "buy now",
    "in stock",
    "out of stock",
    "quantity",
)
PRODUCT_INDICATOR_MIN = 2

# ---------------------------------------------------------------------------
# Prices
# ---------------------------------------------------------------------------

PRICE_RE = re.compile(r"\$[\d,]+\.?\d*")
MAX_VALID_PRICE = 100_000  # exclusive; filters phone numbers / IDs read as currency
MAX_PRICES = 20
HIGH_PRICE = 100  # strictly greater than this counts as a high-price item

# ---------------------------------------------------------------------------
# Cart line items
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AttrSelector:
    """Attribute-substring selector, i.e. CSS ``[attr*="needle"]``."""

    attr: str
    needle: str

    @property
    def css(self) -> str:
        return f'[{self.attr}*="{self.needle}"]'


CART_ITEM_SELECTORS: tuple[AttrSelector, ...] = (
    AttrSelector("class", "cart-item"),
    AttrSelector("class", "cart_item"),
    AttrSelector("class", "basket-item"),
    AttrSelector("data-testid", "cart"),
    AttrSelector("id", "cart-item"),
)

# ---------------------------------------------------------------------------
# Dark patterns (urgency tactics)
# ---------------------------------------------------------------------------


class TacticType(StrEnum):
    SCARCITY = "scarcity"
    URGENCY = "urgency"
    SOCIAL_PROOF = "social_proof"
    EXCLUSIVITY = "exclusivity"


@dataclass(frozen=True, slots=True)
class TacticDef:
    """A catalog phrase (regex source) and the manipulation type it signals."""

    phrase: str
    type: TacticType
    pattern: re.Pattern[str]


def _tactic(phrase: str, tactic_type: TacticType) -> TacticDef:
    return TacticDef(phrase=phrase, type=tactic_type, pattern=re.compile(phrase, re.IGNORECASE))


URGENCY_TACTICS: tuple[TacticDef, ...] = (
    _tactic("only .* left", TacticType.SCARCITY),
    _tactic("limited time", TacticType.URGENCY),
    _tactic("sale ends", TacticType.URGENCY),
    _tactic("hurry", TacticType.URGENCY),
    _tactic("last chance", TacticType.URGENCY),
    _tactic("selling fast", TacticType.SCARCITY),
    _tactic("in high demand", TacticType.SOCIAL_PROOF),
    _tactic("people are viewing", TacticType.SOCIAL_PROOF),
    _tactic("people bought", TacticType.SOCIAL_PROOF),
    _tactic("flash sale", TacticType.URGENCY),
    _tactic("today only", TacticType.URGENCY),
    _tactic("exclusive offer", TacticType.EXCLUSIVITY),
    _tactic("members only", TacticType.EXCLUSIVITY),
)

# ---------------------------------------------------------------------------
# Risk weights and thresholds
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RiskWeights:
    """Point values per signal for the additive risk model."""

    shopping_site: int = 20
    checkout_page: int = 40
    product_page: int = 15
    high_price_item: int = 15
    urgency_tactic: int = 10  # per matched tactic, uncapped
    cart_items: int = 20
    late_night: int = 15
    weekend: int = 5


RISK_WEIGHTS = RiskWeights()

# Minimum score per level, checked highest first
RISK_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("critical", 70),
    ("high", 50),
    ("medium", 30),
)

LATE_NIGHT_START_HOUR = 22  # inclusive, through midnight
LATE_NIGHT_END_HOUR = 5  # inclusive
WEEKEND_DAYS: frozenset[int] = frozenset({5, 6})  # datetime.weekday(): Saturday, Sunday

# ---------------------------------------------------------------------------
# Click classification (checkout interception, add-to-cart tracking)
# ---------------------------------------------------------------------------

CHECKOUT_BUTTON_TEXT: tuple[str, ...] = (
    "checkout",
    "check out",
    "sign in to",
    "proceed",
    "place order",
    "place your order",
    "complete purchase",
    "complete order",
    "buy now",
    "buy it now",
    "submit order",
    "pay now",
    "pay $",
    "continue to payment",
    "continue to checkout",
    "go to checkout",
    "view cart",
    "view bag",
    "start checkout",
)
CHECKOUT_BUTTON_CLASSES: tuple[str, ...] = ("checkout", "proceed", "buy-now", "place-order")
CHECKOUT_BUTTON_IDS: tuple[str, ...] = ("checkout", "buy-now", "place-order")
CHECKOUT_BUTTON_HREFS: tuple[str, ...] = ("checkout", "/buy/", "/cart", "/basket", "/bag")

ADD_TO_CART_TEXT: tuple[str, ...] = ("add to cart", "add to bag")
ADD_TO_CART_CLASSES: tuple[str, ...] = ("add-to-cart",)

CHECKOUT_FORM_ACTIONS: tuple[str, ...] = ("checkout", "payment")

# ---------------------------------------------------------------------------
# Overlay copy
# ---------------------------------------------------------------------------

REFLECTION_QUESTIONS: tuple[str, ...] = (
    "Did I plan to buy this before visiting?",
    "Can I wait 24 hours before purchasing?",
    "Is this a need or a want?",
    "How will I feel about this purchase next week?",
)

RISK_TITLES: dict[str, str] = {
    "critical": "High Impulse Risk Detected",
    "high": "Elevated Spending Risk",
    "medium": "Shopping Alert",
    "low": "Low Risk",
}

# Autonomy denials, keyed by decision action
DECISION_TITLES: dict[str, str] = {
    "redirect_away": "SpendGuard is Taking Action",
    "block_checkout": "Checkout Blocked",
    "require_cooloff": "Cooling-Off Period",
}

DENY_MESSAGE = "SpendGuard blocked this checkout to protect your financial goals."
BLOCK_HELP_TEXT = "This is helping you stick to your financial goals."

REDIRECT_EXPLANATIONS: dict[str, str] = {
    "time_limit_exceeded": (
        "You've exceeded your daily shopping time limit. Taking breaks helps you make better financial decisions."
    ),
    "daily_limit_exceeded": (
        "You've reached your spending limit for today. This helps you stay within your budget."
    ),
    "high_risk_detected": (
        "The AI detected patterns associated with impulse purchases. "
        "Taking a step back now can prevent buyer's regret."
    ),
}

COOLOFF_PROMPTS: tuple[str, ...] = (
    "Is this purchase aligned with my financial goals?",
    "Will I still want this item next week?",
    "Is there a more affordable alternative?",
    "Am I buying this out of emotion or necessity?",
)

REDIRECT_COUNTDOWN_S = 5
DEFAULT_COOLOFF_MINUTES = 5

# ---------------------------------------------------------------------------
# Hosts never monitored (the SpendGuard dashboard and its API)
# ---------------------------------------------------------------------------

EXCLUDED_HOSTNAMES: tuple[str, ...] = ("localhost",)
EXCLUDED_PORTS: tuple[str, ...] = ("5173", "3001")

NEUTRAL_DESTINATION = "https://www.google.com"
DASHBOARD_URL = "http://localhost:5173"
