# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Aggregator message types, TypedDict payload definitions, and builder functions."""

from __future__ import annotations

from typing import Any, TypedDict

from . import PageAnalysis

# ── Message type constants ───────────────────────────────────────

# Content → aggregator
PAGE_ANALYSIS = "PAGE_ANALYSIS"
SESSION_UPDATE = "SESSION_UPDATE"
CART_INTERACTION = "CART_INTERACTION"
CHECKOUT_ATTEMPT = "CHECKOUT_ATTEMPT"
LEAVE_SITE = "LEAVE_SITE"
INTERVENTION_SHOWN = "INTERVENTION_SHOWN"
CHECKOUT_BLOCKED = "CHECKOUT_BLOCKED"
AUTONOMY_OVERRIDE = "AUTONOMY_OVERRIDE"

# Queries answered by the aggregator
GET_STATS = "GET_STATS"
GET_SETTINGS = "GET_SETTINGS"
UPDATE_SETTINGS = "UPDATE_SETTINGS"

REPORTED_TYPES = frozenset(
    {
        PAGE_ANALYSIS,
        SESSION_UPDATE,
        CART_INTERACTION,
        CHECKOUT_ATTEMPT,
        LEAVE_SITE,
        INTERVENTION_SHOWN,
        CHECKOUT_BLOCKED,
        AUTONOMY_OVERRIDE,
    }
)


# ── TypedDict payload definitions ────────────────────────────────


class PageAnalysisMessage(TypedDict):
    type: str
    data: dict[str, Any]
    session: dict[str, Any]


class SessionUpdateMessage(TypedDict):
    type: str
    session: dict[str, Any]


class CartInteractionData(TypedDict):
    action: str
    url: str
    timestamp: int


class CartInteractionMessage(TypedDict):
    type: str
    data: CartInteractionData


class CheckoutAttemptData(TypedDict):
    url: str
    timestamp: int
    source: str  # "click" | "form"


class CheckoutAttemptMessage(TypedDict):
    type: str
    data: CheckoutAttemptData


class LeaveSiteMessage(TypedDict):
    type: str


class InterventionShownMessage(TypedDict):
    type: str
    data: dict[str, Any]


class CheckoutBlockedData(TypedDict):
    url: str
    reason: str | None
    price: float


class CheckoutBlockedMessage(TypedDict):
    type: str
    data: CheckoutBlockedData


class AutonomyOverrideMessage(TypedDict):
    type: str
    decision: dict[str, Any]


# ── Builders ─────────────────────────────────────────────────────


def page_analysis(analysis: PageAnalysis, session: dict[str, Any]) -> PageAnalysisMessage:
    return PageAnalysisMessage(type=PAGE_ANALYSIS, data=analysis.to_dict(), session=session)


def session_update(session: dict[str, Any]) -> SessionUpdateMessage:
    return SessionUpdateMessage(type=SESSION_UPDATE, session=session)


def cart_interaction(*, url: str, timestamp: int, action: str = "add_to_cart") -> CartInteractionMessage:
    return CartInteractionMessage(
        type=CART_INTERACTION,
        data=CartInteractionData(action=action, url=url, timestamp=timestamp),
    )


def checkout_attempt(*, url: str, timestamp: int, source: str) -> CheckoutAttemptMessage:
    return CheckoutAttemptMessage(
        type=CHECKOUT_ATTEMPT,
        data=CheckoutAttemptData(url=url, timestamp=timestamp, source=source),
    )


def leave_site() -> LeaveSiteMessage:
    return LeaveSiteMessage(type=LEAVE_SITE)


def intervention_shown(analysis: PageAnalysis) -> InterventionShownMessage:
    return InterventionShownMessage(type=INTERVENTION_SHOWN, data=analysis.to_dict())


def checkout_blocked(*, url: str, reason: str | None, price: float) -> CheckoutBlockedMessage:
    return CheckoutBlockedMessage(
        type=CHECKOUT_BLOCKED,
        data=CheckoutBlockedData(url=url, reason=reason, price=price),
    )


def autonomy_override(decision: dict[str, Any]) -> AutonomyOverrideMessage:
    return AutonomyOverrideMessage(type=AUTONOMY_OVERRIDE, decision=decision)
