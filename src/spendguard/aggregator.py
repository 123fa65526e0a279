# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""In-memory aggregator: daily and session counters fed by guard messages.

Implements the ``AggregatorSink`` contract.  Nothing is persisted; a new
process starts from zero.  Day rollover (checked on every message) archives
the finished day into a rolling seven-entry weekly trend.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any

from . import events as ev
from .catalog import HIGH_PRICE

logger = logging.getLogger(__name__)

WEEKLY_TREND_DAYS = 7

DEFAULT_AGGREGATOR_SETTINGS: dict[str, Any] = {
    "enabled": True,
    "interventionThreshold": "medium",
    "coolingOffPeriod": 30,
}


def _new_id() -> str:
    return f"sg_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


@dataclass
class DailyStats:
    date: str
    shoppingSitesVisited: int = 0  # noqa: N815 - wire names
    totalTimeOnShoppingSites: int = 0  # noqa: N815
    cartInteractions: int = 0  # noqa: N815
    checkoutAttempts: int = 0  # noqa: N815
    interventionsShown: int = 0  # noqa: N815
    purchasesPrevented: int = 0  # noqa: N815
    checkoutsBlocked: int = 0  # noqa: N815
    autonomyOverrides: int = 0  # noqa: N815
    totalPotentialSpend: float = 0.0  # noqa: N815
    riskEvents: list[dict] = field(default_factory=list)  # noqa: N815


@dataclass
class AggregateSession:
    id: str = field(default_factory=_new_id)
    startTime: int = field(default_factory=lambda: int(time.time() * 1000))  # noqa: N815
    pagesVisited: int = 0  # noqa: N815
    shoppingSitesVisited: int = 0  # noqa: N815
    cartInteractions: int = 0  # noqa: N815
    checkoutAttempts: int = 0  # noqa: N815
    timeOnShoppingSites: int = 0  # noqa: N815
    totalPotentialSpend: float = 0.0  # noqa: N815
    riskEvents: list[dict] = field(default_factory=list)  # noqa: N815


class StatsAggregator:
    """Answers guard messages with ``{"success": bool}`` acks, plus stats/settings queries."""

    def __init__(self, *, today: Callable[[], date] = date.today) -> None:
        self._today = today
        self.current_session = AggregateSession()
        self.daily = DailyStats(date=today().isoformat())
        self.weekly_trends: deque[dict] = deque(maxlen=WEEKLY_TREND_DAYS)
        self.settings: dict[str, Any] = dict(DEFAULT_AGGREGATOR_SETTINGS)
        self._handlers: dict[str, Callable[[Mapping[str, Any]], dict]] = {
            ev.PAGE_ANALYSIS: self._on_page_analysis,
            ev.SESSION_UPDATE: self._on_session_update,
            ev.CART_INTERACTION: self._on_cart_interaction,
            ev.CHECKOUT_ATTEMPT: self._on_checkout_attempt,
            ev.LEAVE_SITE: self._on_leave_site,
            ev.INTERVENTION_SHOWN: self._on_intervention_shown,
            ev.CHECKOUT_BLOCKED: self._on_checkout_blocked,
            ev.AUTONOMY_OVERRIDE: self._on_autonomy_override,
            ev.GET_STATS: lambda _m: self.stats(),
            ev.GET_SETTINGS: lambda _m: dict(self.settings),
            ev.UPDATE_SETTINGS: self._on_update_settings,
        }

    def handle(self, message: Mapping[str, Any]) -> dict:
        self._roll_day()
        handler = self._handlers.get(message.get("type", ""))
        if handler is None:
            return {"success": False, "error": "Unknown message type"}
        return handler(message)

    def stats(self) -> dict:
        return {
            "currentSession": asdict(self.current_session),
            "dailyStats": asdict(self.daily),
            "weeklyTrends": list(self.weekly_trends),
            "settings": dict(self.settings),
        }

    def start_new_session(self) -> None:
        self.current_session = AggregateSession()

    # ── Day rollover ────────────────────────────────────────────

    def _roll_day(self) -> None:
        today = self._today().isoformat()
        if self.daily.date == today:
            return
        logger.debug("Archiving daily stats for %s", self.daily.date)
        self.weekly_trends.append(asdict(self.daily))
        self.daily = DailyStats(date=today)

    # ── Handlers ────────────────────────────────────────────────

    def _on_page_analysis(self, message: Mapping[str, Any]) -> dict:
        data = message.get("data")
        if not data:
            return {"success": False, "error": "Missing analysis"}

        self.current_session.pagesVisited += 1
        if data.get("isShoppingSite"):
            self.current_session.shoppingSitesVisited += 1
            self.daily.shoppingSitesVisited += 1

        prices = data.get("prices") or []
        if prices:
            top = max(prices)
            self.current_session.totalPotentialSpend += top
            self.daily.totalPotentialSpend += top

        if data.get("riskLevel") in ("high", "critical"):
            risk_event = {
                "id": _new_id(),
                "timestamp": int(time.time() * 1000),
                "url": data.get("url", ""),
                "domain": data.get("domain", ""),
                "riskLevel": data["riskLevel"],
                "factors": {
                    "isCheckout": bool(data.get("isCheckoutPage")),
                    "urgencyTactics": len(data.get("urgencyTactics") or []),
                    "highPrices": any(p > HIGH_PRICE for p in prices),
                },
            }
            self.current_session.riskEvents.append(risk_event)
            self.daily.riskEvents.append(risk_event)
        return {"success": True}

    def _on_session_update(self, message: Mapping[str, Any]) -> dict:
        session = message.get("session")
        if session:
            seconds = int(session.get("timeOnShoppingSites", 0))
            self.current_session.timeOnShoppingSites = seconds
            self.daily.totalTimeOnShoppingSites = seconds
        return {"success": True}

    def _on_cart_interaction(self, _message: Mapping[str, Any]) -> dict:
        self.current_session.cartInteractions += 1
        self.daily.cartInteractions += 1
        return {"success": True}

    def _on_checkout_attempt(self, _message: Mapping[str, Any]) -> dict:
        self.current_session.checkoutAttempts += 1
        self.daily.checkoutAttempts += 1
        return {"success": True}

    def _on_leave_site(self, _message: Mapping[str, Any]) -> dict:
        self.daily.purchasesPrevented += 1
        return {"success": True}

    def _on_intervention_shown(self, _message: Mapping[str, Any]) -> dict:
        self.daily.interventionsShown += 1
        return {"success": True}

    def _on_checkout_blocked(self, message: Mapping[str, Any]) -> dict:
        # A blocked checkout is a prevented purchase
        self.daily.checkoutsBlocked += 1
        self.daily.purchasesPrevented += 1
        data = message.get("data") or {}
        logger.info("Checkout blocked on %s (%s)", data.get("url", "?"), data.get("reason") or "no reason")
        return {"success": True}

    def _on_autonomy_override(self, _message: Mapping[str, Any]) -> dict:
        self.daily.autonomyOverrides += 1
        return {"success": True}

    def _on_update_settings(self, message: Mapping[str, Any]) -> dict:
        self.settings.update(message.get("data") or {})
        return {"success": True, "settings": dict(self.settings)}
