# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page guard: one per document, owns everything that lives as long as the page.

    start ─▶ run_analysis ─▶ PAGE_ANALYSIS ─▶ every 5s: SESSION_UPDATE
                 ▲
    significant change batch ──┘

``run_analysis`` is the whole analyze → score → policy → maybe-show
sequence and runs to completion synchronously, so two analyses never
interleave.  The autonomy checks (once on load for shopping sites, then on
each checkout attempt) are the only awaited calls, and ``check_autonomy``
bounds them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum

import structlog

from . import PageAnalysis, RiskLevel
from .autonomy import (
    ALLOW,
    UNKNOWN_PRICE_SENTINEL,
    AutonomyChecker,
    AutonomyContext,
    AutonomyDecision,
    AutonomyRequest,
    check_autonomy,
)
from .catalog import (
    ADD_TO_CART_CLASSES,
    ADD_TO_CART_TEXT,
    CHECKOUT_BUTTON_CLASSES,
    CHECKOUT_BUTTON_HREFS,
    CHECKOUT_BUTTON_IDS,
    CHECKOUT_BUTTON_TEXT,
    CHECKOUT_FORM_ACTIONS,
)
from .change_watcher import ChangeWatcher, MutationRecord
from .document import PageDocument, hostname_of, port_of
from .intervention_policy import should_intervene
from .overlay import Overlay, OverlayRenderer
from .reporter import AggregatorSink, EventReporter
from .scheduler import Scheduler, TimerHandle
from .session import SessionData
from .settings import GuardSettings
from .signal_extractor import analyze_page

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Click / submit classification
# ---------------------------------------------------------------------------


class ClickKind(StrEnum):
    CHECKOUT = "checkout"
    ADD_TO_CART = "add_to_cart"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class ClickTarget:
    """The clicked element (nearest button/link ancestor), as plain strings."""

    text: str = ""
    class_name: str = ""
    element_id: str = ""
    href: str = ""
    data_action: str = ""
    name: str = ""


def is_checkout_button(target: ClickTarget) -> bool:
    text = target.text.lower()
    cls = target.class_name.lower()
    el_id = target.element_id.lower()
    href = target.href.lower()
    return (
        any(p in text for p in CHECKOUT_BUTTON_TEXT)
        or any(p in cls for p in CHECKOUT_BUTTON_CLASSES)
        or any(p in el_id for p in CHECKOUT_BUTTON_IDS)
        or any(p in href for p in CHECKOUT_BUTTON_HREFS)
        or "checkout" in target.data_action
        or "checkout" in target.name
    )


def is_add_to_cart(target: ClickTarget) -> bool:
    text = target.text.lower()
    cls = target.class_name.lower()
    return any(p in text for p in ADD_TO_CART_TEXT) or any(p in cls for p in ADD_TO_CART_CLASSES)


def classify_click(target: ClickTarget) -> ClickKind:
    # Checkout wins: "Buy now" buttons often also carry add-to-cart classes
    if is_checkout_button(target):
        return ClickKind.CHECKOUT
    if is_add_to_cart(target):
        return ClickKind.ADD_TO_CART
    return ClickKind.OTHER


def is_checkout_form(action_url: str) -> bool:
    # Case-sensitive, as form.action.includes()
    return any(p in action_url for p in CHECKOUT_FORM_ACTIONS)


# ---------------------------------------------------------------------------
# Guard
# ---------------------------------------------------------------------------


class PageGuard:
    def __init__(
        self,
        document: PageDocument,
        *,
        renderer: OverlayRenderer,
        scheduler: Scheduler,
        settings: GuardSettings | None = None,
        sink: AggregatorSink | None = None,
        autonomy: AutonomyChecker | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.document = document
        self.settings = settings or GuardSettings()
        self._scheduler = scheduler
        self._autonomy = autonomy
        self._clock = clock
        self.session = SessionData(start_time=self._now_ms())
        self.reporter = EventReporter(sink)
        self.overlay = Overlay(
            renderer,
            scheduler,
            self.reporter,
            pause_seconds=self.settings.cooling_off_seconds,
            leave_destination=self.settings.leave_destination,
            dashboard_url=self.settings.dashboard_url,
            clock=clock,
        )
        self.watcher = ChangeWatcher(self.run_analysis)
        self.analysis: PageAnalysis | None = None
        self._tick: TimerHandle | None = None
        self.enforcement: asyncio.Task | None = None
        self.started = False

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @property
    def url(self) -> str:
        try:
            return self.document.url
        except Exception:
            return ""

    def is_excluded(self) -> bool:
        """The SpendGuard dashboard itself (excluded host on an excluded port)."""
        url = self.url
        return hostname_of(url) in self.settings.excluded_hostnames and port_of(url) in self.settings.excluded_ports

    # ── lifecycle ───────────────────────────────────────────────

    def start(self) -> PageAnalysis | None:
        """Analyze, report, and start the session tick. None on excluded hosts."""
        if self.started:
            return self.analysis
        if self.is_excluded():
            logger.info("Skipping excluded host %s", self.url)
            return None
        structlog.contextvars.bind_contextvars(domain=hostname_of(self.url))
        self.started = True
        analysis = self.run_analysis()
        self.reporter.page_analysis(analysis, self.session.to_dict())
        self._tick = self._scheduler.call_every(self.settings.session_update_interval_s, self._session_tick)
        if analysis.is_shopping_site:
            self._schedule_enforcement()
        return analysis

    def _schedule_enforcement(self) -> None:
        if self._autonomy is None or not self.settings.enabled:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, skipping the page-load autonomy check")
            return
        self.enforcement = loop.create_task(self.enforce_autonomy())

    def teardown(self) -> None:
        if self._tick is not None:
            self._tick.cancel()
            self._tick = None
        if self.enforcement is not None and not self.enforcement.done():
            self.enforcement.cancel()
        self.enforcement = None
        self.overlay.teardown()
        self.watcher.stop()
        structlog.contextvars.unbind_contextvars("domain")
        self.started = False

    # ── analysis ────────────────────────────────────────────────

    def run_analysis(self) -> PageAnalysis:
        analysis = analyze_page(self.document, now_ms=self._now_ms())
        self.analysis = analysis
        self.session.record_analysis(analysis)
        level = analysis.risk_level
        logger.debug("Risk %s (%d) for %s", level, analysis.risk_score, analysis.url)
        if self.settings.enabled and should_intervene(analysis, self.settings.threshold):
            self.overlay.show(analysis, self.session)
        return analysis

    def on_change_batch(self, batch: Iterable[MutationRecord]) -> bool:
        return self.watcher.deliver(batch)

    def _session_tick(self) -> None:
        on_shopping = self.analysis is not None and self.analysis.is_shopping_site
        self.session.record_tick(self.settings.session_update_interval_s, on_shopping)
        self.reporter.session_update(self.session.to_dict())

    # ── user actions ────────────────────────────────────────────

    def handle_click(self, target: ClickTarget) -> ClickKind:
        """Record a click. Checkout clicks still need ``evaluate_checkout`` before proceeding."""
        kind = classify_click(target)
        if kind is ClickKind.ADD_TO_CART:
            self.session.record_cart_interaction()
            self.reporter.cart_interaction(url=self.url, timestamp=self._now_ms())
        elif kind is ClickKind.CHECKOUT:
            logger.info("Checkout click intercepted: %.50s", target.text.strip())
            self.reporter.checkout_attempt(url=self.url, timestamp=self._now_ms(), source="click")
        return kind

    def handle_submit(self, action_url: str) -> bool:
        """True when the submitted form is a checkout/payment form."""
        if not is_checkout_form(action_url):
            return False
        self.reporter.checkout_attempt(url=self.url, timestamp=self._now_ms(), source="form")
        return True

    async def on_click(self, target: ClickTarget) -> AutonomyDecision | None:
        """``handle_click`` plus the autonomy check for checkout clicks."""
        if self.handle_click(target) is not ClickKind.CHECKOUT:
            return None
        return await self.evaluate_checkout(source="click")

    async def on_submit(self, action_url: str) -> AutonomyDecision | None:
        if not self.handle_submit(action_url):
            return None
        return await self.evaluate_checkout(source="form")

    def autonomy_request(self, *, action: str = "checkout", source: str | None = "click") -> AutonomyRequest:
        analysis = self.analysis
        current_price = analysis.max_price if analysis is not None else 0.0
        if current_price == 0 and source == "click":
            # No visible price at a checkout click: assume it is over any limit
            current_price = UNKNOWN_PRICE_SENTINEL
        return AutonomyRequest(
            action=action,
            context=AutonomyContext(
                total_spent_today=sum(self.session.prices_viewed),
                time_on_shopping_sites=self.session.time_on_shopping_sites,
                current_price=current_price,
                risk_level=self._risk_level().value,
            ),
        )

    def _risk_level(self) -> RiskLevel:
        return self.analysis.risk_level if self.analysis is not None else RiskLevel.MEDIUM

    async def enforce_autonomy(self) -> AutonomyDecision:
        """Page-load check: ``checkout`` on checkout pages, ``browse`` elsewhere."""
        analysis = self.analysis
        action = "checkout" if analysis is not None and analysis.is_checkout_page else "browse"
        decision = await check_autonomy(
            self._autonomy,
            self.autonomy_request(action=action, source=None),
            self.settings.autonomy_timeout_s,
        )
        if not decision.allow and self.started:
            logger.info("Autonomy service denied %s: %s", action, decision.reason or "no reason given")
            self.overlay.show_decision(decision, self.session, risk_level=self._risk_level())
        return decision

    async def evaluate_checkout(self, *, source: str = "click") -> AutonomyDecision:
        """Ask the autonomy service whether this checkout may proceed.

        Consulted on every checkout attempt while protection is enabled,
        whatever the page looks like; every failure allows.  A deny replaces
        any visible overlay with the enforcement view for the decision's
        action and reports ``CHECKOUT_BLOCKED``.
        """
        if not self.settings.enabled:
            return ALLOW
        request = self.autonomy_request(source=source)
        decision = await check_autonomy(self._autonomy, request, self.settings.autonomy_timeout_s)
        if not decision.allow:
            logger.info("Checkout denied: %s", decision.reason or "no reason given")
            self.overlay.show_decision(decision, self.session, risk_level=self._risk_level())
            self.reporter.checkout_blocked(
                url=self.url,
                reason=decision.reason,
                price=request.context.current_price,
            )
        return decision
