# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Intervention overlay state machine.

    hidden ──show──▶ shown ──pause──▶ reflecting(N) ──tick×N──▶ reflection_complete
       ▲                │                  │                          │
       └──── continue / close / leave ◀────┴──────────────────────────┘

At most one overlay per document: ``show`` outside ``hidden`` does nothing.
Reflection never dismisses the overlay by itself; the user still has to
choose continue or leave.

An autonomy deny goes through ``show_decision`` instead, which replaces
whatever is showing:

    redirect_away    ──▶ redirecting(5) ──tick×5──▶ navigate to the dashboard
                           └─ override ──▶ hidden (AUTONOMY_OVERRIDE)
    block_checkout   ──▶ blocked
    require_cooloff  ──▶ cooling_off(N) ──tick×N──▶ cooloff_complete ──proceed──▶ hidden

Rendering goes through an ``OverlayRenderer``.  A renderer failure is
logged and the state stays where it was, so a failed mount leaves the
overlay hidden and a failed unmount leaves it visible.  Hosts that mount
asynchronously report a mount that never reached the page through
``mount_failed``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol
from urllib.parse import urlencode

from . import PageAnalysis, RiskLevel
from .autonomy import AutonomyDecision, DenyAction
from .catalog import (
    BLOCK_HELP_TEXT,
    COOLOFF_PROMPTS,
    DASHBOARD_URL,
    DECISION_TITLES,
    DENY_MESSAGE,
    NEUTRAL_DESTINATION,
    REDIRECT_COUNTDOWN_S,
    REDIRECT_EXPLANATIONS,
    REFLECTION_QUESTIONS,
    RISK_TITLES,
)

if TYPE_CHECKING:
    from .reporter import EventReporter
    from .scheduler import Scheduler, TimerHandle
    from .session import SessionData

logger = logging.getLogger(__name__)

DEFAULT_PAUSE_SECONDS = 30
REFLECT_TICK_S = 1.0


class OverlayState(StrEnum):
    HIDDEN = "hidden"
    SHOWN = "shown"
    REFLECTING = "reflecting"
    REFLECTION_COMPLETE = "reflection_complete"
    # autonomy denials
    REDIRECTING = "redirecting"
    BLOCKED = "blocked"
    COOLING_OFF = "cooling_off"
    COOLOFF_COMPLETE = "cooloff_complete"


_RISK_STATES = frozenset({OverlayState.SHOWN, OverlayState.REFLECTING, OverlayState.REFLECTION_COMPLETE})
_COUNTDOWN_STATES = frozenset({OverlayState.REFLECTING, OverlayState.REDIRECTING, OverlayState.COOLING_OFF})


class OverlayAction(StrEnum):
    """Button actions a renderer reports back."""

    PAUSE = "pause"
    CONTINUE = "continue"
    LEAVE = "leave"
    CLOSE = "close"
    REDIRECT_NOW = "redirect_now"
    OVERRIDE = "override"
    DASHBOARD = "dashboard"
    PROCEED = "proceed"


@dataclass(frozen=True, slots=True)
class OverlayButton:
    action: OverlayAction
    label: str
    disabled: bool = False


@dataclass(frozen=True, slots=True)
class OverlayView:
    """Everything a renderer needs to draw the overlay."""

    risk_level: RiskLevel
    title: str
    message: str
    tactics: tuple[tuple[str, str], ...]  # (type, phrase)
    highest_price: float | None
    total_viewed: float | None
    questions: tuple[str, ...]
    buttons: tuple[OverlayButton, ...]
    session_minutes: int
    shopping_sites: int
    kind: str = "risk"  # or a DenyAction value
    notes: tuple[str, ...] = ()
    countdown: str | None = None

    @property
    def closable(self) -> bool:
        return self.kind == "risk"

    def price_lines(self) -> tuple[str, ...]:
        if self.highest_price is None or self.total_viewed is None:
            return ()
        return (f"Highest: ${self.highest_price:.2f}", f"Total viewed: ${self.total_viewed:.2f}")

    def stats_lines(self) -> tuple[str, str]:
        return (f"Session: {self.session_minutes} min", f"Shopping sites: {self.shopping_sites}")

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "closable": self.closable,
            "riskLevel": self.risk_level.value,
            "title": self.title,
            "message": self.message,
            "notes": list(self.notes),
            "tactics": [{"type": t, "phrase": p} for t, p in self.tactics],
            "prices": list(self.price_lines()),
            "questions": list(self.questions),
            "countdown": self.countdown,
            "buttons": [{"action": b.action.value, "label": b.label, "disabled": b.disabled} for b in self.buttons],
            "stats": list(self.stats_lines()),
        }


class OverlayRenderer(Protocol):
    """Host side of the overlay. Any method may raise."""

    def mount(self, view: OverlayView) -> None: ...

    def unmount(self) -> None: ...

    def set_pause_button(self, label: str, disabled: bool) -> None: ...

    def set_button(self, action: str, label: str, disabled: bool) -> None: ...

    def set_countdown(self, text: str) -> None: ...

    def navigate(self, url: str) -> None: ...


# ---------------------------------------------------------------------------
# Copy
# ---------------------------------------------------------------------------


def risk_title(level: RiskLevel) -> str:
    return RISK_TITLES.get(level.value, RISK_TITLES["medium"])


def risk_message(analysis: PageAnalysis) -> str:
    if analysis.is_checkout_page:
        return "You're about to make a purchase. Take a moment to ensure this aligns with your financial goals."
    if analysis.urgency_tactics:
        return "This page is using psychological tactics to encourage quick purchasing decisions."
    if analysis.risk_level is RiskLevel.CRITICAL:
        return "Multiple risk factors detected. Consider whether this purchase is planned and necessary."
    return "SpendGuard is monitoring your browsing to help you make mindful spending decisions."


def pause_label(seconds: int) -> str:
    return f"Pause & Reflect ({seconds}s)"


def reflecting_label(remaining: int) -> str:
    return f"Reflecting... ({remaining}s)"


def redirect_label(remaining: int) -> str:
    return f"Redirecting you in {remaining} seconds"


def cooloff_label(remaining: int) -> str:
    minutes, seconds = divmod(max(0, remaining), 60)
    return f"Time remaining: {minutes}:{seconds:02d}"


REFLECTION_COMPLETE_LABEL = "Reflection Complete"
PROCEED_LABEL = "Proceed with Purchase"


def build_view(
    analysis: PageAnalysis,
    session: SessionData,
    *,
    pause_seconds: int = DEFAULT_PAUSE_SECONDS,
    message: str | None = None,
    now_ms: int | None = None,
) -> OverlayView:
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    level = analysis.risk_level
    prices = analysis.prices
    return OverlayView(
        risk_level=level,
        title=risk_title(level),
        message=message or risk_message(analysis),
        tactics=tuple((t.type, t.phrase) for t in analysis.urgency_tactics),
        highest_price=max(prices) if prices else None,
        total_viewed=sum(prices) if prices else None,
        questions=REFLECTION_QUESTIONS,
        buttons=(
            OverlayButton(OverlayAction.PAUSE, pause_label(pause_seconds)),
            OverlayButton(OverlayAction.CONTINUE, "Continue Shopping"),
            OverlayButton(OverlayAction.LEAVE, "Leave Site"),
        ),
        session_minutes=max(0, (now_ms - session.start_time) // 60_000),
        shopping_sites=session.shopping_sites_visited,
    )


def build_decision_view(
    decision: AutonomyDecision,
    session: SessionData,
    *,
    risk_level: RiskLevel = RiskLevel.MEDIUM,
    now_ms: int | None = None,
) -> OverlayView:
    """The enforcement view for a deny, chosen by ``decision.deny_action``."""
    now_ms = now_ms if now_ms is not None else int(time.time() * 1000)
    mode = decision.deny_action
    notes: tuple[str, ...] = ()
    questions: tuple[str, ...] = ()
    countdown = None
    match mode:
        case DenyAction.REDIRECT_AWAY:
            if decision.reason in REDIRECT_EXPLANATIONS:
                notes = (REDIRECT_EXPLANATIONS[decision.reason],)
            countdown = redirect_label(REDIRECT_COUNTDOWN_S)
            buttons = (
                OverlayButton(OverlayAction.REDIRECT_NOW, "Take Me Away Now"),
                OverlayButton(OverlayAction.OVERRIDE, "Override (Not Recommended)"),
            )
        case DenyAction.REQUIRE_COOLOFF:
            questions = COOLOFF_PROMPTS
            countdown = cooloff_label(decision.cooloff_seconds)
            buttons = (
                OverlayButton(OverlayAction.PROCEED, PROCEED_LABEL, disabled=True),
                OverlayButton(OverlayAction.LEAVE, "Cancel Purchase"),
            )
        case _:
            notes = (BLOCK_HELP_TEXT,)
            buttons = (
                OverlayButton(OverlayAction.LEAVE, "Go Back to Shopping"),
                OverlayButton(OverlayAction.DASHBOARD, "View Dashboard"),
            )
    return OverlayView(
        risk_level=risk_level,
        title=DECISION_TITLES[mode.value],
        message=decision.message or DENY_MESSAGE,
        tactics=(),
        highest_price=None,
        total_viewed=None,
        questions=questions,
        buttons=buttons,
        session_minutes=max(0, (now_ms - session.start_time) // 60_000),
        shopping_sites=session.shopping_sites_visited,
        kind=mode.value,
        notes=notes,
        countdown=countdown,
    )


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class Overlay:
    def __init__(
        self,
        renderer: OverlayRenderer,
        scheduler: Scheduler,
        reporter: EventReporter | None = None,
        *,
        pause_seconds: int = DEFAULT_PAUSE_SECONDS,
        leave_destination: str = NEUTRAL_DESTINATION,
        dashboard_url: str = DASHBOARD_URL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._renderer = renderer
        self._scheduler = scheduler
        self._reporter = reporter
        self._pause_seconds = pause_seconds
        self._leave_destination = leave_destination
        self._dashboard_url = dashboard_url
        self._clock = clock
        self._state = OverlayState.HIDDEN
        self._remaining = 0
        self._timer: TimerHandle | None = None
        self.view: OverlayView | None = None
        self.decision: AutonomyDecision | None = None

    @property
    def renderer(self) -> OverlayRenderer:
        return self._renderer

    @property
    def state(self) -> OverlayState:
        return self._state

    @property
    def remaining_seconds(self) -> int:
        return self._remaining if self._state in _COUNTDOWN_STATES else 0

    @property
    def visible(self) -> bool:
        return self._state is not OverlayState.HIDDEN

    @property
    def timer_active(self) -> bool:
        return self._timer is not None

    def show(self, analysis: PageAnalysis, session: SessionData, *, message: str | None = None) -> bool:
        """Mount the overlay for *analysis*. Returns False if already visible or mount failed."""
        if self._state is not OverlayState.HIDDEN:
            return False
        view = build_view(
            analysis,
            session,
            pause_seconds=self._pause_seconds,
            message=message,
            now_ms=int(self._clock() * 1000),
        )
        if not self._mount(view):
            return False
        self._state = OverlayState.SHOWN
        logger.info("Intervention shown: %s (%s)", analysis.domain, view.risk_level)
        if self._reporter is not None:
            self._reporter.intervention_shown(analysis)
        return True

    def show_decision(
        self,
        decision: AutonomyDecision,
        session: SessionData,
        *,
        risk_level: RiskLevel = RiskLevel.MEDIUM,
    ) -> bool:
        """Replace whatever is showing with the enforcement view for a deny."""
        self._clear()
        view = build_decision_view(decision, session, risk_level=risk_level, now_ms=int(self._clock() * 1000))
        if not self._mount(view):
            return False
        self.decision = decision
        match decision.deny_action:
            case DenyAction.REDIRECT_AWAY:
                self._state = OverlayState.REDIRECTING
                self._remaining = REDIRECT_COUNTDOWN_S
                self._timer = self._scheduler.call_every(REFLECT_TICK_S, self._redirect_tick)
            case DenyAction.REQUIRE_COOLOFF:
                self._state = OverlayState.COOLING_OFF
                self._remaining = decision.cooloff_seconds
                self._timer = self._scheduler.call_every(REFLECT_TICK_S, self._cooloff_tick)
            case _:
                self._state = OverlayState.BLOCKED
        logger.info("Autonomy overlay shown: %s (%s)", view.kind, decision.reason or "no reason given")
        return True

    def mount_failed(self, view: OverlayView) -> None:
        """Host callback: the mount of *view* never reached the page."""
        if self.view is not view or self._state is OverlayState.HIDDEN:
            return
        logger.warning("Overlay %s never reached the page, resetting", view.kind)
        self._cancel_timer()
        self._reset()

    # ── reflection ──────────────────────────────────────────────

    def pause_and_reflect(self) -> bool:
        if self._state is not OverlayState.SHOWN:
            return False
        self._remaining = self._pause_seconds
        self._state = OverlayState.REFLECTING
        self._set_button(reflecting_label(self._remaining), disabled=True)
        self._timer = self._scheduler.call_every(REFLECT_TICK_S, self._tick)
        return True

    def _tick(self) -> None:
        if self._state is not OverlayState.REFLECTING:
            self._cancel_timer()
            return
        self._remaining -= 1
        if self._remaining > 0:
            self._set_button(reflecting_label(self._remaining), disabled=True)
            return
        self._remaining = 0
        self._cancel_timer()
        self._state = OverlayState.REFLECTION_COMPLETE
        self._set_button(REFLECTION_COMPLETE_LABEL, disabled=False)

    # ── autonomy countdowns ─────────────────────────────────────

    def redirect_url(self) -> str:
        reason = self.decision.reason if self.decision is not None else None
        query = urlencode({"redirected": "true", "reason": reason or ""})
        return f"{self._dashboard_url.rstrip('/')}/?{query}"

    def _redirect_tick(self) -> None:
        if self._state is not OverlayState.REDIRECTING:
            self._cancel_timer()
            return
        self._remaining -= 1
        if self._remaining > 0:
            self._set_countdown(redirect_label(self._remaining))
            return
        self._remaining = 0
        self._cancel_timer()
        self._navigate(self.redirect_url())

    def _cooloff_tick(self) -> None:
        if self._state is not OverlayState.COOLING_OFF:
            self._cancel_timer()
            return
        self._remaining -= 1
        self._set_countdown(cooloff_label(self._remaining))
        if self._remaining > 0:
            return
        self._remaining = 0
        self._cancel_timer()
        self._state = OverlayState.COOLOFF_COMPLETE
        try:
            self._renderer.set_button(OverlayAction.PROCEED.value, PROCEED_LABEL, False)
        except Exception:
            logger.debug("Proceed button update failed", exc_info=True)

    # ── user actions ────────────────────────────────────────────

    def continue_shopping(self) -> bool:
        if self._state not in _RISK_STATES:
            return False
        return self._dismiss()

    def close(self) -> bool:
        if self._state not in _RISK_STATES:
            return False
        return self._dismiss()

    def leave_site(self) -> bool:
        if self._state is OverlayState.HIDDEN:
            return False
        if self._reporter is not None and self._state in _RISK_STATES:
            self._reporter.leave_site()
        return self._navigate(self._leave_destination)

    def redirect_now(self) -> bool:
        if self._state is not OverlayState.REDIRECTING:
            return False
        return self._navigate(self.redirect_url())

    def override(self) -> bool:
        """Dismiss a pending redirect; the user chose to stay."""
        if self._state is not OverlayState.REDIRECTING:
            return False
        decision = self.decision
        if not self._dismiss():
            return False
        logger.info("Autonomy redirect overridden")
        if self._reporter is not None and decision is not None:
            self._reporter.autonomy_override(decision.model_dump(by_alias=True))
        return True

    def open_dashboard(self) -> bool:
        if self._state is not OverlayState.BLOCKED:
            return False
        return self._navigate(self._dashboard_url)

    def proceed(self) -> bool:
        if self._state is not OverlayState.COOLOFF_COMPLETE:
            return False
        return self._dismiss()

    def dispatch(self, action: OverlayAction | str) -> bool:
        """Route a button press reported by the renderer."""
        try:
            action = OverlayAction(action)
        except ValueError:
            logger.debug("Ignoring unknown overlay action %r", action)
            return False
        match action:
            case OverlayAction.PAUSE:
                return self.pause_and_reflect()
            case OverlayAction.CONTINUE:
                return self.continue_shopping()
            case OverlayAction.LEAVE:
                return self.leave_site()
            case OverlayAction.CLOSE:
                return self.close()
            case OverlayAction.REDIRECT_NOW:
                return self.redirect_now()
            case OverlayAction.OVERRIDE:
                return self.override()
            case OverlayAction.DASHBOARD:
                return self.open_dashboard()
            case OverlayAction.PROCEED:
                return self.proceed()
        return False

    def teardown(self) -> None:
        self._cancel_timer()

    # ── internals ───────────────────────────────────────────────

    def _mount(self, view: OverlayView) -> bool:
        try:
            self._renderer.mount(view)
        except Exception:
            logger.warning("Overlay mount failed", exc_info=True)
            return False
        self.view = view
        return True

    def _dismiss(self) -> bool:
        if self._state is OverlayState.HIDDEN:
            return False
        try:
            self._renderer.unmount()
        except Exception:
            logger.warning("Overlay unmount failed", exc_info=True)
            return False
        self._cancel_timer()
        self._reset()
        return True

    def _clear(self) -> None:
        # Unconditional: a deny must replace the current overlay
        if self._state is OverlayState.HIDDEN:
            return
        self._cancel_timer()
        try:
            self._renderer.unmount()
        except Exception:
            logger.warning("Overlay unmount failed", exc_info=True)
        self._reset()

    def _navigate(self, url: str) -> bool:
        try:
            self._renderer.navigate(url)
        except Exception:
            logger.warning("Navigation to %s failed", url, exc_info=True)
            return False
        self._cancel_timer()
        self._reset()
        return True

    def _reset(self) -> None:
        self._state = OverlayState.HIDDEN
        self._remaining = 0
        self.view = None
        self.decision = None

    def _set_button(self, label: str, *, disabled: bool) -> None:
        try:
            self._renderer.set_pause_button(label, disabled)
        except Exception:
            logger.debug("Pause button update failed", exc_info=True)

    def _set_countdown(self, text: str) -> None:
        try:
            self._renderer.set_countdown(text)
        except Exception:
            logger.debug("Countdown update failed", exc_info=True)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
