# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Live browser host on Playwright (Chromium).

Drives a ``PageGuard`` against a real page:

  - snapshot: one ``page.evaluate`` returns URL, title, innerText and the
    cart-selector counts, so an analysis never sees a half-updated page
  - change bridge: a ``MutationObserver`` posts compact records through an
    exposed binding into the guard's change watcher
  - overlay: injected as a DOM node; its buttons call back through a second
    binding into ``Overlay.dispatch``
  - clicks and submits are reported (capture phase) into the guard

The core is synchronous and the renderer contract is too, so DOM writes
are fired as tasks and their failures logged.  A mount that throws or
does not attach is reported back so the overlay returns to hidden.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from . import PageAnalysis
from .aggregator import StatsAggregator
from .autonomy import AutonomyChecker, HttpAutonomyClient
from .catalog import CART_ITEM_SELECTORS
from .change_watcher import is_significant_batch, records_from_raw
from .document import DocumentSnapshot
from .errors import BrowserError
from .guard import ClickTarget, PageGuard
from .overlay import OverlayView
from .scheduler import AsyncioScheduler
from .settings import GuardSettings

logger = logging.getLogger(__name__)

OVERLAY_ID = "spendguard-overlay"

_MUTATION_BINDING = "__spendguardMutations"
_OVERLAY_BINDING = "__spendguardOverlayAction"
_CLICK_BINDING = "__spendguardClick"
_SUBMIT_BINDING = "__spendguardSubmit"


@dataclass
class BrowserConfig:
    """Browser launch configuration."""

    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 800
    timeout_ms: int = 30000
    wait_until: str = "load"


# ---------------------------------------------------------------------------
# JS: snapshot IIFE, listeners, overlay DOM
# ---------------------------------------------------------------------------

_SNAPSHOT_JS = """(selectors) => {
  const counts = {};
  for (const sel of selectors) {
    try { counts[sel] = document.querySelectorAll(sel).length; } catch (e) { counts[sel] = 0; }
  }
  const body = document.body;
  return {
    url: location.href,
    title: document.title || '',
    text: body ? (body.innerText || '') : '',
    counts: counts
  };
}"""

_INSTALL_LISTENERS_JS = """([overlayId, mutationFn, clickFn, submitFn]) => {
  if (window.__spendguardInstalled || !document.body) return false;
  window.__spendguardInstalled = true;
  const insideOverlay = (node) => {
    const el = node && node.nodeType === 1 ? node : node && node.parentElement;
    return !!(el && el.closest && el.closest('#' + overlayId));
  };
  const observer = new MutationObserver((mutations) => {
    const records = [];
    for (const m of mutations) {
      if (insideOverlay(m.target)) continue;
      const cls = m.target.className;
      records.push({
        addedNodes: m.addedNodes.length,
        targetClass: typeof cls === 'string' ? cls : ''
      });
    }
    if (records.length) window[mutationFn](records);
  });
  observer.observe(document.body, { childList: true, subtree: true });
  window.__spendguardObserver = observer;

  document.addEventListener('click', (e) => {
    const raw = e.target;
    if (!raw || insideOverlay(raw)) return;
    const t = (raw.closest && raw.closest('button, a, [role="button"], input[type="submit"]')) || raw;
    const cls = t.className;
    window[clickFn]({
      text: (t.textContent || '').slice(0, 200),
      className: typeof cls === 'string' ? cls : (cls && cls.baseVal) || '',
      id: t.id || '',
      href: t.href || '',
      dataAction: (t.getAttribute && t.getAttribute('data-action')) || '',
      name: (t.getAttribute && t.getAttribute('name')) || ''
    });
  }, true);

  document.addEventListener('submit', (e) => {
    const form = e.target;
    window[submitFn]((form && form.action) || '');
  }, true);
  return true;
}"""

_MOUNT_OVERLAY_JS = """([overlayId, actionFn, view]) => {
  if (document.getElementById(overlayId)) return false;
  const el = (tag, cls, text) => {
    const n = document.createElement(tag);
    if (cls) n.className = cls;
    if (text) n.textContent = text;
    return n;
  };
  const root = el('div');
  root.id = overlayId;
  root.style.cssText = 'position:fixed;inset:0;z-index:2147483647;background:rgba(15,23,42,.75);' +
    'display:flex;align-items:center;justify-content:center;font-family:system-ui,sans-serif';
  const modal = el('div', 'spendguard-modal');
  modal.style.cssText = 'background:#fff;color:#0f172a;max-width:480px;width:90vw;border-radius:12px;padding:24px';

  const header = el('div', 'spendguard-header');
  header.appendChild(el('strong', null, 'SpendGuard'));
  if (view.closable) {
    const close = el('button', 'spendguard-close', '\\u00D7');
    close.onclick = () => window[actionFn]('close');
    header.appendChild(close);
  }
  modal.appendChild(header);

  const alert = el('div', 'spendguard-alert ' + view.riskLevel);
  alert.appendChild(el('h3', null, view.title));
  alert.appendChild(el('p', null, view.message));
  for (const line of view.notes) alert.appendChild(el('p', 'spendguard-note', line));
  modal.appendChild(alert);

  if (view.tactics.length) {
    const box = el('div', 'spendguard-tactics');
    box.appendChild(el('h4', null, 'Manipulation Tactics Detected'));
    const ul = el('ul');
    for (const t of view.tactics) ul.appendChild(el('li', null, t.type + ': "' + t.phrase + '"'));
    box.appendChild(ul);
    modal.appendChild(box);
  }
  if (view.prices.length) {
    const box = el('div', 'spendguard-prices');
    box.appendChild(el('h4', null, 'Prices on This Page'));
    for (const line of view.prices) box.appendChild(el('span', null, line + ' '));
    modal.appendChild(box);
  }
  if (view.countdown) {
    const timer = el('div', 'spendguard-countdown', view.countdown);
    timer.id = 'spendguard-countdown';
    modal.appendChild(timer);
  }
  if (view.questions.length) {
    const q = el('div', 'spendguard-questions');
    q.appendChild(el('h4', null, view.kind === 'risk' ? 'Ask Yourself' : 'While you wait, consider:'));
    const qul = el('ul');
    for (const line of view.questions) qul.appendChild(el('li', null, line));
    q.appendChild(qul);
    modal.appendChild(q);
  }

  const actions = el('div', 'spendguard-actions');
  for (const b of view.buttons) {
    const btn = el('button', 'spendguard-btn ' + b.action, b.label);
    btn.id = 'spendguard-' + b.action;
    btn.disabled = !!b.disabled;
    btn.onclick = () => window[actionFn](b.action);
    actions.appendChild(btn);
  }
  modal.appendChild(actions);

  const stats = el('div', 'spendguard-stats');
  for (const line of view.stats) stats.appendChild(el('span', null, line + ' '));
  modal.appendChild(stats);

  root.appendChild(modal);
  document.body.appendChild(root);
  return true;
}"""

_UNMOUNT_OVERLAY_JS = """(overlayId) => {
  const n = document.getElementById(overlayId);
  if (n) n.remove();
  return !!n;
}"""

_SET_BUTTON_JS = """([action, label, disabled]) => {
  const btn = document.getElementById('spendguard-' + action);
  if (!btn) return false;
  btn.textContent = label;
  btn.disabled = disabled;
  return true;
}"""

_SET_COUNTDOWN_JS = """(text) => {
  const n = document.getElementById('spendguard-countdown');
  if (!n) return false;
  n.textContent = text;
  return true;
}"""



# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


async def snapshot_document(page: Page) -> DocumentSnapshot:
    """Capture the page in one evaluate call. Raises ``BrowserError`` on failure."""
    selectors = [s.css for s in CART_ITEM_SELECTORS]
    try:
        raw = await page.evaluate(_SNAPSHOT_JS, selectors)
    except Exception as e:
        raise BrowserError(f"snapshot failed: {e}") from e
    if not isinstance(raw, dict):
        raise BrowserError(f"snapshot returned {type(raw).__name__}")
    counts = raw.get("counts") or {}
    return DocumentSnapshot(
        url=str(raw.get("url", "")),
        title=str(raw.get("title", "")),
        text=str(raw.get("text", "")),
        selector_counts={k: int(v) for k, v in counts.items() if isinstance(v, int | float)},
    )


# ---------------------------------------------------------------------------
# Overlay renderer
# ---------------------------------------------------------------------------


class PlaywrightOverlayRenderer:
    """``OverlayRenderer`` that writes to the page from background tasks."""

    def __init__(self, page: Page, on_mount_failed: Callable[[OverlayView], None] | None = None) -> None:
        self._page = page
        self._tasks: set[asyncio.Task] = set()
        # Usually Overlay.mount_failed, wired once the guard exists
        self.on_mount_failed = on_mount_failed

    def _fire(self, what: str, coro, on_failure: Callable[[], None] | None = None) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            if t.exception() is not None:
                logger.warning("Overlay %s failed: %s", what, t.exception())
                failed = True
            else:
                # The mount script returns false when it could not attach
                failed = t.result() is False
            if failed and on_failure is not None:
                on_failure()

        task.add_done_callback(_done)

    def mount(self, view: OverlayView) -> None:
        def _failed() -> None:
            if self.on_mount_failed is not None:
                self.on_mount_failed(view)

        self._fire(
            "mount",
            self._page.evaluate(_MOUNT_OVERLAY_JS, [OVERLAY_ID, _OVERLAY_BINDING, view.to_dict()]),
            on_failure=_failed,
        )

    def unmount(self) -> None:
        self._fire("unmount", self._page.evaluate(_UNMOUNT_OVERLAY_JS, OVERLAY_ID))

    def set_pause_button(self, label: str, disabled: bool) -> None:
        self.set_button("pause", label, disabled)

    def set_button(self, action: str, label: str, disabled: bool) -> None:
        self._fire("button update", self._page.evaluate(_SET_BUTTON_JS, [action, label, disabled]))

    def set_countdown(self, text: str) -> None:
        self._fire("countdown update", self._page.evaluate(_SET_COUNTDOWN_JS, text))

    def navigate(self, url: str) -> None:
        self._fire("navigation", self._page.goto(url))

    async def drain(self) -> None:
        """Wait for in-flight DOM writes (used before teardown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


# ---------------------------------------------------------------------------
# Bridge
# ---------------------------------------------------------------------------


def click_target_from_raw(raw: Any) -> ClickTarget:
    if not isinstance(raw, dict):
        return ClickTarget()
    return ClickTarget(
        text=str(raw.get("text", "")),
        class_name=str(raw.get("className", "")),
        element_id=str(raw.get("id", "")),
        href=str(raw.get("href", "")),
        data_action=str(raw.get("dataAction", "")),
        name=str(raw.get("name", "")),
    )


class GuardBridge:
    """Binds one ``PageGuard`` to one Playwright page."""

    def __init__(self, page: Page, guard: PageGuard) -> None:
        self.page = page
        self.guard = guard

    async def install(self) -> None:
        await self.page.expose_binding(_MUTATION_BINDING, self._on_mutations)
        await self.page.expose_binding(_OVERLAY_BINDING, self._on_overlay_action)
        await self.page.expose_binding(_CLICK_BINDING, self._on_click)
        await self.page.expose_binding(_SUBMIT_BINDING, self._on_submit)

    async def attach(self) -> None:
        """Install observers in the current document (call after each navigation)."""
        try:
            await self.page.evaluate(
                _INSTALL_LISTENERS_JS,
                [OVERLAY_ID, _MUTATION_BINDING, _CLICK_BINDING, _SUBMIT_BINDING],
            )
        except Exception as e:
            raise BrowserError(f"listener install failed: {e}") from e

    async def _on_mutations(self, _source: dict, raw: list) -> None:
        records = records_from_raw(raw or [])
        if self.guard.watcher.stopped:
            return
        if is_significant_batch(records):
            try:
                self.guard.document = await snapshot_document(self.page)
            except BrowserError as e:
                logger.debug("Re-snapshot failed, keeping previous document: %s", e)
        self.guard.on_change_batch(records)

    async def _on_overlay_action(self, _source: dict, action: str) -> None:
        self.guard.overlay.dispatch(action)

    async def _on_click(self, _source: dict, raw: dict) -> None:
        decision = await self.guard.on_click(click_target_from_raw(raw))
        if decision is not None and not decision.allow:
            logger.info("Checkout blocked by autonomy service: %s", decision.reason)

    async def _on_submit(self, _source: dict, action_url: str) -> None:
        await self.guard.on_submit(str(action_url or ""))


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class LiveBrowser:
    """Chromium + one context + one page."""

    def __init__(self, config: BrowserConfig | None = None) -> None:
        self.config = config or BrowserConfig()
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser not started. Use async with or call start().")
        return self._page

    async def start(self) -> None:
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.config.headless)
        except Exception as e:
            await self.stop()
            if "executable doesn't exist" in str(e).lower():
                raise BrowserError("Chromium is not installed. Please run: playwright install chromium") from e
            raise BrowserError(f"browser launch failed: {e}") from e
        self._context = await self._browser.new_context(
            viewport={"width": self.config.viewport_width, "height": self.config.viewport_height},
            accept_downloads=False,
        )
        self._page = await self._context.new_page()
        logger.info("Browser started (headless=%s)", self.config.headless)

    async def navigate(self, url: str) -> None:
        try:
            await self.page.goto(url, wait_until=self.config.wait_until, timeout=self.config.timeout_ms)
        except Exception as e:
            raise BrowserError(f"navigation to {url} failed: {e}") from e

    async def stop(self) -> None:
        """Close everything. Safe to call on a half-started or crashed browser."""
        if self._context:
            with suppress(Exception):
                await self._context.close()
            self._context = None
        self._page = None
        if self._browser:
            with suppress(Exception):
                await self._browser.close()
            self._browser = None
        if self._playwright:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> LiveBrowser:
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()


@asynccontextmanager
async def live_browser(config: BrowserConfig | None = None) -> AsyncGenerator[LiveBrowser, None]:
    browser = LiveBrowser(config)
    await browser.start()
    try:
        yield browser
    finally:
        await browser.stop()


@dataclass
class WatchResult:
    analysis: PageAnalysis | None
    interventions: int
    significant_changes: int
    ignored_changes: int
    stats: dict = field(default_factory=dict)


async def guard_page(
    page: Page,
    *,
    settings: GuardSettings,
    aggregator: StatsAggregator,
    autonomy: AutonomyChecker | None = None,
) -> tuple[PageGuard, GuardBridge]:
    """Snapshot the loaded *page*, start a guard on it, and wire the bridge."""
    document = await snapshot_document(page)
    renderer = PlaywrightOverlayRenderer(page)
    guard = PageGuard(
        document,
        renderer=renderer,
        scheduler=AsyncioScheduler(),
        settings=settings,
        sink=aggregator,
        autonomy=autonomy,
    )
    renderer.on_mount_failed = guard.overlay.mount_failed
    bridge = GuardBridge(page, guard)
    await bridge.install()
    guard.start()
    if guard.started:
        await bridge.attach()
    return guard, bridge


async def watch_page(
    url: str,
    *,
    settings: GuardSettings | None = None,
    duration_s: float = 60.0,
    config: BrowserConfig | None = None,
    aggregator: StatsAggregator | None = None,
) -> WatchResult:
    """Open *url*, guard it for *duration_s* seconds, return the session summary."""
    settings = settings or GuardSettings()
    aggregator = aggregator or StatsAggregator()
    autonomy = HttpAutonomyClient(settings.api_url) if settings.api_url else None

    async with live_browser(config) as browser:
        await browser.navigate(url)
        guard, _bridge = await guard_page(browser.page, settings=settings, aggregator=aggregator, autonomy=autonomy)

        def _on_nav(frame) -> None:
            if frame == browser.page.main_frame and guard.started:
                logger.info("Page navigated away, stopping guard")
                guard.teardown()

        browser.page.on("framenavigated", _on_nav)
        try:
            await asyncio.sleep(duration_s)
        finally:
            guard.teardown()
            renderer = guard.overlay.renderer
            if isinstance(renderer, PlaywrightOverlayRenderer):
                await renderer.drain()

    stats = aggregator.stats()
    return WatchResult(
        analysis=guard.analysis,
        interventions=stats["dailyStats"]["interventionsShown"],
        significant_changes=guard.watcher.significant,
        ignored_changes=guard.watcher.ignored,
        stats=stats,
    )
