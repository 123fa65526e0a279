# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Repeating timers for the session tick and the reflection countdown.

The guard and overlay only ever ask for "call *fn* every N seconds until I
cancel".  ``AsyncioScheduler`` does that on the running event loop with
``loop.call_later``; tests drive a manual scheduler instead.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_every(self, interval_s: float, fn: Callable[[], None]) -> TimerHandle: ...


class _RepeatingCall:
    """Re-arms itself after each call until cancelled."""

    __slots__ = ("_loop", "_interval", "_fn", "_handle", "_cancelled")

    def __init__(self, loop: asyncio.AbstractEventLoop, interval_s: float, fn: Callable[[], None]) -> None:
        self._loop = loop
        self._interval = interval_s
        self._fn = fn
        self._cancelled = False
        self._handle: asyncio.TimerHandle | None = loop.call_later(interval_s, self._fire)

    def _fire(self) -> None:
        if self._cancelled:
            return
        try:
            self._fn()
        except Exception:
            logger.warning("Scheduled callback failed", exc_info=True)
        # fn may have cancelled us
        if not self._cancelled:
            self._handle = self._loop.call_later(self._interval, self._fire)

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class AsyncioScheduler:
    """``Scheduler`` on an asyncio loop (the running loop unless one is given)."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_every(self, interval_s: float, fn: Callable[[], None]) -> _RepeatingCall:
        loop = self._loop or asyncio.get_running_loop()
        return _RepeatingCall(loop, interval_s, fn)
