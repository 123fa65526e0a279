# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Fire-and-forget event reporter.

Messages go to an ``AggregatorSink`` synchronously.  Delivery failures are
logged and dropped; acknowledgements are not inspected and nothing is
retried.  Reporting never affects the analysis pipeline.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

from . import PageAnalysis
from . import events as ev

logger = logging.getLogger(__name__)


@runtime_checkable
class AggregatorSink(Protocol):
    def handle(self, message: Mapping[str, Any]) -> dict: ...


class ReporterMeta:
    """Delivery counters (diagnostics only)."""

    __slots__ = ("sent", "failed")

    def __init__(self) -> None:
        self.sent: int = 0
        self.failed: int = 0

    def snapshot(self) -> dict:
        return {"sent": self.sent, "failed": self.failed}


class EventReporter:
    """Ships messages to the aggregator. Never raises."""

    def __init__(self, sink: AggregatorSink | None) -> None:
        self._sink = sink
        self.meta = ReporterMeta()

    def send(self, message: Mapping[str, Any]) -> None:
        if self._sink is None:
            return
        try:
            self._sink.handle(message)
            self.meta.sent += 1
        except Exception as e:
            self.meta.failed += 1
            logger.warning("Failed to report %s: %s", message.get("type", "?"), e)

    # Convenience wrappers over the builders in ``events``

    def page_analysis(self, analysis: PageAnalysis, session: dict[str, Any]) -> None:
        self.send(ev.page_analysis(analysis, session))

    def session_update(self, session: dict[str, Any]) -> None:
        self.send(ev.session_update(session))

    def cart_interaction(self, *, url: str, timestamp: int) -> None:
        self.send(ev.cart_interaction(url=url, timestamp=timestamp))

    def checkout_attempt(self, *, url: str, timestamp: int, source: str) -> None:
        self.send(ev.checkout_attempt(url=url, timestamp=timestamp, source=source))

    def leave_site(self) -> None:
        self.send(ev.leave_site())

    def intervention_shown(self, analysis: PageAnalysis) -> None:
        self.send(ev.intervention_shown(analysis))

    def checkout_blocked(self, *, url: str, reason: str | None, price: float) -> None:
        self.send(ev.checkout_blocked(url=url, reason=reason, price=price))

    def autonomy_override(self, decision: dict[str, Any]) -> None:
        self.send(ev.autonomy_override(decision))
