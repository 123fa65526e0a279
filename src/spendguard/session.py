# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Per-document session counters, owned by the page guard."""

from __future__ import annotations

import time
from dataclasses import dataclass, field

from . import PageAnalysis


@dataclass
class SessionData:
    """Counters accumulated over one document lifetime. Discarded on teardown."""

    start_time: int = field(default_factory=lambda: int(time.time() * 1000))  # ms epoch
    pages_visited: int = 0
    shopping_sites_visited: int = 0
    prices_viewed: list[float] = field(default_factory=list)  # append-only
    cart_interactions: int = 0
    time_on_shopping_sites: int = 0  # seconds

    def record_analysis(self, analysis: PageAnalysis) -> None:
        self.pages_visited += 1
        if analysis.is_shopping_site:
            self.shopping_sites_visited += 1
        self.prices_viewed.extend(analysis.prices)

    def record_tick(self, interval_s: int, on_shopping_site: bool) -> None:
        if on_shopping_site:
            self.time_on_shopping_sites += interval_s

    def record_cart_interaction(self) -> None:
        self.cart_interactions += 1

    @property
    def max_price_viewed(self) -> float:
        return max(self.prices_viewed) if self.prices_viewed else 0.0

    def to_dict(self) -> dict:
        return {
            "startTime": self.start_time,
            "pagesVisited": self.pages_visited,
            "shoppingSitesVisited": self.shopping_sites_visited,
            "pricesViewed": list(self.prices_viewed),
            "cartInteractions": self.cart_interactions,
            "timeOnShoppingSites": self.time_on_shopping_sites,
        }
