# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Change watcher: decides which DOM mutation batches warrant re-analysis.

Host-agnostic.  The live browser host forwards ``MutationObserver``
batches here as plain records; tests build them by hand.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

# A record adding more nodes than this is significant on its own
ADDED_NODES_THRESHOLD = 5
SIGNIFICANT_CLASS_MARKERS = ("cart", "checkout")


@dataclass(frozen=True, slots=True)
class MutationRecord:
    added_nodes: int
    target_class: str = ""


ChangeBatch = Sequence[MutationRecord]


def is_significant_record(record: MutationRecord) -> bool:
    if record.added_nodes > ADDED_NODES_THRESHOLD:
        return True
    # Case-sensitive, like className.includes()
    return any(marker in record.target_class for marker in SIGNIFICANT_CLASS_MARKERS)


def is_significant_batch(batch: Iterable[MutationRecord]) -> bool:
    return any(is_significant_record(r) for r in batch)


def records_from_raw(raw: Iterable[Mapping[str, Any]]) -> list[MutationRecord]:
    """Build records from the JSON the browser bridge posts (``addedNodes``, ``targetClass``)."""
    records: list[MutationRecord] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        try:
            added = int(item.get("addedNodes", 0) or 0)
        except (TypeError, ValueError):
            added = 0
        cls = item.get("targetClass", "")
        records.append(MutationRecord(added_nodes=added, target_class=cls if isinstance(cls, str) else ""))
    return records


class ChangeWatcher:
    """Forwards significant batches to *on_significant* until stopped."""

    def __init__(self, on_significant: Callable[[], Any]) -> None:
        self._on_significant = on_significant
        self._stopped = False
        self.significant = 0
        self.ignored = 0

    @property
    def stopped(self) -> bool:
        return self._stopped

    def deliver(self, batch: Iterable[MutationRecord]) -> bool:
        """Returns True when the batch triggered a re-analysis."""
        if self._stopped:
            return False
        if not is_significant_batch(batch):
            self.ignored += 1
            return False
        self.significant += 1
        logger.debug("Significant DOM change, re-analyzing")
        self._on_significant()
        return True

    def stop(self) -> None:
        self._stopped = True
