# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""SpendGuard exception hierarchy.

All SpendGuard-specific errors inherit from SpendGuardError.  Most of them
never escape the core: extraction, reporting and autonomy failures are
absorbed at the seam where they occur and turned into a safe default.
"""

from __future__ import annotations


class SpendGuardError(Exception):
    """Base exception for all SpendGuard errors."""


class ExtractionError(SpendGuardError):
    """A document read failed (text, title or selector query)."""


class AutonomyCheckError(SpendGuardError):
    """The remote autonomy check failed or returned an unusable answer."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SettingsError(SpendGuardError):
    """Settings file missing, unreadable, or failing validation."""


class BrowserError(SpendGuardError):
    """Live browser host launch, navigation, or injection failure."""
