# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import spendguard  # noqa: F401
except ImportError:
    raise ImportError("spendguard is not installed. Run: pip install -e '.[dev]'") from None

import pytest
import structlog
from _helpers import ManualScheduler, RecordingRenderer, RecordingSink


@pytest.fixture(autouse=True)
def _clear_log_context():
    """The guard binds ``domain`` into structlog contextvars; keep tests isolated."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def _no_settings_env(monkeypatch):
    for name in ("SPENDGUARD_ENABLED", "SPENDGUARD_THRESHOLD", "SPENDGUARD_API_URL", "SPENDGUARD_AUTONOMY_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
