# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Route guard logs (stdlib ``logging`` and structlog alike) to one stderr handler.

``--log-format json`` gives one object per line with the bound ``domain``
of the page being guarded; otherwise structlog's console renderer.
"""

from __future__ import annotations

import logging
import sys

import structlog

# Chatty at INFO while a live page is watched
_QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _pre_chain() -> list:
    # Runs for structlog events and for records from plain logging.getLogger()
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        # JSON "exception" stays a string
        structlog.processors.format_exc_info,
    ]


def _formatter(json_output: bool) -> logging.Formatter:
    final = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_pre_chain(),
        processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, final],
    )


def configure(*, json_output: bool = False, level: str = "INFO") -> None:
    """Install the stderr handler and point structlog at it. Safe to call again."""
    structlog.configure(
        processors=[*_pre_chain(), structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(_formatter(json_output))

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.addHandler(handler)
    root_level = _resolve_level(level)
    root.setLevel(root_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))
