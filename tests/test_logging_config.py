# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for spendguard.logging_config: structlog + stdlib bridge."""

from __future__ import annotations

import json
import logging
import sys

import pytest
import structlog

from spendguard.logging_config import configure


@pytest.fixture(autouse=True)
def _reset_logging():
    """Ensure clean logging state before/after each test."""
    root = logging.getLogger()
    old_handlers = root.handlers[:]
    old_level = root.level
    quiet_levels = {name: logging.getLogger(name).level for name in ("httpx", "httpcore", "asyncio")}
    yield
    root.handlers = old_handlers
    root.setLevel(old_level)
    for name, level in quiet_levels.items():
        logging.getLogger(name).setLevel(level)
    structlog.reset_defaults()


class TestConsoleRenderer:
    """Interactive mode: ConsoleRenderer (human-readable)."""

    def test_single_stderr_handler(self):
        configure(json_output=False)
        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.handlers[0].stream is sys.stderr

    def test_output_is_human_readable(self, capsys):
        configure(json_output=False)
        logging.getLogger("test.console").info("hello world")
        captured = capsys.readouterr()
        assert "hello world" in captured.err
        assert not captured.err.strip().startswith("{")
        assert captured.out == ""


class TestJsonRenderer:
    """Machine mode: one JSON object per line."""

    def test_json_lines(self, capsys):
        configure(json_output=True)
        logging.getLogger("test.json").warning("checkout blocked")
        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "checkout blocked"
        assert record["level"] == "warning"
        assert record["logger"] == "test.json"
        assert "timestamp" in record

    def test_contextvars_merged(self, capsys):
        configure(json_output=True)
        structlog.contextvars.bind_contextvars(domain="www.nike.com")
        logging.getLogger("test.ctx").info("analyzed")
        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["domain"] == "www.nike.com"

    def test_exception_rendered(self, capsys):
        configure(json_output=True)
        try:
            raise ValueError("bad price")
        except ValueError:
            logging.getLogger("test.exc").exception("failed")
        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert "ValueError" in record["exception"]


class TestLevels:
    def test_default_info(self):
        configure()
        assert logging.getLogger().level == logging.INFO

    def test_debug(self):
        configure(level="debug")
        assert logging.getLogger().level == logging.DEBUG

    def test_unknown_falls_back_to_info(self):
        configure(level="chatty")
        assert logging.getLogger().level == logging.INFO

    def test_quiet_loggers_at_least_warning(self):
        configure(level="DEBUG")
        assert logging.getLogger("httpx").level == logging.WARNING
        configure(level="ERROR")
        assert logging.getLogger("httpcore").level == logging.ERROR

    def test_reconfigure_does_not_stack_handlers(self):
        configure()
        configure(json_output=True)
        assert len(logging.getLogger().handlers) == 1

    @pytest.mark.parametrize(("name", "expected"), [("warning", logging.WARNING), ("Error", logging.ERROR), ("10", logging.INFO)])
    def test_level_names(self, name, expected):
        configure(level=name)
        assert logging.getLogger().level == expected

    def test_structlog_logger_shares_handler(self, capsys):
        configure(json_output=True)
        structlog.get_logger("test.struct").info("overlay shown", kind="block_checkout")
        record = json.loads(capsys.readouterr().err.strip().splitlines()[-1])
        assert record["event"] == "overlay shown"
        assert record["kind"] == "block_checkout"
