"""Tests for mailbox_mcp.logging."""

from __future__ import annotations

import json
import logging

import pytest
import structlog

from mailbox_mcp.logging import setup_logging


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


def test_json_lines_to_stderr(capsys):
    setup_logging(json=True, level="DEBUG")
    structlog.get_logger("mailbox_mcp.test").info("mailbox_opened", mailbox="INBOX", total=3)

    captured = capsys.readouterr()
    assert captured.out == ""
    record = json.loads(captured.err.strip().splitlines()[-1])
    assert record["event"] == "mailbox_opened"
    assert record["mailbox"] == "INBOX"
    assert record["level"] == "info"


def test_level_applied():
    setup_logging(level="warning")
    assert logging.getLogger().level == logging.WARNING
