"""Tests for logging setup and context-tagged loggers."""

import json
import logging
from contextlib import contextmanager

from correlator.logging_config import ContextConsoleFormatter, get_logger, setup_logging
from tests.conftest import PRIMARY, SIMILAR_1


@contextmanager
def configured_logging(log_dir):
    """Run setup_logging, then put the root logger back the way it was."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        yield setup_logging(log_dir)
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = handlers
        root.setLevel(level)


def test_json_log_lines_carry_context(tmp_path):
    with configured_logging(tmp_path) as root_logger:
        get_logger("correlator.engine", owner="owner-1", search_asin=PRIMARY).warning("Facet search failed")
        get_logger("correlator.engine").error("Sync failed")
        for handler in root_logger.handlers:
            handler.flush()

    entries = [json.loads(line) for line in (tmp_path / "app.log").read_text().splitlines()]
    warning, error = entries[-2:]
    assert warning["message"] == "Facet search failed"
    assert warning["level"] == "WARNING"
    assert warning["owner"] == "owner-1"
    assert warning["search_asin"] == PRIMARY
    assert "timestamp" in warning
    assert "owner" not in error

    errors = [json.loads(line) for line in (tmp_path / "error.log").read_text().splitlines()]
    assert [e["message"] for e in errors] == ["Sync failed"]


def test_noisy_http_loggers_are_quieted(tmp_path):
    with configured_logging(tmp_path):
        assert logging.getLogger("httpx").level == logging.WARNING


def test_console_line_appends_context_fields():
    formatter = ContextConsoleFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("correlator.ledger", logging.INFO, __file__, 1, "Skipped", None, None)
    record.owner = "owner-1"
    record.candidate = SIMILAR_1

    assert formatter.format(record) == f"INFO Skipped [owner=owner-1 candidate={SIMILAR_1}]"


def test_console_line_without_context_is_unchanged():
    formatter = ContextConsoleFormatter("%(levelname)s %(message)s")
    record = logging.LogRecord("correlator.ledger", logging.INFO, __file__, 1, "Started", None, None)

    assert formatter.format(record) == "INFO Started"


def test_adapter_keeps_call_site_extra():
    adapter = get_logger("correlator.ledger", owner="owner-1")

    _, kwargs = adapter.process("msg", {"extra": {"marketplace": "UK"}})

    assert kwargs["extra"] == {"marketplace": "UK", "owner": "owner-1"}
