"""Unit tests for the logging utility."""

from __future__ import annotations

import json
import logging

from flask import g

from sessionauth.core.logger import JSONFormatter, configure_logging, ensure_request_id


def test_configure_logging_sets_level() -> None:
    """``configure_logging`` should set the root logger level."""

    # Act
    configure_logging("DEBUG")

    # Assert
    assert logging.getLogger().level == logging.DEBUG
    configure_logging("INFO")


def test_json_formatter_keeps_security_context() -> None:
    record = logging.LogRecord(
        name="sessionauth.services.tokens.rotation",
        level=logging.ERROR,
        pathname=__file__,
        lineno=1,
        msg="refresh.reuse_detected",
        args=(),
        exc_info=None,
    )
    record.credential_id = "abc"
    record.owner_id = 5
    record.family_size = 3

    payload = json.loads(JSONFormatter().format(record))

    assert payload["level"] == "ERROR"
    assert payload["message"] == "refresh.reuse_detected"
    assert payload["credential_id"] == "abc"
    assert payload["owner_id"] == 5
    assert payload["family_size"] == 3
    assert "failure" not in payload


def test_text_format_includes_request_placeholder() -> None:
    configure_logging("INFO", fmt="text")
    try:
        handler = logging.getLogger().handlers[0]
        record = logging.LogRecord("sessionauth.test", logging.INFO, __file__, 1, "hello", (), None)
        handler.filter(record)
        line = handler.format(record)
    finally:
        configure_logging("INFO")

    assert line.endswith("INFO [-] sessionauth.test: hello")


def test_request_id_prefers_inbound_header(app) -> None:
    with app.test_request_context(headers={"X-Correlation-ID": "corr-1"}):
        g.pop("request_id", None)
        assert ensure_request_id() == "corr-1"
        assert ensure_request_id() == "corr-1"


def test_request_id_is_minted_outside_requests() -> None:
    assert ensure_request_id() != ensure_request_id()
