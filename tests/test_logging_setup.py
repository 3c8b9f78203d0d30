from __future__ import annotations

import logging

import pytest

from ridehail.infra.logging.setup import closeLogger, createCommandLogger, logEvent, mapLogLevel


def test_command_logger_writes_run_id_and_component(tmp_path):
    logger, path = createCommandLogger("history", str(tmp_path), "run-42", "DEBUG")
    try:
        logEvent(logger, logging.INFO, "run-42", "paging", "page=0 items=3")
        logger.info("plain record")
    finally:
        closeLogger(logger)

    text = (tmp_path / "history_run-42.log").read_text(encoding="utf-8")
    assert path.endswith("history_run-42.log")
    assert "runId=run-42 comp=paging msg=page=0 items=3" in text
    assert "comp=core msg=plain record" in text


def test_log_event_without_logger_is_noop():
    logEvent(None, logging.ERROR, None, "api", "ignored")


def test_map_log_level():
    assert mapLogLevel("warn") == logging.WARNING
    assert mapLogLevel("WARNING") == logging.WARNING
    with pytest.raises(ValueError):
        mapLogLevel("TRACE")
