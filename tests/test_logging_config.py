from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import pytest

from instrument_gateway.app.utilities.logging_config import (
    JsonFormatter, LogLevel, LoggingConfig, LoggingManager
)


def _close(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_json_file_output_carries_extras(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "gateway.log"
    manager = LoggingManager()
    manager.configure(LoggingConfig(
        level="debug", logger_name="gateway_test_json", enable_console=False, log_file_path=str(log_file)
    ))
    logger = manager.get_logger("poller")

    logger.info("Exchange failed", extra={"component": "device_poller", "device_id": "box1"})
    _close(logging.getLogger("gateway_test_json"))

    record = json.loads(log_file.read_text(encoding="utf-8").strip())
    assert logger.name == "gateway_test_json.poller"
    assert record["level"] == "INFO"
    assert record["message"] == "Exchange failed"
    assert record["extra"] == {"component": "device_poller", "device_id": "box1"}
    assert record["timestamp"].endswith("Z")


def test_excluded_components_are_dropped(tmp_path: Path) -> None:
    log_file = tmp_path / "gateway.log"
    manager = LoggingManager()
    manager.configure(LoggingConfig(
        logger_name="gateway_test_filter", enable_console=False, log_file_path=str(log_file),
        exclude_components=["failure_tracker"]
    ))
    logger = manager.get_logger()

    logger.info("kept", extra={"component": "api"})
    logger.info("dropped", extra={"component": "failure_tracker"})
    _close(logger)

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["message"] for line in lines] == ["kept"]


def test_reconfigure_replaces_handlers_and_level() -> None:
    manager = LoggingManager()
    config = LoggingConfig(logger_name="gateway_test_reconfigure", format_type="standard")
    manager.configure(config)
    manager.configure(config)
    logger = manager.get_logger()

    assert len(logger.handlers) == 1
    manager.set_level("warning")
    assert logger.level == logging.WARNING
    _close(logger)


def test_unconfigured_manager_and_bad_level() -> None:
    with pytest.raises(RuntimeError):
        LoggingManager().get_logger()
    with pytest.raises(ValueError):
        LogLevel.from_name("loud")


def test_json_formatter_includes_exception() -> None:
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "failed"
    assert "ValueError: boom" in payload["exception"]
