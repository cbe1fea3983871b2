"""
Tests for the logging module.
"""

from __future__ import annotations

import json
import logging
import sys

import pytest

from contract_rpc.config import LoggingConfig
from contract_rpc.logging import ROOT_LOGGER_NAME, JSONFormatter, get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_package_logger() -> None:
    """Restore the package logger after each test."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


def make_record(msg: str = "Procedure failed", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="contract_rpc.dispatcher",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self) -> None:
        entry = json.loads(JSONFormatter().format(make_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "contract_rpc.dispatcher"
        assert entry["message"] == "Procedure failed"
        assert "timestamp" in entry
        assert "pathname" not in entry

    def test_extra_fields_included(self) -> None:
        entry = json.loads(
            JSONFormatter().format(make_record(kind="UNAUTHORIZED", status=401, procedure=None))
        )

        assert entry["kind"] == "UNAUTHORIZED"
        assert entry["status"] == 401
        assert "procedure" not in entry

    def test_exception_included(self) -> None:
        try:
            raise KeyError("boom")
        except KeyError:
            record = make_record()
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))

        assert "KeyError" in entry["exception"]

    def test_unserializable_extra(self) -> None:
        """Values json cannot encode are stringified."""
        entry = json.loads(JSONFormatter().format(make_record(meta=object())))
        assert entry["meta"].startswith("<object object")


class TestSetupLogging:
    """Tests for setup_logging and get_logger."""

    def test_setup_with_config(self) -> None:
        logger = setup_logging(LoggingConfig(level="debug", json_format=False))

        assert logger.name == ROOT_LOGGER_NAME
        assert logger.level == logging.DEBUG
        assert logger.propagate is False
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_debug_mode_forces_debug_level(self) -> None:
        logger = setup_logging(LoggingConfig(level="error", debug_mode=True))
        assert logger.level == logging.DEBUG

    def test_setup_json(self) -> None:
        logger = setup_logging(level="WARNING")

        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_setup_without_stdout(self) -> None:
        logger = setup_logging(LoggingConfig(log_to_stdout=False))
        assert logger.handlers == []

    def test_repeated_setup_replaces_handlers(self) -> None:
        setup_logging()
        logger = setup_logging()
        assert len(logger.handlers) == 1

    def test_get_logger_namespacing(self) -> None:
        assert get_logger("contract_rpc.client").name == "contract_rpc.client"
        assert get_logger("tests").name == "contract_rpc.tests"

    def test_json_output(self, capsys: pytest.CaptureFixture[str]) -> None:
        setup_logging(level="INFO")
        get_logger("contract_rpc.test").info("hello", extra={"status": 200})

        line = capsys.readouterr().out.strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["message"] == "hello"
        assert entry["status"] == 200
