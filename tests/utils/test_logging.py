import json
import logging

import structlog

from Medical_Conformance.config import LoggingSettings
from Medical_Conformance.utils.logging import (
    JsonFormatter,
    bind_batch_id,
    configure_logging,
    reset_batch_id,
)


def test_configure_logging_sets_level():
    configure_logging(level=logging.DEBUG)
    assert logging.getLogger().level == logging.DEBUG
    logger = structlog.get_logger("test")
    logger.debug("validation.test.debug", key="value")


def test_structlog_events_include_batch_id_and_scrub(capsys):
    configure_logging(settings=LoggingSettings(level="INFO", scrub_fields=["token"]))
    token = bind_batch_id("batch-123")
    try:
        assert structlog.contextvars.get_contextvars()["batch_id"] == "batch-123"
        structlog.get_logger("observability").info("validation.batch.started", token="secret")
    finally:
        reset_batch_id(token)
    line = capsys.readouterr().err.strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload["event"] == "validation.batch.started"
    assert payload["batch_id"] == "batch-123"
    assert payload["token"] == "***"
    assert "batch_id" not in structlog.contextvars.get_contextvars()


def test_json_formatter_scrubs_extra_fields():
    formatter = JsonFormatter(scrub_fields=["password"])
    record = logging.LogRecord("app", logging.INFO, __file__, 1, "hello", None, None)
    record.password = "hunter2"
    record.detail = "ok"
    payload = json.loads(formatter.format(record))
    assert payload["message"] == "hello"
    assert payload["password"] == "***"
    assert payload["detail"] == "ok"
