"""Tests for structured logging."""

import json
import logging
import sys

import pytest

from docvault.core.config import Settings
from docvault.core.logging import CloudLoggingFormatter, setup_logging, upload_id_context


def _record(msg="Chunk accepted", level=logging.INFO, **extra):
    record = logging.LogRecord("docvault.tus.handler", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formats_single_line_json_with_extra_fields():
    line = CloudLoggingFormatter().format(_record(offset=1024, object_key="uploads/a.pdf"))

    assert "\n" not in line
    entry = json.loads(line)
    assert entry["severity"] == "INFO"
    assert entry["message"] == "Chunk accepted"
    assert entry["logger"] == "docvault.tus.handler"
    assert entry["offset"] == 1024
    assert entry["object_key"] == "uploads/a.pdf"


def test_includes_upload_id_from_context():
    token = upload_id_context.set("abc123")
    try:
        entry = json.loads(CloudLoggingFormatter().format(_record()))
    finally:
        upload_id_context.reset(token)

    assert entry["upload_id"] == "abc123"


def test_includes_exception_details():
    try:
        raise ValueError("bad offset")
    except ValueError:
        record = _record(level=logging.ERROR)
        record.exc_info = sys.exc_info()

    entry = json.loads(CloudLoggingFormatter().format(record))

    assert entry["severity"] == "ERROR"
    assert entry["exception_type"] == "ValueError"
    assert entry["exception_message"] == "bad offset"
    assert "Traceback" in entry["exception"]


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    level, handlers = root.level, root.handlers[:]
    yield root
    root.setLevel(level)
    root.handlers = handlers


def test_setup_uses_given_settings(restore_root_logger):
    setup_logging(Settings(_env_file=None, ENV="production", LOG_LEVEL="warning"))

    assert restore_root_logger.level == logging.WARNING
    [handler] = restore_root_logger.handlers
    assert isinstance(handler.formatter, CloudLoggingFormatter)


def test_setup_local_uses_text_at_debug(restore_root_logger):
    setup_logging(Settings(_env_file=None, ENV="local", LOG_LEVEL="ERROR"))

    assert restore_root_logger.level == logging.DEBUG
    [handler] = restore_root_logger.handlers
    assert not isinstance(handler.formatter, CloudLoggingFormatter)
