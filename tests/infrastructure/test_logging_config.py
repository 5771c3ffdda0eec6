"""Tests for the structured logging configuration."""

import json
import logging
import sys

import pytest

from conftest import bundle, make_document
from stateless_fhir.infrastructure.logging_config import (
    StructuredFormatter,
    setup_logging,
    setup_logging_from_settings,
)


@pytest.fixture
def restore_root_logger():
    """Put the root logger back the way pytest configured it."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


def make_record(message="hello", exc_info=None, **extra):
    record = logging.LogRecord(
        name="stateless_fhir.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    """JSON log lines."""

    def test_basic_fields(self):
        """Every line carries the standard fields."""
        data = json.loads(StructuredFormatter().format(make_record()))

        assert data["level"] == "WARNING"
        assert data["logger"] == "stateless_fhir.test"
        assert data["message"] == "hello"
        assert data["line"] == 10
        assert data["timestamp"].endswith("Z")

    def test_context_and_extra_fields(self):
        """Engine context attributes and extra_fields are copied."""
        record = make_record(source_id="doc-1", entry_index=2, extra_fields={"batch": 3})

        data = json.loads(StructuredFormatter().format(record))

        assert data["source_id"] == "doc-1"
        assert data["entry_index"] == 2
        assert data["batch"] == 3

    def test_exception_included(self):
        """Tracebacks are rendered into the exception field."""
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = make_record(exc_info=sys.exc_info())

        data = json.loads(StructuredFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]


class TestSetupLogging:
    """Root logger configuration."""

    def test_json_handler(self, restore_root_logger):
        """use_json installs a single handler with the JSON formatter."""
        setup_logging(use_json=True, log_level="debug")

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    def test_human_handler(self, restore_root_logger):
        """The default format is human-readable."""
        setup_logging(log_level="WARNING")

        formatter = restore_root_logger.handlers[0].formatter
        assert not isinstance(formatter, StructuredFormatter)
        assert restore_root_logger.level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        """Unknown level names default to INFO."""
        setup_logging(log_level="chatty")

        assert restore_root_logger.level == logging.INFO

    def test_setup_from_settings(self, restore_root_logger, monkeypatch):
        """SF_LOG_LEVEL and SF_LOG_JSON drive the setup."""
        from stateless_fhir.infrastructure import settings as settings_module

        monkeypatch.setattr(settings_module.settings, "log_level", "ERROR")
        monkeypatch.setattr(settings_module.settings, "log_json", True)

        setup_logging_from_settings()

        assert restore_root_logger.level == logging.ERROR
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)


class TestEngineContext:
    """Engine stages attach document context to their log records."""

    def _formatted(self, caplog, fragment):
        (record,) = [r for r in caplog.records if fragment in r.getMessage()]
        return json.loads(StructuredFormatter().format(record))

    def test_skipped_entry_context(self, pipeline, caplog):
        """Skipped bundle entries carry the source id and entry index."""
        document = make_document("doc-7", bundle("b1", {"resourceType": "Patient", "id": "p1"}, "junk"))

        with caplog.at_level(logging.DEBUG, logger="stateless_fhir"):
            pipeline.run([document])

        data = self._formatted(caplog, "Skipping entry 1")
        assert data["source_id"] == "doc-7"
        assert data["entry_index"] == 1

    def test_ambiguity_context(self, pipeline, caplog):
        """Ambiguity warnings carry the source id and resource type."""
        document = make_document("doc-8", {"resourceType": "Bundle", "entry": {"resource": {}}})

        with caplog.at_level(logging.WARNING, logger="stateless_fhir"):
            pipeline.run([document])

        data = self._formatted(caplog, "Ambiguous document doc-8")
        assert data["source_id"] == "doc-8"
        assert data["resource_type"] == "Bundle"

    def test_field_error_context(self, pipeline, caplog):
        """Field errors carry the full instance context."""
        document = make_document("doc-9", bundle("b2", {"resourceType": "Patient", "gender": "male"}))

        with caplog.at_level(logging.DEBUG, logger="stateless_fhir"):
            pipeline.run([document])

        data = self._formatted(caplog, "field error(s)")
        assert data["source_id"] == "doc-9"
        assert data["resource_type"] == "Patient"
        assert data["entry_index"] == 0
        assert data["thread"]
