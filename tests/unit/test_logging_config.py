import json
import logging

from dbgrid.common.logger import (
    configure_logging,
    current_trace_id,
    get_logger,
    trace_context,
)


class TestStructuredLogging:

    def test_json_formatter_carries_trace_id(self):
        # Arrange
        configure_logging(json_format=True)
        handler = logging.getLogger().handlers[0]
        record = logging.LogRecord("dbgrid.test", logging.INFO, "path", 1, "test msg", {}, None)

        # Act
        with trace_context("trace-123"):
            handler.filter(record)
            formatted = handler.formatter.format(record)

        # Assert
        data = json.loads(formatted)
        assert data["message"] == "test msg"
        assert data["trace_id"] == "trace-123"
        assert data["level"] == "INFO"

    def test_extra_fields_are_rendered(self):
        # Validates `extra=` passthrough because failures are logged with connection_id and error_code.
        configure_logging(json_format=True)
        formatter = logging.getLogger().handlers[0].formatter
        record = logging.LogRecord("dbgrid.test", logging.WARNING, "path", 1, "failed", {}, None)
        record.connection_id = "local"
        record.error_code = "ROW_NOT_FOUND"

        data = json.loads(formatter.format(record))

        assert data["connection_id"] == "local"
        assert data["error_code"] == "ROW_NOT_FOUND"

    def test_plain_format_includes_trace_id(self):
        configure_logging(json_format=False)
        handler = logging.getLogger().handlers[0]
        record = logging.LogRecord("dbgrid.test", logging.INFO, "path", 1, "hello", {}, None)

        with trace_context("abc"):
            handler.filter(record)
            output = handler.formatter.format(record)

        assert "[abc]" in output
        assert output.endswith("hello")

    def test_configure_replaces_handlers(self):
        configure_logging()
        configure_logging()

        assert len(logging.getLogger().handlers) == 1
        assert logging.getLogger("sqlalchemy.engine").level == logging.WARNING


def test_trace_context_generates_and_resets():
    assert current_trace_id() is None

    with trace_context() as trace_id:
        assert trace_id
        assert current_trace_id() == trace_id
        with trace_context("inner"):
            assert current_trace_id() == "inner"
        assert current_trace_id() == trace_id

    assert current_trace_id() is None


def test_get_logger_is_named():
    assert get_logger("dbgrid.x").name == "dbgrid.x"
