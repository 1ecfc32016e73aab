import logging
import json
import uuid
import contextvars
from contextlib import contextmanager
from typing import Optional

_trace_id_ctx = contextvars.ContextVar("trace_id", default=None)


class TraceContextFilter(logging.Filter):
    """Injects trace_id from contextvar into the log record."""
    def filter(self, record):
        record.trace_id = _trace_id_ctx.get()
        return True


def new_trace_id() -> str:
    return uuid.uuid4().hex[:16]


def current_trace_id() -> Optional[str]:
    return _trace_id_ctx.get()


@contextmanager
def trace_context(trace_id: Optional[str] = None):
    """Scopes a trace id to the current context.

    Args:
        trace_id (Optional[str]): The id to use; a fresh one is generated when omitted.

    Yields:
        str: The active trace id.
    """
    trace_id = trace_id or new_trace_id()
    token = _trace_id_ctx.set(trace_id)
    try:
        yield trace_id
    finally:
        _trace_id_ctx.reset(token)


class JsonFormatter(logging.Formatter):
    """Formatter that renders each LogRecord as a single JSON line."""

    _standard_attrs = {
        "args", "asctime", "created", "exc_info", "exc_text", "filename",
        "funcName", "levelname", "levelno", "lineno", "module",
        "msecs", "message", "msg", "name", "pathname", "process",
        "processName", "relativeCreated", "stack_info", "thread", "threadName",
        "taskName", "trace_id"
    }

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }

        if getattr(record, "trace_id", None):
            log_record["trace_id"] = record.trace_id

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        # Anything passed through `extra=` ends up as a record attribute.
        for key, value in record.__dict__.items():
            if key not in self._standard_attrs and not key.startswith("_"):
                log_record[key] = value

        return json.dumps(log_record, default=str)


def configure_logging(level: str = "INFO", json_format: bool = False):
    """Configures the root logger.

    Args:
        level (str): The logging level (default: INFO).
        json_format (bool): Whether to use JSON formatting (default: False).
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.addFilter(TraceContextFilter())

    if json_format:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s - [%(trace_id)s] - %(name)s - %(levelname)s - %(message)s"
        ))

    root_logger.addHandler(handler)

    # SQLAlchemy echoes every statement at INFO when its engine logger is enabled.
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Gets a named logger.

    Args:
        name (str): The name of the logger.

    Returns:
        logging.Logger: The logger instance.
    """
    return logging.getLogger(name)
