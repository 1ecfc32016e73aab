from enum import Enum
from typing import Optional, Any


class ErrorCode(str, Enum):
    """Standardized error codes reported back to callers."""
    CONNECTION_UNAVAILABLE = "CONNECTION_UNAVAILABLE"
    TABLE_UNRESOLVABLE = "TABLE_UNRESOLVABLE"
    NOT_EDITABLE = "NOT_EDITABLE"
    MISSING_KEY_VALUE = "MISSING_KEY_VALUE"
    STALE_OR_MISSING_ROW = "STALE_OR_MISSING_ROW"
    QUERY_EXECUTION_FAILED = "QUERY_EXECUTION_FAILED"
    ROW_NOT_FOUND = "ROW_NOT_FOUND"
    EXECUTION_TIMEOUT = "EXECUTION_TIMEOUT"


DEFAULT_MESSAGES = {
    ErrorCode.CONNECTION_UNAVAILABLE: "Connection not available.",
    ErrorCode.TABLE_UNRESOLVABLE: "Could not determine table from SQL.",
    ErrorCode.NOT_EDITABLE: "No primary key, unique index or row address available.",
    ErrorCode.MISSING_KEY_VALUE: "Missing key value.",
    ErrorCode.STALE_OR_MISSING_ROW: "Row not found or already changed.",
    ErrorCode.QUERY_EXECUTION_FAILED: "Query execution failed.",
    ErrorCode.ROW_NOT_FOUND: "No row at this position.",
    ErrorCode.EXECUTION_TIMEOUT: "Operation timed out.",
}


class GridError(Exception):
    """Base class of every per-request failure raised inside the engine.

    These never escape the public operations: the executor converts them into
    result values carrying `error` and `error_code`.
    """

    code: ErrorCode = ErrorCode.QUERY_EXECUTION_FAILED

    def __init__(self, message: Optional[str] = None, details: Optional[Any] = None):
        self.message = message or DEFAULT_MESSAGES[self.code]
        self.details = details
        super().__init__(self.message)


class ConnectionUnavailable(GridError):
    code = ErrorCode.CONNECTION_UNAVAILABLE


class TableUnresolvable(GridError):
    code = ErrorCode.TABLE_UNRESOLVABLE


class NotEditable(GridError):
    code = ErrorCode.NOT_EDITABLE


class MissingKeyValue(GridError):
    code = ErrorCode.MISSING_KEY_VALUE

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"Missing key value for {column}", details={"column": column})


class StaleOrMissingRow(GridError):
    code = ErrorCode.STALE_OR_MISSING_ROW


class QueryExecutionFailed(GridError):
    code = ErrorCode.QUERY_EXECUTION_FAILED


class RowNotFound(GridError):
    code = ErrorCode.ROW_NOT_FOUND


class ExecutionTimeout(GridError):
    code = ErrorCode.EXECUTION_TIMEOUT

    def __init__(self, timeout_sec: float):
        super().__init__(
            f"Operation timed out after {timeout_sec} seconds.",
            details={"timeout_sec": timeout_sec},
        )


def backend_message(exc: BaseException) -> str:
    """Returns the driver's own message for a SQLAlchemy DBAPIError, else str(exc)."""
    orig = getattr(exc, "orig", None)
    if orig is not None:
        return str(orig).strip()
    return str(exc).strip()
