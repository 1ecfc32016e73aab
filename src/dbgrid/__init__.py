from dbgrid.common.errors import ErrorCode, GridError
from dbgrid.datasources import ConnectionProfile, ConnectionRegistry
from dbgrid.dialects import Dialect, TypeCategory, get_dialect
from dbgrid.editing.models import KeyComponent, KeyIdentity, PhysicalIdentity, RowIdentity
from dbgrid.execution.executor import QueryExecutor
from dbgrid.execution.models import (
    ConnectionStatus,
    DatabaseInfo,
    EditableColumn,
    EditableRow,
    Page,
    PageRequest,
    SaveOutcome,
    TableInfo,
    TabularResult,
)
from dbgrid.public_api import DbGrid
from dbgrid.sql.table_ref import TableRef, parse_table_name, parse_table_ref

__all__ = [
    "DbGrid",
    "QueryExecutor",
    "ConnectionProfile",
    "ConnectionRegistry",
    "Dialect",
    "TypeCategory",
    "get_dialect",
    "ErrorCode",
    "GridError",
    "KeyComponent",
    "KeyIdentity",
    "PhysicalIdentity",
    "RowIdentity",
    "ConnectionStatus",
    "DatabaseInfo",
    "EditableColumn",
    "EditableRow",
    "Page",
    "PageRequest",
    "SaveOutcome",
    "TableInfo",
    "TabularResult",
    "TableRef",
    "parse_table_name",
    "parse_table_ref",
]
