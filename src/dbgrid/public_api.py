"""
Public API for dbgrid

Every operation runs on the shared worker pool under its own trace id and
returns a result value; nothing raises to the caller for per-request failures.
"""

from __future__ import annotations

import pathlib
from typing import Any, Callable, Mapping, Optional, Union

from dbgrid.common.errors import GridError
from dbgrid.common.logger import get_logger, trace_context
from dbgrid.common.sandbox import get_execution_pool, run_in_pool
from dbgrid.common.settings import settings
from dbgrid.datasources.config import ConnectionProfile, profile_from_dict
from dbgrid.datasources.registry import ConnectionRegistry
from dbgrid.editing.models import RowIdentity
from dbgrid.execution.executor import QueryExecutor
from dbgrid.execution.models import (
    ConnectionStatus,
    DatabaseInfo,
    EditableRow,
    Page,
    SaveOutcome,
    TableInfo,
    TabularResult,
)
from dbgrid.sql.table_ref import TableRef

logger = get_logger(__name__)


class DbGrid:
    """
    Browse and edit data across registered connections.

    Args:
        connections_config_path: YAML list of connection profiles; `CONNECTIONS_CONFIG` when omitted.
        registry: An existing registry to use instead of loading one.
        timeout_sec: How long a call waits for its worker; `EXEC_TIMEOUT_SEC` when omitted.
    """

    def __init__(
        self,
        connections_config_path: Optional[Union[str, pathlib.Path]] = None,
        registry: Optional[ConnectionRegistry] = None,
        timeout_sec: Optional[float] = None,
    ):
        if registry is None:
            path = pathlib.Path(connections_config_path) if connections_config_path else None
            registry = ConnectionRegistry.from_config(path)
        self.registry = registry
        self.executor = QueryExecutor(registry)
        self.timeout_sec = timeout_sec or settings.exec_timeout_sec

    def _run(self, func: Callable, on_failure: Callable[[GridError], Any], *args, **kwargs):
        with trace_context():
            return run_in_pool(
                get_execution_pool(),
                func,
                *args,
                timeout_sec=self.timeout_sec,
                on_failure=on_failure,
                **kwargs,
            )

    def add_connection(self, profile: Union[ConnectionProfile, Mapping[str, Any]]) -> ConnectionProfile:
        """
        Programmatically register a connection.

        Raises:
            ValueError: If the profile's kind is not supported.
        """
        if not isinstance(profile, ConnectionProfile):
            profile = profile_from_dict(dict(profile))
        return self.registry.register(profile)

    def list_connections(self) -> list:
        return self.registry.list_profiles()

    def run_paged_query(
        self,
        connection_id: str,
        sql: str,
        offset: int = 0,
        limit: int = 100,
        sort_column: Optional[str] = None,
        sort_order: Optional[str] = None,
        search_term: Optional[str] = None,
    ) -> TabularResult:
        """Runs a statement and returns one page of its result."""
        return self._run(
            self.executor.run_paged_query,
            lambda e: TabularResult.failure(e, max(0, offset), limit),
            connection_id, sql, offset, limit, sort_column, sort_order, search_term,
        )

    def fetch_row_for_edit(
        self,
        connection_id: str,
        sql: str,
        row_number: int,
        sort_column: Optional[str] = None,
        sort_order: Optional[str] = None,
        search_term: Optional[str] = None,
    ) -> EditableRow:
        """Opens the row at `row_number` of the sorted (and filtered) result for editing."""
        return self._run(
            self.executor.fetch_row_for_edit,
            EditableRow.failure,
            connection_id, sql, row_number, sort_column, sort_order, search_term,
        )

    def save_row(
        self,
        connection_id: str,
        table_ref: Union[str, TableRef],
        identity: Optional[Union[RowIdentity, Mapping[str, Any]]],
        column_values: Mapping[str, Optional[str]],
    ) -> SaveOutcome:
        """Writes edited values of one row back to its table."""
        return self._run(
            self.executor.save_row,
            SaveOutcome.failure,
            connection_id, table_ref, identity, column_values,
        )

    def resolve_table_ref(self, sql: str) -> Optional[TableRef]:
        """The table a query reads from, or None. Pure; does not touch the database."""
        return self.executor.resolve_table_ref(sql)

    def list_databases(
        self,
        connection_id: str,
        page: int = 1,
        size: Optional[int] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Page[DatabaseInfo]:
        return self._run(
            self.executor.list_databases,
            lambda e: Page[DatabaseInfo](page=page, error=e.message, error_code=e.code),
            connection_id, page, size, sort, order,
        )

    def list_schemas(
        self,
        connection_id: str,
        page: int = 1,
        size: Optional[int] = None,
        order: Optional[str] = None,
    ) -> Page[str]:
        return self._run(
            self.executor.list_schemas,
            lambda e: Page[str](page=page, error=e.message, error_code=e.code),
            connection_id, page, size, order,
        )

    def list_tables(
        self,
        connection_id: str,
        schema: Optional[str] = None,
        page: int = 1,
        size: Optional[int] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Page[TableInfo]:
        """Tables and views sorted by `name`, `type`, `size` or `rows`."""
        return self._run(
            self.executor.list_tables,
            lambda e: Page[TableInfo](page=page, error=e.message, error_code=e.code),
            connection_id, schema, page, size, sort, order,
        )

    def check_connection(self, connection_id: str) -> ConnectionStatus:
        return self._run(
            self.executor.check_connection,
            ConnectionStatus.failure,
            connection_id,
        )
