"""
Query execution against registered connections.

`QueryExecutor` is stateless: every call opens a fresh engine and connection
through the registry, runs the statement(s) and releases both on every exit
path. Failures never escape; they come back as result values carrying
`error` and `error_code`.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError, SQLAlchemyError

from dbgrid.common.errors import (
    ConnectionUnavailable,
    GridError,
    MissingKeyValue,
    NotEditable,
    QueryExecutionFailed,
    RowNotFound,
    TableUnresolvable,
    backend_message,
)
from dbgrid.common.logger import get_logger
from dbgrid.common.settings import settings
from dbgrid.common.utils import to_text, truncate_cell
from dbgrid.datasources.registry import ConnectionRegistry
from dbgrid.dialects.base import Dialect
from dbgrid.editing.catalog import CatalogReader, sort_listing
from dbgrid.editing.identity import RowIdentityResolver
from dbgrid.editing.models import (
    IdentityPlan,
    IdentityStrategyKind,
    KeyIdentity,
    PhysicalIdentity,
    RowIdentity,
)
from dbgrid.editing.mutator import RowMutator
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
from dbgrid.sql.pager import page_query
from dbgrid.sql.search import ROW_ADDRESS_COLUMN, shape_query, search_query
from dbgrid.sql.statement import escape_bind_markers, is_select_statement, strip_statement
from dbgrid.sql.table_ref import TableRef, parse_table_name, parse_table_ref

logger = get_logger(__name__)

_identity_adapter = TypeAdapter(RowIdentity)


def unique_labels(labels: Sequence[str]) -> List[str]:
    """Makes result labels unique: the second `id` becomes `id_2`, the third `id_3`."""
    used = set()
    out = []
    for label in labels:
        label = str(label)
        candidate = label
        n = 2
        while candidate in used:
            candidate = f"{label}_{n}"
            n += 1
        used.add(candidate)
        out.append(candidate)
    return out


def _driver_type_name(type_code: Any) -> str:
    """Best-effort type name from a DBAPI cursor description entry."""
    if type_code is None:
        return "unknown"
    if isinstance(type_code, type):
        return type_code.__name__
    name = getattr(type_code, "name", None)
    if isinstance(name, str):
        return name
    return str(type_code)


class QueryExecutor:
    """
    Runs paged queries, opens rows for editing and saves edited rows.

    Args:
        registry (ConnectionRegistry): Source of connection profiles and engines.
        max_rows (Optional[int]): Server-wide page size cap; `QUERY_ROWS_LIMIT` when omitted.
        cell_max_length (Optional[int]): Display truncation length; `CELL_MAX_LENGTH` when omitted.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        max_rows: Optional[int] = None,
        cell_max_length: Optional[int] = None,
    ):
        self.registry = registry
        self.max_rows = max_rows or settings.query_rows_limit
        self.cell_max_length = cell_max_length or settings.cell_max_length

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    @contextmanager
    def _connect(self, engine: Engine, connection_id: str) -> Iterator[Connection]:
        """Opens a connection, reporting any failure to connect as ConnectionUnavailable."""
        try:
            conn = engine.connect()
        except SQLAlchemyError as e:
            raise ConnectionUnavailable(
                backend_message(e), details={"connection_id": str(connection_id)}
            ) from e
        try:
            yield conn
        finally:
            conn.close()

    def _to_grid_error(self, exc: Exception) -> GridError:
        if isinstance(exc, GridError):
            return exc
        if isinstance(exc, DBAPIError) and exc.connection_invalidated:
            return ConnectionUnavailable(backend_message(exc))
        return QueryExecutionFailed(backend_message(exc))

    def _log_failure(self, operation: str, connection_id: str, error: GridError):
        logger.warning(
            f"{operation} failed for connection {connection_id}: {error.message}",
            extra={"connection_id": str(connection_id), "error_code": error.code.value},
        )

    def _plan(self, resolver: RowIdentityResolver, table: TableRef) -> IdentityPlan:
        """Resolves identity, reporting connectivity failures during introspection as ConnectionUnavailable."""
        try:
            return resolver.plan(table)
        except (OperationalError, InterfaceError) as e:
            raise ConnectionUnavailable(backend_message(e)) from e

    def _result_columns(self, conn: Connection, dialect: Dialect, stmt: str) -> List[str]:
        try:
            result = conn.execute(text(shape_query(stmt, dialect)))
            columns = list(result.keys())
            result.close()
        except SQLAlchemyError as e:
            conn.rollback()
            raise ConnectionUnavailable(backend_message(e)) from e
        return columns

    def _select_query(
        self,
        conn: Connection,
        dialect: Dialect,
        stmt: str,
        request: PageRequest,
        lookahead: int,
    ) -> Tuple[str, Dict[str, Any]]:
        """Builds the paged (and, with a search term, filtered) query for an escaped statement."""
        if request.search_term:
            columns = self._result_columns(conn, dialect, stmt)
            if not any(c.lower() != ROW_ADDRESS_COLUMN for c in columns):
                raise QueryExecutionFailed("Statement has no columns to search.")
            return search_query(
                stmt, dialect, columns, request.search_term,
                limit=request.limit, offset=request.offset,
                sort_column=request.sort_column, sort_order=request.sort_order,
                max_limit=self.max_rows, lookahead=lookahead,
            )
        query = page_query(
            stmt, dialect,
            limit=request.limit, offset=request.offset,
            sort_column=request.sort_column, sort_order=request.sort_order,
            max_limit=self.max_rows, lookahead=lookahead,
        )
        return query, {}

    def _column_types(
        self,
        conn: Connection,
        dialect: Dialect,
        stmt: str,
        columns: List[str],
        description: Optional[Sequence],
    ) -> List[str]:
        """Declared types from the catalog when the table resolves, else driver type codes."""
        driver_types = [
            _driver_type_name(entry[1]) if entry is not None and len(entry) > 1 else "unknown"
            for entry in (description or [])
        ]
        driver_types += ["unknown"] * (len(columns) - len(driver_types))

        declared: Dict[str, str] = {}
        table = parse_table_ref(stmt)
        if table is not None:
            try:
                catalog = CatalogReader(conn, dialect)
                declared = {
                    name.lower(): c.data_type for name, c in catalog.columns(table).items()
                }
            except (GridError, SQLAlchemyError) as e:
                logger.debug(f"Column types unavailable for {table.sql}: {e}")

        return [declared.get(c.lower(), driver_types[i]) for i, c in enumerate(columns)]

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def resolve_table_ref(self, sql: str) -> Optional[TableRef]:
        """The table a query reads from, or None when it cannot be determined."""
        return parse_table_ref(strip_statement(sql or ""))

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
        """
        Runs a statement and returns one page of its result.

        SELECT-like statements are wrapped in an ordered, paginated query that
        fetches one extra row to compute `has_more`. Other statements run once,
        are committed, and report `rows_affected` (plus up to one page of rows
        when they return any).

        Args:
            connection_id (str): Registered connection key.
            sql (str): Free-form statement.
            offset (int): Rows to skip.
            limit (int): Page size, capped at the server maximum.
            sort_column (Optional[str]): Result column to sort by.
            sort_order (Optional[str]): "asc" or "desc".
            search_term (Optional[str]): Substring filter across all columns.

        Returns:
            TabularResult: The page, or a result carrying `error` and `error_code`.
        """
        request = PageRequest(
            offset=offset, limit=limit, sort_column=sort_column,
            sort_order=sort_order, search_term=search_term,
        ).clamp(self.max_rows)

        stmt = strip_statement(sql)
        if not stmt:
            return TabularResult.failure(
                QueryExecutionFailed("Empty statement."), request.offset, request.limit
            )

        try:
            with self.registry.open(connection_id) as engine:
                dialect = self.registry.dialect_for(connection_id)
                with self._connect(engine, connection_id) as conn:
                    if not is_select_statement(stmt, dialect):
                        return self._run_statement(conn, stmt, request)

                    query, params = self._select_query(
                        conn, dialect, escape_bind_markers(stmt), request, lookahead=1
                    )
                    result = conn.execute(text(query), params)
                    cursor = getattr(result, "cursor", None)
                    description = cursor.description if cursor is not None else None
                    columns = unique_labels(list(result.keys()))
                    fetched = result.fetchmany(request.limit + 1)
                    result.close()

                    has_more = len(fetched) > request.limit
                    rows = [
                        [truncate_cell(v, self.cell_max_length) for v in row]
                        for row in fetched[:request.limit]
                    ]
                    column_types = self._column_types(conn, dialect, stmt, columns, description)

                return TabularResult(
                    columns=columns,
                    column_types=column_types,
                    rows=rows,
                    offset=request.offset,
                    limit=request.limit,
                    has_more=has_more,
                )

        except (GridError, SQLAlchemyError) as e:
            error = self._to_grid_error(e)
            self._log_failure("run_paged_query", connection_id, error)
            return TabularResult.failure(error, request.offset, request.limit)

    def _run_statement(self, conn: Connection, stmt: str, request: PageRequest) -> TabularResult:
        result = conn.execute(text(escape_bind_markers(stmt)))
        columns: List[str] = []
        rows: List[List[Optional[str]]] = []
        has_more = False
        if result.returns_rows:
            columns = unique_labels(list(result.keys()))
            fetched = result.fetchmany(request.limit + 1)
            has_more = len(fetched) > request.limit
            rows = [
                [truncate_cell(v, self.cell_max_length) for v in row]
                for row in fetched[:request.limit]
            ]
        affected = result.rowcount
        result.close()
        conn.commit()
        return TabularResult(
            columns=columns,
            column_types=["unknown"] * len(columns),
            rows=rows,
            offset=0,
            limit=request.limit,
            has_more=has_more,
            rows_affected=affected if affected is not None and affected >= 0 else None,
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
        """
        Re-runs the paged query narrowed to the row at `row_number` and opens it for editing.

        The row comes back even when it cannot be edited; in that case every
        column is read-only and `error_code` says why (TABLE_UNRESOLVABLE,
        NOT_EDITABLE, MISSING_KEY_VALUE).

        Args:
            row_number (int): Absolute 0-based position in the sorted (and filtered) result.

        Returns:
            EditableRow: The row, or a result carrying `error` and `error_code`.
        """
        stmt = strip_statement(sql)
        table = parse_table_ref(stmt)
        table_sql = table.sql if table else None

        if row_number is None or row_number < 0:
            return EditableRow.failure(RowNotFound(), table_sql)

        request = PageRequest(
            offset=row_number, limit=1, sort_column=sort_column,
            sort_order=sort_order, search_term=search_term,
        )

        try:
            with self.registry.open(connection_id) as engine:
                dialect = self.registry.dialect_for(connection_id)
                if not stmt or not is_select_statement(stmt, dialect):
                    raise NotEditable("Only SELECT statements can be opened for editing.")

                with self._connect(engine, connection_id) as conn:
                    resolver = RowIdentityResolver(CatalogReader(conn, dialect), dialect)
                    plan, read_stmt, warning = self._edit_plan(conn, resolver, stmt, table)

                    try:
                        row = self._fetch_one(conn, dialect, read_stmt, request)
                    except SQLAlchemyError as e:
                        if read_stmt == stmt:
                            raise
                        # The address column made the statement invalid; read it as written.
                        logger.info(f"Row address fetch failed, reading without it: {backend_message(e)}")
                        conn.rollback()
                        plan, warning = None, NotEditable("Row address not available for this statement.")
                        row = self._fetch_one(conn, dialect, stmt, request)

                if row is None:
                    raise RowNotFound()

                return self._editable_row(table_sql, plan, row, warning, resolver)

        except (GridError, SQLAlchemyError) as e:
            error = self._to_grid_error(e)
            self._log_failure("fetch_row_for_edit", connection_id, error)
            return EditableRow.failure(error, table_sql)

    def _edit_plan(
        self,
        conn: Connection,
        resolver: RowIdentityResolver,
        stmt: str,
        table: Optional[TableRef],
    ) -> Tuple[Optional[IdentityPlan], str, Optional[GridError]]:
        """Decides identity for an edit fetch. Returns `(plan, statement to read, warning)`."""
        if table is None:
            return None, stmt, TableUnresolvable()

        try:
            plan = self._plan(resolver, table)
        except TableUnresolvable as e:
            return None, stmt, e
        except SQLAlchemyError as e:
            conn.rollback()
            return None, stmt, TableUnresolvable(backend_message(e), details={"table": table.sql})

        if plan.strategy == IdentityStrategyKind.NONE:
            return plan, stmt, NotEditable(plan.reason)

        if plan.strategy == IdentityStrategyKind.PHYSICAL:
            try:
                return plan, resolver.inject_address(stmt, table), None
            except NotEditable as e:
                return None, stmt, e

        return plan, stmt, None

    def _fetch_one(
        self,
        conn: Connection,
        dialect: Dialect,
        stmt: str,
        request: PageRequest,
    ) -> Optional[Dict[str, Any]]:
        query, params = self._select_query(conn, dialect, escape_bind_markers(stmt), request, lookahead=0)
        result = conn.execute(text(query), params)
        labels = unique_labels(list(result.keys()))
        row = result.fetchone()
        result.close()
        if row is None:
            return None
        return dict(zip(labels, row))

    def _editable_row(
        self,
        table_sql: Optional[str],
        plan: Optional[IdentityPlan],
        row: Dict[str, Any],
        warning: Optional[GridError],
        resolver: RowIdentityResolver,
    ) -> EditableRow:
        identity = None
        if plan is not None and plan.editable and warning is None:
            try:
                identity = resolver.identity_from_row(plan, row)
            except (MissingKeyValue, NotEditable) as e:
                warning = e

        editable = identity is not None
        columns = []
        for name, value in row.items():
            if name.lower() == ROW_ADDRESS_COLUMN:
                continue
            descriptor = plan.column(name) if plan is not None else None
            columns.append(EditableColumn(
                name=name,
                data_type=descriptor.data_type if descriptor else "unknown",
                value=to_text(value),
                is_null=value is None,
                read_only=(
                    not editable
                    or descriptor is None
                    or plan.is_key_column(name)
                ),
            ))

        return EditableRow(
            table=table_sql,
            columns=columns,
            identity=identity,
            editable=editable,
            error=warning.message if warning else None,
            error_code=warning.code if warning else None,
        )

    def save_row(
        self,
        connection_id: str,
        table_ref: Union[str, TableRef],
        identity: Optional[Union[RowIdentity, Mapping[str, Any]]],
        column_values: Mapping[str, Optional[str]],
    ) -> SaveOutcome:
        """
        Writes edited values of one row back to its table.

        Args:
            connection_id (str): Registered connection key.
            table_ref (Union[str, TableRef]): The table as returned by `fetch_row_for_edit`.
            identity: The identity returned with the row (or its dict form). When
                omitted, the key is resolved from the catalog and its values are
                taken from `column_values`.
            column_values (Mapping[str, Optional[str]]): Column name -> submitted string.

        Returns:
            SaveOutcome: `success` with `rows_updated`, or `error` and `error_code`.
        """
        table = table_ref if isinstance(table_ref, TableRef) else parse_table_name(table_ref)
        if table is None:
            return SaveOutcome.failure(TableUnresolvable())

        try:
            if identity is not None and not isinstance(identity, (KeyIdentity, PhysicalIdentity)):
                identity = _identity_adapter.validate_python(identity)
        except ValidationError as e:
            return SaveOutcome.failure(NotEditable(f"Invalid row identity: {e.error_count()} error(s)."))

        try:
            with self.registry.open(connection_id) as engine:
                dialect = self.registry.dialect_for(connection_id)
                with self._connect(engine, connection_id) as conn:
                    resolver = RowIdentityResolver(CatalogReader(conn, dialect), dialect)
                    plan = self._plan(resolver, table)
                    if not plan.editable:
                        raise NotEditable(plan.reason)
                    if identity is None:
                        identity = resolver.identity_from_values(plan, column_values)

                with self._connect(engine, connection_id) as conn:
                    updated = RowMutator(dialect).update(conn, table, plan, identity, column_values)

            logger.info(f"Saved row in {table.sql} on connection {connection_id}")
            return SaveOutcome(success=True, rows_updated=updated)

        except (GridError, SQLAlchemyError) as e:
            error = self._to_grid_error(e)
            self._log_failure("save_row", connection_id, error)
            return SaveOutcome.failure(error)

    def list_databases(
        self,
        connection_id: str,
        page: int = 1,
        size: Optional[int] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Page[DatabaseInfo]:
        """Databases of a connection with their sizes, capped at `DATABASES_LIMIT`.

        `sort` is `name` or `size`; `order="desc"` reverses.
        """
        size = size or settings.databases_limit
        try:
            with self.registry.open(connection_id) as engine:
                dialect = self.registry.dialect_for(connection_id)
                with self._connect(engine, connection_id) as conn:
                    databases = CatalogReader(conn, dialect).databases()
            databases = sort_listing(databases, sort, order)[:settings.databases_limit]
            return Page[DatabaseInfo].of(databases, page, size)
        except (GridError, SQLAlchemyError) as e:
            error = self._to_grid_error(e)
            self._log_failure("list_databases", connection_id, error)
            return Page[DatabaseInfo](page=page, size=size, error=error.message, error_code=error.code)

    def list_schemas(
        self,
        connection_id: str,
        page: int = 1,
        size: Optional[int] = None,
        order: Optional[str] = None,
    ) -> Page[str]:
        """Schema names of a connection by name, capped at `SCHEMAS_LIMIT`, one page at a time."""
        size = size or settings.schemas_limit
        try:
            with self.registry.open(connection_id) as engine:
                dialect = self.registry.dialect_for(connection_id)
                with self._connect(engine, connection_id) as conn:
                    schemas = CatalogReader(conn, dialect).schemas()
            descending = (order or "").strip().lower() == "desc"
            schemas = sorted(schemas, key=str.lower, reverse=descending)[:settings.schemas_limit]
            return Page[str].of(schemas, page, size)
        except (GridError, SQLAlchemyError) as e:
            error = self._to_grid_error(e)
            self._log_failure("list_schemas", connection_id, error)
            return Page[str](page=page, size=size, error=error.message, error_code=error.code)

    def list_tables(
        self,
        connection_id: str,
        schema: Optional[str] = None,
        page: int = 1,
        size: Optional[int] = None,
        sort: Optional[str] = None,
        order: Optional[str] = None,
    ) -> Page[TableInfo]:
        """Tables and views of a schema (the default schema when omitted), capped at `TABLES_LIMIT`.

        `sort` is `name`, `type`, `size` or `rows`; unknown keys sort by name.
        Row counts and sizes are backend statistics and may be missing.
        """
        size = size or settings.tables_limit
        try:
            with self.registry.open(connection_id) as engine:
                dialect = self.registry.dialect_for(connection_id)
                with self._connect(engine, connection_id) as conn:
                    tables = CatalogReader(conn, dialect).tables(schema or None)
            tables = sort_listing(tables, sort, order)[:settings.tables_limit]
            return Page[TableInfo].of(tables, page, size)
        except (GridError, SQLAlchemyError) as e:
            error = self._to_grid_error(e)
            self._log_failure("list_tables", connection_id, error)
            return Page[TableInfo](page=page, size=size, error=error.message, error_code=error.code)

    def check_connection(self, connection_id: str) -> ConnectionStatus:
        """Opens and closes a connection, reporting the server version when the dialect knows it."""
        dialect_name = None
        try:
            with self.registry.open(connection_id) as engine:
                dialect_name = self.registry.dialect_for(connection_id).name
                with self._connect(engine, connection_id) as conn:
                    info = conn.dialect.server_version_info
            version = ".".join(str(p) for p in info) if info else None
            return ConnectionStatus(connected=True, dialect=dialect_name, server_version=version)
        except (GridError, SQLAlchemyError) as e:
            error = self._to_grid_error(e)
            self._log_failure("check_connection", connection_id, error)
            return ConnectionStatus.failure(error, dialect_name)
