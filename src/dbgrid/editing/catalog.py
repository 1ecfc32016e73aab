from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import inspect, text
from sqlalchemy.engine import Connection
from sqlalchemy.exc import CompileError, NoSuchTableError, SQLAlchemyError

from dbgrid.common.errors import TableUnresolvable
from dbgrid.common.logger import get_logger
from dbgrid.dialects.base import Dialect, classify_type
from dbgrid.editing.models import ColumnDescriptor
from dbgrid.execution.models import DatabaseInfo, TableInfo
from dbgrid.sql.table_ref import TableRef

logger = get_logger(__name__)


class CatalogReader:
    """
    Reads table metadata for one connection through the SQLAlchemy inspector.

    Lookups use the reference as normalized for the dialect (unquoted names
    are lower-cased where the backend folds them).
    """

    def __init__(self, conn: Connection, dialect: Dialect):
        self.conn = conn
        self.dialect = dialect
        self.inspector = inspect(conn)

    def _names(self, table: TableRef) -> Tuple[str, Optional[str]]:
        return table.lookup_name(self.dialect), table.lookup_schema(self.dialect)

    def columns(self, table: TableRef) -> Dict[str, ColumnDescriptor]:
        """Returns the table's columns keyed by name, in declared order.

        Raises:
            TableUnresolvable: If the table does not exist or has no visible columns.
        """
        name, schema = self._names(table)
        try:
            raw_columns = self.inspector.get_columns(name, schema=schema)
        except NoSuchTableError as exc:
            raise TableUnresolvable(details={"table": table.sql}) from exc

        if not raw_columns:
            raise TableUnresolvable(details={"table": table.sql})

        columns: Dict[str, ColumnDescriptor] = {}
        for col in raw_columns:
            type_obj = col.get("type")
            try:
                declared = str(type_obj)
            except CompileError:
                declared = type(type_obj).__name__
            columns[col["name"]] = ColumnDescriptor(
                name=col["name"],
                data_type=declared,
                category=classify_type(type_obj),
            )
        return columns

    def primary_key(self, table: TableRef) -> List[str]:
        """Primary key columns in declared order; empty when there is none."""
        name, schema = self._names(table)
        try:
            pk = self.inspector.get_pk_constraint(name, schema=schema) or {}
        except NotImplementedError:
            return []
        return [c for c in pk.get("constrained_columns") or [] if c]

    def unique_keys(self, table: TableRef) -> List[Tuple[str, List[str]]]:
        """Unique constraints and unique indexes as `(name, columns)`, deduplicated by columns."""
        name, schema = self._names(table)
        candidates: List[Tuple[str, List[str]]] = []

        try:
            for uc in self.inspector.get_unique_constraints(name, schema=schema):
                candidates.append((uc.get("name") or "", list(uc.get("column_names") or [])))
        except NotImplementedError:
            logger.debug(f"Unique constraints not reflected for {self.dialect.name}")

        try:
            for ix in self.inspector.get_indexes(name, schema=schema):
                if not ix.get("unique"):
                    continue
                # Partial indexes only guarantee uniqueness for some rows.
                options = ix.get("dialect_options") or {}
                if any(k.endswith("_where") and v is not None for k, v in options.items()):
                    continue
                candidates.append((ix.get("name") or "", list(ix.get("column_names") or [])))
        except NotImplementedError:
            logger.debug(f"Indexes not reflected for {self.dialect.name}")

        seen = set()
        keys: List[Tuple[str, List[str]]] = []
        for key_name, cols in candidates:
            # Expression index members come back as None.
            if not cols or any(c is None for c in cols):
                continue
            signature = tuple(c.lower() for c in cols)
            if signature in seen:
                continue
            seen.add(signature)
            keys.append((key_name, cols))
        return keys

    def schemas(self) -> List[str]:
        return list(self.inspector.get_schema_names())

    def tables(self, schema: Optional[str]) -> List[TableInfo]:
        """Tables, then views, of `schema` with row estimates and sizes where the backend keeps them."""
        found = [(name, "table") for name in self.inspector.get_table_names(schema=schema)]
        try:
            found.extend((name, "view") for name in self.inspector.get_view_names(schema=schema))
        except NotImplementedError:
            logger.debug(f"Views not reflected for {self.dialect.name}")

        stats = self._table_stats(schema)
        items = []
        for name, kind in found:
            rows, size = stats.get(name.lower(), (None, None))
            items.append(TableInfo(name=name, kind=kind, approximate_row_count=rows, size_on_disk=size))
        return items

    def _table_stats(self, schema: Optional[str]) -> Dict[str, Tuple[Optional[int], Optional[int]]]:
        """Row estimates and sizes keyed by lower-cased table name; empty when unreadable."""
        if not self.dialect.table_stats_sql:
            return {}
        try:
            rows = self.conn.execute(text(self.dialect.table_stats_sql), {"schema": schema}).fetchall()
        except SQLAlchemyError as e:
            # Catalog views may be hidden from the user; the listing goes on without sizes.
            self.conn.rollback()
            logger.debug(f"Table statistics unavailable on {self.dialect.name}: {e}")
            return {}
        return {str(r[0]).lower(): (_as_int(r[1]), _as_int(r[2])) for r in rows}

    def databases(self) -> List[DatabaseInfo]:
        """Databases visible to the connection, with sizes where reported.

        Backends without a database listing report only the connected database.
        """
        if not self.dialect.databases_sql:
            url = self.conn.engine.url
            name = url.database or url.query.get("service_name")
            return [DatabaseInfo(name=str(name))] if name else []

        rows = self.conn.execute(text(self.dialect.databases_sql)).fetchall()
        return [DatabaseInfo(name=str(r[0]), size_on_disk=_as_int(r[1])) for r in rows]


def _as_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


_SORT_KEYS: Dict[str, Callable[[Any], Any]] = {
    "name": lambda item: item.name.lower(),
    "type": lambda item: getattr(item, "kind", ""),
    "size": lambda item: getattr(item, "size_on_disk", None) or 0,
    "rows": lambda item: getattr(item, "approximate_row_count", None) or 0,
}


def sort_listing(items: List[Any], sort: Optional[str] = None, order: Optional[str] = None) -> List[Any]:
    """Sorts databases or tables by `name`, `type`, `size` or `rows`.

    Unknown sort keys sort by name. Missing sizes and row counts sort as 0;
    ties keep name order. `order="desc"` reverses.
    """
    key = _SORT_KEYS.get((sort or "name").strip().lower(), _SORT_KEYS["name"])
    descending = (order or "").strip().lower() == "desc"
    by_name = sorted(items, key=_SORT_KEYS["name"])
    return sorted(by_name, key=key, reverse=descending)
