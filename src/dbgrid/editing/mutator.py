from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.engine import Connection

from dbgrid.common.errors import MissingKeyValue, NotEditable, StaleOrMissingRow
from dbgrid.common.logger import get_logger
from dbgrid.dialects.base import Dialect
from dbgrid.editing.models import IdentityPlan, IdentityStrategyKind, KeyIdentity, PhysicalIdentity, RowIdentity
from dbgrid.sql.search import ROW_ADDRESS_COLUMN
from dbgrid.sql.statement import escape_bind_markers
from dbgrid.sql.table_ref import TableRef

logger = get_logger(__name__)


class RowMutator:
    """
    Writes edited values of exactly one row back to its table.

    Every value arrives as a string and is cast on the server according to the
    column's type category, so no Python-side type conversion is needed.
    """

    def __init__(self, dialect: Dialect):
        self.dialect = dialect

    def build_update(
        self,
        table: TableRef,
        plan: IdentityPlan,
        identity: RowIdentity,
        column_values: Mapping[str, Optional[str]],
    ) -> Tuple[Optional[str], Dict[str, Any]]:
        """Builds the UPDATE statement and its parameters.

        Returns:
            Tuple[Optional[str], Dict[str, Any]]: `(None, {})` when nothing is left to set.

        Raises:
            MissingKeyValue: If a key component has no value.
            NotEditable: If the identity does not match the plan (a key identity must
                name exactly the plan's key columns).
        """
        d = self.dialect
        set_parts: List[str] = []
        params: Dict[str, Any] = {}

        for name, raw in column_values.items():
            if name.lower() == ROW_ADDRESS_COLUMN or plan.is_key_column(name):
                continue
            descriptor = plan.column(name)
            if descriptor is None:
                logger.warning(f"Skipping column '{name}' not found in {table.sql}")
                continue

            param = f"set_{len(set_parts)}"
            if descriptor.category.is_non_text_scalar and (raw is None or not str(raw).strip()):
                params[param] = None
            else:
                params[param] = "" if raw is None else str(raw)
            column = escape_bind_markers(d.quote_identifier(descriptor.name))
            set_parts.append(f"{column} = {d.cast_expr(descriptor.category, ':' + param)}")

        where = self._where_clause(plan, identity, params)

        if not set_parts:
            return None, {}

        sql = f"UPDATE {escape_bind_markers(table.render(d))} SET {', '.join(set_parts)} WHERE {where}"
        return sql, params

    def _where_clause(self, plan: IdentityPlan, identity: RowIdentity, params: Dict[str, Any]) -> str:
        d = self.dialect
        if isinstance(identity, KeyIdentity):
            if not identity.columns:
                raise NotEditable("Key identity has no columns.")
            given = [c.name.lower() for c in identity.columns]
            expected = {k.lower() for k in plan.key_columns}
            if plan.strategy != IdentityStrategyKind.KEY or len(given) != len(set(given)) or set(given) != expected:
                raise NotEditable("Row identity does not match the table's key.")
            predicates = []
            for i, component in enumerate(identity.columns):
                if component.value is None:
                    raise MissingKeyValue(component.name)
                descriptor = plan.column(component.name)
                name = descriptor.name if descriptor else component.name
                param = f"key_{i}"
                params[param] = component.value
                cast = d.cast_expr(descriptor.category, ":" + param) if descriptor else ":" + param
                predicates.append(f"{escape_bind_markers(d.quote_identifier(name))} = {cast}")
            return " AND ".join(predicates)

        if isinstance(identity, PhysicalIdentity):
            if not d.supports_physical_address:
                raise NotEditable()
            params["row_address"] = identity.token
            return d.physical_address_predicate

        raise NotEditable()

    def update(
        self,
        conn: Connection,
        table: TableRef,
        plan: IdentityPlan,
        identity: RowIdentity,
        column_values: Mapping[str, Optional[str]],
    ) -> int:
        """Executes the single-row UPDATE in its own transaction on `conn`.

        Returns:
            int: Rows updated (0 only for an empty SET, which is a no-op).

        Raises:
            StaleOrMissingRow: If no row matched the identity.
        """
        sql, params = self.build_update(table, plan, identity, column_values)
        if sql is None:
            logger.info(f"Nothing to update in {table.sql}")
            return 0

        with conn.begin():
            result = conn.execute(text(sql), params)
            updated = result.rowcount

        if updated == 0:
            raise StaleOrMissingRow(details={"table": table.sql})
        if updated > 1:
            logger.warning(f"UPDATE on {table.sql} matched {updated} rows")
        return updated

