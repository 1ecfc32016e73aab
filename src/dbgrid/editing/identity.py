"""
Row identity resolution.

A table's rows are identified, in order of preference, by its primary key, by
its narrowest unique constraint or unique index, or by the backend's physical
row address when the dialect exposes one. The decision is an `IdentityPlan`;
per-row identities are built from fetched rows or from values submitted back.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

import sqlglot
from sqlglot import expressions as exp

from dbgrid.common.errors import MissingKeyValue, NotEditable
from dbgrid.common.logger import get_logger
from dbgrid.common.utils import to_text
from dbgrid.dialects.base import Dialect
from dbgrid.editing.catalog import CatalogReader
from dbgrid.editing.models import (
    IdentityPlan,
    IdentityStrategyKind,
    KeyComponent,
    KeyIdentity,
    PhysicalIdentity,
    RowIdentity,
)
from dbgrid.sql.search import ROW_ADDRESS_COLUMN
from dbgrid.sql.statement import parse_statement
from dbgrid.sql.table_ref import TableRef

logger = get_logger(__name__)

_NO_ADDRESS = "Statement cannot carry a row address."
_COMBINED = "Aggregated or combined results cannot be edited."


def lookup(row: Mapping[str, Any], name: str) -> tuple:
    """Case-insensitive mapping lookup. Returns `(found, value)`."""
    if name in row:
        return True, row[name]
    lowered = name.lower()
    for key, value in row.items():
        if key.lower() == lowered:
            return True, value
    return False, None


def _aggregates(select: exp.Select) -> bool:
    """Whether the projection aggregates rows (window functions and scalar subqueries aside)."""
    for projection in select.expressions:
        for agg in projection.find_all(exp.AggFunc):
            if agg.find_ancestor(exp.Window, exp.Subquery) is None:
                return True
    return False


def _from_table(select: exp.Select) -> Optional[exp.Table]:
    """The table named directly in the statement's own FROM clause, if any."""
    from_ = select.find(exp.From)
    if from_ is None or from_.parent is not select:
        return None
    if not isinstance(from_.this, exp.Table) or not from_.this.name:
        return None
    return from_.this


def _qualifier_sql(table: exp.Table, read: Optional[str]) -> str:
    if table.alias:
        return table.args["alias"].this.sql(dialect=read)
    return ".".join(part.sql(dialect=read) for part in table.parts)


class RowIdentityResolver:
    """Decides how rows of a table are identified and builds their identities."""

    def __init__(self, catalog: CatalogReader, dialect: Dialect):
        self.catalog = catalog
        self.dialect = dialect

    def plan(self, table: TableRef) -> IdentityPlan:
        """Chooses the identity strategy for `table`.

        Raises:
            TableUnresolvable: If the table is not in the catalog.
        """
        if not self.dialect.supports_row_updates:
            return IdentityPlan(
                strategy=IdentityStrategyKind.NONE,
                reason=f"{self.dialect.name} does not support single-row updates.",
            )

        columns = self.catalog.columns(table)

        pk = self.catalog.primary_key(table)
        if pk:
            return IdentityPlan(strategy=IdentityStrategyKind.KEY, key_columns=pk, columns=columns)

        unique = self.catalog.unique_keys(table)
        if unique:
            key_name, key_columns = min(unique, key=lambda k: (len(k[1]), k[0]))
            logger.debug(f"Using unique key {key_name or key_columns} for {table.sql}")
            return IdentityPlan(strategy=IdentityStrategyKind.KEY, key_columns=key_columns, columns=columns)

        if self.dialect.supports_physical_address:
            return IdentityPlan(strategy=IdentityStrategyKind.PHYSICAL, columns=columns)

        return IdentityPlan(
            strategy=IdentityStrategyKind.NONE,
            columns=columns,
            reason="No primary key, unique index or row address available.",
        )

    def inject_address(self, sql: str, table: TableRef) -> str:
        """Adds the physical address of `table` to the end of the statement's projection.

        The statement is rebuilt from its sqlglot AST. `SELECT *` becomes
        `SELECT <qualifier>.*` so the extra column does not make the star
        ambiguous. `table` must be the table of the statement's own FROM clause.

        Raises:
            NotEditable: If the statement's shape cannot carry a per-row address.
        """
        d = self.dialect
        if not d.supports_physical_address:
            raise NotEditable()

        tree = parse_statement(sql, d)
        if isinstance(tree, exp.SetOperation):
            raise NotEditable(_COMBINED)
        if not isinstance(tree, exp.Select) or tree.find(exp.Into) is not None:
            raise NotEditable(_NO_ADDRESS)
        if tree.args.get("distinct") or tree.args.get("group") or _aggregates(tree):
            raise NotEditable(_COMBINED)

        source = _from_table(tree)
        if source is None or source.name.lower() != table.name.lower():
            raise NotEditable(_NO_ADDRESS)

        read = d.sqlglot_dialect
        qualifier = _qualifier_sql(source, read)
        address = sqlglot.parse_one(d.physical_address_expr.format(qualifier=qualifier), read=read)

        injected = tree.copy()
        projections = list(injected.expressions)
        if len(projections) == 1 and isinstance(projections[0], exp.Star):
            projections = list(sqlglot.parse_one(f"SELECT {qualifier}.*", read=read).expressions)
        projections.append(exp.alias_(address, ROW_ADDRESS_COLUMN, quoted=True))

        injected.set("expressions", projections)
        return injected.sql(dialect=read)

    def identity_from_row(self, plan: IdentityPlan, row: Mapping[str, Any]) -> RowIdentity:
        """Builds the identity of a fetched row.

        Raises:
            MissingKeyValue: If a key column is absent from the row or NULL.
            NotEditable: If the plan is NONE or the row carries no address.
        """
        if plan.strategy == IdentityStrategyKind.KEY:
            components = []
            for name in plan.key_columns:
                found, value = lookup(row, name)
                if not found or value is None:
                    raise MissingKeyValue(name)
                components.append(KeyComponent(name=name, value=to_text(value)))
            return KeyIdentity(columns=components)

        if plan.strategy == IdentityStrategyKind.PHYSICAL:
            found, value = lookup(row, ROW_ADDRESS_COLUMN)
            if not found or value is None:
                raise NotEditable("Row address not available.")
            return PhysicalIdentity(token=to_text(value))

        raise NotEditable(plan.reason)

    def identity_from_values(self, plan: IdentityPlan, values: Mapping[str, Optional[str]]) -> RowIdentity:
        """Builds an identity from submitted column values (save without a fetched identity).

        A key value that is absent, None, or blank for a non-text key column is missing.
        """
        if plan.strategy == IdentityStrategyKind.KEY:
            components = []
            for name in plan.key_columns:
                found, value = lookup(values, name)
                descriptor = plan.column(name)
                blank_scalar = (
                    value is not None
                    and not str(value).strip()
                    and descriptor is not None
                    and descriptor.category.is_non_text_scalar
                )
                if not found or value is None or blank_scalar:
                    raise MissingKeyValue(name)
                components.append(KeyComponent(name=name, value=str(value)))
            return KeyIdentity(columns=components)

        return self.identity_from_row(plan, values)
