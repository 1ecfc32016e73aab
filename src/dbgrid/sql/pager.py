import re
from typing import Optional

from dbgrid.dialects.base import Dialect
from dbgrid.sql.statement import is_select_statement, strip_statement

PAGED_ALIAS = "_paged"

_SAFE_COLUMN = re.compile(r"^[^\W\d][\w$#@ .\-]{0,127}$")
_DIRECTIONS = {"asc": "ASC", "desc": "DESC"}


def safe_sort_column(sort_column: Optional[str]) -> Optional[str]:
    """Returns the column when it is identifier-safe, else None (the sort is ignored)."""
    if not sort_column:
        return None
    candidate = sort_column.strip()
    if _SAFE_COLUMN.match(candidate) is None:
        return None
    return candidate


def clamp_limit(limit: int, max_limit: int) -> int:
    """Page size within `1..max_limit`; non-positive requests become 1."""
    return min(max(1, limit), max(1, max_limit))


def sort_direction(sort_order: Optional[str]) -> Optional[str]:
    if not sort_order:
        return None
    return _DIRECTIONS.get(sort_order.strip().lower())


def order_by_clause(
    dialect: Dialect,
    sort_column: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> str:
    """`ORDER BY <column> ASC|DESC`, or `ORDER BY 1 ASC` when either part is missing or invalid."""
    column = safe_sort_column(sort_column)
    direction = sort_direction(sort_order)
    if column is None or direction is None:
        return "ORDER BY 1 ASC"
    return f"ORDER BY {dialect.column_ref(column)} {direction}"


def wrap_ordered(
    stmt: str,
    dialect: Dialect,
    sort_column: Optional[str] = None,
    sort_order: Optional[str] = None,
) -> str:
    """`SELECT * FROM (<stmt>) AS _paged ORDER BY ...` without any pagination clause."""
    return (
        f"SELECT * FROM {dialect.derived(stmt, PAGED_ALIAS)} "
        f"{order_by_clause(dialect, sort_column, sort_order)}"
    )


def page_query(
    sql: str,
    dialect: Dialect,
    limit: int,
    offset: int,
    sort_column: Optional[str] = None,
    sort_order: Optional[str] = None,
    max_limit: int = 1000,
    lookahead: int = 0,
) -> str:
    """Wraps a SELECT-like statement in an ordered, paginated outer SELECT.

    Statements that do not return rows are returned trimmed but otherwise
    unmodified.

    Args:
        sql (str): The user's statement.
        dialect (Dialect): The target backend.
        limit (int): Requested page size; clamped to `max_limit`.
        offset (int): Rows to skip; negative values become 0.
        sort_column (Optional[str]): Result column to order by.
        sort_order (Optional[str]): "asc" or "desc".
        max_limit (int): Server-wide maximum page size.
        lookahead (int): Extra rows fetched beyond the page to detect a next page.

    Returns:
        str: The statement to execute.
    """
    stmt = strip_statement(sql)
    if not is_select_statement(stmt, dialect):
        return stmt

    page_size = clamp_limit(limit, max_limit) + lookahead
    return (
        f"{wrap_ordered(stmt, dialect, sort_column, sort_order)} "
        f"{dialect.pagination_clause(page_size, offset)}"
    )
