"""
Substring search across every projected column of a free-form query.

The columns of an arbitrary statement are unknown until it runs, so searching
is two steps: `shape_query` returns no rows but exposes the projection, then
`search_query` filters the ordered statement on a concatenation of all its
columns cast to text.
"""
from typing import Dict, Iterable, Optional, Tuple

from dbgrid.dialects.base import Dialect
from dbgrid.sql.pager import clamp_limit, order_by_clause, wrap_ordered
from dbgrid.sql.statement import strip_statement

SEARCH_ALIAS = "_sub"
SHAPE_ALIAS = "_shape"
SEARCH_PARAM = "search_pattern"
ROW_ADDRESS_COLUMN = "__row_address"


def like_pattern(term: str) -> str:
    """`%term%` with the LIKE metacharacters escaped by a backslash."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def shape_query(sql: str, dialect: Dialect) -> str:
    """A query with the same projection as `sql` that returns no rows."""
    stmt = strip_statement(sql)
    return f"SELECT * FROM {dialect.derived(stmt, SHAPE_ALIAS)} {dialect.zero_row_clause()}"


def concat_expression(dialect: Dialect, columns: Iterable[str]) -> str:
    """Null-safe text concatenation of `columns` of the search alias, separated by `:`."""
    qualifier = dialect.alias_ref(SEARCH_ALIAS)
    exprs = [
        dialect.text_cast(f"{qualifier}.{dialect.column_ref(c)}")
        for c in columns
        if c.lower() != ROW_ADDRESS_COLUMN
    ]
    if not exprs:
        raise ValueError("Search requires at least one projected column")
    return dialect.concat(exprs)


def search_query(
    sql: str,
    dialect: Dialect,
    columns: Iterable[str],
    term: str,
    limit: int,
    offset: int,
    sort_column: Optional[str] = None,
    sort_order: Optional[str] = None,
    max_limit: int = 1000,
    lookahead: int = 0,
) -> Tuple[str, Dict[str, str]]:
    """Builds the filtered, ordered and paginated search statement.

    Args:
        sql (str): The user's SELECT-like statement.
        dialect (Dialect): The target backend.
        columns (Iterable[str]): Column labels discovered through `shape_query`.
        term (str): The non-blank search term.

    Returns:
        Tuple[str, Dict[str, str]]: The statement and its bind parameters.
    """
    stmt = strip_statement(sql)
    if dialect.allows_ordered_derived_tables:
        inner = wrap_ordered(stmt, dialect, sort_column, sort_order)
    else:
        inner = stmt

    page_size = clamp_limit(limit, max_limit) + lookahead
    escape = f" {dialect.like_escape_clause}" if dialect.like_escape_clause else ""
    query = (
        f"SELECT * FROM {dialect.derived(inner, SEARCH_ALIAS)} "
        f"WHERE {concat_expression(dialect, columns)} LIKE :{SEARCH_PARAM}{escape} "
        f"{order_by_clause(dialect, sort_column, sort_order)} "
        f"{dialect.pagination_clause(page_size, offset)}"
    )
    return query, {SEARCH_PARAM: like_pattern(term)}
