"""Helpers applied to user SQL before it is wrapped or executed.

Statement shape is read from the sqlglot AST. The lexical checks only decide
for statements sqlglot cannot parse in the connection's dialect.
"""
import re
from typing import Optional

import sqlglot
from sqlglot import expressions as exp
from sqlglot.errors import SqlglotError

from dbgrid.common.logger import get_logger
from dbgrid.dialects.base import Dialect

logger = get_logger(__name__)

# Same shape as the bind-parameter pattern of sqlalchemy.text(); a backslash
# before the colon makes text() emit a literal colon instead of a bind.
_BIND_MARKER = re.compile(r"(?<![:\w\$\\]):([\w\$]+)(?![:\w\$])", re.UNICODE)
_ESCAPED_BIND_MARKER = re.compile(r"\\:(?=[\w\$])", re.UNICODE)

_LEADING_NOISE = re.compile(r"^(?:\s+|--[^\n]*(?:\n|$)|/\*.*?\*/)*", re.DOTALL)
_FIRST_WORD = re.compile(r"^([A-Za-z]+)")
_INTO = re.compile(r"\bINTO\b", re.IGNORECASE)
_FROM = re.compile(r"\bFROM\b", re.IGNORECASE)

ROW_QUERY_TYPES = (exp.Select, exp.SetOperation)


def strip_statement(sql: str) -> str:
    """Trims whitespace and any trailing semicolons."""
    if not sql:
        return ""
    trimmed = sql.strip()
    while trimmed.endswith(";"):
        trimmed = trimmed[:-1].rstrip()
    return trimmed


def leading_keyword(sql: str) -> str:
    """Returns the first keyword of a statement, upper-cased, skipping comments."""
    body = _LEADING_NOISE.sub("", sql or "", count=1)
    match = _FIRST_WORD.match(body)
    return match.group(1).upper() if match else ""


def parse_statement(sql: str, dialect: Dialect) -> Optional[exp.Expression]:
    """Parses a single statement with sqlglot.

    Bind markers escaped by `escape_bind_markers` are read back as written.

    Returns:
        Optional[exp.Expression]: The statement's AST, or None when it does not
        parse or holds more than one statement.
    """
    body = _ESCAPED_BIND_MARKER.sub(":", sql or "")
    if not body.strip():
        return None
    try:
        statements = [s for s in sqlglot.parse(body, read=dialect.sqlglot_dialect) if s is not None]
    except SqlglotError as e:
        logger.debug(f"Statement not parsed as {dialect.name}: {e}")
        return None
    if len(statements) != 1:
        return None
    return statements[0]


def _looks_like_select(sql: str, dialect: Dialect) -> bool:
    keyword = leading_keyword(sql)
    if keyword == "WITH":
        return dialect.pages_cte_statements
    if keyword != "SELECT":
        return False

    into = _INTO.search(sql)
    if into is None:
        return True
    first_from = _FROM.search(sql)
    return first_from is not None and first_from.start() < into.start()


def is_select_statement(sql: str, dialect: Dialect) -> bool:
    """Whether a statement returns rows and can be wrapped in a derived table.

    `SELECT ... INTO` creates a table and is never wrapped. `WITH` statements
    are wrapped only where the backend accepts a CTE inside a derived table.
    """
    tree = parse_statement(sql, dialect)
    if tree is None:
        return _looks_like_select(sql, dialect)

    if not isinstance(tree, ROW_QUERY_TYPES) or tree.find(exp.Into) is not None:
        return False
    if leading_keyword(sql) == "WITH":
        return dialect.pages_cte_statements
    return True


def escape_bind_markers(sql: str) -> str:
    """Protects literal `:name` sequences in user SQL from bind parsing."""
    return _BIND_MARKER.sub(r"\\:\1", sql)
