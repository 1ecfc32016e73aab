from .statement import escape_bind_markers, is_select_statement, strip_statement
from .table_ref import IdentifierPart, TableRef, parse_table_name, parse_table_ref
from .pager import page_query
from .search import like_pattern, shape_query, search_query

__all__ = [
    "escape_bind_markers",
    "is_select_statement",
    "strip_statement",
    "IdentifierPart",
    "TableRef",
    "parse_table_name",
    "parse_table_ref",
    "page_query",
    "like_pattern",
    "shape_query",
    "search_query",
]
