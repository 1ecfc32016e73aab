from .base import Dialect, IdentityStrategy, PaginationStyle, TypeCategory, classify_type
from .registry import (
    CLICKHOUSE,
    MSSQL,
    MYSQL,
    ORACLE,
    POSTGRES,
    SQLITE,
    get_dialect,
    normalize_kind,
    supported_kinds,
)

__all__ = [
    "Dialect",
    "IdentityStrategy",
    "PaginationStyle",
    "TypeCategory",
    "classify_type",
    "POSTGRES",
    "MYSQL",
    "MSSQL",
    "ORACLE",
    "CLICKHOUSE",
    "SQLITE",
    "get_dialect",
    "normalize_kind",
    "supported_kinds",
]
