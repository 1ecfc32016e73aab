from typing import Dict

from dbgrid.dialects.base import (
    Dialect,
    IdentityStrategy,
    PaginationStyle,
    TypeCategory,
)

POSTGRES = Dialect(
    name="postgresql",
    identity_strategy=IdentityStrategy.PHYSICAL_ADDRESS,
    physical_address_expr="CAST({qualifier}.ctid AS TEXT)",
    physical_address_predicate="ctid = CAST(:row_address AS tid)",
    cast_templates={
        TypeCategory.INTEGER: "CAST({param} AS BIGINT)",
        TypeCategory.DECIMAL: "CAST({param} AS NUMERIC)",
        TypeCategory.FLOAT: "CAST({param} AS DOUBLE PRECISION)",
        TypeCategory.DATE: "CAST({param} AS DATE)",
        TypeCategory.DATETIME: "CAST({param} AS TIMESTAMP)",
        TypeCategory.TIME: "CAST({param} AS TIME)",
        TypeCategory.BOOLEAN: "CAST({param} AS BOOLEAN)",
    },
    folds_unquoted_to_lower=True,
    drivername="postgresql+psycopg2",
    default_port=5432,
    connect_timeout_arg="connect_timeout",
    sqlglot_dialect="postgres",
    databases_sql=(
        "SELECT datname AS name, pg_database_size(datname) AS size_bytes "
        "FROM pg_catalog.pg_database WHERE datistemplate = false"
    ),
    table_stats_sql=(
        "SELECT c.relname AS name, CAST(GREATEST(c.reltuples, 0) AS BIGINT) AS row_count, "
        "pg_total_relation_size(c.oid) AS size_bytes "
        "FROM pg_catalog.pg_class c JOIN pg_catalog.pg_namespace n ON c.relnamespace = n.oid "
        "WHERE n.nspname = COALESCE(CAST(:schema AS TEXT), current_schema()) "
        "AND c.relkind IN ('r', 'p', 'v', 'm')"
    ),
)

MYSQL = Dialect(
    name="mysql",
    quote_start="`",
    quote_end="`",
    cast_templates={
        TypeCategory.INTEGER: "CAST({param} AS SIGNED)",
        TypeCategory.DECIMAL: "CAST({param} AS DECIMAL(65,30))",
        TypeCategory.FLOAT: "CAST({param} AS DOUBLE)",
        TypeCategory.DATE: "CAST({param} AS DATE)",
        TypeCategory.DATETIME: "CAST({param} AS DATETIME)",
        TypeCategory.TIME: "CAST({param} AS TIME)",
        TypeCategory.BOOLEAN: "CAST({param} AS SIGNED)",
    },
    text_cast_template="COALESCE(CAST({expr} AS CHAR), '')",
    concat_function="CONCAT",
    like_escape_clause="ESCAPE '\\\\'",
    drivername="mysql+pymysql",
    default_port=3306,
    connect_timeout_arg="connect_timeout",
    sqlglot_dialect="mysql",
    databases_sql=(
        "SELECT s.schema_name AS name, COALESCE(SUM(t.data_length + t.index_length), 0) AS size_bytes "
        "FROM information_schema.schemata s "
        "LEFT JOIN information_schema.tables t ON s.schema_name = t.table_schema "
        "WHERE s.schema_name NOT IN ('information_schema', 'mysql', 'performance_schema', 'sys') "
        "GROUP BY s.schema_name"
    ),
    table_stats_sql=(
        "SELECT table_name AS name, table_rows AS row_count, "
        "COALESCE(data_length, 0) + COALESCE(index_length, 0) AS size_bytes "
        "FROM information_schema.tables WHERE table_schema = COALESCE(:schema, DATABASE())"
    ),
)

MSSQL = Dialect(
    name="mssql",
    quote_start="[",
    quote_end="]",
    pagination_style=PaginationStyle.OFFSET_FETCH,
    cast_templates={
        TypeCategory.INTEGER: "CAST({param} AS BIGINT)",
        TypeCategory.DECIMAL: "CAST({param} AS DECIMAL(38,10))",
        TypeCategory.FLOAT: "CAST({param} AS FLOAT)",
        TypeCategory.DATE: "CAST({param} AS DATE)",
        TypeCategory.DATETIME: "CAST({param} AS DATETIME2)",
        TypeCategory.TIME: "CAST({param} AS TIME)",
        TypeCategory.BOOLEAN: "CAST({param} AS BIT)",
    },
    text_cast_template="ISNULL(CAST({expr} AS NVARCHAR(MAX)), N'')",
    concat_function="CONCAT",
    concat_separator="N':'",
    allows_ordered_derived_tables=False,
    pages_cte_statements=False,
    drivername="mssql+pyodbc",
    default_port=1433,
    connect_timeout_arg="timeout",
    sqlglot_dialect="tsql",
    # sys.master_files reports sizes in 8 KB pages.
    databases_sql=(
        "SELECT d.name AS name, CAST(SUM(CAST(f.size AS BIGINT)) * 8192 AS BIGINT) AS size_bytes "
        "FROM sys.databases d JOIN sys.master_files f ON f.database_id = d.database_id "
        "GROUP BY d.name"
    ),
    table_stats_sql=(
        "SELECT o.name AS name, "
        "SUM(CASE WHEN p.index_id IN (0, 1) THEN p.row_count ELSE 0 END) AS row_count, "
        "CAST(SUM(p.reserved_page_count) * 8192 AS BIGINT) AS size_bytes "
        "FROM sys.objects o JOIN sys.schemas s ON o.schema_id = s.schema_id "
        "LEFT JOIN sys.dm_db_partition_stats p ON p.object_id = o.object_id "
        "WHERE s.name = COALESCE(:schema, SCHEMA_NAME()) AND o.type IN ('U', 'V') "
        "GROUP BY o.name"
    ),
)

ORACLE = Dialect(
    name="oracle",
    pagination_style=PaginationStyle.OFFSET_FETCH,
    identity_strategy=IdentityStrategy.PHYSICAL_ADDRESS,
    physical_address_expr="ROWIDTOCHAR({qualifier}.ROWID)",
    physical_address_predicate="ROWID = CHARTOROWID(:row_address)",
    cast_templates={
        TypeCategory.INTEGER: "TO_NUMBER({param})",
        TypeCategory.DECIMAL: "TO_NUMBER({param})",
        TypeCategory.FLOAT: "TO_BINARY_DOUBLE({param})",
        TypeCategory.DATE: "TO_DATE({param}, 'YYYY-MM-DD HH24:MI:SS')",
        TypeCategory.DATETIME: "TO_TIMESTAMP({param}, 'YYYY-MM-DD HH24:MI:SS.FF')",
        TypeCategory.BOOLEAN: "TO_NUMBER({param})",
    },
    # TO_CHAR(NULL) is NULL, and Oracle's || treats NULL as the empty string.
    text_cast_template="TO_CHAR({expr})",
    derived_alias_keyword="",
    quote_aliases=True,
    folds_unquoted_to_lower=True,
    upper_case_identifiers=True,
    drivername="oracle+oracledb",
    default_port=1521,
    connect_timeout_arg="tcp_connect_timeout",
    sqlglot_dialect="oracle",
    # Segment sizes need DBA views; only the optimizer row estimate is listed.
    table_stats_sql=(
        "SELECT table_name AS name, num_rows AS row_count, NULL AS size_bytes FROM all_tables "
        "WHERE owner = COALESCE(UPPER(:schema), SYS_CONTEXT('USERENV', 'CURRENT_SCHEMA'))"
    ),
)

CLICKHOUSE = Dialect(
    name="clickhouse",
    quote_start="`",
    quote_end="`",
    cast_templates={
        TypeCategory.INTEGER: "toInt64({param})",
        TypeCategory.DECIMAL: "toDecimal128({param}, 10)",
        TypeCategory.FLOAT: "toFloat64({param})",
        TypeCategory.DATE: "toDate({param})",
        TypeCategory.DATETIME: "toDateTime({param})",
        TypeCategory.BOOLEAN: "toBool({param})",
    },
    text_cast_template="ifNull(toString({expr}), '')",
    concat_function="concat",
    like_escape_clause="",
    supports_row_updates=False,
    drivername="clickhouse+http",
    default_port=8123,
    sqlglot_dialect="clickhouse",
    databases_sql=(
        "SELECT d.name AS name, coalesce(t.bytes, 0) AS size_bytes FROM system.databases d "
        "LEFT JOIN (SELECT database AS name, sum(total_bytes) AS bytes FROM system.tables "
        "GROUP BY database) t ON d.name = t.name"
    ),
    table_stats_sql=(
        "SELECT name, total_rows AS row_count, total_bytes AS size_bytes FROM system.tables "
        "WHERE database = coalesce(:schema, currentDatabase())"
    ),
)

SQLITE = Dialect(
    name="sqlite",
    identity_strategy=IdentityStrategy.PHYSICAL_ADDRESS,
    physical_address_expr="CAST({qualifier}.rowid AS TEXT)",
    physical_address_predicate="rowid = CAST(:row_address AS INTEGER)",
    cast_templates={
        TypeCategory.INTEGER: "CAST({param} AS INTEGER)",
        TypeCategory.FLOAT: "CAST({param} AS REAL)",
    },
    drivername="sqlite",
    connect_timeout_arg="timeout",
    sqlglot_dialect="sqlite",
    # Attached databases; SQLite keeps no cheap per-table statistics.
    databases_sql="SELECT name, NULL AS size_bytes FROM pragma_database_list",
)

_DIALECTS: Dict[str, Dialect] = {
    d.name: d for d in (POSTGRES, MYSQL, MSSQL, ORACLE, CLICKHOUSE, SQLITE)
}

_ALIASES = {
    "postgres": "postgresql",
    "pg": "postgresql",
    "mariadb": "mysql",
    "sqlserver": "mssql",
    "sql_server": "mssql",
    "ch": "clickhouse",
}


def normalize_kind(kind: str) -> str:
    """Maps a backend name, alias or SQLAlchemy drivername to its canonical name.

    "postgresql+psycopg2" and "PostgreSQL" both become "postgresql".
    """
    key = kind.strip().lower().split("+", 1)[0]
    return _ALIASES.get(key, key)


def get_dialect(kind: str) -> Dialect:
    """Returns the dialect descriptor for a backend kind.

    Raises:
        ValueError: If the kind is not supported.
    """
    key = normalize_kind(kind)
    dialect = _DIALECTS.get(key)
    if dialect is None:
        raise ValueError(
            f"Unsupported database kind '{kind}'. "
            f"Supported: {', '.join(sorted(_DIALECTS))}"
        )
    return dialect


def supported_kinds():
    return sorted(_DIALECTS)
