import pytest
from sqlalchemy import types as sqltypes

from dbgrid.dialects import (
    CLICKHOUSE,
    MSSQL,
    MYSQL,
    ORACLE,
    POSTGRES,
    SQLITE,
    TypeCategory,
    classify_type,
    get_dialect,
    supported_kinds,
)


class TestGetDialect:

    @pytest.mark.parametrize("kind, expected", [
        ("postgres", POSTGRES),
        ("PostgreSQL", POSTGRES),
        ("postgresql+psycopg2", POSTGRES),
        ("mariadb", MYSQL),
        ("SQLServer", MSSQL),
        ("oracle", ORACLE),
        ("ch", CLICKHOUSE),
        ("sqlite", SQLITE),
    ])
    def test_aliases_and_drivernames(self, kind, expected):
        assert get_dialect(kind) is expected

    def test_unknown_kind(self):
        with pytest.raises(ValueError, match="Supported"):
            get_dialect("db2")

    def test_supported_kinds(self):
        assert supported_kinds() == ["clickhouse", "mssql", "mysql", "oracle", "postgresql", "sqlite"]


def test_quote_identifier_doubles_closing_quote():
    assert POSTGRES.quote_identifier('a"b') == '"a""b"'
    assert MSSQL.quote_identifier("a]b") == "[a]]b]"
    assert MYSQL.quote_identifier("a`b") == "`a``b`"


def test_oracle_column_ref_restores_stored_case():
    # Validates label handling because Oracle reports unquoted names lower-cased.
    assert ORACLE.column_ref("name") == '"NAME"'
    assert ORACLE.column_ref("MixedCase") == '"MixedCase"'
    assert POSTGRES.column_ref("name") == '"name"'


def test_concat():
    assert POSTGRES.concat(["a"]) == "a"
    assert POSTGRES.concat(["a", "b"]) == "a || ':' || b"
    assert MYSQL.concat(["a", "b"]) == "CONCAT(a, ':', b)"
    assert MSSQL.concat(["a", "b"]) == "CONCAT(a, N':', b)"


def test_pagination_clause_clamps_offset():
    assert POSTGRES.pagination_clause(10, -5) == "LIMIT 10 OFFSET 0"
    assert ORACLE.pagination_clause(10, 3) == "OFFSET 3 ROWS FETCH NEXT 10 ROWS ONLY"


def test_physical_address_support():
    assert POSTGRES.supports_physical_address
    assert ORACLE.supports_physical_address
    assert SQLITE.supports_physical_address
    assert not MYSQL.supports_physical_address
    assert not MSSQL.supports_physical_address
    assert not CLICKHOUSE.supports_row_updates


def test_cast_expr_passes_through_unmapped_categories():
    assert POSTGRES.cast_expr(TypeCategory.INTEGER, ":p") == "CAST(:p AS BIGINT)"
    assert SQLITE.cast_expr(TypeCategory.DATE, ":p") == ":p"
    assert MYSQL.cast_expr(TypeCategory.TEXT, ":p") == ":p"


class TestClassifyType:

    @pytest.mark.parametrize("type_obj, expected", [
        (sqltypes.Integer(), TypeCategory.INTEGER),
        (sqltypes.BigInteger, TypeCategory.INTEGER),
        (sqltypes.Boolean(), TypeCategory.BOOLEAN),
        (sqltypes.Float(), TypeCategory.FLOAT),
        (sqltypes.Numeric(10, 2), TypeCategory.DECIMAL),
        (sqltypes.Numeric(10, 0), TypeCategory.INTEGER),
        (sqltypes.DateTime(), TypeCategory.DATETIME),
        (sqltypes.Date(), TypeCategory.DATE),
        (sqltypes.Time(), TypeCategory.TIME),
        (sqltypes.String(20), TypeCategory.TEXT),
        (None, TypeCategory.UNKNOWN),
    ])
    def test_generic_types(self, type_obj, expected):
        assert classify_type(type_obj) == expected

    @pytest.mark.parametrize("name, expected", [
        ("VARCHAR(20)", TypeCategory.TEXT),
        ("Nullable(Int32)", TypeCategory.INTEGER),
        ("LowCardinality(String)", TypeCategory.TEXT),
        ("DATETIME2", TypeCategory.DATETIME),
        ("TIMESTAMP WITH TIME ZONE", TypeCategory.DATETIME),
        ("NUMBER", TypeCategory.DECIMAL),
        ("BINARY_DOUBLE", TypeCategory.FLOAT),
        ("geometry", TypeCategory.UNKNOWN),
    ])
    def test_type_names(self, name, expected):
        # Validates name hints because reflected dialect types do not always subclass generic ones.
        assert classify_type(name) == expected

    def test_text_is_not_a_scalar(self):
        assert not TypeCategory.TEXT.is_non_text_scalar
        assert not TypeCategory.UNKNOWN.is_non_text_scalar
        assert TypeCategory.DATE.is_non_text_scalar
