from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, Optional

from sqlalchemy import exc as sa_exc
from sqlalchemy import types as sqltypes


class PaginationStyle(str, Enum):
    LIMIT_OFFSET = "limit_offset"
    OFFSET_FETCH = "offset_fetch"


class IdentityStrategy(str, Enum):
    DECLARED_KEY = "declared_key"
    PHYSICAL_ADDRESS = "physical_address"


class TypeCategory(str, Enum):
    """Coarse type family used to pick casts and NULL handling for edited values."""
    INTEGER = "integer"
    DECIMAL = "decimal"
    FLOAT = "float"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BOOLEAN = "boolean"
    TEXT = "text"
    UNKNOWN = "unknown"

    @property
    def is_non_text_scalar(self) -> bool:
        return self not in (TypeCategory.TEXT, TypeCategory.UNKNOWN)


# Checked in order: subclasses before their bases (DateTime is not a Date, but
# Integer subclasses and Numeric/Float overlap).
_GENERIC_TYPE_MAP = (
    (sqltypes.Boolean, TypeCategory.BOOLEAN),
    (sqltypes.Integer, TypeCategory.INTEGER),
    (sqltypes.Float, TypeCategory.FLOAT),
    (sqltypes.Numeric, TypeCategory.DECIMAL),
    (sqltypes.DateTime, TypeCategory.DATETIME),
    (sqltypes.Date, TypeCategory.DATE),
    (sqltypes.Time, TypeCategory.TIME),
    (sqltypes.String, TypeCategory.TEXT),
    (sqltypes.Enum, TypeCategory.TEXT),
)

# Name fragments for dialect types that do not subclass the generic hierarchy
# (or were reflected as NullType).
_NAME_HINTS = (
    (("bool", "bit"), TypeCategory.BOOLEAN),
    (("int", "serial"), TypeCategory.INTEGER),
    (("double", "float", "real", "binary_double", "binary_float"), TypeCategory.FLOAT),
    (("numeric", "decimal", "number", "money"), TypeCategory.DECIMAL),
    (("timestamp", "datetime"), TypeCategory.DATETIME),
    (("date",), TypeCategory.DATE),
    (("time",), TypeCategory.TIME),
    (("char", "text", "clob", "string", "uuid", "json", "xml", "enum"), TypeCategory.TEXT),
)


def classify_type(type_obj) -> TypeCategory:
    """Maps a SQLAlchemy type object (or a declared type string) to a TypeCategory.

    Args:
        type_obj: A `TypeEngine` instance, a type class, or a type name such as "VARCHAR(20)".

    Returns:
        TypeCategory: UNKNOWN when nothing matches.
    """
    if type_obj is None:
        return TypeCategory.UNKNOWN

    if isinstance(type_obj, type) and issubclass(type_obj, sqltypes.TypeEngine):
        type_obj = type_obj()

    if isinstance(type_obj, sqltypes.TypeEngine):
        for generic, category in _GENERIC_TYPE_MAP:
            if isinstance(type_obj, generic):
                # Oracle reflects NUMBER(p, 0) as a Numeric with scale 0.
                if category == TypeCategory.DECIMAL and getattr(type_obj, "scale", None) == 0:
                    return TypeCategory.INTEGER
                return category
        try:
            name = str(type_obj)
        except sa_exc.CompileError:  # Some dialect types cannot compile without their dialect.
            name = type(type_obj).__name__
    else:
        name = str(type_obj)

    lowered = name.lower()
    # ClickHouse wraps types: Nullable(Int32), LowCardinality(String).
    for wrapper in ("nullable(", "lowcardinality("):
        while lowered.startswith(wrapper) and lowered.endswith(")"):
            lowered = lowered[len(wrapper):-1]

    for fragments, category in _NAME_HINTS:
        if any(fragment in lowered for fragment in fragments):
            return category
    return TypeCategory.UNKNOWN


@dataclass(frozen=True)
class Dialect:
    """Immutable description of how one backend quotes, pages, casts and addresses rows.

    One generic engine consumes these; no backend gets its own subclass.

    Attributes:
        name (str): Canonical backend name ("postgresql", "mysql", ...).
        quote_start (str): Opening identifier quote.
        quote_end (str): Closing identifier quote; doubled inside quoted names.
        pagination_style (PaginationStyle): LIMIT/OFFSET or OFFSET/FETCH.
        identity_strategy (IdentityStrategy): Fallback when no declared key exists.
        physical_address_expr (Optional[str]): Projection template with `{qualifier}`.
        physical_address_predicate (Optional[str]): WHERE template binding `:row_address`.
        cast_templates (Dict[TypeCategory, str]): Templates with `{param}` per category.
        text_cast_template (str): Null-safe string cast with `{expr}`, used by search.
        concat_function (Optional[str]): Function name, or None to join with `||`.
        concat_separator (str): SQL literal placed between columns in the search concat.
        like_escape_clause (str): Appended after the LIKE pattern.
        derived_alias_keyword (str): Keyword between a derived table and its alias.
        quote_aliases (bool): Whether derived table aliases must be quoted.
        allows_ordered_derived_tables (bool): False where ORDER BY inside a derived table is rejected.
        pages_cte_statements (bool): Whether `WITH ...` statements may be wrapped.
        folds_unquoted_to_lower (bool): Whether unquoted names are looked up lower-cased.
        upper_case_identifiers (bool): Result labels come back lower-cased for upper-case names.
        supports_row_updates (bool): False for engines without single-row UPDATE.
        drivername (str): SQLAlchemy drivername used to build URLs.
        default_port (Optional[int]): Port used when a profile omits one.
        connect_timeout_arg (Optional[str]): DBAPI connect() keyword for the connect timeout.
        sqlglot_dialect (Optional[str]): sqlglot dialect used to parse statements.
        databases_sql (Optional[str]): Catalog query returning `name, size_bytes` per database.
        table_stats_sql (Optional[str]): Catalog query returning `name, row_count, size_bytes`
            per table of the schema bound to `:schema` (NULL for the default schema).
    """

    name: str
    quote_start: str = '"'
    quote_end: str = '"'
    pagination_style: PaginationStyle = PaginationStyle.LIMIT_OFFSET
    identity_strategy: IdentityStrategy = IdentityStrategy.DECLARED_KEY
    physical_address_expr: Optional[str] = None
    physical_address_predicate: Optional[str] = None
    cast_templates: Dict[TypeCategory, str] = field(default_factory=dict)
    text_cast_template: str = "COALESCE(CAST({expr} AS TEXT), '')"
    concat_function: Optional[str] = None
    concat_separator: str = "':'"
    like_escape_clause: str = "ESCAPE '\\'"
    derived_alias_keyword: str = "AS"
    quote_aliases: bool = False
    allows_ordered_derived_tables: bool = True
    pages_cte_statements: bool = True
    folds_unquoted_to_lower: bool = False
    upper_case_identifiers: bool = False
    supports_row_updates: bool = True
    drivername: str = ""
    default_port: Optional[int] = None
    connect_timeout_arg: Optional[str] = None
    sqlglot_dialect: Optional[str] = None
    databases_sql: Optional[str] = None
    table_stats_sql: Optional[str] = None

    def __hash__(self):
        return hash(self.name)

    @property
    def supports_physical_address(self) -> bool:
        return (
            self.identity_strategy == IdentityStrategy.PHYSICAL_ADDRESS
            and self.physical_address_expr is not None
            and self.physical_address_predicate is not None
        )

    def quote_identifier(self, name: str) -> str:
        escaped = name.replace(self.quote_end, self.quote_end * 2)
        return f"{self.quote_start}{escaped}{self.quote_end}"

    def quote_parts(self, parts: Iterable[str]) -> str:
        return ".".join(self.quote_identifier(p) for p in parts)

    def column_ref(self, label: str) -> str:
        """Quotes a result-set column label so it can be referenced in an outer query.

        Oracle reports unquoted (upper-case) names as lower-case labels; those
        are turned back into their stored form before quoting.
        """
        if self.upper_case_identifiers and label == label.lower():
            label = label.upper()
        return self.quote_identifier(label)

    def cast_expr(self, category: TypeCategory, param: str) -> str:
        template = self.cast_templates.get(category)
        if template is None:
            return param
        return template.format(param=param)

    def text_cast(self, expr: str) -> str:
        return self.text_cast_template.format(expr=expr)

    def concat(self, exprs: list) -> str:
        if len(exprs) == 1:
            return exprs[0]
        joined = []
        for i, expr in enumerate(exprs):
            if i:
                joined.append(self.concat_separator)
            joined.append(expr)
        if self.concat_function:
            return f"{self.concat_function}({', '.join(joined)})"
        return " || ".join(joined)

    def pagination_clause(self, limit: int, offset: int) -> str:
        offset = max(0, offset)
        if self.pagination_style == PaginationStyle.OFFSET_FETCH:
            return f"OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"
        return f"LIMIT {limit} OFFSET {offset}"

    def zero_row_clause(self) -> str:
        # FETCH NEXT 0 ROWS is rejected by SQL Server, so every backend uses a false predicate.
        return "WHERE 1 = 0"

    def alias(self, name: str) -> str:
        """Renders ` AS name` (or the dialect's equivalent) after a derived table."""
        ref = self.alias_ref(name)
        if self.derived_alias_keyword:
            return f"{self.derived_alias_keyword} {ref}"
        return ref

    def alias_ref(self, name: str) -> str:
        return self.quote_identifier(name) if self.quote_aliases else name

    def derived(self, inner: str, alias: str) -> str:
        return f"({inner}) {self.alias(alias)}"

    def lookup_name(self, name: str, quoted: bool) -> str:
        """Normalizes an identifier as written in SQL for inspector lookups."""
        if quoted:
            return name
        if self.folds_unquoted_to_lower:
            return name.lower()
        return name
