"""
Heuristic extraction of the table a free-form query reads from.

This is not a SQL parser. It finds the first `FROM <reference>` that is not a
derived table and returns it, preferring references outside parentheses so
`EXTRACT(YEAR FROM col)` does not shadow the real table. Anything it cannot
make sense of yields None.
"""
from __future__ import annotations

import dataclasses
import re
from typing import List, Optional, Tuple

from dbgrid.dialects.base import Dialect
from dbgrid.sql.statement import leading_keyword

_PART = (
    r'"(?:[^"]|"")+"'
    r"|`(?:[^`]|``)+`"
    r"|\[(?:[^\]]|\]\])+\]"
    r"|[\w$#@]+"
)

_REFERENCE = re.compile(
    rf"\s+(?P<ref>(?:{_PART})(?:\s*\.\s*(?:{_PART})){{0,2}})"
    rf"(?:\s+(?:(?P<as>AS)\s+)?(?P<alias>{_PART}))?",
    re.IGNORECASE,
)
_SPLIT_PART = re.compile(_PART)
_FROM = re.compile(r"\bFROM\b", re.IGNORECASE)

_NOT_ALIASES = {
    "WHERE", "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "OUTER", "CROSS", "NATURAL",
    "ON", "USING", "GROUP", "ORDER", "HAVING", "LIMIT", "OFFSET", "FETCH", "UNION",
    "INTERSECT", "EXCEPT", "MINUS", "WINDOW", "FOR", "WITH", "AS", "SET", "INTO",
    "VALUES", "RETURNING", "FINAL", "SAMPLE", "PREWHERE", "FORMAT", "SETTINGS",
    "TABLESAMPLE", "PARTITION", "START", "CONNECT", "QUALIFY", "LATERAL", "APPLY",
}


@dataclasses.dataclass(frozen=True)
class IdentifierPart:
    """One dotted component of a table reference, unquoted, with its quoting remembered."""
    name: str
    quoted: bool = False


@dataclasses.dataclass(frozen=True)
class TableRef:
    """
    A table reference as written in a query.

    Attributes:
        parts: One to three components (`table`, `schema.table`, `db.schema.table`).
        alias: The alias written after the reference, if any.
        position: Offset of the matched `FROM` keyword in the parsed text.
    """
    parts: Tuple[IdentifierPart, ...]
    alias: Optional[str] = None
    position: int = -1

    @property
    def name(self) -> str:
        return self.parts[-1].name

    @property
    def schema(self) -> Optional[str]:
        return self.parts[-2].name if len(self.parts) > 1 else None

    @property
    def sql(self) -> str:
        """The reference in its written form, with neutral `"` quoting for quoted parts."""
        return ".".join(
            '"' + p.name.replace('"', '""') + '"' if p.quoted else p.name
            for p in self.parts
        )

    def render(self, dialect: Dialect) -> str:
        """The reference for `dialect`: quoted parts re-quoted, bare parts kept raw."""
        return ".".join(
            dialect.quote_identifier(p.name) if p.quoted else p.name
            for p in self.parts
        )

    def lookup_name(self, dialect: Dialect) -> str:
        part = self.parts[-1]
        return dialect.lookup_name(part.name, part.quoted)

    def lookup_schema(self, dialect: Dialect) -> Optional[str]:
        if len(self.parts) < 2:
            return None
        part = self.parts[-2]
        return dialect.lookup_name(part.name, part.quoted)

    def qualifier(self, dialect: Dialect) -> str:
        """What a column projection must be prefixed with: the alias, else the table."""
        if self.alias:
            return self.alias
        return self.render(dialect)

    def __str__(self):
        return self.sql


def _unquote(token: str) -> IdentifierPart:
    if len(token) >= 2:
        first, last = token[0], token[-1]
        if first == '"' and last == '"':
            return IdentifierPart(token[1:-1].replace('""', '"'), True)
        if first == "`" and last == "`":
            return IdentifierPart(token[1:-1].replace("``", "`"), True)
        if first == "[" and last == "]":
            return IdentifierPart(token[1:-1].replace("]]", "]"), True)
    return IdentifierPart(token, False)


def _split_parts(reference: str) -> Tuple[IdentifierPart, ...]:
    return tuple(_unquote(m.group(0)) for m in _SPLIT_PART.finditer(reference))


def paren_depths(sql: str, positions: List[int]) -> List[int]:
    """Parenthesis depth at each position, ignoring quoted text."""
    wanted = sorted(set(positions))
    depths = {}
    depth = 0
    quote = None
    idx = 0
    i = 0
    while i < len(sql) and idx < len(wanted):
        while idx < len(wanted) and wanted[idx] == i:
            depths[wanted[idx]] = depth
            idx += 1
        ch = sql[i]
        if quote:
            if ch == quote:
                quote = None
        elif ch in ("'", '"', "`"):
            quote = ch
        elif ch == "[":
            quote = "]"
        elif ch == "(":
            depth += 1
        elif ch == ")":
            depth = max(0, depth - 1)
        i += 1
    return [depths.get(p, depth) for p in positions]


def _match_at(sql: str, from_match: re.Match) -> Optional[TableRef]:
    match = _REFERENCE.match(sql, from_match.end())
    if match is None:
        return None

    parts = _split_parts(match.group("ref"))
    if not parts or all(not p.quoted and p.name.isdigit() for p in parts):
        return None

    alias = None
    alias_token = match.group("alias")
    if alias_token:
        alias_part = _unquote(alias_token)
        if alias_part.quoted or alias_part.name.upper() not in _NOT_ALIASES:
            alias = alias_token
    return TableRef(parts=parts, alias=alias, position=from_match.start())


def parse_table_ref(sql: Optional[str]) -> Optional[TableRef]:
    """Returns the first table reference following `FROM`, or None.

    Examples:
        `SELECT * FROM "Orders"` -> Orders (quoted)
        `SELECT * FROM sales.orders o` -> sales.orders, alias o
        `SELECT 1` -> None
        `SELECT * FROM (SELECT * FROM t) x` -> t
        `WITH x AS (...) SELECT ...` -> None
    """
    if not sql or not sql.strip():
        return None
    if leading_keyword(sql) == "WITH":
        return None

    candidates = [m for m in _FROM.finditer(sql)]
    if not candidates:
        return None

    depths = paren_depths(sql, [m.start() for m in candidates])
    ordered = sorted(zip(depths, range(len(candidates))))
    for _, index in ordered:
        ref = _match_at(sql, candidates[index])
        if ref is not None:
            return ref
    return None


def parse_table_name(text: Optional[str]) -> Optional[TableRef]:
    """Parses a bare reference such as `sales."Orders"` submitted back by a caller."""
    if not text or not text.strip():
        return None
    stripped = text.strip()
    match = re.fullmatch(rf"(?:{_PART})(?:\s*\.\s*(?:{_PART})){{0,2}}", stripped)
    if match is None:
        return None
    return TableRef(parts=_split_parts(stripped))
