from typing import Any, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from dbgrid.common.errors import ErrorCode, GridError
from dbgrid.common.utils import format_size
from dbgrid.editing.models import RowIdentity
from dbgrid.sql.pager import clamp_limit

T = TypeVar("T")


class PageRequest(BaseModel):
    """Paging, sorting and search options of one query request.

    Invalid sort columns or directions are kept as given; the pager ignores
    them and falls back to the default order.
    """

    offset: int = Field(default=0, description="Rows to skip; negative values become 0.")
    limit: int = Field(default=100, description="Page size; clamped to 1..server maximum.")
    sort_column: Optional[str] = Field(default=None)
    sort_order: Optional[str] = Field(default=None, description="'asc' or 'desc'.")
    search_term: Optional[str] = Field(default=None, description="Blank means no search.")

    model_config = ConfigDict(extra="ignore")

    @field_validator("offset", mode="before")
    @classmethod
    def _non_negative_offset(cls, v):
        return max(0, int(v or 0))

    @field_validator("search_term")
    @classmethod
    def _blank_is_none(cls, v):
        if v is None:
            return None
        return v.strip() or None

    def clamp(self, max_limit: int) -> "PageRequest":
        """Returns a copy whose limit lies in `1..max_limit`."""
        return self.model_copy(update={"limit": clamp_limit(self.limit, max_limit)})


class _Failable(BaseModel):
    error: Optional[str] = Field(default=None, description="Backend or engine message.")
    error_code: Optional[ErrorCode] = Field(default=None)

    @property
    def ok(self) -> bool:
        return self.error is None


class TabularResult(_Failable):
    """One page of a query result.

    Attributes:
        columns: Unique column labels; duplicates get `_2`, `_3` suffixes.
        column_types: Declared or driver type names, parallel to `columns`.
        rows: Display values, truncated per cell.
        has_more: Whether at least one row exists past this page.
        rows_affected: Set for statements that do not return rows.
    """

    columns: List[str] = Field(default_factory=list)
    column_types: List[str] = Field(default_factory=list)
    rows: List[List[Optional[str]]] = Field(default_factory=list)
    offset: int = 0
    limit: int = 0
    has_more: bool = False
    rows_affected: Optional[int] = None

    @classmethod
    def failure(cls, error: GridError, offset: int = 0, limit: int = 0) -> "TabularResult":
        return cls(error=error.message, error_code=error.code, offset=offset, limit=limit)

    @property
    def has_prev(self) -> bool:
        return self.offset > 0

    @property
    def next_offset(self) -> int:
        return self.offset + self.limit

    @property
    def prev_offset(self) -> int:
        return max(0, self.offset - self.limit)

    @property
    def from_row(self) -> int:
        return self.offset + 1 if self.rows else 0

    @property
    def to_row(self) -> int:
        return self.offset + len(self.rows)


class EditableColumn(BaseModel):
    name: str
    data_type: str = "unknown"
    value: Optional[str] = None
    is_null: bool = False
    read_only: bool = False


class EditableRow(_Failable):
    """A single row opened for editing. Values are never truncated."""

    table: Optional[str] = Field(default=None, description="Table reference as written in the query.")
    columns: List[EditableColumn] = Field(default_factory=list)
    identity: Optional[RowIdentity] = None
    editable: bool = False

    @classmethod
    def failure(cls, error: GridError, table: Optional[str] = None) -> "EditableRow":
        return cls(error=error.message, error_code=error.code, table=table)

    def values(self) -> dict:
        return {c.name: c.value for c in self.columns}


class SaveOutcome(_Failable):
    success: bool = False
    rows_updated: int = 0

    @classmethod
    def failure(cls, error: GridError) -> "SaveOutcome":
        return cls(success=False, error=error.message, error_code=error.code)


class ConnectionStatus(_Failable):
    connected: bool = False
    dialect: Optional[str] = None
    server_version: Optional[str] = None

    @classmethod
    def failure(cls, error: GridError, dialect: Optional[str] = None) -> "ConnectionStatus":
        return cls(connected=False, dialect=dialect, error=error.message, error_code=error.code)


class TableInfo(BaseModel):
    """A table or view of a schema, with the backend's size statistics when it keeps them."""

    name: str
    kind: str = Field(default="table", description="'table' or 'view'.")
    approximate_row_count: Optional[int] = Field(default=None, description="Statistics estimate, not a count.")
    size_on_disk: Optional[int] = Field(default=None, description="Bytes, indexes included where reported.")

    @computed_field
    @property
    def size_on_disk_formatted(self) -> Optional[str]:
        return format_size(self.size_on_disk)


class DatabaseInfo(BaseModel):
    name: str
    size_on_disk: Optional[int] = None

    @computed_field
    @property
    def size_on_disk_formatted(self) -> Optional[str]:
        return format_size(self.size_on_disk)


class Page(BaseModel, Generic[T]):
    """A page of a listing (databases, schemas, tables)."""

    items: List[T] = Field(default_factory=list)
    page: int = 1
    size: int = 0
    has_more: bool = False
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @classmethod
    def of(cls, all_items: List[Any], page: int, size: int) -> "Page":
        """Slices `all_items` to 1-based `page` of `size` items."""
        page = max(1, page)
        size = max(1, size)
        start = (page - 1) * size
        return cls(
            items=all_items[start:start + size],
            page=page,
            size=size,
            has_more=len(all_items) > start + size,
        )

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def from_row(self) -> int:
        return (self.page - 1) * self.size + 1 if self.items else 0

    @property
    def to_row(self) -> int:
        return (self.page - 1) * self.size + len(self.items)
