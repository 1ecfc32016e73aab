from .models import (
    ConnectionStatus,
    DatabaseInfo,
    EditableColumn,
    EditableRow,
    Page,
    PageRequest,
    SaveOutcome,
    TableInfo,
    TabularResult,
)

__all__ = [
    "ConnectionStatus",
    "DatabaseInfo",
    "EditableColumn",
    "EditableRow",
    "Page",
    "PageRequest",
    "SaveOutcome",
    "TableInfo",
    "TabularResult",
]
