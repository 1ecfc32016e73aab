from enum import Enum
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from dbgrid.dialects.base import TypeCategory


class ColumnDescriptor(BaseModel):
    """A column of the target table as reported by the catalog."""
    model_config = ConfigDict(frozen=True)

    name: str
    data_type: str = "unknown"
    category: TypeCategory = TypeCategory.UNKNOWN


class KeyComponent(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: Optional[str] = None


class KeyIdentity(BaseModel):
    """Identifies a row by the values of a primary key or unique constraint."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["key"] = "key"
    columns: List[KeyComponent]


class PhysicalIdentity(BaseModel):
    """Identifies a row by the backend's physical address (ctid, ROWID, rowid)."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["physical"] = "physical"
    token: str


RowIdentity = Annotated[Union[KeyIdentity, PhysicalIdentity], Field(discriminator="kind")]


class IdentityStrategyKind(str, Enum):
    KEY = "key"
    PHYSICAL = "physical"
    NONE = "none"


class IdentityPlan(BaseModel):
    """How rows of one table will be identified, decided before any row is read.

    Attributes:
        strategy: KEY, PHYSICAL or NONE (not editable).
        key_columns: Key column names in declared order (KEY only).
        columns: Catalog columns of the table, keyed by name.
        reason: Why the table is not editable (NONE only).
    """
    strategy: IdentityStrategyKind
    key_columns: List[str] = Field(default_factory=list)
    columns: Dict[str, ColumnDescriptor] = Field(default_factory=dict)
    reason: Optional[str] = None

    @property
    def editable(self) -> bool:
        return self.strategy != IdentityStrategyKind.NONE

    def column(self, name: str) -> Optional[ColumnDescriptor]:
        """Case-insensitive column lookup."""
        if name in self.columns:
            return self.columns[name]
        lowered = name.lower()
        for key, descriptor in self.columns.items():
            if key.lower() == lowered:
                return descriptor
        return None

    def is_key_column(self, name: str) -> bool:
        lowered = name.lower()
        return any(k.lower() == lowered for k in self.key_columns)
