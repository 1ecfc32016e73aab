from .models import (
    ColumnDescriptor,
    IdentityPlan,
    IdentityStrategyKind,
    KeyComponent,
    KeyIdentity,
    PhysicalIdentity,
    RowIdentity,
)

__all__ = [
    "ColumnDescriptor",
    "IdentityPlan",
    "IdentityStrategyKind",
    "KeyComponent",
    "KeyIdentity",
    "PhysicalIdentity",
    "RowIdentity",
]
