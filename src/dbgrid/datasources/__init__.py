from dbgrid.datasources.config import (
    ConnectionProfile,
    build_url,
    load_profiles,
    parse_jdbc_url,
    profile_from_dict,
    resolve_secret,
)
from dbgrid.datasources.registry import ConnectionRegistry

__all__ = [
    "ConnectionProfile",
    "ConnectionRegistry",
    "build_url",
    "load_profiles",
    "parse_jdbc_url",
    "profile_from_dict",
    "resolve_secret",
]
