from __future__ import annotations

import pathlib
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, NoSuchModuleError
from sqlalchemy.pool import NullPool

from dbgrid.common.errors import ConnectionUnavailable
from dbgrid.common.logger import get_logger
from dbgrid.common.settings import settings
from dbgrid.datasources.config import ConnectionProfile, build_url, load_profiles
from dbgrid.dialects.base import Dialect
from dbgrid.dialects.registry import get_dialect

logger = get_logger(__name__)


class ConnectionRegistry:
    """
    Keyed store of connection profiles and the factory of short-lived engines.

    No engine outlives an operation: each `open()` builds an engine without a
    pool and disposes it on exit, so every operation uses a fresh physical
    connection.
    """

    def __init__(self, profiles: Optional[Dict[str, ConnectionProfile]] = None):
        self._profiles: Dict[str, ConnectionProfile] = {}
        for profile in (profiles or {}).values():
            self.register(profile)

    @classmethod
    def from_config(cls, path: Optional[pathlib.Path] = None) -> "ConnectionRegistry":
        """Loads profiles from YAML; a missing file yields an empty registry."""
        path = pathlib.Path(path or settings.connections_config_path)
        if not path.exists():
            logger.info(f"No connections config at {path}; starting with an empty registry.")
            return cls()
        return cls(load_profiles(path))

    def register(self, profile: ConnectionProfile) -> ConnectionProfile:
        """Adds or replaces a profile.

        Raises:
            ValueError: If the profile's kind is not supported.
        """
        get_dialect(profile.kind)
        self._profiles[profile.id] = profile
        return profile

    def remove(self, connection_id: str) -> bool:
        return self._profiles.pop(str(connection_id), None) is not None

    def get_profile(self, connection_id: str) -> ConnectionProfile:
        """
        Retrieves a profile by ID.

        Raises:
            ConnectionUnavailable: If the ID is unknown.
        """
        profile = self._profiles.get(str(connection_id))
        if profile is None:
            raise ConnectionUnavailable(details={"connection_id": str(connection_id)})
        return profile

    def list_profiles(self) -> List[ConnectionProfile]:
        return list(self._profiles.values())

    def dialect_for(self, connection_id: str) -> Dialect:
        return self.get_profile(connection_id).dialect

    def create_engine(self, profile: ConnectionProfile) -> Engine:
        """Builds a pool-less engine for one operation.

        Raises:
            ConnectionUnavailable: If the URL cannot be built or its driver is not installed.
        """
        dialect = profile.dialect
        connect_args = {}
        if dialect.connect_timeout_arg:
            connect_args[dialect.connect_timeout_arg] = settings.connect_timeout_sec

        try:
            url = build_url(profile)
            return create_engine(url, poolclass=NullPool, connect_args=connect_args)
        except (ValueError, ArgumentError, NoSuchModuleError, ImportError) as e:
            logger.warning(f"Cannot create engine for connection {profile.id}: {e}")
            raise ConnectionUnavailable(
                details={"connection_id": profile.id, "reason": str(e)}
            ) from e

    @contextmanager
    def open(self, connection_id: str) -> Iterator[Engine]:
        """Yields an engine for `connection_id`, disposing it on every exit path."""
        profile = self.get_profile(connection_id)
        engine = self.create_engine(profile)
        try:
            yield engine
        finally:
            engine.dispose()
