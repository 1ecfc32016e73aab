from __future__ import annotations

import dataclasses
import os
import pathlib
import re
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl, unquote

import yaml
from sqlalchemy.engine import URL, make_url

from dbgrid.dialects.base import Dialect
from dbgrid.dialects.registry import get_dialect, normalize_kind

_SECRET_REF = re.compile(r"^\$\{env:([^}]+)\}$")
_JDBC_URL = re.compile(r"^jdbc:([^:]+):(?://)?(.*)$", re.IGNORECASE)

DEFAULT_MSSQL_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


@dataclasses.dataclass
class ConnectionProfile:
    """
    A saved connection to one backend.

    Attributes:
        id: Unique key of the connection.
        name: Display name.
        kind: Backend kind ("postgresql", "mysql", ...). Optional if implied by `url`.
        host: Server host.
        port: Server port; the dialect default when omitted.
        database: Database (Oracle: service name, SQLite: file path).
        username: Login user.
        password: Login password, or a `${env:NAME}` reference.
        url: A full SQLAlchemy URL; takes precedence over the discrete fields.
        options: Extra URL query options (e.g. `driver` for ODBC).
    """
    id: str
    kind: str
    name: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    database: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = dataclasses.field(default=None, repr=False)
    url: Optional[str] = dataclasses.field(default=None, repr=False)
    options: Dict[str, Any] = dataclasses.field(default_factory=dict)

    def __post_init__(self):
        self.id = str(self.id)
        self.kind = normalize_kind(self.kind)
        if not self.name:
            self.name = self.id

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.kind)


def resolve_secret(value: Optional[str]) -> Optional[str]:
    """Resolves `${env:NAME}` from the environment; other values pass through.

    Raises:
        ValueError: If the referenced variable is not set.
    """
    if value is None:
        return None
    match = _SECRET_REF.match(value.strip())
    if match is None:
        return value
    key = match.group(1)
    resolved = os.environ.get(key)
    if resolved is None:
        raise ValueError(f"Secret not found: ${{env:{key}}}")
    return resolved


def _infer_kind(url: str) -> str:
    """Infers the backend kind from a SQLAlchemy URL."""
    return normalize_kind(make_url(url).get_backend_name())


def parse_jdbc_url(jdbc_url: str) -> Optional[Dict[str, Any]]:
    """Splits `jdbc:<kind>://user:pass@host:port/db?opts` into profile fields.

    Returns None when the text is not a JDBC URL.
    """
    match = _JDBC_URL.match(jdbc_url.strip())
    if match is None:
        return None

    kind, rest = match.group(1).lower(), match.group(2)
    authority, _, path_and_query = rest.partition("/")
    database, _, query = path_and_query.partition("?")

    fields: Dict[str, Any] = {"kind": kind, "host": "localhost"}
    if "@" in authority:
        userinfo, authority = authority.rsplit("@", 1)
        user, sep, password = userinfo.partition(":")
        fields["username"] = unquote(user)
        if sep:
            fields["password"] = unquote(password)

    host, sep, port = authority.partition(":")
    if host:
        fields["host"] = host
    if sep and port.isdigit():
        fields["port"] = int(port)
    if database:
        fields["database"] = unquote(database)
    if query:
        fields["options"] = dict(parse_qsl(query))
    return fields


def profile_from_dict(raw: Dict[str, Any]) -> ConnectionProfile:
    """Parses a connection profile from a dictionary (a YAML entry or a programmatic mapping)."""
    raw = dict(raw)
    url = raw.get("url")
    if url and url.lower().startswith("jdbc:"):
        jdbc = parse_jdbc_url(url) or {}
        for key, value in jdbc.items():
            raw.setdefault(key, value)
        url = None

    kind = raw.get("kind") or raw.get("type")
    if not kind:
        if not url:
            raise ValueError(f"Connection '{raw.get('id')}' needs either 'kind' or 'url'")
        kind = _infer_kind(url)

    port = raw.get("port")
    return ConnectionProfile(
        id=raw["id"],
        name=raw.get("name"),
        kind=kind,
        host=raw.get("host"),
        port=int(port) if port not in (None, "") else None,
        database=raw.get("database") or raw.get("db_name"),
        username=raw.get("username"),
        password=raw.get("password"),
        url=url,
        options=raw.get("options") or {},
    )


def load_profiles(path: pathlib.Path) -> Dict[str, ConnectionProfile]:
    """
    Load connection profiles from a YAML file.

    Args:
        path: Path to the YAML configuration file (a list of profiles).

    Returns:
        A dictionary mapping connection IDs to ConnectionProfile objects.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config format is invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Connections config not found: {path}")

    raw = yaml.safe_load(path.read_text())
    if raw is None:
        return {}
    if not isinstance(raw, list):
        raise ValueError("Connections config must be a YAML list of profiles")

    profiles: Dict[str, ConnectionProfile] = {}
    for item in raw:
        profile = profile_from_dict(item)
        profiles[profile.id] = profile
    return profiles


def build_url(profile: ConnectionProfile) -> URL:
    """Builds the SQLAlchemy URL for a profile.

    A profile `url` is used as given (with the password filled in when the
    profile supplies one). Otherwise the URL is assembled from the discrete
    fields with the dialect's default driver and port.

    Raises:
        ValueError: If a `${env:NAME}` password cannot be resolved.
    """
    password = resolve_secret(profile.password)

    if profile.url:
        url = make_url(profile.url)
        if password is not None:
            url = url.set(password=password)
        return url

    dialect = profile.dialect
    query = {k: str(v) for k, v in profile.options.items()}
    database = profile.database

    if dialect.name == "sqlite":
        return URL.create(dialect.drivername, database=database or None, query=query)

    if dialect.name == "mssql":
        query.setdefault("driver", DEFAULT_MSSQL_ODBC_DRIVER)
    if dialect.name == "oracle" and database:
        query.setdefault("service_name", database)
        database = None

    return URL.create(
        dialect.drivername,
        username=profile.username or None,
        password=password or None,
        host=profile.host or "localhost",
        port=profile.port or dialect.default_port,
        database=database or None,
        query=query,
    )
