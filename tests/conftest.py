import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine, text

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "src"))

from dbgrid.datasources import ConnectionProfile, ConnectionRegistry  # noqa: E402
from dbgrid.execution.executor import QueryExecutor  # noqa: E402

PEOPLE = [
    (1, "Ada", 36, 9.5, "first programmer"),
    (2, "Brian", 41, 7.0, None),
    (3, "Claude", 52, 8.25, "information theory"),
    (4, "Dennis", 70, 6.5, "c and unix"),
    (5, "Edsger", 72, 9.0, "shortest paths"),
    (6, "Frances", 89, 8.0, None),
    (7, "Grace", 85, 9.75, "compilers"),
]


@pytest.fixture
def sqlite_path(tmp_path):
    """Returns a SQLite file with a keyed, a uniquely indexed and a keyless table."""
    path = tmp_path / "grid.db"
    engine = create_engine(f"sqlite:///{path}")
    with engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT, age INTEGER, score REAL, note TEXT)"
        ))
        conn.execute(
            text("INSERT INTO people VALUES (:id, :name, :age, :score, :note)"),
            [dict(zip(("id", "name", "age", "score", "note"), p)) for p in PEOPLE],
        )
        conn.execute(text("CREATE TABLE tags (code TEXT NOT NULL, label TEXT, weight INTEGER)"))
        conn.execute(text("CREATE UNIQUE INDEX ux_tags_code ON tags (code)"))
        conn.execute(
            text("INSERT INTO tags VALUES (:code, :label, :weight)"),
            [
                {"code": "red", "label": "Red", "weight": 1},
                {"code": "green", "label": "Green", "weight": 2},
                {"code": "blue", "label": "Blue", "weight": 3},
            ],
        )
        conn.execute(text("CREATE TABLE events (title TEXT, qty INTEGER)"))
        conn.execute(
            text("INSERT INTO events VALUES (:title, :qty)"),
            [{"title": "launch", "qty": 1}, {"title": "review", "qty": 2}, {"title": "retro", "qty": 3}],
        )
    engine.dispose()
    return path


@pytest.fixture
def registry(sqlite_path):
    """Returns a registry holding one SQLite connection named 'local'."""
    return ConnectionRegistry({
        "local": ConnectionProfile(id="local", kind="sqlite", database=str(sqlite_path)),
    })


@pytest.fixture
def executor(registry):
    return QueryExecutor(registry, max_rows=50, cell_max_length=20)


@pytest.fixture
def read_table(sqlite_path):
    """Returns a helper reading rows straight from the SQLite file."""
    def _read(sql):
        engine = create_engine(f"sqlite:///{sqlite_path}")
        try:
            with engine.connect() as conn:
                return [tuple(r) for r in conn.execute(text(sql))]
        finally:
            engine.dispose()
    return _read


@pytest.fixture
def write_table(sqlite_path):
    """Returns a helper committing a statement through a separate engine."""
    def _write(sql):
        engine = create_engine(f"sqlite:///{sqlite_path}")
        try:
            with engine.begin() as conn:
                conn.execute(text(sql))
        finally:
            engine.dispose()
    return _write
