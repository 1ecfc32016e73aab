"""End-to-end behaviour of QueryExecutor against a real SQLite file."""
import pytest

from dbgrid.common.errors import ErrorCode
from dbgrid.datasources import ConnectionProfile
from dbgrid.editing.models import KeyComponent, KeyIdentity, PhysicalIdentity


def _ids(result):
    return [row[0] for row in result.rows]


class TestRunPagedQuery:

    def test_first_page(self, executor):
        # Act
        result = executor.run_paged_query("local", "SELECT * FROM people;", offset=0, limit=3)

        # Assert
        assert result.ok
        assert result.columns == ["id", "name", "age", "score", "note"]
        assert result.column_types == ["INTEGER", "TEXT", "INTEGER", "REAL", "TEXT"]
        assert result.rows[0] == ["1", "Ada", "36", "9.5", "first programmer"]
        assert _ids(result) == ["1", "2", "3"]
        assert result.has_more is True
        assert result.has_prev is False

    def test_pages_cover_every_row_exactly_once(self, executor):
        # Validates pagination because concatenated pages must equal the full result.
        seen, offset = [], 0
        while True:
            result = executor.run_paged_query("local", "SELECT * FROM people", offset=offset, limit=3)
            seen.extend(_ids(result))
            if not result.has_more:
                break
            offset = result.next_offset

        assert seen == [str(i) for i in range(1, 8)]
        assert offset == 6

    def test_repeated_reads_are_identical(self, executor):
        first = executor.run_paged_query("local", "SELECT * FROM people", offset=2, limit=2, sort_column="age", sort_order="desc")
        second = executor.run_paged_query("local", "SELECT * FROM people", offset=2, limit=2, sort_column="age", sort_order="desc")

        assert first == second

    def test_sort(self, executor):
        result = executor.run_paged_query("local", "SELECT name, age FROM people", limit=2, sort_column="age", sort_order="desc")

        assert [row[0] for row in result.rows] == ["Frances", "Grace"]

    def test_invalid_sort_column_is_ignored(self, executor):
        result = executor.run_paged_query(
            "local", "SELECT * FROM people", limit=2, sort_column="age; DROP TABLE people", sort_order="desc",
        )

        assert result.ok
        assert _ids(result) == ["1", "2"]

    def test_limit_is_capped_at_server_maximum(self, executor):
        result = executor.run_paged_query("local", "SELECT * FROM people", limit=10_000)

        assert result.limit == 50
        assert len(result.rows) == 7
        assert result.has_more is False

    def test_long_cells_are_truncated(self, executor):
        result = executor.run_paged_query("local", "SELECT 'abcdefghijklmnopqrstuvwxyz' AS s")

        assert result.rows == [["abcdefghijklmnopqrst…"]]
        assert result.column_types == ["unknown"]

    def test_duplicate_labels_are_unique(self, executor):
        result = executor.run_paged_query(
            "local", "SELECT p.id, q.id FROM people p JOIN people q ON q.id = p.id", limit=1,
        )

        assert result.ok
        assert len(result.columns) == 2
        assert len(set(result.columns)) == 2
        assert result.columns[0] == "id"
        assert result.column_types[0] == "INTEGER"

    def test_colon_literal_is_not_a_bind(self, executor):
        result = executor.run_paged_query("local", "SELECT ':x' AS v, name FROM people WHERE id = 1")

        assert result.ok
        assert result.rows == [[":x", "Ada"]]

    def test_statement_without_rows_reports_rows_affected(self, executor, read_table):
        result = executor.run_paged_query("local", "UPDATE people SET age = age + 1 WHERE id < 3")

        assert result.ok
        assert result.rows_affected == 2
        assert result.columns == []
        assert read_table("SELECT age FROM people WHERE id < 3 ORDER BY id") == [(37,), (42,)]

    def test_alias_named_like_a_keyword_is_paged(self, executor):
        # Validates AST classification because a quoted "into" alias is not SELECT ... INTO.
        result = executor.run_paged_query(
            "local", 'SELECT name AS "into" FROM people', limit=2, sort_column="into", sort_order="desc",
        )

        assert result.ok
        assert result.rows == [["Grace"], ["Frances"]]
        assert result.has_more is True

    def test_backend_error_is_passed_through(self, executor):
        result = executor.run_paged_query("local", "SELECT * FROM nope")

        assert result.error_code == ErrorCode.QUERY_EXECUTION_FAILED
        assert "no such table" in result.error
        assert result.rows == []

    def test_empty_statement(self, executor):
        result = executor.run_paged_query("local", "  ;  ")

        assert result.error_code == ErrorCode.QUERY_EXECUTION_FAILED

    def test_unknown_connection(self, executor):
        result = executor.run_paged_query("missing", "SELECT 1")

        assert result.error_code == ErrorCode.CONNECTION_UNAVAILABLE

    def test_unreachable_database(self, executor, tmp_path):
        executor.registry.register(
            ConnectionProfile(id="broken", kind="sqlite", database=str(tmp_path / "no" / "such" / "dir.db"))
        )

        result = executor.run_paged_query("broken", "SELECT 1")

        assert result.error_code == ErrorCode.CONNECTION_UNAVAILABLE


class TestSearch:

    def test_search_filters_across_columns(self, executor):
        result = executor.run_paged_query("local", "SELECT * FROM people", search_term="ed")

        assert result.ok
        assert _ids(result) == ["5"]

    def test_narrower_term_never_adds_rows(self, executor):
        # Validates monotonicity because extending a term can only remove matches.
        broad = set(_ids(executor.run_paged_query("local", "SELECT * FROM people", search_term="a")))
        narrow = set(_ids(executor.run_paged_query("local", "SELECT * FROM people", search_term="ad")))

        assert narrow == {"1"}
        assert narrow <= broad

    @pytest.mark.parametrize("term", ["%", "_"])
    def test_like_metacharacters_match_literally(self, executor, term):
        result = executor.run_paged_query("local", "SELECT * FROM people", search_term=term)

        assert result.ok
        assert result.rows == []

    def test_blank_term_means_no_search(self, executor):
        result = executor.run_paged_query("local", "SELECT * FROM people", search_term="   ", limit=50)

        assert len(result.rows) == 7

    def test_failed_column_discovery_reports_connection_unavailable(self, executor, monkeypatch):
        monkeypatch.setattr(
            "dbgrid.execution.executor.shape_query", lambda sql, dialect: "SELECT * FROM no_such_table"
        )

        result = executor.run_paged_query("local", "SELECT * FROM people", search_term="ada")

        assert result.error_code == ErrorCode.CONNECTION_UNAVAILABLE
        assert result.rows == []

    def test_search_pages(self, executor):
        first = executor.run_paged_query("local", "SELECT * FROM people", search_term="e", limit=2, sort_column="id", sort_order="asc")
        rest = executor.run_paged_query("local", "SELECT * FROM people", search_term="e", offset=2, limit=50, sort_column="id", sort_order="asc")

        assert first.has_more is True
        assert not set(_ids(first)) & set(_ids(rest))


class TestEditByPrimaryKey:

    def test_fetch_row(self, executor):
        # Act
        row = executor.fetch_row_for_edit("local", "SELECT * FROM people", 2, sort_column="age", sort_order="desc")

        # Assert
        assert row.ok
        assert row.editable
        assert row.table == "people"
        assert row.identity == KeyIdentity(columns=[KeyComponent(name="id", value="5")])
        values = row.values()
        assert values["name"] == "Edsger"
        columns = {c.name: c for c in row.columns}
        assert columns["id"].read_only is True
        assert columns["name"].read_only is False
        assert columns["name"].data_type == "TEXT"

    def test_null_is_distinguished_from_empty(self, executor):
        row = executor.fetch_row_for_edit("local", "SELECT * FROM people", 1)

        note = next(c for c in row.columns if c.name == "note")
        assert note.value is None
        assert note.is_null is True

    def test_save_round_trip(self, executor, read_table):
        row = executor.fetch_row_for_edit("local", "SELECT * FROM people", 2, sort_column="age", sort_order="desc")

        outcome = executor.save_row("local", row.table, row.identity, {"name": "Edsger W.", "age": "", "note": ""})

        assert outcome.success
        assert outcome.rows_updated == 1
        # Blank integer becomes NULL; blank text stays an empty string.
        assert read_table("SELECT id, name, age, score, note FROM people WHERE id = 5") == [
            (5, "Edsger W.", None, 9.0, ""),
        ]

    def test_identity_as_dict(self, executor, read_table):
        row = executor.fetch_row_for_edit("local", "SELECT * FROM people", 0)

        outcome = executor.save_row("local", "people", row.identity.model_dump(), {"score": "10"})

        assert outcome.success
        assert read_table("SELECT score FROM people WHERE id = 1") == [(10.0,)]

    def test_edit_values_are_not_truncated(self, executor):
        long_note = "x" * 40
        executor.save_row("local", "people", KeyIdentity(columns=[KeyComponent(name="id", value="3")]), {"note": long_note})

        row = executor.fetch_row_for_edit("local", "SELECT * FROM people WHERE id = 3", 0)
        page = executor.run_paged_query("local", "SELECT note FROM people WHERE id = 3")

        assert row.values()["note"] == long_note
        assert page.rows[0][0] == "x" * 20 + "…"

    def test_key_from_submitted_values(self, executor, read_table):
        outcome = executor.save_row("local", "people", None, {"id": "3", "name": "Claude S."})

        assert outcome.success
        assert read_table("SELECT name FROM people WHERE id = 3") == [("Claude S.",)]

    def test_blank_key_value(self, executor):
        outcome = executor.save_row("local", "people", None, {"id": " ", "name": "x"})

        assert outcome.error_code == ErrorCode.MISSING_KEY_VALUE

    def test_stale_identity(self, executor):
        # Validates stale detection because the row may have been deleted or re-keyed since it was read.
        identity = KeyIdentity(columns=[KeyComponent(name="id", value="999")])

        outcome = executor.save_row("local", "people", identity, {"name": "ghost"})

        assert outcome.success is False
        assert outcome.error_code == ErrorCode.STALE_OR_MISSING_ROW

    def test_row_deleted_after_fetch(self, executor, write_table):
        row = executor.fetch_row_for_edit("local", "SELECT * FROM people", 0)
        write_table("DELETE FROM people WHERE id = 1")

        outcome = executor.save_row("local", row.table, row.identity, {"name": "Ada L."})

        assert outcome.success is False
        assert outcome.error_code == ErrorCode.STALE_OR_MISSING_ROW

    def test_identity_over_non_key_column_is_rejected(self, executor, read_table):
        # Validates the key check because `name` is not unique and could match several rows.
        identity = KeyIdentity(columns=[KeyComponent(name="name", value="Ada")])

        outcome = executor.save_row("local", "people", identity, {"age": "0"})

        assert outcome.error_code == ErrorCode.NOT_EDITABLE
        assert read_table("SELECT COUNT(*) FROM people WHERE age = 0") == [(0,)]

    def test_fetch_with_search(self, executor):
        row = executor.fetch_row_for_edit("local", "SELECT * FROM people", 1, search_term="gr")

        assert row.values()["name"] == "Grace"
        assert row.identity.columns[0].value == "7"


class TestEditByUniqueIndex:

    def test_round_trip(self, executor, read_table):
        row = executor.fetch_row_for_edit("local", "SELECT * FROM tags", 0, sort_column="code", sort_order="asc")

        assert row.editable
        assert row.identity == KeyIdentity(columns=[KeyComponent(name="code", value="blue")])

        outcome = executor.save_row("local", row.table, row.identity, {"label": "Navy", "weight": "30"})

        assert outcome.success
        assert read_table("SELECT label, weight FROM tags WHERE code = 'blue'") == [("Navy", 30)]


class TestEditByRowAddress:

    def test_round_trip(self, executor, read_table):
        # Arrange
        row = executor.fetch_row_for_edit("local", "SELECT * FROM events", 1, sort_column="qty", sort_order="asc")

        assert row.editable
        assert isinstance(row.identity, PhysicalIdentity)
        assert [c.name for c in row.columns] == ["title", "qty"]
        assert row.values() == {"title": "review", "qty": "2"}

        # Act
        outcome = executor.save_row("local", row.table, row.identity, {"qty": "20"})

        # Assert
        assert outcome.success
        assert read_table("SELECT title, qty FROM events ORDER BY rowid") == [
            ("launch", 1), ("review", 20), ("retro", 3),
        ]

    def test_row_deleted_after_fetch(self, executor, write_table):
        row = executor.fetch_row_for_edit("local", "SELECT * FROM events", 0, sort_column="qty", sort_order="asc")
        write_table("DELETE FROM events WHERE title = 'launch'")

        outcome = executor.save_row("local", row.table, row.identity, {"qty": "10"})

        assert isinstance(row.identity, PhysicalIdentity)
        assert outcome.success is False
        assert outcome.error_code == ErrorCode.STALE_OR_MISSING_ROW

    @pytest.mark.parametrize("sql", [
        "SELECT * FROM events WHERE title <> 'distinct'",
        "-- note\nSELECT * FROM events",
    ])
    def test_keywords_in_literals_and_comments_keep_the_row_editable(self, executor, sql):
        row = executor.fetch_row_for_edit("local", sql, 0)

        assert row.error is None
        assert row.editable
        assert isinstance(row.identity, PhysicalIdentity)
        assert row.values() == {"title": "launch", "qty": "1"}

    def test_aggregate_shape_is_read_only(self, executor):
        row = executor.fetch_row_for_edit("local", "SELECT DISTINCT title FROM events", 0)

        assert row.values() == {"title": "launch"}
        assert row.editable is False
        assert row.error_code == ErrorCode.NOT_EDITABLE
        assert all(c.read_only for c in row.columns)


class TestEditFailures:

    def test_table_unresolvable_still_returns_row(self, executor):
        row = executor.fetch_row_for_edit("local", "SELECT 1 AS a", 0)

        assert row.values() == {"a": "1"}
        assert row.editable is False
        assert row.error_code == ErrorCode.TABLE_UNRESOLVABLE

    @pytest.mark.parametrize("row_number", [-1, 100])
    def test_row_not_found(self, executor, row_number):
        row = executor.fetch_row_for_edit("local", "SELECT * FROM people", row_number)

        assert row.error_code == ErrorCode.ROW_NOT_FOUND
        assert row.columns == []

    def test_non_select_is_never_executed(self, executor, read_table):
        row = executor.fetch_row_for_edit("local", "UPDATE people SET age = 0", 0)

        assert row.error_code == ErrorCode.NOT_EDITABLE
        assert read_table("SELECT COUNT(*) FROM people WHERE age = 0") == [(0,)]

    def test_save_to_unknown_table(self, executor):
        outcome = executor.save_row("local", "ghosts", None, {"a": "1"})

        assert outcome.error_code == ErrorCode.TABLE_UNRESOLVABLE

    def test_save_with_malformed_identity(self, executor):
        outcome = executor.save_row("local", "people", {"kind": "rowid"}, {"name": "x"})

        assert outcome.error_code == ErrorCode.NOT_EDITABLE


class TestCatalog:

    def test_list_tables(self, executor):
        page = executor.list_tables("local")

        assert page.error is None
        assert [(t.name, t.kind) for t in page.items] == [("events", "table"), ("people", "table"), ("tags", "table")]

    def test_list_tables_paged(self, executor):
        page = executor.list_tables("local", page=2, size=2)

        assert [t.name for t in page.items] == ["tags"]
        assert page.has_more is False

    @pytest.mark.parametrize("sort, order, expected", [
        ("name", "desc", ["tags", "people", "events"]),
        ("rows", "asc", ["events", "people", "tags"]),
        (None, None, ["events", "people", "tags"]),
    ])
    def test_list_tables_sorted(self, executor, sort, order, expected):
        page = executor.list_tables("local", sort=sort, order=order)

        assert [t.name for t in page.items] == expected
        assert all(t.approximate_row_count is None for t in page.items)

    def test_list_databases(self, executor):
        page = executor.list_databases("local")

        assert page.error is None
        assert "main" in [d.name for d in page.items]

    def test_list_databases_unknown_connection(self, executor):
        page = executor.list_databases("missing")

        assert page.error_code == ErrorCode.CONNECTION_UNAVAILABLE
        assert page.items == []

    def test_list_schemas(self, executor):
        page = executor.list_schemas("local")

        assert "main" in page.items

    def test_check_connection(self, executor):
        status = executor.check_connection("local")

        assert status.connected
        assert status.dialect == "sqlite"
        assert status.server_version

    def test_check_unknown_connection(self, executor):
        status = executor.check_connection("missing")

        assert status.connected is False
        assert status.error_code == ErrorCode.CONNECTION_UNAVAILABLE
