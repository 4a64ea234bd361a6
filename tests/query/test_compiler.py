"""Tests for the Query Compiler and count-query derivation."""

import pytest
from structlog.testing import capture_logs

from ormspine.core.errors import InvalidSortOrderError, UnregisteredModelError
from ormspine.query.compiler import (
    CompiledQuery,
    build_filter_count,
    build_filter_count_custom,
)
from ormspine.query.conditions import Condition, Operator, SortTerm
from tests._support.sqlite import SqliteConnection, create_sample_table

BASE = 'SELECT "t"."uuid", "t"."key", "t"."name" FROM "t"'


class TestCompile:
    def test_filter_sort_and_page(self, compiler):
        """Like filter on a case-mismatched field name, second page of ten."""
        compiled = compiler.compile(
            BASE, "t", {"Key[$like]": "%x%"}, {"Key": "ASC"}, per_page=10, page=2
        )
        assert compiled.sql.endswith(
            'WHERE "t".key LIKE $1 ORDER BY "t".key ASC LIMIT 10 OFFSET 10'
        )
        assert compiled.sql.startswith(BASE)
        assert compiled.args == ["%x%"]

    def test_no_filters_no_sort(self, compiler):
        compiled = compiler.compile(BASE, "t")
        assert compiled.sql == BASE + " LIMIT 10 OFFSET 0"
        assert compiled.args == []

    def test_conditions_joined_with_and(self, compiler):
        sql, args = compiler.compile(BASE, "t", {"key": "a", "name[$ne]": "b"})
        assert ' WHERE "t".key = $1 AND "t".name != $2 LIMIT' in sql
        assert args == ["a", "b"]

    def test_case_insensitive_operator(self, compiler):
        sql, args = compiler.compile(BASE, "t", {"name[€like]": "%GPT%"})
        assert 'WHERE LOWER("t".name) LIKE $1' in sql
        assert args == ["%gpt%"]

    def test_in_and_not_in_bind_one_array(self, compiler):
        sql, args = compiler.compile(
            BASE, "t", {"key[$in]": ["a", "b"], "name[$nin]": ["c"]}
        )
        assert '"t".key = ANY($1) AND "t".name != ALL($2)' in sql
        assert args == [["a", "b"], ["c"]]

    def test_unknown_operator_falls_back_to_equality(self, compiler):
        sql, args = compiler.compile(BASE, "t", {"key[$regex]": "^a"})
        assert 'WHERE "t".key = $1' in sql
        assert args == ["^a"]

    def test_unresolved_filter_dropped_and_logged(self, compiler):
        with capture_logs() as logs:
            sql, args = compiler.compile(BASE, "t", {"Nope": 1, "key": "a"})
        assert 'WHERE "t".key = $1' in sql
        assert args == ["a"]
        events = [e for e in logs if e["event"] == "filter_field_unresolved"]
        assert events and events[0]["field"] == "Nope"

    def test_all_filters_unresolved_means_no_where(self, compiler):
        sql, args = compiler.compile(BASE, "t", {"Nope": 1})
        assert "WHERE" not in sql
        assert args == []

    def test_unresolved_sort_dropped(self, compiler):
        with capture_logs() as logs:
            sql, _ = compiler.compile(BASE, "t", sort={"Nope": "DESC"})
        assert "ORDER BY" not in sql
        assert any(e["event"] == "sort_field_unresolved" for e in logs)

    def test_invalid_direction_raises_even_for_unknown_field(self, compiler):
        with pytest.raises(InvalidSortOrderError):
            compiler.compile(BASE, "t", sort={"Nope": "UP"})

    def test_multi_column_sort(self, compiler):
        sql, _ = compiler.compile(BASE, "t", sort={"name": "desc", "key": "asc"})
        assert 'ORDER BY "t".name DESC, "t".key ASC LIMIT' in sql

    def test_alias(self, compiler):
        sql, _ = compiler.compile(BASE, "t", {"key": 1}, {"key": "ASC"}, alias="m")
        assert 'WHERE "m".key = $1 ORDER BY "m".key ASC' in sql

    def test_structured_inputs(self, compiler):
        compiled = compiler.compile(
            BASE,
            "t",
            [Condition("key", Operator.GTE, 3)],
            [SortTerm("name", "desc")],
            per_page=5,
            page=3,
        )
        assert compiled.sql.endswith('WHERE "t".key >= $1 ORDER BY "t".name DESC LIMIT 5 OFFSET 10')

    def test_unregistered_table(self, compiler):
        with pytest.raises(UnregisteredModelError):
            compiler.compile("SELECT 1", "ghost", {"key": 1})

    def test_non_positive_page_logged(self, compiler):
        with capture_logs() as logs:
            sql, _ = compiler.compile(BASE, "t", page=0)
        assert sql.endswith(" LIMIT 10 OFFSET -10")
        assert any(e["event"] == "non_positive_page" for e in logs)

    def test_conditions_start_offset(self, compiler):
        predicates, args = compiler.conditions("t", {"key": "a"}, start=3)
        assert predicates == ['"t".key = $3']
        assert args == ["a"]


class TestPaginateCustom:
    def test_appends_order_and_page(self, compiler):
        compiled = compiler.paginate_custom(
            "SELECT * FROM t WHERE a = $1", "a DESC", ["x"], per_page=20, page=2
        )
        assert compiled == CompiledQuery(
            "SELECT * FROM t WHERE a = $1 ORDER BY a DESC LIMIT 20 OFFSET 20", ["x"]
        )


class TestBuildFilterCount:
    QUERY = "SELECT a FROM t WHERE x = $1 ORDER BY a LIMIT 10 OFFSET 0"

    def test_strips_limit_offset_and_order(self):
        assert build_filter_count(self.QUERY) == (
            "SELECT COUNT(*) FROM (SELECT a FROM t WHERE x = $1) AS count_subquery"
        )

    def test_case_insensitive_markers(self):
        assert build_filter_count("select a from t order by a limit 5") == (
            "SELECT COUNT(*) FROM (select a from t) AS count_subquery"
        )

    def test_no_markers(self):
        assert build_filter_count("SELECT a FROM t") == (
            "SELECT COUNT(*) FROM (SELECT a FROM t) AS count_subquery"
        )

    def test_compiled_query_counted(self, compiler):
        compiled = compiler.compile(BASE, "t", {"key": "a"}, {"key": "ASC"}, 10, 4)
        assert build_filter_count(compiled.sql) == (
            f'SELECT COUNT(*) FROM ({BASE} WHERE "t".key = $1) AS count_subquery'
        )

    def test_custom_cuts_first_marker_only(self):
        assert build_filter_count_custom(self.QUERY) == (
            "SELECT COUNT(*) FROM (SELECT a FROM t WHERE x = $1 ORDER BY a) AS count_subquery"
        )

    def test_custom_order_by_only(self):
        assert build_filter_count_custom("SELECT a FROM t ORDER BY a") == (
            "SELECT COUNT(*) FROM (SELECT a FROM t) AS count_subquery"
        )


NAMES = ("alpha", "beta", "Gamma")
ROWS = [(f"u{i:02d}", f"k{i:02d}", NAMES[i % 3]) for i in range(23)]


@pytest.fixture
def sample_rows(sqlite_conn):
    create_sample_table(sqlite_conn)
    sqlite_conn.executemany('INSERT INTO "t" VALUES (?, ?, ?)', ROWS)
    return SqliteConnection(sqlite_conn)


class TestCountAgainstRows:
    """Executed on sqlite: the count query agrees with the unpaged result."""

    @pytest.mark.parametrize(
        "filters,expected",
        [
            ({}, ROWS),
            ({"name[$ne]": "beta"}, [r for r in ROWS if r[2] != "beta"]),
            ({"key[$prefix]": "k1%"}, [r for r in ROWS if r[1].startswith("k1")]),
            ({"name[€eq]": "GAMMA"}, [r for r in ROWS if r[2] == "Gamma"]),
            (
                {"key[$gte]": "k05", "key[$lt]": "k15"},
                [r for r in ROWS if "k05" <= r[1] < "k15"],
            ),
        ],
    )
    def test_count_matches_unpaged_rows(self, compiler, sample_rows, filters, expected):
        page = compiler.compile(BASE, "t", filters, {"key": "DESC"}, per_page=5, page=2)
        unpaged = compiler.compile(BASE, "t", filters, per_page=1000, page=1)

        count = sample_rows.execute(build_filter_count(page.sql), page.args).fetchone()[0]
        rows = sample_rows.execute(unpaged.sql, unpaged.args).fetchall()

        assert count == len(rows) == len(expected)
        assert sorted(rows) == sorted(expected)

    def test_page_is_slice_of_sorted_rows(self, compiler, sample_rows):
        compiled = compiler.compile(
            BASE, "t", {"name[$ne]": "beta"}, {"key": "DESC"}, per_page=5, page=2
        )
        rows = sample_rows.execute(compiled.sql, compiled.args).fetchall()
        expected = sorted((r for r in ROWS if r[2] != "beta"), key=lambda r: r[1], reverse=True)
        assert rows == expected[5:10]

    def test_last_page_is_short(self, compiler, sample_rows):
        compiled = compiler.compile(BASE, "t", {}, {"key": "ASC"}, per_page=10, page=3)
        rows = sample_rows.execute(compiled.sql, compiled.args).fetchall()
        assert [r[1] for r in rows] == ["k20", "k21", "k22"]
