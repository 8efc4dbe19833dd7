"""Unit tests for sqlrunner.models -- capabilities, results and result tables."""

from __future__ import annotations

import sqlite3
from unittest.mock import MagicMock

import pytest

from sqlrunner.models.capabilities import (
    CAPABILITY_PRESETS,
    DEFAULT_MAX_RESULTS,
    DbCapabilities,
    EndReadOnlyTransaction,
    capabilities_for,
)
from sqlrunner.models.result import ExecutionResult, MessageKind
from sqlrunner.models.table import ResultTable

# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class TestCapabilities:
    @pytest.mark.parametrize("name", sorted(CAPABILITY_PRESETS))
    def test_every_preset_validates(self, name):
        caps = capabilities_for(name)
        assert caps.dbid == name

    @pytest.mark.parametrize(("alias", "dbid"), [("postgres", "postgresql"), ("tsql", "mssql"), ("sqlite3", "sqlite")])
    def test_aliases(self, alias, dbid):
        assert capabilities_for(alias).dbid == dbid

    def test_unknown_backend_is_generic(self):
        caps = capabilities_for("nosuchdb")
        assert caps.dbid == "generic"
        assert caps.supports_savepoints is False

    def test_overrides(self):
        caps = capabilities_for("sqlite", max_result_iterations=5, passthrough_verbs=["PRAGMA"])
        assert caps.max_result_iterations == 5
        assert caps.passthrough_verbs == ["PRAGMA"]

    def test_non_positive_iterations_fall_back(self):
        assert DbCapabilities(max_result_iterations=0).max_result_iterations == DEFAULT_MAX_RESULTS

    def test_verb_queries_are_case_insensitive(self):
        caps = DbCapabilities(
            verbs_without_update_count=["call"],
            never_end_transaction_verbs=["show"],
            deferred_result_verbs=["begin"],
            no_success_message_verbs=["set"],
        )
        assert caps.is_updating_verb("insert")
        assert not caps.is_updating_verb("select")
        assert not caps.has_update_count("CALL")
        assert caps.has_update_count("INSERT")
        assert caps.never_ends_transaction("SHOW")
        assert caps.has_deferred_result("BEGIN")
        assert not caps.show_success_message("SET")

    def test_max_rows_verbs(self):
        assert DbCapabilities().use_max_rows("UPDATE")
        caps = DbCapabilities(max_rows_verbs=["SELECT"])
        assert caps.use_max_rows("select")
        assert not caps.use_max_rows("UPDATE")

    def test_postgres_rolls_back_read_only_transactions(self):
        assert capabilities_for("postgresql").end_read_only_transaction == EndReadOnlyTransaction.ROLLBACK


# ---------------------------------------------------------------------------
# ExecutionResult
# ---------------------------------------------------------------------------


class TestExecutionResult:
    def test_defaults(self):
        result = ExecutionResult("select 1", "SELECT")
        assert result.success is False
        assert result.messages == []
        assert result.error is None

    def test_message_kinds(self):
        result = ExecutionResult()
        result.add_message("info")
        result.add_warning("careful")
        result.add_error_message("broken")
        result.add_message(None)
        assert [m.kind for m in result.messages] == [MessageKind.INFO, MessageKind.WARNING, MessageKind.ERROR]
        assert result.has_warning
        assert result.warnings == ["careful"]
        assert result.message_text() == "info\ncareful\nbroken"

    def test_update_count_message(self):
        result = ExecutionResult()
        result.add_update_count_message(3)
        result.add_update_count_message(-1)
        assert result.update_counts == [3]
        assert result.total_update_count == 3
        assert result.message_text() == "3 row(s) affected."

    def test_ignored_update_counts_are_still_recorded(self):
        result = ExecutionResult()
        result.ignore_update_counts = True
        result.add_update_count_message(2)
        assert result.update_counts == [2]
        assert result.messages == []


# ---------------------------------------------------------------------------
# ResultTable
# ---------------------------------------------------------------------------


@pytest.fixture()
def cursor():
    conn = sqlite3.connect(":memory:")
    conn.execute("create table t (name text, qty int, unit text)")
    conn.executemany("insert into t values (?, ?, ?)", [("apple", 3, "kg"), ("pear", 5, "kg"), ("plum", 7, "box")])
    cur = conn.execute("select name, qty, unit from t order by name")
    yield cur
    conn.close()


class TestResultTableRetrieval:
    def test_init_data(self, cursor):
        table = ResultTable()
        assert table.init_data(cursor) == 3
        assert table.columns == ["name", "qty", "unit"]
        assert table.rows[0] == ("apple", 3, "kg")
        assert not table.truncated

    def test_max_rows_truncates(self, cursor):
        table = ResultTable()
        table.init_data(cursor, max_rows=2)
        assert table.row_count == 2
        assert table.truncated

    def test_exact_max_rows_not_truncated(self, cursor):
        table = ResultTable()
        table.init_data(cursor, max_rows=3)
        assert table.row_count == 3
        assert not table.truncated

    def test_max_rows_reads_one_row_past_the_cap(self, cursor):
        sizes = []
        fetchmany = cursor.fetchmany
        spy = MagicMock(fetchmany=lambda size: sizes.append(size) or fetchmany(size), description=cursor.description)
        table = ResultTable()
        table.init_data(spy, max_rows=1)
        assert sizes == [2]
        assert table.rows == [("apple", 3, "kg")]
        assert table.truncated
        assert cursor.fetchall() == [("plum", 7, "box")]

    def test_fetch_only(self, cursor):
        table = ResultTable()
        assert table.fetch_only(cursor) == 3
        assert table.rows == []

    def test_cancel_before_fetch(self, cursor):
        table = ResultTable()
        table.cancel_retrieve()
        # a stale flag is cleared when a new retrieval starts
        assert table.init_data(cursor) == 3

    def test_column_index(self):
        table = ResultTable(["Name", "Qty"])
        assert table.column_index("name") == 0
        assert table.column_index("missing") == -1


class TestTranspose:
    def test_label_column(self):
        table = ResultTable(["name", "qty"], [("apple", 3), ("pear", 5)])
        pivot = table.transpose_with_label("name")
        assert pivot.columns == ["Column", "apple", "pear"]
        assert pivot.rows == [("qty", 3, 5)]

    def test_add_label(self):
        table = ResultTable(["name", "qty", "unit"], [("apple", 3, "kg"), ("plum", 7, "box")])
        pivot = table.transpose_with_label("name", "unit")
        assert pivot.columns == ["Column", "apple (kg)", "plum (box)"]
        assert pivot.rows == [("qty", 3, 7)]

    def test_without_label(self):
        table = ResultTable(["a", "b"], [(1, 2)])
        pivot = table.transpose_with_label()
        assert pivot.columns == ["Column", "Row 1"]
        assert pivot.rows == [("a", 1), ("b", 2)]

    def test_unknown_label_column(self):
        table = ResultTable(["a"], [(1,)])
        assert table.transpose_with_label("zzz").columns == ["Column", "Row 1"]
