"""Tests for result draining in sqlrunner.commands.result_processor.

The DB-API stand-ins below let the tests script the exact sequence of row
sets and update counts a driver reports, including drivers that never stop
reporting further results.
"""

from __future__ import annotations

from typing import Any
from unittest.mock import MagicMock

from sqlrunner.connection import DbConnection
from sqlrunner.models.capabilities import capabilities_for
from sqlrunner.models.result import ExecutionResult

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ScriptedCursor:
    """Cursor replaying a fixed list of results.

    Each entry is either a list of rows (a row set with column ``value``)
    or an int (an update count).
    """

    def __init__(self, results: list[Any], endless: bool = False, messages: list[str] | None = None) -> None:
        self._results = results
        self._endless = endless
        self._index = 0
        self._pending: list[tuple] = []
        self.description: list[tuple] | None = None
        self.rowcount = -1
        self.messages = list(messages or [])

    def _load(self) -> None:
        current = self._results[self._index]
        if isinstance(current, int):
            self.description = None
            self.rowcount = current
            self._pending = []
        else:
            self.description = [("value", None, None, None, None, None, None)]
            self.rowcount = -1
            self._pending = list(current)

    def execute(self, sql: str) -> None:
        self._index = 0
        self._load()

    def fetchmany(self, size: int) -> list[tuple]:
        batch, self._pending = self._pending[:size], self._pending[size:]
        return batch

    def nextset(self) -> bool | None:
        if self._endless:
            self._load()
            return True
        if self._index + 1 >= len(self._results):
            return None
        self._index += 1
        self._load()
        return True

    def close(self) -> None:
        pass


class ScriptedConnection:
    autocommit = True

    def __init__(self, cursor: ScriptedCursor) -> None:
        self._cursor = cursor

    def cursor(self) -> ScriptedCursor:
        return self._cursor

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    def close(self) -> None:
        pass


def _scripted_runner(runner_factory, cursor: ScriptedCursor, **caps: object):
    connection = DbConnection(ScriptedConnection(cursor), capabilities=capabilities_for("generic", **caps))
    return runner_factory(connection)


def _run(runner, sql: str) -> ExecutionResult:
    result = runner.run_statement(sql)
    runner.statement_done()
    return result


# ---------------------------------------------------------------------------
# Mixed results
# ---------------------------------------------------------------------------


class TestDrain:
    def test_row_sets_and_update_counts_in_order(self, runner_factory):
        cursor = ScriptedCursor([[(1,), (2,)], 5, [(3,)]])
        runner = _scripted_runner(runner_factory, cursor)
        result = _run(runner, "exec multi_result_proc")
        assert result.success
        assert [t.row_count for t in result.tables] == [2, 1]
        assert result.update_counts == [5]
        assert "5 row(s) affected." in result.message_text()

    def test_update_count_first(self, runner_factory):
        cursor = ScriptedCursor([3, [(1,)]])
        runner = _scripted_runner(runner_factory, cursor)
        result = _run(runner, "exec proc")
        assert result.update_counts == [3]
        assert len(result.tables) == 1

    def test_update_counts_ignored_for_configured_verbs(self, runner_factory):
        cursor = ScriptedCursor([7])
        runner = _scripted_runner(runner_factory, cursor, verbs_without_update_count=["EXEC"])
        result = _run(runner, "exec proc")
        assert result.update_counts == [7]
        assert "row(s) affected" not in result.message_text()

    def test_endless_driver_is_bounded(self, runner_factory):
        cursor = ScriptedCursor([[(1,)]], endless=True)
        runner = _scripted_runner(runner_factory, cursor, max_result_iterations=4)
        result = _run(runner, "select 1")
        assert result.success
        assert len(result.tables) == 4
        assert result.warnings == ["Stopped processing results after 4 iterations"]

    def test_driver_warnings_attached(self, runner_factory):
        cursor = ScriptedCursor([2], messages=["Warning: value truncated"])
        runner = _scripted_runner(runner_factory, cursor)
        result = _run(runner, "update t set a = 1")
        assert result.warnings == ["Warning: value truncated"]

    def test_driver_warnings_hidden(self, runner_factory):
        cursor = ScriptedCursor([2], messages=["Warning: value truncated"])
        runner = _scripted_runner(runner_factory, cursor)
        runner.hide_warnings = True
        result = _run(runner, "update t set a = 1")
        assert result.warnings == []


# ---------------------------------------------------------------------------
# Result consumers
# ---------------------------------------------------------------------------


class TestConsumer:
    def test_consumer_receives_cursor(self, runner_factory):
        cursor = ScriptedCursor([[(1,), (2,)]])
        runner = _scripted_runner(runner_factory, cursor)
        consumer = MagicMock()
        consumer.ignore_max_rows.return_value = False
        runner.consumer = consumer

        result = _run(runner, "select value from t")

        consumer.consume_cursor.assert_called_once()
        consumer.consume_result.assert_called_once_with(result)
        assert result.consumed
        assert result.tables == []
        # the consumer reports rows itself
        assert "row(s) retrieved" not in result.message_text()

    def test_consumer_can_lift_row_cap(self, runner_factory):
        cursor = ScriptedCursor([[(1,)]])
        runner = _scripted_runner(runner_factory, cursor)
        runner.set_max_rows(10)
        consumer = MagicMock()
        consumer.ignore_max_rows.return_value = True
        runner.consumer = consumer
        assert runner._effective_max_rows() == 0

    def test_crosstab_bypasses_consumer(self, runner_factory):
        cursor = ScriptedCursor([[("a",), ("b",)]])
        runner = _scripted_runner(runner_factory, cursor)
        consumer = MagicMock()
        consumer.ignore_max_rows.return_value = False
        runner.consumer = consumer

        result = _run(runner, "-- @WbCrossTab\nselect value from t")

        consumer.consume_cursor.assert_not_called()
        assert result.tables[0].columns == ["Column", "Row 1", "Row 2"]
