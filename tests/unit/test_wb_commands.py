"""Tests for the tool commands in sqlrunner.commands.wb."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from sqlrunner.commands.wb import get_command_argument
from sqlrunner.config import RunMode
from sqlrunner.history import StatementHistory
from sqlrunner.models.result import ExecutionResult
from sqlrunner.parser.delimiter import ORA_DELIMITER
from sqlrunner.runner import StatementRunner
from sqlrunner.variables import VariablePool

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(runner, sql: str) -> ExecutionResult:
    result = runner.run_statement(sql)
    runner.statement_done()
    return result


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


class TestGetCommandArgument:
    def test_strips_verb(self):
        assert get_command_argument("WbVarDef a=1", ("WbVarDef",)) == "a=1"

    def test_case_insensitive_and_comments(self):
        assert get_command_argument("-- note\nwbecho  hello world", ("WbEcho",)) == "hello world"

    def test_multi_word_verb(self):
        assert get_command_argument("set   term ^", ("SET TERM",)) == "^"

    def test_longest_verb_first(self):
        assert get_command_argument("EXECUTE proc", ("EXEC", "EXECUTE")) == "proc"

    def test_verb_only(self):
        assert get_command_argument("WbHistory", ("WbHistory",)) == ""


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


class TestVariableCommands:
    def test_define_and_use(self, orders):
        result = _run(orders, "WbVarDef who=alice")
        assert result.success
        assert result.message_text() == "Variable who defined with value 'alice'"
        result = _run(orders, "select count(*) from orders where customer = '${who}'")
        assert result.tables[0].rows == [(2,)]

    def test_quoted_value(self, offline_runner):
        _run(offline_runner, "WbVarDef greeting = 'hello world'")
        assert offline_runner.variable_pool.get_parameter_value("greeting") == "hello world"

    def test_empty_value_removes(self, offline_runner):
        offline_runner.variable_pool.set_parameter_value("x", "1")
        result = _run(offline_runner, "WbVarDef x=")
        assert result.message_text() == "Variable x removed"
        assert not offline_runner.variable_pool.is_defined("x")

    def test_invalid_definition(self, offline_runner):
        result = _run(offline_runner, "WbVarDef =1")
        assert not result.success

    def test_delete(self, offline_runner):
        offline_runner.variable_pool.set_parameter_value("a", "1")
        result = _run(offline_runner, "WbVarDelete a, b")
        assert result.message_text() == "Variable a removed\nVariable b not found"

    def test_list(self, offline_runner):
        offline_runner.variable_pool.set_parameter_value("alpha", "1")
        offline_runner.variable_pool.set_parameter_value("beta", "2")
        result = _run(offline_runner, "WbVarList a%")
        assert result.tables[0].columns == ["VARIABLE", "VALUE"]
        assert result.tables[0].rows == [("alpha", "1")]

    def test_list_empty(self, offline_runner):
        result = _run(offline_runner, "WbVarList")
        assert result.message_text() == "No variables defined"


# ---------------------------------------------------------------------------
# Interaction and toggles
# ---------------------------------------------------------------------------


class TestInteraction:
    def test_echo(self, offline_runner):
        result = _run(offline_runner, "WbEcho 'Loading orders'")
        assert result.success
        assert result.message_text() == "Loading orders"

    def test_confirm_declined_stops_script(self, offline_runner):
        offline_runner.controller = MagicMock()
        offline_runner.controller.confirm_execution.return_value = False
        result = _run(offline_runner, "WbConfirm 'Really continue?'")
        offline_runner.controller.confirm_execution.assert_called_once_with("Really continue?")
        assert result.success
        assert result.stop_script

    def test_confirm_without_controller_continues(self, offline_runner):
        result = _run(offline_runner, "WbConfirm")
        assert result.success
        assert not result.stop_script

    def test_feedback(self, offline_runner):
        _run(offline_runner, "WbFeedback off")
        assert offline_runner.verbose_feedback is False
        result = _run(offline_runner, "WbFeedback maybe")
        assert not result.success

    def test_hide_warnings(self, offline_runner):
        result = _run(offline_runner, "WbHideWarnings on")
        assert offline_runner.hide_warnings is True
        assert result.message_text() == "Warnings will be hidden"
        result = _run(offline_runner, "WbHideWarnings")
        assert result.message_text() == "Warnings will be hidden"

    def test_delimiter(self, offline_runner):
        result = _run(offline_runner, "WbDelimiter oracle")
        assert result.success
        assert offline_runner.alternate_delimiter == ORA_DELIMITER
        assert _run(offline_runner, "WbDelimiter").message_text() == "Delimiter changed to /"

    def test_delimiter_missing(self, offline_runner):
        result = _run(offline_runner, "WbDelimiter")
        assert not result.success
        assert result.message_text() == "No delimiter specified"


# ---------------------------------------------------------------------------
# History and run modes
# ---------------------------------------------------------------------------


class TestHistory:
    def test_not_available_in_batch_mode(self, offline_runner):
        result = _run(offline_runner, "WbHistory")
        assert result.success
        assert result.warnings == ["WBHISTORY is not supported in batch mode. The statement has been ignored."]

    def test_lists_entries_in_console_mode(self, connection):
        from sqlrunner.config import load_settings

        runner = StatementRunner(
            settings=load_settings(run_mode=RunMode.CONSOLE),
            variable_pool=VariablePool("console"),
            history=StatementHistory(5),
        )
        runner.set_connection(connection)
        _run(runner, "select 1")
        _run(runner, "select 2")
        result = _run(runner, "WbHistory")
        assert result.tables[0].rows == [(1, "select 1"), (2, "select 2")]


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


class TestBatch:
    def test_statements_collected_and_run_together(self, orders):
        assert _run(orders, "WbStartBatch").success
        first = _run(orders, "insert into orders values (10, 'dave', 1)")
        assert first.message_text() == "Statement added to batch"
        _run(orders, "insert into orders values (11, 'erin', 2)")

        result = _run(orders, "WbEndBatch")
        assert result.success
        assert result.update_counts == [1, 1]
        assert "2 statement(s) executed in batch" in result.message_text()
        assert _run(orders, "select count(*) from orders").tables[0].rows == [(5,)]

    def test_end_without_start(self, orders):
        result = _run(orders, "WbEndBatch")
        assert result.success
        assert result.warnings == ["No batch started"]

    def test_start_requires_connection(self, offline_runner):
        from sqlrunner.runner import ConnectionRequiredError

        with pytest.raises(ConnectionRequiredError):
            offline_runner.run_statement("WbStartBatch")


# ---------------------------------------------------------------------------
# Procedure calls and server output
# ---------------------------------------------------------------------------


class TestWbCall:
    def test_generic_template_adds_parentheses(self, connection, runner):
        command = runner.dispatcher.get("WbCall")
        command.begin_run(connection, runner)
        try:
            assert command.get_sql_to_execute("WbCall refresh_stats") == "CALL refresh_stats()"
            assert command.get_sql_to_execute("WbCall refresh_stats(1, 2);") == "CALL refresh_stats(1, 2)"
        finally:
            command.done()

    def test_oracle_exec_alias(self, connection_factory, runner_factory):
        connection = connection_factory("oracle")
        runner = runner_factory(connection)
        command = runner.dispatcher.get("EXEC")
        command.begin_run(connection, runner)
        try:
            assert command.get_sql_to_execute("exec dbms_stats.gather('X')") == "BEGIN dbms_stats.gather('X'); END;"
        finally:
            command.done()

    def test_missing_procedure(self, runner):
        result = _run(runner, "WbCall")
        assert not result.success
        assert result.message_text() == "No procedure name specified"

    def test_server_output_toggle(self, runner):
        _run(runner, "WbEnableOutput")
        assert runner.connection.server_output_enabled is True
        _run(runner, "WbDisableOutput")
        assert runner.connection.server_output_enabled is False
