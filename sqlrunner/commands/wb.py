"""Tool commands.

These verbs are interpreted by the runner itself instead of the database:
variable maintenance, echo and confirmation prompts, feedback and warning
toggles, statement batches, procedure calls, server output capture, the
statement history and the alternate delimiter.
"""

from __future__ import annotations

import fnmatch
import logging
import re
from typing import Any

from sqlrunner.commands.base import SqlCommand
from sqlrunner.commands.set_command import parse_flag
from sqlrunner.config import RunMode
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult
from sqlrunner.models.table import ResultTable
from sqlrunner.parser.delimiter import DelimiterDefinition, DelimiterError
from sqlrunner.parser.sql_util import strip_comments
from sqlrunner.variables import VariableError

logger = logging.getLogger(__name__)

_VARDEF_RE = re.compile(r"^(?P<name>[^=\s]+)\s*(?:=\s*|\s+)(?P<value>.*)$", re.DOTALL)


def get_command_argument(sql: str, verbs: tuple[str, ...]) -> str:
    """Return the text of *sql* following whichever of *verbs* it starts with."""
    text = strip_comments(sql).strip()
    for verb in sorted(verbs, key=len, reverse=True):
        pattern = r"^" + r"\s+".join(re.escape(word) for word in verb.split()) + r"(?:\s+|$)"
        match = re.match(pattern, text, re.IGNORECASE)
        if match:
            return text[match.end():].strip()
    return text


def _unquote(value: str) -> str:
    value = value.strip()
    if len(value) > 1 and value[0] == value[-1] and value[0] in ("'", '"'):
        return value[1:-1]
    return value


class WbCommand(SqlCommand):
    """Base class of the tool commands: no server round-trip by default."""

    is_wb_command = True
    connection_required = False

    def argument(self, sql: str) -> str:
        return get_command_argument(sql, self.verbs)

    def execute(self, sql: str) -> ExecutionResult:
        result = self.create_result(sql)
        try:
            self.run(result, self.argument(sql))
        except Exception as exc:
            result.add_error_message(str(exc))
            result.set_failure()
            logger.info("Error running %s: %s", self.verb, exc)
        finally:
            self.done()
        return result

    def run(self, result: ExecutionResult, argument: str) -> None:
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Variables
# ---------------------------------------------------------------------------


class WbVarDef(WbCommand):
    """``WbVarDef name=value``; an empty value removes the variable."""

    VERBS = ("WbVarDef",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        pool = self.runner.variable_pool
        match = _VARDEF_RE.match(argument.rstrip(";").strip())
        if match is None:
            if argument and pool.is_valid_variable_name(argument):
                pool.remove_variable(argument)
                result.add_message(get_message("var_removed", argument))
                result.set_success()
                return
            raise VariableError(f"Invalid variable definition: {argument!r}")
        name = match.group("name")
        value = _unquote(match.group("value"))
        if not value:
            pool.remove_variable(name)
            result.add_message(get_message("var_removed", name))
        else:
            pool.set_parameter_value(name, value)
            result.add_message(get_message("var_defined", name, value))
        result.set_success()


class WbVarDelete(WbCommand):
    VERBS = ("WbVarDelete",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        pool = self.runner.variable_pool
        for name in argument.rstrip(";").replace(",", " ").split():
            if pool.remove_variable(name) > 0:
                result.add_message(get_message("var_removed", name))
            else:
                result.add_message(get_message("var_not_removed", name))
        result.set_success()


class WbVarList(WbCommand):
    """Lists the defined variables, optionally filtered by a wildcard pattern."""

    VERBS = ("WbVarList",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        pattern = argument.rstrip(";").strip().lower().replace("%", "*")
        variables = self.runner.variable_pool.variables()
        if pattern:
            variables = {k: v for k, v in variables.items() if fnmatch.fnmatchcase(k.lower(), pattern)}
        if not variables:
            result.add_message(get_message("var_list_empty"))
        else:
            result.add_table(ResultTable(["VARIABLE", "VALUE"], list(variables.items()), sql=result.sql))
        result.set_success()


# ---------------------------------------------------------------------------
# Interaction
# ---------------------------------------------------------------------------


class WbEcho(WbCommand):
    """Adds its argument as a message.  ``PROMPT`` is an alias on some backends."""

    VERBS = ("WbEcho",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        result.add_message(_unquote(argument) if argument else " ")
        result.set_success()


class WbConfirm(WbCommand):
    """Asks the execution controller whether the script should continue.

    Without a controller (batch mode) the script continues.
    """

    VERBS = ("WbConfirm",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        controller = self.runner.controller
        prompt = _unquote(argument) or "Continue?"
        result.set_success()
        if controller is None:
            return
        if not controller.confirm_execution(prompt):
            result.stop_script = True
            result.add_message(get_message("confirm_declined"))


class WbFeedback(WbCommand):
    VERBS = ("WbFeedback",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        flag = parse_flag(argument.rstrip(";")) if argument else None
        if flag is None:
            result.add_error_message(get_message("set_failure", argument, "feedback"))
            result.set_failure()
            return
        self.runner.verbose_feedback = flag
        result.add_message(get_message("feedback_on" if flag else "feedback_off"))
        result.set_success()


class WbHideWarnings(WbCommand):
    VERBS = ("WbHideWarnings",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        # no argument shows the current state
        runner = self.runner
        if argument:
            flag = parse_flag(argument.rstrip(";"))
            if flag is None:
                result.add_error_message(get_message("set_failure", argument, "hide warnings"))
                result.set_failure()
                return
            runner.hide_warnings = flag
        result.add_message(get_message("hide_warnings_on" if runner.hide_warnings else "hide_warnings_off"))
        result.set_success()


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------


class WbEndBatch(WbCommand):
    """Marks the end of a batch.  Runs on its own only when no batch was started."""

    VERBS = ("WbEndBatch",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        result.add_warning(get_message("batch_not_started"))
        result.set_success()


class WbStartBatch(WbCommand):
    """Collects the following statements until ``WbEndBatch`` and runs them together.

    The runner stashes this command after it succeeds, hands it every
    following statement through :meth:`add_statement` and calls
    :meth:`execute_batch` when it sees ``WbEndBatch``.
    """

    VERBS = ("WbStartBatch",)
    connection_required = True

    def __init__(self, *verbs: str) -> None:
        super().__init__(*verbs)
        self._statements: list[str] = []

    @property
    def statements(self) -> list[str]:
        return list(self._statements)

    def run(self, result: ExecutionResult, argument: str) -> None:
        self._statements.clear()
        result.add_message(get_message("batch_started", WbEndBatch.VERBS[0]))
        result.set_success()

    def add_statement(self, sql: str) -> None:
        self._statements.append(sql)

    def clear(self) -> None:
        self._statements.clear()

    def execute_batch(self) -> ExecutionResult:
        """Run the collected statements as one driver batch."""
        ctx = self.context
        result = self.create_result("\n".join(self._statements))
        if self.is_cancelled:
            self._statements.clear()
            return self._cancelled_before_start(result)
        try:
            statement = self.open_statement()
            for sql in self._statements:
                statement.add_batch(self.get_sql_to_execute(sql))
            counts = statement.execute_batch()
            for count in counts:
                result.add_update_count_message(count)
            result.add_message(get_message("batch_executed", len(counts)))
            result.set_success()
        except Exception as exc:
            self.add_error_info(result, result.sql or "", exc)
            logger.info("Error executing batch: %s", exc)
        finally:
            if ctx.cancelled.is_set():
                result.cancelled = True
            self._statements.clear()
            self.done()
        return result


# ---------------------------------------------------------------------------
# Server side
# ---------------------------------------------------------------------------


class WbCall(SqlCommand):
    """Calls a stored procedure through the backend's call template."""

    VERBS = ("WbCall",)
    is_wb_command = True

    def get_sql_to_execute(self, sql: str) -> str:
        call = get_command_argument(super().get_sql_to_execute(sql), self.verbs).rstrip(";").strip()
        if not call:
            return ""
        template = self.context.connection.capabilities.procedure_call_template
        if template.upper().startswith("CALL") and "(" not in call:
            call += "()"
        return template.format(call=call)

    def execute(self, sql: str) -> ExecutionResult:
        if not get_command_argument(sql, self.verbs).rstrip(";").strip():
            result = self.create_result(sql)
            result.add_error_message(get_message("procedure_missing"))
            result.set_failure()
            self.done()
            return result
        return super().execute(sql)


class _ServerOutputToggle(WbCommand):
    connection_required = True
    enable = True

    def run(self, result: ExecutionResult, argument: str) -> None:
        self.context.connection.server_output_enabled = self.enable
        result.add_message(get_message("server_output_on" if self.enable else "server_output_off"))
        result.set_success()


class WbEnableOutput(_ServerOutputToggle):
    VERBS = ("WbEnableOutput",)
    enable = True


class WbDisableOutput(_ServerOutputToggle):
    VERBS = ("WbDisableOutput",)
    enable = False


# ---------------------------------------------------------------------------
# Runner state
# ---------------------------------------------------------------------------


class WbHistory(WbCommand):
    """Shows the statement history."""

    VERBS = ("WbHistory",)
    supported_modes = frozenset({RunMode.GUI, RunMode.CONSOLE})

    def run(self, result: ExecutionResult, argument: str) -> None:
        history = self.runner.history
        entries = history.entries() if history is not None else []
        if not entries:
            result.add_message(get_message("history_empty"))
        else:
            rows: list[tuple[Any, ...]] = [(idx, sql) for idx, sql in enumerate(entries, start=1)]
            result.add_table(ResultTable(["NR", "SQL"], rows, sql=result.sql))
        result.set_success()


class WbDelimiter(WbCommand):
    """Changes the alternate delimiter.  ``DELIMITER`` and ``SET TERM`` are backend aliases."""

    VERBS = ("WbDelimiter",)

    def run(self, result: ExecutionResult, argument: str) -> None:
        words = argument.split()
        if not words:
            current = self.runner.alternate_delimiter
            if current is None:
                result.add_error_message(get_message("delimiter_missing"))
                result.set_failure()
            else:
                result.add_message(get_message("delimiter_changed", current.delimiter))
                result.set_success()
            return
        try:
            delimiter = DelimiterDefinition.parse(words[0])
        except DelimiterError as exc:
            result.add_error_message(str(exc))
            result.set_failure()
            return
        self.runner.alternate_delimiter = delimiter
        result.add_message(get_message("delimiter_changed", delimiter.delimiter))
        result.set_success()


def create_wb_commands() -> list[SqlCommand]:
    """Return one instance of every tool command registered by default."""
    return [
        WbVarDef(),
        WbVarDelete(),
        WbVarList(),
        WbEcho(),
        WbConfirm(),
        WbFeedback(),
        WbHideWarnings(),
        WbStartBatch(),
        WbEndBatch(),
        WbCall(),
        WbEnableOutput(),
        WbDisableOutput(),
        WbHistory(),
        WbDelimiter(),
    ]
