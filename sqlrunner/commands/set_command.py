"""The SET statement.

A few options are runner settings rather than server settings and are
handled locally; everything else is sent to the server unchanged.
"""

from __future__ import annotations

import logging
import re

from sqlrunner.commands.base import SqlCommand
from sqlrunner.hooks import AUTOTRACE, AUTOTRACE_MODES
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult

logger = logging.getLogger(__name__)

_SET_RE = re.compile(r"^\s*SET\s+(?P<name>[\w.]+)\s*(?:=|\bTO\b)?\s*(?P<value>.*?)\s*;?\s*$", re.IGNORECASE | re.DOTALL)

_TRUE_VALUES = frozenset({"on", "true", "yes", "1"})
_FALSE_VALUES = frozenset({"off", "false", "no", "0"})


def parse_flag(value: str) -> bool | None:
    """Return the boolean meaning of *value* or ``None`` if it has none."""
    value = value.strip().strip("'\"").lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    return None


class SetCommand(SqlCommand):
    """``SET autocommit``, ``SET maxrows`` and ``SET timeout`` run locally."""

    VERBS = ("SET",)
    ignore_update_counts = True

    LOCAL_OPTIONS = ("AUTOCOMMIT", "MAXROWS", "TIMEOUT")
    # Only meaningful on backends that emulate a SQL*Plus style client.
    CLIENT_OPTIONS = ("SERVEROUTPUT", "FEEDBACK")

    def execute(self, sql: str) -> ExecutionResult:
        match = _SET_RE.match(self.get_sql_to_execute(sql))
        if match is None:
            return super().execute(sql)
        option = match.group("name").upper()
        value = match.group("value")

        connection = self.context.connection
        if option in self.LOCAL_OPTIONS:
            return self._run_local(sql, option, value)
        if option in self.CLIENT_OPTIONS and connection is not None and connection.capabilities.server_output_aliases:
            return self._run_local(sql, option, value)
        if option == "AUTOTRACE" and connection is not None and connection.capabilities.explain_plan_prefix:
            return self._set_autotrace(sql, value)
        return super().execute(sql)

    def _set_autotrace(self, sql: str, value: str) -> ExecutionResult:
        result = self.create_result(sql)
        mode = value.strip().lower() or "off"
        if mode not in AUTOTRACE_MODES:
            result.add_error_message(get_message("set_failure", value, "autotrace"))
            result.set_failure()
        else:
            self.runner.set_session_attribute(AUTOTRACE, mode)
            result.add_message(get_message("set_success", "autotrace", mode))
            result.set_success()
        self.done()
        return result

    def _run_local(self, sql: str, option: str, value: str) -> ExecutionResult:
        ctx = self.context
        runner = ctx.runner
        result = self.create_result(sql)
        try:
            if option in ("MAXROWS", "TIMEOUT"):
                try:
                    number = int(value)
                except ValueError:
                    result.add_error_message(get_message("set_failure", value, option.lower()))
                    result.set_failure()
                    return result
                if option == "MAXROWS":
                    runner.set_max_rows(number)
                else:
                    runner.set_query_timeout(number)
                result.add_message(get_message("set_success", option.lower(), number))
                result.set_success()
                return result

            flag = parse_flag(value)
            if flag is None:
                result.add_error_message(get_message("set_failure", value, option.lower()))
                result.set_failure()
                return result

            if option == "AUTOCOMMIT":
                ctx.connection.autocommit = flag
                result.add_message(get_message("autocommit_on" if flag else "autocommit_off"))
            elif option == "SERVEROUTPUT":
                ctx.connection.server_output_enabled = flag
                result.add_message(get_message("server_output_on" if flag else "server_output_off"))
            else:
                runner.verbose_feedback = flag
                result.add_message(get_message("feedback_on" if flag else "feedback_off"))
            result.set_success()
        except Exception as exc:
            self.add_error_info(result, sql, exc)
            logger.info("Error running SET %s: %s", option, exc)
        finally:
            self.done()
        return result
