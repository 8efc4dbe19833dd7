"""Pre and post execution hooks selected per connection.

A hook sees every statement before and after the runner executes it.  It
may rewrite the statement text or skip it entirely (by returning ``None``
from :meth:`StatementHook.pre_exec`), and it decides whether result
cursors are fetched and displayed at all.

:class:`ExplainPlanHook` is used for backends with an explain prefix.  It
is driven by the ``autotrace`` session attribute:

``off``        plain execution (default)
``on``         execute, show the rows and append the execution plan
``traceonly``  execute and fetch the rows without keeping them, append the plan
``explain``    do not execute, only show the plan
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult
from sqlrunner.models.table import ResultTable
from sqlrunner.parser.sql_util import get_sql_verb

if TYPE_CHECKING:
    from sqlrunner.connection import DbConnection
    from sqlrunner.runner import StatementRunner

logger = logging.getLogger(__name__)

AUTOTRACE = "autotrace"
AUTOTRACE_MODES = ("off", "on", "traceonly", "explain")

_EXPLAINABLE_VERBS = frozenset({"SELECT", "INSERT", "UPDATE", "DELETE", "MERGE", "WITH"})


@runtime_checkable
class StatementHook(Protocol):
    """Interface of a statement hook."""

    def pre_exec(self, runner: StatementRunner, sql: str) -> str | None:
        """Return the text to execute, or ``None`` to skip the statement."""
        ...

    def post_exec(self, runner: StatementRunner, sql: str, result: ExecutionResult) -> None:
        ...

    def is_pending(self) -> bool:
        ...

    def display_results(self) -> bool:
        ...

    def fetch_results(self) -> bool:
        ...

    def close(self, connection: DbConnection | None) -> None:
        ...


class DefaultStatementHook:
    """Hook that changes nothing."""

    def pre_exec(self, runner: StatementRunner, sql: str) -> str | None:
        return sql

    def post_exec(self, runner: StatementRunner, sql: str, result: ExecutionResult) -> None:
        pass

    def is_pending(self) -> bool:
        return False

    def display_results(self) -> bool:
        return True

    def fetch_results(self) -> bool:
        return True

    def close(self, connection: DbConnection | None) -> None:
        pass


DEFAULT_HOOK = DefaultStatementHook()


class ExplainPlanHook:
    """Appends the execution plan of a statement to its result."""

    def __init__(self, explain_prefix: str) -> None:
        self.explain_prefix = explain_prefix.strip()
        self._mode = "off"
        self._pending: ResultTable | None = None
        self._pending_error: str | None = None

    def _read_mode(self, runner: StatementRunner) -> str:
        value = runner.get_session_attribute(AUTOTRACE)
        mode = (value or "off").strip().lower()
        if mode not in AUTOTRACE_MODES:
            logger.warning("Unknown autotrace mode %r, using 'off'", value)
            mode = "off"
        return mode

    def pre_exec(self, runner: StatementRunner, sql: str) -> str | None:
        self._pending = None
        self._pending_error = None
        self._mode = self._read_mode(runner)
        if self._mode == "off" or get_sql_verb(sql) not in _EXPLAINABLE_VERBS:
            self._mode = "off"
            return sql
        self._pending = self._explain(runner, sql)
        if self._mode == "explain":
            return None
        return sql

    def _explain(self, runner: StatementRunner, sql: str) -> ResultTable | None:
        connection = runner.connection
        if connection is None:
            return None
        statement = connection.create_statement()
        try:
            plan_sql = f"{self.explain_prefix} {sql.strip().rstrip(';')}"
            if not statement.execute(plan_sql):
                return None
            table = ResultTable(sql=plan_sql)
            table.init_data(statement.cursor)
            return table
        except Exception as exc:
            logger.warning("Could not retrieve execution plan: %s", exc)
            self._pending_error = str(exc)
            return None
        finally:
            statement.close()

    def post_exec(self, runner: StatementRunner, sql: str, result: ExecutionResult) -> None:
        if self._mode == "off":
            return
        if self._mode == "explain":
            result.add_message(get_message("plan_only"))
            result.set_success()
        if self._pending is not None:
            result.add_message(get_message("execution_plan"))
            result.add_table(self._pending)
        elif self._pending_error:
            result.add_warning(self._pending_error)
        self._pending = None
        self._pending_error = None

    def is_pending(self) -> bool:
        return self._pending is not None

    def display_results(self) -> bool:
        return self._mode != "traceonly"

    def fetch_results(self) -> bool:
        return self._mode != "explain"

    def close(self, connection: DbConnection | None) -> None:
        self._pending = None
        self._pending_error = None
        self._mode = "off"


def get_statement_hook(connection: DbConnection | None) -> StatementHook:
    """Return the hook to use for *connection*."""
    if connection is None:
        return DEFAULT_HOOK
    prefix = connection.capabilities.explain_plan_prefix
    if prefix:
        return ExplainPlanHook(prefix)
    return DEFAULT_HOOK
