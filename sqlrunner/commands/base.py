"""Command execution contract.

A command is a shared, per-kind handler.  One instance serves every
statement with one of its verbs, so nothing statement specific may survive
a run: the state of a run lives in a :class:`RunContext` that is installed
by :meth:`SqlCommand.begin_run` and discarded by :meth:`SqlCommand.done`.

The plain :class:`SqlCommand` is also the wildcard handler that sends any
unrecognized statement to the server as opaque SQL.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from sqlrunner.commands.result_processor import ResultProcessor
from sqlrunner.config import ErrorReportLevel, RunMode
from sqlrunner.error_position import ErrorPositionReader, format_error_location
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult
from sqlrunner.models.table import ResultTable
from sqlrunner.parser.sql_util import (
    get_cte_verbs,
    get_ddl_object_info,
    get_max_substring,
    get_sql_verb,
    is_select_into_new_table,
    is_unrestricted_dml,
    make_clean_sql,
)

if TYPE_CHECKING:
    from sqlrunner.connection import ConnectionProfile, DbConnection, StatementHandle
    from sqlrunner.dispatcher import CommandDispatcher
    from sqlrunner.parser.sql_util import DdlObjectInfo
    from sqlrunner.runner import StatementRunner

logger = logging.getLogger(__name__)


class RunContext:
    """State of a single command run."""

    def __init__(
        self,
        connection: DbConnection | None,
        runner: StatementRunner,
        max_rows: int = 0,
        query_timeout: int = 0,
        always_buffer: bool = False,
    ) -> None:
        self.connection = connection
        self.runner = runner
        self.max_rows = max(max_rows, 0)
        self.query_timeout = max(query_timeout, 0)
        self.always_buffer = always_buffer
        self.statement: StatementHandle | None = None
        self.retrieval: ResultTable | None = None
        self.cancelled = threading.Event()


class SqlCommand:
    """Base class of all commands and the wildcard handler for opaque SQL."""

    VERBS: tuple[str, ...] = ()

    is_wb_command = False
    is_updating = False
    connection_required = True
    ends_transaction = False
    ignore_update_counts = False
    supported_modes: frozenset[RunMode] = frozenset(RunMode)

    def __init__(self, *verbs: str) -> None:
        self._verbs: tuple[str, ...] = tuple(verbs) if verbs else self.VERBS
        self._lock = threading.Lock()
        self._context: RunContext | None = None
        self.dispatcher: CommandDispatcher | None = None

    # -- Declared capabilities -----------------------------------------------

    @property
    def verb(self) -> str:
        """The primary verb, the first one this command was registered with."""
        return self._verbs[0] if self._verbs else ""

    @property
    def verbs(self) -> tuple[str, ...]:
        return self._verbs

    def is_mode_supported(self, mode: RunMode) -> bool:
        """Return ``True`` if the command may run in *mode*."""
        return mode in self.supported_modes

    def should_end_transaction(self) -> bool:
        """Return whether a read-only transaction should be ended after this command.

        Only consulted for tool commands.  SQL verbs follow the backend's
        transaction policy instead.
        """
        return self.ends_transaction

    # -- Run bracket ---------------------------------------------------------

    def begin_run(
        self,
        connection: DbConnection | None,
        runner: StatementRunner,
        max_rows: int = 0,
        query_timeout: int = 0,
        always_buffer: bool = False,
        cancelled: bool = False,
    ) -> RunContext:
        """Install a fresh :class:`RunContext` for the next :meth:`execute`.

        With *cancelled* the run starts out cancelled, for a cancel request
        that arrived before the command had a context.
        """
        context = RunContext(connection, runner, max_rows, query_timeout, always_buffer)
        if cancelled:
            context.cancelled.set()
        with self._lock:
            if self._context is not None and self._context.statement is not None:
                logger.warning("%s: previous run was not finished, closing its statement", self)
                self._context.statement.close()
            self._context = context
        return context

    @property
    def context(self) -> RunContext:
        """The current :class:`RunContext`.

        Raises
        ------
        RuntimeError
            If no run was started with :meth:`begin_run`.
        """
        ctx = self._context
        if ctx is None:
            raise RuntimeError(f"{type(self).__name__}.execute() called without begin_run()")
        return ctx

    @property
    def connection(self) -> DbConnection | None:
        ctx = self._context
        return ctx.connection if ctx else None

    @property
    def runner(self) -> StatementRunner:
        return self.context.runner

    @property
    def is_cancelled(self) -> bool:
        """``True`` once the current run was cancelled."""
        ctx = self._context
        return ctx is not None and ctx.cancelled.is_set()

    def cancel(self) -> None:
        """Cancel the running statement; safe to call from any thread."""
        with self._lock:
            ctx = self._context
            if ctx is None:
                return
            ctx.cancelled.set()
            if ctx.retrieval is not None:
                ctx.retrieval.cancel_retrieve()
            statement = ctx.statement
        if statement is not None:
            try:
                statement.cancel()
            except Exception as exc:
                logger.warning("Could not cancel statement for %s: %s", self, exc)

    def done(self) -> None:
        """Release the statement handle and discard the run state.  Idempotent."""
        with self._lock:
            ctx = self._context
            self._context = None
        if ctx is None or ctx.statement is None:
            return
        statement = ctx.statement
        ctx.statement = None
        ctx.retrieval = None
        try:
            statement.clear_batch()
            statement.clear_warnings()
        except Exception:
            logger.debug("Ignoring error while clearing statement state", exc_info=True)
        try:
            statement.close()
        except Exception as exc:
            logger.error("Error when closing the current statement for %s: %s", type(self).__name__, exc)

    # -- Execution -----------------------------------------------------------

    def create_result(self, sql: str) -> ExecutionResult:
        """Create an empty result for *sql*, tagged with the connection id.

        Parameters
        ----------
        sql:
            The statement text the result reports on.

        Returns
        -------
        ExecutionResult
            Not yet marked as success or failure.
        """
        result = ExecutionResult(sql, self.verb or get_sql_verb(sql))
        ctx = self._context
        if ctx is not None and ctx.connection is not None:
            result.connection_id = ctx.connection.id
        return result

    def open_statement(self) -> StatementHandle:
        """Create a statement on the bound connection and make it cancellable."""
        ctx = self.context
        if ctx.connection is None:
            raise RuntimeError("No connection bound")
        statement = ctx.connection.create_statement()
        with self._lock:
            ctx.statement = statement
        return statement

    def apply_limits(self, statement: StatementHandle, verb: str) -> None:
        """Apply the row cap and the query timeout of the current run.

        The row cap is set only for verbs the backend limits.  A timeout the
        driver rejects is logged and the statement runs without one.
        """
        ctx = self.context
        caps = ctx.connection.capabilities
        if caps.use_max_rows(verb):
            statement.max_rows = ctx.max_rows
        if ctx.query_timeout > 0 and caps.supports_query_timeout:
            try:
                statement.set_query_timeout(ctx.query_timeout)
            except Exception as exc:
                logger.warning("Error when setting query timeout: %s", exc)

    def execute(self, sql: str) -> ExecutionResult:
        """Run *sql* as opaque SQL and drain every result it produces."""
        ctx = self.context
        runner = ctx.runner
        result = self.create_result(sql)
        if ctx.cancelled.is_set():
            return self._cancelled_before_start(result)

        to_execute = self.get_sql_to_execute(sql)
        verb = get_sql_verb(to_execute)
        caps = ctx.connection.capabilities
        result.ignore_update_counts = self.ignore_update_counts or not caps.has_update_count(verb)

        try:
            statement = self.open_statement()
            if runner.use_savepoint_for_dml():
                runner.set_savepoint()
            self.apply_limits(statement, verb)

            has_result = statement.execute(to_execute)
            if not has_result and caps.has_deferred_result(verb):
                has_result = statement.get_more_results()
            result.set_success()
            self.process_results(result, has_result)
            self.append_success_message(result)
            runner.release_savepoint()
        except Exception as exc:
            runner.rollback_savepoint()
            self.process_partial_results(result)
            self.add_error_info(result, to_execute, exc)
            logger.info("Error executing statement: %s", exc)
        finally:
            if ctx.cancelled.is_set():
                result.cancelled = True
            self.done()
        return result

    def _cancelled_before_start(self, result: ExecutionResult) -> ExecutionResult:
        result.cancelled = True
        result.add_warning(get_message("statement_cancelled"))
        self.done()
        return result

    def get_sql_to_execute(self, sql: str) -> str:
        ctx = self._context
        if ctx is None or ctx.connection is None:
            return sql
        if not ctx.connection.profile.remove_comments:
            return sql
        return make_clean_sql(sql, keep_newlines=True)

    # -- Result processing ---------------------------------------------------

    def process_results(self, result: ExecutionResult, has_result: bool) -> None:
        ResultProcessor(self).drain(result, has_result)

    def process_partial_results(self, result: ExecutionResult) -> None:
        """Drain whatever results a failed execution left behind."""
        if self.context.statement is None:
            return
        try:
            self.process_results(result, False)
        except Exception as exc:
            logger.debug("Could not retrieve results after error: %s", exc)

    def set_retrieval(self, table: ResultTable | None) -> None:
        with self._lock:
            if self._context is not None:
                self._context.retrieval = table
                if table is not None and self._context.cancelled.is_set():
                    table.cancel_retrieve()

    # -- Messages ------------------------------------------------------------

    def get_default_success_message(self, result: ExecutionResult | None) -> str | None:
        verb = self.verb
        if not verb and result is not None:
            verb = get_sql_verb(result.sql)
        connection = self.connection
        if connection is not None and not connection.capabilities.show_success_message(verb):
            return None
        if result is not None:
            msg = self.get_success_message_for_sql(verb, result.sql or "")
            if msg:
                return msg
        if not verb:
            return get_message("statement_generic_ok")
        return get_message("statement_ok", verb)

    def get_success_message_for_sql(self, verb: str, sql: str) -> str | None:
        info = get_ddl_object_info(sql)
        if info is None:
            return None
        return self.get_success_message(info, verb)

    def get_success_message(self, info: DdlObjectInfo | None, verb: str) -> str | None:
        """Typed success message for DDL statements, or ``None``."""
        verb = verb.upper()
        if verb == "DROP":
            if info is None:
                return get_message("drop_generic_success")
            if info.object_names:
                return get_message("drop_success", info.object_type, info.display_name)
            return get_message("drop_type_success", info.object_type)
        if verb in ("CREATE", "RECREATE"):
            if info is None:
                return get_message("create_generic_success")
            if info.object_names:
                return get_message("create_success", info.object_type, info.display_name)
            return get_message("create_type_success", info.object_type)
        if verb == "ALTER" and info is not None:
            display = info.object_type
            if info.object_names:
                display += " " + info.display_name
            return get_message("dml_success", verb, display)
        if verb == "ANALYZE" and info is not None:
            return get_message("object_analyzed", info.object_type.capitalize(), info.display_name)
        return None

    def append_success_message(self, result: ExecutionResult) -> None:
        if result.consumed:
            return
        result.add_message(self.get_default_success_message(result))

    def add_error_statement(self, result: ExecutionResult, sql: str) -> None:
        settings = self.runner.settings
        level = settings.error_report_level
        if level == ErrorReportLevel.NONE:
            return
        if level == ErrorReportLevel.FULL:
            text = sql
        else:
            text = get_max_substring(sql.strip(), settings.max_error_statement_length)
        result.add_error_message(get_message("execute_error") + "\n" + text)

    def add_error_position(self, result: ExecutionResult, sql: str, error: BaseException) -> None:
        connection = self.connection
        if connection is None:
            result.add_error_message(str(error))
            result.set_failure()
            return
        descriptor = ErrorPositionReader(connection.capabilities).get_error_descriptor(sql, error)
        message = descriptor.message
        location = format_error_location(sql, descriptor)
        if location:
            message = f"{message} {location}"
        result.add_error_message(message)
        result.set_failure(descriptor)

    def add_error_info(self, result: ExecutionResult, sql: str, error: BaseException) -> None:
        self.add_error_statement(result, sql)
        self.add_error_position(result, sql, error)
        if result.cancelled or self.is_cancelled:
            result.add_warning(get_message("statement_cancelled"))
        self.runner.variable_pool.set_last_error(error)

    # -- Classification ------------------------------------------------------

    def is_updating_command(self, connection: DbConnection | None, sql: str) -> bool:
        """Return True when *sql* modifies data on *connection*."""
        if self.is_updating:
            return True
        if connection is None or connection.closed:
            return False
        caps = connection.capabilities
        verb = get_sql_verb(sql)
        if caps.is_updating_verb(verb):
            return True
        if verb == "WITH":
            for cte_verb in get_cte_verbs(sql, caps.dialect):
                if caps.is_updating_verb(cte_verb):
                    return True
                if self.dispatcher is not None and self.dispatcher.resolve_verb(cte_verb).is_updating:
                    return True
        return caps.supports_select_into and is_select_into_new_table(sql, caps.dialect)

    def get_modification_target(self, connection: DbConnection | None, sql: str) -> ConnectionProfile | None:
        if connection is None:
            return None
        return connection.profile

    def needs_confirmation(self, connection: DbConnection | None, sql: str) -> bool:
        if connection is None or connection.closed:
            return False
        if connection.confirm_updates() and self.is_updating_command(connection, sql):
            return True
        profile = self.get_modification_target(connection, sql)
        if profile is not None and profile.prevent_dml_without_where:
            return is_unrestricted_dml(sql, connection.capabilities.dialect)
        return False

    def is_modification_allowed(self, connection: DbConnection | None, sql: str) -> bool:
        if connection is None or connection.closed:
            return True
        profile = self.get_modification_target(connection, sql)
        if profile is None:
            return True
        if profile is not connection.profile and profile.read_only:
            return False
        if profile is connection.profile and connection.is_read_only():
            if self.is_updating_command(connection, sql):
                return False
        return True

    def __str__(self) -> str:
        return self.verb or "*"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(verbs={self._verbs!r})"
