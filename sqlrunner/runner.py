"""Statement runner: runs one statement end-to-end.

:meth:`StatementRunner.run_statement` is the pipeline every statement goes
through::

    prompt -> dispatch -> mode check -> connection check -> substitution
    -> read-only gate -> confirmation -> pre-execution hook -> execute
    -> annotations -> result consumer -> post-execution hook and logging

Statement-level failures never escape ``run_statement``; they are reported
in the returned :class:`~sqlrunner.models.result.ExecutionResult`.  The only
exception raised for a statement is :class:`ConnectionRequiredError`.

Callers run statements sequentially on one thread and call
:meth:`StatementRunner.statement_done` after each one and
:meth:`StatementRunner.done` at the end of a script.
:meth:`StatementRunner.cancel` may be called from any other thread.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Protocol, runtime_checkable

from sqlrunner.commands.base import SqlCommand
from sqlrunner.commands.set_command import SetCommand
from sqlrunner.commands.transaction import MANUAL_TRANSACTION, TransactionEndCommand
from sqlrunner.commands.wb import WbEndBatch, WbStartBatch
from sqlrunner.config import RunMode, SavepointStrategy, Settings, load_settings
from sqlrunner.connection import DbConnection, Savepoint
from sqlrunner.dispatcher import CommandDispatcher
from sqlrunner.history import StatementHistory
from sqlrunner.hooks import DEFAULT_HOOK, StatementHook, get_statement_hook
from sqlrunner.logging_config import STATEMENT_LOGGER
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult
from sqlrunner.parser.annotations import CROSSTAB, REMOVE_EMPTY, REMOVE_RESULT, WbAnnotation, find_annotation, read_annotations
from sqlrunner.parser.delimiter import DelimiterDefinition
from sqlrunner.parser.sql_util import get_max_substring, get_sql_verb, make_clean_sql
from sqlrunner.variables import VariableError, VariablePool

logger = logging.getLogger(__name__)
statement_logger = logging.getLogger(STATEMENT_LOGGER)

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on", "y"})


class ConnectionRequiredError(RuntimeError):
    """A command that needs a connection was run while none is bound."""

    def __init__(self, verb: str) -> None:
        super().__init__(get_message("connection_required", verb))
        self.verb = verb


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


@runtime_checkable
class ExecutionController(Protocol):
    """Asks the user before statements are run."""

    def confirm_statement_execution(self, sql: str) -> bool:
        """Return True if the updating statement *sql* may run."""
        ...

    def confirm_execution(self, prompt: str) -> bool:
        """Return True if the script should continue after *prompt*."""
        ...


@runtime_checkable
class ParameterPrompter(Protocol):
    """Collects values for ``${?name}`` style variables before a statement runs."""

    def process_parameter_prompts(self, sql: str) -> bool:
        """Return False if the user cancelled the prompt."""
        ...


@runtime_checkable
class ResultSetConsumer(Protocol):
    """Receives result cursors instead of having them materialized."""

    def consume_cursor(self, result: ExecutionResult, cursor: Any) -> None:
        ...

    def consume_result(self, result: ExecutionResult) -> None:
        ...

    def cancel(self) -> None:
        ...

    def ignore_max_rows(self) -> bool:
        ...


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class StatementRunner:
    """Runs statements against the bound connection.

    Parameters
    ----------
    settings:
        Application settings.  Loaded from the environment when omitted.
    dispatcher:
        Command registry.  A default dispatcher is created when omitted.
    variable_pool:
        Pool used for variable substitution.  Defaults to the pool
        registered under *variable_pool_id* (the global pool if ``None``).
    history:
        Statement history that records every executed statement.
    controller:
        Optional :class:`ExecutionController` for confirmations.
    prompter:
        Optional :class:`ParameterPrompter` for variable prompts.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        dispatcher: CommandDispatcher | None = None,
        variable_pool: VariablePool | None = None,
        history: StatementHistory | None = None,
        controller: ExecutionController | None = None,
        prompter: ParameterPrompter | None = None,
        variable_pool_id: str | None = None,
    ) -> None:
        self._settings = settings or load_settings()
        self.dispatcher = dispatcher or CommandDispatcher(self._settings.allow_abbreviations)
        if variable_pool is None:
            variable_pool = VariablePool.get_instance(variable_pool_id)
            if (variable_pool.prefix, variable_pool.suffix) != (self._settings.variable_prefix, self._settings.variable_suffix):
                variable_pool.set_prefix_suffix(self._settings.variable_prefix, self._settings.variable_suffix)
        self.variable_pool = variable_pool
        self.history = history
        self.controller = controller
        self.prompter = prompter

        self.connection: DbConnection | None = None
        self.statement_hook: StatementHook = DEFAULT_HOOK
        self.consumer: ResultSetConsumer | None = None
        self.alternate_delimiter: DelimiterDefinition | None = None

        self.hide_warnings = False
        self.ignore_drop_errors = False
        self.verbose_feedback = self._settings.verbose_logging
        self.savepoint_strategy = self._settings.savepoint_strategy
        self.max_rows = self._settings.max_rows
        self.query_timeout = self._settings.query_timeout

        self._lock = threading.Lock()
        self._cancel_requested = threading.Event()
        self._session_attributes: dict[str, str] = {}
        self._savepoint: Savepoint | None = None
        self._current_command: SqlCommand | None = None
        self._current_verb: str | None = None
        self._is_transaction_command = False
        self._batch_command: WbStartBatch | None = None

    # -- Configuration -------------------------------------------------------

    @property
    def settings(self) -> Settings:
        """The settings this runner was created with."""
        return self._settings

    @property
    def run_mode(self) -> RunMode:
        return self._settings.run_mode

    @property
    def current_command(self) -> SqlCommand | None:
        """The command of the statement in progress, until :meth:`statement_done`."""
        return self._current_command

    def set_max_rows(self, rows: int) -> None:
        """Cap the rows kept per result set; ``0`` means no cap."""
        self.max_rows = max(rows, 0)

    def set_query_timeout(self, seconds: int) -> None:
        """Set the query timeout in seconds; ``0`` disables it."""
        self.query_timeout = max(seconds, 0)

    def set_connection(self, connection: DbConnection | None) -> None:
        """Bind *connection* and re-register the backend specific verbs."""
        self.statement_hook.close(connection)
        self.release_savepoint()
        self.dispatcher.bind_backend(connection.capabilities if connection is not None else None)
        self.connection = connection
        self._batch_command = None

        if connection is None:
            self.statement_hook = DEFAULT_HOOK
            return

        self.ignore_drop_errors = connection.profile.ignore_drop_errors
        self.hide_warnings = connection.profile.hide_warnings
        self.statement_hook = get_statement_hook(connection)
        self._session_attributes.clear()
        logger.debug("Statement runner bound to connection %s", connection.id)

    def has_pending_actions(self) -> bool:
        """Return ``True`` while a consumer or the statement hook still holds state.

        A pending runner must not be released between statements, because
        the consumer may still read from the last cursor or the hook may
        still owe its post-execution output.
        """
        if self.consumer is not None:
            return True
        return self.statement_hook.is_pending()

    # -- Session attributes --------------------------------------------------

    def set_session_attribute(self, name: str, value: str | None) -> None:
        """Store a session attribute, or remove it when *value* is ``None``.

        Parameters
        ----------
        name:
            Attribute name, such as ``autotrace`` or the manual transaction
            marker.
        value:
            The new value.  ``None`` deletes the attribute.
        """
        if value is None:
            self._session_attributes.pop(name, None)
        else:
            self._session_attributes[name] = value

    def get_session_attribute(self, name: str) -> str | None:
        return self._session_attributes.get(name)

    def get_bool_session_attribute(self, name: str) -> bool:
        """Read a session attribute as a boolean flag; a missing attribute is ``False``."""
        value = self._session_attributes.get(name)
        return value is not None and value.strip().lower() in _TRUE_STRINGS

    def is_in_manual_transaction(self) -> bool:
        """Return ``True`` after a BEGIN TRANSACTION that has not been ended."""
        return self.get_bool_session_attribute(MANUAL_TRANSACTION)

    # -- Savepoints ----------------------------------------------------------

    def _use_savepoint(self, configured: bool) -> bool:
        if self.connection is None:
            return False
        if self.savepoint_strategy == SavepointStrategy.ALWAYS:
            return True
        if self.savepoint_strategy == SavepointStrategy.NEVER:
            return False
        return configured

    def use_savepoint_for_dml(self) -> bool:
        """Return whether DML should run under a savepoint.

        The runner's :class:`SavepointStrategy` decides first.  With
        ``WHEN_CONFIGURED`` the backend's ``use_savepoint_for_dml`` flag
        applies.  Without a connection the answer is always ``False``.
        """
        if self.connection is None:
            return False
        return self._use_savepoint(self.connection.capabilities.use_savepoint_for_dml)

    def use_savepoint_for_ddl(self) -> bool:
        """Same as :meth:`use_savepoint_for_dml`, for DDL statements."""
        if self.connection is None:
            return False
        return self._use_savepoint(self.connection.capabilities.use_savepoint_for_ddl)

    @property
    def savepoint(self) -> Savepoint | None:
        """The active statement savepoint, if any."""
        return self._savepoint

    def set_savepoint(self) -> None:
        """Create the savepoint of the current statement unless one is active."""
        if self._savepoint is not None or self.connection is None:
            return
        if self.connection.autocommit:
            return
        try:
            self._savepoint = self.connection.set_savepoint()
        except Exception as exc:
            logger.error("Error creating savepoint: %s", exc)
            self._savepoint = None

    def release_savepoint(self) -> None:
        """Release the active savepoint after a successful statement.

        The savepoint is forgotten even when the driver fails to release it;
        the driver error propagates.
        """
        if self._savepoint is None or self.connection is None:
            return
        try:
            self.connection.release_savepoint(self._savepoint)
        finally:
            self._savepoint = None

    def rollback_savepoint(self) -> None:
        """Roll back to the active savepoint and forget it."""
        if self._savepoint is None or self.connection is None:
            return
        try:
            self.connection.rollback_savepoint(self._savepoint)
        finally:
            self._savepoint = None

    # -- Execution -----------------------------------------------------------

    def run_statement(self, sql: str) -> ExecutionResult:
        """Run *sql* and return its result.

        Raises
        ------
        ConnectionRequiredError
            If the command needs a connection and none is bound.
        """
        with self._lock:
            self._cancel_requested.clear()

        # 1. Prompt for parameters
        if self.prompter is not None and not self.prompter.process_parameter_prompts(sql):
            result = ExecutionResult(sql, get_sql_verb(sql))
            result.prompt_cancelled = True
            result.cancelled = True
            result.add_warning(get_message("prompting_cancelled"))
            return result

        # 2. Dispatch
        command, verb = self.dispatcher.resolve(sql)
        self._current_command = command
        self._current_verb = verb
        connection = self.connection

        # 3. Run mode
        mode = self.run_mode
        if not command.is_mode_supported(mode):
            logger.warning("%s not supported in mode %s. The statement has been ignored.", verb, mode.value)
            result = ExecutionResult(sql, verb)
            result.add_warning(get_message("mode_not_supported", verb, mode.value))
            result.set_success()
            return result

        # 4. Connection
        if connection is None and command.connection_required:
            raise ConnectionRequiredError(verb)

        self._is_transaction_command = (
            type(command) is SqlCommand
            and connection is not None
            and connection.capabilities.is_transaction_verb(verb)
        )

        # 5. Variable substitution
        try:
            real_sql = self.substitute_variables(sql)
        except VariableError as exc:
            result = ExecutionResult(sql, verb)
            result.add_error_message(str(exc))
            result.set_failure()
            return result

        # 6. Read-only gate
        if not command.is_modification_allowed(connection, real_sql):
            target = command.get_modification_target(connection, real_sql)
            profile_name = target.name if target is not None else ""
            statement_verb = get_sql_verb(real_sql)
            logger.warning("Statement %s ignored because connection is set to read only!", statement_verb)
            result = ExecutionResult(real_sql, statement_verb)
            result.add_warning(get_message("read_only_mode", profile_name, statement_verb))
            result.set_success()
            return result

        # 7. Confirmation
        if self.controller is not None and command.needs_confirmation(connection, real_sql):
            if not self.controller.confirm_statement_execution(real_sql):
                result = ExecutionResult(real_sql, verb)
                result.add_warning(get_message("statement_cancelled"))
                result.cancelled = True
                result.set_success()
                return result

        if self._cancel_requested.is_set():
            logger.info("Statement cancelled before execution: %s", verb)
            result = ExecutionResult(real_sql, verb)
            result.add_warning(get_message("statement_cancelled"))
            result.cancelled = True
            result.set_success()
            return result

        if self._batch_command is not None and not isinstance(command, (WbStartBatch, WbEndBatch)):
            self._batch_command.add_statement(real_sql)
            result = ExecutionResult(real_sql, verb)
            result.add_message(get_message("batch_added"))
            result.set_success()
            return result

        # 8. Pre-execution hook
        exec_sql = self.statement_hook.pre_exec(self, real_sql)
        annotations = read_annotations(real_sql, CROSSTAB, REMOVE_EMPTY, REMOVE_RESULT)
        crosstab = find_annotation(annotations, CROSSTAB)

        # 9. Execute
        started = time.perf_counter()
        if exec_sql is None:
            # the hook asked to skip the statement
            result = ExecutionResult(real_sql, verb)
            result.set_success()
        else:
            with self._lock:
                command.begin_run(
                    connection,
                    self,
                    self._effective_max_rows(),
                    self.query_timeout,
                    always_buffer=crosstab is not None,
                    cancelled=self._cancel_requested.is_set(),
                )
            result = command.execute(exec_sql)

        if isinstance(command, WbStartBatch) and result.success:
            self._batch_command = command
        elif isinstance(command, WbEndBatch) and self._batch_command is not None:
            batch = self._batch_command
            self._batch_command = None
            with self._lock:
                batch.begin_run(
                    connection,
                    self,
                    self._effective_max_rows(),
                    self.query_timeout,
                    cancelled=self._cancel_requested.is_set(),
                )
            result = batch.execute_batch()

        if (
            result.success
            and connection is not None
            and not connection.closed
            and not command.ends_transaction
            and command.is_updating_command(connection, real_sql)
            and not connection.autocommit
        ):
            connection.uncommitted_changes = True

        # 10. Annotations
        if find_annotation(annotations, REMOVE_EMPTY) is not None:
            self._remove_empty_results(result)
        if find_annotation(annotations, REMOVE_RESULT) is not None:
            result.clear_result_data()
        if crosstab is not None:
            self._process_crosstab(result, crosstab)

        # 11. Result consumer
        if self.consumer is not None and self.consumer is not command:
            self.consumer.consume_result(result)

        # 12. Post-execution hook, timing and logging
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self.statement_hook.post_exec(self, exec_sql if exec_sql is not None else real_sql, result)
        result.execution_duration_ms = elapsed_ms

        if self.history is not None and exec_sql is not None:
            self.history.add(real_sql)
        if self._settings.log_all_statements:
            self.log_statement(exec_sql if exec_sql is not None else real_sql, elapsed_ms, connection)
        return result

    def _effective_max_rows(self) -> int:
        if self.consumer is not None and self.consumer.ignore_max_rows():
            return 0
        return self.max_rows

    def substitute_variables(self, sql: str) -> str:
        """Replace variable references in *sql* from the runner's pool.

        The statement is returned unchanged (the same object) when nothing
        was replaced, and only an actual replacement is logged.
        """
        strict = self._settings.strict_variables
        if len(self.variable_pool) == 0 and not strict:
            return sql
        real_sql = self.variable_pool.replace_all_parameters(sql, strict=strict)
        if real_sql is None or real_sql == sql:
            return sql
        if self._settings.log_parameter_substitution:
            logger.debug(
                "Variable substitution:\n--- [statement before] ---\n%s\n--- [statement after] ---\n%s\n--- [end] ---",
                sql,
                real_sql,
            )
        return real_sql

    def _remove_empty_results(self, result: ExecutionResult) -> None:
        if not result.success or not result.tables:
            return
        kept = []
        for table in result.tables:
            if not table.is_empty():
                kept.append(table)
                continue
            if self._settings.show_removed_result_message:
                query = get_max_substring(make_clean_sql(table.sql), 150, " [...]")
                result.add_message(get_message("result_removed", query))
        result.tables[:] = kept

    def _process_crosstab(self, result: ExecutionResult, annotation: WbAnnotation) -> None:
        if not result.success:
            return
        args = annotation.arguments()
        label_column = args.get("labelcolumn")
        if label_column is None and annotation.value and not args:
            label_column = annotation.value.strip()
        add_label = args.get("addlabel")
        for idx, table in enumerate(result.tables):
            result.tables[idx] = table.transpose_with_label(label_column, add_label)
            table.reset()

    @staticmethod
    def log_statement(sql: str, duration_ms: int, connection: DbConnection | None) -> None:
        """Write the ``Executed:`` line for *sql* to the statement log."""
        prefix = f"Executed: ({connection.id})" if connection is not None else "Executed: "
        if duration_ms > -1:
            statement_logger.info("%s\n%s\n(%dms)", prefix, sql, duration_ms)
        else:
            statement_logger.info("%s\n%s\n", prefix, sql)

    # -- Lifecycle -----------------------------------------------------------

    def _should_end_transaction(self, command: SqlCommand | None) -> bool:
        if command is None:
            return False
        if command.is_updating:
            return False
        if isinstance(command, (TransactionEndCommand, SetCommand)):
            return False
        if command.is_wb_command:
            return command.should_end_transaction()
        if self._is_transaction_command:
            return False
        if self.is_in_manual_transaction():
            return False
        if self._current_verb and self.connection is not None:
            if self.connection.capabilities.never_ends_transaction(self._current_verb):
                return False
        return True

    def _end_read_only_transaction(self) -> None:
        connection = self.connection
        if connection is None or connection.closed:
            return
        if not self._should_end_transaction(self._current_command):
            return
        try:
            if connection.end_read_only_transaction():
                logger.info("Ended the current transaction started by: %s", self._current_command)
        except Exception as exc:
            logger.warning("Could not end read-only transaction: %s", exc)

    def statement_done(self) -> None:
        """Finish the current statement; call after every :meth:`run_statement`."""
        self._end_read_only_transaction()
        command = self._current_command
        if command is not None and command is not self.consumer:
            command.done()
            self._current_command = None

    def cancel(self) -> None:
        """Cancel the running statement.  Errors are logged, never raised.

        A request that arrives before the command starts executing is kept
        until the next :meth:`run_statement`, which then skips the statement.
        """
        with self._lock:
            self._cancel_requested.set()
            try:
                if self.consumer is not None:
                    self.consumer.cancel()
                command = self._current_command
                if command is not None:
                    command.cancel()
            except Exception as exc:
                logger.warning("Error when cancelling statement: %s", exc)

    def abort(self) -> None:
        """Reset the runner after an error that ended the script."""
        self._end_read_only_transaction()
        self._savepoint = None
        self._current_command = None
        self._batch_command = None
        self.consumer = None

    def done(self) -> None:
        """Finish a script: end a read-only transaction and release the savepoint."""
        with self._lock:
            self._end_read_only_transaction()
            self.release_savepoint()
            self.consumer = None
