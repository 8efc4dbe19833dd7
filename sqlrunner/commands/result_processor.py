"""Draining of all results produced by one statement execution.

A single execution may yield any sequence of row sets and update counts.
:class:`ResultProcessor` walks that sequence until the driver reports
neither a further row set nor a pending update count, and stops after
``max_result_iterations`` steps for drivers that keep reporting "more
results" forever.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult
from sqlrunner.models.table import ResultTable

if TYPE_CHECKING:
    from sqlrunner.commands.base import SqlCommand

logger = logging.getLogger(__name__)


class ResultProcessor:
    """Collects the results of the statement of a running command."""

    def __init__(self, command: SqlCommand) -> None:
        self._command = command
        self._context = command.context

    # -- Messages ------------------------------------------------------------

    def append_output(self, result: ExecutionResult) -> None:
        """Attach captured server output (notices, PRINT messages) to *result*."""
        connection = self._context.connection
        if connection is None:
            return
        output = connection.get_server_output()
        if not output:
            return
        result.add_message(get_message("server_output"))
        for line in output:
            result.add_message(line)

    def append_warnings(self, result: ExecutionResult, add_label: bool) -> bool:
        """Attach driver warnings to *result*; return True if any were found."""
        runner = self._context.runner
        statement = self._context.statement
        if statement is None or runner.hide_warnings:
            return False
        warnings = statement.get_warnings()
        if not warnings:
            return False
        first = warnings[0]
        if add_label and len(first) > 7 and not first[:7].lower() == "warning":
            result.add_message(get_message("warnings"))
        for warning in warnings:
            result.add_warning(warning)
        statement.clear_warnings()
        return True

    # -- Draining ------------------------------------------------------------

    def drain(self, result: ExecutionResult, has_result: bool) -> None:
        ctx = self._context
        connection = ctx.connection
        statement = ctx.statement
        if connection is None or connection.closed or statement is None:
            logger.error("Current connection has been closed. Aborting...")
            return

        self.append_output(result)
        self.append_warnings(result, add_label=True)

        hook = ctx.runner.statement_hook
        if not hook.fetch_results():
            return
        fetch_only = not hook.display_results()

        caps = connection.capabilities
        retrieve_result_warnings = caps.retrieve_warnings_per_result
        multiple_update_counts = caps.allows_multiple_update_counts
        max_loops = caps.max_result_iterations

        more_results = has_result
        update_count = -1 if has_result else statement.get_update_count()
        counter = 0

        while more_results or update_count > -1:
            if update_count > -1:
                result.add_update_count_message(update_count)

            if more_results:
                cursor = statement.result_cursor
                if cursor is None:
                    break
                if retrieve_result_warnings:
                    self.append_warnings(result, add_label=False)
                self._consume_cursor(result, cursor, fetch_only)

            if connection.closed:
                logger.error("Current connection has been closed. Aborting...")
                return

            more_results = statement.get_more_results()
            if multiple_update_counts:
                try:
                    update_count = statement.get_update_count()
                except Exception as exc:
                    logger.warning("Error when retrieving the update count: %s", exc)
                    update_count = -1
                    multiple_update_counts = False
            else:
                update_count = -1

            counter += 1
            if counter >= max_loops:
                logger.warning("Breaking out of loop because %d iterations reached", max_loops)
                result.add_warning(get_message("max_results_reached", max_loops))
                break

        self._command.set_retrieval(None)

    def _consume_cursor(self, result: ExecutionResult, cursor: object, fetch_only: bool) -> None:
        ctx = self._context
        consumer = ctx.runner.consumer
        if consumer is not None and not ctx.always_buffer:
            consumer.consume_cursor(result, cursor)
            result.consumed = True
            return

        max_rows = ctx.statement.max_rows if ctx.statement is not None else ctx.max_rows
        table = ResultTable(sql=result.sql)
        self._command.set_retrieval(table)
        try:
            if fetch_only:
                result.rows_processed += table.fetch_only(cursor, max_rows)
            else:
                table.init_data(cursor, max_rows)
        except Exception as exc:
            # Some drivers raise when the statement is cancelled; the rows
            # fetched so far are kept.
            if table.cancelled or ctx.cancelled.is_set():
                table.cancelled = True
                logger.debug("Error during cancelled retrieval: %s", exc)
            else:
                raise
        if table.cancelled:
            result.add_warning(get_message("error_during_retrieve"))
            result.cancelled = True

        if not fetch_only:
            result.rows_processed += table.row_count
            result.add_table(table)
