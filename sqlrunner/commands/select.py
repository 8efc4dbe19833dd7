"""SELECT statements."""

from __future__ import annotations

import logging

from sqlrunner.commands.base import SqlCommand
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult

logger = logging.getLogger(__name__)


class SelectCommand(SqlCommand):
    """Runs a query, applying the row cap and the query timeout."""

    VERBS = ("SELECT",)

    def execute(self, sql: str) -> ExecutionResult:
        ctx = self.context
        runner = ctx.runner
        result = self.create_result(sql)
        if ctx.cancelled.is_set():
            return self._cancelled_before_start(result)

        to_execute = self.get_sql_to_execute(sql)
        try:
            if runner.use_savepoint_for_dml():
                runner.set_savepoint()
            statement = self.open_statement()
            self.apply_limits(statement, self.verb)

            has_result = statement.execute(to_execute)
            if ctx.cancelled.is_set():
                result.add_message(get_message("statement_cancelled"))
                result.cancelled = True
                result.set_failure()
            else:
                self.process_results(result, has_result)
                if ctx.cancelled.is_set():
                    result.add_message(get_message("statement_cancelled"))
                    result.cancelled = True
                else:
                    self.append_success_message(result)
                result.set_success()
            runner.release_savepoint()
        except Exception as exc:
            if ctx.cancelled.is_set():
                result.cancelled = True
            self.add_error_info(result, to_execute, exc)
            logger.info("Error executing query: %s", exc)
            runner.rollback_savepoint()
        finally:
            self.done()
        return result

    def append_success_message(self, result: ExecutionResult) -> None:
        if result.consumed:
            return
        rows = sum(t.row_count for t in result.tables) if result.tables else result.rows_processed
        result.add_message(get_message("rows_retrieved", rows))
