"""DML statements: INSERT, UPDATE, DELETE, MERGE and TRUNCATE."""

from __future__ import annotations

import logging

from sqlrunner.commands.base import SqlCommand
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult
from sqlrunner.parser.sql_util import get_affected_table

logger = logging.getLogger(__name__)

DML_VERBS = ("INSERT", "UPDATE", "DELETE", "MERGE", "TRUNCATE")

_MESSAGE_VERBS = {"DELETE": "DELETE FROM", "INSERT": "INSERT INTO"}


class UpdatingCommand(SqlCommand):
    """Runs one kind of DML statement, guarded by a savepoint when configured."""

    is_updating = True

    def __init__(self, verb: str) -> None:
        super().__init__(verb)

    @property
    def message_verb(self) -> str:
        return _MESSAGE_VERBS.get(self.verb, self.verb)

    def execute(self, sql: str) -> ExecutionResult:
        ctx = self.context
        runner = ctx.runner
        caps = ctx.connection.capabilities
        result = self.create_result(sql)
        if ctx.cancelled.is_set():
            return self._cancelled_before_start(result)
        result.ignore_update_counts = not caps.has_update_count(self.verb)

        to_execute = self.get_sql_to_execute(sql)
        table = get_affected_table(to_execute, caps.dialect)
        try:
            if runner.use_savepoint_for_dml():
                runner.set_savepoint()
            statement = self.open_statement()
            has_result = statement.execute(to_execute)

            if not table:
                self.append_success_message(result)
            elif caps.show_success_message(self.verb):
                result.add_message(get_message("dml_success", self.message_verb, table))
            result.set_success()
            # update counts are added after the success message
            self.process_results(result, has_result)
            runner.release_savepoint()
        except Exception as exc:
            runner.rollback_savepoint()
            if table:
                result.add_message(get_message("dml_failure", self.message_verb, table))
            self.add_error_info(result, to_execute, exc)
            logger.info("Error executing %s: %s", self.verb, exc)
        finally:
            if ctx.cancelled.is_set():
                result.cancelled = True
            self.done()
        return result


def create_dml_commands() -> list[UpdatingCommand]:
    return [UpdatingCommand(verb) for verb in DML_VERBS]
