"""Transaction control: COMMIT, ROLLBACK and backend specific transaction starts."""

from __future__ import annotations

import logging

from sqlrunner.commands.base import SqlCommand
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult
from sqlrunner.parser.sql_util import make_clean_sql

logger = logging.getLogger(__name__)

MANUAL_TRANSACTION = "manual_transaction"


class TransactionEndCommand(SqlCommand):
    """Ends the current transaction through the driver API."""

    ends_transaction = True

    def __init__(self, verb: str) -> None:
        super().__init__(verb)
        # A COMMIT makes pending changes permanent, so it counts as an update.
        self.is_updating = verb == "COMMIT"

    def execute(self, sql: str) -> ExecutionResult:
        ctx = self.context
        result = self.create_result(sql)
        connection = ctx.connection
        try:
            if self.verb == "COMMIT":
                connection.commit()
                result.add_message(get_message("commit_ok"))
            else:
                connection.rollback()
                result.add_message(get_message("rollback_ok"))
            ctx.runner.set_session_attribute(MANUAL_TRANSACTION, None)
            result.set_success()
        except Exception as exc:
            self.add_error_info(result, sql, exc)
            logger.info("Error executing %s: %s", self.verb, exc)
        finally:
            self.done()
        return result


class TransactionStartCommand(SqlCommand):
    """Starts a manual transaction while the connection is in autocommit mode."""

    def execute(self, sql: str) -> ExecutionResult:
        runner = self.runner
        result = super().execute(sql)
        if result.success:
            runner.set_session_attribute(MANUAL_TRANSACTION, "true")
        return result

    def append_success_message(self, result: ExecutionResult) -> None:
        result.add_message(get_message("transaction_started", make_clean_sql(result.sql).upper()))


def create_transaction_end_commands() -> list[TransactionEndCommand]:
    return [TransactionEndCommand("COMMIT"), TransactionEndCommand("ROLLBACK")]
