"""DDL statements: CREATE, DROP, ALTER, GRANT, REVOKE and RECREATE."""

from __future__ import annotations

import logging
import re

from sqlrunner.commands.base import SqlCommand
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult
from sqlrunner.parser.sql_util import DdlObjectInfo, get_ddl_object_info

logger = logging.getLogger(__name__)

_ALTER_DROP_RE = re.compile(r"DROP\s+(PRIMARY\s+KEY|CONSTRAINT)\s+", re.IGNORECASE)
_DROP_OWNED_RE = re.compile(r"DROP\s+OWNED\s+BY\s+(\S+)", re.IGNORECASE)


class DdlCommand(SqlCommand):
    """Runs DDL, reporting a message typed by the object the statement works on."""

    is_updating = True

    def __init__(self, verb: str, *aliases: str) -> None:
        super().__init__(verb, *aliases)

    def is_drop_command(self, sql: str) -> bool:
        if self.verb == "DROP":
            return True
        if self.verb != "ALTER":
            return False
        return _ALTER_DROP_RE.search(sql) is not None

    def execute(self, sql: str) -> ExecutionResult:
        ctx = self.context
        runner = ctx.runner
        caps = ctx.connection.capabilities
        result = self.create_result(sql)
        if ctx.cancelled.is_set():
            return self._cancelled_before_start(result)
        result.ignore_update_counts = True

        use_savepoint = runner.use_savepoint_for_ddl()
        if use_savepoint and not caps.supports_savepoints:
            use_savepoint = False
            logger.warning("A savepoint should be used for this DDL command, but %s does not support savepoints", caps.dbid)

        info = get_ddl_object_info(sql)
        if info is not None and self.verb == "ALTER" and info.object_type == "PACKAGE":
            # errors of "alter package .. compile" are reported for the body
            info.object_type = "PACKAGE BODY"

        to_execute = self.get_sql_to_execute(sql)
        ignore_drop_error = self.is_drop_command(to_execute) and runner.ignore_drop_errors
        try:
            statement = self.open_statement()
            result.set_success()
            if use_savepoint:
                runner.set_savepoint()
            has_result = statement.execute(to_execute)
            self.process_results(result, has_result)
            if result.success:
                result.add_message(self._build_success_message(info, to_execute))
            runner.release_savepoint()
        except Exception as exc:
            runner.rollback_savepoint()
            if ignore_drop_error:
                self._add_drop_warning(info, result)
                self.add_error_position(result, to_execute, exc)
                result.set_success()
            else:
                result.set_failure()
                self.add_error_statement(result, to_execute)
                self.add_error_position(result, to_execute, exc)
                runner.variable_pool.set_last_error(exc)
                logger.info("Error executing %s: %s", self.verb, exc)
        finally:
            if ctx.cancelled.is_set():
                result.cancelled = True
            self.done()
        return result

    def _add_drop_warning(self, info: DdlObjectInfo | None, result: ExecutionResult) -> None:
        if info is not None and info.object_names:
            result.add_warning(get_message("drop_warning_named", info.display_name))
        else:
            result.add_warning(get_message("drop_warning"))

    def _build_success_message(self, info: DdlObjectInfo | None, sql: str) -> str | None:
        if self.verb == "DROP":
            owned = _DROP_OWNED_RE.search(sql)
            if owned:
                return get_message("drop_success", "Objects owned by", owned.group(1).strip('"'))
        msg = self.get_success_message(info, self.verb)
        if msg is None:
            return self.get_default_success_message(None)
        return msg


def create_ddl_commands(include_recreate: bool = False) -> list[DdlCommand]:
    commands = [
        DdlCommand("DROP"),
        DdlCommand("CREATE", "CREATE OR REPLACE"),
        DdlCommand("ALTER"),
        DdlCommand("GRANT"),
        DdlCommand("REVOKE"),
    ]
    if include_recreate:
        commands.append(DdlCommand("RECREATE"))
    return commands
