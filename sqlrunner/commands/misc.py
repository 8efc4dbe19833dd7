"""Backend specific verbs: ignored statements and ``USE``."""

from __future__ import annotations

import logging
import re

from sqlrunner.commands.base import SqlCommand
from sqlrunner.messages import get_message
from sqlrunner.models.result import ExecutionResult

logger = logging.getLogger(__name__)

_USE_RE = re.compile(r"^\s*USE\s+(?P<name>.+?)\s*;?\s*$", re.IGNORECASE | re.DOTALL)


class IgnoredCommand(SqlCommand):
    """Accepts a verb the backend cannot run and reports it as ignored."""

    connection_required = False

    def __init__(self, verb: str, silent: bool = False) -> None:
        super().__init__(verb)
        self.silent = silent

    def execute(self, sql: str) -> ExecutionResult:
        result = self.create_result(sql)
        if not self.silent:
            result.add_message(get_message("command_ignored", self.verb))
        result.set_success()
        self.done()
        return result


class UseCommand(SqlCommand):
    """Switches the current database and remembers it on the connection."""

    VERBS = ("USE",)

    def append_success_message(self, result: ExecutionResult) -> None:
        match = _USE_RE.match(result.sql)
        if match is None:
            super().append_success_message(result)
            return
        name = match.group("name").strip('"[]`')
        self.context.connection.current_database = name
        logger.debug("Current database changed to %s", name)
        result.add_message(get_message("database_changed", name))
