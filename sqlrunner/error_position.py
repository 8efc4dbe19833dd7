"""Build :class:`ErrorDescriptor` objects from driver exceptions.

Drivers report the location of a syntax error in many different ways:
a character offset (``Position: 17``), a line and column, or only the
offending token.  The backend capabilities list regular expressions with
the named groups ``position``, ``line``, ``column`` and ``token``; the first
pattern that matches the error message wins.
"""

from __future__ import annotations

import logging
import re

from sqlrunner.models.capabilities import DbCapabilities
from sqlrunner.models.result import ErrorDescriptor

logger = logging.getLogger(__name__)


class ErrorPositionReader:
    """Extract error details from exceptions raised by a DB-API driver."""

    def __init__(self, capabilities: DbCapabilities) -> None:
        self._one_based = capabilities.error_position_one_based
        self._patterns: list[re.Pattern[str]] = []
        for pattern in capabilities.error_position_patterns:
            try:
                self._patterns.append(re.compile(pattern))
            except re.error as exc:
                logger.warning("Ignoring invalid error position pattern %r: %s", pattern, exc)

    def get_error_descriptor(self, sql: str, error: BaseException) -> ErrorDescriptor:
        message = _error_message(error)
        descriptor = ErrorDescriptor(
            message=message,
            error_code=_error_code(error),
            sql_state=_sql_state(error),
        )
        for pattern in self._patterns:
            match = pattern.search(message)
            if match is None:
                continue
            self._apply_match(descriptor, match, sql)
            break
        return descriptor

    def _apply_match(self, descriptor: ErrorDescriptor, match: re.Match[str], sql: str) -> None:
        groups = match.groupdict()
        offset = 1 if self._one_based else 0
        if groups.get("token"):
            descriptor.token = groups["token"]
        if groups.get("line"):
            descriptor.line = int(groups["line"])
        if groups.get("column"):
            descriptor.column = int(groups["column"])

        if groups.get("position"):
            descriptor.error_position = max(int(groups["position"]) - offset, 0)
        elif descriptor.line is not None:
            descriptor.error_position = _offset_of(sql, descriptor.line, descriptor.column or 1)
        elif descriptor.token:
            pos = sql.lower().find(descriptor.token.lower())
            if pos >= 0:
                descriptor.error_position = pos

        if descriptor.error_position is not None and descriptor.line is None:
            before = sql[: descriptor.error_position]
            descriptor.line = before.count("\n") + 1
            descriptor.column = descriptor.error_position - (before.rfind("\n") + 1) + 1


def format_error_location(sql: str, descriptor: ErrorDescriptor) -> str | None:
    """Return a short ``(line x, column y)`` hint, or ``None`` without a position."""
    if descriptor.line is None:
        return None
    if descriptor.column is None:
        return f"(line {descriptor.line})"
    return f"(line {descriptor.line}, column {descriptor.column})"


def _offset_of(sql: str, line: int, column: int) -> int | None:
    lines = sql.split("\n")
    if line < 1 or line > len(lines):
        return None
    return sum(len(text) + 1 for text in lines[: line - 1]) + max(column - 1, 0)


def _error_message(error: BaseException) -> str:
    message = str(error).strip()
    return message or type(error).__name__


def _error_code(error: BaseException) -> int | None:
    for attr in ("sqlite_errorcode", "errno", "code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    if error.args and isinstance(error.args[0], int):
        return error.args[0]
    return None


def _sql_state(error: BaseException) -> str | None:
    for attr in ("pgcode", "sqlstate"):
        value = getattr(error, attr, None)
        if isinstance(value, str) and value:
            return value
    if len(error.args) > 1 and isinstance(error.args[0], str) and len(error.args[0]) == 5:
        return error.args[0]
    return None
