"""Statement terminators.

A delimiter is either the standard ``;`` which terminates a statement when
the (comment free) text ends with it, or an alternate delimiter such as
``/`` or ``GO`` which must appear on a line of its own.
"""

from __future__ import annotations

import re

from sqlrunner.parser.sql_util import strip_comments

ORA_ALIASES = frozenset({"ora", "oracle", "sqlplus"})
MSSQL_ALIASES = frozenset({"mssql", "sqlserver"})


class DelimiterError(ValueError):
    """Raised for an empty or otherwise unusable delimiter."""


class DelimiterDefinition:
    """A statement terminator and the rules to detect it."""

    __slots__ = ("_delimiter", "_single_line", "_pattern")

    def __init__(self, delimiter: str, single_line: bool | None = None) -> None:
        text = (delimiter or "").strip()
        if not text:
            raise DelimiterError("Delimiter must not be empty")
        self._delimiter = text
        self._single_line = (text != ";") if single_line is None else single_line
        self._pattern: re.Pattern[str] | None = None
        if self._single_line:
            self._pattern = re.compile(r"[\r\n]+[ \t]*" + re.escape(text) + r"[ \t]*[\r\n]*$", re.IGNORECASE)

    # -- Construction --------------------------------------------------------

    @classmethod
    def parse(cls, text: str | None) -> DelimiterDefinition:
        """Create a delimiter from user input.

        ``ora``, ``oracle`` and ``sqlplus`` select the slash delimiter,
        ``mssql`` and ``sqlserver`` select ``GO``.  Anything after a colon
        (or after a semicolon that is not the first character) is ignored so
        that arguments like ``/:nl`` keep working.  Empty input yields the
        standard delimiter.
        """
        if text is None or not text.strip():
            return STANDARD_DELIMITER
        arg = text.strip()
        lower = arg.lower()
        if lower in ORA_ALIASES:
            return ORA_DELIMITER
        if lower in MSSQL_ALIASES:
            return MSSQL_DELIMITER
        if arg == ";":
            return STANDARD_DELIMITER

        pos = arg.find(":")
        if pos == -1:
            pos = arg.find(";", 1)
        if pos > -1:
            arg = arg[:pos]
        return cls(arg)

    # -- Properties ----------------------------------------------------------

    @property
    def delimiter(self) -> str:
        return self._delimiter

    @property
    def single_line(self) -> bool:
        return self._single_line

    @property
    def is_standard(self) -> bool:
        return self._delimiter == ";"

    @property
    def script_text(self) -> str:
        """Text to append after a statement when writing a script."""
        if self.is_standard:
            return self._delimiter
        return f"\n{self._delimiter}\n"

    # -- Matching ------------------------------------------------------------

    def terminates(self, sql: str | None) -> bool:
        """Return True when *sql* ends with this delimiter.

        Comments are removed first so that a statement followed only by
        comment noise is still recognized as terminated.
        """
        if not sql:
            return False
        cleaned = strip_comments(sql).rstrip()
        if self._pattern is not None:
            return self._pattern.search(cleaned) is not None
        return cleaned.endswith(self._delimiter)

    def strip_from_end(self, sql: str | None) -> str | None:
        """Remove the trailing delimiter from *sql* and trim the remainder."""
        if not sql:
            return sql
        if self._pattern is not None:
            match = self._pattern.search(sql.rstrip())
            start = match.start() if match else -1
        else:
            start = sql.rfind(self._delimiter)
        if start > -1:
            return sql[:start].strip()
        return sql

    # -- Dunder --------------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if isinstance(other, DelimiterDefinition):
            return self._single_line == other._single_line and self._delimiter.lower() == other._delimiter.lower()
        if isinstance(other, str):
            return self._delimiter.lower() == other.strip().lower()
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._delimiter.lower(), self._single_line))

    def __str__(self) -> str:
        return self._delimiter

    def __repr__(self) -> str:
        return f"DelimiterDefinition({self._delimiter!r}, single_line={self._single_line})"


STANDARD_DELIMITER = DelimiterDefinition(";")
ORA_DELIMITER = DelimiterDefinition("/")
MSSQL_DELIMITER = DelimiterDefinition("GO")
