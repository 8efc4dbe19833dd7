"""Script splitting and execution.

:class:`ScriptParser` splits script text into statements.  Delimiters
inside quotes and comments are ignored, and the delimiter may change while
the script is being read (``WbDelimiter``, ``DELIMITER``, ``SET TERM``).
:class:`ScriptRunner` feeds the statements one by one to a
:class:`~sqlrunner.runner.StatementRunner`.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Iterator
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from sqlrunner.models.result import ExecutionResult
from sqlrunner.parser.delimiter import DelimiterDefinition
from sqlrunner.parser.sql_util import strip_comments
from sqlrunner.runner import ConnectionRequiredError, StatementRunner

logger = logging.getLogger(__name__)

# Statements that are complete at the end of their line, whatever the delimiter.
_LINE_COMMAND_RE = re.compile(r"[ \t]*(?:WbDelimiter|DELIMITER)\b[^\r\n]*", re.IGNORECASE)


class ScriptError(ValueError):
    """Raised for invalid script runner arguments."""


class ScriptParser:
    """Splits a script into statements.

    Parameters
    ----------
    script:
        The script text.
    alternate_delimiter:
        Delimiter to use instead of ``;``.  Single-line delimiters such as
        ``/`` or ``GO`` must stand on a line of their own; other symbolic
        delimiters (``//``, ``$$``, ``^``) may also end a line.
    """

    def __init__(self, script: str, alternate_delimiter: DelimiterDefinition | None = None) -> None:
        self._script = script or ""
        self._pos = 0
        self.alternate_delimiter = alternate_delimiter

    @property
    def alternate_delimiter(self) -> DelimiterDefinition | None:
        return self._alternate

    @alternate_delimiter.setter
    def alternate_delimiter(self, delimiter: DelimiterDefinition | None) -> None:
        if delimiter is not None and delimiter.is_standard:
            delimiter = None
        self._alternate = delimiter

    @property
    def position(self) -> int:
        return self._pos

    def __iter__(self) -> Iterator[str]:
        while True:
            sql = self.next_statement()
            if sql is None:
                return
            yield sql

    def next_statement(self) -> str | None:
        """Return the next non-empty statement without its delimiter, or ``None``."""
        while self._pos < len(self._script):
            sql = self._read_statement()
            if strip_comments(sql).strip():
                return sql.strip()
        return None

    def _read_statement(self) -> str:
        script = self._script
        n = len(script)
        start = self._pos

        line_command = self._match_line_command(start)
        if line_command is not None:
            return line_command

        alternate = self._alternate
        quote: str | None = None
        in_line_comment = False
        in_block_comment = False
        line_start = start
        i = start
        while i < n:
            ch = script[i]
            if in_line_comment:
                if ch == "\n":
                    in_line_comment = False
            elif in_block_comment:
                if script.startswith("*/", i):
                    in_block_comment = False
                    i += 1
            elif quote is not None:
                if ch == quote:
                    quote = None
            elif ch in ("'", '"'):
                quote = ch
            elif script.startswith("--", i):
                in_line_comment = True
            elif script.startswith("/*", i):
                in_block_comment = True
                i += 1
            elif alternate is None and ch == ";":
                self._pos = i + 1
                return script[start:i]

            if ch == "\n" and alternate is not None and quote is None and not in_block_comment:
                end = self._alternate_end(line_start, i)
                if end is not None:
                    self._pos = i + 1
                    return script[start:end]
                line_start = i + 1
            elif ch == "\n":
                line_start = i + 1
            i += 1

        self._pos = n
        if alternate is not None and quote is None and not in_block_comment:
            end = self._alternate_end(line_start, n)
            if end is not None:
                return script[start:end]
        return script[start:]

    def _match_line_command(self, start: int) -> str | None:
        # skip blank lines before looking for a line command
        text = self._script
        pos = start
        while pos < len(text) and text[pos] in " \t\r\n":
            pos += 1
        match = _LINE_COMMAND_RE.match(text, pos)
        if match is None:
            return None
        line = match.group(0).rstrip()
        self._pos = match.end()
        if self._alternate is not None and self._alternate.terminates("\n" + line):
            line = self._alternate.strip_from_end("\n" + line) or line
        elif line.endswith(";") and len(line.split()) > 1 and line.split()[-1] != ";":
            line = line[:-1]
        return line

    def _alternate_end(self, line_start: int, line_end: int) -> int | None:
        """Return where the statement ends if the line closes it, else ``None``."""
        delimiter = self._alternate.delimiter
        line = self._script[line_start:line_end]
        stripped = line.strip()
        if stripped.lower() == delimiter.lower():
            return line_start
        symbolic = delimiter != "/" and not any(c.isalnum() for c in delimiter)
        if symbolic:
            trimmed = line.rstrip()
            if trimmed.endswith(delimiter):
                return line_start + len(trimmed) - len(delimiter)
        return None


class ScriptSummary(BaseModel):
    """Outcome of a script run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    total: int = Field(default=0, description="Number of statements executed.")
    succeeded: int = Field(default=0)
    failed: int = Field(default=0)
    cancelled: bool = Field(default=False, description="The run was cancelled or stopped by the user.")
    duration_ms: int = Field(default=0)
    results: list[ExecutionResult] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0 and not self.cancelled


class ScriptRunner:
    """Runs all statements of a script through a :class:`StatementRunner`.

    Parameters
    ----------
    runner:
        The statement runner, already bound to a connection if one is needed.
    continue_on_error:
        Keep going after a failing statement instead of stopping.
    on_result:
        Called with every result as soon as its statement finished.
    """

    def __init__(
        self,
        runner: StatementRunner,
        continue_on_error: bool = False,
        on_result: Callable[[ExecutionResult], None] | None = None,
    ) -> None:
        self.runner = runner
        self.continue_on_error = continue_on_error
        self.on_result = on_result
        self._cancelled = False

    def cancel(self) -> None:
        """Stop after the running statement; safe to call from another thread."""
        self._cancelled = True
        self.runner.cancel()

    def run_file(self, path: Path, encoding: str = "utf-8") -> ScriptSummary:
        if not path.is_file():
            raise ScriptError(f"Script file not found: {path}")
        return self.run(path.read_text(encoding=encoding))

    def run(self, script: str) -> ScriptSummary:
        """Run every statement of *script* and return the summary."""
        if script is None:
            raise ScriptError("No script given")
        self._cancelled = False
        runner = self.runner
        parser = ScriptParser(script, runner.alternate_delimiter)
        summary = ScriptSummary()
        started = time.perf_counter()
        try:
            for sql in parser:
                if self._cancelled:
                    summary.cancelled = True
                    break
                try:
                    result = runner.run_statement(sql)
                except ConnectionRequiredError:
                    runner.abort()
                    raise
                finally:
                    runner.statement_done()

                parser.alternate_delimiter = runner.alternate_delimiter
                summary.total += 1
                summary.results.append(result)
                if result.success:
                    summary.succeeded += 1
                else:
                    summary.failed += 1
                if self.on_result is not None:
                    self.on_result(result)

                if result.cancelled or result.stop_script or self._cancelled:
                    logger.info("Script stopped after statement %d", summary.total)
                    summary.cancelled = True
                    break
                if not result.success and not self.continue_on_error:
                    logger.info("Script stopped after error in statement %d", summary.total)
                    break
        finally:
            runner.done()
            summary.duration_ms = int((time.perf_counter() - started) * 1000)
        logger.debug(
            "Script finished: %d statement(s), %d ok, %d failed",
            summary.total,
            summary.succeeded,
            summary.failed,
        )
        return summary
