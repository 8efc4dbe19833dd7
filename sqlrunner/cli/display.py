"""Rich output formatting for the sqlrunner CLI.

All functions write to a :class:`rich.console.Console` instance (bound to
*stderr* by the CLI) so that nothing but result data could ever end up on
*stdout*.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from sqlrunner.models.result import MessageKind

if TYPE_CHECKING:
    from sqlrunner.models.result import ExecutionResult
    from sqlrunner.models.table import ResultTable
    from sqlrunner.script import ScriptSummary


# ---------------------------------------------------------------------------
# Message colour mapping
# ---------------------------------------------------------------------------

_KIND_COLOURS: dict[MessageKind, str] = {
    MessageKind.INFO: "white",
    MessageKind.WARNING: "yellow",
    MessageKind.ERROR: "red",
}


def _format_value(value: Any) -> str:
    if value is None:
        return "[dim]NULL[/dim]"
    if isinstance(value, bytes):
        return f"[dim]<{len(value)} bytes>[/dim]"
    return escape(str(value))


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


def display_table(console: Console, table: ResultTable) -> None:
    """Render one result table."""
    rich_table = Table(show_lines=False, pad_edge=True, expand=False)
    for column in table.columns:
        rich_table.add_column(escape(column), style="bold" if column == table.columns[0] else None)
    for row in table.rows:
        rich_table.add_row(*(_format_value(value) for value in row))
    console.print(rich_table)
    if table.truncated:
        console.print(f"[dim]Only the first {table.row_count} row(s) were retrieved.[/dim]")


def display_result(console: Console, result: ExecutionResult, feedback: bool = True) -> None:
    """Render the tables and messages of *result*.

    Parameters
    ----------
    console:
        Rich console to write to.
    result:
        Result of one statement.
    feedback:
        Show informational messages.  Warnings and errors are always shown.
    """
    for table in result.tables:
        display_table(console, table)
    for message in result.messages:
        if message.kind == MessageKind.INFO and not feedback:
            continue
        colour = _KIND_COLOURS[message.kind]
        console.print(f"[{colour}]{escape(message.text)}[/{colour}]")
    if feedback and result.execution_duration_ms is not None and result.success:
        console.print(f"[dim]({result.execution_duration_ms}ms)[/dim]")


def display_summary(console: Console, summary: ScriptSummary) -> None:
    """Render the closing line of a script run."""
    colour = "green" if summary.success else "red"
    line = f"{summary.total} statement(s) executed, {summary.succeeded} ok, {summary.failed} failed"
    if summary.cancelled:
        line += ", stopped"
    console.print(f"[{colour}]{line}[/{colour}] [dim]({summary.duration_ms}ms)[/dim]")
