"""sqlrunner CLI application -- Typer-based interface to the statement runner.

``sqlrunner run`` executes a script file, ``sqlrunner exec`` a single
statement.  Results and messages are rendered to *stderr* via Rich; the
exit code is 0 when every statement succeeded, 1 when a statement failed
and 2 when the connection could not be opened.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from sqlrunner.cli.display import display_result, display_summary
from sqlrunner.config import RunMode, load_settings
from sqlrunner.connection import ConnectionProfile, DbConnection, connect
from sqlrunner.history import StatementHistory
from sqlrunner.logging_config import configure_logging
from sqlrunner.models.capabilities import capabilities_for
from sqlrunner.parser.delimiter import DelimiterDefinition, DelimiterError
from sqlrunner.runner import ConnectionRequiredError, StatementRunner
from sqlrunner.script import ScriptRunner
from sqlrunner.variables import VariableError

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="sqlrunner",
    help="sqlrunner - run SQL statements and scripts against any DB-API database",
    no_args_is_help=True,
)
console = Console(stderr=True)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _parse_variables(values: list[str] | None) -> dict[str, str]:
    """Parse ``name=value`` pairs given with ``--var``."""
    result: dict[str, str] = {}
    for item in values or []:
        name, sep, value = item.partition("=")
        if not sep or not name.strip():
            console.print(f"[red]Invalid variable definition '{item}', expected name=value[/red]")
            raise typer.Exit(code=3)
        result[name.strip()] = value
    return result


def _open_connection(url: str, read_only: bool, dbid: str | None) -> DbConnection:
    profile = ConnectionProfile(name=url.split("://", 1)[0], read_only=read_only)
    capabilities = capabilities_for(dbid) if dbid else None
    try:
        return connect(url, profile=profile, capabilities=capabilities)
    except Exception as exc:
        console.print(f"[red]Could not connect to {url}: {exc}[/red]")
        raise typer.Exit(code=2) from exc


def _build_runner(
    connection: DbConnection,
    run_mode: RunMode,
    max_rows: int | None,
    variables: dict[str, str],
    delimiter: str | None,
) -> StatementRunner:
    overrides: dict[str, object] = {"run_mode": run_mode}
    if max_rows is not None:
        overrides["max_rows"] = max_rows
    settings = load_settings(**overrides)
    configure_logging(settings.log_level, settings.structured_logging)

    history = StatementHistory(settings.history_size) if settings.history_size > 0 else None
    if history is not None and settings.history_file is not None:
        history.load(settings.history_file)

    runner = StatementRunner(settings=settings, history=history)
    runner.set_connection(connection)
    try:
        for name, value in variables.items():
            runner.variable_pool.set_parameter_value(name, value)
    except VariableError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=3) from exc
    if delimiter:
        try:
            runner.alternate_delimiter = DelimiterDefinition.parse(delimiter)
        except DelimiterError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=3) from exc
    return runner


def _save_history(runner: StatementRunner) -> None:
    history_file = runner.settings.history_file
    if runner.history is None or history_file is None:
        return
    try:
        runner.history.save(history_file)
    except OSError as exc:
        console.print(f"[yellow]Could not save statement history: {exc}[/yellow]")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def run(
    script: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="SQL script to execute.",
    ),
    url: str = typer.Option(
        ...,
        "--url",
        help="SQLAlchemy database URL, e.g. sqlite:///data.db.",
        envvar="SQLRUNNER_URL",
    ),
    delimiter: str | None = typer.Option(
        None,
        "--delimiter",
        help="Alternate statement delimiter (e.g. '/', 'GO', 'oracle', 'mssql').",
    ),
    continue_on_error: bool = typer.Option(
        False,
        "--continue-on-error",
        help="Keep running the script after a failing statement.",
    ),
    max_rows: int | None = typer.Option(
        None,
        "--max-rows",
        min=0,
        help="Maximum number of rows retrieved per result (0 = unlimited).",
    ),
    var: list[str] | None = typer.Option(
        None,
        "--var",
        help="Define a variable as name=value.  May be repeated.",
    ),
    read_only: bool = typer.Option(
        False,
        "--read-only",
        help="Reject every statement that modifies data.",
    ),
    dbid: str | None = typer.Option(
        None,
        "--dbid",
        help="Capability preset to use instead of the one derived from the URL.",
    ),
) -> None:
    """Execute all statements of a SQL script."""
    variables = _parse_variables(var)
    connection = _open_connection(url, read_only, dbid)
    with connection:
        runner = _build_runner(connection, RunMode.BATCH, max_rows, variables, delimiter)
        script_runner = ScriptRunner(
            runner,
            continue_on_error=continue_on_error,
            on_result=lambda result: display_result(console, result, feedback=runner.verbose_feedback),
        )
        try:
            summary = script_runner.run_file(script)
        except ConnectionRequiredError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=2) from exc
        finally:
            _save_history(runner)
        if not connection.autocommit:
            if summary.success:
                connection.commit()
            else:
                connection.rollback()

    display_summary(console, summary)
    if not summary.success:
        raise typer.Exit(code=1)


@app.command("exec")
def exec_statement(
    sql: str = typer.Argument(..., help="The statement to execute."),
    url: str = typer.Option(
        ...,
        "--url",
        help="SQLAlchemy database URL, e.g. sqlite:///data.db.",
        envvar="SQLRUNNER_URL",
    ),
    max_rows: int | None = typer.Option(
        None,
        "--max-rows",
        min=0,
        help="Maximum number of rows retrieved (0 = unlimited).",
    ),
    var: list[str] | None = typer.Option(
        None,
        "--var",
        help="Define a variable as name=value.  May be repeated.",
    ),
    read_only: bool = typer.Option(
        False,
        "--read-only",
        help="Reject the statement if it modifies data.",
    ),
    dbid: str | None = typer.Option(
        None,
        "--dbid",
        help="Capability preset to use instead of the one derived from the URL.",
    ),
) -> None:
    """Execute a single SQL statement."""
    variables = _parse_variables(var)
    connection = _open_connection(url, read_only, dbid)
    with connection:
        runner = _build_runner(connection, RunMode.CONSOLE, max_rows, variables, None)
        try:
            result = runner.run_statement(sql)
        except ConnectionRequiredError as exc:
            console.print(f"[red]{exc}[/red]")
            raise typer.Exit(code=2) from exc
        finally:
            runner.statement_done()
            runner.done()
            _save_history(runner)
        if result.success and not connection.autocommit:
            connection.commit()

    display_result(console, result, feedback=runner.verbose_feedback)
    if not result.success:
        raise typer.Exit(code=1)
