"""Shared fixtures for the sqlrunner tests.

Most tests run against an in-memory SQLite database opened through the
standard library driver and wrapped in a :class:`DbConnection` with the
``sqlite`` capability preset.  Each runner gets its own variable pool so
that definitions never leak between tests.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator

import pytest

from sqlrunner.config import load_settings
from sqlrunner.connection import ConnectionProfile, DbConnection
from sqlrunner.history import StatementHistory
from sqlrunner.models.capabilities import capabilities_for
from sqlrunner.runner import StatementRunner
from sqlrunner.variables import VariablePool


def make_connection(
    dbid: str = "sqlite",
    profile: ConnectionProfile | None = None,
    **overrides: object,
) -> DbConnection:
    raw = sqlite3.connect(":memory:", check_same_thread=False)
    return DbConnection(
        raw,
        capabilities=capabilities_for(dbid, **overrides),
        profile=profile,
        connection_id="test",
    )


def make_runner(connection: DbConnection | None = None, **settings: object) -> StatementRunner:
    runner = StatementRunner(
        settings=load_settings(**settings),
        variable_pool=VariablePool("test"),
        history=StatementHistory(10),
    )
    if connection is not None:
        runner.set_connection(connection)
    return runner


@pytest.fixture()
def connection() -> Iterator[DbConnection]:
    conn = make_connection()
    yield conn
    conn.close()


@pytest.fixture()
def runner(connection: DbConnection) -> StatementRunner:
    return make_runner(connection)


@pytest.fixture()
def orders(runner: StatementRunner) -> StatementRunner:
    """Runner whose database holds a small ``orders`` table."""
    for sql in (
        "CREATE TABLE orders (id INTEGER PRIMARY KEY, customer TEXT, amount INTEGER)",
        "INSERT INTO orders VALUES (1, 'alice', 10)",
        "INSERT INTO orders VALUES (2, 'bob', 20)",
        "INSERT INTO orders VALUES (3, 'alice', 30)",
    ):
        result = runner.run_statement(sql)
        runner.statement_done()
        assert result.success, result.message_text()
    runner.history.clear()
    return runner


@pytest.fixture()
def connection_factory() -> Iterator:
    """Factory for extra connections; all of them are closed after the test."""
    opened: list[DbConnection] = []

    def _factory(dbid: str = "sqlite", profile: ConnectionProfile | None = None, **overrides: object) -> DbConnection:
        conn = make_connection(dbid, profile, **overrides)
        opened.append(conn)
        return conn

    yield _factory
    for conn in opened:
        conn.close()


@pytest.fixture()
def runner_factory():
    return make_runner


@pytest.fixture()
def offline_runner() -> StatementRunner:
    """Runner without a connection."""
    return make_runner()
