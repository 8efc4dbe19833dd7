"""DB-API 2.0 connection wrapper and statement handle.

:class:`DbConnection` binds a raw driver connection to its
:class:`~sqlrunner.models.capabilities.DbCapabilities` and to the
session state the execution engine needs (read-only session, update
confirmation, server output capture, savepoints).

:class:`StatementHandle` gives a single cursor the multi-result protocol
the engine drains: an ``execute`` that reports whether a result cursor is
available, an update count, and a ``get_more_results`` step built on the
optional DB-API ``nextset()`` extension.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Any

from pydantic import BaseModel, Field
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from sqlrunner.models.capabilities import DbCapabilities, EndReadOnlyTransaction, capabilities_for

logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class ConnectionProfile(BaseModel):
    """User-level settings of a connection that influence statement execution."""

    name: str = Field(default="default", description="Display name of the connection.")
    read_only: bool = Field(default=False, description="Reject every updating statement.")
    confirm_updates: bool = Field(default=False, description="Ask before running updating statements.")
    prevent_dml_without_where: bool = Field(
        default=False,
        description="Ask before running UPDATE or DELETE statements without a WHERE clause.",
    )
    ignore_drop_errors: bool = Field(default=False, description="Report failing DROP statements as warnings.")
    hide_warnings: bool = Field(default=False, description="Do not attach driver warnings to results.")
    remove_comments: bool = Field(default=False, description="Strip comments before sending statements.")
    autocommit: bool | None = Field(default=None, description="Autocommit mode to apply on connect.")


class Savepoint:
    """An active savepoint on a :class:`DbConnection`."""

    __slots__ = ("name",)

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"Savepoint({self.name!r})"


# ---------------------------------------------------------------------------
# Statement handle
# ---------------------------------------------------------------------------


class StatementHandle:
    """A cursor with JDBC-style multi-result semantics.

    The update count of the current result is kept until the next call to
    :meth:`execute` or :meth:`get_more_results`, so repeated calls to
    :meth:`get_update_count` return the same value.
    """

    def __init__(self, connection: DbConnection) -> None:
        self._connection = connection
        self._cursor = connection.raw_connection.cursor()
        self._has_result = False
        self._update_count = -1
        self._batch: list[str] = []
        self.max_rows = 0
        self.closed = False

    @property
    def cursor(self) -> Any:
        return self._cursor

    @property
    def result_cursor(self) -> Any | None:
        """The cursor if the current result produced rows, else ``None``."""
        return self._cursor if self._has_result else None

    def execute(self, sql: str) -> bool:
        """Execute *sql*; return ``True`` when the first result is a row set."""
        self._cursor.execute(sql)
        self._capture_state()
        return self._has_result

    def get_update_count(self) -> int:
        """Return the update count of the current result or -1."""
        return self._update_count

    def get_more_results(self) -> bool:
        """Advance to the next result; return ``True`` when it is a row set."""
        nextset = getattr(self._cursor, "nextset", None)
        if nextset is None:
            self._has_result = False
            self._update_count = -1
            return False
        try:
            advanced = nextset()
        except Exception as exc:
            # Drivers without multiple result support raise NotSupportedError.
            logger.debug("nextset() not available: %s", exc)
            advanced = None
        if not advanced:
            self._has_result = False
            self._update_count = -1
            return False
        self._capture_state()
        return self._has_result

    def _capture_state(self) -> None:
        self._has_result = self._cursor.description is not None
        if self._has_result:
            self._update_count = -1
        else:
            rowcount = getattr(self._cursor, "rowcount", -1)
            self._update_count = rowcount if isinstance(rowcount, int) else -1

    # -- Batches -------------------------------------------------------------

    def add_batch(self, sql: str) -> None:
        self._batch.append(sql)

    def clear_batch(self) -> None:
        self._batch.clear()

    def execute_batch(self) -> list[int]:
        """Run all collected statements and return their update counts."""
        counts: list[int] = []
        try:
            for sql in self._batch:
                self._cursor.execute(sql)
                rowcount = getattr(self._cursor, "rowcount", -1)
                counts.append(rowcount if isinstance(rowcount, int) else -1)
        finally:
            self._batch.clear()
        return counts

    # -- Options -------------------------------------------------------------

    def set_query_timeout(self, seconds: int) -> None:
        """Apply a query timeout in seconds; 0 means no timeout."""
        if seconds <= 0:
            return
        caps = self._connection.capabilities
        if caps.query_timeout_sql:
            helper = self._connection.raw_connection.cursor()
            try:
                helper.execute(caps.query_timeout_sql.format(seconds=seconds, millis=seconds * 1000))
            finally:
                helper.close()
        elif hasattr(self._cursor, "timeout"):
            self._cursor.timeout = seconds
        elif hasattr(self._connection.driver_connection, "timeout"):
            self._connection.driver_connection.timeout = seconds
        else:
            logger.debug("Query timeout not supported by %s", caps.dbid)

    # -- Diagnostics ---------------------------------------------------------

    def get_warnings(self) -> list[str]:
        """Return warnings the driver attached to the last execution."""
        messages = getattr(self._cursor, "messages", None)
        if not messages:
            return []
        result: list[str] = []
        for message in messages:
            if isinstance(message, tuple) and len(message) > 1:
                result.append(str(message[1]))
            else:
                result.append(str(message))
        return result

    def clear_warnings(self) -> None:
        messages = getattr(self._cursor, "messages", None)
        if isinstance(messages, list):
            messages.clear()

    # -- Lifecycle -----------------------------------------------------------

    def cancel(self) -> None:
        """Ask the driver to abort the running statement."""
        cancel = getattr(self._cursor, "cancel", None)
        if cancel is None:
            driver = self._connection.driver_connection
            cancel = getattr(driver, "interrupt", None) or getattr(driver, "cancel", None)
        if cancel is None:
            logger.debug("Driver for %s does not support cancelling statements", self._connection.id)
            return
        cancel()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._batch.clear()
        try:
            self._cursor.close()
        except Exception:
            logger.debug("Ignoring error while closing cursor", exc_info=True)


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class DbConnection:
    """A DB-API connection with its capabilities and session state.

    Parameters
    ----------
    raw_connection:
        Any PEP 249 connection object (or a SQLAlchemy pool proxy around one).
    capabilities:
        Backend capabilities.  Defaults to the ``generic`` preset.
    profile:
        Connection profile.  Defaults to an unrestricted profile.
    connection_id:
        Identifier used in the execution log.  Generated when omitted.
    """

    def __init__(
        self,
        raw_connection: Any,
        capabilities: DbCapabilities | None = None,
        profile: ConnectionProfile | None = None,
        connection_id: str | None = None,
        engine: Engine | None = None,
    ) -> None:
        self.raw_connection = raw_connection
        self.capabilities = capabilities or capabilities_for("generic")
        self.profile = profile or ConnectionProfile()
        self.id = connection_id or f"{self.capabilities.dbid}-{next(_connection_ids)}"
        self._engine = engine
        self._lock = threading.Lock()
        self._savepoint_ids = itertools.count(1)

        self.session_read_only = False
        self.confirm_updates_in_session: bool | None = None
        self.server_output_enabled = False
        self.current_database: str | None = None
        self.uncommitted_changes = False
        self.closed = False

        if self.profile.autocommit is not None:
            self.autocommit = self.profile.autocommit

    # -- Driver access -------------------------------------------------------

    @property
    def driver_connection(self) -> Any:
        """The unwrapped driver connection (bypassing SQLAlchemy's pool proxy)."""
        return getattr(self.raw_connection, "dbapi_connection", None) or self.raw_connection

    @property
    def display_name(self) -> str:
        return self.profile.name

    def create_statement(self) -> StatementHandle:
        return StatementHandle(self)

    # -- Session state -------------------------------------------------------

    def is_session_read_only(self) -> bool:
        return self.session_read_only

    def is_read_only(self) -> bool:
        return self.profile.read_only or self.session_read_only

    def confirm_updates(self) -> bool:
        if self.confirm_updates_in_session is not None:
            return self.confirm_updates_in_session
        return self.profile.confirm_updates

    @property
    def autocommit(self) -> bool:
        driver = self.driver_connection
        value = getattr(driver, "autocommit", None)
        if isinstance(value, bool):
            return value
        if hasattr(driver, "isolation_level"):
            return driver.isolation_level is None
        return False

    @autocommit.setter
    def autocommit(self, flag: bool) -> None:
        driver = self.driver_connection
        if isinstance(getattr(driver, "autocommit", None), bool):
            driver.autocommit = flag
        elif hasattr(driver, "isolation_level"):
            driver.isolation_level = None if flag else ""
        else:
            logger.warning("Cannot change autocommit mode of connection %s", self.id)

    def get_server_output(self) -> list[str]:
        """Return and clear server-side output (notices) if capture is enabled."""
        if not self.server_output_enabled:
            return []
        notices = getattr(self.driver_connection, "notices", None)
        if not notices:
            return []
        output = [str(n).rstrip() for n in notices]
        del notices[:]
        return output

    # -- Transactions --------------------------------------------------------

    def commit(self) -> None:
        self.raw_connection.commit()
        self.uncommitted_changes = False

    def rollback(self) -> None:
        self.raw_connection.rollback()
        self.uncommitted_changes = False

    def end_read_only_transaction(self) -> bool:
        """End a transaction that only read data, as the backend prefers.

        Returns True when a COMMIT or ROLLBACK was sent.  Nothing is sent in
        autocommit mode or while changes are pending.
        """
        policy = self.capabilities.end_read_only_transaction
        if policy == EndReadOnlyTransaction.NEVER or self.autocommit or self.uncommitted_changes:
            return False
        logger.info("Sending a %s to end the current transaction on %s", policy.value, self.id)
        if policy == EndReadOnlyTransaction.COMMIT:
            self.commit()
        else:
            self.rollback()
        return True

    def _run(self, sql: str) -> None:
        cursor = self.raw_connection.cursor()
        try:
            cursor.execute(sql)
        finally:
            cursor.close()

    def set_savepoint(self, name: str | None = None) -> Savepoint | None:
        """Create a savepoint; return ``None`` if the backend cannot."""
        if not self.capabilities.supports_savepoints:
            return None
        savepoint = Savepoint(name or f"sqlrunner_sp_{next(self._savepoint_ids)}")
        with self._lock:
            self._run(self.capabilities.savepoint_sql.format(name=savepoint.name))
        logger.debug("Savepoint %s created on %s", savepoint.name, self.id)
        return savepoint

    def release_savepoint(self, savepoint: Savepoint | None) -> None:
        """Release *savepoint*; errors are logged, never raised."""
        if savepoint is None or not self.capabilities.release_savepoint_sql:
            return
        try:
            with self._lock:
                self._run(self.capabilities.release_savepoint_sql.format(name=savepoint.name))
        except Exception as exc:
            logger.error("Could not release savepoint %s on %s: %s", savepoint.name, self.id, exc)

    def rollback_savepoint(self, savepoint: Savepoint | None) -> None:
        """Roll back to *savepoint*; errors are logged, never raised."""
        if savepoint is None:
            return
        try:
            with self._lock:
                self._run(self.capabilities.rollback_savepoint_sql.format(name=savepoint.name))
        except Exception as exc:
            logger.error("Could not roll back to savepoint %s on %s: %s", savepoint.name, self.id, exc)

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.raw_connection.close()
        finally:
            if self._engine is not None:
                self._engine.dispose()

    def __enter__(self) -> DbConnection:
        """Enter a context block -- return self for ``with`` usage."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Exit a context block -- always close the connection."""
        self.close()

    def __repr__(self) -> str:
        return f"DbConnection(id={self.id!r}, dbid={self.capabilities.dbid!r})"


def connect(
    url: str,
    profile: ConnectionProfile | None = None,
    capabilities: DbCapabilities | None = None,
) -> DbConnection:
    """Open a :class:`DbConnection` from a SQLAlchemy URL.

    The capability preset is chosen from the SQLAlchemy dialect name unless
    *capabilities* is given.
    """
    engine = create_engine(url)
    raw = engine.raw_connection()
    caps = capabilities or capabilities_for(engine.dialect.name)
    logger.info("Connected to %s using %s capabilities", engine.url.render_as_string(hide_password=True), caps.dbid)
    return DbConnection(raw, capabilities=caps, profile=profile, engine=engine)
