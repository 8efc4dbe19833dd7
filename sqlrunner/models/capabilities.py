"""Backend capability model.

A :class:`DbCapabilities` instance describes everything the dispatcher,
the commands and the statement runner need to know about a backend.  It is
populated once when a connection is bound; no component branches on the
vendor identity itself, only on the flags declared here.
"""

from __future__ import annotations

import logging
from enum import Enum

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_MAX_RESULTS = 50_000


class EndReadOnlyTransaction(str, Enum):
    """What to send when an implicit read-only transaction should end."""

    NEVER = "never"
    COMMIT = "commit"
    ROLLBACK = "rollback"


class DbCapabilities(BaseModel):
    """Connection-scoped capability flags of a database backend."""

    dbid: str = Field(
        default="generic",
        description="Short identifier of the backend, used for logging only.",
    )
    dialect: str | None = Field(
        default=None,
        description="sqlglot dialect name used when analysing statements.",
    )

    # Savepoints
    supports_savepoints: bool = Field(default=False)
    use_savepoint_for_dml: bool = Field(
        default=False,
        description="Guard DML with a savepoint when the strategy is WHEN_CONFIGURED.",
    )
    use_savepoint_for_ddl: bool = Field(
        default=False,
        description="Guard DDL with a savepoint when the strategy is WHEN_CONFIGURED.",
    )
    savepoint_sql: str = Field(default="SAVEPOINT {name}")
    release_savepoint_sql: str | None = Field(
        default="RELEASE SAVEPOINT {name}",
        description="None when the backend has no explicit release statement.",
    )
    rollback_savepoint_sql: str = Field(default="ROLLBACK TO SAVEPOINT {name}")

    # Transactions
    transaction_start_verbs: list[str] = Field(
        default_factory=list,
        description="Verbs that start a manual transaction in autocommit mode.",
    )
    additional_transaction_verbs: list[str] = Field(
        default_factory=list,
        description="Generic verbs that must not end an implicit read-only transaction.",
    )
    never_end_transaction_verbs: list[str] = Field(default_factory=list)
    end_read_only_transaction: EndReadOnlyTransaction = Field(default=EndReadOnlyTransaction.NEVER)

    # Dispatch
    ignored_verbs: list[str] = Field(default_factory=list)
    silent_ignored_verbs: list[str] = Field(default_factory=list)
    passthrough_verbs: list[str] = Field(
        default_factory=list,
        description="Verbs always sent to the server as opaque SQL.",
    )
    procedure_call_verbs: list[str] = Field(
        default_factory=list,
        description="Vendor verbs routed to the procedure call command (e.g. EXEC).",
    )
    use_procedure_call_for_call: bool = Field(
        default=False,
        description="Route the standard CALL verb through the procedure call command.",
    )
    procedure_call_template: str = Field(default="CALL {call}")
    supports_use_command: bool = Field(default=False)
    supports_recreate: bool = Field(default=False)
    alternate_delimiter_verb: str | None = Field(default=None)
    server_output_aliases: bool = Field(
        default=False,
        description="Register PROMPT/PAUSE style aliases for echo and confirm.",
    )

    # Statement classification
    supports_select_into: bool = Field(
        default=False,
        description="SELECT ... INTO creates a new table on this backend.",
    )
    updating_verbs: list[str] = Field(
        default_factory=lambda: ["INSERT", "UPDATE", "DELETE", "MERGE", "TRUNCATE", "CREATE", "DROP", "ALTER", "GRANT", "REVOKE"],
    )
    verbs_without_update_count: list[str] = Field(default_factory=list)
    max_rows_verbs: list[str] | None = Field(
        default=None,
        description="Verbs that honour the row cap; None means every verb.",
    )
    no_success_message_verbs: list[str] = Field(default_factory=list)

    # Result processing
    deferred_result_verbs: list[str] = Field(
        default_factory=list,
        description="Verbs whose first result only becomes available after one more-results step.",
    )
    max_result_iterations: int = Field(default=DEFAULT_MAX_RESULTS)
    retrieve_warnings_per_result: bool = Field(default=False)
    allows_multiple_update_counts: bool = Field(default=True)
    supports_query_timeout: bool = Field(default=True)
    query_timeout_sql: str | None = Field(
        default=None,
        description="Statement that applies a timeout when the driver has no API for it.",
    )

    # Statement hook
    explain_plan_prefix: str | None = Field(default=None)

    # Error reporting
    error_position_patterns: list[str] = Field(
        default_factory=list,
        description="Regexes with named groups position/line/column/token.",
    )
    error_position_one_based: bool = Field(default=True)

    @field_validator("max_result_iterations")
    @classmethod
    def positive_iterations(cls, v: int) -> int:
        if v <= 0:
            return DEFAULT_MAX_RESULTS
        return v

    # -- Queries -------------------------------------------------------------

    def is_updating_verb(self, verb: str | None) -> bool:
        if not verb:
            return False
        return verb.upper() in {v.upper() for v in self.updating_verbs}

    def use_max_rows(self, verb: str | None) -> bool:
        if self.max_rows_verbs is None:
            return True
        if not verb:
            return False
        return verb.upper() in {v.upper() for v in self.max_rows_verbs}

    def is_transaction_verb(self, verb: str | None) -> bool:
        if not verb:
            return False
        return verb.upper() in {v.upper() for v in self.additional_transaction_verbs}

    def never_ends_transaction(self, verb: str | None) -> bool:
        if not verb:
            return False
        return verb.upper() in {v.upper() for v in self.never_end_transaction_verbs}

    def has_deferred_result(self, verb: str | None) -> bool:
        if not verb:
            return False
        return verb.upper() in {v.upper() for v in self.deferred_result_verbs}

    def has_update_count(self, verb: str | None) -> bool:
        if not verb:
            return True
        return verb.upper() not in {v.upper() for v in self.verbs_without_update_count}

    def show_success_message(self, verb: str | None) -> bool:
        if not verb:
            return True
        return verb.upper() not in {v.upper() for v in self.no_success_message_verbs}


_POSTGRES_TX = ["BEGIN", "START TRANSACTION", "BEGIN TRANSACTION", "BEGIN WORK"]

CAPABILITY_PRESETS: dict[str, dict[str, object]] = {
    "generic": {},
    "sqlite": {
        "dialect": "sqlite",
        "supports_savepoints": True,
        "transaction_start_verbs": ["BEGIN", "BEGIN TRANSACTION"],
        "explain_plan_prefix": "EXPLAIN QUERY PLAN",
        "supports_query_timeout": False,
        "error_position_patterns": [r'near "(?P<token>[^"]+)"'],
    },
    "duckdb": {
        "dialect": "duckdb",
        "transaction_start_verbs": ["BEGIN", "BEGIN TRANSACTION"],
        "explain_plan_prefix": "EXPLAIN",
        "supports_query_timeout": False,
        "error_position_patterns": [r"LINE (?P<line>\d+):"],
    },
    "postgresql": {
        "dialect": "postgres",
        "supports_savepoints": True,
        "use_savepoint_for_dml": True,
        "use_savepoint_for_ddl": True,
        "transaction_start_verbs": _POSTGRES_TX,
        "end_read_only_transaction": EndReadOnlyTransaction.ROLLBACK,
        "explain_plan_prefix": "EXPLAIN",
        "query_timeout_sql": "SET statement_timeout TO {millis}",
        "error_position_patterns": [r"Position: (?P<position>\d+)", r"LINE (?P<line>\d+):"],
    },
    "mysql": {
        "dialect": "mysql",
        "supports_savepoints": True,
        "supports_use_command": True,
        "alternate_delimiter_verb": "DELIMITER",
        "explain_plan_prefix": "EXPLAIN",
        "error_position_patterns": [r"near '(?P<token>[^']*)' at line (?P<line>\d+)"],
    },
    "mariadb": {
        "dialect": "mysql",
        "supports_savepoints": True,
        "supports_use_command": True,
        "alternate_delimiter_verb": "DELIMITER",
        "explain_plan_prefix": "EXPLAIN",
        "error_position_patterns": [r"near '(?P<token>[^']*)' at line (?P<line>\d+)"],
    },
    "mssql": {
        "dialect": "tsql",
        "supports_savepoints": True,
        "savepoint_sql": "SAVE TRANSACTION {name}",
        "release_savepoint_sql": None,
        "rollback_savepoint_sql": "ROLLBACK TRANSACTION {name}",
        "transaction_start_verbs": ["BEGIN TRANSACTION", "BEGIN TRAN"],
        "supports_use_command": True,
        "supports_select_into": True,
        "procedure_call_template": "EXEC {call}",
        "retrieve_warnings_per_result": True,
        "error_position_patterns": [r"[Ll]ine (?P<line>\d+)"],
    },
    "oracle": {
        "dialect": "oracle",
        "supports_savepoints": True,
        "release_savepoint_sql": None,
        "procedure_call_verbs": ["EXEC", "EXECUTE"],
        "procedure_call_template": "BEGIN {call}; END;",
        "deferred_result_verbs": ["BEGIN", "DECLARE"],
        "server_output_aliases": True,
        "ignored_verbs": ["SPOOL", "WHENEVER"],
        "silent_ignored_verbs": ["REM"],
        "explain_plan_prefix": "EXPLAIN PLAN FOR",
        "error_position_patterns": [r"line (?P<line>\d+), column (?P<column>\d+)"],
    },
    "firebird": {
        "dialect": None,
        "supports_savepoints": True,
        "supports_recreate": True,
        "alternate_delimiter_verb": "SET TERM",
        "error_position_patterns": [r"line (?P<line>\d+), column (?P<column>\d+)"],
    },
}

_PRESET_ALIASES: dict[str, str] = {
    "postgres": "postgresql",
    "pg": "postgresql",
    "sqlserver": "mssql",
    "tsql": "mssql",
    "oracledb": "oracle",
    "sqlite3": "sqlite",
}


def capabilities_for(name: str | None, **overrides: object) -> DbCapabilities:
    """Return the capability preset for backend *name*.

    Unknown names fall back to the conservative ``generic`` preset.
    Keyword *overrides* replace individual preset fields.
    """
    key = (name or "generic").lower()
    key = _PRESET_ALIASES.get(key, key)
    preset = CAPABILITY_PRESETS.get(key)
    if preset is None:
        logger.info("No capability preset for backend '%s', using generic settings", name)
        preset = CAPABILITY_PRESETS["generic"]
        key = "generic"
    values: dict[str, object] = {"dbid": key, **preset, **overrides}
    return DbCapabilities(**values)  # type: ignore[arg-type]
