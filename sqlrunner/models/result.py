"""Outcome of a single statement run."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from sqlrunner.messages import get_message

if TYPE_CHECKING:
    from sqlrunner.models.table import ResultTable


class MessageKind(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class ResultMessage(BaseModel):
    """A single line of feedback attached to an :class:`ExecutionResult`."""

    kind: MessageKind = Field(default=MessageKind.INFO)
    text: str = Field(description="Human readable message text.")


class ErrorDescriptor(BaseModel):
    """Structured description of a statement failure."""

    message: str = Field(description="Error message reported by the driver.")
    error_position: int | None = Field(
        default=None,
        description="Zero-based character offset of the error inside the statement.",
    )
    line: int | None = Field(default=None, description="One-based line of the error.")
    column: int | None = Field(default=None, description="One-based column of the error.")
    token: str | None = Field(default=None, description="Offending token, if reported.")
    error_code: int | None = Field(default=None, description="Vendor error code.")
    sql_state: str | None = Field(default=None, description="SQLSTATE, if the driver reports one.")

    def has_position(self) -> bool:
        return self.error_position is not None or self.line is not None


class ExecutionResult:
    """Mutable result of one statement run.

    Commands fill the result while they execute; the statement runner adds
    warnings, annotations and timing afterwards.  A result is created fresh
    for every run and is never shared between statements.
    """

    def __init__(self, sql: str | None = None, verb: str | None = None) -> None:
        self.sql = sql
        self.verb = verb
        self.success = False
        self.messages: list[ResultMessage] = []
        self.tables: list[ResultTable] = []
        self.update_counts: list[int] = []
        self.ignore_update_counts = False
        self.rows_processed = 0
        self.error: ErrorDescriptor | None = None
        self.consumed = False
        self.cancelled = False
        self.stop_script = False
        self.prompt_cancelled = False
        self.execution_duration_ms: int | None = None
        self.connection_id: str | None = None

    # -- Outcome -------------------------------------------------------------

    def set_success(self) -> None:
        self.success = True

    def set_failure(self, error: ErrorDescriptor | None = None) -> None:
        self.success = False
        if error is not None:
            self.error = error

    @property
    def has_warning(self) -> bool:
        return any(m.kind == MessageKind.WARNING for m in self.messages)

    @property
    def warnings(self) -> list[str]:
        return [m.text for m in self.messages if m.kind == MessageKind.WARNING]

    # -- Messages ------------------------------------------------------------

    def add_message(self, text: str | None) -> None:
        if text:
            self.messages.append(ResultMessage(kind=MessageKind.INFO, text=text))

    def add_warning(self, text: str | None) -> None:
        if text:
            self.messages.append(ResultMessage(kind=MessageKind.WARNING, text=text))

    def add_error_message(self, text: str | None) -> None:
        if text:
            self.messages.append(ResultMessage(kind=MessageKind.ERROR, text=text))

    def message_text(self) -> str:
        return "\n".join(m.text for m in self.messages)

    # -- Data ----------------------------------------------------------------

    def add_table(self, table: ResultTable) -> None:
        self.tables.append(table)

    def add_update_count(self, count: int) -> None:
        if count >= 0:
            self.update_counts.append(count)

    def add_update_count_message(self, count: int) -> None:
        """Record *count* and add the "rows affected" message unless counts are ignored."""
        if count < 0:
            return
        self.add_update_count(count)
        self.rows_processed += count
        if not self.ignore_update_counts:
            self.add_message(get_message("rows_processed", count))

    @property
    def total_update_count(self) -> int:
        return sum(self.update_counts)

    def has_tables(self) -> bool:
        return bool(self.tables)

    def clear_result_data(self) -> None:
        """Drop all tabular data but keep messages and the outcome."""
        self.tables.clear()

    def __repr__(self) -> str:
        return (
            f"ExecutionResult(verb={self.verb!r}, success={self.success}, "
            f"tables={len(self.tables)}, messages={len(self.messages)})"
        )
