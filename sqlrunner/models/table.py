"""In-memory tabular result materialized from a DB-API cursor."""

from __future__ import annotations

import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)

FETCH_SIZE = 500


class ResultTable:
    """Rows and column names of one result cursor.

    Rows are fetched in batches of :data:`FETCH_SIZE`; between batches the
    cancellation flag is polled so that :meth:`cancel_retrieve` called from
    another thread stops the retrieval while keeping the rows fetched so far.
    """

    def __init__(
        self,
        columns: list[str] | None = None,
        rows: list[tuple[Any, ...]] | None = None,
        sql: str | None = None,
    ) -> None:
        self.columns: list[str] = list(columns or [])
        self.rows: list[tuple[Any, ...]] = list(rows or [])
        self.sql = sql
        self.truncated = False
        self.cancelled = False
        self._cancel_event = threading.Event()

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def is_empty(self) -> bool:
        return not self.rows

    def column_index(self, name: str) -> int:
        """Return the index of column *name* (case-insensitive), or -1."""
        lower = name.lower()
        for idx, col in enumerate(self.columns):
            if col.lower() == lower:
                return idx
        return -1

    # -- Retrieval -----------------------------------------------------------

    def init_data(self, cursor: Any, max_rows: int = 0) -> int:
        """Fetch all rows from *cursor*, honouring *max_rows* and cancellation.

        Returns the number of rows retrieved.  Driver errors propagate to the
        caller; rows fetched before the error remain available.
        """
        self.columns = _column_names(cursor)
        self._cancel_event.clear()
        self.cancelled = False

        while not self._cancel_event.is_set():
            size = FETCH_SIZE
            if max_rows > 0:
                # one row past the cap tells whether the result was truncated
                size = min(size, max_rows - len(self.rows) + 1)
            batch = cursor.fetchmany(size)
            if not batch:
                break
            self.rows.extend(tuple(row) for row in batch)
            if 0 < max_rows < len(self.rows):
                del self.rows[max_rows:]
                self.truncated = True
                break

        if self._cancel_event.is_set():
            self.cancelled = True
            logger.debug("Retrieval cancelled after %d rows", len(self.rows))
        return len(self.rows)

    def fetch_only(self, cursor: Any, max_rows: int = 0) -> int:
        """Read through *cursor* without keeping the rows; return the row count."""
        self.columns = _column_names(cursor)
        self._cancel_event.clear()
        count = 0
        while not self._cancel_event.is_set():
            batch = cursor.fetchmany(FETCH_SIZE)
            if not batch:
                break
            count += len(batch)
            if 0 < max_rows <= count:
                count = max_rows
                break
        self.cancelled = self._cancel_event.is_set()
        return count

    def cancel_retrieve(self) -> None:
        self._cancel_event.set()

    def reset(self) -> None:
        self.rows.clear()
        self.truncated = False
        self.cancelled = False
        self._cancel_event.clear()

    # -- Transformations -----------------------------------------------------

    def transpose_with_label(self, label_column: str | None = None, add_label: str | None = None) -> ResultTable:
        """Return a pivoted copy: every column becomes a row, every row a column.

        The values of *label_column* name the new columns; that column itself
        is not repeated as a row.  When *add_label* names another column, its
        value is appended to each label.  Without a label column the new
        columns are named ``Row 1``, ``Row 2``, ...
        """
        label_idx = self.column_index(label_column) if label_column else -1
        add_idx = self.column_index(add_label) if add_label else -1

        headers = ["Column"]
        for row_no, row in enumerate(self.rows, start=1):
            if label_idx >= 0:
                label = str(row[label_idx])
            else:
                label = f"Row {row_no}"
            if add_idx >= 0 and add_idx != label_idx:
                label = f"{label} ({row[add_idx]})"
            headers.append(label)

        pivoted: list[tuple[Any, ...]] = []
        for col_idx, col_name in enumerate(self.columns):
            if col_idx in (label_idx, add_idx):
                continue
            pivoted.append((col_name, *(row[col_idx] for row in self.rows)))

        return ResultTable(columns=headers, rows=pivoted, sql=self.sql)

    def __repr__(self) -> str:
        return f"ResultTable(columns={self.columns!r}, rows={len(self.rows)})"


def _column_names(cursor: Any) -> list[str]:
    description = getattr(cursor, "description", None) or []
    return [str(col[0]) for col in description]
