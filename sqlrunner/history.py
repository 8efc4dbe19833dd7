"""Bounded log of executed statements.

The history keeps the most recent statements in execution order.  When
the capacity is reached the oldest entry is evicted; a statement identical
to the previous one is not added again.

The persisted format is plain text with one statement per line.  Newlines,
carriage returns, tabs and backslashes inside a statement are escaped as
``\\n``, ``\\r``, ``\\t`` and ``\\\\``.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from pathlib import Path

logger = logging.getLogger(__name__)

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", "\t": "\\t"}
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r", "t": "\t"}


def escape_statement(sql: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in sql)


def unescape_statement(line: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\" and i + 1 < len(line) and line[i + 1] in _UNESCAPES:
            out.append(_UNESCAPES[line[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


class StatementHistory:
    """Fixed-capacity, append-only statement log."""

    def __init__(self, max_size: int = 100) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._entries: deque[str] = deque(maxlen=max_size)
        self._lock = threading.Lock()

    @property
    def max_size(self) -> int:
        return self._entries.maxlen or 0

    def add(self, sql: str | None) -> bool:
        """Append *sql*; return ``False`` when it was empty or a duplicate of the last entry."""
        if sql is None:
            return False
        text = sql.strip()
        if not text:
            return False
        with self._lock:
            if self._entries and self._entries[-1] == text:
                return False
            self._entries.append(text)
        return True

    def entries(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def last(self) -> str | None:
        with self._lock:
            return self._entries[-1] if self._entries else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    # -- Persistence ---------------------------------------------------------

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        lines = [escape_statement(sql) for sql in self.entries()]
        path.write_text("".join(line + "\n" for line in lines), encoding="utf-8")
        logger.debug("Saved %d history entries to %s", len(lines), path)

    def load(self, path: Path) -> int:
        """Append the statements stored in *path*; return the number of entries read."""
        if not path.exists():
            return 0
        count = 0
        for line in path.read_text(encoding="utf-8").splitlines():
            if self.add(unescape_statement(line)):
                count += 1
        logger.debug("Loaded %d history entries from %s", count, path)
        return count
