"""Unit tests for sqlrunner.history."""

from __future__ import annotations

from pathlib import Path

import pytest

from sqlrunner.history import StatementHistory, escape_statement, unescape_statement


class TestStatementHistory:
    def test_keeps_order(self):
        history = StatementHistory(5)
        for sql in ("select 1", "select 2", "select 3"):
            history.add(sql)
        assert history.entries() == ["select 1", "select 2", "select 3"]
        assert history.last() == "select 3"

    def test_evicts_oldest(self):
        history = StatementHistory(2)
        for sql in ("a", "b", "c"):
            history.add(sql)
        assert history.entries() == ["b", "c"]
        assert len(history) == 2

    def test_skips_consecutive_duplicate(self):
        history = StatementHistory(5)
        assert history.add("select 1") is True
        assert history.add("  select 1  ") is False
        assert history.add("select 2") is True
        assert history.add("select 1") is True
        assert len(history) == 3

    def test_skips_empty(self):
        history = StatementHistory(5)
        assert history.add(None) is False
        assert history.add("   ") is False
        assert history.last() is None

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            StatementHistory(0)

    def test_clear(self):
        history = StatementHistory(5)
        history.add("x")
        history.clear()
        assert history.entries() == []


class TestPersistence:
    def test_escape_round_trip_of_multiline_statement(self):
        sql = "select 'a\\b'\nfrom t\twhere x = 1\r"
        line = escape_statement(sql)
        assert "\n" not in line
        assert unescape_statement(line) == sql

    def test_save_and_load(self, tmp_path: Path):
        path = tmp_path / "sub" / "history.txt"
        history = StatementHistory(5)
        history.add("select 1\nfrom dual")
        history.add("select 2")
        history.save(path)

        assert path.read_text(encoding="utf-8").count("\n") == 2

        restored = StatementHistory(5)
        assert restored.load(path) == 2
        assert restored.entries() == ["select 1\nfrom dual", "select 2"]

    def test_load_missing_file(self, tmp_path: Path):
        assert StatementHistory(5).load(tmp_path / "none.txt") == 0

    def test_load_respects_capacity(self, tmp_path: Path):
        path = tmp_path / "history.txt"
        path.write_text("a\nb\nc\n", encoding="utf-8")
        history = StatementHistory(2)
        history.load(path)
        assert history.entries() == ["b", "c"]
