"""Unit tests for sqlrunner.parser.sql_util."""

from __future__ import annotations

import pytest

from sqlrunner.parser.sql_util import (
    get_affected_table,
    get_cte_verbs,
    get_ddl_object_info,
    get_leading_words,
    get_max_substring,
    get_sql_verb,
    is_select_into_new_table,
    is_unrestricted_dml,
    make_clean_sql,
    strip_comments,
)

# ---------------------------------------------------------------------------
# Comments and cleanup
# ---------------------------------------------------------------------------


class TestStripComments:
    def test_line_comment(self):
        assert strip_comments("select 1 -- one\nfrom dual").split() == ["select", "1", "from", "dual"]

    def test_block_comment(self):
        assert "hidden" not in strip_comments("select /* hidden */ 1")

    def test_comment_markers_in_quotes_kept(self):
        sql = "select '-- not a comment', '/* nor this */' from t"
        assert strip_comments(sql) == sql

    def test_unterminated_block_comment(self):
        assert strip_comments("select 1 /* open").strip() == "select 1"


class TestMakeCleanSql:
    def test_collapses_whitespace_and_semicolon(self):
        assert make_clean_sql("  select\n   1\t;  ") == "select 1"

    def test_keep_newlines(self):
        assert make_clean_sql("select\n1;", keep_newlines=True) == "select\n1"

    def test_none_and_empty(self):
        assert make_clean_sql(None) == ""
        assert make_clean_sql("  -- only a comment") == ""


class TestGetMaxSubstring:
    def test_short_text_unchanged(self):
        assert get_max_substring("abc", 10) == "abc"

    def test_truncates_with_suffix(self):
        assert get_max_substring("abcdefgh", 3) == "abc..."

    def test_disabled(self):
        assert get_max_substring("abcdefgh", 0) == "abcdefgh"


# ---------------------------------------------------------------------------
# Verbs
# ---------------------------------------------------------------------------


class TestGetSqlVerb:
    @pytest.mark.parametrize(
        ("sql", "verb"),
        [
            ("select 1", "SELECT"),
            ("  -- comment\n  update t set a = 1", "UPDATE"),
            ("/* x */ insert into t values (1)", "INSERT"),
            ("WbVarDef x=1", "WBVARDEF"),
            ("select(1)", "SELECT"),
            ("", ""),
            (None, ""),
        ],
    )
    def test_verbs(self, sql, verb):
        assert get_sql_verb(sql) == verb

    def test_leading_words(self):
        assert get_leading_words("create or replace view v as select 1", 3) == ["create", "or", "replace"]


class TestCteVerbs:
    def test_plain_select(self):
        assert get_cte_verbs("with x as (select 1 as a) select a from x") == {"SELECT"}

    def test_data_modifying_cte(self):
        sql = "with d as (delete from t where id = 1 returning id) select * from d"
        assert "DELETE" in get_cte_verbs(sql, "postgres")

    def test_not_a_cte(self):
        assert get_cte_verbs("select 1") == set()


# ---------------------------------------------------------------------------
# Structural checks
# ---------------------------------------------------------------------------


class TestSelectInto:
    def test_select_into_table(self):
        assert is_select_into_new_table("select * into new_orders from orders", "tsql") is True

    def test_plain_select(self):
        assert is_select_into_new_table("select * from orders", "tsql") is False

    def test_not_a_select(self):
        assert is_select_into_new_table("insert into t select * from s") is False


class TestUnrestrictedDml:
    def test_delete_without_where(self):
        assert is_unrestricted_dml("delete from orders") is True

    def test_update_with_where(self):
        assert is_unrestricted_dml("update orders set amount = 0 where id = 1") is False

    def test_select_is_never_unrestricted(self):
        assert is_unrestricted_dml("select * from orders") is False


class TestAffectedTable:
    @pytest.mark.parametrize(
        ("sql", "table"),
        [
            ("insert into orders values (1)", "orders"),
            ("insert into orders (id) values (1)", "orders"),
            ("update sales.orders set a = 1", "sales.orders"),
            ("delete from orders where id = 2", "orders"),
        ],
    )
    def test_tables(self, sql, table):
        assert get_affected_table(sql) == table

    def test_non_dml(self):
        assert get_affected_table("select * from orders") is None


class TestDdlObjectInfo:
    def test_create_table(self):
        info = get_ddl_object_info("CREATE TABLE orders (id int)")
        assert info.object_type == "TABLE"
        assert info.object_names == ["orders"]

    def test_create_or_replace_view(self):
        info = get_ddl_object_info("create or replace view v_orders as select 1")
        assert info.object_type == "VIEW"
        assert info.display_name == "v_orders"

    def test_drop_if_exists(self):
        info = get_ddl_object_info("drop table if exists a, b")
        assert info.object_type == "TABLE"
        assert info.object_names == ["a", "b"]

    def test_multi_word_type(self):
        info = get_ddl_object_info("create materialized view mv as select 1")
        assert info.object_type == "MATERIALIZED VIEW"

    def test_not_ddl(self):
        assert get_ddl_object_info("select 1") is None
