"""Unit tests for sqlrunner.variables."""

from __future__ import annotations

import sqlite3

import pytest

from sqlrunner.variables import (
    VAR_NAME_LAST_ERROR_MSG,
    VariableError,
    VariablePool,
)


@pytest.fixture()
def pool() -> VariablePool:
    return VariablePool("unit")


# ---------------------------------------------------------------------------
# Definition and lookup
# ---------------------------------------------------------------------------


class TestValues:
    def test_case_insensitive_lookup(self, pool):
        pool.set_parameter_value("Region", "EU")
        assert pool.get_parameter_value("region") == "EU"
        assert pool.is_defined("REGION")

    def test_original_casing_listed(self, pool):
        pool.set_parameter_value("Region", "EU")
        pool.set_parameter_value("area", "north")
        assert pool.variables() == {"area": "north", "Region": "EU"}

    def test_none_value_stored_as_empty(self, pool):
        pool.set_parameter_value("x", None)
        assert pool.get_parameter_value("x") == ""

    @pytest.mark.parametrize("name", ["", "a b", "a-b", "x;"])
    def test_invalid_names(self, pool, name):
        with pytest.raises(VariableError):
            pool.set_parameter_value(name, "1")

    def test_remove_with_wildcard(self, pool):
        for name in ("tmp_a", "tmp_b", "keep"):
            pool.set_parameter_value(name, "1")
        assert pool.remove_variable("tmp_%") == 2
        assert list(pool.variables()) == ["keep"]

    def test_remove_missing(self, pool):
        assert pool.remove_variable("nothing") == 0

    def test_last_error(self, pool):
        pool.set_last_error(sqlite3.OperationalError("no such table: x"))
        assert pool.get_parameter_value(VAR_NAME_LAST_ERROR_MSG) == "no such table: x"


# ---------------------------------------------------------------------------
# Substitution
# ---------------------------------------------------------------------------


class TestReplaceAllParameters:
    def test_braced_reference(self, pool):
        pool.set_parameter_value("id", "42")
        assert pool.replace_all_parameters("select * from t where id = ${id}") == "select * from t where id = 42"

    def test_bare_reference(self, pool):
        pool.set_parameter_value("id", "42")
        assert pool.replace_all_parameters("select $id") == "select 42"

    def test_unchanged_statement_is_same_object(self, pool):
        pool.set_parameter_value("id", "42")
        sql = "select 1"
        assert pool.replace_all_parameters(sql) is sql

    def test_undefined_left_alone(self, pool):
        assert pool.replace_all_parameters("select ${nope}") == "select ${nope}"

    def test_strict_raises_for_undefined(self, pool):
        with pytest.raises(VariableError) as exc_info:
            pool.replace_all_parameters("select ${nope}", strict=True)
        assert exc_info.value.names == ["nope"]

    def test_nested_values_resolved(self, pool):
        pool.set_parameter_value("schema", "sales")
        pool.set_parameter_value("table", "${schema}.orders")
        assert pool.replace_all_parameters("select * from ${table}") == "select * from sales.orders"

    def test_self_reference_terminates(self, pool):
        pool.set_parameter_value("loop", "a${loop}b")
        assert pool.replace_all_parameters("${loop}") == "ab"

    def test_explicit_variables(self, pool):
        assert pool.replace_all_parameters("select ${x}", {"x": "1"}) == "select 1"

    def test_custom_prefix_suffix(self, pool):
        pool.set_prefix_suffix("$[", "]")
        pool.set_parameter_value("id", "7")
        assert pool.replace_all_parameters("select $[id], ${id}") == "select 7, ${id}"

    def test_empty_prefix_rejected(self, pool):
        with pytest.raises(VariableError):
            pool.set_prefix_suffix("", "}")


class TestPrompts:
    def test_prompt_variables(self, pool):
        pool.set_parameter_value("known", "1")
        sql = "select ${?a}, ${&known}, ${&b}, ${?a}"
        assert pool.has_prompt(sql)
        assert pool.get_prompt_variables(sql) == ["a", "b"]

    def test_used_and_undefined(self, pool):
        pool.set_parameter_value("a", "1")
        sql = "select ${a}, ${b}"
        assert pool.get_all_used_variables(sql) == {"a", "b"}
        assert pool.get_all_undefined_variables(sql) == {"b"}


# ---------------------------------------------------------------------------
# Scoping
# ---------------------------------------------------------------------------


class TestPoolScoping:
    def test_global_instance_is_shared(self):
        assert VariablePool.get_instance() is VariablePool.get_instance(None)

    def test_scoped_pool_copies_global(self):
        global_pool = VariablePool.get_instance()
        global_pool.set_parameter_value("scoping_test", "g")
        try:
            scoped = VariablePool.get_instance("scope-1")
            assert scoped.get_parameter_value("scoping_test") == "g"
            scoped.set_parameter_value("scoping_test", "s")
            assert global_pool.get_parameter_value("scoping_test") == "g"
        finally:
            VariablePool.dispose_instance("scope-1")
            global_pool.remove_variable("scoping_test")

    def test_dispose_creates_fresh_pool(self):
        VariablePool.get_instance("scope-2").set_parameter_value("only_here", "1")
        VariablePool.dispose_instance("scope-2")
        assert not VariablePool.get_instance("scope-2").is_defined("only_here")
        VariablePool.dispose_instance("scope-2")
