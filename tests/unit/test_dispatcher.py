"""Unit tests for sqlrunner.dispatcher.CommandDispatcher."""

from __future__ import annotations

import pytest

from sqlrunner.commands.base import SqlCommand
from sqlrunner.commands.ddl import DdlCommand
from sqlrunner.commands.misc import IgnoredCommand, UseCommand
from sqlrunner.commands.select import SelectCommand
from sqlrunner.commands.transaction import TransactionEndCommand, TransactionStartCommand
from sqlrunner.commands.updating import UpdatingCommand
from sqlrunner.commands.wb import WbCall, WbDelimiter, WbEcho, WbVarDef, WbVarList
from sqlrunner.dispatcher import CommandDispatcher
from sqlrunner.models.capabilities import capabilities_for


@pytest.fixture()
def dispatcher() -> CommandDispatcher:
    return CommandDispatcher()


# ---------------------------------------------------------------------------
# Default registrations
# ---------------------------------------------------------------------------


class TestDefaults:
    @pytest.mark.parametrize(
        ("sql", "command_type"),
        [
            ("select * from t", SelectCommand),
            ("insert into t values (1)", UpdatingCommand),
            ("delete from t", UpdatingCommand),
            ("create table t (a int)", DdlCommand),
            ("drop table t", DdlCommand),
            ("commit", TransactionEndCommand),
            ("WbVarDef a=1", WbVarDef),
            ("wbvardef a=1", WbVarDef),
        ],
    )
    def test_resolve(self, dispatcher, sql, command_type):
        command, _ = dispatcher.resolve(sql)
        assert isinstance(command, command_type)

    def test_unknown_verb_goes_to_wildcard(self, dispatcher):
        command, verb = dispatcher.resolve("VACUUM")
        assert command is dispatcher.wildcard
        assert verb == "VACUUM"

    def test_empty_statement_goes_to_wildcard(self, dispatcher):
        assert dispatcher.resolve("  -- nothing") == (dispatcher.wildcard, "")

    def test_commands_know_their_dispatcher(self, dispatcher):
        assert dispatcher.get("SELECT").dispatcher is dispatcher
        assert dispatcher.wildcard.dispatcher is dispatcher

    def test_contains_and_len(self, dispatcher):
        assert "select" in dispatcher
        assert "*" not in dispatcher
        assert len(dispatcher) == len(dispatcher.verbs)

    def test_multi_word_verb_longest_first(self, dispatcher):
        command, verb = dispatcher.resolve("create or replace view v as select 1")
        assert isinstance(command, DdlCommand)
        assert verb == "CREATE OR REPLACE"

    def test_resolve_verb_never_fails(self, dispatcher):
        assert dispatcher.resolve_verb(None) is dispatcher.wildcard
        assert dispatcher.resolve_verb("") is dispatcher.wildcard


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegister:
    def test_last_registration_wins(self, dispatcher):
        custom = SqlCommand("SELECT")
        dispatcher.register(custom)
        assert dispatcher.resolve_verb("select") is custom

    @pytest.mark.parametrize("verb", ["", "  ", " SELECT", "*"])
    def test_invalid_verbs_rejected(self, dispatcher, verb):
        with pytest.raises(ValueError):
            dispatcher.register(SqlCommand(verb))

    def test_command_without_verbs_rejected(self, dispatcher):
        with pytest.raises(ValueError):
            dispatcher.register(SqlCommand())

    def test_unregister_wildcard_is_noop(self, dispatcher):
        assert dispatcher.unregister("*") is None
        assert dispatcher.resolve_verb("anything") is dispatcher.wildcard


# ---------------------------------------------------------------------------
# Abbreviations
# ---------------------------------------------------------------------------


class TestAbbreviations:
    def test_unique_prefix(self):
        dispatcher = CommandDispatcher(allow_abbreviations=True)
        assert isinstance(dispatcher.resolve_verb("WbVarL"), WbVarList)

    def test_ambiguous_prefix(self):
        dispatcher = CommandDispatcher(allow_abbreviations=True)
        assert dispatcher.resolve_verb("WbVar") is dispatcher.wildcard

    def test_no_match(self):
        dispatcher = CommandDispatcher(allow_abbreviations=True)
        assert dispatcher.resolve_verb("WbNothing") is dispatcher.wildcard

    def test_sql_verbs_are_never_abbreviated(self):
        dispatcher = CommandDispatcher(allow_abbreviations=True)
        assert dispatcher.resolve_verb("SEL") is dispatcher.wildcard

    def test_prefix_of_two_aliases_is_ambiguous(self):
        dispatcher = CommandDispatcher(allow_abbreviations=True)
        dispatcher.bind_backend(capabilities_for("oracle"))
        assert dispatcher.resolve_verb("EXE") is dispatcher.wildcard
        assert isinstance(dispatcher.resolve_verb("EXECU"), WbCall)

    def test_disabled_by_default(self, dispatcher):
        assert dispatcher.resolve_verb("WbVarL") is dispatcher.wildcard


# ---------------------------------------------------------------------------
# Backend binding
# ---------------------------------------------------------------------------


class TestBindBackend:
    def test_oracle_verbs(self, dispatcher):
        dispatcher.bind_backend(capabilities_for("oracle"))
        assert isinstance(dispatcher.resolve_verb("EXEC"), WbCall)
        assert isinstance(dispatcher.resolve_verb("EXECUTE"), WbCall)
        assert isinstance(dispatcher.resolve_verb("PROMPT"), WbEcho)
        assert isinstance(dispatcher.resolve_verb("SPOOL"), IgnoredCommand)
        assert dispatcher.resolve_verb("REM").silent is True

    def test_rebinding_removes_previous_backend(self, dispatcher):
        dispatcher.bind_backend(capabilities_for("oracle"))
        dispatcher.bind_backend(capabilities_for("sqlite"))
        assert dispatcher.resolve_verb("EXEC") is dispatcher.wildcard
        assert isinstance(dispatcher.resolve_verb("BEGIN"), TransactionStartCommand)

    def test_binding_is_idempotent(self, dispatcher):
        caps = capabilities_for("mssql")
        dispatcher.bind_backend(caps)
        first = (len(dispatcher), dispatcher.backend_verbs)
        dispatcher.bind_backend(caps)
        assert (len(dispatcher), dispatcher.backend_verbs) == first

    def test_unbinding_restores_shadowed_command(self, dispatcher):
        original = dispatcher.get("COMMIT")
        dispatcher.register(SqlCommand("COMMIT"), backend=True)
        assert dispatcher.get("COMMIT") is not original
        dispatcher.bind_backend(None)
        assert dispatcher.get("COMMIT") is original

    def test_multi_word_transaction_start(self, dispatcher):
        dispatcher.bind_backend(capabilities_for("sqlite"))
        command, verb = dispatcher.resolve("begin transaction")
        assert isinstance(command, TransactionStartCommand)
        assert verb == "BEGIN TRANSACTION"

    def test_mssql_use_and_select_into(self, dispatcher):
        dispatcher.bind_backend(capabilities_for("mssql"))
        assert isinstance(dispatcher.resolve_verb("USE"), UseCommand)
        command, _ = dispatcher.resolve("select * into new_orders from orders")
        assert command is dispatcher.wildcard
        command, _ = dispatcher.resolve("select * from orders")
        assert isinstance(command, SelectCommand)

    def test_select_into_is_a_query_elsewhere(self, dispatcher):
        dispatcher.bind_backend(capabilities_for("postgresql"))
        command, _ = dispatcher.resolve("select * into new_orders from orders")
        assert isinstance(command, SelectCommand)

    def test_passthrough_verbs(self, dispatcher):
        dispatcher.bind_backend(capabilities_for("generic", passthrough_verbs=["create"]))
        command, _ = dispatcher.resolve("create table t (a int)")
        assert command is dispatcher.wildcard
        dispatcher.bind_backend(None)
        command, _ = dispatcher.resolve("create table t (a int)")
        assert isinstance(command, DdlCommand)

    def test_alternate_delimiter_alias(self, dispatcher):
        dispatcher.bind_backend(capabilities_for("firebird"))
        command, verb = dispatcher.resolve("SET TERM ^")
        assert isinstance(command, WbDelimiter)
        assert verb == "SET TERM"
        assert isinstance(dispatcher.resolve_verb("RECREATE"), DdlCommand)
