"""Verb to command registry.

Every statement is dispatched on its leading verb.  Multi-word verbs such
as ``CREATE OR REPLACE`` or ``SET TERM`` are matched longest first, tool
verbs may be abbreviated, and anything unknown goes to the wildcard
command which sends it to the server as opaque SQL.

Backend specific verbs are registered by :meth:`CommandDispatcher.bind_backend`
from the connection's :class:`~sqlrunner.models.capabilities.DbCapabilities`;
binding again first removes whatever the previous backend added.
"""

from __future__ import annotations

import logging

from sqlrunner.commands.base import SqlCommand
from sqlrunner.commands.ddl import DdlCommand, create_ddl_commands
from sqlrunner.commands.misc import IgnoredCommand, UseCommand
from sqlrunner.commands.select import SelectCommand
from sqlrunner.commands.set_command import SetCommand
from sqlrunner.commands.transaction import TransactionStartCommand, create_transaction_end_commands
from sqlrunner.commands.updating import create_dml_commands
from sqlrunner.commands.wb import WbCall, WbConfirm, WbDelimiter, WbEcho, create_wb_commands
from sqlrunner.models.capabilities import DbCapabilities
from sqlrunner.parser.sql_util import get_leading_words, get_sql_verb, is_select_into_new_table

logger = logging.getLogger(__name__)

WILDCARD_VERB = "*"


class CommandDispatcher:
    """Registry of the commands of one runner.

    Parameters
    ----------
    allow_abbreviations:
        Resolve a unique prefix of a tool verb (``WbVarL``) to its command.
    """

    def __init__(self, allow_abbreviations: bool = False) -> None:
        self.allow_abbreviations = allow_abbreviations
        self._commands: dict[str, SqlCommand] = {}
        self._backend_verbs: set[str] = set()
        self._shadowed: dict[str, SqlCommand] = {}
        self._passthrough: set[str] = set()
        self._supports_select_into = False
        self._dialect: str | None = None
        self._max_words = 1

        self.wildcard = SqlCommand()
        self.wildcard.dispatcher = self
        self._commands[WILDCARD_VERB] = self.wildcard
        self.select_command = SelectCommand()

        for command in (
            self.select_command,
            *create_dml_commands(),
            *create_ddl_commands(),
            *create_transaction_end_commands(),
            SetCommand(),
            *create_wb_commands(),
        ):
            self.register(command)

    # -- Registration --------------------------------------------------------

    @staticmethod
    def _validate_verb(command: SqlCommand, verb: object) -> str:
        if not isinstance(verb, str) or not verb.strip():
            raise ValueError(f"{type(command).__name__} declares an empty verb")
        if verb != verb.strip():
            raise ValueError(f"{type(command).__name__} declares verb {verb!r} with surrounding whitespace")
        if verb == WILDCARD_VERB:
            raise ValueError("The wildcard verb cannot be registered")
        return verb.upper()

    def register(self, command: SqlCommand, backend: bool = False) -> None:
        """Register *command* under every verb it declares.

        The last registration of a verb wins.  Verbs registered with
        *backend* set are removed again by the next :meth:`bind_backend`,
        restoring whatever command they replaced.
        """
        if not command.verbs:
            raise ValueError(f"{type(command).__name__} declares no verbs")
        keys = [self._validate_verb(command, verb) for verb in command.verbs]
        for key in keys:
            existing = self._commands.get(key)
            if existing is not None and existing is not command:
                logger.debug("Verb %s: %r replaces %r", key, command, existing)
                if backend and key not in self._backend_verbs:
                    self._shadowed[key] = existing
            self._commands[key] = command
            if backend:
                self._backend_verbs.add(key)
            self._max_words = max(self._max_words, len(key.split()))
        command.dispatcher = self

    def unregister(self, verb: str) -> SqlCommand | None:
        key = verb.upper()
        if key == WILDCARD_VERB:
            return None
        self._backend_verbs.discard(key)
        command = self._commands.pop(key, None)
        shadowed = self._shadowed.pop(key, None)
        if shadowed is not None:
            self._commands[key] = shadowed
        return command

    def _clear_backend(self) -> None:
        for key in list(self._backend_verbs):
            self.unregister(key)
        self._passthrough = set()
        self._supports_select_into = False
        self._dialect = None
        self._max_words = max(len(key.split()) for key in self._commands)

    def bind_backend(self, capabilities: DbCapabilities | None) -> None:
        """Replace the backend specific verbs with those of *capabilities*."""
        self._clear_backend()
        if capabilities is None:
            return

        for verb in capabilities.transaction_start_verbs:
            self.register(TransactionStartCommand(verb), backend=True)
        for verb in capabilities.ignored_verbs:
            self.register(IgnoredCommand(verb), backend=True)
        for verb in capabilities.silent_ignored_verbs:
            self.register(IgnoredCommand(verb, silent=True), backend=True)
        if capabilities.procedure_call_verbs:
            self.register(WbCall(*capabilities.procedure_call_verbs), backend=True)
        if capabilities.use_procedure_call_for_call:
            self.register(WbCall("CALL"), backend=True)
        if capabilities.supports_use_command:
            self.register(UseCommand(), backend=True)
        if capabilities.alternate_delimiter_verb:
            self.register(WbDelimiter(capabilities.alternate_delimiter_verb), backend=True)
        if capabilities.supports_recreate:
            self.register(DdlCommand("RECREATE"), backend=True)
        if capabilities.server_output_aliases:
            self.register(WbEcho("PROMPT"), backend=True)
            self.register(WbConfirm("PAUSE"), backend=True)

        self._passthrough = {verb.upper() for verb in capabilities.passthrough_verbs}
        self._supports_select_into = capabilities.supports_select_into
        self._dialect = capabilities.dialect
        logger.debug(
            "Bound dispatcher to %s: %d backend verb(s), %d pass-through verb(s)",
            capabilities.dbid,
            len(self._backend_verbs),
            len(self._passthrough),
        )

    # -- Lookup --------------------------------------------------------------

    @property
    def verbs(self) -> list[str]:
        return sorted(key for key in self._commands if key != WILDCARD_VERB)

    @property
    def backend_verbs(self) -> frozenset[str]:
        return frozenset(self._backend_verbs)

    def get(self, verb: str) -> SqlCommand | None:
        """Exact lookup without any fallback."""
        return self._commands.get(verb.upper())

    def resolve(self, sql: str | None) -> tuple[SqlCommand, str]:
        """Return the command for *sql* and the verb it was found under."""
        verb = get_sql_verb(sql)
        if not verb:
            return self.wildcard, verb

        if self._max_words > 1:
            words = [w.upper() for w in get_leading_words(sql, self._max_words)]
            for count in range(len(words), 1, -1):
                candidate = " ".join(words[:count])
                command = self._commands.get(candidate)
                if command is not None and candidate not in self._passthrough:
                    return command, candidate

        if verb == "SELECT" and self._supports_select_into and is_select_into_new_table(sql, self._dialect):
            # creates a table and returns an update count, not rows
            return self.wildcard, verb

        return self.resolve_verb(verb), verb

    def resolve_verb(self, verb: str | None) -> SqlCommand:
        """Return the command for *verb*; never fails."""
        if not verb:
            return self.wildcard
        key = verb.upper()
        if key in self._passthrough:
            return self.wildcard

        command = self._commands.get(key)
        if command is not None:
            return command

        if self.allow_abbreviations:
            # Counted per verb: one command registered under several
            # matching names (EXEC/EXECUTE) is still ambiguous.
            matches = [
                cmd
                for name, cmd in self._commands.items()
                if cmd.is_wb_command and name.startswith(key)
            ]
            if len(matches) == 1:
                return matches[0]
        return self.wildcard

    def __len__(self) -> int:
        return len(self._commands) - 1

    def __contains__(self, verb: str) -> bool:
        return verb.upper() in self._commands and verb.upper() != WILDCARD_VERB
