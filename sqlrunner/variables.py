"""Named variables substituted into statement text.

Variables are referenced as ``${name}`` (prefix and suffix are
configurable) or, with the default prefix, as ``$name``.  A reference of
the form ``${?name}`` or ``${&name}`` additionally asks a
:class:`~sqlrunner.runner.ParameterPrompter` for the value before the
statement runs (``&`` only when the variable has no value yet).

Pools are scoped: :meth:`VariablePool.get_instance` without an id returns
the process wide pool, with an id it returns an independent pool that
starts as a copy of the global one.
"""

from __future__ import annotations

import fnmatch
import logging
import re
import threading

logger = logging.getLogger(__name__)

VAR_NAME_LAST_ERROR_CODE = "wb_last_error_code"
VAR_NAME_LAST_ERROR_STATE = "wb_last_error_state"
VAR_NAME_LAST_ERROR_MSG = "wb_last_error_msg"

DEFAULT_PREFIX = "${"
DEFAULT_SUFFIX = "}"

_VALID_NAME = re.compile(r"[\w.]+")
_BARE_NAME = r"(?<![\w$])\$(?!\{)(?P<name>[A-Za-z_][\w.]*)"

_POOLS: dict[str, VariablePool] = {}
_POOLS_LOCK = threading.Lock()
_global_pool: VariablePool | None = None


class VariableError(ValueError):
    """Raised for invalid variable names and unresolved variables in strict mode."""

    def __init__(self, message: str, names: list[str] | None = None) -> None:
        self.names = names or []
        super().__init__(message)


class VariablePool:
    """A case-insensitive table of variable values."""

    def __init__(self, pool_id: str | None = None, prefix: str = DEFAULT_PREFIX, suffix: str = DEFAULT_SUFFIX) -> None:
        self.pool_id = pool_id
        self._data: dict[str, tuple[str, str]] = {}
        self._lock = threading.RLock()
        self._prefix = prefix
        self._suffix = suffix
        self._init_patterns()

    # -- Scoping -------------------------------------------------------------

    @classmethod
    def get_instance(cls, pool_id: str | None = None) -> VariablePool:
        """Return the global pool, or the pool registered under *pool_id*."""
        global _global_pool
        with _POOLS_LOCK:
            if _global_pool is None:
                _global_pool = cls()
            if not pool_id or not pool_id.strip():
                return _global_pool
            pool = _POOLS.get(pool_id)
            if pool is None:
                pool = cls(pool_id, _global_pool.prefix, _global_pool.suffix)
                with _global_pool._lock:
                    pool._data.update(_global_pool._data)
                _POOLS[pool_id] = pool
                logger.debug("New variable pool with id=%s created", pool_id)
            return pool

    @staticmethod
    def dispose_instance(pool_id: str | None) -> None:
        if not pool_id or not pool_id.strip():
            return
        with _POOLS_LOCK:
            pool = _POOLS.pop(pool_id, None)
        if pool is not None:
            pool.clear()
            logger.debug("Removed variable pool with id=%s", pool_id)

    # -- Configuration -------------------------------------------------------

    @property
    def prefix(self) -> str:
        return self._prefix

    @property
    def suffix(self) -> str:
        return self._suffix

    def set_prefix_suffix(self, prefix: str, suffix: str | None) -> None:
        if not prefix:
            raise VariableError("Variable prefix must not be empty")
        with self._lock:
            self._prefix = prefix
            self._suffix = suffix or ""
            self._init_patterns()

    def _init_patterns(self) -> None:
        pre = re.escape(self._prefix)
        suf = re.escape(self._suffix)
        self._prompt_pattern = re.compile(pre + r"(?P<type>[?&])(?P<name>[\w.]+)" + suf)
        self._variable_pattern = re.compile(pre + r"[?&]?(?P<name>[\w.]+)" + suf)
        self._bare_pattern = re.compile(_BARE_NAME) if self._prefix == DEFAULT_PREFIX else None

    def _name_pattern(self, name: str) -> re.Pattern[str]:
        full = re.escape(self._prefix) + r"[?&]?" + re.escape(name) + re.escape(self._suffix)
        if self._bare_pattern is not None:
            full += r"|(?<![\w$])\$" + re.escape(name) + r"(?![\w.])"
        return re.compile(full, re.IGNORECASE)

    # -- Values --------------------------------------------------------------

    @staticmethod
    def is_valid_variable_name(name: str | None) -> bool:
        return bool(name) and _VALID_NAME.fullmatch(name) is not None

    def set_parameter_value(self, name: str, value: str | None) -> None:
        """Define variable *name*; a ``None`` value stores an empty string."""
        name = (name or "").strip()
        if not self.is_valid_variable_name(name):
            raise VariableError(f"Illegal variable name: {name!r}", [name])
        with self._lock:
            self._data[name.lower()] = (name, "" if value is None else str(value))

    def get_parameter_value(self, name: str | None) -> str | None:
        if name is None:
            return None
        with self._lock:
            entry = self._data.get(name.lower())
        return entry[1] if entry else None

    def is_defined(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._data

    def remove_variable(self, name: str) -> int:
        """Remove *name*; ``*`` and ``%`` act as wildcards.  Returns the number removed."""
        pattern = name.strip().lower().replace("%", "*")
        with self._lock:
            if "*" not in pattern and "?" not in pattern:
                return 1 if self._data.pop(pattern, None) is not None else 0
            matches = [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]
            for key in matches:
                del self._data[key]
            return len(matches)

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def variables(self) -> dict[str, str]:
        """Return a sorted copy of all variables (original name casing)."""
        with self._lock:
            items = sorted(self._data.values(), key=lambda item: item[0].lower())
        return dict(items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def set_last_error(self, error: BaseException) -> None:
        """Expose the details of *error* as ``wb_last_error_*`` variables."""
        code = getattr(error, "sqlite_errorcode", None) or getattr(error, "errno", None)
        state = getattr(error, "pgcode", None) or getattr(error, "sqlstate", None)
        self.set_parameter_value(VAR_NAME_LAST_ERROR_CODE, "" if code is None else str(code))
        self.set_parameter_value(VAR_NAME_LAST_ERROR_STATE, state or "")
        self.set_parameter_value(VAR_NAME_LAST_ERROR_MSG, str(error))

    # -- Inspection ----------------------------------------------------------

    def has_prompt(self, sql: str | None) -> bool:
        return bool(sql) and self._prompt_pattern.search(sql) is not None

    def get_prompt_variables(self, sql: str | None) -> list[str]:
        """Return the names that must be prompted for, in order of appearance.

        ``${&name}`` references are skipped when the variable already has a
        non-empty value.
        """
        if not sql:
            return []
        result: list[str] = []
        for match in self._prompt_pattern.finditer(sql):
            name = match.group("name")
            if match.group("type") == "&" and self.get_parameter_value(name):
                continue
            if name not in result:
                result.append(name)
        return result

    def get_all_used_variables(self, sql: str | None) -> set[str]:
        if not sql:
            return set()
        names = {m.group("name") for m in self._variable_pattern.finditer(sql)}
        if self._bare_pattern is not None:
            names.update(m.group("name") for m in self._bare_pattern.finditer(sql) if self.is_defined(m.group("name")))
        return names

    def get_all_undefined_variables(self, sql: str | None) -> set[str]:
        if not sql:
            return set()
        return {m.group("name") for m in self._variable_pattern.finditer(sql) if not self.is_defined(m.group("name"))}

    # -- Substitution --------------------------------------------------------

    def replace_all_parameters(
        self,
        sql: str | None,
        variables: dict[str, str] | None = None,
        strict: bool = False,
    ) -> str | None:
        """Replace all variable references in *sql*.

        Returns *sql* itself when nothing needs to be replaced.  References
        to undefined variables are left untouched unless *strict* is set, in
        which case a :class:`VariableError` is raised.
        """
        if sql is None:
            return None
        if variables is None:
            variables = self.variables()
        if strict:
            missing = sorted(n for n in self.get_all_undefined_variables(sql) if n.lower() not in {k.lower() for k in variables})
            if missing:
                raise VariableError(f"Undefined variable(s): {', '.join(missing)}", missing)
        if not variables:
            return sql
        has_bare = self._bare_pattern is not None and "$" in sql
        if self._prefix not in sql and not has_bare:
            return sql
        return self._replace(sql, variables)

    def _replace(self, sql: str, variables: dict[str, str]) -> str:
        patterns = {name: self._name_pattern(name) for name in variables}
        values: dict[str, str] = {}
        for name, value in variables.items():
            # A value referencing its own variable would never converge.
            values[name] = patterns[name].sub("", value)

        result = sql
        for _ in range(len(variables) + 1):
            changed = False
            for name, pattern in patterns.items():
                replaced = pattern.sub(lambda _m, v=values[name]: v, result)
                if replaced != result:
                    result = replaced
                    changed = True
            if not changed:
                break
        return result
