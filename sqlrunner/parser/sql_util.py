"""Statement text analysis helpers.

Verb extraction and comment stripping work on the raw text with a small
quote-aware scanner.  Structural questions (CTE target verbs, ``SELECT ...
INTO``, DML without a WHERE clause, the table affected by a DML statement)
are answered through sqlglot, with a regex fallback for statements sqlglot
cannot parse.
"""

from __future__ import annotations

import logging
import re

import sqlglot
from pydantic import BaseModel, Field
from sqlglot import exp
from sqlglot.errors import ParseError, TokenError

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"[^\s(;,]+")
_DML_TABLE_RE = {
    "INSERT": re.compile(r"^\s*INSERT\s+(?:OR\s+\w+\s+)?(?:INTO\s+)?([\w.\"`\[\]]+)", re.IGNORECASE),
    "UPDATE": re.compile(r"^\s*UPDATE\s+(?:ONLY\s+)?([\w.\"`\[\]]+)", re.IGNORECASE),
    "DELETE": re.compile(r"^\s*DELETE\s+(?:FROM\s+)?(?:ONLY\s+)?([\w.\"`\[\]]+)", re.IGNORECASE),
    "MERGE": re.compile(r"^\s*MERGE\s+(?:INTO\s+)?([\w.\"`\[\]]+)", re.IGNORECASE),
    "TRUNCATE": re.compile(r"^\s*TRUNCATE\s+(?:TABLE\s+)?([\w.\"`\[\]]+)", re.IGNORECASE),
}
_SELECT_INTO_RE = re.compile(r"^\s*SELECT\b.+?\bINTO\s+(?![@:])(?:TEMP\w*\s+|UNLOGGED\s+)?(?:TABLE\s+)?[\w#\"\[]", re.IGNORECASE | re.DOTALL)
_DATA_VERBS = ("SELECT", "INSERT", "UPDATE", "DELETE", "MERGE")

_DDL_TYPES = (
    "MATERIALIZED VIEW",
    "PACKAGE BODY",
    "TYPE BODY",
    "GLOBAL TEMPORARY TABLE",
    "TEMPORARY TABLE",
    "TEMP TABLE",
    "UNIQUE INDEX",
    "BITMAP INDEX",
    "TABLE",
    "VIEW",
    "INDEX",
    "SEQUENCE",
    "PROCEDURE",
    "FUNCTION",
    "TRIGGER",
    "SCHEMA",
    "DATABASE",
    "PACKAGE",
    "TYPE",
    "SYNONYM",
    "DOMAIN",
    "EXTENSION",
    "USER",
    "ROLE",
)
_DDL_RE = re.compile(
    r"^\s*(?:CREATE|DROP|ALTER|ANALYZE|RECREATE)\s+"
    r"(?:OR\s+REPLACE\s+|OR\s+ALTER\s+)?"
    r"(?:EDITIONABLE\s+|NONEDITIONABLE\s+|PUBLIC\s+)?"
    r"(?P<type>" + "|".join(t.replace(" ", r"\s+") for t in _DDL_TYPES) + r")\b\s*"
    r"(?:IF\s+(?:NOT\s+)?EXISTS\s+)?"
    r"(?P<name>[\w.\"`\[\]$#]+(?:\s*,\s*[\w.\"`\[\]$#]+)*)?",
    re.IGNORECASE,
)

_VERB_BY_EXPRESSION: tuple[tuple[type[exp.Expression], str], ...] = (
    (exp.Select, "SELECT"),
    (exp.Union, "SELECT"),
    (exp.Insert, "INSERT"),
    (exp.Update, "UPDATE"),
    (exp.Delete, "DELETE"),
    (exp.Merge, "MERGE"),
)


class DdlObjectInfo(BaseModel):
    """Type and name(s) of the object a DDL statement works on."""

    object_type: str = Field(description="Upper-case object type, e.g. TABLE or MATERIALIZED VIEW.")
    object_names: list[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return ", ".join(self.object_names)


# ---------------------------------------------------------------------------
# Comments and whitespace
# ---------------------------------------------------------------------------


def strip_comments(sql: str) -> str:
    """Remove ``--`` and ``/* */`` comments outside quoted text."""
    out: list[str] = []
    i = 0
    n = len(sql)
    quote: str | None = None
    while i < n:
        ch = sql[i]
        if quote:
            out.append(ch)
            if ch == quote:
                quote = None
            i += 1
            continue
        if ch in ("'", '"'):
            quote = ch
            out.append(ch)
            i += 1
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            if end == -1:
                break
            i = end
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            if end == -1:
                break
            out.append(" ")
            i = end + 2
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def make_clean_sql(sql: str | None, keep_newlines: bool = False, keep_comments: bool = False) -> str:
    """Return *sql* without comments and surrounding whitespace.

    Unless *keep_newlines* is set, runs of whitespace are collapsed into a
    single blank.  A trailing semicolon is removed.
    """
    if not sql:
        return ""
    cleaned = sql if keep_comments else strip_comments(sql)
    cleaned = cleaned.strip()
    if not keep_newlines:
        cleaned = _WHITESPACE_RE.sub(" ", cleaned)
    if cleaned.endswith(";"):
        cleaned = cleaned[:-1].rstrip()
    return cleaned


def get_max_substring(text: str | None, max_len: int, suffix: str = "...") -> str:
    if text is None:
        return ""
    if max_len < 1 or len(text) < max_len:
        return text
    return text[:max_len] + (suffix or "")


# ---------------------------------------------------------------------------
# Verbs
# ---------------------------------------------------------------------------


def get_leading_words(sql: str | None, count: int) -> list[str]:
    """Return up to *count* leading words of *sql*, ignoring comments."""
    if not sql:
        return []
    cleaned = strip_comments(sql).lstrip()
    words: list[str] = []
    for match in _WORD_RE.finditer(cleaned):
        words.append(match.group(0))
        if len(words) >= count:
            break
    return words


def get_sql_verb(sql: str | None) -> str:
    """Return the upper-cased leading keyword of *sql* or an empty string."""
    words = get_leading_words(sql, 1)
    if not words:
        return ""
    return words[0].upper()


def _parse(sql: str, dialect: str | None) -> exp.Expression | None:
    try:
        return sqlglot.parse_one(sql, read=dialect)
    except (ParseError, TokenError) as exc:
        logger.debug("Could not parse statement with sqlglot: %s", exc)
        return None


def _verb_of(expression: exp.Expression | None) -> str | None:
    if expression is None:
        return None
    for klass, verb in _VERB_BY_EXPRESSION:
        if isinstance(expression, klass):
            return verb
    return None


def get_cte_verbs(sql: str, dialect: str | None = None) -> set[str]:
    """Return the verbs of all statements reachable from a ``WITH`` head.

    This includes the verb of the main statement and the verbs of
    data-modifying CTEs such as ``WITH d AS (DELETE ...) SELECT ...``.
    """
    cleaned = make_clean_sql(sql)
    if not cleaned or get_sql_verb(cleaned) != "WITH":
        return set()

    parsed = _parse(cleaned, dialect)
    if parsed is not None and not isinstance(parsed, exp.Command):
        verbs: set[str] = set()
        main = _verb_of(parsed)
        if main:
            verbs.add(main)
        for cte in parsed.find_all(exp.CTE):
            verb = _verb_of(cte.this)
            if verb:
                verbs.add(verb)
        if verbs:
            return verbs

    return _cte_verbs_from_text(cleaned)


def _cte_verbs_from_text(sql: str) -> set[str]:
    verbs: set[str] = set()
    upper = sql.upper()
    depth = 0
    expect_body = False
    for match in re.finditer(r"\(|\)|[A-Z_]+", upper):
        token = match.group(0)
        if token == "(":
            depth += 1
            continue
        if token == ")":
            depth -= 1
            continue
        if token == "AS" and depth == 0:
            expect_body = True
            continue
        if expect_body and depth == 1:
            if token in _DATA_VERBS:
                verbs.add(token)
            expect_body = False
            continue
        if depth == 0 and token in _DATA_VERBS:
            verbs.add(token)
            break
    return verbs


def is_select_into_new_table(sql: str, dialect: str | None = None) -> bool:
    """Return True for ``SELECT ... INTO <table>`` statements that create a table."""
    cleaned = make_clean_sql(sql)
    if get_sql_verb(cleaned) != "SELECT":
        return False
    parsed = _parse(cleaned, dialect)
    if isinstance(parsed, exp.Select):
        return parsed.args.get("into") is not None
    if parsed is not None and not isinstance(parsed, exp.Command):
        return False
    return bool(_SELECT_INTO_RE.match(cleaned)) and not re.search(r"\bINTO\s*[@:]", cleaned, re.IGNORECASE)


def is_unrestricted_dml(sql: str, dialect: str | None = None) -> bool:
    """Return True for an UPDATE or DELETE without a WHERE clause."""
    cleaned = make_clean_sql(sql)
    verb = get_sql_verb(cleaned)
    if verb not in ("UPDATE", "DELETE"):
        return False
    parsed = _parse(cleaned, dialect)
    if isinstance(parsed, (exp.Update, exp.Delete)):
        return parsed.args.get("where") is None
    return re.search(r"\bWHERE\b", cleaned, re.IGNORECASE) is None


def get_affected_table(sql: str, dialect: str | None = None) -> str | None:
    """Return the name of the table modified by a DML statement."""
    cleaned = make_clean_sql(sql)
    verb = get_sql_verb(cleaned)
    if verb not in _DML_TABLE_RE:
        return None

    parsed = _parse(cleaned, dialect)
    if isinstance(parsed, (exp.Insert, exp.Update, exp.Delete, exp.Merge)):
        target = parsed.this
        table = target if isinstance(target, exp.Table) else (target.find(exp.Table) if target else None)
        if table is not None and table.name:
            return ".".join(part for part in (table.catalog, table.db, table.name) if part)

    match = _DML_TABLE_RE[verb].match(cleaned)
    return match.group(1) if match else None


def get_ddl_object_info(sql: str) -> DdlObjectInfo | None:
    """Return the object type and name of a CREATE/DROP/ALTER/ANALYZE statement."""
    cleaned = make_clean_sql(sql)
    match = _DDL_RE.match(cleaned)
    if not match:
        return None
    object_type = _WHITESPACE_RE.sub(" ", match.group("type")).upper()
    names = match.group("name") or ""
    object_names = [n.strip() for n in names.split(",") if n.strip()]
    return DdlObjectInfo(object_type=object_type, object_names=object_names)
