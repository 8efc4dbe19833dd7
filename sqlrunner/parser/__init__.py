"""Statement text parsing: delimiters, verbs and annotations."""

from sqlrunner.parser.delimiter import (
    MSSQL_DELIMITER,
    ORA_DELIMITER,
    STANDARD_DELIMITER,
    DelimiterDefinition,
    DelimiterError,
)
from sqlrunner.parser.sql_util import get_sql_verb, make_clean_sql

__all__ = [
    "DelimiterDefinition",
    "DelimiterError",
    "MSSQL_DELIMITER",
    "ORA_DELIMITER",
    "STANDARD_DELIMITER",
    "get_sql_verb",
    "make_clean_sql",
]
