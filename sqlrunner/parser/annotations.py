"""Statement annotations embedded in leading comments.

An annotation is a ``@tag`` inside one of the comments that precede the
statement text, optionally followed by a value on the same line::

    -- @WbCrossTab labelColumn=name
    -- @WbRemoveEmpty
    select ...
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CROSSTAB = "@wbcrosstab"
REMOVE_EMPTY = "@wbremoveempty"
REMOVE_RESULT = "@wbnoresult"

ALL_TAGS = (CROSSTAB, REMOVE_EMPTY, REMOVE_RESULT)

_ARG_RE = re.compile(r"(?:-)?(\w+)\s*=\s*(\"[^\"]*\"|'[^']*'|\S+)")


class WbAnnotation(BaseModel):
    """A tag found in the leading comments of a statement."""

    keyword: str = Field(description="Lower-case tag including the leading '@'.")
    value: str | None = Field(default=None, description="Text following the tag on the same line.")

    def arguments(self) -> dict[str, str]:
        """Parse ``name=value`` pairs from the annotation value (keys lower-cased)."""
        if not self.value:
            return {}
        result: dict[str, str] = {}
        for match in _ARG_RE.finditer(self.value):
            raw = match.group(2)
            if len(raw) >= 2 and raw[0] == raw[-1] and raw[0] in "'\"":
                raw = raw[1:-1]
            result[match.group(1).lower()] = raw
        return result


def get_tag(key: str) -> str:
    key = key.lower()
    return key if key.startswith("@") else "@" + key


def _leading_comments(sql: str) -> list[str]:
    comments: list[str] = []
    pos = 0
    n = len(sql)
    while pos < n:
        while pos < n and sql[pos].isspace():
            pos += 1
        if sql.startswith("--", pos):
            end = sql.find("\n", pos)
            end = n if end == -1 else end
            comments.append(sql[pos + 2 : end])
            pos = end
        elif sql.startswith("/*", pos):
            end = sql.find("*/", pos + 2)
            if end == -1:
                comments.append(sql[pos + 2 :])
                break
            comments.append(sql[pos + 2 : end])
            pos = end + 2
        else:
            break
    return comments


def read_annotations(sql: str | None, *tags: str) -> list[WbAnnotation]:
    """Return the annotations among *tags* found in the leading comments of *sql*.

    Without explicit *tags* all known annotations are read.  Only comments
    before the first statement token are inspected.
    """
    if not sql:
        return []
    text = sql.strip()
    if not (text.startswith("--") or text.startswith("/*")):
        return []

    wanted = [get_tag(t) for t in tags] if tags else list(ALL_TAGS)
    found: list[WbAnnotation] = []
    for comment in _leading_comments(text):
        for line in comment.splitlines():
            lower = line.lower()
            for tag in wanted:
                pos = lower.find(tag)
                if pos < 0:
                    continue
                value: str | None = None
                after = pos + len(tag)
                if after < len(line) and line[after].isspace():
                    value = line[after:].strip().rstrip("*/").strip() or None
                elif after < len(line):
                    continue
                found.append(WbAnnotation(keyword=tag, value=value))
    if found:
        logger.debug("Statement annotations: %s", [a.keyword for a in found])
    return found


def find_annotation(annotations: list[WbAnnotation], tag: str) -> WbAnnotation | None:
    tag = get_tag(tag)
    for annotation in annotations:
        if annotation.keyword == tag:
            return annotation
    return None
