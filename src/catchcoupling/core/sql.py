"""
Text helpers that turn the configurable SQL templates into executable queries.

The templates are plain strings that deployments may override, so the helpers
only rely on a few anchors: the first whole-word ``FROM``, the ``ORDER`` of the
trailing ``ORDER BY``, and the literal ``[?]`` placeholder for a column name.
Positional ``?`` markers are left alone; they are bound at execution time.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Sequence

from catchcoupling.errors import QueryTemplateError

COLUMN_PLACEHOLDER = "[?]"

_IDENTIFIER = re.compile(r"^[^\W\d]\w*$")
_LOOKUP_TOKEN = re.compile(r"[^\s,=]+")
_ORDER_BY = re.compile(r"(?<!\w)ORDER\s+BY(?!\w)", re.IGNORECASE)


def _is_identifier_char(char: str) -> bool:
    return char.isalnum() or char == "_"


def index_of_word(text: str, word: str) -> int:
    """
    Return the index of the first case-insensitive, whole-word occurrence of
    ``word`` in ``text``, or -1.
    """
    length = len(word)
    haystack = text.upper()
    needle = word.upper()
    start = 0
    while True:
        index = haystack.find(needle, start)
        if index < 0:
            return -1
        before_ok = index == 0 or not _is_identifier_char(text[index - 1])
        upper = index + length
        after_ok = upper >= len(text) or not _is_identifier_char(text[upper])
        if before_ok and after_ok:
            return index
        start = index + 1


def validate_identifier(name: str) -> str:
    """Reject table or column names that cannot be spliced into SQL as-is."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def complete_select(query: str, columns: Iterable[Optional[str]]) -> str:
    """
    Append ``columns`` to the SELECT list of ``query``, just before ``FROM``.

    ``None`` entries are skipped.
    """
    index = index_of_word(query, "FROM")
    if index < 0:
        raise QueryTemplateError(f"No FROM clause in query template: {query!r}")
    while index >= 1 and query[index - 1].isspace():
        index -= 1
    extra = "".join(f", {name}" for name in columns if name is not None)
    return query[:index] + extra + query[index:]


def replace_question_mark(query: str, value: str) -> str:
    """Substitute every ``[?]`` token with a column or table name."""
    if COLUMN_PLACEHOLDER not in query:
        raise QueryTemplateError(
            f"Query template has no {COLUMN_PLACEHOLDER} placeholder: {query!r}"
        )
    if value and _is_identifier_char(value[0]) and " " in value:
        value = quote_identifier(value)
    return query.replace(COLUMN_PLACEHOLDER, value)


def add_not_null_clauses(
    query: str, columns: Sequence[str], anchor: str = "ORDER"
) -> str:
    """Insert ``AND (col IS NOT NULL)`` for each column before ``anchor``."""
    index = index_of_word(query, anchor)
    if index < 0:
        raise QueryTemplateError(
            f"No {anchor} anchor in query template: {query!r}"
        )
    clauses = "".join(f"AND ({name} IS NOT NULL) " for name in columns)
    return query[:index] + clauses + query[index:]


def require_order_by(query: str) -> str:
    if not _ORDER_BY.search(query):
        raise QueryTemplateError(f"Query template has no ORDER BY: {query!r}")
    return query


def rewrite_lookup_by_value(query: str) -> str:
    """
    Turn a ``SELECT key, value FROM t WHERE key=?`` template into the reverse
    lookup ``... WHERE value=?``.

    The first column after SELECT must reappear in the WHERE clause; this is
    the only shape the rewrite understands.
    """
    query = query.strip()
    key = value = None
    step = 0
    for match in _LOOKUP_TOKEN.finditer(query):
        word = match.group(0)
        if step == 0:
            if word.upper() != "SELECT":
                continue
        elif step == 1:
            key = word
        elif step == 2:
            value = word
        elif step == 3:
            if word.upper() != "WHERE":
                continue
        elif step == 4:
            if word.upper() != key.upper():
                continue
            return query[: match.start()] + value + query[match.end() :]
        step += 1
    raise QueryTemplateError(
        "The first column after SELECT should appear in the WHERE clause: "
        f"{query!r}"
    )


def cut_after_from(query: str, keep_select: bool) -> str:
    """
    Truncate ``query`` right after the table name that follows ``FROM``.

    With ``keep_select`` the SELECT list is kept, otherwise the result starts
    at ``FROM``.
    """
    lower = index_of_word(query, "FROM")
    if lower < 0:
        raise QueryTemplateError(f"No FROM clause in query template: {query!r}")
    upper = lower + len("FROM")
    length = len(query)
    while upper < length and query[upper].isspace():
        upper += 1
    while upper < length and not query[upper].isspace():
        upper += 1
    start = 0 if keep_select else lower
    return query[start:upper]


def expand_total(query: str, columns: Sequence[str]) -> str:
    """
    Replace the word ``total`` with the sum of the given catch columns.

    Templates without ``total`` are returned unchanged.
    """
    index = index_of_word(query, "total")
    if index < 0:
        return query
    if columns:
        expression = "(" + "+".join(f"COALESCE({name}, 0)" for name in columns) + ")"
    else:
        expression = "0"
    return query[:index] + expression + query[index + len("total") :]
