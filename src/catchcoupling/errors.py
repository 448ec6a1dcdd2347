"""
Exception hierarchy for catchcoupling.

Storage failures are never wrapped: whatever SQLAlchemy (or the driver beneath
it) raises reaches the caller unchanged. The classes below cover the failures
this layer detects on its own.
"""

from __future__ import annotations

from typing import Any


class CouplingError(Exception):
    """Base class for errors raised by catchcoupling itself."""


class RecordNotFoundError(CouplingError, LookupError):
    """A by-name or by-code lookup matched no row."""

    def __init__(self, kind: str, key: Any) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"No {kind} found for {key!r}.")


class AmbiguousRecordError(CouplingError, LookupError):
    """A lookup matched more than one distinct value."""

    def __init__(self, kind: str, key: Any) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"Duplicated {kind} records found for {key!r}.")


class UnexpectedUpdateCountError(CouplingError, UserWarning):
    """
    An UPDATE or INSERT touched a number of rows other than one.

    This is a warning-class condition: the statement has already run, but the
    caller must know that a key collision or a schema assumption failed.
    """

    def __init__(self, count: int, statement: str = "") -> None:
        self.count = count
        self.statement = statement
        super().__init__(f"Unexpected update count: {count} row(s) affected.")


class RecordVanishedError(UnexpectedUpdateCountError):
    """The record disappeared between the read and the write."""

    def __init__(self, record_id: int, statement: str = "") -> None:
        self.record_id = record_id
        super().__init__(0, statement)
        self.args = (f"Record {record_id} was not found when writing it back.",)


class QueryTemplateError(CouplingError, ValueError):
    """A SQL template does not have the shape the query builders rely on."""


class RowSetConfigurationError(CouplingError, ValueError):
    """The declared columns of a row-set do not match its cursors."""


class CursorOrderError(CouplingError):
    """A cursor fed to the merge join produced a key that is not ascending."""

    def __init__(self, cursor_index: int, previous: int, key: int) -> None:
        self.cursor_index = cursor_index
        self.previous = previous
        self.key = key
        super().__init__(
            f"Cursor #{cursor_index} is not strictly ascending on its key: "
            f"{key} follows {previous}."
        )


class TableClosedError(CouplingError):
    """The table (or row-set) was used after close()."""


class LabelConflictError(CouplingError, ValueError):
    """Two columns of the coupling table would carry the same label."""

    def __init__(self, label: str) -> None:
        self.label = label
        super().__init__(f"Column label {label!r} is already used by this table.")
