"""
Sort-merge join of key-ordered cursors into one wide, read-only row-set.

Every input cursor yields rows whose first column is the catch ID, strictly
ascending. The row-set emits one row per ID present in *all* cursors (an
inner join), without buffering anything beyond the current row of each
cursor.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Iterator, List, Optional, Sequence, Tuple

from catchcoupling.errors import (
    CouplingError,
    CursorOrderError,
    RowSetConfigurationError,
    TableClosedError,
)
from catchcoupling.protocols import RowCursor

logger = logging.getLogger(__name__)

_BEFORE_FIRST = -math.inf


class CouplingRowSet:
    """
    Forward-only merged view over ``cursors``.

    Column 1 is the synthetic ``ID``; the remaining columns are the non-key
    columns of each cursor, in cursor order. ``labels`` names every output
    column, so ``len(labels)`` must be one more than the total number of
    non-key columns.

    The row-set owns its cursors and closes all of them in ``close()``.
    """

    def __init__(
        self,
        cursors: Sequence[RowCursor],
        labels: Sequence[str],
        nullable: Optional[Sequence[bool]] = None,
    ) -> None:
        if not cursors:
            raise RowSetConfigurationError("A row-set needs at least one cursor.")
        self._cursors: List[Optional[RowCursor]] = list(cursors)
        self._labels: Tuple[str, ...] = tuple(labels)

        column_map: List[Tuple[int, int]] = []
        for index, cursor in enumerate(cursors):
            count = len(cursor.keys()) - 1
            if count < 0:
                raise RowSetConfigurationError(f"Cursor #{index} has no key column.")
            column_map.extend((index, physical) for physical in range(1, count + 1))
        if len(column_map) != len(self._labels) - 1:
            raise RowSetConfigurationError(
                f"{len(self._labels)} labels declared for {len(column_map)} "
                "data columns plus ID."
            )
        self._column_map = tuple(column_map)

        if nullable is None:
            nullable = (False,) + (True,) * len(column_map)
        if len(nullable) != len(self._labels):
            raise RowSetConfigurationError("One nullable flag is needed per label.")
        self._nullable = tuple(bool(flag) for flag in nullable)

        self._rows: List[Optional[Sequence[Any]]] = [None] * len(cursors)
        self._last_keys: List[Optional[int]] = [None] * len(cursors)
        self._current_id: float = _BEFORE_FIRST
        self._positioned = False
        self._exhausted = False
        self._closed = False
        self._last_null: Optional[bool] = None

    # --- Description ---

    @property
    def labels(self) -> Tuple[str, ...]:
        return self._labels

    @property
    def nullable(self) -> Tuple[bool, ...]:
        return self._nullable

    @property
    def column_count(self) -> int:
        return len(self._labels)

    @property
    def cursor_count(self) -> int:
        return len(self._cursors)

    @property
    def current_id(self) -> Optional[int]:
        return int(self._current_id) if self._positioned else None

    @property
    def closed(self) -> bool:
        return self._closed

    # --- Navigation ---

    def _fetch(self, index: int) -> Optional[Sequence[Any]]:
        cursor = self._cursors[index]
        if cursor is None:
            raise TableClosedError("Row-set is closed.")
        row = cursor.fetchone()
        if row is None:
            return None
        key = row[0]
        previous = self._last_keys[index]
        if previous is not None and key <= previous:
            raise CursorOrderError(index, previous, key)
        self._last_keys[index] = key
        return row

    def advance(self) -> bool:
        """
        Move to the next ID present in every cursor.

        Each cursor is moved forward until its key reaches the running
        consensus. A cursor landing past it raises the consensus and restarts
        the sweep from the first cursor, skipping the one that moved it.
        Returns False, for good, as soon as one cursor runs out of rows.
        """
        if self._closed:
            raise TableClosedError("Row-set is closed.")
        if self._exhausted:
            return False
        skip = -1
        index = 0
        count = len(self._cursors)
        while index < count:
            if index != skip:
                while True:
                    row = self._fetch(index)
                    if row is None:
                        self._exhausted = True
                        self._positioned = False
                        return False
                    if row[0] >= self._current_id:
                        break
                self._rows[index] = row
                if row[0] > self._current_id:
                    self._current_id = row[0]
                    skip = index
                    index = 0
                    continue
            index += 1
        self._positioned = True
        return True

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        while self.advance():
            yield self.row()

    # --- Column access ---

    def _locate(self, column: int) -> Optional[Tuple[int, int]]:
        if not self._positioned:
            raise CouplingError("The row-set is not positioned on a row.")
        if column == 1:
            return None
        if 2 <= column <= len(self._labels):
            return self._column_map[column - 2]
        raise IndexError(f"Invalid column number {column}.")

    def get(self, column: int) -> Any:
        """Value of the 1-based ``column`` on the current row."""
        slot = self._locate(column)
        if slot is None:
            self._last_null = False
            return int(self._current_id)
        cursor_index, physical = slot
        value = self._rows[cursor_index][physical]
        self._last_null = value is None
        return value

    def get_float(self, column: int) -> float:
        value = self.get(column)
        return math.nan if value is None else float(value)

    def get_by_label(self, label: str) -> Any:
        try:
            column = self._labels.index(label) + 1
        except ValueError:
            raise KeyError(f"No column labelled {label!r}.") from None
        return self.get(column)

    def was_null(self) -> bool:
        """Whether the last value read was NULL."""
        if self._last_null is None:
            raise CouplingError("No column has been read yet.")
        return self._last_null

    def row(self) -> Tuple[Any, ...]:
        if not self._positioned:
            raise CouplingError("The row-set is not positioned on a row.")
        values = [self._rows[i][j] for i, j in self._column_map]
        return (int(self._current_id), *values)

    # --- Lifecycle ---

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._positioned = False
        for index, cursor in enumerate(self._cursors):
            if cursor is not None:
                cursor.close()
                self._cursors[index] = None
        logger.debug("[rowset] closed %d cursor(s)", len(self._cursors))

    def __enter__(self) -> "CouplingRowSet":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else f"id={self.current_id}"
        return f"<CouplingRowSet cursors={len(self._cursors)} {state}>"
