"""In-memory stand-ins for SQLAlchemy results and connections."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple


class FakeCursor:
    """Forward-only result over a fixed list of rows; counts every fetch."""

    def __init__(self, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        self._columns = list(columns)
        self._rows = [tuple(row) for row in rows]
        self._position = 0
        self.fetches = 0
        self.closed = False

    def keys(self) -> List[str]:
        return list(self._columns)

    def fetchone(self) -> Optional[Tuple[Any, ...]]:
        if self.closed:
            raise RuntimeError("cursor is closed")
        self.fetches += 1
        if self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return row

    def __iter__(self):
        while True:
            row = self.fetchone()
            if row is None:
                return
            yield row

    def close(self) -> None:
        self.closed = True


def key_cursor(name: str, keys: Sequence[int]) -> FakeCursor:
    """One data column whose value is ``f"{name}{key}"``."""
    return FakeCursor(["ID", name], [(key, f"{name}{key}") for key in keys])


class FakeResult(FakeCursor):
    def __init__(
        self,
        rows: Sequence[Sequence[Any]] = (),
        rowcount: int = 0,
        columns: Sequence[str] = ("ID",),
    ) -> None:
        super().__init__(columns, rows)
        self.rowcount = rowcount


class FakeConnection:
    """
    Records ``exec_driver_sql`` calls and answers them from a script.

    Each scripted entry is either a ``FakeResult`` or an exception to raise.
    """

    def __init__(self, *responses: Any) -> None:
        self._responses = list(responses)
        self.calls: List[Tuple[str, Any]] = []

    def exec_driver_sql(self, statement: str, parameters: Any = None) -> FakeResult:
        self.calls.append((statement, parameters))
        response = self._responses.pop(0) if self._responses else FakeResult()
        if isinstance(response, Exception):
            raise response
        return response
