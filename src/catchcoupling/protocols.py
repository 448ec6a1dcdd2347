from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class RowCursor(Protocol):
    """
    A forward-only result whose first column is an integer key.

    SQLAlchemy ``CursorResult`` objects satisfy this protocol.
    """

    def keys(self) -> Sequence[str]: ...

    def fetchone(self) -> Optional[Sequence[Any]]: ...

    def close(self) -> None: ...
