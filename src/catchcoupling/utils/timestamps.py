"""
Conversions between timezone-aware UTC instants and the naive wall-clock
values stored in the database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

STORAGE_FORMAT = "%Y-%m-%d %H:%M:%S.%f"


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_storage(value: Union[str, datetime, None], zone: str) -> Optional[datetime]:
    """Read a stored wall-clock value in ``zone`` and return it in UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(zone))
    return value.astimezone(timezone.utc)


def to_storage(value: datetime, zone: str) -> str:
    """Format an instant as the naive wall-clock text stored in ``zone``."""
    local = as_utc(value).astimezone(ZoneInfo(zone)).replace(tzinfo=None)
    return local.strftime(STORAGE_FORMAT)
