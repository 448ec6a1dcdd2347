"""
Small helpers shared by the table classes.
"""

from catchcoupling.utils.timestamps import as_utc, from_storage, to_storage

__all__ = ["as_utc", "from_storage", "to_storage"]
