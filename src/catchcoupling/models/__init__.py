"""
The `models` module defines catch records with their geometry, and the
default database schema.
"""

from __future__ import annotations

from catchcoupling.models.catch import CatchKind, CatchRecord, GeoArea
from catchcoupling.models.schema import Operation, Parameter, create_schema

__all__ = [
    "CatchKind",
    "CatchRecord",
    "GeoArea",
    "Operation",
    "Parameter",
    "create_schema",
]
