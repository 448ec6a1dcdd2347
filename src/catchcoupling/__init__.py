"""
catchcoupling: join fishery catch records with environmental parameters.

This package exposes the database facade and the tables it creates: the catch
tables, the parameter catalog and the coupling table that merges catches with
environmental values sampled along each catch.
"""

# Models
from catchcoupling.models.catch import (
    AREA,
    CENTER,
    END_POINT,
    START_POINT,
    CatchKind,
    CatchRecord,
    GeoArea,
    LineGeometry,
    PointGeometry,
)

# Core
from catchcoupling.core.catalog import CatalogKind, ParameterCatalog, column_label
from catchcoupling.core.catches import CatchTable, LonglineCatchTable, SeineCatchTable
from catchcoupling.core.database import FisheryDatabase
from catchcoupling.core.environment import EnvironmentTable, TableState
from catchcoupling.core.rowset import CouplingRowSet
from catchcoupling.core.settings import CouplingSettings
from catchcoupling.core.steps import EnvironmentStep, StepKey
from catchcoupling.core.templates import QueryTemplates
from catchcoupling.core.writer import EnvironmentWriter, UpsertOutcome

# Errors
from catchcoupling.errors import (
    AmbiguousRecordError,
    CouplingError,
    CursorOrderError,
    LabelConflictError,
    QueryTemplateError,
    RecordNotFoundError,
    RecordVanishedError,
    RowSetConfigurationError,
    TableClosedError,
    UnexpectedUpdateCountError,
)

__all__ = [
    # Database and tables
    "FisheryDatabase",
    "EnvironmentTable",
    "TableState",
    "CatchTable",
    "LonglineCatchTable",
    "SeineCatchTable",
    "ParameterCatalog",
    "CatalogKind",
    "column_label",
    "CouplingRowSet",
    "EnvironmentStep",
    "StepKey",
    "EnvironmentWriter",
    "UpsertOutcome",
    # Configuration
    "CouplingSettings",
    "QueryTemplates",
    # Records
    "CatchRecord",
    "CatchKind",
    "GeoArea",
    "LineGeometry",
    "PointGeometry",
    "START_POINT",
    "CENTER",
    "END_POINT",
    "AREA",
    # Errors
    "CouplingError",
    "RecordNotFoundError",
    "AmbiguousRecordError",
    "UnexpectedUpdateCountError",
    "RecordVanishedError",
    "QueryTemplateError",
    "RowSetConfigurationError",
    "CursorOrderError",
    "LabelConflictError",
    "TableClosedError",
]
