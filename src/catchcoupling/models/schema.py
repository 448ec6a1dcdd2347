"""
Default relational schema matching the default SQL templates.

The lookup tables are fixed and declared as SQLModel models. The catch and
environment tables carry one column per species or per operation, so they are
built per database with SQLAlchemy Core.
"""

from __future__ import annotations

from typing import Optional, Sequence

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
)
from sqlalchemy.engine import Connection, Engine
from sqlmodel import Field, SQLModel

from catchcoupling.core.sql import validate_identifier

DEFAULT_OPERATIONS = ("value", "sobel3")


class Parameter(SQLModel, table=True):
    """An environmental variable (SST, CHL, SLA, ...)."""

    __tablename__ = "parameters"

    id: int = Field(
        sa_column=Column("ID", Integer, primary_key=True, autoincrement=False)
    )
    name: str = Field(index=True, description="Short name, e.g. 'SST'.")


class Operation(SQLModel, table=True):
    """
    A transform applied to a parameter field. ``name`` is also the column of
    the environment table holding the transformed values.
    """

    __tablename__ = "operations"

    name: str = Field(primary_key=True)
    prefix: str = Field(default="", description="Column label prefix, e.g. 'sb3'.")
    description: Optional[str] = Field(default=None, nullable=True)


def longline_table(metadata: MetaData, species: Sequence[str]) -> Table:
    return Table(
        "longlines",
        metadata,
        Column("ID", Integer, primary_key=True, autoincrement=False),
        Column("date", DateTime, nullable=False, index=True),
        Column("x1", Float),
        Column("y1", Float),
        Column("x2", Float),
        Column("y2", Float),
        Column("hooks", Float),
        Column("valid", Boolean, nullable=False, default=True),
        *[Column(validate_identifier(code), Float) for code in species],
    )


def seine_table(metadata: MetaData, species: Sequence[str]) -> Table:
    return Table(
        "seines",
        metadata,
        Column("ID", Integer, primary_key=True, autoincrement=False),
        Column("sets", Integer),
        Column("date", DateTime, nullable=False, index=True),
        Column("x", Float),
        Column("y", Float),
        *[Column(validate_identifier(code), Float) for code in species],
    )


def environment_table(
    metadata: MetaData, operations: Sequence[str] = DEFAULT_OPERATIONS
) -> Table:
    # The composite key keeps at most one row per (catch, position, lag, parameter).
    return Table(
        "environments",
        metadata,
        Column("ID", Integer, primary_key=True, autoincrement=False),
        Column("position", Integer, primary_key=True, autoincrement=False),
        Column("time_lag", Integer, primary_key=True, autoincrement=False),
        Column("parameter", Integer, primary_key=True, autoincrement=False),
        *[Column(validate_identifier(name), Float) for name in operations],
    )


def create_schema(
    bind: Engine | Connection,
    *,
    species: Sequence[str] = (),
    operations: Sequence[str] = DEFAULT_OPERATIONS,
    longlines: bool = True,
    seines: bool = False,
) -> MetaData:
    """Create the lookup, catch and environment tables that do not exist yet."""
    SQLModel.metadata.create_all(
        bind, tables=[Parameter.__table__, Operation.__table__]
    )
    metadata = MetaData()
    if longlines:
        longline_table(metadata, species)
    if seines:
        seine_table(metadata, species)
    environment_table(metadata, operations)
    metadata.create_all(bind)
    return metadata
