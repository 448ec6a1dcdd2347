from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from catchcoupling.core.catches import LonglineCatchTable, SeineCatchTable
from catchcoupling.core.database import FisheryDatabase
from catchcoupling.core.environment import EnvironmentTable
from catchcoupling.core.settings import CouplingSettings
from catchcoupling.errors import CouplingError, TableClosedError
from catchcoupling.models.catch import CatchKind
from catchcoupling.models.schema import create_schema


@pytest.fixture
def empty_engine():
    engine = create_engine(
        "sqlite://", poolclass=StaticPool, connect_args={"check_same_thread": False}
    )
    yield engine
    engine.dispose()


def test_longline_database_is_detected(database) -> None:
    assert database.catch_kind() is CatchKind.LONGLINE
    assert isinstance(database.get_catch_table(["ALB"]), LonglineCatchTable)


def test_seine_database_is_detected(empty_engine, settings) -> None:
    with FisheryDatabase(empty_engine, settings=settings) as db:
        create_schema(db.connection, species=["SKJ"], longlines=False, seines=True)

        assert db.catch_kind() is CatchKind.SEINE
        assert isinstance(db.get_catch_table(["SKJ"]), SeineCatchTable)


def test_database_without_catch_table(empty_engine, settings) -> None:
    with FisheryDatabase(empty_engine, settings=settings) as db:
        with pytest.raises(CouplingError):
            db.catch_kind()


def test_configured_kind_skips_detection(engine, statement_log) -> None:
    settings = CouplingSettings(database_url="sqlite://", catch_kind="seine")
    with FisheryDatabase(engine, settings=settings) as db:
        statement_log.clear()

        assert db.catch_kind() is CatchKind.SEINE
        assert statement_log == []


def test_catch_table_uses_configured_timezone(fishery_db_url: str) -> None:
    settings = CouplingSettings(database_url=fishery_db_url, timezone="Asia/Tokyo")
    with FisheryDatabase(settings=settings) as db:
        records = db.get_catch_table(["ALB"]).entries()

    assert records[0].captured_at.isoformat() == "2023-12-31T15:00:00+00:00"


def test_lookup_listings(database) -> None:
    assert database.list_parameters() == ["CHL", "SLA", "SST"]
    assert database.list_operations() == ["sobel3", "value"]


def test_environment_table_shares_the_connection(database) -> None:
    table = database.get_environment_table()

    assert isinstance(table, EnvironmentTable)
    table.add_parameter("SST", "value")
    assert table.column_labels() == ["ID", "SST+00"]
    table.close()


def test_close_is_idempotent(engine, settings) -> None:
    db = FisheryDatabase(engine, settings=settings)

    db.close()
    db.close()

    with pytest.raises(TableClosedError):
        db.connection


def test_open_by_url(fishery_db_url: str) -> None:
    with FisheryDatabase(fishery_db_url) as db:
        assert db.catch_kind() is CatchKind.LONGLINE
        assert len(db.get_catch_table(["ALB", "YFT"]).entries()) == 3


def test_url_from_settings(fishery_db_url: str) -> None:
    with FisheryDatabase(settings=CouplingSettings(database_url=fishery_db_url)) as db:
        assert db.list_parameters() == ["CHL", "SLA", "SST"]


def test_init_schema_creates_empty_tables(empty_engine, settings) -> None:
    with FisheryDatabase(empty_engine, settings=settings) as db:
        db.init_schema(species=["ALB"], operations=["value"])

        assert db.catch_kind() is CatchKind.LONGLINE
        assert db.get_catch_table(["ALB"]).entries() == []
        assert db.list_parameters() == []
