from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool
from typer.testing import CliRunner

from catchcoupling.core.database import FisheryDatabase
from catchcoupling.core.settings import CouplingSettings
from catchcoupling.core.templates import QueryTemplates

from tests.helpers.fishery_fixtures import seed_fishery


# --- Global Test Configuration ---


def pytest_addoption(parser):
    """Adds the --persist-db-path option to pytest for manual DB inspection."""
    parser.addoption(
        "--persist-db-path",
        action="store",
        default=None,
        help="Specify a file path to create a persistent SQLite database for manual inspection (e.g., test_debug.db).",
    )


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep CATCHCOUPLING_* variables of the developer's shell out of the tests."""
    for name in (
        "CATCHCOUPLING_DATABASE_URL",
        "CATCHCOUPLING_TIMEZONE",
        "CATCHCOUPLING_SQL_TEMPLATES",
        "CATCHCOUPLING_CATCH_KIND",
        "CATCHCOUPLING_ECHO_SQL",
    ):
        monkeypatch.delenv(name, raising=False)


# --- Core Fixtures ---


@pytest.fixture
def engine(request):
    """
    Provides a fresh SQLite engine for each test function.

    In-memory on a StaticPool by default, so every connection sees the same
    data; a file when --persist-db-path is given.
    """
    persist_path = request.config.getoption("--persist-db-path")
    if persist_path:
        path = Path(persist_path).resolve()
        path.unlink(missing_ok=True)
        test_engine = create_engine(f"sqlite:///{path}")
    else:
        test_engine = create_engine(
            "sqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def settings() -> CouplingSettings:
    return CouplingSettings(database_url="sqlite://")


@pytest.fixture
def database(engine, settings):
    """A FisheryDatabase over the seeded longline fishery."""
    db = FisheryDatabase(engine, settings=settings)
    seed_fishery(db.connection)
    yield db
    db.close()


@pytest.fixture
def connection(database):
    """The autocommit connection shared by every table of ``database``."""
    return database.connection


@pytest.fixture
def templates() -> QueryTemplates:
    return QueryTemplates()


@pytest.fixture
def statement_log(engine):
    """Every SQL statement sent to the driver, in order."""
    statements = []

    def _record(conn, cursor, statement, parameters, context, executemany):
        statements.append(statement)

    event.listen(engine, "before_cursor_execute", _record)
    yield statements
    event.remove(engine, "before_cursor_execute", _record)


@pytest.fixture
def fishery_db_url(tmp_path: Path) -> str:
    """A seeded SQLite file, for code that opens the database by URL."""
    url = f"sqlite:///{tmp_path / 'fishery.db'}"
    file_engine = create_engine(url)
    with file_engine.connect() as conn:
        with conn.begin():
            seed_fishery(conn)
    file_engine.dispose()
    return url


@pytest.fixture
def cli_runner(fishery_db_url: str) -> CliRunner:
    """
    Provides a Typer CliRunner whose commands open the seeded file database
    unless --db is given.
    """
    runner = CliRunner()
    with patch.dict(
        "os.environ", {"CATCHCOUPLING_DATABASE_URL": fishery_db_url}
    ):
        yield runner
