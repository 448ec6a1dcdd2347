from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence, Type, Union

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError
from sqlmodel import create_engine

from catchcoupling.core.catalog import CatalogKind, ParameterCatalog
from catchcoupling.core.catches import CatchTable, LonglineCatchTable, SeineCatchTable
from catchcoupling.core.environment import EnvironmentTable
from catchcoupling.core.settings import CouplingSettings
from catchcoupling.core.sql import cut_after_from
from catchcoupling.core.templates import QueryTemplates
from catchcoupling.errors import CouplingError, TableClosedError
from catchcoupling.models.catch import CatchKind
from catchcoupling.models.schema import DEFAULT_OPERATIONS, create_schema

logger = logging.getLogger(__name__)

_CATCH_TABLES: Dict[CatchKind, Type[CatchTable]] = {
    CatchKind.LONGLINE: LonglineCatchTable,
    CatchKind.SEINE: SeineCatchTable,
}


class FisheryDatabase:
    """
    Entry point to a fishery database.

    It owns one autocommit connection shared by the tables it creates, and
    knows which kind of catch table (longline or purse-seine) the database
    holds.
    """

    def __init__(
        self,
        bind: Union[str, Engine, None] = None,
        settings: Optional[CouplingSettings] = None,
        templates: Optional[QueryTemplates] = None,
    ):
        self.settings = settings or CouplingSettings.from_env()
        self.templates = templates or QueryTemplates.from_settings(self.settings)
        if isinstance(bind, Engine):
            self.engine = bind
            self._owns_engine = False
        else:
            url = bind or self.settings.database_url
            self.engine = create_engine(url, echo=self.settings.echo_sql)
            self._owns_engine = True
        self._connection: Optional[Connection] = self.engine.connect().execution_options(
            isolation_level="AUTOCOMMIT"
        )
        self._catch_kind: Optional[CatchKind] = (
            CatchKind(self.settings.catch_kind) if self.settings.catch_kind else None
        )
        logger.debug("[db] connected to %s", self.engine.url)

    def __repr__(self) -> str:
        return f"FisheryDatabase({self.engine.url!r})"

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            raise TableClosedError("Fishery database is closed.")
        return self._connection

    def init_schema(
        self,
        species: Sequence[str] = (),
        operations: Sequence[str] = DEFAULT_OPERATIONS,
        kind: CatchKind = CatchKind.LONGLINE,
    ) -> None:
        """Create the default tables for a database holding ``kind`` catches."""
        kind = CatchKind(kind)
        create_schema(
            self.connection,
            species=species,
            operations=operations,
            longlines=kind is CatchKind.LONGLINE,
            seines=kind is CatchKind.SEINE,
        )
        self._catch_kind = kind

    def catch_kind(self) -> CatchKind:
        """
        Kind of catches stored in this database.

        Each catch template is cut right after its table name and run; the
        first one that executes decides.
        """
        if self._catch_kind is not None:
            return self._catch_kind
        for kind, table_class in _CATCH_TABLES.items():
            probe = cut_after_from(self.templates[table_class.table], keep_select=True)
            try:
                self.connection.exec_driver_sql(probe).close()
            except DBAPIError as exc:
                logger.debug("[db] %s probe failed: %s", kind.value, exc)
                continue
            logger.info("[db] catch table kind detected: %s", kind.value)
            self._catch_kind = kind
            return kind
        raise CouplingError("No longline or purse-seine catch table found.")

    def get_catch_table(self, species: Sequence[str] = ()) -> CatchTable:
        table_class = _CATCH_TABLES[self.catch_kind()]
        return table_class(
            self.connection, self.templates, species, zone=self.settings.timezone
        )

    def get_catalog(self) -> ParameterCatalog:
        return ParameterCatalog(self.connection, self.templates)

    def get_environment_table(self) -> EnvironmentTable:
        return EnvironmentTable(self.connection, self.templates)

    def list_parameters(self) -> List[str]:
        return self.get_catalog().list_available(CatalogKind.PARAMETERS)

    def list_operations(self) -> List[str]:
        return self.get_catalog().list_available(CatalogKind.OPERATIONS)

    def close(self) -> None:
        if self._connection is None:
            return
        self._connection.close()
        self._connection = None
        if self._owns_engine:
            self.engine.dispose()

    def __enter__(self) -> "FisheryDatabase":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
