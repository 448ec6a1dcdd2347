"""
Catch tables: typed, time-ordered reads of longline and purse-seine catches.

Both tables extend their SQL template with one column per requested species
and bind the time range (and, for seines, the area) as query parameters.
Longline sets are segments, so their area filter runs in-process with
shapely once the rows are read.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timezone
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy.engine import Connection

from catchcoupling.core.sql import (
    complete_select,
    expand_total,
    replace_question_mark,
    validate_identifier,
)
from catchcoupling.core.templates import LONGLINES, SEINES, UPDATE, QueryTemplates
from catchcoupling.errors import (
    RecordVanishedError,
    TableClosedError,
    UnexpectedUpdateCountError,
)
from catchcoupling.models.catch import (
    CatchKind,
    CatchRecord,
    GeoArea,
    LineGeometry,
    PointGeometry,
)
from catchcoupling.utils.timestamps import as_utc, from_storage, to_storage

logger = logging.getLogger(__name__)

EARLIEST = datetime(1800, 1, 1, tzinfo=timezone.utc)
LATEST = datetime(2200, 1, 1, tzinfo=timezone.utc)


def _float(value: Any) -> float:
    return math.nan if value is None else float(value)


class CatchTable:
    """
    Base class for the catch tables.

    Subclasses provide the template key, the bound parameters and the row
    decoding. Records come back sorted by capture time with timestamps in
    UTC; ``zone`` names the timezone of the wall-clock values stored in the
    database.
    """

    kind: CatchKind
    table: str

    def __init__(
        self,
        connection: Connection,
        templates: QueryTemplates,
        species: Sequence[str] = (),
        zone: str = "UTC",
    ) -> None:
        self._connection: Optional[Connection] = connection
        self._templates = templates
        self._species: Tuple[str, ...] = tuple(validate_identifier(s) for s in species)
        self._zone = zone
        self._lock = threading.RLock()
        self._start = EARLIEST
        self._end = LATEST
        self._area = GeoArea()
        self._covered: Optional[Tuple[GeoArea, Tuple[datetime, datetime]]] = None
        self._query = expand_total(
            complete_select(
                templates[self.table], [f"{self.table}.{code}" for code in self._species]
            ),
            self._species,
        )
        self._update_template = templates[self.table + UPDATE]

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(species={list(self._species)}, "
            f"{self._start:%Y-%m-%d}..{self._end:%Y-%m-%d}, {self._area})"
        )

    @property
    def species(self) -> Tuple[str, ...]:
        return self._species

    @property
    def query(self) -> str:
        return self._query

    @property
    def time_range(self) -> Tuple[datetime, datetime]:
        return self._start, self._end

    @property
    def geographic_area(self) -> GeoArea:
        return self._area

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise TableClosedError(f"{type(self).__name__} is closed.")
        return self._connection

    def set_time_range(self, start: datetime, end: datetime) -> None:
        start, end = as_utc(start), as_utc(end)
        if start > end:
            raise ValueError(f"Time range starts after it ends: {start} > {end}")
        with self._lock:
            self._start, self._end = start, end
            self._covered = None

    def set_geographic_area(self, area: GeoArea) -> None:
        with self._lock:
            self._area = area
            self._covered = None

    def _parameters(self) -> Tuple[Any, ...]:
        raise NotImplementedError

    def _decode(self, row: Sequence[Any]) -> CatchRecord:
        raise NotImplementedError

    def _accept(self, record: CatchRecord) -> bool:
        return True

    def entries(self) -> List[CatchRecord]:
        """Catches within the current time range and area, oldest first."""
        with self._lock:
            parameters = self._parameters()
            logger.debug("[sql] %s -- %r", self._query, parameters)
            result = self._require_connection().exec_driver_sql(self._query, parameters)
            try:
                records = [self._decode(row) for row in result]
            finally:
                result.close()
        records = [record for record in records if self._accept(record)]
        records.sort(key=lambda record: record.captured_at)
        return records

    def _scan(self) -> Tuple[GeoArea, Tuple[datetime, datetime]]:
        xmin = ymin = math.inf
        xmax = ymax = -math.inf
        tmin, tmax = self._end, self._start
        for record in self.entries():
            geometry = record.geometry
            if isinstance(geometry, LineGeometry):
                xs, ys = (geometry.x1, geometry.x2), (geometry.y1, geometry.y2)
            else:
                xs, ys = (geometry.x,), (geometry.y,)
            for x in xs:
                if not math.isnan(x):
                    xmin, xmax = min(xmin, x), max(xmax, x)
            for y in ys:
                if not math.isnan(y):
                    ymin, ymax = min(ymin, y), max(ymax, y)
            tmin = min(tmin, record.captured_at)
            tmax = max(tmax, record.captured_at)

        area = self._area
        if xmin <= xmax and ymin <= ymax:
            area = self._area.intersection(GeoArea(xmin, ymin, xmax, ymax)) or area
        times = (self._start, self._end)
        if tmin <= tmax:
            times = (max(tmin, self._start), min(tmax, self._end))
        return area, times

    def _envelope(self) -> Tuple[GeoArea, Tuple[datetime, datetime]]:
        with self._lock:
            if self._covered is None:
                self._covered = self._scan()
            return self._covered

    def covered_area(self) -> GeoArea:
        """The requested area narrowed to the catches actually present."""
        return self._envelope()[0]

    def covered_time_range(self) -> Tuple[datetime, datetime]:
        """The requested time range narrowed to the catches actually present."""
        return self._envelope()[1]

    def set_value(self, record: CatchRecord, column: str, value: float) -> None:
        """Write ``value`` into ``column`` of the row holding ``record``."""
        statement = replace_question_mark(
            self._update_template, validate_identifier(column)
        )
        parameters = (None if math.isnan(value) else value, record.id)
        with self._lock:
            logger.debug("[sql] %s -- %r", statement, parameters)
            count = self._require_connection().exec_driver_sql(
                statement, parameters
            ).rowcount
        if count == 0:
            raise RecordVanishedError(record.id, statement)
        if count != 1:
            raise UnexpectedUpdateCountError(count, statement)

    def close(self) -> None:
        with self._lock:
            self._connection = None
            self._covered = None


class LonglineCatchTable(CatchTable):
    """
    Longline sets. Amounts are catch per unit effort: the raw catch divided
    by the thousands of hooks set.
    """

    kind = CatchKind.LONGLINE
    table = LONGLINES

    def __init__(
        self,
        connection: Connection,
        templates: QueryTemplates,
        species: Sequence[str] = (),
        zone: str = "UTC",
    ) -> None:
        super().__init__(connection, templates, species, zone)
        self._minimum_catch = 0.0

    @property
    def minimum_catch(self) -> float:
        return self._minimum_catch

    def set_minimum_catch(self, value: float) -> None:
        with self._lock:
            self._minimum_catch = float(value)
            self._covered = None

    def _parameters(self) -> Tuple[Any, ...]:
        return (
            to_storage(self._start, self._zone),
            to_storage(self._end, self._zone),
            self._minimum_catch,
        )

    def _decode(self, row: Sequence[Any]) -> CatchRecord:
        effort = _float(row[6]) / 1000
        if effort == 0:
            effort = math.nan
        return CatchRecord(
            id=int(row[0]),
            captured_at=from_storage(row[1], self._zone),
            geometry=LineGeometry(
                _float(row[2]), _float(row[3]), _float(row[4]), _float(row[5])
            ),
            species=self._species,
            amounts=tuple(_float(value) / effort for value in row[7:]),
        )

    def _accept(self, record: CatchRecord) -> bool:
        return record.intersects(self._area)


class SeineCatchTable(CatchTable):
    """Purse-seine sets, located at a single point."""

    kind = CatchKind.SEINE
    table = SEINES

    def _parameters(self) -> Tuple[Any, ...]:
        area = self._area
        return (
            to_storage(self._start, self._zone),
            to_storage(self._end, self._zone),
            area.xmin,
            area.xmax,
            area.ymin,
            area.ymax,
        )

    def _decode(self, row: Sequence[Any]) -> CatchRecord:
        # row[1] is the number of sets, not carried by the record
        return CatchRecord(
            id=int(row[0]),
            captured_at=from_storage(row[2], self._zone),
            geometry=PointGeometry(_float(row[3]), _float(row[4])),
            species=self._species,
            amounts=tuple(_float(value) for value in row[5:]),
        )
