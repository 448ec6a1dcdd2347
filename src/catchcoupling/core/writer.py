from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional, Tuple

from sqlalchemy.engine import Connection

from catchcoupling.core.sql import replace_question_mark, validate_identifier
from catchcoupling.core.steps import StepKey
from catchcoupling.core.templates import (
    ENVIRONMENTS,
    INSERT,
    UPDATE,
    VALUE,
    QueryTemplates,
)
from catchcoupling.errors import TableClosedError, UnexpectedUpdateCountError
from catchcoupling.models.catch import CatchRecord
from catchcoupling.utils.timestamps import as_utc

logger = logging.getLogger(__name__)

_ONE_DAY = timedelta(days=1)


class UpsertOutcome(str, Enum):
    SKIPPED = "skipped"
    UPDATED = "updated"
    INSERTED = "inserted"


def time_lag_days(captured_at: datetime, measured_at: datetime) -> int:
    """
    Whole days from the catch to the measurement, rounded toward -inf.

    A measurement at 18:00 on the day before a midnight catch gives -1.
    """
    return math.floor((as_utc(measured_at) - as_utc(captured_at)) / _ONE_DAY)


class EnvironmentWriter:
    """
    Writes one environmental value per call: UPDATE the existing row, INSERT
    it when no row matched. ``get_value`` reads a cell back from the same
    coordinate.
    """

    def __init__(self, connection: Connection, templates: QueryTemplates) -> None:
        self._connection: Optional[Connection] = connection
        self._templates = templates
        self._statements: Dict[str, Tuple[str, str]] = {}
        self._reads: Dict[str, str] = {}
        self._lock = threading.RLock()

    def _statements_for(self, column: str) -> Tuple[str, str]:
        statements = self._statements.get(column)
        if statements is None:
            validate_identifier(column)
            statements = (
                replace_question_mark(self._templates[ENVIRONMENTS + UPDATE], column),
                replace_question_mark(self._templates[ENVIRONMENTS + INSERT], column),
            )
            self._statements[column] = statements
        return statements

    def _read_for(self, column: str) -> str:
        statement = self._reads.get(column)
        if statement is None:
            statement = replace_question_mark(
                self._templates[ENVIRONMENTS + VALUE], validate_identifier(column)
            )
            self._reads[column] = statement
        return statement

    @staticmethod
    def _row_key(
        record: CatchRecord, step_key: StepKey, measured_at: Optional[datetime]
    ) -> Tuple[int, int, int, int]:
        if measured_at is not None:
            time_lag = time_lag_days(record.captured_at, measured_at)
        else:
            time_lag = step_key.time_lag
        position = record.clamp_position(step_key.position)
        return (record.id, position, time_lag, step_key.parameter)

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise TableClosedError("Environment writer is closed.")
        return self._connection

    def get_value(
        self,
        record: CatchRecord,
        step_key: StepKey,
        column: str,
        measured_at: Optional[datetime] = None,
    ) -> float:
        """
        Read back ``column`` for ``record`` at the coordinate ``set_value``
        would write to. Several matching rows are averaged, ignoring NULLs;
        NaN when nothing is stored.
        """
        with self._lock:
            connection = self._require_connection()
            query = self._read_for(column)
            key = self._row_key(record, step_key, measured_at)
            logger.debug("[sql] %s -- %r", query, key)
            result = connection.exec_driver_sql(query, key)
            try:
                values = [float(row[0]) for row in result if row[0] is not None]
            finally:
                result.close()
        values = [value for value in values if not math.isnan(value)]
        if not values:
            return math.nan
        return math.fsum(values) / len(values)

    def set_value(
        self,
        record: CatchRecord,
        step_key: StepKey,
        column: str,
        value: float,
        measured_at: Optional[datetime] = None,
    ) -> UpsertOutcome:
        """
        Store ``value`` in ``column`` for ``record`` at the step's coordinate.

        When ``measured_at`` is given the time lag is recomputed from it
        instead of using the step's. A NaN value is not written.

        Raises
        ------
        UnexpectedUpdateCountError
            If the UPDATE or the INSERT affected anything but one row.
        """
        if math.isnan(value):
            return UpsertOutcome.SKIPPED
        with self._lock:
            connection = self._require_connection()
            update, insert = self._statements_for(column)
            key = self._row_key(record, step_key, measured_at)

            logger.debug("[upsert] %s -- %r", update, (value, *key))
            count = connection.exec_driver_sql(update, (value, *key)).rowcount
            if count == 1:
                return UpsertOutcome.UPDATED
            if count != 0:
                raise UnexpectedUpdateCountError(count, update)

            logger.debug("[upsert] %s -- %r", insert, (*key, value))
            count = connection.exec_driver_sql(insert, (*key, value)).rowcount
            if count != 1:
                raise UnexpectedUpdateCountError(count, insert)
            return UpsertOutcome.INSERTED

    def close(self) -> None:
        with self._lock:
            self._statements.clear()
            self._reads.clear()
            self._connection = None
