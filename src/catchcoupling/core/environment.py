"""
The coupling table: a configurable join of catch rows with environmental
parameters.

Callers register (parameter, operation, position, time lag) requests with
``add_parameter``. Requests sharing a parameter, position, time lag and NULL
policy are grouped into one ``EnvironmentStep`` (one cursor), and
``get_row_set`` merges every step cursor, plus an optional catch-table cursor,
into a single ``CouplingRowSet``. The same object writes values back through
an ``EnvironmentWriter``.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import date, datetime
from enum import Enum
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Sequence,
    TextIO,
    Tuple,
    Union,
)

import pandas as pd
from sqlalchemy import Date, DateTime, inspect
from sqlalchemy.engine import Connection

from catchcoupling.core.catalog import CatalogKind, ParameterCatalog, column_label
from catchcoupling.core.rowset import CouplingRowSet
from catchcoupling.core.sql import (
    complete_select,
    quote_identifier,
    validate_identifier,
)
from catchcoupling.core.steps import EnvironmentStep, StepKey
from catchcoupling.core.templates import QueryTemplates
from catchcoupling.core.writer import EnvironmentWriter, UpsertOutcome
from catchcoupling.errors import LabelConflictError, TableClosedError
from catchcoupling.models.catch import CENTER, CatchRecord, validate_position
from catchcoupling.utils.timestamps import STORAGE_FORMAT

logger = logging.getLogger(__name__)

ParameterRef = Union[str, int]

_INSERT_BATCH = 500


class TableState(str, Enum):
    OPEN = "open"
    ROW_SET_ACTIVE = "row_set_active"
    CLOSED = "closed"


def _as_date(value: Any) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return value


class EnvironmentTable:
    """
    Join of a catch table with any number of environmental parameters.

    Column 1 of every row-set is ``ID``, followed by the catch-table columns
    given to ``set_catch_table`` and then one column per requested operation,
    labelled with ``column_label``.

    Any change to the configuration closes the row-set returned by the
    previous ``get_row_set`` call.
    """

    def __init__(
        self,
        connection: Connection,
        templates: QueryTemplates,
        catalog: Optional[ParameterCatalog] = None,
    ) -> None:
        self._connection: Optional[Connection] = connection
        self._templates = templates
        self._owns_catalog = catalog is None
        self._catalog = catalog or ParameterCatalog(connection, templates)
        self._writer = EnvironmentWriter(connection, templates)
        self._lock = threading.RLock()
        self._steps: Dict[StepKey, EnvironmentStep] = {}
        self._parameter_names: Dict[int, str] = {}
        self._prefixes: Dict[str, str] = {}
        self._catch_table: Optional[str] = None
        self._catch_columns: Tuple[str, ...] = ()
        self._date_columns: frozenset = frozenset()
        self._row_set: Optional[CouplingRowSet] = None
        self._closed = False

    def __repr__(self) -> str:
        return (
            f"EnvironmentTable(catch_table={self._catch_table!r}, "
            f"steps={len(self._steps)}, state={self.state.value})"
        )

    # --- State ---

    @property
    def state(self) -> TableState:
        if self._closed:
            return TableState.CLOSED
        if self._row_set is not None and not self._row_set.closed:
            return TableState.ROW_SET_ACTIVE
        return TableState.OPEN

    @property
    def catalog(self) -> ParameterCatalog:
        return self._catalog

    @property
    def catch_table(self) -> Optional[str]:
        return self._catch_table

    @property
    def steps(self) -> Tuple[EnvironmentStep, ...]:
        with self._lock:
            return tuple(self._steps.values())

    def _check_open(self) -> Connection:
        if self._closed or self._connection is None:
            raise TableClosedError("Environment table is closed.")
        return self._connection

    def _close_row_set(self) -> None:
        if self._row_set is not None:
            self._row_set.close()
            self._row_set = None

    # --- Configuration ---

    def set_catch_table(self, name: Optional[str], columns: Sequence[str] = ()) -> None:
        """
        Drive the join from ``name``: every row-set then carries only the IDs
        present in that table, with ``columns`` copied after the ID.
        """
        with self._lock:
            connection = self._check_open()
            if name is None:
                self._close_row_set()
                self._catch_table = None
                self._catch_columns = ()
                self._date_columns = frozenset()
                logger.info("[environment] no catch table joined")
                return
            validate_identifier(name)
            columns = tuple(validate_identifier(column) for column in columns)
            taken = {"id"}
            taken.update(label.casefold() for label in self._step_labels())
            for column in columns:
                if column.casefold() in taken:
                    raise LabelConflictError(column)
                taken.add(column.casefold())
            self._close_row_set()
            types = {
                info["name"].lower(): info["type"]
                for info in inspect(connection).get_columns(name)
            }
            self._date_columns = frozenset(
                column
                for column in columns
                if isinstance(types.get(column.lower()), (Date, DateTime))
            )
            self._catch_table = name
            self._catch_columns = columns
            logger.info("[environment] joining catch table %s %s", name, list(columns))

    def _resolve_parameter(self, parameter: ParameterRef) -> int:
        if isinstance(parameter, str):
            code = self._catalog.resolve_parameter_id(parameter)
            self._parameter_names.setdefault(code, parameter)
            return code
        code = int(parameter)
        if code not in self._parameter_names:
            self._parameter_names[code] = self._catalog.resolve_parameter_name(code)
        return code

    def _resolve_prefix(self, operation: str) -> str:
        prefix = self._prefixes.get(operation)
        if prefix is None:
            prefix = self._catalog.resolve_operation_prefix(operation)
            self._prefixes[operation] = prefix
        return prefix

    def add_parameter(
        self,
        parameter: ParameterRef,
        operation: str,
        position: int = CENTER,
        time_lag: int = 0,
        allow_nulls: bool = False,
    ) -> None:
        """
        Request ``operation`` applied to ``parameter`` (name or code) at the
        given position and time lag.

        Re-adding the same request with the opposite ``allow_nulls`` moves it
        rather than duplicating the column. Labels carry no position, so the
        same request at a second position raises ``LabelConflictError``.
        """
        with self._lock:
            self._check_open()
            validate_position(position)
            validate_identifier(operation)
            key = StepKey(self._resolve_parameter(parameter), position, time_lag, allow_nulls)
            label = column_label(
                self._parameter_names[key.parameter],
                self._resolve_prefix(operation),
                time_lag,
            )
            # Re-adding the same request, under either NULL policy, keeps its label.
            moving = {(key, operation), (key.toggled(), operation)}
            taken = {"id"}
            taken.update(column.casefold() for column in self._catch_columns)
            taken.update(other.casefold() for other in self._step_labels(exclude=moving))
            if label.casefold() in taken:
                raise LabelConflictError(label)
            self._close_row_set()
            self._discard(key.toggled(), operation)
            step = self._steps.get(key)
            if step is None:
                step = self._steps[key] = EnvironmentStep(key)
            step.add_column(operation)

    def remove_parameter(
        self,
        parameter: ParameterRef,
        operation: str,
        position: int = CENTER,
        time_lag: int = 0,
    ) -> None:
        with self._lock:
            self._check_open()
            key = StepKey(self._resolve_parameter(parameter), position, time_lag)
            self._close_row_set()
            self._discard(key, operation)
            self._discard(key.toggled(), operation)

    def _discard(self, key: StepKey, operation: str) -> None:
        step = self._steps.get(key)
        if step is not None and step.remove_column(operation) and step.is_empty():
            step.close()
            del self._steps[key]

    def parameter_count(
        self,
        parameter: Optional[ParameterRef] = None,
        operation: Optional[str] = None,
        position: Optional[int] = None,
    ) -> int:
        """Number of steps matching every given filter; all steps by default."""
        with self._lock:
            self._check_open()
            if parameter is None and operation is None and position is None:
                return len(self._steps)
            code = None if parameter is None else self._resolve_parameter(parameter)
            count = 0
            for key, step in self._steps.items():
                if code is not None and key.parameter != code:
                    continue
                if position is not None and key.position != position:
                    continue
                if operation is not None and not step.has_column(operation):
                    continue
                count += 1
            return count

    def list_available(self, kind: CatalogKind) -> List[str]:
        with self._lock:
            self._check_open()
            return self._catalog.list_available(kind)

    # --- Reading ---

    def _step_labels(self, exclude: Iterable[Tuple[StepKey, str]] = ()) -> Iterator[str]:
        exclude = set(exclude)
        for key, step in self._steps.items():
            name = self._parameter_names[key.parameter]
            for operation in step.columns:
                if (key, operation) not in exclude:
                    yield column_label(name, self._prefixes[operation], key.time_lag)

    def _layout(self) -> Tuple[List[str], List[bool]]:
        labels = ["ID", *self._catch_columns, *self._step_labels()]
        nullable = [False]
        nullable.extend(True for _ in self._catch_columns)
        for key, step in self._steps.items():
            nullable.extend(key.allow_nulls for _ in step.columns)
        return labels, nullable

    def column_labels(self) -> List[str]:
        with self._lock:
            self._check_open()
            return self._layout()[0]

    def _catch_query(self) -> str:
        template = f"SELECT ID FROM {self._catch_table} ORDER BY ID"
        return complete_select(template, self._catch_columns)

    def get_row_set(self) -> CouplingRowSet:
        """
        Open a fresh row-set over the current configuration.

        The row-set returned by the previous call is closed first.
        """
        with self._lock:
            connection = self._check_open()
            self._close_row_set()
            labels, nullable = self._layout()
            cursors = []
            try:
                if self._catch_table is not None:
                    query = self._catch_query()
                    logger.debug("[sql] %s", query)
                    cursors.append(connection.exec_driver_sql(query))
                for step in self._steps.values():
                    cursors.append(step.execute(connection, self._templates))
                self._row_set = CouplingRowSet(cursors, labels, nullable)
            except Exception:
                for cursor in cursors:
                    cursor.close()
                raise
            return self._row_set

    def _date_flags(self) -> List[bool]:
        flags = [False]
        flags.extend(column in self._date_columns for column in self._catch_columns)
        flags.extend(False for step in self._steps.values() for _ in step.columns)
        return flags

    def print_table(self, out: TextIO, max_rows: Optional[int] = None) -> int:
        """
        Write the joined rows to ``out`` as fixed-width text.

        Numbers are printed with two decimals, dates as ``YYYY-MM-DD`` and
        NULLs as blanks. Returns the number of data rows written.
        """
        with self._lock:
            row_set = self.get_row_set()
            dates = self._date_flags()
            labels = row_set.labels
            widths = []
            header = []
            for index, label in enumerate(labels):
                if index == 0:
                    width = max(11, len(label))
                elif dates[index]:
                    width = max(10, len(label))
                else:
                    width = max(7, len(label))
                widths.append(width)
                header.append(label + " " * (width - len(label) + 1))
            out.write("".join(header) + "\n")

            count = 0
            try:
                while (max_rows is None or count < max_rows) and row_set.advance():
                    cells = []
                    for index, value in enumerate(row_set.row()):
                        if value is None:
                            text = ""
                        elif index == 0:
                            text = str(int(value))
                        elif dates[index]:
                            text = _as_date(value).strftime("%Y-%m-%d")
                        else:
                            text = f"{float(value):.2f}"
                        cells.append(text.rjust(widths[index]) + " ")
                    out.write("".join(cells) + "\n")
                    count += 1
            finally:
                self._close_row_set()
            out.flush()
            return count

    def copy_to_table(self, table_name: str, connection: Optional[Connection] = None) -> int:
        """
        Create ``table_name`` and copy every joined row into it.

        The table must not exist yet. ``connection`` defaults to the one this
        table reads from; rows are streamed to any other connection in
        batches. Returns the number of rows copied.
        """
        with self._lock:
            source = self._check_open()
            target = connection if connection is not None else source
            row_set = self.get_row_set()
            dates = self._date_flags()
            definitions = []
            for index, label in enumerate(row_set.labels):
                if index == 0:
                    sql_type = "INTEGER"
                elif dates[index]:
                    sql_type = "TIMESTAMP"
                else:
                    sql_type = "REAL"
                nullability = "" if row_set.nullable[index] else " NOT NULL"
                definitions.append(f"{quote_identifier(label)} {sql_type}{nullability}")
            create = f"CREATE TABLE {quote_identifier(table_name)}({', '.join(definitions)})"
            insert = (
                f"INSERT INTO {quote_identifier(table_name)} VALUES "
                f"({', '.join('?' for _ in definitions)})"
            )
            count = 0
            try:
                batches: Iterable[List[Tuple[Any, ...]]] = self._batches(row_set, dates)
                if target is source:
                    # The cursors must be drained before writing on their own connection.
                    batches = list(batches)
                    self._close_row_set()
                logger.info("[sql] %s", create)
                target.exec_driver_sql(create)
                for batch in batches:
                    target.exec_driver_sql(insert, batch)
                    count += len(batch)
            finally:
                self._close_row_set()
            logger.info("[environment] copied %d row(s) to %s", count, table_name)
            return count

    @classmethod
    def _batches(
        cls, row_set: CouplingRowSet, dates: Sequence[bool]
    ) -> Iterator[List[Tuple[Any, ...]]]:
        batch: List[Tuple[Any, ...]] = []
        for row in row_set:
            batch.append(cls._copy_values(row, dates))
            if len(batch) >= _INSERT_BATCH:
                yield batch
                batch = []
        if batch:
            yield batch

    @staticmethod
    def _copy_values(row: Sequence[Any], dates: Sequence[bool]) -> Tuple[Any, ...]:
        values: List[Any] = [int(row[0])]
        for index in range(1, len(row)):
            value = row[index]
            if isinstance(value, datetime):
                value = value.strftime(STORAGE_FORMAT)
            elif value is not None and not dates[index]:
                value = float(value)
            values.append(value)
        return tuple(values)

    def to_dataframe(self, max_rows: Optional[int] = None) -> pd.DataFrame:
        """The joined rows as a DataFrame indexed by ``ID``."""
        with self._lock:
            row_set = self.get_row_set()
            dates = self._date_flags()
            rows = []
            try:
                while (max_rows is None or len(rows) < max_rows) and row_set.advance():
                    rows.append(row_set.row())
            finally:
                self._close_row_set()
            frame = pd.DataFrame.from_records(rows, columns=list(row_set.labels))
            for index, label in enumerate(row_set.labels):
                if dates[index]:
                    frame[label] = pd.to_datetime(frame[label])
            return frame.set_index("ID")

    # --- Values ---

    def get_value(
        self,
        record: CatchRecord,
        step_key: StepKey,
        column: str,
        measured_at: Optional[datetime] = None,
    ) -> float:
        """Stored value of ``column`` for one catch; NaN when nothing is stored."""
        with self._lock:
            self._check_open()
            return self._writer.get_value(record, step_key, column, measured_at)

    def set_value(
        self,
        record: CatchRecord,
        step_key: StepKey,
        column: str,
        value: float,
        measured_at: Optional[datetime] = None,
    ) -> UpsertOutcome:
        with self._lock:
            self._check_open()
            return self._writer.set_value(record, step_key, column, value, measured_at)

    def set_values(
        self,
        record: CatchRecord,
        values: Sequence[float],
        position: Optional[int] = None,
    ) -> int:
        """
        Write one value per step (restricted to ``position`` when given) into
        every operation column of that step, in step order.

        NaN values are skipped. Returns the number of cells written.
        """
        with self._lock:
            self._check_open()
            steps = [
                step
                for key, step in self._steps.items()
                if position is None or key.position == position
            ]
            if len(values) != len(steps):
                raise ValueError(
                    f"Got {len(values)} values for {len(steps)} parameter step(s)."
                )
            written = 0
            for step, value in zip(steps, values):
                if math.isnan(value):
                    continue
                for operation in step.columns:
                    self._writer.set_value(record, step.key, operation, value)
                    written += 1
            return written

    # --- Lifecycle ---

    def clear(self) -> None:
        """Drop every parameter request; the catch table stays joined."""
        with self._lock:
            self._check_open()
            self._close_row_set()
            for step in self._steps.values():
                step.close()
            self._steps.clear()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self.clear()
            self._catch_table = None
            self._catch_columns = ()
            self._writer.close()
            if self._owns_catalog:
                self._catalog.close()
            self._connection = None
            self._closed = True

    def __enter__(self) -> "EnvironmentTable":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
