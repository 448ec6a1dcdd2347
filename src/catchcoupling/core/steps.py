from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from sqlalchemy.engine import Connection, CursorResult

from catchcoupling.core.sql import (
    add_not_null_clauses,
    complete_select,
    require_order_by,
    validate_identifier,
)
from catchcoupling.core.templates import ENVIRONMENTS, QueryTemplates
from catchcoupling.models.catch import CENTER, validate_position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepKey:
    """
    Identity of an environment request: which parameter, sampled where along
    the catch, how many days away from it, and whether NULL rows are kept.
    """

    parameter: int
    position: int = CENTER
    time_lag: int = 0
    allow_nulls: bool = False

    def __post_init__(self) -> None:
        validate_position(self.position)

    def toggled(self) -> "StepKey":
        """The same coordinate with the opposite NULL policy."""
        return StepKey(self.parameter, self.position, self.time_lag, not self.allow_nulls)

    @property
    def bind_parameters(self) -> Tuple[int, int, int]:
        return (self.position, self.time_lag, self.parameter)


class EnvironmentStep:
    """
    One cursor over the environment table for a single ``StepKey``.

    The step holds the ordered set of requested operations (columns). The
    generated SQL is cached per operation tuple and dropped whenever the set
    changes; results are opened fresh on each ``execute`` and belong to the
    caller.
    """

    def __init__(self, key: StepKey) -> None:
        self.key = key
        self._operations: Dict[str, None] = {}
        self._query: Optional[Tuple[Tuple[str, ...], str]] = None
        self._lock = threading.RLock()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EnvironmentStep):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"EnvironmentStep({self.key}, columns={list(self._operations)})"

    @property
    def columns(self) -> Tuple[str, ...]:
        with self._lock:
            return tuple(self._operations)

    @property
    def column_count(self) -> int:
        return len(self._operations)

    def is_empty(self) -> bool:
        return not self._operations

    def has_column(self, operation: str) -> bool:
        return operation in self._operations

    def add_column(self, operation: str) -> bool:
        with self._lock:
            if operation in self._operations:
                return False
            self._operations[validate_identifier(operation)] = None
            self._query = None
            return True

    def remove_column(self, operation: str) -> bool:
        with self._lock:
            if operation not in self._operations:
                return False
            del self._operations[operation]
            self._query = None
            return True

    def build_query(self, template: str) -> str:
        columns = list(self._operations)
        query = require_order_by(complete_select(template, columns))
        if not self.key.allow_nulls:
            query = add_not_null_clauses(query, columns)
        return query

    def query(self, templates: QueryTemplates) -> str:
        with self._lock:
            shape = tuple(self._operations)
            if self._query is None or self._query[0] != shape:
                self._query = (shape, self.build_query(templates[ENVIRONMENTS]))
            return self._query[1]

    def execute(self, connection: Connection, templates: QueryTemplates) -> CursorResult:
        """Open a result ordered by catch ID: the ID first, then one column per operation."""
        with self._lock:
            query = self.query(templates)
            logger.debug("[sql] %s -- %r", query, self.key.bind_parameters)
            return connection.exec_driver_sql(query, self.key.bind_parameters)

    def close(self) -> None:
        with self._lock:
            self._operations.clear()
            self._query = None
