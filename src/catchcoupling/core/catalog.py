from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Iterable, List

from sqlalchemy.engine import Connection

from catchcoupling.core.sql import rewrite_lookup_by_value
from catchcoupling.core.templates import (
    LIST,
    OPERATIONS,
    PARAMETERS,
    QueryTemplates,
)
from catchcoupling.errors import (
    AmbiguousRecordError,
    RecordNotFoundError,
    TableClosedError,
)

logger = logging.getLogger(__name__)


class CatalogKind(str, Enum):
    PARAMETERS = PARAMETERS
    OPERATIONS = OPERATIONS


def column_label(parameter_name: str, prefix: str, time_lag: int) -> str:
    """
    Build the public column name for one parameter/operation/time-lag.

    >>> column_label("SST", "gr", -5)
    'grSST-05'
    """
    sign = "-" if time_lag < 0 else "+"
    return f"{prefix or ''}{parameter_name}{sign}{abs(time_lag):02d}"


def single_distinct(values: Iterable[Any], kind: str, key: Any) -> Any:
    """
    Return the only distinct value in ``values``.

    Repeated identical values are accepted; no value or two different ones
    raise.
    """
    found: List[Any] = []
    for value in values:
        if found and value == found[0]:
            continue
        found.append(value)
        if len(found) >= 2:
            raise AmbiguousRecordError(kind, key)
    if not found:
        raise RecordNotFoundError(kind, key)
    return found[0]


class ParameterCatalog:
    """
    Resolves parameter and operation names to their codes and back.

    The by-name parameter query is derived from the by-code template when the
    catalog is built, so a template the rewrite cannot handle fails here
    rather than at the first lookup.
    """

    def __init__(self, connection: Connection, templates: QueryTemplates) -> None:
        self._connection = connection
        self._templates = templates
        self._lock = threading.RLock()
        self._by_code = templates[PARAMETERS]
        self._by_name = rewrite_lookup_by_value(self._by_code)
        self._operation = templates[OPERATIONS]

    def _require_connection(self) -> Connection:
        if self._connection is None:
            raise TableClosedError("Parameter catalog is closed.")
        return self._connection

    def _lookup(self, query: str, key: Any, column: int, kind: str) -> Any:
        logger.debug("[sql] %s -- %r", query, key)
        result = self._require_connection().exec_driver_sql(query, (key,))
        try:
            return single_distinct((row[column] for row in result), kind, key)
        finally:
            result.close()

    def resolve_parameter_id(self, name: str) -> int:
        with self._lock:
            return int(self._lookup(self._by_name, name, 0, "parameter"))

    def resolve_parameter_name(self, code: int) -> str:
        with self._lock:
            return self._lookup(self._by_code, code, 1, "parameter")

    def resolve_operation_prefix(self, name: str) -> str:
        with self._lock:
            return self._lookup(self._operation, name, 1, "operation") or ""

    def list_available(self, kind: CatalogKind) -> List[str]:
        """Names in first-seen order, without duplicates or NULLs."""
        query = self._templates[CatalogKind(kind).value + LIST]
        with self._lock:
            logger.debug("[sql] %s", query)
            result = self._require_connection().exec_driver_sql(query)
            try:
                names = dict.fromkeys(row[0] for row in result if row[0] is not None)
            finally:
                result.close()
        return list(names)

    def close(self) -> None:
        self._connection = None
