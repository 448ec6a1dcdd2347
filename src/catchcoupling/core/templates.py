"""
SQL templates used by the catch, environment and lookup queries.

Each template is keyed by the table it reads (``"longlines"``) with an optional
suffix for the write and listing variants (``"environments:UPDATE"``,
``"parameters:LIST"``). Deployments whose schema differs override individual
keys, either in code or through a JSON file named by
``CATCHCOUPLING_SQL_TEMPLATES``.

Positional ``?`` parameters are bound in a fixed order per key:

- ``longlines``: start time, end time, minimum total catch.
- ``seines``: start time, end time, xmin, xmax, ymin, ymax.
- ``<catch table>:UPDATE``: value, ID.
- ``environments``: position, time lag, parameter.
- ``environments:UPDATE``: value, ID, position, time lag, parameter.
- ``environments:INSERT``: ID, position, time lag, parameter, value.
- ``environments:VALUE``: ID, position, time lag, parameter.
- ``parameters`` / ``operations``: lookup key.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Union

from catchcoupling.core.settings import CouplingSettings

logger = logging.getLogger(__name__)

LONGLINES = "longlines"
SEINES = "seines"
ENVIRONMENTS = "environments"
PARAMETERS = "parameters"
OPERATIONS = "operations"

UPDATE = ":UPDATE"
INSERT = ":INSERT"
LIST = ":LIST"
VALUE = ":VALUE"

DEFAULT_TEMPLATES: Dict[str, str] = {
    LONGLINES: (
        "SELECT longlines.ID, longlines.date, longlines.x1, longlines.y1, "
        "longlines.x2, longlines.y2, longlines.hooks\n"
        "FROM longlines\n"
        "WHERE valid AND (date>=? AND date<=?) AND (total>=?)\n"
        "ORDER BY date"
    ),
    LONGLINES + UPDATE: "UPDATE longlines SET [?]=? WHERE ID=?",
    SEINES: (
        "SELECT seines.ID, seines.sets, seines.date, seines.x, seines.y\n"
        "FROM seines\n"
        "WHERE (date>=? AND date<=?) AND (x>=? AND x<=?) AND (y>=? AND y<=?)\n"
        "ORDER BY date"
    ),
    SEINES + UPDATE: "UPDATE seines SET [?]=? WHERE ID=?",
    ENVIRONMENTS: (
        "SELECT ID FROM environments\n"
        "WHERE position=? AND time_lag=? AND parameter=? ORDER BY ID"
    ),
    ENVIRONMENTS + UPDATE: (
        "UPDATE environments SET [?]=? "
        "WHERE ID=? AND position=? AND time_lag=? AND parameter=?"
    ),
    ENVIRONMENTS + INSERT: (
        "INSERT INTO environments (ID, position, time_lag, parameter, [?]) "
        "VALUES (?, ?, ?, ?, ?)"
    ),
    ENVIRONMENTS + VALUE: (
        "SELECT [?] FROM environments "
        "WHERE ID=? AND position=? AND time_lag=? AND parameter=?"
    ),
    PARAMETERS: "SELECT ID, name FROM parameters WHERE ID=?",
    PARAMETERS + LIST: "SELECT name FROM parameters ORDER BY name",
    OPERATIONS: "SELECT name, prefix FROM operations WHERE name=?",
    OPERATIONS + LIST: "SELECT name FROM operations ORDER BY name",
}


class QueryTemplates(Mapping[str, str]):
    """
    Preference store for SQL templates: defaults plus per-deployment overrides.
    """

    def __init__(self, overrides: Optional[Mapping[str, str]] = None) -> None:
        self._overrides: Dict[str, str] = {}
        for key, sql in (overrides or {}).items():
            self.set(key, sql)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "QueryTemplates":
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"SQL template file {path} must hold a JSON object.")
        logger.info("[templates] loaded %d override(s) from %s", len(raw), path)
        return cls(raw)

    @classmethod
    def from_settings(cls, settings: CouplingSettings) -> "QueryTemplates":
        if settings.templates_path:
            return cls.from_json(settings.templates_path)
        return cls()

    def __getitem__(self, key: str) -> str:
        if key in self._overrides:
            return self._overrides[key]
        return DEFAULT_TEMPLATES[key]

    def __iter__(self) -> Iterator[str]:
        return iter(DEFAULT_TEMPLATES)

    def __len__(self) -> int:
        return len(DEFAULT_TEMPLATES)

    def set(self, key: str, sql: str) -> None:
        if key not in DEFAULT_TEMPLATES:
            raise KeyError(
                f"Unknown SQL template key {key!r}. "
                f"Known keys: {sorted(DEFAULT_TEMPLATES)}"
            )
        if not isinstance(sql, str) or not sql.strip():
            raise ValueError(f"SQL template for {key!r} cannot be empty.")
        self._overrides[key] = sql

    def reset(self, key: Optional[str] = None) -> None:
        if key is None:
            self._overrides.clear()
        else:
            self._overrides.pop(key, None)

    def is_overridden(self, key: str) -> bool:
        return key in self._overrides

    @property
    def overrides(self) -> Dict[str, str]:
        return dict(self._overrides)

    def save(self, path: Union[str, Path]) -> None:
        """Write the overrides (not the defaults) to a JSON file."""
        Path(path).write_text(
            json.dumps(self._overrides, indent=2, sort_keys=True), encoding="utf-8"
        )
