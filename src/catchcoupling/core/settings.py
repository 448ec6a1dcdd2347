from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "")
    if raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_str(name: str, default: Optional[str]) -> Optional[str]:
    raw = os.getenv(name, "")
    if raw.strip() == "":
        return default
    lowered = raw.strip().lower()
    if lowered in {"none", "null", "nil"}:
        return None
    return raw.strip()


@dataclass(frozen=True)
class CouplingSettings:
    database_url: str = "sqlite:///fishery.db"
    timezone: str = "UTC"
    templates_path: Optional[str] = None
    catch_kind: Optional[str] = None
    echo_sql: bool = False

    @classmethod
    def from_env(cls) -> "CouplingSettings":
        return cls(
            database_url=_env_str("CATCHCOUPLING_DATABASE_URL", "sqlite:///fishery.db")
            or "sqlite:///fishery.db",
            timezone=_env_str("CATCHCOUPLING_TIMEZONE", "UTC") or "UTC",
            templates_path=_env_str("CATCHCOUPLING_SQL_TEMPLATES", None),
            catch_kind=_env_str("CATCHCOUPLING_CATCH_KIND", None),
            echo_sql=_env_bool("CATCHCOUPLING_ECHO_SQL", False),
        )
