from __future__ import annotations

import json
from pathlib import Path

import pytest

from catchcoupling.core.settings import CouplingSettings
from catchcoupling.core.templates import (
    DEFAULT_TEMPLATES,
    ENVIRONMENTS,
    INSERT,
    LONGLINES,
    PARAMETERS,
    UPDATE,
    QueryTemplates,
)


def test_defaults_cover_every_key() -> None:
    templates = QueryTemplates()

    assert set(templates) == set(DEFAULT_TEMPLATES)
    assert len(templates) == len(DEFAULT_TEMPLATES)
    assert "[?]" in templates[ENVIRONMENTS + UPDATE]
    assert "[?]" in templates[ENVIRONMENTS + INSERT]
    assert "ORDER BY ID" in templates[ENVIRONMENTS]


def test_set_and_reset_override() -> None:
    templates = QueryTemplates()
    templates.set(PARAMETERS, "SELECT code, label FROM params WHERE code=?")

    assert templates.is_overridden(PARAMETERS)
    assert templates[PARAMETERS] == "SELECT code, label FROM params WHERE code=?"
    assert templates.overrides == {PARAMETERS: "SELECT code, label FROM params WHERE code=?"}

    templates.reset(PARAMETERS)

    assert not templates.is_overridden(PARAMETERS)
    assert templates[PARAMETERS] == DEFAULT_TEMPLATES[PARAMETERS]


def test_set_rejects_unknown_key_and_empty_sql() -> None:
    templates = QueryTemplates()

    with pytest.raises(KeyError, match="Unknown SQL template key"):
        templates.set("catches", "SELECT 1")
    with pytest.raises(ValueError):
        templates.set(LONGLINES, "   ")


def test_save_and_load_round_trip_only_overrides(tmp_path: Path) -> None:
    path = tmp_path / "templates.json"
    templates = QueryTemplates({LONGLINES: "SELECT ID FROM ll ORDER BY date"})

    templates.save(path)

    assert json.loads(path.read_text()) == {LONGLINES: "SELECT ID FROM ll ORDER BY date"}
    loaded = QueryTemplates.from_json(path)
    assert loaded[LONGLINES] == "SELECT ID FROM ll ORDER BY date"
    assert loaded[ENVIRONMENTS] == DEFAULT_TEMPLATES[ENVIRONMENTS]


def test_from_json_requires_an_object(tmp_path: Path) -> None:
    path = tmp_path / "templates.json"
    path.write_text("[1, 2]")

    with pytest.raises(ValueError, match="JSON object"):
        QueryTemplates.from_json(path)


def test_from_settings_reads_the_configured_file(tmp_path: Path) -> None:
    path = tmp_path / "templates.json"
    path.write_text(json.dumps({PARAMETERS: "SELECT ID, name FROM p WHERE ID=?"}))

    templates = QueryTemplates.from_settings(CouplingSettings(templates_path=str(path)))

    assert templates[PARAMETERS] == "SELECT ID, name FROM p WHERE ID=?"
    assert QueryTemplates.from_settings(CouplingSettings()).overrides == {}


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CATCHCOUPLING_DATABASE_URL", "sqlite:///other.db")
    monkeypatch.setenv("CATCHCOUPLING_TIMEZONE", "Indian/Reunion")
    monkeypatch.setenv("CATCHCOUPLING_CATCH_KIND", "seine")
    monkeypatch.setenv("CATCHCOUPLING_ECHO_SQL", "yes")
    monkeypatch.setenv("CATCHCOUPLING_SQL_TEMPLATES", "none")

    settings = CouplingSettings.from_env()

    assert settings.database_url == "sqlite:///other.db"
    assert settings.timezone == "Indian/Reunion"
    assert settings.catch_kind == "seine"
    assert settings.echo_sql is True
    assert settings.templates_path is None


def test_settings_defaults() -> None:
    settings = CouplingSettings.from_env()

    assert settings == CouplingSettings()
    assert settings.database_url == "sqlite:///fishery.db"
    assert settings.timezone == "UTC"
