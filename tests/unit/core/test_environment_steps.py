from __future__ import annotations

import pytest

from catchcoupling.core.steps import EnvironmentStep, StepKey
from catchcoupling.core.templates import ENVIRONMENTS, QueryTemplates
from catchcoupling.errors import QueryTemplateError
from catchcoupling.models.catch import AREA, CENTER
from tests.helpers.fake_cursors import FakeConnection, FakeResult


def test_step_key_validates_position() -> None:
    assert StepKey(1, position=AREA).position == AREA
    with pytest.raises(ValueError):
        StepKey(1, position=101)


def test_toggled_flips_only_null_policy() -> None:
    key = StepKey(1, CENTER, -5, allow_nulls=False)

    assert key.toggled() == StepKey(1, CENTER, -5, allow_nulls=True)
    assert key.bind_parameters == (CENTER, -5, 1)


def test_steps_compare_by_key_only() -> None:
    first = EnvironmentStep(StepKey(1))
    second = EnvironmentStep(StepKey(1))
    first.add_column("value")

    assert first == second
    assert hash(first) == hash(second)
    assert first != EnvironmentStep(StepKey(1, allow_nulls=True))


def test_add_and_remove_report_changes() -> None:
    step = EnvironmentStep(StepKey(1))

    assert step.add_column("value") is True
    assert step.add_column("value") is False
    assert step.add_column("sobel3") is True
    assert step.columns == ("value", "sobel3")
    assert step.remove_column("missing") is False
    assert step.remove_column("value") is True
    assert step.columns == ("sobel3",)
    assert not step.is_empty()


def test_add_column_rejects_unsafe_names() -> None:
    with pytest.raises(ValueError):
        EnvironmentStep(StepKey(1)).add_column("value; DROP TABLE environments")


def test_build_query_adds_not_null_clauses() -> None:
    step = EnvironmentStep(StepKey(1))
    step.add_column("value")
    step.add_column("sobel3")

    query = step.build_query(QueryTemplates()[ENVIRONMENTS])

    assert query == (
        "SELECT ID, value, sobel3 FROM environments\n"
        "WHERE position=? AND time_lag=? AND parameter=? "
        "AND (value IS NOT NULL) AND (sobel3 IS NOT NULL) ORDER BY ID"
    )


def test_build_query_keeps_nulls_when_allowed() -> None:
    step = EnvironmentStep(StepKey(1, allow_nulls=True))
    step.add_column("value")

    assert "IS NOT NULL" not in step.build_query(QueryTemplates()[ENVIRONMENTS])


def test_build_query_requires_order_by() -> None:
    step = EnvironmentStep(StepKey(1))
    step.add_column("value")

    with pytest.raises(QueryTemplateError, match="ORDER BY"):
        step.build_query("SELECT ID FROM environments WHERE parameter=?")


def test_query_cache_follows_column_changes() -> None:
    templates = QueryTemplates()
    step = EnvironmentStep(StepKey(1))
    step.add_column("value")
    first = step.query(templates)

    assert step.query(templates) is first

    step.add_column("sobel3")

    assert "sobel3" in step.query(templates)


def test_execute_binds_position_lag_and_parameter() -> None:
    result = FakeResult(rows=[(1, 20.5)], columns=("ID", "value"))
    connection = FakeConnection(result)
    step = EnvironmentStep(StepKey(parameter=2, position=0, time_lag=-5))
    step.add_column("value")

    assert step.execute(connection, QueryTemplates()) is result
    assert connection.calls[0][1] == (0, -5, 2)


def test_close_drops_columns() -> None:
    step = EnvironmentStep(StepKey(1))
    step.add_column("value")
    step.close()

    assert step.is_empty()
    assert step.column_count == 0
