from __future__ import annotations

import math
from datetime import datetime, timezone

import pytest
from shapely.geometry import LineString, Point

from catchcoupling.models.catch import (
    AREA,
    CENTER,
    END_POINT,
    START_POINT,
    CatchKind,
    CatchRecord,
    GeoArea,
    LineGeometry,
    PointGeometry,
    validate_position,
)

NAN = math.nan
SPECIES = ("ALB", "YFT", "BET")
WHEN = datetime(2024, 3, 1, tzinfo=timezone.utc)


def _line(x1, y1, x2, y2, amounts=(1.0, 2.0, 0.0)) -> CatchRecord:
    return CatchRecord(1, WHEN, LineGeometry(x1, y1, x2, y2), SPECIES, amounts)


def _point(x, y) -> CatchRecord:
    return CatchRecord(2, WHEN, PointGeometry(x, y), SPECIES, (0.0, 0.0, 5.0))


@pytest.mark.parametrize(
    ("record", "requested", "expected"),
    [
        (_line(0, 0, 1, 1), 25, 25),
        (_line(NAN, NAN, 1, 1), 25, END_POINT),
        (_line(0, 0, NAN, NAN), 25, START_POINT),
        (_line(NAN, NAN, NAN, NAN), 25, CENTER),
        (_line(NAN, NAN, 1, 1), AREA, AREA),
        (_point(3, 4), 0, CENTER),
        (_point(3, 4), AREA, CENTER),
    ],
)
def test_clamp_position(record: CatchRecord, requested: int, expected: int) -> None:
    assert record.clamp_position(requested) == expected


def test_validate_position() -> None:
    assert validate_position(AREA) == AREA
    assert validate_position(END_POINT) == END_POINT
    with pytest.raises(ValueError):
        validate_position(-2)


def test_catch_accessors() -> None:
    record = _line(0, 0, 2, 4)

    assert record.kind is CatchKind.LONGLINE
    assert _point(0, 0).kind is CatchKind.SEINE
    assert record.catch_of("YFT") == 2.0
    assert record.catch_of("SKJ") == 0.0
    assert record.total_catch() == 3.0
    assert record.dominant_species() == "YFT"
    assert record.coordinate() == (1.0, 2.0)
    assert _line(NAN, NAN, 2, 4).coordinate() == (2.0, 4.0)


def test_amounts_must_match_species() -> None:
    with pytest.raises(ValueError, match="amounts"):
        CatchRecord(1, WHEN, PointGeometry(0, 0), SPECIES, (1.0,))


def test_records_hash_by_id() -> None:
    first = _line(0, 0, 1, 1)
    second = _line(5, 5, 6, 6, amounts=(0.0, 0.0, 0.0))

    assert first == second
    assert len({first, second}) == 1


def test_shape_variants() -> None:
    assert isinstance(_line(0, 0, 1, 1).shape(), LineString)
    assert isinstance(_line(0, 0, 0, 0).shape(), Point)
    assert _line(NAN, NAN, 1, 2).shape().equals(Point(1, 2))
    assert _line(NAN, NAN, NAN, NAN).shape() is None
    assert _point(NAN, 1).shape() is None


def test_segment_crossing_area_intersects_without_endpoints_inside() -> None:
    area = GeoArea(xmin=-1, ymin=-1, xmax=1, ymax=1)

    assert _line(-5, 0, 5, 0).intersects(area)
    assert not _line(-5, 3, 5, 3).intersects(area)
    assert _point(0.5, 0.5).intersects(area)
    assert not _line(NAN, NAN, NAN, NAN).intersects(area)


def test_geo_area() -> None:
    area = GeoArea(0, 0, 10, 10)

    assert area.contains(10, 0)
    assert not area.contains(11, 0)
    assert area.intersection(GeoArea(5, 5, 20, 20)) == GeoArea(5, 5, 10, 10)
    assert area.intersection(GeoArea(11, 11, 20, 20)) is None
    with pytest.raises(ValueError):
        GeoArea(1, 0, 0, 1)
