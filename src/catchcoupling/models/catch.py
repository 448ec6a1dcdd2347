from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union

from shapely.geometry import LineString, Point, box
from shapely.geometry.base import BaseGeometry

START_POINT = 0
CENTER = 50
END_POINT = 100
AREA = -1


def is_relative_position(position: int) -> bool:
    return START_POINT <= position <= END_POINT


def validate_position(position: int) -> int:
    if not (is_relative_position(position) or position == AREA):
        raise ValueError(
            f"Position must be within [{START_POINT}, {END_POINT}] or AREA, "
            f"got {position}."
        )
    return position


class CatchKind(str, Enum):
    LONGLINE = "longline"
    SEINE = "seine"


@dataclass(frozen=True)
class GeoArea:
    """Bounding box in WGS84 degrees."""

    xmin: float = -180.0
    ymin: float = -90.0
    xmax: float = 180.0
    ymax: float = 90.0

    def __post_init__(self) -> None:
        if self.xmin > self.xmax or self.ymin > self.ymax:
            raise ValueError(f"Empty geographic area: {self}")

    def to_box(self) -> BaseGeometry:
        return box(self.xmin, self.ymin, self.xmax, self.ymax)

    def contains(self, x: float, y: float) -> bool:
        return self.xmin <= x <= self.xmax and self.ymin <= y <= self.ymax

    def intersection(self, other: "GeoArea") -> Optional["GeoArea"]:
        xmin, ymin = max(self.xmin, other.xmin), max(self.ymin, other.ymin)
        xmax, ymax = min(self.xmax, other.xmax), min(self.ymax, other.ymax)
        if xmin > xmax or ymin > ymax:
            return None
        return GeoArea(xmin, ymin, xmax, ymax)


@dataclass(frozen=True)
class PointGeometry:
    """A catch located at a single position (purse-seine sets)."""

    x: float
    y: float


@dataclass(frozen=True)
class LineGeometry:
    """
    A catch located along a segment (longline sets). Either endpoint may be
    unknown, in which case its coordinates are NaN.
    """

    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def has_start(self) -> bool:
        return not (math.isnan(self.x1) or math.isnan(self.y1))

    @property
    def has_end(self) -> bool:
        return not (math.isnan(self.x2) or math.isnan(self.y2))


Geometry = Union[PointGeometry, LineGeometry]


def _mean(a: float, b: float) -> float:
    if math.isnan(a):
        return b
    if math.isnan(b):
        return a
    return (a + b) * 0.5


@dataclass(frozen=True, eq=False)
class CatchRecord:
    """
    One fishing event with its per-species catch amounts.

    ``species`` is the tuple owned by the catch table that produced the
    record; all records of one table share the same object, so identity
    comparisons of species codes are valid within that table only.
    """

    id: int
    captured_at: datetime
    geometry: Geometry
    species: Tuple[str, ...]
    amounts: Tuple[float, ...] = field(default=())

    def __post_init__(self) -> None:
        if len(self.amounts) != len(self.species):
            raise ValueError(
                f"Catch {self.id} has {len(self.amounts)} amounts for "
                f"{len(self.species)} species."
            )

    @property
    def kind(self) -> CatchKind:
        if isinstance(self.geometry, LineGeometry):
            return CatchKind.LONGLINE
        return CatchKind.SEINE

    def catch_of(self, species: str) -> float:
        """Amount caught for ``species``; 0 when the species is not tracked."""
        for index, code in enumerate(self.species):
            if code is species or code == species:
                return self.amounts[index]
        return 0.0

    def total_catch(self) -> float:
        return float(sum(self.amounts))

    def dominant_species(self) -> Optional[str]:
        dominant = None
        best = -math.inf
        for code, amount in zip(self.species, self.amounts):
            if amount >= best:
                best = amount
                dominant = code
        return dominant

    def coordinate(self) -> Tuple[float, float]:
        geometry = self.geometry
        if isinstance(geometry, LineGeometry):
            return _mean(geometry.x1, geometry.x2), _mean(geometry.y1, geometry.y2)
        return geometry.x, geometry.y

    def shape(self) -> Optional[BaseGeometry]:
        """
        The catch as a shapely geometry: a segment for complete longlines, a
        point otherwise, or None when no coordinate is known.
        """
        geometry = self.geometry
        if isinstance(geometry, LineGeometry):
            if geometry.has_start and geometry.has_end:
                start = (geometry.x1, geometry.y1)
                end = (geometry.x2, geometry.y2)
                if start != end:
                    return LineString([start, end])
                return Point(start)
            if geometry.has_start:
                return Point(geometry.x1, geometry.y1)
            if geometry.has_end:
                return Point(geometry.x2, geometry.y2)
            return None
        if math.isnan(geometry.x) or math.isnan(geometry.y):
            return None
        return Point(geometry.x, geometry.y)

    def intersects(self, area: GeoArea) -> bool:
        shape = self.shape()
        if shape is None:
            return False
        return shape.intersects(area.to_box())

    def clamp_position(self, position: int) -> int:
        """
        Map a requested relative position onto what this catch can support.

        Point catches only have a center. Line catches keep the request when
        both endpoints are known and fall back to the known endpoint (or the
        center when none is known). Positions outside [0, 100], such as AREA,
        pass through for line catches.
        """
        geometry = self.geometry
        if isinstance(geometry, PointGeometry):
            return CENTER
        if not is_relative_position(position):
            return position
        if geometry.has_start and geometry.has_end:
            return position
        if geometry.has_end:
            return END_POINT
        if geometry.has_start:
            return START_POINT
        return CENTER

    def __hash__(self) -> int:
        return hash(self.id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CatchRecord):
            return NotImplemented
        return self.id == other.id and self.captured_at == other.captured_at

    def __repr__(self) -> str:
        x, y = self.coordinate()
        return (
            f"CatchRecord(id={self.id}, {self.captured_at:%Y-%m-%d}, "
            f"lat={y:.2f}, lon={x:.2f})"
        )
