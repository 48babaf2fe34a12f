"""Shared building blocks: identifiers, units, measures, extents and the
equivalence criteria used by every entity of the object model.

Numeric comparisons go through :func:`nearly_equal`, which applies a small
relative tolerance (absolute near zero).
"""
from __future__ import annotations

import enum
import math
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

REL_TOLERANCE = 1e-10


class Criterion(enum.Enum):
    STRICT = "strict"
    EQUIVALENT = "equivalent"
    EQUIVALENT_EXCEPT_AXIS_ORDER = "equivalent_except_axis_order"


def nearly_equal(a: Optional[float], b: Optional[float], rel: float = REL_TOLERANCE) -> bool:
    if a is None or b is None:
        return a is None and b is None
    if a == b:
        return True
    return abs(a - b) <= rel * max(abs(a), abs(b), 1.0)


_NAME_JUNK = re.compile(r"[^a-z0-9]+")


def normalize_name(name: Optional[str]) -> str:
    return _NAME_JUNK.sub("", (name or "").lower())


@dataclass(frozen=True)
class Identifier:
    authority: str
    code: str

    def __str__(self) -> str:
        return f"{self.authority}:{self.code}"


class UnitType(enum.Enum):
    LINEAR = "length"
    ANGULAR = "angle"
    SCALE = "scale"
    TIME = "time"
    PARAMETRIC = "parametric"
    NONE = "none"


def _dms_to_degrees(value: float) -> float:
    # DDD.MMSSsss
    sign = -1.0 if value < 0 else 1.0
    whole, frac = f"{abs(value):.10f}".split(".")
    minutes = int(frac[:2])
    seconds = float(frac[2:4] + "." + frac[4:])
    return sign * (int(whole) + minutes / 60.0 + seconds / 3600.0)


def _degrees_to_dms(value: float) -> float:
    sign = -1.0 if value < 0 else 1.0
    v = abs(value)
    d = math.floor(v)
    m = math.floor((v - d) * 60.0)
    s = (v - d - m / 60.0) * 3600.0
    if s >= 60.0 - 1e-7:
        s = 0.0
        m += 1
    if m >= 60:
        m = 0
        d += 1
    return sign * (d + m / 100.0 + s / 10000.0)


@dataclass(frozen=True)
class UnitOfMeasure:
    name: str
    type: UnitType
    to_si: Optional[float]
    authority: Optional[str] = None
    code: Optional[str] = None
    proj_name: Optional[str] = None

    @property
    def is_sexagesimal(self) -> bool:
        return (self.authority == "EPSG" and self.code == "9110") or self.name.lower().startswith("sexagesimal")

    def to_si_value(self, value: float) -> float:
        if self.is_sexagesimal:
            return math.radians(_dms_to_degrees(value))
        if self.to_si is None:
            raise ValueError(f"unit '{self.name}' has no conversion factor")
        return value * self.to_si

    def from_si_value(self, value: float) -> float:
        if self.is_sexagesimal:
            return _degrees_to_dms(math.degrees(value))
        if not self.to_si:
            raise ValueError(f"unit '{self.name}' has no conversion factor")
        return value / self.to_si

    def is_equivalent_to(self, other: object, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, UnitOfMeasure) or self.type != other.type:
            return False
        if criterion == Criterion.STRICT and self.name != other.name:
            return False
        if self.is_sexagesimal or other.is_sexagesimal:
            return self.is_sexagesimal and other.is_sexagesimal
        return nearly_equal(self.to_si, other.to_si)


_SECONDS_PER_YEAR = 31556925.445
_ARC_SECOND = math.pi / (180.0 * 3600.0)

METRE = UnitOfMeasure("metre", UnitType.LINEAR, 1.0, "EPSG", "9001", "m")
FOOT = UnitOfMeasure("foot", UnitType.LINEAR, 0.3048, "EPSG", "9002", "ft")
US_SURVEY_FOOT = UnitOfMeasure("US survey foot", UnitType.LINEAR, 12.0 / 39.37, "EPSG", "9003", "us-ft")
KILOMETRE = UnitOfMeasure("kilometre", UnitType.LINEAR, 1000.0, "EPSG", "9036", "km")
RADIAN = UnitOfMeasure("radian", UnitType.ANGULAR, 1.0, "EPSG", "9101", "rad")
DEGREE = UnitOfMeasure("degree", UnitType.ANGULAR, math.pi / 180.0, "EPSG", "9102", "deg")
GRAD = UnitOfMeasure("grad", UnitType.ANGULAR, math.pi / 200.0, "EPSG", "9105", "grad")
ARC_SECOND = UnitOfMeasure("arc-second", UnitType.ANGULAR, _ARC_SECOND, "EPSG", "9104")
UNITY = UnitOfMeasure("unity", UnitType.SCALE, 1.0, "EPSG", "9201")
PARTS_PER_MILLION = UnitOfMeasure("parts per million", UnitType.SCALE, 1e-6, "EPSG", "9202")
YEAR = UnitOfMeasure("year", UnitType.TIME, _SECONDS_PER_YEAR, "EPSG", "1029")
METRE_PER_YEAR = UnitOfMeasure("metres per year", UnitType.LINEAR, 1.0 / _SECONDS_PER_YEAR, "EPSG", "1042")
ARC_SECOND_PER_YEAR = UnitOfMeasure("arc-seconds per year", UnitType.ANGULAR, _ARC_SECOND / _SECONDS_PER_YEAR, "EPSG", "1043")
PPM_PER_YEAR = UnitOfMeasure("parts per million per year", UnitType.SCALE, 1e-6 / _SECONDS_PER_YEAR, "EPSG", "1041")


@dataclass(frozen=True)
class Measure:
    value: float
    unit: UnitOfMeasure

    def si(self) -> float:
        return self.unit.to_si_value(self.value)

    def convert_to(self, unit: UnitOfMeasure) -> float:
        if unit.type != self.unit.type and UnitType.NONE not in (unit.type, self.unit.type):
            raise ValueError(f"cannot convert {self.unit.name} to {unit.name}")
        if unit.is_equivalent_to(self.unit, Criterion.EQUIVALENT) and not unit.is_sexagesimal:
            return self.value
        return unit.from_si_value(self.si())

    def is_equivalent_to(self, other: object, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, Measure):
            return False
        if criterion == Criterion.STRICT:
            return self.unit.is_equivalent_to(other.unit, criterion) and nearly_equal(self.value, other.value)
        if self.unit.type != other.unit.type:
            return False
        return nearly_equal(self.si(), other.si())


def _lon_intervals(west: float, east: float) -> List[Tuple[float, float]]:
    if west > east:
        return [(west, 180.0), (-180.0, east)]
    return [(west, east)]


@dataclass(frozen=True)
class GeographicBoundingBox:
    west: float
    south: float
    east: float
    north: float

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    def width(self) -> float:
        w = self.east - self.west
        return w + 360.0 if w < 0 else w

    def surface_area(self) -> float:
        """Area on the unit sphere, in steradians."""
        return math.radians(self.width()) * (math.sin(math.radians(self.north)) - math.sin(math.radians(self.south)))

    def is_world(self) -> bool:
        return self.width() >= 360.0 - 1e-9 and self.south <= -90.0 + 1e-9 and self.north >= 90.0 - 1e-9

    def contains(self, other: "GeographicBoundingBox") -> bool:
        eps = 1e-10
        if other.south < self.south - eps or other.north > self.north + eps:
            return False
        if self.width() >= 360.0 - 1e-9:
            return True
        mine = _lon_intervals(self.west, self.east)
        for lo, hi in _lon_intervals(other.west, other.east):
            if not any(lo >= a - eps and hi <= b + eps for a, b in mine):
                return False
        return True

    def _overlaps(self, other: "GeographicBoundingBox") -> List[Tuple[float, float]]:
        pieces = []
        for a, b in _lon_intervals(self.west, self.east):
            for c, d in _lon_intervals(other.west, other.east):
                lo, hi = max(a, c), min(b, d)
                if hi > lo:
                    pieces.append((lo, hi))
        return pieces

    def intersects(self, other: "GeographicBoundingBox") -> bool:
        if min(self.north, other.north) <= max(self.south, other.south):
            return False
        return bool(self._overlaps(other))

    def intersection(self, other: "GeographicBoundingBox") -> Optional["GeographicBoundingBox"]:
        south, north = max(self.south, other.south), min(self.north, other.north)
        if north <= south:
            return None
        pieces = sorted(self._overlaps(other))
        if not pieces:
            return None
        if len(pieces) >= 2 and pieces[0][0] <= -180.0 and pieces[-1][1] >= 180.0:
            # the two ends meet at the antimeridian
            first, last = pieces[0], pieces[-1]
            return GeographicBoundingBox(last[0], south, first[1], north)
        lo, hi = max(pieces, key=lambda p: p[1] - p[0])
        return GeographicBoundingBox(lo, south, hi, north)


WORLD_AREA = 4.0 * math.pi


@dataclass(frozen=True)
class Extent:
    description: Optional[str] = None
    bbox: Optional[GeographicBoundingBox] = None
    identifiers: Tuple[Identifier, ...] = ()

    def is_world(self) -> bool:
        return self.bbox is None or self.bbox.is_world()

    def surface_area(self) -> float:
        if self.bbox is None:
            return WORLD_AREA
        return self.bbox.surface_area()

    def is_equivalent_to(self, other: object, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, Extent):
            return False
        if criterion == Criterion.STRICT and self.description != other.description:
            return False
        if self.bbox is None or other.bbox is None:
            return self.bbox is None and other.bbox is None
        return all(
            nearly_equal(getattr(self.bbox, f), getattr(other.bbox, f))
            for f in ("west", "south", "east", "north")
        )


@dataclass(frozen=True)
class Usage:
    extent: Optional[Extent] = None
    scope: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class IdentifiedObject:
    name: str = ""
    identifiers: Tuple[Identifier, ...] = ()
    remarks: Optional[str] = None
    deprecated: bool = False

    @property
    def identifier(self) -> Optional[Identifier]:
        return self.identifiers[0] if self.identifiers else None

    def code_for(self, authority: str) -> Optional[str]:
        for ident in self.identifiers:
            if ident.authority.upper() == authority.upper():
                return ident.code
        return None

    def shares_identifier_with(self, other: "IdentifiedObject") -> bool:
        return bool(set(self.identifiers) & set(other.identifiers))

    def _metadata_equal(self, other: "IdentifiedObject", criterion: Criterion) -> bool:
        if criterion != Criterion.STRICT:
            return True
        return self.name == other.name and self.identifiers == other.identifiers


@dataclass(frozen=True, kw_only=True)
class ObjectUsage(IdentifiedObject):
    usages: Tuple[Usage, ...] = ()

    def domain_bbox(self) -> Optional[GeographicBoundingBox]:
        """Intersection of the bounding boxes of all usages, or None when none is set."""
        result: Optional[GeographicBoundingBox] = None
        seen = False
        for usage in self.usages:
            if usage.extent is None or usage.extent.bbox is None:
                continue
            bbox = usage.extent.bbox
            if not seen:
                result, seen = bbox, True
            elif result is not None:
                result = result.intersection(bbox)
        return result

    def area_of_use(self) -> Optional[str]:
        for usage in self.usages:
            if usage.extent is not None and usage.extent.description:
                return usage.extent.description
        return None


__all__ = [
    "Criterion",
    "nearly_equal",
    "normalize_name",
    "Identifier",
    "UnitType",
    "UnitOfMeasure",
    "Measure",
    "GeographicBoundingBox",
    "Extent",
    "Usage",
    "IdentifiedObject",
    "ObjectUsage",
    "WORLD_AREA",
    "METRE",
    "FOOT",
    "US_SURVEY_FOOT",
    "KILOMETRE",
    "RADIAN",
    "DEGREE",
    "GRAD",
    "ARC_SECOND",
    "UNITY",
    "PARTS_PER_MILLION",
    "YEAR",
    "METRE_PER_YEAR",
    "ARC_SECOND_PER_YEAR",
    "PPM_PER_YEAR",
]
