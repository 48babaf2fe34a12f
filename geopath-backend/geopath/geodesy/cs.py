from __future__ import annotations

import enum
from collections import Counter
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .common import Criterion, IdentifiedObject, UnitOfMeasure, UnitType, nearly_equal


class AxisDirection(enum.Enum):
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"
    UP = "up"
    DOWN = "down"
    GEOCENTRIC_X = "geocentricX"
    GEOCENTRIC_Y = "geocentricY"
    GEOCENTRIC_Z = "geocentricZ"
    FUTURE = "future"
    PAST = "past"
    UNSPECIFIED = "unspecified"

    @classmethod
    def parse(cls, text: str) -> "AxisDirection":
        t = (text or "").strip()
        for member in cls:
            if member.value.lower() == t.lower():
                return member
        return cls.UNSPECIFIED


class CSType(enum.Enum):
    ELLIPSOIDAL = "ellipsoidal"
    CARTESIAN = "Cartesian"
    VERTICAL = "vertical"
    SPHERICAL = "spherical"

    @classmethod
    def parse(cls, text: str) -> "CSType":
        for member in cls:
            if member.value.lower() == (text or "").lower():
                return member
        raise ValueError(f"unknown coordinate system type '{text}'")


_AXIS_COUNTS = {
    CSType.ELLIPSOIDAL: (2, 3),
    CSType.CARTESIAN: (2, 3),
    CSType.VERTICAL: (1, 1),
    CSType.SPHERICAL: (2, 3),
}


@dataclass(frozen=True, kw_only=True)
class Axis(IdentifiedObject):
    abbreviation: str
    direction: AxisDirection
    unit: UnitOfMeasure
    meridian: Optional[float] = None

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, Axis) or self.direction != other.direction:
            return False
        if not self.unit.is_equivalent_to(other.unit, criterion):
            return False
        if not nearly_equal(self.meridian, other.meridian):
            return False
        if criterion == Criterion.STRICT:
            return self.name == other.name and self.abbreviation == other.abbreviation
        return True


@dataclass(frozen=True, kw_only=True)
class CoordinateSystem(IdentifiedObject):
    cs_type: CSType
    axes: Tuple[Axis, ...]

    def __post_init__(self) -> None:
        lo, hi = _AXIS_COUNTS[self.cs_type]
        if not lo <= len(self.axes) <= hi:
            raise ValueError(
                f"{self.cs_type.value} coordinate system takes {lo}-{hi} axes, got {len(self.axes)}"
            )
        if self.cs_type == CSType.ELLIPSOIDAL:
            for ax in self.axes[:2]:
                if ax.unit.type != UnitType.ANGULAR:
                    raise ValueError("ellipsoidal coordinate system needs angular horizontal axes")

    @property
    def dimension(self) -> int:
        return len(self.axes)

    @property
    def is_geocentric(self) -> bool:
        return self.cs_type == CSType.CARTESIAN and any(
            a.direction == AxisDirection.GEOCENTRIC_X for a in self.axes
        )

    def axis_index(self, *directions: AxisDirection) -> Optional[int]:
        for i, ax in enumerate(self.axes):
            if ax.direction in directions:
                return i
        return None

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, CoordinateSystem) or self.cs_type != other.cs_type:
            return False
        if not self._metadata_equal(other, criterion) or len(self.axes) != len(other.axes):
            return False
        if criterion == Criterion.EQUIVALENT_EXCEPT_AXIS_ORDER:
            key = lambda a: (a.direction, a.unit.type, round((a.unit.to_si or 0.0), 12))
            return Counter(map(key, self.axes)) == Counter(map(key, other.axes))
        return all(a.is_equivalent_to(b, criterion) for a, b in zip(self.axes, other.axes))


__all__ = ["AxisDirection", "CSType", "Axis", "CoordinateSystem"]
