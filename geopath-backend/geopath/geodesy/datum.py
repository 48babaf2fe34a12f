from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from .common import (
    Criterion,
    DEGREE,
    Measure,
    METRE,
    ObjectUsage,
    IdentifiedObject,
    nearly_equal,
    normalize_name,
)

# PROJ ellipsoid keywords, matched on (a, rf) or (a, b)
PROJ_ELLIPSOIDS = {
    "WGS84": (6378137.0, 298.257223563, None),
    "GRS80": (6378137.0, 298.257222101, None),
    "bessel": (6377397.155, 299.1528128, None),
    "intl": (6378388.0, 297.0, None),
    "krass": (6378245.0, 298.3, None),
    "clrk66": (6378206.4, None, 6356583.8),
    "airy": (6377563.396, 299.3249646, None),
}


def _fmt(v: float) -> str:
    out = format(v, ".15g")
    return "0" if out == "-0" else out


@dataclass(frozen=True, kw_only=True)
class Ellipsoid(IdentifiedObject):
    semi_major_axis: Measure
    inverse_flattening: Optional[float] = None
    semi_minor_axis: Optional[Measure] = None
    is_sphere: bool = False
    celestial_body: str = "Earth"

    def __post_init__(self) -> None:
        if self.is_sphere:
            return
        if self.inverse_flattening is None and self.semi_minor_axis is None:
            raise ValueError(f"ellipsoid '{self.name}' needs an inverse flattening or a semi-minor axis")
        if self.inverse_flattening is not None and self.semi_minor_axis is not None:
            a = self.semi_major_axis.si()
            b = self.semi_minor_axis.si()
            rf = a / (a - b) if a != b else 0.0
            if not nearly_equal(rf, self.inverse_flattening, 1e-9):
                raise ValueError(f"ellipsoid '{self.name}': semi-minor axis and inverse flattening disagree")

    @property
    def semi_major_metre(self) -> float:
        return self.semi_major_axis.si()

    @property
    def semi_minor_metre(self) -> float:
        if self.is_sphere:
            return self.semi_major_metre
        if self.semi_minor_axis is not None:
            return self.semi_minor_axis.si()
        a = self.semi_major_metre
        rf = self.inverse_flattening or 0.0
        return a if rf == 0.0 else a * (1.0 - 1.0 / rf)

    @property
    def inverse_flattening_value(self) -> float:
        """0 for a sphere."""
        if self.inverse_flattening is not None:
            return self.inverse_flattening
        a, b = self.semi_major_metre, self.semi_minor_metre
        return 0.0 if a == b else a / (a - b)

    @property
    def eccentricity_squared(self) -> float:
        a, b = self.semi_major_metre, self.semi_minor_metre
        return (a * a - b * b) / (a * a)

    def proj_name(self) -> Optional[str]:
        a = self.semi_major_metre
        for name, (pa, prf, pb) in PROJ_ELLIPSOIDS.items():
            if not nearly_equal(a, pa):
                continue
            if prf is not None and nearly_equal(self.inverse_flattening_value, prf):
                return name
            if pb is not None and nearly_equal(self.semi_minor_metre, pb):
                return name
        return None

    def proj_params(self) -> Tuple[Tuple[str, Optional[str]], ...]:
        name = self.proj_name()
        if name is not None:
            return (("ellps", name),)
        a = self.semi_major_metre
        if self.is_sphere or self.inverse_flattening_value == 0.0:
            return (("R", _fmt(a)),)
        if self.inverse_flattening is not None:
            return (("a", _fmt(a)), ("rf", _fmt(self.inverse_flattening)))
        return (("a", _fmt(a)), ("b", _fmt(self.semi_minor_metre)))

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, Ellipsoid) or not self._metadata_equal(other, criterion):
            return False
        if normalize_name(self.celestial_body) != normalize_name(other.celestial_body):
            return False
        return nearly_equal(self.semi_major_metre, other.semi_major_metre) and nearly_equal(
            self.semi_minor_metre, other.semi_minor_metre
        )


@dataclass(frozen=True, kw_only=True)
class PrimeMeridian(IdentifiedObject):
    longitude: Measure

    @property
    def degrees(self) -> float:
        return self.longitude.convert_to(DEGREE)

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, PrimeMeridian) or not self._metadata_equal(other, criterion):
            return False
        return nearly_equal(self.longitude.si(), other.longitude.si())


GREENWICH = PrimeMeridian(
    name="Greenwich",
    longitude=Measure(0.0, DEGREE),
)

WGS84_ELLIPSOID = Ellipsoid(
    name="WGS 84",
    semi_major_axis=Measure(6378137.0, METRE),
    inverse_flattening=298.257223563,
)


@dataclass(frozen=True, kw_only=True)
class Datum(ObjectUsage):
    anchor: Optional[str] = None
    anchor_epoch: Optional[float] = None
    publication_date: Optional[str] = None

    def _same_datum(self, other: "Datum", criterion: Criterion) -> bool:
        if type(self) is not type(other):
            return False
        if criterion == Criterion.STRICT:
            return (
                self._metadata_equal(other, criterion)
                and self.anchor == other.anchor
                and nearly_equal(self.anchor_epoch, other.anchor_epoch)
                and self.publication_date == other.publication_date
            )
        # Datums with an identical shape are still different realizations,
        # so names (or a shared code) stay significant.
        return self.shares_identifier_with(other) or normalize_name(self.name) == normalize_name(other.name)

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if isinstance(other, DatumEnsemble):
            return other.is_equivalent_to(self, criterion)
        return isinstance(other, Datum) and self._same_datum(other, criterion)


@dataclass(frozen=True, kw_only=True)
class GeodeticReferenceFrame(Datum):
    ellipsoid: Ellipsoid
    prime_meridian: PrimeMeridian = GREENWICH

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if isinstance(other, DatumEnsemble):
            return other.is_equivalent_to(self, criterion)
        if not isinstance(other, GeodeticReferenceFrame) or not self._same_datum(other, criterion):
            return False
        return self.ellipsoid.is_equivalent_to(other.ellipsoid, criterion) and self.prime_meridian.is_equivalent_to(
            other.prime_meridian, criterion
        )


@dataclass(frozen=True, kw_only=True)
class DynamicGeodeticReferenceFrame(GeodeticReferenceFrame):
    frame_reference_epoch: float

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        return (
            super().is_equivalent_to(other, criterion)
            and isinstance(other, DynamicGeodeticReferenceFrame)
            and nearly_equal(self.frame_reference_epoch, other.frame_reference_epoch)
        )


@dataclass(frozen=True, kw_only=True)
class VerticalReferenceFrame(Datum):
    pass


@dataclass(frozen=True, kw_only=True)
class DynamicVerticalReferenceFrame(VerticalReferenceFrame):
    frame_reference_epoch: float

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        return (
            super().is_equivalent_to(other, criterion)
            and isinstance(other, DynamicVerticalReferenceFrame)
            and nearly_equal(self.frame_reference_epoch, other.frame_reference_epoch)
        )


@dataclass(frozen=True, kw_only=True)
class EngineeringDatum(Datum):
    pass


@dataclass(frozen=True, kw_only=True)
class DatumEnsemble(ObjectUsage):
    datums: Tuple[Datum, ...] = field(default_factory=tuple)
    positional_accuracy: Optional[float] = None

    def __post_init__(self) -> None:
        if len(self.datums) < 2:
            raise ValueError(f"datum ensemble '{self.name}' needs at least 2 members")
        kinds = {isinstance(d, GeodeticReferenceFrame) for d in self.datums}
        if len(kinds) != 1:
            raise ValueError(f"datum ensemble '{self.name}' mixes geodetic and vertical members")

    @property
    def is_geodetic(self) -> bool:
        return isinstance(self.datums[0], GeodeticReferenceFrame)

    @property
    def representative_name(self) -> str:
        name = self.name
        if name.endswith(" ensemble"):
            name = name[: -len(" ensemble")]
        return name

    def as_datum(self, factory: Any = None) -> Datum:
        """Collapse to one frame.

        With a registry factory, a frame registered under the ensemble's name
        (minus the " ensemble" suffix) wins; otherwise the frame is synthesized
        from the most recent member, keeping the ensemble's identifiers.
        """
        if factory is not None:
            found = factory.find_datum_by_name(self.representative_name, geodetic=self.is_geodetic)
            if found is not None:
                return found
        member = self.datums[-1]
        if isinstance(member, GeodeticReferenceFrame):
            return GeodeticReferenceFrame(
                name=self.representative_name,
                identifiers=self.identifiers,
                usages=self.usages,
                ellipsoid=member.ellipsoid,
                prime_meridian=member.prime_meridian,
            )
        return VerticalReferenceFrame(
            name=self.representative_name,
            identifiers=self.identifiers,
            usages=self.usages,
        )

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if isinstance(other, DatumEnsemble):
            if not self._metadata_equal(other, criterion):
                return False
            if criterion == Criterion.STRICT:
                if len(self.datums) != len(other.datums) or not nearly_equal(
                    self.positional_accuracy, other.positional_accuracy
                ):
                    return False
                return all(a.is_equivalent_to(b, criterion) for a, b in zip(self.datums, other.datums))
            if self.shares_identifier_with(other):
                return True
            return len(self.datums) == len(other.datums) and all(
                any(a.is_equivalent_to(b, criterion) for b in other.datums) for a in self.datums
            )
        if isinstance(other, Datum) and criterion != Criterion.STRICT:
            return self.as_datum().is_equivalent_to(other, criterion)
        return False


__all__ = [
    "Ellipsoid",
    "PROJ_ELLIPSOIDS",
    "PrimeMeridian",
    "GREENWICH",
    "WGS84_ELLIPSOID",
    "Datum",
    "GeodeticReferenceFrame",
    "DynamicGeodeticReferenceFrame",
    "VerticalReferenceFrame",
    "DynamicVerticalReferenceFrame",
    "EngineeringDatum",
    "DatumEnsemble",
]
