from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from .common import Criterion, ObjectUsage, nearly_equal
from .cs import AxisDirection, CoordinateSystem, CSType
from .datum import (
    Datum,
    DatumEnsemble,
    Ellipsoid,
    GeodeticReferenceFrame,
    PrimeMeridian,
    VerticalReferenceFrame,
)


def _datum_criterion(criterion: Criterion) -> Criterion:
    return Criterion.EQUIVALENT if criterion == Criterion.EQUIVALENT_EXCEPT_AXIS_ORDER else criterion


@dataclass(frozen=True, kw_only=True)
class CRS(ObjectUsage):
    coordinate_system: Optional[CoordinateSystem] = None
    towgs84: Optional[Tuple[float, ...]] = None

    @property
    def kind(self) -> str:
        raise NotImplementedError

    def geodetic_crs(self) -> Optional["GeodeticCRS"]:
        return None

    def _base_equivalent(self, other: "CRS", criterion: Criterion) -> bool:
        if not self._metadata_equal(other, criterion):
            return False
        if self.towgs84 is None or other.towgs84 is None:
            if (self.towgs84 is None) != (other.towgs84 is None):
                return False
        elif len(self.towgs84) != len(other.towgs84) or not all(
            nearly_equal(a, b) for a, b in zip(self.towgs84, other.towgs84)
        ):
            return False
        if self.coordinate_system is None or other.coordinate_system is None:
            return self.coordinate_system is None and other.coordinate_system is None
        return self.coordinate_system.is_equivalent_to(other.coordinate_system, criterion)

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        raise NotImplementedError

    def __str__(self) -> str:
        ident = self.identifier
        return f"{self.name} ({ident})" if ident else self.name


@dataclass(frozen=True, kw_only=True)
class SingleCRS(CRS):
    datum: Optional[Datum] = None
    datum_ensemble: Optional[DatumEnsemble] = None

    def __post_init__(self) -> None:
        if (self.datum is None) == (self.datum_ensemble is None):
            raise ValueError(f"CRS '{self.name}' needs exactly one of datum or datum ensemble")
        if self.coordinate_system is None:
            raise ValueError(f"CRS '{self.name}' needs a coordinate system")

    @property
    def datum_or_ensemble(self) -> Any:
        return self.datum if self.datum is not None else self.datum_ensemble

    def datum_for_comparison(self) -> Datum:
        if self.datum is not None:
            return self.datum
        return self.datum_ensemble.as_datum()  # type: ignore[union-attr]

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if type(self) is not type(other) or not self._base_equivalent(other, criterion):
            return False
        if criterion == Criterion.STRICT:
            return self.datum_or_ensemble.is_equivalent_to(other.datum_or_ensemble, criterion)
        return self.datum_or_ensemble.is_equivalent_to(other.datum_or_ensemble, _datum_criterion(criterion))


@dataclass(frozen=True, kw_only=True)
class GeodeticCRS(SingleCRS):
    def __post_init__(self) -> None:
        super().__post_init__()
        frame = self.datum_for_comparison()
        if not isinstance(frame, GeodeticReferenceFrame):
            raise ValueError(f"geodetic CRS '{self.name}' needs a geodetic reference frame")

    @property
    def ellipsoid(self) -> Ellipsoid:
        return self.datum_for_comparison().ellipsoid  # type: ignore[attr-defined]

    @property
    def prime_meridian(self) -> PrimeMeridian:
        return self.datum_for_comparison().prime_meridian  # type: ignore[attr-defined]

    @property
    def is_geocentric(self) -> bool:
        return self.coordinate_system.is_geocentric  # type: ignore[union-attr]

    @property
    def kind(self) -> str:
        return "geocentric" if self.is_geocentric else "geodetic"

    def geodetic_crs(self) -> Optional["GeodeticCRS"]:
        return self

    def same_datum_as(self, other: "GeodeticCRS") -> bool:
        return self.datum_for_comparison().is_equivalent_to(other.datum_for_comparison(), Criterion.EQUIVALENT)


@dataclass(frozen=True, kw_only=True)
class GeographicCRS(GeodeticCRS):
    def __post_init__(self) -> None:
        super().__post_init__()
        if self.coordinate_system.cs_type != CSType.ELLIPSOIDAL:  # type: ignore[union-attr]
            raise ValueError(f"geographic CRS '{self.name}' needs an ellipsoidal coordinate system")

    @property
    def is_3d(self) -> bool:
        return self.coordinate_system.dimension == 3  # type: ignore[union-attr]

    @property
    def kind(self) -> str:
        return "geographic 3D" if self.is_3d else "geographic 2D"


@dataclass(frozen=True, kw_only=True)
class VerticalCRS(SingleCRS):
    def __post_init__(self) -> None:
        super().__post_init__()
        if not isinstance(self.datum_for_comparison(), VerticalReferenceFrame):
            raise ValueError(f"vertical CRS '{self.name}' needs a vertical reference frame")
        if self.coordinate_system.cs_type != CSType.VERTICAL:  # type: ignore[union-attr]
            raise ValueError(f"vertical CRS '{self.name}' needs a vertical coordinate system")

    @property
    def kind(self) -> str:
        return "vertical"

    @property
    def is_depth(self) -> bool:
        return self.coordinate_system.axes[0].direction == AxisDirection.DOWN  # type: ignore[union-attr]


@dataclass(frozen=True, kw_only=True)
class EngineeringCRS(SingleCRS):
    @property
    def kind(self) -> str:
        return "engineering"


@dataclass(frozen=True, kw_only=True)
class ProjectedCRS(CRS):
    base_crs: GeodeticCRS
    # Conversion template without source/target; see deriving_conversion()
    conversion: Any

    def __post_init__(self) -> None:
        if self.coordinate_system is None or self.coordinate_system.cs_type != CSType.CARTESIAN:
            raise ValueError(f"projected CRS '{self.name}' needs a Cartesian coordinate system")

    @property
    def kind(self) -> str:
        return "projected"

    def geodetic_crs(self) -> Optional[GeodeticCRS]:
        return self.base_crs

    def deriving_conversion(self) -> Any:
        return dataclasses.replace(self.conversion, source_crs=self.base_crs, target_crs=self)

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, ProjectedCRS) or not self._base_equivalent(other, criterion):
            return False
        if not self.base_crs.is_equivalent_to(other.base_crs, criterion):
            return False
        return self.conversion.is_equivalent_to(other.conversion, _datum_criterion(criterion))


@dataclass(frozen=True, kw_only=True)
class CompoundCRS(CRS):
    components: Tuple[CRS, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if len(self.components) < 2:
            raise ValueError(f"compound CRS '{self.name}' needs at least 2 components")

    @property
    def kind(self) -> str:
        return "compound"

    def geodetic_crs(self) -> Optional[GeodeticCRS]:
        return self.components[0].geodetic_crs()

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, CompoundCRS) or not self._metadata_equal(other, criterion):
            return False
        if len(self.components) != len(other.components):
            return False
        return all(a.is_equivalent_to(b, criterion) for a, b in zip(self.components, other.components))


__all__ = [
    "CRS",
    "SingleCRS",
    "GeodeticCRS",
    "GeographicCRS",
    "VerticalCRS",
    "EngineeringCRS",
    "ProjectedCRS",
    "CompoundCRS",
]
