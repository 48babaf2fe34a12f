"""Steps bringing CRS coordinates to the layout PROJ kernels expect.

Geographic: longitude, latitude in radians, height in metres.
Geocentric, projected: metres, east/north/up order. Vertical: metres, up.
Outputs are the inverse of the corresponding inputs.
"""
from __future__ import annotations

from typing import Any, List, Optional, Sequence

from geopath.geodesy.common import UnitOfMeasure, UnitType
from geopath.geodesy.crs import CompoundCRS, GeodeticCRS, GeographicCRS, ProjectedCRS, VerticalCRS
from geopath.geodesy.cs import AxisDirection, CoordinateSystem
from geopath.geodesy.errors import InvalidOperationError

from .steps import Step, fmt

_EASTING = (AxisDirection.EAST, AxisDirection.WEST, AxisDirection.GEOCENTRIC_X)
_NORTHING = (AxisDirection.NORTH, AxisDirection.SOUTH, AxisDirection.GEOCENTRIC_Y)
_NEGATIVE = (AxisDirection.WEST, AxisDirection.SOUTH, AxisDirection.DOWN)


def unit_token(unit: UnitOfMeasure) -> str:
    if unit.proj_name:
        return unit.proj_name
    if unit.is_sexagesimal or not unit.to_si:
        raise InvalidOperationError(f"unit '{unit.name}' cannot be expressed as a PROJ unit")
    return fmt(unit.to_si)


def _axis_order(cs: CoordinateSystem) -> Optional[str]:
    """``axisswap`` order turning the CS axes into east, north(, up), or None when already so."""
    axes = cs.axes
    east = cs.axis_index(*_EASTING)
    north = cs.axis_index(*_NORTHING)
    if east is None or north is None:
        return None
    order = [east + 1, north + 1] + [i + 1 for i in range(len(axes)) if i not in (east, north)]
    signed = [-o if axes[o - 1].direction in _NEGATIVE else o for o in order]
    text = ",".join(str(v) for v in signed)
    if text == ",".join(str(i + 1) for i in range(len(axes))):
        return None
    return text


def _unitconvert(xy: Optional[str], xy_target: str, z: Optional[str] = None) -> List[Step]:
    params = []
    if xy is not None and xy != xy_target:
        params += [("xy_in", xy), ("xy_out", xy_target)]
    if z is not None and z != "m":
        params += [("z_in", z), ("z_out", "m")]
    return [Step("unitconvert", tuple(params))] if params else []


def geographic_in(crs: GeographicCRS) -> List[Step]:
    cs = crs.coordinate_system
    steps: List[Step] = []
    order = _axis_order(cs)  # type: ignore[arg-type]
    if order is not None:
        steps.append(Step("axisswap", (("order", order),)))
    horizontal = cs.axes[0].unit  # type: ignore[union-attr]
    z = unit_token(cs.axes[2].unit) if crs.is_3d else None  # type: ignore[union-attr]
    steps += _unitconvert(unit_token(horizontal), "rad", z)
    return steps


def prime_meridian_step(crs: GeodeticCRS) -> Optional[Step]:
    """Longitudes relative to the CRS prime meridian to Greenwich."""
    pm = crs.prime_meridian.degrees
    if pm == 0.0:
        return None
    return Step("longlat", crs.ellipsoid.proj_params() + (("pm", fmt(pm)),), inverse=True)


def linear_in(crs: Any) -> List[Step]:
    cs: CoordinateSystem = crs.coordinate_system
    steps: List[Step] = []
    xy = unit_token(cs.axes[0].unit)
    z = unit_token(cs.axes[2].unit) if cs.dimension == 3 else None
    steps += _unitconvert(xy, "m", z)
    order = _axis_order(cs)
    if order is not None:
        steps.append(Step("axisswap", (("order", order),)))
    return steps


def vertical_in(crs: VerticalCRS) -> List[Step]:
    axis = crs.coordinate_system.axes[0]  # type: ignore[union-attr]
    if axis.unit.type != UnitType.LINEAR:
        raise InvalidOperationError(f"vertical CRS '{crs.name}' has a non-linear axis")
    steps = _unitconvert(None, "m", unit_token(axis.unit))
    if crs.is_depth:
        steps.append(Step("axisswap", (("order", "1,2,-3"),)))
    return steps


def normalize_in(crs: Any, prime_meridian: bool = False) -> List[Step]:
    """Steps from ``crs`` coordinates to the kernel layout."""
    if crs is None:
        return []
    if isinstance(crs, CompoundCRS):
        steps: List[Step] = []
        for component in crs.components:
            steps += normalize_in(component, prime_meridian)
        return steps
    if isinstance(crs, GeographicCRS):
        steps = geographic_in(crs)
        pm = prime_meridian_step(crs) if prime_meridian else None
        return steps + ([pm] if pm is not None else [])
    if isinstance(crs, VerticalCRS):
        return vertical_in(crs)
    if isinstance(crs, (GeodeticCRS, ProjectedCRS)) or crs.coordinate_system is not None:
        return linear_in(crs)
    raise InvalidOperationError(f"cannot normalize coordinates of '{crs.name}'")


def invert_steps(steps: Sequence[Step]) -> List[Step]:
    return [s.inverted() for s in reversed(steps)]


def normalize_out(crs: Any, prime_meridian: bool = False) -> List[Step]:
    """Steps from the kernel layout to ``crs`` coordinates."""
    return invert_steps(normalize_in(crs, prime_meridian))


__all__ = [
    "normalize_in",
    "normalize_out",
    "geographic_in",
    "linear_in",
    "vertical_in",
    "prime_meridian_step",
    "invert_steps",
    "unit_token",
]
