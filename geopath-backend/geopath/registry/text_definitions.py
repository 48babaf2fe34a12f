"""Parse user definitions stored as text in registry rows.

CRS rows may carry a PROJ string, a WKT fragment or an ``AUTH:CODE``
reference in ``text_definition``; transformation rows with method
``PROJ:WKT`` carry a WKT coordinate operation. Grammar work is done by
pyproj; this module maps its objects onto the geodesy model.
"""
from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Tuple

import pyproj
from pyproj.exceptions import CRSError, ProjError

from geopath.geodesy.common import (
    ARC_SECOND,
    DEGREE,
    FOOT,
    GRAD,
    METRE,
    RADIAN,
    US_SURVEY_FOOT,
    Identifier,
    Measure,
    UnitOfMeasure,
    UnitType,
    Usage,
    nearly_equal,
)
from geopath.geodesy.crs import CRS, GeodeticCRS, GeographicCRS, ProjectedCRS
from geopath.geodesy.cs import Axis, AxisDirection, CoordinateSystem, CSType
from geopath.geodesy.datum import Ellipsoid, GeodeticReferenceFrame, PrimeMeridian
from geopath.geodesy.errors import FactoryException
from geopath.geodesy.operation import (
    CoordinateOperation,
    OperationKind,
    OperationMethod,
    OperationParameter,
    ParameterValue,
)

logger = logging.getLogger(__name__)

_REFERENCE = re.compile(r"^([A-Za-z_][\w.\-]*):([\w.\-]+)$")

_KNOWN_UNITS = (METRE, FOOT, US_SURVEY_FOOT, DEGREE, GRAD, RADIAN, ARC_SECOND)

_CATEGORY_TYPES = {
    "linear": UnitType.LINEAR,
    "angular": UnitType.ANGULAR,
    "scale": UnitType.SCALE,
    "time": UnitType.TIME,
    "parametric": UnitType.PARAMETRIC,
}


def parse_reference(text: str) -> Optional[Tuple[str, str]]:
    """``"EPSG:4326"`` -> ``("EPSG", "4326")``; anything else -> None."""
    m = _REFERENCE.match(text.strip())
    if not m:
        return None
    return m.group(1), m.group(2)


def _unit(name: str, factor: Optional[float], unit_type: UnitType, auth: Optional[str] = None, code: Optional[str] = None) -> UnitOfMeasure:
    for known in _KNOWN_UNITS:
        if known.type == unit_type and factor is not None and nearly_equal(known.to_si, factor):
            return known
    return UnitOfMeasure(name or "unknown", unit_type, factor, auth or None, code or None)


def _axes(pj: Any, angular_horizontal: bool) -> Tuple[Axis, ...]:
    axes = []
    for i, info in enumerate(pj.axis_info):
        angular = angular_horizontal and i < 2
        unit_type = UnitType.ANGULAR if angular else UnitType.LINEAR
        axes.append(
            Axis(
                name=info.name,
                abbreviation=info.abbrev,
                direction=AxisDirection.parse(info.direction),
                unit=_unit(info.unit_name, info.unit_conversion_factor, unit_type, info.unit_auth_code, info.unit_code),
            )
        )
    return tuple(axes)


def _geodetic_from_pyproj(pj: Any, name: str, identifiers: Tuple[Identifier, ...], usages: Tuple[Usage, ...], towgs84: Optional[Tuple[float, ...]] = None) -> GeodeticCRS:
    e = pj.ellipsoid
    pm = pj.prime_meridian
    if e is None or pm is None:
        raise FactoryException(f"Definition of '{name}' has no ellipsoid or prime meridian")
    rf = e.inverse_flattening or None
    ellipsoid = Ellipsoid(
        name=e.name,
        semi_major_axis=Measure(e.semi_major_metre, METRE),
        inverse_flattening=rf,
        is_sphere=rf is None,
    )
    prime = PrimeMeridian(
        name=pm.name,
        longitude=Measure(pm.longitude, _unit(pm.unit_name, pm.unit_conversion_factor, UnitType.ANGULAR)),
    )
    datum_name = pj.datum.name if pj.datum is not None else f"Unknown based on {e.name} ellipsoid"
    frame = GeodeticReferenceFrame(name=datum_name, ellipsoid=ellipsoid, prime_meridian=prime)
    if pj.is_geocentric:
        cs = CoordinateSystem(cs_type=CSType.CARTESIAN, axes=_axes(pj, angular_horizontal=False))
        return GeodeticCRS(name=name, identifiers=identifiers, usages=usages, datum=frame, coordinate_system=cs, towgs84=towgs84)
    cs = CoordinateSystem(cs_type=CSType.ELLIPSOIDAL, axes=_axes(pj, angular_horizontal=True))
    return GeographicCRS(name=name, identifiers=identifiers, usages=usages, datum=frame, coordinate_system=cs, towgs84=towgs84)


def _parameters(params: List[Any]) -> Tuple[ParameterValue, ...]:
    out = []
    for p in params:
        ids = (Identifier(p.auth_name, str(p.code)),) if p.auth_name and p.code else ()
        parameter = OperationParameter(name=p.name, identifiers=ids)
        if isinstance(p.value, str):
            out.append(ParameterValue(parameter=parameter, file_name=p.value))
            continue
        unit_type = _CATEGORY_TYPES.get((p.unit_category or "").lower(), UnitType.NONE)
        unit = _unit(p.unit_name, p.unit_conversion_factor, unit_type, p.unit_auth_name, p.unit_code)
        out.append(ParameterValue(parameter=parameter, value=Measure(float(p.value), unit)))
    return tuple(out)


def _method(op: Any) -> OperationMethod:
    ids = (Identifier(op.method_auth_name, str(op.method_code)),) if op.method_auth_name and op.method_code else ()
    return OperationMethod(name=op.method_name, identifiers=ids)


def crs_from_text(
    text: str,
    expected: str,
    name: str,
    identifiers: Tuple[Identifier, ...] = (),
    usages: Tuple[Usage, ...] = (),
) -> CRS:
    """Build a geodetic or projected CRS from a PROJ string or WKT.

    ``expected`` is the row kind, ``"geodetic"`` or ``"projected"``; a
    definition of another kind raises FactoryException.
    """
    try:
        pj = pyproj.CRS.from_user_input(text)
    except (CRSError, ProjError) as exc:
        raise FactoryException(f"Invalid definition for '{name}': {exc}") from exc

    towgs84: Optional[Tuple[float, ...]] = None
    if pj.is_bound:
        op = pj.coordinate_operation
        if op is not None and op.towgs84:
            towgs84 = tuple(float(v) for v in op.towgs84)
        pj = pj.source_crs

    if expected == "projected":
        if not pj.is_projected:
            raise FactoryException(f"Definition of '{name}' is not a projected CRS")
        base = _geodetic_from_pyproj(pj.geodetic_crs, pj.geodetic_crs.name, (), (), None)
        op = pj.coordinate_operation
        conversion = CoordinateOperation(
            kind=OperationKind.CONVERSION,
            name=op.name,
            method=_method(op),
            parameter_values=_parameters(op.params),
        )
        cs = CoordinateSystem(cs_type=CSType.CARTESIAN, axes=_axes(pj, angular_horizontal=False))
        return ProjectedCRS(
            name=name,
            identifiers=identifiers,
            usages=usages,
            base_crs=base,
            conversion=conversion,
            coordinate_system=cs,
            towgs84=towgs84,
        )

    if pj.is_projected or not (pj.is_geographic or pj.is_geocentric):
        raise FactoryException(f"Definition of '{name}' is not a geodetic CRS")
    return _geodetic_from_pyproj(pj, name, identifiers, usages, towgs84)


def operation_from_wkt(text: str) -> Tuple[OperationMethod, Tuple[ParameterValue, ...]]:
    try:
        op = pyproj.crs.CoordinateOperation.from_wkt(text)
    except (CRSError, ProjError) as exc:
        raise FactoryException(f"Invalid WKT coordinate operation: {exc}") from exc
    if not op.method_name:
        raise FactoryException("WKT definition is not a coordinate operation")
    return _method(op), _parameters(op.params)


__all__ = ["crs_from_text", "operation_from_wkt", "parse_reference"]
