"""Operations synthesized by the resolver rather than read from the registry."""
from __future__ import annotations

from typing import Any, Optional

from geopath.geodesy.common import (
    ARC_SECOND,
    METRE,
    PARTS_PER_MILLION,
    Identifier,
    Measure,
    normalize_name,
)
from geopath.geodesy.crs import GeodeticCRS, GeographicCRS, VerticalCRS
from geopath.geodesy.methods import BALLPARK_METHOD, HELMERT_PARAMS, PARAMETER_NAMES
from geopath.geodesy.operation import (
    CoordinateOperation,
    OperationKind,
    OperationMethod,
    OperationParameter,
    ParameterValue,
)

_GEOG_GEOCENTRIC = OperationMethod(
    name="Geographic/geocentric conversions",
    identifiers=(Identifier("EPSG", "9602"),),
)
_GEOG_3D_TO_2D = OperationMethod(
    name="Geographic3D to 2D conversion",
    identifiers=(Identifier("EPSG", "9659"),),
)


def _label(crs: GeodeticCRS) -> str:
    if isinstance(crs, GeographicCRS):
        return "geog3D" if crs.is_3d else "geog2D"
    return "geocentric"


def geodetic_conversion(source: Any, target: Any) -> Optional[CoordinateOperation]:
    """Geographic<->geocentric or geographic 3D<->2D conversion on one datum, else None."""
    if not isinstance(source, GeodeticCRS) or not isinstance(target, GeodeticCRS):
        return None
    if not source.same_datum_as(target):
        return None
    src_geog, tgt_geog = isinstance(source, GeographicCRS), isinstance(target, GeographicCRS)
    if src_geog != tgt_geog:
        method = _GEOG_GEOCENTRIC
    elif src_geog and tgt_geog and source.is_3d != target.is_3d:  # type: ignore[attr-defined]
        method = _GEOG_3D_TO_2D
    else:
        return None
    return CoordinateOperation(
        kind=OperationKind.CONVERSION,
        name=f"Conversion from {source.name} ({_label(source)}) to {target.name} ({_label(target)})",
        method=method,
        source_crs=source,
        target_crs=target,
        accuracy=0.0,
    )


def ballpark_transformation(source: Any, target: Any) -> CoordinateOperation:
    """Unknown-accuracy transformation that leaves coordinates unchanged."""
    if isinstance(source, VerticalCRS) or isinstance(target, VerticalCRS):
        label = "Ballpark vertical offset"
    elif isinstance(source, GeographicCRS) or isinstance(target, GeographicCRS):
        label = "Ballpark geographic offset"
    else:
        label = "Ballpark geocentric translation"
    return CoordinateOperation(
        kind=OperationKind.TRANSFORMATION,
        name=f"{label} from {source.name} to {target.name}",
        method=OperationMethod(name=label, identifiers=(Identifier("PROJ", BALLPARK_METHOD),)),
        source_crs=source,
        target_crs=target,
        ballpark=True,
    )


def _is_wgs84(crs: Any) -> bool:
    if not isinstance(crs, GeodeticCRS):
        return False
    datum = crs.datum_or_ensemble
    if any(str(i) == "EPSG:6326" for i in datum.identifiers):
        return True
    return normalize_name(datum.name).startswith("worldgeodeticsystem1984")


def towgs84_transformation(source: Any, target: Any) -> Optional[CoordinateOperation]:
    """Helmert transformation from a ``towgs84`` clause, when one endpoint is WGS 84."""
    if getattr(source, "towgs84", None) and _is_wgs84(target):
        return _helmert_from_towgs84(source, target)
    if getattr(target, "towgs84", None) and _is_wgs84(source):
        return _helmert_from_towgs84(target, source).inverse()
    return None


def _helmert_from_towgs84(crs: Any, wgs84: Any) -> CoordinateOperation:
    values = list(crs.towgs84)
    if len(values) == 3:
        method = OperationMethod(name="Geocentric translations (geog2D domain)", identifiers=(Identifier("EPSG", "9603"),))
        codes = HELMERT_PARAMS[:3]
    else:
        values = (values + [0.0] * 7)[:7]
        method = OperationMethod(name="Position Vector transformation (geog2D domain)", identifiers=(Identifier("EPSG", "9606"),))
        codes = HELMERT_PARAMS
    units = [METRE] * 3 + [ARC_SECOND] * 3 + [PARTS_PER_MILLION]
    params = tuple(
        ParameterValue(
            parameter=OperationParameter(name=PARAMETER_NAMES[code], identifiers=(Identifier("EPSG", code),)),
            value=Measure(float(v), units[i]),
        )
        for i, (code, v) in enumerate(zip(codes, values))
    )
    return CoordinateOperation(
        kind=OperationKind.TRANSFORMATION,
        name=f"Transformation from {crs.name} to {wgs84.name}",
        method=method,
        parameter_values=params,
        source_crs=crs,
        target_crs=wgs84,
    )


__all__ = ["geodetic_conversion", "ballpark_transformation", "towgs84_transformation"]
