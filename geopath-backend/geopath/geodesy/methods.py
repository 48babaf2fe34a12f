"""EPSG operation method and parameter catalog.

Each method records how its algebraic inverse is formed:

- ``negate``: the listed parameters change sign (Helmert family, offsets,
  longitude rotation)
- ``self``: the same parameters with source and target swapped
- ``reciprocal``: the listed scale parameter is inverted
- ``affine``: the 2x3 affine matrix is inverted
- ``wrap``: no closed-form inverse; the operation is run backward
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .common import normalize_name

# Helmert family
TX, TY, TZ = "8605", "8606", "8607"
RX, RY, RZ = "8608", "8609", "8610"
SCALE_DIFF = "8611"
RATE_TX, RATE_TY, RATE_TZ = "1040", "1041", "1042"
RATE_RX, RATE_RY, RATE_RZ = "1043", "1044", "1045"
RATE_SCALE = "1046"
REFERENCE_EPOCH = "1047"
PIVOT_X, PIVOT_Y, PIVOT_Z = "8617", "8618", "8667"

HELMERT_PARAMS = (TX, TY, TZ, RX, RY, RZ, SCALE_DIFF)
RATE_PARAMS = (RATE_TX, RATE_TY, RATE_TZ, RATE_RX, RATE_RY, RATE_RZ, RATE_SCALE)

LATITUDE_OFFSET = "8601"
LONGITUDE_OFFSET = "8602"
VERTICAL_OFFSET = "8603"

LAT_LON_DIFFERENCE_FILE = "8656"
LATITUDE_DIFFERENCE_FILE = "8657"
LONGITUDE_DIFFERENCE_FILE = "8658"
VERTICAL_OFFSET_FILE = "8732"
VELOCITY_GRID_FILE = "1050"
UNIT_CONVERSION_SCALAR = "1051"

A0, A1, A2 = "8623", "8624", "8625"
B0, B1, B2 = "8639", "8640", "8641"

LAT_NATURAL_ORIGIN = "8801"
LON_NATURAL_ORIGIN = "8802"
SCALE_NATURAL_ORIGIN = "8805"
FALSE_EASTING = "8806"
FALSE_NORTHING = "8807"
LAT_FALSE_ORIGIN = "8821"
LON_FALSE_ORIGIN = "8822"
LAT_1ST_PARALLEL = "8823"
LAT_2ND_PARALLEL = "8824"
EASTING_FALSE_ORIGIN = "8826"
NORTHING_FALSE_ORIGIN = "8827"

PARAMETER_NAMES: Dict[str, str] = {
    TX: "X-axis translation",
    TY: "Y-axis translation",
    TZ: "Z-axis translation",
    RX: "X-axis rotation",
    RY: "Y-axis rotation",
    RZ: "Z-axis rotation",
    SCALE_DIFF: "Scale difference",
    RATE_TX: "Rate of change of X-axis translation",
    RATE_TY: "Rate of change of Y-axis translation",
    RATE_TZ: "Rate of change of Z-axis translation",
    RATE_RX: "Rate of change of X-axis rotation",
    RATE_RY: "Rate of change of Y-axis rotation",
    RATE_RZ: "Rate of change of Z-axis rotation",
    RATE_SCALE: "Rate of change of Scale difference",
    REFERENCE_EPOCH: "Parameter reference epoch",
    PIVOT_X: "Ordinate 1 of evaluation point",
    PIVOT_Y: "Ordinate 2 of evaluation point",
    PIVOT_Z: "Ordinate 3 of evaluation point",
    LATITUDE_OFFSET: "Latitude offset",
    LONGITUDE_OFFSET: "Longitude offset",
    VERTICAL_OFFSET: "Vertical Offset",
    LAT_LON_DIFFERENCE_FILE: "Latitude and longitude difference file",
    LATITUDE_DIFFERENCE_FILE: "Latitude difference file",
    LONGITUDE_DIFFERENCE_FILE: "Longitude difference file",
    VERTICAL_OFFSET_FILE: "Vertical offset file",
    VELOCITY_GRID_FILE: "Point motion velocity grid file",
    UNIT_CONVERSION_SCALAR: "Unit conversion scalar",
    A0: "A0",
    A1: "A1",
    A2: "A2",
    B0: "B0",
    B1: "B1",
    B2: "B2",
    LAT_NATURAL_ORIGIN: "Latitude of natural origin",
    LON_NATURAL_ORIGIN: "Longitude of natural origin",
    SCALE_NATURAL_ORIGIN: "Scale factor at natural origin",
    FALSE_EASTING: "False easting",
    FALSE_NORTHING: "False northing",
    LAT_FALSE_ORIGIN: "Latitude of false origin",
    LON_FALSE_ORIGIN: "Longitude of false origin",
    LAT_1ST_PARALLEL: "Latitude of 1st standard parallel",
    LAT_2ND_PARALLEL: "Latitude of 2nd standard parallel",
    EASTING_FALSE_ORIGIN: "Easting at false origin",
    NORTHING_FALSE_ORIGIN: "Northing at false origin",
}


@dataclass(frozen=True)
class MethodInfo:
    code: str
    name: str
    inverse: str = "wrap"
    params: Tuple[str, ...] = ()
    is_projection: bool = False
    exact: bool = False


_HELMERT_NEG = HELMERT_PARAMS + RATE_PARAMS

_CATALOG = [
    MethodInfo("1031", "Geocentric translations (geocentric domain)", "negate", (TX, TY, TZ)),
    MethodInfo("1035", "Geocentric translations (geog3D domain)", "negate", (TX, TY, TZ)),
    MethodInfo("9603", "Geocentric translations (geog2D domain)", "negate", (TX, TY, TZ)),
    MethodInfo("1033", "Position Vector transformation (geocentric domain)", "negate", HELMERT_PARAMS),
    MethodInfo("1037", "Position Vector transformation (geog3D domain)", "negate", HELMERT_PARAMS),
    MethodInfo("9606", "Position Vector transformation (geog2D domain)", "negate", HELMERT_PARAMS),
    MethodInfo("1032", "Coordinate Frame rotation (geocentric domain)", "negate", HELMERT_PARAMS),
    MethodInfo("1038", "Coordinate Frame rotation (geog3D domain)", "negate", HELMERT_PARAMS),
    MethodInfo("9607", "Coordinate Frame rotation (geog2D domain)", "negate", HELMERT_PARAMS),
    MethodInfo("1053", "Time-dependent Position Vector tfm (geocentric)", "negate", _HELMERT_NEG),
    MethodInfo("1054", "Time-dependent Position Vector tfm (geog2D)", "negate", _HELMERT_NEG),
    MethodInfo("1055", "Time-dependent Position Vector tfm (geog3D)", "negate", _HELMERT_NEG),
    MethodInfo("1056", "Time-dependent Coordinate Frame rotation (geocen)", "negate", _HELMERT_NEG),
    MethodInfo("1057", "Time-dependent Coordinate Frame rotation (geog2D)", "negate", _HELMERT_NEG),
    MethodInfo("1058", "Time-dependent Coordinate Frame rotation (geog3D)", "negate", _HELMERT_NEG),
    MethodInfo("1132", "Coordinate Frame rotation full matrix (geocen)", exact=True),
    MethodInfo("1133", "Coordinate Frame rotation full matrix (geog2D)", exact=True),
    MethodInfo("1140", "Coordinate Frame rotation full matrix (geog3D)", exact=True),
    MethodInfo("1034", "Molodensky-Badekas (CF geocentric domain)"),
    MethodInfo("9636", "Molodensky-Badekas (CF geog2D domain)"),
    MethodInfo("1061", "Molodensky-Badekas (PV geocentric domain)"),
    MethodInfo("1063", "Molodensky-Badekas (PV geog2D domain)"),
    MethodInfo("9601", "Longitude rotation", "negate", (LONGITUDE_OFFSET,)),
    MethodInfo("9619", "Geographic2D offsets", "negate", (LATITUDE_OFFSET, LONGITUDE_OFFSET)),
    MethodInfo("9660", "Geographic3D offsets", "negate", (LATITUDE_OFFSET, LONGITUDE_OFFSET, VERTICAL_OFFSET)),
    MethodInfo("9616", "Vertical Offset", "negate", (VERTICAL_OFFSET,)),
    MethodInfo("9615", "NTv2"),
    MethodInfo("9613", "NADCON"),
    MethodInfo("1084", "Vertical Offset by Grid Interpolation (gtx)"),
    MethodInfo("1141", "Point motion by grid (NEU domain) (NTv2_Vel)"),
    MethodInfo("1068", "Height Depth Reversal", "self"),
    MethodInfo("1069", "Change of Vertical Unit", "reciprocal", (UNIT_CONVERSION_SCALAR,)),
    MethodInfo("1104", "Change of Vertical Unit", "self"),
    MethodInfo("9624", "Affine parametric transformation", "affine", (A0, A1, A2, B0, B1, B2)),
    MethodInfo("9602", "Geographic/geocentric conversions", "self"),
    MethodInfo("9659", "Geographic3D to 2D conversion", "self"),
    MethodInfo("9807", "Transverse Mercator", is_projection=True),
    MethodInfo("9804", "Mercator (variant A)", is_projection=True),
    MethodInfo("9805", "Mercator (variant B)", is_projection=True),
    MethodInfo("1024", "Popular Visualisation Pseudo Mercator", is_projection=True),
    MethodInfo("9801", "Lambert Conic Conformal (1SP)", is_projection=True),
    MethodInfo("9802", "Lambert Conic Conformal (2SP)", is_projection=True),
    MethodInfo("9809", "Oblique Stereographic", is_projection=True),
    MethodInfo("9810", "Polar Stereographic (variant A)", is_projection=True),
    MethodInfo("9835", "Lambert Cylindrical Equal Area", is_projection=True),
]

METHODS: Dict[str, MethodInfo] = {m.code: m for m in _CATALOG}
_BY_NAME: Dict[str, MethodInfo] = {}
for _m in _CATALOG:
    _BY_NAME.setdefault(normalize_name(_m.name), _m)

# Pseudo-methods outside the EPSG namespace
PROJ_STRING_METHOD = "PROJString"
BALLPARK_METHOD = "BallparkOffset"


def find_method(code: Optional[str] = None, name: Optional[str] = None) -> Optional[MethodInfo]:
    if code and code in METHODS:
        return METHODS[code]
    if name:
        return _BY_NAME.get(normalize_name(name))
    return None


__all__ = [
    "MethodInfo",
    "METHODS",
    "PARAMETER_NAMES",
    "HELMERT_PARAMS",
    "RATE_PARAMS",
    "PROJ_STRING_METHOD",
    "BALLPARK_METHOD",
    "find_method",
]
