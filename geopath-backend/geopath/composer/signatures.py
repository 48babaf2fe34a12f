"""Kernel signatures keyed by EPSG method code.

A signature names the coordinate domain the kernel works in and builds
the kernel steps from an operation's parameters. Parameter validation is
static: anything knowable from the operation record is checked here so
that a bad record fails at composition rather than mid-transform.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from geopath.geodesy import methods as m
from geopath.geodesy.common import (
    ARC_SECOND,
    ARC_SECOND_PER_YEAR,
    DEGREE,
    METRE,
    METRE_PER_YEAR,
    PARTS_PER_MILLION,
    PPM_PER_YEAR,
    UNITY,
    YEAR,
    UnitOfMeasure,
)
from geopath.geodesy.crs import GeodeticCRS, ProjectedCRS, VerticalCRS
from geopath.geodesy.errors import InvalidOperationError
from geopath.geodesy.operation import CoordinateOperation

from .normalize import unit_token
from .steps import Param, Step, fmt

GridLookup = Optional[Callable[[str], Optional[str]]]


class Domain(str, enum.Enum):
    GEOGRAPHIC = "geographic"
    CARTESIAN = "cartesian"
    VERTICAL = "vertical"
    PROJECTION = "projection"
    RAW = "raw"


Builder = Callable[[CoordinateOperation, GridLookup], List[Step]]


@dataclass(frozen=True)
class KernelSignature:
    code: str
    domain: Domain
    build: Builder
    required: Tuple[str, ...] = ()
    latitudes: Tuple[str, ...] = ()
    scales: Tuple[str, ...] = ()

    def validate(self, op: CoordinateOperation) -> None:
        for code in self.required:
            pv = op.parameter(code)
            if pv is None or (pv.value is None and pv.file_name is None):
                raise InvalidOperationError(
                    f"'{op.name}': missing parameter '{m.PARAMETER_NAMES.get(code, code)}'"
                )
        for code in self.latitudes:
            value = op.parameter_value(code, DEGREE)
            if value is not None and abs(value) > 90.0:
                raise InvalidOperationError(
                    f"'{op.name}': {m.PARAMETER_NAMES[code]} = {value} is outside [-90, 90]"
                )
        for code in self.scales:
            value = op.parameter_value(code, UNITY)
            if value is not None and value <= 0.0:
                raise InvalidOperationError(f"'{op.name}': {m.PARAMETER_NAMES[code]} must be positive")


def _value(op: CoordinateOperation, code: str, unit: UnitOfMeasure, default: Optional[float] = None) -> float:
    value = op.parameter_value(code, unit)
    if value is None:
        if default is None:
            raise InvalidOperationError(f"'{op.name}': missing parameter '{m.PARAMETER_NAMES.get(code, code)}'")
        return default
    return value


def _ellipsoid_params(crs) -> Tuple[Param, ...]:
    if isinstance(crs, ProjectedCRS):
        crs = crs.base_crs
    if isinstance(crs, GeodeticCRS):
        return crs.ellipsoid.proj_params()
    return ()


# --- Helmert family -----------------------------------------------------------

_POSITION_VECTOR = {"1033", "1037", "9606", "1053", "1054", "1055", "1061", "1063"}
_TRANSLATION_ONLY = {"1031", "1035", "9603"}
_EXACT = {"1132", "1133", "1140"}
_MOLODENSKY_BADEKAS = {"1034", "9636", "1061", "1063"}

_HELMERT_KEYS = ("x", "y", "z", "rx", "ry", "rz", "s")
_RATE_KEYS = ("dx", "dy", "dz", "drx", "dry", "drz", "ds")
_HELMERT_UNITS = (METRE,) * 3 + (ARC_SECOND,) * 3 + (PARTS_PER_MILLION,)
_RATE_UNITS = (METRE_PER_YEAR,) * 3 + (ARC_SECOND_PER_YEAR,) * 3 + (PPM_PER_YEAR,)


def _convention(code: str) -> Param:
    return ("convention", "position_vector" if code in _POSITION_VECTOR else "coordinate_frame")


def _helmert(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    code = op.method_code or ""
    if code in _TRANSLATION_ONLY:
        params: List[Param] = [(k, fmt(_value(op, c, METRE))) for k, c in zip(_HELMERT_KEYS[:3], m.HELMERT_PARAMS[:3])]
        return [Step("helmert", tuple(params))]
    params = [
        (k, fmt(_value(op, c, u, 0.0))) for k, c, u in zip(_HELMERT_KEYS, m.HELMERT_PARAMS, _HELMERT_UNITS)
    ]
    if any(op.parameter(c) is not None for c in m.RATE_PARAMS):
        params += [(k, fmt(_value(op, c, u, 0.0))) for k, c, u in zip(_RATE_KEYS, m.RATE_PARAMS, _RATE_UNITS)]
        params.append(("t_epoch", fmt(_value(op, m.REFERENCE_EPOCH, YEAR))))
    if code in _EXACT:
        params.append(("exact", None))
    params.append(_convention(code))
    return [Step("helmert", tuple(params))]


def _molodensky_badekas(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    params: List[Param] = [
        (k, fmt(_value(op, c, u, 0.0))) for k, c, u in zip(_HELMERT_KEYS, m.HELMERT_PARAMS, _HELMERT_UNITS)
    ]
    params += [(k, fmt(_value(op, c, METRE))) for k, c in zip(("px", "py", "pz"), (m.PIVOT_X, m.PIVOT_Y, m.PIVOT_Z))]
    params.append(_convention(op.method_code or ""))
    return [Step("molobadekas", tuple(params))]


# --- geographic and vertical ------------------------------------------------------


def _longitude_rotation(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    offset = _value(op, m.LONGITUDE_OFFSET, DEGREE)
    return [Step("longlat", _ellipsoid_params(op.source_crs) + (("pm", fmt(offset)),), inverse=True)]


def _geographic_offsets(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    params: List[Param] = [
        ("dlat", fmt(_value(op, m.LATITUDE_OFFSET, ARC_SECOND))),
        ("dlon", fmt(_value(op, m.LONGITUDE_OFFSET, ARC_SECOND))),
    ]
    if op.parameter(m.VERTICAL_OFFSET) is not None:
        params.append(("dh", fmt(_value(op, m.VERTICAL_OFFSET, METRE))))
    return [Step("geogoffset", tuple(params))]


def _vertical_offset(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return [Step("geogoffset", (("dh", fmt(_value(op, m.VERTICAL_OFFSET, METRE))),))]


def _grid(op: CoordinateOperation, grids: GridLookup, *codes: str) -> str:
    names = [op.file_name(c) for c in codes if op.file_name(c)]
    if not names:
        raise InvalidOperationError(f"'{op.name}': no grid file")
    if grids is not None:
        alternative = grids(names[0])
        if alternative:
            return alternative
    return ",".join(names)  # type: ignore[arg-type]


def _ntv2(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return [Step("hgridshift", (("grids", _grid(op, grids, m.LAT_LON_DIFFERENCE_FILE)),))]


def _nadcon(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    name = _grid(op, grids, m.LATITUDE_DIFFERENCE_FILE, m.LONGITUDE_DIFFERENCE_FILE)
    return [Step("hgridshift", (("grids", name),))]


def _vertical_grid(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    name = _grid(op, grids, m.VERTICAL_OFFSET_FILE)
    return [Step("vgridshift", (("grids", name), ("multiplier", "1")))]


def _velocity_grid(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    name = _grid(op, grids, m.VELOCITY_GRID_FILE)
    return [Step("deformation", (("grids", name),) + _ellipsoid_params(op.source_crs))]


def _empty(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return []


# --- raw coordinate operations --------------------------------------------------


def _height_depth_reversal(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return [Step("axisswap", (("order", "1,2,-3"),))]


def _vertical_unit(crs) -> str:
    if not isinstance(crs, VerticalCRS):
        raise InvalidOperationError(f"change of vertical unit needs vertical CRS endpoints, got {crs}")
    return unit_token(crs.coordinate_system.axes[0].unit)  # type: ignore[union-attr]


def _change_vertical_unit(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    if op.source_crs is None or op.target_crs is None:
        raise InvalidOperationError(f"'{op.name}': source and target CRS needed to change vertical unit")
    return [Step("unitconvert", (("z_in", _vertical_unit(op.source_crs)), ("z_out", _vertical_unit(op.target_crs))))]


def _vertical_unit_scalar(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return [Step("affine", (("s33", fmt(_value(op, m.UNIT_CONVERSION_SCALAR, UNITY))),))]


def _affine(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    keys = (("xoff", m.A0), ("s11", m.A1), ("s12", m.A2), ("yoff", m.B0), ("s21", m.B1), ("s22", m.B2))
    return [Step("affine", tuple((k, fmt(op.parameter_value(c) or 0.0)) for k, c in keys))]


# --- map projections -------------------------------------------------------------


def _projection(name: str, op: CoordinateOperation, keys: List[Tuple[str, str, UnitOfMeasure]]) -> List[Step]:
    params: List[Param] = [(k, fmt(_value(op, c, u))) for k, c, u in keys]
    return [Step(name, tuple(params) + _ellipsoid_params(op.source_crs))]


def _utm_zone(op: CoordinateOperation) -> Optional[Tuple[int, bool]]:
    lat0 = op.parameter_value(m.LAT_NATURAL_ORIGIN, DEGREE)
    lon0 = op.parameter_value(m.LON_NATURAL_ORIGIN, DEGREE)
    k0 = op.parameter_value(m.SCALE_NATURAL_ORIGIN, UNITY)
    fe = op.parameter_value(m.FALSE_EASTING, METRE)
    fn = op.parameter_value(m.FALSE_NORTHING, METRE)
    if None in (lat0, lon0, k0, fe, fn) or lat0 != 0.0 or abs(k0 - 0.9996) > 1e-10 or fe != 500000.0:  # type: ignore[operator]
        return None
    zone = (lon0 + 183.0) / 6.0  # type: ignore[operator]
    if abs(zone - round(zone)) > 1e-10 or not 1 <= round(zone) <= 60:
        return None
    if fn == 0.0:
        return int(round(zone)), False
    if fn == 10000000.0:
        return int(round(zone)), True
    return None


_NATURAL_ORIGIN = [
    ("lat_0", m.LAT_NATURAL_ORIGIN, DEGREE),
    ("lon_0", m.LON_NATURAL_ORIGIN, DEGREE),
    ("k", m.SCALE_NATURAL_ORIGIN, UNITY),
    ("x_0", m.FALSE_EASTING, METRE),
    ("y_0", m.FALSE_NORTHING, METRE),
]


def _transverse_mercator(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    utm = _utm_zone(op)
    if utm is not None:
        zone, south = utm
        params: Tuple[Param, ...] = (("zone", str(zone)),) + ((("south", None),) if south else ())
        return [Step("utm", params + _ellipsoid_params(op.source_crs))]
    return _projection("tmerc", op, _NATURAL_ORIGIN)


def _mercator_a(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return _projection("merc", op, _NATURAL_ORIGIN[1:])


def _mercator_b(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return _projection(
        "merc",
        op,
        [("lat_ts", m.LAT_1ST_PARALLEL, DEGREE)] + _NATURAL_ORIGIN[1:2] + _NATURAL_ORIGIN[3:],
    )


def _web_mercator(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    params: List[Param] = [("lat_0", fmt(_value(op, m.LAT_NATURAL_ORIGIN, DEGREE, 0.0)))]
    params += [(k, fmt(_value(op, c, u))) for k, c, u in _NATURAL_ORIGIN[1:2] + _NATURAL_ORIGIN[3:]]
    return [Step("webmerc", tuple(params) + (("ellps", "WGS84"),))]


def _lcc_1sp(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return _projection("lcc", op, [("lat_1", m.LAT_NATURAL_ORIGIN, DEGREE)] + _NATURAL_ORIGIN)


def _lcc_2sp(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return _projection(
        "lcc",
        op,
        [
            ("lat_0", m.LAT_FALSE_ORIGIN, DEGREE),
            ("lon_0", m.LON_FALSE_ORIGIN, DEGREE),
            ("lat_1", m.LAT_1ST_PARALLEL, DEGREE),
            ("lat_2", m.LAT_2ND_PARALLEL, DEGREE),
            ("x_0", m.EASTING_FALSE_ORIGIN, METRE),
            ("y_0", m.NORTHING_FALSE_ORIGIN, METRE),
        ],
    )


def _oblique_stereographic(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return _projection("sterea", op, _NATURAL_ORIGIN)


def _polar_stereographic(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    lat0 = _value(op, m.LAT_NATURAL_ORIGIN, DEGREE)
    if abs(abs(lat0) - 90.0) > 1e-10:
        raise InvalidOperationError(f"'{op.name}': polar stereographic needs a latitude of origin of +/-90")
    return _projection("stere", op, _NATURAL_ORIGIN)


def _cylindrical_equal_area(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    return _projection(
        "cea",
        op,
        [("lat_ts", m.LAT_1ST_PARALLEL, DEGREE)] + _NATURAL_ORIGIN[1:2] + _NATURAL_ORIGIN[3:],
    )


_HELMERT_CODES = sorted(_TRANSLATION_ONLY | _POSITION_VECTOR | _EXACT | {"1032", "1038", "9607", "1056", "1057", "1058"})
_HELMERT_CODES = [c for c in _HELMERT_CODES if c not in _MOLODENSKY_BADEKAS]
_NATURAL_CODES = tuple(c for _, c, _ in _NATURAL_ORIGIN)

SIGNATURES: Dict[str, KernelSignature] = {}


def _register(*codes: str, **kwargs) -> None:
    for code in codes:
        SIGNATURES[code] = KernelSignature(code=code, **kwargs)


_register(*_HELMERT_CODES, domain=Domain.CARTESIAN, build=_helmert, required=m.HELMERT_PARAMS[:3])
_register(*sorted(_MOLODENSKY_BADEKAS), domain=Domain.CARTESIAN, build=_molodensky_badekas, required=m.HELMERT_PARAMS[:3])
_register("9602", domain=Domain.CARTESIAN, build=_empty)
_register("1141", domain=Domain.CARTESIAN, build=_velocity_grid, required=(m.VELOCITY_GRID_FILE,))
_register("9601", domain=Domain.GEOGRAPHIC, build=_longitude_rotation, required=(m.LONGITUDE_OFFSET,))
_register("9619", domain=Domain.GEOGRAPHIC, build=_geographic_offsets, required=(m.LATITUDE_OFFSET, m.LONGITUDE_OFFSET))
_register(
    "9660",
    domain=Domain.GEOGRAPHIC,
    build=_geographic_offsets,
    required=(m.LATITUDE_OFFSET, m.LONGITUDE_OFFSET, m.VERTICAL_OFFSET),
)
_register("9615", domain=Domain.GEOGRAPHIC, build=_ntv2, required=(m.LAT_LON_DIFFERENCE_FILE,))
_register("9613", domain=Domain.GEOGRAPHIC, build=_nadcon, required=(m.LATITUDE_DIFFERENCE_FILE,))
_register("9659", domain=Domain.GEOGRAPHIC, build=_empty)
_register("9616", domain=Domain.VERTICAL, build=_vertical_offset, required=(m.VERTICAL_OFFSET,))
_register("1084", domain=Domain.VERTICAL, build=_vertical_grid, required=(m.VERTICAL_OFFSET_FILE,))
_register("1068", domain=Domain.RAW, build=_height_depth_reversal)
_register("1104", domain=Domain.RAW, build=_change_vertical_unit)
_register("1069", domain=Domain.RAW, build=_vertical_unit_scalar, required=(m.UNIT_CONVERSION_SCALAR,))
_register("9624", domain=Domain.RAW, build=_affine, required=(m.A0, m.A1, m.A2, m.B0, m.B1, m.B2))
_register(
    "9807",
    domain=Domain.PROJECTION,
    build=_transverse_mercator,
    required=_NATURAL_CODES,
    latitudes=(m.LAT_NATURAL_ORIGIN,),
    scales=(m.SCALE_NATURAL_ORIGIN,),
)
_register(
    "9804",
    domain=Domain.PROJECTION,
    build=_mercator_a,
    required=_NATURAL_CODES[1:],
    latitudes=(m.LAT_NATURAL_ORIGIN,),
    scales=(m.SCALE_NATURAL_ORIGIN,),
)
_register(
    "9805",
    domain=Domain.PROJECTION,
    build=_mercator_b,
    required=(m.LAT_1ST_PARALLEL, m.LON_NATURAL_ORIGIN, m.FALSE_EASTING, m.FALSE_NORTHING),
    latitudes=(m.LAT_1ST_PARALLEL,),
)
_register(
    "1024",
    domain=Domain.PROJECTION,
    build=_web_mercator,
    required=(m.LON_NATURAL_ORIGIN, m.FALSE_EASTING, m.FALSE_NORTHING),
    latitudes=(m.LAT_NATURAL_ORIGIN,),
)
_register(
    "9801",
    domain=Domain.PROJECTION,
    build=_lcc_1sp,
    required=_NATURAL_CODES,
    latitudes=(m.LAT_NATURAL_ORIGIN,),
    scales=(m.SCALE_NATURAL_ORIGIN,),
)
_register(
    "9802",
    domain=Domain.PROJECTION,
    build=_lcc_2sp,
    required=(m.LAT_FALSE_ORIGIN, m.LON_FALSE_ORIGIN, m.LAT_1ST_PARALLEL, m.LAT_2ND_PARALLEL),
    latitudes=(m.LAT_FALSE_ORIGIN, m.LAT_1ST_PARALLEL, m.LAT_2ND_PARALLEL),
)
_register(
    "9809",
    domain=Domain.PROJECTION,
    build=_oblique_stereographic,
    required=_NATURAL_CODES,
    latitudes=(m.LAT_NATURAL_ORIGIN,),
    scales=(m.SCALE_NATURAL_ORIGIN,),
)
_register(
    "9810",
    domain=Domain.PROJECTION,
    build=_polar_stereographic,
    required=_NATURAL_CODES,
    latitudes=(m.LAT_NATURAL_ORIGIN,),
    scales=(m.SCALE_NATURAL_ORIGIN,),
)
_register(
    "9835",
    domain=Domain.PROJECTION,
    build=_cylindrical_equal_area,
    required=(m.LAT_1ST_PARALLEL, m.LON_NATURAL_ORIGIN, m.FALSE_EASTING, m.FALSE_NORTHING),
    latitudes=(m.LAT_1ST_PARALLEL,),
)


def signature_for(op: CoordinateOperation) -> KernelSignature:
    code = op.method_code
    if code is not None and code in SIGNATURES:
        return SIGNATURES[code]
    method = op.method.name if op.method is not None else "<none>"
    raise InvalidOperationError(f"'{op.name}': no kernel for method '{method}'")


__all__ = ["Domain", "KernelSignature", "SIGNATURES", "GridLookup", "signature_for"]
