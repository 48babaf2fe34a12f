from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from geopath.geodesy.common import UnitType

class ObjectType(enum.Enum):
    PRIME_MERIDIAN = "prime meridian"
    ELLIPSOID = "ellipsoid"
    DATUM = "datum"
    GEODETIC_REFERENCE_FRAME = "geodetic reference frame"
    DYNAMIC_GEODETIC_REFERENCE_FRAME = "dynamic geodetic reference frame"
    VERTICAL_REFERENCE_FRAME = "vertical reference frame"
    DYNAMIC_VERTICAL_REFERENCE_FRAME = "dynamic vertical reference frame"
    ENGINEERING_DATUM = "engineering datum"
    DATUM_ENSEMBLE = "datum ensemble"
    CRS = "crs"
    GEODETIC_CRS = "geodetic crs"
    GEOCENTRIC_CRS = "geocentric crs"
    GEOGRAPHIC_CRS = "geographic crs"
    GEOGRAPHIC_2D_CRS = "geographic 2D crs"
    GEOGRAPHIC_3D_CRS = "geographic 3D crs"
    VERTICAL_CRS = "vertical crs"
    PROJECTED_CRS = "projected crs"
    COMPOUND_CRS = "compound crs"
    ENGINEERING_CRS = "engineering crs"
    COORDINATE_OPERATION = "coordinate operation"
    CONVERSION = "conversion"
    TRANSFORMATION = "transformation"
    CONCATENATED_OPERATION = "concatenated operation"
    POINT_MOTION_OPERATION = "point motion operation"
    UNIT_OF_MEASURE = "unit of measure"
    EXTENT = "extent"
    COORDINATE_SYSTEM = "coordinate system"

# (table, extra WHERE clause) pairs making up each logical type
_GEOG = "type IN ('geographic 2D', 'geographic 3D')"
_DYNAMIC = "frame_reference_epoch IS NOT NULL"
_ENSEMBLE = "ensemble_accuracy IS NOT NULL"

TYPE_TABLES: Dict[ObjectType, List[Tuple[str, str]]] = {
    ObjectType.PRIME_MERIDIAN: [("prime_meridian", "")],
    ObjectType.ELLIPSOID: [("ellipsoid", "")],
    ObjectType.GEODETIC_REFERENCE_FRAME: [("geodetic_datum", "")],
    ObjectType.DYNAMIC_GEODETIC_REFERENCE_FRAME: [("geodetic_datum", _DYNAMIC)],
    ObjectType.VERTICAL_REFERENCE_FRAME: [("vertical_datum", "")],
    ObjectType.DYNAMIC_VERTICAL_REFERENCE_FRAME: [("vertical_datum", _DYNAMIC)],
    ObjectType.ENGINEERING_DATUM: [("engineering_datum", "")],
    ObjectType.DATUM: [("geodetic_datum", ""), ("vertical_datum", ""), ("engineering_datum", "")],
    ObjectType.DATUM_ENSEMBLE: [("geodetic_datum", _ENSEMBLE), ("vertical_datum", _ENSEMBLE)],
    ObjectType.CRS: [
        ("geodetic_crs", ""),
        ("projected_crs", ""),
        ("vertical_crs", ""),
        ("compound_crs", ""),
        ("engineering_crs", ""),
    ],
    ObjectType.GEODETIC_CRS: [("geodetic_crs", "")],
    ObjectType.GEOCENTRIC_CRS: [("geodetic_crs", "type = 'geocentric'")],
    ObjectType.GEOGRAPHIC_CRS: [("geodetic_crs", _GEOG)],
    ObjectType.GEOGRAPHIC_2D_CRS: [("geodetic_crs", "type = 'geographic 2D'")],
    ObjectType.GEOGRAPHIC_3D_CRS: [("geodetic_crs", "type = 'geographic 3D'")],
    ObjectType.VERTICAL_CRS: [("vertical_crs", "")],
    ObjectType.PROJECTED_CRS: [("projected_crs", "")],
    ObjectType.COMPOUND_CRS: [("compound_crs", "")],
    ObjectType.ENGINEERING_CRS: [("engineering_crs", "")],
    ObjectType.COORDINATE_OPERATION: [
        ("conversion", ""),
        ("transformation", ""),
        ("concatenated_operation", ""),
        ("point_motion_operation", ""),
    ],
    ObjectType.CONVERSION: [("conversion", "")],
    ObjectType.TRANSFORMATION: [("transformation", "")],
    ObjectType.CONCATENATED_OPERATION: [("concatenated_operation", "")],
    ObjectType.POINT_MOTION_OPERATION: [("point_motion_operation", "")],
    ObjectType.UNIT_OF_MEASURE: [("unit_of_measure", "")],
    ObjectType.EXTENT: [("extent", "")],
    ObjectType.COORDINATE_SYSTEM: [("coordinate_system", "")],
}

# Tables searched by create_object, in lookup order
OBJECT_TABLES = [
    "unit_of_measure",
    "extent",
    "prime_meridian",
    "ellipsoid",
    "geodetic_datum",
    "vertical_datum",
    "engineering_datum",
    "coordinate_system",
    "geodetic_crs",
    "projected_crs",
    "vertical_crs",
    "compound_crs",
    "engineering_crs",
    "conversion",
    "transformation",
    "concatenated_operation",
    "point_motion_operation",
]

# Tables without a deprecated column
NO_DEPRECATED_COLUMN = {"coordinate_system"}


@dataclass(frozen=True, kw_only=True)
class CRSInfo:
    """One row of the CRS catalogue, read without building the CRS."""

    authority: str
    code: str
    name: str
    type: ObjectType
    deprecated: bool
    bbox_valid: bool
    west_lon: Optional[float] = None
    south_lat: Optional[float] = None
    east_lon: Optional[float] = None
    north_lat: Optional[float] = None
    area_name: Optional[str] = None
    projection_method_name: Optional[str] = None

@dataclass(frozen=True, kw_only=True)
class UnitInfo:
    authority: str
    code: str
    name: str
    category: UnitType
    conv_factor: Optional[float]
    proj_short_name: Optional[str]
    deprecated: bool

@dataclass(frozen=True, kw_only=True)
class CelestialBodyInfo:
    authority: str
    name: str

__all__ = [
    "ObjectType",
    "TYPE_TABLES",
    "OBJECT_TABLES",
    "NO_DEPRECATED_COLUMN",
    "CRSInfo",
    "UnitInfo",
    "CelestialBodyInfo",
]
