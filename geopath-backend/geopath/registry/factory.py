"""Authority factory: builds geodesy objects from registry rows.

One factory serves one authority name; ``authority=None`` means "any
authority" and is only meaningful for operation searches and catalogue
queries. Dependent objects (a CRS's datum, an operation's CRS) are built
through the factory of their own authority, so a missing dependency
surfaces as NoSuchAuthorityCodeException.
"""
from __future__ import annotations

import dataclasses
import logging
import sqlite3
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple

from geopath.geodesy.common import (
    Criterion,
    Extent,
    GeographicBoundingBox,
    Identifier,
    Measure,
    UnitOfMeasure,
    UnitType,
    Usage,
    normalize_name,
)
from geopath.geodesy.crs import (
    CRS,
    CompoundCRS,
    EngineeringCRS,
    GeodeticCRS,
    GeographicCRS,
    ProjectedCRS,
    VerticalCRS,
)
from geopath.geodesy.cs import Axis, AxisDirection, CoordinateSystem, CSType
from geopath.geodesy.datum import (
    Datum,
    DatumEnsemble,
    DynamicGeodeticReferenceFrame,
    DynamicVerticalReferenceFrame,
    Ellipsoid,
    EngineeringDatum,
    GeodeticReferenceFrame,
    PrimeMeridian,
    VerticalReferenceFrame,
)
from geopath.geodesy.errors import FactoryException, NoSuchAuthorityCodeException
from geopath.geodesy.methods import PROJ_STRING_METHOD
from geopath.geodesy.operation import (
    CoordinateOperation,
    OperationKind,
    OperationMethod,
    OperationParameter,
    ParameterValue,
)
from geopath.resolver.concat import build_concatenated

from .context import RegistryContext
from .object_types import (
    NO_DEPRECATED_COLUMN,
    OBJECT_TABLES,
    TYPE_TABLES,
    CelestialBodyInfo,
    CRSInfo,
    ObjectType,
    UnitInfo,
)
from .text_definitions import crs_from_text, operation_from_wkt, parse_reference

logger = logging.getLogger(__name__)

# Searched by create_objects_from_name when no type is given
_NAME_SEARCH_TABLES = [t for t in OBJECT_TABLES if t not in ("unit_of_measure", "extent", "coordinate_system")]

# Tables an alias_name row may point at
_ALIASED_TABLES = (set(OBJECT_TABLES) - {"extent", "coordinate_system"}) | {"celestial_body"}

_CRS_TABLE_TYPES = [
    ("geodetic_crs", ObjectType.GEODETIC_CRS),
    ("projected_crs", ObjectType.PROJECTED_CRS),
    ("vertical_crs", ObjectType.VERTICAL_CRS),
    ("compound_crs", ObjectType.COMPOUND_CRS),
    ("engineering_crs", ObjectType.ENGINEERING_CRS),
]

_GEODETIC_CRS_TYPES = {
    "geographic 2D": ObjectType.GEOGRAPHIC_2D_CRS,
    "geographic 3D": ObjectType.GEOGRAPHIC_3D_CRS,
    "geocentric": ObjectType.GEOCENTRIC_CRS,
}


def _opt_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


class AuthorityFactory:
    def __init__(self, context: RegistryContext, authority: Optional[str]):
        self.context = context
        self.authority = authority or None

    def __repr__(self) -> str:
        return f"AuthorityFactory({self.authority!r})"

    def for_authority(self, authority: Optional[str]) -> "AuthorityFactory":
        if authority == self.authority:
            return self
        return AuthorityFactory(self.context, authority)

    # --- plumbing -------------------------------------------------------

    def _auth(self) -> str:
        if self.authority is None:
            raise FactoryException("This operation needs a factory bound to an authority")
        return self.authority

    def _row(self, table: str, code: str, what: str) -> sqlite3.Row:
        auth = self._auth()
        rows = self.context.query(f"SELECT * FROM {table} WHERE auth_name = ? AND code = ?", (auth, code))
        if not rows:
            raise NoSuchAuthorityCodeException(f"{what} not found", auth, code)
        return rows[0]

    def _has_row(self, table: str, code: str) -> bool:
        rows = self.context.query(f"SELECT 1 FROM {table} WHERE auth_name = ? AND code = ?", (self._auth(), code))
        return bool(rows)

    def _cached(self, kind: str, code: str, builder: Callable[[], Any]) -> Any:
        key = (self._auth(), code, kind)
        obj = self.context.get_cached(key)
        if obj is None:
            obj = self.context.put_cached(key, builder())
        return obj

    def _ids(self, code: str) -> Tuple[Identifier, ...]:
        return (Identifier(self._auth(), code),)

    def _usages(self, table: str, code: str) -> Tuple[Usage, ...]:
        rows = self.context.query(
            "SELECT extent.auth_name AS ea, extent.code AS ec, extent.description, "
            "extent.south_lat, extent.north_lat, extent.west_lon, extent.east_lon, scope.scope "
            "FROM usage "
            "LEFT JOIN extent ON extent.auth_name = usage.extent_auth_name AND extent.code = usage.extent_code "
            "LEFT JOIN scope ON scope.auth_name = usage.scope_auth_name AND scope.code = usage.scope_code "
            "WHERE usage.object_table_name = ? AND usage.object_auth_name = ? AND usage.object_code = ? "
            "ORDER BY usage.rowid",
            (table, self._auth(), code),
        )
        usages = []
        for r in rows:
            extent = None
            if r["ea"] is not None:
                extent = Extent(
                    description=r["description"],
                    bbox=self._bbox(r),
                    identifiers=(Identifier(r["ea"], r["ec"]),),
                )
            usages.append(Usage(extent=extent, scope=r["scope"]))
        return tuple(usages)

    @staticmethod
    def _bbox(row: sqlite3.Row) -> Optional[GeographicBoundingBox]:
        values = [row["west_lon"], row["south_lat"], row["east_lon"], row["north_lat"]]
        if any(v is None for v in values):
            return None
        return GeographicBoundingBox(*(float(v) for v in values))

    def _unit(self, auth: Optional[str], code: Optional[str]) -> Optional[UnitOfMeasure]:
        if auth is None or code is None:
            return None
        return self.for_authority(auth).create_unit_of_measure(code)

    # --- units, extents, ellipsoids ------------------------------------

    def create_unit_of_measure(self, code: str) -> UnitOfMeasure:
        def build() -> UnitOfMeasure:
            r = self._row("unit_of_measure", code, "unit of measure")
            return UnitOfMeasure(
                name=r["name"],
                type=UnitType(r["type"]),
                to_si=_opt_float(r["conv_factor"]),
                authority=self._auth(),
                code=code,
                proj_name=r["proj_short_name"],
            )

        return self._cached("unit_of_measure", code, build)

    def create_extent(self, code: str) -> Extent:
        r = self._row("extent", code, "extent")
        return Extent(description=r["description"], bbox=self._bbox(r), identifiers=self._ids(code))

    def create_prime_meridian(self, code: str) -> PrimeMeridian:
        def build() -> PrimeMeridian:
            r = self._row("prime_meridian", code, "prime meridian")
            unit = self._unit(r["uom_auth_name"], r["uom_code"])
            return PrimeMeridian(
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                longitude=Measure(float(r["longitude"]), unit),  # type: ignore[arg-type]
            )

        return self._cached("prime_meridian", code, build)

    def create_ellipsoid(self, code: str) -> Ellipsoid:
        def build() -> Ellipsoid:
            r = self._row("ellipsoid", code, "ellipsoid")
            unit = self._unit(r["uom_auth_name"], r["uom_code"])
            body = self.context.query(
                "SELECT name FROM celestial_body WHERE auth_name = ? AND code = ?",
                (r["celestial_body_auth_name"], r["celestial_body_code"]),
            )
            rf = _opt_float(r["inv_flattening"])
            b = _opt_float(r["semi_minor_axis"])
            a = float(r["semi_major_axis"])
            sphere = rf is None and (b is None or b == a)
            try:
                return Ellipsoid(
                    name=r["name"],
                    identifiers=self._ids(code),
                    deprecated=bool(r["deprecated"]),
                    semi_major_axis=Measure(a, unit),  # type: ignore[arg-type]
                    inverse_flattening=rf,
                    semi_minor_axis=None if sphere or b is None else Measure(b, unit),  # type: ignore[arg-type]
                    is_sphere=sphere,
                    celestial_body=body[0]["name"] if body else "Earth",
                )
            except ValueError as exc:
                raise FactoryException(f"Invalid ellipsoid {self._auth()}:{code}: {exc}") from exc

        return self._cached("ellipsoid", code, build)

    # --- datums -----------------------------------------------------------

    def _datum_table(self, code: str) -> Optional[str]:
        for table in ("geodetic_datum", "vertical_datum", "engineering_datum"):
            if self._has_row(table, code):
                return table
        return None

    def _datum_or_ensemble(self, code: str, table: str) -> Tuple[Optional[Datum], Optional[DatumEnsemble]]:
        r = self._row(table, code, "datum")
        if table != "engineering_datum" and r["ensemble_accuracy"] is not None:
            return None, self.create_datum_ensemble(code)
        if table == "geodetic_datum":
            return self.create_geodetic_datum(code), None
        if table == "vertical_datum":
            return self.create_vertical_datum(code), None
        return self.create_engineering_datum(code), None

    def create_datum_ensemble(self, code: str) -> DatumEnsemble:
        def build() -> DatumEnsemble:
            table = self._datum_table(code)
            if table is None or table == "engineering_datum":
                raise NoSuchAuthorityCodeException("datum ensemble not found", self._auth(), code)
            r = self._row(table, code, "datum ensemble")
            if r["ensemble_accuracy"] is None:
                raise FactoryException(f"{self._auth()}:{code} is not a datum ensemble")
            members = self.context.query(
                f"SELECT member_auth_name, member_code FROM {table}_ensemble_member "
                "WHERE ensemble_auth_name = ? AND ensemble_code = ? ORDER BY sequence",
                (self._auth(), code),
            )
            datums: List[Datum] = []
            for m in members:
                sub = self.for_authority(m["member_auth_name"])
                if table == "geodetic_datum":
                    datums.append(sub.create_geodetic_datum(m["member_code"]))
                else:
                    datums.append(sub.create_vertical_datum(m["member_code"]))
            try:
                return DatumEnsemble(
                    name=r["name"],
                    identifiers=self._ids(code),
                    deprecated=bool(r["deprecated"]),
                    usages=self._usages(table, code),
                    datums=tuple(datums),
                    positional_accuracy=float(r["ensemble_accuracy"]),
                )
            except ValueError as exc:
                raise FactoryException(f"Invalid datum ensemble {self._auth()}:{code}: {exc}") from exc

        return self._cached("datum_ensemble", code, build)

    def create_geodetic_datum(self, code: str) -> GeodeticReferenceFrame:
        """Geodetic reference frame; an ensemble row yields its representative frame."""

        def build() -> GeodeticReferenceFrame:
            r = self._row("geodetic_datum", code, "geodetic datum")
            if r["ensemble_accuracy"] is not None:
                return self.create_datum_ensemble(code).as_datum(self)  # type: ignore[return-value]
            common = dict(
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                usages=self._usages("geodetic_datum", code),
                anchor=r["anchor"],
                anchor_epoch=_opt_float(r["anchor_epoch"]),
                publication_date=r["publication_date"],
                ellipsoid=self.for_authority(r["ellipsoid_auth_name"]).create_ellipsoid(r["ellipsoid_code"]),
                prime_meridian=self.for_authority(r["prime_meridian_auth_name"]).create_prime_meridian(
                    r["prime_meridian_code"]
                ),
            )
            if r["frame_reference_epoch"] is not None:
                return DynamicGeodeticReferenceFrame(frame_reference_epoch=float(r["frame_reference_epoch"]), **common)
            return GeodeticReferenceFrame(**common)

        return self._cached("geodetic_datum", code, build)

    def create_vertical_datum(self, code: str) -> VerticalReferenceFrame:
        def build() -> VerticalReferenceFrame:
            r = self._row("vertical_datum", code, "vertical datum")
            if r["ensemble_accuracy"] is not None:
                return self.create_datum_ensemble(code).as_datum(self)  # type: ignore[return-value]
            common = dict(
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                usages=self._usages("vertical_datum", code),
                anchor=r["anchor"],
                anchor_epoch=_opt_float(r["anchor_epoch"]),
                publication_date=r["publication_date"],
            )
            if r["frame_reference_epoch"] is not None:
                return DynamicVerticalReferenceFrame(frame_reference_epoch=float(r["frame_reference_epoch"]), **common)
            return VerticalReferenceFrame(**common)

        return self._cached("vertical_datum", code, build)

    def create_engineering_datum(self, code: str) -> EngineeringDatum:
        r = self._row("engineering_datum", code, "engineering datum")
        return EngineeringDatum(
            name=r["name"],
            identifiers=self._ids(code),
            deprecated=bool(r["deprecated"]),
            anchor=r["anchor"],
            publication_date=r["publication_date"],
        )

    def create_datum(self, code: str) -> Datum:
        table = self._datum_table(code)
        if table == "geodetic_datum":
            return self.create_geodetic_datum(code)
        if table == "vertical_datum":
            return self.create_vertical_datum(code)
        if table == "engineering_datum":
            return self.create_engineering_datum(code)
        raise NoSuchAuthorityCodeException("datum not found", self._auth(), code)

    def find_datum_by_name(self, name: str, geodetic: bool = True) -> Optional[Datum]:
        table = "geodetic_datum" if geodetic else "vertical_datum"
        sql = f"SELECT auth_name, code FROM {table} WHERE name = ? AND ensemble_accuracy IS NULL"
        params: List[Any] = [name]
        if self.authority is not None:
            sql += " AND auth_name = ?"
            params.append(self.authority)
        rows = self.context.query(sql + " ORDER BY deprecated, rowid", params)
        if not rows:
            return None
        sub = self.for_authority(rows[0]["auth_name"])
        if geodetic:
            return sub.create_geodetic_datum(rows[0]["code"])
        return sub.create_vertical_datum(rows[0]["code"])

    # --- coordinate systems ---------------------------------------------

    def create_coordinate_system(self, code: str) -> CoordinateSystem:
        def build() -> CoordinateSystem:
            r = self._row("coordinate_system", code, "coordinate system")
            rows = self.context.query(
                "SELECT * FROM axis WHERE coordinate_system_auth_name = ? AND coordinate_system_code = ? "
                "ORDER BY coordinate_system_order",
                (self._auth(), code),
            )
            axes = []
            for a in rows:
                unit = self._unit(a["uom_auth_name"], a["uom_code"])
                if unit is None:
                    raise FactoryException(f"Axis {a['auth_name']}:{a['code']} has no unit")
                axes.append(
                    Axis(
                        name=a["name"],
                        identifiers=(Identifier(a["auth_name"], a["code"]),),
                        abbreviation=a["abbrev"],
                        direction=AxisDirection.parse(a["orientation"]),
                        unit=unit,
                        meridian=_opt_float(a["meridian_longitude"]),
                    )
                )
            try:
                return CoordinateSystem(
                    identifiers=self._ids(code),
                    cs_type=CSType.parse(r["type"]),
                    axes=tuple(axes),
                )
            except ValueError as exc:
                raise FactoryException(f"Invalid coordinate system {self._auth()}:{code}: {exc}") from exc

        return self._cached("coordinate_system", code, build)

    # --- CRS ------------------------------------------------------------

    def _from_text_definition(self, table: str, code: str, r: sqlite3.Row, expected: str) -> CRS:
        text = r["text_definition"]
        with self.context.resolving((table, self._auth(), code)):
            ref = parse_reference(text)
            if ref is not None:
                target = self.for_authority(ref[0]).create_coordinate_reference_system(ref[1])
                kind_ok = isinstance(target, ProjectedCRS) if expected == "projected" else isinstance(target, GeodeticCRS)
                if not kind_ok:
                    raise FactoryException(f"{self._auth()}:{code} refers to {target}, which is not {expected}")
                return target
            return crs_from_text(text, expected, r["name"], self._ids(code), self._usages(table, code))

    def create_geodetic_crs(self, code: str) -> GeodeticCRS:
        def build() -> GeodeticCRS:
            r = self._row("geodetic_crs", code, "geodetic crs")
            if r["text_definition"]:
                return self._from_text_definition("geodetic_crs", code, r, "geodetic")  # type: ignore[return-value]
            datum, ensemble = self.for_authority(r["datum_auth_name"])._datum_or_ensemble(r["datum_code"], "geodetic_datum")
            cs = self.for_authority(r["coordinate_system_auth_name"]).create_coordinate_system(r["coordinate_system_code"])
            cls = GeographicCRS if r["type"].startswith("geographic") else GeodeticCRS
            try:
                return cls(
                    name=r["name"],
                    identifiers=self._ids(code),
                    deprecated=bool(r["deprecated"]),
                    usages=self._usages("geodetic_crs", code),
                    datum=datum,
                    datum_ensemble=ensemble,
                    coordinate_system=cs,
                )
            except ValueError as exc:
                raise FactoryException(f"Invalid geodetic CRS {self._auth()}:{code}: {exc}") from exc

        return self._cached("geodetic_crs", code, build)

    def create_geographic_crs(self, code: str) -> GeographicCRS:
        crs = self.create_geodetic_crs(code)
        if not isinstance(crs, GeographicCRS):
            raise FactoryException(f"{self._auth()}:{code} is not a geographic CRS")
        return crs

    def create_vertical_crs(self, code: str) -> VerticalCRS:
        def build() -> VerticalCRS:
            r = self._row("vertical_crs", code, "vertical crs")
            datum, ensemble = self.for_authority(r["datum_auth_name"])._datum_or_ensemble(r["datum_code"], "vertical_datum")
            cs = self.for_authority(r["coordinate_system_auth_name"]).create_coordinate_system(r["coordinate_system_code"])
            try:
                return VerticalCRS(
                    name=r["name"],
                    identifiers=self._ids(code),
                    deprecated=bool(r["deprecated"]),
                    usages=self._usages("vertical_crs", code),
                    datum=datum,
                    datum_ensemble=ensemble,
                    coordinate_system=cs,
                )
            except ValueError as exc:
                raise FactoryException(f"Invalid vertical CRS {self._auth()}:{code}: {exc}") from exc

        return self._cached("vertical_crs", code, build)

    def create_engineering_crs(self, code: str) -> EngineeringCRS:
        def build() -> EngineeringCRS:
            r = self._row("engineering_crs", code, "engineering crs")
            datum = self.for_authority(r["datum_auth_name"]).create_engineering_datum(r["datum_code"])
            cs = self.for_authority(r["coordinate_system_auth_name"]).create_coordinate_system(r["coordinate_system_code"])
            return EngineeringCRS(
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                usages=self._usages("engineering_crs", code),
                datum=datum,
                coordinate_system=cs,
            )

        return self._cached("engineering_crs", code, build)

    def create_projected_crs(self, code: str) -> ProjectedCRS:
        def build() -> ProjectedCRS:
            r = self._row("projected_crs", code, "projected crs")
            if r["text_definition"]:
                return self._from_text_definition("projected_crs", code, r, "projected")  # type: ignore[return-value]
            base = self.for_authority(r["geodetic_crs_auth_name"]).create_geodetic_crs(r["geodetic_crs_code"])
            conversion = self.for_authority(r["conversion_auth_name"]).create_conversion(r["conversion_code"])
            cs = self.for_authority(r["coordinate_system_auth_name"]).create_coordinate_system(r["coordinate_system_code"])
            try:
                return ProjectedCRS(
                    name=r["name"],
                    identifiers=self._ids(code),
                    deprecated=bool(r["deprecated"]),
                    usages=self._usages("projected_crs", code),
                    base_crs=base,
                    conversion=conversion,
                    coordinate_system=cs,
                )
            except ValueError as exc:
                raise FactoryException(f"Invalid projected CRS {self._auth()}:{code}: {exc}") from exc

        return self._cached("projected_crs", code, build)

    def create_compound_crs(self, code: str) -> CompoundCRS:
        def build() -> CompoundCRS:
            r = self._row("compound_crs", code, "compound crs")
            horiz = self.for_authority(r["horiz_crs_auth_name"]).create_coordinate_reference_system(r["horiz_crs_code"])
            vert = self.for_authority(r["vertical_crs_auth_name"]).create_vertical_crs(r["vertical_crs_code"])
            return CompoundCRS(
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                usages=self._usages("compound_crs", code),
                components=(horiz, vert),
            )

        return self._cached("compound_crs", code, build)

    def create_coordinate_reference_system(self, code: str) -> CRS:
        for table, creator in (
            ("geodetic_crs", self.create_geodetic_crs),
            ("projected_crs", self.create_projected_crs),
            ("vertical_crs", self.create_vertical_crs),
            ("compound_crs", self.create_compound_crs),
            ("engineering_crs", self.create_engineering_crs),
        ):
            if self._has_row(table, code):
                return creator(code)
        raise NoSuchAuthorityCodeException("crs not found", self._auth(), code)

    # --- operations -------------------------------------------------------

    def _parameters(self, code: str) -> Tuple[ParameterValue, ...]:
        rows = self.context.query(
            "SELECT * FROM operation_parameter_value WHERE operation_auth_name = ? AND operation_code = ? "
            "ORDER BY sequence",
            (self._auth(), code),
        )
        values = []
        for p in rows:
            parameter = OperationParameter(
                name=p["param_name"],
                identifiers=(Identifier(p["param_auth_name"], p["param_code"]),),
            )
            if p["param_value"] is None:
                values.append(ParameterValue(parameter=parameter, file_name=p["file_name"]))
                continue
            unit = self._unit(p["uom_auth_name"], p["uom_code"])
            if unit is None:
                raise FactoryException(f"Parameter {p['param_name']} of {self._auth()}:{code} has no unit")
            values.append(ParameterValue(parameter=parameter, value=Measure(float(p["param_value"]), unit)))
        return tuple(values)

    def _crs_ref(self, auth: str, code: str) -> CRS:
        return self.for_authority(auth).create_coordinate_reference_system(code)

    def create_conversion(self, code: str) -> CoordinateOperation:
        """Conversion template; a projected CRS binds it to its base and itself."""

        def build() -> CoordinateOperation:
            r = self._row("conversion", code, "conversion")
            method = OperationMethod(
                name=r["method_name"] or "",
                identifiers=(Identifier(r["method_auth_name"], r["method_code"]),) if r["method_code"] else (),
            )
            return CoordinateOperation(
                kind=OperationKind.CONVERSION,
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                usages=self._usages("conversion", code),
                method=method,
                parameter_values=self._parameters(code),
                accuracy=0.0,
            )

        return self._cached("conversion", code, build)

    def _create_transformation(self, code: str) -> CoordinateOperation:
        def build() -> CoordinateOperation:
            r = self._row("transformation", code, "transformation")
            text = None
            if r["method_auth_name"] == "PROJ" and r["method_code"] == PROJ_STRING_METHOD:
                text = r["method_name"]
                method = OperationMethod(
                    name=f"PROJ-based operation method: {text}",
                    identifiers=(Identifier("PROJ", PROJ_STRING_METHOD),),
                )
                params: Tuple[ParameterValue, ...] = ()
            elif r["method_auth_name"] == "PROJ" and r["method_code"] == "WKT":
                method, params = operation_from_wkt(r["method_name"])
            else:
                method = OperationMethod(
                    name=r["method_name"],
                    identifiers=(Identifier(r["method_auth_name"], r["method_code"]),),
                )
                params = self._parameters(code)
            return CoordinateOperation(
                kind=OperationKind.TRANSFORMATION,
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                usages=self._usages("transformation", code),
                method=method,
                parameter_values=params,
                source_crs=self._crs_ref(r["source_crs_auth_name"], r["source_crs_code"]),
                target_crs=self._crs_ref(r["target_crs_auth_name"], r["target_crs_code"]),
                accuracy=_opt_float(r["accuracy"]),
                version=r["operation_version"],
                text_definition=text,
            )

        return self._cached("transformation", code, build)

    def _create_point_motion_operation(self, code: str) -> CoordinateOperation:
        def build() -> CoordinateOperation:
            r = self._row("point_motion_operation", code, "point motion operation")
            crs = self._crs_ref(r["source_crs_auth_name"], r["source_crs_code"])
            return CoordinateOperation(
                kind=OperationKind.POINT_MOTION,
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                usages=self._usages("point_motion_operation", code),
                method=OperationMethod(
                    name=r["method_name"],
                    identifiers=(Identifier(r["method_auth_name"], r["method_code"]),),
                ),
                parameter_values=self._parameters(code),
                source_crs=crs,
                target_crs=crs,
                accuracy=_opt_float(r["accuracy"]),
                version=r["operation_version"],
            )

        return self._cached("point_motion_operation", code, build)

    def _create_concatenated_operation(self, code: str) -> CoordinateOperation:
        def build() -> CoordinateOperation:
            r = self._row("concatenated_operation", code, "concatenated operation")
            steps = self.context.query(
                "SELECT step_auth_name, step_code, step_direction FROM concatenated_operation_step "
                "WHERE operation_auth_name = ? AND operation_code = ? ORDER BY step_number",
                (self._auth(), code),
            )
            if len(steps) < 2:
                raise FactoryException(f"Concatenated operation {self._auth()}:{code} has fewer than 2 steps")
            members = []
            for s in steps:
                op = self.for_authority(s["step_auth_name"]).create_coordinate_operation(s["step_code"])
                if s["step_direction"] == "reverse":
                    op = op.inverse()
                members.append(op)
            return build_concatenated(
                members,
                self._crs_ref(r["source_crs_auth_name"], r["source_crs_code"]),
                self._crs_ref(r["target_crs_auth_name"], r["target_crs_code"]),
                factory=self,
                name=r["name"],
                identifiers=self._ids(code),
                deprecated=bool(r["deprecated"]),
                usages=self._usages("concatenated_operation", code),
                accuracy=_opt_float(r["accuracy"]),
                version=r["operation_version"],
            )

        return self._cached("concatenated_operation", code, build)

    def create_coordinate_operation(self, code: str, allow_concatenated: bool = True) -> CoordinateOperation:
        if self._has_row("conversion", code):
            return self.create_conversion(code)
        if self._has_row("transformation", code):
            return self._create_transformation(code)
        if self._has_row("point_motion_operation", code):
            return self._create_point_motion_operation(code)
        if self._has_row("concatenated_operation", code):
            if not allow_concatenated:
                raise FactoryException(f"{self._auth()}:{code} is a concatenated operation")
            return self._create_concatenated_operation(code)
        raise NoSuchAuthorityCodeException("coordinate operation not found", self._auth(), code)

    # --- generic lookups --------------------------------------------------

    def create_object(self, code: str) -> Any:
        tables = [t for t in OBJECT_TABLES if self._has_row(t, code)]
        if not tables:
            raise NoSuchAuthorityCodeException("object not found", self._auth(), code)
        if len(tables) > 1:
            raise FactoryException(f"Code {self._auth()}:{code} is ambiguous, found in {', '.join(tables)}")
        return self._creator(tables[0])(code)

    def _creator(self, table: str) -> Callable[[str], Any]:
        creators = {
            "unit_of_measure": self.create_unit_of_measure,
            "extent": self.create_extent,
            "prime_meridian": self.create_prime_meridian,
            "ellipsoid": self.create_ellipsoid,
            "geodetic_datum": self.create_geodetic_datum,
            "vertical_datum": self.create_vertical_datum,
            "engineering_datum": self.create_engineering_datum,
            "coordinate_system": self.create_coordinate_system,
            "geodetic_crs": self.create_geodetic_crs,
            "projected_crs": self.create_projected_crs,
            "vertical_crs": self.create_vertical_crs,
            "compound_crs": self.create_compound_crs,
            "engineering_crs": self.create_engineering_crs,
            "conversion": self.create_conversion,
            "transformation": self._create_transformation,
            "concatenated_operation": self._create_concatenated_operation,
            "point_motion_operation": self._create_point_motion_operation,
        }
        return creators[table]

    def get_authority_codes(self, object_type: ObjectType, include_deprecated: bool = True) -> Set[str]:
        codes: Set[str] = set()
        for table, where in TYPE_TABLES[object_type]:
            sql = f"SELECT code FROM {table} WHERE auth_name = ?"
            if where:
                sql += f" AND {where}"
            if not include_deprecated and table not in NO_DEPRECATED_COLUMN:
                sql += " AND deprecated = 0"
            codes.update(r[0] for r in self.context.query(sql, (self._auth(),)))
        return codes

    def get_description_text(self, code: str) -> str:
        for table in OBJECT_TABLES:
            if table == "coordinate_system":
                continue
            rows = self.context.query(f"SELECT name FROM {table} WHERE auth_name = ? AND code = ?", (self._auth(), code))
            if rows:
                return rows[0]["name"]
        raise NoSuchAuthorityCodeException("object not found", self._auth(), code)

    # --- catalogue queries ------------------------------------------------

    def create_objects_from_name(
        self,
        search_name: str,
        types: Sequence[ObjectType] = (),
        approximate_match: bool = True,
        limit: int = 0,
    ) -> List[Any]:
        """Objects whose name, or one of its aliases, matches ``search_name``.

        Exact matching ignores case. Approximate matching ignores spacing and
        punctuation too, and accepts any name containing the searched one.
        Exact matches come first, then non-deprecated objects. Without
        ``types``, every named object except units and extents is searched.
        """
        wanted = normalize_name(search_name) if approximate_match else search_name.lower()
        if not wanted:
            return []
        if types:
            sources = [(t, table, where) for t in types for table, where in TYPE_TABLES[t]]
        else:
            sources = [(None, table, "") for table in _NAME_SEARCH_TABLES]
        extra, extra_params = self._auth_filter("t.auth_name")
        hits: Dict[Tuple[str, str, str, bool], Tuple[bool, bool, int, int]] = {}
        for order, (object_type, table, where) in enumerate(sources):
            if table == "coordinate_system":
                continue
            cond = f" AND {where}" if where else ""
            rows = self.context.query(
                f"SELECT t.auth_name, t.code, t.name AS match_name, t.deprecated, t.rowid AS rid FROM {table} t "
                f"WHERE 1 = 1{cond}{extra} "
                f"UNION ALL SELECT t.auth_name, t.code, a.alt_name, t.deprecated, t.rowid FROM {table} t "
                "JOIN alias_name a ON a.table_name = ? AND a.auth_name = t.auth_name AND a.code = t.code "
                f"WHERE 1 = 1{cond}{extra}",
                extra_params + (table,) + extra_params,
            )
            for r in rows:
                name = r["match_name"]
                if approximate_match:
                    if wanted not in normalize_name(name):
                        continue
                elif name.lower() != wanted:
                    continue
                key = (table, r["auth_name"], r["code"], object_type is ObjectType.DATUM_ENSEMBLE)
                rank = (name.lower() != search_name.lower(), bool(r["deprecated"]), order, r["rid"])
                if key not in hits or rank < hits[key]:
                    hits[key] = rank
        found = sorted(hits, key=hits.__getitem__)
        if limit > 0:
            found = found[:limit]
        objects = []
        for table, auth, code, ensemble in found:
            sub = self.for_authority(auth)
            objects.append(sub.create_datum_ensemble(code) if ensemble else sub._creator(table)(code))
        return objects

    def get_crs_info_list(self) -> List[CRSInfo]:
        """Lightweight catalogue of every CRS, with its first area of use."""
        extra, extra_params = self._auth_filter("c.auth_name")
        infos: List[CRSInfo] = []
        for table, kind in _CRS_TABLE_TYPES:
            crs_type = "c.type" if table == "geodetic_crs" else "NULL"
            method = "conv.method_name" if table == "projected_crs" else "NULL"
            join = ""
            if table == "projected_crs":
                join = (
                    " LEFT JOIN conversion conv ON conv.auth_name = c.conversion_auth_name "
                    "AND conv.code = c.conversion_code"
                )
            rows = self.context.query(
                f"SELECT c.auth_name, c.code, c.name, c.deprecated, {crs_type} AS crs_type, {method} AS method_name, "
                "e.name AS area_name, e.west_lon AS west_lon, e.south_lat AS south_lat, "
                "e.east_lon AS east_lon, e.north_lat AS north_lat "
                f"FROM {table} c{join} "
                "LEFT JOIN usage u ON u.object_table_name = ? AND u.object_auth_name = c.auth_name "
                "AND u.object_code = c.code "
                "LEFT JOIN extent e ON e.auth_name = u.extent_auth_name AND e.code = u.extent_code "
                f"WHERE 1 = 1{extra} ORDER BY c.auth_name, c.code, u.rowid",
                (table,) + extra_params,
            )
            seen: Set[Tuple[str, str]] = set()
            for r in rows:
                if (r["auth_name"], r["code"]) in seen:
                    continue
                seen.add((r["auth_name"], r["code"]))
                bbox = self._bbox(r)
                infos.append(
                    CRSInfo(
                        authority=r["auth_name"],
                        code=r["code"],
                        name=r["name"],
                        type=_GEODETIC_CRS_TYPES.get(r["crs_type"], kind),
                        deprecated=bool(r["deprecated"]),
                        bbox_valid=bbox is not None,
                        west_lon=bbox.west if bbox is not None else None,
                        south_lat=bbox.south if bbox is not None else None,
                        east_lon=bbox.east if bbox is not None else None,
                        north_lat=bbox.north if bbox is not None else None,
                        area_name=r["area_name"],
                        projection_method_name=r["method_name"],
                    )
                )
        return infos

    def get_unit_list(self) -> List[UnitInfo]:
        extra, extra_params = self._auth_filter()
        rows = self.context.query(
            f"SELECT * FROM unit_of_measure WHERE 1 = 1{extra} ORDER BY auth_name, code", extra_params
        )
        return [
            UnitInfo(
                authority=r["auth_name"],
                code=r["code"],
                name=r["name"],
                category=UnitType(r["type"]),
                conv_factor=_opt_float(r["conv_factor"]),
                proj_short_name=r["proj_short_name"],
                deprecated=bool(r["deprecated"]),
            )
            for r in rows
        ]

    def get_celestial_body_list(self) -> List[CelestialBodyInfo]:
        extra, extra_params = self._auth_filter()
        rows = self.context.query(
            f"SELECT auth_name, name FROM celestial_body WHERE 1 = 1{extra} ORDER BY auth_name, code", extra_params
        )
        return [CelestialBodyInfo(authority=r["auth_name"], name=r["name"]) for r in rows]

    def identify_body_from_semi_major_axis(self, semi_major_axis: float, tolerance: float) -> str:
        """Name of the celestial body whose radius is within ``tolerance`` (relative), any authority."""
        rows = self.context.query(
            "SELECT DISTINCT name FROM celestial_body WHERE ABS(semi_major_axis - ?) <= ? * semi_major_axis "
            "ORDER BY name",
            (semi_major_axis, tolerance),
        )
        if not rows:
            raise FactoryException(f"No celestial body has a semi-major axis of {semi_major_axis} m")
        if len(rows) > 1:
            names = ", ".join(r["name"] for r in rows)
            raise FactoryException(f"Several celestial bodies match a semi-major axis of {semi_major_axis} m: {names}")
        return rows[0]["name"]

    def get_official_name_from_alias(
        self,
        alias: str,
        table_name: Optional[str] = None,
        source: Optional[str] = None,
        try_equivalent_name_spelling: bool = False,
    ) -> Tuple[str, Optional[str], Optional[str], Optional[str]]:
        """``(name, table, authority, code)`` of the object an alias stands for.

        Returns ``("", None, None, None)`` when the alias is unknown.
        """
        sql = "SELECT table_name, auth_name, code, alt_name FROM alias_name WHERE 1 = 1"
        params: List[Any] = []
        if not try_equivalent_name_spelling:
            sql += " AND alt_name = ?"
            params.append(alias)
        if table_name:
            sql += " AND table_name = ?"
            params.append(table_name)
        if source:
            sql += " AND source = ?"
            params.append(source)
        extra, extra_params = self._auth_filter()
        rows = self.context.query(sql + extra + " ORDER BY rowid", params + list(extra_params))
        wanted = normalize_name(alias)
        for r in rows:
            if try_equivalent_name_spelling and normalize_name(r["alt_name"]) != wanted:
                continue
            if r["table_name"] not in _ALIASED_TABLES:
                raise FactoryException(f"Alias '{r['alt_name']}' refers to unknown table {r['table_name']}")
            names = self.context.query(
                f"SELECT name FROM {r['table_name']} WHERE auth_name = ? AND code = ?", (r["auth_name"], r["code"])
            )
            if names:
                return names[0]["name"], r["table_name"], r["auth_name"], r["code"]
        return "", None, None, None

    def list_area_of_use_from_name(self, name: str, approximate: bool = False) -> List[Tuple[str, str]]:
        """``(authority, code)`` of extents named ``name``; approximate means a case-insensitive substring."""
        extra, extra_params = self._auth_filter()
        if approximate:
            escaped = name.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            cond, value = "name LIKE ? ESCAPE '\\'", f"%{escaped}%"
        else:
            cond, value = "name = ?", name
        rows = self.context.query(
            f"SELECT auth_name, code FROM extent WHERE {cond}{extra} ORDER BY rowid", (value,) + extra_params
        )
        return [(r["auth_name"], r["code"]) for r in rows]

    def get_point_motion_operations_for(
        self, crs: GeodeticCRS, use_proj_alternative_grid_names: bool = False
    ) -> List[CoordinateOperation]:
        """Point motion operations defined on ``crs``, identified through the registry when it has no code."""
        ids = list(crs.identifiers)
        if not ids:
            ids = [c.identifier for c in self.identify_crs(crs) if c.identifier is not None]
        ops: List[CoordinateOperation] = []
        for ident in ids:
            for op in self._point_motion_operations(ident):
                if use_proj_alternative_grid_names:
                    op = self._with_grid_alternatives(op)
                ops.append(op)
        return ops

    def _point_motion_operations(self, crs: Identifier) -> List[CoordinateOperation]:
        extra, extra_params = self._auth_filter()
        rows = self.context.query(
            "SELECT auth_name, code FROM point_motion_operation WHERE source_crs_auth_name = ? "
            f"AND source_crs_code = ?{extra} ORDER BY rowid",
            (crs.authority, crs.code) + extra_params,
        )
        return [self.for_authority(r["auth_name"])._create_point_motion_operation(r["code"]) for r in rows]

    def _with_grid_alternatives(self, op: CoordinateOperation) -> CoordinateOperation:
        values = tuple(
            dataclasses.replace(pv, file_name=self.lookup_grid_alternative(pv.file_name) or pv.file_name)
            if pv.file_name
            else pv
            for pv in op.parameter_values
        )
        return dataclasses.replace(op, parameter_values=values)

    # --- operation graph queries used by the resolver ---------------------

    def _auth_filter(self, column: str = "auth_name") -> Tuple[str, Tuple[Any, ...]]:
        if self.authority is None:
            return "", ()
        return f" AND {column} = ?", (self.authority,)

    def operations_between(self, source: Identifier, target: Identifier) -> List[CoordinateOperation]:
        """Registered operations from ``source`` to ``target`` in that direction."""
        extra, extra_params = self._auth_filter()
        ops: List[CoordinateOperation] = []
        pair = (source.authority, source.code, target.authority, target.code)
        for table in ("transformation", "concatenated_operation"):
            rows = self.context.query(
                f"SELECT auth_name, code FROM {table} WHERE source_crs_auth_name = ? AND source_crs_code = ? "
                f"AND target_crs_auth_name = ? AND target_crs_code = ?{extra} ORDER BY rowid",
                pair + extra_params,
            )
            for r in rows:
                ops.append(self.for_authority(r["auth_name"]).create_coordinate_operation(r["code"]))
        if source == target:
            ops.extend(self._point_motion_operations(source))
        conv_extra, conv_params = self._auth_filter("conversion_auth_name")
        rows = self.context.query(
            "SELECT auth_name, code FROM projected_crs WHERE geodetic_crs_auth_name = ? AND geodetic_crs_code = ? "
            f"AND auth_name = ? AND code = ? AND conversion_code IS NOT NULL{conv_extra} ORDER BY rowid",
            pair + conv_params,
        )
        for r in rows:
            projected = self.for_authority(r["auth_name"]).create_projected_crs(r["code"])
            ops.append(projected.deriving_conversion())
        return ops

    def crs_reachable_from(self, crs: Identifier) -> List[Identifier]:
        """CRS linked to ``crs`` by one registered transformation or concatenation."""
        extra, extra_params = self._auth_filter()
        found: List[Identifier] = []
        for table in ("transformation", "concatenated_operation"):
            rows = self.context.query(
                "SELECT target_crs_auth_name AS a, target_crs_code AS c, rowid AS rid FROM "
                f"{table} WHERE source_crs_auth_name = ? AND source_crs_code = ?{extra} "
                "UNION ALL SELECT source_crs_auth_name AS a, source_crs_code AS c, rowid AS rid FROM "
                f"{table} WHERE target_crs_auth_name = ? AND target_crs_code = ?{extra} ORDER BY rid",
                (crs.authority, crs.code) + extra_params + (crs.authority, crs.code) + extra_params,
            )
            for r in rows:
                ident = Identifier(r["a"], r["c"])
                if ident != crs and ident not in found:
                    found.append(ident)
        return found

    def replacements_of(self, operation: Identifier) -> List[Identifier]:
        rows = self.context.query(
            "SELECT replacement_auth_name, replacement_code FROM supersession "
            "WHERE superseded_auth_name = ? AND superseded_code = ? AND same_source_target_crs = 1",
            (operation.authority, operation.code),
        )
        return [Identifier(r[0], r[1]) for r in rows]

    def lookup_grid_alternative(self, grid_name: str) -> Optional[str]:
        found = self.context.grid_alternative(grid_name)
        return found[0] if found is not None else None

    def find_vertical_crs_flipped(self, crs: VerticalCRS) -> Optional[VerticalCRS]:
        """Registered vertical CRS on the same datum with the opposite axis direction."""
        datum_id = crs.datum_or_ensemble.identifier
        if datum_id is None:
            return None
        axis = crs.coordinate_system.axes[0]  # type: ignore[union-attr]
        wanted = AxisDirection.UP if axis.direction == AxisDirection.DOWN else AxisDirection.DOWN
        rows = self.context.query(
            "SELECT auth_name, code FROM vertical_crs WHERE datum_auth_name = ? AND datum_code = ? "
            "ORDER BY deprecated, rowid",
            (datum_id.authority, datum_id.code),
        )
        for r in rows:
            candidate = self.for_authority(r["auth_name"]).create_vertical_crs(r["code"])
            cand_axis = candidate.coordinate_system.axes[0]  # type: ignore[union-attr]
            if cand_axis.direction == wanted and cand_axis.unit.is_equivalent_to(axis.unit, Criterion.EQUIVALENT):
                return candidate
        return None

    def identify_crs(self, crs: CRS) -> List[CRS]:
        """Registered CRS equivalent to an unidentified one, same kind only."""
        if isinstance(crs, GeodeticCRS):
            table = "geodetic_crs"
        elif isinstance(crs, ProjectedCRS):
            table = "projected_crs"
        elif isinstance(crs, VerticalCRS):
            table = "vertical_crs"
        else:
            return []
        extra, extra_params = self._auth_filter()
        rows = self.context.query(f"SELECT auth_name, code FROM {table} WHERE 1 = 1{extra} ORDER BY deprecated, rowid", extra_params)
        matches: List[CRS] = []
        for r in rows:
            sub = self.for_authority(r["auth_name"])
            try:
                candidate = sub.create_coordinate_reference_system(r["code"])
            except FactoryException as exc:
                logger.debug("identify: skipping %s:%s (%s)", r["auth_name"], r["code"], exc)
                continue
            if candidate.is_equivalent_to(crs, Criterion.EQUIVALENT):
                matches.append(candidate)
        return matches

    # --- resolver façades -------------------------------------------------

    def create_from_crs_codes(
        self,
        source_code: str,
        target_code: str,
        source_authority: Optional[str] = None,
        target_authority: Optional[str] = None,
        discard_superseded: bool = False,
    ) -> List[CoordinateOperation]:
        """Registered operations between two CRS codes, ranked."""
        from geopath.resolver.context import IntermediateCRSUse, SearchContext
        from geopath.resolver.search import CoordinateOperationResolver

        source = self.for_authority(source_authority or self.authority).create_coordinate_reference_system(source_code)
        target = self.for_authority(target_authority or self.authority).create_coordinate_reference_system(target_code)
        context = SearchContext(
            intermediate_crs_use=IntermediateCRSUse.NEVER,
            discard_superseded=discard_superseded,
            allow_ballpark=False,
            allow_identity=False,
            allow_derived_paths=False,
        )
        return CoordinateOperationResolver(self, context).resolve(source, target)

    def create_from_crs_codes_with_intermediates(
        self,
        source_authority: str,
        source_code: str,
        target_authority: str,
        target_code: str,
        intermediate_crs: Sequence[Tuple[str, str]] = (),
        discard_superseded: bool = False,
    ) -> List[CoordinateOperation]:
        """Operations through exactly one pivot CRS; direct operations are not returned."""
        from geopath.resolver.context import IntermediateCRSUse, SearchContext
        from geopath.resolver.search import CoordinateOperationResolver

        if (source_authority, source_code) == (target_authority, target_code):
            return []
        source = self.for_authority(source_authority).create_coordinate_reference_system(source_code)
        target = self.for_authority(target_authority).create_coordinate_reference_system(target_code)
        context = SearchContext(
            intermediate_crs_use=IntermediateCRSUse.ALWAYS,
            intermediate_crs=[f"{a}:{c}" for a, c in intermediate_crs],
            discard_superseded=discard_superseded,
            allow_ballpark=False,
            allow_derived_paths=False,
        )
        return CoordinateOperationResolver(self, context).resolve_via_pivots(source, target)


__all__ = ["AuthorityFactory"]
