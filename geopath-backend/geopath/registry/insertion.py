"""Insertion session: stage user-defined objects as SQL insert statements.

Statements are collected, not executed; ``RegistryContext.apply_insert_statements``
runs them. Supported objects are geodetic (geographic, geocentric) and
vertical CRS together with whatever datum, ellipsoid, prime meridian and
coordinate system rows they need.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Set, Tuple

from geopath.geodesy.common import Criterion, IdentifiedObject, UnitOfMeasure
from geopath.geodesy.crs import GeodeticCRS, GeographicCRS, VerticalCRS
from geopath.geodesy.cs import CoordinateSystem
from geopath.geodesy.datum import (
    DatumEnsemble,
    DynamicGeodeticReferenceFrame,
    DynamicVerticalReferenceFrame,
    Ellipsoid,
    GeodeticReferenceFrame,
    PrimeMeridian,
    VerticalReferenceFrame,
)
from geopath.geodesy.errors import FactoryException

logger = logging.getLogger(__name__)

UNKNOWN_EXTENT = ("PROJ", "EXTENT_UNKNOWN")
UNKNOWN_SCOPE = ("PROJ", "SCOPE_UNKNOWN")


def _sql(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float)):
        out = format(value, ".15g")
        return "0" if out == "-0" else out
    return "'" + str(value).replace("'", "''") + "'"


def _insert(table: str, *values: Any) -> str:
    return f"INSERT INTO {table} VALUES({','.join(_sql(v) for v in values)});"


def _table_for(obj: Any) -> str:
    if isinstance(obj, GeodeticCRS):
        return "geodetic_crs"
    if isinstance(obj, VerticalCRS):
        return "vertical_crs"
    raise FactoryException(f"Cannot generate insert statements for {type(obj).__name__}")


def _name_code(name: str) -> str:
    return re.sub(r"[^A-Z0-9]+", "_", name.upper()).strip("_") or "OBJECT"


def suggest_code(ctx: Any, obj: Any, authority: str, numeric: bool, session: Optional["InsertSession"] = None) -> str:
    """Next free numeric code of the object's table, or a code derived from its name."""
    table = _table_for(obj) if not isinstance(obj, str) else obj
    if not numeric:
        return _name_code(getattr(obj, "name", table))
    rows = ctx.query(
        f"SELECT MAX(CAST(code AS INTEGER)) FROM {table} WHERE auth_name = ? AND code GLOB '[0-9]*'",
        (authority,),
    )
    best = rows[0][0] if rows and rows[0][0] is not None else 0
    if session is not None:
        for code in session.pending.get((table, authority), ()):
            if code.isdigit():
                best = max(best, int(code))
    return str(best + 1)


class InsertSession:
    def __init__(self, ctx: Any):
        self.ctx = ctx
        self.pending: Dict[Tuple[str, str], Set[str]] = {}
        self._done: Set[Tuple[str, str, str]] = set()
        self._objects: List[Any] = []

    # --- helpers -------------------------------------------------------------

    def _exists(self, table: str, auth: str, code: str) -> bool:
        if code in self.pending.get((table, auth), set()):
            return True
        return bool(self.ctx.query(f"SELECT 1 FROM {table} WHERE auth_name = ? AND code = ?", (auth, code)))

    def _registered_id(self, obj: IdentifiedObject, table: str) -> Optional[Tuple[str, str]]:
        for ident in obj.identifiers:
            if self._exists(table, ident.authority, ident.code):
                return ident.authority, ident.code
        return None

    def _claim(self, table: str, auth: str, code: str) -> None:
        self.pending.setdefault((table, auth), set()).add(code)

    def _code(self, table: str, authority: str, code: str, prefix: str, numeric: bool) -> str:
        if numeric:
            return suggest_code(self.ctx, table, authority, True, self)
        return f"{prefix}_{code}"

    def _unit(self, unit: UnitOfMeasure) -> Tuple[str, str]:
        if unit.authority is None or unit.code is None:
            raise FactoryException(f"Unit '{unit.name}' has no identifier")
        return unit.authority, unit.code

    # --- object rows ------------------------------------------------------------

    def _ellipsoid(self, e: Ellipsoid, authority: str, code: str, numeric: bool, out: List[str]) -> Tuple[str, str]:
        found = self._registered_id(e, "ellipsoid")
        if found:
            return found
        rows = self.ctx.query(
            "SELECT auth_name, code, semi_major_axis, inv_flattening, semi_minor_axis FROM ellipsoid "
            "WHERE ABS(semi_major_axis - ?) < 1e-4 AND uom_code = '9001'",
            (e.semi_major_metre,),
        )
        for r in rows:
            rf = r["inv_flattening"]
            b = r["semi_minor_axis"]
            if rf is not None and abs(rf - e.inverse_flattening_value) < 1e-9 * max(rf, 1.0):
                return r["auth_name"], r["code"]
            if rf is None and b is not None and abs(b - e.semi_minor_metre) < 1e-4:
                return r["auth_name"], r["code"]
        new = self._code("ellipsoid", authority, code, "ELLPS", numeric)
        rf = None if e.is_sphere else e.inverse_flattening_value
        out.append(_insert("ellipsoid", authority, new, e.name, "", "PROJ", "EARTH", e.semi_major_metre, "EPSG", "9001", rf, e.semi_minor_metre if e.is_sphere else None, 0))
        self._claim("ellipsoid", authority, new)
        return authority, new

    def _prime_meridian(self, pm: PrimeMeridian, authority: str, code: str, numeric: bool, out: List[str]) -> Tuple[str, str]:
        found = self._registered_id(pm, "prime_meridian")
        if found:
            return found
        rows = self.ctx.query("SELECT auth_name, code, longitude FROM prime_meridian WHERE uom_code = '9102'")
        for r in rows:
            if abs(r["longitude"] - pm.degrees) < 1e-10:
                return r["auth_name"], r["code"]
        new = self._code("prime_meridian", authority, code, "PM", numeric)
        out.append(_insert("prime_meridian", authority, new, pm.name, pm.degrees, "EPSG", "9102", 0))
        self._claim("prime_meridian", authority, new)
        return authority, new

    def _datum(self, crs: Any, authority: str, code: str, numeric: bool, out: List[str]) -> Tuple[str, str]:
        geodetic = isinstance(crs, GeodeticCRS)
        table = "geodetic_datum" if geodetic else "vertical_datum"
        obj = crs.datum_or_ensemble
        found = self._registered_id(obj, table)
        if found:
            return found
        if isinstance(obj, DatumEnsemble):
            raise FactoryException(f"Datum ensemble '{obj.name}' is not registered")
        new = self._code(table, authority, code, "GEODETIC_DATUM" if geodetic else "VERTICAL_DATUM", numeric)
        if geodetic:
            assert isinstance(obj, GeodeticReferenceFrame)
            e_auth, e_code = self._ellipsoid(obj.ellipsoid, authority, code, numeric, out)
            pm_auth, pm_code = self._prime_meridian(obj.prime_meridian, authority, code, numeric, out)
            epoch = obj.frame_reference_epoch if isinstance(obj, DynamicGeodeticReferenceFrame) else None
            out.append(
                _insert(table, authority, new, obj.name, "", e_auth, e_code, pm_auth, pm_code,
                        obj.publication_date, epoch, None, obj.anchor, obj.anchor_epoch, 0)
            )
        else:
            assert isinstance(obj, VerticalReferenceFrame)
            epoch = obj.frame_reference_epoch if isinstance(obj, DynamicVerticalReferenceFrame) else None
            out.append(_insert(table, authority, new, obj.name, "", obj.publication_date, epoch, None, obj.anchor, obj.anchor_epoch, 0))
        self._claim(table, authority, new)
        out.extend(self._usage_rows(table, authority, new, obj))
        return authority, new

    def _coordinate_system(self, cs: CoordinateSystem, authority: str, code: str, numeric: bool, out: List[str]) -> Tuple[str, str]:
        found = self._registered_id(cs, "coordinate_system")
        if found:
            return found
        rows = self.ctx.query(
            "SELECT auth_name, code FROM coordinate_system WHERE type = ? AND dimension = ? ORDER BY rowid",
            (cs.cs_type.value, cs.dimension),
        )
        for r in rows:
            factory = _factory(self.ctx, r["auth_name"])
            if factory.create_coordinate_system(r["code"]).is_equivalent_to(cs, Criterion.EQUIVALENT):
                return r["auth_name"], r["code"]
        new = self._code("coordinate_system", authority, code, "CS", numeric)
        out.append(_insert("coordinate_system", authority, new, cs.cs_type.value, cs.dimension))
        for i, axis in enumerate(cs.axes, start=1):
            u_auth, u_code = self._unit(axis.unit)
            out.append(
                _insert("axis", authority, f"{new}_AXIS_{i}", axis.name or axis.abbreviation, axis.abbreviation,
                        axis.direction.value, authority, new, i, u_auth, u_code, axis.meridian)
            )
        self._claim("coordinate_system", authority, new)
        return authority, new

    def _usage_rows(self, table: str, authority: str, code: str, obj: Any) -> List[str]:
        usages = [u for u in getattr(obj, "usages", ()) if u.extent is not None and u.extent.identifiers]
        rows = []
        base = f"USAGE_{table.upper()}_{code}"
        if not usages:
            return [_insert("usage", authority, base, table, authority, code, *UNKNOWN_EXTENT, *UNKNOWN_SCOPE)]
        for i, usage in enumerate(usages):
            ext = usage.extent.identifiers[0]  # type: ignore[union-attr]
            usage_code = base if i == 0 else f"{base}_{i + 1}"
            rows.append(_insert("usage", authority, usage_code, table, authority, code, ext.authority, ext.code, *UNKNOWN_SCOPE))
        return rows

    # --- entry point ----------------------------------------------------------

    def statements_for(self, obj: Any, authority: str, code: str, numeric_codes: bool = False) -> List[str]:
        table = _table_for(obj)
        key = (table, authority, code)
        if key in self._done or any(o is obj for o in self._objects):
            return []
        if self._registered_id(obj, table) is not None:
            return []
        if self._exists(table, authority, code):
            raise FactoryException(f"{authority}:{code} is already used in {table}")

        out: List[str] = []
        d_auth, d_code = self._datum(obj, authority, code, numeric_codes, out)
        cs_auth, cs_code = self._coordinate_system(obj.coordinate_system, authority, code, numeric_codes, out)
        if table == "geodetic_crs":
            kind = obj.kind if isinstance(obj, GeographicCRS) else "geocentric"
            out.append(_insert(table, authority, code, obj.name, "", kind, cs_auth, cs_code, d_auth, d_code, None, obj.deprecated))
        else:
            out.append(_insert(table, authority, code, obj.name, "", cs_auth, cs_code, d_auth, d_code, obj.deprecated))
        out.extend(self._usage_rows(table, authority, code, obj))
        self._claim(table, authority, code)
        self._done.add(key)
        self._objects.append(obj)
        logger.debug("staged %d insert statements for %s:%s", len(out), authority, code)
        return out


def _factory(ctx: Any, authority: str) -> Any:
    from .factory import AuthorityFactory

    return AuthorityFactory(ctx, authority)


__all__ = ["InsertSession", "suggest_code", "UNKNOWN_EXTENT", "UNKNOWN_SCOPE"]
