from __future__ import annotations

import math

import pytest

from geopath.geodesy.common import (
    DEGREE,
    METRE,
    FOOT,
    Criterion,
    GeographicBoundingBox,
    Identifier,
    Measure,
    UnitOfMeasure,
    UnitType,
    nearly_equal,
)
from geopath.geodesy.crs import GeographicCRS, VerticalCRS
from geopath.geodesy.cs import Axis, AxisDirection, CoordinateSystem, CSType
from geopath.geodesy.datum import (
    DatumEnsemble,
    Ellipsoid,
    GeodeticReferenceFrame,
    PrimeMeridian,
    VerticalReferenceFrame,
)
from geopath.geodesy.operation import (
    CoordinateOperation,
    OperationKind,
    OperationMethod,
    OperationParameter,
    ParameterValue,
)


def latlon_cs(unit=DEGREE):
    return CoordinateSystem(
        cs_type=CSType.ELLIPSOIDAL,
        axes=(
            Axis(name="Latitude", abbreviation="lat", direction=AxisDirection.NORTH, unit=unit),
            Axis(name="Longitude", abbreviation="lon", direction=AxisDirection.EAST, unit=unit),
        ),
    )


def grs80():
    return Ellipsoid(name="GRS 1980", semi_major_axis=Measure(6378137.0, METRE), inverse_flattening=298.257222101)


def test_nearly_equal_is_relative():
    assert nearly_equal(6378137.0, 6378137.0 + 1e-5)
    assert not nearly_equal(6378137.0, 6378137.1)
    assert nearly_equal(None, None)
    assert not nearly_equal(None, 0.0)


def test_measure_conversion_between_units():
    assert Measure(1.0, FOOT).convert_to(METRE) == pytest.approx(0.3048)
    assert Measure(180.0, DEGREE).si() == pytest.approx(math.pi)
    with pytest.raises(ValueError):
        Measure(1.0, FOOT).convert_to(DEGREE)


def test_sexagesimal_unit_decodes_dms():
    dms = UnitOfMeasure("sexagesimal DMS", UnitType.ANGULAR, None, "EPSG", "9110")
    assert math.degrees(dms.to_si_value(10.3)) == pytest.approx(10.5)


def test_bbox_antimeridian_and_world():
    pacific = GeographicBoundingBox(170.0, -10.0, -170.0, 10.0)
    assert pacific.crosses_antimeridian
    assert pacific.width() == pytest.approx(20.0)
    assert pacific.intersects(GeographicBoundingBox(175.0, 0.0, 179.0, 5.0))
    assert not pacific.intersects(GeographicBoundingBox(0.0, 0.0, 10.0, 5.0))
    assert GeographicBoundingBox(-180.0, -90.0, 180.0, 90.0).is_world()


def test_bbox_intersection_and_containment():
    europe = GeographicBoundingBox(-10.0, 35.0, 30.0, 70.0)
    czechia = GeographicBoundingBox(12.09, 48.58, 18.86, 51.06)
    assert europe.contains(czechia)
    assert not czechia.contains(europe)
    assert europe.intersection(czechia) == czechia
    assert europe.intersection(GeographicBoundingBox(100.0, 0.0, 110.0, 10.0)) is None


def test_ellipsoid_proj_params():
    assert grs80().proj_params() == (("ellps", "GRS80"),)
    clarke = Ellipsoid(
        name="Clarke 1866",
        semi_major_axis=Measure(6378206.4, METRE),
        semi_minor_axis=Measure(6356583.8, METRE),
    )
    assert clarke.proj_params() == (("ellps", "clrk66"),)
    sphere = Ellipsoid(name="Sphere", semi_major_axis=Measure(6371000.0, METRE), is_sphere=True)
    assert sphere.proj_params() == (("R", "6371000"),)
    odd = Ellipsoid(name="Odd", semi_major_axis=Measure(6378000.0, METRE), inverse_flattening=300.0)
    assert odd.proj_params() == (("a", "6378000"), ("rf", "300"))


def test_ellipsoid_rejects_inconsistent_axes():
    with pytest.raises(ValueError):
        Ellipsoid(name="Bad", semi_major_axis=Measure(6378137.0, METRE))
    with pytest.raises(ValueError):
        Ellipsoid(
            name="Bad",
            semi_major_axis=Measure(6378137.0, METRE),
            semi_minor_axis=Measure(6300000.0, METRE),
            inverse_flattening=298.257222101,
        )


def test_coordinate_system_axis_rules():
    with pytest.raises(ValueError):
        CoordinateSystem(
            cs_type=CSType.VERTICAL,
            axes=(
                Axis(name="H", abbreviation="H", direction=AxisDirection.UP, unit=METRE),
                Axis(name="D", abbreviation="D", direction=AxisDirection.DOWN, unit=METRE),
            ),
        )
    with pytest.raises(ValueError):
        latlon_cs(unit=METRE)


def test_crs_needs_exactly_one_datum_source():
    frame = GeodeticReferenceFrame(name="Test datum", ellipsoid=grs80())
    with pytest.raises(ValueError):
        GeographicCRS(name="No datum", coordinate_system=latlon_cs())
    crs = GeographicCRS(name="Test", datum=frame, coordinate_system=latlon_cs())
    assert crs.kind == "geographic 2D"
    assert not crs.is_3d


def test_geographic_crs_equivalence_ignores_names_only_when_asked():
    frame = GeodeticReferenceFrame(name="Test datum", ellipsoid=grs80())
    a = GeographicCRS(name="A", datum=frame, coordinate_system=latlon_cs())
    b = GeographicCRS(name="B", datum=frame, coordinate_system=latlon_cs())
    assert not a.is_equivalent_to(b, Criterion.STRICT)
    assert a.is_equivalent_to(b, Criterion.EQUIVALENT)


def test_different_prime_meridian_is_a_different_datum():
    ferro = PrimeMeridian(name="Ferro", longitude=Measure(-17.6666666666667, DEGREE))
    greenwich = GeodeticReferenceFrame(name="S-JTSK", ellipsoid=grs80())
    shifted = GeodeticReferenceFrame(name="S-JTSK", ellipsoid=grs80(), prime_meridian=ferro)
    assert not greenwich.is_equivalent_to(shifted, Criterion.EQUIVALENT)
    assert shifted.prime_meridian.degrees == pytest.approx(-17.6666666666667)


def test_ensemble_collapses_to_latest_member():
    old = GeodeticReferenceFrame(name="Frame (old)", ellipsoid=grs80())
    new = GeodeticReferenceFrame(name="Frame (new)", ellipsoid=grs80())
    ensemble = DatumEnsemble(
        name="Frame ensemble",
        identifiers=(Identifier("TEST", "1"),),
        datums=(old, new),
        positional_accuracy=2.0,
    )
    frame = ensemble.as_datum()
    assert frame.name == "Frame"
    assert frame.identifiers == (Identifier("TEST", "1"),)
    with pytest.raises(ValueError):
        DatumEnsemble(name="Lonely", datums=(old,), positional_accuracy=1.0)


def test_vertical_crs_depth_axis():
    depth_cs = CoordinateSystem(
        cs_type=CSType.VERTICAL,
        axes=(Axis(name="Depth", abbreviation="D", direction=AxisDirection.DOWN, unit=METRE),),
    )
    crs = VerticalCRS(name="Depth", datum=VerticalReferenceFrame(name="Well datum"), coordinate_system=depth_cs)
    assert crs.is_depth
    assert crs.kind == "vertical"


def _offset_op(value):
    param = OperationParameter(name="Vertical Offset", identifiers=(Identifier("EPSG", "8603"),))
    return CoordinateOperation(
        kind=OperationKind.TRANSFORMATION,
        name="Offset",
        identifiers=(Identifier("TEST", "7"),),
        method=OperationMethod(name="Vertical Offset", identifiers=(Identifier("EPSG", "9616"),)),
        parameter_values=(ParameterValue(parameter=param, value=Measure(value, METRE)),),
        accuracy=0.1,
    )


def test_operation_inverse_negates_offsets_and_round_trips():
    op = _offset_op(-4.74)
    inv = op.inverse()
    assert inv.name == "Inverse of Offset"
    assert inv.identifiers == ()
    assert inv.parameter_value("8603") == pytest.approx(4.74)
    assert not inv.wrapped
    assert inv.inverse() is op
    assert inv.identity_key() == op.identity_key()


def test_operation_parameter_lookup_by_code_or_name():
    op = _offset_op(1.5)
    assert op.parameter("8603") is not None
    assert op.parameter(name="vertical offset") is not None
    assert op.parameter("8605") is None


def test_concatenation_needs_two_members():
    with pytest.raises(ValueError):
        CoordinateOperation(kind=OperationKind.CONCATENATED, name="Short", operations=(_offset_op(1.0),))
