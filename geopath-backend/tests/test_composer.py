from __future__ import annotations

import pytest

from geopath.composer.compose import compose
from geopath.composer.steps import Pipeline, Step, elide, parse_proj_string
from geopath.geodesy.errors import InvalidOperationError
from geopath.resolver.search import CoordinateOperationResolver


def _resolve(factory, source, target, source_auth="EPSG", target_auth="EPSG"):
    src = factory.for_authority(source_auth).create_coordinate_reference_system(source)
    tgt = factory.for_authority(target_auth).create_coordinate_reference_system(target)
    return CoordinateOperationResolver(factory).resolve(src, tgt)


def test_longitude_rotation_pipeline(epsg):
    op = epsg.create_coordinate_operation("1884")
    assert compose(op).to_proj_string() == (
        "+proj=pipeline +step +proj=axisswap +order=2,1 +step +proj=unitconvert +xy_in=deg +xy_out=rad "
        "+step +inv +proj=longlat +ellps=bessel +pm=-17.6666666666667 "
        "+step +proj=unitconvert +xy_in=rad +xy_out=deg +step +proj=axisswap +order=2,1"
    )


def test_geog2d_helmert_preserves_height(epsg):
    text = compose(epsg.create_coordinate_operation("1622")).to_proj_string()
    assert "+step +proj=push +v_3 +step +proj=cart +ellps=bessel" in text
    assert "+step +proj=helmert +x=589 +y=76 +z=480" in text
    assert "+step +inv +proj=cart +ellps=WGS84 +step +proj=pop +v_3" in text


def test_vertical_concatenation_and_inverse(epsg):
    pipeline = compose(epsg.create_coordinate_operation("7987"))
    assert pipeline.to_proj_string() == (
        "+proj=pipeline +step +proj=geogoffset +dh=-4.74 +step +proj=axisswap +order=1,2,-3 "
        "+step +proj=unitconvert +z_in=m +z_out=ft"
    )
    assert pipeline.inverse().to_proj_string() == (
        "+proj=pipeline +step +proj=unitconvert +z_in=ft +z_out=m +step +proj=axisswap +order=1,2,-3 "
        "+step +proj=geogoffset +dh=4.74"
    )


def test_projection_pipelines(epsg):
    utm = compose(_resolve(epsg, "4326", "32631")[0]).to_proj_string()
    assert utm.endswith("+step +proj=utm +zone=31 +ellps=WGS84")
    webmerc = compose(_resolve(epsg, "4326", "3857")[0]).to_proj_string()
    assert webmerc.endswith("+step +proj=webmerc +lat_0=0 +lon_0=0 +x_0=0 +y_0=0 +ellps=WGS84")


def test_projection_in_us_survey_feet(epsg):
    text = compose(_resolve(epsg, "4269", "2227")[0]).to_proj_string()
    assert "+proj=lcc" in text
    assert "+x_0=609601.219202438" in text
    assert "+y_0=152400.30480061" in text
    assert text.endswith("+step +proj=unitconvert +xy_in=m +xy_out=us-ft")


def test_grid_names_use_registered_alternatives(epsg):
    op = epsg.create_coordinate_operation("9103")
    text = compose(op, epsg.lookup_grid_alternative).to_proj_string()
    assert "+proj=hgridshift +grids=us_noaa_conus.tif" in text
    assert "+proj=hgridshift +grids=nad83_nad83_2011.gsb" in text
    assert "+grids=conus.las,conus.los" in compose(op).to_proj_string()


def test_ballpark_between_axis_orders(epsg):
    op = _resolve(epsg, "4326", "CRS84", target_auth="OGC")[0]
    assert compose(op).to_proj_string() == "+proj=axisswap +order=2,1"


def test_same_datum_2d_to_3d_is_noop(epsg):
    assert compose(_resolve(epsg, "4326", "4979")[0]).to_proj_string() == "+proj=noop"
    assert Pipeline().to_proj_string() == "+proj=noop"


def test_geographic_to_geocentric(epsg):
    text = compose(_resolve(epsg, "4326", "4978")[0]).to_proj_string()
    assert text == (
        "+proj=pipeline +step +proj=axisswap +order=2,1 +step +proj=unitconvert +xy_in=deg +xy_out=rad "
        "+step +proj=cart +ellps=WGS84"
    )


def test_proj_string_operation_is_used_verbatim(any_factory):
    op = any_factory.for_authority("USER").create_coordinate_operation("1")
    assert [s.name for s in compose(op).steps] == ["axisswap", "unitconvert", "geogoffset", "unitconvert", "axisswap"]


def test_unknown_method_is_rejected(epsg):
    import dataclasses

    from geopath.geodesy.operation import OperationMethod

    op = dataclasses.replace(
        epsg.create_coordinate_operation("1173"), method=OperationMethod(name="Mystery method")
    )
    with pytest.raises(InvalidOperationError):
        compose(op)


def test_latitude_outside_its_domain_is_rejected(registry, epsg):
    registry.execute_script(
        "UPDATE operation_parameter_value SET param_value = 95.0 "
        "WHERE operation_code = '6928' AND param_code = '8823';"
    )
    op = _resolve(epsg, "4326", "6933")[0]
    with pytest.raises(InvalidOperationError, match="outside"):
        compose(op)


def test_scale_factor_must_be_positive(registry, epsg):
    registry.execute_script(
        "UPDATE operation_parameter_value SET param_value = 0.0 "
        "WHERE operation_code = '16031' AND param_code = '8805';"
    )
    with pytest.raises(InvalidOperationError, match="positive"):
        compose(_resolve(epsg, "4326", "32631")[0])


def test_polar_stereographic_needs_a_polar_origin(epsg):
    import dataclasses

    from geopath.geodesy.common import Identifier
    from geopath.geodesy.operation import OperationMethod

    utm = _resolve(epsg, "4326", "32631")[0]
    polar = dataclasses.replace(
        utm,
        method=OperationMethod(name="Polar Stereographic (variant A)", identifiers=(Identifier("EPSG", "9810"),)),
    )
    with pytest.raises(InvalidOperationError, match="polar stereographic"):
        compose(polar)


def test_elide_cancels_and_merges():
    swap = Step("axisswap", (("order", "2,1"),))
    to_rad = Step("unitconvert", (("xy_in", "deg"), ("xy_out", "rad")))
    assert elide([swap, to_rad, to_rad.inverted(), Step("axisswap", (("order", "2,1,3"),))]) == []
    assert elide([Step("noop"), Step("unitconvert", (("xy_in", "m"), ("xy_out", "m")))]) == []
    merged = elide([swap, Step("axisswap", (("order", "1,2,-3"),))])
    assert merged == [Step("axisswap", (("order", "2,1,-3"),))]


def test_step_inversion():
    helmert = Step("helmert", (("x", "1"), ("y", "-2"), ("z", "0"), ("convention", "position_vector")))
    assert helmert.inverted().params == (("x", "-1"), ("y", "2"), ("z", "0"), ("convention", "position_vector"))
    exact = Step("helmert", (("x", "1"), ("exact", None)))
    assert exact.inverted() == Step("helmert", exact.params, inverse=True)
    assert Step("axisswap", (("order", "2,-1"),)).inverted().param("order") == "-2,1"
    assert Step("push", (("v_3", None),)).inverted().name == "pop"


def test_parse_proj_string():
    steps = parse_proj_string("+proj=pipeline +step +inv +proj=cart +ellps=GRS80 +step +proj=push +v_3")
    assert steps == [Step("cart", (("ellps", "GRS80"),), inverse=True), Step("push", (("v_3", None),))]
    assert parse_proj_string("+proj=utm +zone=31") == [Step("utm", (("zone", "31"),))]
