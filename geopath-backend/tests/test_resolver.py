from __future__ import annotations

import pytest
from pydantic import ValidationError

from geopath.geodesy.common import Identifier
from geopath.geodesy.operation import OperationKind
from geopath.resolver.context import IntermediateCRSUse, SearchContext, SpatialCriterion
from geopath.resolver.ranking import operation_id
from geopath.resolver.search import CoordinateOperationResolver


def _crs(factory, code, authority="EPSG"):
    return factory.for_authority(authority).create_coordinate_reference_system(code)


def _codes(ops):
    return [operation_id(op).code if operation_id(op) else op.name for op in ops]


def test_identity_returns_nothing(epsg):
    resolver = CoordinateOperationResolver(epsg)
    wgs84 = _crs(epsg, "4326")
    assert resolver.resolve(wgs84, wgs84) == []


def test_direct_operations_ranked_deprecated_last(epsg):
    ops = CoordinateOperationResolver(epsg).resolve(_crs(epsg, "4267"), _crs(epsg, "4326"))
    assert _codes(ops) == ["1173", "1174"]


def test_reverse_registration_is_inverted(epsg):
    ops = CoordinateOperationResolver(epsg).resolve(_crs(epsg, "4326"), _crs(epsg, "4267"))
    assert ops[0].name == "Inverse of NAD27 to WGS 84 (4)"
    assert ops[0].source_crs.identifier == Identifier("EPSG", "4326")
    assert ops[0].parameter_value("8605") == pytest.approx(8.0)


def test_explicit_pivot_with_always(epsg):
    ctx = SearchContext(intermediate_crs_use=IntermediateCRSUse.ALWAYS, intermediate_crs=["EPSG:4269"])
    ops = CoordinateOperationResolver(epsg, ctx).resolve(_crs(epsg, "4267"), _crs(epsg, "4326"))
    assert ops[0].kind == OperationKind.CONCATENATED
    assert ops[0].name == "NAD27 to NAD83 (1) + NAD83 to WGS 84 (1)"
    assert ops[0].accuracy == pytest.approx(4.15)
    assert _codes(ops[1:]) == ["1173", "1174"]


def test_desired_accuracy_filters(epsg):
    ctx = SearchContext(desired_accuracy=5.0)
    ops = CoordinateOperationResolver(epsg, ctx).resolve(_crs(epsg, "4267"), _crs(epsg, "4326"))
    assert _codes(ops) == ["1174"]


def test_superseded_operation_is_discarded(epsg):
    src, tgt = _crs(epsg, "4156"), _crs(epsg, "4326")
    assert _codes(CoordinateOperationResolver(epsg).resolve(src, tgt)) == ["1623"]
    keep = CoordinateOperationResolver(epsg, SearchContext(discard_superseded=False))
    assert _codes(keep.resolve(src, tgt)) == ["1623", "1622"]


def test_area_of_interest_filters_by_extent(epsg):
    src, tgt = _crs(epsg, "4156"), _crs(epsg, "4326")
    inside = SearchContext(area_of_interest=(14.0, 49.0, 15.0, 50.0), spatial_criterion=SpatialCriterion.STRICT_CONTAINMENT)
    assert _codes(CoordinateOperationResolver(epsg, inside).resolve(src, tgt)) == ["1623"]
    outside = SearchContext(area_of_interest=(-100.0, 30.0, -90.0, 40.0))
    assert CoordinateOperationResolver(epsg, outside).resolve(src, tgt) == []


def test_registered_concatenation(epsg):
    ops = CoordinateOperationResolver(epsg).resolve(_crs(epsg, "4267"), _crs(epsg, "7789"))
    assert _codes(ops) == ["9103"]


def test_pivot_search_when_no_direct_path(epsg):
    resolver = CoordinateOperationResolver(epsg)
    ops = resolver.resolve(_crs(epsg, "4818"), _crs(epsg, "4326"))
    assert [op.name for op in ops] == [
        "S-JTSK (Ferro) to S-JTSK (1) + S-JTSK to WGS 84 (2)",
        "S-JTSK (Ferro) to S-JTSK (1) + S-JTSK to WGS 84 (1)",
    ]
    assert ops[0].accuracy == pytest.approx(1.0)
    assert resolver.resolve_via_pivots(_crs(epsg, "4818"), _crs(epsg, "4326"))[0].name == ops[0].name


def test_never_use_intermediates(epsg):
    ctx = SearchContext(intermediate_crs_use=IntermediateCRSUse.NEVER)
    ops = CoordinateOperationResolver(epsg, ctx).resolve(_crs(epsg, "4818"), _crs(epsg, "4326"))
    assert len(ops) == 1 and ops[0].ballpark


def test_ballpark_fallback_and_opt_out(epsg):
    src, tgt = _crs(epsg, "4326"), _crs(epsg, "CRS84", "OGC")
    ops = CoordinateOperationResolver(epsg).resolve(src, tgt)
    assert len(ops) == 1
    assert ops[0].ballpark
    assert ops[0].name.startswith("Ballpark geographic offset")
    assert CoordinateOperationResolver(epsg, SearchContext(allow_ballpark=False)).resolve(src, tgt) == []


def test_synthesized_geodetic_conversion(epsg):
    ops = CoordinateOperationResolver(epsg).resolve(_crs(epsg, "4326"), _crs(epsg, "4978"))
    assert len(ops) == 1
    assert ops[0].kind == OperationKind.CONVERSION
    assert ops[0].method_code == "9602"
    derived_off = SearchContext(allow_derived_paths=False, allow_ballpark=False)
    assert CoordinateOperationResolver(epsg, derived_off).resolve(_crs(epsg, "4326"), _crs(epsg, "4978")) == []


def test_projected_target_is_decomposed(epsg):
    ops = CoordinateOperationResolver(epsg).resolve(_crs(epsg, "4267"), _crs(epsg, "32631"))
    assert ops
    assert ops[0].kind == OperationKind.CONCATENATED
    assert ops[0].operations[-1].name == "UTM zone 31N"
    assert ops[0].target_crs.identifier == Identifier("EPSG", "32631")


def test_search_context_validation():
    with pytest.raises(ValidationError):
        SearchContext(area_of_interest=(0.0, 50.0, 10.0, 40.0))
    with pytest.raises(ValidationError):
        SearchContext(intermediate_crs=["4269"])
    with pytest.raises(ValidationError):
        SearchContext(desired_accuracy=-1.0)
    assert SearchContext(intermediate_crs=["EPSG:4269"]).pivot_ids() == [("EPSG", "4269")]


def test_search_context_from_env(monkeypatch):
    monkeypatch.setenv("RESOLVER_ALLOW_BALLPARK", "false")
    monkeypatch.setenv("RESOLVER_INTERMEDIATE_USE", "always")
    monkeypatch.setenv("RESOLVER_DESIRED_ACCURACY", "not-a-number")
    ctx = SearchContext.from_env(discard_superseded=False)
    assert ctx.allow_ballpark is False
    assert ctx.intermediate_crs_use == IntermediateCRSUse.ALWAYS
    assert ctx.desired_accuracy is None
    assert ctx.discard_superseded is False


@pytest.mark.parametrize("raw", ["-1", "nan", "inf"])
def test_search_context_from_env_ignores_out_of_range_accuracy(monkeypatch, raw):
    monkeypatch.setenv("RESOLVER_DESIRED_ACCURACY", raw)
    assert SearchContext.from_env().desired_accuracy is None


def test_search_context_from_env_reads_accuracy(monkeypatch):
    monkeypatch.setenv("RESOLVER_DESIRED_ACCURACY", "2.5")
    assert SearchContext.from_env().desired_accuracy == 2.5


def _translation(code, source, target):
    return (
        f"INSERT INTO transformation VALUES('TEST','{code}','T{code}',NULL,'EPSG','9603',"
        f"'Geocentric translations (geog2D domain)','EPSG','{source}','EPSG','{target}',1.0,NULL,0);\n"
        + "".join(
            f"INSERT INTO operation_parameter_value VALUES('TEST','{code}',{i},'EPSG','{p}','{n}',{v},'EPSG','9001',NULL);\n"
            for i, (p, n, v) in enumerate(
                [("8605", "X-axis translation", 1.0), ("8606", "Y-axis translation", 2.0), ("8607", "Z-axis translation", 3.0)],
                start=1,
            )
        )
    )


@pytest.mark.parametrize(
    "legs",
    [
        (("4258", "4269"), ("4156", "4269")),
        (("4258", "4269"), ("4269", "4156")),
        (("4269", "4258"), ("4269", "4156")),
        (("4269", "4258"), ("4156", "4269")),
    ],
)
def test_pivot_found_whatever_the_registered_directions(registry, legs):
    from geopath.registry.factory import AuthorityFactory

    registry.execute_script(_translation("1", *legs[0]) + _translation("2", *legs[1]))
    factory = AuthorityFactory(registry, "TEST")
    ops = CoordinateOperationResolver(factory).resolve(_crs(factory, "4258"), _crs(factory, "4156"))
    assert len(ops) == 1
    assert ops[0].kind == OperationKind.CONCATENATED
    assert len(ops[0].operations) == 2
    assert ops[0].source_crs.identifier == Identifier("EPSG", "4258")
    assert ops[0].target_crs.identifier == Identifier("EPSG", "4156")


def test_both_directions_find_the_same_operations(epsg):
    resolver = CoordinateOperationResolver(epsg)
    forward = resolver.resolve(_crs(epsg, "4267"), _crs(epsg, "4326"))
    backward = resolver.resolve(_crs(epsg, "4326"), _crs(epsg, "4267"))
    assert sorted(_codes(forward)) == sorted(operation_id(op.inverse_of).code for op in backward)


def test_smaller_extent_ranks_first(epsg):
    import dataclasses

    from geopath.geodesy.common import Usage
    from geopath.resolver.ranking import rank

    base = epsg.create_coordinate_operation("1173")
    world = dataclasses.replace(base, name="world", usages=(Usage(extent=epsg.create_extent("1262")),))
    strip = dataclasses.replace(base, name="strip", usages=(Usage(extent=epsg.create_extent("2060")),))
    assert [op.name for op in rank([world, strip])] == ["strip", "world"]


def test_utm_target_resolves_to_its_deriving_conversion(epsg):
    ops = CoordinateOperationResolver(epsg).resolve(_crs(epsg, "4326"), _crs(epsg, "32631"))
    assert len(ops) == 1
    assert ops[0].kind == OperationKind.CONVERSION
    assert operation_id(ops[0]) == Identifier("EPSG", "16031")
    assert ops[0].method_code == "9807"
    assert len(ops[0].parameter_values) == 5


def test_longitude_rotation_is_exact(epsg):
    ops = CoordinateOperationResolver(epsg).resolve(_crs(epsg, "4818"), _crs(epsg, "4156"))
    assert _codes(ops) == ["1884"]
    assert ops[0].accuracy == 0.0
    assert ops[0].parameter_value("8602") == pytest.approx(-17.6666666666667)
