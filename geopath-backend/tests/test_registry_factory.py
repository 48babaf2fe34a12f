from __future__ import annotations

import pytest

from geopath.geodesy.common import Identifier, UnitType
from geopath.geodesy.crs import CompoundCRS, GeodeticCRS, GeographicCRS, ProjectedCRS, VerticalCRS
from geopath.geodesy.datum import DatumEnsemble, DynamicGeodeticReferenceFrame
from geopath.geodesy.errors import FactoryException, NoSuchAuthorityCodeException
from geopath.geodesy.operation import OperationKind
from geopath.registry.context import RegistryContext
from geopath.registry.object_types import ObjectType


def test_units_and_prime_meridians(epsg):
    us_ft = epsg.create_unit_of_measure("9003")
    assert us_ft.type == UnitType.LINEAR
    assert us_ft.proj_name == "us-ft"
    assert us_ft.to_si == pytest.approx(0.30480060960121924)
    assert epsg.create_unit_of_measure("1042").to_si == pytest.approx(1.0 / 31556925.445)
    assert epsg.create_prime_meridian("8909").degrees == pytest.approx(-17.6666666666667)


def test_ellipsoid_from_semi_minor_axis(epsg):
    clarke = epsg.create_ellipsoid("7008")
    assert clarke.semi_minor_metre == pytest.approx(6356583.8)
    assert clarke.proj_params() == (("ellps", "clrk66"),)


def test_extent_bbox(epsg):
    extent = epsg.create_extent("1079")
    assert extent.bbox.west == pytest.approx(12.09)
    assert extent.bbox.north == pytest.approx(51.06)
    assert not extent.is_world()


def test_wgs84_ensemble(epsg):
    ensemble = epsg.create_datum_ensemble("6326")
    assert isinstance(ensemble, DatumEnsemble)
    assert [d.name for d in ensemble.datums] == [
        "World Geodetic System 1984 (Transit)",
        "World Geodetic System 1984 (G2139)",
    ]
    assert ensemble.positional_accuracy == 2.0
    # no frame registered under the plain name: synthesized from the latest member
    frame = epsg.create_datum("6326")
    assert frame.name == "World Geodetic System 1984"
    assert frame.identifiers == (Identifier("EPSG", "6326"),)


def test_dynamic_frame(epsg):
    frame = epsg.create_geodetic_datum("1165")
    assert isinstance(frame, DynamicGeodeticReferenceFrame)
    assert frame.frame_reference_epoch == 2010.0


def test_geographic_crs_on_ensemble(epsg):
    crs = epsg.create_coordinate_reference_system("4326")
    assert isinstance(crs, GeographicCRS)
    assert crs.kind == "geographic 2D"
    assert crs.datum_ensemble is not None and crs.datum is None
    assert [a.abbreviation for a in crs.coordinate_system.axes] == ["Lat", "Lon"]
    assert crs.domain_bbox().is_world()
    assert crs.area_of_use() == "World."


def test_geocentric_and_3d(epsg):
    assert epsg.create_geodetic_crs("4978").kind == "geocentric"
    assert epsg.create_geographic_crs("4979").kind == "geographic 3D"
    with pytest.raises(FactoryException):
        epsg.create_geographic_crs("4978")


def test_projected_crs_binds_conversion(epsg):
    crs = epsg.create_coordinate_reference_system("32631")
    assert isinstance(crs, ProjectedCRS)
    assert crs.base_crs.identifier == Identifier("EPSG", "4326")
    conv = crs.deriving_conversion()
    assert conv.kind == OperationKind.CONVERSION
    assert conv.source_crs is crs.base_crs
    assert conv.target_crs is crs
    assert conv.parameter_value("8805") == pytest.approx(0.9996)


def test_vertical_and_compound(epsg):
    depth = epsg.create_vertical_crs("5614")
    assert isinstance(depth, VerticalCRS)
    assert depth.is_depth
    assert depth.coordinate_system.axes[0].unit.proj_name == "ft"
    compound = epsg.create_coordinate_reference_system("5498")
    assert isinstance(compound, CompoundCRS)
    assert [c.name for c in compound.components] == ["NAD83", "NAVD88 height"]


def test_missing_code_raises_no_such_code(epsg):
    with pytest.raises(NoSuchAuthorityCodeException):
        epsg.create_coordinate_reference_system("999999")
    with pytest.raises(NoSuchAuthorityCodeException):
        epsg.create_coordinate_operation("999999")


def test_text_definition_reference(any_factory):
    user = any_factory.for_authority("USER")
    crs = user.create_geodetic_crs("WGS84REF")
    assert crs.identifier == Identifier("EPSG", "4326")


def test_text_definition_of_the_wrong_kind(any_factory):
    with pytest.raises(FactoryException):
        any_factory.for_authority("USER").create_geodetic_crs("NOT_PROJECTED")


def test_recursive_definition_is_detected(any_factory):
    with pytest.raises(FactoryException) as exc:
        any_factory.for_authority("USER").create_geodetic_crs("LOOP_A")
    assert "Recursive" in str(exc.value)


USER_TEXT_CRS = """
INSERT INTO geodetic_crs VALUES('USER','GRS80_BOUND','GRS80 bound to WGS 84',NULL,'geographic 2D',NULL,NULL,NULL,NULL,
  '+proj=longlat +ellps=GRS80 +towgs84=1,2,3,0,0,0,0 +no_defs +type=crs',0);
INSERT INTO projected_crs VALUES('USER','UTM31','UTM 31 from text',NULL,NULL,NULL,NULL,NULL,NULL,NULL,
  '+proj=utm +zone=31 +datum=WGS84 +units=m +no_defs +type=crs',0);
INSERT INTO projected_crs VALUES('USER','BROKEN','Broken',NULL,NULL,NULL,NULL,NULL,NULL,NULL,'+proj=nosuchthing +type=crs',0);
"""


def test_geodetic_crs_from_proj_string(registry, any_factory):
    registry.execute_script(USER_TEXT_CRS)
    crs = any_factory.for_authority("USER").create_geodetic_crs("GRS80_BOUND")
    assert isinstance(crs, GeographicCRS)
    assert crs.name == "GRS80 bound to WGS 84"
    assert crs.identifier == Identifier("USER", "GRS80_BOUND")
    assert crs.ellipsoid.semi_major_metre == pytest.approx(6378137.0)
    assert crs.towgs84 == pytest.approx((1.0, 2.0, 3.0, 0.0, 0.0, 0.0, 0.0))


def test_projected_crs_from_proj_string(registry, any_factory):
    from geopath.composer.compose import compose

    registry.execute_script(USER_TEXT_CRS)
    crs = any_factory.for_authority("USER").create_projected_crs("UTM31")
    assert isinstance(crs, ProjectedCRS)
    assert crs.name == "UTM 31 from text"
    assert isinstance(crs.base_crs, GeographicCRS)
    assert crs.base_crs.ellipsoid.semi_major_metre == pytest.approx(6378137.0)
    conv = crs.deriving_conversion()
    assert conv.method_code == "9807"
    assert conv.parameter_value("8802") == pytest.approx(3.0)
    assert conv.parameter_value("8805") == pytest.approx(0.9996)
    assert "+proj=utm +zone=31" in compose(conv).to_proj_string()


def test_malformed_text_definition_raises_factory_exception(registry, any_factory):
    registry.execute_script(USER_TEXT_CRS)
    with pytest.raises(FactoryException):
        any_factory.for_authority("USER").create_projected_crs("BROKEN")


def test_transformation_record(epsg):
    op = epsg.create_coordinate_operation("1623")
    assert op.kind == OperationKind.TRANSFORMATION
    assert op.accuracy == 1.0
    assert op.version == "EPSG-Cze 2"
    assert op.source_crs.identifier == Identifier("EPSG", "4156")
    assert op.parameter_value("8611") == pytest.approx(3.56)
    assert op.area_of_use() == "Czechia."


def test_proj_string_transformation(any_factory):
    op = any_factory.for_authority("USER").create_coordinate_operation("1")
    assert op.text_definition.startswith("+proj=pipeline")
    assert op.parameter_values == ()


def test_conversion_is_a_template(epsg):
    conv = epsg.create_conversion("16031")
    assert conv.source_crs is None and conv.target_crs is None
    assert conv.accuracy == 0.0


def test_concatenated_operation_with_reverse_step_and_bridge(epsg):
    op = epsg.create_coordinate_operation("9103")
    assert op.kind == OperationKind.CONCATENATED
    assert [m.name for m in op.operations] == [
        "NAD27 to NAD83 (1)",
        "NAD83 to NAD83(2011) (1)",
        "Conversion from NAD83(2011) (geog2D) to NAD83(2011) (geocentric)",
        "Inverse of ITRF2008 to NAD83(2011) (1)",
        "ITRF2008 to ITRF2014 (1)",
    ]
    assert op.accuracy == 1.5
    for a, b in zip(op.operations, op.operations[1:]):
        assert a.target_crs.identifier == b.source_crs.identifier


def test_concatenated_operation_orients_undirected_step(epsg):
    op = epsg.create_coordinate_operation("8443")
    assert op.operations[0].name == "Inverse of S-JTSK [JTSK03] to S-JTSK (1)"
    assert op.operations[0].source_crs.identifier == Identifier("EPSG", "4156")
    assert op.operations[0].parameter_value("8605") == pytest.approx(-0.5)


def test_concatenated_operation_binds_height_depth_reversal(epsg):
    op = epsg.create_coordinate_operation("7987")
    reversal = op.operations[1]
    assert reversal.source_crs.name == "KOC WD height"
    assert reversal.target_crs.name == "KOC WD depth"
    assert op.operations[2].target_crs.name == "KOC WD depth (ft)"


def test_point_motion_operation(epsg):
    ops = epsg.operations_between(Identifier("EPSG", "8254"), Identifier("EPSG", "8254"))
    assert [o.identifier for o in ops] == [Identifier("EPSG", "9483")]
    assert ops[0].kind == OperationKind.POINT_MOTION
    assert ops[0].file_name("1050") == "NAD83v70VG.gvb"


def test_operations_between_in_registry_order(epsg):
    ops = epsg.operations_between(Identifier("EPSG", "4267"), Identifier("EPSG", "4326"))
    assert [o.identifier.code for o in ops] == ["1173", "1174"]
    assert ops[1].is_deprecated()


def test_operations_between_includes_projection(epsg):
    ops = epsg.operations_between(Identifier("EPSG", "4326"), Identifier("EPSG", "32631"))
    assert len(ops) == 1
    assert ops[0].name == "UTM zone 31N"


def test_authority_filter_hides_other_authorities(epsg, any_factory):
    pair = (Identifier("EPSG", "4258"), Identifier("EPSG", "4326"))
    assert epsg.operations_between(*pair) == []
    assert [o.identifier for o in any_factory.operations_between(*pair)] == [Identifier("USER", "1")]


def test_crs_reachable_from(epsg):
    reachable = epsg.crs_reachable_from(Identifier("EPSG", "4818"))
    assert reachable == [Identifier("EPSG", "4156")]


def test_supersession_and_grid_alternatives(epsg):
    assert epsg.replacements_of(Identifier("EPSG", "1622")) == [Identifier("EPSG", "1623")]
    assert epsg.lookup_grid_alternative("conus.las") == "us_noaa_conus.tif"
    assert epsg.lookup_grid_alternative("unknown.gsb") is None


def test_find_vertical_crs_flipped(epsg):
    height = epsg.create_vertical_crs("7979")
    flipped = epsg.find_vertical_crs_flipped(height)
    assert flipped.identifier == Identifier("EPSG", "5789")


def test_identify_crs(epsg):
    import dataclasses

    anonymous = dataclasses.replace(epsg.create_geodetic_crs("4267"), name="unnamed", identifiers=(), usages=())
    matches = epsg.identify_crs(anonymous)
    assert [m.identifier for m in matches] == [Identifier("EPSG", "4267")]


def test_create_object_and_descriptions(epsg):
    assert isinstance(epsg.create_object("4978"), GeodeticCRS)
    assert epsg.create_object("1884").name == "S-JTSK (Ferro) to S-JTSK (1)"
    assert epsg.get_description_text("32631") == "WGS 84 / UTM zone 31N"


def test_authority_codes(epsg):
    geocentric = epsg.get_authority_codes(ObjectType.GEOCENTRIC_CRS)
    assert geocentric == {"4978", "6317", "5332", "7789"}
    assert "4035" in epsg.get_authority_codes(ObjectType.GEOGRAPHIC_2D_CRS)
    assert "4035" not in epsg.get_authority_codes(ObjectType.GEOGRAPHIC_2D_CRS, include_deprecated=False)
    assert epsg.get_authority_codes(ObjectType.DATUM_ENSEMBLE) == {"6326"}


def test_objects_from_name_exact_and_filtered(epsg):
    geodetic = epsg.create_objects_from_name("wgs 84", [ObjectType.GEODETIC_CRS], approximate_match=False)
    assert [o.identifier.code for o in geodetic] == ["4326", "4979", "4978"]
    geog2d = epsg.create_objects_from_name("WGS 84", [ObjectType.GEOGRAPHIC_2D_CRS], approximate_match=False)
    assert [o.identifier.code for o in geog2d] == ["4326"]
    assert len(epsg.create_objects_from_name("WGS 84", [ObjectType.GEODETIC_CRS], False, limit=1)) == 1
    assert epsg.create_objects_from_name("", [ObjectType.GEODETIC_CRS]) == []


def test_objects_from_name_approximate(epsg):
    projected = epsg.create_objects_from_name("WGS84", [ObjectType.PROJECTED_CRS])
    assert [o.identifier.code for o in projected] == ["32631", "3857", "6933"]
    assert [o.name for o in epsg.create_objects_from_name("utm zone 31", [ObjectType.PROJECTED_CRS])] == [
        "WGS 84 / UTM zone 31N"
    ]
    ellipsoids = epsg.create_objects_from_name("WGS 84", [ObjectType.ELLIPSOID], approximate_match=False)
    assert [o.identifier.code for o in ellipsoids] == ["7030"]


def test_objects_from_name_through_aliases(epsg):
    crs = epsg.create_objects_from_name("GCS_WGS_1984", [ObjectType.GEODETIC_CRS], approximate_match=False)
    assert [o.identifier.code for o in crs] == ["4326"]
    ensembles = epsg.create_objects_from_name("D_WGS_1984", [ObjectType.DATUM_ENSEMBLE], approximate_match=False)
    assert len(ensembles) == 1
    assert isinstance(ensembles[0], DatumEnsemble)


def test_crs_info_list(epsg, any_factory):
    infos = {(i.authority, i.code): i for i in epsg.get_crs_info_list()}
    wgs84 = infos[("EPSG", "4326")]
    assert wgs84.type == ObjectType.GEOGRAPHIC_2D_CRS
    assert wgs84.bbox_valid
    assert (wgs84.west_lon, wgs84.south_lat, wgs84.east_lon, wgs84.north_lat) == (-180.0, -90.0, 180.0, 90.0)
    assert wgs84.area_name == "World"
    assert wgs84.projection_method_name is None
    utm = infos[("EPSG", "32631")]
    assert utm.type == ObjectType.PROJECTED_CRS
    assert utm.projection_method_name == "Transverse Mercator"
    assert utm.area_name == "World - N hemisphere - 0°E to 6°E"
    assert infos[("EPSG", "4978")].type == ObjectType.GEOCENTRIC_CRS
    assert infos[("EPSG", "4979")].type == ObjectType.GEOGRAPHIC_3D_CRS
    assert infos[("EPSG", "5498")].type == ObjectType.COMPOUND_CRS
    assert infos[("EPSG", "4035")].deprecated
    assert ("OGC", "CRS84") not in infos
    assert ("OGC", "CRS84") in {(i.authority, i.code) for i in any_factory.get_crs_info_list()}


def test_unit_list(epsg):
    units = {u.code: u for u in epsg.get_unit_list()}
    metre = units["9001"]
    assert metre.name == "metre"
    assert metre.category == UnitType.LINEAR
    assert metre.conv_factor == 1.0
    assert metre.proj_short_name == "m"
    assert not metre.deprecated
    assert units["9102"].category == UnitType.ANGULAR


def test_celestial_bodies(any_factory, epsg):
    bodies = [(b.authority, b.name) for b in any_factory.get_celestial_body_list()]
    assert ("PROJ", "Earth") in bodies
    assert ("IAU_2015", "Moon") in bodies
    assert epsg.get_celestial_body_list() == []
    assert any_factory.identify_body_from_semi_major_axis(6378137.0, 1e-5) == "Earth"
    assert any_factory.identify_body_from_semi_major_axis(1737400.0, 1e-5) == "Moon"
    assert any_factory.identify_body_from_semi_major_axis(6377397.155, 1e-3) == "Earth"
    with pytest.raises(FactoryException):
        any_factory.identify_body_from_semi_major_axis(1.0, 1e-5)


def test_official_name_from_alias(epsg):
    assert epsg.get_official_name_from_alias("GCS_WGS_1984") == ("WGS 84", "geodetic_crs", "EPSG", "4326")
    assert epsg.get_official_name_from_alias("D_WGS_1984", table_name="geodetic_datum", source="ESRI") == (
        "World Geodetic System 1984 ensemble",
        "geodetic_datum",
        "EPSG",
        "6326",
    )
    assert epsg.get_official_name_from_alias("D_WGS_1984", source="OGC") == ("", None, None, None)
    assert epsg.get_official_name_from_alias("GCS_WGS_1984", table_name="projected_crs")[0] == ""
    assert epsg.get_official_name_from_alias("gcs wgs 1984")[0] == ""
    assert epsg.get_official_name_from_alias("gcs wgs 1984", try_equivalent_name_spelling=True)[3] == "4326"


def test_area_of_use_from_name(epsg):
    assert epsg.list_area_of_use_from_name("Czechia") == [("EPSG", "1079")]
    assert epsg.list_area_of_use_from_name("czechia") == []
    assert epsg.list_area_of_use_from_name("world", approximate=True) == [("EPSG", "1262"), ("EPSG", "2060")]
    assert epsg.list_area_of_use_from_name("100%", approximate=True) == []


def test_point_motion_operations_for_crs(epsg):
    crs = epsg.create_geodetic_crs("8254")
    ops = epsg.get_point_motion_operations_for(crs)
    assert [o.identifier for o in ops] == [Identifier("EPSG", "9483")]
    assert ops[0].file_name("1050") == "NAD83v70VG.gvb"
    renamed = epsg.get_point_motion_operations_for(crs, use_proj_alternative_grid_names=True)
    assert renamed[0].file_name("1050") == "ca_nrc_NAD83v70VG.tif"
    assert epsg.get_point_motion_operations_for(epsg.create_geodetic_crs("4326")) == []


def test_create_from_crs_codes(epsg):
    ops = epsg.create_from_crs_codes("4156", "4326")
    assert [o.identifier.code for o in ops] == ["1623", "1622"]
    assert [o.identifier.code for o in epsg.create_from_crs_codes("4156", "4326", discard_superseded=True)] == ["1623"]


def test_create_from_crs_codes_with_intermediates(epsg):
    ops = epsg.create_from_crs_codes_with_intermediates("EPSG", "4818", "EPSG", "4326")
    assert ops
    assert ops[0].name == "S-JTSK (Ferro) to S-JTSK (1) + S-JTSK to WGS 84 (2)"
    assert epsg.create_from_crs_codes_with_intermediates("EPSG", "4326", "EPSG", "4326") == []


def test_factory_needs_authority_for_object_lookup(any_factory):
    with pytest.raises(FactoryException):
        any_factory.create_coordinate_reference_system("4326")


def test_closed_context_refuses_queries():
    ctx = RegistryContext.in_memory()
    ctx.close()
    assert not ctx.is_open
    with pytest.raises(FactoryException):
        ctx.query("SELECT 1")


def test_open_rejects_missing_file(tmp_path):
    with pytest.raises(FactoryException):
        RegistryContext(str(tmp_path / "missing.db")).open()
