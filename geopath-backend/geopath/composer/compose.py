"""Operation -> flat PROJ pipeline."""
from __future__ import annotations

import logging
from typing import Any, List

from geopath.geodesy.crs import CompoundCRS, GeodeticCRS, GeographicCRS, ProjectedCRS, VerticalCRS
from geopath.geodesy.errors import InvalidOperationError
from geopath.geodesy.operation import CoordinateOperation, OperationKind

from .normalize import invert_steps, linear_in, normalize_in, normalize_out
from .signatures import Domain, GridLookup, signature_for
from .steps import Pipeline, Step, elide, parse_proj_string

logger = logging.getLogger(__name__)

_PUSH_V3 = Step("push", (("v_3", None),))


def _projected_to_base(crs: ProjectedCRS, grids: GridLookup) -> List[Step]:
    return compose(crs.deriving_conversion(), grids).inverse().steps


def _geodetic(crs: Any) -> Any:
    return crs.base_crs if isinstance(crs, ProjectedCRS) else crs


def _is_geog2d(crs: Any) -> bool:
    crs = _geodetic(crs)
    return isinstance(crs, GeographicCRS) and not crs.is_3d


def _plain_in(crs: Any, grids: GridLookup, prime_meridian: bool = False) -> List[Step]:
    if isinstance(crs, ProjectedCRS):
        return _projected_to_base(crs, grids) + normalize_in(crs.base_crs, prime_meridian)
    return normalize_in(crs, prime_meridian)


def _cartesian_in(crs: Any, push: bool, grids: GridLookup) -> List[Step]:
    steps: List[Step] = []
    if isinstance(crs, ProjectedCRS):
        steps += _projected_to_base(crs, grids)
        crs = crs.base_crs
    if isinstance(crs, GeographicCRS):
        steps += normalize_in(crs, prime_meridian=True)
        if push:
            steps.append(_PUSH_V3)
        steps.append(Step("cart", crs.ellipsoid.proj_params()))
        return steps
    if isinstance(crs, GeodeticCRS):
        return steps + linear_in(crs)
    raise InvalidOperationError(f"'{crs}' has no geocentric representation")


def _wrap(op: CoordinateOperation, domain: Domain, kernel: List[Step], grids: GridLookup) -> List[Step]:
    src, tgt = op.source_crs, op.target_crs
    if domain == Domain.RAW or (src is None and tgt is None):
        return kernel
    if domain == Domain.CARTESIAN:
        push = _is_geog2d(src) and _is_geog2d(tgt)
        head = _cartesian_in(src, push, grids) if src is not None else []
        tail = invert_steps(_cartesian_in(tgt, push, grids)) if tgt is not None else []
        return head + kernel + tail
    if domain == Domain.PROJECTION:
        return normalize_in(src) + kernel + normalize_out(tgt)
    return _plain_in(src, grids) + kernel + invert_steps(_plain_in(tgt, grids))


def _ballpark(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    src, tgt = _geodetic(op.source_crs), _geodetic(op.target_crs)
    geocentric = [c for c in (src, tgt) if isinstance(c, GeodeticCRS) and not isinstance(c, GeographicCRS)]
    if geocentric and len(geocentric) < 2:
        return _wrap(op, Domain.CARTESIAN, [], grids)
    if isinstance(src, (VerticalCRS, CompoundCRS)) or isinstance(tgt, (VerticalCRS, CompoundCRS)):
        return _plain_in(op.source_crs, grids) + invert_steps(_plain_in(op.target_crs, grids))
    return _plain_in(op.source_crs, grids, True) + invert_steps(_plain_in(op.target_crs, grids, True))


def _steps(op: CoordinateOperation, grids: GridLookup) -> List[Step]:
    if op.wrapped and op.inverse_of is not None:
        return compose(op.inverse_of, grids).inverse().steps
    if op.kind == OperationKind.CONCATENATED:
        steps: List[Step] = []
        for member in op.operations:
            steps += _steps(member, grids)
        return steps
    if op.ballpark:
        return _ballpark(op, grids)
    if op.text_definition is not None:
        return parse_proj_string(op.text_definition)
    signature = signature_for(op)
    signature.validate(op)
    return _wrap(op, signature.domain, signature.build(op, grids), grids)


def compose(operation: CoordinateOperation, grid_names: GridLookup = None) -> Pipeline:
    """Flatten ``operation`` into normalized, elided PROJ steps.

    ``grid_names`` maps a registry grid file name to its PROJ alternative,
    e.g. ``AuthorityFactory.lookup_grid_alternative``.
    """
    pipeline = Pipeline(elide(_steps(operation, grid_names)))
    logger.debug("composed %r: %d steps", operation.name, len(pipeline.steps))
    return pipeline


__all__ = ["compose"]
