from __future__ import annotations

import logging
from typing import Any, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from geopath.cache import cache_key
from geopath.composer.compose import compose
from geopath.composer.steps import Pipeline
from geopath.geodesy.crs import CRS, ProjectedCRS, SingleCRS
from geopath.geodesy.errors import FactoryException, NoSuchAuthorityCodeException
from geopath.geodesy.operation import CoordinateOperation
from geopath.registry.factory import AuthorityFactory
from geopath.resolver.ranking import operation_id
from geopath.resolver.search import CoordinateOperationResolver
from geopath.schemas import (
    CRSSummary,
    OperationSummary,
    PipelineResponse,
    ResolveRequest,
    ResolveResponse,
    TransformRequest,
    TransformResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_factory(request: Request) -> AuthorityFactory:
    registry = getattr(request.app.state, "registry", None)
    if registry is None or not registry.is_open:
        raise HTTPException(status_code=503, detail="Registry not configured (set REGISTRY_DB_PATH)")
    return AuthorityFactory(registry, None)


def _load_crs(factory: AuthorityFactory, reference: str) -> CRS:
    auth, _, code = reference.partition(":")
    try:
        return factory.for_authority(auth).create_coordinate_reference_system(code)
    except NoSuchAuthorityCodeException as e:
        raise HTTPException(status_code=404, detail=str(e))
    except FactoryException as e:
        raise HTTPException(status_code=422, detail=f"Cannot build {reference}: {e}")


def _crs_summary(crs: CRS) -> CRSSummary:
    bbox = crs.domain_bbox()
    datum = None
    if isinstance(crs, SingleCRS):
        datum = crs.datum_or_ensemble.name
    elif isinstance(crs, ProjectedCRS):
        datum = crs.base_crs.datum_or_ensemble.name
    cs = crs.coordinate_system
    return CRSSummary(
        id=str(crs.identifier) if crs.identifier else "",
        name=crs.name,
        kind=crs.kind,
        deprecated=crs.deprecated,
        area_of_use=crs.area_of_use(),
        bbox=(bbox.west, bbox.south, bbox.east, bbox.north) if bbox is not None else None,
        datum=datum,
        axes=[f"{a.name} ({a.direction.value}, {a.unit.name})" for a in cs.axes] if cs is not None else [],
    )


def _operation_summary(op: CoordinateOperation, factory: AuthorityFactory) -> Tuple[OperationSummary, Optional[Pipeline]]:
    ident = operation_id(op)
    pipeline: Optional[Pipeline] = None
    error = None
    try:
        pipeline = compose(op, factory.lookup_grid_alternative)
    except FactoryException as e:
        error = str(e)
    summary = OperationSummary(
        id=str(ident) if ident is not None else None,
        name=op.name,
        kind=op.kind.value,
        method=op.method.name if op.method is not None else None,
        accuracy=op.accuracy,
        area_of_use=op.area_of_use(),
        deprecated=op.is_deprecated(),
        ballpark=op.ballpark,
        steps=[m.name for m in op.operations],
        pipeline=pipeline.to_proj_string() if pipeline is not None else None,
        error=error,
    )
    return summary, pipeline


def _resolve(factory: AuthorityFactory, req: ResolveRequest) -> Tuple[CRS, CRS, List[CoordinateOperation]]:
    source = _load_crs(factory, req.source_crs)
    target = _load_crs(factory, req.target_crs)
    resolver = CoordinateOperationResolver(factory, req.search_context())
    try:
        ops = resolver.resolve(source, target)
    except FactoryException as e:
        logger.exception("resolution failed", extra={"source_crs": req.source_crs, "target_crs": req.target_crs})
        raise HTTPException(status_code=422, detail=f"Resolution failed: {e}")
    logger.info(
        "resolved",
        extra={"source_crs": req.source_crs, "target_crs": req.target_crs, "candidates": len(ops)},
    )
    return source, target, ops


def _best(factory: AuthorityFactory, req: ResolveRequest) -> Tuple[Optional[OperationSummary], Pipeline]:
    """First ranked candidate that composes; a no-op for equivalent endpoints."""
    source, target, ops = _resolve(factory, req)
    if not ops:
        if CoordinateOperationResolver.equivalent(source, target):
            return None, Pipeline()
        raise HTTPException(status_code=404, detail=f"No operation from {req.source_crs} to {req.target_crs}")
    errors = []
    for op in ops:
        summary, pipeline = _operation_summary(op, factory)
        if pipeline is not None:
            return summary, pipeline
        errors.append(f"{op.name}: {summary.error}")
    raise HTTPException(status_code=422, detail="No candidate could be composed: " + "; ".join(errors))


@router.get("/crs/{authority}/{code}", response_model=CRSSummary)
async def get_crs(authority: str, code: str, factory: AuthorityFactory = Depends(get_factory)) -> CRSSummary:
    crs = await run_in_threadpool(_load_crs, factory, f"{authority.upper()}:{code}")
    return _crs_summary(crs)


@router.post("/operations/resolve", response_model=ResolveResponse)
async def resolve_operations(
    req: ResolveRequest, request: Request, factory: AuthorityFactory = Depends(get_factory)
) -> ResolveResponse:
    """Ranked candidate operations, each with its PROJ pipeline (or why none could be built)."""
    cache = getattr(request.app.state, "cache", None)
    key = None
    if cache is not None:
        fingerprint = getattr(request.app.state, "registry_fingerprint", "")
        key = cache_key("resolve", {"registry": fingerprint, "request": req.model_dump(mode="json")})
        cached = await cache.get_json(key)
        if cached:
            try:
                return ResolveResponse(**cached)
            except ValueError:
                logger.warning("ignoring malformed cache entry %s", key)

    def work() -> ResolveResponse:
        _, _, ops = _resolve(factory, req)
        return ResolveResponse(
            source_crs=req.source_crs,
            target_crs=req.target_crs,
            candidates=[_operation_summary(op, factory)[0] for op in ops],
        )

    resp = await run_in_threadpool(work)
    if cache is not None and key:
        await cache.set_json(key, resp.model_dump(mode="json"))
    return resp


@router.post("/operations/pipeline", response_model=PipelineResponse)
async def operation_pipeline(req: ResolveRequest, factory: AuthorityFactory = Depends(get_factory)) -> PipelineResponse:
    summary, pipeline = await run_in_threadpool(_best, factory, req)
    return PipelineResponse(
        source_crs=req.source_crs,
        target_crs=req.target_crs,
        operation=summary,
        pipeline=pipeline.to_proj_string(),
        steps=[s.render() for s in pipeline.steps],
        inverse=pipeline.inverse().to_proj_string(),
    )


@router.post("/operations/transform", response_model=TransformResponse)
async def transform_points(req: TransformRequest, factory: AuthorityFactory = Depends(get_factory)) -> TransformResponse:
    """Run the best pipeline on each point; a failing point does not fail the batch."""

    def work() -> Tuple[Optional[OperationSummary], Pipeline, Any]:
        summary, pipeline = _best(factory, req)
        try:
            return summary, pipeline, pipeline.transform_points(req.points)
        except FactoryException as e:
            raise HTTPException(status_code=422, detail=str(e))

    summary, pipeline, (results, errors) = await run_in_threadpool(work)
    return TransformResponse(
        source_crs=req.source_crs,
        target_crs=req.target_crs,
        operation=summary,
        pipeline=pipeline.to_proj_string(),
        results=[list(r) if r is not None else None for r in results],
        errors=errors,
    )
