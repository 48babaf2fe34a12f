"""Numeric execution of composed pipelines through PROJ.

The step list is handed to pyproj as one ``+proj=pipeline`` definition.
Ordinates pass through untouched (``radians=True``): the pipeline's own
``unitconvert`` steps decide what units it expects. Missing inputs are
padded with ``z = 0`` and an unknown time.
"""
from __future__ import annotations

import functools
import logging
import math
import threading
from typing import Dict, List, Optional, Sequence, Tuple

from pyproj import Transformer
from pyproj.exceptions import ProjError

from geopath.geodesy.errors import CoordinateTransformOutsideDomainError, InvalidOperationError

from .steps import Step

logger = logging.getLogger(__name__)

# Transformer objects are not shared between threads
_local = threading.local()


def pipeline_definition(steps: Sequence[Step]) -> str:
    if not steps:
        return "+proj=noop"
    return "+proj=pipeline " + " ".join(f"+step {s.render()}" for s in steps)


def _build(definition: str) -> Transformer:
    try:
        return Transformer.from_pipeline(definition)
    except ProjError as exc:
        raise InvalidOperationError(f"PROJ rejected '{definition}': {exc}") from exc


def transformer_for(definition: str) -> Transformer:
    build = getattr(_local, "build", None)
    if build is None:
        build = _local.build = functools.lru_cache(maxsize=128)(_build)
    return build(definition)


def _transform(transformer: Transformer, point: Sequence[float]) -> Tuple[float, ...]:
    if not 2 <= len(point) <= 4:
        raise ValueError(f"expected 2 to 4 ordinates, got {len(point)}")
    x, y = float(point[0]), float(point[1])
    z = float(point[2]) if len(point) > 2 else 0.0
    t = float(point[3]) if len(point) > 3 else math.inf
    try:
        out = transformer.transform(x, y, z, t, radians=True, errcheck=True)
    except ProjError as exc:
        raise CoordinateTransformOutsideDomainError(f"{tuple(point)}: {exc}") from exc
    if not all(math.isfinite(v) for v in out[:3]):
        raise CoordinateTransformOutsideDomainError(f"{tuple(point)}: no result")
    return tuple(out[: len(point)])


def run(steps: Sequence[Step], point: Sequence[float]) -> Tuple[float, ...]:
    return _transform(transformer_for(pipeline_definition(steps)), point)


def run_many(
    steps: Sequence[Step], points: Sequence[Sequence[float]]
) -> Tuple[List[Optional[Tuple[float, ...]]], Dict[int, str]]:
    """Transform each point independently; failures are reported per index.

    A pipeline PROJ cannot instantiate at all raises InvalidOperationError
    instead.
    """
    transformer = transformer_for(pipeline_definition(steps))
    results: List[Optional[Tuple[float, ...]]] = []
    errors: Dict[int, str] = {}
    for i, point in enumerate(points):
        try:
            results.append(_transform(transformer, point))
        except (CoordinateTransformOutsideDomainError, ValueError) as exc:
            logger.debug("point %d failed: %s", i, exc)
            results.append(None)
            errors[i] = str(exc)
    return results, errors


__all__ = ["run", "run_many", "pipeline_definition", "transformer_for"]
