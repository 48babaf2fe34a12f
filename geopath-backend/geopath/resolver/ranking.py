from __future__ import annotations

import logging
import math
from typing import Any, List, Optional, Sequence, Tuple

from geopath.geodesy.common import Identifier
from geopath.geodesy.operation import CoordinateOperation, OperationKind

from .context import SearchContext, SpatialCriterion

logger = logging.getLogger(__name__)


def _record(op: CoordinateOperation) -> CoordinateOperation:
    return op.inverse_of if op.inverse_of is not None else op


def operation_id(op: CoordinateOperation) -> Optional[Identifier]:
    return _record(op).identifier


def deduplicate(operations: Sequence[CoordinateOperation]) -> List[CoordinateOperation]:
    seen = set()
    out = []
    for op in operations:
        key = op.identity_key()
        if key in seen:
            continue
        seen.add(key)
        out.append(op)
    return out


def filter_spatial(operations: Sequence[CoordinateOperation], context: SearchContext) -> List[CoordinateOperation]:
    """Operations of unknown extent always pass."""
    area = context.area_bbox()
    if area is None:
        return list(operations)
    out = []
    for op in operations:
        bbox = op.extent_bbox()
        if bbox is None:
            out.append(op)
        elif context.spatial_criterion == SpatialCriterion.STRICT_CONTAINMENT:
            if bbox.contains(area):
                out.append(op)
        elif bbox.intersects(area):
            out.append(op)
    return out


def _is_conversion_only(op: CoordinateOperation) -> bool:
    if op.kind == OperationKind.CONCATENATED:
        return all(_is_conversion_only(m) for m in op.operations)
    return op.kind == OperationKind.CONVERSION


def filter_accuracy(operations: Sequence[CoordinateOperation], context: SearchContext) -> List[CoordinateOperation]:
    if context.desired_accuracy is None:
        return list(operations)
    out = []
    for op in operations:
        if _is_conversion_only(op):
            out.append(op)
        elif op.accuracy is not None and op.accuracy >= 0 and op.accuracy <= context.desired_accuracy:
            out.append(op)
    return out


def discard_superseded(operations: Sequence[CoordinateOperation], factory: Any) -> List[CoordinateOperation]:
    """Drop an operation when one of its registered replacements is also a live candidate."""
    live = {operation_id(op) for op in operations if not op.is_deprecated()}
    live.discard(None)
    out = []
    for op in operations:
        ident = operation_id(op)
        if ident is not None and any(r in live for r in factory.replacements_of(ident)):
            logger.debug("superseded: %s", ident)
            continue
        out.append(op)
    return out


def sort_key(op: CoordinateOperation, index: int) -> Tuple[Any, ...]:
    bbox = op.extent_bbox()
    if bbox is None or bbox.is_world():
        area = (1, 0.0)
    else:
        area = (0, bbox.surface_area())
    if _is_conversion_only(op):
        accuracy = 0.0
    elif op.accuracy is None or op.accuracy <= 0:
        accuracy = math.inf
    else:
        accuracy = op.accuracy
    return (op.is_deprecated(), area, accuracy, index)


def rank(operations: Sequence[CoordinateOperation]) -> List[CoordinateOperation]:
    """Non-deprecated first, then smaller area of use, better accuracy, insertion order."""
    order = sorted(range(len(operations)), key=lambda i: sort_key(operations[i], i))
    return [operations[i] for i in order]


__all__ = [
    "deduplicate",
    "filter_spatial",
    "filter_accuracy",
    "discard_superseded",
    "sort_key",
    "rank",
    "operation_id",
]
