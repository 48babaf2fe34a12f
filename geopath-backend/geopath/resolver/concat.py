"""Concatenated operation construction.

Shared by registry concatenation records and pivot synthesis. Members are
oriented against a running "current" CRS so that every adjacent pair
shares a literal CRS: a member registered in the opposite direction is
inverted, a conversion template (no source/target) is bound from the
chain, and a missing geographic/geocentric hop is bridged with a
synthesized conversion.
"""
from __future__ import annotations

import dataclasses
import logging
from typing import Any, List, Optional, Sequence

from geopath.geodesy.common import Criterion
from geopath.geodesy.crs import VerticalCRS
from geopath.geodesy.errors import FactoryException
from geopath.geodesy.operation import CoordinateOperation, OperationKind

from .derived import geodetic_conversion

logger = logging.getLogger(__name__)

HEIGHT_DEPTH_REVERSAL = "1068"


def same_crs(a: Any, b: Any) -> bool:
    """Literal CRS identity: shared identifier, else structural equivalence."""
    if a is None or b is None:
        return False
    if a is b:
        return True
    if a.identifiers and b.identifiers:
        return a.shares_identifier_with(b)
    return a.is_equivalent_to(b, Criterion.EQUIVALENT)


def combined_accuracy(operations: Sequence[CoordinateOperation]) -> Optional[float]:
    """Sum of member accuracies; unknown when any transformation's accuracy is."""
    total = 0.0
    for op in operations:
        if op.kind == OperationKind.CONVERSION:
            continue
        if op.accuracy is None or op.accuracy < 0:
            return None
        total += op.accuracy
    return total


def _bind_template(
    op: CoordinateOperation,
    current: Any,
    is_last: bool,
    target_crs: Any,
    factory: Any,
) -> CoordinateOperation:
    if is_last:
        target = target_crs
    elif op.method_code == HEIGHT_DEPTH_REVERSAL and isinstance(current, VerticalCRS) and factory is not None:
        target = factory.find_vertical_crs_flipped(current)
    else:
        target = None
    if target is None:
        raise FactoryException(f"Cannot infer the target CRS of '{op.name}' within the concatenation")
    return dataclasses.replace(op, source_crs=current, target_crs=target, inverse_of=None)


def build_concatenated(
    operations: Sequence[CoordinateOperation],
    source_crs: Any,
    target_crs: Any,
    factory: Any = None,
    **meta: Any,
) -> CoordinateOperation:
    if len(operations) < 2:
        raise FactoryException("A concatenated operation needs at least 2 steps")
    chain: List[CoordinateOperation] = []
    current = source_crs
    for i, op in enumerate(operations):
        is_last = i == len(operations) - 1
        if op.source_crs is None and op.target_crs is None:
            op = _bind_template(op, current, is_last, target_crs, factory)
        elif not same_crs(op.source_crs, current) and not same_crs(op.target_crs, current):
            for end in (op.source_crs, op.target_crs):
                bridge = geodetic_conversion(current, end)
                if bridge is not None:
                    chain.append(bridge)
                    current = end
                    break
            else:
                raise FactoryException(
                    f"Step {i + 1} '{op.name}' does not chain from {current} in concatenation to {target_crs}"
                )
        if not same_crs(op.source_crs, current):
            op = op.inverse()
        chain.append(op)
        current = op.target_crs

    if not same_crs(current, target_crs):
        bridge = geodetic_conversion(current, target_crs)
        if bridge is None:
            raise FactoryException(f"Concatenation ends at {current}, expected {target_crs}")
        chain.append(bridge)

    meta.setdefault("name", " + ".join(op.name for op in operations))
    if "accuracy" not in meta or meta["accuracy"] is None:
        meta["accuracy"] = combined_accuracy(chain)
    logger.debug("concatenation %r: %d steps", meta["name"], len(chain))
    return CoordinateOperation(
        kind=OperationKind.CONCATENATED,
        operations=tuple(chain),
        source_crs=source_crs,
        target_crs=target_crs,
        **meta,
    )


__all__ = ["build_concatenated", "same_crs", "combined_accuracy"]
