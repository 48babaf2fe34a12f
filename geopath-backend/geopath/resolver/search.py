"""Coordinate operation resolver.

Three phases, each free of registry writes:

- DIRECT_LOOKUP: registered operations between the pair, in either
  direction; reverse hits are inverted. Projected endpoints are decomposed
  through their base CRS and same-datum geodetic pairs get a synthesized
  conversion when nothing is registered.
- PIVOT_SEARCH: one intermediate CRS, explicit list first, else every CRS
  one registered hop away from either endpoint. A failing pivot is logged
  and skipped.
- RANK_AND_FILTER: dedup, area and accuracy filters, supersession, sort.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

from geopath.geodesy.common import Criterion, Identifier
from geopath.geodesy.crs import CRS, ProjectedCRS
from geopath.geodesy.errors import FactoryException
from geopath.geodesy.operation import CoordinateOperation

from .concat import build_concatenated, same_crs
from .context import IntermediateCRSUse, SearchContext
from .derived import ballpark_transformation, geodetic_conversion, towgs84_transformation
from .ranking import deduplicate, discard_superseded, filter_accuracy, filter_spatial, rank

logger = logging.getLogger(__name__)


class CoordinateOperationResolver:
    def __init__(self, factory: Any, context: Optional[SearchContext] = None):
        self.factory = factory
        self.context = context or SearchContext()

    # --- public --------------------------------------------------------------

    def resolve(self, source: CRS, target: CRS) -> List[CoordinateOperation]:
        """Ranked candidate operations from ``source`` to ``target``.

        An empty list means either identity (equivalent endpoints, when
        allowed) or that no path exists and no ballpark fallback was allowed.
        """
        if self.context.allow_identity and self.equivalent(source, target):
            logger.debug("identity: %s == %s", source, target)
            return []
        candidates = self._candidates(source, target, depth=0)
        if not candidates and self.context.allow_ballpark:
            fallback = towgs84_transformation(source, target) or ballpark_transformation(source, target)
            logger.debug("no path from %s to %s, falling back to %s", source, target, fallback.name)
            candidates = [fallback]
        return self._rank_and_filter(candidates)

    def resolve_via_pivots(self, source: CRS, target: CRS) -> List[CoordinateOperation]:
        """Only the operations going through one intermediate CRS."""
        if self.equivalent(source, target):
            return []
        return self._rank_and_filter(self._pivot_search(source, target))

    # --- phases ----------------------------------------------------------------

    def _candidates(self, source: CRS, target: CRS, depth: int) -> List[CoordinateOperation]:
        logger.debug("DIRECT_LOOKUP %s -> %s", source, target)
        direct = self._direct(source, target, depth)
        use = self.context.intermediate_crs_use
        if use == IntermediateCRSUse.ALWAYS or (not direct and use == IntermediateCRSUse.IF_NO_DIRECT_TRANSFORMATION):
            return direct + self._pivot_search(source, target)
        return direct

    def _direct(self, source: CRS, target: CRS, depth: int) -> List[CoordinateOperation]:
        ops = self._registered(source, target)
        if ops or not self.context.allow_derived_paths:
            return ops
        derived = geodetic_conversion(source, target)
        if derived is not None:
            return [derived]
        if depth == 0 and (isinstance(source, ProjectedCRS) or isinstance(target, ProjectedCRS)):
            return self._via_projected(source, target)
        return []

    def _ids(self, crs: CRS) -> List[Identifier]:
        if crs.identifiers:
            return list(crs.identifiers)
        found = [c.identifier for c in self.factory.identify_crs(crs) if c.identifier is not None]
        if found:
            logger.debug("identified %s as %s", crs.name, found[0])
        return found[:1]

    def _registered(self, source: CRS, target: CRS) -> List[CoordinateOperation]:
        ops: List[CoordinateOperation] = []
        target_ids = self._ids(target)
        for s in self._ids(source):
            for t in target_ids:
                ops.extend(self.factory.operations_between(s, t))
                ops.extend(op.inverse() for op in self.factory.operations_between(t, s))
        return ops

    def _via_projected(self, source: CRS, target: CRS) -> List[CoordinateOperation]:
        head: List[CoordinateOperation] = []
        tail: List[CoordinateOperation] = []
        src_base, tgt_base = source, target
        if isinstance(source, ProjectedCRS):
            src_base = source.base_crs
            head = [source.deriving_conversion().inverse()]
        if isinstance(target, ProjectedCRS):
            tgt_base = target.base_crs
            tail = [target.deriving_conversion()]

        if self.equivalent(src_base, tgt_base):
            middles: List[Optional[CoordinateOperation]] = [None]
        else:
            middles = list(self._candidates(src_base, tgt_base, depth=1))
            if not middles and self.context.allow_ballpark:
                middles = [towgs84_transformation(src_base, tgt_base) or ballpark_transformation(src_base, tgt_base)]
        results = []
        for middle in middles:
            steps = head + ([middle] if middle is not None else []) + tail
            if len(steps) == 1:
                results.append(steps[0])
                continue
            results.append(
                build_concatenated(
                    steps,
                    source,
                    target,
                    factory=self.factory,
                    name=" + ".join(s.name for s in steps),
                    usages=middle.usages if middle is not None else (),
                )
            )
        return results

    def _pivots(self, source: CRS, target: CRS) -> List[CRS]:
        pivots: List[CRS] = []
        if self.context.intermediate_crs:
            for auth, code in self.context.pivot_ids():
                try:
                    pivots.append(self.factory.for_authority(auth).create_coordinate_reference_system(code))
                except FactoryException as exc:
                    logger.warning("intermediate CRS %s:%s skipped: %s", auth, code, exc)
            return pivots
        seen = set(self._ids(source)) | set(self._ids(target))
        for ident in [i for crs in (source, target) for s in self._ids(crs) for i in self.factory.crs_reachable_from(s)]:
            if ident in seen:
                continue
            seen.add(ident)
            try:
                pivots.append(self.factory.for_authority(ident.authority).create_coordinate_reference_system(ident.code))
            except FactoryException as exc:
                logger.warning("pivot %s skipped: %s", ident, exc)
        return pivots

    def _pivot_search(self, source: CRS, target: CRS) -> List[CoordinateOperation]:
        logger.debug("PIVOT_SEARCH %s -> %s", source, target)
        results: List[CoordinateOperation] = []
        for pivot in self._pivots(source, target):
            if same_crs(pivot, source) or same_crs(pivot, target):
                continue
            try:
                first = self._direct(source, pivot, depth=1)
                second = self._direct(pivot, target, depth=1) if first else []
                for a in first:
                    for b in second:
                        results.append(
                            build_concatenated([a, b], source, target, factory=self.factory, name=f"{a.name} + {b.name}")
                        )
            except FactoryException as exc:
                logger.warning("pivot %s skipped: %s", pivot, exc)
        logger.debug("PIVOT_SEARCH found %d candidates", len(results))
        return results

    def _rank_and_filter(self, candidates: Sequence[CoordinateOperation]) -> List[CoordinateOperation]:
        ops = deduplicate(candidates)
        count = len(ops)
        ops = filter_spatial(ops, self.context)
        ops = filter_accuracy(ops, self.context)
        if self.context.discard_superseded:
            ops = discard_superseded(ops, self.factory)
        ops = rank(ops)
        logger.debug("RANK_AND_FILTER %d -> %d candidates", count, len(ops))
        return ops

    @staticmethod
    def equivalent(a: CRS, b: CRS) -> bool:
        if a.identifiers and b.identifiers and a.shares_identifier_with(b):
            return True
        return a.is_equivalent_to(b, Criterion.EQUIVALENT)


__all__ = ["CoordinateOperationResolver"]
