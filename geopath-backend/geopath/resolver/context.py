from __future__ import annotations

import enum
import logging
import math
import os
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from geopath.geodesy.common import GeographicBoundingBox

logger = logging.getLogger(__name__)


def check_area(v: Optional[Tuple[float, float, float, float]]) -> Optional[Tuple[float, float, float, float]]:
    """west, south, east, north in degrees; west > east crosses the antimeridian."""
    if v is None:
        return v
    west, south, east, north = v
    if not (-90.0 <= south <= north <= 90.0):
        raise ValueError("area_of_interest latitudes must satisfy -90 <= south <= north <= 90")
    if not (-180.0 <= west <= 180.0 and -180.0 <= east <= 180.0):
        raise ValueError("area_of_interest longitudes must lie in [-180, 180]")
    return v


class SpatialCriterion(str, enum.Enum):
    STRICT_CONTAINMENT = "strict_containment"
    PARTIAL_INTERSECTION = "partial_intersection"


class IntermediateCRSUse(str, enum.Enum):
    ALWAYS = "always"
    NEVER = "never"
    IF_NO_DIRECT_TRANSFORMATION = "if_no_direct_transformation"


class SearchContext(BaseModel):
    """Knobs of one resolution request."""

    desired_accuracy: Optional[float] = Field(default=None, ge=0.0, description="Accuracy ceiling in metres")
    area_of_interest: Optional[Tuple[float, float, float, float]] = Field(
        default=None, description="west, south, east, north in degrees"
    )
    spatial_criterion: SpatialCriterion = SpatialCriterion.PARTIAL_INTERSECTION
    intermediate_crs_use: IntermediateCRSUse = IntermediateCRSUse.IF_NO_DIRECT_TRANSFORMATION
    intermediate_crs: List[str] = Field(default_factory=list, description="Pivot CRS as AUTH:CODE, tried in order")
    discard_superseded: bool = True
    allow_ballpark: bool = True
    allow_identity: bool = True
    # projected decomposition and synthesized geographic/geocentric conversions
    allow_derived_paths: bool = True

    @field_validator("area_of_interest")
    @classmethod
    def _check_area(cls, v: Optional[Tuple[float, float, float, float]]) -> Optional[Tuple[float, float, float, float]]:
        return check_area(v)

    @field_validator("intermediate_crs")
    @classmethod
    def _check_pivots(cls, v: List[str]) -> List[str]:
        for item in v:
            if ":" not in item:
                raise ValueError(f"intermediate CRS '{item}' must be AUTH:CODE")
        return v

    def area_bbox(self) -> Optional[GeographicBoundingBox]:
        if self.area_of_interest is None:
            return None
        return GeographicBoundingBox(*self.area_of_interest)

    def pivot_ids(self) -> List[Tuple[str, str]]:
        return [tuple(item.split(":", 1)) for item in self.intermediate_crs]  # type: ignore[misc]

    @classmethod
    def from_env(cls, **overrides) -> "SearchContext":
        """Defaults from RESOLVER_* environment variables; bad values are ignored."""
        values = {}
        flags = {
            "allow_ballpark": "RESOLVER_ALLOW_BALLPARK",
            "discard_superseded": "RESOLVER_DISCARD_SUPERSEDED",
        }
        for key, env_key in flags.items():
            raw = os.getenv(env_key)
            if raw is not None and raw.strip().lower() in ("1", "true", "yes", "0", "false", "no"):
                values[key] = raw.strip().lower() in ("1", "true", "yes")
        use = os.getenv("RESOLVER_INTERMEDIATE_USE")
        if use:
            try:
                values["intermediate_crs_use"] = IntermediateCRSUse(use.strip().lower())
            except ValueError:
                logger.warning("ignoring RESOLVER_INTERMEDIATE_USE=%r", use)
        acc = os.getenv("RESOLVER_DESIRED_ACCURACY")
        if acc:
            try:
                accuracy = float(acc)
                if not 0.0 <= accuracy < math.inf:
                    raise ValueError(acc)
                values["desired_accuracy"] = accuracy
            except ValueError:
                logger.warning("ignoring RESOLVER_DESIRED_ACCURACY=%r", acc)
        values.update(overrides)
        return cls(**values)


__all__ = ["SearchContext", "SpatialCriterion", "IntermediateCRSUse", "check_area"]
