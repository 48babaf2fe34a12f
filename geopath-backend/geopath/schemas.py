from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from geopath.resolver.context import IntermediateCRSUse, SearchContext, SpatialCriterion, check_area


def _check_reference(v: str) -> str:
    auth, sep, code = v.strip().partition(":")
    if not sep or not auth or not code:
        raise ValueError(f"expected AUTHORITY:CODE, got '{v}'")
    return f"{auth.upper()}:{code}"


class CRSSummary(BaseModel):
    """A registry CRS as exposed over HTTP."""

    id: str
    name: str
    kind: str
    deprecated: bool = False
    area_of_use: Optional[str] = None
    bbox: Optional[Tuple[float, float, float, float]] = Field(
        default=None, description="west, south, east, north in degrees"
    )
    datum: Optional[str] = None
    axes: List[str] = Field(default_factory=list)


class ResolveRequest(BaseModel):
    source_crs: str = Field(..., description="AUTHORITY:CODE")
    target_crs: str = Field(..., description="AUTHORITY:CODE")
    desired_accuracy: Optional[float] = Field(default=None, ge=0.0)
    area_of_interest: Optional[Tuple[float, float, float, float]] = None
    spatial_criterion: SpatialCriterion = SpatialCriterion.PARTIAL_INTERSECTION
    intermediate_crs_use: IntermediateCRSUse = IntermediateCRSUse.IF_NO_DIRECT_TRANSFORMATION
    intermediate_crs: List[str] = Field(default_factory=list)
    discard_superseded: bool = True
    allow_ballpark: bool = True

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "source_crs": "EPSG:4326",
                "target_crs": "EPSG:32631",
                "area_of_interest": [0.0, 40.0, 6.0, 60.0],
            }
        }
    )

    @field_validator("source_crs", "target_crs")
    @classmethod
    def _reference(cls, v: str) -> str:
        return _check_reference(v)

    @field_validator("area_of_interest")
    @classmethod
    def _area(cls, v: Optional[Tuple[float, float, float, float]]) -> Optional[Tuple[float, float, float, float]]:
        return check_area(v)

    @field_validator("intermediate_crs")
    @classmethod
    def _references(cls, v: List[str]) -> List[str]:
        return [_check_reference(x) for x in v]

    def search_context(self) -> SearchContext:
        return SearchContext(
            desired_accuracy=self.desired_accuracy,
            area_of_interest=self.area_of_interest,
            spatial_criterion=self.spatial_criterion,
            intermediate_crs_use=self.intermediate_crs_use,
            intermediate_crs=self.intermediate_crs,
            discard_superseded=self.discard_superseded,
            allow_ballpark=self.allow_ballpark,
        )


class OperationSummary(BaseModel):
    id: Optional[str] = None
    name: str
    kind: str
    method: Optional[str] = None
    accuracy: Optional[float] = None
    area_of_use: Optional[str] = None
    deprecated: bool = False
    ballpark: bool = False
    steps: List[str] = Field(default_factory=list, description="member names of a concatenation")
    pipeline: Optional[str] = None
    error: Optional[str] = Field(default=None, description="why no pipeline could be composed")


class ResolveResponse(BaseModel):
    source_crs: str
    target_crs: str
    candidates: List[OperationSummary]


class PipelineResponse(BaseModel):
    source_crs: str
    target_crs: str
    operation: Optional[OperationSummary] = None
    pipeline: str
    steps: List[str]
    inverse: str


class TransformRequest(ResolveRequest):
    points: List[List[float]] = Field(..., min_length=1)

    @field_validator("points")
    @classmethod
    def _dimensions(cls, v: List[List[float]]) -> List[List[float]]:
        for i, p in enumerate(v):
            if not 2 <= len(p) <= 4:
                raise ValueError(f"point {i} has {len(p)} ordinates; expected 2 to 4")
        return v


class TransformResponse(BaseModel):
    source_crs: str
    target_crs: str
    operation: Optional[OperationSummary] = None
    pipeline: str
    results: List[Optional[List[float]]]
    errors: Dict[int, str] = Field(default_factory=dict)
