"""Coordinate operations as a single tagged dataclass.

``kind`` distinguishes conversions, transformations, point motion operations
and concatenations. Inversion either builds the algebraic inverse of the
method (negated Helmert parameters, negated offsets, ...) or marks the record
as run backward (``wrapped``); in both cases ``inverse_of`` points at the
forward record so ``op.inverse().inverse()`` is the record itself.
"""
from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from .common import (
    Criterion,
    GeographicBoundingBox,
    IdentifiedObject,
    Measure,
    ObjectUsage,
    UnitOfMeasure,
    nearly_equal,
    normalize_name,
)
from .methods import A0, A1, A2, B0, B1, B2, PARAMETER_NAMES, MethodInfo, find_method


class OperationKind(enum.Enum):
    CONVERSION = "conversion"
    TRANSFORMATION = "transformation"
    POINT_MOTION = "point motion operation"
    CONCATENATED = "concatenated operation"


@dataclass(frozen=True, kw_only=True)
class OperationMethod(IdentifiedObject):
    @property
    def epsg_code(self) -> Optional[str]:
        return self.code_for("EPSG")

    @property
    def info(self) -> Optional[MethodInfo]:
        return find_method(self.epsg_code, self.name)

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, OperationMethod) or not self._metadata_equal(other, criterion):
            return False
        mine, theirs = self.info, other.info
        if mine is not None and theirs is not None:
            return mine.code == theirs.code
        return normalize_name(self.name) == normalize_name(other.name)


@dataclass(frozen=True, kw_only=True)
class OperationParameter(IdentifiedObject):
    @property
    def epsg_code(self) -> Optional[str]:
        return self.code_for("EPSG")

    def matches(self, code: Optional[str] = None, name: Optional[str] = None) -> bool:
        if code is not None and self.epsg_code == code:
            return True
        return name is not None and normalize_name(self.name) == normalize_name(name)


@dataclass(frozen=True)
class ParameterValue:
    parameter: OperationParameter
    value: Optional[Measure] = None
    file_name: Optional[str] = None

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, ParameterValue) or self.file_name != other.file_name:
            return False
        if self.value is None or other.value is None:
            return self.value is None and other.value is None
        return self.value.is_equivalent_to(other.value, criterion)

    def negated(self) -> "ParameterValue":
        if self.value is None:
            return self
        return dataclasses.replace(self, value=Measure(-self.value.value, self.value.unit))


def _find(values: Tuple[ParameterValue, ...], code: str) -> Optional[int]:
    for i, pv in enumerate(values):
        if pv.parameter.epsg_code == code:
            return i
    return None


def _invert_parameters(info: MethodInfo, values: Tuple[ParameterValue, ...]) -> Optional[Tuple[ParameterValue, ...]]:
    """Algebraic inverse of the parameter list, or None when not available."""
    if info.inverse == "self":
        return values
    out = list(values)
    if info.inverse == "negate":
        for code in info.params:
            idx = _find(values, code)
            if idx is not None:
                out[idx] = values[idx].negated()
        return tuple(out)
    if info.inverse == "reciprocal":
        for code in info.params:
            idx = _find(values, code)
            if idx is not None and values[idx].value is not None:
                v = values[idx].value
                if v.value == 0:
                    return None
                out[idx] = dataclasses.replace(values[idx], value=Measure(1.0 / v.value, v.unit))
        return tuple(out)
    if info.inverse == "affine":
        idx = {code: _find(values, code) for code in (A0, A1, A2, B0, B1, B2)}
        if any(i is None or values[i].value is None for i in idx.values()):
            return None
        a0, a1, a2, b0, b1, b2 = (values[idx[c]].value.value for c in (A0, A1, A2, B0, B1, B2))  # type: ignore
        det = a1 * b2 - a2 * b1
        if det == 0:
            return None
        na1, na2 = b2 / det, -a2 / det
        nb1, nb2 = -b1 / det, a1 / det
        new = {
            A1: na1,
            A2: na2,
            B1: nb1,
            B2: nb2,
            A0: -(na1 * a0 + na2 * b0),
            B0: -(nb1 * a0 + nb2 * b0),
        }
        for code, value in new.items():
            pv = values[idx[code]]  # type: ignore[index]
            out[idx[code]] = dataclasses.replace(pv, value=Measure(value, pv.value.unit))  # type: ignore
        return tuple(out)
    return None


@dataclass(frozen=True, kw_only=True)
class CoordinateOperation(ObjectUsage):
    kind: OperationKind
    method: Optional[OperationMethod] = None
    parameter_values: Tuple[ParameterValue, ...] = ()
    source_crs: Optional[Any] = None
    target_crs: Optional[Any] = None
    accuracy: Optional[float] = None
    version: Optional[str] = None
    operations: Tuple["CoordinateOperation", ...] = ()
    # PROJ pipeline literal of an opaque operation
    text_definition: Optional[str] = None
    inverse_of: Optional["CoordinateOperation"] = None
    wrapped: bool = False
    ballpark: bool = False

    def __post_init__(self) -> None:
        if self.kind == OperationKind.CONCATENATED:
            if len(self.operations) < 2:
                raise ValueError(f"concatenated operation '{self.name}' needs at least 2 steps")
        elif self.operations:
            raise ValueError(f"{self.kind.value} '{self.name}' cannot own member operations")

    @property
    def is_concatenated(self) -> bool:
        return self.kind == OperationKind.CONCATENATED

    @property
    def method_info(self) -> Optional[MethodInfo]:
        return self.method.info if self.method is not None else None

    @property
    def method_code(self) -> Optional[str]:
        info = self.method_info
        return info.code if info is not None else None

    @property
    def is_projection(self) -> bool:
        info = self.method_info
        return self.kind == OperationKind.CONVERSION and info is not None and info.is_projection

    def parameter(self, code: Optional[str] = None, name: Optional[str] = None) -> Optional[ParameterValue]:
        if name is None and code is not None:
            name = PARAMETER_NAMES.get(code)
        for pv in self.parameter_values:
            if pv.parameter.matches(code, name):
                return pv
        return None

    def parameter_value(self, code: str, unit: Optional[UnitOfMeasure] = None) -> Optional[float]:
        pv = self.parameter(code)
        if pv is None or pv.value is None:
            return None
        return pv.value.convert_to(unit) if unit is not None else pv.value.value

    def file_name(self, code: str) -> Optional[str]:
        pv = self.parameter(code)
        return pv.file_name if pv is not None else None

    def with_crs(self, source_crs: Any, target_crs: Any) -> "CoordinateOperation":
        return dataclasses.replace(self, source_crs=source_crs, target_crs=target_crs)

    def inverse(self) -> "CoordinateOperation":
        if self.inverse_of is not None:
            return self.inverse_of
        swapped = dict(
            name=f"Inverse of {self.name}",
            identifiers=(),
            source_crs=self.target_crs,
            target_crs=self.source_crs,
            inverse_of=self,
        )
        if self.ballpark:
            return dataclasses.replace(self, **swapped)
        info = self.method_info
        params = None
        if (
            self.kind != OperationKind.CONCATENATED
            and info is not None
            and not info.is_projection
            and not info.exact
            and self.text_definition is None
        ):
            params = _invert_parameters(info, self.parameter_values)
        if params is None:
            return dataclasses.replace(self, wrapped=True, **swapped)
        return dataclasses.replace(self, parameter_values=params, **swapped)

    def identity_key(self) -> Tuple[Any, ...]:
        """Key that is the same for a record and its inverse."""
        if self.inverse_of is not None:
            return self.inverse_of.identity_key()
        if self.identifiers:
            return ("id", str(self.identifiers[0]))
        if self.kind == OperationKind.CONCATENATED:
            return ("concat",) + tuple(op.identity_key() for op in self.operations)
        ends = sorted(str(getattr(c, "identifier", None) or getattr(c, "name", "")) for c in (self.source_crs, self.target_crs))
        return ("anon", self.kind.value, self.name.replace("Inverse of ", ""), *ends)

    def extent_bbox(self) -> Optional[GeographicBoundingBox]:
        if self.inverse_of is not None:
            return self.inverse_of.extent_bbox()
        own = self.domain_bbox()
        if own is not None or self.kind != OperationKind.CONCATENATED:
            return own
        result: Optional[GeographicBoundingBox] = None
        for op in self.operations:
            bbox = op.extent_bbox()
            if bbox is None:
                continue
            result = bbox if result is None else result.intersection(bbox)
            if result is None:
                break
        return result

    def is_deprecated(self) -> bool:
        if self.inverse_of is not None:
            return self.inverse_of.is_deprecated()
        return self.deprecated or any(op.is_deprecated() for op in self.operations)

    def is_equivalent_to(self, other: Any, criterion: Criterion = Criterion.STRICT) -> bool:
        if not isinstance(other, CoordinateOperation) or self.kind != other.kind:
            return False
        if not self._metadata_equal(other, criterion):
            return False
        if (self.inverse_of is None) != (other.inverse_of is None) or self.wrapped != other.wrapped:
            return False
        if self.inverse_of is not None:
            return self.inverse_of.is_equivalent_to(other.inverse_of, criterion)
        if criterion == Criterion.STRICT and (
            not nearly_equal(self.accuracy, other.accuracy) or self.version != other.version
        ):
            return False
        if self.kind == OperationKind.CONCATENATED:
            return len(self.operations) == len(other.operations) and all(
                a.is_equivalent_to(b, criterion) for a, b in zip(self.operations, other.operations)
            )
        if (self.method is None) != (other.method is None):
            return False
        if self.method is not None and not self.method.is_equivalent_to(other.method, criterion):
            return False
        if self.text_definition != other.text_definition:
            return False
        if len(self.parameter_values) != len(other.parameter_values):
            return False
        for pv in self.parameter_values:
            match = other.parameter(pv.parameter.epsg_code, pv.parameter.name)
            if match is None or not pv.is_equivalent_to(match, criterion):
                return False
        for mine, theirs in ((self.source_crs, other.source_crs), (self.target_crs, other.target_crs)):
            if mine is None or theirs is None:
                if (mine is None) != (theirs is None):
                    return False
            elif not mine.is_equivalent_to(theirs, criterion):
                return False
        return True


__all__ = [
    "OperationKind",
    "OperationMethod",
    "OperationParameter",
    "ParameterValue",
    "CoordinateOperation",
]
