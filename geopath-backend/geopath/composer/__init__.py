"""Operation pipeline composition and execution.

Modules:
 - steps: Step / Pipeline, elision, PROJ pipeline text
 - normalize: CRS axis order, unit and prime meridian normalization
 - signatures: kernel signatures keyed by EPSG method code
 - compose: CoordinateOperation -> Pipeline
 - execute: whole-pipeline execution through pyproj, per-point failures
"""

__all__ = [
    "steps",
    "normalize",
    "signatures",
    "compose",
    "execute",
]
