"""Geodetic object model.

Modules:
 - common: identifiers, units, measures, extents, equivalence criteria
 - datum: ellipsoids, prime meridians, datums and datum ensembles
 - cs: axes and coordinate systems
 - crs: coordinate reference system variants
 - operation: coordinate operations (tagged by kind)
 - methods: EPSG method/parameter catalog and inverse rules
 - errors: exception taxonomy shared by every layer
"""

__all__ = [
    "common",
    "datum",
    "cs",
    "crs",
    "operation",
    "methods",
    "errors",
]
