"""Coordinate operation resolution.

Modules:
 - context: SearchContext and its enums
 - search: CoordinateOperationResolver (direct lookup, pivot search, ranking)
 - concat: concatenated operation construction and chain fix-up
 - derived: synthesized conversions, ballpark and towgs84 fallbacks
 - ranking: dedup, spatial/accuracy filters, supersession, sort order
"""

__all__ = [
    "context",
    "search",
    "concat",
    "derived",
    "ranking",
]
