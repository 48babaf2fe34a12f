"""Authority registry backed by an sqlite reference dataset.

Modules:
 - context: connection lifecycle, locks, entity cache, insertion session
 - factory: AuthorityFactory building geodesy objects from rows
 - object_types: logical object types and the tables behind them
 - text_definitions: PROJ string / WKT definitions parsed with pyproj
 - insertion: SQL statement generation for user-defined objects
"""

__all__ = [
    "context",
    "factory",
    "object_types",
    "text_definitions",
    "insertion",
]
