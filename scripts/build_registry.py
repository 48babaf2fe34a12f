#!/usr/bin/env python3
"""Build an sqlite registry file from the bundled schema plus seed SQL files.

    python scripts/build_registry.py registry.db seed1.sql [seed2.sql ...]

The result is what REGISTRY_DB_PATH points the service at.
"""
from __future__ import annotations

import argparse
import logging
import os
import sqlite3
import sys
from typing import List

# Make geopath-backend importable when run from a checkout
THIS_DIR = os.path.dirname(__file__)
BACKEND_DIR = os.path.abspath(os.path.join(THIS_DIR, "..", "geopath-backend"))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

from geopath.geodesy.errors import FactoryException  # type: ignore
from geopath.logging_setup import configure_logging  # type: ignore
from geopath.registry.context import RegistryContext  # type: ignore
from geopath.registry.object_types import OBJECT_TABLES  # type: ignore

logger = logging.getLogger("build_registry")


def _read(path: str) -> str:
    with open(path, "r", encoding="utf-8") as fh:
        return fh.read()


def build(output: str, seeds: List[str], overwrite: bool = False) -> dict:
    """Create ``output`` and return row counts per object table."""
    if os.path.exists(output):
        if not overwrite:
            raise FileExistsError(f"{output} exists (use --overwrite)")
        os.unlink(output)
    ctx = RegistryContext(connection=sqlite3.connect(output))
    try:
        ctx.create_structure()
        for seed in seeds:
            logger.info("applying %s", seed)
            ctx.execute_script(_read(seed))
        counts = {table: ctx.query(f"SELECT COUNT(*) FROM {table}")[0][0] for table in OBJECT_TABLES}
    finally:
        ctx.close()
    return counts


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    ap.add_argument("output", help="sqlite file to create")
    ap.add_argument("seeds", nargs="*", help="SQL files applied in order after the schema")
    ap.add_argument("--overwrite", action="store_true", help="replace an existing output file")
    args = ap.parse_args(argv)

    os.environ.setdefault("ENABLE_JSON_LOGS", "0")
    configure_logging()
    try:
        counts = build(args.output, args.seeds, overwrite=args.overwrite)
    except (FileExistsError, OSError, FactoryException) as e:
        logger.error("%s", e)
        return 1
    for table, n in counts.items():
        if n:
            print(f"{table:32s} {n}")
    print(f"Wrote {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
