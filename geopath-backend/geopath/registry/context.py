"""Registry context: one connection to the reference dataset plus its caches.

Lifecycle is explicit: construct, ``open()``, optional insertion session,
queries, ``close()``. Several contexts may coexist (tests build in-memory
ones from ``schema.sql``).
"""
from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from geopath.geodesy.errors import FactoryException

logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")
MAX_DEFINITION_DEPTH = 16


class RegistryContext:
    def __init__(self, path: Optional[str] = None, connection: Optional[sqlite3.Connection] = None):
        self.path = path
        self._conn = connection
        if self._conn is not None:
            self._conn.row_factory = sqlite3.Row
        self._db_lock = threading.Lock()
        self._cache: Dict[Tuple[str, str, str], Any] = {}
        self._cache_lock = threading.Lock()
        self._local = threading.local()
        self._session: Any = None

    @classmethod
    def from_connection(cls, connection: sqlite3.Connection) -> "RegistryContext":
        return cls(connection=connection)

    @classmethod
    def in_memory(cls, *scripts: str) -> "RegistryContext":
        """Empty registry with the bundled schema, then each SQL script applied."""
        ctx = cls(connection=sqlite3.connect(":memory:", check_same_thread=False))
        ctx.create_structure()
        for script in scripts:
            ctx.execute_script(script)
        return ctx

    def open(self) -> "RegistryContext":
        if self._conn is not None:
            return self
        if not self.path or not os.path.isfile(self.path):
            raise FactoryException(f"Cannot open registry database: {self.path!r}")
        try:
            conn = sqlite3.connect(f"file:{self.path}?mode=ro", uri=True, check_same_thread=False)
            conn.execute("SELECT 1 FROM geodetic_crs LIMIT 1")
        except sqlite3.Error as exc:
            raise FactoryException(f"Invalid registry database {self.path!r}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        self._conn = conn
        logger.info("registry opened: %s", self.path)
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
        with self._cache_lock:
            self._cache.clear()
        self._session = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> "RegistryContext":
        return self.open()

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise FactoryException("Registry context is not open")
        return self._conn

    def create_structure(self) -> None:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as fh:
            self.execute_script(fh.read())

    def execute_script(self, sql: str) -> None:
        conn = self._connection()
        with self._db_lock:
            try:
                conn.executescript(sql)
            except sqlite3.Error as exc:
                raise FactoryException(f"Failed to apply SQL script: {exc}") from exc
        with self._cache_lock:
            self._cache.clear()

    def query(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        conn = self._connection()
        with self._db_lock:
            try:
                return conn.execute(sql, tuple(params)).fetchall()
            except sqlite3.Error as exc:
                raise FactoryException(f"Registry query failed: {exc}") from exc

    # Entity cache. The lock is only held around dict access, never while an
    # entity is being built, so nested lookups cannot deadlock.
    def get_cached(self, key: Tuple[str, str, str]) -> Any:
        with self._cache_lock:
            return self._cache.get(key)

    def put_cached(self, key: Tuple[str, str, str], value: Any) -> Any:
        with self._cache_lock:
            return self._cache.setdefault(key, value)

    def authorities(self) -> List[str]:
        rows = self.query(
            "SELECT auth_name FROM geodetic_crs UNION SELECT auth_name FROM projected_crs "
            "UNION SELECT auth_name FROM vertical_crs UNION SELECT auth_name FROM transformation "
            "UNION SELECT auth_name FROM conversion ORDER BY auth_name"
        )
        return [r[0] for r in rows]

    def grid_alternative(self, grid_name: str) -> Optional[Tuple[str, bool]]:
        rows = self.query(
            "SELECT proj_grid_name, inverse_direction FROM grid_alternatives WHERE original_grid_name = ?",
            (grid_name,),
        )
        if not rows:
            return None
        return rows[0]["proj_grid_name"], bool(rows[0]["inverse_direction"])

    @contextmanager
    def resolving(self, key: Tuple[str, str, str]) -> Iterator[None]:
        """Guard against objects defined, directly or not, in terms of themselves."""
        visited = getattr(self._local, "visited", None)
        if visited is None:
            visited = self._local.visited = []
        if key in visited:
            chain = " -> ".join(f"{a}:{c}" for _, a, c in visited + [key])
            raise FactoryException(f"Recursive definition detected: {chain}")
        if len(visited) >= MAX_DEFINITION_DEPTH:
            raise FactoryException("Definition nesting too deep")
        visited.append(key)
        try:
            yield
        finally:
            visited.pop()

    # Insertion session
    def start_insert_statements_session(self) -> None:
        from .insertion import InsertSession

        if self._session is not None:
            raise FactoryException("Insertion session already in progress")
        self._session = InsertSession(self)

    def stop_insert_statements_session(self) -> None:
        self._session = None

    def _require_session(self) -> Any:
        if self._session is None:
            raise FactoryException("No insertion session in progress")
        return self._session

    def get_insert_statements_for(self, obj: Any, authority: str, code: str, numeric_codes: bool = False) -> List[str]:
        return self._require_session().statements_for(obj, authority, code, numeric_codes)

    def suggests_code_for(self, obj: Any, authority: str, numeric_code: bool) -> str:
        from .insertion import suggest_code

        return suggest_code(self, obj, authority, numeric_code, self._session)

    def apply_insert_statements(self, statements: Sequence[str]) -> None:
        self.execute_script("\n".join(statements))


__all__ = ["RegistryContext", "SCHEMA_PATH"]
