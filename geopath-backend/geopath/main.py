from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from geopath.cache import _NoopCache, build_cache_from_env
from geopath.geodesy.errors import FactoryException
from geopath.logging_setup import configure_logging, logging_middleware
from geopath.registry.context import RegistryContext
from geopath.routes import router

logger = logging.getLogger(__name__)


def _registry_from_env() -> Optional[RegistryContext]:
    """Open REGISTRY_DB_PATH read-only; None (endpoints answer 503) when unset or unusable."""
    path = os.getenv("REGISTRY_DB_PATH")
    if not path:
        logger.warning("REGISTRY_DB_PATH not set; registry endpoints disabled")
        return None
    try:
        return RegistryContext(path).open()
    except FactoryException as e:
        logger.error("registry unavailable: %s", e)
        return None


def _fingerprint(registry: Optional[RegistryContext]) -> str:
    if registry is None:
        return ""
    if registry.path and os.path.isfile(registry.path):
        st = os.stat(registry.path)
        return f"{registry.path}:{st.st_size}:{int(st.st_mtime)}"
    return f"memory:{id(registry)}"


def create_app(registry: Optional[RegistryContext] = None) -> FastAPI:
    configure_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.cache = await build_cache_from_env()
        try:
            yield
        finally:
            await app.state.cache.close()

    app = FastAPI(title="geopath", lifespan=lifespan)
    app.middleware("http")(logging_middleware)

    if registry is None:
        registry = _registry_from_env()
    app.state.registry = registry
    app.state.registry_fingerprint = _fingerprint(registry)
    app.state.cache = _NoopCache()

    @app.get("/health")
    def health():
        return {"status": "ok", "registry": bool(registry is not None and registry.is_open)}

    app.include_router(router)
    return app


app = create_app()
