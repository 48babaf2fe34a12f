import os
import sys

import pytest

# Ensure imports like `from geopath.main import create_app` work when pytest is run from repo root
BACKEND_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

FIXTURES = os.path.join(os.path.dirname(__file__), "fixtures")


def _seed_sql() -> str:
    with open(os.path.join(FIXTURES, "registry_seed.sql"), "r", encoding="utf-8") as fh:
        return fh.read()


@pytest.fixture
def registry():
    from geopath.registry.context import RegistryContext

    ctx = RegistryContext.in_memory(_seed_sql())
    yield ctx
    ctx.close()


@pytest.fixture
def epsg(registry):
    from geopath.registry.factory import AuthorityFactory

    return AuthorityFactory(registry, "EPSG")


@pytest.fixture
def any_factory(registry):
    from geopath.registry.factory import AuthorityFactory

    return AuthorityFactory(registry, None)


@pytest.fixture
def client(registry):
    from fastapi.testclient import TestClient

    from geopath.main import create_app

    return TestClient(create_app(registry))
