from __future__ import annotations

import asyncio

from fastapi.testclient import TestClient

from geopath.cache import RedisCache, _NoopCache, build_cache_from_env, cache_key
from geopath.main import create_app


class _MemoryCache:
    def __init__(self):
        self.data = {}

    async def get_json(self, key):
        return self.data.get(key)

    async def set_json(self, key, value, ttl=None):
        self.data[key] = value
        return True


class _FakeRedis:
    def __init__(self):
        self.store = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "registry": True}


def test_registry_not_configured(monkeypatch):
    monkeypatch.delenv("REGISTRY_DB_PATH", raising=False)
    c = TestClient(create_app(None))
    assert c.get("/health").json()["registry"] is False
    r = c.get("/crs/EPSG/4326")
    assert r.status_code == 503


def test_get_crs(client):
    r = client.get("/crs/epsg/4326")
    assert r.status_code == 200
    data = r.json()
    assert data["id"] == "EPSG:4326"
    assert data["kind"] == "geographic 2D"
    assert data["datum"] == "World Geodetic System 1984 ensemble"
    assert data["area_of_use"] == "World."
    assert data["bbox"] == [-180.0, -90.0, 180.0, 90.0]
    assert len(data["axes"]) == 2

    projected = client.get("/crs/EPSG/32631").json()
    assert projected["kind"] == "projected"
    assert projected["datum"] == "World Geodetic System 1984 ensemble"


def test_get_crs_errors(client):
    assert client.get("/crs/EPSG/999999").status_code == 404
    assert client.get("/crs/USER/NOT_PROJECTED").status_code == 422


def test_resolve_lists_candidates_with_pipelines(client):
    r = client.post("/operations/resolve", json={"source_crs": "EPSG:4156", "target_crs": "EPSG:4326"})
    assert r.status_code == 200
    candidates = r.json()["candidates"]
    assert [c["id"] for c in candidates] == ["EPSG:1623"]
    assert candidates[0]["accuracy"] == 1.0
    assert candidates[0]["pipeline"].startswith("+proj=pipeline")
    assert candidates[0]["error"] is None

    r = client.post(
        "/operations/resolve",
        json={"source_crs": "EPSG:4156", "target_crs": "EPSG:4326", "discard_superseded": False},
    )
    assert [c["id"] for c in r.json()["candidates"]] == ["EPSG:1623", "EPSG:1622"]


def test_resolve_concatenation_lists_steps(client):
    r = client.post("/operations/resolve", json={"source_crs": "EPSG:4818", "target_crs": "EPSG:4326"})
    best = r.json()["candidates"][0]
    assert best["id"] is None
    assert best["kind"] == "concatenated operation"
    assert best["steps"] == ["S-JTSK (Ferro) to S-JTSK (1)", "S-JTSK to WGS 84 (2)"]


def test_resolve_rejects_bad_references(client):
    r = client.post("/operations/resolve", json={"source_crs": "4326", "target_crs": "EPSG:4326"})
    assert r.status_code == 422
    r = client.post(
        "/operations/resolve",
        json={"source_crs": "EPSG:4326", "target_crs": "EPSG:4978", "area_of_interest": [0, 60, 10, 50]},
    )
    assert r.status_code == 422


def test_pipeline_for_identity(client):
    r = client.post("/operations/pipeline", json={"source_crs": "epsg:4326", "target_crs": "EPSG:4326"})
    assert r.status_code == 200
    data = r.json()
    assert data["source_crs"] == "EPSG:4326"
    assert data["pipeline"] == "+proj=noop"
    assert data["operation"] is None
    assert data["steps"] == []


def test_pipeline_with_inverse(client):
    r = client.post("/operations/pipeline", json={"source_crs": "EPSG:4326", "target_crs": "EPSG:4978"})
    data = r.json()
    assert data["pipeline"].endswith("+step +proj=cart +ellps=WGS84")
    assert data["steps"][0] == "+proj=axisswap +order=2,1"
    assert data["inverse"].startswith("+proj=pipeline +step +inv +proj=cart +ellps=WGS84")


def test_pipeline_without_path_is_404(client):
    r = client.post(
        "/operations/pipeline",
        json={"source_crs": "EPSG:4818", "target_crs": "EPSG:5790", "allow_ballpark": False},
    )
    assert r.status_code == 404


def test_transform_reports_failures_per_point(client):
    r = client.post(
        "/operations/transform",
        json={"source_crs": "EPSG:6933", "target_crs": "EPSG:4326", "points": [[0.0, 0.0], [0.0, 1e8]]},
    )
    assert r.status_code == 200
    data = r.json()
    assert data["results"][0] == [0.0, 0.0]
    assert data["results"][1] is None
    assert list(data["errors"]) == ["1"]


def test_transform_validates_points(client):
    r = client.post(
        "/operations/transform",
        json={"source_crs": "EPSG:4326", "target_crs": "EPSG:4978", "points": [[1.0]]},
    )
    assert r.status_code == 422


def test_resolve_uses_cache(client):
    cache = _MemoryCache()
    client.app.state.cache = cache
    body = {"source_crs": "EPSG:4267", "target_crs": "EPSG:4326"}
    first = client.post("/operations/resolve", json=body).json()
    assert len(cache.data) == 1
    key = next(iter(cache.data))
    cache.data[key]["candidates"] = cache.data[key]["candidates"][:1]
    second = client.post("/operations/resolve", json=body).json()
    assert len(first["candidates"]) == 2
    assert len(second["candidates"]) == 1


def test_cache_key_is_stable():
    assert cache_key("resolve", {"a": 1, "b": 2}) == cache_key("resolve", {"b": 2, "a": 1})
    assert cache_key("resolve", {"a": 1}) != cache_key("resolve", {"a": 2})


def test_redis_cache_round_trip():
    cache = RedisCache(_FakeRedis(), prefix="test")

    async def scenario():
        assert await cache.get_json("k") is None
        assert await cache.set_json("k", {"x": [1, 2]})
        assert cache.client.store.keys() == {"test:k"}
        return await cache.get_json("k")

    assert asyncio.run(scenario()) == {"x": [1, 2]}


def test_cache_disabled_without_redis_url(monkeypatch):
    monkeypatch.delenv("REDIS_URL", raising=False)
    assert isinstance(asyncio.run(build_cache_from_env()), _NoopCache)
