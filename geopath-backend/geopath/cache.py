"""Redis-backed JSON cache for resolver responses, with a no-op fallback.

Usage:
    cache = await build_cache_from_env()
    key = cache_key("resolve", payload)
    await cache.set_json(key, {"candidates": [...]})
    data = await cache.get_json(key)

Connection failures are logged and treated as misses so the service keeps
answering when Redis is down. Keys are prefixed (CACHE_PREFIX) and carry
the registry fingerprint so a rebuilt database never serves stale paths.
"""
from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
from typing import Any, Optional, Union

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


def cache_key(namespace: str, payload: Any) -> str:
    """Stable key for a JSON-serializable request payload."""
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return f"{namespace}:{hashlib.sha256(raw.encode('utf-8')).hexdigest()[:32]}"


class _NoopCache:
    async def get_json(self, key: str) -> Optional[Any]:  # pragma: no cover - trivial
        return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:  # pragma: no cover - trivial
        return False

    async def close(self) -> None:  # pragma: no cover - trivial
        return None


class RedisCache:
    def __init__(self, client: Any, prefix: str = "geopath", default_ttl: int = 3600):
        self.client = client
        self.prefix = prefix.rstrip(":")
        self.default_ttl = default_ttl

    def _k(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    async def get_json(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(self._k(key))
        except (RedisError, OSError) as e:  # pragma: no cover (network issues)
            logger.debug("Redis get failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("corrupt cache entry %s dropped", key)
            return None

    async def set_json(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        data = json.dumps(value, separators=(",", ":"))
        try:
            await self.client.set(self._k(key), data, ex=ttl if ttl is not None else self.default_ttl)
            return True
        except (RedisError, OSError) as e:  # pragma: no cover
            logger.debug("Redis set failed for %s: %s", key, e)
            return False

    async def close(self) -> None:  # pragma: no cover - rarely used
        try:
            await self.client.aclose()
        except (RedisError, OSError) as e:
            logger.debug("Redis close failed: %s", e)


async def build_cache_from_env() -> Union[RedisCache, _NoopCache]:
    """RedisCache when REDIS_URL is set and answers a ping, else a no-op.

    Env vars:
      REDIS_URL          e.g. redis://redis:6379/0
      CACHE_DISABLE=1    force disable
      CACHE_PREFIX       key namespace (default 'geopath')
      CACHE_TTL_SECONDS  default TTL (default 3600)
    """
    if os.getenv("CACHE_DISABLE") == "1":
        return _NoopCache()
    url = os.getenv("REDIS_URL")
    if not url:
        return _NoopCache()
    try:
        client = redis.from_url(url, encoding="utf-8", decode_responses=False)
        await asyncio.wait_for(client.ping(), timeout=0.75)
    except (RedisError, OSError, asyncio.TimeoutError) as e:  # pragma: no cover (network issues)
        logger.info("Redis unavailable (%s); proceeding without cache", e)
        return _NoopCache()
    prefix = os.getenv("CACHE_PREFIX", "geopath")
    ttl = int(os.getenv("CACHE_TTL_SECONDS", "3600"))
    return RedisCache(client, prefix=prefix, default_ttl=ttl)
