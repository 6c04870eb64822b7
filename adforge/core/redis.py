"""Redis client helpers.

Redis holds the only cross-process shared state of the service, the quota
counters. Everything else lives in Postgres.
"""

import logging
from typing import Any

from redis.asyncio import Redis

from adforge.config import settings

logger = logging.getLogger(__name__)

_redis_client: Redis | None = None
_scripts: dict[str, Any] = {}


def get_redis_client() -> Redis:
    """Get a shared Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(settings.redis_url, decode_responses=True)
        logger.info("Redis client created", extra={"redis_url": _redact_url(settings.redis_url)})
    return _redis_client


def get_lua_script(name: str, source: str, client: Redis | None = None) -> Any:
    """Register a Lua script once per client and return the callable handle."""
    redis = client or get_redis_client()
    cache_key = f"{id(redis)}:{name}"
    script = _scripts.get(cache_key)
    if script is None:
        script = redis.register_script(source)
        _scripts[cache_key] = script
    return script


async def close_redis() -> None:
    """Close Redis client connections."""
    global _redis_client
    if _redis_client is None:
        return

    await _redis_client.aclose()
    _redis_client = None
    _scripts.clear()
    logger.info("Redis connection closed")


def _redact_url(url: str) -> str:
    if "@" not in url:
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.split('@', 1)[1]}"
