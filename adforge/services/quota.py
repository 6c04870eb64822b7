"""Per-user generation budget backed by an atomic Redis counter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from redis.exceptions import RedisError

from adforge.config import Settings, settings
from adforge.core.exceptions import GenerationTransient
from adforge.core.redis import get_lua_script, get_redis_client

logger = logging.getLogger(__name__)

# KEYS[1] = counter key, ARGV[1] = ceiling, ARGV[2] = window seconds.
# Returns {allowed, used, ttl}.
CONSUME_SCRIPT = """
local used = redis.call('INCR', KEYS[1])
if used == 1 then
  redis.call('EXPIRE', KEYS[1], tonumber(ARGV[2]))
end
local ttl = redis.call('TTL', KEYS[1])
if used > tonumber(ARGV[1]) then
  redis.call('DECR', KEYS[1])
  return {0, used - 1, ttl}
end
return {1, used, ttl}
"""


@dataclass(frozen=True, slots=True)
class QuotaDecision:
    allowed: bool
    used: int
    limit: int
    reset_in_seconds: int


def quota_key(user_id: str, tier: str) -> str:
    return f"quota:{tier}:{user_id}"


class RedisQuotaStore:
    """Compare-and-increment budget counter with a fixed expiry window."""

    def __init__(self, redis: Any | None = None, app_settings: Settings | None = None) -> None:
        self._redis = redis
        self.settings = app_settings or settings

    @property
    def redis(self) -> Any:
        if self._redis is None:
            self._redis = get_redis_client()
        return self._redis

    async def try_consume(self, user_id: str, tier: str) -> QuotaDecision:
        limit = self.settings.get_quota_limit(tier)
        window = int(self.settings.quota_window_seconds)
        script = get_lua_script("quota_consume", CONSUME_SCRIPT, client=self.redis)
        try:
            allowed, used, ttl = await script(keys=[quota_key(user_id, tier)], args=[limit, window])
        except RedisError as exc:
            logger.warning(
                "Quota store unavailable",
                extra={"user_id": user_id, "tier": tier, "error": str(exc)},
            )
            raise GenerationTransient("Quota store unavailable") from exc
        decision = QuotaDecision(
            allowed=bool(int(allowed)),
            used=int(used),
            limit=limit,
            reset_in_seconds=max(int(ttl), 0),
        )
        if not decision.allowed:
            logger.info(
                "Generation quota refused",
                extra={"user_id": user_id, "tier": tier, "limit": limit, "used": decision.used},
            )
        return decision

    async def remaining(self, user_id: str, tier: str) -> int:
        limit = self.settings.get_quota_limit(tier)
        used = await self.redis.get(quota_key(user_id, tier))
        return max(limit - int(used or 0), 0)
