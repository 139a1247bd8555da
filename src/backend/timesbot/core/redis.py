from __future__ import annotations

from functools import lru_cache

import redis
from redis import Redis

from timesbot.core.config import get_settings


@lru_cache(maxsize=1)
def get_redis_client() -> Redis | None:
    settings = get_settings()
    if not settings.redis_enabled:
        return None
    return redis.Redis.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        decode_responses=False,
    )
