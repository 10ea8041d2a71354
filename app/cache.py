import json

from loguru import logger
from redis.asyncio import Redis

from app.settings import BROWSE_CACHE_TTL, REDIS_URL

_redis: Redis | None = None
BROWSE_PREFIX = "experiences:browse:"


def get_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis


def _browse_key(query_key: str) -> str:
    return f"{BROWSE_PREFIX}{query_key}"


async def get_browse_cache(query_key: str) -> dict | None:
    try:
        data = await get_redis().get(_browse_key(query_key))
        return json.loads(data) if data else None
    except Exception:
        logger.warning("Redis get failed; skipping browse cache", exc_info=True)
        return None


async def set_browse_cache(query_key: str, page: dict) -> None:
    try:
        await get_redis().setex(_browse_key(query_key), BROWSE_CACHE_TTL, json.dumps(page))
    except Exception:
        logger.warning("Redis set failed; skipping browse cache", exc_info=True)


async def invalidate_browse_cache() -> None:
    """Drop every cached listing page; called whenever visibility can change."""
    try:
        redis = get_redis()
        keys = [key async for key in redis.scan_iter(match=f"{BROWSE_PREFIX}*")]
        if keys:
            await redis.delete(*keys)
    except Exception:
        logger.warning("Redis invalidate failed for browse cache", exc_info=True)
