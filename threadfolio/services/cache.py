"""
Redis cache for per-date appointment counts.
Calendar month views poll counts often. Routes drop a shop's entries once an
appointment mutation has committed, so the next read goes back to the database.
Every operation fails open: without Redis the counts are simply recomputed.
"""
import json
import logging
from datetime import date

from redis.asyncio import Redis
from redis.exceptions import RedisError

from threadfolio.core.config import settings

logger = logging.getLogger(__name__)

KEY_PREFIX = "appointment_counts"


def counts_key(shop_id: str, start_date: date, end_date: date) -> str:
    return f"{KEY_PREFIX}:{shop_id}:{start_date.isoformat()}:{end_date.isoformat()}"


class AppointmentCountsCache:
    """Redis wrapper keyed by shop and date range, values stored as JSON"""

    def __init__(self, redis_url: str, ttl_seconds: int):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.redis_client: Redis | None = None

    def _get_client(self) -> Redis | None:
        """Lazy load the Redis client; None when no URL is configured"""
        if self.redis_client is None and self.redis_url:
            self.redis_client = Redis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return self.redis_client

    async def get(self, shop_id: str, start_date: date, end_date: date) -> dict[date, int] | None:
        client = self._get_client()
        if client is None:
            return None
        key = counts_key(shop_id, start_date, end_date)
        try:
            value = await client.get(key)
        except RedisError as e:
            logger.error("Counts cache get error for %s: %s", key, e)
            return None
        if value is None:
            logger.debug("Counts cache MISS: %s", key)
            return None
        logger.debug("Counts cache HIT: %s", key)
        return {date.fromisoformat(day): int(n) for day, n in json.loads(value).items()}

    async def set(self, shop_id: str, start_date: date, end_date: date, counts: dict[date, int]) -> bool:
        client = self._get_client()
        if client is None or self.ttl_seconds <= 0:
            return False
        key = counts_key(shop_id, start_date, end_date)
        serialized = json.dumps({day.isoformat(): n for day, n in counts.items()})
        try:
            await client.setex(key, self.ttl_seconds, serialized)
        except RedisError as e:
            logger.error("Counts cache set error for %s: %s", key, e)
            return False
        logger.debug("Counts cache SET: %s (TTL: %ss)", key, self.ttl_seconds)
        return True

    async def invalidate_shop(self, shop_id: str) -> int:
        """Drop every cached range for a shop. Returns the number of keys removed."""
        client = self._get_client()
        if client is None:
            return 0
        pattern = f"{KEY_PREFIX}:{shop_id}:*"
        try:
            keys = [key async for key in client.scan_iter(match=pattern)]
            deleted = await client.delete(*keys) if keys else 0
        except RedisError as e:
            logger.error("Counts cache delete pattern error for %s: %s", pattern, e)
            return 0
        if deleted:
            logger.debug("Counts cache DELETE pattern: %s (%d keys)", pattern, deleted)
        return deleted

    async def close(self) -> None:
        if self.redis_client is not None:
            await self.redis_client.aclose()
            self.redis_client = None


counts_cache = AppointmentCountsCache(settings.redis_url, settings.counts_cache_ttl_seconds)
