import json
import logging

import redis.asyncio as redis

from jevah.config import settings

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Redis-backed cache-aside store, fixed-window rate limiter and event
    publisher.

    Every public method is safe to call when Redis is unavailable: reads
    miss, writes are skipped, rate limits allow the request and publishes
    are dropped.  Callers never see a Redis exception.
    """

    def __init__(self) -> None:
        self._redis: redis.Redis | None = None
        self._hits: int = 0
        self._misses: int = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the connection pool.  Called once at application startup."""
        self._redis = redis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        try:
            await self._redis.ping()
            logger.info("Redis connected: %s", settings.REDIS_URL)
        except Exception as exc:  # pragma: no cover
            logger.warning("Redis ping failed, cache disabled: %s", exc)
            self._redis = None

    async def disconnect(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    @property
    def available(self) -> bool:
        return self._redis is not None

    # ------------------------------------------------------------------
    # Cache-aside
    # ------------------------------------------------------------------

    async def get(self, key: str) -> dict | list | None:
        """Return the cached value for *key*, or None on a miss or error."""
        if not self._redis:
            self._misses += 1
            return None
        try:
            data = await self._redis.get(key)
            if data is not None:
                self._hits += 1
                return json.loads(data)
            self._misses += 1
            return None
        except Exception as exc:
            logger.debug("Cache GET error for key=%r: %s", key, exc)
            self._misses += 1
            return None

    async def set(self, key: str, value: dict | list, ttl: int | None = None) -> None:
        if not self._redis:
            return
        try:
            await self._redis.set(key, json.dumps(value, default=str), ex=ttl)
        except Exception as exc:
            logger.debug("Cache SET error for key=%r: %s", key, exc)

    async def delete_pattern(self, pattern: str) -> None:
        """Delete all keys matching *pattern* using SCAN."""
        if not self._redis:
            return
        try:
            keys: list[str] = []
            async for key in self._redis.scan_iter(match=pattern):
                keys.append(key)
            if keys:
                await self._redis.delete(*keys)
                logger.debug("Cache invalidated %d key(s) matching %r", len(keys), pattern)
        except Exception as exc:
            logger.debug("Cache DELETE_PATTERN error for pattern=%r: %s", pattern, exc)

    # ------------------------------------------------------------------
    # Rate limiting and counters
    # ------------------------------------------------------------------

    async def rate_limit(self, key: str, limit: int, window: int) -> bool:
        """
        Fixed-window limiter.  Returns True when the call identified by
        *key* is within *limit* hits for the current *window* seconds.

        The first hit in a window sets the expiry; later hits only
        increment.  Fails open without Redis.
        """
        if not self._redis:
            return True
        try:
            current = await self._redis.incr(f"ratelimit:{key}")
            if current == 1:
                await self._redis.expire(f"ratelimit:{key}", window)
            return current <= limit
        except Exception as exc:
            logger.warning("Rate limit check failed for %r, allowing: %s", key, exc)
            return True

    async def incr_counter(self, key: str, amount: int = 1, ttl: int = 86400) -> None:
        """Best-effort hot counter mirrored in Redis (e.g. ``post:1:likes``)."""
        if not self._redis:
            return
        try:
            await self._redis.incrby(key, amount)
            await self._redis.expire(key, ttl)
        except Exception as exc:
            logger.debug("Counter INCR error for key=%r: %s", key, exc)

    # ------------------------------------------------------------------
    # Real-time fan-out
    # ------------------------------------------------------------------

    async def publish(self, channel: str, payload: dict) -> None:
        if not self._redis:
            return
        try:
            await self._redis.publish(channel, json.dumps(payload, default=str))
        except Exception as exc:
            logger.debug("Publish to %r failed: %s", channel, exc)

    # ------------------------------------------------------------------
    # Domain-level invalidation helpers
    # ------------------------------------------------------------------

    async def invalidate_media(self) -> None:
        """Purge public media listings and trending after any media write."""
        await self.delete_pattern("media:list:*")
        await self.delete_pattern("search:trending:*")

    async def invalidate_audio(self) -> None:
        await self.delete_pattern("audio:*")
        await self.delete_pattern("search:trending:*")

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    @property
    def stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "available": self.available,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
        }


cache = CacheManager()
