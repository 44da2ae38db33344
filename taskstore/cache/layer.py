import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

from cachetools import TTLCache
from redis.asyncio import Redis, RedisError

from taskstore.core.config import Settings

logger = logging.getLogger(__name__)


class CacheLayer:
    """
    Two-tier read-through cache.

    L1: Process-local TTLCache (fast, limited size)
    L2: Redis (shared, larger capacity), only when ``redis_dsn`` is set

    Features:
    - Stampede protection with per-key locks
    - Graceful degradation when Redis is unavailable
    - Automatic key namespacing
    - Invalidation epoch: a load that overlaps an invalidation is not stored
    """

    def __init__(self, settings: Settings):
        self._settings = settings
        self._redis: Redis | None = None
        self.l1: TTLCache = TTLCache(
            maxsize=settings.l1_maxsize, ttl=settings.l1_ttl_seconds
        )
        self._initialized = False
        self._epoch = 0

        # Per-key loader locks, bounded and evicted after 5 minutes idle.
        self._locks: TTLCache = TTLCache(maxsize=10_000, ttl=300)

        # Stats tracking
        self.stats = {
            "l1_hits": 0,
            "l2_hits": 0,
            "misses": 0,
            "errors": 0,
        }

    async def init_cache(self):
        """Connect to Redis when configured. Runs once; failure leaves L1 only."""
        if self._initialized:
            return
        self._initialized = True

        if not self._settings.redis_dsn:
            logger.info("Cache layer initialized (L1 only)")
            return

        try:
            self._redis = Redis.from_url(
                self._settings.redis_dsn,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self._settings.redis_pool_size,
                socket_connect_timeout=5,
                socket_keepalive=True,
                health_check_interval=30,
            )

            # Verify connection
            await self._redis.ping()
            logger.info("Redis connection established")
        except RedisError as e:
            logger.error(f"Redis initialization failed, using L1 only: {e}")
            await self._discard_redis()

        logger.info("Cache layer initialized")

    async def _discard_redis(self):
        redis, self._redis = self._redis, None
        if redis is not None:
            try:
                await redis.aclose()
            except RedisError as e:
                logger.error(f"Error closing Redis: {e}")

    def _l1_key(self, key: str) -> str:
        """Build namespaced L1 cache key."""
        return f"{self._settings.cache_namespace}l1:{key}"

    def _l2_key(self, key: str) -> str:
        """Build namespaced L2 cache key."""
        return f"{self._settings.cache_namespace}l2:{key}"

    def _serialize(self, value: Any) -> str:
        return json.dumps(value, default=str)

    def _deserialize(self, raw: str) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            # Return raw string if not valid JSON
            return raw

    def _lock_for(self, key: str) -> asyncio.Lock:
        # setdefault keeps one lock object per key
        return self._locks.setdefault(key, asyncio.Lock())

    async def get(
        self,
        key: str,
        loader: Optional[Callable[[], Awaitable[Any]]] = None,
        l2_ttl: Optional[int] = None,
    ):
        """
        Retrieve value from cache hierarchy: L1 -> L2 -> loader.

        Args:
            key: Cache key (will be namespaced automatically)
            loader: Async function to load value on cache miss
            l2_ttl: TTL for L2 cache in seconds (uses default if None)

        Returns:
            Cached value or loaded value, or None if not found.
            Exceptions raised by the loader propagate and nothing is cached.
        """
        await self.init_cache()

        value = await self._lookup(key)
        if value is not None:
            return value

        if loader is None:
            self.stats["misses"] += 1
            logger.debug("Cache miss, no loader key=%s", key)
            return None

        async with self._lock_for(key):
            # Double-check caches after acquiring lock
            value = await self._lookup(key, count=False)
            if value is not None:
                return value

            self.stats["misses"] += 1
            logger.debug("Loading from source key=%s", key)
            epoch = self._epoch
            value = await loader()

            if value is None:
                return None

            if epoch == self._epoch:
                await self._set_both_layers(key, value, l2_ttl)
            else:
                logger.debug("Invalidated during load, not caching key=%s", key)
            return value

    async def _lookup(self, key: str, count: bool = True):
        l1_key = self._l1_key(key)
        if l1_key in self.l1:
            if count:
                self.stats["l1_hits"] += 1
            logger.debug("L1 hit key=%s", key)
            return self.l1[l1_key]

        if self._redis:
            try:
                raw = await self._redis.get(self._l2_key(key))
            except RedisError as e:
                logger.error(f"Redis GET error for {key}: {e}")
                self.stats["errors"] += 1
                return None
            if raw is not None:
                if count:
                    self.stats["l2_hits"] += 1
                logger.debug("L2 hit key=%s", key)
                value = self._deserialize(raw)
                # Populate L1
                self.l1[l1_key] = value
                return value
        return None

    async def _set_both_layers(self, key: str, value: Any, l2_ttl: int | None = None):
        self.l1[self._l1_key(key)] = value

        if self._redis:
            try:
                ttl = l2_ttl or self._settings.l2_ttl_seconds
                await self._redis.set(self._l2_key(key), self._serialize(value), ex=ttl)
                logger.debug("Stored in L2 key=%s ttl=%s", key, ttl)
            except RedisError as e:
                logger.error(f"Redis SET error for {key}: {e}")
                self.stats["errors"] += 1

    async def delete(self, key: str):
        """Delete a key from both cache layers."""
        await self.init_cache()
        self._epoch += 1

        self.l1.pop(self._l1_key(key), None)

        if self._redis:
            try:
                await self._redis.delete(self._l2_key(key))
                logger.debug("Deleted from both layers key=%s", key)
            except RedisError as e:
                logger.error(f"Redis DELETE error for {key}: {e}")
                self.stats["errors"] += 1

    async def delete_pattern(self, pattern: str):
        """
        Delete all keys matching a glob pattern from both layers.

        L1 is cleared entirely since TTLCache has no pattern lookup.
        """
        await self.init_cache()
        self._epoch += 1
        self.l1.clear()

        if not self._redis:
            return

        try:
            l2_pattern = self._l2_key(pattern)
            cursor = 0
            deleted_count = 0

            while True:
                cursor, keys = await self._redis.scan(
                    cursor, match=l2_pattern, count=100
                )
                if keys:
                    await self._redis.delete(*keys)
                    deleted_count += len(keys)
                if cursor == 0:
                    break

            logger.info("Pattern delete completed pattern=%s deleted=%s", pattern, deleted_count)

        except RedisError as e:
            logger.error(f"Pattern delete error for {pattern}: {e}")
            self.stats["errors"] += 1

    async def close(self):
        """Graceful shutdown of cache connections."""
        if self._redis:
            await self._discard_redis()
            logger.info("Redis connection closed")

    def get_stats(self) -> dict:
        total = self.stats["l1_hits"] + self.stats["l2_hits"] + self.stats["misses"]

        return {
            **self.stats,
            "l1_size": len(self.l1),
            "l1_maxsize": self.l1.maxsize,
            "redis": self._redis is not None,
            "hit_rate": (
                (self.stats["l1_hits"] + self.stats["l2_hits"]) / total
                if total > 0
                else 0
            ),
        }
