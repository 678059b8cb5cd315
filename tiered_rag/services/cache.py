"""Caching service for question embeddings.

Repeated questions are common in a support chat, so query embeddings are
cached in Redis to save an embedding round trip. The cache is strictly
best-effort: every Redis failure is logged and treated as a miss.
"""

import json
import logging
import hashlib
from typing import Any, Optional, List

try:
    import redis.asyncio as redis
    HAS_REDIS = True
except ImportError:
    HAS_REDIS = False

from tiered_rag.config import RedisConfig, get_settings

logger = logging.getLogger(__name__)


class CacheService:
    """Redis-based caching service."""

    PREFIX_EMBEDDING = "embedding:"

    def __init__(
        self,
        config: Optional[RedisConfig] = None,
        client: Optional["redis.Redis"] = None,
    ):
        """Initialize cache service.

        Args:
            config: Redis configuration
            client: Pre-initialized Redis client
        """
        self.config = config or get_settings().redis
        self._client = client
        self._initialized = client is not None

    async def _ensure_initialized(self):
        """Lazy initialization of Redis client."""
        if not self._initialized:
            if not HAS_REDIS:
                raise ImportError(
                    "redis package required. Install with: pip install redis"
                )
            logger.info(f"Connecting to Redis: {self.config.url}")
            self._client = redis.from_url(self.config.url)
            self._initialized = True

    def _embedding_key(self, model: str, text: str) -> str:
        digest = hashlib.sha256(f"{model}\n{text}".encode()).hexdigest()
        return f"{self.PREFIX_EMBEDDING}{digest}"

    async def get(self, key: str) -> Optional[Any]:
        """Get a value from cache.

        Args:
            key: Cache key

        Returns:
            Cached value or None
        """
        try:
            await self._ensure_initialized()
            value = await self._client.get(key)
            if value:
                return json.loads(value)
            return None
        except Exception as e:
            logger.warning(f"Cache get error: {e}")
            return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
    ) -> bool:
        """Set a value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time-to-live in seconds

        Returns:
            Success status
        """
        ttl = ttl or self.config.cache_ttl

        try:
            await self._ensure_initialized()
            await self._client.setex(key, ttl, json.dumps(value))
            return True
        except Exception as e:
            logger.warning(f"Cache set error: {e}")
            return False

    async def get_embedding(self, model: str, text: str) -> Optional[List[float]]:
        return await self.get(self._embedding_key(model, text))

    async def set_embedding(self, model: str, text: str, embedding: List[float]) -> bool:
        return await self.set(self._embedding_key(model, text), embedding)

    async def close(self):
        """Close the Redis connection."""
        if self._client is not None:
            await self._client.aclose()
            self._initialized = False


# Singleton instance
_cache: Optional[CacheService] = None


def get_cache() -> Optional[CacheService]:
    """Get the global cache instance, or None when caching is disabled."""
    global _cache
    if not get_settings().redis.enabled:
        return None
    if _cache is None:
        _cache = CacheService()
    return _cache
