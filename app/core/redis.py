"""
Redis Connection Manager
Shared connection pool for the progress store and the RQ task queue.
"""

import logging
from typing import Optional
from redis import Redis, ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError
from functools import lru_cache

from app.core.config import settings

logger = logging.getLogger(__name__)


class RedisManager:
    """
    Manages Redis connections with connection pooling.

    One pool per process; both the API (progress reads, enqueueing) and the
    RQ workers (progress writes) go through it.
    """

    _instance: Optional["RedisManager"] = None

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    @classmethod
    def get_instance(cls) -> "RedisManager":
        """Get singleton instance of RedisManager."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def _create_pool(self) -> ConnectionPool:
        return ConnectionPool.from_url(
            self.url,
            max_connections=20,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            decode_responses=False  # RQ needs bytes
        )

    def get_connection(self) -> Redis:
        """Get a Redis client bound to the shared pool."""
        if self._pool is None:
            self._pool = self._create_pool()
            logger.info(f"Created Redis connection pool for {self._mask_url(self.url)}")

        if self._client is None:
            self._client = Redis(connection_pool=self._pool)

        return self._client

    def health_check(self) -> dict:
        """
        Check Redis connection health.

        Returns:
            dict with status and info
        """
        try:
            client = self.get_connection()
            ping_result = client.ping()
            info = client.info("server")

            return {
                "status": "healthy" if ping_result else "unhealthy",
                "connected": True,
                "redis_version": info.get("redis_version", "unknown"),
                "url": self._mask_url(self.url)
            }
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"Redis health check failed: {e}")
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
                "url": self._mask_url(self.url)
            }

    @staticmethod
    def _mask_url(url: str) -> str:
        """Mask password in Redis URL for logging."""
        if "@" in url:
            # redis://:password@host:port -> redis://***@host:port
            return f"redis://***@{url.split('@')[-1]}"
        return url

    def close(self):
        """Close all connections in the pool."""
        if self._pool:
            self._pool.disconnect()
            self._pool = None
            self._client = None
            logger.info("Redis connection pool closed")


@lru_cache()
def get_redis_manager() -> RedisManager:
    """Get the singleton Redis manager instance."""
    return RedisManager.get_instance()


def get_redis() -> Redis:
    """Get a Redis connection (convenience function)."""
    return get_redis_manager().get_connection()


def redis_health_check() -> dict:
    """Check Redis health (convenience function)."""
    return get_redis_manager().health_check()


class Queues:
    """Queue names used by the API and the workers."""
    GENERATION = "generation"


class Keys:
    """Redis key layout."""
    PREFIX = "generation"

    @classmethod
    def progress(cls, process_id: str) -> str:
        return f"{cls.PREFIX}:progress:{process_id}"

    @classmethod
    def cancel(cls, process_id: str) -> str:
        return f"{cls.PREFIX}:cancel:{process_id}"


__all__ = [
    "RedisManager",
    "get_redis_manager",
    "get_redis",
    "redis_health_check",
    "Queues",
    "Keys",
]
