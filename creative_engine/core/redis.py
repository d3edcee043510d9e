"""
Redis Connection Manager
Shared connection pool for the RQ dispatch path and the worker pool.
"""

import logging
from typing import Optional
from urllib.parse import urlsplit

from redis import Redis, ConnectionPool
from redis.exceptions import ConnectionError, TimeoutError

from creative_engine.core.config import settings

logger = logging.getLogger(__name__)


class Queues:
    """Queue names used by the generation pipeline."""
    GENERATION = "generation"
    MAINTENANCE = "maintenance"


def mask_redis_url(url: str) -> str:
    """Hide credentials in a Redis URL before it is logged or returned."""
    parts = urlsplit(url)
    if parts.password is None and parts.username is None:
        return url
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://***@{host}{parts.path}"


class RedisManager:
    """
    One pool per process.

    RQ stores pickled payloads, so responses are never decoded. The pool is sized for the
    worker processes plus the API dispatch path.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.REDIS_URL
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    def get_connection(self) -> Redis:
        if self._client is None:
            self._pool = ConnectionPool.from_url(
                self.url,
                max_connections=settings.WORKER_POOL_SIZE + 4,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                decode_responses=False,
            )
            self._client = Redis(connection_pool=self._pool)
            logger.info(f"[Redis] Connection pool ready for {mask_redis_url(self.url)}")
        return self._client

    def health_check(self) -> dict:
        """Ping Redis; never raises."""
        try:
            client = self.get_connection()
            client.ping()
            info = client.info("server")
            return {
                "connected": True,
                "redis_version": info.get("redis_version", "unknown"),
                "url": mask_redis_url(self.url),
            }
        except (ConnectionError, TimeoutError) as e:
            logger.error(f"[Redis] Health check failed: {e}")
            return {"connected": False, "error": str(e), "url": mask_redis_url(self.url)}


_manager: Optional[RedisManager] = None


def get_redis_manager() -> RedisManager:
    global _manager
    if _manager is None:
        _manager = RedisManager()
    return _manager


def get_redis() -> Redis:
    return get_redis_manager().get_connection()


def redis_health_check() -> dict:
    return get_redis_manager().health_check()


__all__ = ["Queues", "RedisManager", "get_redis_manager", "get_redis", "redis_health_check", "mask_redis_url"]
