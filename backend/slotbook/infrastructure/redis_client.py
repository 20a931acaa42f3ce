"""
Redis client shared by the rate limiter and the FCFS booking queue.
Separated from business logic for clean architecture.

The client is created lazily on first use and closed explicitly at shutdown.
set_client() swaps the instance (fakeredis in tests).
"""

from typing import Optional

import redis.asyncio as redis

from slotbook.core.config import get_settings


class RedisClient:
    """Process-scoped async Redis client with connection pooling."""

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> redis.Redis:
        """Get or create Redis client instance."""
        if cls._instance is None:
            settings = get_settings()
            cls._instance = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=settings.REDIS_CONNECT_TIMEOUT,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT,
                retry_on_timeout=True,
                health_check_interval=30,
            )
        return cls._instance

    @classmethod
    def set_client(cls, client: Optional[redis.Redis]) -> None:
        cls._instance = client

    @classmethod
    async def close(cls):
        """Close Redis connection."""
        if cls._instance is not None:
            await cls._instance.aclose()
            cls._instance = None


# Convenience functions
def get_redis() -> redis.Redis:
    """Get Redis client instance."""
    return RedisClient.get_client()


def set_redis_client(client: Optional[redis.Redis]) -> None:
    RedisClient.set_client(client)


async def close_redis() -> None:
    await RedisClient.close()
