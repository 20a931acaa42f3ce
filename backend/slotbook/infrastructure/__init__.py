"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .redis_client import get_redis, set_redis_client, close_redis, RedisClient

__all__ = ['get_redis', 'set_redis_client', 'close_redis', 'RedisClient']
