"""
Redis Module

Connection handling for the optional shared rate-limit window store.
"""

from .redis_client import RedisConnection

__all__ = ["RedisConnection"]
