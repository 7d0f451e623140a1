"""
Redis client construction for job guards.
"""

import redis.asyncio as redis

from custody.config.settings import Settings


def get_redis_client(settings: Settings) -> redis.Redis:
    """
    Build an asyncio Redis client from settings.

    Responses are decoded to str so lock tokens compare as strings.
    """
    return redis.Redis(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password or None,
        db=settings.redis_db,
        decode_responses=True,
    )


def get_redis_url_masked(settings: Settings) -> str:
    """Connection URL for log lines, password replaced."""
    auth = ":****@" if settings.redis_password else ""
    return f"redis://{auth}{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
