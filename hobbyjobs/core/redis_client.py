"""
Redis Client: async singleton for event publication and job run locks.

The client is bound to the event loop it was created on. Celery tasks run
each job in a fresh loop, so ``close_redis()`` must be awaited before that
loop closes (``run_async`` does it).
"""
import asyncio
from urllib.parse import urlsplit, urlunsplit

import redis.asyncio as aioredis

from hobbyjobs.core.config import settings
from hobbyjobs.core.logging import get_logger

logger = get_logger(__name__)

_redis_client: aioredis.Redis | None = None
_init_lock = asyncio.Lock()


def mask_redis_url(url: str) -> str:
    """redis://:secret@host:6379/0 → redis://:****@host:6379/0"""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return "redis://****"
    if not parts.password:
        return url
    netloc = f"{parts.username or ''}:****@{parts.hostname or ''}"
    if port:
        netloc += f":{port}"
    return urlunsplit(parts._replace(netloc=netloc))


async def get_redis() -> aioredis.Redis:
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    async with _init_lock:
        if _redis_client is None:
            client = aioredis.from_url(
                settings.REDIS_URL,
                decode_responses=True,
                socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
                socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
            )
            await client.ping()
            _redis_client = client
            logger.info(
                "Redis client initialized",
                extra_data={"url": mask_redis_url(settings.REDIS_URL)},
            )
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    client, _redis_client = _redis_client, None
    if client is not None:
        await client.aclose()
        logger.info("Redis connection closed")
