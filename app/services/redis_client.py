import redis.asyncio as redis_async

from app.config import settings

_redis_client = None
_redis_url = None


def get_redis(redis_url: str | None = None):
    """Shared asyncio Redis client, rebuilt only when the URL changes."""
    global _redis_client, _redis_url

    redis_url = redis_url or settings.redis_url
    if _redis_client is None or _redis_url != redis_url:
        _redis_url = redis_url
        _redis_client = redis_async.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=settings.redis_socket_timeout_seconds,
            socket_timeout=settings.redis_socket_timeout_seconds,
        )
    return _redis_client
