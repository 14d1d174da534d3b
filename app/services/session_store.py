"""Phone -> AI thread mapping kept in Redis with a sliding TTL."""

from typing import Optional

from app.config import settings
from app.logging_config import get_logger
from app.services.redis_client import get_redis

logger = get_logger("session_store")

SESSION_PREFIX = "inspector:session:"
CONTEXT_PREFIX = "inspector:session_ctx:"
CREATE_ATTEMPTS = 3


class SessionConflictError(Exception):
    def __init__(self, phone: str):
        self.phone = phone
        super().__init__(f"Could not bind a session for {phone}")


class SessionStore:
    def __init__(self, redis_client=None, ttl_seconds: Optional[int] = None):
        self._redis = redis_client
        self.ttl_seconds = ttl_seconds or settings.session_ttl_seconds

    @property
    def redis(self):
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    async def resolve(self, phone: str) -> Optional[str]:
        """Return the live thread id for this phone and push its expiry forward."""
        thread_id = await self.redis.getex(SESSION_PREFIX + phone, ex=self.ttl_seconds)
        if thread_id:
            await self.redis.expire(CONTEXT_PREFIX + phone, self.ttl_seconds)
        return thread_id

    async def create(self, phone: str, thread_id: str) -> str:
        """Bind thread_id to phone unless a live session already exists.

        Returns the thread id that owns the session. When it differs from the
        one passed in, this caller lost the race and owns an orphan thread.
        """
        key = SESSION_PREFIX + phone
        for _ in range(CREATE_ATTEMPTS):
            if await self.redis.set(key, thread_id, ex=self.ttl_seconds, nx=True):
                logger.info("Session created", extra={"context": {"phone": phone, "thread_id": thread_id}})
                return thread_id

            existing = await self.redis.get(key)
            if existing:
                logger.info(
                    "Session already exists, reusing",
                    extra={"context": {"phone": phone, "thread_id": existing, "orphan_thread_id": thread_id}},
                )
                return existing
            # Expired between SET NX and GET: try to claim it again

        raise SessionConflictError(phone)

    async def get_context(self, phone: str) -> dict[str, str]:
        return await self.redis.hgetall(CONTEXT_PREFIX + phone) or {}

    async def update_context(self, phone: str, **fields) -> None:
        """Store context fields; a None value clears that field."""
        key = CONTEXT_PREFIX + phone
        mapping = {name: str(value) for name, value in fields.items() if value is not None}
        cleared = [name for name, value in fields.items() if value is None]
        if cleared:
            await self.redis.hdel(key, *cleared)
        if mapping:
            await self.redis.hset(key, mapping=mapping)
            await self.redis.expire(key, self.ttl_seconds)

    async def delete(self, phone: str) -> bool:
        deleted = await self.redis.delete(SESSION_PREFIX + phone, CONTEXT_PREFIX + phone)
        return bool(deleted)
